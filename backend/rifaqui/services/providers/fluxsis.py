from typing import Any, Dict, Optional

from .base import ProviderAdapter, WebhookEvent

PAYMENT_EVENTS = {"payment.status_changed", "payment.created"}


class FluxsisAdapter(ProviderAdapter):
    """Fluxsis ``payment.*`` deliveries. No signature is sent or checked."""

    name = "fluxsis"
    label = "Fluxsis payment"
    response_id_field = "payment_id"

    def parse(self, payload: Dict[str, Any]) -> Optional[WebhookEvent]:
        event_type = str(payload.get("event") or "")
        if event_type not in PAYMENT_EVENTS:
            return None
        data = self.section(payload, "data")
        payer = data.get("payer") if isinstance(data.get("payer"), dict) else {}
        return self.build_event(
            event_type=event_type,
            provider_status=data.get("status"),
            transaction_id=data.get("id"),
            reference=data.get("external_reference"),
            amount=data.get("amount"),
            currency=data.get("currency"),
            payer=payer,
            details={
                "payment_id": data.get("id"),
                "status": data.get("status"),
                "amount": data.get("amount"),
                "payment_method": data.get("payment_method"),
                "payer_email": payer.get("email"),
            },
            raw=payload,
        )

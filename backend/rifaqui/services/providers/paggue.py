from typing import Any, Dict, Optional

from .base import ProviderAdapter, WebhookEvent

TRANSACTION_EVENTS = {"transaction.status_updated", "transaction.completed"}


class PaggueAdapter(ProviderAdapter):
    """Paggue ``transaction.*`` deliveries. No signature is sent or checked."""

    name = "paggue"
    label = "Paggue transaction"
    response_id_field = "transaction_id"
    ignored_kind = "transaction"

    def parse(self, payload: Dict[str, Any]) -> Optional[WebhookEvent]:
        event_type = str(payload.get("event") or "")
        if event_type not in TRANSACTION_EVENTS:
            return None
        data = self.section(payload, "data")
        customer = data.get("customer") if isinstance(data.get("customer"), dict) else {}
        return self.build_event(
            event_type=event_type,
            provider_status=data.get("status"),
            transaction_id=data.get("transaction_id"),
            reference=data.get("reference_id"),
            amount=data.get("amount"),
            currency=data.get("currency"),
            payer=customer,
            details={
                "transaction_id": data.get("transaction_id"),
                "status": data.get("status"),
                "amount": data.get("amount"),
                "payment_method": data.get("payment_method"),
                "customer_email": customer.get("email"),
            },
            raw=payload,
        )

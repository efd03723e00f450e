from typing import Any, Dict, Optional

from .base import ProviderAdapter, SettlementOutcome, WebhookEvent


class PixAdapter(ProviderAdapter):
    """Generic PIX (Efi Bank style) ``evento: pix`` notifications.

    The bank only notifies received transfers, so every accepted event
    settles. The ``txid`` doubles as the correlation reference.
    """

    name = "pix"
    label = "PIX"
    response_id_field = "txid"
    ignored_kind = "PIX"

    def parse(self, payload: Dict[str, Any]) -> Optional[WebhookEvent]:
        event_type = str(payload.get("evento") or "")
        if event_type != "pix":
            return None
        pix = self.section(payload, "pix")
        payer = pix.get("infoPagador") if isinstance(pix.get("infoPagador"), dict) else {}
        return self.build_event(
            event_type=event_type,
            provider_status="received",
            outcome=SettlementOutcome.SETTLED,
            transaction_id=pix.get("endToEndId") or pix.get("txid"),
            reference=pix.get("txid"),
            amount=pix.get("valor"),
            currency="BRL",
            payer=payer,
            details={
                "txid": pix.get("txid"),
                "endToEndId": pix.get("endToEndId"),
                "valor": pix.get("valor"),
                "horario": pix.get("horario"),
                "payer_info": payer,
            },
            raw=payload,
        )

    def response_id(self, event: WebhookEvent) -> Optional[str]:
        return event.reference

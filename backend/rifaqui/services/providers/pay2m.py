from typing import Any, Dict, Optional

from .base import ProviderAdapter, WebhookEvent

TRANSACTION_EVENTS = {"transaction.status_changed", "transaction.completed"}


class Pay2mAdapter(ProviderAdapter):
    """Pay2m ``transaction.*`` deliveries. No signature is sent or checked."""

    name = "pay2m"
    label = "Pay2m transaction"
    response_id_field = "transaction_id"
    ignored_kind = "transaction"

    def parse(self, payload: Dict[str, Any]) -> Optional[WebhookEvent]:
        event_type = str(payload.get("event_type") or "")
        if event_type not in TRANSACTION_EVENTS:
            return None
        txn = self.section(payload, "transaction")
        customer = txn.get("customer") if isinstance(txn.get("customer"), dict) else {}
        return self.build_event(
            event_type=event_type,
            provider_status=txn.get("status"),
            transaction_id=txn.get("id"),
            reference=txn.get("reference"),
            amount=txn.get("amount"),
            currency=txn.get("currency"),
            payer=customer,
            details={
                "transaction_id": txn.get("id"),
                "status": txn.get("status"),
                "amount": txn.get("amount"),
                "payment_method": txn.get("payment_method"),
                "customer_email": customer.get("email"),
            },
            raw=payload,
        )

from decimal import Decimal
from typing import Any, Dict, Optional

from ...models import PaymentPurpose
from ...utils.errors import InvalidReference
from .base import ProviderAdapter, SettlementOutcome, WebhookEvent, to_decimal

_OUTCOME_BY_TYPE = {
    "payment_intent.succeeded": SettlementOutcome.SETTLED,
    "payment_intent.payment_failed": SettlementOutcome.RELEASED,
    "payment_intent.canceled": SettlementOutcome.RELEASED,
}


class StripeAdapter(ProviderAdapter):
    """Stripe ``payment_intent.*`` events.

    Intents carrying ``metadata.external_reference`` pay for tickets. Intents
    with only ``metadata.campaign_id`` are an organizer's publication fee.
    The ``Stripe-Signature`` header is not verified.
    """

    name = "stripe"
    label = "Stripe payment intent"
    response_id_field = "payment_intent_id"
    ignored_kind = "payment_intent"

    def parse(self, payload: Dict[str, Any]) -> Optional[WebhookEvent]:
        event_type = str(payload.get("type") or "")
        if not event_type.startswith("payment_intent."):
            return None
        intent = self.section(self.section(payload, "data"), "object")
        metadata = intent.get("metadata") if isinstance(intent.get("metadata"), dict) else {}
        outcome = _OUTCOME_BY_TYPE.get(event_type, SettlementOutcome.PENDING)
        cents = to_decimal(intent.get("amount"))
        amount = cents / Decimal(100) if cents is not None else None
        details = {
            "stripe_payment_intent_id": intent.get("id"),
            "status": intent.get("status"),
            "amount": str(amount) if amount is not None else None,
            "currency": intent.get("currency"),
            "event_id": payload.get("id"),
        }

        reference = metadata.get("external_reference")
        if reference:
            event = self.build_event(
                event_type=event_type,
                provider_status=intent.get("status"),
                outcome=outcome,
                transaction_id=intent.get("id"),
                reference=reference,
                currency=intent.get("currency"),
                payer={"email": intent.get("receipt_email")} if intent.get("receipt_email") else {},
                details=details,
                raw=payload,
            )
            event.amount = amount
            return event

        campaign_id = metadata.get("campaign_id")
        if not campaign_id:
            raise InvalidReference("No campaign_id in metadata")
        return WebhookEvent(
            provider=self.name,
            event_type=event_type,
            outcome=outcome,
            provider_status=str(intent.get("status") or ""),
            provider_transaction_id=str(intent.get("id")) if intent.get("id") else None,
            reference=None,
            campaign_id=str(campaign_id),
            quota_numbers=[],
            amount=amount,
            currency=(intent.get("currency") or "").upper() or None,
            purpose=PaymentPurpose.PUBLICATION_FEE.value,
            campaign_title=metadata.get("campaign_title"),
            details=details,
            raw=payload,
        )

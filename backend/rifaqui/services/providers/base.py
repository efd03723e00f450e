"""
Adapter interface and canonical event model for payment-provider webhooks.

Each provider module implements ``ProviderAdapter``: ``parse`` turns the raw
JSON body into a ``WebhookEvent`` (or ``None`` for events that are not about
payment status) and ``authenticate`` checks the delivery's integrity.
Settlement never looks at provider payloads directly.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...models import PaymentPurpose
from ...utils.errors import InvalidPayload
from .. import reference_codec

logger = logging.getLogger(__name__)


class SettlementOutcome(str, enum.Enum):
    SETTLED = "settled"
    RELEASED = "released"
    PENDING = "pending"


SETTLED_STATUSES = frozenset({"paid", "approved", "completed", "paid_out", "succeeded"})
RELEASED_STATUSES = frozenset(
    {"failed", "cancelled", "canceled", "rejected", "expired", "chargeback"}
)


def map_status(provider_status: Any) -> SettlementOutcome:
    """Map a provider status word onto the canonical outcome (case-insensitive)."""
    value = str(provider_status or "").strip().lower()
    if value in SETTLED_STATUSES:
        return SettlementOutcome.SETTLED
    if value in RELEASED_STATUSES:
        return SettlementOutcome.RELEASED
    return SettlementOutcome.PENDING


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning("Unparseable amount in webhook payload: %r", value)
        return None


@dataclass
class WebhookEvent:
    provider: str
    event_type: str
    outcome: SettlementOutcome
    provider_status: str
    provider_transaction_id: Optional[str]
    reference: Optional[str]
    campaign_id: str
    quota_numbers: List[int]
    amount: Optional[Decimal] = None
    currency: Optional[str] = None
    payer: Dict[str, Any] = field(default_factory=dict)
    purpose: str = PaymentPurpose.TICKETS.value
    campaign_title: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)


class ProviderAdapter:
    """Base class for provider webhook adapters.

    ``verifies_signature`` is False for providers whose deliveries are
    accepted without any integrity check.
    """

    name: str = ""
    verifies_signature: bool = False
    # Human label used in audit messages, e.g. "Pay2m transaction"
    label: str = ""
    # Key under which the provider's transaction id is echoed in responses
    response_id_field: str = "transaction_id"
    ignored_kind: str = "payment"

    def parse(self, payload: Dict[str, Any]) -> Optional[WebhookEvent]:
        raise NotImplementedError

    def authenticate(self, db: Session, event: WebhookEvent) -> None:
        """Raise ``AuthenticationError``/``NotFoundError`` to reject a delivery."""
        if not self.verifies_signature:
            logger.warning(
                "Accepting unverified %s webhook txn=%s campaign=%s",
                self.name,
                event.provider_transaction_id,
                event.campaign_id,
            )

    def ignored_message(self) -> str:
        return f"Webhook received but not processed (not a {self.ignored_kind} event)"

    # helpers shared by the concrete adapters

    @staticmethod
    def section(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
        value = payload.get(key)
        if not isinstance(value, dict):
            raise InvalidPayload(f"Missing '{key}' object in webhook payload")
        return value

    def build_event(
        self,
        *,
        event_type: str,
        provider_status: Any,
        transaction_id: Any,
        reference: Optional[str],
        raw: Dict[str, Any],
        outcome: Optional[SettlementOutcome] = None,
        amount: Any = None,
        currency: Optional[str] = None,
        payer: Optional[Dict[str, Any]] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> WebhookEvent:
        decoded = reference_codec.decode(reference)
        return WebhookEvent(
            provider=self.name,
            event_type=event_type,
            outcome=outcome or map_status(provider_status),
            provider_status=str(provider_status or ""),
            provider_transaction_id=str(transaction_id) if transaction_id else None,
            reference=reference,
            campaign_id=decoded.campaign_id,
            quota_numbers=decoded.quota_numbers,
            amount=to_decimal(amount),
            currency=(currency or "").upper() or None,
            payer=dict(payer or {}),
            details=dict(details or {}),
            raw=raw,
        )

    def response_id(self, event: WebhookEvent) -> Optional[str]:
        return event.provider_transaction_id

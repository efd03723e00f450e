"""Ticket settlement engine shared by every payment provider.

Ticket state only moves through conditional UPDATEs scoped by the current
status (``WHERE status = 'reservado'`` and so on). Whichever delivery finds
the rows in the expected state performs the transition; replays and late
duplicates match nothing and become no-ops. No locks are taken.

    available --reserve--> reserved --SETTLED--> purchased
                           reserved --RELEASED/expiry--> available
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..models import CampaignStatus, LogStatus, PaymentPurpose, PaymentStatus, TicketStatus
from ..utils.errors import TicketsUnavailableError, TransientStoreError, RaffleError
from ..utils.metrics import incr
from . import audit
from .providers import ADAPTERS, SettlementOutcome, WebhookEvent

logger = logging.getLogger(__name__)

# Fields cleared whenever a reservation is given back.
RELEASE_VALUES: Dict[str, Any] = {
    "status": TicketStatus.AVAILABLE.value,
    "user_id": None,
    "customer_name": None,
    "customer_email": None,
    "customer_phone": None,
    "reserved_at": None,
}


@dataclass
class SettlementResult:
    outcome: SettlementOutcome
    updated: int
    status: str
    message: str
    operation_type: str
    details: Dict[str, Any] = field(default_factory=dict)


def guarded_ticket_update(
    db: Session,
    campaign_id: str,
    quota_numbers: Iterable[int],
    expected: TicketStatus,
    values: Dict[str, Any],
) -> int:
    """UPDATE tickets of ``campaign_id`` still in ``expected`` state; return rows changed."""
    numbers = sorted({int(q) for q in quota_numbers})
    if not numbers:
        return 0
    stmt = (
        update(models.Ticket)
        .where(
            models.Ticket.campaign_id == campaign_id,
            models.Ticket.quota_number.in_(numbers),
            models.Ticket.status == expected.value,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).rowcount or 0


def reserve(
    db: Session,
    campaign_id: str,
    quota_numbers: Iterable[int],
    *,
    user_id: Optional[str] = None,
    customer: Optional[Dict[str, Optional[str]]] = None,
    now: Optional[datetime] = None,
) -> int:
    """Move available tickets to reserved, all or nothing.

    Does not commit. When any requested ticket is no longer available the
    session is rolled back and ``TicketsUnavailableError`` is raised.
    """
    numbers = sorted({int(q) for q in quota_numbers})
    if not numbers:
        raise TicketsUnavailableError("No quota numbers requested", campaign_id=campaign_id)
    customer = customer or {}
    reserved = guarded_ticket_update(
        db,
        campaign_id,
        numbers,
        TicketStatus.AVAILABLE,
        {
            "status": TicketStatus.RESERVED.value,
            "user_id": user_id,
            "customer_name": customer.get("name"),
            "customer_email": customer.get("email"),
            "customer_phone": customer.get("phone"),
            "reserved_at": now or datetime.utcnow(),
        },
    )
    if reserved != len(numbers):
        db.rollback()
        raise TicketsUnavailableError(
            f"Only {reserved} of {len(numbers)} tickets are available",
            campaign_id=campaign_id,
            requested=len(numbers),
        )
    logger.info("Reserved %s tickets campaign=%s user=%s", reserved, campaign_id, user_id)
    return reserved


def _payment_status(event: WebhookEvent) -> str:
    if event.outcome is SettlementOutcome.SETTLED:
        return PaymentStatus.SUCCEEDED.value
    if event.outcome is SettlementOutcome.RELEASED:
        if event.provider_status.lower() in ("cancelled", "canceled"):
            return PaymentStatus.CANCELED.value
        return PaymentStatus.FAILED.value
    return PaymentStatus.PENDING.value


def _find_payment(db: Session, event: WebhookEvent) -> Optional[models.Payment]:
    query = db.query(models.Payment).filter(models.Payment.provider == event.provider)
    if event.provider_transaction_id:
        payment = query.filter(
            models.Payment.provider_transaction_id == event.provider_transaction_id
        ).first()
        if payment is not None:
            return payment
    if event.reference:
        return (
            query.filter(models.Payment.external_reference == event.reference)
            .order_by(models.Payment.id.desc())
            .first()
        )
    if event.purpose == PaymentPurpose.PUBLICATION_FEE.value and event.campaign_id:
        # fee checkouts know the session id, not the payment intent id
        return (
            query.filter(
                models.Payment.campaign_id == event.campaign_id,
                models.Payment.purpose == PaymentPurpose.PUBLICATION_FEE.value,
                models.Payment.status == PaymentStatus.PENDING.value,
            )
            .order_by(models.Payment.id.desc())
            .first()
        )
    return None


def _record_payment(
    db: Session, event: WebhookEvent, campaign: Optional[models.Campaign]
) -> models.Payment:
    payment = _find_payment(db, event)
    if payment is None:
        payment = models.Payment(
            provider=event.provider,
            purpose=event.purpose,
            external_reference=event.reference,
            campaign_id=campaign.id if campaign is not None else None,
            currency=event.currency or "BRL",
        )
        db.add(payment)
    new_status = _payment_status(event)
    # A late "pending" notification must not undo a confirmed payment.
    if not (
        payment.status == PaymentStatus.SUCCEEDED.value
        and new_status == PaymentStatus.PENDING.value
    ):
        payment.status = new_status
    payment.provider_status = event.provider_status or payment.provider_status
    if event.provider_transaction_id:
        payment.provider_transaction_id = event.provider_transaction_id
    if event.amount is not None:
        payment.amount = event.amount
    if event.currency:
        payment.currency = event.currency
    if event.payer:
        payment.payer = audit.jsonable(event.payer)
    return payment


def _describe(event: WebhookEvent, updated: int) -> tuple[str, str, str]:
    adapter = ADAPTERS.get(event.provider)
    label = adapter.label if adapter is not None else event.provider
    ref = f"{label} {event.provider_transaction_id or event.reference}"
    requested = len(set(event.quota_numbers))
    if event.outcome is SettlementOutcome.SETTLED:
        if updated == 0:
            return (
                "payment_processed",
                LogStatus.WARNING.value,
                f"{ref} processed; no reserved tickets matched",
            )
        if updated < requested:
            return (
                "payment_processed",
                LogStatus.WARNING.value,
                f"{ref} processed; {updated} of {requested} tickets confirmed",
            )
        return "payment_processed", LogStatus.SUCCESS.value, f"{ref} processed successfully"
    if event.outcome is SettlementOutcome.RELEASED:
        return "payment_failed", LogStatus.WARNING.value, f"{ref} failed, {updated} tickets released"
    return "payment_pending", LogStatus.SUCCESS.value, f"{ref} is pending"


def apply(db: Session, event: WebhookEvent, now: Optional[datetime] = None) -> SettlementResult:
    """Apply one authenticated provider event and commit.

    The ticket transition, the payment record and the audit entry share a
    transaction. A store failure rolls everything back, writes an error
    entry in a separate transaction and raises ``TransientStoreError``.
    """
    now = now or datetime.utcnow()
    try:
        if event.purpose == PaymentPurpose.PUBLICATION_FEE.value:
            result = _apply_publication_fee(db, event, now)
        else:
            result = _apply_ticket_event(db, event, now)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(
            "Settlement failed provider=%s campaign=%s txn=%s",
            event.provider,
            event.campaign_id,
            event.provider_transaction_id,
        )
        incr("settlement.store_error", tags={"provider": event.provider})
        audit.record_isolated(
            "payment_error",
            LogStatus.ERROR.value,
            f"Failed to apply {event.provider} event {event.provider_transaction_id}: {exc.__class__.__name__}",
            bind=db.get_bind(),
            campaign_id=event.campaign_id,
            details={**event.details, "quota_numbers": event.quota_numbers, "error": str(exc)},
        )
        raise TransientStoreError(
            "Failed to update tickets", campaign_id=event.campaign_id
        ) from exc
    incr(
        "settlement.applied",
        tags={"provider": event.provider, "outcome": result.outcome.value},
    )
    logger.info(
        "Settlement %s provider=%s campaign=%s updated=%s status=%s",
        result.outcome.value,
        event.provider,
        event.campaign_id,
        result.updated,
        result.status,
    )
    return result


def _apply_ticket_event(db: Session, event: WebhookEvent, now: datetime) -> SettlementResult:
    campaign = db.get(models.Campaign, event.campaign_id)
    updated = 0
    if event.outcome is SettlementOutcome.SETTLED:
        updated = guarded_ticket_update(
            db,
            event.campaign_id,
            event.quota_numbers,
            TicketStatus.RESERVED,
            {"status": TicketStatus.PURCHASED.value, "bought_at": now},
        )
    elif event.outcome is SettlementOutcome.RELEASED:
        updated = guarded_ticket_update(
            db, event.campaign_id, event.quota_numbers, TicketStatus.RESERVED, RELEASE_VALUES
        )
    _record_payment(db, event, campaign)

    operation_type, status, message = _describe(event, updated)
    if campaign is None:
        status = LogStatus.WARNING.value
        message = f"{message} (campaign not found)"
    details: Dict[str, Any] = {
        **event.details,
        "provider": event.provider,
        "reference": event.reference,
        "quota_numbers": event.quota_numbers,
        "tickets_updated": updated,
    }
    audit.record_operation(
        db,
        operation_type,
        status,
        message,
        campaign_id=event.campaign_id,
        campaign_title=campaign.title if campaign is not None else None,
        details=details,
    )
    return SettlementResult(event.outcome, updated, status, message, operation_type, details)


def activate_paid_campaign(db: Session, campaign_id: str, now: datetime) -> int:
    """Publish a draft whose fee was paid; returns 0 when it is not an unpaid draft."""
    stmt = (
        update(models.Campaign)
        .where(
            models.Campaign.id == campaign_id,
            models.Campaign.status == CampaignStatus.DRAFT.value,
            models.Campaign.is_paid.is_(False),
        )
        .values(
            is_paid=True,
            status=CampaignStatus.ACTIVE.value,
            expires_at=None,
            start_date=now,
        )
        .execution_options(synchronize_session=False)
    )
    activated = db.execute(stmt).rowcount or 0
    if activated:
        logger.info("Campaign %s activated after publication fee", campaign_id)
    return activated


def _apply_publication_fee(db: Session, event: WebhookEvent, now: datetime) -> SettlementResult:
    campaign = db.get(models.Campaign, event.campaign_id)
    title = event.campaign_title or (campaign.title if campaign is not None else None)
    _record_payment(db, event, campaign)
    details = {**event.details, "provider": event.provider}
    updated = 0
    if event.outcome is SettlementOutcome.SETTLED:
        if campaign is None:
            operation_type, status = "publication_fee_paid", LogStatus.WARNING.value
            message = f"Publication fee paid for unknown campaign {event.campaign_id}"
        else:
            updated = activate_paid_campaign(db, campaign.id, now)
            operation_type = "publication_fee_paid"
            if updated:
                status = LogStatus.SUCCESS.value
                message = f"Publication fee paid via {event.provider}"
            else:
                status = LogStatus.WARNING.value
                message = (
                    f"Publication fee paid via {event.provider}; campaign already "
                    f"{campaign.status}, left unchanged"
                )
    elif event.outcome is SettlementOutcome.RELEASED:
        operation_type, status = "publication_fee_failed", LogStatus.WARNING.value
        message = f"Publication fee payment failed: {event.event_type}"
    else:
        operation_type, status = "publication_fee_pending", LogStatus.SUCCESS.value
        message = f"Publication fee payment is pending: {event.event_type}"
    audit.record_operation(
        db,
        operation_type,
        status,
        message,
        campaign_id=event.campaign_id,
        campaign_title=title,
        details=details,
    )
    return SettlementResult(event.outcome, updated, status, message, operation_type, details)


def record_rejection(db: Session, event: WebhookEvent, exc: RaffleError) -> None:
    """Audit a delivery that failed authentication. No ticket or payment is touched."""
    audit.record_isolated(
        "payment_rejected",
        LogStatus.ERROR.value,
        f"{event.provider} webhook rejected: {exc.message}",
        bind=db.get_bind(),
        campaign_id=event.campaign_id,
        details={
            "provider": event.provider,
            "transaction_id": event.provider_transaction_id,
            "reference": event.reference,
            "reason": exc.error,
        },
    )


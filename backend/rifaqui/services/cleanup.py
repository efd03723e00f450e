from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..models import CampaignStatus, LogStatus, TicketStatus
from ..utils.errors import CampaignInUseError, NotFoundError, TransientStoreError
from ..utils.metrics import incr
from . import audit
from .settlement import RELEASE_VALUES

logger = logging.getLogger(__name__)


@dataclass
class ExpireDraftsResult:
    deleted_count: int = 0
    error_count: int = 0
    deleted_campaigns: List[Dict[str, Any]] = field(default_factory=list)
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deleted_count": self.deleted_count,
            "error_count": self.error_count,
            "deleted_campaigns": self.deleted_campaigns,
            "details": self.details,
        }


@dataclass
class CleanupRunResult:
    drafts: ExpireDraftsResult
    reservations_released: int = 0
    logs_pruned: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def http_status(self) -> int:
        # 207 Multi-Status when some rows failed but the run completed
        return 207 if self.drafts.error_count > 0 else 200

    @property
    def message(self) -> str:
        msg = f"Cleanup completed: {self.drafts.deleted_count} campaigns deleted"
        if self.drafts.error_count:
            msg += f" with {self.drafts.error_count} errors"
        return msg

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.drafts.to_dict(),
            "reservations_released": self.reservations_released,
            "logs_pruned": self.logs_pruned,
            "warnings": self.warnings,
        }


def _purge_campaign_rows(db: Session, campaign_id: str) -> int:
    """Delete a campaign's tickets and detach its payments. Returns tickets deleted."""
    removed = db.execute(
        delete(models.Ticket)
        .where(models.Ticket.campaign_id == campaign_id)
        .execution_options(synchronize_session=False)
    ).rowcount or 0
    db.execute(
        update(models.Payment)
        .where(models.Payment.campaign_id == campaign_id)
        .values(campaign_id=None)
        .execution_options(synchronize_session=False)
    )
    return removed


def expire_draft_campaigns(db: Session, now: Optional[datetime] = None) -> ExpireDraftsResult:
    """Delete draft campaigns whose ``expires_at`` is before ``now``.

    Each campaign is deleted in its own transaction; a failure is counted in
    ``error_count`` and the rest of the batch continues. The delete is
    re-guarded on ``status = draft`` so a campaign activated in the meantime
    survives. Payments are kept with ``campaign_id`` cleared.
    """
    now = now or datetime.utcnow()
    expired = (
        db.query(models.Campaign.id, models.Campaign.title)
        .filter(
            models.Campaign.status == CampaignStatus.DRAFT.value,
            models.Campaign.expires_at.isnot(None),
            models.Campaign.expires_at < now,
        )
        .order_by(models.Campaign.expires_at)
        .all()
    )
    result = ExpireDraftsResult()
    for campaign_id, title in expired:
        try:
            tickets = _purge_campaign_rows(db, campaign_id)
            gone = db.execute(
                delete(models.Campaign)
                .where(
                    models.Campaign.id == campaign_id,
                    models.Campaign.status == CampaignStatus.DRAFT.value,
                    models.Campaign.expires_at < now,
                )
                .execution_options(synchronize_session=False)
            ).rowcount
            if not gone:
                # activated since the scan; keep its tickets too
                db.rollback()
                continue
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            result.error_count += 1
            result.details.append({"id": campaign_id, "title": title, "error": str(exc)})
            logger.error("Failed to delete expired draft %s: %s", campaign_id, exc)
            continue
        result.deleted_count += 1
        result.deleted_campaigns.append({"id": campaign_id, "title": title})
        result.details.append({"id": campaign_id, "title": title, "tickets_deleted": tickets})

    status = LogStatus.SUCCESS.value if result.error_count == 0 else LogStatus.WARNING.value
    audit.record_isolated(
        "cleanup_complete",
        status,
        f"Deleted {result.deleted_count} expired draft campaigns ({result.error_count} errors)",
        bind=db.get_bind(),
        details=result.to_dict(),
    )
    incr("cleanup.drafts_deleted", result.deleted_count)
    return result


def prune_old_logs(
    db: Session,
    retention_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """Delete audit entries older than ``retention_days``; return rows removed."""
    days = settings.LOG_RETENTION_DAYS if retention_days is None else retention_days
    threshold = (now or datetime.utcnow()) - timedelta(days=days)
    removed = db.execute(
        delete(models.CleanupLog)
        .where(models.CleanupLog.created_at < threshold)
        .execution_options(synchronize_session=False)
    ).rowcount or 0
    db.commit()
    logger.info("Pruned %s audit entries older than %s", removed, threshold.isoformat())
    return removed


def release_expired_reservations(
    db: Session,
    now: Optional[datetime] = None,
    ttl_minutes: Optional[int] = None,
) -> int:
    """Give back reservations older than the TTL. 0 disables."""
    ttl = settings.RESERVATION_TTL_MINUTES if ttl_minutes is None else ttl_minutes
    if ttl <= 0:
        return 0
    cutoff = (now or datetime.utcnow()) - timedelta(minutes=ttl)
    released = db.execute(
        update(models.Ticket)
        .where(
            models.Ticket.status == TicketStatus.RESERVED.value,
            models.Ticket.reserved_at.isnot(None),
            models.Ticket.reserved_at < cutoff,
        )
        .values(**RELEASE_VALUES)
        .execution_options(synchronize_session=False)
    ).rowcount or 0
    if released:
        audit.record_operation(
            db,
            "reservations_expired",
            LogStatus.SUCCESS.value,
            f"Released {released} reservations older than {ttl} minutes",
            details={"released": released, "cutoff": cutoff},
        )
    db.commit()
    return released


def run_cleanup(db: Session, now: Optional[datetime] = None) -> CleanupRunResult:
    """Scheduled cleanup: expired drafts, then stale reservations, then old logs.

    A store failure while expiring drafts aborts the run with
    ``TransientStoreError``. Failures in the later steps are recorded as
    warnings on the result.
    """
    now = now or datetime.utcnow()
    try:
        drafts = expire_draft_campaigns(db, now)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Cleanup function failed")
        audit.record_isolated(
            "cleanup_function_error",
            LogStatus.ERROR.value,
            f"Cleanup function failed: {exc.__class__.__name__}",
            bind=db.get_bind(),
            details={"error": str(exc)},
        )
        raise TransientStoreError("Cleanup function failed") from exc

    result = CleanupRunResult(drafts=drafts)
    try:
        result.reservations_released = release_expired_reservations(db, now)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Reservation release failed: %s", exc)
        result.warnings.append(f"reservation release failed: {exc.__class__.__name__}")
    try:
        result.logs_pruned = prune_old_logs(db, now=now)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Log cleanup failed: %s", exc)
        result.warnings.append(f"log cleanup failed: {exc.__class__.__name__}")
    logger.info("%s", result.message)
    return result


def delete_campaign(db: Session, campaign_id: str) -> Dict[str, Any]:
    """Administrative deletion; refused while any ticket is reserved or purchased."""
    campaign = db.get(models.Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign not found", campaign_id=campaign_id)
    active = (
        db.query(models.Ticket.id)
        .filter(
            models.Ticket.campaign_id == campaign_id,
            models.Ticket.status.in_(
                [TicketStatus.RESERVED.value, TicketStatus.PURCHASED.value]
            ),
        )
        .count()
    )
    if active:
        raise CampaignInUseError(
            f"Campaign has {active} reserved or purchased tickets",
            campaign_id=campaign_id,
        )
    title = campaign.title
    try:
        tickets = _purge_campaign_rows(db, campaign_id)
        db.delete(campaign)
        audit.record_operation(
            db,
            "campaign_deleted",
            LogStatus.SUCCESS.value,
            f"Campaign '{title}' deleted by administrator",
            campaign_id=campaign_id,
            campaign_title=title,
            details={"tickets_deleted": tickets},
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransientStoreError("Failed to delete campaign", campaign_id=campaign_id) from exc
    return {"id": campaign_id, "title": title, "tickets_deleted": tickets}

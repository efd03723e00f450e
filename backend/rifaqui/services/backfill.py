"""Ticket inventory repair.

Every campaign must own exactly one ticket per quota number in
``1..total_tickets``. Campaign creation can leave gaps (timeouts while
inserting hundreds of thousands of rows), so these jobs find the missing
numbers and insert them in independently committed batches. A failed batch
is rolled back and reported; later batches still run, and a re-run only
inserts what is still missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..models import LogStatus, TicketStatus
from ..utils.errors import NotFoundError, PartialBatchError
from ..utils.metrics import Timer, incr
from . import audit

logger = logging.getLogger(__name__)


@dataclass
class BackfillStatistics:
    total_campaigns: int
    campaigns_needing_backfill: int
    total_missing_tickets: int
    largest_missing_count: int


@dataclass
class RepairCandidate:
    campaign_id: str
    title: str
    missing_count: int
    total_tickets: int
    status: str


@dataclass
class RepairResult:
    campaign_id: str
    campaign_title: str
    total_needed: int
    existing: int
    created: int = 0
    failed_batches: List[PartialBatchError] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return len(self.failed_batches)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "campaign_title": self.campaign_title,
            "total_tickets_needed": self.total_needed,
            "existing_tickets": self.existing,
            "tickets_created": self.created,
            "errors": self.errors,
            "failed_batches": [b.to_dict() for b in self.failed_batches],
        }


@dataclass
class RepairAllResult:
    results: List[RepairResult] = field(default_factory=list)

    @property
    def campaigns_processed(self) -> int:
        return len(self.results)

    @property
    def total_created(self) -> int:
        return sum(r.created for r in self.results)

    @property
    def total_errors(self) -> int:
        return sum(r.errors for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "campaigns_processed": self.campaigns_processed,
            "total_created": self.total_created,
            "total_errors": self.total_errors,
            "results": [r.to_dict() for r in self.results],
        }


def _ticket_counts():
    return (
        select(models.Ticket.campaign_id, func.count(models.Ticket.id).label("existing"))
        .group_by(models.Ticket.campaign_id)
        .subquery()
    )


def campaigns_needing_repair(db: Session) -> List[RepairCandidate]:
    """Campaigns with fewer ticket rows than ``total_tickets``, largest gap first."""
    counts = _ticket_counts()
    existing = func.coalesce(counts.c.existing, 0)
    missing = (models.Campaign.total_tickets - existing).label("missing")
    rows = (
        db.query(
            models.Campaign.id,
            models.Campaign.title,
            models.Campaign.total_tickets,
            models.Campaign.status,
            missing,
        )
        .outerjoin(counts, counts.c.campaign_id == models.Campaign.id)
        .filter(models.Campaign.total_tickets > existing)
        .order_by(missing.desc(), models.Campaign.id)
        .all()
    )
    return [
        RepairCandidate(
            campaign_id=row.id,
            title=row.title,
            missing_count=int(row.missing),
            total_tickets=int(row.total_tickets),
            status=row.status,
        )
        for row in rows
    ]


def statistics(db: Session) -> BackfillStatistics:
    total_campaigns = db.query(func.count(models.Campaign.id)).scalar() or 0
    candidates = campaigns_needing_repair(db)
    return BackfillStatistics(
        total_campaigns=int(total_campaigns),
        campaigns_needing_backfill=len(candidates),
        total_missing_tickets=sum(c.missing_count for c in candidates),
        largest_missing_count=max((c.missing_count for c in candidates), default=0),
    )


def _missing_numbers(db: Session, campaign_id: str, total: int) -> Iterator[int]:
    present = {
        q
        for (q,) in db.query(models.Ticket.quota_number).filter(
            models.Ticket.campaign_id == campaign_id
        )
    }
    return (n for n in range(1, total + 1) if n not in present)


def _batches(numbers: Iterator[int], size: int) -> Iterator[List[int]]:
    batch: List[int] = []
    for n in numbers:
        batch.append(n)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


def repair_campaign(
    db: Session, campaign_id: str, batch_size: Optional[int] = None
) -> RepairResult:
    """Create every missing ticket of ``campaign_id`` as available.

    Raises ``NotFoundError`` for an unknown campaign. Batch failures are
    collected in ``RepairResult.failed_batches``.
    """
    size = max(1, int(batch_size or settings.BACKFILL_BATCH_SIZE))
    campaign = db.get(models.Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign not found", campaign_id=campaign_id)
    title = campaign.title
    total = int(campaign.total_tickets or 0)
    existing = (
        db.query(func.count(models.Ticket.id))
        .filter(models.Ticket.campaign_id == campaign_id)
        .scalar()
        or 0
    )
    result = RepairResult(campaign_id, title, total, int(existing))
    if existing >= total:
        return result

    for batch in _batches(_missing_numbers(db, campaign_id, total), size):
        rows = [
            {
                "campaign_id": campaign_id,
                "quota_number": n,
                "status": TicketStatus.AVAILABLE.value,
            }
            for n in batch
        ]
        try:
            with Timer("backfill.batch.ms", tags={"size": len(rows)}):
                db.execute(insert(models.Ticket), rows)
                db.commit()
            result.created += len(rows)
        except SQLAlchemyError as exc:
            db.rollback()
            failure = PartialBatchError(
                str(exc.__class__.__name__), start=batch[0], end=batch[-1], size=len(batch)
            )
            result.failed_batches.append(failure)
            incr("backfill.batch_failed")
            logger.error(
                "Backfill batch %s-%s failed for campaign %s: %s",
                batch[0],
                batch[-1],
                campaign_id,
                exc,
            )

    status = LogStatus.SUCCESS.value if not result.failed_batches else LogStatus.WARNING.value
    audit.record_isolated(
        "backfill_campaign",
        status,
        f"Created {result.created} tickets ({result.errors} failed batches)",
        bind=db.get_bind(),
        campaign_id=campaign_id,
        campaign_title=title,
        details=result.to_dict(),
    )
    logger.info(
        "Backfill campaign=%s needed=%s existing=%s created=%s errors=%s",
        campaign_id,
        total,
        existing,
        result.created,
        result.errors,
    )
    return result


def repair_all(db: Session, batch_size: Optional[int] = None) -> RepairAllResult:
    """Repair every campaign reported by ``campaigns_needing_repair``."""
    outcome = RepairAllResult()
    for candidate in campaigns_needing_repair(db):
        try:
            outcome.results.append(repair_campaign(db, candidate.campaign_id, batch_size))
        except NotFoundError:
            # deleted between listing and repair
            logger.warning("Campaign %s vanished before backfill", candidate.campaign_id)
    return outcome

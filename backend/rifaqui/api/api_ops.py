from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas import (
    BackfillRequest,
    BackfillStatisticsRead,
    CleanupLogRead,
    CleanupStatusRead,
    RepairCandidateRead,
)
from ..services import audit, backfill, cleanup
from ..services.ops_scheduler import run_maintenance
from ..utils.errors import CampaignInUseError, NotFoundError, TransientStoreError, error_response
from .dependencies import require_admin_key

router = APIRouter(tags=["ops"], dependencies=[Depends(require_admin_key)])


# ─── BACKFILL ────────────────────────────────────────────────────────────────


@router.get("/ops/backfill/statistics", response_model=BackfillStatisticsRead)
def backfill_statistics(db: Session = Depends(get_db)):
    return asdict(backfill.statistics(db))


@router.get("/ops/backfill/campaigns", response_model=List[RepairCandidateRead])
def backfill_candidates(db: Session = Depends(get_db)):
    """Campaigns whose ticket rows fall short of ``total_tickets``, largest gap first."""
    return [asdict(c) for c in backfill.campaigns_needing_repair(db)]


@router.post("/ops/backfill")
def run_backfill(payload: Optional[BackfillRequest] = None, db: Session = Depends(get_db)):
    """Repair one campaign, or every campaign that needs it when no id is given."""
    payload = payload or BackfillRequest()
    if payload.campaign_id:
        try:
            result = backfill.repair_campaign(db, payload.campaign_id, payload.batch_size)
        except NotFoundError as exc:
            return error_response(exc)
        return {"success": result.errors == 0, "data": result.to_dict()}
    outcome = backfill.repair_all(db, payload.batch_size)
    return {"success": outcome.total_errors == 0, "data": outcome.to_dict()}


# ─── CLEANUP ─────────────────────────────────────────────────────────────────


@router.post("/ops/cleanup")
def run_cleanup(db: Session = Depends(get_db)):
    """Run the scheduled cleanup now.

    Answers 207 when some expired drafts could not be deleted.
    """
    try:
        result = cleanup.run_cleanup(db)
    except TransientStoreError as exc:
        return error_response(exc)
    return ORJSONResponse(
        status_code=result.http_status,
        content={"success": True, "message": result.message, "data": result.to_dict()},
    )


@router.get("/ops/cleanup/logs", response_model=CleanupStatusRead)
def cleanup_logs(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    logs = audit.recent_logs(db, limit)
    return {
        "logs": [CleanupLogRead.model_validate(row) for row in logs],
        "last_cleanup": audit.last_successful_cleanup(db),
    }


@router.delete("/ops/campaigns/{campaign_id}")
def remove_campaign(campaign_id: str, db: Session = Depends(get_db)):
    try:
        removed = cleanup.delete_campaign(db, campaign_id)
    except (NotFoundError, CampaignInUseError, TransientStoreError) as exc:
        return error_response(exc)
    return {"success": True, "data": removed}


@router.post("/ops/scheduler/tick", status_code=status.HTTP_202_ACCEPTED)
def ops_tick(db: Session = Depends(get_db)):
    """Run maintenance tasks once and return a summary.

    Useful for external cron when the background loop is disabled.
    """
    try:
        summary = run_maintenance(db)
    except TransientStoreError as exc:
        return error_response(exc)
    return {"status": "ok", **summary}

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ..database import SessionLocal
from . import cleanup

logger = logging.getLogger(__name__)


def handle_cleanup(db: Session, now: Optional[datetime] = None) -> dict:
    """Expire drafts, release stale reservations and prune old audit entries."""
    result = cleanup.run_cleanup(db, now)
    return {
        "drafts_deleted": result.drafts.deleted_count,
        "draft_errors": result.drafts.error_count,
        "reservations_released": result.reservations_released,
        "logs_pruned": result.logs_pruned,
        "warnings": result.warnings,
    }


def run_maintenance(db: Optional[Session] = None) -> dict:
    """Run all operational maintenance tasks once and return a summary.

    When no session is given a short-lived one is opened so the background
    loop does not hold a connection between ticks.
    """
    if db is not None:
        return handle_cleanup(db)
    with SessionLocal() as session:
        return handle_cleanup(session)

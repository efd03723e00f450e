from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..database import SessionLocal

logger = logging.getLogger(__name__)


def jsonable(value: Any) -> Any:
    """Coerce Decimals, datetimes and enums so the JSON column accepts them."""
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [jsonable(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def record_operation(
    db: Session,
    operation_type: str,
    status: str,
    message: str,
    *,
    campaign_id: Optional[str] = None,
    campaign_title: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> models.CleanupLog:
    """Stage one audit entry on ``db``. The caller owns the commit."""
    entry = models.CleanupLog(
        operation_type=operation_type,
        campaign_id=campaign_id,
        campaign_title=campaign_title,
        status=status,
        message=message,
        details=jsonable(details or {}),
        created_at=datetime.utcnow(),
    )
    db.add(entry)
    return entry


def record_isolated(
    operation_type: str,
    status: str,
    message: str,
    *,
    bind=None,
    **kwargs: Any,
) -> bool:
    """Write an audit entry in its own transaction.

    Used after the caller's transaction failed. Returns False when the entry
    could not be written either.
    """
    db = Session(bind=bind) if bind is not None else SessionLocal()
    try:
        record_operation(db, operation_type, status, message, **kwargs)
        db.commit()
        return True
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Could not write %s audit entry: %s", operation_type, exc)
        return False
    finally:
        db.close()


def recent_logs(db: Session, limit: int = 50) -> List[models.CleanupLog]:
    return (
        db.query(models.CleanupLog)
        .order_by(models.CleanupLog.created_at.desc(), models.CleanupLog.id.desc())
        .limit(limit)
        .all()
    )


def last_successful_cleanup(db: Session) -> Optional[models.CleanupLog]:
    return (
        db.query(models.CleanupLog)
        .filter(
            models.CleanupLog.operation_type == "cleanup_complete",
            models.CleanupLog.status == models.LogStatus.SUCCESS.value,
        )
        .order_by(models.CleanupLog.created_at.desc(), models.CleanupLog.id.desc())
        .first()
    )

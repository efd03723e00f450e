from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class BackfillRequest(BaseModel):
    campaign_id: Optional[str] = None
    batch_size: Optional[int] = Field(default=None, ge=1, le=100_000)


class BackfillStatisticsRead(BaseModel):
    total_campaigns: int
    campaigns_needing_backfill: int
    total_missing_tickets: int
    largest_missing_count: int

    model_config = {"from_attributes": True}


class RepairCandidateRead(BaseModel):
    campaign_id: str
    title: str
    missing_count: int
    total_tickets: int
    status: str

    model_config = {"from_attributes": True}


class CleanupLogRead(BaseModel):
    id: int
    operation_type: str
    campaign_id: Optional[str] = None
    campaign_title: Optional[str] = None
    status: str
    message: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class CleanupStatusRead(BaseModel):
    """Feed for the cleanup status panel: newest entries plus last good run."""

    logs: List[CleanupLogRead]
    last_cleanup: Optional[CleanupLogRead] = None

import enum
import uuid

from sqlalchemy import (
    Column,
    Integer,
    ForeignKey,
    Boolean,
    DateTime,
    String,
    Numeric,
    JSON,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class CampaignStatus(str, enum.Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


def _new_campaign_id() -> str:
    # Correlation references split on "_", so identifiers must never contain one.
    return str(uuid.uuid4())


class Campaign(BaseModel):
    __tablename__ = "campaigns"

    id = Column(String, primary_key=True, index=True, default=_new_campaign_id)
    user_id = Column(String, ForeignKey("profiles.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    total_tickets = Column(Integer, nullable=False)
    ticket_price = Column(Numeric(10, 2), nullable=True)
    status = Column(String, nullable=False, default=CampaignStatus.DRAFT.value, index=True)
    expires_at = Column(DateTime, nullable=True)
    start_date = Column(DateTime, nullable=True)
    is_paid = Column(Boolean, nullable=False, default=False)
    # Per-campaign provider overrides (webhook URLs, credentials); same shape
    # as OrganizerProfile.payment_integrations_config.
    payment_integrations = Column(JSON, nullable=True)

    organizer = relationship("OrganizerProfile", back_populates="campaigns")

    def provider_config(self, provider: str) -> dict:
        config = self.payment_integrations or {}
        value = config.get(provider) or {}
        return value if isinstance(value, dict) else {}

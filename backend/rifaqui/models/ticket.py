import enum

from sqlalchemy import (
    Column,
    Integer,
    ForeignKey,
    DateTime,
    String,
    Index,
    UniqueConstraint,
)

from .base import BaseModel


class TicketStatus(str, enum.Enum):
    """Stored ticket states; values match the production database vocabulary."""

    AVAILABLE = "disponível"
    RESERVED = "reservado"
    PURCHASED = "comprado"


class Ticket(BaseModel):
    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("campaign_id", "quota_number", name="uq_tickets_campaign_quota"),
        Index("ix_tickets_campaign_status", "campaign_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(
        String,
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        nullable=False,
    )
    quota_number = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=TicketStatus.AVAILABLE.value)
    user_id = Column(String, nullable=True, index=True)
    customer_name = Column(String, nullable=True)
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)
    reserved_at = Column(DateTime, nullable=True)
    bought_at = Column(DateTime, nullable=True)

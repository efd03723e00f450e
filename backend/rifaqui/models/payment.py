import enum

from sqlalchemy import (
    Column,
    Integer,
    ForeignKey,
    String,
    Numeric,
    JSON,
    Index,
)
from sqlalchemy.orm import relationship

from .base import BaseModel


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"


class PaymentPurpose(str, enum.Enum):
    TICKETS = "tickets"
    PUBLICATION_FEE = "publication_fee"


class Payment(BaseModel):
    """One row per checkout attempt. Rows are never deleted."""

    __tablename__ = "payments"
    __table_args__ = (
        Index("ix_payments_provider_txn", "provider", "provider_transaction_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(
        String,
        ForeignKey("campaigns.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    user_id = Column(String, nullable=True)
    provider = Column(String, nullable=False)
    purpose = Column(String, nullable=False, default=PaymentPurpose.TICKETS.value)
    external_reference = Column(String, nullable=True, index=True)
    provider_transaction_id = Column(String, nullable=True)
    amount = Column(Numeric(12, 2), nullable=True)
    currency = Column(String, nullable=False, default="BRL")
    status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    provider_status = Column(String, nullable=True)
    qr_code = Column(String, nullable=True)
    qr_code_base64 = Column(String, nullable=True)
    payment_url = Column(String, nullable=True)
    payer = Column(JSON, nullable=True)

    campaign = relationship("Campaign")

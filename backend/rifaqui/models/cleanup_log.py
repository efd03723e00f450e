import enum
from datetime import datetime

from sqlalchemy import Column, Integer, String, DateTime, JSON, Text

from ..database import Base


class LogStatus(str, enum.Enum):
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class CleanupLog(Base):
    """Append-only audit entry for settlement, repair and cleanup operations.

    ``campaign_id`` is kept as plain text (no foreign key) so entries outlive
    the campaigns they describe.
    """

    __tablename__ = "cleanup_logs"

    id = Column(Integer, primary_key=True, index=True)
    operation_type = Column(String, nullable=False, index=True)
    campaign_id = Column(String, nullable=True, index=True)
    campaign_title = Column(String, nullable=True)
    status = Column(String, nullable=False)
    message = Column(Text, nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

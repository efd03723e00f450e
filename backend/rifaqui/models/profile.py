from sqlalchemy import Column, String, JSON
from sqlalchemy.orm import relationship

from .base import BaseModel


class OrganizerProfile(BaseModel):
    """Organizer account data relevant to payments.

    ``payment_integrations_config`` holds per-provider credentials keyed by
    provider name, e.g. ``{"suitpay": {"client_id": ..., "client_secret": ...}}``.
    """

    __tablename__ = "profiles"

    id = Column(String, primary_key=True, index=True)
    display_name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    payment_integrations_config = Column(JSON, nullable=True)

    campaigns = relationship("Campaign", back_populates="organizer")

    def provider_config(self, provider: str) -> dict:
        config = self.payment_integrations_config or {}
        value = config.get(provider) or {}
        return value if isinstance(value, dict) else {}

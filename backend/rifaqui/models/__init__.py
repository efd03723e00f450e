from .profile import OrganizerProfile
from .campaign import Campaign, CampaignStatus
from .ticket import Ticket, TicketStatus
from .payment import Payment, PaymentStatus, PaymentPurpose
from .cleanup_log import CleanupLog, LogStatus

__all__ = [
    "OrganizerProfile",
    "Campaign",
    "CampaignStatus",
    "Ticket",
    "TicketStatus",
    "Payment",
    "PaymentStatus",
    "PaymentPurpose",
    "CleanupLog",
    "LogStatus",
]

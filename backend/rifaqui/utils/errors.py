from typing import Any, Dict, Optional
from fastapi import status
from fastapi.responses import ORJSONResponse
import logging

logger = logging.getLogger(__name__)


class RaffleError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal server error"

    def __init__(self, message: str = "", **details: Any) -> None:
        super().__init__(message or self.error)
        self.message = message or self.error
        self.details = details


class MethodNotAllowed(RaffleError):
    status_code = status.HTTP_405_METHOD_NOT_ALLOWED
    error = "Method not allowed"


class InvalidPayload(RaffleError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Invalid payload"


class ReferenceFormatError(RaffleError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Invalid external reference format"


class InvalidReference(ReferenceFormatError):
    """Missing or undecodable correlation reference."""


class AuthenticationError(RaffleError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error = "Invalid webhook hash"


class NotFoundError(RaffleError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Not found"


class TicketsUnavailableError(RaffleError):
    status_code = status.HTTP_409_CONFLICT
    error = "Tickets unavailable"


class CampaignInUseError(RaffleError):
    status_code = status.HTTP_409_CONFLICT
    error = "Campaign has active tickets"


class CampaignAlreadyPaidError(RaffleError):
    status_code = status.HTTP_400_BAD_REQUEST
    error = "Campaign publication fee already paid"


class TransientStoreError(RaffleError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Internal server error"


class PartialBatchError(RaffleError):
    """One failed batch inside a repair/cleanup run.

    Collected into the run's result instead of being raised.
    """

    error = "Batch failed"

    def __init__(self, message: str = "", *, start: int, end: int, size: int) -> None:
        super().__init__(message, start=start, end=end, size=size)
        self.start = start
        self.end = end
        self.size = size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "first_quota": self.start,
            "last_quota": self.end,
            "size": self.size,
            "error": self.message,
        }


def error_response(
    exc: RaffleError,
    code: Optional[int] = None,
    headers: Optional[Dict[str, str]] = None,
    **extra: Any,
) -> ORJSONResponse:
    """Return a ``{success: false, error, message}`` JSON response and log details."""
    status_code = code or exc.status_code
    if status_code >= 500:
        logger.error("%s: %s %s", exc.error, exc.message, exc.details)
    else:
        logger.warning("%s: %s %s", exc.error, exc.message, exc.details)
    content: Dict[str, Any] = {"success": False, "error": exc.error, "message": exc.message}
    content.update({k: v for k, v in extra.items() if v is not None})
    return ORJSONResponse(status_code=status_code, content=content, headers=headers)

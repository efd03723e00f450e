import logging

logger = logging.getLogger(__name__)


def alert_scheduler_failure(exc: Exception) -> None:
    """Emit an error log when a background maintenance run fails."""
    logger.exception("Scheduler run failed: %s", exc)

import logging
from sqlalchemy import event
from sqlalchemy.orm.attributes import NO_VALUE

from .. import models

logger = logging.getLogger(__name__)

_REGISTERED = False


def _listener_factory(model_name: str):
    """Return a SQLAlchemy attribute listener that logs status changes."""

    def _status_change(target, value, oldvalue, initiator):  # noqa: ANN001
        if oldvalue is NO_VALUE or oldvalue is None or oldvalue == value:
            return value
        logger.info(
            "%s id=%s status changed from %s to %s",
            model_name,
            getattr(target, "id", "unknown"),
            oldvalue,
            value,
        )
        return value

    return _status_change


def register_status_listeners() -> None:
    """Attach listeners for ORM-managed campaign and payment status changes.

    Ticket transitions go through bulk conditional UPDATEs and are logged by
    the settlement engine instead.
    """
    global _REGISTERED
    if _REGISTERED:
        return
    for model in (models.Campaign, models.Payment):
        event.listen(
            model.status,  # type: ignore[arg-type]
            "set",
            _listener_factory(model.__name__),
            retval=False,
            propagate=True,
        )
    _REGISTERED = True

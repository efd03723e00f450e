import logging

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


def add_column_if_missing(engine: Engine, table: str, column: str, ddl: str) -> None:
    """Add a column to *table* if it does not exist."""

    inspector = inspect(engine)
    if table not in inspector.get_table_names():
        return
    column_names = [col["name"] for col in inspector.get_columns(table)]
    if column not in column_names:
        with engine.connect() as conn:
            # DATETIME is spelled TIMESTAMP on Postgres
            normalized = ddl
            if engine.dialect.name == "postgresql":
                normalized = (
                    normalized.replace(" DATETIME", " TIMESTAMP")
                    .replace(" datetime", " timestamp")
                )
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {normalized}"))
            conn.commit()


def ensure_ticket_columns(engine: Engine) -> None:
    """Bring ``tickets`` created before reservations carried buyer details up to date.

    Mirrors the initial Alembic revision so databases that never ran
    migrations keep working with the ORM.
    """
    add_column_if_missing(engine, "tickets", "reserved_at", "reserved_at DATETIME")
    add_column_if_missing(engine, "tickets", "bought_at", "bought_at DATETIME")
    add_column_if_missing(engine, "tickets", "customer_name", "customer_name VARCHAR")
    add_column_if_missing(engine, "tickets", "customer_email", "customer_email VARCHAR")
    add_column_if_missing(engine, "tickets", "customer_phone", "customer_phone VARCHAR")


def ensure_payment_columns(engine: Engine) -> None:
    add_column_if_missing(engine, "payments", "provider_status", "provider_status VARCHAR")
    add_column_if_missing(engine, "payments", "payer", "payer JSON")


def ensure_settlement_indexes(engine: Engine) -> None:
    """Create the indexes the settlement and cleanup queries lean on.

    - tickets(status, reserved_at) for releasing stale reservations
    - campaigns(status, expires_at) for expiring drafts
    - payments(external_reference) for correlating provider callbacks
    - cleanup_logs(created_at) for retention pruning and the status feed
    """
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    wanted = {
        "tickets": [("ix_tickets_status_reserved_at", "tickets(status, reserved_at)")],
        "campaigns": [("ix_campaigns_status_expires_at", "campaigns(status, expires_at)")],
        "payments": [("ix_payments_external_reference", "payments(external_reference)")],
        "cleanup_logs": [("ix_cleanup_logs_created_at", "cleanup_logs(created_at)")],
    }
    with engine.connect() as conn:
        try:
            for table, indexes in wanted.items():
                if table not in tables:
                    continue
                existing = {ix.get("name") for ix in inspector.get_indexes(table)}
                for name, target in indexes:
                    if name not in existing:
                        conn.execute(text(f"CREATE INDEX IF NOT EXISTS {name} ON {target}"))
            conn.commit()
        except SQLAlchemyError as exc:
            conn.rollback()
            logger.warning("Could not create settlement indexes: %s", exc)

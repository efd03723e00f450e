from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine

from rifaqui.db_utils import (
    add_column_if_missing,
    ensure_payment_columns,
    ensure_settlement_indexes,
    ensure_ticket_columns,
)


def setup_engine() -> Engine:
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    with engine.begin() as conn:
        conn.execute(
            text(
                """
                CREATE TABLE tickets (
                    id INTEGER PRIMARY KEY,
                    campaign_id VARCHAR NOT NULL,
                    quota_number INTEGER NOT NULL,
                    status VARCHAR NOT NULL,
                    user_id VARCHAR
                )
                """
            )
        )
        conn.execute(
            text(
                """
                CREATE TABLE payments (
                    id INTEGER PRIMARY KEY,
                    provider VARCHAR NOT NULL,
                    external_reference VARCHAR,
                    status VARCHAR NOT NULL
                )
                """
            )
        )
    return engine


def column_names(engine: Engine, table: str) -> list:
    return [col["name"] for col in inspect(engine).get_columns(table)]


def test_add_ticket_reservation_columns():
    engine = setup_engine()
    ensure_ticket_columns(engine)
    columns = column_names(engine, "tickets")
    for name in ("reserved_at", "bought_at", "customer_name", "customer_email", "customer_phone"):
        assert name in columns


def test_add_payment_columns():
    engine = setup_engine()
    ensure_payment_columns(engine)
    assert {"provider_status", "payer"} <= set(column_names(engine, "payments"))


def test_add_column_is_idempotent_and_skips_missing_tables():
    engine = setup_engine()
    add_column_if_missing(engine, "tickets", "reserved_at", "reserved_at DATETIME")
    add_column_if_missing(engine, "tickets", "reserved_at", "reserved_at DATETIME")
    assert column_names(engine, "tickets").count("reserved_at") == 1
    add_column_if_missing(engine, "campaigns", "is_paid", "is_paid BOOLEAN")
    assert "campaigns" not in inspect(engine).get_table_names()


def test_settlement_indexes_created_once():
    engine = setup_engine()
    ensure_ticket_columns(engine)
    ensure_settlement_indexes(engine)
    ensure_settlement_indexes(engine)
    ticket_indexes = {ix["name"] for ix in inspect(engine).get_indexes("tickets")}
    payment_indexes = {ix["name"] for ix in inspect(engine).get_indexes("payments")}
    assert "ix_tickets_status_reserved_at" in ticket_indexes
    assert "ix_payments_external_reference" in payment_indexes

import os
from datetime import datetime
from decimal import Decimal
from pathlib import Path

# Must be set before rifaqui.database / rifaqui.core.config are imported
os.environ.setdefault("PYTEST_RUN", "1")
os.environ.setdefault("ENABLE_SCHEDULER", "false")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.pop("METRICS_STATSD_ADDR", None)

import pytest
from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from rifaqui import models
from rifaqui.database import Base

# Load environment variables for tests
load_dotenv(Path(__file__).resolve().parents[1] / '.env.test')

ADMIN_HEADERS = {"X-Admin-Key": os.environ["ADMIN_API_KEY"]}


@pytest.fixture(autouse=True)
def reset_dependency_overrides():
    """Each test installs its own DB override on the shared app."""
    yield
    from rifaqui.main import app

    app.dependency_overrides.clear()


@pytest.fixture
def Session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine)
    engine.dispose()


@pytest.fixture
def db(Session):
    session = Session()
    try:
        yield session
    finally:
        session.close()


def create_campaign(
    db,
    *,
    campaign_id="c1",
    total_tickets=5,
    status=models.CampaignStatus.ACTIVE.value,
    with_tickets=True,
    ticket_price=Decimal("2.50"),
    expires_at=None,
    organizer_id="org-1",
    suitpay=None,
    title="Rifa do Carro",
):
    """Insert an organizer (if missing), a campaign and optionally its full ticket set."""
    if db.get(models.OrganizerProfile, organizer_id) is None:
        db.add(
            models.OrganizerProfile(
                id=organizer_id,
                display_name="Organizadora",
                payment_integrations_config={"suitpay": suitpay} if suitpay else None,
            )
        )
    campaign = models.Campaign(
        id=campaign_id,
        user_id=organizer_id,
        title=title,
        total_tickets=total_tickets,
        ticket_price=ticket_price,
        status=status,
        expires_at=expires_at,
    )
    db.add(campaign)
    db.flush()
    if with_tickets:
        db.add_all(
            models.Ticket(campaign_id=campaign_id, quota_number=n)
            for n in range(1, total_tickets + 1)
        )
    db.commit()
    return campaign


def reserve_tickets(db, campaign_id, numbers, *, user_id="buyer-1", reserved_at=None):
    """Mark tickets reserved directly, bypassing checkout."""
    for ticket in (
        db.query(models.Ticket)
        .filter(models.Ticket.campaign_id == campaign_id, models.Ticket.quota_number.in_(numbers))
        .all()
    ):
        ticket.status = models.TicketStatus.RESERVED.value
        ticket.user_id = user_id
        ticket.customer_name = "Maria"
        ticket.reserved_at = reserved_at or datetime.utcnow()
    db.commit()


def ticket_statuses(db, campaign_id):
    db.expire_all()
    return {
        t.quota_number: t.status
        for t in db.query(models.Ticket).filter(models.Ticket.campaign_id == campaign_id)
    }


def audit_entries(db, operation_type=None):
    db.expire_all()
    q = db.query(models.CleanupLog)
    if operation_type:
        q = q.filter(models.CleanupLog.operation_type == operation_type)
    return q.order_by(models.CleanupLog.id).all()

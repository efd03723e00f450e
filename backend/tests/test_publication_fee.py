from decimal import Decimal
from types import SimpleNamespace

import pytest
import stripe
from fastapi.testclient import TestClient

from conftest import create_campaign
from rifaqui import models
from rifaqui.core.config import settings
from rifaqui.database import get_db
from rifaqui.main import app
from rifaqui.models import CampaignStatus, PaymentPurpose, PaymentStatus
from rifaqui.services import publication_fee
from rifaqui.utils.errors import CampaignAlreadyPaidError, NotFoundError


def setup_app(Session):
    def override_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_db
    return TestClient(app)


def no_stripe(**kwargs):
    raise AssertionError("Stripe must not be called without a secret key")


@pytest.mark.parametrize(
    "revenue, fee",
    [
        ("0", "7.00"),
        ("100", "7.00"),
        ("100.01", "17.00"),
        ("200", "17.00"),
        ("400.01", "37.00"),
        ("701", "37.00"),
        ("701.01", "47.00"),
        ("7100", "127.00"),
        ("30000", "497.00"),
        ("150000", "2997.00"),
        ("150000.01", "3997.00"),
        ("9999999", "3997.00"),
    ],
)
def test_fee_tier_boundaries(revenue, fee):
    assert publication_fee.select_tier(Decimal(revenue)).fee == Decimal(fee)


def test_tiers_are_ordered_with_open_top():
    bounds = [t.max_revenue for t in publication_fee.PUBLICATION_FEE_TIERS]
    assert bounds[-1] is None
    assert bounds[:-1] == sorted(bounds[:-1])


def test_checkout_without_key_records_pending_fee(db, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "")
    monkeypatch.setattr(publication_fee.stripe.checkout.Session, "create", no_stripe)
    create_campaign(db, status=CampaignStatus.DRAFT.value, total_tickets=100, ticket_price=Decimal("1.50"))

    result = publication_fee.create_publication_fee_checkout(db, campaign_id="c1")

    assert result.live is False
    assert result.estimated_revenue == Decimal("150.00")
    assert result.fee == Decimal("17.00")
    assert result.session_id == f"cs_placeholder_{result.payment_id}"
    payment = db.query(models.Payment).one()
    assert payment.purpose == PaymentPurpose.PUBLICATION_FEE.value
    assert payment.provider == "stripe"
    assert payment.status == PaymentStatus.PENDING.value
    assert payment.amount == Decimal("17.00")
    assert payment.user_id == "org-1"


def test_checkout_creates_stripe_session(db, monkeypatch):
    calls = []

    def fake_create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(id="cs_live_1", url="https://checkout.stripe.com/c/pay/cs_live_1")

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(publication_fee.stripe.checkout.Session, "create", fake_create)
    create_campaign(db, status=CampaignStatus.DRAFT.value, total_tickets=10, ticket_price=Decimal("5.00"))

    result = publication_fee.create_publication_fee_checkout(
        db, campaign_id="c1", success_url="https://app.example/ok", cancel_url="https://app.example/no"
    )

    assert result.live is True
    assert result.checkout_url == "https://checkout.stripe.com/c/pay/cs_live_1"
    (call,) = calls
    assert call["api_key"] == "sk_test_123"
    assert call["line_items"][0]["price_data"]["unit_amount"] == 700
    assert call["payment_intent_data"]["metadata"]["campaign_id"] == "c1"
    assert call["success_url"] == "https://app.example/ok"
    assert call["idempotency_key"] == f"publication_fee_{result.payment_id}"
    assert db.query(models.Payment).one().provider_transaction_id == "cs_live_1"


def test_stripe_error_falls_back_to_placeholder(db, monkeypatch):
    def failing_create(**kwargs):
        raise stripe.StripeError("api unavailable")

    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "sk_test_123")
    monkeypatch.setattr(publication_fee.stripe.checkout.Session, "create", failing_create)
    create_campaign(db, status=CampaignStatus.DRAFT.value)

    result = publication_fee.create_publication_fee_checkout(db, campaign_id="c1")

    assert result.live is False
    assert result.session_id.startswith("cs_placeholder_")


def test_paid_or_missing_campaign_is_refused(db):
    campaign = create_campaign(db, status=CampaignStatus.DRAFT.value)
    campaign.is_paid = True
    db.commit()
    with pytest.raises(CampaignAlreadyPaidError):
        publication_fee.create_publication_fee_checkout(db, campaign_id="c1")
    with pytest.raises(NotFoundError):
        publication_fee.create_publication_fee_checkout(db, campaign_id="nope")
    assert db.query(models.Payment).count() == 0


def test_fee_checkout_then_stripe_webhook_activates_campaign(Session, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_SECRET_KEY", "")
    client = setup_app(Session)
    db = Session()
    create_campaign(db, status=CampaignStatus.DRAFT.value)

    res = client.post("/api/v1/payments/publication-fee", json={"campaign_id": "c1"})
    assert res.status_code == 200
    assert res.json()["fee"] == 7.0

    res = client.post(
        "/api/v1/webhooks/stripe",
        json={
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_fee", "amount": 700, "currency": "brl", "metadata": {"campaign_id": "c1"}}},
        },
    )
    assert res.status_code == 200

    db.expire_all()
    payment = db.query(models.Payment).one()
    assert payment.status == PaymentStatus.SUCCEEDED.value
    assert payment.provider_transaction_id == "pi_fee"
    assert db.get(models.Campaign, "c1").status == CampaignStatus.ACTIVE.value

    res = client.post("/api/v1/payments/publication-fee", json={"campaign_id": "c1"})
    assert res.status_code == 400
    assert res.json()["error"] == "Campaign publication fee already paid"

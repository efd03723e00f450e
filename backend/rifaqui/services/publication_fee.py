"""Publication fee checkout.

An organizer pays a one-off fee to publish a draft campaign. The fee is
picked from ``PUBLICATION_FEE_TIERS`` by the campaign's estimated revenue
(``total_tickets * ticket_price``). The Stripe Checkout session carries
``campaign_id`` in the payment intent metadata so the Stripe webhook can
activate the campaign once the intent succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from decimal import Decimal
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..models import PaymentPurpose, PaymentStatus
from ..utils.errors import CampaignAlreadyPaidError, NotFoundError
from ..utils.metrics import incr

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeeTier:
    fee: Decimal
    # inclusive upper bound of estimated revenue; None for the open top tier
    max_revenue: Optional[Decimal]


PUBLICATION_FEE_TIERS = [
    FeeTier(Decimal("7.00"), Decimal("100")),
    FeeTier(Decimal("17.00"), Decimal("200")),
    FeeTier(Decimal("27.00"), Decimal("400")),
    FeeTier(Decimal("37.00"), Decimal("701")),
    FeeTier(Decimal("47.00"), Decimal("1000")),
    FeeTier(Decimal("67.00"), Decimal("2000")),
    FeeTier(Decimal("77.00"), Decimal("4000")),
    FeeTier(Decimal("127.00"), Decimal("7100")),
    FeeTier(Decimal("197.00"), Decimal("10000")),
    FeeTier(Decimal("247.00"), Decimal("20000")),
    FeeTier(Decimal("497.00"), Decimal("30000")),
    FeeTier(Decimal("997.00"), Decimal("50000")),
    FeeTier(Decimal("1497.00"), Decimal("70000")),
    FeeTier(Decimal("1997.00"), Decimal("100000")),
    FeeTier(Decimal("2997.00"), Decimal("150000")),
    FeeTier(Decimal("3997.00"), None),
]

PRODUCT_NAME = "Rifaqui - Taxa de Publicação"


@dataclass
class PublicationFeeCheckout:
    payment_id: int
    campaign_id: str
    session_id: str
    checkout_url: str
    fee: Decimal
    estimated_revenue: Decimal
    live: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def estimated_revenue(campaign: models.Campaign) -> Decimal:
    return Decimal(campaign.total_tickets or 0) * Decimal(campaign.ticket_price or 0)


def select_tier(revenue: Decimal) -> FeeTier:
    for tier in PUBLICATION_FEE_TIERS:
        if tier.max_revenue is None or revenue <= tier.max_revenue:
            return tier
    return PUBLICATION_FEE_TIERS[-1]


def _create_stripe_session(
    campaign: models.Campaign, payment: models.Payment, tier: FeeTier, success_url: str, cancel_url: str
) -> Optional[Any]:
    metadata = {
        "campaign_id": campaign.id,
        "campaign_title": campaign.title or "",
        "type": PaymentPurpose.PUBLICATION_FEE.value,
    }
    try:
        return stripe.checkout.Session.create(
            api_key=settings.STRIPE_SECRET_KEY,
            mode="payment",
            line_items=[
                {
                    "price_data": {
                        "currency": "brl",
                        "unit_amount": int(tier.fee * 100),
                        "product_data": {"name": PRODUCT_NAME},
                    },
                    "quantity": 1,
                }
            ],
            success_url=success_url,
            cancel_url=cancel_url,
            metadata=metadata,
            payment_intent_data={"metadata": metadata},
            idempotency_key=f"publication_fee_{payment.id}",
        )
    except stripe.StripeError as exc:
        logger.warning("Stripe checkout failed for campaign %s: %s", campaign.id, exc)
        incr("checkout.provider_error", tags={"provider": "stripe"})
        return None


def create_publication_fee_checkout(
    db: Session,
    *,
    campaign_id: str,
    success_url: Optional[str] = None,
    cancel_url: Optional[str] = None,
) -> PublicationFeeCheckout:
    campaign = db.get(models.Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign not found", campaign_id=campaign_id)
    if campaign.is_paid:
        raise CampaignAlreadyPaidError(campaign_id=campaign_id)

    revenue = estimated_revenue(campaign)
    tier = select_tier(revenue)
    app_url = settings.APP_URL.rstrip("/")
    success_url = success_url or f"{app_url}/payment-success?session_id={{CHECKOUT_SESSION_ID}}"
    cancel_url = cancel_url or f"{app_url}/payment-cancelled"

    payment = models.Payment(
        campaign_id=campaign.id,
        user_id=campaign.user_id,
        provider="stripe",
        purpose=PaymentPurpose.PUBLICATION_FEE.value,
        amount=tier.fee,
        currency="BRL",
        status=PaymentStatus.PENDING.value,
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)

    session = None
    if settings.STRIPE_SECRET_KEY:
        session = _create_stripe_session(campaign, payment, tier, success_url, cancel_url)
    if session is not None:
        session_id, url = session.id, session.url
    else:
        session_id = f"cs_placeholder_{payment.id}"
        url = f"https://checkout.stripe.com/pay/{session_id}"
    payment.provider_transaction_id = session_id
    payment.payment_url = url
    db.commit()

    incr("checkout.created", tags={"provider": "stripe", "live": session is not None})
    logger.info(
        "Publication fee checkout campaign=%s revenue=%s fee=%s live=%s",
        campaign.id,
        revenue,
        tier.fee,
        session is not None,
    )
    return PublicationFeeCheckout(
        payment_id=payment.id,
        campaign_id=campaign.id,
        session_id=session_id,
        checkout_url=url,
        fee=tier.fee,
        estimated_revenue=revenue,
        live=session is not None,
    )

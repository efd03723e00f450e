"""PIX checkout initiation.

Reserves the requested tickets, generates the correlation reference the
provider will echo back in its webhook, stores a pending payment row and
asks SuitPay for a PIX charge. Without organizer credentials, or when
SuitPay fails, a placeholder BR code is returned so the flow can still be
exercised end to end.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from .. import models
from ..core.config import settings
from ..models import CampaignStatus, PaymentPurpose, PaymentStatus
from ..utils.errors import NotFoundError, TicketsUnavailableError
from ..utils.metrics import incr
from . import reference_codec, settlement

logger = logging.getLogger(__name__)

_PIX_MERCHANT = "5204000053039865802BR5925RIFAQUI PAGAMENTOS LTDA6009SAO PAULO61080145200062070503***"


@dataclass
class CheckoutResult:
    payment_id: str
    status: str
    external_reference: str
    qr_code: Optional[str] = None
    qr_code_base64: Optional[str] = None
    payment_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


def placeholder_br_code(reference: str) -> str:
    """Static-looking PIX "copia e cola" payload for environments without SuitPay."""
    clean_id = re.sub(r"[^a-zA-Z0-9]", "", reference)[:32]
    return f"00020126580014br.gov.bcb.pix0136{clean_id}{_PIX_MERCHANT}6304ABCD"


def _organizer_suitpay_config(db: Session, campaign: models.Campaign) -> Dict[str, Any]:
    config: Dict[str, Any] = {}
    profile = db.get(models.OrganizerProfile, campaign.user_id) if campaign.user_id else None
    if profile is not None:
        config.update(profile.provider_config("suitpay"))
    config.update({k: v for k, v in campaign.provider_config("suitpay").items() if v})
    return config


def request_suitpay_charge(
    config: Dict[str, Any], reference: str, amount: Decimal, payer: Dict[str, Optional[str]]
) -> Optional[Dict[str, Any]]:
    """POST ``/pix/cashin/create``. Returns the parsed body, or None on any failure."""
    callback = config.get("webhook_url") or (
        f"{settings.PUBLIC_API_URL.rstrip('/')}{settings.API_V1_STR}/webhooks/suitpay"
    )
    body = {
        "value": float(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)),
        "requestNumber": reference,
        "callbackUrl": callback,
        "customer": {
            "name": payer.get("name") or "Cliente Rifaqui",
            "email": payer.get("email") or "",
            "taxId": payer.get("tax_id") or payer.get("phone") or "",
        },
    }
    url = f"{settings.SUITPAY_HOST.rstrip('/')}/pix/cashin/create"
    try:
        resp = httpx.post(
            url,
            json=body,
            headers={"ci": str(config["client_id"]), "cs": str(config["client_secret"])},
            timeout=settings.SUITPAY_TIMEOUT_SECONDS,
        )
        data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("SuitPay create failed for %s: %s", reference, exc)
        incr("checkout.provider_error", tags={"provider": "suitpay"})
        return None
    if resp.status_code >= 400 or not isinstance(data, dict):
        logger.warning("SuitPay create error %s for %s: %s", resp.status_code, reference, data)
        incr("checkout.provider_error", tags={"provider": "suitpay"})
        return None
    return data


def create_pix_checkout(
    db: Session,
    *,
    campaign_id: str,
    quota_numbers: List[int],
    user_id: Optional[str],
    payer: Dict[str, Optional[str]],
    total_amount: Optional[Decimal] = None,
) -> CheckoutResult:
    campaign = db.get(models.Campaign, campaign_id)
    if campaign is None:
        raise NotFoundError("Campaign not found", campaign_id=campaign_id)
    if campaign.status != CampaignStatus.ACTIVE.value:
        raise TicketsUnavailableError(
            "Campaign is not accepting purchases", campaign_id=campaign_id
        )
    reference = reference_codec.encode(campaign.id, quota_numbers)
    if total_amount is None:
        total_amount = Decimal(campaign.ticket_price or 0) * len(set(quota_numbers))

    settlement.reserve(
        db,
        campaign.id,
        quota_numbers,
        user_id=user_id,
        customer={"name": payer.get("name"), "email": payer.get("email"), "phone": payer.get("phone")},
    )
    payment = models.Payment(
        campaign_id=campaign.id,
        user_id=user_id,
        provider="suitpay",
        purpose=PaymentPurpose.TICKETS.value,
        external_reference=reference,
        amount=total_amount,
        currency=settings.DEFAULT_CURRENCY,
        status=PaymentStatus.PENDING.value,
        payer={k: v for k, v in payer.items() if v},
    )
    db.add(payment)
    # Reservation and payment row are durable before the provider is called.
    db.commit()
    db.refresh(payment)

    config = _organizer_suitpay_config(db, campaign)
    data = None
    if config.get("client_id") and config.get("client_secret"):
        data = request_suitpay_charge(config, reference, Decimal(total_amount), payer)

    if data is not None:
        payment.provider_transaction_id = str(data.get("idTransaction") or "") or None
        payment.qr_code = data.get("paymentCode") or data.get("copyPasteKey") or data.get("emv") or ""
        payment.qr_code_base64 = data.get("qrCode")
        payment.payment_url = data.get("paymentUrl")
    else:
        payment.qr_code = placeholder_br_code(reference)
    db.commit()
    incr("checkout.created", tags={"provider": "suitpay", "live": data is not None})
    logger.info(
        "Checkout created campaign=%s payment=%s tickets=%s live=%s",
        campaign.id,
        payment.id,
        len(quota_numbers),
        data is not None,
    )
    return CheckoutResult(
        payment_id=payment.provider_transaction_id or f"suitpay_{payment.id}",
        status=PaymentStatus.PENDING.value,
        external_reference=reference,
        qr_code=payment.qr_code,
        qr_code_base64=payment.qr_code_base64,
        payment_url=payment.payment_url,
    )

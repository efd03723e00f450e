import hashlib
import hmac
import math
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ... import models
from ...utils.errors import AuthenticationError, InvalidPayload, NotFoundError
from ...utils.metrics import incr
from .base import ProviderAdapter, WebhookEvent

# Order matters: SuitPay hashes these values concatenated, then the secret.
HASH_FIELDS = (
    "idTransaction",
    "typeTransaction",
    "statusTransaction",
    "value",
    "payerName",
    "payerTaxId",
    "paymentDate",
    "paymentCode",
    "requestNumber",
)


def _render(value: Any) -> str:
    """Render a payload value the way SuitPay stringifies it before hashing."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def compute_hash(payload: Dict[str, Any], client_secret: str) -> str:
    parts = []
    for name in HASH_FIELDS:
        value = payload.get(name)
        # a missing amount is stringified, the other fields collapse to ""
        parts.append("undefined" if name == "value" and value is None else _render(value))
    base = "".join(parts)
    return hashlib.sha256((base + client_secret).encode("utf-8")).hexdigest()


def resolve_client_secret(db: Session, campaign_id: str) -> Optional[str]:
    """Look up the SuitPay secret of the organizer that owns ``campaign_id``.

    A per-campaign override in ``campaigns.payment_integrations`` wins over the
    organizer profile. Raises ``NotFoundError`` when the campaign or its owner
    cannot be found.
    """
    campaign = db.get(models.Campaign, campaign_id)
    if campaign is None or not campaign.user_id:
        raise NotFoundError("Campaign not found", campaign_id=campaign_id)
    override = campaign.provider_config("suitpay").get("client_secret")
    if override:
        return str(override)
    profile = db.get(models.OrganizerProfile, campaign.user_id)
    if profile is None:
        raise NotFoundError("Organizer profile not found", campaign_id=campaign_id)
    secret = profile.provider_config("suitpay").get("client_secret")
    return str(secret) if secret else None


class SuitPayAdapter(ProviderAdapter):
    """SuitPay PIX cash-in notifications, verified with a SHA-256 hash."""

    name = "suitpay"
    label = "SuitPay transaction"
    verifies_signature = True
    response_id_field = "idTransaction"

    def parse(self, payload: Dict[str, Any]) -> Optional[WebhookEvent]:
        if not payload.get("idTransaction") and not payload.get("requestNumber"):
            raise InvalidPayload("Missing idTransaction/requestNumber in SuitPay payload")
        return self.build_event(
            event_type=str(payload.get("typeTransaction") or "PIX"),
            provider_status=payload.get("statusTransaction"),
            transaction_id=payload.get("idTransaction"),
            reference=payload.get("requestNumber"),
            amount=payload.get("value"),
            currency="BRL",
            payer={"name": payload.get("payerName"), "tax_id": payload.get("payerTaxId")},
            details={
                "idTransaction": payload.get("idTransaction"),
                "status": payload.get("statusTransaction"),
                "value": payload.get("value"),
                "payerName": payload.get("payerName"),
                "paymentDate": payload.get("paymentDate"),
            },
            raw=payload,
        )

    def authenticate(self, db: Session, event: WebhookEvent) -> None:
        secret = resolve_client_secret(db, event.campaign_id)
        if not secret:
            incr("webhook.signature_rejected", tags={"provider": self.name, "reason": "no_secret"})
            raise AuthenticationError(
                "SuitPay client secret not configured", campaign_id=event.campaign_id
            )
        supplied = str(event.raw.get("hash") or "").strip().lower()
        expected = compute_hash(event.raw, secret)
        if not supplied or not hmac.compare_digest(expected.encode("ascii"), supplied.encode("utf-8")):
            incr("webhook.signature_rejected", tags={"provider": self.name, "reason": "mismatch"})
            raise AuthenticationError(
                "Invalid webhook hash",
                campaign_id=event.campaign_id,
                transaction_id=event.provider_transaction_id,
            )

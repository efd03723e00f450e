import hashlib
from decimal import Decimal

import pytest

from conftest import create_campaign
from rifaqui.models import PaymentPurpose
from rifaqui.services.providers import ADAPTERS, SettlementOutcome, get_adapter, map_status
from rifaqui.services.providers.suitpay import compute_hash, resolve_client_secret
from rifaqui.utils.errors import AuthenticationError, InvalidPayload, InvalidReference, NotFoundError

REF = "campaign_c1_tickets_1,2"


def suitpay_payload(**overrides):
    payload = {
        "idTransaction": "tx-1",
        "typeTransaction": "PIX",
        "statusTransaction": "PAID_OUT",
        "value": 15.0,
        "payerName": "Maria",
        "payerTaxId": "12345678900",
        "paymentDate": "2024-01-01 10:00:00",
        "paymentCode": "00020126",
        "requestNumber": REF,
    }
    payload.update(overrides)
    return payload


def test_registry_lookup_is_case_insensitive():
    assert get_adapter("SuitPay") is ADAPTERS["suitpay"]
    assert get_adapter("mercadopago") is None
    assert set(ADAPTERS) == {"stripe", "pix", "suitpay", "pay2m", "fluxsis", "paggue"}


@pytest.mark.parametrize(
    "status, outcome",
    [
        ("paid", SettlementOutcome.SETTLED),
        ("APPROVED", SettlementOutcome.SETTLED),
        ("completed", SettlementOutcome.SETTLED),
        ("PAID_OUT", SettlementOutcome.SETTLED),
        ("failed", SettlementOutcome.RELEASED),
        ("Cancelled", SettlementOutcome.RELEASED),
        ("expired", SettlementOutcome.RELEASED),
        ("chargeback", SettlementOutcome.RELEASED),
        ("pending", SettlementOutcome.PENDING),
        ("processing", SettlementOutcome.PENDING),
        (None, SettlementOutcome.PENDING),
    ],
)
def test_status_vocabulary(status, outcome):
    assert map_status(status) is outcome


# ─── Pay2m / Fluxsis / Paggue ────────────────────────────────────────────────


def test_pay2m_transaction_event():
    event = ADAPTERS["pay2m"].parse(
        {
            "event_type": "transaction.completed",
            "transaction": {
                "id": "p2m-9",
                "status": "approved",
                "amount": "20.00",
                "reference": REF,
                "customer": {"email": "m@x.com"},
            },
        }
    )
    assert event.outcome is SettlementOutcome.SETTLED
    assert event.campaign_id == "c1"
    assert event.quota_numbers == [1, 2]
    assert event.provider_transaction_id == "p2m-9"
    assert event.amount == Decimal("20.00")
    assert event.details["customer_email"] == "m@x.com"


def test_pay2m_ignores_other_events():
    adapter = ADAPTERS["pay2m"]
    assert adapter.parse({"event_type": "ping"}) is None
    assert adapter.ignored_message() == (
        "Webhook received but not processed (not a transaction event)"
    )


def test_pay2m_missing_reference_is_rejected():
    with pytest.raises(InvalidReference) as exc:
        ADAPTERS["pay2m"].parse(
            {"event_type": "transaction.status_changed", "transaction": {"id": "1", "status": "paid"}}
        )
    assert exc.value.message == "No external reference found"


def test_pay2m_requires_transaction_object():
    with pytest.raises(InvalidPayload):
        ADAPTERS["pay2m"].parse({"event_type": "transaction.completed", "transaction": "x"})


def test_fluxsis_payment_event():
    event = ADAPTERS["fluxsis"].parse(
        {
            "event": "payment.status_changed",
            "data": {"id": "fx-1", "status": "rejected", "amount": 5, "external_reference": REF},
        }
    )
    assert event.outcome is SettlementOutcome.RELEASED
    assert ADAPTERS["fluxsis"].response_id_field == "payment_id"
    assert ADAPTERS["fluxsis"].response_id(event) == "fx-1"


def test_paggue_reads_reference_id():
    event = ADAPTERS["paggue"].parse(
        {
            "event": "transaction.status_updated",
            "data": {"transaction_id": "pg-3", "status": "pending", "reference_id": REF},
        }
    )
    assert event.outcome is SettlementOutcome.PENDING
    assert event.reference == REF


# ─── PIX ─────────────────────────────────────────────────────────────────────


def test_pix_event_always_settles():
    adapter = ADAPTERS["pix"]
    event = adapter.parse(
        {
            "evento": "pix",
            "pix": {
                "txid": REF,
                "endToEndId": "E123",
                "valor": "10.00",
                "infoPagador": {"nome": "Maria"},
            },
        }
    )
    assert event.outcome is SettlementOutcome.SETTLED
    assert event.provider_transaction_id == "E123"
    assert adapter.response_id(event) == REF
    assert event.payer == {"nome": "Maria"}


def test_pix_ignores_non_pix_events():
    adapter = ADAPTERS["pix"]
    assert adapter.parse({"evento": "cobranca"}) is None
    assert "not a PIX event" in adapter.ignored_message()


# ─── Stripe ──────────────────────────────────────────────────────────────────


def stripe_payload(event_type, metadata, amount=1050):
    return {
        "id": "evt_1",
        "type": event_type,
        "data": {
            "object": {
                "id": "pi_1",
                "status": "succeeded",
                "amount": amount,
                "currency": "brl",
                "metadata": metadata,
            }
        },
    }


def test_stripe_ticket_intent():
    event = ADAPTERS["stripe"].parse(
        stripe_payload("payment_intent.succeeded", {"external_reference": REF})
    )
    assert event.outcome is SettlementOutcome.SETTLED
    assert event.purpose == PaymentPurpose.TICKETS.value
    assert event.amount == Decimal("10.50")
    assert event.currency == "BRL"


def test_stripe_publication_fee_intent():
    event = ADAPTERS["stripe"].parse(
        stripe_payload(
            "payment_intent.payment_failed",
            {"campaign_id": "c1", "campaign_title": "Rifa"},
        )
    )
    assert event.purpose == PaymentPurpose.PUBLICATION_FEE.value
    assert event.outcome is SettlementOutcome.RELEASED
    assert event.campaign_id == "c1"
    assert event.campaign_title == "Rifa"
    assert event.quota_numbers == []


def test_stripe_intent_without_campaign_is_rejected():
    with pytest.raises(InvalidReference) as exc:
        ADAPTERS["stripe"].parse(stripe_payload("payment_intent.succeeded", {}))
    assert exc.value.message == "No campaign_id in metadata"


def test_stripe_other_intent_types_are_pending_and_other_objects_ignored():
    adapter = ADAPTERS["stripe"]
    event = adapter.parse(stripe_payload("payment_intent.processing", {"external_reference": REF}))
    assert event.outcome is SettlementOutcome.PENDING
    assert adapter.parse({"type": "charge.refunded", "data": {"object": {}}}) is None


# ─── SuitPay ─────────────────────────────────────────────────────────────────


def test_suitpay_hash_concatenates_fields_then_secret():
    payload = suitpay_payload()
    base = "tx-1PIXPAID_OUT15Maria123456789002024-01-01 10:00:0000020126" + REF
    expected = hashlib.sha256((base + "s3cret").encode("utf-8")).hexdigest()
    assert compute_hash(payload, "s3cret") == expected


def test_suitpay_hash_missing_fields():
    payload = suitpay_payload(value=None, payerName=None)
    base = "tx-1PIXPAID_OUTundefined123456789002024-01-01 10:00:0000020126" + REF
    assert compute_hash(payload, "k") == hashlib.sha256((base + "k").encode()).hexdigest()


def test_suitpay_hash_keeps_fractional_values():
    assert compute_hash(suitpay_payload(value=15.5), "k") == hashlib.sha256(
        ("tx-1PIXPAID_OUT15.5Maria123456789002024-01-01 10:00:0000020126" + REF + "k").encode()
    ).hexdigest()


def test_suitpay_parse_requires_identifiers():
    with pytest.raises(InvalidPayload):
        ADAPTERS["suitpay"].parse({"statusTransaction": "PAID_OUT"})


def test_suitpay_authenticate_accepts_valid_hash(db):
    create_campaign(db, suitpay={"client_id": "ci", "client_secret": "s3cret"})
    payload = suitpay_payload()
    payload["hash"] = compute_hash(payload, "s3cret").upper()
    adapter = ADAPTERS["suitpay"]
    adapter.authenticate(db, adapter.parse(payload))


def test_suitpay_authenticate_rejects_bad_hash(db):
    create_campaign(db, suitpay={"client_id": "ci", "client_secret": "s3cret"})
    payload = suitpay_payload(hash="0" * 64)
    adapter = ADAPTERS["suitpay"]
    with pytest.raises(AuthenticationError):
        adapter.authenticate(db, adapter.parse(payload))


def test_suitpay_authenticate_without_secret(db):
    create_campaign(db)
    payload = suitpay_payload(hash="abc")
    adapter = ADAPTERS["suitpay"]
    with pytest.raises(AuthenticationError) as exc:
        adapter.authenticate(db, adapter.parse(payload))
    assert exc.value.message == "SuitPay client secret not configured"


def test_suitpay_unknown_campaign(db):
    adapter = ADAPTERS["suitpay"]
    with pytest.raises(NotFoundError):
        adapter.authenticate(db, adapter.parse(suitpay_payload(hash="abc")))


def test_campaign_override_wins_over_profile(db):
    campaign = create_campaign(db, suitpay={"client_id": "ci", "client_secret": "profile"})
    campaign.payment_integrations = {"suitpay": {"client_secret": "campaign"}}
    db.commit()
    assert resolve_client_secret(db, "c1") == "campaign"

from datetime import datetime, timedelta

import pytest
from freezegun import freeze_time
from sqlalchemy.exc import OperationalError

from conftest import audit_entries, create_campaign, reserve_tickets, ticket_statuses
from rifaqui import models
from rifaqui.models import CampaignStatus, LogStatus, TicketStatus
from rifaqui.services import cleanup
from rifaqui.utils.errors import CampaignInUseError, NotFoundError, TransientStoreError

NOW = datetime(2024, 3, 10, 12, 0, 0)
DRAFT = CampaignStatus.DRAFT.value


def seed_drafts(db):
    create_campaign(db, campaign_id="old", status=DRAFT, expires_at=NOW - timedelta(hours=1))
    create_campaign(db, campaign_id="fresh", status=DRAFT, expires_at=NOW + timedelta(days=1))
    create_campaign(db, campaign_id="undated", status=DRAFT, expires_at=None)
    create_campaign(db, campaign_id="live", expires_at=NOW - timedelta(days=3))
    db.add(models.Payment(campaign_id="old", provider="stripe", purpose="publication_fee"))
    db.commit()


@freeze_time(NOW)
def test_expired_drafts_are_deleted_with_their_tickets(db):
    seed_drafts(db)

    result = cleanup.expire_draft_campaigns(db)

    assert result.deleted_count == 1
    assert result.error_count == 0
    assert result.deleted_campaigns == [{"id": "old", "title": "Rifa do Carro"}]
    assert db.get(models.Campaign, "old") is None
    assert ticket_statuses(db, "old") == {}
    remaining = {c.id for c in db.query(models.Campaign)}
    assert remaining == {"fresh", "undated", "live"}
    # payments outlive the campaign
    assert db.query(models.Payment).one().campaign_id is None
    entry = audit_entries(db, "cleanup_complete")[-1]
    assert entry.status == LogStatus.SUCCESS.value
    assert entry.created_at == NOW


@freeze_time(NOW)
def test_failed_deletion_is_counted_and_run_continues(db, monkeypatch):
    seed_drafts(db)
    create_campaign(db, campaign_id="older", status=DRAFT, expires_at=NOW - timedelta(days=2))
    real_purge = cleanup._purge_campaign_rows

    def purge(session, campaign_id):
        if campaign_id == "older":
            raise OperationalError("DELETE FROM tickets", {}, Exception("locked"))
        return real_purge(session, campaign_id)

    monkeypatch.setattr(cleanup, "_purge_campaign_rows", purge)
    result = cleanup.run_cleanup(db)

    assert result.drafts.deleted_count == 1
    assert result.drafts.error_count == 1
    assert result.http_status == 207
    assert result.message == "Cleanup completed: 1 campaigns deleted with 1 errors"
    assert db.get(models.Campaign, "older") is not None
    assert audit_entries(db, "cleanup_complete")[-1].status == LogStatus.WARNING.value


@freeze_time(NOW)
def test_clean_run_reports_200(db):
    seed_drafts(db)
    result = cleanup.run_cleanup(db)
    assert result.http_status == 200
    assert result.message == "Cleanup completed: 1 campaigns deleted"
    assert result.to_dict()["deleted_count"] == 1


def test_store_failure_while_expiring_drafts(db, monkeypatch):
    def broken(session, now=None):
        raise OperationalError("SELECT", {}, Exception("connection lost"))

    monkeypatch.setattr(cleanup, "expire_draft_campaigns", broken)
    with pytest.raises(TransientStoreError):
        cleanup.run_cleanup(db)
    assert audit_entries(db, "cleanup_function_error")[0].status == LogStatus.ERROR.value


@freeze_time(NOW)
def test_stale_reservations_are_released(db):
    create_campaign(db)
    reserve_tickets(db, "c1", [1], reserved_at=NOW - timedelta(minutes=20))
    reserve_tickets(db, "c1", [2], reserved_at=NOW - timedelta(minutes=5))

    released = cleanup.release_expired_reservations(db, ttl_minutes=15)

    assert released == 1
    statuses = ticket_statuses(db, "c1")
    assert statuses[1] == TicketStatus.AVAILABLE.value
    assert statuses[2] == TicketStatus.RESERVED.value
    assert audit_entries(db, "reservations_expired")[0].details["released"] == 1


def test_zero_ttl_disables_release(db):
    create_campaign(db)
    reserve_tickets(db, "c1", [1], reserved_at=datetime(2000, 1, 1))
    assert cleanup.release_expired_reservations(db, ttl_minutes=0) == 0
    assert ticket_statuses(db, "c1")[1] == TicketStatus.RESERVED.value


@freeze_time(NOW)
def test_old_audit_entries_are_pruned(db):
    db.add_all(
        [
            models.CleanupLog(operation_type="x", status="success", created_at=NOW - timedelta(days=45)),
            models.CleanupLog(operation_type="y", status="success", created_at=NOW - timedelta(days=2)),
        ]
    )
    db.commit()
    assert cleanup.prune_old_logs(db, retention_days=30) == 1
    assert [e.operation_type for e in audit_entries(db)] == ["y"]


def test_delete_campaign_refuses_sold_or_reserved_tickets(db):
    create_campaign(db)
    reserve_tickets(db, "c1", [3])
    with pytest.raises(CampaignInUseError):
        cleanup.delete_campaign(db, "c1")
    assert db.get(models.Campaign, "c1") is not None


def test_delete_campaign(db):
    create_campaign(db, total_tickets=4)
    removed = cleanup.delete_campaign(db, "c1")
    assert removed == {"id": "c1", "title": "Rifa do Carro", "tickets_deleted": 4}
    assert db.get(models.Campaign, "c1") is None
    assert audit_entries(db, "campaign_deleted")[0].campaign_title == "Rifa do Carro"
    with pytest.raises(NotFoundError):
        cleanup.delete_campaign(db, "c1")

import pytest
from sqlalchemy.exc import IntegrityError

from conftest import audit_entries, create_campaign
from rifaqui import models
from rifaqui.services import backfill
from rifaqui.utils.errors import NotFoundError


def quota_numbers(db, campaign_id):
    return sorted(
        n for (n,) in db.query(models.Ticket.quota_number).filter_by(campaign_id=campaign_id)
    )


def test_repair_fills_every_gap_in_batches(db):
    create_campaign(db, total_tickets=5, with_tickets=False)
    db.add_all(
        [
            models.Ticket(campaign_id="c1", quota_number=2),
            models.Ticket(campaign_id="c1", quota_number=4),
        ]
    )
    db.commit()

    result = backfill.repair_campaign(db, "c1", batch_size=2)

    assert result.total_needed == 5
    assert result.existing == 2
    assert result.created == 3
    assert result.errors == 0
    assert quota_numbers(db, "c1") == [1, 2, 3, 4, 5]
    statuses = {s for (s,) in db.query(models.Ticket.status).filter_by(campaign_id="c1")}
    assert statuses == {models.TicketStatus.AVAILABLE.value}
    assert audit_entries(db, "backfill_campaign")[-1].details["tickets_created"] == 3


def test_second_run_creates_nothing(db):
    create_campaign(db, total_tickets=7, with_tickets=False)
    backfill.repair_campaign(db, "c1", batch_size=3)
    again = backfill.repair_campaign(db, "c1", batch_size=3)
    assert again.created == 0
    assert again.existing == 7
    assert quota_numbers(db, "c1") == list(range(1, 8))


def test_unknown_campaign(db):
    with pytest.raises(NotFoundError):
        backfill.repair_campaign(db, "nope")


def test_failed_batch_is_reported_and_later_batches_continue(db, monkeypatch):
    create_campaign(db, total_tickets=6, with_tickets=False)
    real_execute = db.execute
    calls = {"n": 0}

    def flaky_execute(statement, params=None, *args, **kwargs):
        if isinstance(params, list):
            calls["n"] += 1
            if calls["n"] == 2:
                raise IntegrityError("INSERT INTO tickets", {}, Exception("duplicate key"))
        return real_execute(statement, params, *args, **kwargs)

    monkeypatch.setattr(db, "execute", flaky_execute)
    result = backfill.repair_campaign(db, "c1", batch_size=2)
    monkeypatch.undo()

    assert result.created == 4
    assert result.errors == 1
    failed = result.failed_batches[0]
    assert (failed.start, failed.end, failed.size) == (3, 4, 2)
    assert quota_numbers(db, "c1") == [1, 2, 5, 6]
    assert audit_entries(db, "backfill_campaign")[-1].status == models.LogStatus.WARNING.value

    retry = backfill.repair_campaign(db, "c1", batch_size=2)
    assert retry.created == 2
    assert quota_numbers(db, "c1") == [1, 2, 3, 4, 5, 6]


def test_candidates_and_statistics(db):
    create_campaign(db, campaign_id="full", total_tickets=3)
    create_campaign(db, campaign_id="small", total_tickets=2, with_tickets=False)
    create_campaign(db, campaign_id="big", total_tickets=10, with_tickets=False)
    db.add(models.Ticket(campaign_id="big", quota_number=1))
    db.commit()

    candidates = backfill.campaigns_needing_repair(db)
    assert [(c.campaign_id, c.missing_count) for c in candidates] == [("big", 9), ("small", 2)]

    stats = backfill.statistics(db)
    assert stats.total_campaigns == 3
    assert stats.campaigns_needing_backfill == 2
    assert stats.total_missing_tickets == 11
    assert stats.largest_missing_count == 9


def test_repair_all(db):
    create_campaign(db, campaign_id="a", total_tickets=3, with_tickets=False)
    create_campaign(db, campaign_id="b", total_tickets=2, with_tickets=False)
    outcome = backfill.repair_all(db, batch_size=1)
    assert outcome.campaigns_processed == 2
    assert outcome.total_created == 5
    assert outcome.total_errors == 0
    assert backfill.campaigns_needing_repair(db) == []

import pytest

from storefront.data.models.processed_event import EVENT_SUCCEEDED, EVENT_FAILED, EVENT_ERRORED
from storefront.domain.errors import EventAlreadyRecorded
from storefront.repos.event_repo import EventRepo


def test_record_then_get(db):
    repo = EventRepo(db)

    repo.record("evt_1", "charge.refunded", EVENT_FAILED, "No order found", payload={"id": "evt_1"})
    db.commit()

    row = repo.get("evt_1")
    assert row.status == EVENT_FAILED
    assert row.is_terminal
    assert row.error == "No order found"
    assert row.payload == {"id": "evt_1"}


def test_record_error_creates_non_terminal_row(db):
    repo = EventRepo(db)

    repo.record_error("evt_1", "checkout.session.completed", "RuntimeError: boom")

    row = repo.get("evt_1")
    assert row.status == EVENT_ERRORED
    assert not row.is_terminal
    assert "boom" in row.error


def test_record_error_never_downgrades_terminal_row(db):
    repo = EventRepo(db)
    repo.record("evt_1", "checkout.session.completed", EVENT_SUCCEEDED)
    db.commit()

    repo.record_error("evt_1", "checkout.session.completed", "late failure")

    row = repo.get("evt_1")
    assert row.status == EVENT_SUCCEEDED
    assert row.error is None


def test_record_upgrades_errored_row(db):
    repo = EventRepo(db)
    repo.record_error("evt_1", "checkout.session.completed", "first attempt failed")

    repo.record("evt_1", "checkout.session.completed", EVENT_SUCCEEDED)
    db.commit()

    row = repo.get("evt_1")
    assert row.status == EVENT_SUCCEEDED
    assert row.error is None


@pytest.mark.parametrize("terminal", [EVENT_SUCCEEDED, EVENT_FAILED])
def test_record_never_overwrites_terminal_row(db, terminal):
    repo = EventRepo(db)
    repo.record("evt_1", "charge.refunded", terminal, "first outcome")
    db.commit()

    with pytest.raises(EventAlreadyRecorded) as exc:
        repo.record("evt_1", "charge.refunded", EVENT_SUCCEEDED if terminal == EVENT_FAILED else EVENT_FAILED)
    db.rollback()

    assert exc.value.status == terminal
    row = repo.get("evt_1")
    assert row.status == terminal
    assert row.error == "first outcome"

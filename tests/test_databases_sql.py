"""
Tests for the storage helpers that guard class invariants.
"""
from datetime import timedelta

import pytest

import databases_sql
import ledger
from errors import NotFound, InvalidClassChange


class TestUpdateClassCapacity:

    def test_increment_stops_at_max_capacity(self, make_class):
        class_id = make_class(max_capacity=1)
        with databases_sql.transaction() as cur:
            assert databases_sql.update_class_capacity(cur, class_id, +1) is True
            assert databases_sql.update_class_capacity(cur, class_id, +1) is False
        assert databases_sql.get_class(class_id)["current_capacity"] == 1

    def test_decrement_stops_at_zero(self, make_class):
        class_id = make_class()
        with databases_sql.transaction() as cur:
            assert databases_sql.update_class_capacity(cur, class_id, -1) is False
        assert databases_sql.get_class(class_id)["current_capacity"] == 0

    def test_unknown_class_changes_nothing(self, db_path):
        with databases_sql.transaction() as cur:
            assert databases_sql.update_class_capacity(cur, 42, +1) is False


def test_transaction_rolls_back_on_error(make_class, make_member):
    class_id = make_class()
    user_id = make_member()

    with pytest.raises(RuntimeError):
        with databases_sql.transaction() as cur:
            databases_sql.update_class_capacity(cur, class_id, +1)
            databases_sql.insert_booking(cur, user_id, class_id, "confirmed", "2030-01-01T00:00:00+00:00")
            raise RuntimeError("boom")

    assert databases_sql.get_class(class_id)["current_capacity"] == 0
    assert databases_sql.count_bookings(class_id) == 0


def test_update_booking_status_respects_expected_status(make_class, make_member):
    booking = ledger.create_booking(make_member(), make_class())
    with databases_sql.transaction() as cur:
        assert databases_sql.update_booking_status(cur, booking["id"], "cancelled", expected_status="waitlist") is False
        assert databases_sql.update_booking_status(cur, booking["id"], "cancelled", expected_status="confirmed") is True
    assert databases_sql.get_booking(booking["id"])["status"] == "cancelled"


class TestUpdateClass:

    def test_edits_fields(self, make_class):
        class_id = make_class(max_capacity=5)
        updated = databases_sql.update_class(class_id, {"title": "Power Yoga", "max_capacity": 8, "price": "18.50"})
        assert updated["title"] == "Power Yoga"
        assert updated["max_capacity"] == 8
        assert updated["price"] == "18.50"
        assert updated["current_capacity"] == 0

    def test_cannot_shrink_below_confirmed_bookings(self, make_class, make_member):
        class_id = make_class(max_capacity=3)
        ledger.create_booking(make_member(), class_id)
        ledger.create_booking(make_member(), class_id)

        with pytest.raises(InvalidClassChange):
            databases_sql.update_class(class_id, {"max_capacity": 1})

        assert databases_sql.update_class(class_id, {"max_capacity": 2})["max_capacity"] == 2

    def test_rejects_end_before_start(self, make_class):
        class_id = make_class()
        start = databases_sql.get_class(class_id)["start_utc"]
        with pytest.raises(InvalidClassChange):
            databases_sql.update_class(class_id, {"end_utc": start})

    def test_current_capacity_is_not_editable(self, make_class):
        class_id = make_class()
        with pytest.raises(InvalidClassChange):
            databases_sql.update_class(class_id, {"current_capacity": 1})

    def test_unknown_class(self, db_path):
        with pytest.raises(NotFound):
            databases_sql.update_class(7, {"title": "Yin"})

    def test_unknown_instructor(self, make_class):
        class_id = make_class()
        with pytest.raises(NotFound):
            databases_sql.update_class(class_id, {"instructor_id": 999})


def test_insert_class_requires_instructor(db_path):
    with pytest.raises(NotFound):
        databases_sql.insert_class(
            "Hatha", "desc", 999, "2030-01-01T07:00:00+00:00", "2030-01-01T08:00:00+00:00", 10, "12.00",
        )


def test_delete_unknown_class(db_path):
    with pytest.raises(NotFound):
        databases_sql.delete_class(3)


def test_upcoming_classes_skip_started_ones(make_class):
    past_id = make_class(starts_in=timedelta(hours=-2), title="Early Flow")
    future_id = make_class(title="Evening Yin")

    now = databases_sql.get_class(past_id)["end_utc"]
    upcoming = databases_sql.list_upcoming_classes(now)

    assert [c["id"] for c in upcoming] == [future_id]
    assert upcoming[0]["instructor_name"] == "Arjun Mehta"


def test_booking_listings(make_class, make_member):
    class_id = make_class()
    user_id = make_member()
    booking = ledger.create_booking(user_id, class_id)

    [for_user] = databases_sql.list_bookings_for_user(user_id)
    [for_class] = databases_sql.list_bookings_for_class(class_id)

    assert for_user["id"] == for_class["id"] == booking["id"]
    assert for_user["class_title"] == "Hatha Yoga"
    assert for_user["user_email"] == "member1@example.com"
    assert len(databases_sql.list_bookings()) == 1


def test_insert_class_rejects_start_not_before_end(instructor_id):
    with pytest.raises(InvalidClassChange):
        databases_sql.insert_class(
            "Hatha", "desc", instructor_id, "2030-01-01T07:00:00+00:00", "2030-01-01T07:00:00+00:00", 10, "12.00",
        )
    assert databases_sql.list_classes() == []

"""Tests for SubscriptionStore - in-memory subscription storage."""

from datetime import datetime, timedelta, timezone
from threading import Thread

import pytest

from subscription_sync.models.subscription import SubscriptionRecord, SubscriptionStatus
from subscription_sync.repositories.subscription_store import (
    DuplicateSubscriptionError,
    StaleWriteError,
    SubscriptionNotFoundError,
)

NOW = datetime(2026, 10, 1, tzinfo=timezone.utc)


def make_record(
    record_id: int,
    external_id: str,
    user_id: str = "user-a",
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    updated_at: datetime = NOW,
) -> SubscriptionRecord:
    return SubscriptionRecord(
        id=record_id,
        user_id=user_id,
        plan_id=7,
        external_subscription_id=external_id,
        status=status,
        created_at=NOW,
        updated_at=updated_at,
    )


class TestSubscriptionStoreBasics:
    """Test basic store functionality."""

    def test_store_initializes_empty(self, store):
        """Test that new store is empty."""
        assert store.count() == 0
        assert len(store) == 0
        assert store.get_all() == []

    def test_add_subscription(self, store):
        store.add(make_record(1, "sub_1"))
        assert store.count() == 1
        assert store.exists("sub_1")
        assert "sub_1" in store

    def test_add_duplicate_external_id_raises_error(self, store):
        """Test that the external id index is unique."""
        store.add(make_record(1, "sub_1"))
        with pytest.raises(DuplicateSubscriptionError):
            store.add(make_record(2, "sub_1"))
        assert store.count() == 1

    def test_add_duplicate_record_id_raises_error(self, store):
        store.add(make_record(1, "sub_1"))
        with pytest.raises(ValueError):
            store.add(make_record(1, "sub_2"))

    def test_next_id_is_unique(self, store):
        first = store.next_id()
        second = store.next_id()
        assert second == first + 1

    def test_next_id_skips_inserted_ids(self, store):
        store.add(make_record(5, "sub_5"))
        assert store.next_id() == 6

    def test_returned_records_are_copies(self, store):
        """Test that mutating a returned record does not change the store."""
        store.add(make_record(1, "sub_1"))
        record = store.get_by_external_id("sub_1")
        record.status = SubscriptionStatus.CANCELED

        assert store.get_by_external_id("sub_1").status == SubscriptionStatus.ACTIVE

    def test_clear(self, store):
        store.add(make_record(1, "sub_1"))
        store.clear()
        assert store.count() == 0
        assert not store.exists("sub_1")
        assert store.next_id() == 1


class TestSubscriptionStoreLookups:
    """Test store queries."""

    def test_get_by_id(self, store):
        store.add(make_record(1, "sub_1"))
        assert store.get_by_id(1).external_subscription_id == "sub_1"

    def test_get_by_id_missing_raises(self, store):
        with pytest.raises(SubscriptionNotFoundError):
            store.get_by_id(42)

    def test_find_by_external_id_missing_returns_none(self, store):
        assert store.find_by_external_id("sub_missing") is None

    def test_get_by_external_id_missing_raises(self, store):
        with pytest.raises(SubscriptionNotFoundError):
            store.get_by_external_id("sub_missing")

    def test_get_by_user(self, store):
        store.add(make_record(1, "sub_1"))
        store.add(make_record(2, "sub_2", status=SubscriptionStatus.CANCELED))
        store.add(make_record(3, "sub_3", user_id="user-b"))

        assert {r.external_subscription_id for r in store.get_by_user("user-a")} == {"sub_1", "sub_2"}

    def test_find_active_by_user_orders_by_recency(self, store):
        store.add(make_record(1, "sub_old"))
        store.add(make_record(2, "sub_new", updated_at=NOW + timedelta(minutes=1)))
        store.add(make_record(3, "sub_gone", status=SubscriptionStatus.CANCELED))

        active = store.find_active_by_user("user-a")

        assert [r.external_subscription_id for r in active] == ["sub_new", "sub_old"]

    def test_has_active(self, store):
        store.add(make_record(1, "sub_1", status=SubscriptionStatus.PAST_DUE))
        assert not store.has_active("user-a")

        store.add(make_record(2, "sub_2"))
        assert store.has_active("user-a")
        assert not store.has_active("user-b")

    def test_count_by_status(self, store):
        store.add(make_record(1, "sub_1"))
        store.add(make_record(2, "sub_2", status=SubscriptionStatus.CANCELED))
        store.add(make_record(3, "sub_3", status=SubscriptionStatus.CANCELED))

        assert store.count_by_status(SubscriptionStatus.ACTIVE) == 1
        assert store.count_by_status(SubscriptionStatus.CANCELED) == 2

    def test_get_statistics(self, store):
        store.add(make_record(1, "sub_1"))
        store.add(make_record(2, "sub_2", user_id="user-b", status=SubscriptionStatus.UNPAID))

        stats = store.get_statistics()

        assert stats["total_subscriptions"] == 2
        assert stats["unique_users"] == 2
        assert stats["active"] == 1
        assert stats["unpaid"] == 1
        assert stats["canceled"] == 0


class TestSubscriptionStoreUpdates:
    """Test update semantics."""

    def test_update(self, store):
        store.add(make_record(1, "sub_1"))
        record = store.get_by_id(1)
        record.set_status(SubscriptionStatus.PAST_DUE)
        record.touch(NOW + timedelta(seconds=1))

        store.update(record)

        assert store.get_by_id(1).status == SubscriptionStatus.PAST_DUE

    def test_update_missing_raises(self, store):
        with pytest.raises(SubscriptionNotFoundError):
            store.update(make_record(1, "sub_1"))

    def test_update_cannot_change_external_id(self, store):
        store.add(make_record(1, "sub_1"))
        with pytest.raises(ValueError):
            store.update(make_record(1, "sub_other"))

    def test_update_rejects_regressing_updated_at(self, store):
        """Test that updated_at never moves backwards."""
        store.add(make_record(1, "sub_1", updated_at=NOW))
        with pytest.raises(StaleWriteError):
            store.update(make_record(1, "sub_1", updated_at=NOW - timedelta(seconds=1)))


class TestAddSuperseding:
    """Test atomic cancel-and-insert."""

    def test_cancels_superseded_and_inserts(self, store):
        store.add(make_record(1, "sub_1"))
        stale = store.get_by_id(1)
        later = NOW + timedelta(seconds=10)

        canceled = store.add_superseding(make_record(2, "sub_2"), [stale], later)

        assert [c.external_subscription_id for c in canceled] == ["sub_1"]
        old = store.get_by_external_id("sub_1")
        assert old.status == SubscriptionStatus.CANCELED
        assert old.updated_at == later
        assert store.get_by_external_id("sub_2").status == SubscriptionStatus.ACTIVE

    def test_skips_records_no_longer_active(self, store):
        store.add(make_record(1, "sub_1"))
        stale = store.get_by_id(1)
        current = store.get_by_id(1)
        current.set_status(SubscriptionStatus.PAST_DUE)
        store.update(current)

        canceled = store.add_superseding(make_record(2, "sub_2"), [stale], NOW)

        assert canceled == []
        assert store.get_by_external_id("sub_1").status == SubscriptionStatus.PAST_DUE

    def test_duplicate_insert_leaves_superseded_untouched(self, store):
        """Test that a failed insert cancels nothing."""
        store.add(make_record(1, "sub_1"))
        store.add(make_record(2, "sub_2"))
        stale = store.get_by_id(1)

        with pytest.raises(DuplicateSubscriptionError):
            store.add_superseding(make_record(3, "sub_2"), [stale], NOW)

        assert store.get_by_external_id("sub_1").status == SubscriptionStatus.ACTIVE


class TestSubscriptionStoreThreadSafety:
    """Test concurrent access."""

    def test_concurrent_adds_of_same_external_id(self, store):
        """Test that only one of many concurrent inserts wins."""
        errors = []

        def add(record_id):
            try:
                store.add(make_record(record_id, "sub_contended"))
            except DuplicateSubscriptionError as e:
                errors.append(e)

        threads = [Thread(target=add, args=(store.next_id(),)) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.count() == 1
        assert len(errors) == 9

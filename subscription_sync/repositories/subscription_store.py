"""Subscription store - in-memory storage for subscription records.

Holds one record per provider subscription, indexed by record id and by
external subscription id. The external id index is unique.
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional

from subscription_sync.models.subscription import SubscriptionRecord, SubscriptionStatus


class SubscriptionNotFoundError(Exception):
    """Raised when a subscription is not found in the store."""

    pass


class DuplicateSubscriptionError(Exception):
    """Raised when inserting a second record for the same external subscription id."""

    pass


class StaleWriteError(Exception):
    """Raised when a write would move a record's updated_at backwards."""

    pass


class SubscriptionStore:
    """Thread-safe in-memory storage for subscription records.

    Records handed out are copies; changes reach the store only through
    ``add``, ``update`` or ``add_superseding``.
    """

    def __init__(self):
        """Initialize subscription store with empty storage."""
        self._records: Dict[int, SubscriptionRecord] = {}
        self._by_external_id: Dict[str, int] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    def next_id(self) -> int:
        """Reserve the next record identifier."""
        with self._lock:
            record_id = self._next_id
            self._next_id += 1
            return record_id

    def add(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Insert a new record.

        Args:
            record: SubscriptionRecord to store

        Returns:
            Copy of the stored record

        Raises:
            DuplicateSubscriptionError: If the external subscription id already exists
            ValueError: If the record id is already taken
        """
        with self._lock:
            self._check_insertable(record)
            self._put(record)
            return record.model_copy()

    def add_superseding(
        self,
        record: SubscriptionRecord,
        superseded: List[SubscriptionRecord],
        now: datetime,
    ) -> List[SubscriptionRecord]:
        """Cancel superseded ACTIVE records and insert a new record in one step.

        Either every write happens or none does. Superseded records that are no
        longer ACTIVE by the time the lock is taken are left untouched.

        Args:
            record: New record to insert
            superseded: Records to transition from ACTIVE to CANCELED
            now: Timestamp for the cancellations

        Returns:
            Copies of the records that were actually canceled

        Raises:
            DuplicateSubscriptionError: If the new record's external id already exists
        """
        with self._lock:
            self._check_insertable(record)

            canceled = []
            for stale in superseded:
                current = self._records.get(stale.id)
                if current is None or not current.is_active():
                    continue
                updated = current.model_copy()
                updated.set_status(
                    SubscriptionStatus.CANCELED,
                    reason=f"Superseded by {record.external_subscription_id}",
                )
                updated.touch(now)
                canceled.append(updated)

            for updated in canceled:
                self._records[updated.id] = updated
            self._put(record)
            return [c.model_copy() for c in canceled]

    def _check_insertable(self, record: SubscriptionRecord) -> None:
        if record.external_subscription_id in self._by_external_id:
            raise DuplicateSubscriptionError(
                f"Subscription with external id '{record.external_subscription_id}' already exists"
            )
        if record.id in self._records:
            raise ValueError(f"Subscription record id {record.id} already exists")

    def _put(self, record: SubscriptionRecord) -> None:
        stored = record.model_copy()
        self._records[stored.id] = stored
        self._by_external_id[stored.external_subscription_id] = stored.id
        self._next_id = max(self._next_id, stored.id + 1)

    def update(self, record: SubscriptionRecord) -> SubscriptionRecord:
        """Replace an existing record.

        Args:
            record: Updated SubscriptionRecord

        Returns:
            Copy of the stored record

        Raises:
            SubscriptionNotFoundError: If the record id is not stored
            ValueError: If the external subscription id was changed
            StaleWriteError: If updated_at would move backwards
        """
        with self._lock:
            current = self._records.get(record.id)
            if current is None:
                raise SubscriptionNotFoundError(f"Subscription not found for id: {record.id}")
            if current.external_subscription_id != record.external_subscription_id:
                raise ValueError("external_subscription_id of a record cannot change")
            if record.updated_at < current.updated_at:
                raise StaleWriteError(
                    f"updated_at for subscription {record.id} would move backwards"
                )
            self._records[record.id] = record.model_copy()
            return record.model_copy()

    def get_by_id(self, record_id: int) -> SubscriptionRecord:
        """Get a record by id.

        Raises:
            SubscriptionNotFoundError: If id not found
        """
        with self._lock:
            record = self._records.get(record_id)
            if record is None:
                raise SubscriptionNotFoundError(f"Subscription not found for id: {record_id}")
            return record.model_copy()

    def find_by_external_id(self, external_subscription_id: str) -> Optional[SubscriptionRecord]:
        """Find a record by external subscription id (returns None if not found)."""
        with self._lock:
            record_id = self._by_external_id.get(external_subscription_id)
            if record_id is None:
                return None
            return self._records[record_id].model_copy()

    def get_by_external_id(self, external_subscription_id: str) -> SubscriptionRecord:
        """Get a record by external subscription id.

        Raises:
            SubscriptionNotFoundError: If not found
        """
        record = self.find_by_external_id(external_subscription_id)
        if record is None:
            raise SubscriptionNotFoundError(
                f"Subscription not found for external id: {external_subscription_id}"
            )
        return record

    def get_by_user(self, user_id: str) -> List[SubscriptionRecord]:
        """Get all records of a user, oldest first."""
        with self._lock:
            return [r.model_copy() for r in self._records.values() if r.user_id == user_id]

    def find_active_by_user(self, user_id: str) -> List[SubscriptionRecord]:
        """Get the user's ACTIVE records, most recently updated first."""
        with self._lock:
            active = [
                r.model_copy()
                for r in self._records.values()
                if r.user_id == user_id and r.is_active()
            ]
        return sorted(active, key=lambda r: r.updated_at, reverse=True)

    def has_active(self, user_id: str) -> bool:
        """Check whether the user has at least one ACTIVE record."""
        with self._lock:
            return any(r.user_id == user_id and r.is_active() for r in self._records.values())

    def exists(self, external_subscription_id: str) -> bool:
        with self._lock:
            return external_subscription_id in self._by_external_id

    def get_all(self) -> List[SubscriptionRecord]:
        with self._lock:
            return [r.model_copy() for r in self._records.values()]

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def count_by_status(self, status: SubscriptionStatus) -> int:
        with self._lock:
            return sum(1 for r in self._records.values() if r.status == status)

    def clear(self) -> None:
        """Clear all records.

        Warning: This removes all data. Use with caution.
        """
        with self._lock:
            self._records.clear()
            self._by_external_id.clear()
            self._next_id = 1

    def get_statistics(self) -> Dict[str, int]:
        """Get store statistics: total records, unique users and a count per status."""
        with self._lock:
            records = list(self._records.values())
        stats = {
            "total_subscriptions": len(records),
            "unique_users": len(set(r.user_id for r in records)),
        }
        for status in SubscriptionStatus:
            stats[status.value.lower()] = sum(1 for r in records if r.status == status)
        return stats

    def __len__(self) -> int:
        return self.count()

    def __contains__(self, external_subscription_id: str) -> bool:
        return self.exists(external_subscription_id)

    def __repr__(self) -> str:
        return f"SubscriptionStore(subscriptions={self.count()})"

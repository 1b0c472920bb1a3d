"""User repository - in-memory directory of users keyed by email.

Stands in for the user system at its boundary; user CRUD lives elsewhere.
"""

import threading
from typing import Dict, Iterable, List, Optional

from subscription_sync.models import UserRecord


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository:
    """Thread-safe lookup of users by id and by email (case-insensitive)."""

    def __init__(self, users: Optional[Iterable[UserRecord]] = None):
        self._users_by_id: Dict[str, UserRecord] = {}
        self._ids_by_email: Dict[str, str] = {}
        self._lock = threading.RLock()
        for user in users or []:
            self.add(user)

    def add(self, user: UserRecord) -> None:
        """Add a user.

        Raises:
            ValueError: If the id or email is already registered
        """
        email = normalize_email(user.email)
        with self._lock:
            if user.id in self._users_by_id:
                raise ValueError(f"User with id '{user.id}' already exists")
            if email in self._ids_by_email:
                raise ValueError(f"User with email '{user.email}' already exists")
            self._users_by_id[user.id] = user
            self._ids_by_email[email] = user.id

    def find_by_email(self, email: Optional[str]) -> Optional[UserRecord]:
        """Find user by email (returns None if not found or email is empty)."""
        if not email:
            return None
        with self._lock:
            user_id = self._ids_by_email.get(normalize_email(email))
            return self._users_by_id.get(user_id) if user_id else None

    def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        with self._lock:
            return self._users_by_id.get(user_id)

    def get_all(self) -> List[UserRecord]:
        with self._lock:
            return list(self._users_by_id.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._users_by_id)

    def __repr__(self) -> str:
        return f"UserRepository(users={len(self)})"

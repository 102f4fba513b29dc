import logging
from datetime import datetime, timezone
from enum import Enum

from movieverse.client.identity import MovieRecord

logger = logging.getLogger(__name__)

SYNC_STATUS_KEY = "movieverse_sync_status"


class SyncState(Enum):
    CLEAN = "clean"
    PENDING_ADDS = "pending_adds"
    PENDING_REMOVES = "pending_removes"
    PENDING_BOTH = "pending_both"


def utc_now():
    return datetime.now(timezone.utc)


def empty_entry():
    return {"pendingAdds": [], "pendingRemoves": [], "lastSyncedAt": None}


class SyncQueue:
    """
    Per-user queue of favorite mutations that still have to reach the remote store.

    Entries live in local storage under ``movieverse_sync_status`` and survive
    restarts until a replay drains them. Queuing an add for an identifier
    drops a pending remove for it and the other way round, so only the most
    recent intent is kept.

    Args:
        storage (LocalStorage): Durable key/value storage.
        clock (Callable[[], datetime] | None): Source of ``lastSyncedAt`` timestamps.
    """

    def __init__(self, storage, clock=None):
        self.storage = storage
        self.clock = clock or utc_now

    def _all(self):
        data = self.storage.get_item(SYNC_STATUS_KEY, {})
        return data if isinstance(data, dict) else {}

    def get(self, user_id: str):
        """
        Return the queue entry of a user.

        Args:
            user_id (str): User key.

        Returns:
            dict: ``pendingAdds``, ``pendingRemoves`` and ``lastSyncedAt``.
        """
        entry = self._all().get(user_id)
        if not isinstance(entry, dict):
            return empty_entry()
        return {
            "pendingAdds": [item for item in entry.get("pendingAdds") or [] if isinstance(item, dict)],
            "pendingRemoves": [str(item) for item in entry.get("pendingRemoves") or []],
            "lastSyncedAt": entry.get("lastSyncedAt"),
        }

    def _save(self, user_id: str, entry: dict):
        data = self._all()
        data[user_id] = entry
        return self.storage.set_item(SYNC_STATUS_KEY, data)

    def state(self, user_id: str):
        """
        Report where the user's queue stands.

        Args:
            user_id (str): User key.

        Returns:
            SyncState: Clean when both lists are empty.
        """
        entry = self.get(user_id)
        has_adds = bool(entry["pendingAdds"])
        has_removes = bool(entry["pendingRemoves"])
        if has_adds and has_removes:
            return SyncState.PENDING_BOTH
        if has_adds:
            return SyncState.PENDING_ADDS
        if has_removes:
            return SyncState.PENDING_REMOVES
        return SyncState.CLEAN

    def pending_adds(self, user_id: str):
        return [MovieRecord.from_dict(item) for item in self.get(user_id)["pendingAdds"]]

    def pending_removes(self, user_id: str):
        return list(self.get(user_id)["pendingRemoves"])

    def enqueue_add(self, user_id: str, record: MovieRecord):
        """
        Queue an add, cancelling a pending remove of the same identifier.

        Args:
            user_id (str): User key.
            record (MovieRecord): Normalized movie.

        Returns:
            bool: True when the queue was persisted.
        """
        entry = self.get(user_id)
        movie_id = record.canonical_id
        entry["pendingRemoves"] = [item for item in entry["pendingRemoves"] if item != movie_id]
        if not any(item.get("canonicalId") == movie_id for item in entry["pendingAdds"]):
            entry["pendingAdds"].append(record.to_dict())
        logger.info("queued add of %s for %s", movie_id, user_id)
        return self._save(user_id, entry)

    def enqueue_remove(self, user_id: str, movie_id: str):
        """
        Queue a remove, cancelling a pending add of the same identifier.

        Args:
            user_id (str): User key.
            movie_id (str): Identifier to remove remotely.

        Returns:
            bool: True when the queue was persisted.
        """
        entry = self.get(user_id)
        entry["pendingAdds"] = [item for item in entry["pendingAdds"] if item.get("canonicalId") != movie_id]
        if movie_id not in entry["pendingRemoves"]:
            entry["pendingRemoves"].append(movie_id)
        logger.info("queued remove of %s for %s", movie_id, user_id)
        return self._save(user_id, entry)

    def cancel(self, user_id: str, movie_ids):
        """
        Forget pending mutations settled by a direct remote call.

        Args:
            user_id (str): User key.
            movie_ids (Iterable[str]): Identifiers whose queued add or remove is now stale.

        Returns:
            bool: True when something was dropped and the queue was persisted.
        """
        movie_ids = {movie_id for movie_id in movie_ids if movie_id}
        entry = self.get(user_id)
        adds = [item for item in entry["pendingAdds"] if item.get("canonicalId") not in movie_ids]
        removes = [item for item in entry["pendingRemoves"] if item not in movie_ids]
        if len(adds) == len(entry["pendingAdds"]) and len(removes) == len(entry["pendingRemoves"]):
            return False
        entry["pendingAdds"] = adds
        entry["pendingRemoves"] = removes
        logger.info("dropped stale queued mutations of %s for %s", sorted(movie_ids), user_id)
        return self._save(user_id, entry)

    def mark_synced(self, user_id: str, added_ids=(), removed_ids=()):
        """
        Drop replayed items and stamp the sync attempt.

        ``lastSyncedAt`` records that a sync was attempted, so it is updated
        even when nothing was drained.

        Args:
            user_id (str): User key.
            added_ids (Iterable[str]): Identifiers whose add reached the remote store.
            removed_ids (Iterable[str]): Identifiers whose remove reached the remote store.

        Returns:
            str: The new ``lastSyncedAt`` value.
        """
        added_ids = set(added_ids)
        removed_ids = set(removed_ids)
        entry = self.get(user_id)
        entry["pendingAdds"] = [item for item in entry["pendingAdds"] if item.get("canonicalId") not in added_ids]
        entry["pendingRemoves"] = [item for item in entry["pendingRemoves"] if item not in removed_ids]
        entry["lastSyncedAt"] = self.clock().isoformat()
        self._save(user_id, entry)
        return entry["lastSyncedAt"]

    def reset(self, user_id: str):
        """Forget every pending mutation of a user, keeping ``lastSyncedAt``."""
        entry = self.get(user_id)
        entry["pendingAdds"] = []
        entry["pendingRemoves"] = []
        return self._save(user_id, entry)

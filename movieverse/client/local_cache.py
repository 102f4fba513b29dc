import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from movieverse.client.identity import MovieRecord, normalize_movie
from movieverse.client.matching import is_favorite

logger = logging.getLogger(__name__)

STORAGE_PATH = os.getenv("MOVIEVERSE_STORAGE_PATH", str(Path.home() / ".movieverse" / "local_storage.json"))
FAVORITES_KEY = "movieverse_favorites"


class LocalStorage:
    """
    Durable key/value storage backed by a single JSON file.

    Reads never raise: a missing, unreadable or corrupt file reads as empty.
    Writes report failure by returning False.

    Args:
        path (str | Path): Location of the JSON file.
    """

    def __init__(self, path: str | Path = STORAGE_PATH):
        self.path = Path(path)

    def _read_all(self):
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            logger.error("could not read local storage %s: %s", self.path, exc)
            return {}
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except ValueError as exc:
            logger.error("local storage %s is not valid JSON: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def get_item(self, key: str, default=None):
        return self._read_all().get(key, default)

    def set_item(self, key: str, value):
        """
        Persist one key.

        Args:
            key (str): Storage key.
            value (Any): JSON-serializable value.

        Returns:
            bool: True when the file was written.
        """
        data = self._read_all()
        data[key] = value
        try:
            payload = json.dumps(data, ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as exc:
            logger.error("could not serialize local storage key %s: %s", key, exc)
            return False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.error("could not write local storage %s: %s", self.path, exc)
            return False
        return True


class LocalFavoritesCache:
    """
    Local, synchronous mirror of a user's favorites.

    Users are keyed by whatever key the caller passes (email or id); the two
    are not reconciled. Mutations are also recorded in the sync queue unless
    ``enqueue=False`` is given, which callers use when the remote store
    already reflects the change.

    Args:
        storage (LocalStorage): Durable key/value storage.
        queue (SyncQueue | None): Queue receiving mutations for later replay.
    """

    def __init__(self, storage: LocalStorage, queue=None):
        self.storage = storage
        self.queue = queue

    def _all(self):
        data = self.storage.get_item(FAVORITES_KEY, {})
        return data if isinstance(data, dict) else {}

    def _entries(self, user_id: str):
        entries = self._all().get(user_id)
        return [entry for entry in entries or [] if isinstance(entry, dict)]

    def _save(self, user_id: str, entries: list):
        data = self._all()
        data[user_id] = entries
        return self.storage.set_item(FAVORITES_KEY, data)

    def list(self, user_id: str):
        """
        Return the locally stored favorites of a user.

        Args:
            user_id (str): User key.

        Returns:
            list[MovieRecord]: Stored favorites in insertion order.
        """
        if not user_id:
            logger.warning("no user key given for local favorites")
            return []
        return [MovieRecord.from_dict(entry) for entry in self._entries(user_id)]

    def ids(self, user_id: str):
        return {entry.get("canonicalId") for entry in self._entries(user_id)}

    def add(self, user_id: str, movie, enqueue: bool = True):
        """
        Store a favorite locally.

        Args:
            user_id (str): User key.
            movie (dict | MovieRecord): Movie to store.
            enqueue (bool): Queue the add for replay against the remote store.

        Returns:
            bool: True when stored; False when invalid, already present or unwritable.
        """
        record = normalize_movie(movie)
        if not user_id or not record.canonical_id:
            logger.error("missing user key or movie id for local add")
            return False

        entries = self._entries(user_id)
        if any(entry.get("canonicalId") == record.canonical_id for entry in entries):
            logger.info("movie %s already in local favorites of %s", record.canonical_id, user_id)
            return False

        stored = record.to_dict()
        stored["addedAt"] = record.added_at or datetime.now(timezone.utc).isoformat()
        entries.append(stored)
        if not self._save(user_id, entries):
            return False
        if enqueue and self.queue is not None:
            self.queue.enqueue_add(user_id, MovieRecord.from_dict(stored))
        return True

    def remove(self, user_id: str, movie_id: str, enqueue: bool = True):
        """
        Remove a favorite locally by identifier.

        Args:
            user_id (str): User key.
            movie_id (str): Identifier to remove.
            enqueue (bool): Queue the remove for replay against the remote store.

        Returns:
            bool: True when an entry was removed.
        """
        if not user_id or not movie_id:
            logger.error("missing user key or movie id for local remove")
            return False

        entries = self._entries(user_id)
        remaining = [entry for entry in entries if entry.get("canonicalId") != movie_id]
        if len(remaining) == len(entries):
            logger.info("movie %s not in local favorites of %s", movie_id, user_id)
            return False
        if not self._save(user_id, remaining):
            return False
        if enqueue and self.queue is not None:
            self.queue.enqueue_remove(user_id, movie_id)
        return True

    def clear(self, user_id: str, enqueue: bool = True):
        """
        Remove every local favorite of a user.

        Args:
            user_id (str): User key.
            enqueue (bool): Queue a remove for each cleared identifier.

        Returns:
            int: Number of cleared entries.
        """
        entries = self._entries(user_id)
        if not entries:
            return 0
        if not self._save(user_id, []):
            return 0
        if enqueue and self.queue is not None:
            for entry in entries:
                if entry.get("canonicalId"):
                    self.queue.enqueue_remove(user_id, entry["canonicalId"])
        return len(entries)

    def is_favorite(self, user_id: str, movie, index=None):
        """
        Check a movie against the local favorites with the matching strategies.

        Args:
            user_id (str): User key.
            movie (dict | MovieRecord): Candidate movie.
            index (IdentityIndex | None): Known identifier aliases.

        Returns:
            bool: True when the movie is a local favorite.
        """
        if not user_id or movie is None:
            return False
        return is_favorite(movie, self.list(user_id), index)

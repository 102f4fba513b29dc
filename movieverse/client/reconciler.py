"""
Favorites reconciliation between the remote store and the local cache.

The remote favorites service is the system of record. The local cache is an
advisory mirror that takes over when the service cannot be reached; every
mutation applied only locally is queued and replayed later. On session load
the queue is replayed first and the remote list is then merged into the
local cache, remote to local only.
"""
import logging
from threading import Lock

from movieverse.client.identity import IdentityIndex, normalize_movie
from movieverse.client.matching import find_favorite, same_title_year
from movieverse.constants import is_missing
from movieverse.errors import DuplicateError, NotFoundError, TransientStoreError, ValidationError

logger = logging.getLogger(__name__)

SOURCE_REMOTE = "remote"
SOURCE_LOCAL = "local"


class FavoriteResult:
    """Outcome of a favorite mutation as shown to the user."""

    def __init__(self, success: bool, source: str | None, message: str):
        self.success = success
        self.source = source
        self.message = message

    def __repr__(self):
        return f"FavoriteResult(success={self.success}, source={self.source!r}, message={self.message!r})"


class ReplayReport:
    """Identifiers that did and did not reach the remote store during a replay."""

    def __init__(self):
        self.added = []
        self.failed_adds = []
        self.rejected_adds = []
        self.removed = []
        self.failed_removes = []
        self.last_synced_at = None

    @property
    def synced_count(self):
        return len(self.added) + len(self.removed)

    @property
    def failed_count(self):
        return len(self.failed_adds) + len(self.failed_removes)


class FavoritesReconciler:
    """
    Owns the fallback policy between the remote store and the local cache.

    Args:
        remote (RemoteFavoritesStore): System of record.
        local (LocalFavoritesCache): Local mirror; its queue records fallbacks.
        queue (SyncQueue): Pending mutations per user.
        index (IdentityIndex | None): Alias table shared with the matching engine.
    """

    def __init__(self, remote, local, queue, index: IdentityIndex | None = None):
        self.remote = remote
        self.local = local
        self.queue = queue
        self.index = index if index is not None else IdentityIndex()
        self._in_flight = set()
        self._in_flight_lock = Lock()

    def observe(self, movies):
        """
        Register identifiers of records seen on any page.

        Args:
            movies (Iterable[dict | MovieRecord]): Records to learn aliases from.
        """
        for movie in movies:
            self.index.register(movie)

    def favorites(self, user_id: str):
        return self.local.list(user_id)

    def is_favorite(self, user_id: str, movie):
        if not user_id or movie is None:
            return False
        return self.local.is_favorite(user_id, movie, self.index)

    def add(self, user_id: str, movie):
        """
        Add a favorite, remote first with local fallback.

        Args:
            user_id (str): User key.
            movie (dict | MovieRecord): Movie from any source.

        Returns:
            FavoriteResult: Outcome for the UI.
        """
        if not user_id:
            return FavoriteResult(False, None, "Please login first")
        if movie is None:
            return FavoriteResult(False, None, "Invalid movie data")

        record = normalize_movie(movie)
        if not record.canonical_id:
            return FavoriteResult(False, None, "Invalid movie ID")
        self.index.register(record)

        if self.is_favorite(user_id, record):
            return FavoriteResult(False, SOURCE_LOCAL, "Already in favorites")

        try:
            created = self.remote.add(user_id, record)
        except DuplicateError as exc:
            existing = normalize_movie(exc.existing) if exc.existing else record
            self.index.register(existing)
            self.local.add(user_id, existing, enqueue=False)
            self.queue.cancel(user_id, [record.canonical_id, existing.canonical_id])
            return FavoriteResult(False, SOURCE_REMOTE, exc.message or "Already in favorites")
        except ValidationError as exc:
            return FavoriteResult(False, SOURCE_REMOTE, exc.message)
        except TransientStoreError as exc:
            logger.warning("remote add of %s failed, keeping it locally: %s", record.canonical_id, exc)
            if self.local.add(user_id, record):
                return FavoriteResult(True, SOURCE_LOCAL, "Saved offline, will sync later")
            return FavoriteResult(False, SOURCE_LOCAL, "Failed to add to favorites")

        stored = normalize_movie(created) if created else record
        if not stored.canonical_id:
            stored = record
        self.local.add(user_id, stored, enqueue=False)
        self.queue.cancel(user_id, [record.canonical_id, stored.canonical_id])
        return FavoriteResult(True, SOURCE_REMOTE, "Added to favorites")

    def remove(self, user_id: str, movie):
        """
        Remove a favorite, remote first with local fallback.

        Args:
            user_id (str): User key.
            movie (str | dict | MovieRecord): Movie or identifier to remove.

        Returns:
            FavoriteResult: Outcome for the UI.
        """
        if not user_id or movie is None:
            return FavoriteResult(False, None, "Invalid request")

        if isinstance(movie, str):
            record = normalize_movie({"movieId": movie})
        else:
            record = normalize_movie(movie)
        if not record.canonical_id:
            return FavoriteResult(False, None, "Invalid movie ID")

        local_entries = self.local.list(user_id)
        stored = find_favorite(record, local_entries, self.index)
        movie_id = stored.canonical_id if stored else record.canonical_id

        try:
            self.remote.remove(user_id, movie_id)
        except NotFoundError as exc:
            self._settle_remove(user_id, record, movie_id, local_entries)
            return FavoriteResult(False, SOURCE_REMOTE, exc.message or "Favorite not found")
        except TransientStoreError as exc:
            logger.warning("remote remove of %s failed, removing it locally: %s", movie_id, exc)
            if not self.local.remove(user_id, movie_id):
                self.queue.enqueue_remove(user_id, movie_id)
            return FavoriteResult(True, SOURCE_LOCAL, "Removed offline, will sync later")

        self._settle_remove(user_id, record, movie_id, local_entries)
        return FavoriteResult(True, SOURCE_REMOTE, "Removed from favorites")

    def _settle_remove(self, user_id: str, record, movie_id: str, local_entries):
        settled = [record.canonical_id, movie_id]
        for entry in local_entries:
            if entry.canonical_id == movie_id or (not is_missing(record.title) and same_title_year(record, entry)):
                self.local.remove(user_id, entry.canonical_id, enqueue=False)
                settled.append(entry.canonical_id)
        self.queue.cancel(user_id, settled)

    def toggle(self, user_id: str, movie):
        """
        Add or remove a movie depending on its current state.

        A second toggle for the same movie is refused while the first one is
        still running.

        Args:
            user_id (str): User key.
            movie (dict | MovieRecord): Movie shown on the card.

        Returns:
            FavoriteResult: Outcome for the UI.
        """
        record = normalize_movie(movie) if movie is not None else None
        if record is None or not record.canonical_id:
            return FavoriteResult(False, None, "Invalid movie ID")

        key = (user_id, record.canonical_id)
        with self._in_flight_lock:
            if key in self._in_flight:
                return FavoriteResult(False, None, "Request already in progress")
            self._in_flight.add(key)
        try:
            if self.is_favorite(user_id, record):
                return self.remove(user_id, record)
            return self.add(user_id, record)
        finally:
            with self._in_flight_lock:
                self._in_flight.discard(key)

    def clear(self, user_id: str):
        """
        Clear every favorite of a user.

        Args:
            user_id (str): User key.

        Returns:
            FavoriteResult: Outcome for the UI.
        """
        if not user_id:
            return FavoriteResult(False, None, "Not logged in")
        try:
            deleted = self.remote.clear(user_id)
        except TransientStoreError as exc:
            logger.warning("remote clear failed for %s, clearing locally: %s", user_id, exc)
            cleared = self.local.clear(user_id)
            return FavoriteResult(True, SOURCE_LOCAL, f"Cleared {cleared} favorites offline, will sync later")

        self.local.clear(user_id, enqueue=False)
        self.queue.reset(user_id)
        return FavoriteResult(True, SOURCE_REMOTE, f"Cleared {deleted} favorites")

    def replay(self, user_id: str):
        """
        Push queued mutations to the remote store.

        Items that reach the store leave the queue, failed ones stay for the
        next attempt. A duplicate on add or a missing entry on remove means
        the intent already holds, so those items are drained as well.
        ``lastSyncedAt`` is stamped even after partial failure.

        Args:
            user_id (str): User key.

        Returns:
            ReplayReport: Per-item outcome.
        """
        report = ReplayReport()

        for record in self.queue.pending_adds(user_id):
            try:
                self.remote.add(user_id, record)
            except DuplicateError:
                report.added.append(record.canonical_id)
            except ValidationError as exc:
                logger.error("replayed add of %s rejected, dropping it: %s", record.canonical_id, exc)
                report.rejected_adds.append(record.canonical_id)
            except TransientStoreError as exc:
                logger.warning("replayed add of %s failed: %s", record.canonical_id, exc)
                report.failed_adds.append(record.canonical_id)
            else:
                report.added.append(record.canonical_id)

        for movie_id in self.queue.pending_removes(user_id):
            try:
                self.remote.remove(user_id, movie_id)
            except NotFoundError:
                report.removed.append(movie_id)
            except TransientStoreError as exc:
                logger.warning("replayed remove of %s failed: %s", movie_id, exc)
                report.failed_removes.append(movie_id)
            else:
                report.removed.append(movie_id)

        report.last_synced_at = self.queue.mark_synced(user_id, report.added + report.rejected_adds, report.removed)
        logger.info(
            "replay for %s: %d synced, %d still pending",
            user_id,
            report.synced_count,
            report.failed_count,
        )
        return report

    def merge(self, user_id: str):
        """
        Bring remote favorites the local cache does not know into it.

        Local-only entries are kept. Entries queued for removal are not
        brought back.

        Args:
            user_id (str): User key.

        Returns:
            list[MovieRecord]: The merged local favorites.
        """
        try:
            remote_entries = self.remote.list(user_id)
        except TransientStoreError as exc:
            logger.warning("could not fetch remote favorites for %s, using local copy: %s", user_id, exc)
            return self.local.list(user_id)

        known = self.local.ids(user_id)
        pending_removes = set(self.queue.pending_removes(user_id))
        merged = 0
        for entry in remote_entries:
            record = normalize_movie(entry)
            if not record.canonical_id:
                continue
            self.index.register(record)
            if record.canonical_id in known or record.canonical_id in pending_removes:
                continue
            if self.local.add(user_id, record, enqueue=False):
                known.add(record.canonical_id)
                merged += 1

        logger.info("merged %d remote favorites into local cache for %s", merged, user_id)
        return self.local.list(user_id)

    def load_session(self, user_id: str):
        """
        Prepare the favorites view for a user: replay, then merge.

        Args:
            user_id (str): User key.

        Returns:
            list[MovieRecord]: Favorites to render.
        """
        if not user_id:
            return []
        self.replay(user_id)
        return self.merge(user_id)

import logging
import os
from urllib.parse import quote

import requests

from movieverse.client.identity import normalize_movie
from movieverse.errors import DuplicateError, NotFoundError, TransientStoreError, ValidationError

logger = logging.getLogger(__name__)

API_URL = os.getenv("MOVIEVERSE_API_URL", "http://localhost:5000")
HTTP_TIMEOUT = float(os.environ["MOVIEVERSE_HTTP_TIMEOUT"]) if os.environ.get("MOVIEVERSE_HTTP_TIMEOUT") else None


def path_segment(value: str):
    return quote(str(value), safe="")


class RemoteFavoritesStore:
    """
    HTTP client for the favorites service.

    Transport failures, 5xx answers and unreadable bodies raise
    :class:`TransientStoreError`; no retry happens here.

    Args:
        base_url (str): Root URL of the favorites service.
        session (requests.Session | None): HTTP session to reuse.
        timeout (float | None): Per-request timeout; None leaves it to the transport.
    """

    def __init__(self, base_url: str = API_URL, session=None, timeout: float | None = HTTP_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise TransientStoreError(f"{method} {url} failed: {exc}") from exc

        if response.status_code >= 500:
            raise TransientStoreError(f"{method} {url} answered {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise TransientStoreError(f"{method} {url} returned invalid JSON") from exc
        return response.status_code, data if isinstance(data, dict) else {}

    def add(self, user_id: str, movie):
        """
        Add a favorite remotely.

        Args:
            user_id (str): User key.
            movie (dict | MovieRecord): Movie to add.

        Returns:
            dict: Entry created by the server.

        Raises:
            DuplicateError: The server already has an equivalent entry.
            ValidationError: The server rejected the payload.
            TransientStoreError: The server could not be reached.
        """
        record = normalize_movie(movie)
        status, data = self._request("POST", "/favorites", json=record.to_favorite_payload(user_id))
        if status == 201:
            return data.get("favorite") or {}
        message = data.get("message") or f"unexpected status {status}"
        if "favorite" in data:
            raise DuplicateError(message, existing=data.get("favorite"))
        raise ValidationError(message)

    def list(self, user_id: str):
        status, data = self._request("GET", f"/favorites/{path_segment(user_id)}")
        if status != 200:
            raise TransientStoreError(data.get("message") or f"unexpected status {status}")
        return data.get("favorites") or []

    def check(self, user_id: str, movie_id: str):
        """
        Check one (user, movie) pair.

        Returns:
            tuple[bool, dict | None]: Favorite flag and stored entry.
        """
        status, data = self._request("GET", f"/favorites/{path_segment(user_id)}/check/{path_segment(movie_id)}")
        if status != 200:
            raise TransientStoreError(data.get("message") or f"unexpected status {status}")
        return bool(data.get("isFavorite")), data.get("favorite")

    def remove(self, user_id: str, movie_id: str):
        """
        Remove a favorite remotely; the server tolerates identifier drift.

        Returns:
            dict: Deleted entry.

        Raises:
            NotFoundError: No removal strategy matched an entry.
            TransientStoreError: The server could not be reached.
        """
        status, data = self._request("DELETE", f"/favorites/{path_segment(user_id)}/{path_segment(movie_id)}")
        if status == 404:
            raise NotFoundError(data.get("message") or "Favorite not found")
        if status != 200:
            raise TransientStoreError(data.get("message") or f"unexpected status {status}")
        return data.get("deleted") or {}

    def clear(self, user_id: str):
        status, data = self._request("DELETE", f"/favorites/{path_segment(user_id)}/clear")
        if status != 200:
            raise TransientStoreError(data.get("message") or f"unexpected status {status}")
        return int(data.get("deletedCount") or 0)

    def update_posters(self, user_id: str):
        status, data = self._request("POST", f"/favorites/update-posters/{path_segment(user_id)}")
        if status != 200:
            raise TransientStoreError(data.get("message") or f"unexpected status {status}")
        return int(data.get("updatedCount") or 0), int(data.get("totalChecked") or 0)

    def cleanup_duplicates(self, user_id: str):
        status, data = self._request("POST", f"/favorites/{path_segment(user_id)}/cleanup-duplicates")
        if status != 200:
            raise TransientStoreError(data.get("message") or f"unexpected status {status}")
        return int(data.get("removedCount") or 0), int(data.get("totalChecked") or 0)

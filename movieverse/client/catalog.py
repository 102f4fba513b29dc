"""
Fetchers for the third-party movie catalogs shown next to the favorites.

Every method returns raw records in the source vocabulary; callers normalize
them with :func:`movieverse.client.identity.normalize_movie`. Successful
responses are kept in the injected :class:`ResponseCache`, failures are
logged and degrade to an empty value without being cached.
"""
import logging
import os
import re

import requests

from movieverse.client.response_cache import ResponseCache
from movieverse.errors import ExternalLookupFailure
from movieverse.http import get_json

logger = logging.getLogger(__name__)

OMDB_BASE_URL = os.getenv("OMDB_BASE_URL", "https://www.omdbapi.com/")
TMDB_BASE_URL = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
JIKAN_BASE_URL = os.getenv("JIKAN_BASE_URL", "https://api.jikan.moe/v4")
YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"
YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

PROFILE_IMAGE_TEMPLATE = "https://image.tmdb.org/t/p/w300{path}"
CREDITS_LIMIT = 20
TRAILER_TTL_SECONDS = 24 * 60 * 60

TMDB_ID_PATTERN = re.compile(r"^\d+$")
IMDB_ID_PATTERN = re.compile(r"^tt\d+$")


def empty_credits():
    return {"cast": [], "crew": []}


def person_summary(person: dict, *fields):
    summary = {"id": person.get("id"), "name": person.get("name")}
    for field in fields:
        summary[field] = person.get(field)
    profile_path = person.get("profile_path")
    summary["profile_path"] = PROFILE_IMAGE_TEMPLATE.format(path=profile_path) if profile_path else None
    return summary


class CatalogClient:
    """
    Read-only client for OMDb, TMDB, Jikan and YouTube.

    Args:
        cache (ResponseCache | None): Shared response cache.
        session (requests.Session | None): HTTP session to reuse.
        omdb_api_key (str | None): OMDb key, ``OMDB_API_KEY`` by default.
        tmdb_api_key (str | None): TMDB key, ``TMDB_API_KEY`` by default.
        youtube_api_key (str | None): YouTube Data API key, ``YOUTUBE_API_KEY`` by default.
    """

    def __init__(
        self,
        cache: ResponseCache | None = None,
        session=None,
        omdb_api_key: str | None = None,
        tmdb_api_key: str | None = None,
        youtube_api_key: str | None = None,
    ):
        self.cache = cache if cache is not None else ResponseCache()
        self.session = session or requests.Session()
        self.omdb_api_key = omdb_api_key if omdb_api_key is not None else os.getenv("OMDB_API_KEY", "")
        self.tmdb_api_key = tmdb_api_key if tmdb_api_key is not None else os.getenv("TMDB_API_KEY", "")
        self.youtube_api_key = youtube_api_key if youtube_api_key is not None else os.getenv("YOUTUBE_API_KEY", "")

    def _get_json(self, url: str, params: dict):
        return get_json(url, params=params, session=self.session)

    def _tmdb(self, path: str, **params):
        return self._get_json(f"{TMDB_BASE_URL}{path}", {"api_key": self.tmdb_api_key, **params})

    def _omdb(self, **params):
        data = self._get_json(OMDB_BASE_URL, {"apikey": self.omdb_api_key, **params})
        if data.get("Response") == "False":
            raise ExternalLookupFailure(data.get("Error") or "OMDb returned no result")
        return data

    def get_trending_movies(self, time_window: str = "week", page: int = 1):
        """
        List trending movies from TMDB.

        Args:
            time_window (str): ``day`` or ``week``.
            page (int): Result page.

        Returns:
            list[dict]: TMDB records, empty on failure.
        """
        cache_key = f"trending:{time_window}:{page}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            data = self._tmdb(f"/trending/movie/{time_window}", page=page)
        except ExternalLookupFailure as exc:
            logger.error("trending movies lookup failed: %s", exc)
            return []
        results = data.get("results") or []
        self.cache.set(cache_key, results)
        return results

    def search_movies(self, query: str, page: int = 1):
        """
        Search OMDb by title.

        Args:
            query (str): Free text title.
            page (int): Result page.

        Returns:
            list[dict]: OMDb search records, empty when nothing matched or on failure.
        """
        if not query or not query.strip():
            return []
        query = query.strip()
        cache_key = f"search:{query.lower()}:{page}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            data = self._omdb(s=query, page=page)
        except ExternalLookupFailure as exc:
            logger.warning("movie search for %r failed: %s", query, exc)
            return []
        results = data.get("Search") or []
        self.cache.set(cache_key, results)
        return results

    def get_movie_details(self, movie_id: str):
        """
        Fetch full details of one movie.

        Numeric identifiers go to TMDB with external ids appended so the
        IMDb alias is known; anything else is looked up on OMDb.

        Args:
            movie_id (str): TMDB numeric id or IMDb id.

        Returns:
            dict | None: Raw record, or None on failure.
        """
        if not movie_id:
            return None
        movie_id = str(movie_id).strip()
        cache_key = f"details:{movie_id}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            if TMDB_ID_PATTERN.match(movie_id):
                data = self._tmdb(f"/movie/{movie_id}", append_to_response="external_ids")
            else:
                data = self._omdb(i=movie_id, plot="full")
        except ExternalLookupFailure as exc:
            logger.error("details lookup for %s failed: %s", movie_id, exc)
            return None
        self.cache.set(cache_key, data)
        return data

    def search_anime(self, query: str, page: int = 1):
        if not query or not query.strip():
            return []
        query = query.strip()
        cache_key = f"anime:{query.lower()}:{page}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            data = self._get_json(f"{JIKAN_BASE_URL}/anime", {"q": query, "page": page})
        except ExternalLookupFailure as exc:
            logger.warning("anime search for %r failed: %s", query, exc)
            return []
        results = data.get("data") or []
        self.cache.set(cache_key, results)
        return results

    def get_youtube_trailer(self, title: str, year: str | None = None):
        """
        Find a trailer video on YouTube.

        Queries go from the most to the least specific; the first video whose
        title mentions a trailer wins, else the first result of the query.

        Args:
            title (str): Movie title.
            year (str | None): Release year, improves precision.

        Returns:
            str | None: Watch URL or None.
        """
        if not title:
            return None
        cache_key = f"trailer:{title.lower()}:{year or ''}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        queries = [f"{title} official trailer", f"{title} movie trailer"]
        if year:
            queries = [f"{title} {year} official trailer", f"{title} {year} trailer"] + queries

        for query in queries:
            try:
                data = self._get_json(
                    YOUTUBE_SEARCH_URL,
                    {"part": "snippet", "maxResults": 5, "q": query, "type": "video", "key": self.youtube_api_key},
                )
            except ExternalLookupFailure as exc:
                logger.error("trailer search for %r failed: %s", title, exc)
                return None
            items = [item for item in data.get("items") or [] if (item.get("id") or {}).get("videoId")]
            if not items:
                continue
            trailer = next(
                (
                    item
                    for item in items
                    if any(word in (item.get("snippet") or {}).get("title", "").lower() for word in ("trailer", "official"))
                ),
                items[0],
            )
            url = YOUTUBE_WATCH_URL.format(video_id=trailer["id"]["videoId"])
            self.cache.set(cache_key, url, ttl_seconds=TRAILER_TTL_SECONDS)
            return url

        logger.info("no trailer found for %r", title)
        return None

    def get_movie_credits(self, movie_id: str):
        """
        Fetch the top cast and crew of a movie from TMDB.

        IMDb identifiers are translated to a TMDB id first.

        Args:
            movie_id (str): TMDB numeric id or IMDb id.

        Returns:
            dict: ``cast`` and ``crew`` lists, both empty on failure.
        """
        if not movie_id:
            return empty_credits()
        movie_id = str(movie_id).strip()
        cache_key = f"credits:{movie_id}"
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached
        try:
            tmdb_id = movie_id
            if IMDB_ID_PATTERN.match(movie_id):
                found = self._tmdb(f"/find/{movie_id}", external_source="imdb_id")
                matches = found.get("movie_results") or []
                if not matches:
                    raise ExternalLookupFailure(f"no TMDB movie for {movie_id}")
                tmdb_id = matches[0]["id"]
            data = self._tmdb(f"/movie/{tmdb_id}/credits")
        except ExternalLookupFailure as exc:
            logger.error("credits lookup for %s failed: %s", movie_id, exc)
            return empty_credits()

        credits = {
            "id": tmdb_id,
            "cast": [
                person_summary(person, "character", "order")
                for person in (data.get("cast") or [])[:CREDITS_LIMIT]
            ],
            "crew": [
                person_summary(person, "job", "department")
                for person in (data.get("crew") or [])[:CREDITS_LIMIT]
            ],
        }
        self.cache.set(cache_key, credits)
        return credits

import json
import logging
import re
from datetime import datetime, timezone
from typing import Any, Callable

import redis
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError

from movieverse.api.api_favorites.posters import expand_poster_path, fetch_movie_poster
from movieverse.constants import CUSTOM_PREFIX, DEFAULT_MEDIA_TYPE, DEFAULT_TITLE, NOT_AVAILABLE, TMDB_PREFIX
from movieverse.errors import DuplicateError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

NUMERIC_ID_PATTERN = re.compile(r"^\d+$")
DISPLAY_FIELDS = ("rating", "genre", "runtime", "plot")


def clean_text(value: Any):
    """
    Normalize a raw payload value to a stripped string.

    Args:
        value (Any): Value read from a request body or path.

    Returns:
        str: Stripped string, empty when the value is missing.
    """
    if value is None:
        return ""
    return str(value).strip()


def utc_now():
    """
    Return the current UTC time the way pymongo reads it back.

    Returns:
        datetime: Naive UTC timestamp truncated to milliseconds.
    """
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def serialize_document(document: dict | None):
    """
    Serialize a favorite document to a JSON-friendly dictionary.

    Args:
        document (dict | None): MongoDB document.

    Returns:
        dict: Copy with a string ``_id`` and an ISO 8601 ``addedAt``.
    """
    if not document:
        return {}
    payload = dict(document)
    if "_id" in payload and not isinstance(payload["_id"], str):
        payload["_id"] = str(payload["_id"])
    added_at = payload.get("addedAt")
    if isinstance(added_at, datetime):
        if added_at.tzinfo is None:
            added_at = added_at.replace(tzinfo=timezone.utc)
        payload["addedAt"] = added_at.isoformat().replace("+00:00", "Z")
    return payload


def build_cache_key(prefix: str, *parts: Any):
    """
    Build a Redis cache key with a prefix and optional segments.

    Args:
        prefix (str): Root part of the key.
        *parts: Additional segments.

    Returns:
        str: Colon-separated cache key.
    """
    normalized = [prefix]
    for part in parts:
        normalized.append(str(part) if part is not None else "")
    return ":".join(normalized)


def read_cached(redis_client: redis.Redis, cache_key: str):
    """
    Read a cached JSON payload, treating Redis failures as a miss.

    Args:
        redis_client (Redis): Redis client.
        cache_key (str): Key to read.

    Returns:
        Any | None: Decoded payload or None.
    """
    try:
        cached = redis_client.get(cache_key)
    except redis.RedisError as exc:
        logger.warning("cache read failed for %s: %s", cache_key, exc)
        return None
    if not cached:
        return None
    try:
        return json.loads(cached)
    except ValueError:
        logger.warning("discarding unreadable cache entry %s", cache_key)
        return None


def write_cached(redis_client: redis.Redis, cache_key: str, payload: Any, ttl_seconds: int):
    """
    Store a JSON payload in Redis with a TTL, ignoring Redis failures.

    Args:
        redis_client (Redis): Redis client.
        cache_key (str): Key to write.
        payload (Any): JSON-serializable payload.
        ttl_seconds (int): Expiry in seconds.
    """
    try:
        redis_client.setex(cache_key, ttl_seconds, json.dumps(payload))
    except redis.RedisError as exc:
        logger.warning("cache write failed for %s: %s", cache_key, exc)


def invalidate_favorites_cache(user_id: str, redis_client: redis.Redis):
    """
    Invalidate cache entries related to a user's favorites.

    Args:
        user_id (str): User key.
        redis_client (Redis): Redis client instance.
    """
    try:
        redis_client.delete(build_cache_key("favorites", user_id))
    except redis.RedisError as exc:
        logger.warning("cache invalidation failed for %s: %s", user_id, exc)


def ensure_favorite_indexes(favorites_collection: Collection):
    """
    Create the indexes backing the favorites invariants.

    The compound ``(userId, movieId)`` index is unique, so at most one entry
    exists per user and movie identifier.

    Args:
        favorites_collection (Collection): MongoDB collection handle.
    """
    favorites_collection.create_index([("userId", ASCENDING)])
    favorites_collection.create_index([("movieId", ASCENDING)])
    favorites_collection.create_index([("userId", ASCENDING), ("movieId", ASCENDING)], unique=True)


def title_year_query(user_id: str, title: str, year: str):
    """
    Build the query matching a user's entry by title and year.

    Args:
        user_id (str): User key.
        title (str): Title compared case-insensitively as a literal.
        year (str): Year compared as an exact string.

    Returns:
        dict: MongoDB filter.
    """
    return {
        "userId": user_id,
        "title": {"$regex": f"^{re.escape(title)}$", "$options": "i"},
        "year": year,
    }


def find_duplicate(favorites_collection: Collection, user_id: str, movie_id: str, title: str, year: str):
    """
    Locate an existing entry equivalent to the one about to be added.

    Args:
        favorites_collection (Collection): MongoDB collection handle.
        user_id (str): User key.
        movie_id (str): Identifier of the new entry.
        title (str): Title of the new entry, may be empty.
        year (str): Year of the new entry, may be empty.

    Returns:
        dict | None: Existing entry or None.
    """
    existing = favorites_collection.find_one({"userId": user_id, "movieId": movie_id})
    if existing:
        logger.info("movie %s already in favorites of %s (by movieId)", movie_id, user_id)
        return existing

    if title and year:
        existing = favorites_collection.find_one(title_year_query(user_id, title, year))
        if existing:
            logger.info(
                "movie %r (%s) already in favorites of %s (by title+year), stored as %s",
                title,
                year,
                user_id,
                existing.get("movieId"),
            )
            return existing
    return None


def resolve_poster(payload: dict, movie_id: str, poster_lookup: Callable[[str], str]):
    """
    Pick the poster stored with a new favorite.

    Args:
        payload (dict): Request body.
        movie_id (str): Identifier used for external lookups.
        poster_lookup (Callable[[str], str]): Lookup used when no poster was supplied.

    Returns:
        str: Full poster URL or ``"N/A"``.
    """
    poster = clean_text(payload.get("posterPath")) or clean_text(payload.get("poster"))
    if poster.startswith("/"):
        return expand_poster_path(poster)
    if not poster or poster == NOT_AVAILABLE:
        logger.info("no poster supplied for %s, looking one up", movie_id)
        return poster_lookup(movie_id) or NOT_AVAILABLE
    return poster


def add_favorite(favorites_collection: Collection, payload: dict, poster_lookup: Callable[[str], str] = fetch_movie_poster):
    """
    Insert a favorite after duplicate checks.

    Args:
        favorites_collection (Collection): MongoDB collection handle.
        payload (dict): Request body with ``userId``, ``movieId`` and display fields.
        poster_lookup (Callable[[str], str]): Poster resolver for missing posters.

    Returns:
        dict: Created document.

    Raises:
        ValidationError: When ``userId`` or ``movieId`` is missing.
        DuplicateError: When the movie is already stored for the user.
    """
    user_id = clean_text(payload.get("userId"))
    movie_id = clean_text(payload.get("movieId"))
    if not user_id or not movie_id:
        raise ValidationError("userId and movieId are required")

    title = clean_text(payload.get("title"))
    year = clean_text(payload.get("year"))

    existing = find_duplicate(favorites_collection, user_id, movie_id, title, year)
    if existing:
        raise DuplicateError(existing=existing)

    document = {
        "userId": user_id,
        "movieId": movie_id,
        "title": title or DEFAULT_TITLE,
        "poster": resolve_poster(payload, movie_id, poster_lookup),
        "year": year or NOT_AVAILABLE,
        "type": clean_text(payload.get("type")) or DEFAULT_MEDIA_TYPE,
    }
    for field in DISPLAY_FIELDS:
        document[field] = clean_text(payload.get(field)) or NOT_AVAILABLE
    document["addedAt"] = utc_now()

    try:
        favorites_collection.insert_one(document)
    except DuplicateKeyError:
        existing = favorites_collection.find_one({"userId": user_id, "movieId": movie_id})
        raise DuplicateError(existing=existing)

    logger.info("favorite added for %s: %s %r poster=%s", user_id, movie_id, document["title"], document["poster"])
    return document


def list_favorites(favorites_collection: Collection, user_id: str):
    """
    Return a user's favorites, most recent first.

    Args:
        favorites_collection (Collection): MongoDB collection handle.
        user_id (str): User key.

    Returns:
        list[dict]: Documents sorted by ``addedAt`` descending.
    """
    return list(favorites_collection.find({"userId": user_id}).sort("addedAt", DESCENDING))


def check_favorite(favorites_collection: Collection, user_id: str, movie_id: str):
    """
    Look up the entry for an exact (user, movie) pair.

    Args:
        favorites_collection (Collection): MongoDB collection handle.
        user_id (str): User key.
        movie_id (str): Movie identifier.

    Returns:
        dict | None: Stored entry or None.
    """
    return favorites_collection.find_one({"userId": user_id, "movieId": movie_id})


def removal_queries(user_id: str, movie_id: str):
    """
    Build the ordered removal filters tolerating identifier drift.

    The order is: exact identifier, ``tmdb-`` prefix stripped, ``tmdb-``
    prefix added to numeric identifiers, and for ``custom-`` identifiers any
    entry sharing the trailing year segment.

    Args:
        user_id (str): User key.
        movie_id (str): Identifier requested for removal.

    Returns:
        list[tuple[str, dict]]: Strategy labels with MongoDB filters.
    """
    queries = [("exact movieId", {"userId": user_id, "movieId": movie_id})]
    if movie_id.startswith(TMDB_PREFIX):
        queries.append(("tmdb id without prefix", {"userId": user_id, "movieId": movie_id[len(TMDB_PREFIX):]}))
    if NUMERIC_ID_PATTERN.match(movie_id):
        queries.append(("tmdb id with prefix", {"userId": user_id, "movieId": f"{TMDB_PREFIX}{movie_id}"}))
    if movie_id.startswith(CUSTOM_PREFIX):
        year = movie_id.split("-")[-1]
        queries.append(("custom id year", {"userId": user_id, "year": year}))
    return queries


def remove_favorite(favorites_collection: Collection, user_id: str, movie_id: str):
    """
    Remove a favorite, trying each removal strategy until one deletes an entry.

    Args:
        favorites_collection (Collection): MongoDB collection handle.
        user_id (str): User key.
        movie_id (str): Identifier requested for removal.

    Returns:
        dict: Deleted document.

    Raises:
        NotFoundError: When no strategy matched an entry.
    """
    for label, query in removal_queries(user_id, movie_id):
        deleted = favorites_collection.find_one_and_delete(query)
        if deleted:
            logger.info("removed favorite %s of %s by %s", deleted.get("movieId"), user_id, label)
            return deleted

    stored = [doc.get("movieId") for doc in favorites_collection.find({"userId": user_id}, {"movieId": 1})]
    logger.info("favorite %s of %s not found; stored ids: %s", movie_id, user_id, stored)
    raise NotFoundError("Favorite not found")


def clear_favorites(favorites_collection: Collection, user_id: str):
    """
    Delete every favorite of a user.

    Args:
        favorites_collection (Collection): MongoDB collection handle.
        user_id (str): User key.

    Returns:
        int: Number of deleted entries.
    """
    result = favorites_collection.delete_many({"userId": user_id})
    logger.info("cleared %d favorites for %s", result.deleted_count, user_id)
    return result.deleted_count


def cleanup_duplicates(favorites_collection: Collection, user_id: str):
    """
    Delete semantic duplicates, keeping the oldest entry per title and year.

    Args:
        favorites_collection (Collection): MongoDB collection handle.
        user_id (str): User key.

    Returns:
        tuple[int, int]: Removed count and number of entries checked.
    """
    favorites = list(favorites_collection.find({"userId": user_id}).sort("addedAt", ASCENDING))

    seen = {}
    to_delete = []
    for favorite in favorites:
        key = ((favorite.get("title") or "").lower(), favorite.get("year"))
        if key in seen:
            logger.info(
                "duplicate %r (%s): keeping %s, dropping %s",
                favorite.get("title"),
                favorite.get("year"),
                seen[key],
                favorite.get("movieId"),
            )
            to_delete.append(favorite["_id"])
        else:
            seen[key] = favorite.get("movieId")

    if not to_delete:
        return 0, len(favorites)

    result = favorites_collection.delete_many({"_id": {"$in": to_delete}})
    return result.deleted_count, len(favorites)


def update_posters(favorites_collection: Collection, user_id: str, poster_lookup: Callable[[str], str] = fetch_movie_poster):
    """
    Re-resolve missing posters for all of a user's favorites.

    Args:
        favorites_collection (Collection): MongoDB collection handle.
        user_id (str): User key.
        poster_lookup (Callable[[str], str]): Poster resolver.

    Returns:
        tuple[int, int]: Updated count and number of entries checked.
    """
    query = {
        "userId": user_id,
        "$or": [
            {"poster": NOT_AVAILABLE},
            {"poster": ""},
            {"poster": {"$exists": False}},
        ],
    }
    favorites = list(favorites_collection.find(query))

    updated = 0
    for favorite in favorites:
        poster = poster_lookup(favorite.get("movieId") or "")
        if poster and poster != NOT_AVAILABLE:
            favorites_collection.update_one({"_id": favorite["_id"]}, {"$set": {"poster": poster}})
            updated += 1
            logger.info("updated poster for %r", favorite.get("title"))
    return updated, len(favorites)

import logging
import os
import re

from movieverse.constants import NOT_AVAILABLE, TMDB_IMAGE_TEMPLATE, is_missing
from movieverse.errors import ExternalLookupFailure
from movieverse.http import get_json

logger = logging.getLogger(__name__)

OMDB_API_KEY = os.getenv("OMDB_API_KEY", "")
TMDB_API_KEY = os.getenv("TMDB_API_KEY", "")
OMDB_BASE_URL = os.getenv("OMDB_BASE_URL", "https://www.omdbapi.com/")
TMDB_BASE_URL = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")

NUMERIC_ID_PATTERN = re.compile(r"^\d+$")


def expand_poster_path(poster: str | None):
    """
    Turn a TMDB relative poster path into a full image URL.

    Args:
        poster (str | None): Poster value supplied by the client.

    Returns:
        str | None: Full URL for ``/``-prefixed paths, otherwise the input unchanged.
    """
    if poster and poster.startswith("/"):
        return TMDB_IMAGE_TEMPLATE.format(path=poster)
    return poster


def fetch_omdb_poster(movie_id: str):
    """
    Look up a poster on OMDb by IMDb identifier.

    Args:
        movie_id (str): Identifier sent as the OMDb ``i`` parameter.

    Returns:
        str | None: Poster URL or None when OMDb has none.
    """
    data = get_json(OMDB_BASE_URL, params={"i": movie_id, "apikey": OMDB_API_KEY})
    poster = data.get("Poster")
    if data.get("Response") == "True" and not is_missing(poster):
        return poster
    return None


def fetch_tmdb_poster(movie_id: str):
    """
    Look up a poster on TMDB by numeric movie identifier.

    Args:
        movie_id (str): TMDB numeric identifier.

    Returns:
        str | None: Full poster URL or None when TMDB has no poster path.
    """
    data = get_json(f"{TMDB_BASE_URL}/movie/{movie_id}", params={"api_key": TMDB_API_KEY})
    poster_path = data.get("poster_path")
    if poster_path:
        return TMDB_IMAGE_TEMPLATE.format(path=poster_path)
    return None


def fetch_movie_poster(movie_id: str):
    """
    Resolve a display poster for a favorite, OMDb first then TMDB.

    TMDB is only consulted for purely numeric identifiers. Lookup failures
    never propagate.

    Args:
        movie_id (str): Stored movie identifier.

    Returns:
        str: Poster URL or ``"N/A"``.
    """
    if not movie_id:
        return NOT_AVAILABLE

    try:
        poster = fetch_omdb_poster(movie_id)
        if poster:
            logger.info("Fetched poster from OMDb for %s", movie_id)
            return poster
    except ExternalLookupFailure as exc:
        logger.warning("OMDb poster lookup failed for %s: %s", movie_id, exc)

    if NUMERIC_ID_PATTERN.match(movie_id):
        try:
            poster = fetch_tmdb_poster(movie_id)
            if poster:
                logger.info("Fetched poster from TMDB for %s", movie_id)
                return poster
        except ExternalLookupFailure as exc:
            logger.warning("TMDB poster lookup failed for %s: %s", movie_id, exc)

    return NOT_AVAILABLE

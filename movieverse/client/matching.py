import logging

from movieverse.client.identity import IdentityIndex, normalize_movie

logger = logging.getLogger(__name__)


def same_title_year(candidate, favorite):
    """
    Compare two normalized records by trimmed, case-insensitive title and exact year.

    ``"N/A"`` years compare equal to each other, so two untitled-year works
    with the same title match.
    """
    return (
        candidate.title.strip().lower() == favorite.title.strip().lower()
        and candidate.year == favorite.year
    )


def find_favorite(candidate, favorites, index: IdentityIndex | None = None):
    """
    Find the favorite entry that represents the same movie as a candidate.

    Strategies, in order: exact canonical identifier, alias lookup through
    ``index`` when given, then title+year.

    Args:
        candidate (dict | MovieRecord): Movie to look for.
        favorites (Iterable[dict | MovieRecord]): Current favorites.
        index (IdentityIndex | None): Known identifier aliases.

    Returns:
        MovieRecord | None: Matching favorite, normalized, or None.
    """
    if candidate is None:
        return None
    movie = normalize_movie(candidate)
    if not movie.canonical_id:
        return None

    normalized = [normalize_movie(favorite) for favorite in favorites]

    for favorite in normalized:
        if favorite.canonical_id == movie.canonical_id:
            return favorite

    if index is not None:
        group = index.canonical_for(movie)
        if group is not None:
            for favorite in normalized:
                if index.canonical_for(favorite) == group:
                    logger.debug("matched %s to favorite %s by alias", movie.canonical_id, favorite.canonical_id)
                    return favorite

    for favorite in normalized:
        if same_title_year(movie, favorite):
            logger.debug(
                "matched %s to favorite %s by title+year %r (%s)",
                movie.canonical_id,
                favorite.canonical_id,
                movie.title,
                movie.year,
            )
            return favorite
    return None


def is_favorite(candidate, favorites, index: IdentityIndex | None = None):
    """
    Tell whether a movie is already among the favorites.

    Args:
        candidate (dict | MovieRecord): Movie to check.
        favorites (Iterable[dict | MovieRecord]): Current favorites.
        index (IdentityIndex | None): Known identifier aliases.

    Returns:
        bool: True when any matching strategy finds the movie.
    """
    return find_favorite(candidate, favorites, index) is not None

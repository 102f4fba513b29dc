NOT_AVAILABLE = "N/A"
DEFAULT_MEDIA_TYPE = "movie"
DEFAULT_TITLE = "Unknown"

TMDB_IMAGE_TEMPLATE = "https://image.tmdb.org/t/p/w500{path}"

TMDB_PREFIX = "tmdb-"
CUSTOM_PREFIX = "custom-"
UNKNOWN_YEAR = "unknown"


def is_missing(value) -> bool:
    """
    Tell whether a raw field value carries no usable information.

    Args:
        value (Any): Raw field value.

    Returns:
        bool: True for None, blank strings and the ``"N/A"`` sentinel.
    """
    if value is None:
        return True
    if isinstance(value, str):
        stripped = value.strip()
        return not stripped or stripped == NOT_AVAILABLE
    return False


def or_sentinel(value, default: str = NOT_AVAILABLE) -> str:
    """
    Return the value as a string, or the sentinel when it is missing.

    Args:
        value (Any): Raw field value.
        default (str): Replacement for missing values.

    Returns:
        str: Stringified value or the default.
    """
    if is_missing(value):
        return default
    return str(value).strip()

class FavoritesError(Exception):
    """Base class for favorites failures."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class ValidationError(FavoritesError):
    """Required identifying fields are missing or unusable."""

    status_code = 400


class DuplicateError(FavoritesError):
    """
    An equivalent favorite already exists.

    Args:
        message (str): Human readable reason.
        existing (dict | None): Entry already stored for the user.
    """

    status_code = 400

    def __init__(self, message: str = "Movie already in favorites", existing: dict | None = None):
        super().__init__(message)
        self.existing = existing


class NotFoundError(FavoritesError):
    """Removal target could not be located by any matching strategy."""

    status_code = 404


class TransientStoreError(FavoritesError):
    """Network or database failure that may succeed on a later attempt."""

    status_code = 503


class ExternalLookupFailure(FavoritesError):
    """A third-party metadata source (OMDb, TMDB, Jikan, YouTube) failed."""

    status_code = 502

"""
Movie identity resolution and field normalization.

Movie records arrive in several vocabularies: OMDb (``Title``/``imdbID``),
TMDB (``title``/``id``/``poster_path``), Jikan (``mal_id``/``images``),
favorites stored by the backend (``movieId``), and records already
normalized by this module. Each shape has one normalize function producing a
:class:`MovieRecord`; the canonical identifier is derived with a fixed
precedence by :func:`resolve_movie_id`.
"""
import logging
import re
from enum import Enum

from movieverse.constants import (
    CUSTOM_PREFIX,
    DEFAULT_MEDIA_TYPE,
    NOT_AVAILABLE,
    TMDB_IMAGE_TEMPLATE,
    UNKNOWN_YEAR,
    is_missing,
    or_sentinel,
)

logger = logging.getLogger(__name__)

NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]")
DIGITS = re.compile(r"^\d+$")


class SourceShape(Enum):
    OMDB = "omdb"
    TMDB = "tmdb"
    JIKAN = "jikan"
    FAVORITE = "favorite"
    RECORD = "record"


class MovieRecord:
    """
    A movie normalized to one shape, keyed by its canonical identifier.

    Every display field holds a string; unknown values are ``"N/A"``.
    ``source_ids`` and ``added_at`` do not take part in equality.
    """

    DISPLAY_FIELDS = ("title", "year", "poster_url", "genre", "rating", "media_type", "plot", "runtime")

    def __init__(
        self,
        canonical_id: str | None,
        title: str = NOT_AVAILABLE,
        year: str = NOT_AVAILABLE,
        poster_url: str = NOT_AVAILABLE,
        genre: str = NOT_AVAILABLE,
        rating: str = NOT_AVAILABLE,
        media_type: str = DEFAULT_MEDIA_TYPE,
        plot: str = NOT_AVAILABLE,
        runtime: str = NOT_AVAILABLE,
        source_ids: dict | None = None,
        added_at: str | None = None,
    ):
        self.canonical_id = canonical_id
        self.title = title
        self.year = year
        self.poster_url = poster_url
        self.genre = genre
        self.rating = rating
        self.media_type = media_type
        self.plot = plot
        self.runtime = runtime
        self.source_ids = dict(source_ids or {})
        self.added_at = added_at

    def __eq__(self, other):
        if not isinstance(other, MovieRecord):
            return NotImplemented
        return self.canonical_id == other.canonical_id and all(
            getattr(self, field) == getattr(other, field) for field in self.DISPLAY_FIELDS
        )

    def __hash__(self):
        return hash((self.canonical_id, self.title, self.year))

    def __repr__(self):
        return f"MovieRecord({self.canonical_id!r}, title={self.title!r}, year={self.year!r})"

    def alias_ids(self):
        """
        List every identifier this record is known by.

        Returns:
            list[str]: Canonical identifier followed by source identifiers.
        """
        aliases = []
        for value in (self.canonical_id, self.source_ids.get("tmdb_id"), self.source_ids.get("imdb_id")):
            if not is_missing(value) and value not in aliases:
                aliases.append(value)
        return aliases

    def to_dict(self):
        """
        Convert the record to the JSON layout used in local storage.

        Returns:
            dict: camelCase keys.
        """
        return {
            "canonicalId": self.canonical_id,
            "title": self.title,
            "year": self.year,
            "posterUrl": self.poster_url,
            "genre": self.genre,
            "rating": self.rating,
            "mediaType": self.media_type,
            "plot": self.plot,
            "runtime": self.runtime,
            "sourceIds": dict(self.source_ids),
            "addedAt": self.added_at,
        }

    @classmethod
    def from_dict(cls, data: dict):
        """
        Rebuild a record from :meth:`to_dict` output.

        Args:
            data (dict): Stored record.

        Returns:
            MovieRecord: Restored record.
        """
        return cls(
            canonical_id=data.get("canonicalId"),
            title=or_sentinel(data.get("title")),
            year=or_sentinel(data.get("year")),
            poster_url=or_sentinel(data.get("posterUrl")),
            genre=or_sentinel(data.get("genre")),
            rating=or_sentinel(data.get("rating")),
            media_type=or_sentinel(data.get("mediaType"), DEFAULT_MEDIA_TYPE),
            plot=or_sentinel(data.get("plot")),
            runtime=or_sentinel(data.get("runtime")),
            source_ids=data.get("sourceIds") or {},
            added_at=data.get("addedAt"),
        )

    def to_favorite_payload(self, user_id: str):
        """
        Build the body of ``POST /favorites`` for this record.

        Args:
            user_id (str): User key (database id or email).

        Returns:
            dict: Request body.
        """
        return {
            "userId": user_id,
            "movieId": self.canonical_id,
            "title": self.title,
            "poster": self.poster_url,
            "year": self.year,
            "rating": self.rating,
            "genre": self.genre,
            "type": self.media_type,
            "runtime": self.runtime,
            "plot": self.plot,
        }


def detect_shape(raw):
    """
    Tell which source vocabulary a raw record uses.

    Args:
        raw (dict | MovieRecord): Record to inspect.

    Returns:
        SourceShape: Detected shape.
    """
    if isinstance(raw, MovieRecord) or "canonicalId" in raw:
        return SourceShape.RECORD
    if "movieId" in raw:
        return SourceShape.FAVORITE
    if "mal_id" in raw:
        return SourceShape.JIKAN
    if "Title" in raw or "imdbID" in raw:
        return SourceShape.OMDB
    return SourceShape.TMDB


def numeric_id(value):
    """
    Return the string form of a TMDB-style numeric identifier.

    Args:
        value (Any): Raw ``id``/``tmdb_id`` value.

    Returns:
        str | None: Digits, or None when the value is not numeric.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return str(value) if value else None
    text = str(value).strip()
    if DIGITS.match(text) and int(text):
        return text
    return None


def imdb_id(raw: dict):
    """
    Find an IMDb-style identifier on a raw record.

    Args:
        raw (dict): Raw record.

    Returns:
        str | None: Identifier as stored, or None.
    """
    for value in (raw.get("imdbID"), raw.get("imdb_id"), (raw.get("external_ids") or {}).get("imdb_id")):
        if not is_missing(value):
            return str(value).strip()
    return None


def extract_year(raw: dict):
    """
    Extract a release year from any supported shape.

    Args:
        raw (dict): Raw record.

    Returns:
        str | None: Year string, or None when no usable year exists.
    """
    for key in ("Year", "year"):
        if not is_missing(raw.get(key)):
            return str(raw[key]).strip()
    for key in ("release_date", "releaseDate", "first_air_date"):
        value = raw.get(key)
        if not is_missing(value):
            return str(value).split("-")[0]
    aired = raw.get("aired")
    if isinstance(aired, dict) and not is_missing(aired.get("from")):
        return str(aired["from"])[:4]
    return None


def custom_movie_id(title: str, year: str | None):
    """
    Derive an identifier from a title and year.

    Args:
        title (str): Display title.
        year (str | None): Release year.

    Returns:
        str: ``custom-<alphanumeric lowercased title>-<year or unknown>``.
    """
    slug = NON_ALPHANUMERIC.sub("", title.lower())
    return f"{CUSTOM_PREFIX}{slug}-{year or UNKNOWN_YEAR}"


def resolve_movie_id(raw):
    """
    Derive the canonical identifier of a movie record.

    Precedence, first match wins: TMDB numeric id, IMDb id, then a
    ``custom-`` id built from the title and year. Records that were already
    normalized or persisted keep the identifier they carry.

    Args:
        raw (dict | MovieRecord | None): Record from any source.

    Returns:
        str | None: Canonical identifier, or None when none can be derived.
    """
    if raw is None:
        return None
    shape = detect_shape(raw)
    if shape is SourceShape.RECORD:
        return raw.canonical_id if isinstance(raw, MovieRecord) else raw.get("canonicalId")
    if shape is SourceShape.FAVORITE:
        movie_id = raw.get("movieId")
        return None if is_missing(movie_id) else str(movie_id).strip()

    for key in ("id", "tmdb_id"):
        found = numeric_id(raw.get(key))
        if found:
            return found

    found = imdb_id(raw)
    if found:
        return found

    title = raw.get("Title") or raw.get("title")
    if not is_missing(title):
        return custom_movie_id(str(title), extract_year(raw))

    logger.warning("could not determine movie id for record with keys %s", sorted(raw))
    return None


def poster_url(value):
    """Expand TMDB relative poster paths; keep full URLs."""
    if is_missing(value):
        return NOT_AVAILABLE
    value = str(value).strip()
    if value.startswith("/"):
        return TMDB_IMAGE_TEMPLATE.format(path=value)
    return value


def joined_names(items):
    names = [str(item.get("name")) for item in items or [] if isinstance(item, dict) and item.get("name")]
    return ", ".join(names) if names else NOT_AVAILABLE


def source_ids_for(tmdb_id, imdb):
    source_ids = {}
    tmdb_id = numeric_id(tmdb_id)
    if tmdb_id:
        source_ids["tmdb_id"] = tmdb_id
    if imdb and imdb.startswith("tt"):
        source_ids["imdb_id"] = imdb
    return source_ids


def normalize_omdb(raw: dict):
    return MovieRecord(
        canonical_id=resolve_movie_id(raw),
        title=or_sentinel(raw.get("Title")),
        year=or_sentinel(extract_year(raw)),
        poster_url=poster_url(raw.get("Poster")),
        genre=or_sentinel(raw.get("Genre")) if raw.get("Genre") else joined_names(raw.get("genres")),
        rating=or_sentinel(raw.get("imdbRating") or raw.get("Rating")),
        media_type=or_sentinel(raw.get("Type"), DEFAULT_MEDIA_TYPE),
        plot=or_sentinel(raw.get("Plot")),
        runtime=or_sentinel(raw.get("Runtime")),
        source_ids=source_ids_for(raw.get("tmdb_id") or raw.get("id"), imdb_id(raw)),
    )


def normalize_tmdb(raw: dict):
    runtime = raw.get("runtime")
    vote_average = raw.get("vote_average")
    return MovieRecord(
        canonical_id=resolve_movie_id(raw),
        title=or_sentinel(raw.get("title") or raw.get("name")),
        year=or_sentinel(extract_year(raw)),
        poster_url=poster_url(raw.get("poster_path") or raw.get("poster")),
        genre=joined_names(raw.get("genres")),
        rating=str(vote_average) if vote_average else NOT_AVAILABLE,
        media_type=or_sentinel(raw.get("media_type"), DEFAULT_MEDIA_TYPE),
        plot=or_sentinel(raw.get("overview") or raw.get("plot")),
        runtime=f"{runtime} min" if runtime else NOT_AVAILABLE,
        source_ids=source_ids_for(raw.get("id") or raw.get("tmdb_id"), imdb_id(raw)),
    )


def normalize_jikan(raw: dict):
    images = (raw.get("images") or {}).get("jpg") or {}
    score = raw.get("score")
    return MovieRecord(
        canonical_id=resolve_movie_id(raw),
        title=or_sentinel(raw.get("title_english") or raw.get("title")),
        year=or_sentinel(extract_year(raw)),
        poster_url=poster_url(images.get("large_image_url") or images.get("image_url")),
        genre=joined_names(raw.get("genres")),
        rating=str(score) if score else NOT_AVAILABLE,
        media_type="anime",
        plot=or_sentinel(raw.get("synopsis")),
        runtime=or_sentinel(raw.get("duration")),
    )


def normalize_favorite(raw: dict):
    movie_id = resolve_movie_id(raw)
    return MovieRecord(
        canonical_id=movie_id,
        title=or_sentinel(raw.get("title")),
        year=or_sentinel(raw.get("year")),
        poster_url=poster_url(raw.get("poster") or raw.get("posterPath")),
        genre=or_sentinel(raw.get("genre")),
        rating=or_sentinel(raw.get("rating")),
        media_type=or_sentinel(raw.get("type"), DEFAULT_MEDIA_TYPE),
        plot=or_sentinel(raw.get("plot")),
        runtime=or_sentinel(raw.get("runtime")),
        source_ids=source_ids_for(movie_id, movie_id),
        added_at=raw.get("addedAt"),
    )


def normalize_record(raw):
    if isinstance(raw, MovieRecord):
        return raw
    return MovieRecord.from_dict(raw)


NORMALIZERS = {
    SourceShape.OMDB: normalize_omdb,
    SourceShape.TMDB: normalize_tmdb,
    SourceShape.JIKAN: normalize_jikan,
    SourceShape.FAVORITE: normalize_favorite,
    SourceShape.RECORD: normalize_record,
}


def normalize_movie(raw):
    """
    Normalize a record from any supported source into a :class:`MovieRecord`.

    Args:
        raw (dict | MovieRecord): Record to normalize.

    Returns:
        MovieRecord: Normalized record; ``canonical_id`` is None when no
        identifier could be derived.
    """
    return NORMALIZERS[detect_shape(raw)](raw)


class IdentityIndex:
    """
    Alias table mapping every known identifier of a movie to one key.

    The first identifier registered for a movie becomes the key of its
    group; later records sharing any alias join that group.
    """

    def __init__(self):
        self._aliases = {}

    def __len__(self):
        return len(self._aliases)

    def register(self, movie):
        """
        Record all identifiers of a movie.

        Args:
            movie (dict | MovieRecord): Record to register.

        Returns:
            str | None: Group key, or None when the record has no identifier.
        """
        record = normalize_movie(movie)
        aliases = record.alias_ids()
        if not aliases:
            return None
        group = next((self._aliases[alias] for alias in aliases if alias in self._aliases), aliases[0])
        for alias in aliases:
            self._aliases.setdefault(alias, group)
        return group

    def canonical_for(self, movie):
        """
        Look up the group key of a record or identifier.

        Args:
            movie (str | dict | MovieRecord): Identifier or record.

        Returns:
            str | None: Group key, or None when nothing is known.
        """
        if isinstance(movie, str):
            return self._aliases.get(movie)
        for alias in normalize_movie(movie).alias_ids():
            if alias in self._aliases:
                return self._aliases[alias]
        return None

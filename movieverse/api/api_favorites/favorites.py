import logging
import os
from functools import wraps

import redis
from flask import Flask, jsonify, request
from flask_cors import CORS
from pymongo import MongoClient
from pymongo.errors import PyMongoError

from movieverse.api.api_favorites.favorites_functions import (
    add_favorite,
    build_cache_key,
    check_favorite,
    cleanup_duplicates,
    clear_favorites,
    ensure_favorite_indexes,
    invalidate_favorites_cache,
    list_favorites,
    read_cached,
    remove_favorite,
    serialize_document,
    update_posters,
    write_cached,
)
from movieverse.api.api_favorites.posters import fetch_movie_poster
from movieverse.errors import DuplicateError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config["JSON_SORT_KEYS"] = False
CORS(app)

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
client = MongoClient(MONGO_URI)
db = client["api_favorites"]
favorites_collection = db["favorites"]

r = redis.Redis(
    host=os.environ.get("REDIS_HOST", "localhost"),
    port=int(os.environ.get("REDIS_PORT", 6379)),
    db=int(os.environ.get("REDIS_DB", 0)),
)

CACHE_TTL_SECONDS = int(os.environ.get("CACHE_TTL_SECONDS", 600))

indexes_ready = False


@app.before_request
def ensure_indexes():
    """
    Create the favorites indexes once per process, before the first request is served.

    Runs under any WSGI host, not only `python favorites.py`. A database
    failure leaves the flag unset so the next request tries again.
    """
    global indexes_ready
    if indexes_ready:
        return None
    try:
        ensure_favorite_indexes(favorites_collection)
    except PyMongoError as exc:
        logger.error("could not create favorites indexes: %s", exc)
        return None
    indexes_ready = True
    return None


def store_errors(action: str):
    """
    Turn database failures inside a route into a generic server error.

    Args:
        action (str): Wording used in the error message, e.g. ``"adding favorite"``.

    Returns:
        Callable: Route decorator.
    """
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            try:
                return view(*args, **kwargs)
            except PyMongoError as exc:
                logger.error("Error %s: %s", action, exc)
                return jsonify({"success": False, "message": f"Server error {action}", "error": str(exc)}), 500
        return wrapper
    return decorator


@app.route("/favorites", methods=["POST"])
@store_errors("adding favorite")
def create_favorite():
    """
    Handle POST requests that add a movie to a user's favorites.

    Returns:
        Response: Flask response with the created entry or error payload.
    """
    payload = request.get_json(silent=True) or {}
    logger.info("adding favorite: userId=%s movieId=%s title=%r", payload.get("userId"), payload.get("movieId"), payload.get("title"))

    try:
        favorite = add_favorite(favorites_collection, payload, poster_lookup=fetch_movie_poster)
    except ValidationError as exc:
        return jsonify({"success": False, "message": exc.message}), 400
    except DuplicateError as exc:
        return jsonify({
            "success": False,
            "message": exc.message,
            "favorite": serialize_document(exc.existing) or None,
        }), 400

    invalidate_favorites_cache(favorite["userId"], r)
    return jsonify({
        "success": True,
        "message": "Added to favorites successfully",
        "favorite": serialize_document(favorite),
    }), 201


@app.route("/favorites/<user_id>", methods=["GET"])
@store_errors("fetching favorites")
def get_user_favorites(user_id: str):
    """
    Handle GET requests for a user's favorites, newest first.

    Args:
        user_id (str): User key taken from the path segment.

    Returns:
        Response: Flask response with favorites and their count.
    """
    cache_key = build_cache_key("favorites", user_id)
    cached = read_cached(r, cache_key)
    if cached:
        logger.debug("favorites cache hit for %s", user_id)
        return jsonify(cached)

    favorites = [serialize_document(doc) for doc in list_favorites(favorites_collection, user_id)]
    payload = {"success": True, "favorites": favorites, "count": len(favorites)}
    write_cached(r, cache_key, payload, CACHE_TTL_SECONDS)
    return jsonify(payload)


@app.route("/favorites/<user_id>/check/<movie_id>", methods=["GET"])
@store_errors("checking favorite")
def get_favorite_status(user_id: str, movie_id: str):
    """
    Handle GET requests checking one (user, movie) pair.

    Args:
        user_id (str): User key from the path.
        movie_id (str): Movie identifier from the path.

    Returns:
        Response: Flask response with the favorite flag and entry.
    """
    favorite = check_favorite(favorites_collection, user_id, movie_id)
    return jsonify({
        "success": True,
        "isFavorite": favorite is not None,
        "favorite": serialize_document(favorite) if favorite else None,
    })


@app.route("/favorites/<user_id>/clear", methods=["DELETE"])
@store_errors("clearing favorites")
def delete_all_favorites(user_id: str):
    """
    Handle DELETE requests that clear a user's favorites.

    Args:
        user_id (str): User key from the path.

    Returns:
        Response: Flask response with the deleted count.
    """
    deleted_count = clear_favorites(favorites_collection, user_id)
    invalidate_favorites_cache(user_id, r)
    return jsonify({
        "success": True,
        "message": f"Cleared {deleted_count} favorites",
        "deletedCount": deleted_count,
    })


@app.route("/favorites/<user_id>/<movie_id>", methods=["DELETE"])
@store_errors("removing favorite")
def delete_favorite(user_id: str, movie_id: str):
    """
    Handle DELETE requests that remove one favorite.

    Args:
        user_id (str): User key from the path.
        movie_id (str): Movie identifier from the path, possibly stale.

    Returns:
        Response: Flask response with the deleted entry or a 404 payload.
    """
    try:
        deleted = remove_favorite(favorites_collection, user_id, movie_id)
    except NotFoundError as exc:
        return jsonify({"success": False, "message": exc.message}), 404

    invalidate_favorites_cache(user_id, r)
    return jsonify({
        "success": True,
        "message": "Removed from favorites successfully",
        "deleted": serialize_document(deleted),
    })


@app.route("/favorites/update-posters/<user_id>", methods=["POST"])
@store_errors("updating posters")
def refresh_favorite_posters(user_id: str):
    """
    Handle POST requests that fill in missing posters.

    Args:
        user_id (str): User key from the path.

    Returns:
        Response: Flask response with updated and checked counts.
    """
    updated_count, total_checked = update_posters(favorites_collection, user_id, poster_lookup=fetch_movie_poster)
    if updated_count:
        invalidate_favorites_cache(user_id, r)
    return jsonify({
        "success": True,
        "message": f"Updated {updated_count} posters",
        "updatedCount": updated_count,
        "totalChecked": total_checked,
    })


@app.route("/favorites/<user_id>/cleanup-duplicates", methods=["POST"])
@store_errors("cleaning up duplicates")
def remove_duplicate_favorites(user_id: str):
    """
    Handle POST requests that drop title+year duplicates.

    Args:
        user_id (str): User key from the path.

    Returns:
        Response: Flask response with removed and checked counts.
    """
    removed_count, total_checked = cleanup_duplicates(favorites_collection, user_id)
    if removed_count:
        invalidate_favorites_cache(user_id, r)
        message = f"Removed {removed_count} duplicate favorites"
    else:
        message = "No duplicates found"
    return jsonify({
        "success": True,
        "message": message,
        "removedCount": removed_count,
        "totalChecked": total_checked,
    })


if __name__ == "__main__":
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(host="0.0.0.0", port=int(os.environ.get("FAVORITES_PORT", 5000)), debug=True)

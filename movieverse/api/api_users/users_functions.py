import re
from datetime import datetime, timezone

from pymongo import DESCENDING
from pymongo.collection import Collection

MIN_PASSWORD_LENGTH = 6


def generate_next_user_id(users_collection: Collection):
    """
    Generate the next user identifier.

    Args:
        users_collection (Collection): MongoDB collection handle.

    Returns:
        str: Identifier formatted like ``u000000000001``.
    """
    latest_user = users_collection.find_one({"_id": {"$regex": r"^u\d{12}$"}}, sort=[("_id", DESCENDING)], projection={"_id": 1})

    if not latest_user:
        return "u000000000001"

    raw_identifier = str(latest_user.get("_id", "")).strip()
    try:
        numeric = int(raw_identifier[1:])
    except (ValueError, TypeError):
        numeric = 0

    return f"u{numeric + 1:012d}"


def serialize_user(document: dict | None):
    """
    Serialize a user document for API responses.

    Args:
        document (dict | None): MongoDB document.

    Returns:
        dict: Public fields only, never the password hash.
    """
    if not document:
        return {}
    return {
        "_id": str(document.get("_id")),
        "name": document.get("name"),
        "email": document.get("email"),
        "createdAt": document.get("createdAt"),
    }


def validate_signup(name: str, email: str, password: str):
    """
    Check signup fields.

    Args:
        name (str): Display name.
        email (str): Email address.
        password (str): Raw password.

    Returns:
        str | None: Error message, or None when the fields are acceptable.
    """
    if not name or not email or not password:
        return "All fields are required"
    if "@" not in email:
        return "Please enter a valid email address"
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
    return None


def find_user_by_email(email: str, users_collection: Collection):
    """
    Locate a user by email, case-insensitively.

    Args:
        email (str): Email supplied by the client.
        users_collection (Collection): MongoDB collection handle.

    Returns:
        dict | None: Matching user document.
    """
    if not email:
        return None
    email_regex = {"$regex": f"^{re.escape(email)}$", "$options": "i"}
    return users_collection.find_one({"email": email_regex})


def utc_timestamp_iso():
    """
    Return the current UTC timestamp in ISO 8601 format.

    Returns:
        str: Timestamp string without microseconds and suffixed with ``Z``.
    """
    return datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + "Z"

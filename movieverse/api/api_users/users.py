import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from pymongo import MongoClient
from werkzeug.security import check_password_hash, generate_password_hash

from movieverse.api.api_users.users_functions import (
    find_user_by_email,
    generate_next_user_id,
    serialize_user,
    utc_timestamp_iso,
    validate_signup,
)

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config["JSON_SORT_KEYS"] = False
CORS(app)

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
client = MongoClient(MONGO_URI)
db = client["api_users"]
users_collection = db["users"]


@app.route("/users/signup", methods=["POST"])
def signup_user():
    """
    Handle POST requests that create user accounts.

    Returns:
        Response: Flask response with the created user or error payload.
    """
    payload = request.get_json(silent=True) or {}
    name = (payload.get("name") or "").strip()
    email = (payload.get("email") or "").strip()
    password = payload.get("password") or ""

    error = validate_signup(name, email, password)
    if error:
        return jsonify({"success": False, "message": error}), 400

    if find_user_by_email(email, users_collection):
        return jsonify({"success": False, "message": "User with this email already exists"}), 409

    new_user = {
        "_id": generate_next_user_id(users_collection),
        "name": name,
        "email": email,
        "password": generate_password_hash(password),
        "createdAt": utc_timestamp_iso(),
    }
    users_collection.insert_one(new_user)
    logger.info("registered user %s", new_user["_id"])
    return jsonify({"success": True, "message": "Signup successful", "user": serialize_user(new_user)}), 201


@app.route("/users/login", methods=["POST"])
def login_user():
    """
    Handle POST requests for user authentication.

    Returns:
        Response: Flask response with user data or error payload.
    """
    payload = request.get_json(silent=True) or {}
    email = (payload.get("email") or "").strip()
    password = payload.get("password") or ""

    if not email or not password:
        return jsonify({"success": False, "message": "Email and password are required"}), 400

    user = find_user_by_email(email, users_collection)
    if not user or not check_password_hash(user.get("password") or "", password):
        return jsonify({"success": False, "message": "Invalid credentials"}), 401

    return jsonify({"success": True, "message": "Login successful", "user": serialize_user(user)})


if __name__ == "__main__":
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app.run(host="0.0.0.0", port=int(os.environ.get("USERS_PORT", 5001)), debug=True)

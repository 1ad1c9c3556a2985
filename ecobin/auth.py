# ecobin/auth.py
from __future__ import annotations

from flask import Blueprint, jsonify
from flask_login import login_user, logout_user, current_user, login_required
from sqlalchemy.exc import SQLAlchemyError

from .models import User, utcnow_naive
from .extensions import login_manager, db, limiter
from .utils.parsing import json_body
from .utils.passwords import verify_password

auth = Blueprint("auth", __name__, url_prefix="/auth")


# =========================================================
# Flask-Login user loader
# =========================================================
@login_manager.user_loader
def load_user(user_id: str):
    try:
        return db.session.get(User, int(user_id))
    except (TypeError, ValueError):
        return None


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"success": False, "message": "Authentication required", "code": "unauthorized"}), 401


# =========================================================
# Login / Logout
# =========================================================
@auth.route("/login", methods=["POST"])
@limiter.limit("5 per minute")
def login():
    data = json_body()
    email = (data.get("email") or "").strip().lower()
    password = data.get("password") or ""

    if not email or not password:
        return jsonify({"success": False, "message": "Email and password are required.",
                        "code": "validation_error"}), 400

    user = User.query.filter(db.func.lower(User.email) == email).first()

    if not user or not verify_password(user.password_hash, password):
        return jsonify({"success": False, "message": "Invalid email or password.",
                        "code": "invalid_credentials"}), 401

    if user.is_active is False:
        return jsonify({"success": False, "message": "This account is inactive. Contact an admin.",
                        "code": "forbidden"}), 403

    login_user(user)

    try:
        user.last_login_at = utcnow_naive()
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()

    return jsonify({"success": True, "message": "Logged in", "data": {"user": user.to_dict()}})


@auth.route("/logout", methods=["POST"])
def logout():
    # Not login_required: logging out twice is harmless.
    logout_user()
    return jsonify({"success": True, "message": "Logged out"})


@auth.route("/me")
@login_required
def me():
    return jsonify({"success": True, "data": {"user": current_user.to_dict()}})

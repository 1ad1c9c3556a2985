# ecobin/routes.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .constants import STAFF_ROLES
from .errors import NotFoundError
from .extensions import db
from .models import Payment, SmartBin
from .services.payments import record_payment
from .services.smart_bins import create_inventory_bin
from .services.transitions import TransitionResult, commit_or_rollback
from .utils.guards import role_required, staff_required
from .utils.parsing import json_body, parse_float
from .utils.responses import ok, ok_list

main = Blueprint("main", __name__)


# ======================
# Health
# ======================
@main.route("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
        return jsonify({"status": "ok", "database": "ok"})
    except SQLAlchemyError:
        db.session.rollback()
        return jsonify({"status": "degraded", "database": "unreachable"}), 503


# ======================
# Smart bin inventory
# ======================
@main.route("/api/bins", methods=["GET"])
@login_required
def list_bins():
    q = SmartBin.query
    if current_user.role not in STAFF_ROLES and current_user.role != "collector":
        q = q.filter(SmartBin.assigned_to_id == current_user.id)

    status = request.args.get("status")
    bin_type = request.args.get("bin_type")
    if status:
        q = q.filter(SmartBin.status == status)
    if bin_type:
        q = q.filter(SmartBin.bin_type == bin_type)

    return ok_list(q.order_by(SmartBin.id.asc()).all())


@main.route("/api/bins/<int:bin_id>", methods=["GET"])
@login_required
def get_bin(bin_id: int):
    smart_bin = db.session.get(SmartBin, bin_id)
    # Residents only see their own bins; anything else looks missing.
    if smart_bin is None or (
        current_user.role == "resident" and smart_bin.assigned_to_id != current_user.id
    ):
        raise NotFoundError("Smart bin", bin_id)
    return jsonify({"success": True, "message": "OK", "data": {"bin": smart_bin.to_dict()}, "warnings": []})


@main.route("/api/bins", methods=["POST"])
@staff_required
def create_bin():
    data = json_body()
    location = data.get("location") or {}
    smart_bin = create_inventory_bin(
        current_user,
        bin_type=(data.get("bin_type") or "").strip().lower(),
        capacity=parse_float(data.get("capacity")),
        latitude=parse_float(location.get("lat")) if isinstance(location, dict) else None,
        longitude=parse_float(location.get("lng")) if isinstance(location, dict) else None,
        address=location.get("address") if isinstance(location, dict) else None,
    )
    commit_or_rollback("Smart bin creation")
    return ok(TransitionResult(message="Smart bin added to inventory", data={"bin": smart_bin.to_dict()}), 201)


# ======================
# Payments (simulated)
# ======================
@main.route("/api/payments", methods=["GET"])
@login_required
def list_payments():
    q = Payment.query
    if current_user.role not in STAFF_ROLES:
        q = q.filter(Payment.user_id == current_user.id)
    return ok_list(q.order_by(Payment.created_at.desc(), Payment.id.desc()).all())


@main.route("/api/payments", methods=["POST"])
@role_required("resident")
def create_payment():
    data = json_body()
    payment = record_payment(
        current_user,
        amount=parse_float(data.get("amount")),
        payment_type=(data.get("payment_type") or "").strip().lower(),
        payment_method=(data.get("payment_method") or "").strip().lower(),
        currency=data.get("currency") or "USD",
        description=data.get("description"),
    )
    commit_or_rollback("Payment recording")
    return ok(TransitionResult(message="Payment recorded", data={"payment": payment.to_dict()}), 201)

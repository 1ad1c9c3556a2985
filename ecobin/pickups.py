# ecobin/pickups.py
from __future__ import annotations

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from .errors import ValidationError
from .services import pickups as svc
from .utils.guards import role_required, staff_required
from .utils.parsing import json_body, parse_float, require_datetime, require_int
from .utils.responses import ok, ok_list

pickups_bp = Blueprint("pickups", __name__, url_prefix="/api/pickups")


# =========================================================
# Resident
# =========================================================
@pickups_bp.route("", methods=["POST"])
@role_required("resident")
def create_pickup():
    data = json_body()
    quantity = data.get("quantity") or {}
    location = data.get("pickup_location") or {}
    if not isinstance(quantity, dict) or not isinstance(location, dict):
        raise ValidationError("'quantity' and 'pickup_location' must be objects")

    result = svc.create_pickup(
        current_user,
        waste_type=(data.get("waste_type") or "").strip().lower(),
        description=data.get("description") or "",
        quantity_value=parse_float(quantity.get("value")),
        quantity_unit=quantity.get("unit") or "items",
        address=location.get("address") or "",
        latitude=parse_float(location.get("lat")),
        longitude=parse_float(location.get("lng")),
        preferred_date=require_datetime(data.get("preferred_date"), "preferred_date"),
        time_slot=(data.get("time_slot") or "").strip().lower(),
        priority=(data.get("priority") or "normal").strip().lower(),
        notes=data.get("notes"),
    )
    return ok(result, 201)


@pickups_bp.route("", methods=["GET"])
@login_required
def list_pickups():
    rows = svc.list_pickups(
        current_user,
        status=request.args.get("status") or None,
        waste_type=request.args.get("waste_type") or None,
        priority=request.args.get("priority") or None,
    )
    return ok_list(rows)


@pickups_bp.route("/<int:pickup_id>", methods=["GET"])
@login_required
def get_pickup(pickup_id: int):
    pickup = svc.get_pickup_for(pickup_id, current_user)
    return jsonify({"success": True, "message": "OK", "data": {"pickup": pickup.to_dict()}, "warnings": []})


@pickups_bp.route("/<int:pickup_id>/cancel", methods=["POST"])
@login_required
def cancel_pickup(pickup_id: int):
    data = json_body()
    return ok(svc.cancel_pickup(pickup_id, current_user, reason=data.get("reason")))


# =========================================================
# Operator / admin
# =========================================================
@pickups_bp.route("/<int:pickup_id>/assign", methods=["POST", "PATCH"])
@staff_required
def assign_collector(pickup_id: int):
    data = json_body()
    collector_id = require_int(data.get("collector_id"), "collector_id")
    if collector_id is None:
        raise ValidationError("'collector_id' is required")
    result = svc.assign_collector(
        pickup_id,
        current_user,
        collector_id=collector_id,
        scheduled_date=require_datetime(data.get("scheduled_date"), "scheduled_date"),
    )
    return ok(result)


@pickups_bp.route("/<int:pickup_id>/status", methods=["POST", "PATCH"])
@staff_required
def update_status(pickup_id: int):
    data = json_body()
    result = svc.update_pickup_status(
        pickup_id,
        current_user,
        status=(data.get("status") or "").strip().lower(),
        notes=data.get("notes"),
        rejection_reason=data.get("rejection_reason"),
        cancellation_reason=data.get("cancellation_reason"),
    )
    return ok(result)


# =========================================================
# Collector
# =========================================================
@pickups_bp.route("/<int:pickup_id>/complete", methods=["POST"])
@role_required("collector")
def complete_pickup(pickup_id: int):
    data = json_body()
    result = svc.complete_pickup(
        pickup_id,
        current_user,
        bin_status=(data.get("bin_status") or "").strip().lower(),
        notes=data.get("notes"),
    )
    return ok(result)

# ecobin/deliveries.py
from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user, login_required

from .errors import ValidationError
from .services import deliveries as svc
from .utils.guards import role_required, staff_required
from .utils.parsing import json_body, require_datetime, require_int
from .utils.responses import ok, ok_list

deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api/deliveries")


@deliveries_bp.route("", methods=["GET"])
@login_required
def list_deliveries():
    rows = svc.list_deliveries(current_user, status=request.args.get("status") or None)
    return ok_list(rows)


@deliveries_bp.route("", methods=["POST"])
@staff_required
def create_delivery():
    data = json_body()
    bin_id = require_int(data.get("bin_id"), "bin_id")
    if bin_id is None:
        raise ValidationError("'bin_id' is required")

    result = svc.create_delivery(
        current_user,
        bin_id=bin_id,
        resident_id=require_int(data.get("resident_id"), "resident_id"),
        scheduled_date=require_datetime(data.get("scheduled_date"), "scheduled_date"),
        bin_request_id=require_int(data.get("bin_request_id"), "bin_request_id"),
        delivery_team_id=require_int(data.get("delivery_team_id"), "delivery_team_id"),
        notes=data.get("notes"),
    )
    return ok(result, 201)


@deliveries_bp.route("/<int:delivery_id>/status", methods=["PATCH", "POST"])
@role_required("collector", "operator", "admin")
def update_status(delivery_id: int):
    data = json_body()
    status = (data.get("status") or "").strip().lower()
    result = svc.update_delivery_status(
        delivery_id,
        current_user,
        status=status,
        note=(data.get("note") or "").strip() or None,
    )
    return ok(result)


@deliveries_bp.route("/<int:delivery_id>/confirm", methods=["POST"])
@login_required
def confirm_receipt(delivery_id: int):
    return ok(svc.confirm_delivery_receipt(delivery_id, current_user))

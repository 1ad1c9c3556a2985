# ecobin/bin_requests.py
from __future__ import annotations

from flask import Blueprint, request
from flask_login import current_user, login_required

from .services import bin_requests as svc
from .utils.guards import role_required, staff_required
from .utils.parsing import json_body, require_datetime, require_int
from .utils.responses import ok, ok_list

bin_requests_bp = Blueprint("bin_requests", __name__, url_prefix="/api/bin-requests")


# =========================================================
# Resident
# =========================================================
@bin_requests_bp.route("", methods=["POST"])
@role_required("resident")
def create_request():
    data = json_body()
    result = svc.create_bin_request(
        current_user,
        requested_bin_type=(data.get("requested_bin_type") or "").strip().lower(),
        address=(data.get("address") or "").strip() or None,
        preferred_delivery_date=require_datetime(data.get("preferred_delivery_date"), "preferred_delivery_date"),
        notes=data.get("notes"),
        street=data.get("street"),
        city=data.get("city"),
        province=data.get("province"),
        postal_code=data.get("postal_code"),
        coordinates=data.get("coordinates"),
    )
    return ok(result, 201)


@bin_requests_bp.route("", methods=["GET"])
@login_required
def list_requests():
    rows = svc.list_bin_requests(current_user, status=request.args.get("status") or None)
    return ok_list(rows)


@bin_requests_bp.route("/<int:request_id>/cancel", methods=["POST"])
@role_required("resident")
def cancel_request(request_id: int):
    return ok(svc.cancel_bin_request(request_id, current_user))


@bin_requests_bp.route("/<int:request_id>/confirm-receipt", methods=["POST"])
@role_required("resident")
def confirm_receipt(request_id: int):
    return ok(svc.confirm_bin_request_receipt(request_id, current_user))


# =========================================================
# Operator / admin
# =========================================================
@bin_requests_bp.route("/<int:request_id>/approve", methods=["POST"])
@staff_required
def approve_request(request_id: int):
    data = json_body()
    result = svc.approve_bin_request(
        request_id,
        current_user,
        bin_id=require_int(data.get("bin_id"), "bin_id"),
        delivery_date=require_datetime(data.get("delivery_date"), "delivery_date"),
        collector_id=require_int(data.get("collector_id"), "collector_id"),
    )
    return ok(result)


@bin_requests_bp.route("/<int:request_id>/reject", methods=["POST"])
@staff_required
def reject_request(request_id: int):
    data = json_body()
    return ok(svc.reject_bin_request(request_id, current_user, reason=data.get("reason")))

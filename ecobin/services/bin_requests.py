# ecobin/services/bin_requests.py
"""
Bin request lifecycle: pending -> approved -> delivered, or pending -> rejected/cancelled.

Approval writes happen in a fixed order (bin, request, delivery, notification)
and only after every precondition has been checked, so a failed approval
leaves nothing behind.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ecobin.constants import BIN_TYPES, STAFF_ROLES
from ecobin.errors import (
    AuthorizationError,
    BinUnavailableError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from ecobin.extensions import db
from ecobin.models import BinRequest, Delivery, SmartBin, User, utcnow_naive
from ecobin.services.identifiers import bin_request_code, generate_delivery_codes
from ecobin.services.notifications import notify, notify_staff
from ecobin.services.payments import has_completed_payment
from ecobin.services.smart_bins import find_available_bin, valid_coordinates
from ecobin.services.transitions import TransitionResult, commit_or_rollback, set_status


def get_bin_request(request_id: int) -> BinRequest:
    bin_request = db.session.get(BinRequest, request_id)
    if bin_request is None:
        raise NotFoundError("Bin request", request_id)
    return bin_request


# =========================================================
# Create / list
# =========================================================
def create_bin_request(
    resident: User,
    *,
    requested_bin_type: str,
    address: str | None = None,
    preferred_delivery_date: datetime | None = None,
    notes: str | None = None,
    street: str | None = None,
    city: str | None = None,
    province: str | None = None,
    postal_code: str | None = None,
    coordinates: dict | None = None,
) -> TransitionResult:
    if requested_bin_type not in BIN_TYPES:
        raise ValidationError(
            f"Invalid bin type '{requested_bin_type}'",
            allowed=list(BIN_TYPES),
        )
    if coordinates is not None and not isinstance(coordinates, dict):
        raise ValidationError("Coordinates must be an object with 'lat' and 'lng'")

    bin_request = BinRequest(
        request_code=bin_request_code(),
        resident_id=resident.id,
        requested_bin_type=requested_bin_type,
        preferred_delivery_date=preferred_delivery_date,
        notes=notes,
        address=address or resident.address,
        street=street,
        city=city,
        province=province,
        postal_code=postal_code,
        # Stored as submitted; validity is only decided when a bin is placed.
        coordinates=dict(coordinates) if coordinates else None,
        status="pending",
        payment_verified=False,
    )
    db.session.add(bin_request)
    commit_or_rollback("Bin request creation")

    current_app.logger.info("Bin request %s created by user %s", bin_request.request_code, resident.id)
    return TransitionResult(
        message="Bin request submitted",
        data={"request": bin_request.to_dict()},
    )


def list_bin_requests(actor: User, *, status: str | None = None) -> list[BinRequest]:
    q = BinRequest.query
    if actor.role not in STAFF_ROLES:
        q = q.filter(BinRequest.resident_id == actor.id)
    if status:
        q = q.filter(BinRequest.status == status)
    return q.order_by(BinRequest.created_at.desc(), BinRequest.id.desc()).all()


# =========================================================
# Approve
# =========================================================
def _resolve_bin(bin_request: BinRequest, bin_id: int | None) -> SmartBin | None:
    if bin_id is not None:
        smart_bin = db.session.get(SmartBin, bin_id)
        if smart_bin is None:
            raise NotFoundError("Smart bin", bin_id)
        if smart_bin.status != "available":
            raise ConflictError(
                f"Smart bin {smart_bin.bin_code} is not available (status '{smart_bin.status}')",
                current_status=smart_bin.status,
            )
        return smart_bin

    smart_bin = find_available_bin(bin_request.requested_bin_type)
    if smart_bin is not None:
        return smart_bin

    if current_app.config.get("BIN_ON_DEMAND_PROVISIONING", False):
        current_app.logger.info(
            "No %s bin in stock for request %s; bin will be created on delivery",
            bin_request.requested_bin_type, bin_request.request_code,
        )
        return None
    raise BinUnavailableError(bin_request.requested_bin_type)


def _resolve_collector(collector_id: int | None) -> User | None:
    if collector_id is None:
        return None
    collector = db.session.get(User, collector_id)
    if collector is None:
        raise NotFoundError("Collector", collector_id)
    if collector.role != "collector":
        raise ValidationError(f"User {collector_id} is not a collector")
    return collector


def approve_bin_request(
    request_id: int,
    actor: User,
    *,
    bin_id: int | None = None,
    delivery_date: datetime | None = None,
    collector_id: int | None = None,
) -> TransitionResult:
    bin_request = get_bin_request(request_id)
    if bin_request.status != "pending":
        raise ConflictError(
            f"Bin request is already {bin_request.status}",
            current_status=bin_request.status,
        )

    # (1) everything that can fail, before any write
    collector = _resolve_collector(collector_id)
    smart_bin = _resolve_bin(bin_request, bin_id)
    delivery_code, tracking_number = generate_delivery_codes()

    now = utcnow_naive()
    scheduled = delivery_date or bin_request.preferred_delivery_date or now
    warnings: list[str] = []

    # (2) bin
    if smart_bin is not None:
        set_status(smart_bin, "assigned", label="Smart bin")
        smart_bin.assigned_to_id = bin_request.resident_id
        smart_bin.delivery_date = scheduled

        coords = bin_request.coordinates or {}
        if valid_coordinates(coords.get("lat"), coords.get("lng")):
            smart_bin.latitude = float(coords["lat"])
            smart_bin.longitude = float(coords["lng"])
        if bin_request.address:
            smart_bin.address = bin_request.address
        db.session.flush()

    # (3) request
    set_status(bin_request, "approved", label="Bin request")
    bin_request.assigned_bin_id = smart_bin.id if smart_bin is not None else None
    bin_request.approved_at = now

    paid = has_completed_payment(bin_request.resident_id)
    if not paid:
        current_app.logger.warning(
            "No completed payment for resident %s; approving %s unverified",
            bin_request.resident_id, bin_request.request_code,
        )
    bin_request.payment_verified = paid

    # (4) delivery, linked both ways
    delivery = Delivery(
        delivery_code=delivery_code,
        tracking_number=tracking_number,
        bin_id=smart_bin.id if smart_bin is not None else None,
        resident_id=bin_request.resident_id,
        bin_request_id=bin_request.id,
        delivery_team_id=collector.id if collector is not None else None,
        scheduled_date=scheduled,
        status="scheduled",
        attempts=[],
    )
    db.session.add(delivery)
    db.session.flush()
    bin_request.delivery_id = delivery.id

    # (5) notifications
    notify(
        bin_request.resident_id,
        notification_type="bin-request-approved",
        title="Bin Request Approved",
        message=(
            f"Your {bin_request.requested_bin_type} bin request has been approved. "
            f"Delivery is scheduled for {scheduled.date().isoformat()}. "
            f"Tracking number: {tracking_number}."
        ),
        priority="medium",
        related_entity=("bin-request", bin_request.id),
    )
    if collector is not None:
        notify(
            collector.id,
            notification_type="delivery-assigned",
            title="Delivery Assignment",
            message=(
                f"You have been assigned delivery {delivery_code} "
                f"({bin_request.requested_bin_type} bin) on {scheduled.date().isoformat()}."
            ),
            priority="medium",
            related_entity=("delivery", delivery.id),
        )

    if smart_bin is None:
        warnings.append("No bin in inventory; a bin will be created when the delivery is completed")

    commit_or_rollback("Bin request approval")
    current_app.logger.info(
        "Bin request %s approved by user %s (bin=%s, delivery=%s)",
        bin_request.request_code, actor.id,
        smart_bin.bin_code if smart_bin is not None else None, delivery_code,
    )
    return TransitionResult(
        message="Bin request approved",
        data={
            "request": bin_request.to_dict(),
            "bin": smart_bin.to_dict() if smart_bin is not None else None,
            "delivery": delivery.to_dict(),
        },
        warnings=warnings,
    )


# =========================================================
# Reject / cancel
# =========================================================
def reject_bin_request(request_id: int, actor: User, *, reason: str | None = None) -> TransitionResult:
    bin_request = get_bin_request(request_id)
    if bin_request.status != "pending":
        raise ConflictError(
            f"Only pending requests can be rejected; this one is {bin_request.status}",
            current_status=bin_request.status,
        )

    set_status(bin_request, "rejected", label="Bin request")
    bin_request.rejection_reason = reason

    notify(
        bin_request.resident_id,
        notification_type="bin-request-rejected",
        title="Bin Request Rejected",
        message=f"Your bin request {bin_request.request_code} was rejected."
                + (f" Reason: {reason}" if reason else ""),
        priority="medium",
        related_entity=("bin-request", bin_request.id),
    )
    commit_or_rollback("Bin request rejection")

    current_app.logger.info("Bin request %s rejected by user %s", bin_request.request_code, actor.id)
    return TransitionResult(message="Bin request rejected", data={"request": bin_request.to_dict()})


def cancel_bin_request(request_id: int, actor: User) -> TransitionResult:
    bin_request = get_bin_request(request_id)
    if bin_request.resident_id != actor.id:
        raise AuthorizationError("You can only cancel your own bin requests")
    if bin_request.status != "pending":
        raise ConflictError(
            f"Only pending requests can be cancelled; this one is {bin_request.status}",
            current_status=bin_request.status,
        )

    set_status(bin_request, "cancelled", label="Bin request")
    bin_request.cancelled_at = utcnow_naive()

    notify_staff(
        notification_type="bin-request-cancelled",
        title="Bin Request Cancelled",
        message=f"{actor.name} cancelled bin request {bin_request.request_code} "
                f"({bin_request.requested_bin_type}).",
        priority="low",
        related_entity=("bin-request", bin_request.id),
    )
    commit_or_rollback("Bin request cancellation")

    current_app.logger.info("Bin request %s cancelled by resident %s", bin_request.request_code, actor.id)
    return TransitionResult(message="Bin request cancelled", data={"request": bin_request.to_dict()})


# =========================================================
# Resident-side receipt check
# =========================================================
def confirm_bin_request_receipt(request_id: int, actor: User) -> TransitionResult:
    """
    Lets a resident check off a request. Delivery completion itself is driven
    by the delivery status, so this only reports where the request stands.
    """
    bin_request = get_bin_request(request_id)
    if bin_request.resident_id != actor.id:
        raise AuthorizationError("You can only confirm your own bin requests")

    if bin_request.status == "delivered":
        return TransitionResult(
            message="Bin has already been delivered",
            data={"request": bin_request.to_dict()},
        )
    if bin_request.status == "approved":
        raise ConflictError(
            "Your bin is still being delivered; confirm once it arrives",
            current_status=bin_request.status,
        )
    raise ConflictError(
        f"Bin request is {bin_request.status} and has no delivery to confirm",
        current_status=bin_request.status,
    )

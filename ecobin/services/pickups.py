# ecobin/services/pickups.py
"""
Special-waste pickups: residents request, staff assign a collector, the
collector reports the outcome.

Completion is committed before any bin is touched. Zeroing fill levels is a
best-effort follow-up: a failure there is logged and returned as a warning,
and the pickup stays completed.
"""

from __future__ import annotations

from datetime import datetime

import sqlalchemy as sa
from flask import current_app

from ecobin.constants import (
    PICKUP_OUTCOMES,
    PICKUP_PRIORITIES,
    QUANTITY_UNITS,
    STAFF_ROLES,
    TIME_SLOTS,
    WASTE_TYPES,
)
from ecobin.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ecobin.extensions import db
from ecobin.models import PICKUP_STATUSES, PickupRequest, User, utcnow_naive
from ecobin.services.identifiers import pickup_request_code
from ecobin.services.notifications import notify, notify_staff
from ecobin.services.smart_bins import active_bins_near, mark_emptied, valid_coordinates
from ecobin.services.transitions import TransitionResult, commit_or_rollback, set_status

COMPLETABLE_STATUSES = ("scheduled", "in-progress")
CLOSED_STATUSES = ("completed", "cancelled", "rejected")


def get_pickup(pickup_id: int) -> PickupRequest:
    pickup = db.session.get(PickupRequest, pickup_id)
    if pickup is None:
        raise NotFoundError("Pickup request", pickup_id)
    return pickup


def get_pickup_for(pickup_id: int, actor: User) -> PickupRequest:
    pickup = get_pickup(pickup_id)
    if actor.role == "resident" and pickup.requested_by_id != actor.id:
        raise AuthorizationError("Not authorized to view this pickup request")
    return pickup


# =========================================================
# Create / list
# =========================================================
def create_pickup(
    resident: User,
    *,
    waste_type: str,
    description: str,
    quantity_value,
    quantity_unit: str = "items",
    address: str,
    latitude,
    longitude,
    preferred_date: datetime | None,
    time_slot: str,
    priority: str = "normal",
    notes: str | None = None,
) -> TransitionResult:
    if waste_type not in WASTE_TYPES:
        raise ValidationError(f"Invalid waste type '{waste_type}'", allowed=list(WASTE_TYPES))
    if not (description or "").strip():
        raise ValidationError("Description is required")
    if (
        isinstance(quantity_value, bool)
        or not isinstance(quantity_value, (int, float))
        or quantity_value <= 0
    ):
        raise ValidationError("Quantity must be a positive number")
    if quantity_unit not in QUANTITY_UNITS:
        raise ValidationError(f"Invalid quantity unit '{quantity_unit}'", allowed=list(QUANTITY_UNITS))
    if not (address or "").strip():
        raise ValidationError("Pickup address is required")
    if not valid_coordinates(latitude, longitude):
        raise ValidationError("Pickup location needs a valid latitude and longitude")
    if preferred_date is None:
        raise ValidationError("Preferred date is required")
    if time_slot not in TIME_SLOTS:
        raise ValidationError(f"Invalid time slot '{time_slot}'", allowed=list(TIME_SLOTS))
    if priority not in PICKUP_PRIORITIES:
        raise ValidationError(f"Invalid priority '{priority}'", allowed=list(PICKUP_PRIORITIES))

    pickup = PickupRequest(
        request_code=pickup_request_code(),
        requested_by_id=resident.id,
        waste_type=waste_type,
        description=description.strip(),
        quantity_value=float(quantity_value),
        quantity_unit=quantity_unit,
        address=address.strip(),
        latitude=float(latitude),
        longitude=float(longitude),
        preferred_date=preferred_date,
        time_slot=time_slot,
        priority=priority,
        status="pending",
        notes=notes,
        status_history=[],
    )
    pickup.record_history(status="pending", changed_by=resident.id)
    db.session.add(pickup)
    commit_or_rollback("Pickup request creation")

    current_app.logger.info("Pickup %s created by user %s", pickup.request_code, resident.id)
    return TransitionResult(message="Pickup request submitted", data={"pickup": pickup.to_dict()})


def list_pickups(
    actor: User,
    *,
    status: str | None = None,
    waste_type: str | None = None,
    priority: str | None = None,
) -> list[PickupRequest]:
    q = PickupRequest.query
    if actor.role == "resident":
        q = q.filter(PickupRequest.requested_by_id == actor.id)
    elif actor.role == "collector":
        q = q.filter(
            sa.or_(
                PickupRequest.assigned_collector_id == actor.id,
                PickupRequest.status == "approved",
            )
        )

    if status:
        q = q.filter(PickupRequest.status == status)
    if waste_type:
        q = q.filter(PickupRequest.waste_type == waste_type)
    if priority:
        q = q.filter(PickupRequest.priority == priority)

    return q.order_by(PickupRequest.created_at.desc(), PickupRequest.id.desc()).all()


# =========================================================
# Staff actions
# =========================================================
def assign_collector(
    pickup_id: int,
    actor: User,
    *,
    collector_id: int,
    scheduled_date: datetime | None = None,
) -> TransitionResult:
    pickup = get_pickup(pickup_id)

    collector = db.session.get(User, collector_id) if collector_id is not None else None
    if collector is None:
        raise NotFoundError("Collector", collector_id)
    if collector.role != "collector":
        raise ValidationError("Invalid collector")

    set_status(pickup, "scheduled", label="Pickup request")
    pickup.assigned_collector_id = collector.id
    pickup.scheduled_date = scheduled_date or pickup.preferred_date
    pickup.record_history(
        status="scheduled",
        changed_by=actor.id,
        notes=f"Assigned to {collector.name}",
    )

    when = pickup.scheduled_date.date().isoformat()
    notify(
        collector.id,
        notification_type="pickup-scheduled",
        title="New Pickup Assignment",
        message=f"Pickup {pickup.request_code} ({pickup.waste_type}) at {pickup.address} on {when}, "
                f"{pickup.time_slot}.",
        priority="high" if pickup.priority in ("high", "urgent") else "medium",
        related_entity=("pickup", pickup.id),
    )
    notify(
        pickup.requested_by_id,
        notification_type="pickup-scheduled",
        title="Pickup Scheduled",
        message=f"Your pickup {pickup.request_code} is scheduled for {when} ({pickup.time_slot}).",
        priority="medium",
        related_entity=("pickup", pickup.id),
    )
    commit_or_rollback("Collector assignment")

    current_app.logger.info(
        "Pickup %s assigned to collector %s by user %s", pickup.request_code, collector.id, actor.id,
    )
    return TransitionResult(message="Collector assigned", data={"pickup": pickup.to_dict()})


def update_pickup_status(
    pickup_id: int,
    actor: User,
    *,
    status: str,
    notes: str | None = None,
    rejection_reason: str | None = None,
    cancellation_reason: str | None = None,
) -> TransitionResult:
    pickup = get_pickup(pickup_id)
    if status not in PICKUP_STATUSES:
        raise ValidationError(f"Invalid pickup status '{status}'", allowed=sorted(PICKUP_STATUSES))
    # Completion needs a collector outcome; it only goes through complete_pickup.
    if status == "completed":
        raise ValidationError(
            "Pickups are completed by the assigned collector with a bin status",
            allowed_outcomes=list(PICKUP_OUTCOMES),
        )

    changed = set_status(pickup, status, label="Pickup request")
    if not changed:
        return TransitionResult(message=f"Pickup is already {status}", data={"pickup": pickup.to_dict()})

    if notes:
        pickup.notes = notes
    if rejection_reason:
        pickup.rejection_reason = rejection_reason
    if cancellation_reason:
        pickup.cancellation_reason = cancellation_reason
    pickup.record_history(status=status, changed_by=actor.id, notes=notes)

    commit_or_rollback("Pickup status update")
    current_app.logger.info("Pickup %s -> %s by user %s", pickup.request_code, status, actor.id)
    return TransitionResult(message=f"Pickup marked {status}", data={"pickup": pickup.to_dict()})


def cancel_pickup(pickup_id: int, actor: User, *, reason: str | None = None) -> TransitionResult:
    pickup = get_pickup(pickup_id)
    if actor.role not in STAFF_ROLES and pickup.requested_by_id != actor.id:
        raise AuthorizationError("Not authorized to cancel this pickup request")
    if pickup.status in CLOSED_STATUSES:
        raise ConflictError(
            f"Cannot cancel a {pickup.status} pickup request",
            current_status=pickup.status,
        )

    set_status(pickup, "cancelled", label="Pickup request")
    pickup.cancellation_reason = reason
    pickup.record_history(status="cancelled", changed_by=actor.id, notes=reason)
    commit_or_rollback("Pickup cancellation")

    current_app.logger.info("Pickup %s cancelled by user %s", pickup.request_code, actor.id)
    return TransitionResult(message="Pickup request cancelled", data={"pickup": pickup.to_dict()})


# =========================================================
# Collector-reported completion
# =========================================================
_OUTCOME_NOTICE = {
    "collected": ("medium", "Pickup Completed", "Your waste was collected. Thank you for using EcoBin."),
    "empty": ("low", "Pickup Completed: Bin Empty", "The collector found nothing to collect at your location."),
    "damaged": (
        "high",
        "Damaged Bin Reported",
        "The collector reported your bin as damaged. A replacement will be arranged.",
    ),
}


def _empty_nearby_bins(pickup: PickupRequest) -> int:
    radius = float(current_app.config.get("PICKUP_BIN_RADIUS_METERS", 50))
    bins = active_bins_near(pickup.requested_by_id, pickup.latitude, pickup.longitude, radius)
    emptied = mark_emptied(bins)
    db.session.commit()
    return emptied


def complete_pickup(
    pickup_id: int,
    actor: User,
    *,
    bin_status: str,
    notes: str | None = None,
) -> TransitionResult:
    if bin_status not in PICKUP_OUTCOMES:
        raise ValidationError(
            f"Invalid bin status '{bin_status}'",
            allowed=list(PICKUP_OUTCOMES),
        )

    pickup = get_pickup(pickup_id)
    if pickup.assigned_collector_id != actor.id:
        raise AuthorizationError("Only the assigned collector can complete this pickup")
    if pickup.status not in COMPLETABLE_STATUSES:
        raise ConflictError(
            f"Pickup cannot be completed from status '{pickup.status}'",
            current_status=pickup.status,
        )

    now = utcnow_naive()
    set_status(pickup, "completed", label="Pickup request")
    pickup.bin_status = bin_status
    pickup.completed_date = now
    if notes:
        pickup.notes = notes
    pickup.record_history(status="completed", changed_by=actor.id, notes=notes, bin_status=bin_status)

    priority, title, message = _OUTCOME_NOTICE[bin_status]
    notify(
        pickup.requested_by_id,
        notification_type="bin-damaged" if bin_status == "damaged" else "pickup-completed",
        title=title,
        message=f"{message} (ref {pickup.request_code})",
        priority=priority,
        related_entity=("pickup", pickup.id),
    )
    if bin_status == "damaged":
        notify_staff(
            notification_type="bin-damaged",
            title="Damaged Bin Reported",
            message=(
                f"Collector {actor.name} reported a damaged bin at {pickup.address} "
                f"(pickup {pickup.request_code}). Please arrange a replacement."
            ),
            priority="high",
            related_entity=("pickup", pickup.id),
        )

    commit_or_rollback("Pickup completion")
    current_app.logger.info(
        "Pickup %s completed by collector %s (%s)", pickup.request_code, actor.id, bin_status,
    )

    warnings: list[str] = []
    emptied = 0
    if bin_status == "collected":
        try:
            emptied = _empty_nearby_bins(pickup)
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Resetting bin levels failed for pickup %s", pickup.request_code)
            warnings.append("Pickup completed, but nearby bin levels could not be reset")

    return TransitionResult(
        message="Pickup completed",
        data={"pickup": pickup.to_dict(), "bins_emptied": emptied},
        warnings=warnings,
    )

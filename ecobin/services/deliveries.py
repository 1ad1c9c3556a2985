# ecobin/services/deliveries.py
"""
Delivery lifecycle and the bin activation that hangs off it.

Reaching 'delivered' is the only place a bin request becomes 'delivered' and
its bin becomes 'active'. The request is found through its delivery link, and
once it has moved past 'approved' a repeated call finds nothing, so no second
bin or notification is produced.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ecobin.constants import STAFF_ROLES
from ecobin.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ecobin.extensions import db
from ecobin.models import DELIVERY_STATUSES, BinRequest, Delivery, SmartBin, User, utcnow_naive
from ecobin.services.identifiers import generate_delivery_codes
from ecobin.services.notifications import notify
from ecobin.services.smart_bins import activate_bin, materialize_bin
from ecobin.services.transitions import TransitionResult, commit_or_rollback, set_status


def get_delivery(delivery_id: int) -> Delivery:
    delivery = db.session.get(Delivery, delivery_id)
    if delivery is None:
        raise NotFoundError("Delivery", delivery_id)
    return delivery


def list_deliveries(actor: User, *, status: str | None = None) -> list[Delivery]:
    q = Delivery.query
    if actor.role == "resident":
        q = q.filter(Delivery.resident_id == actor.id)
    if status:
        q = q.filter(Delivery.status == status)
    return q.order_by(Delivery.created_at.desc(), Delivery.id.desc()).all()


# =========================================================
# Direct creation (operator picks bin + resident)
# =========================================================
def _link_request(
    resident_id: int,
    smart_bin: SmartBin,
    bin_request_id: int | None,
) -> BinRequest | None:
    if bin_request_id is not None:
        bin_request = db.session.get(BinRequest, bin_request_id)
        if bin_request is None:
            raise NotFoundError("Bin request", bin_request_id)
        if bin_request.resident_id != resident_id:
            raise ValidationError("Bin request belongs to a different resident")
        if bin_request.status != "approved":
            raise ConflictError(
                f"Only approved requests can be delivered; this one is {bin_request.status}",
                current_status=bin_request.status,
            )
    else:
        bin_request = (
            BinRequest.query
            .filter(
                BinRequest.resident_id == resident_id,
                BinRequest.status == "approved",
                BinRequest.assigned_bin_id == smart_bin.id,
            )
            .order_by(BinRequest.id.desc())
            .first()
        )
        if bin_request is None:
            return None

    if bin_request.delivery_id is not None:
        existing = db.session.get(Delivery, bin_request.delivery_id)
        if existing is not None and existing.status != "failed":
            raise ConflictError(
                f"Bin request {bin_request.request_code} already has delivery "
                f"{existing.delivery_code} ({existing.status})",
                current_status=existing.status,
            )
    return bin_request


def create_delivery(
    actor: User,
    *,
    bin_id: int,
    resident_id: int | None = None,
    scheduled_date: datetime | None = None,
    bin_request_id: int | None = None,
    delivery_team_id: int | None = None,
    notes: str | None = None,
) -> TransitionResult:
    smart_bin = db.session.get(SmartBin, bin_id)
    if smart_bin is None:
        raise NotFoundError("Bin", bin_id)

    resident_id = resident_id or actor.id
    resident = db.session.get(User, resident_id)
    if resident is None:
        raise NotFoundError("Resident", resident_id)

    if smart_bin.status not in ("available", "assigned"):
        raise ConflictError(
            f"Smart bin {smart_bin.bin_code} cannot be dispatched from status '{smart_bin.status}'",
            current_status=smart_bin.status,
        )
    if smart_bin.status == "assigned" and smart_bin.assigned_to_id not in (None, resident.id):
        raise ConflictError(
            f"Smart bin {smart_bin.bin_code} is assigned to another resident",
            current_status=smart_bin.status,
            assigned_to=smart_bin.assigned_to_id,
        )

    team = None
    if delivery_team_id is not None:
        team = db.session.get(User, delivery_team_id)
        if team is None:
            raise NotFoundError("Collector", delivery_team_id)
        if team.role != "collector":
            raise ValidationError(f"User {delivery_team_id} is not a collector")

    bin_request = _link_request(resident.id, smart_bin, bin_request_id)
    delivery_code, tracking_number = generate_delivery_codes()
    scheduled = scheduled_date or utcnow_naive()

    set_status(smart_bin, "in-transit", label="Smart bin")
    smart_bin.assigned_to_id = resident.id
    smart_bin.delivery_date = scheduled

    delivery = Delivery(
        delivery_code=delivery_code,
        tracking_number=tracking_number,
        bin_id=smart_bin.id,
        resident_id=resident.id,
        bin_request_id=bin_request.id if bin_request is not None else None,
        delivery_team_id=team.id if team is not None else None,
        scheduled_date=scheduled,
        status="scheduled",
        attempts=[],
        notes=notes,
    )
    db.session.add(delivery)
    db.session.flush()

    if bin_request is not None:
        bin_request.delivery_id = delivery.id
        bin_request.assigned_bin_id = smart_bin.id

    if team is not None:
        notify(
            team.id,
            notification_type="delivery-assigned",
            title="Delivery Assignment",
            message=f"You have been assigned delivery {delivery_code} on {scheduled.date().isoformat()}.",
            priority="medium",
            related_entity=("delivery", delivery.id),
        )

    commit_or_rollback("Delivery creation")
    current_app.logger.info(
        "Delivery %s created by user %s (bin=%s, request=%s)",
        delivery_code, actor.id, smart_bin.bin_code,
        bin_request.request_code if bin_request is not None else None,
    )
    return TransitionResult(
        message="Delivery created",
        data={"delivery": delivery.to_dict(), "bin": smart_bin.to_dict()},
    )


# =========================================================
# Status transition
# =========================================================
def _notify_bin_delivered(resident_id: int, smart_bin: SmartBin) -> None:
    notify(
        resident_id,
        notification_type="bin-delivered",
        title="Bin Delivered",
        message=(
            f"Your {smart_bin.bin_type} bin ({smart_bin.bin_code}) has been delivered "
            "and is now active."
        ),
        priority="high",
        related_entity=("smart-bin", smart_bin.id),
    )


def _complete_request(delivery: Delivery, actor: User, now: datetime) -> tuple[BinRequest | None, SmartBin | None]:
    """
    Settle the approved request behind ``delivery``: activate (or create) its bin
    and mark it delivered. Returns (None, None) when no approved request matches.
    """
    bin_request = (
        BinRequest.query
        .filter(
            BinRequest.resident_id == delivery.resident_id,
            BinRequest.status == "approved",
            BinRequest.delivery_id == delivery.id,
        )
        .first()
    )
    if bin_request is None:
        return None, None

    smart_bin = bin_request.assigned_bin or delivery.bin
    if smart_bin is not None:
        smart_bin.assigned_to_id = bin_request.resident_id
        activate_bin(smart_bin, now=now)
    else:
        smart_bin = materialize_bin(bin_request=bin_request, actor=actor, now=now)

    delivery.bin_id = smart_bin.id
    bin_request.assigned_bin_id = smart_bin.id
    set_status(bin_request, "delivered", label="Bin request")
    _notify_bin_delivered(bin_request.resident_id, smart_bin)
    return bin_request, smart_bin


def update_delivery_status(
    delivery_id: int,
    actor: User,
    *,
    status: str,
    note: str | None = None,
) -> TransitionResult:
    delivery = get_delivery(delivery_id)
    if status not in DELIVERY_STATUSES:
        raise ValidationError(
            f"Invalid delivery status '{status}'",
            allowed=sorted(DELIVERY_STATUSES),
        )

    if delivery.status == status:
        return TransitionResult(
            message=f"Delivery is already {status}",
            data={"delivery": delivery.to_dict()},
        )

    now = utcnow_naive()
    warnings: list[str] = []

    set_status(delivery, status, label="Delivery")
    if note:
        delivery.attempts.append({"date": now.isoformat(), "note": note, "performed_by": actor.id})

    data: dict = {}
    if status == "in-transit":
        if delivery.bin is not None and delivery.bin.status == "assigned":
            set_status(delivery.bin, "in-transit", label="Smart bin")

    elif status == "delivered":
        delivery.confirmed_at = now
        bin_request, smart_bin = _complete_request(delivery, actor, now)
        if bin_request is not None:
            data["request"] = bin_request.to_dict()
            data["bin"] = smart_bin.to_dict()
        elif delivery.bin is not None:
            if activate_bin(delivery.bin, now=now):
                current_app.logger.info(
                    "Delivery %s has no approved request; activated linked bin %s",
                    delivery.delivery_code, delivery.bin.bin_code,
                )
            data["bin"] = delivery.bin.to_dict()
        else:
            current_app.logger.warning(
                "Delivery %s delivered with no approved request and no bin", delivery.delivery_code,
            )
            warnings.append("No approved bin request or bin is linked to this delivery")

    commit_or_rollback("Delivery status update")
    current_app.logger.info(
        "Delivery %s -> %s by user %s", delivery.delivery_code, status, actor.id,
    )
    data["delivery"] = delivery.to_dict()
    return TransitionResult(message=f"Delivery marked {status}", data=data, warnings=warnings)


# =========================================================
# Receipt confirmation (bin already exists)
# =========================================================
def confirm_delivery_receipt(delivery_id: int, actor: User) -> TransitionResult:
    delivery = get_delivery(delivery_id)
    if actor.role not in STAFF_ROLES and delivery.resident_id != actor.id:
        raise AuthorizationError("You can only confirm your own deliveries")

    if delivery.status == "delivered":
        return TransitionResult(
            message="Delivery was already confirmed",
            data={"delivery": delivery.to_dict()},
        )

    now = utcnow_naive()
    warnings: list[str] = []

    set_status(delivery, "delivered", label="Delivery")
    delivery.confirmed_at = now

    smart_bin = delivery.bin
    if smart_bin is None:
        current_app.logger.warning(
            "Delivery %s confirmed without a linked bin; activation skipped", delivery.delivery_code,
        )
        warnings.append("No bin is linked to this delivery; bin activation was skipped")
    else:
        activate_bin(smart_bin, now=now)
        bin_request = (
            db.session.get(BinRequest, delivery.bin_request_id)
            if delivery.bin_request_id is not None else None
        )
        if bin_request is not None and bin_request.status == "approved":
            bin_request.assigned_bin_id = smart_bin.id
            set_status(bin_request, "delivered", label="Bin request")
            _notify_bin_delivered(bin_request.resident_id, smart_bin)

    commit_or_rollback("Delivery receipt confirmation")
    current_app.logger.info("Delivery %s receipt confirmed by user %s", delivery.delivery_code, actor.id)
    return TransitionResult(
        message="Delivery confirmed",
        data={
            "delivery": delivery.to_dict(),
            "bin": smart_bin.to_dict() if smart_bin is not None else None,
        },
        warnings=warnings,
    )

# ecobin/models.py
from __future__ import annotations

from datetime import date, datetime, timezone

import sqlalchemy as sa
from flask_login import UserMixin
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.mutable import MutableDict, MutableList

from .constants import (
    BIN_TYPES,
    NOTIFICATION_PRIORITIES,
    NOTIFICATION_TYPES,
    PAYMENT_METHODS,
    PAYMENT_TYPES,
    PICKUP_OUTCOMES,
    PICKUP_PRIORITIES,
    QUANTITY_UNITS,
    ROLES,
    TIME_SLOTS,
    WASTE_TYPES,
)
from .extensions import db


# Use **naive UTC** everywhere because the DB columns are "timestamp without time zone".
def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value: date | datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


# JSONB on Postgres, plain JSON elsewhere (SQLite in tests).
# MutableList/MutableDict so in-place appends are persisted.
JSONList = MutableList.as_mutable(sa.JSON().with_variant(JSONB(), "postgresql"))
JSONDict = MutableDict.as_mutable(sa.JSON().with_variant(JSONB(), "postgresql"))


def _one_of(column: str, values, *, nullable: bool = False) -> str:
    """SQL for a CHECK that keeps `column` inside a fixed set of string values."""
    clause = f"{column} in (" + ", ".join(f"'{v}'" for v in sorted(values)) + ")"
    return f"{column} is null or {clause}" if nullable else clause


# =========================================================
# User model (Authentication + Roles)
# =========================================================
class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(30), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    password_hash = db.Column(db.String(255), nullable=False)

    # resident / collector / operator / admin / super_admin
    role = db.Column(db.String(30), nullable=False, default="resident", index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    last_login_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow_naive,
        onupdate=utcnow_naive,
    )

    __table_args__ = (
        db.UniqueConstraint("email", name="user_email_key"),
        db.CheckConstraint(_one_of("role", ROLES), name="ck_user_role"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "role": self.role,
            "is_active": self.is_active,
        }

    def __repr__(self) -> str:
        return f"<User {self.id} {self.email} {self.role}>"


# =========================================================
# SmartBin (physical bin inventory)
# =========================================================
BIN_STATUSES = {"available", "assigned", "in-transit", "active", "maintenance"}

BIN_TRANSITIONS = {
    "available": {"assigned", "in-transit", "maintenance"},
    "assigned": {"in-transit", "active", "available", "maintenance"},
    "in-transit": {"active", "assigned", "maintenance"},
    "active": {"maintenance"},
    "maintenance": {"active", "available"},
}


class SmartBin(db.Model):
    __tablename__ = "smart_bin"

    id = db.Column(db.Integer, primary_key=True)
    bin_code = db.Column(db.String(40), unique=True, nullable=False)

    bin_type = db.Column(db.String(20), nullable=False, default="general", index=True)
    capacity = db.Column(db.Float, nullable=False, default=120)
    current_level = db.Column(db.Float, nullable=False, default=0)

    # Stored separately; exposed as [longitude, latitude] through `coordinates`.
    latitude = db.Column(db.Float, nullable=False, default=0.0)
    longitude = db.Column(db.Float, nullable=False, default=0.0)
    address = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="available", index=True)

    assigned_to_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True, index=True)
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_id], lazy="joined")

    created_by_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    created_by = db.relationship("User", foreign_keys=[created_by_id], lazy="select")

    delivery_date = db.Column(db.DateTime, nullable=True)
    activation_date = db.Column(db.DateTime, nullable=True)
    last_emptied = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint(_one_of("status", BIN_STATUSES), name="ck_smart_bin_status"),
        db.CheckConstraint(_one_of("bin_type", BIN_TYPES), name="ck_smart_bin_bin_type"),
    )

    @property
    def coordinates(self) -> list[float]:
        return [self.longitude, self.latitude]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bin_code": self.bin_code,
            "bin_type": self.bin_type,
            "capacity": self.capacity,
            "current_level": self.current_level,
            "status": self.status,
            "location": {"coordinates": self.coordinates, "address": self.address},
            "assigned_to": self.assigned_to_id,
            "created_by": self.created_by_id,
            "delivery_date": _iso(self.delivery_date),
            "activation_date": _iso(self.activation_date),
            "last_emptied": _iso(self.last_emptied),
        }

    def __repr__(self) -> str:
        return f"<SmartBin {self.id} {self.bin_code} {self.bin_type} {self.status}>"


# =========================================================
# BinRequest (resident asks for a bin)
# =========================================================
BIN_REQUEST_STATUSES = {"pending", "approved", "rejected", "cancelled", "delivered"}

BIN_REQUEST_TRANSITIONS = {
    "pending": {"approved", "rejected", "cancelled"},
    "approved": {"delivered"},
    "rejected": set(),
    "cancelled": set(),
    "delivered": set(),
}


class BinRequest(db.Model):
    __tablename__ = "bin_request"

    id = db.Column(db.Integer, primary_key=True)
    request_code = db.Column(db.String(40), unique=True, nullable=False)

    resident_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    resident = db.relationship("User", foreign_keys=[resident_id], lazy="joined")

    requested_bin_type = db.Column(db.String(20), nullable=False)
    preferred_delivery_date = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    address = db.Column(db.String(255), nullable=True)
    street = db.Column(db.String(160), nullable=True)
    city = db.Column(db.String(120), nullable=True)
    province = db.Column(db.String(120), nullable=True)
    postal_code = db.Column(db.String(20), nullable=True)

    # {"lat": ..., "lng": ...} exactly as submitted; validated when a bin is placed.
    coordinates = db.Column(JSONDict, nullable=True)

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)

    assigned_bin_id = db.Column(db.Integer, db.ForeignKey("smart_bin.id", ondelete="SET NULL"), nullable=True)
    assigned_bin = db.relationship("SmartBin", foreign_keys=[assigned_bin_id], lazy="joined")

    # Back-reference to delivery.id. No FK constraint: delivery.bin_request_id
    # already points the other way and a second FK would make the tables cyclic.
    delivery_id = db.Column(db.Integer, nullable=True, index=True)

    payment_verified = db.Column(db.Boolean, nullable=False, default=False)

    rejection_reason = db.Column(db.Text, nullable=True)
    approved_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint(_one_of("status", BIN_REQUEST_STATUSES), name="ck_bin_request_status"),
        db.CheckConstraint(_one_of("requested_bin_type", BIN_TYPES), name="ck_bin_request_bin_type"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_code": self.request_code,
            "resident": self.resident_id,
            "requested_bin_type": self.requested_bin_type,
            "preferred_delivery_date": _iso(self.preferred_delivery_date),
            "notes": self.notes,
            "address": self.address,
            "street": self.street,
            "city": self.city,
            "province": self.province,
            "postal_code": self.postal_code,
            "coordinates": dict(self.coordinates) if self.coordinates else None,
            "status": self.status,
            "assigned_bin": self.assigned_bin_id,
            "delivery_id": self.delivery_id,
            "payment_verified": self.payment_verified,
            "rejection_reason": self.rejection_reason,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<BinRequest {self.id} {self.request_code} {self.status}>"


# =========================================================
# Delivery (physical drop-off of a bin)
# =========================================================
DELIVERY_STATUSES = {"scheduled", "in-transit", "delivered", "failed", "rescheduled"}

DELIVERY_TRANSITIONS = {
    "scheduled": {"in-transit", "delivered", "failed", "rescheduled"},
    "in-transit": {"delivered", "failed", "rescheduled"},
    "rescheduled": {"in-transit", "delivered", "failed"},
    "failed": {"rescheduled"},
    "delivered": set(),
}


class Delivery(db.Model):
    __tablename__ = "delivery"

    id = db.Column(db.Integer, primary_key=True)
    delivery_code = db.Column(db.String(40), unique=True, nullable=False)
    tracking_number = db.Column(db.String(40), unique=True, nullable=False)

    # Nullable until the bin exists (on-demand provisioning).
    bin_id = db.Column(db.Integer, db.ForeignKey("smart_bin.id", ondelete="SET NULL"), nullable=True, index=True)
    bin = db.relationship("SmartBin", foreign_keys=[bin_id], lazy="joined")

    resident_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    resident = db.relationship("User", foreign_keys=[resident_id], lazy="joined")

    bin_request_id = db.Column(
        db.Integer,
        db.ForeignKey("bin_request.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    delivery_team_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), nullable=True)
    delivery_team = db.relationship("User", foreign_keys=[delivery_team_id], lazy="select")

    scheduled_date = db.Column(db.DateTime, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="scheduled", index=True)

    # [{"date": iso, "note": str, "performed_by": user_id}, ...]
    attempts = db.Column(JSONList, nullable=False, default=list)

    confirmed_at = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint(_one_of("status", DELIVERY_STATUSES), name="ck_delivery_status"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_code": self.delivery_code,
            "tracking_number": self.tracking_number,
            "bin": self.bin_id,
            "resident": self.resident_id,
            "bin_request": self.bin_request_id,
            "delivery_team": self.delivery_team_id,
            "scheduled_date": _iso(self.scheduled_date),
            "status": self.status,
            "attempts": list(self.attempts or []),
            "confirmed_at": _iso(self.confirmed_at),
            "notes": self.notes,
        }

    def __repr__(self) -> str:
        return f"<Delivery {self.id} {self.delivery_code} {self.status}>"


# =========================================================
# PickupRequest (bulk / special waste collection)
# =========================================================
PICKUP_STATUSES = {"pending", "approved", "scheduled", "in-progress", "completed", "cancelled", "rejected"}

PICKUP_TRANSITIONS = {
    "pending": {"approved", "scheduled", "rejected", "cancelled"},
    "approved": {"scheduled", "rejected", "cancelled"},
    "scheduled": {"in-progress", "completed", "cancelled"},
    "in-progress": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
    "rejected": set(),
}


class PickupRequest(db.Model):
    __tablename__ = "pickup_request"

    id = db.Column(db.Integer, primary_key=True)
    request_code = db.Column(db.String(40), unique=True, nullable=False)

    requested_by_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    requested_by = db.relationship("User", foreign_keys=[requested_by_id], lazy="joined")

    waste_type = db.Column(db.String(20), nullable=False)
    description = db.Column(db.Text, nullable=False)
    quantity_value = db.Column(db.Float, nullable=False)
    quantity_unit = db.Column(db.String(20), nullable=False, default="items")

    address = db.Column(db.String(255), nullable=False)
    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)

    preferred_date = db.Column(db.DateTime, nullable=False)
    time_slot = db.Column(db.String(20), nullable=False)

    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    priority = db.Column(db.String(10), nullable=False, default="normal")

    assigned_collector_id = db.Column(
        db.Integer,
        db.ForeignKey("user.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assigned_collector = db.relationship("User", foreign_keys=[assigned_collector_id], lazy="joined")

    scheduled_date = db.Column(db.DateTime, nullable=True)
    completed_date = db.Column(db.DateTime, nullable=True)

    # collected / empty / damaged, as reported by the collector
    bin_status = db.Column(db.String(20), nullable=True)

    cancellation_reason = db.Column(db.Text, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # [{"status", "bin_status", "changed_by", "changed_at", "notes"}, ...]
    status_history = db.Column(JSONList, nullable=False, default=list)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive, onupdate=utcnow_naive)

    __table_args__ = (
        db.Index("ix_pickup_request_status_preferred", "status", "preferred_date"),
        db.CheckConstraint(_one_of("status", PICKUP_STATUSES), name="ck_pickup_request_status"),
        db.CheckConstraint(_one_of("waste_type", WASTE_TYPES), name="ck_pickup_request_waste_type"),
        db.CheckConstraint(_one_of("quantity_unit", QUANTITY_UNITS), name="ck_pickup_request_quantity_unit"),
        db.CheckConstraint(_one_of("time_slot", TIME_SLOTS), name="ck_pickup_request_time_slot"),
        db.CheckConstraint(_one_of("priority", PICKUP_PRIORITIES), name="ck_pickup_request_priority"),
        db.CheckConstraint(
            _one_of("bin_status", PICKUP_OUTCOMES, nullable=True),
            name="ck_pickup_request_bin_status",
        ),
    )

    @property
    def coordinates(self) -> list[float]:
        return [self.longitude, self.latitude]

    def record_history(self, *, status: str, changed_by: int | None, notes: str | None = None,
                       bin_status: str | None = None) -> None:
        entry = {
            "status": status,
            "changed_by": changed_by,
            "changed_at": utcnow_naive().isoformat(),
            "notes": notes,
        }
        if bin_status is not None:
            entry["bin_status"] = bin_status
        if self.status_history is None:
            self.status_history = []
        self.status_history.append(entry)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_code": self.request_code,
            "requested_by": self.requested_by_id,
            "waste_type": self.waste_type,
            "description": self.description,
            "quantity": {"value": self.quantity_value, "unit": self.quantity_unit},
            "pickup_location": {"coordinates": self.coordinates, "address": self.address},
            "preferred_date": _iso(self.preferred_date),
            "time_slot": self.time_slot,
            "status": self.status,
            "priority": self.priority,
            "assigned_collector": self.assigned_collector_id,
            "scheduled_date": _iso(self.scheduled_date),
            "completed_date": _iso(self.completed_date),
            "bin_status": self.bin_status,
            "cancellation_reason": self.cancellation_reason,
            "rejection_reason": self.rejection_reason,
            "notes": self.notes,
            "status_history": list(self.status_history or []),
        }

    def __repr__(self) -> str:
        return f"<PickupRequest {self.id} {self.request_code} {self.status}>"


# =========================================================
# Payment (simulated ledger)
# =========================================================
PAYMENT_STATUSES = {"pending", "processing", "completed", "failed", "refunded", "cancelled"}


class Payment(db.Model):
    __tablename__ = "payment"

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.String(40), unique=True, nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    user = db.relationship("User", foreign_keys=[user_id], lazy="joined")

    amount = db.Column(db.Float, nullable=False)
    currency = db.Column(db.String(10), nullable=False, default="USD")

    payment_type = db.Column(db.String(30), nullable=False)
    payment_method = db.Column(db.String(30), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)

    description = db.Column(db.Text, nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.CheckConstraint(_one_of("status", PAYMENT_STATUSES), name="ck_payment_status"),
        db.CheckConstraint(_one_of("payment_type", PAYMENT_TYPES), name="ck_payment_payment_type"),
        db.CheckConstraint(_one_of("payment_method", PAYMENT_METHODS), name="ck_payment_payment_method"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "user": self.user_id,
            "amount": self.amount,
            "currency": self.currency,
            "payment_type": self.payment_type,
            "payment_method": self.payment_method,
            "status": self.status,
            "description": self.description,
            "paid_at": _iso(self.paid_at),
        }

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.transaction_id} {self.status}>"


# =========================================================
# Notification (create-only sink)
# =========================================================
class Notification(db.Model):
    __tablename__ = "notification"

    id = db.Column(db.Integer, primary_key=True)

    recipient_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False)
    recipient = db.relationship("User", foreign_keys=[recipient_id], lazy="select")

    type = db.Column(db.String(40), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.Text, nullable=False)
    priority = db.Column(db.String(10), nullable=False, default="medium")
    channel = db.Column(JSONList, nullable=False, default=lambda: ["in-app"])

    # pending until a dispatcher picks it up
    status = db.Column(db.String(20), nullable=False, default="pending")

    related_entity_type = db.Column(db.String(30), nullable=True)
    related_entity_id = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow_naive)

    __table_args__ = (
        db.Index("ix_notification_recipient_status", "recipient_id", "status", "created_at"),
        db.CheckConstraint(_one_of("type", NOTIFICATION_TYPES), name="ck_notification_type"),
        db.CheckConstraint(_one_of("priority", NOTIFICATION_PRIORITIES), name="ck_notification_priority"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipient": self.recipient_id,
            "type": self.type,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "channel": list(self.channel or []),
            "status": self.status,
            "related_entity": {"type": self.related_entity_type, "id": self.related_entity_id},
            "created_at": _iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Notification {self.id} {self.type} -> {self.recipient_id}>"


ALLOWED_TRANSITIONS = {
    "SmartBin": BIN_TRANSITIONS,
    "BinRequest": BIN_REQUEST_TRANSITIONS,
    "Delivery": DELIVERY_TRANSITIONS,
    "PickupRequest": PICKUP_TRANSITIONS,
}


def can_transition(entity: str, current: str, target: str) -> bool:
    # Re-applying the current status is an idempotent no-op.
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS.get(entity, {}).get(current, set())

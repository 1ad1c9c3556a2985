# ecobin/services/smart_bins.py
from __future__ import annotations

import math
from datetime import datetime

from flask import current_app

from ecobin.constants import BIN_CAPACITY_BY_TYPE, BIN_TYPES, DEFAULT_BIN_CAPACITY, DEFAULT_BIN_TYPE
from ecobin.errors import ValidationError
from ecobin.extensions import db
from ecobin.models import SmartBin, User, utcnow_naive
from ecobin.services.identifiers import smart_bin_code
from ecobin.services.transitions import set_status

EARTH_RADIUS_M = 6_371_000.0


# =========================================================
# Type / capacity defaults
# =========================================================
def normalize_bin_type(value) -> str:
    """Unknown or missing types fall back to 'general' rather than failing."""
    v = (value or "").strip().lower() if isinstance(value, str) else ""
    return v if v in BIN_TYPES else DEFAULT_BIN_TYPE


def default_capacity(bin_type: str) -> int:
    return BIN_CAPACITY_BY_TYPE.get(bin_type, DEFAULT_BIN_CAPACITY)


# =========================================================
# Coordinates
# =========================================================
def _is_number(value) -> bool:
    # bool is an int subclass; "true" is not a latitude.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def valid_coordinates(lat, lng) -> bool:
    return (
        _is_number(lat)
        and _is_number(lng)
        and -90 <= lat <= 90
        and -180 <= lng <= 180
    )


def resolve_coordinates(coords) -> tuple[float, float]:
    """
    Return (latitude, longitude) from a {"lat", "lng"} mapping.
    Anything missing, non-numeric or out of range yields (0.0, 0.0).
    """
    if not isinstance(coords, dict):
        return 0.0, 0.0
    lat, lng = coords.get("lat"), coords.get("lng")
    if not valid_coordinates(lat, lng):
        return 0.0, 0.0
    return float(lat), float(lng)


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    p1, p2 = math.radians(lat1), math.radians(lat2)
    dp = p2 - p1
    dl = math.radians(lng2 - lng1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(a))


# =========================================================
# Inventory
# =========================================================
def create_inventory_bin(
    actor: User,
    *,
    bin_type: str,
    capacity: float | None = None,
    latitude: float | None = None,
    longitude: float | None = None,
    address: str | None = None,
) -> SmartBin:
    """Pre-provision an unassigned bin (status 'available')."""
    if bin_type not in BIN_TYPES:
        raise ValidationError(f"Invalid bin type '{bin_type}'", allowed=list(BIN_TYPES))

    if latitude is None and longitude is None:
        lat, lng = 0.0, 0.0
    elif valid_coordinates(latitude, longitude):
        lat, lng = float(latitude), float(longitude)
    else:
        raise ValidationError("Latitude must be within [-90, 90] and longitude within [-180, 180]")

    if capacity is not None and (not _is_number(capacity) or capacity <= 0):
        raise ValidationError("Capacity must be a positive number")

    smart_bin = SmartBin(
        bin_code=smart_bin_code(),
        bin_type=bin_type,
        capacity=capacity if capacity is not None else default_capacity(bin_type),
        current_level=0,
        latitude=lat,
        longitude=lng,
        address=address,
        status="available",
        created_by_id=actor.id,
    )
    db.session.add(smart_bin)
    db.session.flush()
    current_app.logger.info("Bin %s (%s) added to inventory by user %s", smart_bin.bin_code, bin_type, actor.id)
    return smart_bin


def find_available_bin(bin_type: str) -> SmartBin | None:
    return (
        SmartBin.query
        .filter(SmartBin.bin_type == bin_type, SmartBin.status == "available")
        .order_by(SmartBin.id.asc())
        .first()
    )


# =========================================================
# Delivery side
# =========================================================
def materialize_bin(*, bin_request, actor: User | None, now: datetime) -> SmartBin:
    """Create an already-active bin for a delivered request that had none."""
    bin_type = normalize_bin_type(bin_request.requested_bin_type)
    lat, lng = resolve_coordinates(bin_request.coordinates)

    smart_bin = SmartBin(
        bin_code=smart_bin_code(),
        bin_type=bin_type,
        capacity=default_capacity(bin_type),
        current_level=0,
        latitude=lat,
        longitude=lng,
        address=bin_request.address,
        status="active",
        assigned_to_id=bin_request.resident_id,
        created_by_id=actor.id if actor is not None else None,
        delivery_date=now,
        activation_date=now,
    )
    db.session.add(smart_bin)
    db.session.flush()
    return smart_bin


def activate_bin(smart_bin: SmartBin, *, now: datetime) -> bool:
    """Activate once. Returns False if the bin was already active."""
    if smart_bin.status == "active":
        return False
    set_status(smart_bin, "active", label="Smart bin")
    smart_bin.activation_date = now
    if smart_bin.delivery_date is None:
        smart_bin.delivery_date = now
    return True


# =========================================================
# Pickup side
# =========================================================
def active_bins_near(owner_id: int, latitude: float, longitude: float, radius_m: float) -> list[SmartBin]:
    """
    Active bins of ``owner_id`` within ``radius_m`` of the point.
    Falls back to all of the owner's active bins when none are in range.
    """
    owned = SmartBin.query.filter(
        SmartBin.assigned_to_id == owner_id,
        SmartBin.status == "active",
    ).all()

    nearby = [
        b for b in owned
        if haversine_m(latitude, longitude, b.latitude, b.longitude) <= radius_m
    ]
    return nearby or owned


def mark_emptied(bins: list[SmartBin], *, now: datetime | None = None) -> int:
    ts = now or utcnow_naive()
    for b in bins:
        b.current_level = 0
        b.last_emptied = ts
    return len(bins)

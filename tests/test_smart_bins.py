"""
Tests for smart bin helpers and inventory.

Covers:
- bin type fallback and capacity by type
- coordinate validation and [0, 0] fallback
- haversine distance sanity
- proximity lookup with owner-wide fallback
- inventory creation and the /api/bins endpoints
"""

import math

import pytest

from ecobin.errors import ValidationError
from ecobin.services.smart_bins import (
    active_bins_near,
    create_inventory_bin,
    default_capacity,
    haversine_m,
    normalize_bin_type,
    resolve_coordinates,
    valid_coordinates,
)


class TestDefaults:
    @pytest.mark.parametrize(
        "bin_type, capacity",
        [("hazardous", 80), ("organic", 100), ("general", 120), ("recyclable", 120), ("other", 120)],
    )
    def test_capacity_by_type(self, bin_type, capacity):
        assert default_capacity(bin_type) == capacity

    @pytest.mark.parametrize("value", ["compost", "", None, 42, "plastic"])
    def test_unknown_type_falls_back_to_general(self, value):
        assert normalize_bin_type(value) == "general"

    def test_known_type_is_normalized(self):
        assert normalize_bin_type(" Organic ") == "organic"


class TestCoordinates:
    def test_valid_pair_is_kept(self):
        assert resolve_coordinates({"lat": 6.9271, "lng": 79.8612}) == (6.9271, 79.8612)

    @pytest.mark.parametrize(
        "coords",
        [
            None,
            {},
            {"lat": None, "lng": 79.8},
            {"lat": 6.9, "lng": None},
            {"lat": "6.9", "lng": 79.8},
            {"lat": True, "lng": 1},
            {"lat": 90.5, "lng": 0},
            {"lat": 0, "lng": -180.1},
            {"lat": math.inf, "lng": 0},
            [6.9, 79.8],
        ],
    )
    def test_invalid_pairs_fall_back_to_origin(self, coords):
        assert resolve_coordinates(coords) == (0.0, 0.0)

    def test_range_edges_are_valid(self):
        assert valid_coordinates(-90, 180)
        assert valid_coordinates(90, -180)

    def test_haversine(self):
        assert haversine_m(0, 0, 0, 0) == 0
        # one degree of latitude is roughly 111 km
        assert 110_000 < haversine_m(0, 0, 1, 0) < 112_500


class TestProximity:
    def test_bins_in_radius_only(self, resident, make_bin):
        near = make_bin(status="active", owner=resident, lat=6.9271, lng=79.8612)
        make_bin(status="active", owner=resident, lat=7.5, lng=80.5)

        found = active_bins_near(resident.id, 6.9272, 79.8612, 50)
        assert [b.id for b in found] == [near.id]

    def test_falls_back_to_all_active_owned_bins(self, resident, make_user, make_bin):
        a = make_bin(status="active", owner=resident, lat=7.5, lng=80.5)
        b = make_bin(status="active", owner=resident, lat=8.0, lng=81.0)
        make_bin(status="assigned", owner=resident, lat=6.9271, lng=79.8612)
        make_bin(status="active", owner=make_user("resident"), lat=6.9271, lng=79.8612)

        found = active_bins_near(resident.id, 6.9271, 79.8612, 50)
        assert sorted(x.id for x in found) == sorted([a.id, b.id])


class TestInventory:
    def test_create_uses_type_capacity(self, operator):
        smart_bin = create_inventory_bin(operator, bin_type="hazardous")
        assert smart_bin.status == "available"
        assert smart_bin.capacity == 80
        assert smart_bin.coordinates == [0.0, 0.0]
        assert smart_bin.bin_code.startswith("BIN")

    def test_create_rejects_unknown_type(self, operator):
        with pytest.raises(ValidationError):
            create_inventory_bin(operator, bin_type="compost")

    def test_create_rejects_bad_location(self, operator):
        with pytest.raises(ValidationError):
            create_inventory_bin(operator, bin_type="general", latitude=100, longitude=0)

    def test_api_create_and_list(self, app, operator):
        client = app.test_client(user=operator)
        resp = client.post("/api/bins", json={
            "bin_type": "organic",
            "location": {"lat": 6.9, "lng": 79.8, "address": "Depot A"},
        })
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["data"]["bin"]["capacity"] == 100
        assert body["data"]["bin"]["location"]["coordinates"] == [79.8, 6.9]

        listed = client.get("/api/bins?bin_type=organic").get_json()
        assert listed["count"] == 1

    def test_resident_cannot_create(self, app, resident):
        resp = app.test_client(user=resident).post("/api/bins", json={"bin_type": "general"})
        assert resp.status_code == 403

    def test_resident_sees_only_own_bins(self, app, resident, make_bin):
        own = make_bin(status="active", owner=resident)
        other = make_bin()
        client = app.test_client(user=resident)

        assert [b["id"] for b in client.get("/api/bins").get_json()["data"]] == [own.id]
        assert client.get(f"/api/bins/{other.id}").status_code == 404

"""
Tests for pickup requests and collector-reported completion.

Covers:
- create validation and initial history entry
- collector assignment, status updates, cancellation
- staff status updates cannot complete a pickup; only the collector outcome can
- completion outcomes: collected (radius + fallback bin reset), empty, damaged
  (resident + staff broadcast), guards, best-effort bin failure as warning
"""

from datetime import datetime

import pytest

from ecobin.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from ecobin.extensions import db
from ecobin.models import PickupRequest, SmartBin
from ecobin.services import pickups as pickup_service
from ecobin.services.pickups import (
    assign_collector,
    cancel_pickup,
    complete_pickup,
    create_pickup,
    get_pickup_for,
    list_pickups,
    update_pickup_status,
)

LAT, LNG = 6.9271, 79.8612


def _payload(**overrides):
    data = dict(
        waste_type="bulk",
        description="Old sofa",
        quantity_value=1,
        quantity_unit="items",
        address="12 Main St",
        latitude=LAT,
        longitude=LNG,
        preferred_date=datetime(2026, 11, 10),
        time_slot="morning",
    )
    data.update(overrides)
    return data


@pytest.fixture
def pickup(resident):
    result = create_pickup(resident, **_payload())
    return db.session.get(PickupRequest, result.data["pickup"]["id"])


@pytest.fixture
def scheduled(pickup, operator, collector):
    assign_collector(pickup.id, operator, collector_id=collector.id)
    return pickup


class TestCreate:
    def test_creates_pending_with_history(self, pickup, resident):
        assert pickup.status == "pending"
        assert pickup.request_code.startswith("PKP")
        assert pickup.coordinates == [LNG, LAT]
        assert len(pickup.status_history) == 1
        assert pickup.status_history[0]["status"] == "pending"
        assert pickup.status_history[0]["changed_by"] == resident.id

    @pytest.mark.parametrize(
        "overrides",
        [
            {"waste_type": "nuclear"},
            {"description": "  "},
            {"quantity_value": 0},
            {"quantity_value": True},
            {"quantity_unit": "tons"},
            {"address": ""},
            {"latitude": None},
            {"longitude": 181},
            {"preferred_date": None},
            {"time_slot": "midnight"},
            {"priority": "asap"},
        ],
    )
    def test_validation(self, resident, overrides):
        with pytest.raises(ValidationError):
            create_pickup(resident, **_payload(**overrides))
        assert PickupRequest.query.count() == 0

    def test_http_create(self, app, resident):
        resp = app.test_client(user=resident).post("/api/pickups", json={
            "waste_type": "electronic",
            "description": "Two monitors",
            "quantity": {"value": "2", "unit": "items"},
            "pickup_location": {"address": "12 Main St", "lat": LAT, "lng": LNG},
            "preferred_date": "2026-11-10",
            "time_slot": "afternoon",
        })
        assert resp.status_code == 201
        data = resp.get_json()["data"]["pickup"]
        assert data["quantity"] == {"value": 2.0, "unit": "items"}
        assert data["pickup_location"]["coordinates"] == [LNG, LAT]


class TestVisibility:
    def test_list_by_role(self, pickup, resident, make_user, operator, collector):
        other = make_user("resident")
        create_pickup(other, **_payload())

        assert [p.id for p in list_pickups(resident)] == [pickup.id]
        assert len(list_pickups(operator)) == 2
        assert list_pickups(collector) == []

        update_pickup_status(pickup.id, operator, status="approved")
        assert [p.id for p in list_pickups(collector)] == [pickup.id]

    def test_resident_cannot_view_others(self, pickup, make_user):
        with pytest.raises(AuthorizationError):
            get_pickup_for(pickup.id, make_user("resident"))

    def test_missing(self, operator):
        with pytest.raises(NotFoundError):
            get_pickup_for(999, operator)


class TestStaffActions:
    def test_assign_schedules_and_notifies(self, scheduled, collector, resident, notifications_for):
        assert scheduled.status == "scheduled"
        assert scheduled.assigned_collector_id == collector.id
        assert scheduled.scheduled_date == scheduled.preferred_date
        assert scheduled.status_history[-1]["notes"] == f"Assigned to {collector.name}"
        assert len(notifications_for(collector, "pickup-scheduled")) == 1
        assert len(notifications_for(resident, "pickup-scheduled")) == 1

    def test_assign_requires_collector(self, pickup, operator, resident):
        with pytest.raises(ValidationError):
            assign_collector(pickup.id, operator, collector_id=resident.id)
        with pytest.raises(NotFoundError):
            assign_collector(pickup.id, operator, collector_id=999)

    def test_status_update_is_guarded(self, pickup, operator):
        with pytest.raises(ConflictError):
            update_pickup_status(pickup.id, operator, status="in-progress")
        with pytest.raises(ValidationError):
            update_pickup_status(pickup.id, operator, status="teleported")

    def test_staff_cannot_complete_without_outcome(self, scheduled, operator, resident, notifications_for):
        before = len(scheduled.status_history)
        with pytest.raises(ValidationError):
            update_pickup_status(scheduled.id, operator, status="completed")

        db.session.expire_all()
        pickup = db.session.get(PickupRequest, scheduled.id)
        assert pickup.status == "scheduled"
        assert pickup.bin_status is None
        assert pickup.completed_date is None
        assert len(pickup.status_history) == before
        assert notifications_for(resident, "pickup-completed") == []

    def test_http_staff_completion_is_400(self, app, scheduled, operator):
        resp = app.test_client(user=operator).post(
            f"/api/pickups/{scheduled.id}/status", json={"status": "completed"},
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "validation_error"

    def test_rejection_records_reason(self, pickup, operator):
        update_pickup_status(pickup.id, operator, status="rejected", rejection_reason="Not accepted")
        assert pickup.status == "rejected"
        assert pickup.rejection_reason == "Not accepted"
        assert pickup.status_history[-1]["status"] == "rejected"

    def test_cancel_by_owner(self, pickup, resident):
        cancel_pickup(pickup.id, resident, reason="Changed my mind")
        assert pickup.status == "cancelled"
        assert pickup.cancellation_reason == "Changed my mind"

    def test_cancel_by_stranger(self, pickup, make_user):
        with pytest.raises(AuthorizationError):
            cancel_pickup(pickup.id, make_user("resident"))

    def test_cannot_cancel_closed(self, pickup, operator, resident):
        update_pickup_status(pickup.id, operator, status="rejected")
        with pytest.raises(ConflictError):
            cancel_pickup(pickup.id, resident)


class TestComplete:
    def test_collected_zeroes_bins_in_radius(self, scheduled, collector, resident, make_user, make_bin,
                                             notifications_for):
        near = make_bin(status="active", owner=resident, lat=LAT + 0.0002, lng=LNG, level=70)
        far = make_bin(status="active", owner=resident, lat=LAT + 0.1, lng=LNG, level=50)
        idle = make_bin(status="assigned", owner=resident, lat=LAT, lng=LNG, level=30)
        stranger = make_bin(status="active", owner=make_user("resident"), lat=LAT, lng=LNG, level=40)

        result = complete_pickup(scheduled.id, collector, bin_status="collected", notes="All done")

        assert scheduled.status == "completed"
        assert scheduled.bin_status == "collected"
        assert scheduled.completed_date is not None
        assert result.data["bins_emptied"] == 1
        assert result.warnings == []

        assert near.current_level == 0
        assert near.last_emptied is not None
        assert far.current_level == 50
        assert idle.current_level == 30
        assert stranger.current_level == 40

        notes = notifications_for(resident, "pickup-completed")
        assert len(notes) == 1
        assert notes[0].priority == "medium"

    def test_collected_falls_back_to_all_active_bins(self, scheduled, collector, resident, make_bin):
        a = make_bin(status="active", owner=resident, lat=LAT + 0.1, lng=LNG, level=50)
        b = make_bin(status="active", owner=resident, lat=LAT - 0.1, lng=LNG + 0.1, level=60)

        result = complete_pickup(scheduled.id, collector, bin_status="collected")

        assert result.data["bins_emptied"] == 2
        assert a.current_level == 0 and b.current_level == 0

    def test_history_entry(self, scheduled, collector):
        before = len(scheduled.status_history)
        complete_pickup(scheduled.id, collector, bin_status="empty", notes="Nothing out")

        assert len(scheduled.status_history) == before + 1
        entry = scheduled.status_history[-1]
        assert entry["status"] == "completed"
        assert entry["bin_status"] == "empty"
        assert entry["changed_by"] == collector.id
        assert entry["notes"] == "Nothing out"
        assert entry["changed_at"]

    def test_empty_touches_no_bins(self, scheduled, collector, resident, make_bin, notifications_for):
        smart_bin = make_bin(status="active", owner=resident, lat=LAT, lng=LNG, level=70)

        complete_pickup(scheduled.id, collector, bin_status="empty")

        assert smart_bin.current_level == 70
        notes = notifications_for(resident, "pickup-completed")
        assert len(notes) == 1
        assert notes[0].priority == "low"

    def test_damaged_notifies_resident_and_every_active_staff(
        self, scheduled, collector, resident, operator, admin, make_user, make_bin, notifications_for
    ):
        second_operator = make_user("operator")
        inactive_admin = make_user("admin", is_active=False)
        smart_bin = make_bin(status="active", owner=resident, lat=LAT, lng=LNG, level=70)

        complete_pickup(scheduled.id, collector, bin_status="damaged")

        resident_notes = notifications_for(resident, "bin-damaged")
        assert len(resident_notes) == 1
        assert resident_notes[0].priority == "high"

        staff = [operator, admin, second_operator]
        for member in staff:
            notes = notifications_for(member, "bin-damaged")
            assert len(notes) == 1
            assert notes[0].priority == "high"
        assert notifications_for(inactive_admin) == []
        assert smart_bin.current_level == 70

    def test_invalid_outcome(self, scheduled, collector):
        with pytest.raises(ValidationError):
            complete_pickup(scheduled.id, collector, bin_status="overflowing")

    def test_wrong_collector(self, scheduled, make_user):
        with pytest.raises(AuthorizationError):
            complete_pickup(scheduled.id, make_user("collector"), bin_status="collected")

    def test_missing_pickup(self, collector):
        with pytest.raises(NotFoundError):
            complete_pickup(999, collector, bin_status="collected")

    def test_not_yet_scheduled(self, pickup, collector):
        pickup.assigned_collector_id = collector.id
        db.session.commit()
        with pytest.raises(ConflictError):
            complete_pickup(pickup.id, collector, bin_status="collected")

    def test_already_completed(self, scheduled, collector):
        complete_pickup(scheduled.id, collector, bin_status="empty")
        with pytest.raises(ConflictError):
            complete_pickup(scheduled.id, collector, bin_status="collected")

    def test_bin_reset_failure_is_a_warning(self, scheduled, collector, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError("bin store unavailable")

        monkeypatch.setattr(pickup_service, "active_bins_near", boom)

        result = complete_pickup(scheduled.id, collector, bin_status="collected")

        assert result.warnings
        db.session.expire_all()
        assert db.session.get(PickupRequest, scheduled.id).status == "completed"

    def test_http_complete(self, app, scheduled, collector, resident, make_bin):
        smart_bin = make_bin(status="active", owner=resident, lat=LAT, lng=LNG, level=90)
        resp = app.test_client(user=collector).post(
            f"/api/pickups/{scheduled.id}/complete", json={"bin_status": "collected"},
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["data"]["pickup"]["status"] == "completed"
        assert body["data"]["bins_emptied"] == 1
        assert db.session.get(SmartBin, smart_bin.id).current_level == 0

    def test_http_wrong_collector_is_403(self, app, scheduled, make_user):
        resp = app.test_client(user=make_user("collector")).post(
            f"/api/pickups/{scheduled.id}/complete", json={"bin_status": "collected"},
        )
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "forbidden"

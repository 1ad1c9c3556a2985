"""
Tests for the shared status-transition guard.

Covers:
- transition table lookups, including idempotent self-transitions
- ConflictError on illegal moves
- default last-write-wins writes
- opt-in compare-and-swap writes and lost-race detection
"""

import pytest
import sqlalchemy as sa

from ecobin.errors import ConflictError
from ecobin.extensions import db
from ecobin.models import BinRequest, can_transition
from ecobin.services.transitions import TransitionResult, ensure_transition, set_status


class TestTable:
    @pytest.mark.parametrize(
        "entity, current, target, allowed",
        [
            ("BinRequest", "pending", "approved", True),
            ("BinRequest", "pending", "cancelled", True),
            ("BinRequest", "approved", "cancelled", False),
            ("BinRequest", "delivered", "approved", False),
            ("Delivery", "scheduled", "delivered", True),
            ("Delivery", "delivered", "failed", False),
            ("Delivery", "failed", "rescheduled", True),
            ("SmartBin", "assigned", "active", True),
            ("SmartBin", "active", "assigned", False),
            ("PickupRequest", "scheduled", "completed", True),
            ("PickupRequest", "pending", "completed", False),
        ],
    )
    def test_lookup(self, entity, current, target, allowed):
        assert can_transition(entity, current, target) is allowed

    @pytest.mark.parametrize("status", ["delivered", "cancelled", "rejected"])
    def test_self_transition_is_allowed(self, status):
        assert can_transition("BinRequest", status, status)

    def test_unknown_entity_allows_nothing(self):
        assert not can_transition("Invoice", "draft", "sent")


class TestGuard:
    def test_illegal_move_raises_conflict(self, resident, make_bin_request):
        bin_request = make_bin_request(resident, status="delivered")
        with pytest.raises(ConflictError) as exc:
            ensure_transition(bin_request, "approved")
        assert exc.value.current_status == "delivered"
        assert exc.value.http_status == 409

    def test_same_status_is_a_noop(self, resident, make_bin_request):
        bin_request = make_bin_request(resident, status="approved")
        assert set_status(bin_request, "approved") is False
        assert bin_request.status == "approved"

    def test_default_write_is_plain_assignment(self, resident, make_bin_request):
        bin_request = make_bin_request(resident)
        assert set_status(bin_request, "approved") is True
        db.session.commit()
        db.session.expire_all()
        assert db.session.get(BinRequest, bin_request.id).status == "approved"

    def test_result_shape(self):
        result = TransitionResult(message="done", data={"x": 1}, warnings=["careful"])
        assert result.to_response() == {
            "success": True,
            "message": "done",
            "data": {"x": 1},
            "warnings": ["careful"],
        }


class TestCompareAndSwap:
    @pytest.fixture(autouse=True)
    def strict(self, app):
        app.config["WORKFLOW_STRICT_STATUS_WRITES"] = True

    def test_write_lands_when_status_matches(self, resident, make_bin_request):
        bin_request = make_bin_request(resident)
        assert set_status(bin_request, "approved") is True
        db.session.commit()
        db.session.expire_all()
        assert db.session.get(BinRequest, bin_request.id).status == "approved"

    def test_lost_race_raises_conflict(self, resident, make_bin_request):
        bin_request = make_bin_request(resident)

        # Another writer moves the row while this session still holds 'pending'.
        db.session.execute(
            sa.update(BinRequest)
            .where(BinRequest.id == bin_request.id)
            .values(status="cancelled")
            .execution_options(synchronize_session=False)
        )
        assert bin_request.status == "pending"

        with pytest.raises(ConflictError):
            set_status(bin_request, "approved")

    def test_unsaved_rows_are_assigned_directly(self, resident):
        bin_request = BinRequest(request_code="BRNEW", resident_id=resident.id,
                                 requested_bin_type="general", status="pending")
        assert set_status(bin_request, "approved") is True
        assert bin_request.status == "approved"

"""
Tests for the simulated payment ledger and its use in approval.
"""

import pytest

from ecobin.errors import ValidationError
from ecobin.services.payments import has_completed_payment, record_payment


class TestLedger:
    def test_record_completes_immediately(self, resident, notifications_for):
        payment = record_payment(resident, amount=25, payment_type="installation-fee", payment_method="cash")
        assert payment.status == "completed"
        assert payment.paid_at is not None
        assert payment.transaction_id.startswith("PAY")
        assert len(notifications_for(resident, "payment-received")) == 1

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"amount": 0, "payment_type": "penalty", "payment_method": "cash"},
            {"amount": "10", "payment_type": "penalty", "payment_method": "cash"},
            {"amount": 10, "payment_type": "donation", "payment_method": "cash"},
            {"amount": 10, "payment_type": "penalty", "payment_method": "cheque"},
        ],
    )
    def test_validation(self, resident, kwargs):
        with pytest.raises(ValidationError):
            record_payment(resident, **kwargs)

    def test_only_completed_fee_or_charge_verifies(self, resident, make_payment):
        assert has_completed_payment(resident.id) is False
        make_payment(resident, payment_type="maintenance-fee")
        make_payment(resident, payment_type="installation-fee", status="failed")
        assert has_completed_payment(resident.id) is False
        make_payment(resident, payment_type="service-charge")
        assert has_completed_payment(resident.id) is True


class TestHttp:
    def test_resident_pays_and_lists(self, app, resident, make_user):
        client = app.test_client(user=resident)
        resp = client.post("/api/payments", json={
            "amount": "49.5", "payment_type": "service-charge", "payment_method": "mobile-payment",
        })
        assert resp.status_code == 201
        assert resp.get_json()["data"]["payment"]["amount"] == 49.5

        assert client.get("/api/payments").get_json()["count"] == 1
        other = app.test_client(user=make_user("resident"))
        assert other.get("/api/payments").get_json()["count"] == 0

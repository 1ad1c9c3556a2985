# ecobin/services/payments.py
"""Simulated payment ledger. No gateway is called; recorded payments complete immediately."""

from __future__ import annotations

from flask import current_app

from ecobin.constants import PAYMENT_METHODS, PAYMENT_TYPES, VERIFYING_PAYMENT_TYPES
from ecobin.errors import ValidationError
from ecobin.extensions import db
from ecobin.models import Payment, User, utcnow_naive
from ecobin.services.identifiers import payment_transaction_id
from ecobin.services.notifications import notify


def has_completed_payment(resident_id: int) -> bool:
    """True if the resident has a completed installation fee or service charge."""
    return (
        db.session.query(Payment.id)
        .filter(
            Payment.user_id == resident_id,
            Payment.status == "completed",
            Payment.payment_type.in_(VERIFYING_PAYMENT_TYPES),
        )
        .first()
        is not None
    )


def record_payment(
    payer: User,
    *,
    amount,
    payment_type: str,
    payment_method: str,
    currency: str = "USD",
    description: str | None = None,
) -> Payment:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)) or amount <= 0:
        raise ValidationError("Amount must be a positive number")
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"Invalid payment type '{payment_type}'", allowed=list(PAYMENT_TYPES))
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method '{payment_method}'", allowed=list(PAYMENT_METHODS))

    payment = Payment(
        transaction_id=payment_transaction_id(),
        user_id=payer.id,
        amount=float(amount),
        currency=(currency or "USD").upper(),
        payment_type=payment_type,
        payment_method=payment_method,
        status="completed",
        description=description,
        paid_at=utcnow_naive(),
    )
    db.session.add(payment)
    db.session.flush()

    notify(
        payer.id,
        notification_type="payment-received",
        title="Payment Received",
        message=f"We received your {payment_type} payment of {payment.amount:.2f} {payment.currency} "
                f"(ref {payment.transaction_id}).",
        priority="low",
        related_entity=("payment", payment.id),
    )
    current_app.logger.info("Payment %s recorded for user %s", payment.transaction_id, payer.id)
    return payment

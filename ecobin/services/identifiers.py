# ecobin/services/identifiers.py
"""
Human-readable unique codes: PREFIX + epoch milliseconds + zero-padded sequence.

The sequence comes from a process-wide counter, so two codes minted in the same
millisecond still differ. Each candidate is checked against its table before it
is handed out; after ID_GENERATION_MAX_ATTEMPTS collisions GenerationFailure is
raised.
"""

from __future__ import annotations

import itertools
import threading
import time

import sqlalchemy as sa
from flask import current_app

from ecobin.errors import GenerationFailure
from ecobin.extensions import db
from ecobin.models import BinRequest, Delivery, Payment, PickupRequest, SmartBin

_sequence = itertools.count(1)
_sequence_lock = threading.Lock()


def _next_sequence() -> int:
    with _sequence_lock:
        return next(_sequence)


def _timestamp_ms() -> int:
    return time.time_ns() // 1_000_000


def _code_taken(column, value: str) -> bool:
    return bool(db.session.query(sa.exists().where(column == value)).scalar())


def _max_attempts(max_attempts: int | None) -> int:
    if max_attempts is not None:
        return max_attempts
    return int(current_app.config.get("ID_GENERATION_MAX_ATTEMPTS", 100))


def format_code(prefix: str, timestamp_ms: int, sequence: int, width: int) -> str:
    # Wrap the sequence so the code length stays fixed.
    return f"{prefix}{timestamp_ms}{sequence % (10 ** width):0{width}d}".upper()


def generate_code(prefix: str, column, *, width: int = 4, max_attempts: int | None = None) -> str:
    """Return a code for ``column`` that no existing row uses."""
    attempts = _max_attempts(max_attempts)
    for _ in range(attempts):
        code = format_code(prefix, _timestamp_ms(), _next_sequence(), width)
        if not _code_taken(column, code):
            return code

    current_app.logger.error("Unique code generation exhausted for prefix %s", prefix)
    raise GenerationFailure(prefix, attempts)


def generate_delivery_codes(*, max_attempts: int | None = None) -> tuple[str, str]:
    """Return (delivery_code, tracking_number); both share one timestamp/sequence draw."""
    attempts = _max_attempts(max_attempts)
    for _ in range(attempts):
        ts = _timestamp_ms()
        seq = _next_sequence()
        delivery_code = format_code("DLV", ts, seq, 4)
        tracking_number = format_code("TRK", ts, seq, 6)
        if _code_taken(Delivery.delivery_code, delivery_code):
            continue
        if _code_taken(Delivery.tracking_number, tracking_number):
            continue
        return delivery_code, tracking_number

    current_app.logger.error("Unique delivery code generation exhausted")
    raise GenerationFailure("DLV", attempts)


def bin_request_code() -> str:
    return generate_code("BR", BinRequest.request_code, width=4)


def pickup_request_code() -> str:
    return generate_code("PKP", PickupRequest.request_code, width=5)


def smart_bin_code() -> str:
    return generate_code("BIN", SmartBin.bin_code, width=4)


def payment_transaction_id() -> str:
    return generate_code("PAY", Payment.transaction_id, width=4)

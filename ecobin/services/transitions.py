# ecobin/services/transitions.py
"""
Guarded status writes shared by every workflow service.

The allowed moves live next to each model in ``ecobin.models``; this module
checks them and performs the write. With WORKFLOW_STRICT_STATUS_WRITES on,
the write is a compare-and-swap against the status that was read, so two
concurrent approvals of the same request cannot both win.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import sqlalchemy as sa
from flask import current_app
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm.attributes import set_committed_value

from ecobin.errors import ConflictError
from ecobin.extensions import db
from ecobin.models import can_transition


@dataclass
class TransitionResult:
    """Outcome of a workflow operation.

    ``warnings`` collects best-effort side effects that failed or were skipped
    without failing the operation itself.
    """

    message: str
    data: dict[str, Any] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        return {
            "success": True,
            "message": self.message,
            "data": self.data,
            "warnings": list(self.warnings),
        }


def _entity_name(obj) -> str:
    return type(obj).__name__


def ensure_transition(obj, target: str, *, label: str | None = None) -> None:
    """Raise ConflictError if ``obj`` cannot move from its current status to ``target``."""
    current = obj.status
    if not can_transition(_entity_name(obj), current, target):
        what = label or _entity_name(obj)
        raise ConflictError(
            f"{what} cannot move from '{current}' to '{target}'",
            current_status=current,
            target_status=target,
        )


def strict_status_writes() -> bool:
    return bool(current_app.config.get("WORKFLOW_STRICT_STATUS_WRITES", False))


def set_status(obj, target: str, *, label: str | None = None) -> bool:
    """
    Move ``obj`` to ``target`` after checking the transition table.

    Returns False when ``target`` equals the current status (nothing written).
    Rows that are not yet persisted are always written through the ORM.
    """
    ensure_transition(obj, target, label=label)

    expected = obj.status
    if expected == target:
        return False

    if obj.id is None or not strict_status_writes():
        obj.status = target
        return True

    model = type(obj)
    result = db.session.execute(
        sa.update(model)
        .where(model.id == obj.id, model.status == expected)
        .values(status=target)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        what = label or _entity_name(obj)
        current_app.logger.warning(
            "Status write lost race: %s %s expected %s", _entity_name(obj), obj.id, expected
        )
        raise ConflictError(
            f"{what} was modified concurrently; expected status '{expected}'",
            current_status=expected,
            target_status=target,
        )

    # The row already holds the new value; keep the ORM from writing it again.
    set_committed_value(obj, "status", target)
    return True


def commit_or_rollback(action: str) -> None:
    """Commit the session; on failure roll back, log and re-raise."""
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("%s failed", action)
        raise

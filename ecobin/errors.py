# ecobin/errors.py
"""
Typed workflow errors.

Every error carries a machine-readable ``code`` and the HTTP status the API
renders it with. Services raise these before performing any write, so the
error handler in create_app() only has to roll the session back and render.

    WorkflowError
    +-- NotFoundError          404  referenced row does not exist
    +-- ConflictError          409  row exists but its status forbids the action
    +-- ValidationError        400  malformed or out-of-domain input
    +-- AuthorizationError     403  actor lacks the required relationship
    +-- BinUnavailableError    400  no inventory matches the requested bin type
    +-- GenerationFailure      500  unique-code retry budget exhausted
"""

from __future__ import annotations

from typing import Any


class WorkflowError(Exception):
    code: str = "workflow_error"
    http_status: int = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "message": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(WorkflowError):
    code = "not_found"
    http_status = 404

    def __init__(self, entity: str, identifier: Any = None):
        super().__init__(f"{entity} not found", entity=entity, id=identifier)
        self.entity = entity
        self.identifier = identifier


class ConflictError(WorkflowError):
    code = "conflict"
    http_status = 409

    def __init__(self, message: str, *, current_status: str | None = None, **details: Any):
        if current_status is not None:
            details["current_status"] = current_status
        super().__init__(message, **details)
        self.current_status = current_status


class ValidationError(WorkflowError):
    code = "validation_error"
    http_status = 400


class AuthorizationError(WorkflowError):
    code = "forbidden"
    http_status = 403


class BinUnavailableError(WorkflowError):
    code = "bin_unavailable"
    http_status = 400

    def __init__(self, bin_type: str):
        super().__init__(
            f"No available {bin_type} bins in inventory. "
            "Add bins of this type or approve with a different bin type.",
            bin_type=bin_type,
        )
        self.bin_type = bin_type


class GenerationFailure(WorkflowError):
    code = "generation_failure"
    http_status = 500

    def __init__(self, prefix: str, attempts: int):
        super().__init__(
            f"Could not generate a unique {prefix} code after {attempts} attempts",
            prefix=prefix,
            attempts=attempts,
        )
        self.prefix = prefix
        self.attempts = attempts

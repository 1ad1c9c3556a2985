# ecobin/utils/guards.py

from __future__ import annotations

from functools import wraps
from typing import Callable, Any

from flask import abort
from flask_login import login_required, current_user

from ecobin.constants import ADMIN_ROLES


def current_role() -> str:
    return (getattr(current_user, "role", "") or "").strip().lower()


def role_required(*allowed_roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Generic role gate:
        @role_required("operator", "admin")
        def view(): ...

    super_admin passes any gate that admits admin.
    """
    allowed = set(allowed_roles)
    if "admin" in allowed:
        allowed |= ADMIN_ROLES

    def decorator(view: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(view)
        @login_required
        def wrapped(*args, **kwargs):
            if current_role() not in allowed:
                abort(403)
            if not getattr(current_user, "is_active", True):
                abort(403)
            return view(*args, **kwargs)
        return wrapped
    return decorator


# Shorthand used by the workflow blueprints.
staff_required = role_required("operator", "admin")

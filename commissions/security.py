"""
commissions/security.py

Access control helpers for the JSON API.

Key rules:
- UI is never trusted; all permission checks are server-side.
- Managers review, pay and administer salespeople.
- Salespeople work on their own submissions only (enforced by the lifecycle
  policy, not here).

This module also provides a global safety net:
- inactive_user_guard() blocks POST/PUT/PATCH/DELETE for users who are not
  active and approved. Wire it via app.before_request in the app factory.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Callable, Optional, Tuple

from flask import jsonify, request
from flask_login import current_user

from .errors import Forbidden

MUTATING_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def _forbidden(message: str) -> Tuple[Any, int]:
    """Render a consistent 403 body."""
    return jsonify(Forbidden(message).to_dict()), 403


def is_manager() -> bool:
    """Return True if current user is authenticated and a manager."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_manager", False))


def inactive_user_guard() -> Optional[Tuple[Any, int]]:
    """
    Global guard: deactivated or unapproved accounts cannot mutate data.

    Allow-list:
    - auth.logout
    """
    if request.method not in MUTATING_METHODS:
        return None

    if not current_user.is_authenticated:
        return None

    if current_user.can_act():
        return None

    if (request.endpoint or "") == "auth.logout":
        return None

    return _forbidden("Your account is inactive or awaiting approval.")


def manager_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: manager-only. Use below login_required."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_manager():
            return _forbidden("Manager access required.")
        return view_func(*args, **kwargs)

    return wrapper

"""
commissions/audit.py

Audit logging helper utilities.

Goals:
- Capture WHO did WHAT to WHICH entity, with BEFORE/AFTER snapshots.
- Store an email snapshot to preserve identity even if the user changes later.
- Store IP address for traceability when called inside a request.

IMPORTANT:
- This helper ADDS AuditLog entries to the given SQLAlchemy session.
  The caller controls transaction boundaries (commit/rollback).
- The actor is passed explicitly; the lifecycle service runs without a
  request context too.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from flask import has_request_context, request

from .extensions import db
from .models import AuditLog

# Never copied into audit snapshots
SECRET_COLUMNS = {"password_hash", "token"}


def _safe_str(value: Any) -> Optional[str]:
    """
    Convert a value to a stable string representation suitable for JSON and DB storage.

    - For Decimal/datetime/etc: str(value) is typically safe.
    - For None: return None.
    """
    if value is None:
        return None
    return str(value)


def serialize_model(instance: Any) -> Dict[str, Optional[str]]:
    """
    Convert a SQLAlchemy model instance to a dict snapshot based on table columns.

    NOTES:
    - Captures only scalar column values (not relationships).
    - Values are converted to string for JSON safety.
    - Secret columns (password hash, invite token) are skipped.
    """
    data: Dict[str, Optional[str]] = {}
    for column in instance.__table__.columns:
        if column.name in SECRET_COLUMNS:
            continue
        data[column.name] = _safe_str(getattr(instance, column.name))
    return data


def log_action(
    entity: Any,
    action: str,
    *,
    actor: Any = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    entity_id: Optional[int] = None,
    session=None,
) -> AuditLog:
    """
    Add an AuditLog entry to the session (db.session by default).

    Parameters:
        entity: SQLAlchemy model instance with .id
        action: CREATE / UPDATE / DELETE / lifecycle action name
        actor: User performing the action (None for system actions)
        before / after: dict snapshots (optional)
        entity_id: explicit id, for entities already deleted/expired
    """
    if entity_id is None:
        entity_id = getattr(entity, "id", None)
    if entity_id is None:
        raise ValueError("log_action entity must have an 'id' attribute (after flush).")

    entry = AuditLog(
        user_id=getattr(actor, "id", None),
        email_snapshot=getattr(actor, "email", None),
        entity_type=entity.__class__.__name__,
        entity_id=int(entity_id),
        action=str(action).upper(),
        before_data=json.dumps(before, ensure_ascii=False) if before else None,
        after_data=json.dumps(after, ensure_ascii=False) if after else None,
        ip_address=request.remote_addr if has_request_context() else None,
    )
    (session or db.session).add(entry)
    return entry

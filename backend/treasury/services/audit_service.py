# Overview: Best-effort audit trail for treasury state changes.

from __future__ import annotations

from typing import Any

from flask import current_app

from ..extensions import db
from ..models import AuditLog
from .concurrency import after_commit

"""
Audit invariants

- Recording is queued on the running unit of work and written only after the
  financial commit, in its own commit.
- A rolled-back operation leaves no audit row.
- A failed audit write is logged and never propagates: it cannot be mistaken
  for a failure of the financial operation it describes.
"""


def snapshot(entity) -> dict[str, Any]:
    """Serializable view of an entity for old/new values."""
    return entity.to_dict()


def record(
    *,
    entity_type: str,
    entity_id: int,
    event: str,
    old_values: dict | None = None,
    new_values: dict | None = None,
    description: str | None = None,
    user_id: int | None = None,
) -> None:
    entry = {
        "entity_type": entity_type,
        "entity_id": entity_id,
        "event": event,
        "old_values": old_values,
        "new_values": new_values,
        "description": description,
        "user_id": user_id,
    }
    after_commit(lambda: _write(entry))


def _write(entry: dict) -> None:
    if not current_app.config.get("AUDIT_ENABLED", True):
        return
    try:
        db.session.add(AuditLog(**entry))
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to write audit entry %s for %s %s",
            entry["event"], entry["entity_type"], entry["entity_id"],
        )


def get_entity_history(entity_type: str, entity_id: int) -> list[AuditLog]:
    return db.session.query(AuditLog).filter_by(
        entity_type=entity_type,
        entity_id=entity_id,
    ).order_by(AuditLog.id).all()

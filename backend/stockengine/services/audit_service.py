# Overview: Append-only audit trail for document lifecycle transitions.

from __future__ import annotations

import json
from datetime import datetime
from typing import Optional

from ..extensions import db
from ..models import AuditEvent
from ..time_utils import utcnow
from ..validation import MAX_NOTE_LENGTH
"""
Audit Trail Invariants (authoritative)

- Append-only audit log for document lifecycle events.
- No domain/business logic here.
- Events are written inside the same DB transaction as the transition they record.
- occurred_at is business time; created_at is system time (DB default).
- note is a short summary; longer text is cut to the column length.
"""


def append_audit_event(
    *,
    tenant_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    location_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: dict | str | None = None,
) -> AuditEvent:
    if isinstance(payload, dict):
        payload = json.dumps(payload, sort_keys=True, default=str)
    if note is not None:
        note = str(note)[:MAX_NOTE_LENGTH]

    ev = AuditEvent(
        tenant_id=tenant_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        location_id=location_id,
        occurred_at=occurred_at or utcnow(),
        note=note,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_audit_events(
    tenant_id: int,
    entity_type: str | None = None,
    entity_id: int | None = None,
    event_type: str | None = None,
    limit: int = 200,
) -> list[AuditEvent]:
    q = db.session.query(AuditEvent).filter(AuditEvent.tenant_id == tenant_id)
    if entity_type:
        q = q.filter(AuditEvent.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditEvent.entity_id == entity_id)
    if event_type:
        q = q.filter(AuditEvent.event_type == event_type)
    limit = max(1, min(int(limit), 1000))
    return q.order_by(AuditEvent.occurred_at.asc(), AuditEvent.id.asc()).limit(limit).all()

# Overview: Append-only request history events, written in the caller's transaction.

from __future__ import annotations

import json
from typing import Optional

from ..extensions import db
from ..models import Request, RequestEvent
"""
Request History Invariants (authoritative)

- Append-only audit log of request-level events.
- No domain/business logic in the history itself.
- Events are written inside the same DB transaction as the change they record.
- occurred_at is system time (DB default).
"""

REQUEST_EVENT_CREATED = "CREATED"
REQUEST_EVENT_STATUS_CHANGED = "STATUS_CHANGED"
REQUEST_EVENT_DETAILS_UPDATED = "DETAILS_UPDATED"
REQUEST_EVENT_ITEMS_REPLACED = "ITEMS_REPLACED"
REQUEST_EVENT_APPROVAL_SIGNED = "APPROVAL_SIGNED"
REQUEST_EVENT_APPROVAL_VOIDED = "APPROVAL_VOIDED"
REQUEST_EVENT_PICKUP_SIGNED = "PICKUP_SIGNED"
REQUEST_EVENT_PICKUP_VOIDED = "PICKUP_VOIDED"
REQUEST_EVENT_DELETED = "DELETED"


def append_request_event(
    *,
    request: Request,
    event_type: str,
    actor_user_id: Optional[int] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> RequestEvent:
    """
    Append-only request event (no commit).

    - No deletes/updates of existing events.
    - request_number is snapshotted so the row outlives the request.
    """
    ev = RequestEvent(
        tenant_id=request.tenant_id,
        request_id=request.id,
        request_number=request.display_number,
        event_type=event_type,
        actor_user_id=actor_user_id,
        note=note,
        payload=json.dumps(payload, sort_keys=True, default=str) if payload else None,
    )
    db.session.add(ev)
    return ev


def list_request_events(*, tenant_id: int, request_id: int) -> list[RequestEvent]:
    return (
        db.session.query(RequestEvent)
        .filter(RequestEvent.tenant_id == tenant_id, RequestEvent.request_id == request_id)
        .order_by(RequestEvent.id.asc())
        .all()
    )

# Overview: Status-audit and event emission after commit; failures are logged, never raised.

"""
Notification / Audit Emitter

Emission happens strictly after the core transaction has committed. An
emitter failure is logged through the Flask application logger and never
rolls back (or fails) the operation that triggered it.

The default DatabaseNotificationEmitter stores one RequestStatusAudit row per
status change and Notification rows for the people who need to act next,
in its own commit.
"""

from __future__ import annotations

import json
from typing import Optional

from flask import current_app
from sqlalchemy import or_

from ..context import ROLE_ADMIN
from ..extensions import db, get_collaborator
from ..models import Notification, RequestStatusAudit
from ..models.requests import (
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_FULFILLED,
    REQUEST_STATUS_REJECTED,
    REQUEST_STATUS_SUBMITTED,
)


class NotificationEmitter:
    """Interface for the notification/audit collaborator."""

    def emit_status_audit(
        self,
        *,
        tenant_id: int,
        request_id: int,
        from_status: Optional[str],
        to_status: str,
        actor_id: Optional[int],
        note: Optional[str] = None,
        source: Optional[str] = None,
    ) -> None:
        raise NotImplementedError

    def emit_event(self, event_type: str, *, tenant_id: int, payload: dict) -> None:
        raise NotImplementedError


_STATUS_MESSAGES = {
    REQUEST_STATUS_APPROVED: "Request {number} was approved",
    REQUEST_STATUS_REJECTED: "Request {number} was rejected",
    REQUEST_STATUS_FULFILLED: "Request {number} was picked up",
}


class DatabaseNotificationEmitter(NotificationEmitter):

    def emit_status_audit(
        self,
        *,
        tenant_id,
        request_id,
        from_status,
        to_status,
        actor_id,
        note=None,
        source=None,
    ):
        db.session.add(
            RequestStatusAudit(
                tenant_id=tenant_id,
                request_id=request_id,
                from_status=from_status,
                to_status=to_status,
                changed_by_user_id=actor_id,
                note=note,
                source=source,
            )
        )
        db.session.commit()

    def emit_event(self, event_type, *, tenant_id, payload):
        number = payload.get("display_number")
        status = payload.get("status")
        notifications = []

        if event_type == "request.status_changed" and status == REQUEST_STATUS_SUBMITTED:
            notifications.append(
                Notification(
                    tenant_id=tenant_id,
                    kind=event_type,
                    title=f"Request {number} awaits approval",
                    recipient_role=ROLE_ADMIN,
                    payload=json.dumps(payload, sort_keys=True, default=str),
                )
            )
        elif event_type == "request.status_changed" and status in _STATUS_MESSAGES:
            recipient = payload.get("requester_user_id")
            if recipient is not None:
                notifications.append(
                    Notification(
                        tenant_id=tenant_id,
                        kind=event_type,
                        title=_STATUS_MESSAGES[status].format(number=number),
                        message=payload.get("note"),
                        recipient_user_id=recipient,
                        payload=json.dumps(payload, sort_keys=True, default=str),
                    )
                )

        if notifications:
            db.session.add_all(notifications)
            db.session.commit()


def _emitter() -> NotificationEmitter:
    return get_collaborator("notifications")


def emit_status_change(
    *,
    tenant_id: int,
    request_id: int,
    from_status: Optional[str],
    to_status: str,
    actor_id: Optional[int],
    note: Optional[str] = None,
    source: str = "api",
) -> None:
    """Best-effort status audit. Call only after the core commit."""
    try:
        _emitter().emit_status_audit(
            tenant_id=tenant_id,
            request_id=request_id,
            from_status=from_status,
            to_status=to_status,
            actor_id=actor_id,
            note=note,
            source=source,
        )
    except Exception:
        db.session.rollback()
        current_app.logger.exception(
            "Failed to emit status audit for request %s (%s -> %s)", request_id, from_status, to_status
        )


def emit_event(event_type: str, *, tenant_id: int, payload: dict) -> None:
    """Best-effort event emission. Call only after the core commit."""
    try:
        _emitter().emit_event(event_type, tenant_id=tenant_id, payload=payload)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to emit event %s", event_type)


def list_notifications(*, tenant_id: int, user_id: int, role: str, unread_only: bool = False) -> list[Notification]:
    query = db.session.query(Notification).filter(
        Notification.tenant_id == tenant_id,
        or_(Notification.recipient_user_id == user_id, Notification.recipient_role == role),
    )
    if unread_only:
        query = query.filter(Notification.read_at.is_(None))
    return query.order_by(Notification.id.desc()).all()

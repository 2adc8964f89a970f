from __future__ import annotations

import json

from sqlalchemy import event

from ..errors import ImmutableRecordError
from ..extensions import db
from app.time_utils import to_utc_z


class RequestEvent(db.Model):
    """
    Append-only history of request-level events.

    Written inside the same transaction as the change it records, so a
    re-signed request still shows who voided the previous signature and why.
    request_id is a plain column (no FK) and request_number a snapshot, so
    rows outlive a deleted request.
    """
    __tablename__ = "request_events"
    __table_args__ = (
        db.Index("ix_request_events_tenant_request", "tenant_id", "request_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    request_id = db.Column(db.Integer, nullable=False)
    request_number = db.Column(db.String(32), nullable=True)

    event_type = db.Column(db.String(48), nullable=False, index=True)
    actor_user_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(500), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "request_id": self.request_id,
            "request_number": self.request_number,
            "event_type": self.event_type,
            "actor_user_id": self.actor_user_id,
            "note": self.note,
            "payload": json.loads(self.payload) if self.payload else None,
            "occurred_at": to_utc_z(self.occurred_at),
        }


@event.listens_for(RequestEvent, "before_update")
def _prevent_event_update(mapper, connection, target):
    raise ImmutableRecordError(f"RequestEvent {target.id} is append-only and cannot be modified")


@event.listens_for(RequestEvent, "before_delete")
def _prevent_event_delete(mapper, connection, target):
    raise ImmutableRecordError(f"RequestEvent {target.id} is append-only and cannot be deleted")


class RequestStatusAudit(db.Model):
    """One row per committed status change, written by the notification emitter."""
    __tablename__ = "request_status_audits"
    __table_args__ = (
        db.Index("ix_request_status_audits_tenant_request", "tenant_id", "request_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    request_id = db.Column(db.Integer, nullable=False)

    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=False)
    changed_by_user_id = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(500), nullable=True)
    source = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "request_id": self.request_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by_user_id": self.changed_by_user_id,
            "note": self.note,
            "source": self.source,
            "created_at": to_utc_z(self.created_at),
        }


class Notification(db.Model):
    """
    Stored notification for a user or for every holder of a role.

    Exactly one of recipient_user_id / recipient_role is set.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_tenant_user", "tenant_id", "recipient_user_id", "read_at"),
        db.Index("ix_notifications_tenant_role", "tenant_id", "recipient_role", "read_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    kind = db.Column(db.String(48), nullable=False)
    title = db.Column(db.String(200), nullable=False)
    message = db.Column(db.String(500), nullable=True)
    recipient_user_id = db.Column(db.Integer, nullable=True)
    recipient_role = db.Column(db.String(32), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "kind": self.kind,
            "title": self.title,
            "message": self.message,
            "recipient_user_id": self.recipient_user_id,
            "recipient_role": self.recipient_role,
            "payload": json.loads(self.payload) if self.payload else None,
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }

# Overview: Request lifecycle; creation, status transitions, edits and deletion with stock effects.

"""
Request Workflow State Machine

    DRAFT --submit--> SUBMITTED --approve--> APPROVED --pickup signature--> FULFILLED
                          |                     |
                          +-------reject--------+--> REJECTED

Stock effects:
- create with submit=True, submit: allocate every line
- approve: allocate every line unless the request already holds stock
- reject: restore everything the request holds
- pickup (FULFILLED): no stock effect, the allocation simply stays

REJECTED and FULFILLED are terminal. Every operation is one UnitOfWork; the
status audit and events are emitted after commit and never fail the call.

LOCK: while a signature is recorded, items, details, rejection and deletion
are refused with SignedRequestLockedError. Voiding the signature unlocks.
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import or_

from ..context import RequestContext
from ..errors import InvalidTransitionError, SignedRequestLockedError, ValidationError
from ..extensions import db
from ..models import Request
from ..models.requests import (
    REQUEST_STATUSES,
    REQUEST_STATUS_APPROVED,
    REQUEST_STATUS_DRAFT,
    REQUEST_STATUS_FULFILLED,
    REQUEST_STATUS_REJECTED,
    REQUEST_STATUS_SUBMITTED,
    TERMINAL_REQUEST_STATUSES,
)
from ..schemas import (
    CreateRequestCommand,
    ReplaceItemsCommand,
    TransitionCommand,
    UpdateDetailsCommand,
)
from ..time_utils import current_year
from ..validation import enforce_rules_request_details
from . import allocation_service, notification_service
from .concurrency import UnitOfWork, flush_or_conflict, run_with_retry
from .ledger_service import (
    REQUEST_EVENT_CREATED,
    REQUEST_EVENT_DELETED,
    REQUEST_EVENT_DETAILS_UPDATED,
    REQUEST_EVENT_ITEMS_REPLACED,
    REQUEST_EVENT_STATUS_CHANGED,
    append_request_event,
    list_request_events,
)
from .permission_service import has_permission, require_permission, require_request_access
from .sequence_service import run_sequenced
from .tenant_service import require_request_in_tenant


ACTION_SUBMIT = "submit"
ACTION_APPROVE = "approve"
ACTION_REJECT = "reject"
ACTION_FULFILL = "fulfill"

# action -> (allowed source statuses, target status)
TRANSITIONS = {
    ACTION_SUBMIT: ((REQUEST_STATUS_DRAFT,), REQUEST_STATUS_SUBMITTED),
    ACTION_APPROVE: ((REQUEST_STATUS_SUBMITTED,), REQUEST_STATUS_APPROVED),
    ACTION_REJECT: ((REQUEST_STATUS_SUBMITTED, REQUEST_STATUS_APPROVED), REQUEST_STATUS_REJECTED),
    ACTION_FULFILL: ((REQUEST_STATUS_APPROVED,), REQUEST_STATUS_FULFILLED),
}


def check_transition(request: Request, action: str) -> str:
    """Return the target status for `action`, or raise InvalidTransitionError."""
    allowed, target = TRANSITIONS[action]
    if request.status not in allowed:
        raise InvalidTransitionError(
            f"cannot {action} a request in status {request.status}",
            status=request.status,
            action=action,
        )
    return target


def _ensure_editable(ctx: RequestContext, request: Request) -> None:
    require_request_access(ctx, request)
    if request.status in TERMINAL_REQUEST_STATUSES:
        raise InvalidTransitionError(
            f"request is {request.status} and can no longer be edited", status=request.status
        )
    if request.is_locked:
        raise SignedRequestLockedError("request is signed; void the signature before editing")


def _status_payload(request: Request, from_status: Optional[str], note: Optional[str]) -> dict:
    return {
        "request_id": request.id,
        "display_number": request.display_number,
        "from_status": from_status,
        "status": request.status,
        "requester_user_id": request.requester_user_id,
        "note": note,
    }


def announce_status_change(
    ctx: RequestContext,
    request: Request,
    from_status: Optional[str],
    *,
    note: Optional[str] = None,
    source: str = "api",
) -> None:
    """Post-commit status audit plus event. Failures are logged only."""
    notification_service.emit_status_change(
        tenant_id=request.tenant_id,
        request_id=request.id,
        from_status=from_status,
        to_status=request.status,
        actor_id=ctx.actor_id,
        note=note,
        source=source,
    )
    notification_service.emit_event(
        "request.status_changed",
        tenant_id=request.tenant_id,
        payload=_status_payload(request, from_status, note),
    )


# =============================================================================
# Reads
# =============================================================================

def get_request(ctx: RequestContext, request_id: int) -> Request:
    require_permission(ctx, "VIEW_REQUESTS")
    request = require_request_in_tenant(request_id, ctx.tenant_id)
    require_request_access(ctx, request)
    return request


def list_requests(
    ctx: RequestContext,
    *,
    mine: bool = False,
    status: Optional[str] = None,
    limit: int = 100,
) -> list[Request]:
    """Tenant-wide list for managers; everyone else only sees their own requests."""
    require_permission(ctx, "VIEW_REQUESTS")
    if not has_permission(ctx, "MANAGE_REQUESTS"):
        mine = True

    query = db.session.query(Request).filter(Request.tenant_id == ctx.tenant_id)
    if mine:
        query = query.filter(
            or_(Request.requester_user_id == ctx.actor_id, Request.created_by_user_id == ctx.actor_id)
        )
    if status is not None:
        if status not in REQUEST_STATUSES:
            raise ValidationError(f"Unknown status: {status}")
        query = query.filter(Request.status == status)

    limit = max(1, min(int(limit), 500))
    return query.order_by(Request.id.desc()).limit(limit).all()


def list_history(ctx: RequestContext, request_id: int):
    request = get_request(ctx, request_id)
    return list_request_events(tenant_id=ctx.tenant_id, request_id=request.id)


# =============================================================================
# Creation
# =============================================================================

def create_request(ctx: RequestContext, command: CreateRequestCommand) -> Request:
    """
    Create a request with a fresh display number.

    submit=False stores a DRAFT without touching stock. submit=True stores a
    SUBMITTED request and allocates every line in the same transaction.
    """
    require_permission(ctx, "CREATE_REQUESTS")
    requester_user_id = command.requester_user_id or ctx.actor_id
    if requester_user_id != ctx.actor_id:
        require_permission(ctx, "MANAGE_REQUESTS")

    year = current_year()
    status = REQUEST_STATUS_SUBMITTED if command.submit else REQUEST_STATUS_DRAFT

    def _work(sequence: int, display_number: str) -> Request:
        def _op() -> Request:
            request = Request(
                tenant_id=ctx.tenant_id,
                year=year,
                sequence=sequence,
                display_number=display_number,
                status=status,
                requester_user_id=requester_user_id,
                created_by_user_id=ctx.actor_id,
                requesting_service_id=ctx.requesting_service_id,
                **command.details,
            )
            db.session.add(request)
            flush_or_conflict()

            allocation_service.build_items(ctx, request, command.items)
            db.session.flush()

            if command.submit:
                allocation_service.allocate_all(ctx, request)

            append_request_event(
                request=request,
                event_type=REQUEST_EVENT_CREATED,
                actor_user_id=ctx.actor_id,
                payload={"status": status, "items": len(command.items)},
            )
            return request

        return UnitOfWork("create_request").add(_op).run()

    request = run_sequenced(ctx.tenant_id, year, _work)

    announce_status_change(ctx, request, None, source="create")
    notification_service.emit_event(
        "request.created",
        tenant_id=request.tenant_id,
        payload={"request_id": request.id, "display_number": request.display_number, "status": request.status},
    )
    return request


# =============================================================================
# Transitions
# =============================================================================

def _transition(
    ctx: RequestContext,
    request_id: int,
    action: str,
    command: Optional[TransitionCommand],
) -> Request:
    note = command.note if command else None
    state: dict = {}

    def _op() -> Request:
        request = require_request_in_tenant(request_id, ctx.tenant_id, lock=True)
        if action == ACTION_SUBMIT:
            require_request_access(ctx, request)
        target = check_transition(request, action)

        if action == ACTION_REJECT and request.is_locked:
            raise SignedRequestLockedError("request is signed; void the signature before rejecting")

        state["from_status"] = request.status

        if action in (ACTION_SUBMIT, ACTION_APPROVE) and not request.stock_allocated:
            allocation_service.allocate_all(ctx, request)
        elif action == ACTION_REJECT:
            allocation_service.restore_all(ctx, request)

        request.status = target
        append_request_event(
            request=request,
            event_type=REQUEST_EVENT_STATUS_CHANGED,
            actor_user_id=ctx.actor_id,
            note=note,
            payload={"from": state["from_status"], "to": target},
        )
        return request

    request = run_with_retry(lambda: UnitOfWork(action).add(_op).run())
    announce_status_change(ctx, request, state["from_status"], note=note)
    return request


def submit(ctx: RequestContext, request_id: int, command: Optional[TransitionCommand] = None) -> Request:
    """DRAFT -> SUBMITTED, allocating every line."""
    require_permission(ctx, "CREATE_REQUESTS")
    return _transition(ctx, request_id, ACTION_SUBMIT, command)


def approve(ctx: RequestContext, request_id: int, command: Optional[TransitionCommand] = None) -> Request:
    """SUBMITTED -> APPROVED, allocating first if the request holds no stock."""
    require_permission(ctx, "APPROVE_REQUESTS")
    return _transition(ctx, request_id, ACTION_APPROVE, command)


def reject(ctx: RequestContext, request_id: int, command: Optional[TransitionCommand] = None) -> Request:
    """SUBMITTED/APPROVED -> REJECTED, restoring any held stock."""
    require_permission(ctx, "APPROVE_REQUESTS")
    return _transition(ctx, request_id, ACTION_REJECT, command)


# =============================================================================
# Structural edits
# =============================================================================

def update_details(ctx: RequestContext, request_id: int, command: UpdateDetailsCommand) -> Request:
    require_permission(ctx, "CREATE_REQUESTS")

    def _op() -> Request:
        request = require_request_in_tenant(request_id, ctx.tenant_id, lock=True)
        _ensure_editable(ctx, request)

        for key, value in command.changes.items():
            setattr(request, key, value)
        enforce_rules_request_details({
            "expected_delivery_from": request.expected_delivery_from,
            "expected_delivery_to": request.expected_delivery_to,
        })

        append_request_event(
            request=request,
            event_type=REQUEST_EVENT_DETAILS_UPDATED,
            actor_user_id=ctx.actor_id,
            payload={"fields": sorted(command.changes)},
        )
        return request

    request = UnitOfWork("update_details").add(_op).run()
    notification_service.emit_event(
        "request.updated",
        tenant_id=request.tenant_id,
        payload={"request_id": request.id, "fields": sorted(command.changes)},
    )
    return request


def replace_items(ctx: RequestContext, request_id: int, command: ReplaceItemsCommand) -> Request:
    """
    Replace all lines atomically.

    A request holding stock has its old lines restored and the new ones
    allocated in the same transaction; any failure leaves the old lines,
    units, quantities and movements exactly as they were.
    """
    require_permission(ctx, "CREATE_REQUESTS")

    def _op() -> Request:
        request = require_request_in_tenant(request_id, ctx.tenant_id, lock=True)
        _ensure_editable(ctx, request)

        items = allocation_service.replace_items(ctx, request, command.items)

        append_request_event(
            request=request,
            event_type=REQUEST_EVENT_ITEMS_REPLACED,
            actor_user_id=ctx.actor_id,
            payload={
                "items": [
                    {"product_id": i.product_id, "quantity": i.quantity, "destination": i.destination}
                    for i in items
                ]
            },
        )
        return request

    request = UnitOfWork("replace_items").add(_op).run()
    notification_service.emit_event(
        "request.items_replaced",
        tenant_id=request.tenant_id,
        payload={"request_id": request.id, "items": len(request.items)},
    )
    return request


def delete_request(ctx: RequestContext, request_id: int) -> None:
    """
    Delete a request, first restoring any stock it holds.

    FULFILLED requests and signed requests cannot be deleted.
    """
    require_permission(ctx, "CREATE_REQUESTS")
    snapshot: dict = {}

    def _op() -> None:
        request = require_request_in_tenant(request_id, ctx.tenant_id, lock=True)
        require_request_access(ctx, request)
        if request.status == REQUEST_STATUS_FULFILLED:
            raise InvalidTransitionError("fulfilled requests cannot be deleted", status=request.status)
        if request.is_locked:
            raise SignedRequestLockedError("request is signed; void the signature before deleting")

        allocation_service.restore_all(ctx, request)
        append_request_event(
            request=request,
            event_type=REQUEST_EVENT_DELETED,
            actor_user_id=ctx.actor_id,
            payload={"status": request.status},
        )
        snapshot.update(tenant_id=request.tenant_id, request_id=request.id, display_number=request.display_number)
        db.session.delete(request)

    UnitOfWork("delete_request").add(_op).run()
    notification_service.emit_event("request.deleted", tenant_id=snapshot["tenant_id"], payload=snapshot)


# Overview: Approval and pickup signature slots; sign, void and the pickup-driven fulfilment.

"""
Signature Slots

Each request carries two independent slots, approval and pickup:

    unset --sign--> signed --void--> voided --sign--> signed ...

- Signing a signed slot is a conflict ("already signed").
- Voiding needs VOID_SIGNATURES and a 3-500 character reason; it clears the
  signed fields and stamps who voided, when and why.
- Re-signing clears the void stamp from the request row; the previous void
  stays visible in the request history.
- A pickup signature recorded while the request is APPROVED moves it to
  FULFILLED in the same transaction. Voiding the pickup later does not move
  the status back.

Document regeneration runs after commit and is reported as advisory fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..context import RequestContext
from ..errors import AlreadySignedError, ConflictError
from ..models import Request
from ..models.requests import REQUEST_STATUS_APPROVED, REQUEST_STATUS_REJECTED
from ..schemas import PickupSignCommand, SignCommand, VoidSignatureCommand
from ..time_utils import utcnow
from .concurrency import UnitOfWork
from .document_service import DOCUMENT_KIND_APPROVAL, DOCUMENT_KIND_PICKUP, sync_document
from .ledger_service import (
    REQUEST_EVENT_APPROVAL_SIGNED,
    REQUEST_EVENT_APPROVAL_VOIDED,
    REQUEST_EVENT_PICKUP_SIGNED,
    REQUEST_EVENT_PICKUP_VOIDED,
    append_request_event,
)
from . import notification_service
from .permission_service import require_permission
from .tenant_service import require_request_in_tenant
from .workflow_service import ACTION_FULFILL, announce_status_change, check_transition


@dataclass
class SignatureOutcome:
    request: Request
    documents: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        data = self.request.to_dict()
        data.update(self.documents)
        return data


def _load_signable(ctx: RequestContext, request_id: int) -> Request:
    request = require_request_in_tenant(request_id, ctx.tenant_id, lock=True)
    if request.status == REQUEST_STATUS_REJECTED:
        raise ConflictError("rejected requests cannot be signed", status=request.status)
    return request


def _emit_signature_event(event_type: str, request: Request, ctx: RequestContext) -> None:
    notification_service.emit_event(
        event_type,
        tenant_id=request.tenant_id,
        payload={
            "request_id": request.id,
            "display_number": request.display_number,
            "actor_id": ctx.actor_id,
        },
    )


def sign_approval(ctx: RequestContext, request_id: int, command: SignCommand) -> SignatureOutcome:
    require_permission(ctx, "SIGN_REQUESTS")

    def _op() -> Request:
        request = _load_signable(ctx, request_id)
        if request.is_signed:
            raise AlreadySignedError("Request already signed")

        request.signed_at = utcnow()
        request.signed_by_name = command.name
        request.signed_by_title = command.title
        request.signed_by_user_id = ctx.actor_id
        request.signed_ip = ctx.ip_address
        request.signed_user_agent = ctx.user_agent
        request.signed_voided_at = None
        request.signed_voided_reason = None
        request.signed_voided_by_user_id = None

        append_request_event(
            request=request,
            event_type=REQUEST_EVENT_APPROVAL_SIGNED,
            actor_user_id=ctx.actor_id,
            payload={"name": command.name, "title": command.title},
        )
        return request

    request = UnitOfWork("sign_approval").add(_op).run()
    documents = sync_document(request, DOCUMENT_KIND_APPROVAL)
    _emit_signature_event("request.signed", request, ctx)
    return SignatureOutcome(request, documents)


def void_approval(ctx: RequestContext, request_id: int, command: VoidSignatureCommand) -> SignatureOutcome:
    require_permission(ctx, "VOID_SIGNATURES")

    def _op() -> Request:
        request = require_request_in_tenant(request_id, ctx.tenant_id, lock=True)
        if not request.is_signed:
            raise ConflictError("Request is not signed")

        previous = {"name": request.signed_by_name, "signed_at": request.signed_at}
        request.signed_at = None
        request.signed_by_name = None
        request.signed_by_title = None
        request.signed_by_user_id = None
        request.signed_ip = None
        request.signed_user_agent = None
        request.signed_voided_at = utcnow()
        request.signed_voided_reason = command.reason
        request.signed_voided_by_user_id = ctx.actor_id

        append_request_event(
            request=request,
            event_type=REQUEST_EVENT_APPROVAL_VOIDED,
            actor_user_id=ctx.actor_id,
            note=command.reason,
            payload=previous,
        )
        return request

    request = UnitOfWork("void_approval").add(_op).run()
    documents = sync_document(request, DOCUMENT_KIND_APPROVAL, remove=True)
    _emit_signature_event("request.signature_voided", request, ctx)
    return SignatureOutcome(request, documents)


def sign_pickup(ctx: RequestContext, request_id: int, command: PickupSignCommand) -> SignatureOutcome:
    """
    Record who collected the goods. An APPROVED request becomes FULFILLED.
    """
    require_permission(ctx, "RECORD_PICKUP")
    state: dict = {}

    def _op() -> Request:
        request = _load_signable(ctx, request_id)
        if request.is_pickup_signed:
            raise AlreadySignedError("Pickup already signed")

        state["from_status"] = request.status
        if request.status == REQUEST_STATUS_APPROVED:
            request.status = check_transition(request, ACTION_FULFILL)

        request.pickup_signed_at = utcnow()
        request.pickup_signed_by_name = command.name
        request.pickup_signed_by_title = command.title
        request.pickup_recorded_by_user_id = ctx.actor_id
        request.pickup_signed_ip = ctx.ip_address
        request.pickup_signed_user_agent = ctx.user_agent
        request.pickup_signature_data_url = command.signature_data_url
        request.pickup_voided_at = None
        request.pickup_voided_reason = None
        request.pickup_voided_by_user_id = None

        append_request_event(
            request=request,
            event_type=REQUEST_EVENT_PICKUP_SIGNED,
            actor_user_id=ctx.actor_id,
            payload={"name": command.name, "title": command.title, "status": request.status},
        )
        return request

    request = UnitOfWork("sign_pickup").add(_op).run()
    if request.status != state["from_status"]:
        announce_status_change(ctx, request, state["from_status"], source="pickup")
    documents = sync_document(request, DOCUMENT_KIND_PICKUP)
    _emit_signature_event("request.pickup_signed", request, ctx)
    return SignatureOutcome(request, documents)


def void_pickup(ctx: RequestContext, request_id: int, command: VoidSignatureCommand) -> SignatureOutcome:
    """Clear the pickup signature; a FULFILLED request stays FULFILLED."""
    require_permission(ctx, "VOID_SIGNATURES")

    def _op() -> Request:
        request = require_request_in_tenant(request_id, ctx.tenant_id, lock=True)
        if not request.is_pickup_signed:
            raise ConflictError("Pickup is not signed")

        previous = {"name": request.pickup_signed_by_name, "signed_at": request.pickup_signed_at}
        request.pickup_signed_at = None
        request.pickup_signed_by_name = None
        request.pickup_signed_by_title = None
        request.pickup_recorded_by_user_id = None
        request.pickup_signed_ip = None
        request.pickup_signed_user_agent = None
        request.pickup_signature_data_url = None
        request.pickup_voided_at = utcnow()
        request.pickup_voided_reason = command.reason
        request.pickup_voided_by_user_id = ctx.actor_id

        append_request_event(
            request=request,
            event_type=REQUEST_EVENT_PICKUP_VOIDED,
            actor_user_id=ctx.actor_id,
            note=command.reason,
            payload=previous,
        )
        return request

    request = UnitOfWork("void_pickup").add(_op).run()
    documents = sync_document(request, DOCUMENT_KIND_PICKUP, remove=True)
    _emit_signature_event("request.pickup_voided", request, ctx)
    return SignatureOutcome(request, documents)

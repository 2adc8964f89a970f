# backend/app/routes/requests.py
"""
Procurement request routes.

SECURITY: All routes require a resolved RequestContext (g.ctx).
- Create/edit/submit/delete require CREATE_REQUESTS (and ownership or MANAGE_REQUESTS)
- Approve/reject require APPROVE_REQUESTS
- Approval signature requires SIGN_REQUESTS
- Pickup signature requires RECORD_PICKUP
- Voiding either signature requires VOID_SIGNATURES

Errors: domain errors map to their status code with {"error", "code"};
anything else is logged and answered with 500.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..extensions import db
from ..decorators import require_context, require_permission
from ..schemas import (
    CreateRequestCommand,
    PickupSignCommand,
    ReplaceItemsCommand,
    SignCommand,
    TransitionCommand,
    UpdateDetailsCommand,
    VoidSignatureCommand,
)
from ..services import notification_service, signature_service, workflow_service


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


def _domain_error(e: DomainError):
    return jsonify(e.to_dict()), e.status_code


def _unexpected(message: str):
    db.session.rollback()
    current_app.logger.exception(message)
    return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("")
@require_context
@require_permission("CREATE_REQUESTS")
def create_request_route():
    """
    Create a request.

    Request body:
    {
        "items": [{"product_id": int, "quantity": int, "destination": str?, ...}],
        "submit": bool (optional, default false),
        "title": str?, "notes": str?, "delivery_location": str?, ...
    }

    Returns:
        201: Request created (DRAFT, or SUBMITTED with stock allocated)
        400: Invalid payload
        404: Unknown product
        409: Insufficient stock / unit unavailable
    """
    try:
        command = CreateRequestCommand.from_payload(request.get_json(silent=True))
        created = workflow_service.create_request(g.ctx, command)
        return jsonify(created.to_dict()), 201
    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _unexpected("Failed to create request")


@requests_bp.get("")
@require_context
@require_permission("VIEW_REQUESTS")
def list_requests_route():
    mine = request.args.get("mine", "").lower() in ("1", "true", "yes")
    status = request.args.get("status") or None
    limit = request.args.get("limit", 100, type=int)
    try:
        rows = workflow_service.list_requests(g.ctx, mine=mine, status=status, limit=limit)
    except DomainError as e:
        return _domain_error(e)
    return jsonify({"requests": [r.to_dict(include_items=False) for r in rows]}), 200


@requests_bp.get("/notifications")
@require_context
def list_notifications_route():
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    rows = notification_service.list_notifications(
        tenant_id=g.ctx.tenant_id,
        user_id=g.ctx.actor_id,
        role=g.ctx.role,
        unread_only=unread_only,
    )
    return jsonify({"notifications": [n.to_dict() for n in rows]}), 200


@requests_bp.get("/<int:request_id>")
@require_context
@require_permission("VIEW_REQUESTS")
def get_request_route(request_id: int):
    try:
        req = workflow_service.get_request(g.ctx, request_id)
    except DomainError as e:
        return _domain_error(e)
    return jsonify(req.to_dict()), 200


@requests_bp.get("/<int:request_id>/history")
@require_context
@require_permission("VIEW_REQUESTS")
def request_history_route(request_id: int):
    try:
        events = workflow_service.list_history(g.ctx, request_id)
    except DomainError as e:
        return _domain_error(e)
    return jsonify({"events": [ev.to_dict() for ev in events]}), 200


@requests_bp.patch("/<int:request_id>")
@require_context
@require_permission("CREATE_REQUESTS")
def update_request_route(request_id: int):
    """
    Update descriptive fields. Refused (409) while a signature is recorded.
    """
    try:
        command = UpdateDetailsCommand.from_payload(request.get_json(silent=True))
        req = workflow_service.update_details(g.ctx, request_id, command)
        return jsonify(req.to_dict()), 200
    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _unexpected("Failed to update request")


@requests_bp.put("/<int:request_id>/items")
@require_context
@require_permission("CREATE_REQUESTS")
def replace_items_route(request_id: int):
    """
    Replace all line items atomically.

    Request body:
    {
        "items": [{"product_id": int, "quantity": int, "destination": str?}]
    }

    Returns:
        200: Items replaced (stock re-allocated when the request holds stock)
        409: Signed request, insufficient stock or unit unavailable; nothing changed
    """
    try:
        command = ReplaceItemsCommand.from_payload(request.get_json(silent=True))
        req = workflow_service.replace_items(g.ctx, request_id, command)
        return jsonify(req.to_dict()), 200
    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _unexpected("Failed to replace request items")


@requests_bp.delete("/<int:request_id>")
@require_context
@require_permission("CREATE_REQUESTS")
def delete_request_route(request_id: int):
    try:
        workflow_service.delete_request(g.ctx, request_id)
    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _unexpected("Failed to delete request")
    return "", 204


def _transition_route(action, request_id: int):
    try:
        command = TransitionCommand.from_payload(request.get_json(silent=True))
        req = action(g.ctx, request_id, command)
        return jsonify(req.to_dict()), 200
    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _unexpected(f"Failed to {action.__name__} request")


@requests_bp.post("/<int:request_id>/submit")
@require_context
@require_permission("CREATE_REQUESTS")
def submit_request_route(request_id: int):
    return _transition_route(workflow_service.submit, request_id)


@requests_bp.post("/<int:request_id>/approve")
@require_context
@require_permission("APPROVE_REQUESTS")
def approve_request_route(request_id: int):
    return _transition_route(workflow_service.approve, request_id)


@requests_bp.post("/<int:request_id>/reject")
@require_context
@require_permission("APPROVE_REQUESTS")
def reject_request_route(request_id: int):
    return _transition_route(workflow_service.reject, request_id)


@requests_bp.post("/<int:request_id>/approval-signature")
@require_context
@require_permission("SIGN_REQUESTS")
def sign_approval_route(request_id: int):
    """
    Request body: {"name": str (1-120), "title": str? (<=120)}

    Returns 409 "Request already signed" if the slot is taken.
    """
    try:
        command = SignCommand.from_payload(request.get_json(silent=True))
        outcome = signature_service.sign_approval(g.ctx, request_id, command)
        return jsonify(outcome.to_dict()), 200
    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _unexpected("Failed to sign request")


@requests_bp.delete("/<int:request_id>/approval-signature")
@require_context
@require_permission("VOID_SIGNATURES")
def void_approval_route(request_id: int):
    """Request body: {"reason": str (3-500)}"""
    try:
        command = VoidSignatureCommand.from_payload(request.get_json(silent=True))
        outcome = signature_service.void_approval(g.ctx, request_id, command)
        return jsonify(outcome.to_dict()), 200
    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _unexpected("Failed to void request signature")


@requests_bp.post("/<int:request_id>/pickup-signature")
@require_context
@require_permission("RECORD_PICKUP")
def sign_pickup_route(request_id: int):
    """
    Request body:
    {
        "name": str (1-120),
        "title": str?,
        "signature_data_url": "data:image/png;base64,..."
    }

    An APPROVED request becomes FULFILLED.
    """
    try:
        command = PickupSignCommand.from_payload(request.get_json(silent=True))
        outcome = signature_service.sign_pickup(g.ctx, request_id, command)
        return jsonify(outcome.to_dict()), 200
    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _unexpected("Failed to record pickup signature")


@requests_bp.delete("/<int:request_id>/pickup-signature")
@require_context
@require_permission("VOID_SIGNATURES")
def void_pickup_route(request_id: int):
    try:
        command = VoidSignatureCommand.from_payload(request.get_json(silent=True))
        outcome = signature_service.void_pickup(g.ctx, request_id, command)
        return jsonify(outcome.to_dict()), 200
    except DomainError as e:
        return _domain_error(e)
    except Exception:
        return _unexpected("Failed to void pickup signature")

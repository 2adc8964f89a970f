# backend/app/routes/inventory.py
"""
Inventory management routes.

SECURITY: All routes require a resolved RequestContext (g.ctx).
- View operations require VIEW_INVENTORY permission
- Product creation requires MANAGE_PRODUCTS permission
- Intake requires RECEIVE_INVENTORY permission
- Write-offs require ADJUST_INVENTORY permission
- Unit scans (acquire, return, repair) require MANAGE_UNITS permission

Stock leaves inventory for requests only through the request routes; the
unit scan routes move single units outside any request.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..errors import DomainError
from ..extensions import db
from ..schemas import ReceiveStockCommand, UnitScanCommand, WriteOffCommand
from ..decorators import require_context, require_permission
from ..services import inventory_service, movement_service, unit_registry


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


def _error_response(e: DomainError):
    return jsonify(e.to_dict()), e.status_code


@inventory_bp.post("/products")
@require_context
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "sku": str (required, unique per tenant),
        "name": str (required),
        "description": str (optional)
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        product = inventory_service.create_product(
            g.ctx,
            sku=data.get("sku"),
            name=data.get("name"),
            description=data.get("description"),
        )
    except DomainError as e:
        return _error_response(e)
    return jsonify(product.to_dict()), 201


@inventory_bp.get("/products")
@require_context
@require_permission("VIEW_INVENTORY")
def list_products_route():
    status = request.args.get("status") or None
    try:
        products = inventory_service.list_products(g.ctx, status=status)
    except DomainError as e:
        return _error_response(e)
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@inventory_bp.get("/products/<int:product_id>")
@require_context
@require_permission("VIEW_INVENTORY")
def get_product_route(product_id: int):
    try:
        summary = inventory_service.get_product_summary(g.ctx, product_id)
    except DomainError as e:
        return _error_response(e)
    return jsonify(summary), 200


@inventory_bp.get("/products/<int:product_id>/units")
@require_context
@require_permission("VIEW_INVENTORY")
def list_units_route(product_id: int):
    """Units currently IN_STOCK, oldest first (the order allocation picks them in)."""
    try:
        units = unit_registry.list_available_units(g.ctx, product_id)
    except DomainError as e:
        return _error_response(e)
    return jsonify({"units": [u.to_dict() for u in units]}), 200


@inventory_bp.get("/products/<int:product_id>/reconcile")
@require_context
@require_permission("VIEW_INVENTORY")
def reconcile_product_route(product_id: int):
    try:
        result = movement_service.reconcile_product(g.ctx, product_id)
    except DomainError as e:
        return _error_response(e)
    return jsonify(result), 200


@inventory_bp.post("/intake")
@require_context
@require_permission("RECEIVE_INVENTORY")
def receive_stock_route():
    """
    Receive stock against an invoice.

    Request body:
    {
        "product_id": int,
        "quantity": int (>= 1),
        "invoice_number": str,
        "unit_tracked": bool (optional),
        "issued_at": ISO-8601 (optional),
        "serial_number" / "part_number" / "asset_tag": str (optional, single unit only),
        "notes": str (optional),
        "request_id": int (optional)
    }
    """
    try:
        command = ReceiveStockCommand.from_payload(request.get_json(silent=True))
        result = inventory_service.receive_stock(g.ctx, command)
    except DomainError as e:
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "product": result["product"].to_dict(),
        "invoice": result["invoice"].to_dict(),
        "units": [u.to_dict() for u in result["units"]],
        "movement": result["movement"].to_dict(),
    }), 201


@inventory_bp.post("/write-off")
@require_context
@require_permission("ADJUST_INVENTORY")
def write_off_route():
    """
    Request body: {"product_id": int, "quantity": int, "type": "LOST" | "SCRAP", "reason": str}
    """
    try:
        command = WriteOffCommand.from_payload(request.get_json(silent=True))
        result = inventory_service.write_off_stock(g.ctx, command)
    except DomainError as e:
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to write off stock")
        return jsonify({"error": "Internal server error"}), 500

    return jsonify({
        "product": result["product"].to_dict(),
        "movement": result["movement"].to_dict(),
    }), 201


@inventory_bp.get("/movements")
@require_context
@require_permission("VIEW_INVENTORY")
def list_movements_route():
    """
    Query params: product_id, unit_id, request_id, type, limit (default 200, max 1000)
    """
    try:
        movements = movement_service.list_movements(
            g.ctx,
            product_id=request.args.get("product_id", type=int),
            unit_id=request.args.get("unit_id", type=int),
            request_id=request.args.get("request_id", type=int),
            movement_type=(request.args.get("type") or "").upper() or None,
            limit=request.args.get("limit", 200, type=int),
        )
    except DomainError as e:
        return _error_response(e)
    return jsonify({"movements": [m.to_dict() for m in movements]}), 200


# =============================================================================
# Unit scans
# =============================================================================

def _unit_result(result: dict):
    return jsonify({
        "unit": result["unit"].to_dict(),
        "product": result["product"].to_dict(),
        "movement": result["movement"].to_dict(),
    }), 200


def _scan(operation, code: str, message: str, *, with_assignee: bool = False):
    try:
        command = UnitScanCommand.from_payload(code, request.get_json(silent=True))
        kwargs = {"reason": command.reason}
        if with_assignee:
            kwargs["assigned_to_user_id"] = command.assigned_to_user_id
        result = operation(g.ctx, command.code, **kwargs)
    except DomainError as e:
        return _error_response(e)
    except Exception:
        db.session.rollback()
        current_app.logger.exception(message)
        return jsonify({"error": "Internal server error"}), 500
    return _unit_result(result)


@inventory_bp.get("/units/<string:code>")
@require_context
@require_permission("VIEW_INVENTORY")
def lookup_unit_route(code: str):
    """Resolve a scanned unit code to the unit, its product and any request holding it."""
    try:
        result = unit_registry.lookup_unit(g.ctx, code)
    except DomainError as e:
        return _error_response(e)
    holder = result["held_by_request"]
    return jsonify({
        "unit": result["unit"].to_dict(),
        "product": result["product"].to_dict(),
        "held_by_request": (
            {"id": holder.id, "display_number": holder.display_number, "status": holder.status}
            if holder is not None else None
        ),
    }), 200


@inventory_bp.post("/units/<string:code>/acquire")
@require_context
@require_permission("MANAGE_UNITS")
def acquire_unit_route(code: str):
    """
    Request body (optional): {"assigned_to_user_id": int, "reason": str}
    """
    return _scan(unit_registry.acquire_unit_by_code, code, "Failed to acquire unit", with_assignee=True)


@inventory_bp.post("/units/<string:code>/return")
@require_context
@require_permission("MANAGE_UNITS")
def return_unit_route(code: str):
    return _scan(unit_registry.return_unit_by_code, code, "Failed to return unit")


@inventory_bp.post("/units/<string:code>/repair-out")
@require_context
@require_permission("MANAGE_UNITS")
def repair_out_route(code: str):
    return _scan(unit_registry.send_unit_to_repair, code, "Failed to send unit to repair")


@inventory_bp.post("/units/<string:code>/repair-in")
@require_context
@require_permission("MANAGE_UNITS")
def repair_in_route(code: str):
    return _scan(unit_registry.receive_unit_from_repair, code, "Failed to receive unit from repair")

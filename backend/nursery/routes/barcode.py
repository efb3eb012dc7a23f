# Overview: Flask API routes for barcode lookup, POS scan, generation and scan-driven movements.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import NurseryError, ValidationError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY
from ..services import barcode_service, inventory_service


barcode_bp = Blueprint("barcode", __name__, url_prefix="/api/barcode")


@barcode_bp.get("/<barcode>")
@require_auth
def lookup_route(barcode: str):
    try:
        product = barcode_service.get_by_barcode(barcode)
        return jsonify({"product": product.to_dict()}), 200
    except NurseryError as e:
        return error_response(e)


@barcode_bp.post("/scan")
@require_auth
def scan_route():
    """Resolve a scan into a POS cart item; stock is checked, not reserved."""
    try:
        data = request.get_json(silent=True) or {}
        item = barcode_service.scan(data.get("barcode"), data.get("quantity", 1))
        return jsonify({"item": item}), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process barcode scan")
        return jsonify({"error": "Internal server error"}), 500


@barcode_bp.post("/generate")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY)
def generate_route():
    try:
        data = request.get_json(silent=True) or {}
        return jsonify({"barcode": barcode_service.generate_barcode(data.get("category"))}), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to generate barcode")
        return jsonify({"error": "Internal server error"}), 500


@barcode_bp.post("/movement")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY)
def movement_route():
    """
    Record a stock movement for a scanned barcode.

    Body: barcode, quantity, movement_type, optional notes, location,
    reference.
    """
    try:
        data = request.get_json(silent=True) or {}
        missing = {
            key: f"{key} is required"
            for key in ("barcode", "quantity", "movement_type")
            if data.get(key) in (None, "")
        }
        if missing:
            raise ValidationError("Barcode, quantity, and movement type are required", fields=missing)

        product, movement = inventory_service.record_movement_by_barcode(
            data["barcode"],
            data["movement_type"],
            data["quantity"],
            performed_by_user_id=g.current_user.id,
            notes=data.get("notes"),
            location=data.get("location"),
            reference=data.get("reference"),
        )
        return jsonify({
            "message": "Inventory updated successfully",
            "product": {
                "id": product.id,
                "name": product.name,
                "barcode": product.barcode,
                "previous_stock": movement.previous_stock,
                "new_stock": movement.new_stock,
            },
            "movement": movement.to_dict(),
        }), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record inventory movement")
        return jsonify({"error": "Internal server error"}), 500

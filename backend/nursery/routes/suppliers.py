# Overview: Flask API routes for supplier master data.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..errors import NurseryError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER
from ..services import suppliers_service
from .query_params import optional_bool, sort_args


suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
def list_suppliers_route():
    sort_by, sort_order = sort_args()
    result = suppliers_service.list_suppliers(
        active=optional_bool("active"),
        search=request.args.get("search"),
        sort_by=sort_by,
        sort_order=sort_order,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier_route(supplier_id: int):
    try:
        return jsonify({"supplier": suppliers_service.get_supplier(supplier_id).to_dict()}), 200
    except NurseryError as e:
        return error_response(e)


@suppliers_bp.get("/<int:supplier_id>/products")
@require_auth
def list_supplier_products_route(supplier_id: int):
    try:
        products = suppliers_service.list_supplier_products(supplier_id)
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200
    except NurseryError as e:
        return error_response(e)


@suppliers_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def create_supplier_route():
    try:
        supplier = suppliers_service.create_supplier(request.get_json(silent=True))
        return jsonify({"supplier": supplier.to_dict(), "message": "Supplier created successfully"}), 201
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.put("/<int:supplier_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def update_supplier_route(supplier_id: int):
    try:
        supplier = suppliers_service.update_supplier(supplier_id, request.get_json(silent=True))
        return jsonify({"supplier": supplier.to_dict(), "message": "Supplier updated successfully"}), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update supplier")
        return jsonify({"error": "Internal server error"}), 500


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_supplier_route(supplier_id: int):
    try:
        suppliers_service.delete_supplier(supplier_id)
        return jsonify({"message": "Supplier deleted successfully"}), 200
    except NurseryError as e:
        return error_response(e)

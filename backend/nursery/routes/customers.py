# Overview: Flask API routes for customer records and purchase history.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..errors import NurseryError, error_response
from ..models.auth import ROLE_ADMIN
from ..services import customers_service
from .query_params import optional_bool, sort_args


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
def list_customers_route():
    """
    Query params: active, commercial, membership_level, search, sort_by,
    sort_order, page, per_page.
    """
    sort_by, sort_order = sort_args()
    result = customers_service.list_customers(
        active=optional_bool("active"),
        commercial=optional_bool("commercial"),
        membership_level=request.args.get("membership_level"),
        search=request.args.get("search"),
        sort_by=sort_by,
        sort_order=sort_order,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        return jsonify({"customer": customers_service.get_customer(customer_id).to_dict()}), 200
    except NurseryError as e:
        return error_response(e)


@customers_bp.get("/<int:customer_id>/sales")
@require_auth
def list_customer_sales_route(customer_id: int):
    try:
        limit = min(max(request.args.get("limit", 50, type=int), 1), 200)
        sales = customers_service.list_customer_sales(customer_id, limit=limit)
        return jsonify({
            "items": [s.to_dict(include_lines=False) for s in sales],
            "count": len(sales),
        }), 200
    except NurseryError as e:
        return error_response(e)


@customers_bp.post("")
@require_auth
def create_customer_route():
    try:
        customer = customers_service.create_customer(request.get_json(silent=True))
        return jsonify({"customer": customer.to_dict(), "message": "Customer created successfully"}), 201
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    try:
        customer = customers_service.update_customer(customer_id, request.get_json(silent=True))
        return jsonify({"customer": customer.to_dict(), "message": "Customer updated successfully"}), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_customer_route(customer_id: int):
    try:
        customers_service.delete_customer(customer_id)
        return jsonify({"message": "Customer deleted successfully"}), 200
    except NurseryError as e:
        return error_response(e)

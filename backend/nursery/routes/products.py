# Overview: Flask API routes for the product catalog, stock counts and per-product movements.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import NurseryError, ValidationError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY
from ..services import inventory_service, products_service
from ..time_utils import parse_iso_datetime
from .query_params import flag, optional_bool, sort_args


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products_route():
    """
    Query params: category, active, search, low_stock, include_supplier,
    sort_by, sort_order, page, per_page.
    """
    sort_by, sort_order = sort_args()
    result = products_service.list_products(
        category=request.args.get("category"),
        active=optional_bool("active"),
        search=request.args.get("search"),
        low_stock=flag("low_stock"),
        include_supplier=flag("include_supplier"),
        sort_by=sort_by,
        sort_order=sort_order,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
    )
    return jsonify(result), 200


@products_bp.get("/categories")
@require_auth
def categories_route():
    return jsonify({"categories": products_service.list_categories()}), 200


@products_bp.get("/stats/overview")
@require_auth
def stats_overview_route():
    try:
        return jsonify(products_service.get_stats_overview()), 200
    except Exception:
        current_app.logger.exception("Failed to build product statistics")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(product_id)
        return jsonify({"product": product.to_dict(include_supplier=True)}), 200
    except NurseryError as e:
        return error_response(e)


@products_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY)
def create_product_route():
    try:
        data = request.get_json(silent=True)
        product = products_service.create_product(data, performed_by_user_id=g.current_user.id)
        return jsonify({"product": product.to_dict(), "message": "Product created successfully"}), 201
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY)
def update_product_route(product_id: int):
    try:
        data = request.get_json(silent=True)
        product = products_service.update_product(product_id, data)
        return jsonify({"product": product.to_dict(), "message": "Product updated successfully"}), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: int):
    try:
        products_service.delete_product(product_id)
        return jsonify({"message": "Product deleted successfully"}), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.put("/<int:product_id>/stock")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def set_stock_route(product_id: int):
    """
    Overwrite stock with a counted quantity.

    Recorded as a StockCount movement so the ledger still explains the
    new level.
    """
    try:
        data = request.get_json(silent=True) or {}
        counted = data.get("current_stock")
        if isinstance(counted, bool) or not isinstance(counted, int):
            raise ValidationError(
                "Validation failed",
                fields={"current_stock": "current_stock must be an integer"},
            )

        product, movement = inventory_service.set_stock(
            product_id,
            counted,
            performed_by_user_id=g.current_user.id,
            notes=data.get("notes"),
        )
        return jsonify({
            "product": product.to_dict(),
            "movement": movement.to_dict(),
            "message": "Product stock updated successfully",
        }), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product stock")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>/movements")
@require_auth
def list_product_movements_route(product_id: int):
    try:
        try:
            start = parse_iso_datetime(request.args.get("start"))
            end = parse_iso_datetime(request.args.get("end"))
        except ValueError:
            raise ValidationError("start and end must be ISO-8601 datetimes")

        limit = min(request.args.get("limit", 100, type=int), 500)
        offset = max(request.args.get("offset", 0, type=int), 0)
        rows, total = inventory_service.list_movements(
            product_id,
            movement_type=request.args.get("movement_type"),
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )
        return jsonify({
            "items": [m.to_dict() for m in rows],
            "count": len(rows),
            "total": total,
            "limit": limit,
            "offset": offset,
        }), 200
    except NurseryError as e:
        return error_response(e)

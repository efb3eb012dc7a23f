# Overview: Flask API routes for the sale ledger (create, read, void, refund).

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import NurseryError, ValidationError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER
from ..services import sales_service
from ..time_utils import parse_iso_datetime
from ..validation import parse_refund_request, parse_sale_request


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)
def create_sale_route():
    """
    Create a completed sale.

    Totals are derived from the items; subtotal_cents / total_cents may be
    sent by the till as a cross-check.
    """
    try:
        sale_request = parse_sale_request(request.get_json(silent=True))
        sale = sales_service.create_sale(sale_request, cashier_id=g.current_user.id)
        current_app.logger.info(
            "Sale %s completed: %s items, total %s cents",
            sale.sale_number, len(sale.items), sale.total_cents,
        )
        return jsonify({"sale": sale.to_dict()}), 201
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_auth
def list_sales_route():
    """
    Query params: start, end (ISO-8601), status, customer_id, cashier_id,
    search (sale number / notes), page, per_page.
    """
    try:
        try:
            start = parse_iso_datetime(request.args.get("start"))
            end = parse_iso_datetime(request.args.get("end"))
        except ValueError:
            raise ValidationError("start and end must be ISO-8601 datetimes")

        result = sales_service.list_sales(
            start=start,
            end=end,
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            cashier_id=request.args.get("cashier_id", type=int),
            search=request.args.get("search"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result), 200
    except NurseryError as e:
        return error_response(e)


@sales_bp.get("/<int:sale_id>")
@require_auth
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sales_service.get_sale(sale_id).to_dict()}), 200
    except NurseryError as e:
        return error_response(e)


@sales_bp.get("/number/<sale_number>")
@require_auth
def get_sale_by_number_route(sale_number: str):
    try:
        return jsonify({"sale": sales_service.get_sale_by_number(sale_number).to_dict()}), 200
    except NurseryError as e:
        return error_response(e)


@sales_bp.put("/<int:sale_id>/void")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def void_sale_route(sale_id: int):
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.void_sale(sale_id, user_id=g.current_user.id, reason=data.get("reason"))
        current_app.logger.info("Sale %s voided by user %s", sale.sale_number, g.current_user.id)
        return jsonify({"sale": sale.to_dict(), "message": "Sale voided"}), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.put("/<int:sale_id>/refund")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def refund_sale_route(sale_id: int):
    """
    Refund items. Body: items [{product_id, quantity}], reason,
    payment_method.
    """
    try:
        refund_request = parse_refund_request(request.get_json(silent=True))
        sale = sales_service.refund_sale(sale_id, refund_request, user_id=g.current_user.id)
        refund = sale.refunds[-1]
        current_app.logger.info(
            "Refund of %s cents recorded on sale %s (%s)",
            refund.total_cents, sale.sale_number, sale.status,
        )
        return jsonify({"sale": sale.to_dict(), "refund": refund.to_dict()}), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refund sale")
        return jsonify({"error": "Internal server error"}), 500

# Overview: Flask API routes for sales and inventory reports.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_role
from ..errors import NurseryError, ValidationError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY
from ..services import reporting_service
from ..time_utils import parse_iso_date


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales/daily")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def daily_sales_route():
    """?date=YYYY-MM-DD, defaults to today (UTC)."""
    try:
        try:
            day = parse_iso_date(request.args.get("date"))
        except ValueError:
            raise ValidationError("date must be YYYY-MM-DD")
        return jsonify(reporting_service.daily_sales_report(day)), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build daily sales report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/sales/<period>")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def period_sales_route(period: str):
    """period: week, month, year or custom (with start_date / end_date)."""
    try:
        report = reporting_service.period_sales_report(
            period,
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
        )
        return jsonify(report), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build %s sales report", period)
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/inventory/movements")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY)
def inventory_movements_route():
    try:
        report = reporting_service.inventory_movements_report(
            start=request.args.get("start_date"),
            end=request.args.get("end_date"),
            product_id=request.args.get("product_id", type=int),
            category=request.args.get("category"),
            movement_type=request.args.get("movement_type"),
        )
        return jsonify(report), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build inventory movements report")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/inventory/low-stock")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_INVENTORY)
def low_stock_route():
    try:
        report = reporting_service.low_stock_report(
            threshold=request.args.get("threshold", type=int),
            category=request.args.get("category"),
        )
        return jsonify(report), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to build low stock report")
        return jsonify({"error": "Internal server error"}), 500

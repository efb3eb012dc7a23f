# Overview: Flask API routes for EFTPOS payment, void and refund through the configured gateway.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import NurseryError, ValidationError, error_response
from ..models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER
from ..services import payment_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _require(data: dict, *keys: str) -> None:
    missing = {k: f"{k} is required" for k in keys if data.get(k) in (None, "")}
    if missing:
        raise ValidationError("Validation failed", fields=missing)


@payments_bp.post("/eftpos")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER)
def eftpos_payment_route():
    """Body: amount_cents, sale_number."""
    try:
        data = request.get_json(silent=True) or {}
        _require(data, "amount_cents", "sale_number")

        sale, result = payment_service.process_eftpos_payment(
            data["sale_number"],
            data["amount_cents"],
            payment_service.get_gateway(),
        )
        current_app.logger.info(
            "EFTPOS payment %s of %s cents applied to %s",
            result.transaction_id, result.amount_cents, sale.sale_number,
        )
        return jsonify({"transaction": result.to_dict(), "sale": sale.to_dict()}), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process EFTPOS payment")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/void")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def void_payment_route():
    """Body: transaction_id, sale_number."""
    try:
        data = request.get_json(silent=True) or {}
        _require(data, "transaction_id", "sale_number")

        sale, payment = payment_service.void_payment(
            data["sale_number"],
            data["transaction_id"],
            user_id=g.current_user.id,
            gateway=payment_service.get_gateway(),
        )
        current_app.logger.info("EFTPOS transaction %s voided on %s", payment.transaction_id, sale.sale_number)
        return jsonify({"payment": payment.to_dict(), "sale": sale.to_dict()}), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to void EFTPOS transaction")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/refund")
@require_auth
@require_role(ROLE_ADMIN, ROLE_MANAGER)
def refund_payment_route():
    """Body: transaction_id, amount_cents, sale_number."""
    try:
        data = request.get_json(silent=True) or {}
        _require(data, "transaction_id", "amount_cents", "sale_number")

        sale, refund = payment_service.refund_payment(
            data["sale_number"],
            data["transaction_id"],
            data["amount_cents"],
            user_id=g.current_user.id,
            gateway=payment_service.get_gateway(),
        )
        current_app.logger.info(
            "EFTPOS refund %s of %s cents on %s",
            refund.refund_transaction_id, refund.total_cents, sale.sale_number,
        )
        return jsonify({"refund": refund.to_dict(), "sale": sale.to_dict()}), 200
    except NurseryError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to refund EFTPOS transaction")
        return jsonify({"error": "Internal server error"}), 500

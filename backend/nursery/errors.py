# Overview: Domain error taxonomy shared by services and routes.

"""
Error taxonomy

Services raise these; route handlers convert them to JSON with
error_response(). Unexpected exceptions are logged at the route boundary
and reported as a generic 500.

    NotFoundError           404  missing id / barcode / sale number
    ValidationError         400  missing or malformed fields (per-field)
    InvalidRefundQuantity   400  refund quantity exceeds what is refundable
    InvalidStateError       409  illegal status transition
    InsufficientStockError  409  requested quantity exceeds current stock
    ConflictError           409  duplicate barcode / email / sale number
    HasDependentsError      409  delete blocked by stock, sales or products
    UpstreamFailureError    502  payment adapter error or decline
"""

from __future__ import annotations

from flask import jsonify


class NurseryError(Exception):
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        body.update(self.details)
        return body


class NotFoundError(NurseryError):
    status_code = 404


class ValidationError(NurseryError):
    """400-level input problem, optionally with per-field messages."""
    status_code = 400

    def __init__(self, message: str, fields: dict[str, str] | None = None):
        super().__init__(message, {"fields": fields} if fields else None)
        self.fields = fields or {}


class InvalidRefundQuantity(ValidationError):
    pass


class InvalidStateError(NurseryError):
    status_code = 409


class InsufficientStockError(NurseryError):
    status_code = 409

    def __init__(self, product_name: str, available: int, requested: int | None = None):
        details = {"product": product_name, "available": available}
        if requested is not None:
            details["requested"] = requested
        super().__init__(f"Insufficient stock for {product_name}", details)
        self.product_name = product_name
        self.available = available
        self.requested = requested


class ConflictError(NurseryError):
    status_code = 409


class HasDependentsError(ConflictError):
    pass


class UpstreamFailureError(NurseryError):
    status_code = 502


def error_response(exc: NurseryError):
    return jsonify(exc.to_dict()), exc.status_code

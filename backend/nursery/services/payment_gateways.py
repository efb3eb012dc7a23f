# Overview: EFTPOS payment gateway adapters (mock, Windcave, Verifone, Smartpay).

"""
Payment gateways

One gateway object is built per application in create_app() from the
EFTPOS_* config and stored in app.extensions["payment_gateway"]. Routes
reach it through get_gateway(); tests swap it for a fake.

Every gateway exposes the same three calls and returns a GatewayResult on
approval. Declines and transport errors raise UpstreamFailureError.

Amounts cross this boundary in cents. Provider request/response fields:

    windcave  POST {url}/transaction           Basic auth
    verifone  POST {url}/api/pos/transaction   X-API-Key
    smartpay  POST {url}/v1/transactions       Bearer token
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import asdict, dataclass

import httpx

from ..errors import UpstreamFailureError
from ..time_utils import utcnow


@dataclass
class GatewayResult:
    success: bool
    transaction_id: str
    amount_cents: int
    reference: str | None = None
    auth_code: str | None = None
    card_type: str | None = None
    last_four_digits: str | None = None
    response_text: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class PaymentGateway:
    provider = "base"

    def __init__(self, *, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def process_payment(self, amount_cents: int, reference: str) -> GatewayResult:
        raise NotImplementedError

    def void_transaction(self, transaction_id: str) -> GatewayResult:
        raise NotImplementedError

    def refund_transaction(self, transaction_id: str, amount_cents: int, reference: str) -> GatewayResult:
        raise NotImplementedError

    def close(self) -> None:
        pass


class MockGateway(PaymentGateway):
    """Approves everything. Default for development and tests."""
    provider = "mock"

    def __init__(self, *, terminal_id: str = "TERMINAL01", logger: logging.Logger | None = None):
        super().__init__(logger=logger)
        self.terminal_id = terminal_id

    def _transaction_id(self) -> str:
        return f"MOCK-{secrets.token_hex(6).upper()}"

    def process_payment(self, amount_cents: int, reference: str) -> GatewayResult:
        self.logger.info("Mock EFTPOS payment of %s cents for %s", amount_cents, reference)
        return GatewayResult(
            success=True,
            transaction_id=self._transaction_id(),
            amount_cents=amount_cents,
            reference=reference,
            auth_code=f"{secrets.randbelow(1_000_000):06d}",
            card_type="VISA",
            last_four_digits="4242",
            response_text="APPROVED",
        )

    def void_transaction(self, transaction_id: str) -> GatewayResult:
        self.logger.info("Mock EFTPOS void of %s", transaction_id)
        return GatewayResult(
            success=True,
            transaction_id=transaction_id,
            amount_cents=0,
            response_text="VOIDED",
        )

    def refund_transaction(self, transaction_id: str, amount_cents: int, reference: str) -> GatewayResult:
        self.logger.info("Mock EFTPOS refund of %s cents from %s", amount_cents, transaction_id)
        return GatewayResult(
            success=True,
            transaction_id=self._transaction_id(),
            amount_cents=amount_cents,
            reference=reference,
            response_text="REFUNDED",
        )


class HttpGateway(PaymentGateway):
    """
    Shared request/response plumbing for terminal providers reached over
    HTTPS. Subclasses build provider request bodies and parse responses.
    """

    def __init__(
        self,
        *,
        api_url: str,
        api_key: str,
        terminal_id: str,
        merchant_id: str,
        currency: str = "NZD",
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
        logger: logging.Logger | None = None,
    ):
        super().__init__(logger=logger)
        self.terminal_id = terminal_id
        self.merchant_id = merchant_id
        self.currency = currency
        self.api_key = api_key
        self.client = httpx.Client(
            base_url=api_url.rstrip("/"),
            headers=self._headers(),
            timeout=timeout,
            transport=transport,
        )

    def _headers(self) -> dict:
        return {"Content-Type": "application/json"}

    def _post(self, path: str, body: dict, action: str) -> dict:
        try:
            response = self.client.post(path, json=body)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            self.logger.warning("%s %s failed with HTTP %s", self.provider, action, exc.response.status_code)
            raise UpstreamFailureError(
                f"EFTPOS {action} failed: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            self.logger.warning("%s %s failed: %s", self.provider, action, exc)
            raise UpstreamFailureError(f"EFTPOS {action} failed: {exc}") from exc
        except ValueError as exc:
            raise UpstreamFailureError(f"EFTPOS {action} failed: invalid response") from exc

    def _declined(self, action: str, text: str | None):
        self.logger.warning("%s %s declined: %s", self.provider, action, text)
        return UpstreamFailureError(f"EFTPOS {action} failed: {text or 'Payment declined'}")

    def close(self) -> None:
        self.client.close()


def _last_four(card_number: str | None) -> str:
    return (card_number or "")[-4:]


class WindcaveGateway(HttpGateway):
    provider = "windcave"

    def _headers(self) -> dict:
        return {"Authorization": f"Basic {self.api_key}", "Content-Type": "application/json"}

    def _txn_ref(self) -> str:
        return f"TXN-{int(utcnow().timestamp() * 1000)}"

    def _result(self, data: dict, action: str, amount_cents: int, reference: str | None) -> GatewayResult:
        if not data.get("Success"):
            raise self._declined(action, data.get("ResponseText"))
        return GatewayResult(
            success=True,
            transaction_id=data.get("DpsTxnRef"),
            amount_cents=amount_cents,
            reference=reference,
            auth_code=data.get("AuthCode"),
            card_type=data.get("CardName"),
            last_four_digits=_last_four(data.get("CardNumber")),
            response_text=data.get("ResponseText"),
        )

    def process_payment(self, amount_cents: int, reference: str) -> GatewayResult:
        self.logger.info("Initiating EFTPOS payment of %s cents for %s", amount_cents, reference)
        body = {
            "TxnType": "Purchase",
            "AmountInput": amount_cents,
            "CurrencyInput": self.currency,
            "MerchantReference": reference,
            "TxnRef": self._txn_ref(),
            "PosTxnRef": reference,
        }
        data = self._post("/transaction", body, "payment")
        return self._result(data, "payment", amount_cents, reference)

    def void_transaction(self, transaction_id: str) -> GatewayResult:
        self.logger.info("Voiding transaction %s", transaction_id)
        body = {"TxnType": "Void", "DpsTxnRef": transaction_id, "TxnRef": self._txn_ref()}
        data = self._post("/transaction", body, "void")
        return self._result(data, "void", 0, None)

    def refund_transaction(self, transaction_id: str, amount_cents: int, reference: str) -> GatewayResult:
        self.logger.info("Refunding %s cents from transaction %s", amount_cents, transaction_id)
        body = {
            "TxnType": "Refund",
            "DpsTxnRef": transaction_id,
            "AmountInput": amount_cents,
            "CurrencyInput": self.currency,
            "MerchantReference": reference,
            "TxnRef": self._txn_ref(),
        }
        data = self._post("/transaction", body, "refund")
        return self._result(data, "refund", amount_cents, reference)


class VerifoneGateway(HttpGateway):
    provider = "verifone"

    def _headers(self) -> dict:
        return {"X-API-Key": self.api_key, "Content-Type": "application/json"}

    def _result(self, data: dict, action: str, amount_cents: int, reference: str | None) -> GatewayResult:
        if data.get("status") != "APPROVED":
            raise self._declined(action, data.get("response_text"))
        return GatewayResult(
            success=True,
            transaction_id=data.get("transaction_id"),
            amount_cents=amount_cents,
            reference=reference,
            auth_code=data.get("auth_code"),
            card_type=data.get("card_type"),
            last_four_digits=_last_four(data.get("masked_pan")),
            response_text=data.get("response_text"),
        )

    def process_payment(self, amount_cents: int, reference: str) -> GatewayResult:
        self.logger.info("Initiating EFTPOS payment of %s cents for %s", amount_cents, reference)
        body = {
            "transaction_type": "PURCHASE",
            "amount": amount_cents,
            "currency": self.currency,
            "merchant_reference": reference,
            "terminal_id": self.terminal_id,
        }
        data = self._post("/api/pos/transaction", body, "payment")
        return self._result(data, "payment", amount_cents, reference)

    def void_transaction(self, transaction_id: str) -> GatewayResult:
        self.logger.info("Voiding transaction %s", transaction_id)
        body = {
            "transaction_type": "VOID",
            "original_transaction_id": transaction_id,
            "terminal_id": self.terminal_id,
        }
        data = self._post("/api/pos/transaction", body, "void")
        return self._result(data, "void", 0, None)

    def refund_transaction(self, transaction_id: str, amount_cents: int, reference: str) -> GatewayResult:
        self.logger.info("Refunding %s cents from transaction %s", amount_cents, transaction_id)
        body = {
            "transaction_type": "REFUND",
            "original_transaction_id": transaction_id,
            "amount": amount_cents,
            "currency": self.currency,
            "merchant_reference": reference,
            "terminal_id": self.terminal_id,
        }
        data = self._post("/api/pos/transaction", body, "refund")
        return self._result(data, "refund", amount_cents, reference)


class SmartpayGateway(HttpGateway):
    provider = "smartpay"

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}

    def _result(self, data: dict, action: str, amount_cents: int, reference: str | None) -> GatewayResult:
        if data.get("status") != "COMPLETED":
            raise self._declined(action, data.get("statusReason"))
        card = (data.get("paymentMethod") or {}).get("card") or {}
        return GatewayResult(
            success=True,
            transaction_id=data.get("transactionId"),
            amount_cents=amount_cents,
            reference=reference,
            auth_code=data.get("approvalCode"),
            card_type=card.get("scheme"),
            last_four_digits=_last_four(card.get("number")),
            response_text=data.get("statusReason"),
        )

    def _body(self, amount_cents: int, reference: str | None) -> dict:
        return {
            "amount": {"value": amount_cents, "currency": self.currency},
            "reference": reference,
            "terminalId": self.terminal_id,
            "merchantId": self.merchant_id,
        }

    def process_payment(self, amount_cents: int, reference: str) -> GatewayResult:
        self.logger.info("Initiating EFTPOS payment of %s cents for %s", amount_cents, reference)
        data = self._post("/v1/transactions", self._body(amount_cents, reference), "payment")
        return self._result(data, "payment", amount_cents, reference)

    def void_transaction(self, transaction_id: str) -> GatewayResult:
        self.logger.info("Voiding transaction %s", transaction_id)
        body = {"terminalId": self.terminal_id, "merchantId": self.merchant_id}
        data = self._post(f"/v1/transactions/{transaction_id}/void", body, "void")
        return self._result(data, "void", 0, None)

    def refund_transaction(self, transaction_id: str, amount_cents: int, reference: str) -> GatewayResult:
        self.logger.info("Refunding %s cents from transaction %s", amount_cents, transaction_id)
        data = self._post(
            f"/v1/transactions/{transaction_id}/refunds",
            self._body(amount_cents, reference),
            "refund",
        )
        return self._result(data, "refund", amount_cents, reference)


GATEWAYS = {
    "windcave": WindcaveGateway,
    "verifone": VerifoneGateway,
    "smartpay": SmartpayGateway,
}


def build_gateway(config, logger: logging.Logger | None = None) -> PaymentGateway:
    """Construct the gateway named by EFTPOS_PROVIDER."""
    provider = (config.get("EFTPOS_PROVIDER") or "mock").lower()

    if provider == "mock":
        return MockGateway(terminal_id=config.get("EFTPOS_TERMINAL_ID", "TERMINAL01"), logger=logger)

    gateway_cls = GATEWAYS.get(provider)
    if gateway_cls is None:
        raise ValueError(f"Unsupported EFTPOS provider: {provider}")

    return gateway_cls(
        api_url=config["EFTPOS_API_URL"],
        api_key=config["EFTPOS_API_KEY"],
        terminal_id=config["EFTPOS_TERMINAL_ID"],
        merchant_id=config["EFTPOS_MERCHANT_ID"],
        currency=config.get("CURRENCY_CODE", "NZD"),
        timeout=config.get("EFTPOS_TIMEOUT", 60.0),
        logger=logger,
    )

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional
import uuid

import httpx
from loguru import logger

from .errors import GatewayUnavailable
from .helpers import ct_equal, hmac_hex


class Verdict(str, Enum):
    VERIFIED = "verified"
    REJECTED = "rejected"


def callback_message(gateway_order_id: str, gateway_payment_id: str) -> str:
    return f"{gateway_order_id}|{gateway_payment_id}"


def verify_callback(
        secret: Optional[str],
        gateway_order_id: Optional[str],
        gateway_payment_id: Optional[str],
        signature: Optional[str],
) -> Verdict:
    """Check a checkout callback against HMAC-SHA256(secret, "order|payment").

    The only authority for "payment happened". Pure: no I/O, no state.
    """
    if not (secret and gateway_order_id and gateway_payment_id and signature):
        return Verdict.REJECTED
    expected = hmac_hex(
        secret, callback_message(gateway_order_id, gateway_payment_id)
    )
    if not ct_equal(expected, signature):
        return Verdict.REJECTED
    return Verdict.VERIFIED


@dataclass(frozen=True)
class GatewayOrder:
    gateway_order_id: str
    amount: int
    currency: str


# ----------------------------
# Payment Gateway Interface
# ----------------------------
class PaymentGateway(ABC):
    @abstractmethod
    async def create_order(
            self, amount: int, currency: str, receipt: str
    ) -> GatewayOrder: ...

    # publishable key handed to the client-side checkout widget
    @property
    @abstractmethod
    def client_key(self) -> str: ...

    # shared secret the gateway signs checkout callbacks with
    @property
    @abstractmethod
    def secret(self) -> str: ...

    async def aclose(self) -> None:
        return None


# ----------------------------
# Razorpay implementation
# ----------------------------
class RazorpayGateway(PaymentGateway):

    def __init__(self, key_id: str, key_secret: str,
                 api_base: str = "https://api.razorpay.com",
                 client: Optional[httpx.AsyncClient] = None,
                 timeout: float = 10.0) -> None:
        self.key_id = key_id
        self.key_secret = key_secret
        self.api_base = api_base.rstrip("/")
        self._own_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def client_key(self) -> str:
        return self.key_id

    @property
    def secret(self) -> str:
        return self.key_secret

    async def create_order(
            self, amount: int, currency: str, receipt: str
    ) -> GatewayOrder:
        if not self.key_id or not self.key_secret:
            raise GatewayUnavailable(
                "Missing RAZORPAY_KEY_ID or RAZORPAY_KEY_SECRET in env"
            )
        try:
            resp = await self._client.post(
                f"{self.api_base}/v1/orders",
                auth=(self.key_id, self.key_secret),
                json={
                    "amount": amount,
                    "currency": currency,
                    "receipt": receipt,
                    "payment_capture": 1,
                },
            )
        except httpx.HTTPError as e:
            logger.error("gateway order creation failed: {}", e)
            raise GatewayUnavailable("Failed to create order") from e

        if resp.status_code >= 400:
            try:
                err = resp.json().get("error", {})
            except ValueError:
                err = {}
            code = err.get("code") or "ORDER_ERROR"
            desc = err.get("description") or "Failed to create order"
            logger.error(
                "gateway rejected order creation: HTTP {} {}: {}",
                resp.status_code, code, desc,
            )
            raise GatewayUnavailable(f"{code}: {desc}")

        try:
            body = resp.json()
            order_id = body["id"]
        except (ValueError, KeyError, TypeError) as e:
            raise GatewayUnavailable("Malformed gateway response") from e
        return GatewayOrder(
            gateway_order_id=order_id,
            amount=int(body.get("amount", amount)),
            currency=body.get("currency", currency),
        )

    async def aclose(self) -> None:
        if self._own_client:
            await self._client.aclose()


# ----------------------------
# MockPay implementation
# ----------------------------
class MockGateway(PaymentGateway):
    """Local stand-in for the hosted checkout, for development and demos."""

    def __init__(self, secret: str, client_key: str = "mock_key") -> None:
        self._secret = secret
        self._client_key = client_key

    @property
    def client_key(self) -> str:
        return self._client_key

    @property
    def secret(self) -> str:
        return self._secret

    async def create_order(
            self, amount: int, currency: str, receipt: str
    ) -> GatewayOrder:
        if not self._secret:
            raise GatewayUnavailable("Mock gateway secret is not configured")
        return GatewayOrder(
            gateway_order_id=f"order_mock_{uuid.uuid4().hex[:14]}",
            amount=amount,
            currency=currency,
        )

    def new_payment_id(self) -> str:
        return f"pay_mock_{uuid.uuid4().hex[:14]}"

    def sign(self, gateway_order_id: str, gateway_payment_id: str) -> str:
        return hmac_hex(
            self._secret,
            callback_message(gateway_order_id, gateway_payment_id),
        )

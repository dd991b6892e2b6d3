"""Payment gateway adapters.

The hold coordinator only talks to ``PaymentGateway``; the vendor behind it
is picked by ``get_payment_gateway`` from settings.
"""

import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import httpx

from slotwise.core.config import settings
from slotwise.core.errors import GatewayError, InvalidInput, InvalidSignature

logger = logging.getLogger(__name__)


class PaymentEventStatus(str, Enum):
    CAPTURED = "captured"
    AUTHORIZED = "authorized"
    FAILED = "failed"
    OTHER = "other"


@dataclass(frozen=True)
class GatewayOrder:
    order_id: str
    amount: int
    currency: str


@dataclass(frozen=True)
class PaymentEvent:
    event: str
    order_id: str | None
    status: PaymentEventStatus
    payment_id: str | None = None
    method: str | None = None
    amount: int | None = None
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_success(self) -> bool:
        return self.status in (PaymentEventStatus.CAPTURED, PaymentEventStatus.AUTHORIZED)


class PaymentGateway(ABC):
    """Capability interface every gateway adapter implements."""

    public_key: str = ""
    # Request header carrying the webhook signature
    signature_header: str

    @abstractmethod
    async def create_order(self, amount: int, currency: str, metadata: dict[str, str]) -> GatewayOrder:
        """Create a checkout order for `amount` minor units; raises GatewayError."""

    @abstractmethod
    def verify_and_parse_callback(self, raw_body: bytes, signature: str | None) -> PaymentEvent:
        """Authenticate a webhook delivery; raises InvalidSignature before parsing anything."""


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def _entity(entities: dict[str, Any], key: str) -> dict[str, Any]:
    wrapper = entities.get(key) or {}
    entity = wrapper.get("entity") if isinstance(wrapper, dict) else None
    if entity is None:
        return {}
    if not isinstance(entity, dict):
        raise InvalidInput(f"Webhook {key} entity must be a JSON object")
    return entity


_RAZORPAY_STATUSES = {
    "payment.captured": PaymentEventStatus.CAPTURED,
    "order.paid": PaymentEventStatus.CAPTURED,
    "payment.authorized": PaymentEventStatus.AUTHORIZED,
    "payment.failed": PaymentEventStatus.FAILED,
}


class RazorpayGateway(PaymentGateway):
    """Razorpay Orders API plus ``X-Razorpay-Signature`` webhook verification."""

    signature_header = "X-Razorpay-Signature"

    def __init__(
        self,
        *,
        key_id: str,
        key_secret: str,
        webhook_secret: str,
        base_url: str = "https://api.razorpay.com/v1",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.public_key = key_id
        self._key_secret = key_secret
        self._webhook_secret = webhook_secret
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def create_order(self, amount: int, currency: str, metadata: dict[str, str]) -> GatewayOrder:
        if not self.public_key or not self._key_secret:
            raise GatewayError("Payment gateway is not configured")
        body = {
            "amount": amount,
            "currency": currency,
            "receipt": metadata.get("receipt", ""),
            "notes": metadata,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
                auth=httpx.BasicAuth(self.public_key, self._key_secret),
            ) as client:
                resp = await client.post(f"{self._base_url}/orders", json=body)
        except httpx.HTTPError as e:
            logger.warning("Razorpay order request failed: %s", e)
            raise GatewayError() from e
        if resp.status_code not in (200, 201):
            logger.warning(
                "Razorpay order rejected: status=%s body=%s", resp.status_code, resp.text[:500]
            )
            raise GatewayError()
        try:
            data = resp.json()
        except ValueError as e:
            logger.warning("Razorpay order response is not JSON: %s", resp.text[:500])
            raise GatewayError() from e
        order_id = data.get("id") if isinstance(data, dict) else None
        if not order_id:
            logger.warning("Razorpay order response without id: %s", resp.text[:500])
            raise GatewayError()
        return GatewayOrder(
            order_id=order_id,
            amount=int(data.get("amount", amount)),
            currency=data.get("currency", currency),
        )

    def verify_and_parse_callback(self, raw_body: bytes, signature: str | None) -> PaymentEvent:
        if not self._webhook_secret:
            raise InvalidSignature("Webhook secret is not configured")
        expected = compute_hmac_sha256(self._webhook_secret, raw_body)
        if not constant_time_compare(expected, signature or ""):
            raise InvalidSignature()
        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidInput("Webhook body is not valid JSON") from e

        if not isinstance(payload, dict):
            raise InvalidInput("Webhook body must be a JSON object")

        event = payload.get("event", "")
        entities = payload.get("payload") or {}
        if not isinstance(event, str) or not isinstance(entities, dict):
            raise InvalidInput("Webhook body has an unexpected shape")
        payment = _entity(entities, "payment")
        order = _entity(entities, "order")
        return PaymentEvent(
            event=event,
            order_id=payment.get("order_id") or order.get("id"),
            status=_RAZORPAY_STATUSES.get(event, PaymentEventStatus.OTHER),
            payment_id=payment.get("id"),
            method=payment.get("method"),
            amount=payment.get("amount"),
            raw=payload,
        )


def get_payment_gateway(name: str | None = None) -> PaymentGateway:
    provider = (name or settings.payment_gateway).lower()
    if provider == "razorpay":
        return RazorpayGateway(
            key_id=settings.razorpay_key_id,
            key_secret=settings.razorpay_key_secret,
            webhook_secret=settings.razorpay_webhook_secret,
            base_url=settings.razorpay_base_url,
        )
    raise ValueError(f"Unsupported payment gateway: {provider}")

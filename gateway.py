"""
Payment gateway adapter.

Wraps PayPal's Orders v2 REST API behind a small interface so the checkout
flow gets an explicit, injected client instead of a process-wide SDK object.
Every failure surfaces as ``GatewayError``.
"""
import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, Field

from errors import GatewayError
from settings import Settings

logger = logging.getLogger(__name__)


class IntentItem(BaseModel):
    name: str
    sku: str
    unit_amount: str
    quantity: int


class PaymentIntentRequest(BaseModel):
    reference_id: str
    amount: str = Field(..., description="Two-decimal amount, e.g. '20.00'")
    currency: str
    items: List[IntentItem]
    return_url: str
    cancel_url: str


class PaymentIntent(BaseModel):
    remote_id: str
    approval_url: str


class CaptureResult(BaseModel):
    payer_id: Optional[str] = None
    status: str
    raw: Dict[str, Any] = {}


class PaymentGateway(ABC):
    @abstractmethod
    def create_intent(self, intent: PaymentIntentRequest) -> PaymentIntent:
        ...

    @abstractmethod
    def capture(self, remote_token: str) -> CaptureResult:
        ...


def build_order_body(intent: PaymentIntentRequest) -> Dict[str, Any]:
    """PayPal create-order payload for a single purchase unit."""
    currency = intent.currency
    return {
        "intent": "CAPTURE",
        "purchase_units": [
            {
                "reference_id": intent.reference_id,
                "amount": {
                    "currency_code": currency,
                    "value": intent.amount,
                    "breakdown": {
                        "item_total": {"currency_code": currency, "value": intent.amount},
                    },
                },
                "items": [
                    {
                        "name": item.name,
                        "sku": item.sku,
                        "unit_amount": {"currency_code": currency, "value": item.unit_amount},
                        "quantity": str(item.quantity),
                    }
                    for item in intent.items
                ],
            }
        ],
        "application_context": {
            "return_url": intent.return_url,
            "cancel_url": intent.cancel_url,
            "shipping_preference": "NO_SHIPPING",
        },
    }


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error_description") or body.get("name") or body)
    return str(body)[:200]


class PayPalGateway(PaymentGateway):
    """PayPal Orders v2 client.

    Args:
        client_id: REST app client id.
        client_secret: REST app secret.
        base_url: API root (sandbox or live).
        timeout: Per-request timeout in seconds. Expiry is a permanent failure.
        http_client: Optional preconfigured httpx client (tests pass one with a
            mock transport).
    """

    TOKEN_PATH = "/v1/oauth2/token"
    ORDERS_PATH = "/v2/checkout/orders"

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        base_url: str = "https://api-m.sandbox.paypal.com",
        timeout: float = 10.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = http_client or httpx.Client(base_url=self.base_url, timeout=timeout)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "PayPalGateway":
        return cls(
            client_id=settings.paypal_client_id,
            client_secret=settings.paypal_client_secret,
            base_url=settings.paypal_base_url,
            timeout=settings.paypal_timeout,
        )

    def _send(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, timeout=self.timeout, **kwargs)
        except httpx.TimeoutException as e:
            raise GatewayError(f"PayPal {path} timed out after {self.timeout}s", transient=False) from e
        except httpx.TransportError as e:
            raise GatewayError(f"PayPal {path} unreachable: {e}", transient=True) from e

        if response.is_error:
            status = response.status_code
            transient = status >= 500 or status == 429
            raise GatewayError(
                f"PayPal {path} returned {status}: {_error_detail(response)}",
                transient=transient,
                status_code=status,
            )
        try:
            return response.json()
        except ValueError as e:
            raise GatewayError(f"PayPal {path} returned a non-JSON body", transient=False) from e

    def _access_token(self) -> str:
        # Refresh a minute early so a token never expires mid-request
        if self._token and time.monotonic() < self._token_expires_at - 60:
            return self._token
        data = self._send(
            "POST",
            self.TOKEN_PATH,
            data={"grant_type": "client_credentials"},
            auth=(self.client_id, self.client_secret),
        )
        token = data.get("access_token")
        if not token:
            raise GatewayError("PayPal token response carried no access_token", transient=False)
        self._token = token
        self._token_expires_at = time.monotonic() + float(data.get("expires_in", 0))
        return token

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._access_token()}",
            "Content-Type": "application/json",
        }
        headers.update(extra)
        return headers

    def create_intent(self, intent: PaymentIntentRequest) -> PaymentIntent:
        data = self._send(
            "POST",
            self.ORDERS_PATH,
            json=build_order_body(intent),
            headers=self._headers(Prefer="return=representation"),
        )
        remote_id = data.get("id")
        approval_url = next(
            (link.get("href") for link in data.get("links", []) if link.get("rel") == "approve"),
            None,
        )
        if not remote_id or not approval_url:
            raise GatewayError("PayPal order response is missing its id or approve link", transient=False)
        logger.info("Created PayPal order %s for reference %s", remote_id, intent.reference_id)
        return PaymentIntent(remote_id=remote_id, approval_url=approval_url)

    def capture(self, remote_token: str) -> CaptureResult:
        # Same request id for the same PayPal order makes a repeated capture a no-op remotely
        data = self._send(
            "POST",
            f"{self.ORDERS_PATH}/{remote_token}/capture",
            json={},
            headers=self._headers(**{"PayPal-Request-Id": f"capture-{remote_token}"}),
        )
        status = data.get("status", "")
        if status != "COMPLETED":
            raise GatewayError(f"PayPal capture for {remote_token} ended as {status or 'unknown'}", transient=False)
        payer_id = (data.get("payer") or {}).get("payer_id")
        logger.info("Captured PayPal order %s (payer %s)", remote_token, payer_id)
        return CaptureResult(payer_id=payer_id, status=status, raw=data)

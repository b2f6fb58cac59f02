import hashlib
import hmac
import logging
from decimal import ROUND_HALF_UP, Decimal

import requests

from .errors import GatewayNotConfigured, PaymentGatewayError

logger = logging.getLogger(__name__)


def to_minor_units(amount):
    """Converts a major-unit amount (e.g. rupees) to integer minor units (paise)."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def compute_signature(gateway_order_id, payment_id, secret):
    message = f"{gateway_order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_signature(gateway_order_id, payment_id, signature, secret):
    """
    Checks the gateway's payment signature: lowercase hex HMAC-SHA256 of
    "{gateway_order_id}|{payment_id}" keyed by the shared secret.

    Never raises. Any missing input or mismatch returns False.
    """
    if not (gateway_order_id and payment_id and signature and secret):
        return False
    if not isinstance(signature, str):
        return False
    expected = compute_signature(gateway_order_id, payment_id, secret)
    return hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8"))


class PaymentGateway:
    """Client for the payment gateway's orders API."""

    def __init__(self, key_id, key_secret, base_url, timeout=15, http=None):
        self.key_id = key_id
        self.key_secret = key_secret
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()

    @property
    def configured(self):
        return bool(self.key_id and self.key_secret)

    def create_payment_intent(self, amount, currency, receipt):
        """
        Creates a gateway order for ``amount`` given in major units.
        The conversion to minor units happens here and nowhere else.
        """
        if not self.configured:
            raise GatewayNotConfigured()

        payload = {"amount": to_minor_units(amount), "currency": currency, "receipt": receipt}
        try:
            response = self.http.post(
                f"{self.base_url}/orders",
                json=payload,
                auth=(self.key_id, self.key_secret),
                timeout=self.timeout,
            )
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Gateway order creation failed for receipt {receipt}: {e}")
            raise PaymentGatewayError("Payment gateway error") from e

        if not data.get("id"):
            raise PaymentGatewayError("Payment gateway returned no order id")
        return data

    def verify(self, gateway_order_id, payment_id, signature):
        return verify_signature(gateway_order_id, payment_id, signature, self.key_secret)

"""
Client for the logistics partner (Shiprocket external API).

The partner hands out a bearer token on login and answers 401 once it has
expired. The client keeps one token per instance and follows a single
retry protocol for every authenticated call: try with the cached token, on
401 log in once more and retry once, and let anything else propagate.
"""
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .errors import FulfillmentError
from .models import COD_PAYMENT_ID, Order, OrderStatus

logger = logging.getLogger(__name__)

# Partner status code -> lifecycle state. Anything else maps to Processing.
PARTNER_STATUS_MAP = {
    "NEW": OrderStatus.PENDING,
    "PKP": OrderStatus.PROCESSING,
    "OFD": OrderStatus.SHIPPED,
    "DEL": OrderStatus.DELIVERED,
    "RTO": OrderStatus.CANCELLED,
    "CNF": OrderStatus.CANCELLED,
    "UND": OrderStatus.CANCELLED,
}


def map_partner_status(code):
    if code is None:
        return OrderStatus.PROCESSING
    return PARTNER_STATUS_MAP.get(str(code).strip().upper(), OrderStatus.PROCESSING)


def _first(*values):
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _as_str(value):
    return None if value is None else str(value)


def _object(value, what):
    """Empty values read as {}; anything other than a JSON object is a bad reply."""
    if not value:
        return {}
    if not isinstance(value, dict):
        raise FulfillmentError(f"Partner {what} is not an object")
    return value


def _head(entries, what):
    if not entries:
        return {}
    if not isinstance(entries, list):
        raise FulfillmentError(f"Partner {what} is not a list")
    return _object(entries[0], what)


@dataclass
class ShipmentResult:
    """
    Linkage returned by shipment creation.

    Each field is read from the top level of the partner response first and
    from the nested ``data`` object second.
    """
    awb_code: Optional[str] = None
    carrier: Optional[str] = None
    shipment_id: Optional[str] = None
    partner_order_id: Optional[str] = None

    @classmethod
    def from_response(cls, payload):
        payload = _object(payload, "shipment response")
        nested = _object(payload.get("data"), "shipment data")

        def read(*keys):
            return _as_str(_first(*[payload.get(k) for k in keys], *[nested.get(k) for k in keys]))

        return cls(
            awb_code=read("awb_code"),
            carrier=read("courier_company_id", "courier_name"),
            shipment_id=read("shipment_id"),
            partner_order_id=read("order_id"),
        )


@dataclass
class PartnerTracking:
    """
    Latest status of a shipment as reported by the partner.

    The status code is taken from, in order: a flat ``current_status``, the
    first ``tracking_data.shipment_track`` entry, the newest
    ``tracking_data.shipment_track_activities`` entry.
    """
    code: str
    status: OrderStatus
    updated_at: Optional[str] = None
    location: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_response(cls, payload):
        payload = _object(payload, "tracking response")
        # Some endpoints key the body by shipment id.
        if "tracking_data" not in payload and "current_status" not in payload and len(payload) == 1:
            only = next(iter(payload.values()))
            if isinstance(only, dict):
                payload = only

        tracking = _object(payload.get("tracking_data"), "tracking data")
        track = _head(tracking.get("shipment_track"), "shipment track")
        activity = _head(tracking.get("shipment_track_activities"), "tracking activity")

        code = _first(payload.get("current_status"), track.get("current_status"), activity.get("status"))
        if code is None:
            raise FulfillmentError("Partner tracking response has no status")

        return cls(
            code=str(code),
            status=map_partner_status(code),
            updated_at=_as_str(_first(activity.get("date"), track.get("updated_time"))),
            location=_first(activity.get("location"), track.get("destination")),
            raw=payload,
        )


class ShiprocketClient:

    def __init__(self, email, password, base_url, pickup_location="Default",
                 dashboard_url="https://app.shiprocket.in/orders", timeout=15, http=None):
        self.email = email
        self.password = password
        self.base_url = base_url.rstrip("/")
        self.pickup_location = pickup_location
        self.dashboard_url = dashboard_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()
        self._token = None
        # Guards every read-check-refresh of the cached token.
        self._lock = threading.Lock()

    # --- Session ---

    def login(self):
        """Authenticates and replaces the cached token unconditionally."""
        with self._lock:
            return self._login_locked()

    def _login_locked(self):
        try:
            response = self.http.post(
                f"{self.base_url}/auth/login",
                json={"email": self.email, "password": self.password},
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise FulfillmentError(f"Partner login failed: {e.__class__.__name__}") from e

        if response.status_code >= 400:
            raise FulfillmentError("Partner login rejected", status=response.status_code)
        try:
            body = response.json()
        except ValueError as e:
            raise FulfillmentError("Partner login returned invalid JSON") from e
        token = body.get("token") if isinstance(body, dict) else None
        if not token:
            raise FulfillmentError("Partner login returned no token")
        self._token = token
        logger.info("Logged in to logistics partner")
        return token

    def _current_token(self):
        with self._lock:
            if self._token is None:
                return self._login_locked()
            return self._token

    def _refresh_token(self, stale):
        with self._lock:
            # Another request already replaced the token we were rejected with.
            if self._token is not None and self._token != stale:
                return self._token
            return self._login_locked()

    # --- Transport ---

    def _send(self, method, path, token, **kwargs):
        try:
            return self.http.request(
                method,
                f"{self.base_url}{path}",
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout,
                **kwargs,
            )
        except requests.exceptions.RequestException as e:
            raise FulfillmentError(f"Partner call {method} {path} failed: {e.__class__.__name__}") from e

    def _request(self, method, path, **kwargs):
        token = self._current_token()
        response = self._send(method, path, token, **kwargs)
        if response.status_code == 401:
            logger.info(f"Partner token rejected on {method} {path}; logging in again")
            token = self._refresh_token(token)
            response = self._send(method, path, token, **kwargs)

        if response.status_code >= 400:
            raise FulfillmentError(f"Partner call {method} {path} returned {response.status_code}",
                                   status=response.status_code)
        try:
            return response.json()
        except ValueError as e:
            raise FulfillmentError(f"Partner call {method} {path} returned invalid JSON") from e

    # --- Operations ---

    def shipment_payload(self, order: Order):
        customer = order.customer_details
        return {
            "order_id": order.order_id,
            "order_date": order.created_at.strftime("%Y-%m-%d"),
            "pickup_location": self.pickup_location,
            "billing_customer_name": customer["name"],
            "billing_last_name": "",
            "billing_address": customer["address"],
            "billing_city": customer["city"],
            "billing_pincode": customer["zip"],
            "billing_state": customer["state"],
            "billing_country": "India",
            "billing_email": customer["email"],
            "billing_phone": customer["phone"],
            "shipping_is_billing": True,
            "order_items": [
                {
                    "name": item["name"],
                    "sku": str(item["productId"]),
                    "units": item["quantity"],
                    "selling_price": item["price"],
                }
                for item in order.items
            ],
            "payment_method": "COD" if order.payment_id == COD_PAYMENT_ID else "Prepaid",
            "sub_total": order.total_amount,
            "length": 10,
            "breadth": 10,
            "height": 10,
            "weight": 0.5,
        }

    def create_shipment(self, payload) -> ShipmentResult:
        return ShipmentResult.from_response(self._request("POST", "/orders/create/adhoc", json=payload))

    def cancel_shipments(self, partner_order_ids: List[str]):
        return self._request("POST", "/orders/cancel", json={"ids": list(partner_order_ids)})

    def track_by_awb(self, awb_code):
        return self._request("GET", f"/courier/track/awb/{awb_code}")

    def track_by_shipment_id(self, shipment_id):
        return self._request("GET", f"/courier/track/shipment/{shipment_id}")

    def get_order_status(self, partner_order_id):
        return self._request("GET", f"/orders/show/{partner_order_id}")

    def fetch_tracking(self, shipment_id) -> PartnerTracking:
        return PartnerTracking.from_response(self.track_by_shipment_id(shipment_id))

    def tracking_url(self, shipment_id):
        return f"{self.dashboard_url}/{shipment_id}" if shipment_id else None

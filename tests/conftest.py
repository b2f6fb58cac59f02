import os

# Keep the app module from creating a database file on import.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import jwt
import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront import config, main
from storefront.database import Base, get_db
from storefront.errors import FulfillmentError
from storefront.fulfillment import PartnerTracking, ShipmentResult, map_partner_status
from storefront.inventory import InventoryLedger
from storefront.lifecycle import OrderLifecycle
from storefront.models import Product
from storefront.order_ids import OrderIdGenerator
from storefront.payments import compute_signature, to_minor_units, verify_signature
from storefront.schemas import CheckoutRequest, VerifyPaymentRequest
from storefront.store import OrderStore

GATEWAY_SECRET = "secret"


# =========================
# Fake partners
# =========================

class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}
        # A text body stands in for a non-JSON reply such as an HTML error page.
        self.text = text

    def json(self):
        if self.text is not None:
            raise requests.exceptions.JSONDecodeError("Expecting value", self.text, 0)
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error", response=self)


class FakeHTTP:
    """Stands in for requests.Session; answers from a queue and records calls."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, **kwargs):
        return self.request("POST", url, **kwargs)

    def calls_to(self, suffix):
        return [c for c in self.calls if c["url"].endswith(suffix)]


class FakeFulfillment:
    def __init__(self):
        self.fail_create = False
        self.fail_cancel = False
        self.fail_tracking = False
        self.partner_code = "NEW"
        self.created = []
        self.cancelled = []
        self.tracked = []
        self._next = 500

    def shipment_payload(self, order):
        return {"order_id": order.order_id, "sub_total": order.total_amount}

    def create_shipment(self, payload):
        if self.fail_create:
            raise FulfillmentError("Partner call POST /orders/create/adhoc returned 503", status=503)
        self.created.append(payload)
        self._next += 1
        return ShipmentResult(
            awb_code=f"AWB{self._next}",
            carrier="Delhivery",
            shipment_id=f"SH{self._next}",
            partner_order_id=f"PO{self._next}",
        )

    def cancel_shipments(self, ids):
        if self.fail_cancel:
            raise FulfillmentError("Partner call POST /orders/cancel returned 500", status=500)
        self.cancelled.append(list(ids))
        return {"status": 200}

    def fetch_tracking(self, shipment_id):
        if self.fail_tracking:
            raise FulfillmentError("Partner call timed out")
        self.tracked.append(shipment_id)
        return PartnerTracking(
            code=self.partner_code,
            status=map_partner_status(self.partner_code),
            updated_at="2026-10-18 10:00:00",
            location="Mumbai",
        )

    def track_by_awb(self, awb_code):
        if self.fail_tracking:
            raise FulfillmentError("Partner call timed out")
        return {"tracking_data": {"awb": awb_code}}

    def get_order_status(self, partner_order_id):
        return {"data": {"id": partner_order_id, "status": "NEW"}}

    def tracking_url(self, shipment_id):
        return f"https://app.shiprocket.in/orders/{shipment_id}" if shipment_id else None


class FakePayments:
    key_id = "rzp_test_key"
    key_secret = GATEWAY_SECRET

    def __init__(self, configured=True):
        self.configured = configured
        self.intents = []

    def create_payment_intent(self, amount, currency, receipt):
        self.intents.append((amount, currency, receipt))
        return {"id": f"order_GW{len(self.intents)}", "amount": to_minor_units(amount),
                "currency": currency, "receipt": receipt}

    def verify(self, gateway_order_id, payment_id, signature):
        return verify_signature(gateway_order_id, payment_id, signature, self.key_secret)


class FakeEvents:
    def __init__(self):
        self.published = []

    def publish(self, routing_key, message):
        self.published.append((routing_key, message))

    def keys(self):
        return [k for k, _ in self.published]


# =========================
# Payload builders
# =========================

CUSTOMER = {
    "name": "Asha Rao",
    "email": "asha@example.com",
    "phone": "9876543210",
    "address": "12 MG Road",
    "city": "Bengaluru",
    "state": "KA",
    "zip": "560001",
}


def cart_payload(lines=((1, 3), (2, 1)), email=CUSTOMER["email"]):
    cart = [
        {"_id": pid, "quantity": qty, "price": 100.0 * pid, "name": f"Product {pid}", "image": f"/img/{pid}.jpg"}
        for pid, qty in lines
    ]
    return {
        "cart": cart,
        "totalAmount": sum(line["price"] * line["quantity"] for line in cart),
        "customerDetails": {**CUSTOMER, "email": email},
    }


def checkout(**kwargs):
    return CheckoutRequest.model_validate(cart_payload(**kwargs))


def verify_payload(gateway_order_id="order_GW1", payment_id="pay_1", signature=None, **kwargs):
    if signature is None:
        signature = compute_signature(gateway_order_id, payment_id, GATEWAY_SECRET)
    return {
        **cart_payload(**kwargs),
        "razorpay_order_id": gateway_order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": signature,
    }


def verification(**kwargs):
    return VerifyPaymentRequest.model_validate(verify_payload(**kwargs))


def bearer(email=CUSTOMER["email"], role="user", user_id="u1"):
    token = jwt.encode({"id": user_id, "email": email, "role": role}, config.JWT_SECRET, algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


# =========================
# Fixtures
# =========================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    session.add_all([
        Product(id=1, name="Product 1", price=100.0, image="/img/1.jpg", category="rings", stock=10),
        Product(id=2, name="Product 2", price=200.0, image="/img/2.jpg", category="chains", stock=5),
    ])
    session.commit()
    yield session
    session.close()


@pytest.fixture
def fulfillment():
    return FakeFulfillment()


@pytest.fixture
def payments():
    return FakePayments()


@pytest.fixture
def events():
    return FakeEvents()


@pytest.fixture
def lifecycle(db, payments, fulfillment, events):
    return OrderLifecycle(
        store=OrderStore(db),
        ledger=InventoryLedger(db),
        payments=payments,
        fulfillment=fulfillment,
        ids=OrderIdGenerator(),
        events=events,
    )


def stock_of(session, product_id):
    session.expire_all()
    return session.get(Product, product_id).stock


@pytest.fixture
def client(db, session_factory, payments, fulfillment, events):
    def override_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[get_db] = override_db
    main.app.dependency_overrides[main.get_payments] = lambda: payments
    main.app.dependency_overrides[main.get_fulfillment] = lambda: fulfillment
    main.app.dependency_overrides[main.get_events] = lambda: events
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()

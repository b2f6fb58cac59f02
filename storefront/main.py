import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from . import config
from .auth import Identity, get_identity, require_admin
from .database import Base, engine, get_db
from .errors import PaymentVerificationFailed, StorefrontError
from .fulfillment import ShiprocketClient
from .inventory import InventoryLedger
from .lifecycle import OrderLifecycle
from .messaging.producer import RabbitMQProducer
from .order_ids import OrderIdGenerator
from .payments import PaymentGateway
from .schemas import (
    CheckoutRequest,
    StatusUpdateRequest,
    TrackRequest,
    VerifyPaymentRequest,
    order_envelope,
    serialize_order,
)
from .store import OrderStore

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create database tables on startup if they don't exist.
Base.metadata.create_all(bind=engine)

app = FastAPI(title="Storefront API")

# Process-wide partner clients. The logistics client owns the cached token.
payment_gateway = PaymentGateway(
    config.RAZORPAY_KEY_ID,
    config.RAZORPAY_KEY_SECRET,
    config.RAZORPAY_API_URL,
    timeout=config.HTTP_TIMEOUT_SECONDS,
)
shiprocket = ShiprocketClient(
    config.SHIPROCKET_EMAIL,
    config.SHIPROCKET_PASSWORD,
    config.SHIPROCKET_API_URL,
    pickup_location=config.SHIPROCKET_PICKUP_LOCATION,
    dashboard_url=config.SHIPROCKET_DASHBOARD_URL,
    timeout=config.HTTP_TIMEOUT_SECONDS,
)
order_ids = OrderIdGenerator()
event_producer = RabbitMQProducer(config.RABBITMQ_HOST) if config.RABBITMQ_HOST else None


# --- Dependencies ---

def get_payments():
    return payment_gateway


def get_fulfillment():
    return shiprocket


def get_order_ids():
    return order_ids


def get_events():
    return event_producer


def get_lifecycle(
    db: Session = Depends(get_db),
    payments=Depends(get_payments),
    fulfillment=Depends(get_fulfillment),
    ids=Depends(get_order_ids),
    events=Depends(get_events),
):
    return OrderLifecycle(
        store=OrderStore(db),
        ledger=InventoryLedger(db),
        payments=payments,
        fulfillment=fulfillment,
        ids=ids,
        events=events,
        currency=config.PAYMENT_CURRENCY,
    )


# --- Error translation ---

@app.exception_handler(StorefrontError)
def storefront_error_handler(request: Request, exc: StorefrontError):
    if isinstance(exc, PaymentVerificationFailed):
        return JSONResponse(status_code=exc.status_code, content={"status": "failure"})
    message = exc.message if exc.expose else StorefrontError.message
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"message": message})


@app.exception_handler(HTTPException)
def http_error_handler(request: Request, exc: HTTPException):
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


@app.exception_handler(Exception)
def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"message": StorefrontError.message})


# --- Endpoints ---

@app.get("/")
def root():
    """Health check endpoint."""
    return {"message": "Storefront service is running"}


# Opens a gateway order for a prepaid checkout. No order is stored yet.
@app.post("/api/checkout/create-order")
def create_payment_order(
    req: CheckoutRequest,
    identity: Identity = Depends(get_identity),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return lifecycle.create_payment_intent(req)


@app.post("/api/checkout/create-cod-order")
def create_cod_order(
    req: CheckoutRequest,
    identity: Identity = Depends(get_identity),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = lifecycle.place_cod_order(req)
    return order_envelope(order)


# The gateway signature is the only gate for this endpoint.
@app.post("/api/checkout/verify")
def verify_payment(req: VerifyPaymentRequest, lifecycle: OrderLifecycle = Depends(get_lifecycle)):
    order = lifecycle.verify_payment(req)
    return order_envelope(order)


@app.get("/api/user/orders")
def list_my_orders(identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    orders = OrderStore(db).list_for_email(identity.email)
    return {"orders": [serialize_order(o) for o in orders]}


@app.post("/api/user/orders/{reference}/cancel")
def cancel_my_order(
    reference: str,
    identity: Identity = Depends(get_identity),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = lifecycle.cancel_for_customer(reference, identity)
    return {"message": "Order cancelled successfully", "order": serialize_order(order)}


@app.post("/api/user/track")
def track_order(req: TrackRequest, lifecycle: OrderLifecycle = Depends(get_lifecycle)):
    return lifecycle.track(req.order_id, req.email)


# --- Admin ---

@app.get("/api/admin/stats")
def admin_stats(admin: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return OrderStore(db).stats()


@app.get("/api/admin/orders")
def admin_list_orders(admin: Identity = Depends(require_admin), db: Session = Depends(get_db)):
    return [serialize_order(o) for o in OrderStore(db).list_all()]


@app.put("/api/admin/orders/{reference}/status")
def admin_update_status(
    reference: str,
    req: StatusUpdateRequest,
    admin: Identity = Depends(require_admin),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = lifecycle.admin_set_status(reference, req.status)
    return serialize_order(order)


@app.post("/api/admin/orders/{reference}/sync")
def admin_sync_order(
    reference: str,
    admin: Identity = Depends(require_admin),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order, changed = lifecycle.sync_reference(reference)
    return {"changed": changed, "order": serialize_order(order)}


# Retries partner registration for an order whose checkout-time attempt failed.
@app.post("/api/admin/orders/{reference}/shipment")
def admin_register_shipment(
    reference: str,
    admin: Identity = Depends(require_admin),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    order = lifecycle.retry_shipment(reference)
    return order_envelope(order)


@app.get("/api/admin/orders/{reference}/partner")
def admin_partner_order(
    reference: str,
    admin: Identity = Depends(require_admin),
    lifecycle: OrderLifecycle = Depends(get_lifecycle),
):
    return lifecycle.partner_order_details(reference)

"""
Order lifecycle: the only place that changes Order state or triggers partner
side effects.

Every operation is a short saga. The order row is written first and is the
source of truth; partner registration, partner cancellation, stock
adjustment and event publishing follow as separate steps whose failures are
logged and left visible on the record (null partner fields mean "not done
yet") so the sync and shipment-retry operations can finish the job later.
"""
import logging
import time

from pika.exceptions import AMQPError
from sqlalchemy.exc import IntegrityError

from .errors import (
    FulfillmentError,
    GatewayNotConfigured,
    InvalidTransition,
    OrderNotFound,
    PaymentVerificationFailed,
    ValidationFailed,
)
from .models import COD_PAYMENT_ID, Order, OrderStatus, PaymentStatus

logger = logging.getLogger(__name__)

CANCELLABLE = {OrderStatus.PENDING.value, OrderStatus.PROCESSING.value}


class OrderLifecycle:

    def __init__(self, store, ledger, payments, fulfillment, ids, events=None, currency="INR"):
        self.store = store
        self.ledger = ledger
        self.payments = payments
        self.fulfillment = fulfillment
        self.ids = ids
        self.events = events
        self.currency = currency

    # --- Checkout ---

    def place_cod_order(self, checkout):
        """Creates a cash-on-delivery order. The partner step never blocks creation."""
        self._validate_checkout(checkout)
        order = self.store.create(self._new_order(
            checkout,
            payment_id=COD_PAYMENT_ID,
            payment_status=PaymentStatus.PENDING,
            comment="Order placed (cash on delivery)",
        ))
        logger.info(f"COD order {order.order_id} created for {order.customer_email}")

        self.register_shipment(order)
        self.ledger.decrement(order.items, order_id=order.order_id)
        self._publish("order.created", order)
        return order

    def create_payment_intent(self, checkout):
        """Opens a gateway order for the checkout total. Nothing is persisted."""
        if not self.payments.configured:
            raise GatewayNotConfigured()
        if checkout.total_amount is None or checkout.total_amount <= 0:
            raise ValidationFailed("Amount must be greater than zero")

        receipt = f"receipt_order_{int(time.time() * 1000)}"
        intent = self.payments.create_payment_intent(checkout.total_amount, self.currency, receipt)
        logger.info(f"Gateway order {intent['id']} opened for {checkout.total_amount} {self.currency}")
        return {**intent, "key_id": self.payments.key_id}

    def verify_payment(self, request):
        """
        Persists a prepaid order once the gateway signature checks out.

        A gateway order reference produces at most one order: repeating the
        call returns the order created the first time, without touching stock.
        """
        if not self.payments.configured:
            raise GatewayNotConfigured()
        if not self.payments.verify(request.razorpay_order_id, request.razorpay_payment_id,
                                    request.razorpay_signature):
            logger.warning(f"Signature mismatch for gateway order {request.razorpay_order_id}")
            raise PaymentVerificationFailed()

        existing = self.store.find_by_gateway_order(request.razorpay_order_id)
        if existing:
            return existing

        # TODO: recompute the total from product prices instead of trusting the client snapshot.
        self._validate_checkout(request)
        try:
            order = self.store.create(self._new_order(
                request,
                payment_id=request.razorpay_payment_id,
                payment_status=PaymentStatus.PAID,
                gateway_order_id=request.razorpay_order_id,
                comment="Payment received",
            ))
        except IntegrityError:
            # A concurrent verification of the same gateway order won the insert.
            self.store.rollback()
            existing = self.store.find_by_gateway_order(request.razorpay_order_id)
            if existing is None:
                raise
            return existing
        logger.info(f"Prepaid order {order.order_id} created for gateway order {order.gateway_order_id}")

        self.register_shipment(order)
        self.ledger.decrement(order.items, order_id=order.order_id)
        self._publish("order.paid", order)
        return order

    # --- Partner registration ---

    def register_shipment(self, order):
        """Best-effort partner registration. Returns whether the order is linked."""
        try:
            self._register(order)
        except FulfillmentError as e:
            logger.error(f"Shipment registration failed for order {order.order_id}: {e}")
            return False
        return True

    def retry_shipment(self, reference):
        """Registers an order the partner does not know yet. Partner errors propagate."""
        order = self._find(reference)
        if order.shiprocket_shipment_id:
            raise InvalidTransition("Order is already registered with the logistics partner")
        if order.order_status not in CANCELLABLE:
            raise InvalidTransition(f"Cannot register a shipment for a {order.order_status} order")
        self._register(order)
        return order

    def _register(self, order):
        if order.shiprocket_shipment_id:
            return order
        result = self.fulfillment.create_shipment(self.fulfillment.shipment_payload(order))
        order.tracking_number = result.awb_code
        order.carrier = result.carrier
        order.shiprocket_shipment_id = result.shipment_id
        order.shiprocket_order_id = result.partner_order_id
        order.tracking_url = self.fulfillment.tracking_url(result.shipment_id)
        self.store.save(order)
        logger.info(f"Order {order.order_id} registered with partner as shipment {result.shipment_id}")
        return order

    # --- Cancellation and status changes ---

    def cancel_order(self, order, comment):
        if order.order_status not in CANCELLABLE:
            raise InvalidTransition("Order cannot be cancelled at this stage.")

        if order.shiprocket_order_id:
            try:
                self.fulfillment.cancel_shipments([order.shiprocket_order_id])
                logger.info(f"Partner order {order.shiprocket_order_id} cancelled")
            except FulfillmentError as e:
                logger.error(f"Partner cancellation failed for order {order.order_id}: {e}")

        order.record_status(OrderStatus.CANCELLED, comment=comment)
        self.store.save(order)
        self.ledger.restore(order.items, order_id=order.order_id)
        self._publish("order.cancelled", order)
        return order

    def cancel_for_customer(self, reference, identity):
        order = self.store.find_by_reference(reference)
        # Other customers' orders are reported as missing.
        if not order or order.customer_email.lower() != (identity.email or "").lower():
            raise OrderNotFound()
        return self.cancel_order(order, "Order cancelled by customer")

    def admin_set_status(self, reference, status):
        if status not in {s.value for s in OrderStatus}:
            raise ValidationFailed("Invalid status")
        order = self._find(reference)
        target = OrderStatus(status)

        if target == OrderStatus.CANCELLED:
            return self.cancel_order(order, "Order cancelled by admin")
        if order.order_status == OrderStatus.CANCELLED.value:
            raise InvalidTransition("Cancelled orders cannot be reopened")
        if order.order_status == target.value:
            return order

        order.record_status(target, comment="Status updated by admin")
        self.store.save(order)
        self._publish("order.status_changed", order)
        return order

    def sync_from_partner(self, order):
        """
        Pulls the shipment status from the partner and records it if it moved.
        Returns True when a history entry was added. Partner errors propagate.
        """
        if not order.shiprocket_shipment_id:
            return False
        # Local cancellation already restored stock; the partner cannot reopen it.
        if order.order_status == OrderStatus.CANCELLED.value:
            return False

        tracking = self.fulfillment.fetch_tracking(order.shiprocket_shipment_id)
        if tracking.status.value == order.order_status:
            return False

        order.record_status(
            tracking.status,
            comment=f"Status synced from logistics partner: {tracking.code}",
            location=tracking.location,
            timestamp=tracking.updated_at,
        )
        self.store.save(order)
        self._publish("order.status_changed", order)
        return True

    def sync_reference(self, reference):
        order = self._find(reference)
        if not order.shiprocket_shipment_id:
            raise InvalidTransition("Order has no shipment with the logistics partner")
        changed = self.sync_from_partner(order)
        return order, changed

    # --- Reads ---

    def track(self, reference, email):
        if not reference or not email:
            raise ValidationFailed("Order ID and email are required")
        order = self.store.find_by_reference(reference)
        if not order or order.customer_email.lower() != email.lower():
            raise OrderNotFound()

        try:
            self.sync_from_partner(order)
        except FulfillmentError as e:
            logger.error(f"Partner sync failed for order {order.order_id}: {e}")

        details = None
        if order.tracking_number:
            try:
                details = self.fulfillment.track_by_awb(order.tracking_number)
            except FulfillmentError as e:
                logger.error(f"Tracking fetch failed for AWB {order.tracking_number}: {e}")

        return {
            "orderId": order.order_id,
            "orderNumber": order.order_number,
            "status": order.order_status,
            "tracking_number": order.tracking_number,
            "carrier": order.carrier,
            "tracking_url": order.tracking_url,
            "shiprocket_url": self.fulfillment.tracking_url(order.shiprocket_shipment_id),
            "created_at": order.created_at.isoformat() if order.created_at else None,
            "updated_at": order.updated_at.isoformat() if order.updated_at else None,
            "history": [
                {
                    "status": h["status"],
                    "date": h["timestamp"],
                    "location": h.get("location"),
                    "description": h.get("comment"),
                }
                for h in order.status_history
            ],
            "shiprocket_tracking": details,
        }

    def partner_order_details(self, reference):
        order = self._find(reference)
        if not order.shiprocket_order_id:
            raise InvalidTransition("Order is not registered with the logistics partner")
        return self.fulfillment.get_order_status(order.shiprocket_order_id)

    # --- Helpers ---

    def _find(self, reference):
        order = self.store.find_by_reference(reference)
        if not order:
            raise OrderNotFound()
        return order

    @staticmethod
    def _validate_checkout(checkout):
        if not checkout.cart:
            raise ValidationFailed("Cart is empty")
        if checkout.customer_details is None:
            raise ValidationFailed("Customer details are required")

    def _new_order(self, checkout, payment_id, payment_status, comment, gateway_order_id=None):
        order_id = self.ids.next_id()
        order = Order(
            order_id=order_id,
            order_number=order_id,
            gateway_order_id=gateway_order_id,
            items=[
                {
                    "productId": item.product_id,
                    "quantity": item.quantity,
                    "price": item.price,
                    "name": item.name,
                    "image": item.image,
                }
                for item in checkout.cart
            ],
            total_amount=checkout.total_amount,
            customer_details=checkout.customer_details.model_dump(),
            payment_id=payment_id,
            payment_status=payment_status.value,
            status_history=[],
        )
        order.record_status(OrderStatus.PENDING, comment=comment)
        return order

    def _publish(self, routing_key, order):
        if self.events is None:
            return
        message = {
            "orderId": order.order_id,
            "orderStatus": order.order_status,
            "paymentStatus": order.payment_status,
            "totalAmount": order.total_amount,
            "email": order.customer_email,
            "trackingNumber": order.tracking_number,
        }
        try:
            self.events.publish(routing_key, message)
        except (AMQPError, OSError) as e:
            logger.error(f"Failed to publish '{routing_key}' for order {order.order_id}: {e}")

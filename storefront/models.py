import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Float, Integer, String, Text

from .database import Base


class OrderStatus(str, enum.Enum):
    """Lifecycle state of an order."""
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentStatus(str, enum.Enum):
    """Payment axis, tracked alongside the lifecycle state."""
    PENDING = "Pending"
    PAID = "Paid"
    FAILED = "Failed"


# Marker stored in Order.payment_id for cash-on-delivery orders.
COD_PAYMENT_ID = "COD"


def utcnow():
    """Current UTC time as a naive datetime, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# Defines the ORM model for a catalog 'Product'.
class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    image = Column(String, nullable=False)
    category = Column(String, nullable=False)
    description = Column(Text, default="")
    # Only the inventory ledger changes this. It may go negative (no reservation).
    stock = Column(Integer, default=0, nullable=False)


# Defines the ORM model for an 'Order' and its audit trail.
class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True) # Store-native identifier.
    order_id = Column(String, unique=True, nullable=False, index=True) # Partner-facing identifier.
    order_number = Column(String, unique=True, nullable=False, index=True) # Human-facing, same as order_id.
    gateway_order_id = Column(String, unique=True, nullable=True, index=True) # Payment gateway order ref, prepaid only.

    # Snapshot of [{productId, quantity, price, name, image}] taken at checkout.
    items = Column(JSON, nullable=False)
    total_amount = Column(Float, nullable=False)
    # {name, email, phone, address, city, state, zip}; never changed after creation.
    customer_details = Column(JSON, nullable=False)

    payment_id = Column(String, nullable=True)
    payment_status = Column(String, default=PaymentStatus.PENDING.value, nullable=False)
    order_status = Column(String, default=OrderStatus.PENDING.value, nullable=False)

    # Partner linkage. Null means the step has not succeeded yet.
    tracking_number = Column(String, nullable=True)
    carrier = Column(String, nullable=True)
    tracking_url = Column(String, nullable=True)
    shiprocket_shipment_id = Column(String, nullable=True)
    shiprocket_order_id = Column(String, nullable=True)

    # Append-only list of {status, timestamp, location, comment}.
    status_history = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def customer_email(self):
        return (self.customer_details or {}).get("email", "")

    def record_status(self, status, comment=None, location=None, timestamp=None):
        """Set the lifecycle state and append the matching history entry."""
        if timestamp is None:
            timestamp = utcnow()
        entry = {
            "status": OrderStatus(status).value,
            "timestamp": timestamp.isoformat() if isinstance(timestamp, datetime) else str(timestamp),
            "location": location,
            "comment": comment,
        }
        # JSON columns only notice reassignment, not in-place appends.
        self.status_history = list(self.status_history or []) + [entry]
        self.order_status = entry["status"]
        return entry

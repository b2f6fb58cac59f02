from sqlalchemy import func
from sqlalchemy.orm import Session

from .models import Order, PaymentStatus, Product

MAX_NATIVE_ID = 2 ** 63 - 1


class OrderStore:
    """
    Persistence for Order records.

    Updates are plain load, mutate, save. Two requests changing the same order
    concurrently can overwrite each other; there is no version check.
    """

    def __init__(self, db: Session):
        self.db = db

    def create(self, order: Order):
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def save(self, order: Order):
        self.db.commit()
        self.db.refresh(order)
        return order

    def rollback(self):
        self.db.rollback()

    def get(self, pk):
        return self.db.get(Order, pk)

    def find_by_reference(self, reference):
        """
        Resolves any identifier a customer or partner may hold. Checked in order:
        system orderId, orderNumber, store-native id, payment gateway order id.
        The first match wins.
        """
        reference = str(reference).strip()
        if not reference:
            return None

        order = self.db.query(Order).filter(Order.order_id == reference).first()
        if order:
            return order

        order = self.db.query(Order).filter(Order.order_number == reference).first()
        if order:
            return order

        # Larger values cannot be a 64-bit primary key.
        if reference.isdecimal() and int(reference) <= MAX_NATIVE_ID:
            order = self.get(int(reference))
            if order:
                return order

        return self.db.query(Order).filter(Order.gateway_order_id == reference).first()

    def find_by_gateway_order(self, gateway_order_id):
        return self.db.query(Order).filter(Order.gateway_order_id == gateway_order_id).first()

    def list_all(self):
        return self.db.query(Order).order_by(Order.created_at.desc(), Order.id.desc()).all()

    def list_for_email(self, email):
        # Customer email lives inside the JSON bundle, so filter in Python.
        email = email.lower()
        return [o for o in self.list_all() if o.customer_email.lower() == email]

    def stats(self):
        """Read-only counters for the admin dashboard."""
        emails = {o.customer_email.lower() for o in self.db.query(Order).all() if o.customer_email}
        revenue = (
            self.db.query(func.coalesce(func.sum(Order.total_amount), 0.0))
            .filter(Order.payment_status == PaymentStatus.PAID.value)
            .scalar()
        )
        return {
            "totalProducts": self.db.query(Product).count(),
            "totalOrders": self.db.query(Order).count(),
            "totalCustomers": len(emails),
            "totalRevenue": float(revenue or 0),
        }

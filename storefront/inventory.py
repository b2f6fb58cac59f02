import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .models import Product

logger = logging.getLogger(__name__)


class InventoryLedger:
    """Adjusts product stock counters when orders are placed or cancelled."""

    def __init__(self, db: Session):
        self.db = db

    def adjust_stock(self, product_id, delta):
        """
        Adds ``delta`` to a product's stock in a single UPDATE statement.
        Returns False when the product does not exist.

        There is no floor check: concurrent orders for the last unit can both
        succeed and leave the counter negative.
        """
        updated = (
            self.db.query(Product)
            .filter(Product.id == product_id)
            .update({Product.stock: Product.stock + delta}, synchronize_session=False)
        )
        self.db.commit()
        return updated > 0

    def adjust_items(self, items, direction, order_id=None):
        """
        Applies ``direction * quantity`` for every item snapshot.
        A failing item is logged and skipped; siblings are still adjusted.
        Returns the product ids that were not adjusted.
        """
        failed = []
        for item in items:
            product_id = item["productId"]
            delta = direction * item["quantity"]
            try:
                if not self.adjust_stock(product_id, delta):
                    logger.warning(f"Stock not adjusted for order {order_id}: product {product_id} not found")
                    failed.append(product_id)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Stock adjustment of {delta} failed for product {product_id} (order {order_id}): {e}")
                failed.append(product_id)
        return failed

    def decrement(self, items, order_id=None):
        return self.adjust_items(items, -1, order_id=order_id)

    def restore(self, items, order_id=None):
        return self.adjust_items(items, 1, order_id=order_id)

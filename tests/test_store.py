from datetime import timedelta

from conftest import CUSTOMER
from storefront.models import Order, PaymentStatus, utcnow
from storefront.store import OrderStore


def make_order(store, order_id, email=CUSTOMER["email"], gateway_order_id=None, total=100.0,
               payment_status=PaymentStatus.PENDING, created_at=None):
    order = Order(
        order_id=order_id,
        order_number=order_id,
        gateway_order_id=gateway_order_id,
        items=[{"productId": 1, "quantity": 1, "price": total, "name": "P", "image": "/p.jpg"}],
        total_amount=total,
        customer_details={**CUSTOMER, "email": email},
        payment_status=payment_status.value,
        status_history=[],
        created_at=created_at or utcnow(),
    )
    order.record_status("Pending", comment="Order placed")
    return store.create(order)


def test_find_by_reference_accepts_every_identifier(db):
    store = OrderStore(db)
    order = make_order(store, "RR-20261019-1000-AAAA", gateway_order_id="order_GW9")

    assert store.find_by_reference("RR-20261019-1000-AAAA").id == order.id
    assert store.find_by_reference(str(order.id)).id == order.id
    assert store.find_by_reference("order_GW9").id == order.id
    assert store.find_by_reference("  RR-20261019-1000-AAAA ").id == order.id


def test_find_by_reference_first_match_wins(db):
    store = OrderStore(db)
    first = make_order(store, "RR-A")
    # An order whose system id looks like the first order's native id.
    second = make_order(store, str(first.id))

    assert store.find_by_reference(str(first.id)).id == second.id


def test_find_by_reference_misses(db):
    store = OrderStore(db)
    make_order(store, "RR-A")
    assert store.find_by_reference("RR-B") is None
    assert store.find_by_reference("") is None
    assert store.find_by_reference("424242") is None


def test_find_by_reference_ignores_numbers_wider_than_the_id_column(db):
    store = OrderStore(db)
    make_order(store, "RR-A", gateway_order_id="9" * 25)

    assert store.find_by_reference("9" * 30) is None
    assert store.find_by_reference("9" * 25).order_id == "RR-A"


def test_list_for_email_is_case_insensitive_and_newest_first(db):
    store = OrderStore(db)
    now = utcnow()
    old = make_order(store, "RR-OLD", created_at=now - timedelta(days=2))
    new = make_order(store, "RR-NEW", email=CUSTOMER["email"].upper(), created_at=now)
    make_order(store, "RR-OTHER", email="someone@example.com")

    assert [o.order_id for o in store.list_for_email(CUSTOMER["email"])] == [new.order_id, old.order_id]


def test_stats_counts_paid_revenue_only(db):
    store = OrderStore(db)
    make_order(store, "RR-1", total=250.0, payment_status=PaymentStatus.PAID)
    make_order(store, "RR-2", total=100.0, payment_status=PaymentStatus.PENDING)
    make_order(store, "RR-3", email="b@example.com", total=50.0, payment_status=PaymentStatus.PAID)

    assert store.stats() == {
        "totalProducts": 2,
        "totalOrders": 3,
        "totalCustomers": 2,
        "totalRevenue": 300.0,
    }

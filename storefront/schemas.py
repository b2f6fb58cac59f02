from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CamelModel(BaseModel):
    """Accepts both the camelCase wire names and the Python field names."""
    model_config = ConfigDict(populate_by_name=True)


class CartItem(CamelModel):
    """One line of the client's cart, snapshotted into the order."""
    product_id: int = Field(alias="_id")
    quantity: int = Field(gt=0)
    price: float = Field(ge=0)
    name: str
    image: str


class CustomerDetails(CamelModel):
    """Contact and delivery bundle; every field is required."""
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str = Field(min_length=1)
    address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    zip: str = Field(min_length=1)


class CheckoutRequest(CamelModel):
    """Body of both the COD order and the payment intent endpoints."""
    cart: List[CartItem] = Field(default_factory=list)
    total_amount: float = Field(alias="totalAmount")
    customer_details: Optional[CustomerDetails] = Field(default=None, alias="customerDetails")


class VerifyPaymentRequest(CheckoutRequest):
    """Gateway callback fields plus the checkout snapshot to persist on success."""
    razorpay_order_id: str = ""
    razorpay_payment_id: str = ""
    razorpay_signature: str = ""


class StatusUpdateRequest(BaseModel):
    status: str = ""


class TrackRequest(CamelModel):
    order_id: str = Field(default="", alias="orderId")
    email: str = ""


class OrderEnvelope(CamelModel):
    """Success answer of order creation and payment verification."""
    status: str = "success"
    order_id: str = Field(serialization_alias="orderId")
    order_number: str = Field(serialization_alias="orderNumber")
    tracking_number: Optional[str] = Field(default=None, serialization_alias="trackingNumber")
    carrier: Optional[str] = None
    tracking_url: Optional[str] = Field(default=None, serialization_alias="trackingUrl")


def order_envelope(order):
    return OrderEnvelope(
        order_id=order.order_id,
        order_number=order.order_number,
        tracking_number=order.tracking_number,
        carrier=order.carrier,
        tracking_url=order.tracking_url,
    ).model_dump(by_alias=True)


def serialize_order(order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "orderId": order.order_id,
        "orderNumber": order.order_number,
        "items": order.items,
        "totalAmount": order.total_amount,
        "customerDetails": order.customer_details,
        "paymentId": order.payment_id,
        "paymentStatus": order.payment_status,
        "orderStatus": order.order_status,
        "trackingNumber": order.tracking_number,
        "carrier": order.carrier,
        "trackingUrl": order.tracking_url,
        "shiprocketShipmentId": order.shiprocket_shipment_id,
        "shiprocketOrderId": order.shiprocket_order_id,
        "statusHistory": order.status_history,
        "createdAt": order.created_at.isoformat() if order.created_at else None,
        "updatedAt": order.updated_at.isoformat() if order.updated_at else None,
    }

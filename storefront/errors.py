"""Exceptions raised by the order core and its partner adapters.

Each domain error carries the HTTP status and the user-safe message the API
answers with; the handlers in ``main`` translate them.
"""


class StorefrontError(Exception):
    status_code = 500
    message = "Server error"
    # Whether the message may be shown to the client as is.
    expose = True

    def __init__(self, message=None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class ValidationFailed(StorefrontError):
    status_code = 400
    message = "Invalid request"


class OrderNotFound(StorefrontError):
    status_code = 404
    message = "Order not found"


class InvalidTransition(StorefrontError):
    status_code = 400
    message = "Order cannot be moved to that status"


class PaymentVerificationFailed(StorefrontError):
    status_code = 401
    message = "Payment verification failed"


class GatewayNotConfigured(StorefrontError):
    status_code = 500
    message = "Payment gateway not configured."


class PaymentGatewayError(StorefrontError):
    """The payment gateway rejected a call or could not be reached."""
    expose = False


class FulfillmentError(StorefrontError):
    """The logistics partner rejected a call or could not be reached."""
    expose = False

    def __init__(self, message=None, status=None):
        super().__init__(message)
        # HTTP status returned by the partner, if it answered at all.
        self.status = status

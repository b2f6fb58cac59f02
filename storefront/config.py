import os

# Database connection string. Defaults to a local SQLite file for development.
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./storefront.db")

# Secret used to verify bearer tokens issued by the auth service.
JWT_SECRET = os.getenv("JWT_SECRET", "secret")

# Payment gateway (Razorpay orders API).
RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")
RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET")
RAZORPAY_API_URL = os.getenv("RAZORPAY_API_URL", "https://api.razorpay.com/v1")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "INR")

# Logistics partner (Shiprocket external API).
SHIPROCKET_EMAIL = os.getenv("SHIPROCKET_EMAIL")
SHIPROCKET_PASSWORD = os.getenv("SHIPROCKET_PASSWORD")
SHIPROCKET_API_URL = os.getenv("SHIPROCKET_API_URL", "https://apiv2.shiprocket.in/v1/external")
SHIPROCKET_PICKUP_LOCATION = os.getenv("SHIPROCKET_PICKUP_LOCATION", "Default")
SHIPROCKET_DASHBOARD_URL = os.getenv("SHIPROCKET_DASHBOARD_URL", "https://app.shiprocket.in/orders")

# Event bus. Publishing is disabled when no host is configured.
RABBITMQ_HOST = os.getenv("RABBITMQ_HOST")

# Timeout applied to every outbound partner call.
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Bind address for `python -m storefront`.
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))

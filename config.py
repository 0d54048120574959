import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))

class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # SQLite database file stored next to the app as turfbooking.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "turfbooking.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # bound the wait on a locked database instead of hanging
    SQLALCHEMY_ENGINE_OPTIONS = {"connect_args": {"timeout": 30}}

    # Bearer token lifetime: 30 days
    SESSION_LIFETIME_SECONDS = int(os.getenv("SESSION_LIFETIME_SECONDS", str(30 * 24 * 60 * 60)))

    # Pricing (decimal strings, never floats)
    PLATFORM_COMMISSION = os.getenv("PLATFORM_COMMISSION", "25.00")
    GATEWAY_FEE_RATE = os.getenv("GATEWAY_FEE_RATE", "0.0207")
    CURRENCY = os.getenv("CURRENCY", "INR")

    # Slot grid
    SLOT_MINUTES = int(os.getenv("SLOT_MINUTES", "30"))
    OPENING_TIME = os.getenv("OPENING_TIME", "06:00")
    CLOSING_TIME = os.getenv("CLOSING_TIME", "22:00")
    VENUE_TIMEZONE = os.getenv("VENUE_TIMEZONE", "Asia/Kolkata")

    # Cancellation policy: minutes before start after which cancel is refused
    CANCEL_CUTOFF_MINUTES = int(os.getenv("CANCEL_CUTOFF_MINUTES", "0"))

    # Payment gateway
    PAYMENT_PROVIDER = os.getenv("PAYMENT_PROVIDER", "razorpay")
    PAYMENT_GATEWAY_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_GATEWAY_TIMEOUT_SECONDS", "10"))
    RAZORPAY_KEY_ID = os.getenv("RAZORPAY_KEY_ID")
    RAZORPAY_KEY_SECRET = os.getenv("RAZORPAY_KEY_SECRET")
    RAZORPAY_API_BASE = os.getenv("RAZORPAY_API_BASE", "https://api.razorpay.com/v1")
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_SUCCESS_URL = os.getenv("STRIPE_SUCCESS_URL")
    STRIPE_CANCEL_URL = os.getenv("STRIPE_CANCEL_URL")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("LOG_DIR")  # unset -> stderr only

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    PAYMENT_PROVIDER = "razorpay"
    RAZORPAY_KEY_ID = "rzp_test_key"
    RAZORPAY_KEY_SECRET = "rzp_test_secret"
    PAYMENT_GATEWAY_TIMEOUT_SECONDS = 2.0
    LOG_LEVEL = "WARNING"
    LOG_DIR = None

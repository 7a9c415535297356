"""
Application settings read from the environment (.env supported)
"""
import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinic.db")

# JWT
SECRET_KEY = os.getenv("SECRET_KEY", "your-secret-key-please-change-in-production")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "7"))

# Clinic calendar
CLINIC_NAME = os.getenv("CLINIC_NAME", "Dentavis Dental Clinic")
CLINIC_OPENS = os.getenv("CLINIC_OPENS", "10:00")
CLINIC_CLOSES = os.getenv("CLINIC_CLOSES", "17:00")
SLOTS_FAIL_OPEN = _flag("SLOTS_FAIL_OPEN", "1")
ONLINE_REQUESTS_PROVIDER_SCOPED = _flag("ONLINE_REQUESTS_PROVIDER_SCOPED", "0")
FOLLOW_UP_INTERVAL_DAYS = int(os.getenv("FOLLOW_UP_INTERVAL_DAYS", "30"))

# Billing
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "₱")
RESERVATION_FEE = int(os.getenv("RESERVATION_FEE", "10"))
DOWN_PAYMENT_RATE = float(os.getenv("DOWN_PAYMENT_RATE", "0.4"))

# SMS relay
SMS_API_URL = os.getenv("SMS_API_URL", "")
SMS_API_KEY = os.getenv("SMS_API_KEY", "")
SMS_SENDER_NAME = os.getenv("SMS_SENDER_NAME", "Dentavis")
SMS_FALLBACK_SENDER = os.getenv("SMS_FALLBACK_SENDER") or None
SMS_TIMEOUT_SECONDS = float(os.getenv("SMS_TIMEOUT_SECONDS", "10"))

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:8000")

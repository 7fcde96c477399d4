import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./carwash.db")

# Firebase Configuration (identity provider)
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID")

# Frontend base URL for payment redirects
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
# Public URL of this API, used for gateway success/failure callbacks
PUBLIC_API_URL = os.getenv("PUBLIC_API_URL", "http://localhost:8000")

# eSewa ePay v2 Configuration - defaults are the public sandbox credentials
ESEWA_MERCHANT_CODE = os.getenv("ESEWA_MERCHANT_CODE", "EPAYTEST")
ESEWA_SECRET_KEY = os.getenv("ESEWA_SECRET_KEY", "8gBm/:&EnhH.1/q")
ESEWA_FORM_URL = os.getenv("ESEWA_FORM_URL", "https://rc-epay.esewa.com.np/api/epay/main/v2/form")
ESEWA_STATUS_URL = os.getenv(
    "ESEWA_STATUS_URL", "https://rc.esewa.com.np/api/epay/transaction/status/"
)
# Only disable in sandbox environments where gateway signatures are unreliable
ESEWA_VERIFY_SIGNATURE = os.getenv("ESEWA_VERIFY_SIGNATURE", "true").lower() == "true"
# Match callbacks without a known transaction to the newest pending appointment
ESEWA_ALLOW_PENDING_FALLBACK = (
    os.getenv("ESEWA_ALLOW_PENDING_FALLBACK", "false").lower() == "true"
)

# Booking slots
SLOT_CAPACITY = int(os.getenv("SLOT_CAPACITY", "2"))
SLOT_INTERVAL_MINUTES = int(os.getenv("SLOT_INTERVAL_MINUTES", "30"))
SLOT_OPENING_TIME = os.getenv("SLOT_OPENING_TIME", "09:00")
SLOT_CLOSING_TIME = os.getenv("SLOT_CLOSING_TIME", "17:00")  # last bookable slot

# Appointments paid below this share of the full price are treated as partial
PARTIAL_PAYMENT_THRESHOLD = float(os.getenv("PARTIAL_PAYMENT_THRESHOLD", "0.9"))

# Pending payments older than this are re-checked against the gateway by the worker
PAYMENT_RECONCILE_AFTER_MINUTES = int(os.getenv("PAYMENT_RECONCILE_AFTER_MINUTES", "15"))

# CORS
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

# Connection pool for server databases
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "20"))
DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "30"))
DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
DB_SLOW_QUERY_THRESHOLD = float(os.getenv("DB_SLOW_QUERY_THRESHOLD", "1.0"))

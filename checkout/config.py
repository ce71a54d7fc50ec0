import os
from pathlib import Path
from dotenv import load_dotenv

# Force-load .env from the project root
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL is not set. Check your .env file.")

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_TIMEOUT_SECONDS = float(os.getenv("STRIPE_TIMEOUT_SECONDS", "10"))

CURRENCY = os.getenv("CURRENCY", "aud")
MERCHANT_COUNTRY = os.getenv("MERCHANT_COUNTRY", "AU")
FRONTEND_ADMIN_URL = os.getenv("FRONTEND_ADMIN_URL", "http://localhost:3000/admin")

JWT_SECRET = os.getenv("JWT_SECRET")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


def webhook_secret():
    # Read per request so the secret can be rotated without a restart
    return os.getenv("STRIPE_WEBHOOK_SECRET")

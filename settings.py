import os

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "drapely")

# Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
CURRENCY = os.getenv("CURRENCY", "usd")
PREMIUM_PRICE_CENTS = int(os.getenv("PREMIUM_PRICE_CENTS", "5000"))

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")
BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000")

# Cloudinary
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")

# External try-on service
TRY_ON_API_URL = os.getenv("TRY_ON_API_URL", "http://localhost:8000")
TRY_ON_API_SECRET_KEY = os.getenv("TRY_ON_API_SECRET_KEY", "")
TRY_ON_TIMEOUT = float(os.getenv("TRY_ON_TIMEOUT", "120"))

# Admin back-office
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")
ADMIN_SESSION_COOKIE = "admin-session"
ADMIN_SESSION_MAX_AGE = 60 * 60 * 24 * 7

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
PORT = int(os.getenv("PORT", 8000))

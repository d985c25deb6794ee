import os
from dotenv import load_dotenv

load_dotenv()

# =====================================================
# ENV
# =====================================================
ENV = os.getenv("NODE_ENV") or os.getenv("ENV", "development")
APP_VERSION = os.getenv("APP_VERSION", "1.0.0")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# =====================================================
# BACKEND
# =====================================================
BACKEND_URL = (
    os.getenv("BACKEND_URL")
    or os.getenv("NEXT_PUBLIC_BACKEND_URL")
    or "https://api.globoexpats.com"
).rstrip("/")

# browser-facing base url, used by the client gateway
PUBLIC_BACKEND_URL = (os.getenv("NEXT_PUBLIC_BACKEND_URL") or BACKEND_URL).rstrip("/")

REQUEST_TIMEOUT_SECONDS = int(os.getenv("REQUEST_TIMEOUT_SECONDS", 30))

# =====================================================
# ANALYTICS (MATOMO)
# =====================================================
MATOMO_URL = os.getenv("NEXT_PUBLIC_MATOMO_URL", "https://matomo.globoexpats.com").rstrip("/")
MATOMO_TOKEN = os.getenv("MATOMO_TOKEN")  # server only, never forwarded to the browser
MATOMO_SITE_ID = os.getenv("MATOMO_SITE_ID", "1")

# =====================================================
# CORS
# =====================================================
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")

# --------------------------------------------------
# CLIENT SESSION STORAGE
# --------------------------------------------------
SESSION_STORE_PATH = os.getenv("SESSION_STORE_PATH", ".storefront-session.json")
SESSION_ENCRYPTION_KEY = os.getenv("SESSION_ENCRYPTION_KEY")


def is_production() -> bool:
    return (ENV or "").lower() == "production"


def validate_production_env() -> None:
    if not is_production():
        return

    required = {
        "BACKEND_URL": os.getenv("BACKEND_URL") or os.getenv("NEXT_PUBLIC_BACKEND_URL"),
        "MATOMO_TOKEN": MATOMO_TOKEN,
    }

    invalid = []
    for key, value in required.items():
        val = (value or "").strip()
        if not val or val.startswith("CHANGE_THIS"):
            invalid.append(key)

    if invalid:
        raise RuntimeError(f"Production env misconfigured. Invalid keys: {', '.join(sorted(invalid))}")

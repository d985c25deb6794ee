from dotenv import load_dotenv
load_dotenv()

import logging
import os
import resource
import time
from datetime import datetime, timezone

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# ENV
from config.env import APP_VERSION, CORS_ALLOWED_ORIGINS, ENV, LOG_LEVEL, validate_production_env

# ROUTES
from routes.analytics import router as analytics_router
from routes.cart import router as cart_router
from routes.matomo import router as matomo_router
from routes.oauth import router as oauth_router
from routes.products import router as products_router

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

validate_production_env()
logger.info("ENV: %s", ENV)

STARTED_AT = time.monotonic()

app = FastAPI(
    title="Globoexpats Storefront API",
    version=APP_VERSION,
    docs_url=None if ENV == "production" else "/docs",
    redoc_url=None if ENV == "production" else "/redoc",
    openapi_url=None if ENV == "production" else "/openapi.json",
)

# -----------------------------
# CORS
# -----------------------------

allowed_origins = [origin.strip() for origin in CORS_ALLOWED_ORIGINS if origin.strip()]
if not allowed_origins:
    allowed_origins = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# -----------------------------
# ROUTES
# -----------------------------

app.include_router(products_router, prefix="/api")
app.include_router(oauth_router, prefix="/api")
app.include_router(matomo_router, prefix="/api")
app.include_router(cart_router, prefix="/api")
app.include_router(analytics_router, prefix="/api")

# -----------------------------
# HEALTH CHECKS
# -----------------------------

def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def memory_usage_mb() -> dict:
    # ru_maxrss is reported in KB on Linux
    used_kb = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    total_bytes = os.sysconf("SC_PAGE_SIZE") * os.sysconf("SC_PHYS_PAGES")
    return {
        "used": round(used_kb / 1024),
        "total": round(total_bytes / 1024 / 1024),
    }


@app.get("/api/health")
async def health():
    try:
        return {
            "status": "healthy",
            "timestamp": _now_iso(),
            "uptime": round(time.monotonic() - STARTED_AT, 3),
            "environment": ENV or "development",
            "version": APP_VERSION,
            "memory": memory_usage_mb(),
        }
    except (OSError, ValueError):
        logger.exception("HEALTH_CHECK_FAILED")
        return JSONResponse(
            {"status": "unhealthy", "timestamp": _now_iso(), "error": "Health check failed"},
            status_code=500,
        )


@app.head("/api/health")
async def health_head():
    return Response(status_code=200)

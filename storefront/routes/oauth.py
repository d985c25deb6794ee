import logging
from urllib.parse import quote

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from config.env import BACKEND_URL
from utils.http import UpstreamUnavailable, afetch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/oauth", tags=["OAuth"])


@router.get("/google")
async def google_login(nextPath: str = "/"):
    """Returns {"authUrl": ...} from the backend; the browser redirects to it."""
    url = f"{BACKEND_URL}/api/v1/oauth2/login/google?nextPath={quote(nextPath or '/', safe='')}"
    logger.info("OAUTH_PROXY_REQUEST next=%s", nextPath)

    try:
        resp = await afetch(url, headers={"Accept": "*/*"})
    except UpstreamUnavailable as e:
        logger.error("OAUTH_PROXY_UNREACHABLE error=%s", e)
        return JSONResponse({"error": "Internal server error", "message": str(e)}, status_code=500)

    if not resp.ok:
        error_text = resp.text()
        logger.warning("OAUTH_PROXY_BACKEND_ERROR status=%s", resp.status)
        return JSONResponse(
            {
                "error": "Failed to initiate Google OAuth",
                "message": error_text or "Backend error",
                "status": resp.status,
            },
            status_code=resp.status,
        )

    try:
        data = resp.json()
    except ValueError as e:
        logger.error("OAUTH_PROXY_INVALID_JSON")
        return JSONResponse({"error": "Internal server error", "message": str(e)}, status_code=500)

    return JSONResponse(data, status_code=200)

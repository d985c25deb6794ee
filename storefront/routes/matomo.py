import logging
import re
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from config.env import MATOMO_SITE_ID, MATOMO_TOKEN, MATOMO_URL
from utils.http import UpstreamUnavailable, afetch

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Analytics"])

_TOKEN_PATTERN = re.compile(r"token_auth=[^&]*")


def mask_token(url: str) -> str:
    return _TOKEN_PATTERN.sub("token_auth=***", url)


def build_matomo_url(method: str, period: str, date: str, id_site: str, token: Optional[str]) -> str:
    params = [
        ("module", "API"),
        ("method", method),
        ("idSite", id_site),
        ("period", period),
        ("date", date),
        ("format", "JSON"),
    ]
    if token:
        params.append(("token_auth", token))
    return f"{MATOMO_URL}/index.php?{urlencode(params)}"


@router.get("/matomo")
async def matomo_report(
    method: str = "VisitsSummary.get",
    period: str = "day",
    date: str = "today",
    idSite: Optional[str] = None,
):
    if not MATOMO_TOKEN:
        logger.error("MATOMO_TOKEN_MISSING")

    url = build_matomo_url(method, period, date, idSite or MATOMO_SITE_ID, MATOMO_TOKEN)
    logger.info("MATOMO_REQUEST method=%s period=%s date=%s url=%s", method, period, date, mask_token(url))

    try:
        resp = await afetch(url, headers={"Content-Type": "application/json"})
    except UpstreamUnavailable as e:
        logger.error("MATOMO_UNREACHABLE error=%s", mask_token(str(e)))
        return JSONResponse(
            {"error": "Failed to fetch analytics data", "details": mask_token(str(e))},
            status_code=500,
        )

    body = resp.text()
    if not resp.ok:
        logger.warning("MATOMO_ERROR status=%s body=%s", resp.status, body[:500])
        return JSONResponse(
            {"error": f"Matomo API returned {resp.status}", "details": body},
            status_code=resp.status,
        )

    try:
        data = resp.json()
    except ValueError:
        logger.error("MATOMO_INVALID_JSON body=%s", body[:500])
        return JSONResponse(
            {"error": "Invalid JSON response from Matomo", "details": body},
            status_code=500,
        )

    return JSONResponse(data)

import logging

from fastapi import APIRouter, Request, Response

from config.env import BACKEND_URL, is_production
from utils.http import UpstreamUnavailable, afetch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.post("/event", status_code=204)
async def track_event(request: Request):
    """Always answers 204; view tracking failures never reach the client."""
    try:
        payload = await request.json()
    except ValueError:
        payload = None

    if not is_production():
        logger.debug("ANALYTICS_EVENT payload=%s", payload)

    if isinstance(payload, dict) and payload.get("type") == "product_click" and payload.get("productId"):
        url = f"{BACKEND_URL}/api/v1/products/{payload['productId']}/view"
        try:
            resp = await afetch(url, method="POST", payload={"timestamp": payload.get("ts")})
            if not resp.ok:
                logger.warning("ANALYTICS_VIEW_TRACK_FAILED status=%s product=%s", resp.status, payload["productId"])
        except UpstreamUnavailable as e:
            logger.warning("ANALYTICS_VIEW_TRACK_UNREACHABLE error=%s", e)

    return Response(status_code=204)

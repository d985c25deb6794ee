import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from config.env import BACKEND_URL, REQUEST_TIMEOUT_SECONDS
from utils.http import UpstreamUnavailable, afetch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cart", tags=["Cart"])


async def _pass_through(request: Request, method: str, path: str, failure: str, with_body: bool = False):
    headers = {"Content-Type": "application/json"}
    auth_header = request.headers.get("authorization")
    if auth_header:
        headers["Authorization"] = auth_header

    try:
        payload = await request.json() if with_body else None
        resp = await afetch(
            f"{BACKEND_URL}{path}",
            method=method,
            headers=headers,
            payload=payload,
            timeout=REQUEST_TIMEOUT_SECONDS,
        )
        data = resp.json()
    except (UpstreamUnavailable, ValueError) as e:
        logger.error("CART_PROXY_ERROR method=%s path=%s error=%s", method, path, e)
        return JSONResponse({"error": failure}, status_code=500)

    return JSONResponse(data, status_code=resp.status)


@router.get("")
async def get_cart(request: Request):
    return await _pass_through(request, "GET", "/api/v1/cart/User", "Failed to fetch cart")


@router.post("")
async def add_to_cart(request: Request):
    return await _pass_through(request, "POST", "/api/v1/cart/add", "Failed to add to cart", with_body=True)


@router.delete("")
async def clear_cart(request: Request):
    return await _pass_through(request, "DELETE", "/api/v1/cart/clear", "Failed to clear cart")


@router.put("/{item_id}")
async def update_cart_item(item_id: str, request: Request):
    return await _pass_through(
        request, "PUT", f"/api/v1/cart/item/{item_id}", "Failed to update cart item", with_body=True
    )


@router.delete("/{item_id}")
async def remove_cart_item(item_id: str, request: Request):
    return await _pass_through(request, "DELETE", f"/api/v1/cart/item/{item_id}", "Failed to remove cart item")

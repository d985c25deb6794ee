import json
import logging

import requests
from fastapi import APIRouter, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from starlette.datastructures import UploadFile

from config.constants import (
    LONG_DESCRIPTION_CHARS,
    MAX_IMAGE_BYTES,
    MAX_UPDATE_REQUEST_BYTES,
    MULTIPART_PARSE_FAILURE,
    PRODUCT_UPDATE_TIMEOUT_SECONDS,
)
from config.env import BACKEND_URL

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/products", tags=["Products"])


def _error(status_code: int, error: str, message: str, **extra) -> JSONResponse:
    return JSONResponse({"error": error, "message": message, **extra}, status_code=status_code)


def _resolve_token(request: Request) -> str:
    header = request.headers.get("authorization")
    if header:
        return header
    cookie = request.cookies.get("authToken")
    return f"Bearer {cookie}" if cookie else ""


def _mb(size: int) -> str:
    return f"{size / 1024 / 1024:.2f}MB"


# =========================
# MULTIPART NORMALISATION
# =========================

async def _multipart_fields(request: Request):
    """
    Validate the incoming form and rebuild it as a clean list of
    (name, (filename, content, content_type)) tuples for requests.
    Returns (fields, None) or (None, JSONResponse).
    """
    form = await request.form()
    fields = []
    total_size = 0
    image_count = 0

    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            content = await value.read()
            total_size += len(content)

            if key != "images":
                fields.append((key, (value.filename, content, value.content_type)))
                continue

            image_count += 1
            name = value.filename or "unnamed"
            content_type = value.content_type or ""

            if not content:
                logger.warning("PRODUCT_PROXY_EMPTY_FILE name=%s", name)
                return None, _error(400, "Invalid file", f"File {name} is empty")

            if len(content) > MAX_IMAGE_BYTES:
                logger.warning("PRODUCT_PROXY_FILE_TOO_LARGE name=%s size=%s", name, len(content))
                return None, _error(400, "File too large", f"File {name} exceeds 10MB limit")

            if not content_type.startswith("image/"):
                logger.warning("PRODUCT_PROXY_INVALID_TYPE name=%s type=%s", name, content_type)
                return None, _error(400, "Invalid file type", f"File {name} is not an image")

            fields.append((key, (name, content, content_type)))
            continue

        total_size += len(value.encode("utf-8"))

        if key == "product":
            try:
                parsed = json.loads(value)
            except ValueError:
                logger.warning("PRODUCT_PROXY_INVALID_JSON")
                return None, _error(400, "Invalid product data", "Product data is not valid JSON")

            description = parsed.get("productDescription") if isinstance(parsed, dict) else None
            if isinstance(description, str) and len(description) > LONG_DESCRIPTION_CHARS:
                logger.warning("PRODUCT_PROXY_LONG_DESCRIPTION chars=%s", len(description))

            value = json.dumps(parsed)

        fields.append((key, (None, value)))

    logger.info("PRODUCT_PROXY_FORM images=%s size=%s", image_count, _mb(total_size))

    if total_size > MAX_UPDATE_REQUEST_BYTES:
        logger.warning("PRODUCT_PROXY_REQUEST_TOO_LARGE size=%s", total_size)
        return None, _error(
            413,
            "Request too large",
            f"Total request size ({_mb(total_size)}) exceeds 100MB limit",
        )

    return fields, None


def _forward(url: str, token: str, fields, params) -> requests.Response:
    return requests.patch(
        url,
        files=fields,
        headers={
            "Authorization": token,
            "Accept": "application/json",
            "Cache-Control": "no-cache",
        },
        params=params,
        timeout=PRODUCT_UPDATE_TIMEOUT_SECONDS,
    )


# =========================
# UPDATE PRODUCT (PROXY)
# =========================
@router.patch("/{product_id}")
async def update_product(product_id: str, request: Request):
    token = _resolve_token(request)
    if not token:
        logger.warning("PRODUCT_PROXY_NO_TOKEN product=%s", product_id)
        return _error(401, "Unauthorized", "No authentication token provided")

    logger.info("PRODUCT_PROXY_PATCH product=%s token=%s...", product_id, token[:20])

    try:
        content_type = request.headers.get("content-type", "")
        if "multipart/form-data" in content_type:
            fields, failure = await _multipart_fields(request)
            if failure is not None:
                return failure
        else:
            try:
                body = await request.json()
            except ValueError:
                return _error(400, "Invalid product data", "Product data is not valid JSON")
            fields = [("product", (None, json.dumps(body)))]

        url = f"{BACKEND_URL}/api/v1/products/update/{product_id}"
        params = list(request.query_params.multi_items())

        try:
            resp = await run_in_threadpool(_forward, url, token, fields, params)
        except requests.Timeout:
            logger.error("PRODUCT_PROXY_TIMEOUT product=%s", product_id)
            return _error(504, "Request timeout", "Backend request timed out after 5 minutes")
        except requests.RequestException as e:
            logger.error("PRODUCT_PROXY_NETWORK_ERROR product=%s error=%s", product_id, e)
            return _error(502, "Network error", "Failed to connect to backend server", details=str(e))

        logger.info("PRODUCT_PROXY_RESPONSE product=%s status=%s", product_id, resp.status_code)

        if not resp.ok:
            error_text = resp.text
            try:
                error_data = json.loads(error_text)
            except ValueError:
                error_data = {"message": error_text or "Failed to update product"}
            if not isinstance(error_data, dict):
                error_data = {"message": str(error_data)}

            if MULTIPART_PARSE_FAILURE in error_text:
                image_count = sum(1 for key, _ in fields if key == "images")
                logger.error(
                    "PRODUCT_PROXY_MULTIPART_REJECTED product=%s images=%s status=%s",
                    product_id, image_count, resp.status_code,
                )
                return JSONResponse(
                    {
                        "error": "Backend could not parse the upload",
                        "message": "Try updating the product details first and upload images separately",
                        "details": error_data,
                        "images": image_count,
                        "status": resp.status_code,
                    },
                    status_code=502,
                )

            logger.warning("PRODUCT_PROXY_BACKEND_ERROR product=%s status=%s", product_id, resp.status_code)
            return JSONResponse(
                {
                    "error": error_data.get("message") or "Backend error",
                    "details": error_data,
                    "status": resp.status_code,
                },
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError:
            data = {"message": resp.text}
        return JSONResponse(data, status_code=200)

    except Exception as e:
        logger.exception("PRODUCT_PROXY_ERROR product=%s", product_id)
        return _error(500, "Internal server error", str(e) or "Unknown error", type=e.__class__.__name__)

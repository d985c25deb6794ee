import logging
from typing import Any, Callable, Optional
from urllib.parse import urlencode

from pydantic import ValidationError

from config.constants import VERIFICATION_REQUIRED_MESSAGE
from config.env import PUBLIC_BACKEND_URL, REQUEST_TIMEOUT_SECONDS
from models.cart import BackendCart
from models.product import ProductFilter, ProductListParams
from models.user import LoginResult, RegistrationRequest, UserDetails
from utils.envelopes import Envelope, parse_envelope
from utils.errors import (
    AppError,
    LoginRequiredError,
    create_network_error,
    create_server_error,
    error_for_status,
)
from utils.http import UpstreamTimeout, UpstreamUnavailable, afetch

logger = logging.getLogger(__name__)

VERIFICATION_MARKERS = ("Buyer profile not found", "not verified", "cannot add items to cart")

STATUS_DEFAULT_MESSAGES = {
    400: "Invalid request. Please check your input and try again.",
    401: "Authentication failed. Please check your credentials.",
    404: "Resource not found.",
    409: "This email or username is already registered. Please use a different one or try logging in.",
    500: "We're experiencing technical difficulties. Please try again in a moment.",
}

AUTH_REQUIRED_MESSAGE = "Authentication required. Please log in to continue."


def _looks_like_html(text: str) -> bool:
    head = text.lstrip()[:15].lower()
    return head.startswith("<!doctype") or head.startswith("<html")


def _auth_redirect_error() -> AppError:
    return LoginRequiredError(AUTH_REQUIRED_MESSAGE, status_code=401, is_auth_redirect=True)


class ApiGateway:
    """
    Async client for the marketplace backend.
    Every method either returns parsed data or raises AppError.
    """

    def __init__(
        self,
        base_url: str = PUBLIC_BACKEND_URL,
        *,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        transport=afetch,
        token_loader: Optional[Callable[[], Optional[str]]] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._token: Optional[str] = None
        self.token_loader = token_loader

    # =========================
    # AUTH HEADER
    # =========================

    def set_auth_token(self, token: str) -> None:
        self._token = token

    def clear_auth_token(self) -> None:
        self._token = None

    @property
    def has_auth_token(self) -> bool:
        return self._token is not None

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    # =========================
    # CORE REQUEST
    # =========================

    async def _request(self, endpoint: str, *, method: str = "GET", payload: Any = None, query=None, retry: bool = True) -> Any:
        url = f"{self.base_url}{endpoint}"
        if query:
            url = f"{url}?{urlencode(query)}"

        logger.debug("API_REQUEST %s %s", method, url)

        try:
            resp = await self._transport(
                url,
                method=method,
                headers=self._headers(),
                payload=payload,
                timeout=self.timeout,
                follow_redirects=False,
            )
        except UpstreamTimeout as e:
            logger.error("API_TIMEOUT %s %s", method, url)
            raise create_network_error(
                "Request timeout. The server took too long to respond.",
                status_code=408,
            ) from e
        except UpstreamUnavailable as e:
            logger.error("API_UNREACHABLE %s %s", method, url)
            raise create_network_error(f"Failed to fetch {endpoint}", details=str(e)) from e

        if resp.is_redirect:
            logger.info("API_REDIRECT status=%s, authentication required", resp.status)
            raise _auth_redirect_error()

        if not resp.ok:
            if resp.status == 401 and retry and not self._token and self.token_loader:
                stored = self.token_loader()
                if stored:
                    self.set_auth_token(stored)
                    return await self._request(endpoint, method=method, payload=payload, query=query, retry=False)
            raise self._error_from_response(resp)

        if resp.is_json:
            try:
                return resp.json()
            except ValueError as e:
                raise create_server_error("Invalid JSON response from backend", status_code=resp.status) from e

        text = resp.text()
        if _looks_like_html(text):
            logger.info("API_HTML_RESPONSE authentication required")
            raise _auth_redirect_error()

        return {"success": True, "message": text, "data": {"message": text}}

    def _error_from_response(self, resp) -> AppError:
        status = resp.status
        message = STATUS_DEFAULT_MESSAGES.get(status, f"HTTP error! status: {status}")
        body: Any = None

        if resp.is_json:
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                if body.get("message"):
                    message = body["message"]
                elif body.get("error"):
                    message = body["error"]
                elif isinstance(body.get("errors"), list):
                    message = ", ".join(str(e) for e in body["errors"])
        else:
            text = resp.text().strip()
            if _looks_like_html(text):
                return _auth_redirect_error()
            if text:
                message = text
                body = text

        is_verification_error = any(marker in message for marker in VERIFICATION_MARKERS)
        if is_verification_error:
            message = VERIFICATION_REQUIRED_MESSAGE

        if status >= 500:
            logger.error("API_SERVER_ERROR status=%s message=%s", status, message)

        return error_for_status(
            status,
            message,
            details=body,
            user_message=message if is_verification_error else None,
            is_verification_error=is_verification_error,
        )

    def _ensure_success(self, payload: Any, fallback: str) -> Envelope:
        envelope = parse_envelope(payload)
        if not envelope.success:
            raise create_server_error(envelope.message or fallback, details=payload)
        return envelope

    # =========================
    # AUTHENTICATION
    # =========================

    async def login(self, email: str, password: str) -> LoginResult:
        payload = await self._request("/api/v1/auth/login", method="POST", payload={"email": email, "password": password})
        envelope = self._ensure_success(payload, "Login failed")
        data = envelope.data if isinstance(envelope.data, dict) else payload
        return LoginResult.model_validate(data)

    async def register(self, registration: RegistrationRequest) -> Any:
        payload = await self._request(
            "/api/v1/auth/register",
            method="POST",
            payload=registration.model_dump(mode="json", by_alias=True),
        )
        return self._ensure_success(payload, "Registration failed").data

    async def logout(self) -> None:
        await self._request("/api/v1/auth/logout", method="POST")

    async def exchange_oauth_code(self, auth_code: str) -> dict:
        payload = await self._request("/api/v1/oauth2/exchange", method="POST", query={"auth_code": auth_code})
        return self._ensure_success(payload, "OAuth exchange failed").data

    async def get_google_auth_url(self, next_path: str = "/") -> str:
        payload = await self._request("/api/v1/oauth2/login/google", query={"nextPath": next_path})
        data = parse_envelope(payload).data
        auth_url = data.get("authUrl") if isinstance(data, dict) else None
        if not auth_url:
            raise create_server_error("Backend did not return an OAuth URL", details=payload)
        return auth_url

    # =========================
    # USER
    # =========================

    async def get_user_details(self) -> UserDetails:
        payload = await self._request("/api/v1/userManagement/user-details")
        data = parse_envelope(payload).data
        try:
            return UserDetails.model_validate(data)
        except ValidationError as e:
            raise create_server_error("Malformed user details response", details=str(e)) from e

    async def send_email_otp(self, organizational_email: str) -> Any:
        payload = await self._request(
            "/api/v1/email/sendOTP",
            method="POST",
            query={"organizationalEmail": organizational_email},
        )
        return self._ensure_success(payload, "Failed to send OTP").data

    async def verify_email_otp(self, organizational_email: str, otp: str, user_roles: str = "USER") -> Any:
        payload = await self._request(
            "/api/v1/email/verifyOTP",
            method="POST",
            query={"organizationalEmail": organizational_email, "otp": otp, "userRoles": user_roles},
        )
        return self._ensure_success(payload, "Verification failed").data

    # =========================
    # CART
    # =========================

    async def get_user_cart(self) -> BackendCart:
        payload = await self._request("/api/v1/cart/User")
        envelope = self._ensure_success(payload, "Failed to load cart")
        data = envelope.data if isinstance(envelope.data, dict) else {"items": envelope.items}
        try:
            return BackendCart.model_validate(data)
        except ValidationError as e:
            raise create_server_error("Malformed cart response", details=str(e)) from e

    async def add_to_cart(self, product_id: int, quantity: int) -> Any:
        payload = await self._request(
            "/api/v1/cart/add",
            method="POST",
            payload={"productId": product_id, "quantity": quantity},
        )
        return self._ensure_success(payload, "Failed to add item to cart").data

    async def update_cart_item(self, cart_item_id: int, product_id: int, quantity: int) -> Any:
        payload = await self._request(
            f"/api/v1/cart/item/{cart_item_id}",
            method="PUT",
            payload={"productId": product_id, "quantity": quantity},
        )
        return self._ensure_success(payload, "Failed to update quantity").data

    async def remove_from_cart(self, cart_item_id: int) -> Any:
        payload = await self._request(f"/api/v1/cart/item/{cart_item_id}", method="DELETE")
        return self._ensure_success(payload, "Failed to remove item from cart").data

    async def clear_cart(self) -> Any:
        payload = await self._request("/api/v1/cart/clear", method="DELETE")
        return self._ensure_success(payload, "Failed to clear cart").data

    # =========================
    # PRODUCTS
    # =========================

    async def get_products(self, params: Optional[ProductListParams] = None) -> Envelope:
        query = params.to_query() if params else None
        return parse_envelope(await self._request("/api/v1/products", query=query))

    async def get_product(self, product_id: str) -> Any:
        return parse_envelope(await self._request(f"/api/v1/products/{product_id}")).data

    async def get_product_details(self, product_id: int) -> Any:
        return parse_envelope(await self._request(f"/api/v1/displayItem/itemDetails/{product_id}")).data

    async def filter_products(self, criteria: ProductFilter) -> Envelope:
        payload = await self._request("/api/v1/displayItem/filter", method="POST", query=criteria.to_query() or None)
        return parse_envelope(payload)

    async def get_top_picks(self, page: int = 0, size: int = 12) -> Envelope:
        return parse_envelope(await self._request("/api/v1/displayItem/top-picks", query={"page": page, "size": size}))

    async def get_newest_listings(self, page: int = 0, size: int = 12) -> Envelope:
        return parse_envelope(await self._request("/api/v1/displayItem/newest", query={"page": page, "size": size}))

    async def get_categories(self) -> list:
        envelope = parse_envelope(await self._request("/api/v1/products/categories"))
        return envelope.items

import asyncio
import json

import pytest

from config.constants import VERIFICATION_REQUIRED_MESSAGE
from models.product import ProductFilter
from services.gateway import ApiGateway
from utils.errors import AppError, ErrorType, LoginRequiredError
from utils.http import UpstreamResponse, UpstreamTimeout, UpstreamUnavailable

JSON = {"Content-Type": "application/json"}


def json_response(status, body):
    return UpstreamResponse(status, JSON, json.dumps(body).encode())


def text_response(status, text, content_type="text/plain"):
    return UpstreamResponse(status, {"Content-Type": content_type}, text.encode())


class FakeTransport:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    async def __call__(self, url, **kwargs):
        self.requests.append((url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_gateway(*responses, token_loader=None):
    transport = FakeTransport(*responses)
    gateway = ApiGateway("https://api.test", transport=transport, token_loader=token_loader)
    return gateway, transport


def run(coro):
    return asyncio.run(coro)


class TestGatewayRequests:
    def test_bearer_token_and_no_redirects(self):
        gateway, transport = make_gateway(json_response(200, {"success": True, "data": {}}))
        gateway.set_auth_token("abc")

        run(gateway.clear_cart())

        url, kwargs = transport.requests[0]
        assert url == "https://api.test/api/v1/cart/clear"
        assert kwargs["method"] == "DELETE"
        assert kwargs["headers"]["Authorization"] == "Bearer abc"
        assert kwargs["follow_redirects"] is False
        assert kwargs["timeout"] == 30

    def test_login_parses_result(self):
        gateway, transport = make_gateway(json_response(200, {"email": "a@b.c", "token": "t", "role": "USER"}))
        result = run(gateway.login("a@b.c", "pw"))
        assert result.token == "t"
        assert transport.requests[0][1]["payload"] == {"email": "a@b.c", "password": "pw"}

    def test_cart_payload(self):
        gateway, _ = make_gateway(json_response(200, {
            "success": True,
            "data": {
                "items": [{"cartId": 3, "productId": 42, "quantity": 2, "productName": "Desk", "price": 10}],
                "totalItems": 2,
                "totalPrice": 20,
            },
        }))
        cart = run(gateway.get_user_cart())
        assert cart.items[0].cart_id == 3
        assert cart.total_items == 2

    def test_otp_query_string(self):
        gateway, transport = make_gateway(json_response(200, {"success": True, "message": "ok"}))
        run(gateway.verify_email_otp("me@un.org", "123456"))
        assert transport.requests[0][0] == (
            "https://api.test/api/v1/email/verifyOTP?organizationalEmail=me%40un.org&otp=123456&userRoles=USER"
        )

    def test_filter_uses_repeated_category_ids(self):
        gateway, transport = make_gateway(json_response(200, {"content": [{"id": 1}], "totalElements": 1}))
        envelope = run(gateway.filter_products(ProductFilter(category_ids=[1, 2], min_price=100.0)))
        assert envelope.items == [{"id": 1}]
        assert "categoryIds=1&categoryIds=2&minPrice=100" in transport.requests[0][0]

    def test_plain_text_success_is_wrapped(self):
        gateway, _ = make_gateway(text_response(200, "OTP sent"))
        assert run(gateway.send_email_otp("me@un.org")) == {"message": "OTP sent"}

    def test_google_auth_url(self):
        gateway, transport = make_gateway(json_response(200, {"authUrl": "https://accounts.google.com/x"}))
        assert run(gateway.get_google_auth_url("/cart")) == "https://accounts.google.com/x"
        assert transport.requests[0][0].endswith("nextPath=%2Fcart")


class TestGatewayFailures:
    def test_connection_failure_is_network_error(self):
        gateway, _ = make_gateway(UpstreamUnavailable("refused"))
        with pytest.raises(AppError) as exc:
            run(gateway.get_user_details())
        assert exc.value.type == ErrorType.NETWORK
        assert exc.value.retryable

    def test_timeout_is_408(self):
        gateway, _ = make_gateway(UpstreamTimeout("slow"))
        with pytest.raises(AppError) as exc:
            run(gateway.get_user_details())
        assert exc.value.type == ErrorType.NETWORK
        assert exc.value.status_code == 408

    @pytest.mark.parametrize("response", [
        UpstreamResponse(302, {"Location": "/login"}, b""),
        text_response(200, "<!DOCTYPE html><html>login</html>", "text/html"),
        text_response(403, "<html><body>Sign in</body></html>", "text/html"),
    ])
    def test_redirects_and_html_mean_login_required(self, response):
        gateway, _ = make_gateway(response)
        with pytest.raises(AppError) as exc:
            run(gateway.get_user_cart())
        assert exc.value.type == ErrorType.AUTHENTICATION
        assert exc.value.is_auth_redirect
        assert isinstance(exc.value, LoginRequiredError)

    @pytest.mark.parametrize("status,body,expected_type,expected_message", [
        (400, {"message": "Bad quantity"}, ErrorType.VALIDATION, "Bad quantity"),
        (403, {"error": "Forbidden"}, ErrorType.PERMISSION, "Forbidden"),
        (404, {}, ErrorType.NOT_FOUND, "Resource not found."),
        (409, {"errors": ["email taken", "username taken"]}, ErrorType.VALIDATION, "email taken, username taken"),
        (503, {"message": "Maintenance"}, ErrorType.SERVER, "Maintenance"),
    ])
    def test_status_mapping(self, status, body, expected_type, expected_message):
        gateway, _ = make_gateway(json_response(status, body))
        with pytest.raises(AppError) as exc:
            run(gateway.get_products())
        assert exc.value.type == expected_type
        assert exc.value.message == expected_message
        assert exc.value.status_code == status

    def test_verification_messages_are_rewritten(self):
        gateway, _ = make_gateway(json_response(400, {"message": "Buyer profile not found for user"}))
        with pytest.raises(AppError) as exc:
            run(gateway.add_to_cart(42, 1))
        assert exc.value.is_verification_error
        assert exc.value.message == VERIFICATION_REQUIRED_MESSAGE
        assert exc.value.user_message == VERIFICATION_REQUIRED_MESSAGE

    def test_unsuccessful_envelope_raises(self):
        gateway, _ = make_gateway(json_response(200, {"success": False, "message": "Out of stock"}))
        with pytest.raises(AppError) as exc:
            run(gateway.add_to_cart(42, 1))
        assert exc.value.message == "Out of stock"

    def test_401_retries_once_with_stored_token(self):
        gateway, transport = make_gateway(
            json_response(401, {"message": "Unauthorized"}),
            json_response(200, {"success": True, "data": {"items": []}}),
            token_loader=lambda: "stored-token",
        )
        cart = run(gateway.get_user_cart())

        assert cart.items == []
        assert len(transport.requests) == 2
        assert "Authorization" not in transport.requests[0][1]["headers"]
        assert transport.requests[1][1]["headers"]["Authorization"] == "Bearer stored-token"

    def test_401_with_header_does_not_retry(self):
        gateway, transport = make_gateway(
            json_response(401, {"message": "Unauthorized"}),
            token_loader=lambda: "stored-token",
        )
        gateway.set_auth_token("expired")
        with pytest.raises(AppError) as exc:
            run(gateway.get_user_cart())
        assert exc.value.type == ErrorType.AUTHENTICATION
        assert len(transport.requests) == 1

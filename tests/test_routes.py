import json
import logging

import pytest
import requests
from fastapi.testclient import TestClient

import main
from utils.http import UpstreamResponse, UpstreamUnavailable

AUTH = {"Authorization": "Bearer test-token"}
PRODUCT = json.dumps({"productName": "Desk", "productDescription": "Solid oak"})


def backend_response(status, body):
    resp = requests.Response()
    resp.status_code = status
    resp._content = body.encode() if isinstance(body, str) else json.dumps(body).encode()
    resp.encoding = "utf-8"
    return resp


class RecordingPatch:
    def __init__(self, result):
        self.result = result
        self.calls = []

    def __call__(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def fake_afetch(response, calls=None):
    async def afetch(url, **kwargs):
        if calls is not None:
            calls.append((url, kwargs))
        if isinstance(response, Exception):
            raise response
        return response
    return afetch


@pytest.fixture
def client():
    return TestClient(main.app)


class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")
        body = resp.json()

        assert resp.status_code == 200
        assert body["status"] == "healthy"
        assert set(body) == {"status", "timestamp", "uptime", "environment", "version", "memory"}
        assert set(body["memory"]) == {"used", "total"}

    def test_head(self, client):
        resp = client.head("/api/health")
        assert resp.status_code == 200
        assert resp.content == b""

    def test_unhealthy(self, client, monkeypatch):
        def broken():
            raise OSError("no sysconf")

        monkeypatch.setattr(main, "memory_usage_mb", broken)
        resp = client.get("/api/health")

        assert resp.status_code == 500
        assert resp.json()["status"] == "unhealthy"
        assert resp.json()["error"] == "Health check failed"


class TestProductUpdateProxy:
    @pytest.fixture(autouse=True)
    def patch_backend(self, monkeypatch):
        self.patch = RecordingPatch(backend_response(200, {"id": 42, "productName": "Desk"}))
        monkeypatch.setattr("routes.products.requests.patch", self.patch)

    def test_missing_token(self, client):
        resp = client.patch("/api/products/42", json={"productName": "Desk"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized", "message": "No authentication token provided"}

    def test_oversized_image_is_rejected_before_forwarding(self, client):
        big = b"\xff" * (15 * 1024 * 1024)
        resp = client.patch(
            "/api/products/42",
            headers=AUTH,
            data={"product": PRODUCT},
            files=[("images", ("photo.jpg", big, "image/jpeg"))],
        )

        assert resp.status_code == 400
        assert resp.json()["error"] == "File too large"
        assert resp.json()["message"] == "File photo.jpg exceeds 10MB limit"
        assert self.patch.calls == []

    @pytest.mark.parametrize("file,error", [
        (("empty.jpg", b"", "image/jpeg"), "Invalid file"),
        (("notes.txt", b"hello", "text/plain"), "Invalid file type"),
    ])
    def test_invalid_images(self, client, file, error):
        resp = client.patch("/api/products/42", headers=AUTH, data={"product": PRODUCT}, files=[("images", file)])
        assert resp.status_code == 400
        assert resp.json()["error"] == error
        assert self.patch.calls == []

    def test_invalid_product_json(self, client):
        resp = client.patch(
            "/api/products/42",
            headers=AUTH,
            data={"product": "{not json"},
            files=[("images", ("a.png", b"png", "image/png"))],
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid product data"

    def test_aggregate_limit(self, client, monkeypatch):
        monkeypatch.setattr("routes.products.MAX_UPDATE_REQUEST_BYTES", 1024)
        resp = client.patch(
            "/api/products/42",
            headers=AUTH,
            data={"product": PRODUCT},
            files=[("images", ("a.png", b"x" * 2048, "image/png"))],
        )
        assert resp.status_code == 413
        assert resp.json()["error"] == "Request too large"

    def test_multipart_is_forwarded(self, client):
        resp = client.patch(
            "/api/products/42?imageIds=7&imageIds=8",
            headers=AUTH,
            data={"product": PRODUCT},
            files=[("images", ("a.png", b"png-bytes", "image/png"))],
        )

        assert resp.status_code == 200
        assert resp.json() == {"id": 42, "productName": "Desk"}

        url, kwargs = self.patch.calls[0]
        assert url.endswith("/api/v1/products/update/42")
        assert kwargs["headers"]["Authorization"] == "Bearer test-token"
        assert kwargs["params"] == [("imageIds", "7"), ("imageIds", "8")]
        assert kwargs["timeout"] == 300
        fields = dict(kwargs["files"])
        assert json.loads(fields["product"][1]) == json.loads(PRODUCT)
        assert fields["images"] == ("a.png", b"png-bytes", "image/png")

    def test_json_body_becomes_product_field(self, client):
        resp = client.patch(
            "/api/products/42",
            headers={"Cookie": "authToken=cookie-token"},
            json={"productName": "Desk"},
        )

        assert resp.status_code == 200
        url, kwargs = self.patch.calls[0]
        assert kwargs["headers"]["Authorization"] == "Bearer cookie-token"
        assert kwargs["files"] == [("product", (None, json.dumps({"productName": "Desk"})))]

    def test_timeout(self, client):
        self.patch.result = requests.Timeout("slow")
        resp = client.patch("/api/products/42", headers=AUTH, json={})
        assert resp.status_code == 504
        assert resp.json()["error"] == "Request timeout"

    def test_connection_failure(self, client):
        self.patch.result = requests.ConnectionError("refused")
        resp = client.patch("/api/products/42", headers=AUTH, json={})
        assert resp.status_code == 502
        assert resp.json()["error"] == "Network error"

    def test_backend_multipart_parse_failure(self, client):
        self.patch.result = backend_response(500, {"message": "Failed to parse multipart servlet request"})
        resp = client.patch("/api/products/42", headers=AUTH, json={})
        assert resp.status_code == 502
        assert resp.json()["status"] == 500

    def test_backend_error_keeps_status(self, client):
        self.patch.result = backend_response(403, {"message": "Not your product"})
        resp = client.patch("/api/products/42", headers=AUTH, json={})
        assert resp.status_code == 403
        assert resp.json()["error"] == "Not your product"
        assert resp.json()["details"] == {"message": "Not your product"}


class TestOAuthProxy:
    def test_returns_auth_url(self, client, monkeypatch):
        calls = []
        upstream = UpstreamResponse(200, {"Content-Type": "application/json"}, b'{"authUrl": "https://accounts.google.com/o"}')
        monkeypatch.setattr("routes.oauth.afetch", fake_afetch(upstream, calls))

        resp = client.get("/api/oauth/google?nextPath=/cart")

        assert resp.json() == {"authUrl": "https://accounts.google.com/o"}
        assert calls[0][0].endswith("/api/v1/oauth2/login/google?nextPath=%2Fcart")

    def test_backend_error(self, client, monkeypatch):
        upstream = UpstreamResponse(503, {}, b"down")
        monkeypatch.setattr("routes.oauth.afetch", fake_afetch(upstream))

        resp = client.get("/api/oauth/google")

        assert resp.status_code == 503
        assert resp.json() == {"error": "Failed to initiate Google OAuth", "message": "down", "status": 503}


class TestMatomoProxy:
    def test_token_is_sent_but_never_logged(self, client, monkeypatch, caplog):
        calls = []
        upstream = UpstreamResponse(200, {"Content-Type": "application/json"}, b'{"nb_visits": 12}')
        monkeypatch.setattr("routes.matomo.afetch", fake_afetch(upstream, calls))
        monkeypatch.setattr("routes.matomo.MATOMO_TOKEN", "very-secret")
        caplog.set_level(logging.INFO)

        resp = client.get("/api/matomo?method=Actions.get&period=week")

        assert resp.json() == {"nb_visits": 12}
        assert "token_auth=very-secret" in calls[0][0]
        assert "method=Actions.get" in calls[0][0]
        assert "very-secret" not in caplog.text
        assert "token_auth=***" in caplog.text

    def test_invalid_json(self, client, monkeypatch):
        upstream = UpstreamResponse(200, {"Content-Type": "text/html"}, b"<html>")
        monkeypatch.setattr("routes.matomo.afetch", fake_afetch(upstream))

        resp = client.get("/api/matomo")

        assert resp.status_code == 500
        assert resp.json()["error"] == "Invalid JSON response from Matomo"


class TestCartPassThrough:
    def test_forwards_authorization(self, client, monkeypatch):
        calls = []
        upstream = UpstreamResponse(200, {"Content-Type": "application/json"}, b'{"success": true}')
        monkeypatch.setattr("routes.cart.afetch", fake_afetch(upstream, calls))

        resp = client.put("/api/cart/9", headers=AUTH, json={"productId": 42, "quantity": 3})

        assert resp.status_code == 200
        url, kwargs = calls[0]
        assert url.endswith("/api/v1/cart/item/9")
        assert kwargs["method"] == "PUT"
        assert kwargs["headers"]["Authorization"] == "Bearer test-token"
        assert kwargs["payload"] == {"productId": 42, "quantity": 3}

    def test_upstream_failure(self, client, monkeypatch):
        monkeypatch.setattr("routes.cart.afetch", fake_afetch(UpstreamUnavailable("refused")))
        resp = client.get("/api/cart")
        assert resp.status_code == 500
        assert resp.json() == {"error": "Failed to fetch cart"}


class TestAnalyticsEvent:
    def test_product_click_tracks_view(self, client, monkeypatch):
        calls = []
        monkeypatch.setattr("routes.analytics.afetch", fake_afetch(UpstreamResponse(404, {}, b""), calls))

        resp = client.post("/api/analytics/event", json={"type": "product_click", "productId": 5, "ts": 1})

        assert resp.status_code == 204
        assert calls[0][0].endswith("/api/v1/products/5/view")

    def test_always_204(self, client, monkeypatch):
        monkeypatch.setattr("routes.analytics.afetch", fake_afetch(UpstreamUnavailable("refused")))
        assert client.post("/api/analytics/event", json={"type": "product_click", "productId": 5}).status_code == 204
        assert client.post("/api/analytics/event", content=b"not json").status_code == 204

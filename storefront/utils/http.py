import json
import socket
from urllib import request, error

from fastapi.concurrency import run_in_threadpool


class UpstreamUnavailable(Exception):
    pass


class UpstreamTimeout(UpstreamUnavailable):
    pass


class UpstreamResponse:
    def __init__(self, status: int, headers, body: bytes):
        self.status = status
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.body = body or b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def is_redirect(self) -> bool:
        return self.status in (301, 302, 303, 307, 308)

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    @property
    def is_json(self) -> bool:
        return "application/json" in self.content_type

    def text(self) -> str:
        return self.body.decode("utf-8", errors="ignore")

    def json(self):
        return json.loads(self.text())


class _NoRedirect(request.HTTPRedirectHandler):
    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


_follow_opener = request.build_opener()
_manual_opener = request.build_opener(_NoRedirect)


def fetch(
    url: str,
    *,
    method: str = "GET",
    headers: dict | None = None,
    payload=None,
    timeout: float = 30,
    follow_redirects: bool = True,
) -> UpstreamResponse:
    """
    Blocking HTTP call. Non-2xx answers are returned, not raised;
    only transport failures raise UpstreamUnavailable / UpstreamTimeout.
    """
    headers = dict(headers or {})
    data = None
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
        headers.setdefault("Content-Type", "application/json")

    req = request.Request(url=url, data=data, headers=headers, method=method)
    opener = _follow_opener if follow_redirects else _manual_opener

    try:
        with opener.open(req, timeout=timeout) as resp:
            return UpstreamResponse(resp.status, dict(resp.headers), resp.read())
    except error.HTTPError as e:
        return UpstreamResponse(e.code, dict(e.headers or {}), e.read())
    except (socket.timeout, TimeoutError) as e:
        raise UpstreamTimeout(f"Request to {url} timed out") from e
    except error.URLError as e:
        if isinstance(e.reason, (socket.timeout, TimeoutError)):
            raise UpstreamTimeout(f"Request to {url} timed out") from e
        raise UpstreamUnavailable(f"Failed to fetch {url}: {e.reason}") from e


async def afetch(url: str, **kwargs) -> UpstreamResponse:
    return await run_in_threadpool(fetch, url, **kwargs)

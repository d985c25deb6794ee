from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional


class EnvelopeKind(str, Enum):
    RAW_LIST = "raw_list"            # [...]
    PAGE = "page"                    # {"content": [...], ...}
    WRAPPED_PAGE = "wrapped_page"    # {"data": {"content": [...]}}
    WRAPPED = "wrapped"              # {"success": ..., "data": ...}
    PLAIN = "plain"                  # any other object or scalar


@dataclass
class Envelope:
    kind: EnvelopeKind
    data: Any
    items: List[Any] = field(default_factory=list)
    success: bool = True
    message: Optional[str] = None
    total: Optional[int] = None


def _page_total(page: dict, items: list) -> int:
    for key in ("totalElements", "total", "totalItems"):
        if isinstance(page.get(key), int):
            return page[key]
    return len(items)


def parse_envelope(payload: Any) -> Envelope:
    """Resolve the backend's response shapes once, at the gateway boundary."""
    if isinstance(payload, list):
        return Envelope(EnvelopeKind.RAW_LIST, payload, items=payload, total=len(payload))

    if not isinstance(payload, dict):
        return Envelope(EnvelopeKind.PLAIN, payload)

    success = payload.get("success") is not False
    message = payload.get("message")

    if isinstance(payload.get("content"), list):
        items = payload["content"]
        return Envelope(EnvelopeKind.PAGE, payload, items=items, success=success,
                        message=message, total=_page_total(payload, items))

    if "data" in payload:
        data = payload["data"]
        if isinstance(data, dict) and isinstance(data.get("content"), list):
            items = data["content"]
            return Envelope(EnvelopeKind.WRAPPED_PAGE, data, items=items, success=success,
                            message=message, total=_page_total(data, items))
        items = data if isinstance(data, list) else []
        if isinstance(data, dict) and isinstance(data.get("items"), list):
            items = data["items"]
        return Envelope(EnvelopeKind.WRAPPED, data, items=items, success=success,
                        message=message, total=len(items) if items else None)

    items = payload["items"] if isinstance(payload.get("items"), list) else []
    return Envelope(EnvelopeKind.PLAIN, payload, items=items, success=success, message=message)

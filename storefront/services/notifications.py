import logging
from dataclasses import dataclass
from typing import List, Literal

logger = logging.getLogger(__name__)


@dataclass
class Toast:
    title: str
    description: str = ""
    variant: Literal["default", "destructive"] = "default"


class Notifier:
    """Collects toasts for the UI layer to render."""

    def __init__(self):
        self.toasts: List[Toast] = []

    def toast(self, title: str, description: str = "", variant: str = "default") -> Toast:
        toast = Toast(title=title, description=description, variant=variant)
        self.toasts.append(toast)
        if variant == "destructive":
            logger.info("TOAST_DESTRUCTIVE title=%s description=%s", title, description)
        else:
            logger.debug("TOAST title=%s", title)
        return toast

    def error(self, title: str, description: str = "") -> Toast:
        return self.toast(title, description, variant="destructive")

    @property
    def last(self):
        return self.toasts[-1] if self.toasts else None

    def clear(self) -> None:
        self.toasts.clear()

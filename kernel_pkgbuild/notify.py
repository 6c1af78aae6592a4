"""Logging setup and webhook notifications.

Console output goes through rich. When a notification endpoint is
configured, records at or above the notify level are also POSTed to
it (ntfy-style: message body plus a Title header). Notifications are
best-effort; a failing endpoint never affects the pipeline.
"""

from __future__ import annotations

import logging

import httpx
from rich.console import Console
from rich.logging import RichHandler

NOTIFY_TIMEOUT = 10.0
DEFAULT_TITLE = "kernel-pkgbuild"


class NotifyHandler(logging.Handler):
    """Logging handler that forwards records to a webhook."""

    def __init__(
        self,
        url: str,
        level: int = logging.INFO,
        title: str = DEFAULT_TITLE,
        client: httpx.Client | None = None,
    ) -> None:
        super().__init__(level)
        self.url = url
        self.title = title
        self._client = client or httpx.Client(timeout=NOTIFY_TIMEOUT)
        # Keep httpx's own request logging out of the webhook
        self.addFilter(lambda record: not record.name.startswith(("httpx", "httpcore")))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
        except (TypeError, ValueError):
            return
        try:
            self._client.post(
                self.url,
                content=message.encode("utf-8"),
                headers={"Title": self.title},
            )
        except httpx.HTTPError:
            pass

    def close(self) -> None:
        self._client.close()
        super().close()


def configure_logging(
    level: str = "INFO",
    ntfy_url: str = "",
    notify_level: str = "INFO",
    console: Console | None = None,
) -> None:
    """Configure root logging for a pipeline run.

    Args:
        level: Console log level name.
        ntfy_url: Optional notification endpoint.
        notify_level: Minimum level forwarded to the endpoint.
        console: Optional rich console (defaults to stderr).
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler, (RichHandler, NotifyHandler)):
            root.removeHandler(handler)
            handler.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    root.addHandler(console_handler)

    if ntfy_url:
        notify_handler = NotifyHandler(
            ntfy_url, level=logging.getLevelName(notify_level)
        )
        notify_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        root.addHandler(notify_handler)

    root.setLevel(logging.getLevelName(level))


__all__ = ["NotifyHandler", "configure_logging"]

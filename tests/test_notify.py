"""Tests for logging setup and webhook notifications."""

import logging

import httpx
import pytest
import respx
from rich.console import Console
from rich.logging import RichHandler

from kernel_pkgbuild.notify import NotifyHandler, configure_logging

NTFY_URL = "https://ntfy.example.com/kernels"


def make_record(name: str = "kernel_pkgbuild.pipeline", level: int = logging.INFO):
    return logging.LogRecord(name, level, __file__, 1, "Build %s done", ("6.9.3",), None)


@pytest.fixture
def root_logger():
    """Restore root handlers and level after the test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


class TestNotifyHandler:
    """Tests for NotifyHandler."""

    @respx.mock
    def test_posts_message(self):
        """Should post the formatted message with a title header."""
        route = respx.post(NTFY_URL).mock(return_value=httpx.Response(200))

        with httpx.Client() as client:
            handler = NotifyHandler(NTFY_URL, client=client)
            handler.handle(make_record())

        request = route.calls.last.request
        assert request.read() == b"Build 6.9.3 done"
        assert request.headers["Title"] == "kernel-pkgbuild"

    @respx.mock
    def test_endpoint_failure_is_ignored(self):
        """Should not raise when the endpoint is unreachable."""
        respx.post(NTFY_URL).mock(side_effect=httpx.ConnectError("refused"))

        with httpx.Client() as client:
            NotifyHandler(NTFY_URL, client=client).handle(make_record())

    @respx.mock
    def test_filters_http_client_records(self):
        """Should not forward httpx's own log records."""
        route = respx.post(NTFY_URL).mock(return_value=httpx.Response(200))

        with httpx.Client() as client:
            handler = NotifyHandler(NTFY_URL, client=client)
            handler.handle(make_record(name="httpx"))
            handler.handle(make_record(name="httpcore.connection"))

        assert not route.called

    @respx.mock
    def test_level_threshold(self):
        """Should drop records below the handler level."""
        route = respx.post(NTFY_URL).mock(return_value=httpx.Response(200))

        with httpx.Client() as client:
            handler = NotifyHandler(NTFY_URL, level=logging.WARNING, client=client)
            handler.handle(make_record(level=logging.INFO))

        assert not route.called


class TestConfigureLogging:
    """Tests for configure_logging function."""

    def test_console_only(self, root_logger):
        """Should install a single rich handler without an endpoint."""
        configure_logging("DEBUG", console=Console(file=None))

        assert root_logger.level == logging.DEBUG
        assert len([h for h in root_logger.handlers if isinstance(h, RichHandler)]) == 1
        assert not [h for h in root_logger.handlers if isinstance(h, NotifyHandler)]

    def test_with_endpoint(self, root_logger):
        """Should add a notify handler at the notify level."""
        configure_logging("INFO", ntfy_url=NTFY_URL, notify_level="ERROR")

        notify = [h for h in root_logger.handlers if isinstance(h, NotifyHandler)]
        assert len(notify) == 1
        assert notify[0].level == logging.ERROR
        assert notify[0].url == NTFY_URL

    def test_repeat_does_not_duplicate(self, root_logger):
        """Should replace handlers from a previous call."""
        configure_logging("INFO", ntfy_url=NTFY_URL)
        configure_logging("INFO", ntfy_url=NTFY_URL)

        assert len([h for h in root_logger.handlers if isinstance(h, RichHandler)]) == 1
        assert len([h for h in root_logger.handlers if isinstance(h, NotifyHandler)]) == 1

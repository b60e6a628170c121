"""
Shared fixtures: a scripted fake render provider behind httpx.MockTransport.
"""

import os
import sys
from typing import Any, Optional

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import RenderConfig
from services.rendering.client import RenderClient

NETWORK_BLIP = object()
READ_TIMEOUT = object()


class FakeRenderAPI:
    """
    Scripted provider.

    ``submit`` is the (status_code, body) answer to POST; ``statuses`` is the
    sequence of answers to GET. A status entry is either a dict body (200),
    a (status_code, body) tuple, NETWORK_BLIP or READ_TIMEOUT.
    """

    def __init__(
        self,
        submit: tuple[int, Any] = (201, {"success": True, "response": {"id": "abc123"}}),
        statuses: Optional[list] = None,
    ):
        self.submit = submit
        self.statuses = list(statuses or [])
        self.requests: list[httpx.Request] = []

    @property
    def submit_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]

    @property
    def status_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "GET"]

    def _respond(self, request: httpx.Request, answer) -> httpx.Response:
        if answer is NETWORK_BLIP:
            raise httpx.ConnectError("Connection refused", request=request)
        if answer is READ_TIMEOUT:
            raise httpx.ReadTimeout("Read timed out", request=request)
        if isinstance(answer, tuple):
            status_code, body = answer
        else:
            status_code, body = 200, answer
        if isinstance(body, (str, bytes)):
            return httpx.Response(status_code, content=body)
        return httpx.Response(status_code, json=body)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            return self._respond(request, self.submit)
        if not self.statuses:
            raise AssertionError(f"Unexpected status check: {request.url}")
        return self._respond(request, self.statuses.pop(0))

    def http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def shotstack_status(status: str, url: Optional[str] = None, error: Optional[str] = None) -> dict:
    response: dict[str, Any] = {"id": "abc123", "status": status}
    if url:
        response["url"] = url
    if error:
        response["error"] = error
    return {"success": True, "message": "OK", "response": response}


@pytest.fixture
def render_config():
    """Shotstack stage config with polling defaults suitable for tests."""
    return RenderConfig(
        provider="shotstack",
        shotstack_api_key="test-key",
        shotstack_env="stage",
        creatomate_api_key="creatomate-key",
        proxy_url="http://proxy.test",
        poll_interval_ms=0,
        max_attempts=10,
        timeout_seconds=None,
    )


@pytest.fixture
def make_client(render_config):
    """Build a RenderClient talking to a FakeRenderAPI."""

    def _make(api: FakeRenderAPI, provider: Optional[str] = None, breaker=None) -> RenderClient:
        config = render_config
        if provider:
            config = RenderConfig(**{**vars(render_config), "provider": provider})
        return RenderClient(config, http_client=api.http_client(), breaker=breaker)

    return _make

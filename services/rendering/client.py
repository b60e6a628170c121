"""
Render API Client

Performs the two outbound calls of the render workflow and maps every
failure onto the render error taxonomy:

- submit_render: POST the composition, return the job handle
- fetch_status: GET the job status, return a normalized RenderStatus

The credential is attached here from RenderConfig and never returned to the
caller.
"""

import asyncio
import json
import logging
from typing import Any, Mapping, Optional

import httpx

from core.circuit_breaker import CircuitBreaker, CircuitBreakerOpen
from core.config import RenderConfig

from .errors import (
    ProviderNotConfigured,
    StatusCheckFailed,
    StatusCheckRejected,
    StatusParseError,
    SubmissionFailed,
    SubmissionRejected,
)
from .models import RenderStatus
from .providers import RenderProvider, get_provider

logger = logging.getLogger(__name__)

# Status-check answers worth retrying on the next poll
TRANSIENT_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (json.JSONDecodeError, ValueError):
        return None


class RenderClient:
    """
    HTTP client for one render provider.

    Usage:
        async with RenderClient(config) as client:
            handle = await client.submit_render(edit)
            status = await client.fetch_status(handle)
    """

    def __init__(
        self,
        config: RenderConfig,
        provider: Optional[RenderProvider] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self.config = config
        self.provider = provider or get_provider(config)
        self.breaker = breaker
        self._http_client = http_client
        self._owns_http_client = http_client is None

    @property
    def provider_name(self) -> str:
        return self.provider.name

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.request_timeout)
        return self._http_client

    async def close(self):
        """Close the HTTP client if we created it."""
        if self._http_client is not None and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "RenderClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        missing = self.provider.missing_credential()
        if missing:
            logger.error(f"{self.provider.name} request refused: {missing} is not set")
            raise ProviderNotConfigured(f"Missing {missing}", self.provider.name)

        client = self._get_client()
        headers = self.provider.headers()
        if self.breaker is not None:
            return await self.breaker.call(client.request, method, url, headers=headers, **kwargs)
        return await client.request(method, url, headers=headers, **kwargs)

    async def submit_render(
        self,
        document: Mapping[str, Any],
        callback_url: Optional[str] = None,
    ) -> str:
        """
        Queue a render and return its job handle.

        Raises:
            SubmissionFailed: No answer from the provider
            SubmissionRejected: Non-success answer, or no handle in the body
            ProviderNotConfigured: The provider credential is not set
        """
        name = self.provider.name
        payload = self.provider.submit_payload(document, callback_url)

        try:
            response = await self._send("POST", self.provider.submit_url(), json=payload)
        except CircuitBreakerOpen as e:
            raise SubmissionFailed(str(e), name) from e
        except (httpx.TransportError, asyncio.TimeoutError) as e:
            logger.error(f"{name} render submission failed: {e!r}")
            raise SubmissionFailed(f"Could not reach {name}: {e!r}", name) from e

        body = _json_or_none(response)

        if not response.is_success:
            message = self.provider.error_message(body, response.text)
            logger.error(f"{name} render error: {response.status_code} {message}")
            raise SubmissionRejected(response.status_code, message, name)

        handle = self.provider.parse_handle(body)
        if not handle:
            logger.error(f"{name} accepted the render but returned no ID: {body}")
            raise SubmissionRejected(response.status_code, "No render ID returned", name)

        logger.info(f"Render job submitted to {name}: {handle}")
        return handle

    async def fetch_status(self, handle: str) -> RenderStatus:
        """
        Check a render job once.

        Raises:
            StatusCheckFailed: Transient; retry on the next poll
            StatusCheckRejected: The provider refused the check
            StatusParseError: The answer could not be understood
            ProviderNotConfigured: The provider credential is not set
        """
        name = self.provider.name

        try:
            response = await self._send(
                "GET",
                self.provider.status_url(handle),
                params=self.provider.status_params(handle),
            )
        except CircuitBreakerOpen as e:
            raise StatusCheckFailed(str(e), name) from e
        except (httpx.TransportError, asyncio.TimeoutError) as e:
            logger.warning(f"{name} status check for {handle} failed: {e!r}")
            raise StatusCheckFailed(f"Could not reach {name}: {e!r}", name) from e

        body = _json_or_none(response)

        if not response.is_success:
            message = self.provider.error_message(body, response.text)
            if response.status_code in TRANSIENT_STATUS_CODES:
                logger.warning(f"{name} status check for {handle}: {response.status_code} {message}")
                raise StatusCheckFailed(message, name, status_code=response.status_code)
            raise StatusCheckRejected(response.status_code, message, name)

        if body is None:
            raise StatusParseError(f"{name} returned a non-JSON status for {handle}", name)

        return self.provider.parse_status(handle, body)

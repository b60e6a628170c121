"""
Render Provider Adapters

Each adapter knows one vendor's wire format:
- Endpoint URLs and credential headers
- Submission payload shaping (including webhook callback fields)
- Handle extraction from the submission response
- Status normalization from status responses and webhook callbacks

Adapters never perform I/O; RenderClient does the HTTP.
"""

import logging
from typing import Any, Mapping, Optional

from core.config import RenderConfig

from .errors import InvalidInput, StatusParseError
from .models import JobStatus, RenderStatus

logger = logging.getLogger(__name__)


class RenderProvider:
    """Base adapter. Subclasses fill in URLs, headers and status labels."""

    name = "base"
    status_map: dict[str, JobStatus] = {}

    def __init__(self, config: RenderConfig):
        self.config = config

    # -- requests ---------------------------------------------------------

    @property
    def api_base(self) -> str:
        raise NotImplementedError

    def headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "Accept": "application/json"}

    def missing_credential(self) -> Optional[str]:
        """Name of the unset credential setting, or None when ready to send."""
        return None

    def submit_url(self) -> str:
        return f"{self.api_base}/render"

    def submit_payload(
        self,
        document: Mapping[str, Any],
        callback_url: Optional[str] = None,
    ) -> dict[str, Any]:
        return dict(document)

    def status_url(self, handle: str) -> str:
        return f"{self.api_base}/render/{handle}"

    def status_params(self, handle: str) -> Optional[dict[str, str]]:
        return None

    def validate_document(self, document: Mapping[str, Any]) -> Optional[str]:
        """Return a reason the document cannot be submitted, or None."""
        return None

    # -- responses --------------------------------------------------------

    def parse_handle(self, body: Any) -> Optional[str]:
        if isinstance(body, dict) and body.get("id"):
            return str(body["id"])
        return None

    def _status_payload(self, body: Any) -> dict[str, Any]:
        if not isinstance(body, dict):
            raise StatusParseError(
                f"Expected a JSON object from {self.name}, got {type(body).__name__}",
                self.name,
            )
        return body

    def _payload_error(self, payload: dict[str, Any]) -> Optional[str]:
        error = payload.get("error")
        if isinstance(error, dict):
            return error.get("message") or None
        return str(error) if error else None

    def parse_status(self, handle: str, body: Any) -> RenderStatus:
        """Normalize a status response (or webhook callback) into a RenderStatus."""
        payload = self._status_payload(body)

        label = payload.get("status")
        if not label or not isinstance(label, str):
            raise StatusParseError(f"No status in {self.name} response for {handle}", self.name)

        status = self.normalize(label)
        url = payload.get("url") or None
        error = None

        if status == JobStatus.DONE and not url:
            raise StatusParseError(
                f"Render {handle} is done but {self.name} returned no output URL",
                self.name,
            )
        if status == JobStatus.FAILED:
            error = self._payload_error(payload) or "Unknown render error"

        return RenderStatus(
            handle=handle or str(payload.get("id") or ""),
            status=status,
            provider_status=label,
            url=url if status == JobStatus.DONE else None,
            error=error,
        )

    def normalize(self, label: str) -> JobStatus:
        status = self.status_map.get(label.lower())
        if status is None:
            logger.warning(f"Unknown {self.name} render status '{label}', treating as processing")
            return JobStatus.PROCESSING
        return status

    @staticmethod
    def error_message(body: Any, text: str = "") -> str:
        """Pull a human readable message out of an error response."""
        if isinstance(body, dict):
            for key in ("message", "error", "details", "error_message"):
                value = body.get(key)
                if isinstance(value, dict):
                    value = value.get("message")
                if value:
                    return str(value)
            response = body.get("response")
            if isinstance(response, dict) and response.get("message"):
                return str(response["message"])
        return text.strip() or "Unknown error"


class ShotstackProvider(RenderProvider):
    """Shotstack Edit API (https://shotstack.io/docs/api/)."""

    name = "shotstack"
    status_map = {
        "submitted": JobStatus.QUEUED,
        "queued": JobStatus.QUEUED,
        "fetching": JobStatus.PROCESSING,
        "rendering": JobStatus.PROCESSING,
        "saving": JobStatus.PROCESSING,
        "done": JobStatus.DONE,
        "failed": JobStatus.FAILED,
        "cancelled": JobStatus.FAILED,
    }

    @property
    def api_base(self) -> str:
        return self.config.shotstack_api_base

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        headers["x-api-key"] = self.config.shotstack_api_key
        return headers

    def missing_credential(self):
        return None if self.config.shotstack_api_key else "SHOTSTACK_API_KEY"

    def submit_payload(self, document, callback_url=None):
        payload = dict(document)
        if callback_url:
            payload["callback"] = callback_url
        return payload

    def validate_document(self, document):
        if not document.get("timeline") or not document.get("output"):
            return "Body must include timeline and output"
        return None

    def parse_handle(self, body):
        # { "success": true, "response": { "message": "...", "id": "..." } }
        if isinstance(body, dict):
            response = body.get("response")
            if isinstance(response, dict) and response.get("id"):
                return str(response["id"])
        return super().parse_handle(body)

    def _status_payload(self, body):
        payload = super()._status_payload(body)
        # Status responses wrap the render in "response"; webhook callbacks don't
        response = payload.get("response")
        if isinstance(response, dict):
            return response
        return payload


class CreatomateProvider(RenderProvider):
    """Creatomate REST API (https://creatomate.com/docs/api/)."""

    name = "creatomate"
    status_map = {
        "planned": JobStatus.QUEUED,
        "waiting": JobStatus.QUEUED,
        "transcribing": JobStatus.PROCESSING,
        "rendering": JobStatus.PROCESSING,
        "succeeded": JobStatus.DONE,
        "failed": JobStatus.FAILED,
    }

    @property
    def api_base(self) -> str:
        return self.config.creatomate_api_base

    def headers(self) -> dict[str, str]:
        headers = super().headers()
        headers["Authorization"] = f"Bearer {self.config.creatomate_api_key}"
        return headers

    def missing_credential(self):
        return None if self.config.creatomate_api_key else "CREATOMATE_API_KEY"

    def submit_url(self) -> str:
        return f"{self.api_base}/renders"

    def status_url(self, handle: str) -> str:
        return f"{self.api_base}/renders/{handle}"

    def submit_payload(self, document, callback_url=None):
        if "source" in document:
            payload = {
                "source": document["source"],
                "output_format": document.get("output_format")
                or document.get("outputFormat")
                or self.config.output_format,
            }
            webhook_url = callback_url or document.get("webhook_url") or document.get("webhookUrl")
        else:
            payload = {"source": dict(document), "output_format": self.config.output_format}
            webhook_url = callback_url
        if webhook_url:
            payload["webhook_url"] = webhook_url
        return payload

    def validate_document(self, document):
        if not document.get("source"):
            return 'Missing "source"'
        return None

    def parse_handle(self, body):
        # POST /renders answers with one render object per output
        if isinstance(body, list):
            body = body[0] if body else None
        return super().parse_handle(body)

    def _payload_error(self, payload):
        return payload.get("error_message") or super()._payload_error(payload)


class ProxyProvider(RenderProvider):
    """This repository's own render proxy; speaks the normalized format."""

    name = "proxy"
    status_map = {
        JobStatus.QUEUED.value: JobStatus.QUEUED,
        JobStatus.PROCESSING.value: JobStatus.PROCESSING,
        JobStatus.DONE.value: JobStatus.DONE,
        JobStatus.FAILED.value: JobStatus.FAILED,
    }

    @property
    def api_base(self) -> str:
        return self.config.proxy_url.rstrip("/")

    def status_url(self, handle: str) -> str:
        return f"{self.api_base}/render-status"

    def status_params(self, handle: str) -> Optional[dict[str, str]]:
        return {"id": handle}


PROVIDERS: dict[str, type[RenderProvider]] = {
    ShotstackProvider.name: ShotstackProvider,
    CreatomateProvider.name: CreatomateProvider,
    ProxyProvider.name: ProxyProvider,
}


def get_provider(config: RenderConfig, name: Optional[str] = None) -> RenderProvider:
    """Build the adapter for the configured (or explicitly named) provider."""
    name = (name or config.provider).lower()
    provider_cls = PROVIDERS.get(name)
    if provider_cls is None:
        raise InvalidInput(f"Unknown render provider: {name}")
    return provider_cls(config)

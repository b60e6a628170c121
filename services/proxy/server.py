"""
Render Proxy HTTP + SSE Server

FastAPI app that keeps the render provider credential server-side:
- POST /render - Queue a render, returns {id}
- GET|POST /render-status - Check a render once
- GET /renders/{render_id}/events - SSE stream of status updates until done
- POST /webhooks/render - Provider completion callback, updates the project
- GET /health - Health check

Usage:
    python main.py server
    python -m uvicorn services.proxy.server:create_app --factory --port 8765
"""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import urlencode

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from core.circuit_breaker import get_render_api_breaker
from core.config import Config
from services.projects.store import InMemoryProjectStore, PostgresProjectStore, ProjectStore
from services.rendering import (
    InvalidInput,
    JobStatus,
    ProviderNotConfigured,
    RenderClient,
    RenderError,
    RenderJobTracker,
    StatusCheckFailed,
    StatusCheckRejected,
    StatusParseError,
    SubmissionFailed,
    SubmissionRejected,
    get_provider,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "Render Proxy"
VERSION = "1.0.0"


class RenderAccepted(BaseModel):
    """Response from the render endpoint."""
    id: str


class StatusRequest(BaseModel):
    """Body of POST /render-status."""
    id: Optional[str] = None


class StatusResponse(BaseModel):
    """Current state of a render job."""
    id: str
    status: str
    provider_status: Optional[str] = None
    url: Optional[str] = None
    error: Optional[str] = None
    timestamp: Optional[str] = None


class WebhookResult(BaseModel):
    success: bool
    status: str
    updated: bool = False


def http_status_for(error: RenderError) -> int:
    """Map a render error onto the status code we answer with."""
    if isinstance(error, InvalidInput):
        return 400
    if isinstance(error, ProviderNotConfigured):
        return 500
    if isinstance(error, (SubmissionRejected, StatusCheckRejected)):
        code = error.status_code
        return code if 400 <= code < 600 else 502
    if isinstance(error, StatusCheckFailed):
        return 503
    if isinstance(error, (SubmissionFailed, StatusParseError)):
        return 502
    return 500


def _format_sse(data: dict) -> str:
    """Format data as SSE event."""
    return f"data: {json.dumps(data)}\n\n"


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"message": message})


def create_app(
    config: Optional[Config] = None,
    render_client: Optional[RenderClient] = None,
    store: Optional[ProjectStore] = None,
) -> FastAPI:
    """
    Build the proxy app.

    Args:
        config: Service configuration (read from the environment if omitted)
        render_client: Client for the configured provider (built if omitted)
        store: Project store (Postgres when DATABASE_URL is set, else in-memory)
    """
    config = config or Config.from_env()
    owns_client = render_client is None

    if render_client is None:
        render_client = RenderClient(
            config.render,
            breaker=get_render_api_breaker(config.render.provider),
        )
    if store is None and not config.database.url:
        logger.info("DATABASE_URL not set, using in-memory project store")
        store = InMemoryProjectStore()
    owns_store = store is None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {SERVICE_NAME} for provider '{render_client.provider_name}'")
        for issue in config.validate():
            logger.warning(f"Config: {issue}")

        if app.state.store is None:
            app.state.store = await PostgresProjectStore.connect(
                config.database.url,
                min_size=config.database.pool_min_size,
                max_size=config.database.pool_max_size,
            )

        yield

        logger.info(f"Shutting down {SERVICE_NAME}...")
        if owns_client:
            await render_client.close()
        if owns_store and app.state.store is not None:
            await app.state.store.close()

    app = FastAPI(
        title="Render Proxy API",
        description="Credentialed render submission, status and progress streaming",
        version=VERSION,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.render_client = render_client
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
    )

    @app.exception_handler(RenderError)
    async def render_error_handler(request: Request, exc: RenderError):
        status_code = http_status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _error_response(status_code, exc.message)

    @app.get("/")
    async def root():
        """Root endpoint with API info."""
        return {
            "service": SERVICE_NAME,
            "version": VERSION,
            "provider": render_client.provider_name,
            "endpoints": {
                "POST /render": "Queue a render",
                "GET /render-status?id=": "Render status",
                "POST /render-status": "Render status ({id} body)",
                "GET /renders/{id}/events": "SSE status stream",
                "POST /webhooks/render?projectId=": "Provider completion callback",
                "GET /health": "Health check",
            },
        }

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        breaker = render_client.breaker
        return {
            "status": "healthy",
            "provider": render_client.provider_name,
            "breaker": breaker.get_status() if breaker else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.post("/render", status_code=202, response_model=RenderAccepted)
    async def render(request: Request, projectId: Optional[str] = Query(None)):
        """
        Queue a render with the configured provider.

        The request body is the provider's composition document. With
        ``projectId`` the provider is asked to call back on completion.
        """
        try:
            document = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            document = None

        if not isinstance(document, dict) or not document:
            raise InvalidInput("Request body must be a JSON composition document")

        reason = render_client.provider.validate_document(document)
        if reason:
            raise InvalidInput(reason)

        callback_url = None
        if projectId:
            if not config.server.public_url:
                return _error_response(500, "PUBLIC_URL is not configured; cannot register render webhook")
            query = urlencode({"projectId": projectId, "provider": render_client.provider_name})
            callback_url = f"{config.server.public_url.rstrip('/')}/webhooks/render?{query}"

        handle = await render_client.submit_render(document, callback_url=callback_url)
        return RenderAccepted(id=handle)

    async def _status(render_id: Optional[str]) -> dict[str, Any]:
        if not render_id:
            raise InvalidInput("No render ID provided")
        status = await render_client.fetch_status(render_id)
        return status.to_dict()

    @app.get("/render-status", response_model=StatusResponse, response_model_exclude_none=True)
    async def render_status(id: Optional[str] = Query(None)):
        """Check a render by ?id= query."""
        return await _status(id)

    @app.post("/render-status", response_model=StatusResponse, response_model_exclude_none=True)
    async def render_status_post(payload: StatusRequest):
        """Check a render by {"id": ...} body."""
        return await _status(payload.id)

    @app.get("/renders/{render_id}/events")
    async def render_events(
        render_id: str,
        interval_ms: Optional[int] = Query(None, ge=0),
        max_attempts: Optional[int] = Query(None, gt=0),
        timeout_seconds: Optional[float] = Query(None, gt=0),
    ):
        """
        SSE stream of status observations for one render.

        Each event is the JSON status; the stream ends after a terminal
        status (done, failed, timeout) or an error event.

        Usage:
            curl -N http://localhost:8765/renders/abc123/events
        """
        interval = config.render.poll_interval_ms if interval_ms is None else interval_ms
        if max_attempts is None and timeout_seconds is None:
            max_attempts = config.render.max_attempts or None
            timeout_seconds = config.render.timeout_seconds or None

        # One tracker per stream; loops never share terminal caches
        tracker = RenderJobTracker(client=render_client)

        async def event_stream():
            yield _format_sse({
                "type": "connected",
                "id": render_id,
                "message": f"Tracking render {render_id}",
                "timestamp": datetime.now(timezone.utc).isoformat(),
            })
            try:
                async for update in tracker.track(
                    render_id,
                    interval,
                    max_attempts=max_attempts,
                    timeout_seconds=timeout_seconds,
                ):
                    yield _format_sse({"type": "status", **update.to_dict()})
            except RenderError as e:
                logger.error(f"Render stream for {render_id} ended with error: {e}")
                yield _format_sse({
                    "type": "error",
                    "id": render_id,
                    "status": "error",
                    "error": e.message,
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                })

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    @app.post("/webhooks/render", response_model=WebhookResult)
    async def render_webhook(
        request: Request,
        projectId: Optional[str] = Query(None),
        provider: Optional[str] = Query(None),
    ):
        """Provider completion callback; marks the project rendered or failed."""
        if not projectId:
            raise InvalidInput("Project ID is missing from the callback URL")

        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise InvalidInput("Callback body must be JSON")

        adapter = get_provider(config.render, provider or render_client.provider_name)
        if isinstance(payload, list):
            payload = payload[0] if payload else {}
        handle = str(payload.get("id", "")) if isinstance(payload, dict) else ""
        try:
            status = adapter.parse_status(handle, payload)
        except StatusParseError as e:
            raise InvalidInput(e.message) from e

        project_store = app.state.store
        updated = False
        if status.status == JobStatus.DONE:
            updated = await project_store.mark_rendered(projectId, status.url)
        elif status.status == JobStatus.FAILED:
            updated = await project_store.mark_failed(projectId, status.error or "Unknown render error")
        else:
            logger.info(f"Ignoring {status.status.value} callback for project {projectId}")

        return WebhookResult(success=True, status=status.status.value, updated=updated)

    return app

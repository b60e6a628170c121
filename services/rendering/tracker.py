"""
Render Job Tracker

Drives the submit-then-poll workflow against a render provider:

    tracker = RenderJobTracker(config.render)
    handle = await tracker.submit(edit)
    async for update in tracker.track(handle, 3000, max_attempts=100):
        print(update.status.value, update.url or "")

Each handle gets its own poll loop. Loops for different handles share
nothing but the HTTP connection pool, so any number can run concurrently in
one event loop. Abandoning a loop does not cancel the render at the
provider.
"""

import asyncio
import json
import logging
import time
from dataclasses import replace
from typing import Any, AsyncIterator, Mapping, Optional, Union

from core.config import RenderConfig

from .client import RenderClient
from .errors import InvalidInput, StatusCheckFailed, StatusParseError
from .models import JobStatus, RenderStatus

logger = logging.getLogger(__name__)

CompositionDocument = Union[Mapping[str, Any], str]


def _coerce_document(document: Optional[CompositionDocument]) -> Mapping[str, Any]:
    """Presence check only; the document itself stays opaque."""
    if document is None:
        raise InvalidInput("Composition document is required")

    if isinstance(document, str):
        if not document.strip():
            raise InvalidInput("Composition document is empty")
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise InvalidInput(f"Composition document is not valid JSON: {e}") from e

    if not isinstance(document, Mapping):
        raise InvalidInput(
            f"Composition document must be a JSON object, got {type(document).__name__}"
        )
    if not document:
        raise InvalidInput("Composition document is empty")
    return document


class RenderJobTracker:
    """
    Submits render jobs and follows them to a terminal state.

    Terminal observations are remembered per handle, so polling a finished
    job again returns the same result without another request.
    """

    def __init__(
        self,
        config: Optional[RenderConfig] = None,
        client: Optional[RenderClient] = None,
    ):
        if client is None:
            if config is None:
                raise InvalidInput("RenderJobTracker needs a RenderConfig or a RenderClient")
            client = RenderClient(config)
        self.client = client
        self.config = config or client.config
        self._terminal: dict[str, RenderStatus] = {}

    async def close(self):
        await self.client.close()

    async def __aenter__(self) -> "RenderJobTracker":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    async def submit(
        self,
        composition_document: Optional[CompositionDocument],
        callback_url: Optional[str] = None,
    ) -> str:
        """
        Submit a composition for rendering.

        Returns:
            The job handle

        Raises:
            InvalidInput: Missing or empty document (no request is made)
            SubmissionFailed: Network failure or timeout
            SubmissionRejected: Provider answered with an error
        """
        document = _coerce_document(composition_document)
        return await self.client.submit_render(document, callback_url=callback_url)

    async def poll(self, handle: str) -> RenderStatus:
        """
        Check a job once.

        Raises:
            InvalidInput: Empty handle
            StatusCheckFailed: Transient; poll again later
            StatusCheckRejected: Provider refused the check
            StatusParseError: Malformed status response
        """
        if not handle or not str(handle).strip():
            raise InvalidInput("Job handle is required")

        cached = self._terminal.get(handle)
        if cached is not None:
            return cached

        status = await self.client.fetch_status(handle)
        if status.is_terminal:
            self._terminal[handle] = status
            logger.info(f"Render {handle} finished: {status.status.value}")
        return status

    async def track(
        self,
        handle: str,
        poll_interval_ms: int,
        *,
        max_attempts: Optional[int] = None,
        timeout_seconds: Optional[float] = None,
        abort_on_parse_error: bool = True,
    ) -> AsyncIterator[RenderStatus]:
        """
        Poll until the job reaches a terminal state, yielding every observation.

        Args:
            handle: Job handle from submit()
            poll_interval_ms: Delay between polls
            max_attempts: Poll budget (transient failures count)
            timeout_seconds: Wall-clock budget from the first poll
            abort_on_parse_error: Raise StatusParseError instead of yielding
                a check_failed element

        Yields:
            RenderStatus per poll; the last one is done, failed or timeout
        """
        if not handle or not str(handle).strip():
            raise InvalidInput("Job handle is required")
        if poll_interval_ms is None or poll_interval_ms < 0:
            raise InvalidInput("poll_interval_ms must be zero or positive")
        if max_attempts is None and timeout_seconds is None:
            raise InvalidInput("track() needs max_attempts or timeout_seconds")
        if max_attempts is not None and max_attempts <= 0:
            raise InvalidInput("max_attempts must be positive")
        if timeout_seconds is not None and timeout_seconds <= 0:
            raise InvalidInput("timeout_seconds must be positive")

        deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None
        interval = poll_interval_ms / 1000.0
        attempt = 0

        while True:
            attempt += 1
            try:
                update = await self.poll(handle)
            except StatusCheckFailed as e:
                update = self._check_failed(handle, str(e), attempt)
            except StatusParseError as e:
                if abort_on_parse_error:
                    raise
                update = self._check_failed(handle, str(e), attempt)
            else:
                update = replace(update, attempt=attempt)

            yield update

            if update.is_terminal:
                return

            if max_attempts is not None and attempt >= max_attempts:
                yield self._timed_out(handle, f"No terminal status after {attempt} attempts", attempt)
                return

            # Stop if the next poll would land past the deadline
            if deadline is not None and time.monotonic() + interval >= deadline:
                yield self._timed_out(
                    handle, f"No terminal status within {timeout_seconds:g} seconds", attempt
                )
                return

            await asyncio.sleep(interval)

    async def submit_and_track(
        self,
        composition_document: Optional[CompositionDocument],
        poll_interval_ms: int,
        **track_kwargs,
    ) -> AsyncIterator[RenderStatus]:
        """Submit, then yield every observation of the new job."""
        handle = await self.submit(composition_document)
        async for update in self.track(handle, poll_interval_ms, **track_kwargs):
            yield update

    async def wait_for_result(
        self,
        handle: str,
        poll_interval_ms: Optional[int] = None,
        **track_kwargs,
    ) -> RenderStatus:
        """Drain track() and return the terminal observation."""
        if poll_interval_ms is None:
            poll_interval_ms = self.config.poll_interval_ms
        if "max_attempts" not in track_kwargs and "timeout_seconds" not in track_kwargs:
            track_kwargs["max_attempts"] = self.config.max_attempts or None
            track_kwargs["timeout_seconds"] = self.config.timeout_seconds or None

        last = None
        async for update in self.track(handle, poll_interval_ms, **track_kwargs):
            last = update
        return last

    def _check_failed(self, handle: str, message: str, attempt: int) -> RenderStatus:
        logger.warning(f"Status check {attempt} for {handle} failed, will retry: {message}")
        return RenderStatus(
            handle=handle,
            status=JobStatus.CHECK_FAILED,
            error=message,
            attempt=attempt,
        )

    def _timed_out(self, handle: str, message: str, attempt: int) -> RenderStatus:
        logger.warning(f"Stopped tracking {handle}: {message}")
        return RenderStatus(
            handle=handle,
            status=JobStatus.TIMEOUT,
            error=message,
            attempt=attempt,
        )

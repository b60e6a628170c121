"""
Render Tracker Services

- rendering: Provider adapters, render client and job tracker
- proxy: FastAPI render proxy with SSE progress streaming
- projects: Render outcome persistence for webhook callbacks
"""

from .rendering import JobStatus, RenderClient, RenderJobTracker, RenderStatus

__all__ = [
    "JobStatus",
    "RenderClient",
    "RenderJobTracker",
    "RenderStatus",
]

"""
Rendering Services

Render job submission and tracking against Shotstack, Creatomate or the
render proxy.
"""

from .client import RenderClient
from .errors import (
    InvalidInput,
    ProviderNotConfigured,
    RenderError,
    StatusCheckFailed,
    StatusCheckRejected,
    StatusParseError,
    SubmissionFailed,
    SubmissionRejected,
)
from .models import JobStatus, RenderStatus
from .providers import (
    CreatomateProvider,
    ProxyProvider,
    RenderProvider,
    ShotstackProvider,
    get_provider,
)
from .tracker import RenderJobTracker

__all__ = [
    "RenderClient",
    "RenderJobTracker",
    "JobStatus",
    "RenderStatus",
    "RenderProvider",
    "ShotstackProvider",
    "CreatomateProvider",
    "ProxyProvider",
    "get_provider",
    "RenderError",
    "InvalidInput",
    "ProviderNotConfigured",
    "SubmissionFailed",
    "SubmissionRejected",
    "StatusCheckFailed",
    "StatusCheckRejected",
    "StatusParseError",
]

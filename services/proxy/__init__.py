"""
Render Proxy Service

HTTP front for the render workflow; the provider credential stays here.
"""

from .server import create_app, http_status_for

__all__ = ["create_app", "http_status_for"]

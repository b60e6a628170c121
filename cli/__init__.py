"""
Render CLI Tools

Command-line tools for following render jobs.

Tools:
- progress_monitor: Follow a render through the proxy's SSE stream
"""

from .progress_monitor import ProgressMonitor, format_update

__all__ = ["ProgressMonitor", "format_update"]

"""
Render Tracker Core Components

- Configuration loaded from the environment
- Circuit breaker for render API resilience
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerOpen, CircuitState
from .config import Config, DatabaseConfig, RenderConfig, ServerConfig

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpen",
    "CircuitState",
    "Config",
    "DatabaseConfig",
    "RenderConfig",
    "ServerConfig",
]

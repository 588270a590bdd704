"""
Creative Video Studio Core Components

Provides foundational infrastructure for the video generation layer:
- Circuit breaker for provider API resilience
- Configuration and provider credentials
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerOpen, CircuitState
from .config import Config, Credentials, get_config

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOpen",
    "CircuitState",
    "Config",
    "Credentials",
    "get_config",
]

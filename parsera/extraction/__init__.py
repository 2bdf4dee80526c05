"""
Extraction Package

Request-resilience engine for the Parsera API: rate limiting, cancellable
deadlines, exponential-backoff retries and lifecycle events.
"""

from .deadline import CancellationToken, run_with_deadline
from .events import (
    CustomEventType,
    EventBus,
    EventOptions,
    EventType,
    ParseraEvent,
    resolve_event_type
)
from .models import (
    Attribute,
    ClientConfiguration,
    Cookie,
    ExtractionRequest,
    ExtractionResponse,
    RequestBody,
    RetryPolicy
)
from .rate_limiter import RateLimiter
from .retry_handler import RetryHandler
from .validation import ExtractionInput, fetch_proxy_countries, validate_input
from .client import Parsera

__all__ = [
    "Parsera",
    "CancellationToken",
    "run_with_deadline",
    "CustomEventType",
    "EventBus",
    "EventOptions",
    "EventType",
    "ParseraEvent",
    "resolve_event_type",
    "Attribute",
    "ClientConfiguration",
    "Cookie",
    "ExtractionRequest",
    "ExtractionResponse",
    "RequestBody",
    "RetryPolicy",
    "RateLimiter",
    "RetryHandler",
    "ExtractionInput",
    "fetch_proxy_countries",
    "validate_input"
]

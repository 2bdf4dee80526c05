"""
Parsera - extract structured data from any web page
"""

from parsera.core.exceptions import (
    BadRequestException,
    CancelledException,
    HandlerException,
    InvalidConfigurationException,
    InvalidInputException,
    NetworkException,
    NoDataException,
    ParseraException,
    RateLimitException,
    RequestTimeoutException,
    ServerException,
    UnauthorizedException
)
from parsera.core.logging import setup_logging
from parsera.extraction import (
    Attribute,
    CancellationToken,
    Cookie,
    CustomEventType,
    EventOptions,
    EventType,
    Parsera,
    ParseraEvent,
    RetryPolicy
)

__version__ = "1.0.1"

__all__ = [
    "Parsera",
    "Attribute",
    "CancellationToken",
    "Cookie",
    "CustomEventType",
    "EventOptions",
    "EventType",
    "ParseraEvent",
    "RetryPolicy",
    "setup_logging",
    "ParseraException",
    "BadRequestException",
    "CancelledException",
    "HandlerException",
    "InvalidConfigurationException",
    "InvalidInputException",
    "NetworkException",
    "NoDataException",
    "RateLimitException",
    "RequestTimeoutException",
    "ServerException",
    "UnauthorizedException"
]

"""
Event Bus - in-process publish/subscribe for extraction lifecycle events
"""

import asyncio
import inspect
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from parsera.core.exceptions import HandlerException

logger = structlog.get_logger(__name__)


class EventType(str, Enum):
    """Well-known lifecycle events"""
    REQUEST_START = "request:start"
    REQUEST_END = "request:end"
    REQUEST_RETRY = "request:retry"
    REQUEST_ERROR = "request:error"
    EXTRACT_START = "extract:start"
    EXTRACT_COMPLETE = "extract:complete"
    EXTRACT_ERROR = "extract:error"
    RATE_LIMIT = "rateLimit"
    TIMEOUT = "timeout"
    HANDLER_ERROR = "handler:error"


class CustomEventType(BaseModel):
    """Caller-defined event type"""
    name: str = Field(min_length=1)

    class Config:
        frozen = True

    @field_validator("name")
    @classmethod
    def reject_well_known(cls, value: str) -> str:
        if value in {member.value for member in EventType}:
            raise ValueError(f"'{value}' is a well-known event type, use EventType")
        return value

    @property
    def value(self) -> str:
        return self.name


EventKey = Union[EventType, CustomEventType]


def resolve_event_type(event_type: Union[EventKey, str]) -> EventKey:
    """Map a plain string onto the well-known set, or a custom type"""
    if isinstance(event_type, (EventType, CustomEventType)):
        return event_type
    try:
        return EventType(event_type)
    except ValueError:
        pass
    try:
        return CustomEventType(name=event_type)
    except ValidationError as e:
        raise ValueError(f"Invalid event type: {event_type!r}") from e


class ParseraEvent(BaseModel):
    """Envelope delivered to subscribers"""
    type: EventKey
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Any = None
    error: Optional[BaseException] = None
    retry_count: Optional[int] = None

    class Config:
        frozen = True
        arbitrary_types_allowed = True


class EventOptions(BaseModel):
    """Delivery options for one event type"""
    run_async: bool = False  # fire-and-forget, the emitter does not wait
    catch_errors: bool = True  # re-publish handler failures as handler:error

    class Config:
        frozen = True


EventHandler = Callable[[ParseraEvent], Union[None, Awaitable[None]]]

DEFAULT_OPTIONS = EventOptions()


class EventBus:
    """Registry of handlers keyed by event type"""

    def __init__(self):
        # dict keys keep registration order and act as an ordered set
        self._handlers: Dict[EventKey, Dict[EventHandler, None]] = {}
        self._options: Dict[EventKey, EventOptions] = {}
        self._background_tasks: Set[asyncio.Task] = set()

    def subscribe(
        self,
        event_type: Union[EventKey, str],
        handler: EventHandler,
        options: Optional[Union[EventOptions, Dict[str, Any]]] = None
    ):
        """Register a handler; the options apply to every handler of the type"""
        key = resolve_event_type(event_type)
        if isinstance(options, dict):
            options = EventOptions(**options)
        self._handlers.setdefault(key, {})[handler] = None
        self._options[key] = options or DEFAULT_OPTIONS

    def unsubscribe(self, event_type: Union[EventKey, str], handler: EventHandler):
        handlers = self._handlers.get(resolve_event_type(event_type))
        if handlers:
            handlers.pop(handler, None)

    def clear(self, event_type: Optional[Union[EventKey, str]] = None):
        if event_type is None:
            self._handlers.clear()
            self._options.clear()
            return
        key = resolve_event_type(event_type)
        self._handlers.pop(key, None)
        self._options.pop(key, None)

    def handler_count(self, event_type: Union[EventKey, str]) -> int:
        return len(self._handlers.get(resolve_event_type(event_type), {}))

    def options_for(self, event_type: Union[EventKey, str]) -> EventOptions:
        return self._options.get(resolve_event_type(event_type), DEFAULT_OPTIONS)

    async def emit(
        self,
        event_type: Union[EventKey, str],
        data: Any = None,
        error: Optional[BaseException] = None,
        retry_count: Optional[int] = None
    ):
        """
        Deliver a fresh envelope to every handler of the type

        Awaited handlers run one after another in registration order. A failing
        handler is re-published as handler:error unless catch_errors is off for
        the type, in which case the failure propagates to the emitter.
        """
        key = resolve_event_type(event_type)
        handlers = self._handlers.get(key)
        if not handlers:
            return

        event = ParseraEvent(type=key, data=data, error=error, retry_count=retry_count)
        options = self.options_for(key)

        if options.run_async:
            for handler in list(handlers):
                task = asyncio.ensure_future(self._run_detached(handler, event, options))
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)
            return

        for handler in list(handlers):
            try:
                await _invoke(handler, event)
            except Exception as e:
                if not options.catch_errors:
                    raise
                await self._report_handler_error(event, e)

    async def drain(self):
        """Wait for outstanding fire-and-forget handlers"""
        while self._background_tasks:
            await asyncio.wait(set(self._background_tasks))

    async def _run_detached(self, handler: EventHandler, event: ParseraEvent, options: EventOptions):
        try:
            await _invoke(handler, event)
        except Exception as e:
            if options.catch_errors:
                try:
                    await self._report_handler_error(event, e)
                except Exception as report_error:
                    logger.warning("Background handler error report failed",
                                   event_type=event.type.value,
                                   error=str(report_error))
            else:
                logger.warning("Background event handler failed",
                               event_type=event.type.value,
                               error=str(e))

    async def _report_handler_error(self, event: ParseraEvent, error: Exception):
        if event.type == EventType.HANDLER_ERROR:
            logger.error("handler:error handler failed",
                         error=str(error),
                         error_type=type(error).__name__)
            return

        handler_error = HandlerException(
            f"Handler for '{event.type.value}' failed: {error}",
            details={"event_type": event.type.value, "error_type": type(error).__name__}
        )
        handler_error.__cause__ = error
        logger.warning("Event handler failed",
                       event_type=event.type.value,
                       error=str(error))
        await self.emit(EventType.HANDLER_ERROR, error=handler_error)


async def _invoke(handler: EventHandler, event: ParseraEvent):
    result = handler(event)
    if inspect.isawaitable(result):
        await result

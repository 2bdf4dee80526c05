import asyncio
from datetime import timezone

import pytest
from pydantic import ValidationError

from parsera.core.exceptions import HandlerException
from parsera.extraction.events import (
    CustomEventType,
    EventBus,
    EventOptions,
    EventType,
    ParseraEvent,
    resolve_event_type,
)


class TestEventTypes:
    """Well-known and custom event types"""

    def test_strings_resolve_to_well_known_members(self):
        assert resolve_event_type("extract:start") is EventType.EXTRACT_START
        assert resolve_event_type("rateLimit") is EventType.RATE_LIMIT

    def test_unknown_strings_resolve_to_custom_types(self):
        key = resolve_event_type("my:custom:event")
        assert key == CustomEventType(name="my:custom:event")
        assert key.value == "my:custom:event"

    def test_custom_type_cannot_shadow_well_known(self):
        with pytest.raises(ValidationError):
            CustomEventType(name="request:retry")

    def test_empty_name_is_rejected_with_clear_error(self):
        with pytest.raises(ValueError, match="Invalid event type: ''") as exc_info:
            EventBus().subscribe("", print)
        assert not isinstance(exc_info.value, ValidationError)

    def test_envelope_is_immutable(self):
        event = ParseraEvent(type=EventType.TIMEOUT, retry_count=2)
        assert event.timestamp.tzinfo == timezone.utc
        with pytest.raises(ValidationError):
            event.retry_count = 3


class TestEventBus:
    """Subscription and delivery"""

    @pytest.fixture
    def bus(self):
        return EventBus()

    @pytest.mark.asyncio
    async def test_emit_without_handlers_is_a_noop(self, bus):
        await bus.emit(EventType.EXTRACT_START, data={"url": "https://example.com"})

    @pytest.mark.asyncio
    async def test_handlers_run_sequentially_in_registration_order(self, bus):
        calls = []

        async def slow_handler(event):
            await asyncio.sleep(0.01)
            calls.append("slow")

        def fast_handler(event):
            calls.append("fast")

        bus.subscribe("extract:start", slow_handler)
        bus.subscribe("extract:start", fast_handler)
        await bus.emit("extract:start")

        assert calls == ["slow", "fast"]

    @pytest.mark.asyncio
    async def test_envelope_carries_payload(self, bus):
        received = []
        error = RuntimeError("boom")
        bus.subscribe(EventType.REQUEST_ERROR, received.append)

        await bus.emit(EventType.REQUEST_ERROR, data={"attempt": 1}, error=error, retry_count=1)

        assert len(received) == 1
        event = received[0]
        assert event.type is EventType.REQUEST_ERROR
        assert event.data == {"attempt": 1}
        assert event.error is error
        assert event.retry_count == 1

    @pytest.mark.asyncio
    async def test_custom_events(self, bus):
        received = []
        bus.subscribe("my:custom:event", received.append)

        await bus.emit(CustomEventType(name="my:custom:event"), data=42)

        assert [event.data for event in received] == [42]

    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, bus):
        received = []
        bus.subscribe("timeout", received.append)
        bus.unsubscribe("timeout", received.append)

        await bus.emit("timeout")

        assert received == []
        assert bus.handler_count("timeout") == 0

    def test_unsubscribe_and_clear_unknown_are_noops(self, bus):
        bus.unsubscribe("timeout", print)
        bus.clear("never:registered")
        bus.clear()

    @pytest.mark.asyncio
    async def test_clear_all_handlers(self, bus):
        received = []
        bus.subscribe("extract:start", received.append)
        bus.subscribe("extract:complete", received.append)

        bus.clear()
        await bus.emit("extract:start")
        await bus.emit("extract:complete")

        assert received == []

    @pytest.mark.asyncio
    async def test_clear_single_type_keeps_others(self, bus):
        received = []
        bus.subscribe("extract:start", received.append, {"catch_errors": False})
        bus.subscribe("extract:complete", received.append)

        bus.clear("extract:start")
        await bus.emit("extract:start")
        await bus.emit("extract:complete")

        assert [event.type for event in received] == [EventType.EXTRACT_COMPLETE]
        assert bus.options_for("extract:start") == EventOptions()

    @pytest.mark.asyncio
    async def test_latest_subscription_sets_options_for_type(self, bus):
        bus.subscribe("timeout", print, EventOptions(run_async=True))
        bus.subscribe("timeout", repr, {"catch_errors": False})

        assert bus.options_for("timeout") == EventOptions(run_async=False, catch_errors=False)


class TestHandlerErrors:
    """Isolation of failing handlers"""

    @pytest.fixture
    def bus(self):
        return EventBus()

    @pytest.mark.asyncio
    async def test_failure_is_republished_as_handler_error(self, bus):
        reported = []
        after = []

        def failing_handler(event):
            raise ValueError("handler broke")

        bus.subscribe("extract:start", failing_handler)
        bus.subscribe("extract:start", after.append)
        bus.subscribe("handler:error", reported.append)

        await bus.emit("extract:start")

        assert len(after) == 1
        assert len(reported) == 1
        error = reported[0].error
        assert isinstance(error, HandlerException)
        assert isinstance(error.__cause__, ValueError)
        assert error.details["event_type"] == "extract:start"

    @pytest.mark.asyncio
    async def test_failure_propagates_when_catching_disabled(self, bus):
        async def failing_handler(event):
            raise ValueError("handler broke")

        bus.subscribe("extract:start", failing_handler, {"catch_errors": False})

        with pytest.raises(ValueError, match="handler broke"):
            await bus.emit("extract:start")

    @pytest.mark.asyncio
    async def test_failing_handler_error_handler_does_not_recurse(self, bus):
        calls = []

        def failing_handler(event):
            calls.append(event.type)
            raise RuntimeError("again")

        bus.subscribe("extract:start", failing_handler)
        bus.subscribe("handler:error", failing_handler)

        await bus.emit("extract:start")

        assert calls == [EventType.EXTRACT_START, EventType.HANDLER_ERROR]


class TestFireAndForget:
    """Handlers registered with run_async"""

    @pytest.mark.asyncio
    async def test_emitter_does_not_wait(self):
        bus = EventBus()
        release = asyncio.Event()
        finished = []

        async def blocking_handler(event):
            await release.wait()
            finished.append(event)

        bus.subscribe("extract:complete", blocking_handler, {"run_async": True})
        await asyncio.wait_for(bus.emit("extract:complete"), timeout=1.0)

        assert finished == []
        release.set()
        await bus.drain()
        assert len(finished) == 1

    @pytest.mark.asyncio
    async def test_failures_are_swallowed(self):
        bus = EventBus()

        async def failing_handler(event):
            raise RuntimeError("background failure")

        bus.subscribe("timeout", failing_handler, {"run_async": True, "catch_errors": False})

        await bus.emit("timeout")
        await bus.drain()

    @pytest.mark.asyncio
    async def test_failures_still_reported_when_catching(self):
        bus = EventBus()
        reported = []

        def failing_handler(event):
            raise RuntimeError("background failure")

        bus.subscribe("timeout", failing_handler, {"run_async": True})
        bus.subscribe("handler:error", reported.append)

        await bus.emit("timeout")
        await bus.drain()

        assert len(reported) == 1
        assert isinstance(reported[0].error, HandlerException)

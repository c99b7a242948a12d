"""Tests for the in-process event bus.

Covers:
    - Delivery order across handlers and emissions
    - One-shot subscriptions and removal
    - Keyed topics (lifecycle names, dialog type and message)
    - Handler failures, sync and async, not reaching the emitter
"""

import asyncio
import logging

import pytest

from steerbrowser.browser.event_bus import EventBus
from steerbrowser.browser.events import EventKind, FrameEvent, Topic, dialog_topic

NAVIGATED = Topic(EventKind.FRAME_NAVIGATED)


class TestDelivery:
    """Tests for ordered, synchronous delivery."""

    def test_handlers_run_in_subscription_order(self):
        """Every handler sees the payload, in the order it subscribed."""
        bus = EventBus()
        seen = []
        bus.on(NAVIGATED, lambda event: seen.append(('first', event.frame_id)))
        bus.on(NAVIGATED, lambda event: seen.append(('second', event.frame_id)))

        delivered = bus.emit(NAVIGATED, FrameEvent(frame_id='F1'))

        assert delivered == 2
        assert seen == [('first', 'F1'), ('second', 'F1')]

    def test_emissions_delivered_in_emission_order(self):
        bus = EventBus()
        seen = []
        bus.on(NAVIGATED, lambda event: seen.append(event.frame_id))

        for frame_id in ('F1', 'F2', 'F3'):
            bus.emit(NAVIGATED, FrameEvent(frame_id=frame_id))

        assert seen == ['F1', 'F2', 'F3']

    def test_emit_without_subscribers_returns_zero(self):
        assert EventBus().emit(NAVIGATED, FrameEvent(frame_id='F1')) == 0

    def test_other_topics_not_delivered(self):
        bus = EventBus()
        seen = []
        bus.on(Topic(EventKind.FRAME_STARTED_LOADING), seen.append)

        bus.emit(NAVIGATED, FrameEvent(frame_id='F1'))

        assert seen == []


class TestSubscriptions:
    """Tests for once/off semantics."""

    def test_once_handler_runs_a_single_time(self):
        bus = EventBus()
        seen = []
        bus.once(NAVIGATED, seen.append)

        bus.emit(NAVIGATED, FrameEvent(frame_id='F1'))
        bus.emit(NAVIGATED, FrameEvent(frame_id='F2'))

        assert [event.frame_id for event in seen] == ['F1']
        assert bus.listener_count(NAVIGATED) == 0

    def test_once_handler_does_not_see_its_own_reemission(self):
        """A one-shot handler is removed before it runs."""
        bus = EventBus()
        calls = []

        def handler(event):
            calls.append(event.frame_id)
            bus.emit(NAVIGATED, FrameEvent(frame_id='nested'))

        bus.once(NAVIGATED, handler)
        bus.emit(NAVIGATED, FrameEvent(frame_id='outer'))

        assert calls == ['outer']

    def test_off_removes_handler(self):
        bus = EventBus()
        seen = []
        bus.on(NAVIGATED, seen.append)

        assert bus.off(NAVIGATED, seen.append) is True
        bus.emit(NAVIGATED, FrameEvent(frame_id='F1'))

        assert seen == []
        assert bus.off(NAVIGATED, seen.append) is False

    def test_off_matches_bound_methods(self):
        """Bound methods compare equal across attribute lookups."""

        class Listener:
            def __init__(self):
                self.events = []

            def on_FrameNavigated(self, event):
                self.events.append(event)

        bus = EventBus()
        listener = Listener()
        bus.on(NAVIGATED, listener.on_FrameNavigated)

        assert bus.off(NAVIGATED, listener.on_FrameNavigated) is True

    def test_clear_single_topic(self):
        bus = EventBus()
        other = Topic(EventKind.FRAME_STOPPED_LOADING)
        bus.on(NAVIGATED, lambda event: None)
        bus.on(other, lambda event: None)

        bus.clear(NAVIGATED)

        assert bus.listener_count(NAVIGATED) == 0
        assert bus.listener_count(other) == 1


class TestKeyedTopics:
    """Tests for topics carrying a key (lifecycle name, dialog identity)."""

    def test_lifecycle_topics_keyed_by_name(self):
        bus = EventBus()
        seen = []
        bus.on(Topic(EventKind.LIFECYCLE, 'networkIdle'), seen.append)

        bus.emit(Topic(EventKind.LIFECYCLE, 'load'), 'load')
        bus.emit(Topic(EventKind.LIFECYCLE, 'networkIdle'), 'idle')

        assert seen == ['idle']

    def test_dialog_topic_keyed_by_type_and_message(self):
        bus = EventBus()
        seen = []
        bus.once(dialog_topic('confirm', 'Leave page?'), seen.append)

        bus.emit(dialog_topic('alert', 'Leave page?'), 'wrong type')
        bus.emit(dialog_topic('confirm', 'Stay?'), 'wrong message')
        bus.emit(dialog_topic('confirm', 'Leave page?'), 'match')

        assert seen == ['match']

    def test_topic_str(self):
        assert str(Topic(EventKind.LIFECYCLE, 'load')) == f'{EventKind.LIFECYCLE.value}[load]'


class TestHandlerFailures:
    """Tests that handler errors are logged, never raised to the emitter."""

    def test_sync_handler_error_is_logged(self, caplog):
        bus = EventBus(name='TestBus')
        seen = []

        def broken(event):
            raise RuntimeError('boom')

        bus.on(NAVIGATED, broken)
        bus.on(NAVIGATED, seen.append)

        with caplog.at_level(logging.ERROR):
            delivered = bus.emit(NAVIGATED, FrameEvent(frame_id='F1'))

        assert delivered == 2
        assert len(seen) == 1
        assert 'boom' in caplog.text

    @pytest.mark.asyncio
    async def test_async_handler_scheduled_and_awaited(self, caplog):
        bus = EventBus(name='TestBus')
        seen = []

        async def handler(event):
            await asyncio.sleep(0)
            seen.append(event.frame_id)

        async def broken(event):
            raise ValueError('async boom')

        bus.on(NAVIGATED, handler)
        bus.on(NAVIGATED, broken)

        with caplog.at_level(logging.ERROR):
            bus.emit(NAVIGATED, FrameEvent(frame_id='F1'))
            await bus.wait_for_idle()

        assert seen == ['F1']
        assert 'async boom' in caplog.text

"""Navigation synchronizer.

Turns the browser's unordered frame, lifecycle and network events into one
awaitable "action settled" signal.

For every awaited action the synchronizer clears its frame markers, runs the
action, then waits until every marker created since the clear has resolved
and ``top.document.readyState`` reports ``complete``. Markers come in two
families:

    navigation markers: frame scheduled navigation -> cleared / navigated
    frame-load markers: frame started loading -> stopped loading

Example:
    >>> synchronizer = NavigationSynchronizer(session)
    >>> await synchronizer.await_action(lambda: session.commands.Page.reload())
    >>> await synchronizer.goto('https://example.com')
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from steerbrowser.browser.events import (
    EventKind,
    FrameEvent,
    RequestStartedEvent,
    ResponseReceivedEvent,
    SessionCreatedEvent,
    Topic,
)
from steerbrowser.browser.session import BrowserSession, SessionState
from steerbrowser.browser.url_utils import is_same_url, normalize_url
from steerbrowser.config import NavigationOptions
from steerbrowser.exceptions import NavigationFailedError, NavigationTimeoutError, WaitTimeoutError
from steerbrowser.utils import ms_to_seconds, wait_until

logger = logging.getLogger(__name__)

DOCUMENT_READY_EXPRESSION = "top.document.readyState === 'complete'"

# Documents loaded without a network request
NO_RESPONSE_SCHEMES = ('about:', 'data:')


class NavigationSynchronizer:
    """Waits for actions to settle, driven by session events.

    Args:
        session: The session whose events drive the markers. The synchronizer
            re-subscribes every time the session emits SESSION_CREATED.
    """

    def __init__(self, session: BrowserSession):
        self.session = session
        self._navigation_markers: dict[str, asyncio.Future] = {}
        self._frame_markers: dict[str, asyncio.Future] = {}
        self._pending: list[asyncio.Future] = []
        self._action_lock = asyncio.Lock()

        session.event_bus.on(Topic(EventKind.SESSION_CREATED), self._on_session_created)
        if session.state is SessionState.CONNECTED:
            self._wire()

    @property
    def config(self):
        return self.session.config

    @property
    def pending_markers(self) -> int:
        return sum(1 for marker in self._pending if not marker.done())

    def has_navigation_marker(self, frame_id: str) -> bool:
        return frame_id in self._navigation_markers

    def has_frame_marker(self, frame_id: str) -> bool:
        return frame_id in self._frame_markers

    def _on_session_created(self, event: SessionCreatedEvent) -> None:
        logger.debug(f'[NavigationSynchronizer] Re-wiring for target {event.target_id[:8]}')
        self.reset_markers()
        self._wire()

    def _wire(self) -> None:
        subscribe = self.session.subscribe
        subscribe(Topic(EventKind.FRAME_SCHEDULED_NAVIGATION), self.on_FrameScheduledNavigation)
        subscribe(Topic(EventKind.FRAME_CLEARED_NAVIGATION), self.on_FrameClearedNavigation)
        subscribe(Topic(EventKind.FRAME_NAVIGATED), self.on_FrameNavigated)
        subscribe(Topic(EventKind.FRAME_STARTED_LOADING), self.on_FrameStartedLoading)
        subscribe(Topic(EventKind.FRAME_STOPPED_LOADING), self.on_FrameStoppedLoading)

    def reset_markers(self) -> None:
        """Forget all markers. Outstanding ones are resolved so no waiter hangs on them."""
        for marker in self._pending:
            if not marker.done():
                marker.set_result(None)
        self._navigation_markers.clear()
        self._frame_markers.clear()
        self._pending.clear()

    # Marker protocol

    def on_FrameScheduledNavigation(self, event: FrameEvent) -> None:
        if self._create_marker(self._navigation_markers, event.frame_id):
            logger.debug(f'Frame navigation started: {event.frame_id}')

    def on_FrameClearedNavigation(self, event: FrameEvent) -> None:
        if self._resolve_marker(self._navigation_markers, event.frame_id):
            logger.debug(f'Frame navigation resolved: {event.frame_id}')

    def on_FrameNavigated(self, event: FrameEvent) -> None:
        if self._resolve_marker(self._navigation_markers, event.frame_id):
            logger.debug(f'Frame navigation resolved: {event.frame_id}')

    def on_FrameStartedLoading(self, event: FrameEvent) -> None:
        if self._create_marker(self._frame_markers, event.frame_id):
            logger.debug(f'Frame load started: {event.frame_id}')

    def on_FrameStoppedLoading(self, event: FrameEvent) -> None:
        if self._resolve_marker(self._frame_markers, event.frame_id):
            logger.debug(f'Frame load resolved: {event.frame_id}')

    def _create_marker(self, markers: dict[str, asyncio.Future], frame_id: str) -> bool:
        if frame_id in markers:
            return False
        marker = asyncio.get_running_loop().create_future()
        markers[frame_id] = marker
        self._pending.append(marker)
        return True

    def _resolve_marker(self, markers: dict[str, asyncio.Future], frame_id: str) -> bool:
        marker = markers.pop(frame_id, None)
        if marker is None:
            return False
        if not marker.done():
            marker.set_result(None)
        return True

    # Awaiting actions

    async def await_action(
        self,
        action: Callable[[], Awaitable[Any] | Any],
        options: NavigationOptions | None = None,
    ) -> Any:
        """Run ``action`` and wait for the navigation it may trigger to settle.

        Args:
            action: Callable performing the action. May be sync or async.
            options: Per-call overrides of ``wait_for_navigation`` and ``navigation_timeout``.

        Returns:
            Whatever ``action`` returned.

        Raises:
            NavigationTimeoutError: If the page did not settle within the navigation timeout.
        """
        resolved = (options or NavigationOptions()).resolve(self.config)
        if not resolved.wait_for_navigation:
            return await _call(action)

        async with self._action_lock:
            self.reset_markers()
            result = await _call(action)
            timeout_ms = resolved.navigation_timeout
            try:
                await asyncio.wait_for(self._settle(timeout_ms), timeout=ms_to_seconds(timeout_ms))
            except (asyncio.TimeoutError, WaitTimeoutError) as e:
                raise NavigationTimeoutError(timeout_ms) from e
            return result

    async def _settle(self, timeout_ms: int) -> None:
        while True:
            pending = [marker for marker in self._pending if not marker.done()]
            if not pending:
                break
            logger.debug(f'Waiting for {len(pending)} frame marker(s)')
            await asyncio.wait(pending)
        await wait_until(self.is_document_ready, interval=self.config.retry_interval, timeout=timeout_ms)

    async def is_document_ready(self) -> bool:
        result = await self.session.dispatch(
            'Runtime', 'evaluate', {'expression': DOCUMENT_READY_EXPRESSION, 'returnByValue': True}
        )
        return bool(result.get('result', {}).get('value'))

    # Top-level navigation

    async def goto(self, url: str, options: NavigationOptions | None = None) -> None:
        """Navigate the top-level frame to ``url`` and wait for it to settle."""
        await self.await_action(lambda: self.handle_navigation(url, options), options)

    async def handle_navigation(
        self, url: str, options: NavigationOptions | None = None
    ) -> ResponseReceivedEvent | None:
        """Navigate and wait for the matching network response.

        ``about:`` and ``data:`` URLs produce no response, so only the browser's
        own error report is checked for them and ``None`` is returned.

        Raises:
            NavigationFailedError: The browser reported an error, or the response status was >= 400.
            NavigationTimeoutError: No matching response arrived within the navigation timeout.
        """
        timeout_ms = (options or NavigationOptions()).resolve(self.config).navigation_timeout
        rewrites = self.config.url_rewrites
        url_to_navigate = normalize_url(url, rewrites)
        loop = asyncio.get_running_loop()
        response_future: asyncio.Future = loop.create_future()
        request_ids: list[str] = []

        def on_request(event: RequestStartedEvent) -> None:
            request_url = event.url + event.url_fragment if event.url_fragment else event.url
            if is_same_url(request_url, url_to_navigate, rewrites):
                request_ids.append(event.request_id)

        def on_response(event: ResponseReceivedEvent) -> None:
            if response_future.done():
                return
            if event.request_id is not None and event.request_id in request_ids:
                response_future.set_result(event)
            elif event.same_document and not request_ids:
                response_future.set_result(event)

        bus = self.session.event_bus
        request_topic = Topic(EventKind.REQUEST_STARTED)
        response_topic = Topic(EventKind.RESPONSE_RECEIVED)
        bus.on(request_topic, on_request)
        bus.on(response_topic, on_response)
        try:
            if options is not None and options.headers:
                await self.session.dispatch('Network', 'setExtraHTTPHeaders', {'headers': options.headers})
            result = await self.session.dispatch('Page', 'navigate', {'url': url})
            if result.get('errorText'):
                raise NavigationFailedError(url, reason=result['errorText'])
            if url.lower().startswith(NO_RESPONSE_SCHEMES):
                return None
            try:
                response = await asyncio.wait_for(response_future, timeout=ms_to_seconds(timeout_ms))
            except asyncio.TimeoutError as e:
                raise NavigationTimeoutError(timeout_ms) from e
            if response.status >= 400:
                raise NavigationFailedError(url, status=response.status, status_text=response.status_text)
            return response
        finally:
            bus.off(response_topic, on_response)
            bus.off(request_topic, on_request)
            if not response_future.done():
                response_future.cancel()


async def _call(action: Callable[[], Awaitable[Any] | Any]) -> Any:
    result = action()
    if inspect.isawaitable(result):
        result = await result
    return result

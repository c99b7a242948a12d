"""Protocol session manager.

BrowserSession owns the single live connection to a browser target. It:

- connects to a target and enables the command domains everything else relies on,
- dispatches commands, racing each one against a browser crash,
- translates raw protocol events into structured topics on the EventBus,
- watches an attached browser process and declares crashes,
- reconnects after a lost transport or a crash once the debug endpoint answers again,
- switches between targets (tabs) on request or when a new tab opens.

Example:
    >>> session = BrowserSession(host='127.0.0.1', port=9222)
    >>> await session.connect()
    >>> await session.commands.Page.navigate(params={'url': 'https://example.com'})
    >>> await session.close()
"""

import asyncio
import json
import logging
import re
from collections.abc import Callable
from enum import Enum
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from steerbrowser.browser.cdp import CDPConnection, CommandGroup, ProtocolCommands
from steerbrowser.browser.event_bus import EventBus, Handler
from steerbrowser.browser.events import (
    BrowserCrashedEvent,
    BrowserEvent,
    DialogKey,
    DialogOpeningEvent,
    EventKind,
    FrameEvent,
    LifecycleEvent,
    PageLoadEvent,
    ReconnectEvent,
    RequestStartedEvent,
    ResponseReceivedEvent,
    SessionCreatedEvent,
    TargetCreatedEvent,
    Topic,
)
from steerbrowser.browser.targets import TargetDirectory, TargetInfo, TargetPredicate, target_matcher
from steerbrowser.config import CONFIG, BrowserConfig
from steerbrowser.exceptions import (
    BrowserConnectionError,
    BrowserCrashError,
    BrowserError,
    ScriptExecutionError,
    TargetNotFoundError,
    TransportClosedError,
    UnsupportedOperationError,
    WaitTimeoutError,
)
from steerbrowser.utils import ms_to_seconds, wait_until

logger = logging.getLogger(__name__)

REQUIRED_DOMAINS = ('Network', 'Page', 'DOM', 'Runtime', 'Inspector')

_FRAME_EVENTS = {
    'Page.frameScheduledNavigation': EventKind.FRAME_SCHEDULED_NAVIGATION,
    'Page.frameRequestedNavigation': EventKind.FRAME_SCHEDULED_NAVIGATION,
    'Page.frameClearedScheduledNavigation': EventKind.FRAME_CLEARED_NAVIGATION,
    'Page.frameNavigated': EventKind.FRAME_NAVIGATED,
    'Page.frameStartedLoading': EventKind.FRAME_STARTED_LOADING,
    'Page.frameStoppedLoading': EventKind.FRAME_STOPPED_LOADING,
}


class SessionState(str, Enum):
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    CRASHED = 'crashed'


def translate_event(method: str, params: dict[str, Any]) -> list[tuple[Topic, BrowserEvent]]:
    """Map one raw protocol event to the bus topics it is published under."""
    kind = _FRAME_EVENTS.get(method)
    if kind is not None:
        if method == 'Page.frameNavigated':
            frame_id = params['frame']['id']
        else:
            frame_id = params['frameId']
        return [(Topic(kind), FrameEvent(frame_id=frame_id))]

    if method == 'Page.domContentEventFired':
        return [(Topic(EventKind.DOM_CONTENT_LOADED), PageLoadEvent(timestamp=params.get('timestamp')))]
    if method == 'Page.loadEventFired':
        return [(Topic(EventKind.LOAD_EVENT_FIRED), PageLoadEvent(timestamp=params.get('timestamp')))]
    if method == 'Page.navigatedWithinDocument':
        # Same-document navigations never produce a network response
        page_event = PageLoadEvent(frame_id=params.get('frameId'), url=params.get('url'))
        return [
            (Topic(EventKind.NAVIGATED_WITHIN_DOCUMENT), page_event),
            (Topic(EventKind.LOAD_EVENT_FIRED), page_event),
            (
                Topic(EventKind.RESPONSE_RECEIVED),
                ResponseReceivedEvent(url=params.get('url'), status=200, status_text='', same_document=True),
            ),
        ]
    if method == 'Page.lifecycleEvent':
        name = params['name']
        return [
            (
                Topic(EventKind.LIFECYCLE, name),
                LifecycleEvent(frame_id=params['frameId'], name=name, loader_id=params.get('loaderId')),
            )
        ]
    if method == 'Page.javascriptDialogOpening':
        event = DialogOpeningEvent(
            type=params['type'],
            message=params.get('message', ''),
            default_prompt=params.get('defaultPrompt'),
            url=params.get('url'),
        )
        return [(Topic(EventKind.DIALOG_OPENING, DialogKey(event.type, event.message)), event)]
    if method == 'Network.requestWillBeSent':
        request = params['request']
        return [
            (
                Topic(EventKind.REQUEST_STARTED),
                RequestStartedEvent(
                    request_id=params['requestId'],
                    url=request['url'],
                    url_fragment=request.get('urlFragment'),
                    frame_id=params.get('frameId'),
                ),
            )
        ]
    if method == 'Network.responseReceived':
        response = params['response']
        return [
            (
                Topic(EventKind.RESPONSE_RECEIVED),
                ResponseReceivedEvent(
                    request_id=params['requestId'],
                    url=response.get('url'),
                    status=response.get('status', 0),
                    status_text=response.get('statusText', ''),
                ),
            )
        ]
    if method == 'Target.targetCreated':
        info = params['targetInfo']
        return [
            (
                Topic(EventKind.TARGET_CREATED),
                TargetCreatedEvent(
                    target_id=info['targetId'],
                    type=info.get('type', ''),
                    url=info.get('url', ''),
                    title=info.get('title', ''),
                ),
            )
        ]
    return []


class ClientView:
    """Restricted view of a session handed to callers that need raw protocol access.

    Commands and protocol-event subscriptions are allowed; anything that would
    let a caller tamper with the session's own event wiring is not.
    """

    def __init__(self, session: 'BrowserSession'):
        self._session = session

    @property
    def commands(self) -> ProtocolCommands:
        return self._session.commands

    def __getattr__(self, domain: str) -> CommandGroup:
        try:
            return self._session.commands[domain]
        except KeyError:
            raise AttributeError(domain) from None

    def on(self, method: str, listener: Callable[[dict[str, Any]], Any]) -> None:
        self._session.add_protocol_listener(method, listener)

    def emit(self, *args, **kwargs):
        raise UnsupportedOperationError('emit')

    def off(self, *args, **kwargs):
        raise UnsupportedOperationError('off')

    def remove_listener(self, *args, **kwargs):
        raise UnsupportedOperationError('remove_listener')

    def remove_all_listeners(self, *args, **kwargs):
        raise UnsupportedOperationError('remove_all_listeners')

    def set_max_listeners(self, *args, **kwargs):
        raise UnsupportedOperationError('set_max_listeners')


class BrowserSession(BaseModel):
    """The single live connection to a browser target.

    State machine::

        Disconnected -> Connecting -> Connected -> {Crashed, Disconnected}
        Crashed / Disconnected -> Connecting (reconnect)

    Attributes:
        host: Debug endpoint host.
        port: Debug endpoint port.
        config: Timeouts and retry policy.
        event_bus: Bus that receives translated protocol events.
        connection_factory: Builds a transport from a websocket URL.
        directory: Target discovery client. Defaults to a TargetDirectory on host:port.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        extra='forbid',
        revalidate_instances='never',
    )

    host: str = Field(default_factory=lambda: CONFIG.HOST)
    port: int = Field(default_factory=lambda: CONFIG.PORT)
    config: BrowserConfig = Field(default_factory=BrowserConfig.from_env)
    event_bus: EventBus = Field(default_factory=lambda: EventBus(name='BrowserSession'))
    connection_factory: Callable[[str], Any] = CDPConnection
    directory: Any = None

    _state: SessionState = PrivateAttr(default=SessionState.DISCONNECTED)
    _connection: Any = PrivateAttr(default=None)
    _target: Optional[TargetInfo] = PrivateAttr(default=None)
    _commands: Optional[ProtocolCommands] = PrivateAttr(default=None)
    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)
    _process: Any = PrivateAttr(default=None)
    _process_watch: Optional[asyncio.Task] = PrivateAttr(default=None)
    _crash: Optional[BrowserCrashError] = PrivateAttr(default=None)
    _reconnect_task: Optional[asyncio.Task] = PrivateAttr(default=None)
    _scoped: list[tuple[Topic, Handler]] = PrivateAttr(default_factory=list)
    _protocol_listeners: list[tuple[str, Callable]] = PrivateAttr(default_factory=list)
    _known_targets: set[str] = PrivateAttr(default_factory=set)
    _background: set[asyncio.Task] = PrivateAttr(default_factory=set)
    _closing: bool = PrivateAttr(default=False)
    _logger: Optional[logging.Logger] = PrivateAttr(default=None)

    def model_post_init(self, __context) -> None:
        self._commands = ProtocolCommands(self.dispatch)
        if self.directory is None:
            self.directory = TargetDirectory(self.host, self.port)
        self.event_bus.on(Topic(EventKind.TARGET_CREATED), self._on_target_created)

    @property
    def logger(self) -> logging.Logger:
        if self._logger is None:
            self._logger = logging.getLogger('steerbrowser.browser_session')
        return self._logger

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def target(self) -> TargetInfo | None:
        return self._target

    @property
    def commands(self) -> ProtocolCommands:
        return self._commands

    @property
    def process(self) -> Any:
        return self._process

    @property
    def crash_error(self) -> BrowserCrashError | None:
        return self._crash

    @property
    def is_connected(self) -> bool:
        return self._state is SessionState.CONNECTED

    def client(self) -> ClientView:
        return ClientView(self)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, target: TargetInfo | None = None, max_retries: int | None = None) -> None:
        """Connect to ``target``, or to the first page target when none is given.

        Raises:
            BrowserConnectionError: If every attempt failed.
        """
        self._closing = False
        async with self._lock:
            await self._connect(target, max_retries)

    async def close(self) -> None:
        """Detach from the browser. The browser process itself is left running."""
        self._closing = True
        for task in (self._reconnect_task, self._process_watch):
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
        connection = self._connection
        self._unwire()
        if connection is not None and connection.is_open:
            await connection.close()
        self._set_state(SessionState.DISCONNECTED)

    def attach_process(self, process: Any) -> None:
        """Watch an already spawned browser process (``asyncio.subprocess.Process``-like)."""
        self._process = process
        if self._process_watch is not None and not self._process_watch.done():
            self._process_watch.cancel()
        self._process_watch = asyncio.get_running_loop().create_task(self._watch_process(process))

    async def _connect(self, target: TargetInfo | None, max_retries: int | None) -> None:
        retries = self.config.connect_retries if max_retries is None else max_retries
        if retries < 1:
            raise ValueError(f'max_retries must be at least 1, got {retries}')
        last_error: Exception | None = None
        for attempt in range(1, retries + 1):
            self._set_state(SessionState.CONNECTING)
            try:
                resolved = target if target is not None else await self._first_page_target()
                await self._open(resolved)
                return
            except (BrowserError, httpx.HTTPError, OSError) as e:
                last_error = e
                self.logger.debug(f'Connection attempt {attempt}/{retries} failed: {type(e).__name__}: {e}')
                self._drop_connection()
                if attempt < retries:
                    await asyncio.sleep(ms_to_seconds(self.config.connect_retry_delay))

        self._set_state(SessionState.CRASHED if self._crash is not None else SessionState.DISCONNECTED)
        raise BrowserConnectionError(
            f'Failed to connect to browser at {self.host}:{self.port} after {retries} attempts: {last_error}'
        ) from last_error

    async def _first_page_target(self) -> TargetInfo:
        targets = await self.directory.list_targets()
        self._known_targets.update(t.id for t in targets)
        pages = [t for t in targets if t.is_page and t.web_socket_debugger_url]
        if not pages:
            raise BrowserConnectionError(f'No page target found at {self.host}:{self.port}')
        return pages[0]

    async def _open(self, target: TargetInfo) -> None:
        reconnect = self._crash is not None or self._target is not None
        self._unwire()

        connection = self.connection_factory(target.web_socket_debugger_url)
        connection.add_listener(self._on_protocol_event)
        connection.add_close_listener(self._on_connection_closed)
        self._connection = connection
        self._target = target
        self._known_targets.add(target.id)
        await connection.start()

        for domain in REQUIRED_DOMAINS:
            await self.dispatch(domain, 'enable')
        await self.dispatch('Page', 'setLifecycleEventsEnabled', {'enabled': True})
        await self.dispatch('Target', 'setDiscoverTargets', {'discover': True})
        if self.config.ignore_ssl_errors:
            await self.dispatch('Security', 'setIgnoreCertificateErrors', {'ignore': True})

        self._crash = None
        self._set_state(SessionState.CONNECTED)
        self.logger.info(f'Connected to target {target.id[:8]} ({target.url or "about:blank"})')
        self.event_bus.emit(
            Topic(EventKind.SESSION_CREATED),
            SessionCreatedEvent(target_id=target.id, url=target.url, reconnect=reconnect),
        )

    def _unwire(self) -> None:
        """Remove everything bound to the current connection before re-wiring."""
        for topic, handler in self._scoped:
            self.event_bus.off(topic, handler)
        self._scoped.clear()
        self._protocol_listeners.clear()
        self._drop_connection()

    def _drop_connection(self) -> None:
        connection = self._connection
        if connection is None:
            return
        self._connection = None
        connection.clear_listeners()
        if connection.is_open:
            self._spawn(connection.close())

    def _set_state(self, state: SessionState) -> None:
        if state is not self._state:
            self.logger.debug(f'Session state {self._state.value} -> {state.value}')
            self._state = state

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, domain: str, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Issue ``domain.method`` on the current target.

        The call races a one-shot crash subscription; whichever settles first wins.

        Raises:
            BrowserCrashError: The browser crashed before or during the call.
            BrowserConnectionError: There is no connection, or it was lost.
            ProtocolError: The browser rejected the command.
        """
        if self._state is SessionState.CRASHED:
            raise self._crash or BrowserCrashError('Browser crashed')
        connection = self._connection
        if connection is None:
            raise BrowserConnectionError('Browser or page not initialized. Call connect() before using this API')

        crashed = asyncio.get_running_loop().create_future()

        def on_crash(event: BrowserCrashedEvent) -> None:
            if not crashed.done():
                crashed.set_exception(self._crash or BrowserCrashError(event.message))

        topic = Topic(EventKind.BROWSER_CRASHED)
        self.event_bus.once(topic, on_crash)
        call = asyncio.ensure_future(connection.send(f'{domain}.{method}', params))
        try:
            done, _ = await asyncio.wait({call, crashed}, return_when=asyncio.FIRST_COMPLETED)
            if crashed in done:
                call.cancel()
                return crashed.result()
            try:
                return call.result()
            except TransportClosedError as e:
                if self._process_exited():
                    raise self._process_crash_error() from e
                raise BrowserConnectionError(f'Connection to browser lost during {domain}.{method}') from e
        finally:
            self.event_bus.off(topic, on_crash)
            if not crashed.done():
                crashed.cancel()
            if not call.done():
                call.cancel()

    async def call_function(self, source: str, *args: Any) -> Any:
        """Run a JavaScript function with JSON arguments in the page and return its value.

        Raises:
            ScriptExecutionError: If the function throws.
        """
        arguments = ', '.join(json.dumps(arg) for arg in args)
        result = await self.dispatch(
            'Runtime',
            'evaluate',
            {'expression': f'({source})({arguments})', 'returnByValue': True, 'awaitPromise': True},
        )
        if 'exceptionDetails' in result:
            details = result['exceptionDetails']
            description = (details.get('exception') or {}).get('description')
            raise ScriptExecutionError(f'Script evaluation failed: {details.get("text", "")}', description)
        return result.get('result', {}).get('value')

    async def evaluate_handle(self, expression: str) -> str | None:
        """Evaluate ``expression`` and return a remote object id for its result."""
        result = await self.dispatch('Runtime', 'evaluate', {'expression': expression, 'returnByValue': False})
        if 'exceptionDetails' in result:
            raise ScriptExecutionError(f'Script evaluation failed: {expression}')
        return result.get('result', {}).get('objectId')

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, topic: Topic, handler: Handler) -> Handler:
        """Subscribe for the lifetime of the current connection.

        These subscriptions are removed before every re-wiring, so callers
        re-arm them from a SESSION_CREATED handler.
        """
        self.event_bus.on(topic, handler)
        self._scoped.append((topic, handler))
        return handler

    def add_protocol_listener(self, method: str, listener: Callable[[dict[str, Any]], Any]) -> None:
        if self._connection is None:
            raise BrowserConnectionError('Browser or page not initialized. Call connect() before using this API')
        self._connection.watch(method)
        self._protocol_listeners.append((method, listener))

    def _on_protocol_event(self, method: str, params: dict[str, Any]) -> None:
        if method == 'Inspector.targetCrashed':
            self._declare_crash(BrowserCrashError('Target crashed'))
            return
        if method == 'Inspector.detached' and params.get('reason') == 'Render process gone.':
            self._declare_crash(BrowserCrashError(f'Target detached: {params["reason"]}'))
            return

        for topic, event in translate_event(method, params):
            delivered = self.event_bus.emit(topic, event)
            if topic.kind is EventKind.DIALOG_OPENING and not delivered:
                self.logger.warning(
                    f'There is no handler attached to {event.type} "{event.message}"; the page will block until it is handled'
                )

        for listened, listener in list(self._protocol_listeners):
            if listened == method:
                try:
                    listener(params)
                except Exception as e:
                    self.logger.error(f'Protocol listener for {method} failed: {type(e).__name__}: {e}')

    # ------------------------------------------------------------------
    # Crash and reconnect
    # ------------------------------------------------------------------

    async def _watch_process(self, process: Any) -> None:
        returncode = await process.wait()
        if self._closing or process is not self._process:
            return
        if returncode == 0:
            self.logger.info(f'Browser process {process.pid} exited')
            return
        self._declare_crash(self._process_crash_error())

    def _process_exited(self) -> bool:
        return self._process is not None and self._process.returncode not in (None, 0)

    def _process_crash_error(self) -> BrowserCrashError:
        process = self._process
        returncode = process.returncode
        if returncode < 0:
            return BrowserCrashError(
                f'Browser process with pid {process.pid} exited with signal {-returncode}.',
                pid=process.pid,
                signal=-returncode,
            )
        return BrowserCrashError(
            f'Browser process with pid {process.pid} exited with status code {returncode}.',
            pid=process.pid,
            exit_code=returncode,
        )

    def _declare_crash(self, error: BrowserCrashError, reconnect: bool = True) -> None:
        if self._state is SessionState.CRASHED:
            return
        self.logger.error(f'Browser crashed: {error}')
        self._crash = error
        self._drop_connection()
        self._set_state(SessionState.CRASHED)
        self.event_bus.emit(
            Topic(EventKind.BROWSER_CRASHED),
            BrowserCrashedEvent(message=str(error), pid=error.pid, exit_code=error.exit_code, signal=error.signal),
        )
        if reconnect:
            self._schedule_reconnect()

    def _on_connection_closed(self, connection: Any, reason: str) -> None:
        if connection is not self._connection or self._closing:
            return
        self.logger.warning(f'Connection to browser lost: {reason}')
        if self._process_exited():
            self._declare_crash(self._process_crash_error())
            return
        self._drop_connection()
        self._set_state(SessionState.DISCONNECTED)
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._closing:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(self.reconnect())

    async def reconnect(self) -> bool:
        """Poll the debug endpoint and reconnect to a page target once it answers.

        Returns:
            True if the session is connected again.
        """
        self.logger.info(f'Reconnecting to browser at {self.host}:{self.port}')
        self.event_bus.emit(Topic(EventKind.RECONNECTING), ReconnectEvent(host=self.host, port=self.port))

        for attempt in range(1, self.config.reconnect_attempts + 1):
            if self._closing:
                return False
            if await self.directory.is_reachable():
                try:
                    async with self._lock:
                        await self._connect(None, max_retries=1)
                        await self.dispatch('DOM', 'getDocument')
                except (BrowserError, httpx.HTTPError, OSError) as e:
                    self.logger.debug(f'Reconnect attempt {attempt} failed: {type(e).__name__}: {e}')
                else:
                    self.logger.info(f'Reconnected to browser at {self.host}:{self.port}')
                    self.event_bus.emit(Topic(EventKind.RECONNECTED), ReconnectEvent(host=self.host, port=self.port))
                    return True
            await asyncio.sleep(ms_to_seconds(self.config.reconnect_delay))

        if self._crash is None:
            self._declare_crash(BrowserCrashError('Connection to browser lost'), reconnect=False)
        return False

    # ------------------------------------------------------------------
    # Targets
    # ------------------------------------------------------------------

    async def switch_target(self, target: 'str | re.Pattern[str] | TargetPredicate') -> TargetInfo:
        """Switch the session to the first target matching ``target``.

        Args:
            target: Target id, URL or title (exact), a regex, or a predicate.

        Raises:
            TargetNotFoundError: If nothing matches.
        """
        predicate = target_matcher(target)
        description = target.pattern if isinstance(target, re.Pattern) else str(target)
        async with self._lock:
            targets = await self.directory.list_targets()
            self._known_targets.update(t.id for t in targets)
            matches = [t for t in targets if t.web_socket_debugger_url and predicate(t)]
            if not matches:
                raise TargetNotFoundError(description)
            chosen = matches[0]
            await self._connect(chosen, None)
            await self.directory.activate(chosen.id)
            await self.dispatch('DOM', 'getDocument')
        return chosen

    async def open_tab(self, url: str = 'about:blank') -> TargetInfo:
        """Create a page target for ``url`` and move the session onto it.

        Raises:
            TargetNotFoundError: If the new target never shows up on the debug endpoint.
        """
        async with self._lock:
            result = await self.dispatch('Target', 'createTarget', {'url': url})
            target_id = result['targetId']
            self._known_targets.add(target_id)

            async def listed() -> TargetInfo | None:
                targets = await self.directory.list_targets()
                return next((t for t in targets if t.id == target_id and t.web_socket_debugger_url), None)

            try:
                target = await wait_until(listed, self.config.retry_interval, self.config.retry_timeout)
            except WaitTimeoutError as e:
                raise TargetNotFoundError(target_id) from e
            await self._connect(target, None)
            await self.directory.activate(target.id)
        return target

    async def close_tabs(self, target: 'str | re.Pattern[str] | TargetPredicate | None' = None) -> list[TargetInfo]:
        """Close the current tab, or every page tab matching ``target``.

        When the current tab is among them the session moves to the first
        remaining tab; closing the last tab leaves the session Disconnected.

        Returns:
            The closed targets.

        Raises:
            TargetNotFoundError: If nothing matches.
        """
        async with self._lock:
            pages = [t for t in await self.directory.list_targets() if t.is_page]
            if target is None:
                current = self._target.id if self._target is not None else None
                matching = [t for t in pages if t.id == current]
                description = 'current tab'
            else:
                predicate = target_matcher(target)
                matching = [t for t in pages if predicate(t)]
                description = target.pattern if isinstance(target, re.Pattern) else str(target)
            if not matching:
                raise TargetNotFoundError(description)

            closing = {t.id for t in matching}
            others = [t for t in pages if t.id not in closing and t.web_socket_debugger_url]
            closes_current = self._target is not None and self._target.id in closing

            if closes_current and others:
                # Leave the tab before closing it
                await self._connect(others[0], None)
                await self.dispatch('DOM', 'getDocument')
            elif closes_current:
                self._connection.clear_listeners()

            for closed in matching:
                try:
                    await self.dispatch('Target', 'closeTarget', {'targetId': closed.id})
                except BrowserConnectionError as e:
                    if not (closes_current and not others):
                        raise
                    self.logger.debug(f'Transport ended while closing the last tab: {e}')
                self._known_targets.discard(closed.id)

            if closes_current and not others:
                self._unwire()
                self._target = None
                self._set_state(SessionState.DISCONNECTED)
                self.logger.info('Closed the last tab; session disconnected')
        return matching

    def _on_target_created(self, event: TargetCreatedEvent) -> None:
        if event.target_id in self._known_targets:
            return
        self._known_targets.add(event.target_id)
        if self._state is not SessionState.CONNECTED or not self.config.follow_new_tabs:
            return
        if event.type != 'page' or event.url.startswith('devtools://'):
            return
        self._spawn(self._follow_target(event.target_id))

    async def _follow_target(self, target_id: str) -> None:
        async with self._lock:
            if self._target is not None and self._target.id == target_id:
                return
            targets = await self.directory.list_targets()
            target = next((t for t in targets if t.id == target_id and t.web_socket_debugger_url), None)
            if target is None:
                self.logger.debug(f'New target {target_id[:8]} disappeared before it could be followed')
                return
            self.logger.debug(f'Following new tab {target_id[:8]} ({target.url})')
            await self._connect(target, None)
        self.event_bus.emit(
            Topic(EventKind.TARGET_NAVIGATED),
            TargetCreatedEvent(target_id=target.id, type=target.type, url=target.url, title=target.title),
        )

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)
        return task

    def _on_background_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(f'Background session task failed: {type(exc).__name__}: {exc}')

"""Chrome DevTools Protocol transport and command bindings.

CDPConnection wraps one ``cdp_use.CDPClient`` attached to one target. The
client correlates responses to commands; CDPConnection maps its failures to
steerbrowser exceptions, fans the protocol events it registers for out to
listeners and reports when the websocket closes.

ProtocolCommands exposes per-domain command groups
(``commands.Page.navigate(params={...})``). The bindings are generated once,
at construction time, from PROTOCOL_DOMAINS; every binding routes through a
dispatcher supplied by the owner (BrowserSession.dispatch), which is where
crash detection happens.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import websockets
import websockets.exceptions
from cdp_use import CDPClient

from steerbrowser.exceptions import BrowserConnectionError, ProtocolError, TransportClosedError

logger = logging.getLogger(__name__)

EventListener = Callable[[str, dict[str, Any]], Any]
CloseListener = Callable[['CDPConnection', str], Any]
Dispatcher = Callable[[str, str, dict[str, Any] | None], Awaitable[dict[str, Any]]]

# Commands used by the session manager, navigation synchronizer and page actions.
PROTOCOL_DOMAINS: dict[str, tuple[str, ...]] = {
    'Browser': ('getVersion', 'close'),
    'DOM': (
        'enable',
        'disable',
        'getDocument',
        'describeNode',
        'resolveNode',
        'getBoxModel',
        'scrollIntoViewIfNeeded',
        'focus',
    ),
    'Emulation': ('setDeviceMetricsOverride', 'clearDeviceMetricsOverride'),
    'Input': ('dispatchMouseEvent', 'dispatchKeyEvent', 'dispatchTouchEvent', 'insertText'),
    'Inspector': ('enable', 'disable'),
    'Network': ('enable', 'disable', 'setExtraHTTPHeaders', 'setCacheDisabled'),
    'Overlay': ('enable', 'disable', 'highlightNode', 'hideHighlight'),
    'Page': (
        'enable',
        'disable',
        'navigate',
        'reload',
        'getNavigationHistory',
        'navigateToHistoryEntry',
        'setLifecycleEventsEnabled',
        'handleJavaScriptDialog',
        'getFrameTree',
        'bringToFront',
    ),
    'Runtime': ('enable', 'disable', 'evaluate', 'callFunctionOn', 'releaseObject', 'releaseObjectGroup'),
    'Security': ('enable', 'disable', 'setIgnoreCertificateErrors'),
    'Target': ('setDiscoverTargets', 'getTargets', 'activateTarget', 'createTarget', 'closeTarget'),
}

# Events registered on every connection; BrowserSession translates these to bus topics.
PROTOCOL_EVENTS: tuple[str, ...] = (
    'Inspector.detached',
    'Inspector.targetCrashed',
    'Network.requestWillBeSent',
    'Network.responseReceived',
    'Page.domContentEventFired',
    'Page.frameClearedScheduledNavigation',
    'Page.frameNavigated',
    'Page.frameRequestedNavigation',
    'Page.frameScheduledNavigation',
    'Page.frameStartedLoading',
    'Page.frameStoppedLoading',
    'Page.javascriptDialogOpening',
    'Page.lifecycleEvent',
    'Page.loadEventFired',
    'Page.navigatedWithinDocument',
    'Target.targetCreated',
)


class CDPConnection:
    """Transport to a single CDP target over a ``cdp_use.CDPClient``.

    Example:
        >>> connection = CDPConnection('ws://127.0.0.1:9222/devtools/page/ABC')
        >>> await connection.start()
        >>> result = await connection.send('Runtime.evaluate', {'expression': '1 + 1'})
        >>> await connection.close()
    """

    def __init__(
        self,
        ws_url: str,
        open_timeout: float = 10.0,
        client_factory: Callable[[str], CDPClient] = CDPClient,
    ):
        self.ws_url = ws_url
        self.open_timeout = open_timeout
        self._client = client_factory(ws_url)
        self._watched: set[str] = set()
        self._listeners: list[EventListener] = []
        self._close_listeners: list[CloseListener] = []
        self._ws = None
        self._close_watch: asyncio.Task | None = None
        self._started = False
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._started and not self._closed

    async def start(self) -> None:
        logger.debug(f'Opening CDP websocket: {self.ws_url}')
        for method in PROTOCOL_EVENTS:
            self.watch(method)
        try:
            await asyncio.wait_for(self._client.start(), timeout=self.open_timeout)
        except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
            raise BrowserConnectionError(f'Failed to connect to {self.ws_url}: {e}') from e
        self._ws = self._client.ws
        self._started = True
        self._closed = False
        self._close_watch = asyncio.create_task(self._watch_close())

    def watch(self, method: str) -> None:
        """Register with the client for ``method`` events and forward them to listeners."""
        if method in self._watched:
            return
        domain, _, event = method.partition('.')
        registrar = getattr(getattr(self._client.register, domain, None), event, None)
        if registrar is None:
            raise ValueError(f'Unknown protocol event: {method}')

        def forward(params: dict[str, Any], session_id: str | None = None) -> None:
            self._deliver(method, params or {})

        registrar(forward)
        self._watched.add(method)

    async def send(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Send a command and wait for its result.

        Raises:
            ProtocolError: The remote end rejected the command.
            TransportClosedError: The socket is closed or closed while waiting.
        """
        if not self.is_open:
            raise TransportClosedError(f'WebSocket not open, cannot send {method}')

        logger.debug(f'CDP -> {method}')
        try:
            return await self._client.send_raw(method, params or {})
        except (ConnectionError, websockets.exceptions.ConnectionClosed) as e:
            raise TransportClosedError(f'WebSocket closed while waiting for {method}') from e
        except RuntimeError as e:
            raise _protocol_error(method, e) from e

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: EventListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def add_close_listener(self, listener: CloseListener) -> None:
        self._close_listeners.append(listener)

    def clear_listeners(self) -> None:
        self._listeners.clear()
        self._close_listeners.clear()

    async def close(self) -> None:
        if self._closed or not self._started:
            self._closed = True
            return
        self._closed = True
        await self._client.stop()
        if self._close_watch is not None and self._close_watch is not asyncio.current_task():
            await self._close_watch

    async def _watch_close(self) -> None:
        await self._ws.wait_closed()
        code = self._ws.close_code
        reason = 'connection closed' if code in (None, 1000) else f'connection closed abnormally (code {code})'
        self._closed = True
        logger.debug(f'CDP websocket closed ({reason}): {self.ws_url}')
        for listener in list(self._close_listeners):
            try:
                listener(self, reason)
            except Exception as e:
                logger.error(f'CDP close listener failed: {type(e).__name__}: {e}')

    def _deliver(self, method: str, params: dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(method, params)
            except Exception as e:
                logger.error(f'CDP event listener for {method} failed: {type(e).__name__}: {e}')


def _protocol_error(method: str, error: RuntimeError) -> ProtocolError:
    """Build a ProtocolError from the RuntimeError CDPClient raises for error replies."""
    detail = error.args[0] if error.args else None
    if isinstance(detail, dict):
        return ProtocolError(detail.get('message', 'Unknown CDP error'), code=detail.get('code'), method=method)
    return ProtocolError(str(error), method=method)


def routed_through(domain: str, method: str):
    """Decorator turning a dispatcher into the binding for ``domain.method``."""

    def decorator(dispatch: Dispatcher):
        async def command(params: dict[str, Any] | None = None) -> dict[str, Any]:
            return await dispatch(domain, method, params)

        command.__name__ = method
        command.__qualname__ = f'{domain}.{method}'
        return command

    return decorator


class CommandGroup:
    """Bindings for one protocol domain, e.g. ``commands.Page``."""

    def __init__(self, domain: str, methods: tuple[str, ...], dispatch: Dispatcher):
        self.domain = domain
        self.methods = methods
        for method in methods:
            setattr(self, method, routed_through(domain, method)(dispatch))

    def __repr__(self) -> str:
        return f'<CommandGroup {self.domain}: {", ".join(self.methods)}>'


class ProtocolCommands:
    """All command groups, generated from PROTOCOL_DOMAINS at construction time."""

    def __init__(self, dispatch: Dispatcher, domains: dict[str, tuple[str, ...]] | None = None):
        self.domains = dict(domains or PROTOCOL_DOMAINS)
        for domain, methods in self.domains.items():
            setattr(self, domain, CommandGroup(domain, methods, dispatch))

    def __getitem__(self, domain: str) -> CommandGroup:
        if domain not in self.domains:
            raise KeyError(domain)
        return getattr(self, domain)

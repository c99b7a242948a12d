"""Pytest configuration and fixtures for the steerbrowser test suite.

No test talks to a real browser. The session is wired to in-memory fakes:

    FakeConnection: records every command, answers from a shared responder
        table and lets a test push protocol events or drop the transport.
    ConnectionFactory: stands in for CDPConnection and remembers every
        connection it built, so reconnect tests can inspect each one.
    FakeDirectory: stands in for TargetDirectory (``/json/list`` and friends).
    FakeProcess: an ``asyncio.subprocess.Process``-like handle whose exit a
        test triggers explicitly.

Path Setup:
    The src directory is added to sys.path to enable imports like:
    ``from steerbrowser.browser.session import BrowserSession``
"""

import asyncio
import inspect
import re
import sys
from pathlib import Path
from typing import Any

import httpx
import pytest

src_path = Path(__file__).parent.parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from steerbrowser.browser.navigation import DOCUMENT_READY_EXPRESSION  # noqa: E402
from steerbrowser.browser.session import BrowserSession  # noqa: E402
from steerbrowser.browser.targets import TargetInfo  # noqa: E402
from steerbrowser.config import BrowserConfig  # noqa: E402
from steerbrowser.exceptions import TransportClosedError  # noqa: E402


class FakeConnection:
    """In-memory transport with the CDPConnection surface used by BrowserSession."""

    def __init__(self, ws_url: str, responders: dict[str, Any]):
        self.ws_url = ws_url
        self.responders = responders
        self.sent: list[tuple[str, dict | None]] = []
        self.is_open = False
        self.closed = False
        self.watched: set[str] = set()
        self._listeners: list = []
        self._close_listeners: list = []

    async def start(self) -> None:
        self.is_open = True

    async def send(self, method: str, params: dict | None = None) -> dict:
        if not self.is_open:
            raise TransportClosedError(f'Connection closed before {method} was sent')
        self.sent.append((method, params))
        responder = self.responders.get(method)
        if responder is None:
            return {}
        if isinstance(responder, BaseException):
            raise responder
        if callable(responder):
            result = responder(params or {})
            if inspect.isawaitable(result):
                result = await result
            return result
        return responder

    def methods(self) -> list[str]:
        return [method for method, _ in self.sent]

    def watch(self, method: str) -> None:
        self.watched.add(method)

    def add_listener(self, listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener) -> None:
        self._listeners.remove(listener)

    def add_close_listener(self, listener) -> None:
        self._close_listeners.append(listener)

    def clear_listeners(self) -> None:
        self._listeners.clear()
        self._close_listeners.clear()

    def emit(self, method: str, params: dict | None = None) -> None:
        for listener in list(self._listeners):
            listener(method, params or {})

    def drop(self, reason: str = 'connection reset') -> None:
        self.is_open = False
        for listener in list(self._close_listeners):
            listener(self, reason)

    async def close(self) -> None:
        self.is_open = False
        self.closed = True


class ConnectionFactory:
    """Callable replacing CDPConnection; all connections share one responder table."""

    def __init__(self):
        self.connections: list[FakeConnection] = []
        self.responders: dict[str, Any] = {
            'Runtime.evaluate': {'result': {'type': 'boolean', 'value': True}},
        }

    def __call__(self, ws_url: str) -> FakeConnection:
        connection = FakeConnection(ws_url, self.responders)
        self.connections.append(connection)
        return connection

    @property
    def last(self) -> FakeConnection:
        return self.connections[-1]


class FakeDirectory:
    """TargetDirectory stand-in backed by a plain list of targets."""

    def __init__(self, targets: list[TargetInfo]):
        self.targets = list(targets)
        self.reachable = True
        self.activated: list[str] = []

    async def list_targets(self) -> list[TargetInfo]:
        if not self.reachable:
            raise httpx.ConnectError('Connection refused')
        return list(self.targets)

    async def is_reachable(self) -> bool:
        return self.reachable

    async def activate(self, target_id: str) -> None:
        self.activated.append(target_id)


class FakeProcess:
    """Browser process handle whose exit is triggered by the test."""

    def __init__(self, pid: int = 4242):
        self.pid = pid
        self.returncode: int | None = None
        self._exited = asyncio.Event()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    def exit(self, code: int) -> None:
        self.returncode = code
        self._exited.set()


def by_value(value: Any) -> dict:
    return {'result': {'type': type(value).__name__, 'value': value}}


def snapshot_payload(*nodes: dict, css: dict | None = None) -> dict:
    """Payload in the shape captureSnapshot returns, from camelCase node dicts."""
    return {
        'nodes': list(nodes),
        'css': css or {},
        'textNodes': [node['index'] for node in nodes if node['nodeType'] == 'text'],
        'formFields': [node['index'] for node in nodes if node.get('tagName') in ('input', 'textarea')],
    }


class FakePage:
    """Answers Runtime.evaluate and Runtime.callFunctionOn like a tiny page.

    ``element_results`` maps a snippet of an element function's source to its
    result, or to a callable taking the remote object id.
    """

    def __init__(self, payload: dict | None = None):
        self.payload = payload or snapshot_payload()
        self.ready = True
        self.url = 'http://example.com/'
        self.title = 'Example Domain'
        self.editable = True
        self.script_result: Any = None
        self.captures = 0
        self.expressions: list[str] = []
        self.element_calls: list[tuple[str, str]] = []
        self.element_results: dict[str, Any] = {
            'scrollIntoViewIfNeeded': None,
            'x: (rect.left + rect.right) / 2': {'x': 30, 'y': 40},
            'elementsFromPoint': True,
            'cannot focus element': None,
            'element === document.activeElement': True,
        }

    def install(self, factory: 'ConnectionFactory') -> 'FakePage':
        factory.responders['Runtime.evaluate'] = self.evaluate
        factory.responders['Runtime.callFunctionOn'] = self.call_function_on
        return self

    def evaluate(self, params: dict) -> dict:
        expression = params['expression']
        self.expressions.append(expression)
        if not params.get('returnByValue'):
            index = int(re.search(r'\[(\d+)\]$', expression).group(1))
            return {'result': {'type': 'object', 'objectId': f'node-{index}'}}
        if expression == DOCUMENT_READY_EXPRESSION:
            return by_value(self.ready)
        if 'captureSnapshot' in expression:
            self.captures += 1
            return by_value(self.payload)
        if 'window.location' in expression:
            return by_value(self.url)
        if 'document.title' in expression:
            return by_value(self.title)
        if 'document.activeElement' in expression:
            return by_value(self.editable)
        return by_value(self.script_result)

    def call_function_on(self, params: dict) -> dict:
        declaration = params['functionDeclaration']
        object_id = params['objectId']
        self.element_calls.append((object_id, declaration))
        for snippet, result in self.element_results.items():
            if snippet in declaration:
                if callable(result):
                    result = result(object_id)
                return by_value(result)
        return by_value(None)

def make_target(target_id: str, url: str = 'about:blank', title: str = '', type: str = 'page') -> TargetInfo:
    return TargetInfo(
        id=target_id,
        type=type,
        url=url,
        title=title,
        web_socket_debugger_url=f'ws://127.0.0.1:9222/devtools/page/{target_id}',
    )


async def eventually(condition, timeout: float = 2.0) -> None:
    """Yield to the loop until ``condition()`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError('condition was not met in time')
        await asyncio.sleep(0.001)


@pytest.fixture
def fast_config() -> BrowserConfig:
    """Config with millisecond-scale timeouts so failure paths finish quickly."""
    return BrowserConfig(
        navigation_timeout=500,
        retry_interval=5,
        retry_timeout=200,
        observe=False,
        connect_retries=2,
        connect_retry_delay=0,
        reconnect_attempts=20,
        reconnect_delay=10,
    )


@pytest.fixture
def factory() -> ConnectionFactory:
    return ConnectionFactory()


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory([
        make_target('PAGE-ONE', url='http://example.com/', title='Example Domain'),
        make_target('PAGE-TWO', url='http://localhost:3000/app', title='Dashboard'),
    ])


@pytest.fixture
def session(fast_config, factory, directory) -> BrowserSession:
    return BrowserSession(
        host='127.0.0.1',
        port=9222,
        config=fast_config,
        connection_factory=factory,
        directory=directory,
    )

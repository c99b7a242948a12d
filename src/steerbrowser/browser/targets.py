"""Target discovery over the browser's HTTP debug endpoint.

The debug endpoint (``http://host:port/json/...``) lists addressable targets
and is also how reachability of a (possibly restarted) browser is checked.
"""

import logging
import re
from collections.abc import Callable

import httpx
from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class TargetInfo(BaseModel):
    """One addressable tab, window or worker as reported by ``/json/list``."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    id: str
    type: str = 'page'
    url: str = ''
    title: str = ''
    web_socket_debugger_url: str | None = Field(default=None, alias='webSocketDebuggerUrl')

    @property
    def is_page(self) -> bool:
        return self.type == 'page'


TargetPredicate = Callable[[TargetInfo], bool]


def target_matcher(target: 'str | re.Pattern[str] | TargetPredicate') -> TargetPredicate:
    """Build a predicate selecting targets.

    Args:
        target: An exact target id, a URL or title compared by equality, a
            compiled regex searched against URL and title, or a ready predicate.

    Raises:
        ValueError: If ``target`` is empty or of an unsupported type.
    """
    if callable(target) and not isinstance(target, (str, re.Pattern)):
        return target
    if isinstance(target, re.Pattern):
        return lambda info: bool(target.search(info.url) or target.search(info.title))
    if isinstance(target, str):
        if not target.strip():
            raise ValueError('Cannot switch to tab or window. Hint: The targetUrl is empty. Please use a valid string or regex')
        return lambda info: info.id == target or info.url == target or info.title == target
    raise ValueError(
        f'Cannot switch to tab or window. Hint: The targetUrl {target!r} is invalid. Please use a valid string or regex'
    )


class TargetDirectory:
    """Client for ``/json/version`` and ``/json/list`` on the debug endpoint."""

    def __init__(
        self,
        host: str = '127.0.0.1',
        port: int = 9222,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.transport = transport

    @property
    def base_url(self) -> str:
        return f'http://{self.host}:{self.port}'

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    async def version(self) -> dict:
        async with self._client() as client:
            response = await client.get(f'{self.base_url}/json/version')
            response.raise_for_status()
            return response.json()

    async def list_targets(self) -> list[TargetInfo]:
        async with self._client() as client:
            response = await client.get(f'{self.base_url}/json/list')
            response.raise_for_status()
            targets = [TargetInfo.model_validate(item) for item in response.json()]
        logger.debug(f'Discovered {len(targets)} targets at {self.base_url}')
        return targets

    async def is_reachable(self) -> bool:
        try:
            await self.version()
        except httpx.HTTPError as e:
            logger.debug(f'Debug endpoint {self.base_url} not reachable: {type(e).__name__}: {e}')
            return False
        return True

    async def activate(self, target_id: str) -> None:
        """Bring ``target_id`` to the foreground."""
        async with self._client() as client:
            response = await client.get(f'{self.base_url}/json/activate/{target_id}')
            response.raise_for_status()

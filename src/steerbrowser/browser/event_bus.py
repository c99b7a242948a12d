"""In-process publish/subscribe hub.

Handlers for a topic run synchronously, in subscription order, for every
emission in emission order. A handler that returns a coroutine has it
scheduled as a task on the running loop; the bus keeps a reference to the
task until it finishes and logs anything it raises.

Example:
    >>> bus = EventBus()
    >>> bus.on(Topic(EventKind.FRAME_NAVIGATED), lambda event: print(event.frame_id))
    >>> bus.emit(Topic(EventKind.FRAME_NAVIGATED), FrameEvent(frame_id='F1'))
"""

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from steerbrowser.browser.events import Topic

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class _Subscription:
    __slots__ = ('handler', 'once')

    def __init__(self, handler: Handler, once: bool):
        self.handler = handler
        self.once = once


class EventBus:
    """Topic-keyed event hub with persistent, one-shot and removable subscriptions."""

    def __init__(self, name: str = 'EventBus'):
        self.name = name
        self._subscriptions: dict[Topic, list[_Subscription]] = {}
        self._tasks: set[asyncio.Task] = set()

    def on(self, topic: Topic, handler: Handler) -> Handler:
        """Subscribe ``handler`` to every future emission on ``topic``."""
        self._subscriptions.setdefault(topic, []).append(_Subscription(handler, once=False))
        return handler

    def once(self, topic: Topic, handler: Handler) -> Handler:
        """Subscribe ``handler`` to the next emission on ``topic`` only."""
        self._subscriptions.setdefault(topic, []).append(_Subscription(handler, once=True))
        return handler

    def off(self, topic: Topic, handler: Handler) -> bool:
        """Remove the first subscription of ``handler`` on ``topic``.

        Returns:
            True if a subscription was removed.
        """
        subscriptions = self._subscriptions.get(topic)
        if not subscriptions:
            return False
        for index, subscription in enumerate(subscriptions):
            if subscription.handler == handler:
                del subscriptions[index]
                if not subscriptions:
                    del self._subscriptions[topic]
                return True
        return False

    def emit(self, topic: Topic, payload: Any = None) -> int:
        """Deliver ``payload`` to every handler subscribed to ``topic``.

        One-shot subscriptions are removed before their handler runs, so a
        handler that re-emits on the same topic does not see itself again.

        Returns:
            The number of handlers invoked.
        """
        subscriptions = self._subscriptions.get(topic)
        if not subscriptions:
            return 0

        snapshot = list(subscriptions)
        for subscription in snapshot:
            if subscription.once:
                try:
                    subscriptions.remove(subscription)
                except ValueError:
                    pass
        if not subscriptions:
            self._subscriptions.pop(topic, None)

        for subscription in snapshot:
            self._invoke(topic, subscription.handler, payload)
        return len(snapshot)

    def listener_count(self, topic: Topic) -> int:
        return len(self._subscriptions.get(topic, ()))

    def clear(self, topic: Topic | None = None) -> None:
        """Drop all subscriptions, or only those for ``topic``."""
        if topic is None:
            self._subscriptions.clear()
        else:
            self._subscriptions.pop(topic, None)

    async def wait_for_idle(self) -> None:
        """Wait for coroutine handlers scheduled so far to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _invoke(self, topic: Topic, handler: Handler, payload: Any) -> None:
        try:
            result = handler(payload)
        except Exception as e:
            logger.error(f'[{self.name}] Handler {_handler_name(handler)} for {topic} failed: {type(e).__name__}: {e}')
            return

        if inspect.iscoroutine(result):
            task = asyncio.get_running_loop().create_task(result)
            self._tasks.add(task)
            task.add_done_callback(lambda t: self._on_task_done(topic, handler, t))

    def _on_task_done(self, topic: Topic, handler: Handler, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f'[{self.name}] Async handler {_handler_name(handler)} for {topic} failed: {type(exc).__name__}: {exc}')


def _handler_name(handler: Handler) -> str:
    return getattr(handler, '__qualname__', None) or repr(handler)

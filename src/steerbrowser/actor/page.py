"""Page class for high-level actions.

Every action finds its target through the selector engine, performs input
through the session and waits for the page to settle through the navigation
synchronizer. Completed actions publish a human-readable description on the
ACTION_SUCCEEDED topic.

Example:
    >>> page = Page(session)
    >>> page.on_success(lambda event: print(event.description))
    >>> await page.goto('example.com')
    >>> await page.write('jane@example.com', into=text_box(attributes={'name': 'email'}))
    >>> await page.click('Submit', below('Email'))
"""

import asyncio
import logging
import re
from collections.abc import Callable
from functools import wraps
from typing import Any

from steerbrowser.actor.element import Element, MouseButton, Position
from steerbrowser.actor.keys import key_event, modifier_mask
from steerbrowser.browser.events import ActionSucceededEvent, DialogOpeningEvent, EventKind, Topic, dialog_topic
from steerbrowser.browser.navigation import NavigationSynchronizer
from steerbrowser.browser.session import BrowserSession
from steerbrowser.browser.targets import TargetPredicate
from steerbrowser.browser.url_utils import ensure_scheme
from steerbrowser.config import BrowserConfig, NavigationOptions
from steerbrowser.dom.selectors import SelectorLike, as_selector
from steerbrowser.dom.service import ElementFinder
from steerbrowser.dom.views import ConstraintDescriptor, SelectorDescriptor, describe_selector
from steerbrowser.exceptions import ElementNotFoundError
from steerbrowser.utils import ms_to_seconds, wait_until

logger = logging.getLogger(__name__)

_ACTIVE_ELEMENT_EDITABLE_JS = """function() {
  const el = document.activeElement;
  if (el && ['textarea', 'input'].includes(el.nodeName.toLowerCase())) {
    return !el.readOnly && !el.disabled;
  }
  return false;
}"""

HIGHLIGHT_CONFIG = {
    'showInfo': False,
    'contentColor': {'r': 255, 'g': 0, 'b': 0, 'a': 0.2},
    'borderColor': {'r': 255, 'g': 0, 'b': 0, 'a': 1},
}


def observed(func):
    """Apply observe mode and debug logging around a page action."""

    @wraps(func)
    async def wrapper(self: 'Page', *args, **kwargs):
        if self.config.observe:
            await asyncio.sleep(ms_to_seconds(self.config.observe_time))
        logger.debug(f'[{func.__name__}] called with {args} {kwargs}')
        try:
            result = await func(self, *args, **kwargs)
        except Exception as e:
            logger.debug(f'[{func.__name__}] error: {type(e).__name__}: {e}')
            raise
        logger.debug(f'[{func.__name__}] returned {result!r}')
        return result

    return wrapper


def _as_function(source: str) -> str:
    stripped = source.strip()
    if stripped.startswith(('function', 'async function')) or '=>' in stripped:
        return stripped
    return f'function() {{ return ({stripped}); }}'


class Page:
    """High-level actions on the session's current target.

    Args:
        session: Connected browser session.
        synchronizer: Navigation synchronizer; one is created when omitted.
        finder: Element finder; one is created when omitted.
    """

    def __init__(
        self,
        session: BrowserSession,
        synchronizer: NavigationSynchronizer | None = None,
        finder: ElementFinder | None = None,
    ):
        self.session = session
        self.synchronizer = synchronizer or NavigationSynchronizer(session)
        self.finder = finder or ElementFinder(session)

    @property
    def config(self) -> BrowserConfig:
        return self.session.config

    def on_success(self, handler: Callable[[ActionSucceededEvent], Any]) -> None:
        """Subscribe to the description of every completed action."""
        self.session.event_bus.on(Topic(EventKind.ACTION_SUCCEEDED), handler)

    def _succeeded(self, description: str, **details: Any) -> None:
        logger.info(description)
        self.session.event_bus.emit(
            Topic(EventKind.ACTION_SUCCEEDED), ActionSucceededEvent(description=description, details=details)
        )

    # Navigation

    @observed
    async def goto(self, url: str, options: NavigationOptions | None = None) -> None:
        """Navigate to ``url``, prefixing ``http://`` when no scheme is given."""
        url = ensure_scheme(url)
        await self.synchronizer.goto(url, options)
        self._succeeded(f'Navigated to URL {url}', url=url)

    @observed
    async def reload(self, ignore_cache: bool = False, options: NavigationOptions | None = None) -> None:
        await self.synchronizer.await_action(
            lambda: self.session.dispatch('Page', 'reload', {'ignoreCache': ignore_cache}), options
        )
        url = await self.current_url()
        self._succeeded(f'{url} reloaded', url=url)

    @observed
    async def go_back(self, options: NavigationOptions | None = None) -> None:
        if await self._navigate_history(-1, options):
            self._succeeded('Performed clicking on browser back button')

    @observed
    async def go_forward(self, options: NavigationOptions | None = None) -> None:
        if await self._navigate_history(1, options):
            self._succeeded('Performed clicking on browser forward button')

    async def _navigate_history(self, delta: int, options: NavigationOptions | None) -> bool:
        history = await self.session.dispatch('Page', 'getNavigationHistory')
        index = history['currentIndex'] + delta
        entries = history['entries']
        if not 0 <= index < len(entries):
            logger.debug(f'No history entry at offset {delta}')
            return False
        entry = entries[index]
        options = options or NavigationOptions()
        if entry.get('url') == 'about:blank' and options.wait_for_navigation is None:
            # about:blank never produces the lifecycle events we wait for
            options = options.model_copy(update={'wait_for_navigation': False})
        await self.synchronizer.await_action(
            lambda: self.session.dispatch('Page', 'navigateToHistoryEntry', {'entryId': entry['id']}), options
        )
        return True

    async def current_url(self) -> str:
        return await self.session.call_function('function() { return window.location.toString(); }')

    async def title(self) -> str:
        return await self.session.call_function('function() { return document.title; }')

    @observed
    async def switch_to(self, target: 'str | re.Pattern[str] | TargetPredicate') -> None:
        """Switch to the tab whose id, URL or title matches ``target``."""
        info = await self.session.switch_target(target)
        self._succeeded(f'Switched to tab with URL {info.url}', target_id=info.id)

    @observed
    async def open_tab(self, url: str | None = None, options: NavigationOptions | None = None) -> None:
        """Open ``url`` in a new tab, or a blank one, and make it the current tab."""
        await self.session.open_tab()
        url = ensure_scheme(url) if url else 'about:blank'
        if url != 'about:blank':
            await self.synchronizer.goto(url, options)
        self._succeeded(f'Opened tab with URL {url}', url=url)

    @observed
    async def close_tab(self, target: 'str | re.Pattern[str] | TargetPredicate | None' = None) -> None:
        """Close the current tab, or every tab whose id, URL or title matches ``target``."""
        closed = await self.session.close_tabs(target)
        if target is None:
            description = f'Closed current tab matching {closed[0].url}'
        else:
            description = f'Closed tab(s) matching {target.pattern if isinstance(target, re.Pattern) else target}'
        self._succeeded(description, target_ids=[t.id for t in closed])

    # Element actions

    async def find(self, selector: SelectorLike, *constraints: ConstraintDescriptor) -> list[Element]:
        return await self.finder.find(as_selector(selector, *constraints))

    async def exists(self, selector: SelectorLike, *constraints: ConstraintDescriptor) -> bool:
        return bool(await self.finder.find_candidates(as_selector(selector, *constraints)))

    @observed
    async def click(
        self,
        selector: SelectorLike,
        *constraints: ConstraintDescriptor,
        button: MouseButton = 'left',
        click_count: int = 1,
        options: NavigationOptions | None = None,
    ) -> None:
        """Click the best-ranked element that is actually at its own centre point.

        Raises:
            ElementNotFoundError: If nothing matched, or nothing matched is clickable.
        """
        await self._click(as_selector(selector, *constraints), button, click_count, options)

    @observed
    async def double_click(
        self,
        selector: SelectorLike,
        *constraints: ConstraintDescriptor,
        options: NavigationOptions | None = None,
    ) -> None:
        await self._click(as_selector(selector, *constraints), 'left', 2, options)

    async def _click(
        self,
        target: SelectorDescriptor,
        button: MouseButton,
        click_count: int,
        options: NavigationOptions | None,
    ) -> None:
        description = describe_selector(target)
        for element in await self.finder.find(target):
            await element.scroll_into_view()
            position = await element.center()
            if await element.is_at_point():
                if self.config.highlight_on_action:
                    await self._highlight(element)
                await self.synchronizer.await_action(
                    lambda: self._dispatch_click(position, button, click_count), options
                )
                self._succeeded(f'Clicked element matching text "{description}" {click_count} times', button=button)
                return
        raise ElementNotFoundError(description, 'no clickable elements')

    @observed
    async def hover(self, selector: SelectorLike, *constraints: ConstraintDescriptor) -> None:
        target = as_selector(selector, *constraints)
        element = await self.finder.first(target)
        await element.scroll_into_view()
        position = await element.center()
        await self.session.dispatch('Input', 'dispatchMouseEvent', {'type': 'mouseMoved', **position})
        self._succeeded(f'Hovered over the {describe_selector(target)}')

    @observed
    async def tap(
        self,
        selector: SelectorLike,
        *constraints: ConstraintDescriptor,
        options: NavigationOptions | None = None,
    ) -> None:
        """Touch the centre of the best-ranked element."""
        target = as_selector(selector, *constraints)
        element = await self.finder.first(target)
        await element.scroll_into_view()
        position = await element.center()
        if self.config.highlight_on_action:
            await self._highlight(element)
        await self.synchronizer.await_action(lambda: self._dispatch_tap(position), options)
        self._succeeded(f'Tapped on the {describe_selector(target)}')

    @observed
    async def highlight(self, selector: SelectorLike, *constraints: ConstraintDescriptor) -> None:
        """Outline the best-ranked element for ``highlight_time`` ms."""
        target = as_selector(selector, *constraints)
        element = await self.finder.first(target)
        await self._highlight(element)
        self._succeeded(f'Highlighted the {describe_selector(target)}')

    @observed
    async def focus(self, selector: SelectorLike, *constraints: ConstraintDescriptor) -> None:
        target = as_selector(selector, *constraints)
        element = await self.finder.first(target)
        await element.scroll_into_view()
        await element.focus()
        self._succeeded(f'Focussed on the {describe_selector(target)}')

    @observed
    async def scroll_to(self, selector: SelectorLike, *constraints: ConstraintDescriptor) -> None:
        target = as_selector(selector, *constraints)
        element = await self.finder.first(target)
        await element.scroll_into_view()
        self._succeeded(f'Scrolled to the {describe_selector(target)}')

    @observed
    async def write(
        self,
        text: str,
        into: SelectorLike | None = None,
        *constraints: ConstraintDescriptor,
        options: NavigationOptions | None = None,
    ) -> None:
        """Type ``text`` into ``into``, or into the focused field when ``into`` is omitted."""
        target = await self._focus_editable(into, constraints)
        await self.synchronizer.await_action(lambda: self._type(text), options)
        where = describe_selector(target) if target is not None else 'focused element'
        self._succeeded(f'Wrote {text} into the {where}')

    @observed
    async def clear(
        self,
        selector: SelectorLike | None = None,
        *constraints: ConstraintDescriptor,
        options: NavigationOptions | None = None,
    ) -> None:
        target = await self._focus_editable(selector, constraints)
        await self.session.call_function("function() { document.execCommand('selectall', false, undefined); }")
        await self.synchronizer.await_action(lambda: self._press_keys(['Backspace']), options)
        where = describe_selector(target) if target is not None else 'focused element'
        self._succeeded(f'Cleared element {where}')

    @observed
    async def press(self, keys: str | list[str], options: NavigationOptions | None = None) -> None:
        """Press keys together, releasing them in reverse order, e.g. ``['Control', 'a']``."""
        key_list = [keys] if isinstance(keys, str) else list(keys)
        await self.synchronizer.await_action(lambda: self._press_keys(key_list), options)
        self._succeeded(f'Pressed the {" + ".join(key_list)} key')

    @observed
    async def evaluate(
        self,
        script: str,
        selector: SelectorLike | None = None,
        *constraints: ConstraintDescriptor,
        args: list[Any] | None = None,
    ) -> Any:
        """Evaluate a JavaScript expression or function.

        With a selector, a function receives the first matching element as its
        first argument, followed by ``args``.
        """
        function = _as_function(script)
        call_args = list(args or [])
        if selector is None:
            value = await self.session.call_function(function, *call_args)
        else:
            element = await self.finder.first(as_selector(selector, *constraints))
            value = await element.call(f'function(...args) {{ return ({function})(this, ...args); }}', *call_args)
        self._succeeded('Evaluated given script. Result:' + str(value), result=value)
        return value

    # Dialogs

    def alert(self, message: str, callback: Callable[[DialogOpeningEvent], Any]) -> None:
        self._on_dialog('alert', message, callback)

    def confirm(self, message: str, callback: Callable[[DialogOpeningEvent], Any]) -> None:
        self._on_dialog('confirm', message, callback)

    def prompt(self, message: str, callback: Callable[[DialogOpeningEvent], Any]) -> None:
        self._on_dialog('prompt', message, callback)

    def beforeunload(self, callback: Callable[[DialogOpeningEvent], Any]) -> None:
        self._on_dialog('beforeunload', '', callback)

    def _on_dialog(self, dialog_type: str, message: str, callback: Callable[[DialogOpeningEvent], Any]) -> None:
        self.session.event_bus.once(dialog_topic(dialog_type, message), callback)

    @observed
    async def accept(self, text: str = '') -> None:
        await self.session.dispatch('Page', 'handleJavaScriptDialog', {'accept': True, 'promptText': text})
        self._succeeded('Accepted dialog')

    @observed
    async def dismiss(self) -> None:
        await self.session.dispatch('Page', 'handleJavaScriptDialog', {'accept': False})
        self._succeeded('Dismissed dialog')

    # Input helpers

    async def _focus_editable(
        self, selector: SelectorLike | None, constraints: tuple[ConstraintDescriptor, ...]
    ) -> SelectorDescriptor | None:
        interval, timeout = self.config.retry_interval, self.config.retry_timeout
        if selector is None:
            await wait_until(lambda: self.session.call_function(_ACTIVE_ELEMENT_EDITABLE_JS), interval, timeout)
            return None
        target = as_selector(selector, *constraints)
        element = await self.finder.first(target)
        await element.scroll_into_view()
        await element.focus()
        await wait_until(element.is_focused_and_editable, interval, timeout)
        return target

    async def _dispatch_click(self, position: Position, button: MouseButton, click_count: int) -> None:
        dispatch = self.session.dispatch
        await dispatch('Input', 'dispatchMouseEvent', {'type': 'mouseMoved', **position})
        for count in range(1, click_count + 1):
            for event_type in ('mousePressed', 'mouseReleased'):
                await dispatch(
                    'Input',
                    'dispatchMouseEvent',
                    {'type': event_type, **position, 'button': button, 'clickCount': count},
                )

    async def _highlight(self, element: Element) -> None:
        dispatch = self.session.dispatch
        await dispatch('Overlay', 'enable')
        await dispatch('Overlay', 'highlightNode', {'highlightConfig': HIGHLIGHT_CONFIG, 'objectId': element.object_id})
        await asyncio.sleep(ms_to_seconds(self.config.highlight_time))
        await dispatch('Overlay', 'hideHighlight')

    async def _dispatch_tap(self, position: Position) -> None:
        await self.session.dispatch(
            'Input', 'dispatchTouchEvent', {'type': 'touchStart', 'touchPoints': [{'x': position['x'], 'y': position['y']}]}
        )
        await self.session.dispatch('Input', 'dispatchTouchEvent', {'type': 'touchEnd', 'touchPoints': []})

    async def _type(self, text: str) -> None:
        for char in text:
            key = 'Enter' if char == '\n' else char
            await self.session.dispatch('Input', 'dispatchKeyEvent', key_event(key, 'keyDown'))
            await self.session.dispatch('Input', 'dispatchKeyEvent', key_event(key, 'keyUp'))

    async def _press_keys(self, keys: list[str]) -> None:
        modifiers = modifier_mask(keys)
        for key in keys:
            await self.session.dispatch('Input', 'dispatchKeyEvent', key_event(key, 'keyDown', modifiers))
        await asyncio.sleep(0.01)
        for key in reversed(keys):
            await self.session.dispatch('Input', 'dispatchKeyEvent', key_event(key, 'keyUp', modifiers))

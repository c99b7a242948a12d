"""Element handle for DOM interactions through a remote object id."""

import logging
from typing import TYPE_CHECKING, Any, Literal

from typing_extensions import TypedDict

from steerbrowser.exceptions import ScriptExecutionError

if TYPE_CHECKING:
    from steerbrowser.browser.session import BrowserSession
    from steerbrowser.dom.views import Candidate

logger = logging.getLogger(__name__)

MouseButton = Literal['left', 'right', 'middle']


class Position(TypedDict):
    """2D position in viewport coordinates."""
    x: float
    y: float


# Text nodes act through their parent element
_SCROLL_INTO_VIEW_JS = """function() {
  const element = this.nodeType === Node.TEXT_NODE ? this.parentElement : this;
  if (element.scrollIntoViewIfNeeded) { element.scrollIntoViewIfNeeded(); } else { element.scrollIntoView({block: 'center'}); }
}"""

_CENTER_JS = """function() {
  let rect;
  if (this.nodeType === Node.TEXT_NODE) {
    const range = document.createRange();
    range.selectNodeContents(this);
    rect = range.getClientRects()[0];
  } else {
    rect = this.getBoundingClientRect();
  }
  if (!rect) return null;
  return {x: (rect.left + rect.right) / 2, y: (rect.top + rect.bottom) / 2};
}"""

_AT_POINT_JS = """function() {
  let elem = this;
  let rect;
  if (elem.nodeType === Node.TEXT_NODE) {
    const range = document.createRange();
    range.selectNodeContents(elem);
    rect = range.getClientRects()[0];
    elem = elem.parentElement;
  } else {
    rect = elem.getBoundingClientRect();
  }
  if (!rect || !elem) return false;
  const x = (rect.left + rect.right) / 2;
  const y = (rect.top + rect.bottom) / 2;
  const nodes = document.elementsFromPoint(x, y);
  const node = nodes[0] !== elem ? document.elementFromPoint(x, y) : nodes.find((n) => n.contains(elem));
  if (!node) return false;
  const transparent = (el) => Number(window.getComputedStyle(el).getPropertyValue('opacity')) < 0.1;
  return elem.contains(node) || node.contains(elem) || transparent(node) || transparent(elem);
}"""

_FOCUS_JS = """function() {
  const element = this.nodeType === Node.TEXT_NODE ? this.parentElement : this;
  if (element.disabled === true) throw new Error('Element is not focusable');
  element.focus();
  if (document.activeElement !== element) throw new Error('cannot focus element');
}"""

_IS_EDITABLE_FOCUS_JS = """function() {
  const element = this.nodeType === Node.TEXT_NODE ? this.parentElement : this;
  return element === document.activeElement && !element.readOnly && !element.disabled;
}"""

_TEXT_JS = """function() {
  return this.nodeType === Node.TEXT_NODE ? this.parentElement.innerText : this.innerText;
}"""


class Element:
    """A live node in the page, addressed by its remote object id.

    Handles are produced by ElementFinder from ranked candidates; they stay
    valid until the page navigates away.
    """

    def __init__(
        self,
        session: 'BrowserSession',
        object_id: str,
        candidate: 'Candidate | None' = None,
        description: str = '',
    ):
        self._session = session
        self.object_id = object_id
        self.candidate = candidate
        self.description = description

    def __repr__(self) -> str:
        return f'<Element {self.description or self.object_id}>'

    async def call(self, function_declaration: str, *args: Any) -> Any:
        """Call a JavaScript function with ``this`` bound to the element and return its value.

        Raises:
            ScriptExecutionError: If the function throws.
        """
        result = await self._session.dispatch(
            'Runtime',
            'callFunctionOn',
            {
                'objectId': self.object_id,
                'functionDeclaration': function_declaration,
                'arguments': [{'value': arg} for arg in args],
                'returnByValue': True,
                'awaitPromise': True,
            },
        )
        if 'exceptionDetails' in result:
            details = result['exceptionDetails']
            description = (details.get('exception') or {}).get('description', details.get('text', ''))
            raise ScriptExecutionError(f'{self.description or "element"}: {description}', description)
        return result.get('result', {}).get('value')

    async def scroll_into_view(self) -> None:
        await self.call(_SCROLL_INTO_VIEW_JS)

    async def center(self) -> Position:
        position = await self.call(_CENTER_JS)
        if not position:
            raise ScriptExecutionError(f'{self.description or "element"} has no layout box')
        return Position(x=position['x'], y=position['y'])

    async def is_at_point(self) -> bool:
        """True if the element, a relative of it, or a transparent overlay is topmost at its centre."""
        return bool(await self.call(_AT_POINT_JS))

    async def focus(self) -> None:
        await self.call(_FOCUS_JS)

    async def is_focused_and_editable(self) -> bool:
        return bool(await self.call(_IS_EDITABLE_FOCUS_JS))

    async def text(self) -> str:
        return await self.call(_TEXT_JS) or ''

    async def value(self) -> Any:
        return await self.call('function() { return this.value; }')

    async def is_disabled(self) -> bool:
        return bool(await self.call('function() { return Boolean(this.disabled); }'))

    async def release(self) -> None:
        await self._session.dispatch('Runtime', 'releaseObject', {'objectId': self.object_id})

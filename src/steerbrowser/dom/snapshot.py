"""DOM snapshot abstraction used by selector resolution.

Resolution runs in Python against a DOMSnapshot: a queryable node table with
rectangles. In production the table is captured in the page by
CAPTURE_SNAPSHOT_JS, which also stores the live nodes in
``window[SNAPSHOT_STORE]`` so resolved candidates can be turned into remote
object handles afterwards.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from steerbrowser.dom.views import Rect, SnapshotNode

logger = logging.getLogger(__name__)

SNAPSHOT_STORE = '__steerbrowserSnapshot'

TEXT_LIKE_INPUT_TYPES = frozenset({'email', 'number', 'password', 'text', 'url', 'tel', 'search'})

CAPTURE_SNAPSHOT_JS = """
function captureSnapshot(cssSelectors, storeKey) {
  const nodes = [];
  const indexOf = new Map();
  const register = (node) => {
    if (indexOf.has(node)) return indexOf.get(node);
    const i = nodes.length;
    indexOf.set(node, i);
    nodes.push(node);
    return i;
  };
  const rectOf = (node) => {
    let rect;
    if (node.nodeType === Node.TEXT_NODE) {
      const range = document.createRange();
      range.selectNodeContents(node);
      rect = range.getClientRects()[0];
    } else {
      rect = node.getBoundingClientRect();
    }
    if (!rect) return null;
    return { top: rect.top, left: rect.left, bottom: rect.bottom, right: rect.right };
  };

  const css = {};
  for (const selector of cssSelectors) {
    try {
      css[selector] = Array.from(document.querySelectorAll(selector)).map(register);
    } catch (e) {
      css[selector] = [];
    }
  }
  const textNodes = [];
  const walker = document.createTreeWalker(document, NodeFilter.SHOW_TEXT);
  while (walker.nextNode()) textNodes.push(register(walker.currentNode));
  for (const i of textNodes.slice()) {
    const parent = nodes[i].parentNode;
    if (parent && parent.nodeType === Node.ELEMENT_NODE) register(parent);
  }
  const formFields = Array.from(document.querySelectorAll('input,textarea')).map(register);

  window[storeKey] = nodes;
  return {
    css,
    textNodes,
    formFields,
    nodes: nodes.map((node, i) => {
      const isText = node.nodeType === Node.TEXT_NODE;
      const parent = node.parentNode;
      return {
        index: i,
        nodeType: isText ? 'text' : 'element',
        tagName: isText ? null : node.nodeName.toLowerCase(),
        text: node.textContent || '',
        value: !isText && node.value != null ? String(node.value) : '',
        placeholder: !isText && node.placeholder ? String(node.placeholder) : '',
        inputType: !isText && node.type ? String(node.type) : null,
        attributes: isText ? {} : Object.fromEntries(Array.from(node.attributes || []).map((a) => [a.name, a.value])),
        parentIndex: parent && indexOf.has(parent) ? indexOf.get(parent) : null,
        hasParentElement: Boolean(node.parentElement),
        rect: rectOf(node),
      };
    }),
  };
}
"""


class DOMSnapshot(ABC):
    """Queryable view of one document at one point in time."""

    @abstractmethod
    def query_selector_all(self, css_selector: str) -> list[SnapshotNode]:
        """Elements matching ``css_selector``, in document order."""

    @abstractmethod
    def text_nodes(self) -> list[SnapshotNode]:
        """All text nodes, in document order."""

    @abstractmethod
    def form_fields(self) -> list[SnapshotNode]:
        """All input and textarea elements, in document order."""

    @abstractmethod
    def parent_element(self, node: SnapshotNode) -> SnapshotNode | None:
        """The parent element of ``node``, if it is part of the snapshot."""

    def rect(self, node: SnapshotNode) -> Rect | None:
        return node.rect

    def text_like_fields(self) -> list[SnapshotNode]:
        """Textareas plus inputs whose type is text-like or unset."""
        fields = []
        for node in self.form_fields():
            if node.tag_name == 'input' and node.input_type and node.input_type not in TEXT_LIKE_INPUT_TYPES:
                continue
            fields.append(node)
        return fields


class CapturedSnapshot(DOMSnapshot):
    """Snapshot built from the node table returned by CAPTURE_SNAPSHOT_JS.

    Example:
        >>> snapshot = CapturedSnapshot.from_payload({
        ...     'nodes': [{'index': 0, 'nodeType': 'text', 'text': 'Email',
        ...                'rect': {'top': 0, 'left': 0, 'bottom': 20, 'right': 40}}],
        ...     'textNodes': [0],
        ... })
    """

    def __init__(
        self,
        nodes: list[SnapshotNode],
        css: dict[str, list[int]] | None = None,
        text_node_indexes: list[int] | None = None,
        form_field_indexes: list[int] | None = None,
    ):
        self.nodes = nodes
        self._css = css or {}
        self._text_nodes = text_node_indexes if text_node_indexes is not None else [
            node.index for node in nodes if node.node_type == 'text'
        ]
        self._form_fields = form_field_indexes if form_field_indexes is not None else [
            node.index for node in nodes if node.tag_name in ('input', 'textarea')
        ]

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> 'CapturedSnapshot':
        nodes = [SnapshotNode.model_validate(item) for item in payload.get('nodes', [])]
        return cls(
            nodes,
            css=payload.get('css'),
            text_node_indexes=payload.get('textNodes'),
            form_field_indexes=payload.get('formFields'),
        )

    def query_selector_all(self, css_selector: str) -> list[SnapshotNode]:
        if css_selector not in self._css:
            logger.debug(f'CSS selector {css_selector!r} was not captured in this snapshot')
            return []
        return [self.nodes[i] for i in self._css[css_selector]]

    def text_nodes(self) -> list[SnapshotNode]:
        return [self.nodes[i] for i in self._text_nodes]

    def form_fields(self) -> list[SnapshotNode]:
        return [self.nodes[i] for i in self._form_fields]

    def parent_element(self, node: SnapshotNode) -> SnapshotNode | None:
        if node.parent_index is None:
            return None
        parent = self.nodes[node.parent_index]
        return parent if parent.node_type == 'element' else None

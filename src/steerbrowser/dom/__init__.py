"""Selector resolution: descriptors, DOM snapshots and the ranking engine."""

from steerbrowser.dom.selectors import (
    above,
    as_selector,
    below,
    css,
    near,
    text,
    text_box,
    to_left_of,
    to_right_of,
)
from steerbrowser.dom.service import ElementFinder, resolve, resolve_selector
from steerbrowser.dom.snapshot import CapturedSnapshot, DOMSnapshot
from steerbrowser.dom.views import (
    Candidate,
    ConstraintDescriptor,
    Rect,
    ResolutionReason,
    SelectorDescriptor,
    SelectorResolution,
    SnapshotNode,
    describe_selector,
)

__all__ = [
    'Candidate',
    'CapturedSnapshot',
    'ConstraintDescriptor',
    'DOMSnapshot',
    'ElementFinder',
    'Rect',
    'ResolutionReason',
    'SelectorDescriptor',
    'SelectorResolution',
    'SnapshotNode',
    'above',
    'as_selector',
    'below',
    'css',
    'describe_selector',
    'near',
    'resolve',
    'resolve_selector',
    'text',
    'text_box',
    'to_left_of',
    'to_right_of',
]

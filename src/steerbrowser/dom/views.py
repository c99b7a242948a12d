"""Data models for selector resolution."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

SelectorKind = Literal['cssSelector', 'text', 'textBox']
ConstraintType = Literal['above', 'below', 'toLeftOf', 'toRightOf', 'near']


class SelectorDescriptor(BaseModel):
    """Declarative, serializable element description.

    ``params`` by kind:
        cssSelector: ``{'cssSelector': str}``
        text: ``{'text': str, 'exact': bool}``
        textBox: ``{'attributes': dict[str, str] | None}``
    """

    model_config = ConfigDict(extra='forbid', frozen=True)

    kind: SelectorKind
    params: dict[str, Any] = Field(default_factory=dict)
    constraints: tuple['ConstraintDescriptor', ...] = ()

    def with_constraints(self, *constraints: 'ConstraintDescriptor') -> 'SelectorDescriptor':
        if not constraints:
            return self
        return self.model_copy(update={'constraints': self.constraints + tuple(constraints)})

    def css_selectors(self) -> list[str]:
        """Every CSS selector used anywhere in this selector tree, in first-seen order."""
        found: list[str] = []
        if self.kind == 'cssSelector':
            found.append(self.params['cssSelector'])
        for constraint in self.constraints:
            for selector in constraint.reference_selector.css_selectors():
                if selector not in found:
                    found.append(selector)
        return found

    def __str__(self) -> str:
        return describe_selector(self)


class ConstraintDescriptor(BaseModel):
    """Spatial constraint relative to the elements a reference selector resolves to."""

    model_config = ConfigDict(extra='forbid', frozen=True, populate_by_name=True)

    type: ConstraintType
    reference_selector: SelectorDescriptor = Field(alias='referenceSelector')

    def __str__(self) -> str:
        return describe_constraint(self)


class Rect(BaseModel):
    """Viewport-relative bounding rectangle."""

    model_config = ConfigDict(frozen=True)

    top: float
    left: float
    bottom: float
    right: float

    @property
    def width(self) -> float:
        return self.right - self.left

    @property
    def height(self) -> float:
        return self.bottom - self.top

    @property
    def center(self) -> tuple[float, float]:
        return ((self.left + self.right) / 2, (self.top + self.bottom) / 2)

    @property
    def is_visible(self) -> bool:
        return self.width > 0 and self.height > 0


class SnapshotNode(BaseModel):
    """One node of a captured DOM snapshot (an element or a text node)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    index: int
    node_type: Literal['text', 'element']
    tag_name: str | None = None
    text: str = ''
    value: str = ''
    placeholder: str = ''
    input_type: str | None = None
    attributes: dict[str, str] = Field(default_factory=dict)
    parent_index: int | None = None
    has_parent_element: bool = True
    rect: Rect | None = None

    def get_property(self, name: str) -> Any:
        """Best-effort equivalent of reading ``element[name]`` in the page."""
        if name == 'value':
            return self.value
        if name == 'placeholder':
            return self.placeholder or self.attributes.get('placeholder')
        if name == 'type':
            return self.input_type
        if name == 'className':
            return self.attributes.get('class')
        return self.attributes.get(name)


class Candidate(BaseModel):
    """A node considered as a match, with its rectangle and score (lower is better)."""

    model_config = ConfigDict(frozen=True)

    node: SnapshotNode
    rect: Rect
    score: float


class ResolutionReason(str, Enum):
    MATCHED = 'matched'
    NO_MATCH_WITHOUT_CONSTRAINTS = 'no matching elements, even without applying constraints'
    NO_MATCH = 'no matching elements'


class SelectorResolution(BaseModel):
    candidates: list[Candidate] = Field(default_factory=list)
    reason: ResolutionReason = ResolutionReason.MATCHED

    @property
    def matched(self) -> bool:
        return bool(self.candidates)


def describe_constraint(constraint: ConstraintDescriptor) -> str:
    reference = describe_selector(constraint.reference_selector)
    prefix = {
        'above': 'above',
        'below': 'below',
        'toLeftOf': 'to left of',
        'toRightOf': 'to right of',
        'near': 'near',
    }[constraint.type]
    return f'{prefix} {reference}'


def describe_selector(selector: SelectorDescriptor) -> str:
    """Human-readable selector description, e.g. ``Submit below Email``."""
    if selector.kind == 'cssSelector':
        base = f'$({selector.params["cssSelector"]})'
    elif selector.kind == 'text':
        base = f'{selector.params["text"]}'
    else:
        attributes = selector.params.get('attributes')
        if attributes:
            pairs = ', '.join(f'{key}={value}' for key, value in attributes.items())
            base = f'text box ({pairs})'
        else:
            base = 'text box'
    if not selector.constraints:
        return base
    return f'{base} {" and ".join(describe_constraint(c) for c in selector.constraints)}'


SelectorDescriptor.model_rebuild()

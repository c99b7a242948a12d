"""Selector builders.

    >>> click(text('Submit', below('Email')))
    >>> write('jane@example.com', into=text_box(attributes={'name': 'email'}))
    >>> css('button.primary', to_right_of(text('Cancel')))

A plain string wherever a selector is expected means ``text(string)``.
"""

from typing import Any, Union

from steerbrowser.dom.views import ConstraintDescriptor, SelectorDescriptor

SelectorLike = Union[str, SelectorDescriptor]


def as_selector(selector: SelectorLike, *constraints: ConstraintDescriptor) -> SelectorDescriptor:
    """Coerce a string or descriptor to a descriptor and append extra constraints."""
    if isinstance(selector, str):
        return text(selector, *constraints)
    if isinstance(selector, SelectorDescriptor):
        return selector.with_constraints(*constraints)
    raise TypeError(f'Expected a selector or a string, got {type(selector).__name__}')


def css(selector: str, *constraints: ConstraintDescriptor) -> SelectorDescriptor:
    return SelectorDescriptor(kind='cssSelector', params={'cssSelector': selector}, constraints=constraints)


def text(value: str, *constraints: ConstraintDescriptor, exact: bool = False) -> SelectorDescriptor:
    return SelectorDescriptor(kind='text', params={'text': value, 'exact': exact}, constraints=constraints)


def text_box(*constraints: ConstraintDescriptor, attributes: dict[str, Any] | None = None) -> SelectorDescriptor:
    """Text-like inputs and textareas, optionally filtered by attribute values."""
    for constraint in constraints:
        if not isinstance(constraint, ConstraintDescriptor):
            raise TypeError(f'text_box() takes constraints positionally, got {type(constraint).__name__}; pass attributes=...')
    params = {'attributes': dict(attributes)} if attributes else {}
    return SelectorDescriptor(kind='textBox', params=params, constraints=constraints)


def _constraint(constraint_type: str, reference: SelectorLike) -> ConstraintDescriptor:
    return ConstraintDescriptor(type=constraint_type, reference_selector=as_selector(reference))


def above(reference: SelectorLike) -> ConstraintDescriptor:
    return _constraint('above', reference)


def below(reference: SelectorLike) -> ConstraintDescriptor:
    return _constraint('below', reference)


def to_left_of(reference: SelectorLike) -> ConstraintDescriptor:
    return _constraint('toLeftOf', reference)


def to_right_of(reference: SelectorLike) -> ConstraintDescriptor:
    return _constraint('toRightOf', reference)


def near(reference: SelectorLike) -> ConstraintDescriptor:
    return _constraint('near', reference)

"""Selector resolution engine.

``resolve`` is a pure function of a selector tree and one DOMSnapshot:

1. resolve every constraint's reference selector (with its own constraints),
2. resolve the primary selector without constraints, scoring match quality,
3. drop candidates with an empty rectangle,
4. add, per constraint, the minimum non-negative distance to any reference
   rectangle; directional constraints with no such distance eliminate the candidate,
5. stable-sort ascending by score and keep the best MAX_CANDIDATES.

ElementFinder is the retrieval layer: it captures snapshots from the live
page, retries while nothing matches and hands back Element handles.
"""

import logging
import math
from typing import TYPE_CHECKING

from steerbrowser.dom.snapshot import CAPTURE_SNAPSHOT_JS, SNAPSHOT_STORE, CapturedSnapshot, DOMSnapshot
from steerbrowser.dom.views import (
    Candidate,
    ConstraintType,
    Rect,
    ResolutionReason,
    SelectorDescriptor,
    SelectorResolution,
    SnapshotNode,
    describe_selector,
)
from steerbrowser.exceptions import ElementNotFoundError, ScriptExecutionError, WaitTimeoutError
from steerbrowser.utils import wait_until

if TYPE_CHECKING:
    from steerbrowser.actor.element import Element
    from steerbrowser.browser.session import BrowserSession

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 50

TEXT_NODE_EXACT_SCORE = 0
TEXT_NODE_CONTAINS_SCORE = 10
ELEMENT_EXACT_SCORE = 5
ELEMENT_CONTAINS_SCORE = 15
FIELD_EXACT_SCORE = 0
FIELD_CONTAINS_SCORE = 10

# Element retrieval polling, in milliseconds
FIND_RETRY_INTERVAL = 100
FIND_RETRY_TIMEOUT = 3000


def distance(reference: Rect, rect: Rect, constraint_type: ConstraintType) -> float:
    """Signed distance of ``rect`` from ``reference`` for one constraint type."""
    if constraint_type == 'above':
        return reference.top - rect.bottom
    if constraint_type == 'below':
        return rect.top - reference.bottom
    if constraint_type == 'toLeftOf':
        return reference.left - rect.right
    if constraint_type == 'toRightOf':
        return rect.left - reference.right
    if constraint_type == 'near':
        reference_x, reference_y = reference.center
        x, y = rect.center
        return math.hypot(reference_x - x, reference_y - y)
    raise ValueError(f'Unknown constraint type: {constraint_type}')


def resolve(selector: SelectorDescriptor, snapshot: DOMSnapshot) -> list[Candidate]:
    """Ranked candidates for ``selector`` in ``snapshot``. Empty means no match; never raises."""
    try:
        resolution = resolve_selector(selector, snapshot)
    except Exception as e:
        logger.warning(f'elements not found: {describe_selector(selector)}: {type(e).__name__}: {e}')
        return []
    if not resolution.matched:
        logger.debug(f'elements not found: {describe_selector(selector)}: {resolution.reason.value}')
    return resolution.candidates


def resolve_selector(selector: SelectorDescriptor, snapshot: DOMSnapshot) -> SelectorResolution:
    """Resolve ``selector``, reporting why nothing matched when that is the case."""
    references = [
        (constraint.type, resolve_selector(constraint.reference_selector, snapshot).candidates)
        for constraint in selector.constraints
    ]

    visible = [c for c in _resolve_unconstrained(selector, snapshot) if c.rect.is_visible]
    if not visible:
        return SelectorResolution(reason=ResolutionReason.NO_MATCH_WITHOUT_CONSTRAINTS)

    ranked: list[Candidate] = []
    for candidate in visible:
        score = candidate.score
        for constraint_type, reference_candidates in references:
            distances = [
                d for d in (distance(ref.rect, candidate.rect, constraint_type) for ref in reference_candidates) if d >= 0
            ]
            if not distances:
                break
            score += min(distances)
        else:
            ranked.append(candidate.model_copy(update={'score': score}))

    ranked.sort(key=lambda c: c.score)
    ranked = ranked[:MAX_CANDIDATES]
    if not ranked:
        return SelectorResolution(reason=ResolutionReason.NO_MATCH)
    return SelectorResolution(candidates=ranked)


def _resolve_unconstrained(selector: SelectorDescriptor, snapshot: DOMSnapshot) -> list[Candidate]:
    if selector.kind == 'cssSelector':
        return _candidates(snapshot, snapshot.query_selector_all(selector.params['cssSelector']), 0)
    if selector.kind == 'text':
        return _resolve_text(selector.params['text'], bool(selector.params.get('exact', False)), snapshot)
    if selector.kind == 'textBox':
        fields = snapshot.text_like_fields()
        attributes = selector.params.get('attributes')
        if attributes:
            fields = [
                field
                for field in fields
                if all(_loosely_equal(field.get_property(key), value) for key, value in attributes.items())
            ]
        return _candidates(snapshot, fields, 0)
    raise ValueError(f'Unknown selector kind: {selector.kind}')


def _resolve_text(wanted: str, exact: bool, snapshot: DOMSnapshot) -> list[Candidate]:
    exact_matches: list[Candidate] = []
    partial_matches: list[Candidate] = []

    def consider(node: SnapshotNode, text: str, exact_score: int, partial_score: int, needs_parent: bool) -> None:
        rect = snapshot.rect(node)
        if rect is None:
            return
        if text == wanted:
            exact_matches.append(Candidate(node=node, rect=rect, score=exact_score))
        elif not exact and wanted in text and (node.has_parent_element or not needs_parent):
            partial_matches.append(Candidate(node=node, rect=rect, score=partial_score))

    text_nodes = snapshot.text_nodes()
    for node in text_nodes:
        consider(node, node.text, TEXT_NODE_EXACT_SCORE, TEXT_NODE_CONTAINS_SCORE, needs_parent=True)

    seen: set[int] = set()
    for node in text_nodes:
        parent = snapshot.parent_element(node)
        if parent is None or parent.index in seen:
            continue
        seen.add(parent.index)
        consider(parent, parent.text, ELEMENT_EXACT_SCORE, ELEMENT_CONTAINS_SCORE, needs_parent=True)

    for field in snapshot.text_like_fields():
        consider(field, field.value or field.placeholder or '', FIELD_EXACT_SCORE, FIELD_CONTAINS_SCORE, needs_parent=False)

    return exact_matches + partial_matches


def _candidates(snapshot: DOMSnapshot, nodes: list[SnapshotNode], score: int) -> list[Candidate]:
    candidates = []
    for node in nodes:
        rect = snapshot.rect(node)
        if rect is not None:
            candidates.append(Candidate(node=node, rect=rect, score=score))
    return candidates


def _loosely_equal(actual, expected) -> bool:
    if actual is None:
        return expected is None
    if isinstance(expected, bool):
        return str(actual).lower() == str(expected).lower()
    return str(actual) == str(expected)


class ElementFinder:
    """Finds live elements for a selector by snapshotting the page and resolving.

    Args:
        session: Session providing the script-execution capability.
        retry_interval: Polling interval in milliseconds.
        retry_timeout: Give up after this many milliseconds.
    """

    def __init__(
        self,
        session: 'BrowserSession',
        retry_interval: int = FIND_RETRY_INTERVAL,
        retry_timeout: int = FIND_RETRY_TIMEOUT,
    ):
        self.session = session
        self.retry_interval = retry_interval
        self.retry_timeout = retry_timeout

    async def capture(self, selector: SelectorDescriptor) -> DOMSnapshot:
        payload = await self.session.call_function(CAPTURE_SNAPSHOT_JS.strip(), selector.css_selectors(), SNAPSHOT_STORE)
        return CapturedSnapshot.from_payload(payload or {})

    async def find_candidates(self, selector: SelectorDescriptor) -> list[Candidate]:
        """One snapshot, one resolution. Script errors count as "nothing found yet"."""
        try:
            snapshot = await self.capture(selector)
        except ScriptExecutionError as e:
            logger.debug(f'Snapshot capture failed for {describe_selector(selector)}: {e}')
            return []
        return resolve(selector, snapshot)

    async def find(
        self,
        selector: SelectorDescriptor,
        retry_interval: int | None = None,
        retry_timeout: int | None = None,
    ) -> list['Element']:
        """Return handles for every ranked candidate, retrying until at least one exists.

        Raises:
            ElementNotFoundError: If nothing matched before the retry timeout.
        """
        from steerbrowser.actor.element import Element

        description = describe_selector(selector)
        logger.debug(f'searching: {description}')
        found: list[Candidate] = []

        async def attempt() -> bool:
            nonlocal found
            found = await self.find_candidates(selector)
            return bool(found)

        try:
            await wait_until(
                attempt,
                interval=self.retry_interval if retry_interval is None else retry_interval,
                timeout=self.retry_timeout if retry_timeout is None else retry_timeout,
            )
        except WaitTimeoutError as e:
            raise ElementNotFoundError(description) from e

        elements = []
        for candidate in found:
            object_id = await self.session.evaluate_handle(f'window[{SNAPSHOT_STORE!r}][{candidate.node.index}]')
            if object_id is None:
                continue
            elements.append(Element(self.session, object_id, candidate=candidate, description=description))
        if not elements:
            raise ElementNotFoundError(description, 'matched nodes are no longer attached to the page')
        logger.debug(f'found: {len(elements)} element(s) for {description}')
        return elements

    async def first(self, selector: SelectorDescriptor) -> 'Element':
        return (await self.find(selector))[0]

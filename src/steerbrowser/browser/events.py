"""Event definitions for the steerbrowser event bus.

Events are published under a structured ``Topic`` rather than a concatenated
string, so a topic for frame-specific or dialog-specific traffic carries its
key as data:

    >>> Topic(EventKind.LIFECYCLE, 'networkIdle')
    >>> Topic(EventKind.DIALOG_OPENING, DialogKey('alert', 'Are you sure?'))

Payloads are pydantic models so they can be logged and asserted on easily.
"""

from enum import Enum
from typing import Any, Hashable, NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class EventKind(str, Enum):
    """Every kind of event that flows through the bus."""

    # Frame / navigation lifecycle
    FRAME_SCHEDULED_NAVIGATION = 'frameScheduledNavigation'
    FRAME_CLEARED_NAVIGATION = 'frameClearedScheduledNavigation'
    FRAME_NAVIGATED = 'frameNavigated'
    FRAME_STARTED_LOADING = 'frameStartedLoading'
    FRAME_STOPPED_LOADING = 'frameStoppedLoading'
    DOM_CONTENT_LOADED = 'domContentEventFired'
    LOAD_EVENT_FIRED = 'loadEventFired'
    NAVIGATED_WITHIN_DOCUMENT = 'navigatedWithinDocument'
    LIFECYCLE = 'lifecycleEvent'
    DIALOG_OPENING = 'javascriptDialogOpening'

    # Network
    REQUEST_STARTED = 'requestStarted'
    RESPONSE_RECEIVED = 'responseReceived'

    # Targets and session
    TARGET_CREATED = 'targetCreated'
    TARGET_NAVIGATED = 'targetNavigated'
    SESSION_CREATED = 'sessionCreated'
    RECONNECTING = 'reconnecting'
    RECONNECTED = 'reconnected'
    BROWSER_CRASHED = 'browserCrashed'

    # Action layer
    ACTION_SUCCEEDED = 'actionSucceeded'


class DialogKey(NamedTuple):
    type: str
    message: str


class Topic(NamedTuple):
    """Structured bus key: an event kind plus an optional hashable discriminator."""

    kind: EventKind
    key: Hashable | None = None

    def __str__(self) -> str:
        if self.key is None:
            return self.kind.value
        return f'{self.kind.value}[{self.key}]'


class BrowserEvent(BaseModel):
    """Base class for all bus payloads."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra='forbid', revalidate_instances='never')


class FrameEvent(BrowserEvent):
    """A frame-scoped navigation or loading event."""

    frame_id: str


class LifecycleEvent(BrowserEvent):
    frame_id: str
    name: str
    loader_id: str | None = None


class PageLoadEvent(BrowserEvent):
    """DOM content loaded, load fired, or a same-document navigation."""

    timestamp: float | None = None
    frame_id: str | None = None
    url: str | None = None


class RequestStartedEvent(BrowserEvent):
    request_id: str
    url: str
    url_fragment: str | None = None
    frame_id: str | None = None


class ResponseReceivedEvent(BrowserEvent):
    """A network response, or the synthetic 200 produced for same-document navigations."""

    request_id: str | None = None
    url: str | None = None
    status: int = 200
    status_text: str = ''
    same_document: bool = False


class DialogOpeningEvent(BrowserEvent):
    type: str
    message: str
    default_prompt: str | None = None
    url: str | None = None


class TargetCreatedEvent(BrowserEvent):
    target_id: str
    type: str
    url: str = ''
    title: str = ''


class SessionCreatedEvent(BrowserEvent):
    """Emitted once a session's wiring is complete and it is ready for commands."""

    target_id: str
    url: str = ''
    reconnect: bool = False


class ReconnectEvent(BrowserEvent):
    host: str
    port: int


class BrowserCrashedEvent(BrowserEvent):
    message: str
    pid: int | None = None
    exit_code: int | None = None
    signal: int | None = None


class ActionSucceededEvent(BrowserEvent):
    """One human-readable description per completed action."""

    description: str
    details: dict[str, Any] = Field(default_factory=dict)


def dialog_topic(dialog_type: str, message: str) -> Topic:
    return Topic(EventKind.DIALOG_OPENING, DialogKey(dialog_type, message))

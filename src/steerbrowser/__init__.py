"""steerbrowser - reliable browser actions over the Chrome DevTools Protocol."""

__version__ = "0.1.0"

from steerbrowser.actor import Element, Page
from steerbrowser.browser import (
    BrowserSession,
    EventBus,
    EventKind,
    NavigationSynchronizer,
    SessionState,
    Topic,
)
from steerbrowser.config import BrowserConfig, NavigationOptions
from steerbrowser.dom import (
    ElementFinder,
    above,
    below,
    css,
    near,
    text,
    text_box,
    to_left_of,
    to_right_of,
)
from steerbrowser.exceptions import (
    BrowserConnectionError,
    BrowserCrashError,
    BrowserError,
    ElementNotFoundError,
    NavigationFailedError,
    NavigationTimeoutError,
    ProtocolError,
    TargetNotFoundError,
    UnsupportedOperationError,
)
from steerbrowser.logging_config import setup_logging

# Browser alias for a shorter API
Browser = BrowserSession

__all__ = [
    "Browser",
    "BrowserConfig",
    "BrowserConnectionError",
    "BrowserCrashError",
    "BrowserError",
    "BrowserSession",
    "Element",
    "ElementFinder",
    "ElementNotFoundError",
    "EventBus",
    "EventKind",
    "NavigationFailedError",
    "NavigationOptions",
    "NavigationSynchronizer",
    "NavigationTimeoutError",
    "Page",
    "ProtocolError",
    "SessionState",
    "TargetNotFoundError",
    "Topic",
    "UnsupportedOperationError",
    "above",
    "below",
    "css",
    "near",
    "setup_logging",
    "text",
    "text_box",
    "to_left_of",
    "to_right_of",
]

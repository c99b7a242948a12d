"""Browser module for the protocol session, event bus and navigation waiting."""

from steerbrowser.browser.event_bus import EventBus
from steerbrowser.browser.events import EventKind, Topic, dialog_topic
from steerbrowser.browser.navigation import NavigationSynchronizer
from steerbrowser.browser.session import BrowserSession, ClientView, SessionState
from steerbrowser.browser.targets import TargetDirectory, TargetInfo

__all__ = [
    "BrowserSession",
    "ClientView",
    "EventBus",
    "EventKind",
    "NavigationSynchronizer",
    "SessionState",
    "TargetDirectory",
    "TargetInfo",
    "Topic",
    "dialog_topic",
]

"""Actor module for high-level page actions."""

from steerbrowser.actor.element import Element
from steerbrowser.actor.page import Page

__all__ = [
    "Element",
    "Page",
]

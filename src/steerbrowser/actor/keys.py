"""Keyboard definitions for Input.dispatchKeyEvent."""

import logging
from typing import Any

logger = logging.getLogger(__name__)

MODIFIER_BITS = {'Alt': 1, 'Control': 2, 'Meta': 4, 'Shift': 8}

_NAMED_KEYS: dict[str, tuple[str, int]] = {
    'Alt': ('AltLeft', 18),
    'Control': ('ControlLeft', 17),
    'Meta': ('MetaLeft', 91),
    'Shift': ('ShiftLeft', 16),
    'ArrowDown': ('ArrowDown', 40),
    'ArrowLeft': ('ArrowLeft', 37),
    'ArrowRight': ('ArrowRight', 39),
    'ArrowUp': ('ArrowUp', 38),
    'End': ('End', 35),
    'Home': ('Home', 36),
    'PageDown': ('PageDown', 34),
    'PageUp': ('PageUp', 33),
    'Backspace': ('Backspace', 8),
    'Delete': ('Delete', 46),
    'Insert': ('Insert', 45),
    'Enter': ('Enter', 13),
    'Tab': ('Tab', 9),
    'Space': ('Space', 32),
    ' ': ('Space', 32),
    'Escape': ('Escape', 27),
    'CapsLock': ('CapsLock', 20),
}
_NAMED_KEYS.update({f'F{n}': (f'F{n}', 111 + n) for n in range(1, 13)})
_NAMED_KEYS.update({f'Numpad{n}': (f'Numpad{n}', 96 + n) for n in range(10)})

# Keys whose keyDown should also insert text
_KEY_TEXT = {'Enter': '\r', 'Tab': '\t', 'Space': ' ', ' ': ' '}


def get_key_info(key: str) -> tuple[str, int | None]:
    """Return ``(code, windowsVirtualKeyCode)`` for a key name or single character."""
    if key in _NAMED_KEYS:
        return _NAMED_KEYS[key]
    if len(key) == 1:
        if key.isalpha():
            return f'Key{key.upper()}', ord(key.upper())
        if key.isdigit():
            return f'Digit{key}', ord(key)
        return key, ord(key)
    logger.warning(f'Unknown key: {key}, dispatching without a virtual key code')
    return key, None


def key_event(key: str, event_type: str, modifiers: int = 0) -> dict[str, Any]:
    """Build Input.dispatchKeyEvent params for ``key``."""
    code, key_code = get_key_info(key)
    params: dict[str, Any] = {'type': event_type, 'key': key, 'code': code, 'modifiers': modifiers}
    if key_code is not None:
        params['windowsVirtualKeyCode'] = key_code
    if event_type == 'keyDown':
        text = _KEY_TEXT.get(key, key if len(key) == 1 else None)
        if text is not None and not modifiers & (MODIFIER_BITS['Control'] | MODIFIER_BITS['Meta']):
            params['text'] = text
    return params


def modifier_mask(keys: list[str]) -> int:
    mask = 0
    for key in keys:
        mask |= MODIFIER_BITS.get(key, 0)
    return mask

"""Hex color helpers shared by the render hooks, the legend and the DOM pass."""

from __future__ import annotations

import re

DEFAULT_BACKGROUND_OPACITY = 0.15

_HEX_COLOR_RE = re.compile(r'^#(?:[0-9a-fA-F]{3}){1,2}$')
_HEX_DIGITS = frozenset('0123456789abcdefABCDEF')


def sanitize_hex_color(value) -> str:
    """Return ``value`` when it is ``#RGB`` or ``#RRGGBB``, else ``''``."""
    if not isinstance(value, str):
        return ''
    value = value.strip()
    if not value:
        return ''
    return value if _HEX_COLOR_RE.match(value) else ''


def sanitize_color(value) -> str:
    """Admin-form variant of :func:`sanitize_hex_color`.

    Accepts colors typed without the leading ``#``.
    """
    if not isinstance(value, str):
        return ''
    value = value.strip()
    if not value:
        return ''
    if not value.startswith('#'):
        value = '#' + value
    return sanitize_hex_color(value)


def _format_alpha(alpha: float) -> str:
    # 0.15 -> "0.15", 1.0 -> "1" (matches how browsers print the number)
    return '%.10g' % float(alpha)


def hex_to_rgba(hex_color, alpha: float = DEFAULT_BACKGROUND_OPACITY) -> str:
    """Convert ``#f00`` / ``#ff0000`` to ``rgba(255, 0, 0, 0.15)``.

    Invalid input yields ``''``; this never raises.
    """
    if not isinstance(hex_color, str):
        return ''
    digits = hex_color.strip().lstrip('#')
    if len(digits) == 3:
        digits = ''.join(ch * 2 for ch in digits)
    if len(digits) != 6 or not all(ch in _HEX_DIGITS for ch in digits):
        return ''
    r = int(digits[0:2], 16)
    g = int(digits[2:4], 16)
    b = int(digits[4:6], 16)
    try:
        alpha_text = _format_alpha(alpha)
    except (TypeError, ValueError):
        alpha_text = _format_alpha(DEFAULT_BACKGROUND_OPACITY)
    return f'rgba({r}, {g}, {b}, {alpha_text})'

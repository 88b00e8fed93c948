"""Hex color helpers for category swatches and tag colors."""

import random
import re
from typing import Optional

DEFAULT_COLOR_HEX = "#808080"

_HEX_DIGITS = re.compile(r"^[0-9a-fA-F]+$")


def parse_hex(value: str) -> Optional[tuple[float, float, float, float]]:
    """Parse "#RRGGBB" or "#RRGGBBAA" into normalized channels.

    Args:
        value: Hex string, leading "#" optional.

    Returns:
        (red, green, blue, alpha) in [0, 1], or None if malformed.
    """
    digits = value[1:] if value.startswith("#") else value
    if len(digits) not in (6, 8) or not _HEX_DIGITS.match(digits):
        return None

    number = int(digits, 16)
    if len(digits) == 6:
        r = (number >> 16) & 0xFF
        g = (number >> 8) & 0xFF
        b = number & 0xFF
        a = 255
    else:
        r = (number >> 24) & 0xFF
        g = (number >> 16) & 0xFF
        b = (number >> 8) & 0xFF
        a = number & 0xFF
    return (r / 255, g / 255, b / 255, a / 255)


def to_hex(red: float, green: float, blue: float, alpha: float = 1.0) -> str:
    """Format normalized channels as hex; alpha is only written when not opaque."""
    r, g, b, a = (round(_clamp(c) * 255) for c in (red, green, blue, alpha))
    if a < 255:
        return f"#{r:02X}{g:02X}{b:02X}{a:02X}"
    return f"#{r:02X}{g:02X}{b:02X}"


def is_valid_hex(value: str) -> bool:
    return parse_hex(value) is not None


def random_hex() -> str:
    """Random opaque color."""
    return to_hex(random.random(), random.random(), random.random())


def _clamp(channel: float) -> float:
    return min(max(channel, 0.0), 1.0)

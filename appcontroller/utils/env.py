"""
Environment variable helpers.

Invalid or out-of-range values never fail: a warning is logged and the
default is returned instead.
"""

import os
import re

from appcontroller.utils.logging import get_logger

logger = get_logger(__name__)

MAX_INT32 = 2**31 - 1

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {
    "h": 3600.0,
    "m": 60.0,
    "s": 1.0,
    "ms": 0.001,
}


def parse_duration(value: str) -> float:
    """
    Parse a duration string into seconds.

    Accepts bare numbers (seconds) and unit strings such as
    ``90s``, ``3m``, ``1h30m`` or ``250ms``.

    Args:
        value: Duration string

    Returns:
        Duration in seconds

    Raises:
        ValueError: If the string is not a valid duration
    """
    text = value.strip()
    if not text:
        raise ValueError("empty duration")

    try:
        return float(text)
    except ValueError:
        pass

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()

    if position != len(text):
        raise ValueError(f"invalid duration: {value!r}")

    return total


def string_from_env(name: str, default: str) -> str:
    """Return the environment variable value, or default if unset or empty."""
    value = os.getenv(name)
    if value:
        return value
    return default


def parse_num_from_env(name: str, default: int, minimum: int, maximum: int) -> int:
    """
    Parse an integer environment variable.

    Args:
        name: Variable name
        default: Value used when unset or invalid
        minimum: Smallest accepted value
        maximum: Largest accepted value

    Returns:
        Parsed value or default
    """
    text = os.getenv(name)
    if not text:
        return default

    try:
        number = int(text)
    except ValueError:
        logger.warning(
            "Could not parse environment variable as a number, using default",
            name=name,
            value=text,
            default=default,
        )
        return default

    if number < minimum or number > maximum:
        logger.warning(
            "Environment variable is out of range, using default",
            name=name,
            value=number,
            minimum=minimum,
            maximum=maximum,
            default=default,
        )
        return default

    return number


def parse_duration_from_env(
    name: str,
    default: float,
    minimum: float,
    maximum: float,
) -> float:
    """
    Parse a duration environment variable into seconds.

    Args:
        name: Variable name
        default: Seconds used when unset or invalid
        minimum: Smallest accepted value in seconds
        maximum: Largest accepted value in seconds

    Returns:
        Parsed duration in seconds or default
    """
    text = os.getenv(name)
    if not text:
        return default

    try:
        seconds = parse_duration(text)
    except ValueError:
        logger.warning(
            "Could not parse environment variable as a duration, using default",
            name=name,
            value=text,
            default=default,
        )
        return default

    if seconds < minimum or seconds > maximum:
        logger.warning(
            "Environment variable is out of range, using default",
            name=name,
            value=seconds,
            minimum=minimum,
            maximum=maximum,
            default=default,
        )
        return default

    return seconds

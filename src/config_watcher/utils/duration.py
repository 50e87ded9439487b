"""Duration literal parsing (``30``, ``30s``, ``5m``, ``2h``, ``1d``)."""

import re

_DURATION_PATTERN = re.compile(r"^(\d+)([smhd]?)$")

_UNIT_SECONDS = {
    "": 1,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
}


def parse_duration(value: str | int) -> int:
    """Parse a duration literal into seconds.

    Args:
        value: ``<uint>[s|m|h|d]``; bare integers are seconds

    Returns:
        Number of seconds

    Raises:
        ValueError: If the literal does not match the grammar
    """
    if isinstance(value, bool):
        msg = f"Invalid duration: {value!r}"
        raise ValueError(msg)
    if isinstance(value, int):
        if value < 0:
            msg = f"Invalid duration: {value!r}"
            raise ValueError(msg)
        return value
    if not isinstance(value, str):
        msg = f"Invalid duration: {value!r} (expected <number>[s|m|h|d])"
        raise ValueError(msg)

    match = _DURATION_PATTERN.match(value.strip().lower())
    if not match:
        msg = f"Invalid duration: {value!r} (expected <number>[s|m|h|d])"
        raise ValueError(msg)

    amount, unit = match.groups()
    return int(amount) * _UNIT_SECONDS[unit]

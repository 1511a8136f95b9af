"""Human-readable size strings for upload ceilings.

Units are binary: ``KB`` = 1024, ``MB`` = 1024**2, ``GB`` = 1024**3.
A bare number is a byte count. Matching is case-insensitive, so
``"100kB"`` and ``"100KB"`` are the same value.
"""
import re

_SIZE_RE = re.compile(r"^([0-9]*\.?[0-9]+)\s*(KB|MB|GB)?$")

_MULTIPLIERS = {
    "B":  1,
    "KB": 1024,
    "MB": 1024 ** 2,
    "GB": 1024 ** 3,
}


def parse_size(value: str) -> int:
    """Parse a size such as ``"1GB"`` or ``"500MB"`` into a byte count.

    Fractional values are allowed and the result is floored
    (``"0.5GB"`` -> 536870912).

    Raises:
        ValueError: If the string is not a recognised size.
    """
    match = _SIZE_RE.match(value.strip().upper())
    if not match:
        raise ValueError(f"Invalid size: {value}")
    number = float(match.group(1))
    unit = match.group(2) or "B"
    return int(number * _MULTIPLIERS[unit])

# utils.py

import math

UNITS = {
    "Bytes": 1,
    "KiB": 1024,
    "MiB": 1024 ** 2,
    "GiB": 1024 ** 3,
}

FREE_COLOR = "lightgray"
UNOWNED_COLOR = "hsl(0, 0%, 60%)"


def format_bytes(num_bytes):
    """Human readable size, e.g. 1572864 -> '1.5 MiB'."""
    if num_bytes == 0:
        return "0 Bytes"

    names = list(UNITS)
    i = 0
    while i < len(names) - 1 and abs(num_bytes) >= UNITS[names[i + 1]]:
        i += 1

    try:
        value = round(num_bytes / UNITS[names[i]], 2)
    except OverflowError:
        # too large for a float, show whole units
        return f"{num_bytes // UNITS[names[i]]} {names[i]}"

    # rounding can carry into the next unit, e.g. 1023.999 KiB
    if abs(value) >= 1024 and i < len(names) - 1:
        i += 1
        value = round(num_bytes / UNITS[names[i]], 2)
    return f"{value:g} {names[i]}"


def to_bytes(magnitude, unit="Bytes"):
    """
    Convert a magnitude + unit pair from the input form into bytes.

    Returns NaN when the magnitude is not a number, so the controller
    rejects it like any other invalid size.
    """
    if unit not in UNITS:
        raise ValueError(f"Unknown unit: {unit!r}")
    try:
        value = float(magnitude)
    except (TypeError, ValueError):
        return math.nan
    return value * UNITS[unit]


def get_color(occupied, process_id=None):
    """Return a color for occupied/free blocks."""
    if not occupied:
        return FREE_COLOR
    if process_id is None:
        return UNOWNED_COLOR
    # pastel colors, stable per process
    hue = (process_id * 67) % 360
    return f"hsl({hue}, 70%, 75%)"

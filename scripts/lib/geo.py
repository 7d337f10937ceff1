"""
Location string parsing.

Participants store their location as a free-form "lat,lng" string. Map
rendering downstream needs finite numbers, so parsing never fails: anything
that cannot be read degrades to the origin.
"""

import math

from .models import Coordinates, UNKNOWN_LOCATION


ORIGIN: Coordinates = (0.0, 0.0)


def _parse_coordinate(text: str) -> float:
    """Parse one coordinate, returning 0 for anything non-numeric or non-finite."""
    try:
        value = float(text.strip())
    except ValueError:
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return value


def parse_location(location: str) -> Coordinates:
    """
    Convert a stored location string into a (lat, lng) pair.

    Args:
        location: Two comma-separated decimal numbers, e.g. "40.0,-3.0"

    Returns:
        The parsed pair. Input without exactly two comma-separated parts
        yields the origin; an unparsable half becomes 0.

    Examples:
        parse_location("40.0,-3.0") -> (40.0, -3.0)
        parse_location("40.0,abc") -> (40.0, 0.0)
        parse_location("") -> (0.0, 0.0)
    """
    parts = (location or UNKNOWN_LOCATION).split(",")
    if len(parts) != 2:
        return ORIGIN
    return (_parse_coordinate(parts[0]), _parse_coordinate(parts[1]))

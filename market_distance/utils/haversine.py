# Haversine formula (miles) and distance label helpers.

import re
from math import radians, sin, cos, sqrt, asin
from typing import Optional

# Earth's radius in miles
R = 3958.8

_LABEL_PATTERN = re.compile(r'^\s*([\d,]+(?:\.\d+)?)\s*(?:mi|miles?)\b', re.IGNORECASE)
_FEET_PATTERN = re.compile(r'^\s*([\d,]+)\s*ft\b', re.IGNORECASE)

def distance_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Calculate the great-circle distance between two points
    on the Earth (specified in decimal degrees) using the Haversine formula.

    Args:
        lat1: Latitude of point 1.
        lng1: Longitude of point 1.
        lat2: Latitude of point 2.
        lng2: Longitude of point 2.

    Returns:
        Distance between the two points in miles.
    """
    lat1, lng1, lat2, lng2 = map(radians, [lat1, lng1, lat2, lng2])

    dlng = lng2 - lng1
    dlat = lat2 - lat1

    a = sin(dlat / 2)**2 + cos(lat1) * cos(lat2) * sin(dlng / 2)**2
    # Rounding can push a hair above 1.0 for antipodal points
    c = 2 * asin(sqrt(min(1.0, a)))

    return R * c

def format_miles(miles: float) -> str:
    """Format a numeric distance the way the storefront shows it, e.g. '3.2 mi'."""
    return f"{miles:.1f} mi"

def parse_miles(label: Optional[str]) -> Optional[float]:
    """
    Read the numeric miles back out of a distance label.

    Understands both our own labels ('3.2 mi') and the distance-matrix text
    ('1,204 mi', '0.4 miles', '500 ft'). Sentinel labels return None.
    """
    if not label:
        return None
    match = _LABEL_PATTERN.match(label)
    if match:
        return float(match.group(1).replace(",", ""))
    match = _FEET_PATTERN.match(label)
    if match:
        return float(match.group(1).replace(",", "")) / 5280.0
    return None

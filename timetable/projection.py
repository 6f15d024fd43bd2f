"""
Projection of (lat, lon) into the fixed planar display frame.

The frame is the Web-Mercator image of Slovakia's bounding box
(lat 47.693–49.67, lon 16.729–22.706), scaled to IMAGE_WIDTH × IMAGE_HEIGHT
scene units and centred on the origin. Only the renderer uses it; internal
weighting uses raw-degree planar distance instead.
"""

import math


def to_web_mercator(deg: float) -> float:
    return 180 * (math.pi - math.log(math.tan(math.pi / 4 + math.pi * deg / 360))) - math.pi


MAX_LAT = to_web_mercator(49.67)
MIN_LAT = to_web_mercator(47.693)
MAX_LONG = 22.706
MIN_LONG = 16.729
LAT_DIF = MAX_LAT - MIN_LAT
LONG_DIF = MAX_LONG - MIN_LONG

IMAGE_WIDTH = 7.31
IMAGE_HEIGHT = 3.663


def mercator_lat(latitude: float) -> float:
    """Scene z coordinate of a latitude (north is negative z)."""
    return -IMAGE_HEIGHT * ((to_web_mercator(latitude) - MIN_LAT) / LAT_DIF - 0.5)


def mercator_long(longitude: float) -> float:
    """Scene x coordinate of a longitude."""
    return IMAGE_WIDTH * ((longitude - MIN_LONG) / LONG_DIF - 0.5)


def project(lat: float, lon: float) -> tuple[float, float]:
    """(x, z) scene position of a geographic point."""
    return mercator_long(lon), mercator_lat(lat)

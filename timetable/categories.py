"""
Rolling-stock categories, resolved from a trip's short name.

The short name starts with the category code ("R 612 Tatran", "Os 3305").
Classification walks an ordered rule table top-down and takes the first
match; longer codes are listed before the shorter codes they start with, so
"REX 1701" is a regional express and not an "R".
"""

from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class Category:
    code: str
    label: str
    color: int      # 0xRRGGBB
    shown: bool = True


TRAIN_OS = Category("Os", "Osobný vlak", 0x2E7D32)
TRAIN_ZR = Category("Zr", "Zrýchlený vlak", 0x558B2F)
TRAIN_REX = Category("REX", "Regionálny expres", 0x00897B)
TRAIN_RJX = Category("RJX", "Railjet xpress", 0x8E24AA)
TRAIN_R = Category("R", "Rýchlik", 0xF9A825)
TRAIN_EX = Category("Ex", "Expres", 0xEF6C00)
TRAIN_IC = Category("IC", "InterCity", 0xC62828)
TRAIN_SC = Category("SC", "SuperCity", 0xAD1457)
TRAIN_EN = Category("EN", "EuroNight", 0x283593)
TRAIN_EC = Category("EC", "EuroCity", 0x1565C0)
TRAIN_UNKNOWN = Category("UNKNOWN", "Neznámy", 0x757575)


def _prefix(code: str) -> Callable[[str], bool]:
    return lambda name: name.startswith(code)


_RULES: list[tuple[Callable[[str], bool], Category]] = [
    (_prefix("Os"), TRAIN_OS),
    (_prefix("Zr"), TRAIN_ZR),
    (_prefix("REX"), TRAIN_REX),
    (_prefix("RJX"), TRAIN_RJX),
    (_prefix("R"), TRAIN_R),
    (_prefix("Ex"), TRAIN_EX),
    (_prefix("IC"), TRAIN_IC),
    (_prefix("SC"), TRAIN_SC),
    (_prefix("EN"), TRAIN_EN),
    (_prefix("EC"), TRAIN_EC),
]

CATEGORIES: list[Category] = [category for _, category in _RULES] + [TRAIN_UNKNOWN]


def categorize(short_name: str | None) -> Category:
    """Return the category of a trip short name, TRAIN_UNKNOWN if none matches."""
    name = short_name or ""
    for matches, category in _RULES:
        if matches(name):
            return category
    return TRAIN_UNKNOWN


def category_by_code(code: str) -> Category | None:
    return next((c for c in CATEGORIES if c.code == code), None)

"""
Standard ad sizes, their default element layouts and background aspects.

The pixel values in `_LAYOUTS` are data the editor frontend also relies on.
Changing them moves elements on every newly generated ad, so treat edits as
a visual change, not a refactor.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Dict, Tuple

from adgen.models.positions import ElementPosition, ElementPositions, TextAlign
from adgen.services.errors import MalformedAdSize


_AD_SIZE_RE = re.compile(r"^(\d+)x(\d+)$")


class AdSize(str, Enum):
    """Closed catalogue of standard ad sizes."""

    MEDIUM_RECTANGLE = "300x250"
    LEADERBOARD = "728x90"
    WIDE_SKYSCRAPER = "160x600"
    HALF_PAGE = "300x600"
    MOBILE_BANNER = "320x50"
    LARGE_RECTANGLE = "336x280"
    BILLBOARD = "970x250"
    SOCIAL_SQUARE = "1080x1080"

    @classmethod
    def lookup(cls, ad_size: str) -> "AdSize | None":
        """Return the catalogue entry for `ad_size`, or None for other sizes."""
        try:
            return cls(ad_size)
        except ValueError:
            return None


class Aspect(str, Enum):
    """Background variant aspects. One variant per aspect per campaign."""

    LEADERBOARD = "leaderboard"
    SKYSCRAPER = "skyscraper"
    SQUARE = "square"


def parse_ad_size(ad_size: str) -> Tuple[int, int]:
    """Parse `"<width>x<height>"` into positive integers."""
    if not isinstance(ad_size, str):
        raise MalformedAdSize(ad_size)
    match = _AD_SIZE_RE.match(ad_size.strip())
    if match is None:
        raise MalformedAdSize(ad_size)
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise MalformedAdSize(ad_size)
    return width, height


def _layout(
    logo: Tuple[int, int, int, int],
    headline: Tuple[int, int, int],
    subheadline: Tuple[int, int, int],
    cta: Tuple[int, int, int, int, int],
    align: TextAlign = TextAlign.CENTER,
) -> ElementPositions:
    lx, ly, lw, lh = logo
    hx, hy, hsize = headline
    sx, sy, ssize = subheadline
    cx, cy, cw, ch, csize = cta
    return ElementPositions(
        logo=ElementPosition(x=lx, y=ly, width=lw, height=lh),
        headline=ElementPosition(x=hx, y=hy, font_size=hsize, color="#000000", align=align),
        subheadline=ElementPosition(x=sx, y=sy, font_size=ssize, color="#333333", align=align),
        cta=ElementPosition(
            x=cx, y=cy, width=cw, height=ch, font_size=csize, color="#ffffff", bg_color="#ff0000"
        ),
    )


# (x, y, width, height) / (x, y, fontSize) / (x, y, fontSize) / (x, y, width, height, fontSize)
_LAYOUTS: Dict[AdSize, ElementPositions] = {
    AdSize.MEDIUM_RECTANGLE: _layout((10, 10, 60, 60), (150, 80, 20), (150, 120, 14), (75, 200, 150, 40, 16)),
    AdSize.LEADERBOARD: _layout(
        (10, 15, 60, 60), (85, 30, 20), (85, 60, 14), (568, 25, 150, 40, 16), align=TextAlign.LEFT
    ),
    AdSize.WIDE_SKYSCRAPER: _layout((50, 20, 60, 60), (80, 120, 18), (80, 200, 12), (15, 520, 130, 40, 14)),
    AdSize.HALF_PAGE: _layout((120, 20, 60, 60), (150, 140, 26), (150, 220, 16), (75, 500, 150, 48, 18)),
    AdSize.MOBILE_BANNER: _layout(
        (5, 5, 40, 40), (55, 16, 14), (55, 36, 10), (225, 10, 90, 30, 12), align=TextAlign.LEFT
    ),
    AdSize.LARGE_RECTANGLE: _layout((10, 10, 64, 64), (168, 90, 22), (168, 132, 15), (93, 220, 150, 44, 17)),
    AdSize.BILLBOARD: _layout((20, 20, 80, 80), (485, 70, 32), (485, 120, 20), (410, 170, 150, 48, 18)),
    AdSize.SOCIAL_SQUARE: _layout(
        (40, 40, 160, 160), (540, 360, 64), (540, 480, 40), (340, 820, 400, 110, 44)
    ),
}

_FALLBACK_LAYOUT = _layout((10, 10, 60, 60), (150, 80, 20), (150, 120, 14), (75, 200, 150, 40, 16))


def default_positions(ad_size: str) -> ElementPositions:
    """Default layout for `ad_size`. Total: unknown sizes get the generic layout."""
    known = AdSize.lookup(ad_size)
    if known is None:
        return _FALLBACK_LAYOUT
    return _LAYOUTS[known]


_ASPECT_BY_SIZE: Dict[AdSize, Aspect] = {
    AdSize.LEADERBOARD: Aspect.LEADERBOARD,
    AdSize.MOBILE_BANNER: Aspect.LEADERBOARD,
    AdSize.BILLBOARD: Aspect.LEADERBOARD,
    AdSize.WIDE_SKYSCRAPER: Aspect.SKYSCRAPER,
    AdSize.HALF_PAGE: Aspect.SKYSCRAPER,
    AdSize.MEDIUM_RECTANGLE: Aspect.SQUARE,
    AdSize.LARGE_RECTANGLE: Aspect.SQUARE,
    AdSize.SOCIAL_SQUARE: Aspect.SQUARE,
}


def aspect_for_size(ad_size: str) -> Aspect:
    """Preferred background aspect: wide → leaderboard, tall → skyscraper, else square."""
    known = AdSize.lookup(ad_size)
    if known is None:
        return Aspect.SQUARE
    return _ASPECT_BY_SIZE[known]

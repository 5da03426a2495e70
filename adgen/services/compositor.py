"""
Final ad rendering.

Flattens background, logo, copy and call-to-action button into one PNG sized
exactly to the ad, stores it as the ad's final image and locks the ad.

Render order is fixed (background, logo, headline, subheadline, CTA) and the
same inputs always produce the same pixels. Elements placed partly or fully
outside the canvas are clipped, not rejected.
"""

from __future__ import annotations

import io
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, Tuple

from PIL import Image, ImageColor, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from adgen.models.campaigns import GeneratedAd, StoredImage
from adgen.models.positions import Element, ElementPosition, TextAlign
from adgen.services.errors import AdLocked, CompositeFailed, MalformedAdSize
from adgen.services.layouts import parse_ad_size
from adgen.services.repository import CampaignRepository, ImageStorageError


logger = logging.getLogger(__name__)

DEFAULT_FONT = "DejaVuSans-Bold.ttf"

# left → west-anchored, center → top-center, right → east-anchored.
_TEXT_ANCHORS: Dict[TextAlign, str] = {
    TextAlign.LEFT: "lm",
    TextAlign.CENTER: "mt",
    TextAlign.RIGHT: "rm",
}

_FALLBACK_TEXT_COLOR = "#000000"
_FALLBACK_BUTTON_COLOR = "#ff0000"


class FontCache:
    """Loads the one bold sans-serif face at the sizes a render needs."""

    def __init__(self, font_path: str = DEFAULT_FONT) -> None:
        self.font_path = font_path
        self._fonts: Dict[int, ImageFont.FreeTypeFont | ImageFont.ImageFont] = {}
        self._lock = threading.Lock()
        self._warned = False

    def get(self, size: int):
        with self._lock:
            font = self._fonts.get(size)
            if font is None:
                font = self._load(size)
                self._fonts[size] = font
            return font

    def _load(self, size: int):
        try:
            return ImageFont.truetype(self.font_path, size)
        except OSError:
            if not self._warned:
                logger.warning(
                    "Font %s not found; using Pillow's bundled default face instead.",
                    self.font_path,
                )
                self._warned = True
            return ImageFont.load_default(size=size)


def _rgba(color: str | None, fallback: str) -> Tuple[int, int, int, int]:
    try:
        return ImageColor.getcolor(color or fallback, "RGBA")
    except ValueError:
        logger.warning("Unusable color %r; falling back to %s", color, fallback)
        return ImageColor.getcolor(fallback, "RGBA")


def _open_image(data: bytes, what: str) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError(f"{what} is not a readable image") from exc
    return image


def fit_background(background: Image.Image, width: int, height: int) -> Image.Image:
    """Scale to cover `width x height` and crop around the center."""
    return ImageOps.fit(
        background.convert("RGBA"),
        (width, height),
        method=Image.LANCZOS,
        centering=(0.5, 0.5),
    )


def paste_logo(canvas: Image.Image, logo: Image.Image, position: ElementPosition) -> Image.Image:
    """Resize the logo to its box and alpha-composite it at `(x, y)`."""
    size = (position.width or logo.width, position.height or logo.height)
    resized = logo.convert("RGBA").resize(size, Image.LANCZOS)
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    layer.paste(resized, (position.x, position.y))
    return Image.alpha_composite(canvas, layer)


def draw_text(
    draw: ImageDraw.ImageDraw,
    fonts: FontCache,
    text: str,
    xy: Tuple[float, float],
    position: ElementPosition,
    anchor: str,
) -> None:
    if not text:
        return
    font = fonts.get(position.font_size or 16)
    draw.text(xy, text, font=font, fill=_rgba(position.color, _FALLBACK_TEXT_COLOR), anchor=anchor)


def draw_button(
    draw: ImageDraw.ImageDraw,
    fonts: FontCache,
    label: str,
    position: ElementPosition,
) -> None:
    width = position.width or 0
    height = position.height or 0
    box = (position.x, position.y, position.x + width, position.y + height)
    draw.rectangle(box, fill=_rgba(position.bg_color, _FALLBACK_BUTTON_COLOR))
    center = (position.x + width / 2, position.y + height / 2)
    draw_text(draw, fonts, label, center, position, "mm")


def render_ad(
    background_data: bytes,
    ad: GeneratedAd,
    logo_data: bytes | None = None,
    fonts: FontCache | None = None,
) -> bytes:
    """
    Pure render step: returns PNG bytes for `ad` without touching storage.

    Raises `MalformedAdSize` for a bad size and `ValueError` for unreadable
    image bytes.
    """
    fonts = fonts or FontCache()
    width, height = parse_ad_size(ad.ad_size)
    positions = ad.element_positions

    canvas = fit_background(_open_image(background_data, "Background image"), width, height)

    logo_position = positions.get(Element.LOGO)
    if logo_data is not None and logo_position is not None:
        canvas = paste_logo(canvas, _open_image(logo_data, "Logo image"), logo_position)

    draw = ImageDraw.Draw(canvas)
    for element, text in ((Element.HEADLINE, ad.headline), (Element.SUBHEADLINE, ad.subheadline)):
        position = positions.get(element)
        if position is None:
            continue
        anchor = _TEXT_ANCHORS[position.align or TextAlign.CENTER]
        draw_text(draw, fonts, text, (position.x, position.y), position, anchor)

    cta_position = positions.get(Element.CTA)
    if cta_position is not None:
        draw_button(draw, fonts, ad.call_to_action, cta_position)

    output = io.BytesIO()
    canvas.convert("RGB").save(output, format="PNG")
    return output.getvalue()


class Compositor:
    """
    Renders and persists final images for generated ads.

    Never runs twice at once for the same ad: a second request while one is
    in flight fails immediately with `CompositeFailed`. Position edits go
    through `editing()`, which holds the same per-ad slot, so a render never
    races a write to the positions it reads.
    """

    def __init__(self, repository: CampaignRepository, fonts: FontCache | None = None) -> None:
        self._repository = repository
        self._fonts = fonts or FontCache()
        # ad id -> what holds it ("composite" or "edit")
        self._busy: Dict[str, str] = {}
        self._busy_lock = threading.Lock()

    def _claim(self, ad_id: str) -> None:
        with self._busy_lock:
            holder = self._busy.get(ad_id)
            if holder is not None:
                raise CompositeFailed(ad_id, f"another {holder} is in progress for this ad")
            self._busy[ad_id] = "composite"

    def _release(self, *ad_ids: str) -> None:
        with self._busy_lock:
            for ad_id in ad_ids:
                self._busy.pop(ad_id, None)

    @contextmanager
    def editing(self, ad_ids: Iterable[str]) -> Iterator[None]:
        """Keep composites off `ad_ids` for the duration. Raises `AdLocked` if one is busy."""
        held = list(dict.fromkeys(ad_ids))
        with self._busy_lock:
            for ad_id in held:
                if ad_id in self._busy:
                    raise AdLocked(ad_id)
            for ad_id in held:
                self._busy[ad_id] = "edit"
        try:
            yield
        finally:
            self._release(*held)

    def _logo_bytes(self, ad: GeneratedAd) -> bytes | None:
        campaign = self._repository.get_campaign(ad.campaign_id)
        business = self._repository.get_business(campaign.business_id)
        if business.logo is None:
            return None
        return self._repository.images.read(business.logo)

    def composite(self, ad_id: str) -> GeneratedAd:
        """Render, store and lock one ad. Failures leave the ad untouched."""
        self._claim(ad_id)
        try:
            ad = self._repository.get_generated_ad(ad_id)
            logger.info("Starting image composition for ad %s (%s)", ad.id, ad.ad_size)
            if ad.background_image is None:
                raise CompositeFailed(ad.id, "ad has no background image")

            images = self._repository.images
            try:
                background = images.read(ad.background_image)
                logo = self._logo_bytes(ad)
                png = render_ad(background, ad, logo_data=logo, fonts=self._fonts)
                final = images.put(png, f"ad_{ad.id}_{ad.ad_size}.png")
            except MalformedAdSize as exc:
                raise CompositeFailed(ad.id, str(exc)) from exc
            except (ImageStorageError, ValueError, OSError) as exc:
                logger.error("Failed to composite image for ad %s: %s", ad.id, exc)
                raise CompositeFailed(ad.id, str(exc)) from exc

            previous: StoredImage | None = ad.final_image
            ad.final_image = final
            ad.is_locked = True
            self._repository.touch(ad)
            if previous is not None and previous.key != final.key:
                images.purge(previous)
            logger.info("Successfully composed image for ad %s", ad.id)
            return ad
        finally:
            self._release(ad_id)

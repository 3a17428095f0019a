import asyncio
import io
from datetime import datetime
from functools import lru_cache
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
from babel.dates import format_date
from loguru import logger
from PIL import Image, ImageDraw, ImageFilter, ImageFont, ImageOps, UnidentifiedImageError

from stripbooth.config import settings
from stripbooth.errors import CompositionError, DecodeFailure
from stripbooth.models.layout import Layout, Theme
from stripbooth.models.session import Frame
from stripbooth.models.strip import FORMAT_EXTENSIONS, CompositeResult

RGBA = Tuple[int, int, int, int]
Stops = Sequence[Tuple[float, RGBA]]

OUTER_BORDER_INSET = 5
OUTER_BORDER_WIDTH = 8
INNER_BORDER_INSET = 12
INNER_BORDER_WIDTH = 3

BAND_MARGIN = 20
BAND_RADIUS = 10
BAND_ALPHA = 0x40
HEADER_HEIGHT = 50
HEADER_BASELINE = 55
FOOTER_HEIGHT = 40

FRAME_MARGIN = 8
SHADOW_OFFSET = 3
SHADOW_BLUR = 7.5
BADGE_SIZE = 25
CORNER_MARK = 8

DOT_STEP = 20
DOT_ALPHA = 26
FOOTER_GLYPHS = ("★", "✦", "✧", "☆")
FOOTER_GLYPH_COUNT = 8

FONT_FILES = {
    "arial": ("arial.ttf", "arialbd.ttf"),
    "georgia": ("georgia.ttf", "georgiab.ttf"),
    "courier new": ("cour.ttf", "courbd.ttf"),
    "comic sans ms": ("comic.ttf", "comicbd.ttf"),
    "serif": ("DejaVuSerif.ttf", "DejaVuSerif-Bold.ttf"),
    "sans-serif": ("DejaVuSans.ttf", "DejaVuSans-Bold.ttf"),
    "monospace": ("DejaVuSansMono.ttf", "DejaVuSansMono-Bold.ttf"),
    "cursive": ("DejaVuSans.ttf", "DejaVuSans-Bold.ttf"),
}
FALLBACK_FONTS = (
    ("DejaVuSans.ttf", "DejaVuSans-Bold.ttf"),
    ("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf", "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf"),
    ("/System/Library/Fonts/Supplemental/Arial.ttf", "/System/Library/Fonts/Supplemental/Arial Bold.ttf"),
)


def hex_to_rgba(color: str, alpha: int = 255) -> RGBA:
    color = color.lstrip("#")
    return int(color[0:2], 16), int(color[2:4], 16), int(color[4:6], 16), alpha


@lru_cache(maxsize=64)
def load_font(font_family: str, size: int, bold: bool = False):
    """Resolve a CSS-like font family list to a Pillow font."""
    candidates: List[str] = []
    for family in font_family.split(","):
        files = FONT_FILES.get(family.strip().strip("'\"").lower())
        if files:
            candidates.append(files[bold])
    candidates.extend(files[bold] for files in FALLBACK_FONTS)

    for font_path in candidates:
        try:
            return ImageFont.truetype(font_path, size)
        except OSError:
            continue

    logger.debug(f"No TrueType font found for {font_family!r}, using Pillow default")
    return ImageFont.load_default(size=size)


def _interpolate(t: np.ndarray, stops: Stops) -> np.ndarray:
    offsets = [offset for offset, _ in stops]
    channels = [
        np.interp(t, offsets, [color[channel] for _, color in stops])
        for channel in range(4)
    ]
    return np.rint(np.stack(channels, axis=-1)).astype(np.uint8)


def linear_gradient(size: Tuple[int, int], start: Tuple[float, float], end: Tuple[float, float],
                    stops: Stops) -> Image.Image:
    width, height = size
    dx, dy = end[0] - start[0], end[1] - start[1]
    length = dx * dx + dy * dy or 1.0
    xs = np.arange(width, dtype=np.float64) + 0.5 - start[0]
    ys = np.arange(height, dtype=np.float64) + 0.5 - start[1]
    t = np.clip((xs[np.newaxis, :] * dx + ys[:, np.newaxis] * dy) / length, 0.0, 1.0)
    return Image.fromarray(_interpolate(t, stops))


def radial_gradient(size: Tuple[int, int], center: Tuple[float, float], radius: float,
                    stops: Stops) -> Image.Image:
    width, height = size
    xs = np.arange(width, dtype=np.float64) + 0.5 - center[0]
    ys = np.arange(height, dtype=np.float64) + 0.5 - center[1]
    distance = np.hypot(xs[np.newaxis, :], ys[:, np.newaxis])
    t = np.clip(distance / max(radius, 1.0), 0.0, 1.0)
    return Image.fromarray(_interpolate(t, stops))


def box_fits(box: Sequence[float]) -> bool:
    left, top, right, bottom = box
    return right >= left and bottom >= top


def rounded_mask(size: Tuple[int, int], box: Iterable[float], radius: float) -> Image.Image:
    mask = Image.new("L", size, 0)
    ImageDraw.Draw(mask).rounded_rectangle(tuple(box), radius=radius, fill=255)
    return mask


class StripCompositor:
    """Renders captured frames onto a decorated photo strip.

    The drawing surface lives only for the duration of one ``compose`` call
    and is rendered in a worker thread; frames are decoded and drawn one at a
    time in capture order. Decorations that do not fit a small canvas are
    skipped.
    """

    def __init__(self, output_format: str = settings.output_format, quality: int = settings.photo_quality,
                 locale: str = settings.locale):
        output_format = output_format.lower()
        if output_format == "jpg":
            output_format = "jpeg"
        if output_format not in FORMAT_EXTENSIONS:
            raise ValueError(f"Unsupported output format: {output_format}")
        self.output_format = output_format
        self.quality = quality
        self.locale = locale

    async def compose(self, frames: Sequence[Frame], layout: Layout, theme: Theme,
                      now: Optional[datetime] = None) -> CompositeResult:
        if len(frames) != layout.photo_count:
            raise CompositionError(
                f"Layout {layout.id!r} needs exactly {layout.photo_count} photos, got {len(frames)}"
            )
        now = now or datetime.now()
        logger.info(f"Composing strip with {len(frames)} photos for layout {layout.id!r}, theme {theme.id!r}")

        image = await asyncio.to_thread(self._render, frames, layout, theme, now)

        return CompositeResult(
            image=image,
            width=layout.canvas_size.width,
            height=layout.canvas_size.height,
            format=self.output_format,
            layout_id=layout.id,
            theme_id=theme.id,
            generated_at=now
        )

    def _render(self, frames: Sequence[Frame], layout: Layout, theme: Theme, now: datetime) -> bytes:
        size = (layout.canvas_size.width, layout.canvas_size.height)
        canvas = Image.new("RGBA", size, hex_to_rgba(theme.background_color))

        self._draw_background(canvas, theme)
        self._draw_border(canvas, layout, theme)
        if layout.show_header and theme.header_text:
            self._draw_header(canvas, theme)

        for index, frame in enumerate(frames):
            self._draw_slot(canvas, layout, theme, index, self._decode(frame, index))

        if layout.show_footer:
            self._draw_footer(canvas, theme, now)

        return self._encode(canvas)

    def _decode(self, frame: Frame, index: int) -> Image.Image:
        try:
            with Image.open(io.BytesIO(frame.data)) as img:
                img.load()
                return ImageOps.exif_transpose(img).convert("RGB")
        except (UnidentifiedImageError, OSError, ValueError) as e:
            logger.error(f"Frame {index + 1} could not be decoded: {e}")
            raise DecodeFailure(index, str(e)) from e

    def _encode(self, canvas: Image.Image) -> bytes:
        buffer = io.BytesIO()
        if self.output_format == "jpeg":
            canvas.convert("RGB").save(buffer, format="JPEG", quality=self.quality)
        else:
            canvas.save(buffer, format="PNG")
        return buffer.getvalue()

    def _fill_rounded(self, canvas: Image.Image, fill: Image.Image, box: Tuple[float, float, float, float],
                      radius: float):
        clear = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        canvas.alpha_composite(Image.composite(fill, clear, rounded_mask(canvas.size, box, radius)))

    def _draw_background(self, canvas: Image.Image, theme: Theme):
        width, height = canvas.size
        gradient = linear_gradient(canvas.size, (0, 0), (width, height), [
            (0.0, hex_to_rgba(theme.background_color)),
            (0.3, hex_to_rgba(theme.accent_color, 0x80)),
            (0.7, hex_to_rgba(theme.background_color, 0x60)),
            (1.0, hex_to_rgba(theme.border_color)),
        ])
        canvas.alpha_composite(gradient)

        # faint dot grid
        rows = (np.arange(height) % DOT_STEP) < 2
        cols = (np.arange(width) % DOT_STEP) < 2
        dots = np.zeros((height, width, 4), dtype=np.uint8)
        dots[..., :3] = hex_to_rgba(theme.border_color)[:3]
        dots[..., 3] = np.outer(rows, cols).astype(np.uint8) * DOT_ALPHA
        canvas.alpha_composite(Image.fromarray(dots))

    def _draw_border(self, canvas: Image.Image, layout: Layout, theme: Theme):
        width, height = canvas.size
        draw = ImageDraw.Draw(canvas)
        rings = (
            (OUTER_BORDER_INSET, layout.corner_radius + 12, theme.border_color, OUTER_BORDER_WIDTH),
            (INNER_BORDER_INSET, layout.corner_radius + 7, theme.accent_color, INNER_BORDER_WIDTH),
        )
        for inset, radius, color, ring_width in rings:
            box = (inset, inset, width - inset, height - inset)
            if box_fits(box):
                draw.rounded_rectangle(box, radius=radius, outline=hex_to_rgba(color), width=ring_width)

    def _draw_header(self, canvas: Image.Image, theme: Theme):
        width, _ = canvas.size
        band = linear_gradient(canvas.size, (0, 0), (width, HEADER_HEIGHT), [
            (0.0, hex_to_rgba(theme.border_color, BAND_ALPHA)),
            (1.0, hex_to_rgba(theme.accent_color, BAND_ALPHA)),
        ])
        band_box = (BAND_MARGIN, BAND_MARGIN, width - BAND_MARGIN, BAND_MARGIN + HEADER_HEIGHT)
        if box_fits(band_box):
            self._fill_rounded(canvas, band, band_box, BAND_RADIUS)

        font = load_font(theme.font_family, max(18, width // 15), bold=True)
        position = (width / 2, HEADER_BASELINE)

        shadow = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        ImageDraw.Draw(shadow).text(position, theme.header_text, font=font, fill=(0, 0, 0, 77), anchor="ms")
        canvas.alpha_composite(shadow.filter(ImageFilter.GaussianBlur(1.5)))
        ImageDraw.Draw(canvas).text(position, theme.header_text, font=font,
                                    fill=hex_to_rgba(theme.text_color), anchor="ms")

    def _draw_slot(self, canvas: Image.Image, layout: Layout, theme: Theme, index: int, photo: Image.Image):
        x, y = layout.slot(index)
        photo_w, photo_h = layout.photo_size.width, layout.photo_size.height
        radius = layout.corner_radius
        frame_box = (x - FRAME_MARGIN, y - FRAME_MARGIN, x + photo_w + FRAME_MARGIN, y + photo_h + FRAME_MARGIN)

        shadow = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        ImageDraw.Draw(shadow).rounded_rectangle(
            tuple(edge + SHADOW_OFFSET for edge in frame_box), radius=radius + 5, fill=(0, 0, 0, 77)
        )
        canvas.alpha_composite(shadow.filter(ImageFilter.GaussianBlur(SHADOW_BLUR)))

        frame_fill = radial_gradient(canvas.size, (x + photo_w / 2, y + photo_h / 2), photo_w / 2, [
            (0.0, (255, 255, 255, 230)),
            (1.0, (200, 200, 200, 179)),
        ])
        self._fill_rounded(canvas, frame_fill, frame_box, radius + 5)

        fitted = ImageOps.fit(photo, (photo_w, photo_h), Image.Resampling.LANCZOS)
        canvas.paste(fitted, (x, y), rounded_mask((photo_w, photo_h), (0, 0, photo_w - 1, photo_h - 1), radius))

        draw = ImageDraw.Draw(canvas)
        if layout.border_width:
            draw.rounded_rectangle((x, y, x + photo_w - 1, y + photo_h - 1), radius=radius,
                                   outline=hex_to_rgba(theme.border_color), width=layout.border_width)

        badge_x = x + photo_w - BADGE_SIZE - 5
        badge_y = y + 5
        draw.ellipse((badge_x, badge_y, badge_x + BADGE_SIZE, badge_y + BADGE_SIZE),
                     fill=hex_to_rgba(theme.border_color))
        draw.text((badge_x + BADGE_SIZE / 2, badge_y + BADGE_SIZE / 2), str(index + 1),
                  font=load_font("Arial, sans-serif", 12, bold=True), fill=(255, 255, 255, 255), anchor="mm")

        accent = hex_to_rgba(theme.accent_color)
        for left, top, w, h in self._corner_marks(x, y, photo_w, photo_h):
            draw.rectangle((left, top, left + w - 1, top + h - 1), fill=accent)

    @staticmethod
    def _corner_marks(x: int, y: int, photo_w: int, photo_h: int) -> List[Tuple[int, int, int, int]]:
        right = x + photo_w
        bottom = y + photo_h
        return [
            (x - 3, y - 3, CORNER_MARK, 2),
            (x - 3, y - 3, 2, CORNER_MARK),
            (right - CORNER_MARK + 3, y - 3, CORNER_MARK, 2),
            (right + 1, y - 3, 2, CORNER_MARK),
            (x - 3, bottom + 1, CORNER_MARK, 2),
            (x - 3, bottom - CORNER_MARK + 3, 2, CORNER_MARK),
            (right - CORNER_MARK + 3, bottom + 1, CORNER_MARK, 2),
            (right + 1, bottom - CORNER_MARK + 3, 2, CORNER_MARK),
        ]

    def _draw_footer(self, canvas: Image.Image, theme: Theme, now: datetime):
        width, height = canvas.size
        footer_y = height - FOOTER_HEIGHT - BAND_MARGIN
        band = linear_gradient(canvas.size, (0, footer_y), (width, footer_y + FOOTER_HEIGHT), [
            (0.0, hex_to_rgba(theme.accent_color, BAND_ALPHA)),
            (1.0, hex_to_rgba(theme.border_color, BAND_ALPHA)),
        ])
        band_box = (BAND_MARGIN, footer_y, width - BAND_MARGIN, footer_y + FOOTER_HEIGHT)
        if box_fits(band_box):
            self._fill_rounded(canvas, band, band_box, BAND_RADIUS)

        draw = ImageDraw.Draw(canvas)
        date_text = format_date(now, format="long", locale=self.locale)
        draw.text((width / 2, footer_y + 25), f"✦ {date_text} ✦",
                  font=load_font(theme.font_family, max(14, width // 25)),
                  fill=hex_to_rgba(theme.text_color), anchor="ms")

        glyph_font = load_font("sans-serif", 16)
        accent = hex_to_rgba(theme.accent_color)
        step = (width - 60) / (FOOTER_GLYPH_COUNT - 1)
        for i in range(FOOTER_GLYPH_COUNT):
            glyph = FOOTER_GLYPHS[i % len(FOOTER_GLYPHS)]
            draw.text((30 + i * step, height - 10), glyph, font=glyph_font, fill=accent, anchor="ms")


compositor = StripCompositor()

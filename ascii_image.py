#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ascii_image.py
==============

Image to ASCII art rendering (Pillow + numpy).

- Output: CR-LF separated text, a new raster of drawn glyphs, or an animated GIF
- Glyph choice: Rec. 709 luminance bucket, or phrase mode (weights laid down in order)
- Glyph colour: the sampled pixel's colour, or the palette font colour when overriding
- Sampling: the image is resized to the ASCII grid given by ``SamplingParams``,
  and one glyph row covers ``palette.font_ratio`` pixel rows
- Progress: an optional watcher gets ``(progress, row_count, frame)`` after each
  row; ``cancel()`` stops a render at the next row boundary

Dependencies: Pillow, numpy
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

try:
    from PIL import Image, UnidentifiedImageError
except ImportError:  # pragma: no cover - runtime dependency
    print("This module requires Pillow. Install it with: pip install pillow", file=sys.stderr)
    raise

from ascii_errors import BadInputError, FormatUnsupportedError, IOFailure, RenderCancelled
from ascii_gif import AnimatedImage, GifSaveWatcher
from ascii_graphics import FontMeasure, PillowFontMeasure
from ascii_palette import Palette, SamplingParams

logger = logging.getLogger(__name__)

LINE_SEPARATOR = "\r\n"
# Text baseline sits this many pixels above the bottom of the first row
BASELINE_OFFSET = 3

ProgressWatcher = Callable[[int, int, int], None]

# Formats Pillow cannot write with an alpha channel
_OPAQUE_FORMATS = {"JPEG", "EPS", "PCX", "PPM"}


# ------------------------ Files ------------------------
def file_ext(path: str, default: str = "") -> str:
    """Lower-case extension without the dot, or ``default`` when there is none."""
    ext = os.path.splitext(path)[1]
    return ext[1:].lower() if ext else default


def remove_ext(path: str) -> str:
    return os.path.splitext(path)[0]


def image_format_for(path: str) -> str:
    """Pillow format name for a path's extension; PNG when the extension is unknown."""
    ext = file_ext(path, "png")
    fmt = Image.registered_extensions().get("." + ext)
    if fmt is None:
        logger.warning(f"Unknown image extension '.{ext}', saving {path} as PNG")
        return "PNG"
    if fmt not in Image.SAVE:
        raise FormatUnsupportedError(f"Cannot write {fmt} images: {path}")
    return fmt


def load_image(path: str) -> Image.Image:
    """Load the first frame of an image as RGBA."""
    try:
        with Image.open(path) as img:
            img.seek(0)
            return img.convert("RGBA")
    except UnidentifiedImageError as exc:
        raise BadInputError(f"Unreadable image: {path}") from exc
    except OSError as exc:
        raise IOFailure(f"Failed to read image: {path}: {exc}") from exc


# ------------------------ Resizing ------------------------
def flatten(img: Image.Image) -> Image.Image:
    """Composite ``img`` over opaque black and drop the alpha channel."""
    if img.mode == "RGB":
        return img
    rgba = img.convert("RGBA")
    bg_img = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
    return Image.alpha_composite(bg_img, rgba).convert("RGB")


def resize(img: Image.Image, width: int, height: int) -> Image.Image:
    """Bilinear, antialiased resize onto an opaque RGB image."""
    if width <= 0 or height <= 0:
        raise BadInputError(f"Cannot resize to {width}x{height}")
    return flatten(img).resize((width, height), Image.Resampling.BILINEAR)


def sample(img: Image.Image, params: SamplingParams) -> Image.Image:
    return resize(img, params.sample_w, params.sample_h)


# ------------------------ Luminance ------------------------
# Rec. 709 coefficients scaled to integers; they sum to 10000
_LUMA_WEIGHTS = (2126, 7152, 722)
_LUMA_SCALE = 255 * 10000


def luminance(rgb: Sequence[int]) -> float:
    """Relative luminance in [0, 1] of an 8-bit RGB colour."""
    r, g, b = rgb[:3]
    return (r * _LUMA_WEIGHTS[0] + g * _LUMA_WEIGHTS[1] + b * _LUMA_WEIGHTS[2]) / _LUMA_SCALE


def luminance_index(rgb: Sequence[int], max_index: int) -> int:
    """floor(luminance * max_index), clamped to [0, max_index]. Alpha is ignored."""
    r, g, b = rgb[:3]
    weighted = r * _LUMA_WEIGHTS[0] + g * _LUMA_WEIGHTS[1] + b * _LUMA_WEIGHTS[2]
    return max(0, min(max_index, weighted * max_index // _LUMA_SCALE))


def luminance_indices(pixels: np.ndarray, max_index: int) -> np.ndarray:
    """``luminance_index`` over an (H, W, 3+) pixel array."""
    rgb = pixels[..., :3].astype(np.int64)
    weighted = rgb[..., 0] * _LUMA_WEIGHTS[0] + rgb[..., 1] * _LUMA_WEIGHTS[1] + rgb[..., 2] * _LUMA_WEIGHTS[2]
    return np.clip(weighted * max_index // _LUMA_SCALE, 0, max_index)


# ------------------------ Renderer ------------------------
class AsciiRenderer:
    """Render ASCII art from images with a palette.

    A renderer owns its font measure (one drawing context per renderer) and
    its phrase/frame positions, so parallel renders need separate renderers.
    """

    def __init__(self, palette: Palette, sampling_params: Optional[SamplingParams] = None,
                 measure: Optional[FontMeasure] = None):
        self._palette = palette
        self._sampling_params = sampling_params
        self._measure = measure or PillowFontMeasure()
        self.progress_watcher: Optional[ProgressWatcher] = None
        self.phrase_pos = 0
        self.frame_pos = 0
        self._cancel = threading.Event()

    @property
    def palette(self) -> Palette:
        return self._palette

    @property
    def sampling_params(self) -> Optional[SamplingParams]:
        return self._sampling_params

    @property
    def measure(self) -> FontMeasure:
        return self._measure

    # ---- progress & cancellation ----
    def cancel(self) -> None:
        """Ask the running render to stop at the next row boundary."""
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def reset_cancel(self) -> None:
        self._cancel.clear()

    def _check_cancelled(self) -> None:
        if self._cancel.is_set():
            raise RenderCancelled("Render cancelled")

    def _update_progress(self, progress: int, row_count: int) -> None:
        if self.progress_watcher is not None:
            self.progress_watcher(progress, row_count, self.frame_pos)

    # ---- glyph selection ----
    def weight_for(self, rgb: Sequence[int]) -> str:
        """Glyph for a colour in luminance mode."""
        palette = self._palette
        return palette.weight(luminance_index(rgb, palette.weight_count - 1))

    def _next_phrase_glyph(self) -> str:
        palette = self._palette
        if self.phrase_pos >= palette.weight_count:
            self.phrase_pos = 0
        glyph = palette.weight(self.phrase_pos)
        self.phrase_pos += 1
        return glyph

    def _row_glyphs(self, indices: Optional[np.ndarray], width: int, y: int) -> List[str]:
        if indices is None:
            return [self._next_phrase_glyph() for _ in range(width)]
        weights = self._palette.weight_list
        return [weights[i] for i in indices[y].tolist()]

    def _glyph_indices(self, pixels: np.ndarray) -> Optional[np.ndarray]:
        if self._palette.using_phrase:
            return None
        return luminance_indices(pixels, self._palette.weight_count - 1)

    def _prepare(self, source: Image.Image) -> np.ndarray:
        """Sampled RGB pixels of ``source`` as an (H, W, 3) array."""
        if self._palette.weight_count == 0:
            raise BadInputError("Palette has no weights")
        if source.width <= 0 or source.height <= 0:
            raise BadInputError(f"Source image has no pixels ({source.width}x{source.height})")
        if self._sampling_params is not None:
            sampled = sample(source, self._sampling_params)
        else:
            sampled = flatten(source)
        return np.asarray(sampled)

    # ---- text ----
    def render_text(self, source: Image.Image) -> str:
        """Render ASCII art text; every line ends with CR-LF."""
        pixels = self._prepare(source)
        height, width = pixels.shape[:2]
        ratio = self._palette.font_ratio(self._measure)
        indices = self._glyph_indices(pixels)
        lines: List[str] = []
        for y in range(0, height, ratio):
            self._check_cancelled()
            lines.append("".join(self._row_glyphs(indices, width, y)) + LINE_SEPARATOR)
            self._update_progress(y, height)
        return "".join(lines)

    # ---- image ----
    def render_image(self, source: Image.Image) -> Image.Image:
        """Render an RGBA image of glyphs drawn on the palette background."""
        return self._render_pixels(self._prepare(source))

    def _render_pixels(self, pixels: np.ndarray) -> Image.Image:
        palette = self._palette
        measure = self._measure
        font = palette.font
        height, width = pixels.shape[:2]
        ratio = palette.font_ratio(measure)
        indices = self._glyph_indices(pixels)

        # Pass 1: pick each row's glyphs once and measure the row
        rows = list(range(0, height, ratio))
        glyph_rows = [self._row_glyphs(indices, width, y) for y in rows]
        dimensions: List[Tuple[int, int]] = [measure.measure(font, "".join(g)) for g in glyph_rows]

        canvas_w = max(d[0] for d in dimensions)
        canvas_h = sum(d[1] for d in dimensions)
        canvas = Image.new("RGBA", (canvas_w, canvas_h), tuple(palette.background_color))
        ctx = measure.context(canvas)
        logger.debug(f"Rendering {width}x{height} samples ({len(rows)} glyph rows) into {canvas_w}x{canvas_h}")

        # Pass 2: draw glyph by glyph, advancing by each glyph's own width
        override = palette.overriding_image_colors
        font_color = tuple(palette.font_color)
        glyph_widths: Dict[str, int] = {}
        char_y = dimensions[0][1] - BASELINE_OFFSET
        for row_index, (y, glyphs) in enumerate(zip(rows, glyph_rows)):
            self._check_cancelled()
            char_x = 0
            row_pixels = pixels[y].tolist()
            for x, glyph in enumerate(glyphs):
                if override:
                    color = font_color
                else:
                    r, g, b = row_pixels[x][:3]
                    color = (r, g, b, 255)
                measure.draw(ctx, font, color, char_x, char_y, glyph)
                glyph_w = glyph_widths.get(glyph)
                if glyph_w is None:
                    glyph_w = measure.string_width(font, glyph)
                    glyph_widths[glyph] = glyph_w
                char_x += glyph_w
            char_y += dimensions[row_index][1]
            self._update_progress(y, height)
        return canvas

    # ---- animation ----
    def render_animated(self, source: AnimatedImage) -> AnimatedImage:
        """Render every frame; phrase mode restarts at the first weight on each frame."""
        rendered = AnimatedImage.copy_shape(source)
        self.frame_pos = 0
        try:
            for index in range(source.frame_count):
                self.phrase_pos = 0
                self.frame_pos = index
                pixels = self._prepare(source.frame_image(index))
                rendered.set_frame_image(index, self._render_pixels(pixels))
        finally:
            self.frame_pos = 0
        return rendered

    # ---- saving ----
    def save_text(self, path: str, source: Image.Image) -> str:
        text = self.render_text(source)
        write_text(path, text)
        return text

    def save_image(self, path: str, source: Image.Image) -> Image.Image:
        fmt = image_format_for(path)
        render = self.render_image(source)
        save_rendered_image(path, render, fmt)
        return render

    def save_animated(self, path: str, source: AnimatedImage, loop: bool = True,
                      per_frame_delay: bool = False,
                      save_watcher: Optional[GifSaveWatcher] = None) -> AnimatedImage:
        rendered = self.render_animated(source)
        rendered.save(path, loop=loop, watcher=save_watcher, per_frame_delay=per_frame_delay)
        return rendered


def write_text(path: str, text: str) -> None:
    """Write rendered text as UTF-8, keeping its CR-LF line ends."""
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    try:
        with open(path, "w", encoding="utf-8", newline="") as f:
            f.write(text)
    except OSError as exc:
        raise IOFailure(f"Failed to write text: {path}: {exc}") from exc
    logger.info(f"Saved text to {path}")


def save_rendered_image(path: str, image: Image.Image, fmt: Optional[str] = None) -> None:
    """Write a rendered raster, encoding by the path's extension."""
    fmt = fmt or image_format_for(path)
    if fmt in _OPAQUE_FORMATS:
        image = flatten(image)
    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    try:
        image.save(path, format=fmt)
    except OSError as exc:
        raise IOFailure(f"Failed to write image: {path}: {exc}") from exc
    logger.info(f"Saved {fmt} image to {path}")

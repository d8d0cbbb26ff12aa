#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ascii_palette.py
================

Palette and sampling geometry for the ASCII renderer.

- Weight presets: glyph ramps ordered densest (index 0) to lightest
- ``Palette``: weights, phrase mode, colour override, colours and font;
  persisted as ``.ascp`` property files
- ``SamplingParams``: the ASCII grid size derived from the image and font cell size
- Platform detection used by the sampling geometry and the default font
- Weights are split into grapheme clusters, so a combining sequence or an
  emoji ZWJ sequence is one glyph

Dependency: regex
"""

from __future__ import annotations

import math
import platform
from typing import List, Optional, Tuple

import regex

from ascii_errors import BadInputError, HostCapabilityError
from ascii_graphics import BLACK, WHITE, Color, FontMeasure, FontSpec, FontStyle, PillowFontMeasure
from class_serializer import ClassSerializer, ColorCodec, FontCodec

PALETTE_EXTENSION = "ascp"


def split_glyphs(weights: str) -> List[str]:
    """Split a weights string into grapheme clusters, one glyph each."""
    return regex.findall(r"\X", weights)


def reverse_weights(weights: str) -> str:
    """Reverse a weights string glyph by glyph."""
    return "".join(reversed(split_glyphs(weights)))


# ------------------------ Weight presets ------------------------
STANDARD_DARK_WEIGHTS = "$@B%8&WM#*oahkbdpqwmZO0QLCJUYXzcvunxrjft/\\|()1{}[]?-_+~<>i!lI;:,\"^`'. "
STANDARD_LIGHT_WEIGHTS = reverse_weights(STANDARD_DARK_WEIGHTS)
BLOCKS_DARK_WEIGHTS = "█▓▒░"
BLOCKS_LIGHT_WEIGHTS = reverse_weights(BLOCKS_DARK_WEIGHTS)
SYMBOLS_DARK_WEIGHTS = "@#&%^*."
SYMBOLS_LIGHT_WEIGHTS = reverse_weights(SYMBOLS_DARK_WEIGHTS)

WEIGHT_PRESETS = {
    "standard-dark": STANDARD_DARK_WEIGHTS,
    "standard-light": STANDARD_LIGHT_WEIGHTS,
    "blocks-dark": BLOCKS_DARK_WEIGHTS,
    "blocks-light": BLOCKS_LIGHT_WEIGHTS,
    "symbols-dark": SYMBOLS_DARK_WEIGHTS,
    "symbols-light": SYMBOLS_LIGHT_WEIGHTS,
}


# ------------------------ Platform detection ------------------------
def os_name() -> str:
    """Host OS name, e.g. ``Windows``, ``Linux``, ``Darwin``."""
    return platform.system()


def is_windows(name: Optional[str] = None) -> bool:
    return (os_name() if name is None else name).startswith("Windows")


def is_mac(name: Optional[str] = None) -> bool:
    name = os_name() if name is None else name
    return name.startswith("Mac OS") or name == "Darwin"


def default_font(name: Optional[str] = None) -> FontSpec:
    family = "Consolas" if is_windows(name) else "Monospaced"
    return FontSpec(family, FontStyle.BOLD, 12)


# ------------------------ Sampling geometry ------------------------
class SamplingParams:
    """Downsampling geometry that turns an image into the ASCII grid.

    ``sample_w`` / ``sample_h`` are recomputed on every read, so changing
    ``sampling_ratio`` takes effect immediately.
    """

    def __init__(self, original_w: float, original_h: float, font_w: float, font_h: float,
                 sampling_ratio: Optional[float] = None, os_name: Optional[str] = None):
        if original_w <= 0 or original_h <= 0:
            raise BadInputError(f"Image size must be positive, got {original_w}x{original_h}")
        if font_w <= 0 or font_h <= 0:
            raise BadInputError(f"Font cell size must be positive, got {font_w}x{font_h}")
        self._original_w = original_w
        self._original_h = original_h
        self._font_w = font_w
        self._font_h = font_h
        self._os_name = os_name
        self._sampling_ratio = 0.0
        self.sampling_ratio = math.ceil(max(font_w, font_h)) if sampling_ratio is None else sampling_ratio

    @property
    def original_w(self) -> float:
        return self._original_w

    @property
    def original_h(self) -> float:
        return self._original_h

    @property
    def font_w(self) -> float:
        return self._font_w

    @property
    def font_h(self) -> float:
        return self._font_h

    @property
    def sampling_ratio(self) -> float:
        return self._sampling_ratio

    @sampling_ratio.setter
    def sampling_ratio(self, value: float) -> None:
        if value <= 0:
            raise BadInputError(f"Sampling ratio must be positive, got {value}")
        self._sampling_ratio = value

    @property
    def height_ratio(self) -> int:
        # Windows reports glyph metrics that already account for the cell shape
        if is_windows(self._os_name):
            return 1
        # half-up rounding, not Python's round-half-even
        return max(1, int(math.floor(self._font_h / self._font_w + 0.5)))

    @property
    def sample_w(self) -> int:
        return int(math.ceil(self._original_w / self._sampling_ratio))

    @property
    def sample_h(self) -> int:
        return int(math.ceil(self._original_h / self._sampling_ratio / self.height_ratio))

    @property
    def sample_size(self) -> Tuple[int, int]:
        return self.sample_w, self.sample_h

    def __repr__(self) -> str:
        return (f"SamplingParams(original={self._original_w}x{self._original_h}, "
                f"font={self._font_w}x{self._font_h}, ratio={self._sampling_ratio}, "
                f"sample={self.sample_w}x{self.sample_h})")


# ------------------------ Palette ------------------------
class Palette:
    """Settings used to render an image as ASCII art.

    Copies are independent: ``Palette(other)`` or ``other.copy()``. The
    read/write properties below are exactly what a palette file stores.
    """

    def __init__(self, other: Optional[Palette] = None):
        if other is None:
            self.reset()
        else:
            self._using_phrase = other.using_phrase
            self._overriding_image_colors = other.overriding_image_colors
            self._background_color = other.background_color
            self._font_color = other.font_color
            self._font = other.font
            self._weights = list(other.weight_list)

    @classmethod
    def defaults(cls) -> Palette:
        return cls()

    def copy(self) -> Palette:
        return Palette(self)

    def reset(self) -> None:
        """Restore every field to its default value."""
        self._using_phrase = False
        self._overriding_image_colors = False
        self._background_color = BLACK
        self._font_color = WHITE
        self._font = default_font()
        self._weights = split_glyphs(STANDARD_DARK_WEIGHTS)

    # ---- serialized fields (file order) ----
    @property
    def background_color(self) -> Color:
        return self._background_color

    @background_color.setter
    def background_color(self, value: Color) -> None:
        self._background_color = Color(*value)

    @property
    def font_color(self) -> Color:
        return self._font_color

    @font_color.setter
    def font_color(self, value: Color) -> None:
        self._font_color = Color(*value)

    @property
    def font(self) -> FontSpec:
        return self._font

    @font.setter
    def font(self, value: FontSpec) -> None:
        self._font = value

    @property
    def using_phrase(self) -> bool:
        return self._using_phrase

    @using_phrase.setter
    def using_phrase(self, value: bool) -> None:
        self._using_phrase = bool(value)

    @property
    def overriding_image_colors(self) -> bool:
        return self._overriding_image_colors

    @overriding_image_colors.setter
    def overriding_image_colors(self, value: bool) -> None:
        self._overriding_image_colors = bool(value)

    @property
    def weights(self) -> str:
        return self.weights_as_string()

    @weights.setter
    def weights(self, value: str) -> None:
        self.set_weights_from_string(value)

    # ---- weights ----
    @property
    def weight_list(self) -> Tuple[str, ...]:
        return tuple(self._weights)

    @property
    def weight_count(self) -> int:
        return len(self._weights)

    def weight(self, pos: int) -> str:
        return self._weights[pos]

    def weights_as_string(self) -> str:
        return "".join(self._weights)

    def set_weights_from_string(self, weights: str) -> None:
        self._weights = split_glyphs(weights)

    reverse_weights = staticmethod(reverse_weights)

    def invert(self) -> None:
        """Reverse the weight ramp in place."""
        self._weights.reverse()

    # ---- measurement ----
    def font_ratio(self, measure: FontMeasure) -> int:
        """Rows of pixels covered by one row of glyphs (font height / widest glyph)."""
        widest = max(measure.glyph_widths(self._font), default=0)
        if widest <= 0:
            raise HostCapabilityError(f"Font {self._font} reports no glyph widths")
        return max(1, measure.font_height(self._font) // widest)

    def sampling_params(self, width: float, height: float,
                        measure: Optional[FontMeasure] = None,
                        os_name: Optional[str] = None) -> SamplingParams:
        """Sampling geometry that keeps a render close to the source image size."""
        if not self._weights:
            raise BadInputError("Palette has no weights")
        measure = measure or PillowFontMeasure()
        weights_w, weights_h = measure.measure(self._font, self.weights_as_string())
        font_w = weights_w / len(self._weights)
        return SamplingParams(width, height, font_w, weights_h, os_name=os_name)

    def string_dimensions(self, measure: FontMeasure, text: str) -> Tuple[int, int]:
        return measure.measure(self._font, text)

    def string_width(self, measure: FontMeasure, text: str) -> int:
        return measure.string_width(self._font, text)

    def string_height(self, measure: FontMeasure, text: str) -> int:
        return measure.string_height(self._font, text)

    # ---- persistence ----
    @staticmethod
    def _serializer() -> ClassSerializer:
        return ClassSerializer(FontCodec(), ColorCodec())

    @classmethod
    def import_file(cls, path: str) -> Palette:
        """Load a palette file; keys missing from the file keep their defaults."""
        palette = cls()
        serializer = cls._serializer()
        serializer.ignore_missing_values = True
        serializer.read(cls, palette, path)
        return palette

    def export_file(self, path: str) -> None:
        serializer = self._serializer()
        serializer.skip_unknown_types = True
        serializer.write(type(self), self, path)

    # ---- value semantics ----
    def _key(self) -> tuple:
        return (self._using_phrase, self._overriding_image_colors, self._background_color,
                self._font_color, self._font, tuple(self._weights))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Palette):
            return NotImplemented
        return self._key() == other._key()

    __hash__ = None  # mutable

    def __repr__(self) -> str:
        return (f"Palette(weights={self.weights!r}, using_phrase={self._using_phrase}, "
                f"overriding_image_colors={self._overriding_image_colors}, "
                f"background_color={self._background_color}, font_color={self._font_color}, "
                f"font={self._font})")

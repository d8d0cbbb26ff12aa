#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ascii_graphics.py
=================

Colours, font descriptors and the font capability used by the renderer.

- ``Color``: RGBA tuple, usable directly as a Pillow fill
- ``FontSpec``: family / style bitmask / point size
- ``FontMeasure``: measure a string, list glyph advances, draw text at a baseline
- ``PillowFontMeasure``: the capability backed by Pillow's FreeType fonts

Dependency: Pillow
"""

from __future__ import annotations

import enum
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence, Tuple

try:
    from PIL import Image, ImageDraw, ImageFont
except ImportError:  # pragma: no cover - runtime dependency
    print("This module requires Pillow. Install it with: pip install pillow", file=sys.stderr)
    raise

from ascii_errors import BadInputError, HostCapabilityError

logger = logging.getLogger(__name__)


# ------------------------ Colours ------------------------
class Color(NamedTuple):
    """8-bit RGBA colour."""

    red: int
    green: int
    blue: int
    alpha: int = 255

    @property
    def rgb(self) -> Tuple[int, int, int]:
        return self.red, self.green, self.blue

    def to_hex(self) -> str:
        if self.alpha == 255:
            return "#%02x%02x%02x" % self.rgb
        return "#%02x%02x%02x%02x" % tuple(self)


BLACK = Color(0, 0, 0)
WHITE = Color(255, 255, 255)
TRANSPARENT = Color(0, 0, 0, 0)


def parse_hex_color(value: str) -> Color:
    """Parse ``#RGB``, ``#RRGGBB`` or ``#RRGGBBAA`` (leading ``#`` optional)."""
    h = value.strip()
    if h.startswith("#"):
        h = h[1:]
    if len(h) == 3:
        h = "".join([c * 2 for c in h])
    if len(h) not in (6, 8):
        raise BadInputError(f"Invalid colour: {value!r}")
    try:
        parts = [int(h[i:i + 2], 16) for i in range(0, len(h), 2)]
    except ValueError as exc:
        raise BadInputError(f"Invalid colour: {value!r}") from exc
    return Color(*parts)


# ------------------------ Fonts ------------------------
class FontStyle(enum.IntFlag):
    """Style bitmask, same numbering as the palette file format."""

    PLAIN = 0
    BOLD = 1
    ITALIC = 2


@dataclass(frozen=True)
class FontSpec:
    """A font descriptor. Immutable, so palettes can share instances."""

    family: str = "Monospaced"
    style: FontStyle = FontStyle.BOLD
    size: int = 12

    def __post_init__(self) -> None:
        object.__setattr__(self, "style", FontStyle(int(self.style) & 3))
        if self.size <= 0:
            raise BadInputError(f"Font size must be positive: {self.size}")

    @property
    def is_bold(self) -> bool:
        return bool(self.style & FontStyle.BOLD)

    @property
    def is_italic(self) -> bool:
        return bool(self.style & FontStyle.ITALIC)


# Monospaced faces tried after the requested family, per style
_MONOSPACE_CANDIDATES: Dict[int, Tuple[str, ...]] = {
    FontStyle.PLAIN: (
        "DejaVuSansMono.ttf", "consola.ttf", "Menlo.ttc", "Monaco.ttf",
        "LiberationMono-Regular.ttf", "cour.ttf",
    ),
    FontStyle.BOLD: (
        "DejaVuSansMono-Bold.ttf", "consolab.ttf", "LiberationMono-Bold.ttf",
        "courbd.ttf", "Menlo.ttc", "Monaco.ttf",
    ),
    FontStyle.ITALIC: (
        "DejaVuSansMono-Oblique.ttf", "consolai.ttf", "LiberationMono-Italic.ttf",
        "couri.ttf", "Menlo.ttc",
    ),
    FontStyle.BOLD | FontStyle.ITALIC: (
        "DejaVuSansMono-BoldOblique.ttf", "consolaz.ttf", "LiberationMono-BoldItalic.ttf",
        "courbi.ttf", "Menlo.ttc",
    ),
}

_STYLE_SUFFIXES: Dict[int, Tuple[str, ...]] = {
    FontStyle.PLAIN: ("", "-Regular"),
    FontStyle.BOLD: ("-Bold", "bd", "b"),
    FontStyle.ITALIC: ("-Italic", "-Oblique", "i"),
    FontStyle.BOLD | FontStyle.ITALIC: ("-BoldItalic", "-BoldOblique", "bi", "z"),
}

# Logical family names (as stored in palette files) with no font file of their own
_LOGICAL_FAMILIES = {"monospaced", "dialoginput", "dialog", "serif", "sansserif"}


def font_file_candidates(spec: FontSpec) -> List[str]:
    """Font files to try for a descriptor, most specific first."""
    candidates: List[str] = []
    family = spec.family.strip()
    if family and os.path.isfile(family):
        candidates.append(family)
    elif family and family.lower() not in _LOGICAL_FAMILIES:
        stem = family.replace(" ", "")
        for suffix in _STYLE_SUFFIXES[int(spec.style)]:
            candidates.append(f"{stem}{suffix}.ttf")
        candidates.append(f"{stem}.ttf")
    for name in _MONOSPACE_CANDIDATES[int(spec.style)]:
        if name not in candidates:
            candidates.append(name)
    return candidates


def load_font(spec: FontSpec) -> ImageFont.FreeTypeFont:
    """Load the first available TrueType face for ``spec``, else Pillow's default font."""
    for name in font_file_candidates(spec):
        try:
            return ImageFont.truetype(name, spec.size)
        except OSError:
            continue
    logger.warning(f"No TrueType face found for {spec}; using Pillow's default font")
    try:
        return ImageFont.load_default(size=spec.size)
    except (OSError, ImportError, TypeError) as exc:
        raise HostCapabilityError(f"Unable to load any font for {spec}") from exc


# ------------------------ Measure capability ------------------------
class FontMeasure:
    """Font capability consumed by the palette and the renderer.

    Widths are truncated advance widths; heights are the font's line height and
    do not depend on the measured text.
    """

    def measure(self, font: FontSpec, text: str) -> Tuple[int, int]:
        raise NotImplementedError

    def glyph_widths(self, font: FontSpec) -> List[int]:
        raise NotImplementedError

    def font_height(self, font: FontSpec) -> int:
        raise NotImplementedError

    def context(self, image: Image.Image):
        """Create a drawing context for ``image``."""
        raise NotImplementedError

    def draw(self, ctx, font: FontSpec, color: Sequence[int], x: int, y: int, text: str) -> None:
        """Draw ``text`` with its left baseline at ``(x, y)``."""
        raise NotImplementedError

    def string_width(self, font: FontSpec, text: str) -> int:
        return self.measure(font, text)[0]

    def string_height(self, font: FontSpec, text: str) -> int:
        return self.measure(font, text)[1]


class PillowFontMeasure(FontMeasure):
    """Measure and draw with Pillow. Create one per rendering thread."""

    def __init__(self) -> None:
        self._fonts: Dict[FontSpec, ImageFont.FreeTypeFont] = {}
        self._widths: Dict[FontSpec, List[int]] = {}

    def font(self, spec: FontSpec):
        font = self._fonts.get(spec)
        if font is None:
            font = load_font(spec)
            self._fonts[spec] = font
        return font

    def font_height(self, font: FontSpec) -> int:
        f = self.font(font)
        if hasattr(f, "getmetrics"):
            ascent, descent = f.getmetrics()
            return int(ascent + descent)
        bbox = f.getbbox("Mg")
        return int(bbox[3] - bbox[1])

    def measure(self, font: FontSpec, text: str) -> Tuple[int, int]:
        f = self.font(font)
        width = int(f.getlength(text)) if text else 0
        return width, self.font_height(font)

    def glyph_widths(self, font: FontSpec) -> List[int]:
        widths = self._widths.get(font)
        if widths is None:
            f = self.font(font)
            codes = list(range(32, 127)) + list(range(160, 256))
            widths = [int(round(f.getlength(chr(c)))) for c in codes]
            self._widths[font] = widths
        return widths

    def context(self, image: Image.Image) -> ImageDraw.ImageDraw:
        return ImageDraw.Draw(image)

    def draw(self, ctx, font: FontSpec, color: Sequence[int], x: int, y: int, text: str) -> None:
        f = self.font(font)
        fill = tuple(color)
        if isinstance(f, ImageFont.FreeTypeFont):
            ctx.text((x, y), text, font=f, fill=fill, anchor="ls")
        else:
            # bitmap fonts have no anchors; lift by the line height instead
            ctx.text((x, y - self.font_height(font)), text, font=f, fill=fill)


# ------------------------ System fonts ------------------------
def _font_dirs() -> List[str]:
    dirs: List[str] = []
    if sys.platform.startswith("win"):
        dirs.append(os.path.join(os.environ.get("WINDIR", r"C:\Windows"), "Fonts"))
    elif sys.platform == "darwin":
        dirs += ["/Library/Fonts", "/System/Library/Fonts", os.path.expanduser("~/Library/Fonts")]
    else:
        data_dirs = os.environ.get("XDG_DATA_DIRS", "/usr/local/share:/usr/share").split(":")
        dirs += [os.path.join(d, "fonts") for d in data_dirs if d]
        dirs.append(os.path.expanduser("~/.fonts"))
        dirs.append(os.path.expanduser("~/.local/share/fonts"))
    return [d for d in dirs if os.path.isdir(d)]


def _iter_font_files(dirs: Iterable[str]) -> Iterable[str]:
    for root_dir in dirs:
        for root, _, files in os.walk(root_dir):
            for name in sorted(files):
                if name.lower().endswith((".ttf", ".otf", ".ttc")):
                    yield os.path.join(root, name)


def list_font_names(only_monospace: bool = False, dirs: Optional[Iterable[str]] = None) -> List[str]:
    """Names ("Family Style") of installed TrueType fonts.

    With ``only_monospace`` a face is kept only when "i" and "m" advance equally.
    """
    names: List[str] = []
    for path in _iter_font_files(_font_dirs() if dirs is None else dirs):
        try:
            font = ImageFont.truetype(path, 12)
        except OSError:
            logger.debug(f"Skipping unreadable font file {path}")
            continue
        if only_monospace and font.getlength("i") != font.getlength("m"):
            continue
        family, style = font.getname()
        name = f"{family} {style}".strip() if style and style != "Regular" else (family or "")
        if name and name not in names:
            names.append(name)
    return sorted(names)

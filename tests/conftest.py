"""Pytest configuration: make the flat modules importable and provide a fake font measure."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Tuple

import pytest

_REPO_ROOT = Path(__file__).resolve().parents[1]
_root_str = str(_REPO_ROOT)
if _root_str not in sys.path:
    sys.path.insert(0, _root_str)

from ascii_graphics import FontMeasure  # noqa: E402


class CellMeasure(FontMeasure):
    """Every glyph advances ``cell`` pixels; every line is ``height`` pixels tall.

    Drawing records ``(x, y, text, color)`` instead of touching the canvas.
    """

    def __init__(self, cell: int = 10, height: int | None = None) -> None:
        self.cell = cell
        self.height = cell if height is None else height
        self.draws: List[Tuple[int, int, str, Tuple[int, ...]]] = []

    def measure(self, font, text: str) -> Tuple[int, int]:
        return len(text) * self.cell, self.height

    def glyph_widths(self, font) -> List[int]:
        return [self.cell] * 8

    def font_height(self, font) -> int:
        return self.height

    def context(self, image):
        return image

    def draw(self, ctx, font, color, x: int, y: int, text: str) -> None:
        self.draws.append((x, y, text, tuple(color)))


@pytest.fixture
def measure() -> CellMeasure:
    return CellMeasure()

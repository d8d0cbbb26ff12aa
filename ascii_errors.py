#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ascii_errors.py
===============

Exception types shared by the renderer, the GIF codec and the palette serializer.

Each error also derives from the builtin it refines, so callers catching
``ValueError`` / ``OSError`` keep working.
"""

from __future__ import annotations


class AsciiArtError(Exception):
    """Base class for all errors raised by the ASCII art modules."""


class BadInputError(AsciiArtError, ValueError):
    """Unreadable source image, truncated GIF, empty weight list, bad dimensions."""


class FormatUnsupportedError(AsciiArtError, ValueError):
    """An encoder was asked for a format it cannot produce."""


class IOFailure(AsciiArtError, OSError):
    """Read or write error at a codec or serializer boundary."""


class SerializationError(AsciiArtError, ValueError):
    """Missing key or unknown property type while (de)serializing a class."""


class HostCapabilityError(AsciiArtError, RuntimeError):
    """Font measurement or glyph drawing failed."""


class RenderCancelled(AsciiArtError):
    """A render was cancelled at a row boundary."""

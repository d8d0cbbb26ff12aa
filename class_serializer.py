#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
class_serializer.py
===================

Save and load an object's properties as a flat ``key=value`` property file.

Every ``property`` of a class that has both a getter and a setter is stored
under its own name. The getter's return annotation decides how the value is
converted: ``str``, ``bool``, ``int`` and ``float`` are built in, anything else
needs a ``TypeCodec`` (``ColorCodec`` and ``FontCodec`` ship here).

The file syntax is that of Java ``.properties`` files, so palettes exported by
older versions of the program load unchanged.
"""

from __future__ import annotations

import logging
import typing
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ascii_errors import IOFailure, SerializationError
from ascii_graphics import Color, FontSpec, FontStyle

logger = logging.getLogger(__name__)

_BUILTIN_TYPES = (str, bool, int, float)


# ------------------------ Type codecs ------------------------
class TypeCodec:
    """Convert values of one type to and from their string form."""

    value_type: type = object

    def matches(self, value_type: Optional[type]) -> bool:
        return value_type is self.value_type

    def serialize(self, value: Any) -> str:
        raise NotImplementedError

    def parse(self, text: str) -> Any:
        raise NotImplementedError


class ColorCodec(TypeCodec):
    """``Color`` as ``"R,G,B,A"``."""

    value_type = Color

    def serialize(self, value: Color) -> str:
        return "%d,%d,%d,%d" % (value.red, value.green, value.blue, value.alpha)

    def parse(self, text: str) -> Color:
        parts = [int(p) for p in text.split(",")]
        if len(parts) == 3:
            parts.append(255)
        if len(parts) != 4 or any(not 0 <= p <= 255 for p in parts):
            raise ValueError(f"Expected four components in 0-255, got {text!r}")
        return Color(*parts)


class FontCodec(TypeCodec):
    """``FontSpec`` as ``"family,style,size"``; style is the bold/italic bitmask."""

    value_type = FontSpec

    def serialize(self, value: FontSpec) -> str:
        return "%s,%d,%d" % (value.family, int(value.style), value.size)

    def parse(self, text: str) -> FontSpec:
        # family names may contain commas, the numbers never do
        family, style, size = text.rsplit(",", 2)
        return FontSpec(family, FontStyle(int(style) & 3), int(size))


# ------------------------ Property files ------------------------
def _escape(text: str, is_key: bool) -> str:
    out: List[str] = []
    for i, ch in enumerate(text):
        if ch == "\\":
            out.append("\\\\")
        elif ch == " ":
            out.append("\\ " if (i == 0 or is_key) else " ")
        elif ch == "\t":
            out.append("\\t")
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\f":
            out.append("\\f")
        elif ch in "=:#!":
            out.append("\\" + ch)
        elif ord(ch) < 0x20 or ord(ch) > 0x7E:
            code = ord(ch)
            if code > 0xFFFF:
                code -= 0x10000
                out.append("\\u%04X\\u%04X" % (0xD800 + (code >> 10), 0xDC00 + (code & 0x3FF)))
            else:
                out.append("\\u%04X" % code)
        else:
            out.append(ch)
    return "".join(out)


def _unescape(text: str) -> str:
    out: List[str] = []
    i = 0
    length = len(text)
    while i < length:
        ch = text[i]
        if ch != "\\" or i + 1 >= length:
            out.append(ch)
            i += 1
            continue
        nxt = text[i + 1]
        if nxt == "u":
            digits = text[i + 2:i + 6]
            if len(digits) != 4:
                raise ValueError(f"Malformed \\uXXXX escape in {text!r}")
            out.append(chr(int(digits, 16)))
            i += 6
            continue
        out.append({"t": "\t", "n": "\n", "r": "\r", "f": "\f"}.get(nxt, nxt))
        i += 2
    # pair up surrogates written by \\uXXXX escapes
    return "".join(out).encode("utf-16", "surrogatepass").decode("utf-16")


def _ends_with_continuation(line: str) -> bool:
    count = len(line) - len(line.rstrip("\\"))
    return count % 2 == 1


def _logical_lines(text: str) -> Iterable[str]:
    pending: Optional[str] = None
    for raw in text.splitlines():
        line = raw.lstrip(" \t\f")
        if pending is None:
            if not line or line[0] in "#!":
                continue
            pending = ""
        if _ends_with_continuation(line):
            pending += line[:-1]
            continue
        yield pending + line
        pending = None
    if pending:
        yield pending


def _split_key_value(line: str) -> Tuple[str, str]:
    i = 0
    length = len(line)
    while i < length:
        ch = line[i]
        if ch == "\\":
            i += 2
            continue
        if ch in "=: \t\f":
            break
        i += 1
    key = line[:i]
    rest = line[i:].lstrip(" \t\f")
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(" \t\f")
    return _unescape(key), _unescape(rest)


def parse_properties(text: str) -> Dict[str, str]:
    """Parse property-file text into an ordered dict."""
    props: Dict[str, str] = {}
    for line in _logical_lines(text):
        key, value = _split_key_value(line)
        props[key] = value
    return props


def format_properties(props: Dict[str, str], comment: Optional[str] = None) -> str:
    lines: List[str] = []
    if comment:
        lines.append("# " + comment)
    for key, value in props.items():
        lines.append(f"{_escape(key, is_key=True)}={_escape(value, is_key=False)}")
    return "\n".join(lines) + "\n"


def load_properties(path: str) -> Dict[str, str]:
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as exc:
        raise IOFailure(f"Error reading properties from '{path}': {exc}") from exc
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        text = data.decode("latin-1")
    try:
        return parse_properties(text)
    except ValueError as exc:
        raise SerializationError(f"Malformed properties file '{path}': {exc}") from exc


def store_properties(path: str, props: Dict[str, str], comment: Optional[str] = None) -> None:
    try:
        with open(path, "w", encoding="ascii", newline="\n") as f:
            f.write(format_properties(props, comment))
    except OSError as exc:
        raise IOFailure(f"Error writing properties to '{path}': {exc}") from exc


# ------------------------ Serializer ------------------------
class ClassSerializer:
    """Reflective property serializer with pluggable codecs.

    ``skip_unknown_types``: properties whose type has no codec are skipped
    instead of raising. ``ignore_missing_values``: keys absent from a file
    leave the property untouched instead of raising.
    """

    def __init__(self, *codecs: TypeCodec, skip_unknown_types: bool = True,
                 ignore_missing_values: bool = False):
        self.skip_unknown_types = skip_unknown_types
        self.ignore_missing_values = ignore_missing_values
        self._codecs: List[TypeCodec] = list(codecs)

    # ---- codecs ----
    @property
    def codecs(self) -> List[TypeCodec]:
        return list(self._codecs)

    def add_codec(self, *codecs: TypeCodec) -> None:
        self._codecs.extend(codecs)

    def remove_codec(self, *codecs: TypeCodec) -> None:
        for codec in codecs:
            if codec in self._codecs:
                self._codecs.remove(codec)

    def codec_for(self, value_type: Optional[type]) -> Optional[TypeCodec]:
        for codec in self._codecs:
            if codec.matches(value_type):
                return codec
        return None

    # ---- introspection ----
    @staticmethod
    def serializable_properties(cls: type) -> List[Tuple[str, Optional[type]]]:
        """(name, declared type) of every read/write property, in definition order."""
        found: Dict[str, property] = {}
        for klass in reversed(cls.__mro__):
            for name, attr in vars(klass).items():
                if isinstance(attr, property):
                    found[name] = attr
                elif name in found:
                    del found[name]
        result: List[Tuple[str, Optional[type]]] = []
        for name, prop in found.items():
            if name == "class" or prop.fget is None or prop.fset is None:
                continue
            try:
                value_type = typing.get_type_hints(prop.fget).get("return")
            except (NameError, TypeError):
                value_type = None
            result.append((name, value_type))
        return result

    @staticmethod
    def _type_name(value_type: Optional[type]) -> str:
        return getattr(value_type, "__name__", repr(value_type))

    # ---- conversion ----
    def _serialize_value(self, name: str, value_type: Optional[type], value: Any) -> Optional[str]:
        if value_type is bool:
            return "true" if value else "false"
        if value_type in (int, float):
            return repr(value_type(value))
        if value_type is str:
            return str(value)
        codec = self.codec_for(value_type)
        if codec is not None:
            return codec.serialize(value)
        if self.skip_unknown_types:
            logger.debug(f"Skipping '{name}' of unknown type {self._type_name(value_type)}")
            return None
        raise SerializationError(f"Unknown type in class: {self._type_name(value_type)} (property '{name}')")

    def _parse_value(self, name: str, value_type: Optional[type], text: str) -> Tuple[bool, Any]:
        try:
            if value_type is str:
                return True, text
            if value_type is bool:
                return True, text.strip().lower() == "true"
            if value_type is int:
                return True, int(text.strip())
            if value_type is float:
                return True, float(text.strip())
            codec = self.codec_for(value_type)
            if codec is not None:
                return True, codec.parse(text)
        except ValueError as exc:
            raise SerializationError(f"Invalid value for '{name}': {text!r}") from exc
        if self.skip_unknown_types:
            logger.debug(f"Skipping '{name}' of unknown type {self._type_name(value_type)}")
            return False, None
        raise SerializationError(f"Unknown type in class: {self._type_name(value_type)} (property '{name}')")

    def to_properties(self, cls: type, instance: Any) -> Dict[str, str]:
        props: Dict[str, str] = {}
        for name, value_type in self.serializable_properties(cls):
            value = getattr(instance, name)
            if value is None:
                continue
            text = self._serialize_value(name, value_type, value)
            if text is not None:
                props[name] = text
        return props

    def from_properties(self, cls: type, instance: Any, props: Dict[str, str]) -> None:
        for name, value_type in self.serializable_properties(cls):
            text = props.get(name)
            if text is None:
                if self.ignore_missing_values:
                    continue
                raise SerializationError(f"Missing value with name: {name}")
            found, value = self._parse_value(name, value_type, text)
            if found:
                setattr(instance, name, value)

    # ---- files ----
    def write(self, cls: type, instance: Any, path: str) -> None:
        props = self.to_properties(cls, instance)
        store_properties(path, props, comment=f"Serialized: {cls.__name__}")
        logger.debug(f"Wrote {len(props)} properties of {cls.__name__} to {path}")

    def read(self, cls: type, instance: Any, path: str) -> None:
        props = load_properties(path)
        self.from_properties(cls, instance, props)
        logger.debug(f"Read {cls.__name__} from {path}")

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ascii_gif.py
============

Animated GIF decoding and encoding for the ASCII renderer.

- Decode: walk the GIF blocks, decode each frame's pixels with Pillow, and
  composite the frames onto a master canvas honouring each frame's disposal
- Encode: write an ordered frame list with one shared delay (or per-frame
  delays on request) and a NETSCAPE 2.0 loop extension; every frame is
  written, identical neighbours included
- Delays are milliseconds at the API and centiseconds in the file

Dependency: Pillow
"""

from __future__ import annotations

import enum
import io
import logging
import os
import struct
import sys
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

try:
    from PIL import GifImagePlugin, Image
except ImportError:  # pragma: no cover - runtime dependency
    print("This module requires Pillow. Install it with: pip install pillow", file=sys.stderr)
    raise

from ascii_errors import BadInputError, IOFailure
from ascii_graphics import TRANSPARENT, Color

logger = logging.getLogger(__name__)

DEFAULT_COMMENT = "Created by ASCIIArt"

GifSaveWatcher = Callable[[int, int], None]


class Disposal(enum.IntEnum):
    """How a frame is cleared before the next one is drawn."""

    UNSPECIFIED = 0
    DO_NOT_DISPOSE = 1
    RESTORE_TO_BACKGROUND = 2
    RESTORE_TO_PREVIOUS = 3

    @classmethod
    def from_code(cls, code: int) -> Disposal:
        # codes 4-7 are reserved
        return cls(code) if 0 <= code <= 3 else cls.UNSPECIFIED


# ------------------------ Block-level parsing ------------------------
# Pillow only hands out composited frames and carries the last non-zero
# disposal over to later frames, so descriptors, colour tables and graphic
# control blocks are read here. Loop count, comment and background index
# are taken from Pillow.
@dataclass
class GraphicControl:
    disposal: Disposal = Disposal.UNSPECIFIED
    delay: int = 0  # centiseconds
    transparent_index: Optional[int] = None
    user_input: bool = False


@dataclass
class RawFrame:
    """One image descriptor with its still-compressed pixel data."""

    left: int
    top: int
    width: int
    height: int
    interlaced: bool
    local_table: Optional[bytes]
    min_code_size: int
    data: bytes  # LZW sub-blocks including the terminator
    control: Optional[GraphicControl] = None

    @property
    def box(self) -> Tuple[int, int, int, int]:
        return self.left, self.top, self.left + self.width, self.top + self.height


@dataclass
class GifStream:
    width: int
    height: int
    global_table: Optional[bytes]
    frames: List[RawFrame] = field(default_factory=list)
    background_index: Optional[int] = None
    loop: Optional[int] = None
    comment: Optional[bytes] = None

    @property
    def background_color(self) -> Optional[Color]:
        """The global table's background entry, or None without a global table."""
        table = self.global_table
        if table is None or self.background_index is None:
            return None
        offset = self.background_index * 3
        if offset + 3 > len(table):
            return None
        return Color(table[offset], table[offset + 1], table[offset + 2], 255)


def _take(data: bytes, pos: int, size: int) -> bytes:
    if pos + size > len(data):
        raise IndexError("read past end of data")
    return data[pos:pos + size]


def _read_sub_blocks(data: bytes, pos: int) -> Tuple[bytes, int]:
    chunks: List[bytes] = []
    while True:
        size = data[pos]
        pos += 1
        if size == 0:
            return b"".join(chunks), pos
        chunks.append(_take(data, pos, size))
        pos += size


def _skip_sub_blocks(data: bytes, pos: int) -> int:
    while True:
        size = data[pos]
        pos += 1
        if size == 0:
            return pos
        _take(data, pos, size)
        pos += size


def _color_table_size(packed: int) -> int:
    return 3 * (2 << (packed & 0x07))


def _parse_blocks(data: bytes) -> GifStream:
    width, height, packed = struct.unpack_from("<HHB", data, 6)
    pos = 13
    global_table = None
    if packed & 0x80:
        size = _color_table_size(packed)
        global_table = _take(data, pos, size)
        pos += size
    stream = GifStream(width, height, global_table)

    control: Optional[GraphicControl] = None
    while True:
        if pos >= len(data):
            if not stream.frames:
                raise IndexError("no image data before end of file")
            logger.debug("GIF ends without a trailer")
            break
        introducer = data[pos]
        pos += 1
        if introducer == 0x3B:
            break
        if introducer == 0x21:
            label = data[pos]
            if label != 0xF9:
                pos = _skip_sub_blocks(data, pos + 1)
                continue
            payload, pos = _read_sub_blocks(data, pos + 1)
            if len(payload) >= 4:
                gce_packed = payload[0]
                control = GraphicControl(
                    disposal=Disposal.from_code((gce_packed >> 2) & 0x07),
                    delay=payload[1] | (payload[2] << 8),
                    transparent_index=payload[3] if gce_packed & 0x01 else None,
                    user_input=bool(gce_packed & 0x02),
                )
        elif introducer == 0x2C:
            left, top, w, h, frame_packed = struct.unpack_from("<HHHHB", data, pos)
            pos += 9
            local_table = None
            if frame_packed & 0x80:
                size = _color_table_size(frame_packed)
                local_table = _take(data, pos, size)
                pos += size
            min_code_size = data[pos]
            start = pos + 1
            pos = _skip_sub_blocks(data, start)
            stream.frames.append(RawFrame(left, top, w, h, bool(frame_packed & 0x40),
                                          local_table, min_code_size, data[start:pos], control))
            control = None
        else:
            raise BadInputError(f"Unexpected GIF block 0x{introducer:02x} at offset {pos - 1}")
    return stream


def parse_gif(data: bytes) -> GifStream:
    """Split GIF data into its screen descriptor, colour tables and raw frames."""
    if len(data) < 13 or data[:6] not in (b"GIF87a", b"GIF89a"):
        raise BadInputError("Not a GIF file")
    try:
        stream = _parse_blocks(data)
    except (IndexError, struct.error) as exc:
        raise BadInputError(f"Truncated GIF data: {exc}") from exc
    try:
        with Image.open(io.BytesIO(data)) as im:
            info = dict(im.info)
    except (OSError, EOFError, SyntaxError) as exc:
        raise BadInputError(f"Unreadable GIF header: {exc}") from exc
    # Pillow reports "background" only when there is a global table
    stream.background_index = info.get("background")
    stream.loop = info.get("loop")
    stream.comment = info.get("comment")
    return stream


def decode_frame_image(frame: RawFrame, global_table: Optional[bytes]) -> Image.Image:
    """Decode one frame's own pixels (no compositing) as an RGBA image."""
    table = frame.local_table or global_table
    if table is None:
        raise BadInputError("GIF frame has no colour table")
    if frame.width == 0 or frame.height == 0:
        raise BadInputError("GIF frame has zero size")
    size_bits = max(0, (len(table) // 3).bit_length() - 2)
    # a single-frame GIF made of this frame's blocks, for Pillow's LZW decoder
    parts = [b"GIF89a", struct.pack("<HHBBB", frame.width, frame.height, 0x80 | size_bits, 0, 0), table]
    control = frame.control
    if control is not None and control.transparent_index is not None:
        parts.append(struct.pack("<BBBBHBB", 0x21, 0xF9, 4, 0x01, 0, control.transparent_index, 0))
    parts.append(b"\x2c" + struct.pack("<HHHHB", 0, 0, frame.width, frame.height,
                                       0x40 if frame.interlaced else 0))
    parts.append(bytes([frame.min_code_size]))
    parts.append(frame.data)
    parts.append(b"\x3b")
    try:
        with Image.open(io.BytesIO(b"".join(parts))) as im:
            im.load()
            return im.convert("RGBA")
    except (OSError, ValueError, SyntaxError) as exc:
        raise BadInputError(f"Corrupt GIF frame data: {exc}") from exc


# ------------------------ Frames ------------------------
class GifFrame:
    """A composited frame with its delay (ms) and disposal method."""

    def __init__(self, image: Image.Image, delay: int = -1, disposal: Optional[Disposal] = None):
        self.image = image
        self.delay = delay
        self.disposal = disposal

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    def __repr__(self) -> str:
        disposal = self.disposal.name if self.disposal is not None else None
        return f"GifFrame({self.width}x{self.height}, delay={self.delay}, disposal={disposal})"


def _clip_box(box: Tuple[int, int, int, int], size: Tuple[int, int]) -> Tuple[int, int, int, int]:
    left, top, right, bottom = box
    return max(0, left), max(0, top), min(size[0], right), min(size[1], bottom)


def composite_frames(stream: GifStream) -> List[GifFrame]:
    """Replay the raw frames onto a master canvas, one snapshot per frame."""
    if not stream.frames:
        raise BadInputError("GIF contains no frames")
    width, height = stream.width, stream.height
    background = stream.background_color
    canvas_color = background if background is not None else TRANSPARENT

    frames: List[GifFrame] = []
    master: Optional[Image.Image] = None
    has_background = False
    last_box = (0, 0, 0, 0)

    for index, raw in enumerate(stream.frames):
        image = decode_frame_image(raw, stream.global_table)
        if width <= 0 or height <= 0:
            width, height = image.size
        control = raw.control or GraphicControl()

        if master is None:
            master = Image.new("RGBA", (width, height), canvas_color)
            has_background = image.size == (width, height)
        else:
            previous = frames[-1].disposal
            if previous is Disposal.RESTORE_TO_PREVIOUS:
                restored = next((f for f in reversed(frames)
                                 if f.disposal is not Disposal.RESTORE_TO_PREVIOUS), None)
                if restored is not None:
                    master = restored.image.copy()
                else:
                    master = Image.new("RGBA", (width, height), canvas_color)
            elif previous is Disposal.RESTORE_TO_BACKGROUND and background is not None:
                # a full-canvas first frame is its own background for frame 1
                box = _clip_box(last_box, master.size)
                if not (has_background and index <= 1) and box[2] > box[0] and box[3] > box[1]:
                    master.paste(background, box)

        master.alpha_composite(image, dest=(raw.left, raw.top))
        last_box = raw.box
        frames.append(GifFrame(master.copy(), control.delay * 10, control.disposal))

    logger.debug(f"Decoded {len(frames)} GIF frames on a {width}x{height} canvas")
    return frames


def load_frames(path: str) -> List[GifFrame]:
    """Decode a GIF file into fully composited frames."""
    try:
        with open(path, "rb") as f:
            data = f.read()
    except OSError as exc:
        raise IOFailure(f"Failed to read GIF: {path}: {exc}") from exc
    return composite_frames(parse_gif(data))


def write_gif(path: str, frames: Sequence[GifFrame], delay: int, loop: bool = True,
              per_frame_delay: bool = False, watcher: Optional[GifSaveWatcher] = None,
              comment: str = DEFAULT_COMMENT) -> None:
    """Encode frames as an animated GIF.

    By default every frame gets the shared ``delay``; ``per_frame_delay`` writes
    each frame's own delay instead. Frames are written opaque with disposal "none",
    one image block per frame even when neighbours are identical.
    """
    if not frames:
        raise BadInputError("No frames to export")
    width = max(f.width for f in frames)
    height = max(f.height for f in frames)

    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    try:
        with open(path, "wb") as f:
            f.write(_stream_header(width, height, loop, comment))
            for index, frame in enumerate(frames):
                frame_delay = frame.delay if per_frame_delay else delay
                for block in _frame_blocks(frame.image, frame_delay):
                    f.write(block)
                if watcher is not None:
                    watcher(index, len(frames))
            f.write(b"\x3b")
    except OSError as exc:
        raise IOFailure(f"Failed to write GIF: {path}: {exc}") from exc
    logger.info(f"Saved GIF with {len(frames)} frames to {path}")


def _stream_header(width: int, height: int, loop: bool, comment: str) -> bytes:
    # no global colour table, each frame carries its own
    parts = [b"GIF89a", struct.pack("<HHBBB", width, height, 0, 0, 0)]
    parts.append(b"\x21\xff\x0bNETSCAPE2.0" + struct.pack("<BBHB", 3, 1, 0 if loop else 1, 0))
    if comment:
        text = comment.encode("utf-8")
        chunks = [text[i:i + 255] for i in range(0, len(text), 255)]
        parts.append(b"\x21\xfe" + b"".join(bytes([len(c)]) + c for c in chunks) + b"\x00")
    return b"".join(parts)


def _frame_blocks(image: Image.Image, delay: int) -> List[bytes]:
    """Graphic control block, then Pillow's descriptor, local table and LZW data."""
    delay_cs = min(0xFFFF, max(0, delay) // 10)
    control = struct.pack("<BBBBHBB", 0x21, 0xF9, 4, int(Disposal.UNSPECIFIED) << 2, delay_cs, 0, 0)
    indexed = image.convert("RGB").convert("P", palette=Image.Palette.ADAPTIVE)
    # no duration, disposal or transparency here, so Pillow adds no control block of its own
    return [control] + GifImagePlugin.getdata(indexed, include_color_table=True)


# ------------------------ Animated image ------------------------
class AnimatedImage:
    """Ordered GIF frames plus the animation's delay.

    Built from images and one shared delay, or from a GIF file, in which case
    ``delay`` is the average of the frame delays.
    """

    def __init__(self, images: Sequence[Image.Image] = (), delay: int = 0):
        self.frames: List[GifFrame] = [GifFrame(img, delay) for img in images]
        self._delay: Optional[int] = delay

    @classmethod
    def from_frames(cls, frames: Sequence[GifFrame]) -> AnimatedImage:
        anim = cls()
        anim.frames = list(frames)
        anim._delay = None
        return anim

    @classmethod
    def open(cls, path: str) -> AnimatedImage:
        return cls.from_frames(load_frames(path))

    @classmethod
    def copy_shape(cls, other: AnimatedImage) -> AnimatedImage:
        """Same frame count, delays and disposals; images are shared until replaced."""
        anim = cls.from_frames([GifFrame(f.image, f.delay, f.disposal) for f in other.frames])
        anim._delay = other._delay
        return anim

    @property
    def delay(self) -> int:
        if self._delay is None:
            delays = [f.delay for f in self.frames if f.delay >= 0]
            return int(sum(delays) / len(delays)) if delays else 0
        return self._delay

    @delay.setter
    def delay(self, value: int) -> None:
        self._delay = value

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    def frame_image(self, pos: int) -> Image.Image:
        return self.frames[pos].image

    def set_frame_image(self, pos: int, image: Image.Image) -> None:
        self.frames[pos].image = image

    def save(self, path: str, loop: bool = True, watcher: Optional[GifSaveWatcher] = None,
             per_frame_delay: bool = False, comment: str = DEFAULT_COMMENT) -> None:
        write_gif(path, self.frames, self.delay, loop=loop, per_frame_delay=per_frame_delay,
                  watcher=watcher, comment=comment)

    def __len__(self) -> int:
        return len(self.frames)

    def __repr__(self) -> str:
        return f"AnimatedImage(frames={self.frame_count}, delay={self.delay})"

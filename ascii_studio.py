#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ascii_studio.py
===============

Background rendering and the command-line front end.

- ``BackgroundRenderer``: runs a render (and its save) on a worker thread and
  publishes stage/progress events on a bounded queue for the host to consume
- ``RenderHost``: hook the driver uses to disable editing while it runs
- ``main``: CLI that builds a palette, drives a ``BackgroundRenderer`` and
  shows its progress with tqdm

Examples:
  python ascii_studio.py -i photo.jpg -o photo.txt
  python ascii_studio.py -i cat.gif -o cat_ascii.gif --preset blocks-dark --override --fg "#33ff66"
  python ascii_studio.py --export-palette mine.ascp --preset symbols-light

Dependencies: Pillow, numpy, tqdm
"""

from __future__ import annotations

import argparse
import enum
import logging
import queue
import sys
import threading
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, Optional, Union

try:
    from PIL import Image
except ImportError:  # pragma: no cover - runtime dependency
    print("This module requires Pillow. Install it with: pip install pillow", file=sys.stderr)
    raise
from tqdm import tqdm

from ascii_errors import AsciiArtError, BadInputError, RenderCancelled
from ascii_gif import AnimatedImage
from ascii_graphics import FontSpec, FontStyle, PillowFontMeasure, list_font_names, parse_hex_color
from ascii_image import AsciiRenderer, file_ext, image_format_for, load_image, save_rendered_image, write_text
from ascii_palette import WEIGHT_PRESETS, Palette

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CANCELLED = 1
EXIT_FAILED = 2


# ------------------------ Events ------------------------
class RenderType(enum.Enum):
    PREVIEW = "preview"
    TEXT = "text"
    STILL_IMAGE = "image"
    ANIMATED = "animation"

    @property
    def label(self) -> str:
        return self.value


class EventKind(enum.Enum):
    PROGRESS = "progress"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass
class RenderEvent:
    stage: str
    progress: int = 0
    maximum: int = 0
    kind: EventKind = EventKind.PROGRESS
    message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.kind is not EventKind.PROGRESS


class RenderHost:
    """Host callbacks; the default host has nothing to disable."""

    def set_editing_enabled(self, enabled: bool) -> None:
        pass


# ------------------------ Background driver ------------------------
class BackgroundRenderer:
    """Run one render on a worker thread.

    Progress events are dropped while the queue is full (the next one carries
    the newer position); the final DONE / ERROR / CANCELLED event always gets through.
    """

    def __init__(self, renderer: AsciiRenderer, render_type: RenderType,
                 source: Union[Image.Image, AnimatedImage], output_path: Optional[str] = None,
                 host: Optional[RenderHost] = None, loop: bool = True,
                 per_frame_delay: bool = False, queue_size: int = 64):
        if render_type is not RenderType.PREVIEW and not output_path:
            raise BadInputError(f"An output path is required to save {render_type.label}")
        if (render_type is RenderType.ANIMATED) != isinstance(source, AnimatedImage):
            raise BadInputError(f"Source does not match render type {render_type.label}")
        if render_type is RenderType.STILL_IMAGE:
            # fail before rendering when the extension cannot be written
            image_format_for(output_path)
        self.renderer = renderer
        self.render_type = render_type
        self.source = source
        self.output_path = output_path
        self.host = host or RenderHost()
        self.loop = loop
        self.per_frame_delay = per_frame_delay
        self.result: Union[str, Image.Image, AnimatedImage, None] = None
        self.error: Optional[BaseException] = None
        self._queue: "queue.Queue[RenderEvent]" = queue.Queue(maxsize=max(1, queue_size))
        self._thread: Optional[threading.Thread] = None
        self._finished = False
        self._stage = ""

    # ---- control ----
    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Render already started")
        self._thread = threading.Thread(target=self._run, name="ascii-render", daemon=True)
        self._thread.start()

    def cancel(self) -> None:
        self.renderer.cancel()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def events(self, timeout: Optional[float] = None) -> Iterator[RenderEvent]:
        """Yield events until (and including) the terminal one."""
        while not self._finished:
            event = self._queue.get(timeout=timeout)
            if event.is_terminal:
                self._finished = True
            yield event

    # ---- publishing ----
    def _publish(self, progress: int, maximum: int) -> None:
        try:
            self._queue.put_nowait(RenderEvent(self._stage, progress, maximum))
        except queue.Full:
            pass

    def _publish_terminal(self, kind: EventKind, message: Optional[str] = None) -> None:
        event = RenderEvent(self._stage, kind=kind, message=message)
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                except queue.Empty:
                    pass

    def _on_render_progress(self, progress: int, row_count: int, frame: int) -> None:
        if self.render_type is RenderType.ANIMATED:
            frames = self.source.frame_count
            self._publish(frame * row_count + progress, row_count * frames)
        else:
            self._publish(progress, row_count)

    def _on_save_progress(self, frame: int, frame_count: int) -> None:
        self._publish(frame + 1, frame_count)

    # ---- stages ----
    def _render(self) -> Union[str, Image.Image, AnimatedImage]:
        if self.render_type is RenderType.TEXT:
            return self.renderer.render_text(self.source)
        if self.render_type is RenderType.ANIMATED:
            return self.renderer.render_animated(self.source)
        return self.renderer.render_image(self.source)

    def _save(self, result: Union[str, Image.Image, AnimatedImage]) -> None:
        path = self.output_path
        if self.render_type is RenderType.ANIMATED:
            result.save(path, loop=self.loop, watcher=self._on_save_progress,
                        per_frame_delay=self.per_frame_delay)
            return
        self._publish(0, 1)
        if self.render_type is RenderType.TEXT:
            write_text(path, result)
        else:
            save_rendered_image(path, result)
        self._publish(1, 1)

    def _run(self) -> None:
        label = self.render_type.label
        self.host.set_editing_enabled(False)
        self.renderer.progress_watcher = self._on_render_progress
        try:
            self._stage = f"Rendering {label}"
            self._publish(0, 1)
            try:
                result = self._render()
            except RenderCancelled:
                logger.info(f"Render of {label} cancelled")
                self._publish_terminal(EventKind.CANCELLED, "Render cancelled")
                return
            except Exception as exc:
                logger.exception(f"Error rendering {label}")
                self.error = exc
                self._publish_terminal(EventKind.ERROR, f"Error rendering {label}")
                return
            self.result = result

            if self.render_type is RenderType.PREVIEW:
                self._publish_terminal(EventKind.DONE)
                return
            if self.renderer.cancelled:
                self._publish_terminal(EventKind.CANCELLED, "Render cancelled")
                return

            self._stage = f"Saving {label}"
            try:
                self._save(result)
            except Exception as exc:
                logger.exception(f"Error saving '{self.output_path}'")
                self.error = exc
                self._publish_terminal(EventKind.ERROR, f"Error saving '{self.output_path}'")
                return
            self._publish_terminal(EventKind.DONE)
        finally:
            self.renderer.progress_watcher = None
            self.host.set_editing_enabled(True)


# ------------------------ CLI ------------------------
FONT_STYLES = {
    "plain": FontStyle.PLAIN,
    "bold": FontStyle.BOLD,
    "italic": FontStyle.ITALIC,
    "bold-italic": FontStyle.BOLD | FontStyle.ITALIC,
}


@dataclass
class StudioConfig:
    input: Optional[str] = None
    output: Optional[str] = None
    render_type: Optional[str] = None    # text | image | animation; inferred when None
    palette: Optional[str] = None        # .ascp file to start from
    export_palette: Optional[str] = None
    preset: Optional[str] = None
    weights: Optional[str] = None
    invert: bool = False
    phrase: bool = False
    override: bool = False
    background: Optional[str] = None     # hex colours
    foreground: Optional[str] = None
    font_family: Optional[str] = None
    font_style: Optional[str] = None
    font_size: Optional[int] = None
    sampling_ratio: Optional[float] = None
    loop: bool = True
    per_frame_delay: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def infer_render_type(input_path: str, output_path: str) -> RenderType:
    ext = file_ext(output_path)
    if ext == "txt":
        return RenderType.TEXT
    if ext == "gif" and file_ext(input_path) == "gif":
        return RenderType.ANIMATED
    return RenderType.STILL_IMAGE


def build_palette(cfg: StudioConfig) -> Palette:
    palette = Palette.import_file(cfg.palette) if cfg.palette else Palette()
    if cfg.preset:
        palette.weights = WEIGHT_PRESETS[cfg.preset]
    if cfg.weights is not None:
        palette.weights = cfg.weights
    if cfg.invert:
        palette.invert()
    if cfg.phrase:
        palette.using_phrase = True
    if cfg.override:
        palette.overriding_image_colors = True
    if cfg.background:
        palette.background_color = parse_hex_color(cfg.background)
    if cfg.foreground:
        palette.font_color = parse_hex_color(cfg.foreground)
    if cfg.font_family or cfg.font_style or cfg.font_size:
        font = palette.font
        palette.font = FontSpec(
            cfg.font_family or font.family,
            FONT_STYLES[cfg.font_style] if cfg.font_style else font.style,
            cfg.font_size or font.size,
        )
    return palette


def build_driver(cfg: StudioConfig, palette: Palette) -> BackgroundRenderer:
    """Load the input and set up a renderer sized to it."""
    if cfg.render_type:
        render_type = RenderType(cfg.render_type)
    else:
        render_type = infer_render_type(cfg.input, cfg.output)
    if render_type is RenderType.ANIMATED:
        source = AnimatedImage.open(cfg.input)
        if not source.frame_count:
            raise BadInputError(f"No frames in {cfg.input}")
        width, height = source.frame_image(0).size
    else:
        source = load_image(cfg.input)
        width, height = source.size

    measure = PillowFontMeasure()
    params = palette.sampling_params(width, height, measure)
    if cfg.sampling_ratio:
        params.sampling_ratio = cfg.sampling_ratio
    logger.debug(f"Input {cfg.input}: {width}x{height}, {params}")
    renderer = AsciiRenderer(palette, params, measure)
    return BackgroundRenderer(renderer, render_type, source, cfg.output,
                              loop=cfg.loop, per_frame_delay=cfg.per_frame_delay)


def follow(driver: BackgroundRenderer) -> RenderEvent:
    """Show driver progress with tqdm and return the terminal event."""
    bar: Optional[tqdm] = None
    event = RenderEvent("")
    try:
        for event in driver.events():
            if event.is_terminal:
                break
            if bar is None or bar.desc != event.stage:
                if bar is not None:
                    bar.close()
                bar = tqdm(total=event.maximum, desc=event.stage, file=sys.stderr, leave=False)
            bar.total = event.maximum
            bar.n = event.progress
            bar.refresh()
    finally:
        if bar is not None:
            bar.close()
    return event


def parse_args(argv):
    parser = argparse.ArgumentParser(description="Image / GIF to ASCII art")
    parser.add_argument("-i", "--input", help="Input image or GIF path")
    parser.add_argument("-o", "--output", help="Output path (.txt, an image extension, or .gif)")
    parser.add_argument("-t", "--type", dest="render_type", choices=["text", "image", "animation"],
                        help="Render type (default: inferred from the output extension)")
    parser.add_argument("-p", "--palette", help="Palette file (.ascp) to start from")
    parser.add_argument("--export-palette", help="Write the resulting palette to this .ascp file")
    parser.add_argument("--preset", choices=sorted(WEIGHT_PRESETS), help="Weight preset")
    parser.add_argument("--weights", help="Literal weights, densest glyph first")
    parser.add_argument("--invert", action="store_true", help="Reverse the weights")
    parser.add_argument("--phrase", action="store_true", help="Lay the weights down in order")
    parser.add_argument("--override", action="store_true", help="Draw every glyph in the font colour")
    parser.add_argument("--bg", dest="background", help="Background colour, hex, e.g. #000000")
    parser.add_argument("--fg", dest="foreground", help="Font colour, hex, e.g. #FFFFFF")
    parser.add_argument("--font", dest="font_family", help="Font family or TTF path")
    parser.add_argument("--font-style", choices=sorted(FONT_STYLES), help="Font style")
    parser.add_argument("--font-size", type=int, help="Font size in points")
    parser.add_argument("--sampling-ratio", type=float, help="Source pixels per glyph column")
    parser.add_argument("--no-loop", dest="loop", action="store_false", help="Play a GIF once")
    parser.add_argument("--per-frame-delay", action="store_true", help="Keep each GIF frame's own delay")
    parser.add_argument("--list-fonts", action="store_true", help="List installed monospaced fonts and exit")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v info, -vv debug")
    return parser.parse_args(argv)


def config_from_args(args) -> StudioConfig:
    cfg = StudioConfig()
    for key in cfg.to_dict():
        val = getattr(args, key, None)
        if val is not None:
            setattr(cfg, key, val)
    return cfg


def main(argv=None) -> int:
    args = parse_args(argv)
    level = {0: logging.WARNING, 1: logging.INFO}.get(args.verbose, logging.DEBUG)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")

    if args.list_fonts:
        for name in list_font_names(only_monospace=True):
            print(name)
        return EXIT_OK

    cfg = config_from_args(args)
    if not cfg.input and not cfg.export_palette:
        print("Nothing to do: give -i/-o or --export-palette", file=sys.stderr)
        return EXIT_FAILED
    if cfg.input and not cfg.output:
        print("An output path (-o) is required", file=sys.stderr)
        return EXIT_FAILED

    try:
        palette = build_palette(cfg)
        if cfg.export_palette:
            palette.export_file(cfg.export_palette)
            print(f"Saved palette: {cfg.export_palette}")
        if not cfg.input:
            return EXIT_OK
        driver = build_driver(cfg, palette)
    except AsciiArtError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILED

    driver.start()
    try:
        final = follow(driver)
    except KeyboardInterrupt:
        driver.cancel()
        final = follow(driver)
    driver.join()

    if final.kind is EventKind.DONE:
        print(f"Saved: {cfg.output}")
        return EXIT_OK
    if final.kind is EventKind.CANCELLED:
        print("Cancelled", file=sys.stderr)
        return EXIT_CANCELLED
    print(f"{final.message}: {driver.error}", file=sys.stderr)
    return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))

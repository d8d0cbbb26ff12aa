from __future__ import annotations

import pytest
from PIL import Image

from ascii_errors import BadInputError, FormatUnsupportedError
from ascii_gif import AnimatedImage
from ascii_graphics import Color, FontStyle
from ascii_image import AsciiRenderer
from ascii_palette import BLOCKS_DARK_WEIGHTS, Palette
from ascii_studio import (
    EXIT_FAILED,
    EXIT_OK,
    BackgroundRenderer,
    EventKind,
    RenderHost,
    RenderType,
    StudioConfig,
    build_palette,
    config_from_args,
    infer_render_type,
    main,
    parse_args,
)
from conftest import CellMeasure


class RecordingHost(RenderHost):
    def __init__(self) -> None:
        self.calls = []

    def set_editing_enabled(self, enabled: bool) -> None:
        self.calls.append(enabled)


def _renderer(weights: str = "AB") -> AsciiRenderer:
    palette = Palette()
    palette.weights = weights
    return AsciiRenderer(palette, measure=CellMeasure())


def _run(driver: BackgroundRenderer) -> list:
    driver.start()
    events = list(driver.events(timeout=10))
    driver.join(10)
    assert not driver.running
    return events


def _black(size: tuple = (2, 3)) -> Image.Image:
    return Image.new("RGB", size, (0, 0, 0))


# ---- background driver ----
def test_text_render_and_save(tmp_path) -> None:
    host = RecordingHost()
    path = tmp_path / "out.txt"
    driver = BackgroundRenderer(_renderer(), RenderType.TEXT, _black(), str(path), host=host)
    events = _run(driver)

    assert events[-1].kind is EventKind.DONE
    assert all(e.kind is EventKind.PROGRESS for e in events[:-1])
    stages = [e.stage for e in events]
    assert stages.index("Rendering text") < stages.index("Saving text")
    assert path.read_bytes() == b"AA\r\nAA\r\nAA\r\n"
    assert driver.result == "AA\r\nAA\r\nAA\r\n"
    assert host.calls == [False, True]
    # the render watcher is detached afterwards
    assert driver.renderer.progress_watcher is None


def test_preview_needs_no_output() -> None:
    driver = BackgroundRenderer(_renderer(), RenderType.PREVIEW, _black())
    events = _run(driver)
    assert events[-1].kind is EventKind.DONE
    assert not any(e.stage.startswith("Saving") for e in events)
    assert isinstance(driver.result, Image.Image)
    assert driver.result.size == (20, 30)


def test_render_progress_is_monotonic(tmp_path) -> None:
    driver = BackgroundRenderer(_renderer(), RenderType.STILL_IMAGE, _black((1, 5)), str(tmp_path / "o.png"))
    events = _run(driver)
    rendering = [e.progress for e in events if e.stage == "Rendering image" and e.maximum == 5]
    assert rendering == [0, 1, 2, 3, 4]
    assert (tmp_path / "o.png").exists()


def test_animated_progress_spans_all_frames(tmp_path) -> None:
    source = AnimatedImage([_black((1, 2)), Image.new("RGB", (1, 2), (255, 255, 255))], delay=40)
    path = tmp_path / "anim.gif"
    driver = BackgroundRenderer(_renderer(), RenderType.ANIMATED, source, str(path))
    events = _run(driver)

    assert events[-1].kind is EventKind.DONE
    rendering = [(e.progress, e.maximum) for e in events if e.stage == "Rendering animation"]
    assert rendering[1:] == [(0, 4), (1, 4), (2, 4), (3, 4)]
    saving = [(e.progress, e.maximum) for e in events if e.stage == "Saving animation"]
    assert saving == [(1, 2), (2, 2)]
    assert path.exists()
    assert driver.result.frame_count == 2


def test_render_error_is_reported_once(tmp_path) -> None:
    host = RecordingHost()
    path = tmp_path / "never.png"
    driver = BackgroundRenderer(_renderer(""), RenderType.STILL_IMAGE, _black(), str(path), host=host)
    events = _run(driver)

    terminal = [e for e in events if e.is_terminal]
    assert len(terminal) == 1
    assert terminal[0].kind is EventKind.ERROR
    assert terminal[0].message == "Error rendering image"
    assert isinstance(driver.error, BadInputError)
    assert not path.exists()
    assert host.calls == [False, True]


def test_save_error_names_the_path(tmp_path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x")
    path = blocker / "out.txt"
    driver = BackgroundRenderer(_renderer(), RenderType.TEXT, _black(), str(path))
    events = _run(driver)
    assert events[-1].kind is EventKind.ERROR
    assert events[-1].message == f"Error saving '{path}'"
    assert isinstance(driver.error, OSError)


def test_cancelled_render_writes_nothing(tmp_path) -> None:
    path = tmp_path / "out.txt"
    driver = BackgroundRenderer(_renderer(), RenderType.TEXT, _black(), str(path))
    driver.cancel()
    events = _run(driver)
    assert events[-1].kind is EventKind.CANCELLED
    assert driver.result is None
    assert not path.exists()


def test_full_queue_still_delivers_terminal_event(tmp_path) -> None:
    driver = BackgroundRenderer(_renderer(), RenderType.TEXT, _black((2, 50)), str(tmp_path / "o.txt"),
                                queue_size=1)
    driver.start()
    driver.join(10)
    events = list(driver.events(timeout=1))
    assert events[-1].kind is EventKind.DONE
    assert len(events) == 1
    # nothing more once the terminal event was consumed
    assert list(driver.events(timeout=1)) == []


def test_driver_validates_its_inputs(tmp_path) -> None:
    with pytest.raises(BadInputError):
        BackgroundRenderer(_renderer(), RenderType.TEXT, _black())
    with pytest.raises(BadInputError):
        BackgroundRenderer(_renderer(), RenderType.ANIMATED, _black(), str(tmp_path / "a.gif"))
    with pytest.raises(FormatUnsupportedError):
        BackgroundRenderer(_renderer(), RenderType.STILL_IMAGE, _black(), str(tmp_path / "a.psd"))


def test_driver_cannot_start_twice() -> None:
    driver = BackgroundRenderer(_renderer(), RenderType.PREVIEW, _black())
    _run(driver)
    with pytest.raises(RuntimeError):
        driver.start()


# ---- command line ----
@pytest.mark.parametrize(
    "source, output, expected",
    [
        ("in.png", "out.txt", RenderType.TEXT),
        ("in.gif", "out.TXT", RenderType.TEXT),
        ("in.gif", "out.gif", RenderType.ANIMATED),
        ("in.png", "out.gif", RenderType.STILL_IMAGE),
        ("in.gif", "out.png", RenderType.STILL_IMAGE),
        ("in.jpg", "out", RenderType.STILL_IMAGE),
    ],
)
def test_infer_render_type(source: str, output: str, expected: RenderType) -> None:
    assert infer_render_type(source, output) is expected


def test_config_from_args() -> None:
    args = parse_args(["-i", "a.png", "-o", "b.txt", "--phrase", "--no-loop", "--font-size", "9"])
    cfg = config_from_args(args)
    assert cfg.input == "a.png"
    assert cfg.output == "b.txt"
    assert cfg.phrase is True
    assert cfg.loop is False
    assert cfg.font_size == 9
    assert cfg.per_frame_delay is False
    assert set(cfg.to_dict()) == set(StudioConfig().to_dict())


def test_build_palette_applies_options() -> None:
    cfg = StudioConfig(
        preset="blocks-light",
        invert=True,
        override=True,
        background="#102030",
        foreground="fff",
        font_family="Courier",
        font_style="italic",
    )
    palette = build_palette(cfg)
    assert palette.weights == BLOCKS_DARK_WEIGHTS
    assert palette.overriding_image_colors
    assert not palette.using_phrase
    assert palette.background_color == Color(0x10, 0x20, 0x30)
    assert palette.font_color == Color(255, 255, 255)
    assert palette.font.family == "Courier"
    assert palette.font.style == FontStyle.ITALIC
    assert palette.font.size == 12


def test_build_palette_starts_from_file(tmp_path) -> None:
    path = tmp_path / "p.ascp"
    base = Palette()
    base.weights = "XY"
    base.using_phrase = True
    base.export_file(str(path))
    palette = build_palette(StudioConfig(palette=str(path), weights="QRS"))
    assert palette.using_phrase
    assert palette.weights == "QRS"


def test_main_exports_palette(tmp_path) -> None:
    path = tmp_path / "blocks.ascp"
    assert main(["--export-palette", str(path), "--preset", "blocks-dark", "--phrase"]) == EXIT_OK
    palette = Palette.import_file(str(path))
    assert palette.weights == BLOCKS_DARK_WEIGHTS
    assert palette.using_phrase


def test_main_renders_text(tmp_path) -> None:
    source = tmp_path / "black.png"
    Image.new("RGB", (48, 48), (0, 0, 0)).save(source)
    output = tmp_path / "black.txt"
    assert main(["-i", str(source), "-o", str(output), "--weights", "AB"]) == EXIT_OK

    text = output.read_bytes().decode("utf-8")
    assert text.endswith("\r\n")
    assert set(text.replace("\r\n", "")) == {"A"}


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["-i", "in.png"],
        ["-i", "does-not-exist.png", "-o", "out.txt"],
    ],
)
def test_main_failures(tmp_path, argv: list) -> None:
    argv = [str(tmp_path / a) if a.endswith((".png", ".txt")) else a for a in argv]
    assert main(argv) == EXIT_FAILED

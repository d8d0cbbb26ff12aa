from __future__ import annotations

import pytest

from ascii_errors import BadInputError, HostCapabilityError
from ascii_graphics import BLACK, WHITE, Color, FontSpec, FontStyle
from ascii_palette import (
    BLOCKS_DARK_WEIGHTS,
    BLOCKS_LIGHT_WEIGHTS,
    STANDARD_DARK_WEIGHTS,
    WEIGHT_PRESETS,
    Palette,
    SamplingParams,
    default_font,
    is_mac,
    is_windows,
    reverse_weights,
)
from class_serializer import ClassSerializer, ColorCodec, FontCodec
from conftest import CellMeasure


def _serialized(palette: Palette) -> dict:
    return ClassSerializer(ColorCodec(), FontCodec()).to_properties(Palette, palette)


def test_defaults() -> None:
    palette = Palette.defaults()
    assert palette.weights == STANDARD_DARK_WEIGHTS
    assert palette.background_color == BLACK
    assert palette.font_color == WHITE
    assert not palette.using_phrase
    assert not palette.overriding_image_colors
    assert palette.font.style == FontStyle.BOLD
    assert palette.font.size == 12
    assert palette == Palette()


@pytest.mark.parametrize("weights", ["", "A", "ABC", " .:-=+*#%@", "█▓▒░", "a\\b=c:d"])
def test_weight_string_round_trip(weights: str) -> None:
    palette = Palette()
    palette.set_weights_from_string(weights)
    assert palette.weights_as_string() == weights
    assert palette.weight_count == len(weights)


@pytest.mark.parametrize("weights", ["", "x", "ABC", STANDARD_DARK_WEIGHTS, BLOCKS_DARK_WEIGHTS])
def test_reverse_weights_is_involutive(weights: str) -> None:
    assert reverse_weights(reverse_weights(weights)) == weights
    assert Palette.reverse_weights(weights) == weights[::-1]


@pytest.mark.parametrize(
    "weights, glyphs",
    [
        ("e\u0301#", ("e\u0301", "#")),
        ("\U0001F469\u200d\U0001F4BBA", ("\U0001F469\u200d\U0001F4BB", "A")),
        ("\u0301x", ("\u0301", "x")),
    ],
)
def test_weights_split_into_grapheme_clusters(weights: str, glyphs: tuple) -> None:
    palette = Palette()
    palette.weights = weights
    assert palette.weight_list == glyphs
    assert palette.weight_count == len(glyphs)
    assert palette.weights_as_string() == weights


def test_reverse_and_invert_keep_clusters_whole(tmp_path) -> None:
    assert reverse_weights("e\u0301#.") == ".#e\u0301"
    palette = Palette()
    palette.weights = "e\u0301#"
    palette.invert()
    assert palette.weights == "#e\u0301"

    path = tmp_path / "clusters.ascp"
    palette.export_file(str(path))
    loaded = Palette.import_file(str(path))
    assert loaded.weight_list == ("#", "e\u0301")


def test_presets_come_in_dark_light_pairs() -> None:
    assert BLOCKS_LIGHT_WEIGHTS == "░▒▓█"
    for name, weights in WEIGHT_PRESETS.items():
        if name.endswith("-dark"):
            assert WEIGHT_PRESETS[name[:-5] + "-light"] == reverse_weights(weights)
    # densest glyph first, blank last
    assert STANDARD_DARK_WEIGHTS[0] == "$"
    assert STANDARD_DARK_WEIGHTS[-1] == " "


def test_invert_and_reset() -> None:
    palette = Palette()
    palette.weights = "ABC"
    palette.invert()
    assert palette.weights == "CBA"
    palette.background_color = Color(1, 2, 3)
    palette.reset()
    assert palette == Palette()


def test_copy_is_independent() -> None:
    original = Palette()
    before = _serialized(original)

    copy = original.copy()
    copy.weights = "XYZ"
    copy.invert()
    copy.using_phrase = True
    copy.overriding_image_colors = True
    copy.background_color = Color(10, 20, 30, 40)
    copy.font_color = Color(50, 60, 70)
    copy.font = FontSpec("Courier", FontStyle.ITALIC, 20)

    assert _serialized(original) == before
    assert Palette(copy) == copy
    assert copy != original


def test_equality_covers_every_field() -> None:
    a = Palette()
    b = Palette()
    b.font = FontSpec(a.font.family, FontStyle.PLAIN, a.font.size)
    assert a != b


def test_font_ratio_uses_font_height_over_widest_glyph() -> None:
    palette = Palette()
    assert palette.font_ratio(CellMeasure(10, 10)) == 1
    assert palette.font_ratio(CellMeasure(10, 25)) == 2
    # never below one row
    assert palette.font_ratio(CellMeasure(10, 4)) == 1


def test_font_ratio_without_glyph_widths_fails() -> None:
    class NoGlyphs(CellMeasure):
        def glyph_widths(self, font):
            return []

    with pytest.raises(HostCapabilityError):
        Palette().font_ratio(NoGlyphs())


def test_palette_sampling_params(measure: CellMeasure) -> None:
    palette = Palette()
    params = palette.sampling_params(200, 100, measure, os_name="Linux")
    assert params.font_w == 10
    assert params.font_h == 10
    assert params.sampling_ratio == 10
    assert params.sample_size == (20, 10)


def test_sampling_params_need_weights(measure: CellMeasure) -> None:
    palette = Palette()
    palette.weights = ""
    with pytest.raises(BadInputError):
        palette.sampling_params(10, 10, measure)


def test_string_measurement_goes_through_the_measure(measure: CellMeasure) -> None:
    palette = Palette()
    assert palette.string_dimensions(measure, "abc") == (30, 10)
    assert palette.string_width(measure, "ab") == 20
    assert palette.string_height(measure, "") == 10


# ---- sampling geometry ----
def test_sampling_geometry_linux() -> None:
    params = SamplingParams(100, 50, 10, 20, os_name="Linux")
    assert params.sampling_ratio == 20
    assert params.height_ratio == 2
    assert params.sample_w == 5
    assert params.sample_h == 2


def test_sampling_geometry_windows_ignores_cell_shape() -> None:
    params = SamplingParams(100, 50, 10, 20, os_name="Windows 10")
    assert params.height_ratio == 1
    assert params.sample_h == 3


def test_height_ratio_rounds_half_up() -> None:
    assert SamplingParams(10, 10, 10, 25, os_name="Linux").height_ratio == 3
    assert SamplingParams(10, 10, 10, 14, os_name="Linux").height_ratio == 1
    # a font wider than tall still covers one row
    assert SamplingParams(10, 10, 20, 5, os_name="Linux").height_ratio == 1


def test_sample_size_follows_sampling_ratio() -> None:
    params = SamplingParams(100, 100, 8, 8, os_name="Linux")
    assert params.sample_size == (13, 13)
    params.sampling_ratio = 10
    assert params.sample_size == (10, 10)
    params.sampling_ratio = 0.5
    assert params.sample_size == (200, 200)


@pytest.mark.parametrize("size", [(1, 1), (1, 1000), (1000, 1), (3, 7), (4096, 2160)])
@pytest.mark.parametrize("os_name", ["Linux", "Windows 11", "Darwin"])
def test_sample_size_is_never_empty(size: tuple, os_name: str) -> None:
    params = SamplingParams(size[0], size[1], 7.5, 17, os_name=os_name)
    assert params.sample_w >= 1
    assert params.sample_h >= 1


@pytest.mark.parametrize("args", [(0, 10, 5, 5), (10, -1, 5, 5), (10, 10, 0, 5), (10, 10, 5, 0)])
def test_sampling_params_reject_non_positive_sizes(args: tuple) -> None:
    with pytest.raises(BadInputError):
        SamplingParams(*args)


def test_sampling_ratio_must_be_positive() -> None:
    params = SamplingParams(10, 10, 5, 5)
    with pytest.raises(BadInputError):
        params.sampling_ratio = 0


# ---- platform detection ----
@pytest.mark.parametrize(
    "name, windows, mac",
    [
        ("Windows", True, False),
        ("Windows 10", True, False),
        ("Linux", False, False),
        ("Darwin", False, True),
        ("Mac OS X", False, True),
    ],
)
def test_platform_detection(name: str, windows: bool, mac: bool) -> None:
    assert is_windows(name) is windows
    assert is_mac(name) is mac


def test_default_font_family_per_platform() -> None:
    assert default_font("Windows 10").family == "Consolas"
    assert default_font("Linux") == FontSpec("Monospaced", FontStyle.BOLD, 12)


# ---- palette files ----
def test_palette_file_round_trip(tmp_path) -> None:
    palette = Palette()
    palette.background_color = Color(12, 34, 56, 78)
    palette.font_color = Color(200, 100, 0)
    palette.font = FontSpec("DejaVu Sans Mono", FontStyle.BOLD | FontStyle.ITALIC, 18)
    palette.using_phrase = True
    palette.overriding_image_colors = True
    palette.weights = "#= :\\é█"

    path = tmp_path / "mine.ascp"
    palette.export_file(str(path))
    loaded = Palette.import_file(str(path))

    assert loaded == palette
    assert loaded.weights == "#= :\\é█"
    assert loaded.font.is_bold and loaded.font.is_italic


def test_palette_file_layout(tmp_path) -> None:
    path = tmp_path / "default.ascp"
    Palette().export_file(str(path))
    lines = path.read_text(encoding="ascii").splitlines()
    assert lines[0] == "# Serialized: Palette"
    keys = [line.split("=", 1)[0] for line in lines[1:]]
    assert keys == [
        "background_color",
        "font_color",
        "font",
        "using_phrase",
        "overriding_image_colors",
        "weights",
    ]
    assert "background_color=0,0,0,255" in lines
    assert "using_phrase=false" in lines


def test_import_keeps_defaults_for_missing_keys(tmp_path) -> None:
    path = tmp_path / "partial.ascp"
    path.write_text("# Serialized: Palette\nusing_phrase=true\nweights=AB\n", encoding="ascii")
    palette = Palette.import_file(str(path))
    assert palette.using_phrase
    assert palette.weights == "AB"
    assert palette.background_color == BLACK
    assert palette.font_color == WHITE


def test_import_reads_files_in_the_documented_format(tmp_path) -> None:
    path = tmp_path / "legacy.ascp"
    path.write_text(
        "#Serialized: Palette\n"
        "#Mon Jan 01 00:00:00 UTC 2024\n"
        "background_color=0,0,0,255\n"
        "font_color=255,255,255,255\n"
        "font=Monospaced,1,12\n"
        "using_phrase=false\n"
        "overriding_image_colors=true\n"
        "weights=\\u2588\\u2593\\u2592\\u2591\n",
        encoding="ascii",
    )
    palette = Palette.import_file(str(path))
    assert palette.weights == BLOCKS_DARK_WEIGHTS
    assert palette.overriding_image_colors
    assert palette.font == FontSpec("Monospaced", FontStyle.BOLD, 12)

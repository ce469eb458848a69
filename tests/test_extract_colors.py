"""End-to-end tests for the extraction pipeline, the extractor and the CLI."""

import json

import numpy as np
import pytest
from PIL import Image

from color_utils import parse_color
from conftest import rgba_buffer
from errors import ConfigurationError, DecodeError, EmptyInputError
from extract_colors import (
    ColorExtractor, ExtractionOptions, ExtractionResult, build_parser, extract_colors_from_pixels,
    main, options_from_args, visualize_palette,
)
from image_source import Canvas
from sampling import sample_pixels


def test_red_blue_example(red_blue_2x2) -> None:
    pixels, width, height = red_blue_2x2

    result = extract_colors_from_pixels(pixels, width, height, k=2, sample_rate=1)

    assert result.dominant_color == "rgb(255,0,0)"
    assert result.colors == ("rgb(0,0,255)",)
    assert [c.ratio for c in result.ranked] == [0.5, 0.5]


def test_hex_output_refers_to_the_same_centroids(quadrant_image) -> None:
    pixels, width, height = quadrant_image

    as_rgb = extract_colors_from_pixels(pixels, width, height, k=4, sample_rate=1)
    as_hex = extract_colors_from_pixels(pixels, width, height, k=4, sample_rate=1, useHex=True)

    assert as_hex.dominant_color.startswith("#")
    assert parse_color(as_hex.dominant_color) == parse_color(as_rgb.dominant_color)
    assert [parse_color(c) for c in as_hex.colors] == [parse_color(c) for c in as_rgb.colors]


def test_ranking_properties(quadrant_image) -> None:
    pixels, width, height = quadrant_image

    result = extract_colors_from_pixels(pixels, width, height, k=4, sample_rate=1)

    ratios = [c.ratio for c in result.ranked]
    assert result.dominant_color == result.ranked[0].key
    assert result.ranked[0].ratio == max(ratios)
    assert len(result.colors) == len(result.ranked) - 1
    assert result.dominant_color not in result.colors
    assert ratios == sorted(ratios, reverse=True)
    assert ratios == pytest.approx([0.75, 0.125, 0.0625, 0.0625])
    # Yellow and blue tie on ratio; the brighter yellow comes first
    yellow, blue = (parse_color(c) for c in result.colors[1:])
    assert yellow[0] > 200 and blue[2] > 180


def test_default_sample_rate_on_quadrants(quadrant_image) -> None:
    pixels, width, height = quadrant_image

    result = extract_colors_from_pixels(pixels, width, height, k=4)

    # Sampling every 10th row and column: 12 green, 2 red, 1 yellow, 1 blue
    assert [c.ratio for c in result.ranked] == pytest.approx([0.75, 0.125, 0.0625, 0.0625])


def test_single_color_image() -> None:
    pixels = rgba_buffer([[(12, 34, 56)] * 20] * 20)

    result = extract_colors_from_pixels(pixels, 20, 20, k=1)

    assert result.dominant_color == "rgb(12,34,56)"
    assert result.colors == ()


def test_k_above_distinct_colors_is_a_configuration_error() -> None:
    pixels = rgba_buffer([[(12, 34, 56)] * 4] * 4)

    with pytest.raises(ConfigurationError) as excinfo:
        extract_colors_from_pixels(pixels, 4, 4, k=2, sample_rate=1)
    assert excinfo.value.parameter == "k"


def test_zero_area_image_is_an_empty_input_error() -> None:
    with pytest.raises(EmptyInputError):
        extract_colors_from_pixels(b"", 0, 0)


@pytest.mark.parametrize("rate", [0, -0.1])
def test_invalid_sample_rate(red_blue_2x2, rate) -> None:
    pixels, width, height = red_blue_2x2

    with pytest.raises(ConfigurationError):
        extract_colors_from_pixels(pixels, width, height, k=2, sample_rate=rate)


def test_unknown_option_is_rejected(red_blue_2x2) -> None:
    pixels, width, height = red_blue_2x2

    with pytest.raises(ConfigurationError, match="unknown option"):
        extract_colors_from_pixels(pixels, width, height, colour_count=2)


def test_repeated_calls_are_identical(quadrant_image) -> None:
    pixels, width, height = quadrant_image
    options = ExtractionOptions(k=4, sample_rate=0.5)

    first = extract_colors_from_pixels(pixels, width, height, options)
    second = extract_colors_from_pixels(pixels, width, height, options)

    assert first == second
    assert first.colors == second.colors


@pytest.mark.parametrize("overrides", [
    {"workers": 3},
    {"seed_strategy": "per_run"},
    {"seed": None},
    {"sampling": "random", "sample_rate": 1},
])
def test_run_variants_agree_on_a_clean_image(red_blue_2x2, overrides) -> None:
    pixels, width, height = red_blue_2x2
    options = ExtractionOptions(k=2, sample_rate=1).merged(overrides)

    result = extract_colors_from_pixels(pixels, width, height, options)

    assert result.dominant_color == "rgb(255,0,0)"
    assert result.colors == ("rgb(0,0,255)",)


def test_default_palette_on_a_noisy_image_stays_within_k(noisy_image) -> None:
    pixels, width, height = noisy_image

    result = extract_colors_from_pixels(pixels, width, height, k=10, sample_rate=0.5)

    assert len(result.ranked) <= 10
    assert all(c.count == 5 for c in result.ranked)
    assert sum(c.ratio for c in result.ranked) == pytest.approx(1.0)


def test_varied_seeds_include_the_fixed_seed_palette(noisy_image) -> None:
    pixels, width, height = noisy_image

    fixed = extract_colors_from_pixels(pixels, width, height, k=10, sample_rate=0.5)
    varied = extract_colors_from_pixels(pixels, width, height, k=10, sample_rate=0.5,
                                        seedStrategy="per_run")

    assert {c.key for c in fixed.ranked} <= {c.key for c in varied.ranked}
    assert all(1 <= c.count <= 5 for c in varied.ranked)


def test_stabilization_averages_ratios_across_resampled_runs(quadrant_image) -> None:
    pixels, width, height = quadrant_image
    options = ExtractionOptions(k=4, sample_rate=0.5, sampling="random", seed_strategy="per_run")
    green = np.array([30, 160, 60])

    per_run = []
    for seed in range(42, 47):
        samples = sample_pixels(pixels, width, height, 0.5, method="random", seed=seed)
        per_run.append(np.all(samples == green, axis=1).mean())

    result = extract_colors_from_pixels(pixels, width, height, options)

    assert len(set(per_run)) > 1
    assert result.dominant_color == "rgb(30,160,60)"
    assert result.ranked[0].count == 5
    assert result.ranked[0].ratio == pytest.approx(np.mean(per_run))
    assert len(result.ranked) == 4


def test_filter_similar_colors_merges_near_duplicates() -> None:
    near_red = (250, 5, 5)
    pixels = rgba_buffer([[(255, 0, 0), (255, 0, 0)], [near_red, (0, 0, 255)]])

    plain = extract_colors_from_pixels(pixels, 2, 2, k=3, sample_rate=1)
    filtered = extract_colors_from_pixels(pixels, 2, 2, k=3, sample_rate=1,
                                          onFilterSimilarColors=True)

    assert plain.dominant_color == "rgb(255,0,0)"
    assert plain.colors == ("rgb(250,5,5)", "rgb(0,0,255)")

    ratios = filtered.to_dict(include_ratios=True)["ratios"]
    assert filtered.dominant_color in ("rgb(255,0,0)", "rgb(250,5,5)")
    assert ratios[filtered.dominant_color] == pytest.approx(0.75)
    assert filtered.colors[-1] == "rgb(0,0,255)"
    assert ratios["rgb(0,0,255)"] == pytest.approx(0.25)


def test_options_accept_camel_case_names() -> None:
    options = ExtractionOptions.from_mapping(
        {"k": 3, "sampleRate": 0.5, "onFilterSimilarColors": True, "useHex": True}
    )

    assert options == ExtractionOptions(k=3, sample_rate=0.5, filter_similar=True, use_hex=True)


def test_options_from_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PALETTE_K", "6")
    monkeypatch.setenv("PALETTE_SEED", "none")

    options = ExtractionOptions.from_settings()

    assert options.k == 6
    assert options.seed is None
    assert options.sample_rate == 0.1


def test_result_to_dict() -> None:
    result = ExtractionResult(colors=("rgb(0,0,255)",), dominant_color="rgb(255,0,0)")

    assert result.to_dict() == {"colors": ["rgb(0,0,255)"], "dominantColor": "rgb(255,0,0)"}


class FixedSource:
    """Image source that hands back a prepared canvas, whatever it is asked for."""

    def __init__(self, canvas: Canvas):
        self.canvas = canvas
        self.loaded = []

    def load_image(self, source):
        self.loaded.append(source)
        return source

    def prepare_canvas(self, image) -> Canvas:
        return self.canvas


def test_extractor_uses_injected_source(red_blue_2x2) -> None:
    pixels, width, height = red_blue_2x2
    source = FixedSource(Canvas(width=width, height=height, pixels=pixels))
    extractor = ColorExtractor(source, ExtractionOptions(k=2, sample_rate=1))

    result = extractor.extract_colors("anything")

    assert source.loaded == ["anything"]
    assert result.dominant_color == "rgb(255,0,0)"
    assert extractor.extract_colors("again", useHex=True).dominant_color == "#ff0000"


def test_extractor_reads_png_files(png_path) -> None:
    extractor = ColorExtractor(options=ExtractionOptions(k=2, sample_rate=1))

    result = extractor.extract_colors(png_path)

    assert result.to_dict() == {"colors": ["rgb(0,0,255)"], "dominantColor": "rgb(255,0,0)"}


def test_extractor_propagates_decode_errors(tmp_path) -> None:
    broken = tmp_path / "broken.png"
    broken.write_bytes(b"not an image")

    with pytest.raises(DecodeError):
        ColorExtractor().extract_colors(broken)


def test_visualize_palette_writes_png(red_blue_2x2, tmp_path) -> None:
    pixels, width, height = red_blue_2x2
    result = extract_colors_from_pixels(pixels, width, height, k=2, sample_rate=1)
    output = tmp_path / "swatch.png"

    visualize_palette(result, str(output))

    with Image.open(output) as img:
        assert img.size == (2 * 90 + 10, 125)
        assert img.getpixel((50, 50)) == (255, 0, 0)


def test_cli_prints_json(png_path, capsys: pytest.CaptureFixture) -> None:
    exit_code = main(["--input", str(png_path), "-k", "2", "--sample-rate", "1", "--ratios"])

    output = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert output["dominantColor"] == "rgb(255,0,0)"
    assert output["colors"] == ["rgb(0,0,255)"]
    assert output["ratios"] == {"rgb(255,0,0)": 0.5, "rgb(0,0,255)": 0.5}


def test_cli_seed_flags() -> None:
    base = ExtractionOptions()

    assert options_from_args(build_parser().parse_args(["-i", "x.png"]), base).seed_strategy == "fixed"

    varied = options_from_args(
        build_parser().parse_args(["-i", "x.png", "--vary-seeds", "--seed", "none"]), base,
    )
    assert varied.seed_strategy == "per_run"
    assert varied.seed is None


def test_cli_reports_errors(tmp_path, capsys: pytest.CaptureFixture) -> None:
    exit_code = main(["--input", str(tmp_path / "missing.png")])

    assert exit_code == 1
    assert "Error:" in capsys.readouterr().err

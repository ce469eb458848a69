#!/usr/bin/env python3
"""
Extract a stable color palette and the dominant color from an image.

Pipeline: Sampling → Clustering (several runs) → Aggregation
"""

import logging
import time
from dataclasses import dataclass, field, fields, replace
from typing import Mapping, Optional

from PIL import Image

from aggregate import (
    SIMILARITY_THRESHOLD, RankedColor, aggregate, color_ratios,
    dominant_color, filter_similar_colors, rank_run,
)
from clustering import cluster_runs, format_centroids, run_seeds
from errors import ColorExtractionError, ConfigurationError
from image_source import ImageSource, PillowImageSource
from sampling import as_pixel_buffer, sample_pixels, sample_step
from settings import Settings, configure_logging, get_settings

logger = logging.getLogger(__name__)


# =============================================================================
# Options and Results
# =============================================================================

# Accepted alternate spellings for option names
OPTION_ALIASES = {
    'sampleRate': 'sample_rate',
    'onFilterSimilarColors': 'filter_similar',
    'useHex': 'use_hex',
    'seedStrategy': 'seed_strategy',
    'similarityThreshold': 'similarity_threshold',
}


@dataclass(frozen=True)
class ExtractionOptions:
    """Parameters for one extraction call."""
    k: int = 10  # Number of clusters per run
    sample_rate: float = 0.1  # Fraction of pixels to sample, in (0, 1]
    filter_similar: bool = False  # Fold perceptually similar colors within a run
    use_hex: bool = False  # "#rrggbb" instead of "rgb(r,g,b)"
    runs: int = 5
    seed: Optional[int] = 42  # None: unseeded clustering
    seed_strategy: str = 'fixed'  # 'fixed' (same seed every run) or 'per_run' (seed + run index)
    sampling: str = 'systematic'  # or 'random'
    similarity_threshold: float = SIMILARITY_THRESHOLD
    workers: int = 1

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> 'ExtractionOptions':
        settings = settings or get_settings()
        return cls(
            k=settings.k,
            sample_rate=settings.sample_rate,
            runs=settings.runs,
            seed=settings.seed,
            workers=settings.workers,
        )

    @classmethod
    def from_mapping(cls, values: Mapping, base: Optional['ExtractionOptions'] = None) -> 'ExtractionOptions':
        """Build options from a mapping, accepting camelCase names like `sampleRate`."""
        return (base or cls()).merged(values)

    def merged(self, values: Mapping) -> 'ExtractionOptions':
        """Return a copy with the given (possibly camelCase) options replaced."""
        known = {f.name for f in fields(self)}
        changes = {}
        for name, value in values.items():
            name = OPTION_ALIASES.get(name, name)
            if name not in known:
                raise ConfigurationError(f"unknown option {name!r}",
                                         operation="extract_colors", parameter=name)
            changes[name] = value
        return replace(self, **changes) if changes else self


@dataclass(frozen=True)
class ExtractionResult:
    """Palette (dominant excluded) and dominant color of one image."""
    colors: tuple  # color strings in prevalence order, dominant excluded
    dominant_color: str
    ranked: tuple = field(default=(), repr=False, compare=False)  # RankedColor, dominant first

    def to_dict(self, include_ratios: bool = False) -> dict:
        data = {'colors': list(self.colors), 'dominantColor': self.dominant_color}
        if include_ratios:
            data['ratios'] = {c.key: c.ratio for c in self.ranked}
        return data


# =============================================================================
# Core Pipeline
# =============================================================================

def _collect_run_colors(runs: list, k: int, options: ExtractionOptions) -> list:
    """Format each run's centroids and attach ratios, filtering if requested."""
    run_colors = []
    for _, result in runs:
        colors = format_centroids(result.centroids, use_hex=options.use_hex)
        ratios = color_ratios(result.labels, k)
        if options.filter_similar:
            run_colors.append(filter_similar_colors(colors, ratios, options.similarity_threshold))
        else:
            run_colors.append(rank_run(colors, ratios))
    return run_colors


def extract_colors_from_pixels(pixels, width: int, height: int,
                               options: Optional[ExtractionOptions] = None,
                               **overrides) -> ExtractionResult:
    """
    Extract the palette and dominant color from a raw RGBA buffer.

    Args:
        pixels: Row-major RGBA buffer of length width * height * 4
        width: Image width in pixels
        height: Image height in pixels
        options: Extraction options (defaults to ExtractionOptions())
        **overrides: Individual options to replace, e.g. k=5 or useHex=True

    Returns:
        ExtractionResult with colors sorted by prevalence and the dominant
        color reported separately.

    Raises:
        ConfigurationError: Invalid k, sample rate, runs or other option
        EmptyInputError: Nothing was sampled (zero-area image)
        ClusteringError: The clustering routine failed
    """
    options = (options or ExtractionOptions()).merged(overrides)
    start = time.perf_counter()

    buffer = as_pixel_buffer(pixels)
    sample_step(options.sample_rate)
    seeds = run_seeds(options.runs, options.seed, options.seed_strategy)

    if options.sampling == 'systematic':
        samples = sample_pixels(buffer, width, height, options.sample_rate)

        def samples_for_run(index, seed):
            return samples
    else:
        def samples_for_run(index, seed):
            return sample_pixels(buffer, width, height, options.sample_rate,
                                 method=options.sampling, seed=seed)

    runs = cluster_runs(samples_for_run, options.k, seeds, workers=options.workers)
    ranked = aggregate(_collect_run_colors(runs, options.k, options))
    dominant = dominant_color(ranked)

    logger.debug("Extracted %d colors from %dx%d image in %.3fs",
                 len(ranked), width, height, time.perf_counter() - start)

    return ExtractionResult(
        colors=tuple(c.key for c in ranked[1:]),
        dominant_color=dominant.key,
        ranked=tuple(ranked),
    )


class ColorExtractor:
    """
    Extract colors from images decoded by an image source collaborator.

    Each instance owns its collaborator and default options; nothing is
    shared between instances.
    """

    def __init__(self, source: Optional[ImageSource] = None,
                 options: Optional[ExtractionOptions] = None):
        settings = get_settings()
        self.source = source or PillowImageSource(max_size=settings.max_image_size)
        self.options = options or ExtractionOptions.from_settings(settings)

    def extract_colors(self, image, options: Optional[ExtractionOptions] = None,
                       **overrides) -> ExtractionResult:
        """
        Load `image` through the source and extract its colors.

        Raises:
            DecodeError: If the image cannot be loaded
            ConfigurationError, EmptyInputError, ClusteringError: See
                extract_colors_from_pixels
        """
        img = self.source.load_image(image)
        canvas = self.source.prepare_canvas(img)
        return extract_colors_from_pixels(
            canvas.pixels, canvas.width, canvas.height,
            options or self.options, **overrides,
        )


# =============================================================================
# Visualization
# =============================================================================

def visualize_palette(result: ExtractionResult, output_path: str) -> None:
    """
    Create a swatch image of the ranked colors with their ratios.

    The dominant color comes first, marked with a heavier outline.

    Args:
        result: Extraction result with ranked colors
        output_path: Path to save the output image
    """
    from PIL import ImageDraw

    ranked: tuple[RankedColor, ...] = result.ranked
    total_ratio = sum(c.ratio for c in ranked) or 1.0
    swatch_size = 80
    padding = 10
    text_height = 25
    cols = max(1, min(len(ranked), 6))
    rows = max(1, (len(ranked) + cols - 1) // cols)

    img_width = cols * (swatch_size + padding) + padding
    img_height = rows * (swatch_size + text_height + padding) + padding

    img = Image.new('RGB', (img_width, img_height), (240, 240, 240))
    draw = ImageDraw.Draw(img)

    for i, color in enumerate(ranked):
        row = i // cols
        col = i % cols

        x = padding + col * (swatch_size + padding)
        y = padding + row * (swatch_size + text_height + padding)

        outline_width = 3 if i == 0 else 1
        draw.rectangle([x, y, x + swatch_size, y + swatch_size], fill=tuple(color.rgb),
                       outline=(0, 0, 0), width=outline_width)

        # Center percentage under swatch
        text = f"{color.ratio / total_ratio * 100:.1f}%"
        bbox = draw.textbbox((0, 0), text)
        text_width = bbox[2] - bbox[0]
        text_x = x + (swatch_size - text_width) // 2
        draw.text((text_x, y + swatch_size + 4), text, fill=(0, 0, 0))

    img.save(output_path)
    logger.info("Saved palette swatch to %s", output_path)


# =============================================================================
# CLI
# =============================================================================

def _parse_seed(value: str) -> Optional[int]:
    return None if value.lower() == 'none' else int(value)


def build_parser():
    import argparse

    parser = argparse.ArgumentParser(
        description='Extract a color palette and the dominant color from an image.'
    )
    parser.add_argument('--input', '-i', required=True, help='Path to the image file')
    parser.add_argument('-k', type=int, default=None, help='Number of colors per clustering run')
    parser.add_argument('--sample-rate', type=float, default=None,
                        help='Fraction of pixels to sample, in (0, 1]')
    parser.add_argument('--runs', type=int, default=None, help='Number of clustering runs')
    parser.add_argument('--seed', type=_parse_seed, default=argparse.SUPPRESS,
                        help="Base clustering seed, or 'none' for unseeded runs")
    parser.add_argument('--vary-seeds', action='store_true',
                        help='Seed each run with seed + run index instead of the same seed')
    parser.add_argument('--sampling', choices=['systematic', 'random'], default=None)
    parser.add_argument('--workers', type=int, default=None,
                        help='Threads used to run clustering passes in parallel')
    parser.add_argument('--filter-similar', action='store_true',
                        help='Merge perceptually similar colors within each run')
    parser.add_argument('--hex', action='store_true', help='Report colors as #rrggbb')
    parser.add_argument('--ratios', action='store_true', help='Include color ratios in the output')
    parser.add_argument('--swatch', default=None, help='Write a PNG swatch of the palette')
    return parser


def options_from_args(args, base: ExtractionOptions) -> ExtractionOptions:
    """Overlay command-line arguments that were given onto base options."""
    overrides = {
        'k': args.k,
        'sample_rate': args.sample_rate,
        'runs': args.runs,
        'sampling': args.sampling,
        'workers': args.workers,
    }
    overrides = {name: value for name, value in overrides.items() if value is not None}
    if hasattr(args, 'seed'):
        overrides['seed'] = args.seed
    if args.vary_seeds:
        overrides['seed_strategy'] = 'per_run'
    if args.filter_similar:
        overrides['filter_similar'] = True
    if args.hex:
        overrides['use_hex'] = True
    return base.merged(overrides)


def main(argv=None):
    import json
    import sys

    args = build_parser().parse_args(argv)

    try:
        configure_logging()
        extractor = ColorExtractor()
        options = options_from_args(args, extractor.options)
        result = extractor.extract_colors(args.input, options)
    except ColorExtractionError as e:
        logger.debug("Extraction failed for %s", args.input, exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result.to_dict(include_ratios=args.ratios), indent=2))

    if args.swatch:
        try:
            visualize_palette(result, args.swatch)
        except OSError as e:
            print(f"Error writing swatch: {e}", file=sys.stderr)
            return 1
        print(f"\nWrote: {args.swatch}")

    return 0


if __name__ == '__main__':
    raise SystemExit(main())

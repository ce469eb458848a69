#!/usr/bin/env python3
"""Batch extract palettes from a directory of images into JSON files."""

import argparse
import json
import sys
import time
from pathlib import Path

from errors import ColorExtractionError
from extract_colors import ColorExtractor, visualize_palette
from result_cache import CachedColorExtractor
from settings import configure_logging


def find_images(directory: Path) -> list[Path]:
    """Find all image files in directory."""
    extensions = {'.jpg', '.jpeg', '.png', '.webp', '.gif', '.bmp'}
    return sorted(
        path for path in directory.iterdir()
        if path.is_file() and path.suffix.lower() in extensions
    )


def main(argv=None):
    parser = argparse.ArgumentParser(
        description='Batch extract color palettes and write JSON results.'
    )
    parser.add_argument(
        '--input', '-i',
        required=True,
        help='Directory containing images to analyze'
    )
    parser.add_argument(
        '--output', '-o',
        required=True,
        help='Directory for JSON output files'
    )
    parser.add_argument('-k', type=int, default=None, help='Number of colors per clustering run')
    parser.add_argument('--sample-rate', type=float, default=None, help='Fraction of pixels to sample')
    parser.add_argument('--filter-similar', action='store_true',
                        help='Merge perceptually similar colors within each run')
    parser.add_argument('--hex', action='store_true', help='Report colors as #rrggbb')
    parser.add_argument('--swatches', action='store_true',
                        help='Also write a PNG swatch next to each JSON file')

    args = parser.parse_args(argv)

    input_dir = Path(args.input)
    output_dir = Path(args.output)

    # Validate input directory
    if not input_dir.is_dir():
        print(f"Error: Input directory not found: {input_dir}", file=sys.stderr)
        return 2

    # Create output directory if needed
    output_dir.mkdir(parents=True, exist_ok=True)

    # Find images
    images = find_images(input_dir)
    if not images:
        print(f"No images found in {input_dir}", file=sys.stderr)
        return 2

    overrides = {'filter_similar': args.filter_similar, 'use_hex': args.hex}
    if args.k is not None:
        overrides['k'] = args.k
    if args.sample_rate is not None:
        overrides['sample_rate'] = args.sample_rate

    try:
        configure_logging()
        extractor = CachedColorExtractor(ColorExtractor())
        options = extractor.extractor.options.merged(overrides)
    except ColorExtractionError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    total = len(images)
    succeeded = 0
    failed = []

    batch_start = time.perf_counter()

    for i, image_path in enumerate(images, 1):
        try:
            img_start = time.perf_counter()
            result = extractor.extract_colors(image_path, options)
            img_elapsed = time.perf_counter() - img_start

            output_file = output_dir / f"{image_path.stem}-palette.json"
            if output_file.exists():
                print(f"  Warning: Overwriting {output_file.name}", file=sys.stderr)
            output_file.write_text(json.dumps(result.to_dict(include_ratios=True), indent=2))

            if args.swatches:
                visualize_palette(result, str(output_dir / f"{image_path.stem}-palette.png"))

            print(f"[{i}/{total}] {image_path.name} → {result.dominant_color} ({img_elapsed:.2f}s)")
            succeeded += 1

        except (ColorExtractionError, OSError) as e:
            error_msg = f"{type(e).__name__}: {e}"
            print(f"[{i}/{total}] {image_path.name} → ERROR: {error_msg}", file=sys.stderr)
            failed.append((image_path.name, error_msg))

    batch_elapsed = time.perf_counter() - batch_start

    # Summary
    print()
    print(f"Completed: {succeeded}/{total} succeeded in {batch_elapsed:.2f}s")
    if succeeded > 0:
        print(f"Average: {batch_elapsed / succeeded:.2f}s per image")
    if failed:
        print(f"Failed ({len(failed)}):")
        for name, error in failed:
            print(f"  - {name}: {error}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())

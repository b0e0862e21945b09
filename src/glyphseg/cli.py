#!/usr/bin/env python
"""
Command-line interface for the glyph segmentation engine.

Usage:
    glyphseg --input <image> [--candidates <json>] [--output <json>] [options]

Examples:
    # Refine candidates produced by an external recognizer
    glyphseg --input page.png --candidates symbols.json --output refined.json

    # Let Tesseract produce the candidates, reuse saved training data
    glyphseg --input page.png --training samples.json --output refined.json

    # Projection segmentation only
    glyphseg --input line.png --segment-only
"""

import argparse
import json
import logging
import sys
import time
from typing import List, Optional

from . import __version__
from .config import get_config
from .exceptions import ConfigurationError, GlyphSegError

logger = logging.getLogger("glyphseg")


def setup_argparser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="glyphseg",
        description="Glyph segmentation engine - refine OCR character boxes and confidences",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Refine candidates from a JSON file:
    glyphseg --input page.png --candidates symbols.json --output refined.json

  Use Tesseract for candidates with a fixed k-means seed:
    glyphseg --input page.png --seed 42 --clusters 8

  Dump projection segments of a text line:
    glyphseg --input line.png --segment-only --output segments.json
        """
    )

    parser.add_argument(
        "--input", "-i",
        required=True,
        help="Input image file"
    )

    parser.add_argument(
        "--candidates", "-c",
        default=None,
        help="JSON list of OCR symbols {bbox, char, confidence} (default: run Tesseract)"
    )

    parser.add_argument(
        "--output", "-o",
        default=None,
        help="Output JSON file (default: print to stdout)"
    )

    parser.add_argument(
        "--training",
        default=None,
        help="Training data JSON to import before recognition"
    )

    parser.add_argument(
        "--save-training",
        default=None,
        help="Write the engine's training data to this JSON file"
    )

    parser.add_argument(
        "--clusters",
        type=int,
        default=None,
        help="Number of k-means clusters (default: 10)"
    )

    parser.add_argument(
        "--neighbors",
        type=int,
        default=None,
        help="Number of k-NN neighbours (default: 5)"
    )

    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Threads for per-candidate segmentation (default: 1)"
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Seed for k-means initialisation"
    )

    parser.add_argument(
        "--no-segmentation",
        action="store_true",
        help="Keep the recognizer's boxes"
    )

    parser.add_argument(
        "--no-kmeans",
        action="store_true",
        help="Disable clustering and cluster-majority correction"
    )

    parser.add_argument(
        "--no-knn",
        action="store_true",
        help="Disable the k-NN classifier"
    )

    parser.add_argument(
        "--no-tree",
        action="store_true",
        help="Disable the decision tree classifier"
    )

    parser.add_argument(
        "--segment-only",
        action="store_true",
        help="Run projection segmentation on the whole image and dump the boxes"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )

    return parser


def build_config(args):
    """Environment defaults overridden by command-line flags."""
    config = get_config()

    if args.clusters is not None:
        config.kmeans_clusters = args.clusters
    if args.neighbors is not None:
        config.knn_neighbors = args.neighbors
    if args.workers is not None:
        config.workers = args.workers
    if args.seed is not None:
        config.seed = args.seed

    config.use_segmentation = config.use_segmentation and not args.no_segmentation
    config.use_kmeans = not args.no_kmeans
    config.use_knn = not args.no_knn
    config.use_decision_tree = not args.no_tree

    config.validate()
    return config


def emit(data, output: Optional[str]):
    """Write JSON to a file, or to stdout without one."""
    from .io import EnhancedJSONEncoder, save_json

    if output:
        save_json(data, output)
        logger.info(f"Saved JSON: {output}")
    else:
        print(json.dumps(data, indent=2, ensure_ascii=False, cls=EnhancedJSONEncoder))


def run_segment_only(args, config, image) -> int:
    from .layout import segment_by_projection

    seg = config.segmentation
    segments = segment_by_projection(
        image,
        min_char_width=seg.min_char_width,
        min_char_height=seg.min_char_height,
        min_gap=seg.min_gap,
        threshold=seg.binarize_threshold,
        min_ink_ratio=seg.min_ink_ratio,
        max_ink_ratio=seg.max_ink_ratio
    )
    logger.info(f"Found {len(segments)} segments")

    emit([dict(s.to_dict(), ink_ratio=s.ink_ratio) for s in segments], args.output)
    return 0


def run_engine(args) -> int:
    """Run glyph refinement on one image."""
    from .engine import GlyphEngine
    from .io import load_image, load_symbols, load_training_text, save_training_data

    start_time = time.time()
    config = build_config(args)
    image = load_image(args.input)

    if args.segment_only:
        return run_segment_only(args, config, image)

    if args.candidates:
        symbols = load_symbols(args.candidates)
    else:
        from .ocr_text import TesseractSymbolEngine
        try:
            symbols = TesseractSymbolEngine().recognize(image)
        except ImportError as e:
            logger.error(f"No --candidates given and Tesseract is unavailable: {e}")
            return 1

    engine = GlyphEngine(config)
    if args.training:
        if not engine.import_training_data(load_training_text(args.training)):
            return 1

    result = engine.recognize(image, symbols)
    emit(result.to_dict(), args.output)

    if args.save_training:
        save_training_data(engine.export_training_data(), args.save_training)
        logger.info(f"Saved {engine.training_data_count} training samples: {args.save_training}")

    elapsed = time.time() - start_time
    stats = result.stats

    if args.output and not args.quiet:
        print("\n" + "=" * 60)
        print("GLYPH REFINEMENT COMPLETE")
        print("=" * 60)
        print(f"Source: {args.input}")
        print(f"Output: {args.output}")
        print(f"Processing time: {elapsed:.2f}s")
        print()
        print(f"  Characters: {stats.total} ({stats.unique} unique)")
        top = ", ".join(f"{g['char']!r} x{g['count']}" for g in stats.groups[:10])
        print(f"  Most frequent: {top or '-'}")
        print("=" * 60)

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = setup_argparser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif args.quiet:
        logging.getLogger().setLevel(logging.ERROR)

    try:
        return run_engine(args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    except (GlyphSegError, FileNotFoundError, ValueError) as e:
        logger.error(f"Processing failed: {e}")
        if args.verbose:
            raise
        return 1


if __name__ == "__main__":
    sys.exit(main())

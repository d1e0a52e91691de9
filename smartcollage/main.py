# main.py
"""
Logging setup and command line entry point for SmartCollage.
"""
import argparse
import json
import logging
import random
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from collage_utils.collage_layouts import (
    CollageLayoutOptions,
    compute_collage_layout,
    compute_flat_layout,
    normalize_canvas_size,
    scaled_gap,
)
from collage_utils.collage_renderer import CollageProgress, RenderCollageOptions
from collage_utils.errors import CanceledError, CollageError
from collage_utils.image_processor import (
    build_export_filename,
    save_collage,
    write_demo_images,
)
from collage_utils.validation import is_supported_image, validate_image_path, validate_output_path

from . import config
from .controllers import CollageSessionController

LOGGER_NAME = "smartcollage"

logger = logging.getLogger(LOGGER_NAME)


def configure_logging(log_path: Optional[Path] = None, level: int = logging.INFO) -> logging.Logger:
    """Configure and return the application logger.

    The handler setup is idempotent to avoid duplicate handlers when called
    more than once (e.g., in tests). A rotating file handler limits on-disk
    log growth while mirroring output to stdout.
    """

    app_logger = logging.getLogger(LOGGER_NAME)
    if app_logger.handlers:
        app_logger.setLevel(level)
        return app_logger

    app_logger.setLevel(level)

    formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
    )

    if log_path is None:
        log_path = Path(__file__).resolve().parents[1] / config.LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=config.LOG_MAX_BYTES,
        backupCount=config.LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    app_logger.addHandler(file_handler)
    app_logger.addHandler(stream_handler)
    app_logger.propagate = False

    return app_logger


def global_exception_handler(exc_type, value, tb):
    logger.error("Uncaught exception", exc_info=(exc_type, value, tb))
    sys.__excepthook__(exc_type, value, tb)


def _ratio(value: str) -> float:
    ratio = float(value)
    if not 0 < ratio < 1:
        raise argparse.ArgumentTypeError("ratio must be between 0 and 1")
    return ratio


def _quality(value: str) -> float:
    quality = float(value)
    if not 0 <= quality <= 1:
        raise argparse.ArgumentTypeError("quality must be between 0 and 1")
    return quality


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smartcollage",
        description="Arrange photos around a main image on a square canvas.",
    )
    parser.add_argument("images", nargs="*", help="Image files or folders of images")
    main_group = parser.add_mutually_exclusive_group()
    main_group.add_argument("--main", help="Image to place in the centre (default: first image)")
    main_group.add_argument(
        "--no-main", action="store_true", help="Pack every image into one grid without a main image"
    )
    parser.add_argument("--size", type=int, default=config.DEFAULT_EXPORT_SIZE, help="Canvas edge in pixels")
    parser.add_argument(
        "--ratio", type=_ratio, default=config.DEFAULT_MAIN_RATIO, help="Main image edge as a fraction of the canvas"
    )
    parser.add_argument("--gap", type=int, default=config.DEFAULT_GAP, help="Gap between tiles in pixels")
    parser.add_argument("--background", default=config.DEFAULT_BACKGROUND, help="Background colour")
    parser.add_argument("--shuffle", action="store_true", help="Shuffle the ring images")
    parser.add_argument("--seed", type=int, help="Seed for --shuffle and --demo")
    parser.add_argument(
        "--format",
        choices=sorted(config.EXPORT_FORMATS.values()),
        default=config.EXPORT_FORMATS[config.DEFAULT_EXPORT_FORMAT],
        help="Export format when --output is not given",
    )
    parser.add_argument("--quality", type=_quality, default=config.QUALITY_DEFAULT, help="JPEG/WEBP quality (0-1)")
    output_group = parser.add_mutually_exclusive_group()
    output_group.add_argument("-o", "--output", help="Output file; the extension selects the format")
    output_group.add_argument("--output-dir", default=".", help="Directory for an auto-named output file")
    parser.add_argument("--demo", type=int, metavar="N", help="Generate N demo images and use them")
    parser.add_argument("--demo-dir", default="demo-images", help="Where --demo writes its images")
    parser.add_argument(
        "--preview", action="store_true", help="Render a preview-sized canvas with the gap scaled to match"
    )
    parser.add_argument("--dry-run", action="store_true", help="Print the layout as JSON without rendering")
    parser.add_argument("--log-file", type=Path, help="Log file path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def collect_image_paths(raw_paths: Sequence[str]) -> List[Path]:
    """Expand folders and validate *raw_paths*, skipping invalid entries."""
    candidates: List[Path] = []
    for raw in raw_paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            candidates.extend(sorted(p for p in path.iterdir() if p.is_file() and is_supported_image(p)))
        else:
            candidates.append(path)

    safe_paths: List[Path] = []
    for candidate in candidates:
        try:
            safe_paths.append(validate_image_path(candidate))
        except ValueError as exc:
            logger.warning("Skipping invalid image %s: %s", candidate, exc)
    return safe_paths


def _log_progress(progress: CollageProgress) -> None:
    if progress.phase == "layout" or progress.done == progress.total:
        logger.info("%s (%d/%d)", progress.message, progress.done, progress.total)
    else:
        logger.debug("%s: %s", progress.phase, progress.message)


def _resolve_output(args: argparse.Namespace, main_name: str, size: int) -> Path:
    if args.output:
        return validate_output_path(args.output)
    mime_type = next(m for m, ext in config.EXPORT_FORMATS.items() if ext == args.format)
    return validate_output_path(Path(args.output_dir) / build_export_filename(main_name, size, mime_type))


def _canvas_size_and_gap(args: argparse.Namespace) -> Tuple[int, int]:
    """Return the canvas edge and gap to render with, honouring ``--preview``."""
    if not args.preview:
        return args.size, args.gap
    size = min(args.size, config.DEFAULT_PREVIEW_SIZE)
    return size, scaled_gap(args.gap, size, args.size)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the command line interface and return the process exit code."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_file, logging.DEBUG if args.verbose else logging.INFO)
    sys.excepthook = global_exception_handler

    rng = random.Random(args.seed) if args.seed is not None else None
    raw_paths = list(args.images)
    if args.demo:
        demo_paths = write_demo_images(args.demo_dir, args.demo, rng=rng or random.Random())
        raw_paths.extend(str(p) for p in demo_paths)

    session = CollageSessionController()
    items = session.add_files(collect_image_paths(raw_paths))
    if args.main:
        try:
            main_path = validate_image_path(args.main)
        except ValueError as exc:
            logger.error("Invalid main image: %s", exc)
            return 1
        match = next((item for item in items if item.file == main_path), None)
        session.set_main(match.id if match else session.add_files([main_path])[0].id)

    size, gap = _canvas_size_and_gap(args)
    options = RenderCollageOptions(
        size=size,
        main_ratio=args.ratio,
        gap=gap,
        background=args.background,
        shuffle_others=args.shuffle,
        use_main=not args.no_main,
    )

    if args.dry_run:
        try:
            if options.use_main:
                layout = compute_collage_layout(
                    CollageLayoutOptions(
                        size=options.size,
                        main_ratio=options.main_ratio,
                        gap=options.gap,
                        others_count=max(0, len(session.items) - 1),
                    )
                )
            else:
                layout = compute_flat_layout(options.size, options.gap, len(session.items))
        except CollageError as exc:
            logger.error("Layout failed: %s", exc.message)
            return 1
        print(json.dumps(layout.to_dict(), indent=2))
        return 0

    main_item = session.main_item
    main_name = Path(str(main_item.file)).name if main_item and options.use_main else "grid"
    try:
        output_path = _resolve_output(args, main_name, normalize_canvas_size(options.size))
    except ValueError as exc:
        logger.error("Invalid output: %s", exc)
        return 1

    previous_handler = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, lambda signum, frame: session.cancel())
    try:
        image = session.render(options, on_progress=_log_progress, rng=rng)
        save_collage(image, output_path, args.quality)
    except CanceledError:
        logger.info("Render canceled")
        return 130
    except CollageError as exc:
        logger.error("Collage failed: %s", exc.message)
        return 1
    except ValueError as exc:
        logger.error("Invalid option: %s", exc)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    logger.info("Saved collage to %s", output_path)
    return 0


if __name__ == "__main__":
    sys.exit(main())

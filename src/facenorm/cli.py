"""CLI for facenorm: ``facenorm detect`` and ``facenorm info``."""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="facenorm",
        description="Detect faces and write normalized 112x112 crops",
    )
    sub = parser.add_subparsers(dest="command")

    # facenorm detect
    detect_p = sub.add_parser("detect", help="Detect and normalize faces in images")
    detect_p.add_argument(
        "uris",
        nargs="+",
        help="Image URIs (file paths, file:// or ph:// references)",
    )
    detect_p.add_argument(
        "-o", "--output",
        default=None,
        help="Directory for face crops (default: $FACENORM_OUTPUT_DIR or temp dir)",
    )
    detect_p.add_argument(
        "--config",
        default=None,
        help="YAML file with alignment settings",
    )
    detect_p.add_argument(
        "--library",
        default=None,
        help="Photo library root used to resolve ph:// identifiers",
    )
    detect_p.add_argument(
        "--padding",
        type=float,
        default=None,
        help="Margin around the bounding box on the fallback path (e.g. 0.2)",
    )
    detect_p.add_argument(
        "--roll-correction",
        type=float,
        default=None,
        help="Fraction of the measured roll to undo (default: 1.0)",
    )
    detect_p.add_argument(
        "--format",
        choices=["jpg", "png"],
        default=None,
        help="Crop file format (default: jpg)",
    )
    detect_p.add_argument(
        "--no-quality",
        action="store_true",
        help="Skip the capture-quality pass",
    )
    detect_p.add_argument(
        "--no-body",
        action="store_true",
        help="Skip upper-body detection",
    )
    detect_p.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Images processed concurrently (default: 4)",
    )
    detect_p.add_argument(
        "--report",
        default=None,
        help="Write a JSON report of all results to this path",
    )
    detect_p.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output",
    )

    # facenorm info
    info_p = sub.add_parser("info", help="Show configuration and directories")
    info_p.add_argument(
        "--config",
        default=None,
        help="YAML file with alignment settings",
    )

    return parser


def _load_config(args: argparse.Namespace):
    """AlignConfig from --config plus command-line overrides."""
    from facenorm.config import AlignConfig

    config = AlignConfig.from_yaml(args.config) if args.config else AlignConfig()
    if args.command != "detect":
        return config
    return config.with_overrides(
        padding=args.padding,
        roll_correction=args.roll_correction,
        crop_format=args.format,
        max_workers=args.workers,
        request_quality=False if args.no_quality else None,
    )


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    for name in ("PIL", "absl", "mediapipe"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _cmd_detect(args: argparse.Namespace) -> int:
    """Handle ``facenorm detect``."""
    from facenorm.pipeline import create_default_pipeline

    try:
        config = _load_config(args)
    except (OSError, ValueError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 2

    pipeline = create_default_pipeline(
        config=config,
        output_dir=args.output,
        library_root=args.library,
        with_body=not args.no_body,
    )
    results = pipeline.process_images(args.uris)

    failed = 0
    total_faces = 0
    for result in results:
        if not result.ok:
            failed += 1
            print(f"  {result.uri}: error [{result.error.code}] {result.error.message}")
            continue
        total_faces += len(result.faces)
        print(f"  {result.uri}: {len(result.faces)} face(s)")
        for face in result.faces:
            q = "-" if face.capture_quality is None else f"{face.capture_quality:.2f}"
            print(
                f"    roll={face.roll_angle:+.3f} conf={face.confidence:.2f} "
                f"quality={q} -> {face.cropped_uri}"
            )

    print(f"\nDone: {len(results)} image(s), {total_faces} face(s), {failed} failed")

    if args.report:
        report_path = Path(args.report)
        report_path.parent.mkdir(parents=True, exist_ok=True)
        with open(report_path, "w") as f:
            json.dump([r.to_dict() for r in results], f, indent=2)
        print(f"Report written to {report_path}")

    return 1 if results and failed == len(results) else 0


def _cmd_info(args: argparse.Namespace) -> int:
    """Handle ``facenorm info``."""
    from facenorm import __version__
    from facenorm.paths import get_home_dir, get_models_dir, get_output_dir

    try:
        config = _load_config(args)
    except (OSError, ValueError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 2

    print(f"facenorm {__version__}")
    print(f"  home:    {get_home_dir()}")
    print(f"  models:  {get_models_dir()}")
    print(f"  output:  {get_output_dir()}")
    print("  config:")
    for key, value in config.to_dict().items():
        print(f"    {key:20s} {value}")

    try:
        import mediapipe  # noqa: F401
        print("  mediapipe: available")
    except ImportError:
        print("  mediapipe: not installed (pip install facenorm[mediapipe])")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for ``facenorm`` CLI."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _setup_logging(getattr(args, "verbose", False))

    if args.command == "detect":
        return _cmd_detect(args)
    if args.command == "info":
        return _cmd_info(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())

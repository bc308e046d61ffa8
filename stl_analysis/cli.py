"""
Command line entry point.

Usage:
    stl-analysis analyze <stl_file> [<stl_file> ...] [--json] [--require-watertight]
    stl-analysis batch <dir> [--output report.json] [--parallel]
    stl-analysis init-config [path]

Examples:
    stl-analysis analyze bracket.stl
    stl-analysis analyze bracket.stl --json --no-validate
    stl-analysis batch ./uploads -o report.json --parallel -j 4
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from stl_analysis import __version__
from stl_analysis.batch import batch_analyze
from stl_analysis.geometry.analyzer import AnalysisError
from stl_analysis.io.stl_loader import STLLoadError
from stl_analysis.logging_config import LogContext, setup_logging
from stl_analysis.pipeline import analyze_file
from stl_analysis.project_config import (
    CONFIG_FILENAME,
    ProjectConfig,
    create_sample_config,
    load_config,
)

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_UNEXPECTED = 2


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stl-analysis",
        description="Volume and surface area of STL meshes (input in mm).",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config", "-c",
        default=None,
        help=f"Path to a {CONFIG_FILENAME} config file.",
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log at DEBUG level.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    analyze_cmd = sub.add_parser("analyze", parents=[common], help="Analyze STL files.")
    analyze_cmd.add_argument("stl_files", nargs="+", help="Input STL files.")
    analyze_cmd.add_argument(
        "--json",
        action="store_true",
        help="Print JSON instead of a text summary.",
    )
    analyze_cmd.add_argument(
        "--no-validate",
        action="store_true",
        dest="no_validate",
        help="Skip the watertightness check.",
    )
    analyze_cmd.add_argument(
        "--require-watertight",
        action="store_true",
        dest="require_watertight",
        help="Fail on open, non-manifold or inconsistently wound meshes.",
    )
    analyze_cmd.add_argument(
        "--no-dedup",
        action="store_true",
        dest="no_dedup",
        help="Keep the raw triangle soup instead of merging identical vertices.",
    )

    batch_cmd = sub.add_parser("batch", parents=[common], help="Analyze a directory of STL files.")
    batch_cmd.add_argument("input_dir", help="Directory containing STL files.")
    batch_cmd.add_argument(
        "-o", "--output",
        dest="output",
        default=None,
        help="Write a JSON report to this path.",
    )
    batch_cmd.add_argument("-p", "--pattern", default=None, help="File pattern (default: *.stl).")
    batch_cmd.add_argument("-r", "--recursive", action="store_true", default=None,
                           help="Search subdirectories.")
    batch_cmd.add_argument("--parallel", action="store_true", default=None,
                           help="Analyze files concurrently.")
    batch_cmd.add_argument("-j", "--jobs", type=int, dest="max_workers", default=None,
                           help="Maximum parallel jobs.")

    init_cmd = sub.add_parser("init-config", help="Write a sample config file.")
    init_cmd.add_argument("path", nargs="?", default=CONFIG_FILENAME)

    return parser


def _configure_logging(config: ProjectConfig, verbose: bool) -> None:
    level = logging.DEBUG if verbose else config.logging.level_number
    setup_logging(
        level=level,
        json_file=config.logging.json_file or None,
        use_colors=config.logging.use_colors and sys.stderr.isatty(),
    )


def _run_analyze(args: argparse.Namespace, config: ProjectConfig) -> int:
    if args.no_validate:
        config.validation.enabled = False
    if args.require_watertight:
        config.validation.require_watertight = True
    if args.no_dedup:
        config.loader.deduplicate_vertices = False
    if args.json:
        config.output.format = "json"

    exit_code = EXIT_OK
    reports = []

    for stl_file in args.stl_files:
        with LogContext(file=stl_file):
            try:
                analysis = analyze_file(stl_file, config)
            except STLLoadError as exc:
                logger.critical("Could not load STL: %s", exc)
                exit_code = EXIT_FAILED
                continue
            except AnalysisError as exc:
                logger.critical("Analysis rejected %s: %s", stl_file, exc)
                exit_code = EXIT_FAILED
                continue

        if config.output.format == "json":
            reports.append(analysis.to_dict())
        else:
            print(analysis.summary(config.output.precision))
            print()

    if reports:
        print(json.dumps(reports if len(args.stl_files) > 1 else reports[0], indent=2))

    return exit_code


def _run_batch(args: argparse.Namespace, config: ProjectConfig) -> int:
    result = batch_analyze(
        input_dir=args.input_dir,
        pattern=args.pattern,
        recursive=args.recursive,
        config=config,
        parallel=args.parallel,
        max_workers=args.max_workers,
    )

    if args.output:
        result.save_json(args.output)

    print(result.summary(config.output.precision))
    return EXIT_OK if result.failed == 0 else EXIT_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    if args.command == "init-config":
        path = create_sample_config(args.path)
        print(f"Sample configuration written to {path}")
        return EXIT_OK

    stl_hint = args.stl_files[0] if args.command == "analyze" else None
    config = load_config(stl_path=stl_hint, explicit_config=args.config)
    _configure_logging(config, args.verbose)

    try:
        if args.command == "analyze":
            return _run_analyze(args, config)
        return _run_batch(args, config)
    except (FileNotFoundError, NotADirectoryError) as exc:
        logger.critical("%s", exc)
        return EXIT_FAILED
    except Exception as exc:
        logger.critical("Unexpected error: %s", exc, exc_info=True)
        return EXIT_UNEXPECTED


if __name__ == "__main__":
    sys.exit(main())

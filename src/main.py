# src/main.py — v2
"""CLI entry point — run, merge, status, clear commands.

Usage:
    mirbatch run <directory> [--batch-size N] [--strict] [--fresh] [--no-merge]
    mirbatch merge [--input DIR] [--output DIR] [--strategy S] [--cleanup]
    mirbatch status
    mirbatch clear

Exit codes: 0 success, 1 unrecoverable failure, 2 run aborted,
130 interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from mirbatch.version import __version__

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_ABORTED = 2
EXIT_INTERRUPTED = 130


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    from mirbatch.config.settings import ConfigurationError, load_settings
    from mirbatch.core.errors import MirBatchError, RunAbortedError
    from mirbatch.logging.logger import setup_logging

    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return EXIT_FAILURE

    try:
        settings = load_settings(**_overrides(args))
    except (ConfigurationError, ValueError) as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_FAILURE

    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )

    try:
        return asyncio.run(args.func(args, settings))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return EXIT_INTERRUPTED
    except RunAbortedError as exc:
        logger.error("Run aborted: %s", exc)
        return EXIT_ABORTED
    except MirBatchError as exc:
        logger.error("%s", exc, exc_info=args.verbose)
        return EXIT_FAILURE
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return EXIT_FAILURE


def _build_parser() -> argparse.ArgumentParser:
    """Build CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="mirbatch",
        description=f"mirbatch v{__version__} — Batch audio analysis and CSV consolidation",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- run ---
    p_run = subparsers.add_parser(
        "run", help="Discover, process and merge a music directory",
    )
    p_run.add_argument("directory", type=Path, help="Directory to scan")
    p_run.add_argument(
        "--batch-size", type=int, default=None,
        help="Files per batch (default: BATCH_SIZE)",
    )
    p_run.add_argument(
        "--strict", action="store_true",
        help="Abort on the first batch failure",
    )
    p_run.add_argument(
        "--fresh", action="store_true",
        help="Ignore saved progress and start over",
    )
    p_run.add_argument(
        "--no-merge", action="store_true",
        help="Skip the merge step after processing",
    )
    p_run.set_defaults(func=_cmd_run)

    # --- merge ---
    p_merge = subparsers.add_parser(
        "merge", help="Merge existing batch CSV files",
    )
    p_merge.add_argument(
        "--input", dest="input_dir", type=Path, default=None,
        help="Batch CSV directory (default: EXPORT_DIR)",
    )
    p_merge.add_argument(
        "--output", dest="output_dir", type=Path, default=None,
        help="Output directory (default: RESULTS_DIR)",
    )
    p_merge.add_argument(
        "--strategy", choices=["keep_first", "keep_last", "flag_duplicates"],
        default=None, help="Duplicate filename policy",
    )
    p_merge.add_argument(
        "--cleanup", action="store_true", default=None,
        help="Delete merged batch files afterwards",
    )
    p_merge.set_defaults(func=_cmd_merge)

    # --- status ---
    p_status = subparsers.add_parser(
        "status", help="Show saved progress and merge readiness",
    )
    p_status.set_defaults(func=_cmd_status)

    # --- clear ---
    p_clear = subparsers.add_parser(
        "clear", help="Delete saved progress",
    )
    p_clear.set_defaults(func=_cmd_clear)

    return parser


def _overrides(args: argparse.Namespace) -> dict[str, object]:
    """Settings overrides derived from CLI flags."""
    overrides: dict[str, object] = {}
    if getattr(args, "strict", False):
        overrides["strict_mode"] = True
    if getattr(args, "batch_size", None) is not None:
        overrides["batch_size"] = args.batch_size
    return overrides


async def _cmd_run(args: argparse.Namespace, settings) -> int:
    """Execute the full discover → process → merge pipeline."""
    from mirbatch.batch.state_store import JsonStateStore
    from mirbatch.engine.driver_factory import create_driver
    from mirbatch.tracking.report import format_workflow_summary
    from mirbatch.workflow.coordinator import WorkflowCoordinator

    cancel_event = asyncio.Event()
    _install_signal_handlers(cancel_event)

    coordinator = WorkflowCoordinator(
        settings,
        create_driver(settings),
        JsonStateStore(settings.state_file),
        cancel_event=cancel_event,
    )
    report = await coordinator.run(
        args.directory,
        resume=not args.fresh,
        auto_merge=False if args.no_merge else None,
    )
    print()
    print(format_workflow_summary(report))

    if report.status == "cancelled":
        return EXIT_INTERRUPTED
    if report.status == "empty":
        logger.error("No input files found in %s", args.directory)
        return EXIT_FAILURE
    return EXIT_OK


async def _cmd_merge(args: argparse.Namespace, settings) -> int:
    """Merge batch artifacts without processing."""
    from mirbatch.tracking.report import format_merge_summary
    from mirbatch.workflow.coordinator import run_merge_only

    result = await run_merge_only(
        settings,
        input_dir=args.input_dir,
        output_dir=args.output_dir,
        duplicate_strategy=args.strategy,
        cleanup=args.cleanup,
    )
    print()
    print(format_merge_summary(result.report))
    return EXIT_OK


async def _cmd_status(args: argparse.Namespace, settings) -> int:
    """Display saved progress and whether a merge would be complete."""
    from mirbatch.batch.state_store import JsonStateStore
    from mirbatch.tracking.progress import build_progress, merge_readiness
    from mirbatch.tracking.report import format_progress_summary

    state = await JsonStateStore(settings.state_file).load()
    if state is None:
        print(f"No saved progress at {settings.state_file}")
    else:
        print(format_progress_summary(build_progress(state)))

    readiness = merge_readiness(state, Path(settings.export_dir))
    print(
        f"\nMerge ready: {'yes' if readiness.ready else 'no'} "
        f"({readiness.artifacts_found} batch files; {readiness.reason})"
    )
    return EXIT_OK


async def _cmd_clear(args: argparse.Namespace, settings) -> int:
    """Delete persisted progress so the next run starts fresh."""
    from mirbatch.batch.state_store import JsonStateStore

    store = JsonStateStore(settings.state_file)
    existed = await store.exists()
    await store.clear()
    print("Progress cleared" if existed else "No saved progress to clear")
    return EXIT_OK


def _install_signal_handlers(cancel_event: asyncio.Event) -> None:
    """Let SIGINT/SIGTERM finish the in-flight batch, then stop."""
    loop = asyncio.get_running_loop()

    def _request_stop(signame: str) -> None:
        if cancel_event.is_set():
            return
        logger.warning("%s received; stopping after the current batch", signame)
        cancel_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop, sig.name)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform / loop; fall back to KeyboardInterrupt.
            pass


if __name__ == "__main__":
    sys.exit(main())

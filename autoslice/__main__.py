"""
autoslice CLI — Keep sliced gcode for every profile permutation up to date.

Usage:
    autoslice <command> [options]
    python -m autoslice <command> [options]
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from autoslice.catalog import project_id, read_catalog
from autoslice.config import ConfigurationError, Settings, load_settings
from autoslice.distribution import Distributor
from autoslice.engine import RegenerationEngine
from autoslice.models import RegenerateAll
from autoslice.planner import plan_artifacts
from autoslice.progress import NullProgressReporter, ProgressReporter, RichProgressReporter
from autoslice.slicer import PrusaSlicer
from autoslice.transfer import Rsync
from autoslice.watch import ChangeRouter, ChangeWatcher

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="autoslice",
        description="Slice every project for every printer/filament/print profile permutation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  autoslice --projects ~/prints --profiles ~/.config/PrusaSlicer watch
  autoslice --config autoslice.ini --target 'pi@octopi.local:/home/pi/watched[MK3S]' watch
  autoslice --config autoslice.ini regenerate
  autoslice --config autoslice.ini plan boxes/box.3mf --json

Environment variables:
  AUTOSLICE_CONFIG     INI config file (instead of --config)
  AUTOSLICE_PROJECTS   Project directory (instead of --projects)
  AUTOSLICE_PROFILES   PrusaSlicer configuration directory (instead of --profiles)
  AUTOSLICE_OUTPUT     Output directory (default: <projects>/gcode)
  AUTOSLICE_SLICER     Slicer executable (default: prusa-slicer)
  AUTOSLICE_TARGETS    Comma-separated upload targets, each optionally
                       suffixed with [printer,printer] to limit what it gets
        """,
    )

    parser.add_argument("--config", "-c", type=Path, default=None, help="INI config file")
    parser.add_argument("--projects", type=Path, default=None, help="Project directory")
    parser.add_argument(
        "--profiles", type=Path, default=None,
        help="PrusaSlicer directory containing printer/, filament/ and print/",
    )
    parser.add_argument("--output", type=Path, default=None, help="Output directory")
    parser.add_argument("--slicer", default=None, help="Slicer executable")
    parser.add_argument(
        "--target", "-t", action="append", default=[],
        help="Upload target (repeatable), e.g. 'pi@host:/dir[MK3S,MK4]'",
    )
    parser.add_argument(
        "--verbose", "-V", action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--quiet", "-q", action="store_true",
        help="Suppress non-error output (logging only)",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        dest="command",
        required=True,
        metavar="<command>",
    )

    # --- watch ---
    watch_parser = subparsers.add_parser(
        "watch",
        help="Regenerate and upload as projects and profiles change",
    )
    watch_parser.add_argument(
        "--full-rebuild",
        action="store_true",
        default=None,
        help="Rebuild everything on any profile change instead of only affected permutations",
    )
    watch_parser.set_defaults(func=run_watch)

    # --- regenerate ---
    regen_parser = subparsers.add_parser(
        "regenerate",
        help="Delete all output, slice everything once, upload, and exit",
    )
    regen_parser.add_argument(
        "--json", action="store_true", help="Output report as JSON"
    )
    regen_parser.set_defaults(func=run_regenerate)

    # --- plan ---
    plan_parser = subparsers.add_parser(
        "plan",
        help="Show the artifacts a project produces with the current profiles",
    )
    plan_parser.add_argument("project", type=Path, help="Project file")
    plan_parser.add_argument(
        "--json", action="store_true", help="Output plan as JSON"
    )
    plan_parser.set_defaults(func=run_plan)

    # --- targets ---
    targets_parser = subparsers.add_parser(
        "targets",
        help="Show configured upload targets",
    )
    targets_parser.add_argument(
        "--json", action="store_true", help="Output targets as JSON"
    )
    targets_parser.set_defaults(func=run_targets)

    return parser


def _load(args: argparse.Namespace) -> Settings:
    """Build validated settings from the config file, environment, and flags."""
    settings = load_settings(
        config_path=args.config,
        overrides={
            "projects_dir": args.projects,
            "profiles_dir": args.profiles,
            "output_dir": args.output,
            "slicer_command": args.slicer,
            "full_rebuild_on_profile_change": getattr(args, "full_rebuild", None),
        },
        extra_targets=args.target,
    )
    settings.validate_paths()
    return settings


def _make_reporter(quiet: bool) -> ProgressReporter:
    """Create the appropriate progress reporter."""
    return NullProgressReporter() if quiet else RichProgressReporter()


def build_engine(settings: Settings, reporter: ProgressReporter | None = None) -> RegenerationEngine:
    distributor = Distributor(
        settings.targets,
        Rsync(settings.rsync_command),
        batch_size=settings.mirror_batch_size,
    )
    return RegenerationEngine(
        projects_dir=settings.projects_dir,
        profiles_dir=settings.profiles_dir,
        output_dir=settings.output_dir,
        slicer=PrusaSlicer(settings.slicer_command),
        distributor=distributor,
        reporter=reporter,
        slice_concurrency=settings.slice_concurrency,
    )


def run_watch(args: argparse.Namespace) -> int:
    """Execute the watch command. Runs until interrupted."""
    settings = _load(args)
    if settings.targets:
        logger.info("Using upload targets: %s", ", ".join(t.address for t in settings.targets))
    catalog = read_catalog(settings.profiles_dir)
    logger.info(
        "Loaded settings combinations: %d printers, %d filaments, %d print settings",
        len(catalog.printers), len(catalog.filaments), len(catalog.print_settings),
    )
    asyncio.run(_watch(settings, _make_reporter(args.quiet)))
    return 0


async def _watch(settings: Settings, reporter: ProgressReporter) -> None:
    engine = build_engine(settings, reporter)
    router = ChangeRouter(
        engine,
        settings.projects_dir,
        settings.profiles_dir,
        full_rebuild=settings.full_rebuild_on_profile_change,
    )
    watcher = ChangeWatcher(router, debounce=settings.debounce)

    async with engine:
        await watcher.start()
        try:
            engine.bootstrap()
            await asyncio.Event().wait()
        finally:
            await watcher.stop()


def run_regenerate(args: argparse.Namespace) -> int:
    """Execute the regenerate command: one full pass, then exit."""
    settings = _load(args)
    use_json = getattr(args, "json", False)
    engine = asyncio.run(_regenerate(settings, _make_reporter(args.quiet or use_json)))
    if not engine.reports:
        logger.error("Regeneration did not complete")
        return 1
    report = engine.reports[-1]

    if use_json:
        print(json.dumps({
            "sliced": [str(a.path) for a in report.sliced],
            "failed": [str(a.path) for a in report.failed],
            "distributed": report.distributed,
        }, indent=2))
    else:
        print("\nRegeneration complete:")
        print(f"  Sliced:  {len(report.sliced)}")
        print(f"  Failed:  {len(report.failed)}")
        print(f"  Targets: {len(settings.targets)}")
        if report.failed:
            print("\nFailed artifacts:")
            for artifact in report.failed[:20]:
                print(f"  - {artifact.path}")
            if len(report.failed) > 20:
                print(f"  ... and {len(report.failed) - 20} more")
    return 0


async def _regenerate(settings: Settings, reporter: ProgressReporter) -> RegenerationEngine:
    engine = build_engine(settings, reporter)
    async with engine:
        engine.submit(RegenerateAll())
    return engine


def run_plan(args: argparse.Namespace) -> int:
    """Execute the plan command."""
    settings = _load(args)
    path = args.project
    if not path.is_absolute() and (settings.projects_dir / path).exists():
        path = settings.projects_dir / path
    project = project_id(settings.projects_dir, path.resolve())
    if project is None:
        logger.error("'%s' is not a project file inside %s", args.project, settings.projects_dir)
        return 1

    catalog = read_catalog(settings.profiles_dir)
    artifacts = plan_artifacts(project, catalog, settings.output_dir)

    if getattr(args, "json", False):
        print(json.dumps([
            {
                "path": str(a.path),
                "printer": a.permutation.printer,
                "filament": a.permutation.filament,
                "print": a.permutation.print_setting,
            }
            for a in artifacts
        ], indent=2))
    else:
        print(f"{project}: {len(artifacts)} artifacts")
        for artifact in artifacts:
            print(f"  {artifact.path.relative_to(settings.output_dir)}")
    return 0


def run_targets(args: argparse.Namespace) -> int:
    """Execute the targets command."""
    settings = _load(args)

    if getattr(args, "json", False):
        print(json.dumps([
            {
                "address": t.address,
                "printers": sorted(t.printers) if t.printers is not None else None,
            }
            for t in settings.targets
        ], indent=2))
    else:
        if not settings.targets:
            print("No upload targets configured")
        for target in settings.targets:
            if target.printers is None:
                allowed = "all printers"
            else:
                allowed = ", ".join(sorted(target.printers)) or "vanilla only"
            print(f"  {target.address} ({allowed})")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    # Configure logging
    if getattr(args, "verbose", False):
        log_level = logging.DEBUG
    elif getattr(args, "quiet", False):
        log_level = logging.ERROR
    else:
        log_level = logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    if hasattr(args, "func"):
        try:
            return args.func(args)
        except ConfigurationError as e:
            logger.error("%s", e)
            return 1
        except KeyboardInterrupt:
            logger.error("Interrupted")
            return 1
        except Exception as e:
            logger.error("%s", e)
            if getattr(args, "verbose", False):
                logger.debug("Traceback:", exc_info=True)
            return 1
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())

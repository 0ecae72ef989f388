"""
main.py — Supervisors Entry Point

Usage:
    python -m supervisors                           # all enabled tasks, default settings
    python -m supervisors --tasks reporter          # only the report scheduler
    python -m supervisors --log-level DEBUG         # verbose logging
    python -m supervisors --config path/to/config.yaml

Signals:
    SIGINT / SIGTERM   stop every task and exit
    SIGHUP             reload config.yaml and re-apply reporter parameters
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

TASK_CHOICES = ("reporter", "power")


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="supervisors",
        description="Vehicle supervisors — periodic report scheduler and power sequencer",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: $SUPERVISORS_CONFIG or config/config.yaml)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    parser.add_argument(
        "--tasks",
        type=_parse_tasks,
        default=None,
        help="Comma-separated subset of tasks to run: reporter,power "
             "(default: every task enabled in config)",
    )
    return parser.parse_args(argv)


def _parse_tasks(value: str) -> list[str]:
    names = [v.strip().lower() for v in value.split(",") if v.strip()]
    unknown = [n for n in names if n not in TASK_CHOICES]
    if unknown or not names:
        raise argparse.ArgumentTypeError(
            f"invalid task list '{value}' (choose from: {', '.join(TASK_CHOICES)})"
        )
    return names


def bootstrap(args: argparse.Namespace):
    """
    Load config, validate it fully, and set up logging.
    Returns (settings, log) ready for use.

    Exits with code 1 (after printing a clear message) if:
      - config.yaml has invalid values (Pydantic ValidationError)
      - cross-field problems are found (ConfigError from validate_all())
    """
    import yaml
    from pydantic import ValidationError

    from supervisors.config.settings import ConfigError, load_settings
    from supervisors.observability.logger import get_logger, setup_logging

    # -- Load and parse -------------------------------------------------------
    try:
        settings = load_settings(args.config)
    except ValidationError as exc:
        problems = "\n".join(
            f"  • {'.'.join(str(p) for p in e['loc']) or '?'}: {e['msg']}"
            for e in exc.errors()
        )
        print(
            f"\n❌  Config validation failed:\n\n{problems}\n\n"
            f"    Fix config/config.yaml or your .env file and restart.\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except OSError as exc:
        print(
            f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n",
            file=sys.stderr,
        )
        sys.exit(1)
    except (yaml.YAMLError, ValueError, TypeError) as exc:
        print(
            f"\n❌  Failed to load config: {type(exc).__name__}: {exc}\n",
            file=sys.stderr,
        )
        sys.exit(1)

    # -- Apply --tasks before cross-field validation --------------------------
    if args.tasks is not None:
        settings.reporter.enabled = "reporter" in args.tasks
        settings.power.enabled = "power" in args.tasks

    try:
        settings.validate_all()
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(1)

    # -- Logging --------------------------------------------------------------
    # CLI --log-level flag overrides config.yaml
    log_level = args.log_level or settings.log_level

    setup_logging(
        level=log_level,
        log_dir=settings.log_dir,
        json_format=settings.logging.json_format,
        console_output=settings.logging.console_output,
        max_bytes=settings.logging.max_file_size_mb * 1024 * 1024,
        backup_count=settings.logging.backup_count,
    )

    log = get_logger("supervisors.main")
    return settings, log


def build_tasks(settings, bus) -> list:
    """Instantiate every task enabled in settings, all sharing `bus`."""
    from supervisors.power import PowerSequencerTask
    from supervisors.reporter import ReporterTask

    tasks: list = []
    if settings.reporter.enabled:
        tasks.append(ReporterTask(bus, settings.reporter))
    if settings.power.enabled:
        tasks.append(PowerSequencerTask(bus, settings.power))
    return tasks


def reload_settings(tasks: list, log, config_path: Optional[str] = None) -> bool:
    """
    Re-read config and push reporter parameters into the running tasks.

    The new settings are applied only if they parse and pass validate_all().
    Returns True when they were applied.
    """
    import yaml
    from pydantic import ValidationError

    from supervisors.config.settings import ConfigError, load_settings
    from supervisors.reporter import ReporterTask

    try:
        fresh = load_settings(config_path)
        fresh.validate_all()
    except (ValidationError, ConfigError, OSError, ValueError, yaml.YAMLError) as e:
        log.error("supervisors.reload_failed", error=str(e), error_type=type(e).__name__)
        return False

    for task in tasks:
        if isinstance(task, ReporterTask):
            task.update_parameters(fresh.reporter)
    log.info("supervisors.reloaded")
    return True


async def run_tasks(settings, log, config_path: Optional[str] = None) -> int:
    from supervisors.bus import MessageBus

    bus = MessageBus(settings.system_name)
    tasks = build_tasks(settings, bus)

    loop = asyncio.get_running_loop()

    def _stop(signame: str) -> None:
        log.info("supervisors.signal", signal=signame)
        for task in tasks:
            task.stop()

    def _reload() -> None:
        reload_settings(tasks, log, config_path)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _stop, sig.name)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            log.debug("supervisors.signal_unsupported", signal=sig.name)
    if hasattr(signal, "SIGHUP"):
        try:
            loop.add_signal_handler(signal.SIGHUP, _reload)
        except NotImplementedError:
            log.debug("supervisors.signal_unsupported", signal="SIGHUP")

    log.info(
        "supervisors.running",
        system=settings.system_name,
        tasks=[t.name for t in tasks],
    )
    results = await asyncio.gather(*(t.run() for t in tasks), return_exceptions=True)

    exit_code = 0
    for task, result in zip(tasks, results):
        if isinstance(result, BaseException):
            log.error(
                "supervisors.task_crashed",
                task=task.name,
                error=str(result),
                error_type=type(result).__name__,
            )
            exit_code = 1
    log.info("supervisors.stopped", exit_code=exit_code)
    return exit_code


async def main(argv: Optional[list[str]] = None) -> int:
    load_dotenv(dotenv_path=Path.cwd() / ".env")
    args = parse_args(argv)

    settings, log = bootstrap(args)

    from supervisors import __version__

    log.info(
        "supervisors.starting",
        version=__version__,
        system=settings.system_name,
        reporter=settings.reporter.enabled,
        power=settings.power.enabled,
    )
    return await run_tasks(settings, log, args.config)


def cli() -> None:
    """Console-script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()

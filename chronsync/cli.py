"""
chronsync command-line interface.
"""

from __future__ import annotations

import argparse
import logging
import shlex
from pathlib import Path
from typing import List, Optional

from chronsync import __version__
from chronsync.config import default_config_path, load_config, write_sample_config
from chronsync.daemon import run_daemon
from chronsync.errors import ChronsyncError, ConfigError
from chronsync.executor import execute
from chronsync.log import setup_logging

logger = logging.getLogger(__name__)


def resolve_config_path(raw: Optional[str]) -> Path:
    if raw:
        return Path(raw).expanduser().resolve()
    return default_config_path()


def require_config_file(config_path: Path) -> None:
    if not config_path.exists():
        raise ChronsyncError(f"Error: Configuration file not found at path: {config_path}")


def command_run(config_path: Path) -> int:
    require_config_file(config_path)
    return run_daemon(config_path)


def command_list(config_path: Path) -> int:
    require_config_file(config_path)
    configuration = load_config(config_path)
    print(f"Configuration loaded from: {config_path}")
    print(f"\n--- chronsync Task List ({len(configuration.tasks)} Tasks) ---")
    for task in configuration.tasks:
        args_text = " ".join(shlex.quote(arg) for arg in task.args) if task.args else "(none)"
        print(f"- [{task.name}]: {task.schedule}")
        print(f"  Command: {task.command} | args={args_text}")
        if task.timeout is not None:
            print(f"  Timeout: {task.timeout}s")
        print("-----------------------------")
    return 0


def command_init(config_path: Path, force: bool) -> int:
    if config_path.exists() and not force:
        print(f"Configuration file already exists at: {config_path}")
        answer = input("Do you want to overwrite it? (y/N): ")
        if answer.strip().lower() != "y":
            logger.info("Initialization cancelled by user.")
            return 0

    try:
        write_sample_config(config_path)
    except OSError as exc:
        raise ChronsyncError(f"Error: Failed to write configuration file to {config_path}: {exc}") from exc

    print("\nSuccessfully created initial configuration file.")
    print(f"  Path: {config_path}")
    print("\nNext steps:")
    print("1. Edit the file to define your tasks.")
    print("2. Run the daemon: `chronsync run`")
    return 0


def command_check(config_path: Path) -> int:
    require_config_file(config_path)
    try:
        configuration = load_config(config_path)
    except ConfigError as exc:
        print(f"Validation failed: Invalid JSON or Cron Schedule.\n  Details: {exc}")
        return 1
    logger.info("Configuration check successful: %s tasks loaded.", len(configuration.tasks))
    print("Configuration check passed.")
    return 0


def command_exec(config_path: Path, task_name: str) -> int:
    require_config_file(config_path)
    configuration = load_config(config_path)
    task = configuration.find(task_name)
    if task is None:
        logger.error("Task '%s' not found in configuration.", task_name)
        logger.error("Available tasks: %s", configuration.names())
        return 1

    logger.info("Manually executing task: '%s'", task.name)
    result = execute(
        task.name,
        task.command,
        task.args,
        task.timeout,
        task.webhook_url,
        task.cwd,
        task.env,
    )
    logger.info("Manual execution finished.")
    return 0 if result.success else 1


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chronsync",
        description="chronsync: cron-style command scheduler daemon with live reload",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", help="Also write logs to this file")
    subparsers = parser.add_subparsers(dest="command", required=True)

    config_help = "Path to config (default: $CHRONSYNC_CONFIG or ~/.config/chronsync/config.json)"

    run_parser = subparsers.add_parser("run", help="Run the scheduler daemon")
    run_parser.add_argument("-c", "--config-path", help=config_help)

    list_parser = subparsers.add_parser("list", help="List configured tasks")
    list_parser.add_argument("-c", "--config-path", help=config_help)

    init_parser = subparsers.add_parser("init", help="Write a sample configuration file")
    init_parser.add_argument("-c", "--config-path", help=config_help)
    init_parser.add_argument("--force", action="store_true", help="Overwrite without asking")

    check_parser = subparsers.add_parser("check", help="Validate the configuration file")
    check_parser.add_argument("-c", "--config-path", help=config_help)

    exec_parser = subparsers.add_parser("exec", help="Run one task now, bypassing the schedule")
    exec_parser.add_argument("task_name", help="Name of the task to run")
    exec_parser.add_argument("-c", "--config-path", help=config_help)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(verbose=args.verbose, log_file=args.log_file)
    config_path = resolve_config_path(args.config_path)
    logger.debug("Resolved config path: %s", config_path)

    try:
        if args.command == "run":
            return command_run(config_path)
        if args.command == "list":
            return command_list(config_path)
        if args.command == "init":
            return command_init(config_path, force=args.force)
        if args.command == "check":
            return command_check(config_path)
        if args.command == "exec":
            return command_exec(config_path, args.task_name)
        raise ChronsyncError(f"Unsupported command: {args.command}")
    except ChronsyncError as exc:
        logger.error(str(exc))
        return 1
    except Exception as exc:  # pragma: no cover - defensive
        logger.exception("Unexpected error: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

"""
Configuration model and loader.

A configuration is an ordered list of tasks, each pairing a seconds-precision
cron expression with a command to run. JSON is the native format; files ending
in .yaml or .yml are read with PyYAML instead.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from croniter import CroniterBadDateError, croniter

from chronsync.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CHRONSYNC_CONFIG"
YAML_SUFFIXES = {".yaml", ".yml"}
CRON_FIELD_COUNTS = {6, 7}
TOP_LEVEL_KEYS = {"tasks", "timezone"}
TASK_KEYS = {"name", "cron_schedule", "command", "args", "timeout", "webhook_url", "cwd", "env"}

SAMPLE_CONFIG: Dict[str, Any] = {
    "tasks": [
        {
            "name": "sample_ping",
            "cron_schedule": "*/10 * * * * *",
            "command": "/bin/sh",
            "args": ["-c", '/bin/echo "[Sample] Check at $(date)"'],
        },
        {
            "name": "sample_cleanup",
            "cron_schedule": "0 0 0 * * *",
            "command": "/usr/bin/find",
            "args": ["/tmp", "-type", "f", "-atime", "+7", "-delete"],
            "timeout": 600,
        },
    ]
}


def system_timezone() -> Tuple[tzinfo, str]:
    tz_name = os.environ.get("TZ")
    if tz_name:
        try:
            return ZoneInfo(tz_name), tz_name
        except (ZoneInfoNotFoundError, ValueError):
            pass
    localtime = Path("/etc/localtime")
    if localtime.exists():
        try:
            with localtime.open("rb") as handle:
                return ZoneInfo.from_file(handle, key="localtime"), "localtime"
        except (OSError, ValueError):
            pass
    local_tz = datetime.now().astimezone().tzinfo or timezone.utc
    return local_tz, str(local_tz)


def parse_timezone(name: str, field_path: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigError(f'Error: Invalid timezone "{name}" at {field_path}.') from exc


def _ensure_aware(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value


@dataclass(frozen=True)
class CronSchedule:
    """Seconds-first cron expression (sec min hour dom month dow [year])."""

    expression: str
    timezone: tzinfo = field(default_factory=lambda: system_timezone()[0], compare=False)

    def __str__(self) -> str:
        return self.expression

    def next_after(self, after: datetime) -> Optional[datetime]:
        local_after = _ensure_aware(after, self.timezone).astimezone(self.timezone)
        iterator = croniter(self.expression, local_after, second_at_beginning=True)
        try:
            nxt = iterator.get_next(datetime)
            if nxt.tzinfo is None:
                nxt = nxt.replace(tzinfo=self.timezone)
            while nxt <= local_after:
                nxt = iterator.get_next(datetime)
        except CroniterBadDateError:
            return None
        return nxt

    def upcoming(self, after: Optional[datetime] = None) -> Iterator[datetime]:
        cursor = after or datetime.now(tz=self.timezone)
        while True:
            nxt = self.next_after(cursor)
            if nxt is None:
                return
            yield nxt
            cursor = nxt


@dataclass(frozen=True)
class Task:
    name: str
    schedule: CronSchedule
    command: str
    args: Tuple[str, ...] = ()
    timeout: Optional[int] = None
    webhook_url: Optional[str] = None
    cwd: Optional[str] = None
    env: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "args", tuple(self.args))
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))


@dataclass(frozen=True)
class Configuration:
    tasks: Tuple[Task, ...] = ()
    timezone_name: Optional[str] = None

    @staticmethod
    def empty() -> "Configuration":
        return Configuration(tasks=())

    def names(self) -> List[str]:
        return [task.name for task in self.tasks]

    def find(self, name: str) -> Optional[Task]:
        return next((task for task in self.tasks if task.name == name), None)


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "chronsync" / "config.json"


def ensure_str(value: Any, field_path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"Error: {field_path} must be a non-empty string.")
    return value.strip()


def ensure_optional_int(value: Any, field_path: str, minimum: int = 0) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"Error: {field_path} must be an integer.")
    if value < minimum:
        raise ConfigError(f"Error: {field_path} must be >= {minimum}.")
    return value


def validate_cron_expression(value: Any, field_path: str) -> str:
    expression = ensure_str(value, field_path)
    fields = expression.split()
    if len(fields) not in CRON_FIELD_COUNTS:
        raise ConfigError(
            f'Error: {field_path} must have 6 or 7 fields (sec min hour dom month dow [year]), got "{expression}".'
        )
    try:
        croniter(expression, second_at_beginning=True)
    except (ValueError, TypeError, KeyError) as exc:
        raise ConfigError(f'Error: Invalid cron expression "{expression}" at {field_path}: {exc}') from exc
    return " ".join(fields)


def parse_args_list(value: Any, field_path: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, list):
        raise ConfigError(f"Error: {field_path} must be a list of strings.")
    for idx, item in enumerate(value):
        if not isinstance(item, str):
            raise ConfigError(f"Error: {field_path}[{idx}] must be a string.")
    return tuple(value)


def parse_webhook_url(value: Any, field_path: str) -> Optional[str]:
    if value is None:
        return None
    url = ensure_str(value, field_path)
    if not (url.startswith("http://") or url.startswith("https://")):
        raise ConfigError(f"Error: {field_path} must be an HTTP URL.")
    return url


def parse_env(value: Any, field_path: str) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"Error: {field_path} must be a mapping of strings.")
    env: Dict[str, str] = {}
    for key, item in value.items():
        if not isinstance(key, str) or not key:
            raise ConfigError(f"Error: {field_path} keys must be non-empty strings.")
        if not isinstance(item, str):
            raise ConfigError(f"Error: {field_path}.{key} must be a string.")
        env[key] = item
    return env


def parse_task(raw: Any, field_path: str, tz: tzinfo) -> Task:
    if not isinstance(raw, dict):
        raise ConfigError(f"Error: {field_path} must be a mapping.")
    unknown = set(raw.keys()) - TASK_KEYS
    if unknown:
        raise ConfigError(f"Error: Unknown keys in {field_path}: {sorted(unknown)}.")

    name = ensure_str(raw.get("name"), f"{field_path}.name")
    expression = validate_cron_expression(raw.get("cron_schedule"), f"{field_path}.cron_schedule")
    command = ensure_str(raw.get("command"), f"{field_path}.command")
    cwd = raw.get("cwd")
    if cwd is not None:
        cwd = ensure_str(cwd, f"{field_path}.cwd")

    return Task(
        name=name,
        schedule=CronSchedule(expression, tz),
        command=command,
        args=parse_args_list(raw.get("args"), f"{field_path}.args"),
        timeout=ensure_optional_int(raw.get("timeout"), f"{field_path}.timeout"),
        webhook_url=parse_webhook_url(raw.get("webhook_url"), f"{field_path}.webhook_url"),
        cwd=cwd,
        env=parse_env(raw.get("env"), f"{field_path}.env"),
    )


def parse_config(payload: Dict[str, Any]) -> Configuration:
    unknown_top = set(payload.keys()) - TOP_LEVEL_KEYS
    if unknown_top:
        raise ConfigError(f"Error: Unknown top-level keys: {sorted(unknown_top)}.")

    timezone_name = payload.get("timezone")
    if timezone_name is None:
        tz, _ = system_timezone()
    else:
        timezone_name = ensure_str(timezone_name, "timezone")
        tz = parse_timezone(timezone_name, "timezone")

    tasks_raw = payload.get("tasks")
    if not isinstance(tasks_raw, list):
        raise ConfigError("Error: tasks must be a list.")

    seen_names: Set[str] = set()
    tasks: List[Task] = []
    for idx, task_raw in enumerate(tasks_raw):
        task = parse_task(task_raw, f"tasks[{idx}]", tz)
        if task.name in seen_names:
            logger.warning('Duplicate task name "%s"; both entries will be scheduled.', task.name)
        seen_names.add(task.name)
        tasks.append(task)

    return Configuration(tasks=tuple(tasks), timezone_name=timezone_name)


def _load_config_payload(config_path: Path) -> Dict[str, Any]:
    if not config_path.exists():
        raise ConfigError(f"Error: Config file not found: {config_path}")

    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Error: Failed to read {config_path}: {exc}") from exc

    if config_path.suffix.lower() in YAML_SUFFIXES:
        try:
            payload = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Error: Failed to parse YAML in {config_path}: {exc}") from exc
    else:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Error: Failed to parse JSON in {config_path}: {exc}") from exc

    if not isinstance(payload, dict):
        raise ConfigError("Error: Top-level config must be a mapping.")
    return payload


def load_config(config_path: Path) -> Configuration:
    return parse_config(_load_config_payload(config_path))


def write_sample_config(config_path: Path) -> None:
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(SAMPLE_CONFIG, indent=2) + "\n", encoding="utf-8")

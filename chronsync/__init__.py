"""
chronsync

Runs shell commands on independent, seconds-precision cron schedules with
live configuration reload, per-task timeouts and webhook failure alerts.
"""

__version__ = "0.1.0"

from chronsync.config import Configuration, CronSchedule, Task, load_config
from chronsync.errors import ChronsyncError, ConfigError
from chronsync.executor import Completed, ExecutionResult, SpawnFailed, TimedOut, execute
from chronsync.scheduler import JobHandle, JobLoop, Scheduler

__all__ = [
    "ChronsyncError",
    "Completed",
    "ConfigError",
    "Configuration",
    "CronSchedule",
    "ExecutionResult",
    "JobHandle",
    "JobLoop",
    "Scheduler",
    "SpawnFailed",
    "Task",
    "TimedOut",
    "execute",
    "load_config",
]

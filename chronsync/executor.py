"""
Runs one task command under an optional deadline and classifies the outcome.
"""

from __future__ import annotations

import logging
import os
import shlex
import signal
import subprocess
import time
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Union

from chronsync.alerter import notify

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Completed:
    exit_status: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.exit_status == 0


@dataclass(frozen=True)
class TimedOut:
    timeout: int
    success = False


@dataclass(frozen=True)
class SpawnFailed:
    error: str
    success = False


ExecutionResult = Union[Completed, TimedOut, SpawnFailed]


def describe_exit_status(returncode: int) -> str:
    if returncode < 0:
        try:
            return f"signal: {-returncode} ({signal.Signals(-returncode).name})"
        except ValueError:
            return f"signal: {-returncode}"
    return f"exit status: {returncode}"


def build_env(env: Optional[Mapping[str, str]]) -> Dict[str, str]:
    child_env = os.environ.copy()
    if env:
        child_env.update(env)
    return child_env


def _kill(process: subprocess.Popen, name: str) -> None:
    try:
        process.kill()
        process.wait()
        logger.error("[%s] Child process PID %s killed successfully.", name, process.pid)
    except OSError as exc:
        logger.error("[%s] Failed to kill child process PID %s: %s", name, process.pid, exc)
    finally:
        for stream in (process.stdout, process.stderr):
            if stream is not None:
                stream.close()


def execute(
    name: str,
    command: str,
    args: Sequence[str] = (),
    timeout: Optional[int] = None,
    webhook_url: Optional[str] = None,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
) -> ExecutionResult:
    """Run ``command`` to completion or until ``timeout`` seconds elapse.

    A ``timeout`` of 0 still applies: the child is killed unless it has
    already exited. Only a completed run with a non-zero status triggers the
    webhook alert; spawn failures and timeouts are logged only.
    """
    argv = [command, *args]
    logger.info("[%s] -> Command starting: %s", name, " ".join(shlex.quote(arg) for arg in argv))
    if cwd:
        logger.info("[%s] CWD set to: %s", name, cwd)
    if env:
        logger.info("[%s] Envs set: %s", name, sorted(env.keys()))

    started = time.monotonic()
    try:
        process = subprocess.Popen(
            argv,
            cwd=cwd,
            env=build_env(env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as exc:
        logger.error("[%s] -> Failed to spawn command '%s': %s", name, command, exc)
        return SpawnFailed(error=str(exc))

    if timeout is None:
        logger.info("[%s] Running command (no timeout limit)", name)
    else:
        logger.info("[%s] Running command with timeout: %ss", name, timeout)

    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        logger.error("[%s] -> Command TIMEOUT after %s seconds. Killing process.", name, timeout)
        _kill(process, name)
        return TimedOut(timeout=timeout)

    duration = time.monotonic() - started
    result = Completed(exit_status=process.returncode, stdout=stdout or "", stderr=stderr or "")
    status = describe_exit_status(result.exit_status)

    if result.success:
        logger.info("[%s] -> Command SUCCESS. Status: %s (%.2fs)", name, status, duration)
        if result.stdout.strip():
            logger.info("[%s] -> STDOUT:\n%s", name, result.stdout.strip())
        return result

    logger.error("[%s] -> Command FAILED. Status: %s (%.2fs)", name, status, duration)
    if result.stderr.strip():
        logger.error("[%s] -> STDERR:\n%s", name, result.stderr.strip())
    if webhook_url:
        notify(webhook_url, name, f"Command exited with status: {status}\nStderr: {result.stderr.strip()}")
    return result

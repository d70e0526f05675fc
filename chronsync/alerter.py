"""
Best-effort webhook alerts for failed task runs.
"""

from __future__ import annotations

import json
import logging
from urllib import error as urllib_error
from urllib import request as urllib_request

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


def format_alert(task_name: str, message: str) -> str:
    return f"**Chronsync Task Failed** \n\n**Task:** `{task_name}`\n**Error** {message}"


def notify(webhook_url: str, task_name: str, message: str, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> bool:
    """POST a failure alert; never raises. Returns True on a 2xx response."""
    body = json.dumps({"text": format_alert(task_name, message)}).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    try:
        req = urllib_request.Request(url=webhook_url, data=body, method="POST", headers=headers)
        with urllib_request.urlopen(req, timeout=timeout) as response:
            if 200 <= response.status < 300:
                logger.info("[%s] Webhook alert sent successfully.", task_name)
                return True
            logger.error("[%s] Failed to send webhook. Status: %s", task_name, response.status)
            return False
    except urllib_error.HTTPError as exc:
        logger.error("[%s] Failed to send webhook. Status: %s", task_name, exc.code)
        return False
    except urllib_error.URLError as exc:
        logger.error("[%s] Failed to send webhook: %s", task_name, exc.reason)
        return False
    except OSError as exc:
        logger.error("[%s] Failed to send webhook: %s", task_name, exc)
        return False
    except ValueError as exc:
        logger.error("[%s] Invalid webhook URL %r: %s", task_name, webhook_url, exc)
        return False
    except Exception as exc:  # pragma: no cover - defensive
        logger.error("[%s] Failed to send webhook: %s", task_name, exc)
        return False

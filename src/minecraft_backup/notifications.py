from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import requests

from .config import NotificationsConfig
from .job_engine import JobResult

LOG = logging.getLogger(__name__)


def build_summary(results: Sequence[JobResult]) -> Optional[str]:
    lines: List[str] = []
    for result in results:
        if result.success:
            continue
        details = result.errors or result.warnings
        line = f"Minecraft backup job {result.job_name} {result.status}"
        if details:
            line += ": " + "; ".join(details)
        lines.append(line)
    return "\n".join(lines) if lines else None


def notify_results(config: NotificationsConfig, results: Sequence[JobResult]) -> bool:
    """Post failed and degraded jobs to the configured Slack webhook.

    Returns True when a notification was delivered. Delivery problems are
    logged; they never change the outcome of the run.
    """
    summary = build_summary(results)
    if not summary:
        return False

    webhook = config.resolve_slack_webhook()
    if not webhook:
        if config.slack_webhook_env:
            LOG.debug("Environment variable %s not set; skipping notification", config.slack_webhook_env)
        return False

    try:
        response = requests.post(webhook, json={"text": summary}, timeout=30)
        response.raise_for_status()
    except requests.RequestException as exc:
        LOG.warning("Failed to send Slack notification: %s", exc)
        return False
    return True

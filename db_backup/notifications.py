from typing import Any, Dict, Optional

import requests

from .errors import NotificationError
from .logger import get_logger
from .metrics import NOTIFICATIONS_FAILED_TOTAL
from .schemas import NotificationPayload

logger = get_logger(__name__)


def build_slack_message(payload: NotificationPayload) -> Dict[str, Any]:
    if payload.status == "success":
        title = "Database Backup Completed Successfully"
        duration = f"{payload.duration:.2f}s" if payload.duration is not None else "n/a"
        details = (
            f"• Type: {payload.type}\n"
            f"• Duration: {duration}\n"
            f"• Remote Path: `{payload.remote_path}`"
        )
    else:
        title = "Database Backup Failed"
        details = (
            f"• Type: {payload.type}\n"
            f"• Error: {payload.error}"
        )

    return {
        "text": title,
        "blocks": [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": f"*{title}*\n{details}"},
            }
        ],
    }


class SlackNotifier:
    """Posts backup outcomes to a Slack incoming webhook. Delivery is best-effort."""

    def __init__(self, webhook_url: Optional[str] = None, timeout: float = 10,
                 session: Optional[requests.Session] = None):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def _send(self, message: Dict[str, Any]) -> None:
        try:
            response = self.session.post(self.webhook_url, json=message, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(f"Slack webhook delivery failed: {e}") from e

    def notify(self, payload: NotificationPayload) -> None:
        if not self.enabled:
            return

        try:
            self._send(build_slack_message(payload))
            logger.debug(f"Sent {payload.status} notification to Slack")
        except Exception as e:
            NOTIFICATIONS_FAILED_TOTAL.inc()
            logger.error(f"Failed to send Slack notification: {e}")

from __future__ import annotations

import logging
from typing import Optional

from daybook.providers.slack_client import SlackClient
from daybook.utils.formatting import one_line, truncate


logger = logging.getLogger(__name__)


def render_notification(title: str, body: Optional[str] = None) -> str:
    text = f"⏰ {title or '(untitled reminder)'}"
    if body:
        text += f"\n{truncate(one_line(body), 280)}"
    return text


class ConsoleNotifier:
    """Prints reminders to stdout. Always permitted."""

    def request_permission(self) -> bool:
        return True

    def deliver(self, title: str, body: Optional[str] = None) -> bool:
        print(render_notification(title, body), flush=True)
        return True


class SlackNotifier:
    """Delivers reminders as Slack DMs, falling back to a channel when no user is configured."""

    def __init__(self, slack: SlackClient, user_id: Optional[str] = None, fallback_channel: Optional[str] = None):
        self.slack = slack
        self.user_id = user_id
        self.fallback_channel = fallback_channel

    def request_permission(self) -> bool:
        if not (self.user_id or self.fallback_channel):
            logger.warning("Slack notifier has neither SLACK_USER_ID nor SLACK_FALLBACK_CHANNEL")
            return False
        return self.slack.is_authorized()

    def deliver(self, title: str, body: Optional[str] = None) -> bool:
        text = render_notification(title, body)
        posted = False
        if self.user_id:
            posted = self.slack.post_dm(user_id=self.user_id, text=text)
        if not posted and self.fallback_channel:
            posted = self.slack.post_channel(channel=self.fallback_channel, text=text)
        return posted

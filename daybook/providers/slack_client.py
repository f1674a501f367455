from __future__ import annotations

import logging

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError


logger = logging.getLogger(__name__)


class SlackClient:
    def __init__(self, token: str | None):
        self.token = token
        self.client = WebClient(token=token) if token else None

    def _ensure_dm_channel(self, user_id: str) -> str | None:
        if not self.client:
            return None
        im = self.client.conversations_open(users=[user_id])
        return im["channel"]["id"]

    def is_authorized(self) -> bool:
        if not self.client:
            return False
        try:
            self.client.auth_test()
            return True
        except SlackApiError as e:
            logger.error("Slack auth check failed: %s", e)
            return False

    def post_dm(self, user_id: str, text: str) -> bool:
        if not self.client:
            logger.warning("Slack client not configured")
            return False
        try:
            channel_id = self._ensure_dm_channel(user_id)
            self.client.chat_postMessage(channel=channel_id, text=text)
            return True
        except SlackApiError as e:
            logger.error("Slack DM failed: %s", e)
            return False

    def post_channel(self, channel: str, text: str) -> bool:
        if not self.client:
            logger.warning("Slack client not configured")
            return False
        try:
            self.client.chat_postMessage(channel=channel, text=text)
            return True
        except SlackApiError as e:
            logger.error("Slack channel post failed: %s", e)
            return False

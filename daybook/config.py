from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


load_dotenv()


def _float_or(raw: Optional[str], default: float) -> float:
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    tz: str
    notifier: str

    slack_bot_token: Optional[str]
    slack_user_id: Optional[str]
    slack_fallback_channel: Optional[str]

    scheduler_fallback_seconds: float
    scheduler_max_delay_seconds: float
    log_level: str

    @staticmethod
    def _strip_env(key: str, default: str | None = None) -> str | None:
        """Get env var and strip whitespace/newlines (common issue with CI secrets)."""
        val = os.getenv(key)
        if val is None:
            return default
        stripped = val.strip()
        return stripped if stripped else default

    @staticmethod
    def load() -> "Settings":
        data_dir = Path(Settings._strip_env("DAYBOOK_DATA_DIR") or "~/.daybook").expanduser()
        tz = Settings._strip_env("DAYBOOK_TZ") or "local"
        notifier = (Settings._strip_env("DAYBOOK_NOTIFIER") or "console").lower()
        if notifier not in {"console", "slack"}:
            notifier = "console"

        slack_bot_token = Settings._strip_env("SLACK_BOT_TOKEN")
        slack_user_id = Settings._strip_env("SLACK_USER_ID")
        slack_fallback_channel = Settings._strip_env("SLACK_FALLBACK_CHANNEL")

        fallback = _float_or(Settings._strip_env("SCHEDULER_FALLBACK_SECONDS"), 60.0)
        max_delay = _float_or(Settings._strip_env("SCHEDULER_MAX_DELAY_SECONDS"), 60.0)
        log_level = (Settings._strip_env("LOG_LEVEL") or "INFO").upper()

        return Settings(
            data_dir=data_dir,
            tz=tz,
            notifier=notifier,
            slack_bot_token=slack_bot_token,
            slack_user_id=slack_user_id,
            slack_fallback_channel=slack_fallback_channel,
            scheduler_fallback_seconds=fallback if fallback > 0 else 60.0,
            scheduler_max_delay_seconds=max_delay if max_delay >= 1 else 60.0,
            log_level=log_level,
        )

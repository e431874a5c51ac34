"""Configuration for the claim service, read from environment variables."""

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from .evidence import MAX_ATTACHMENTS


@dataclass(frozen=True)
class Settings:
    """Runtime settings."""
    policy_api_url: str = "http://localhost:3000/personal-accidents"
    telegram_bot_token: str = ""
    receipt_group_id: str = ""
    telegram_api_url: str = "https://api.telegram.org"
    http_timeout: Optional[float] = 30.0
    max_attachments: int = MAX_ATTACHMENTS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Load settings from the environment.

        Environment variables:
        - POLICY_API_URL
        - TELEGRAM_BOT_TOKEN
        - RECEIPT_GROUP_ID
        - TELEGRAM_API_URL
        - HTTP_TIMEOUT (seconds, 0 disables the timeout)
        - MAX_ATTACHMENTS (capped at 10, the size of one audit media group)
        - LOG_LEVEL
        """
        timeout = float(os.environ.get("HTTP_TIMEOUT", "30"))
        return cls(
            policy_api_url=os.environ.get("POLICY_API_URL", cls.policy_api_url).rstrip("/"),
            telegram_bot_token=os.environ.get("TELEGRAM_BOT_TOKEN", ""),
            receipt_group_id=os.environ.get("RECEIPT_GROUP_ID", ""),
            telegram_api_url=os.environ.get("TELEGRAM_API_URL", cls.telegram_api_url).rstrip("/"),
            http_timeout=timeout if timeout > 0 else None,
            max_attachments=min(int(os.environ.get("MAX_ATTACHMENTS", MAX_ATTACHMENTS)), MAX_ATTACHMENTS),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()

"""
Audit Notifier

Sends claim evidence to the audit channel through the Telegram Bot API.
"""
import json
import logging
from typing import Optional, Sequence

import requests

from app.core.errors import AuditNotifierError
from app.core.evidence import MAX_ATTACHMENTS
from app.core.models import Attachment

logger = logging.getLogger(__name__)

# Bot API bounds for sendMediaGroup
MIN_GROUP_SIZE = 2
MAX_GROUP_SIZE = MAX_ATTACHMENTS


class TelegramNotifier:
    """
    Audit channel client.

    Every failure, transport or API, raises AuditNotifierError. Error
    messages never carry the request URL since it embeds the bot token.
    """

    def __init__(
        self,
        bot_token: str,
        api_url: str = "https://api.telegram.org",
        timeout: Optional[float] = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _call(self, method: str, data: dict, files: Optional[dict] = None) -> dict:
        if not self.bot_token:
            raise AuditNotifierError("Audit channel is not configured.")

        url = f"{self.api_url}/bot{self.bot_token}/{method}"
        try:
            response = self.session.post(url, data=data, files=files, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise AuditNotifierError(f"Could not reach the audit channel ({type(e).__name__}).") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok or body.get("ok") is False:
            description = body.get("description") or f"status {response.status_code}"
            logger.error(f"Telegram {method} failed: {description}")
            raise AuditNotifierError(f"Audit channel rejected the message: {description}")

        logger.info(f"Telegram {method} delivered")
        return body

    def send_text(self, channel: str, message: str) -> dict:
        """Send a text-only message."""
        return self._call("sendMessage", {"chat_id": channel, "text": message})

    def send_media_group(
        self, channel: str, attachments: Sequence[Attachment], caption: str
    ) -> dict:
        """
        Send attachments as one grouped message.

        The caption rides on the first item only. A group of one goes out
        as a single photo or document, since the Bot API needs at least
        two items for a media group.
        """
        if not attachments:
            raise ValueError("A media group needs at least one attachment")
        if len(attachments) > MAX_GROUP_SIZE:
            raise ValueError(f"A media group holds at most {MAX_GROUP_SIZE} attachments")

        media_type = "photo" if all(a.is_image for a in attachments) else "document"

        if len(attachments) < MIN_GROUP_SIZE:
            attachment = attachments[0]
            return self._call(
                "sendPhoto" if media_type == "photo" else "sendDocument",
                {"chat_id": channel, "caption": caption},
                files={media_type: (attachment.filename, attachment.content, attachment.content_type)},
            )

        media = []
        files = {}
        for index, attachment in enumerate(attachments):
            attach_name = f"{media_type}{index}"
            files[attach_name] = (attachment.filename, attachment.content, attachment.content_type)
            item = {"type": media_type, "media": f"attach://{attach_name}"}
            if index == 0:
                item["caption"] = caption
            media.append(item)

        return self._call(
            "sendMediaGroup",
            {"chat_id": channel, "media": json.dumps(media)},
            files=files,
        )

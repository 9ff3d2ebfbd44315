from __future__ import annotations

import html
import logging
import re
from dataclasses import dataclass
from datetime import datetime

import requests

from newsrelay.models.errors import PublishError, RateLimited

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/{method}"
DISPLAY_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_RETRY_AFTER_RE = re.compile(r"retry after (\d+)", re.IGNORECASE)


# ---------------------------
# HTML helpers
# ---------------------------

def html_link(label: str, url: str) -> str:
    return f'<a href="{html.escape(url, quote=True)}">{html.escape(label, quote=False)}</a>'


def format_published_at(raw: str | None) -> str:
    """
    RFC 3339 / ISO timestamps become 'YYYY-MM-DD HH:MM:SS' in their own offset.
    Anything unparseable is shown as given.
    """
    if not raw:
        return ""
    text = raw.strip()
    candidate = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    try:
        dt = datetime.fromisoformat(candidate)
    except ValueError:
        return text
    return dt.strftime(DISPLAY_DATE_FORMAT)


def build_footer(published_raw: str | None, url: str, date_label: str, source_label: str) -> str:
    lines = []
    published = format_published_at(published_raw)
    if published:
        lines.append(f"{html.escape(date_label, quote=False)}: {html.escape(published, quote=False)}")
    if url:
        lines.append(html_link(source_label, url))
    return "\n".join(lines)


def parse_retry_after(body: dict, default: int) -> int:
    """retry_after from the response parameters, else from the description text."""
    params = body.get("parameters") or {}
    value = params.get("retry_after") if isinstance(params, dict) else None
    if value is not None:
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            pass
    m = _RETRY_AFTER_RE.search(str(body.get("description") or ""))
    if m:
        return int(m.group(1))
    return default


# ---------------------------
# Sender
# ---------------------------

@dataclass
class ShortPost:
    """One short-form publication: an optional photo followed by a text message."""

    text: str
    image: bytes | None = None
    photo_sent: bool = False
    message_sent: bool = False

    @property
    def delivered(self) -> bool:
        return self.message_sent and (self.image is None or self.photo_sent)


class TelegramPublisher:
    def __init__(
        self,
        token: str,
        chat_id: str,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        default_retry_after: int = 60,
    ) -> None:
        self.token = token
        self.chat_id = chat_id
        self.session = session or requests.Session()
        self.timeout = timeout
        self.default_retry_after = default_retry_after

    def _call(self, method: str, **kwargs) -> dict:
        url = TELEGRAM_API_URL.format(token=self.token, method=method)
        try:
            r = self.session.post(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise PublishError(f"Telegram {method} request failed: {e}") from e

        try:
            body = r.json()
        except ValueError:
            body = {"ok": False, "description": r.text}
        if not isinstance(body, dict):
            body = {"ok": False, "description": str(body)}

        if body.get("ok") is True:
            return body

        description = str(body.get("description") or "")
        if r.status_code == 429 or body.get("error_code") == 429:
            retry_after = parse_retry_after(body, self.default_retry_after)
            logger.warning("Telegram %s rate limited, retry after %ss", method, retry_after)
            raise RateLimited(retry_after, description)

        logger.error("Telegram error on %s: status=%s body=%s", method, r.status_code, body)
        raise PublishError(f"Telegram {method} failed ({r.status_code}): {description}")

    def send_photo(self, image: bytes) -> dict:
        return self._call(
            "sendPhoto",
            data={"chat_id": self.chat_id},
            files={"photo": ("illustration.png", image, "image/png")},
        )

    def send_message(self, text: str) -> dict:
        payload = {
            "chat_id": self.chat_id,
            "text": text,
            "parse_mode": "HTML",
            "disable_web_page_preview": True,
        }
        return self._call("sendMessage", json=payload)

    def publish_short(self, post: ShortPost) -> None:
        """
        Deliver whatever part of `post` has not gone out yet.
        Raises RateLimited or PublishError; parts sent before the error stay marked.
        """
        if post.image is not None and not post.photo_sent:
            self.send_photo(post.image)
            post.photo_sent = True
            logger.info("Photo sent (%d bytes)", len(post.image))
        if not post.message_sent:
            self.send_message(post.text)
            post.message_sent = True
            logger.info("Message sent (%d chars)", len(post.text))

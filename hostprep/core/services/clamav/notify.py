"""
Telegram notifier — sendMessage / sendDocument over the bot HTTP API.

Notification is best effort: a failed send is logged and reported as
False, never raised. A scan result matters more than its delivery.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import urllib.error
import urllib.parse
import urllib.request
import uuid
from pathlib import Path

logger = logging.getLogger(__name__)

API_BASE = "https://api.telegram.org"
_TIMEOUT = 30


def _encode_multipart(fields: dict[str, str], file_field: str, path: Path) -> tuple[bytes, str]:
    """Build a multipart/form-data body. Returns (body, content type)."""
    boundary = uuid.uuid4().hex
    parts: list[bytes] = []
    for name, value in fields.items():
        parts.append(
            f"--{boundary}\r\n"
            f'Content-Disposition: form-data; name="{name}"\r\n\r\n'
            f"{value}\r\n".encode()
        )

    mime = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    parts.append(
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="{file_field}"; filename="{path.name}"\r\n'
        f"Content-Type: {mime}\r\n\r\n".encode()
    )
    parts.append(path.read_bytes())
    parts.append(f"\r\n--{boundary}--\r\n".encode())
    return b"".join(parts), f"multipart/form-data; boundary={boundary}"


class TelegramNotifier:
    """Post messages and files to one chat.

    Args:
        token: Bot token.
        chat_id: Target chat.
        dry_run: Log what would be sent instead of sending.
        api_base: Override for the API host (tests).
    """

    def __init__(
        self,
        token: str,
        chat_id: str,
        dry_run: bool = False,
        api_base: str = API_BASE,
    ):
        self._token = token
        self.chat_id = chat_id
        self.dry_run = dry_run
        self._api_base = api_base.rstrip("/")
        self.sent: list[str] = []

    def _url(self, method: str) -> str:
        return f"{self._api_base}/bot{self._token}/{method}"

    def _post(self, method: str, data: bytes, content_type: str) -> bool:
        req = urllib.request.Request(
            self._url(method),
            data=data,
            headers={"Content-Type": content_type},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=_TIMEOUT) as resp:
                body = resp.read()
        except urllib.error.HTTPError as e:
            logger.warning("Telegram %s failed: HTTP %s", method, e.code)
            return False
        except (urllib.error.URLError, OSError) as e:
            logger.warning("Telegram %s failed: %s", method, e)
            return False

        try:
            payload = json.loads(body or b"{}")
        except json.JSONDecodeError:
            logger.warning("Telegram %s returned a non-JSON body", method)
            return False
        if not payload.get("ok", False):
            logger.warning("Telegram %s rejected: %s", method, payload.get("description", "?"))
            return False
        return True

    def send_message(self, text: str) -> bool:
        """Send an HTML message. True when the API accepted it."""
        if self.dry_run:
            logger.info("[dry-run] would send message:\n%s", text)
            return True

        data = urllib.parse.urlencode(
            {"chat_id": self.chat_id, "text": text, "parse_mode": "HTML"}
        ).encode()
        ok = self._post("sendMessage", data, "application/x-www-form-urlencoded")
        if ok:
            self.sent.append(text)
            logger.info("Telegram notification sent")
        return ok

    def send_document(self, path: Path, caption: str = "") -> bool:
        """Upload ``path`` as a document with an optional caption."""
        if self.dry_run:
            logger.info("[dry-run] would send file %s (%s)", path, caption)
            return True

        try:
            body, content_type = _encode_multipart(
                {"chat_id": self.chat_id, "caption": caption}, "document", path
            )
        except OSError as e:
            logger.warning("Cannot read %s for upload: %s", path, e)
            return False

        ok = self._post("sendDocument", body, content_type)
        if ok:
            logger.info("Telegram file sent: %s", path.name)
        return ok

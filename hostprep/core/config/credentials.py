"""
Notification credentials — the env-style file holding the bot token.

The file lives outside the config (it is a secret) and is read with the
same rules as a ``.env`` file:

    TELEGRAM_BOT_TOKEN=123:abc
    TELEGRAM_CHAT_ID="42"
    export SCAN_DIR=/home
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIALS_FILE = ".clamav-telegram.env"


class CredentialsError(Exception):
    """Raised when notification credentials are missing or incomplete."""


@dataclass(frozen=True)
class Credentials:
    bot_token: str
    chat_id: str
    source: Path
    # Remaining keys (SCAN_DIR, LOG_DIR, ...) for settings overrides
    extra: dict[str, str] = field(default_factory=dict)

    @property
    def masked_token(self) -> str:
        return f"{self.bot_token[:10]}..."


def parse_env_file(content: str) -> dict[str, str]:
    """Parse ``.env`` content into a key/value dict.

    Handles:
    - KEY=value
    - KEY="value" / KEY='value'
    - export KEY=value
    - Comments (#) and trailing ``  # comment`` on unquoted values
    - Empty lines
    """
    result: dict[str, str] = {}

    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        # Strip optional 'export'
        if line.startswith("export "):
            line = line[7:].strip()

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip()
        value = value.strip()

        # Remove surrounding quotes
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            value = value[1:-1]
        elif " #" in value:
            value = value.split(" #", 1)[0].rstrip()

        if key:
            result[key] = value

    return result


def credential_candidates(configured: str | None, home: Path) -> list[Path]:
    """Lookup order: configured path, then ``~/.clamav-telegram.env``."""
    candidates: list[Path] = []
    if configured:
        path = Path(configured).expanduser()
        if not path.is_absolute():
            path = home / path
        candidates.append(path)
    candidates.append(home / DEFAULT_CREDENTIALS_FILE)
    return candidates


def load_credentials(candidates: list[Path]) -> Credentials:
    """Load the first existing credentials file.

    Raises:
        CredentialsError: No file exists, or token / chat id are unset.
    """
    for path in candidates:
        if not path.is_file():
            continue
        try:
            values = parse_env_file(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise CredentialsError(f"Cannot read {path}: {e}") from e

        token = values.pop("TELEGRAM_BOT_TOKEN", "")
        chat_id = values.pop("TELEGRAM_CHAT_ID", "")
        if not token:
            raise CredentialsError(f"TELEGRAM_BOT_TOKEN not set in {path}")
        if not chat_id:
            raise CredentialsError(f"TELEGRAM_CHAT_ID not set in {path}")

        logger.debug("Loaded notification credentials from %s", path)
        return Credentials(bot_token=token, chat_id=chat_id, source=path, extra=values)

    tried = ", ".join(str(p) for p in candidates)
    raise CredentialsError(
        f"Credentials file not found (tried: {tried}). "
        "Create one with TELEGRAM_BOT_TOKEN=... and TELEGRAM_CHAT_ID=..."
    )


def render_env_file(bot_token: str, chat_id: str, scan_dir: str = "/home") -> str:
    """Content for a fresh credentials file (written with mode 0600)."""
    return (
        "# ClamAV notification bot configuration\n"
        "# Keep this file secure - it contains your bot token!\n"
        "\n"
        f"TELEGRAM_BOT_TOKEN={bot_token}\n"
        f"TELEGRAM_CHAT_ID={chat_id}\n"
        f"SCAN_DIR={scan_dir}\n"
        "\n"
        "# Optional: log directory (default: $HOME/.clamav-logs)\n"
        "# LOG_DIR=/var/log/clamav-scans\n"
    )

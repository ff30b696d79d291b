"""Application configuration — reads env vars and exposes a singleton.

Loads TELEGRAM_BOT_TOKEN, ALLOWED_USERS, button expiration, edit debounce,
retry and paging settings from environment variables (with .env support).
.env loading priority: local .env (cwd) > $REACTBUTTONS_DIR/.env (default
~/.reactbuttons).

Only the bot bootstrap imports the module-level `config` instance; the
reaction button and pagination modules take explicit parameters.

Key class: Config (singleton instantiated as `config`).
"""

import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

from dotenv import load_dotenv

from .text_pages import TELEGRAM_MAX_MESSAGE_LENGTH
from .utils import reactbuttons_dir

logger = logging.getLogger(__name__)

N = TypeVar("N", int, float)


def _env_number(name: str, default: N, cast: Callable[[str], N]) -> N:
    """Read a positive number from the environment."""
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = cast(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got {raw!r}") from e
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


class Config:
    """Application configuration loaded from environment variables."""

    def __init__(self) -> None:
        self.config_dir = reactbuttons_dir()
        self.config_dir.mkdir(parents=True, exist_ok=True)

        # Load .env: local (cwd) takes priority over config_dir
        # load_dotenv default override=False means first-loaded wins
        local_env = Path(".env")
        global_env = self.config_dir / ".env"
        if local_env.is_file():
            load_dotenv(local_env)
            logger.debug("Loaded env from %s", local_env.resolve())
        if global_env.is_file():
            load_dotenv(global_env)
            logger.debug("Loaded env from %s", global_env)

        self.telegram_bot_token: str = os.getenv("TELEGRAM_BOT_TOKEN") or ""
        if not self.telegram_bot_token:
            raise ValueError("TELEGRAM_BOT_TOKEN environment variable is required")

        # Empty ALLOWED_USERS means anyone may use the bot
        allowed_users_str = os.getenv("ALLOWED_USERS", "")
        try:
            self.allowed_users: set[int] = {
                int(uid.strip()) for uid in allowed_users_str.split(",") if uid.strip()
            }
        except ValueError as e:
            raise ValueError(
                f"ALLOWED_USERS contains non-numeric value: {e}. "
                "Expected comma-separated Telegram user IDs."
            ) from e

        # Reaction buttons
        self.button_expiration = _env_number(
            "BUTTON_EXPIRATION_SECONDS", 120.0, float
        )
        self.edit_debounce_seconds = _env_number("EDIT_DEBOUNCE_SECONDS", 1.0, float)
        self.retry_attempts = _env_number("RETRY_ATTEMPTS", 3, int)

        # Pagination
        self.page_length = _env_number("PAGE_LENGTH", 1500, int)
        if self.page_length > TELEGRAM_MAX_MESSAGE_LENGTH:
            raise ValueError(
                f"PAGE_LENGTH must be at most {TELEGRAM_MAX_MESSAGE_LENGTH}, "
                f"got {self.page_length}"
            )
        pages_file = os.getenv("PAGES_FILE", "").strip()
        self.pages_file: Path | None = (
            Path(pages_file).expanduser() if pages_file else None
        )

        logger.debug(
            "Config initialized: dir=%s, token=%s..., allowed_users=%d, "
            "expiration=%.1fs, debounce=%.2fs",
            self.config_dir,
            self.telegram_bot_token[:8],
            len(self.allowed_users),
            self.button_expiration,
            self.edit_debounce_seconds,
        )

    def is_user_allowed(self, user_id: int) -> bool:
        """Check if a user may use the bot (everyone when no list is set)."""
        return not self.allowed_users or user_id in self.allowed_users


config = Config()

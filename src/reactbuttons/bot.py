"""Telegram bot handlers — wires reaction buttons into a PTB Application.

Core responsibilities:
  - /pages command: send a paginated message (PAGES_FILE, or a built-in
    sample) whose ⬅/➡ buttons only the caller may press.
  - Button presses and native message reactions are routed to the
    ReactionButtonManager (handlers/reactions.py).
  - Bot lifecycle: post_init installs the ReactionButtonManager and
    PaginationManager in bot_data, post_shutdown cancels live buttons.

Updates are processed concurrently so that presses arriving while an edit
is in flight are coalesced by the page controller's debouncer.

Key function: create_bot().
"""

import logging
import re

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageReactionHandler,
)

from .buttons import ReactionButtonManager, ReactionButtonsContext
from .config import config
from .errors import EmptyContentError, MissingPermissionsError
from .handlers.callback_data import CB_REACTION
from .handlers.reactions import (
    MANAGER_KEY,
    handle_message_reaction,
    handle_reaction_callback,
)
from .pagination import PageController, PaginationManager
from .telegram_transport import TelegramChannel

logger = logging.getLogger(__name__)

PAGINATION_KEY = "pagination_manager"

SAMPLE_PAGES = [
    f"\U0001f4c4 Sample page {n} of 5\n\n"
    "Press ⬅ and ➡ to flip through the pages. Quick presses are merged "
    "into a single edit, and the buttons stop responding after a while."
    for n in range(1, 6)
]


def is_user_allowed(user_id: int | None) -> bool:
    return user_id is not None and config.is_user_allowed(user_id)


def _build_controller() -> PageController:
    """Controller for /pages: PAGES_FILE if configured and readable."""
    options = {
        "edit_interval": config.edit_debounce_seconds,
        "retry_attempts": config.retry_attempts,
    }
    if config.pages_file is not None:
        try:
            text = config.pages_file.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning("Cannot read pages file %s: %s", config.pages_file, e)
        else:
            return PageController.from_text(text, config.page_length, **options)
    return PageController.from_pages(SAMPLE_PAGES, **options)


# --- Command handlers ---


async def pages_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Send a paginated message controlled by the caller's button presses."""
    user = update.effective_user
    chat = update.effective_chat
    message = update.message
    if not user or not chat or not message:
        return
    if not is_user_allowed(user.id):
        await message.reply_text("You are not authorized to use this bot.")
        return

    pagination: PaginationManager = context.bot_data[PAGINATION_KEY]
    channel = await TelegramChannel.from_chat(
        context.bot, chat, message_thread_id=message.message_thread_id
    )
    try:
        await pagination.add(channel, [user.id], _build_controller())
    except MissingPermissionsError:
        await message.reply_text(
            "❌ I need permission to add reactions and read message history here."
        )
    except EmptyContentError:
        await message.reply_text("\U0001f4ed Nothing to show.")


# --- Error reporting ---


def _on_context_error(error: BaseException, context: ReactionButtonsContext) -> None:
    logger.error(
        "Reaction buttons on message %s failed during teardown: %s",
        context.message.message_id,
        error,
    )


async def error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    if isinstance(context.error, TelegramError):
        logger.warning("Telegram error while handling update: %s", context.error)
        return
    logger.error("Unhandled error while handling update", exc_info=context.error)


# --- App lifecycle ---


async def post_init(application: Application) -> None:
    manager = ReactionButtonManager(
        application.bot.id,
        expiration=config.button_expiration,
        retry_attempts=config.retry_attempts,
        on_error=_on_context_error,
    )
    application.bot_data[MANAGER_KEY] = manager
    application.bot_data[PAGINATION_KEY] = PaginationManager(
        manager, expiration=config.button_expiration
    )
    logger.info("Reaction button manager ready (bot id %d)", application.bot.id)


async def post_shutdown(application: Application) -> None:
    manager: ReactionButtonManager | None = application.bot_data.get(MANAGER_KEY)
    if manager is not None:
        await manager.close()
        logger.info("Reaction button manager closed")


def create_bot() -> Application:
    application = (
        Application.builder()
        .token(config.telegram_bot_token)
        .concurrent_updates(True)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )

    application.add_handler(CommandHandler("pages", pages_command))
    application.add_handler(
        CallbackQueryHandler(
            handle_reaction_callback, pattern=f"^{re.escape(CB_REACTION)}"
        )
    )
    application.add_handler(MessageReactionHandler(handle_message_reaction))
    application.add_error_handler(error_handler)

    return application

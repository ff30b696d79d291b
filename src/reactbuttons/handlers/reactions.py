"""Route Telegram updates into the reaction button manager.

Two inbound paths produce reaction events:
  - handle_reaction_callback: an inline keyboard button press
    (callback data ``rb:<symbol>``) is a reaction add.
  - handle_message_reaction: a native message reaction update is diffed
    (old vs new reactions) into reaction adds and removes.

The ReactionButtonManager is looked up in ``bot_data[MANAGER_KEY]``; it is
installed by bot.post_init().
"""

import logging

from telegram import ReactionType, ReactionTypeCustomEmoji, ReactionTypeEmoji, Update
from telegram.ext import ContextTypes

from ..buttons import ReactionButtonManager
from ..transport import MessageRef
from .callback_data import CB_REACTION

logger = logging.getLogger(__name__)

MANAGER_KEY = "reaction_button_manager"


def get_manager(context: ContextTypes.DEFAULT_TYPE) -> ReactionButtonManager | None:
    return context.bot_data.get(MANAGER_KEY)


def _reaction_symbols(reactions: tuple[ReactionType, ...]) -> list[str]:
    symbols: list[str] = []
    for reaction in reactions:
        if isinstance(reaction, ReactionTypeEmoji):
            symbols.append(reaction.emoji)
        elif isinstance(reaction, ReactionTypeCustomEmoji):
            symbols.append(reaction.custom_emoji_id)
    return symbols


async def handle_reaction_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Dispatch a reaction button press to the message's context."""
    query = update.callback_query
    if not query or not query.data or not query.data.startswith(CB_REACTION):
        return

    manager = get_manager(context)
    message = query.message
    if manager is None or message is None:
        await query.answer()
        return

    ref = MessageRef(message.chat.id, message.message_id)
    if ref not in manager:
        await query.answer("These buttons have expired.")
        return

    symbol = query.data[len(CB_REACTION) :]
    try:
        handled = await manager.handle_reaction_add(ref, symbol, query.from_user.id)
        logger.debug(
            "Button %s on message %d by user %d: handled=%s",
            symbol,
            message.message_id,
            query.from_user.id,
            handled,
        )
    finally:
        await query.answer()


async def handle_message_reaction(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Turn a native reaction change into reaction add/remove events."""
    reaction = update.message_reaction
    if reaction is None or reaction.user is None:
        # Anonymous reactions (channel or anonymous admin) cannot be authorized
        return

    manager = get_manager(context)
    if manager is None:
        return

    ref = MessageRef(reaction.chat.id, reaction.message_id)
    if ref not in manager:
        return

    old = _reaction_symbols(reaction.old_reaction)
    new = _reaction_symbols(reaction.new_reaction)
    user_id = reaction.user.id

    for symbol in new:
        if symbol not in old:
            await manager.handle_reaction_add(ref, symbol, user_id)
    for symbol in old:
        if symbol not in new:
            await manager.handle_reaction_remove(ref, symbol, user_id)

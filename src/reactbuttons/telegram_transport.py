"""Telegram implementation of the chat transport contract.

Bots cannot attach several emoji reactions to their own messages, so the
buttons of a ReactionMessage are rendered as a one-row inline keyboard:
each button is labelled with its reaction symbol and carries
``CB_REACTION + symbol`` as callback data. Pressing a button is delivered
as a reaction add (see handlers/reactions.py).

Provides:
  - TelegramChannel: a chat (optionally a forum topic) plus the bot's own
    permissions in it.
  - TelegramReactionMessage: a sent message with its button keyboard.
  - permissions_from_member(): map the bot's ChatMember to Permission flags.
"""

import asyncio
import logging
from typing import Any

from telegram import (
    Bot,
    Chat,
    ChatMember,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    LinkPreviewOptions,
    Message,
)
from telegram.constants import ChatMemberStatus, ChatType
from telegram.error import BadRequest

from .handlers.callback_data import CB_REACTION
from .transport import Permission

logger = logging.getLogger(__name__)

NO_LINK_PREVIEW = LinkPreviewOptions(is_disabled=True)

_NO_PERMISSIONS: frozenset[Permission] = frozenset()
_MEMBER_PERMISSIONS = frozenset(
    {Permission.ADD_REACTIONS, Permission.READ_MESSAGE_HISTORY}
)
_ALL_PERMISSIONS = frozenset(Permission)

_GROUP_CHAT_TYPES = (ChatType.GROUP, ChatType.SUPERGROUP)


def _is_not_modified(exc: BadRequest) -> bool:
    return "message is not modified" in str(exc).lower()


def permissions_from_member(member: ChatMember) -> frozenset[Permission]:
    """Translate the bot's chat membership into Permission flags.

    Removing other users' buttons requires the right to delete messages.
    """
    status = member.status
    if status == ChatMemberStatus.OWNER:
        return _ALL_PERMISSIONS
    if status == ChatMemberStatus.ADMINISTRATOR:
        if getattr(member, "can_delete_messages", False):
            return _ALL_PERMISSIONS
        return _MEMBER_PERMISSIONS
    if status == ChatMemberStatus.MEMBER:
        return _MEMBER_PERMISSIONS
    if status == ChatMemberStatus.RESTRICTED:
        if getattr(member, "can_send_messages", False):
            return _MEMBER_PERMISSIONS
        return _NO_PERMISSIONS
    return _NO_PERMISSIONS


class TelegramChannel:
    """A Telegram chat that paginated messages are sent to."""

    def __init__(
        self,
        bot: Bot,
        chat_id: int,
        *,
        is_group: bool = False,
        permissions: frozenset[Permission] = _NO_PERMISSIONS,
        message_thread_id: int | None = None,
    ) -> None:
        self._bot = bot
        self._chat_id = chat_id
        self._is_group = is_group
        self._permissions = permissions
        self._message_thread_id = message_thread_id

    @classmethod
    async def from_chat(
        cls,
        bot: Bot,
        chat: Chat,
        message_thread_id: int | None = None,
    ) -> "TelegramChannel":
        """Build a channel for ``chat``, looking up the bot's permissions in groups."""
        is_group = chat.type in _GROUP_CHAT_TYPES
        permissions = _NO_PERMISSIONS
        if is_group:
            member = await bot.get_chat_member(chat_id=chat.id, user_id=bot.id)
            permissions = permissions_from_member(member)
            logger.debug(
                "Bot permissions in chat %d (%s): %s",
                chat.id,
                member.status,
                sorted(p.value for p in permissions),
            )
        return cls(
            bot,
            chat.id,
            is_group=is_group,
            permissions=permissions,
            message_thread_id=message_thread_id,
        )

    @property
    def chat_id(self) -> int:
        return self._chat_id

    @property
    def is_group(self) -> bool:
        return self._is_group

    def has_permissions(self, user_id: int, *permissions: Permission) -> bool:
        # Only the bot's own membership is known
        if user_id != self._bot.id:
            return False
        return all(p in self._permissions for p in permissions)

    async def create_message(self, content: Any) -> "TelegramReactionMessage":
        kwargs: dict[str, Any] = {"link_preview_options": NO_LINK_PREVIEW}
        if self._message_thread_id is not None:
            kwargs["message_thread_id"] = self._message_thread_id
        message = await self._bot.send_message(
            chat_id=self._chat_id, text=content, **kwargs
        )
        return TelegramReactionMessage(self._bot, self, message)


class TelegramReactionMessage:
    """A sent message whose reaction buttons live in its inline keyboard."""

    def __init__(self, bot: Bot, channel: TelegramChannel, message: Message) -> None:
        self._bot = bot
        self._channel = channel
        self._message = message
        self._buttons: list[str] = []
        # Markup is built under the lock so the last push carries the latest state
        self._push_lock = asyncio.Lock()

    @property
    def chat_id(self) -> int:
        return self._channel.chat_id

    @property
    def message_id(self) -> int:
        return self._message.message_id

    @property
    def channel(self) -> TelegramChannel:
        return self._channel

    @property
    def buttons(self) -> tuple[str, ...]:
        return tuple(self._buttons)

    def keyboard(self) -> InlineKeyboardMarkup | None:
        if not self._buttons:
            return None
        return InlineKeyboardMarkup(
            [
                [
                    InlineKeyboardButton(symbol, callback_data=f"{CB_REACTION}{symbol}")
                    for symbol in self._buttons
                ]
            ]
        )

    async def _push_keyboard(self) -> None:
        async with self._push_lock:
            try:
                await self._bot.edit_message_reply_markup(
                    chat_id=self.chat_id,
                    message_id=self.message_id,
                    reply_markup=self.keyboard(),
                )
            except BadRequest as e:
                if not _is_not_modified(e):
                    raise

    async def edit(self, content: Any) -> Any:
        try:
            async with self._push_lock:
                result = await self._bot.edit_message_text(
                    text=content,
                    chat_id=self.chat_id,
                    message_id=self.message_id,
                    reply_markup=self.keyboard(),
                    link_preview_options=NO_LINK_PREVIEW,
                )
        except BadRequest as e:
            if _is_not_modified(e):
                return None
            raise
        if isinstance(result, Message):
            self._message = result
        return result

    async def add_reaction(self, symbol: str) -> None:
        if symbol in self._buttons:
            return
        self._buttons.append(symbol)
        try:
            await self._push_keyboard()
        except BaseException:
            self._buttons.remove(symbol)
            raise

    async def remove_reaction(self, symbol: str) -> None:
        if symbol not in self._buttons:
            return
        position = self._buttons.index(symbol)
        del self._buttons[position]
        try:
            await self._push_keyboard()
        except BaseException:
            self._buttons.insert(position, symbol)
            raise

    async def remove_reaction_emoji(self, symbol: str) -> None:
        # The keyboard is shared by every user, so this is the same operation
        await self.remove_reaction(symbol)

    async def remove_all_reactions(self) -> None:
        if not self._buttons:
            return
        previous = self._buttons
        self._buttons = []
        try:
            await self._push_keyboard()
        except BaseException:
            self._buttons = previous
            raise

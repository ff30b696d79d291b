"""Chat transport contract consumed by reaction buttons and pagination.

Pure definitions only — no imports from other reactbuttons modules. Any
chat backend (the bundled Telegram adapter, test fakes) must satisfy the
MessageChannel and ReactionMessage protocols.

Message identity is the (chat_id, message_id) pair; MessageRef carries it
for inbound events that do not come with a full message object.
"""

from collections.abc import Hashable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable


class Permission(Enum):
    """Bot permissions relevant to reaction buttons (group chats only)."""

    ADD_REACTIONS = "add_reactions"
    READ_MESSAGE_HISTORY = "read_message_history"
    MANAGE_MESSAGES = "manage_messages"


@dataclass(frozen=True, slots=True)
class MessageRef:
    """Identity of a message without its content."""

    chat_id: int
    message_id: int


class HasMessageIdentity(Protocol):
    @property
    def chat_id(self) -> int: ...

    @property
    def message_id(self) -> int: ...


def message_key(message: HasMessageIdentity) -> Hashable:
    """Registry key for a message (or anything carrying its identity)."""
    return (message.chat_id, message.message_id)


@runtime_checkable
class MessageChannel(Protocol):
    """A chat that messages can be created in.

    Permissions are only meaningful when ``is_group`` is true; private chats
    always allow adding buttons and never allow removing other users'
    reactions.
    """

    @property
    def chat_id(self) -> int: ...

    @property
    def is_group(self) -> bool: ...

    def has_permissions(self, user_id: int, *permissions: Permission) -> bool:
        """Return True if ``user_id`` holds every one of ``permissions``."""
        ...

    async def create_message(self, content: Any) -> "ReactionMessage":
        """Send a new message and return it."""
        ...


@runtime_checkable
class ReactionMessage(Protocol):
    """A sent message that reaction buttons can be attached to."""

    @property
    def chat_id(self) -> int: ...

    @property
    def message_id(self) -> int: ...

    @property
    def channel(self) -> MessageChannel: ...

    async def edit(self, content: Any) -> Any:
        """Replace the message content."""
        ...

    async def add_reaction(self, symbol: str) -> None:
        """Add the bot's own reaction ``symbol``."""
        ...

    async def remove_reaction(self, symbol: str) -> None:
        """Remove the bot's own reaction ``symbol``."""
        ...

    async def remove_reaction_emoji(self, symbol: str) -> None:
        """Remove every user's reaction ``symbol``."""
        ...

    async def remove_all_reactions(self) -> None:
        """Remove all reactions from the message."""
        ...

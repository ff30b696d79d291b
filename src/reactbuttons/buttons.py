"""Reaction buttons — emoji buttons on a single message routed to handlers.

A ReactionButtonsContext owns one message's button state: the handler table
(reaction symbol -> handler), the allow-list of reacting users, the
enabled/disabled flag and the expiration task. A ReactionButtonManager is
the registry of live contexts keyed by message identity; inbound reaction
events are routed through it.

Context lifecycle:
  INITIALIZING -> ACTIVE <-> DISABLED -> CANCELLED (terminal)

Inbound events are only dispatched while ACTIVE. Cancellation (explicit or
on expiry) stops the expiration task, evicts the context from the registry
and best-effort removes its buttons; it is idempotent.

Handlers are called as ``handler(context, event)`` and may return an
awaitable, which is awaited before the dispatch completes.

Key classes: ReactionButtonManager, ReactionButtonsContext, ReactionEvent.
"""

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Protocol, TypeVar

from .errors import (
    ButtonAlreadyRegisteredError,
    ContextClosedError,
    DuplicateRegistrationError,
    MissingPermissionsError,
)
from .retry import DEFAULT_MAX_ATTEMPTS, retry
from .transport import HasMessageIdentity, Permission, ReactionMessage, message_key

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_EXPIRATION = 120.0  # seconds


class ContextState(Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    DISABLED = "disabled"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class ReactionEvent:
    """A reaction added to or removed from a message with live buttons."""

    message: ReactionMessage
    emoji: str
    user_id: int
    added: bool


ReactionHandler = Callable[["ReactionButtonsContext", ReactionEvent], Any]
ErrorCallback = Callable[[BaseException, "ReactionButtonsContext"], None]


class ContextObserver(Protocol):
    """Registry-side hooks a context reports its lifecycle to."""

    def context_cancelled(self, context: "ReactionButtonsContext") -> None: ...

    async def context_expired(self, context: "ReactionButtonsContext") -> None: ...

    def context_error(
        self, error: BaseException, context: "ReactionButtonsContext"
    ) -> None: ...


class ReactionButtonsContext:
    """Button state for one message.

    Created and registered by ReactionButtonManager.add(); not meant to be
    constructed directly.
    """

    def __init__(
        self,
        self_user_id: int,
        message: ReactionMessage,
        allowed_user_ids: Iterable[int],
        handlers: Mapping[str, ReactionHandler],
        *,
        expiration: float,
        observer: ContextObserver,
        remove_buttons_on_expiry: bool = True,
        retry_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        self._self_user_id = self_user_id
        self._message = message
        self._allowed_user_ids = frozenset(allowed_user_ids)
        self._handlers: dict[str, ReactionHandler] = dict(handlers)
        self._expiration = expiration
        self._observer = observer
        self._remove_buttons_on_expiry = remove_buttons_on_expiry
        self._retry_attempts = retry_attempts

        self._initialized = False
        self._disabled = False
        self._cancelled = False
        self._expiry_task: asyncio.Task[None] | None = None

    # -- read-only state ---------------------------------------------------

    @property
    def message(self) -> ReactionMessage:
        return self._message

    @property
    def state(self) -> ContextState:
        if self._cancelled:
            return ContextState.CANCELLED
        if not self._initialized:
            return ContextState.INITIALIZING
        if self._disabled:
            return ContextState.DISABLED
        return ContextState.ACTIVE

    @property
    def symbols(self) -> tuple[str, ...]:
        """Symbols that currently have a handler."""
        return tuple(self._handlers)

    @property
    def allowed_user_ids(self) -> frozenset[int]:
        return self._allowed_user_ids

    @property
    def expiration(self) -> float:
        return self._expiration

    @property
    def remove_buttons_on_expiry(self) -> bool:
        return self._remove_buttons_on_expiry

    # -- permissions -------------------------------------------------------

    def _can_add_reactions(self) -> bool:
        channel = self._message.channel
        if not channel.is_group:
            return True
        return channel.has_permissions(
            self._self_user_id,
            Permission.ADD_REACTIONS,
            Permission.READ_MESSAGE_HISTORY,
        )

    def _can_remove_other_user_reactions(self) -> bool:
        channel = self._message.channel
        return channel.is_group and channel.has_permissions(
            self._self_user_id, Permission.MANAGE_MESSAGES
        )

    async def _retry(self, operation: Callable[[], Awaitable[T]]) -> T:
        return await retry(operation, self._retry_attempts)

    # -- lifecycle ---------------------------------------------------------

    async def initialize(self) -> None:
        """Add one reaction per handler, then start the expiration timer.

        Raises MissingPermissionsError (before any network call) when the bot
        cannot add reactions in a group chat.
        """
        if self._cancelled:
            raise ContextClosedError("Reaction buttons context has been cancelled.")
        if self._initialized:
            return

        if not self._can_add_reactions():
            raise MissingPermissionsError("Do not have permission to add reactions.")

        for symbol in list(self._handlers):
            await self._retry(partial(self._message.add_reaction, symbol))
            if self._cancelled:
                return

        self._initialized = True
        self._expiry_task = asyncio.create_task(self._expire_after(self._expiration))
        logger.debug(
            "Reaction buttons ready on message %s: %s (expires in %.1fs)",
            self._message.message_id,
            ", ".join(self._handlers),
            self._expiration,
        )

    async def _expire_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        logger.debug("Reaction buttons expired on message %s", self._message.message_id)
        await self._observer.context_expired(self)

    def _close(self) -> None:
        """Synchronous part of cancellation: state, timer, registry."""
        self._cancelled = True
        task = self._expiry_task
        self._expiry_task = None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        self._observer.context_cancelled(self)

    async def cancel(self, remove_buttons: bool = True) -> None:
        """Tear down this context. Safe to call more than once.

        Button removal is best-effort: failures are logged and reported to
        the manager's error callback, never raised.
        """
        if self._cancelled:
            return
        self._close()

        if not remove_buttons:
            self._handlers.clear()
            return

        try:
            await self.remove_all_buttons()
        except Exception as e:
            logger.warning(
                "Failed to remove buttons from message %s: %s",
                self._message.message_id,
                e,
            )
            self._observer.context_error(e, self)

    def enable(self) -> None:
        self._disabled = False

    def disable(self) -> None:
        self._disabled = True

    # -- buttons -----------------------------------------------------------

    async def add_button(self, symbol: str, handler: ReactionHandler) -> None:
        """Add a button and register its handler.

        Raises ButtonAlreadyRegisteredError if ``symbol`` already has a
        handler; remove it with remove_button() first.
        """
        if self._cancelled:
            raise ContextClosedError("Reaction buttons context has been cancelled.")
        if symbol in self._handlers:
            raise ButtonAlreadyRegisteredError(
                f"A handler is already registered for {symbol!r}. "
                "Use remove_button() to remove it."
            )

        # Claim the symbol before suspending so concurrent adds are rejected
        self._handlers[symbol] = handler
        try:
            await self._retry(partial(self._message.add_reaction, symbol))
        except BaseException:
            if self._handlers.get(symbol) is handler:
                del self._handlers[symbol]
            raise

    async def remove_button(self, symbol: str) -> None:
        if self._handlers.pop(symbol, None) is None:
            return

        if self._can_remove_other_user_reactions():
            await self._retry(partial(self._message.remove_reaction_emoji, symbol))
        else:
            await self._retry(partial(self._message.remove_reaction, symbol))

    async def remove_all_buttons(self) -> None:
        symbols = list(self._handlers)
        self._handlers.clear()

        if self._can_remove_other_user_reactions():
            await self._retry(self._message.remove_all_reactions)
        else:
            await asyncio.gather(
                *(
                    self._retry(partial(self._message.remove_reaction, symbol))
                    for symbol in symbols
                )
            )

    # -- dispatch ----------------------------------------------------------

    async def handle_reaction_event(
        self, emoji: str, user_id: int, added: bool
    ) -> bool | None:
        """Dispatch a reaction to its handler.

        Returns None when the event is dropped (context not active, the
        bot's own reaction, or a user outside the allow-list), False when no
        handler is registered for ``emoji``, True once the handler ran.
        """
        if self.state is not ContextState.ACTIVE:
            return None
        if user_id == self._self_user_id:
            return None
        if self._allowed_user_ids and user_id not in self._allowed_user_ids:
            return None

        handler = self._handlers.get(emoji)
        if handler is None:
            return False

        event = ReactionEvent(self._message, emoji, user_id, added)
        result = handler(self, event)
        if inspect.isawaitable(result):
            await result
        return True


class ReactionButtonManager:
    """Registry of reaction button contexts, one per message.

    ``on_error(error, context)`` receives failures that happen outside any
    caller's control, i.e. while tearing down an expired context.
    """

    def __init__(
        self,
        self_user_id: int,
        *,
        expiration: float = DEFAULT_EXPIRATION,
        retry_attempts: int = DEFAULT_MAX_ATTEMPTS,
        on_error: ErrorCallback | None = None,
    ) -> None:
        if not self_user_id:
            raise ValueError("Must pass in the bot's own user ID.")

        self.self_user_id = self_user_id
        self.expiration = expiration
        self._retry_attempts = retry_attempts
        self._on_error = on_error
        self._contexts: dict[Hashable, ReactionButtonsContext] = {}

    def __len__(self) -> int:
        return len(self._contexts)

    def __contains__(self, message: object) -> bool:
        try:
            key = message_key(message)  # type: ignore[arg-type]
        except AttributeError:
            return False
        return key in self._contexts

    def get(self, message: HasMessageIdentity) -> ReactionButtonsContext | None:
        return self._contexts.get(message_key(message))

    async def add(
        self,
        message: ReactionMessage,
        allowed_user_ids: Iterable[int],
        handlers: Mapping[str, ReactionHandler],
        *,
        expiration: float | None = None,
        remove_buttons_on_expiry: bool = True,
    ) -> ReactionButtonsContext:
        """Register buttons on ``message`` and add them.

        The context is registered before its buttons are added, so a
        concurrent add() for the same message fails immediately. If
        initialization fails the context is evicted again before the error
        propagates.
        """
        key = message_key(message)
        if key in self._contexts:
            raise DuplicateRegistrationError(
                "There is already a reaction button handler registered "
                f"for message {message.message_id}."
            )

        context = ReactionButtonsContext(
            self.self_user_id,
            message,
            allowed_user_ids,
            handlers,
            expiration=self.expiration if expiration is None else expiration,
            observer=self,
            remove_buttons_on_expiry=remove_buttons_on_expiry,
            retry_attempts=self._retry_attempts,
        )
        self._contexts[key] = context

        try:
            await context.initialize()
        except MissingPermissionsError:
            context._close()
            raise
        except asyncio.CancelledError:
            context._close()
            raise
        except Exception as e:
            logger.warning(
                "Failed to initialize reaction buttons on message %s: %s",
                message.message_id,
                e,
            )
            await context.cancel()
            raise

        return context

    async def handle_reaction_add(
        self, message: HasMessageIdentity, emoji: str, user_id: int
    ) -> bool | None:
        context = self._contexts.get(message_key(message))
        if context is None:
            return None
        return await context.handle_reaction_event(emoji, user_id, True)

    async def handle_reaction_remove(
        self, message: HasMessageIdentity, emoji: str, user_id: int
    ) -> bool | None:
        context = self._contexts.get(message_key(message))
        if context is None:
            return None
        return await context.handle_reaction_event(emoji, user_id, False)

    async def close(self) -> None:
        """Cancel every registered context (bot shutdown)."""
        contexts = list(self._contexts.values())
        if contexts:
            logger.info("Cancelling %d reaction button contexts", len(contexts))
        await asyncio.gather(*(context.cancel() for context in contexts))

    # -- ContextObserver ---------------------------------------------------

    def context_cancelled(self, context: ReactionButtonsContext) -> None:
        key = message_key(context.message)
        if self._contexts.get(key) is context:
            del self._contexts[key]

    async def context_expired(self, context: ReactionButtonsContext) -> None:
        try:
            await context.cancel(remove_buttons=context.remove_buttons_on_expiry)
        except Exception as e:
            self.context_error(e, context)

    def context_error(
        self, error: BaseException, context: ReactionButtonsContext
    ) -> None:
        logger.warning(
            "Reaction buttons error on message %s: %s",
            context.message.message_id,
            error,
        )
        if self._on_error is None:
            return
        try:
            self._on_error(error, context)
        except Exception:
            logger.exception("Reaction buttons error callback failed")

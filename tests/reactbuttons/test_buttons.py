"""Tests for ReactionButtonManager and ReactionButtonsContext.

Covers registration, permission checks, dispatch filtering, button
add/remove, cancellation and expiry.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, call

import pytest
from fakes import (
    ALL_PERMISSIONS,
    BOT_ID,
    MEMBER_PERMISSIONS,
    OTHER_USER_ID,
    USER_ID,
    make_channel,
    make_message,
)
from telegram.error import BadRequest, Forbidden, RetryAfter

from reactbuttons.buttons import (
    ContextState,
    ReactionButtonManager,
    ReactionEvent,
)
from reactbuttons.errors import (
    ButtonAlreadyRegisteredError,
    ContextClosedError,
    DuplicateRegistrationError,
    MissingPermissionsError,
)
from reactbuttons.transport import MessageRef

LEFT = "⬅"
RIGHT = "➡"


def _handlers() -> dict[str, AsyncMock]:
    return {LEFT: AsyncMock(), RIGHT: AsyncMock()}


def _blocking_add_reaction(message: MagicMock) -> asyncio.Event:
    """Make add_reaction wait until the returned event is set."""
    release = asyncio.Event()

    async def _wait(_symbol: str) -> None:
        await release.wait()

    message.add_reaction.side_effect = _wait
    return release


class TestManagerConstruction:
    def test_requires_self_user_id(self) -> None:
        with pytest.raises(ValueError):
            ReactionButtonManager(0)

    def test_defaults(self) -> None:
        manager = ReactionButtonManager(BOT_ID)
        assert manager.expiration == 120.0
        assert len(manager) == 0


class TestAdd:
    async def test_adds_buttons_in_order(self, manager: ReactionButtonManager) -> None:
        message = make_message()

        context = await manager.add(message, [USER_ID], _handlers())

        assert message.add_reaction.await_args_list == [call(LEFT), call(RIGHT)]
        assert context.state is ContextState.ACTIVE
        assert context.symbols == (LEFT, RIGHT)
        assert message in manager
        assert manager.get(message) is context

    async def test_uses_manager_expiration_by_default(
        self, manager: ReactionButtonManager
    ) -> None:
        context = await manager.add(make_message(), [], _handlers())
        assert context.expiration == 60.0

    async def test_duplicate_registration_rejected(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        first = await manager.add(message, [], _handlers())

        with pytest.raises(DuplicateRegistrationError):
            await manager.add(message, [], _handlers())

        assert manager.get(message) is first
        assert first.state is ContextState.ACTIVE

    async def test_duplicate_rejected_while_initializing(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        release = _blocking_add_reaction(message)
        pending = asyncio.create_task(manager.add(message, [], _handlers()))
        await asyncio.sleep(0)

        with pytest.raises(DuplicateRegistrationError):
            await manager.add(message, [], _handlers())

        release.set()
        context = await pending
        assert context.state is ContextState.ACTIVE

    async def test_events_dropped_while_initializing(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        handlers = _handlers()
        release = _blocking_add_reaction(message)
        pending = asyncio.create_task(manager.add(message, [], handlers))
        await asyncio.sleep(0)

        assert manager.get(message).state is ContextState.INITIALIZING
        assert await manager.handle_reaction_add(message, RIGHT, USER_ID) is None
        handlers[RIGHT].assert_not_called()

        release.set()
        await pending

    async def test_group_without_permissions_fails_before_network(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message(make_channel(is_group=True))

        with pytest.raises(MissingPermissionsError):
            await manager.add(message, [], _handlers())

        message.add_reaction.assert_not_called()
        message.remove_reaction.assert_not_called()
        assert message not in manager

    async def test_group_member_can_add_buttons(
        self, manager: ReactionButtonManager
    ) -> None:
        channel = make_channel(is_group=True, permissions=MEMBER_PERMISSIONS)

        context = await manager.add(make_message(channel), [], _handlers())

        assert context.state is ContextState.ACTIVE

    async def test_private_chat_ignores_permissions(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message(make_channel(is_group=False))

        await manager.add(message, [], _handlers())

        assert message.add_reaction.await_count == 2

    async def test_initialize_failure_evicts_context(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        message.add_reaction.side_effect = [None, BadRequest("Message not found")]

        with pytest.raises(BadRequest):
            await manager.add(message, [], _handlers())

        assert message not in manager
        assert len(manager) == 0

    async def test_transient_failure_retried_during_initialize(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        message.add_reaction.side_effect = [RetryAfter(0), None, None]

        context = await manager.add(message, [], _handlers())

        assert message.add_reaction.await_count == 3
        assert context.state is ContextState.ACTIVE

    async def test_can_register_again_after_cancel(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        first = await manager.add(message, [], _handlers())
        await first.cancel()

        second = await manager.add(message, [], _handlers())

        assert second is not first
        assert manager.get(message) is second


class TestDispatch:
    async def test_handler_receives_context_and_event(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        handlers = _handlers()
        context = await manager.add(message, [], handlers)

        assert await manager.handle_reaction_add(message, RIGHT, USER_ID) is True

        handlers[RIGHT].assert_awaited_once_with(
            context, ReactionEvent(message, RIGHT, USER_ID, True)
        )
        handlers[LEFT].assert_not_called()

    async def test_reaction_remove_is_dispatched(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        handlers = _handlers()
        context = await manager.add(message, [], handlers)

        assert await manager.handle_reaction_remove(message, LEFT, USER_ID) is True

        handlers[LEFT].assert_awaited_once_with(
            context, ReactionEvent(message, LEFT, USER_ID, False)
        )

    async def test_sync_handler(self, manager: ReactionButtonManager) -> None:
        message = make_message()
        handler = MagicMock(return_value=None)
        await manager.add(message, [], {RIGHT: handler})

        assert await manager.handle_reaction_add(message, RIGHT, USER_ID) is True
        handler.assert_called_once()

    async def test_lookup_by_message_ref(self, manager: ReactionButtonManager) -> None:
        message = make_message()
        handlers = _handlers()
        await manager.add(message, [], handlers)
        ref = MessageRef(message.chat_id, message.message_id)

        assert ref in manager
        assert await manager.handle_reaction_add(ref, RIGHT, USER_ID) is True
        handlers[RIGHT].assert_awaited_once()

    async def test_unknown_symbol(self, manager: ReactionButtonManager) -> None:
        message = make_message()
        await manager.add(message, [], _handlers())

        result = await manager.handle_reaction_add(message, "\U0001f44d", USER_ID)
        assert result is False

    async def test_unregistered_message(self, manager: ReactionButtonManager) -> None:
        assert await manager.handle_reaction_add(make_message(), RIGHT, USER_ID) is None

    async def test_non_message_is_not_contained(
        self, manager: ReactionButtonManager
    ) -> None:
        assert "not a message" not in manager

    async def test_own_reactions_ignored(self, manager: ReactionButtonManager) -> None:
        message = make_message()
        handlers = _handlers()
        await manager.add(message, [], handlers)

        assert await manager.handle_reaction_add(message, RIGHT, BOT_ID) is None
        handlers[RIGHT].assert_not_called()

    async def test_allow_list(self, manager: ReactionButtonManager) -> None:
        message = make_message()
        handlers = _handlers()
        await manager.add(message, [USER_ID], handlers)

        assert await manager.handle_reaction_add(message, RIGHT, OTHER_USER_ID) is None
        handlers[RIGHT].assert_not_called()

        assert await manager.handle_reaction_add(message, RIGHT, USER_ID) is True
        handlers[RIGHT].assert_awaited_once()

    async def test_empty_allow_list_accepts_anyone(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        await manager.add(message, [], _handlers())

        assert await manager.handle_reaction_add(message, RIGHT, OTHER_USER_ID) is True

    async def test_disable_and_enable(self, manager: ReactionButtonManager) -> None:
        message = make_message()
        handlers = _handlers()
        context = await manager.add(message, [], handlers)

        context.disable()
        assert context.state is ContextState.DISABLED
        assert await manager.handle_reaction_add(message, RIGHT, USER_ID) is None
        handlers[RIGHT].assert_not_called()

        context.enable()
        assert context.state is ContextState.ACTIVE
        assert await manager.handle_reaction_add(message, RIGHT, USER_ID) is True

    async def test_handler_error_propagates(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        await manager.add(message, [], {RIGHT: AsyncMock(side_effect=KeyError("x"))})

        with pytest.raises(KeyError):
            await manager.handle_reaction_add(message, RIGHT, USER_ID)


class TestButtons:
    async def test_add_button(self, manager: ReactionButtonManager) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers())
        handler = AsyncMock()

        await context.add_button("\U0001f504", handler)

        message.add_reaction.assert_awaited_with("\U0001f504")
        assert context.symbols == (LEFT, RIGHT, "\U0001f504")
        assert await manager.handle_reaction_add(message, "\U0001f504", USER_ID)
        handler.assert_awaited_once()

    async def test_add_button_twice_rejected(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers())

        with pytest.raises(ButtonAlreadyRegisteredError):
            await context.add_button(RIGHT, AsyncMock())

        assert message.add_reaction.await_count == 2

    async def test_failed_add_button_releases_symbol(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers())
        message.add_reaction.side_effect = BadRequest("Reaction_invalid")

        with pytest.raises(BadRequest):
            await context.add_button("\U0001f504", AsyncMock())

        assert "\U0001f504" not in context.symbols

    async def test_add_button_after_cancel(
        self, manager: ReactionButtonManager
    ) -> None:
        context = await manager.add(make_message(), [], _handlers())
        await context.cancel()

        with pytest.raises(ContextClosedError):
            await context.add_button("\U0001f504", AsyncMock())

    async def test_remove_button_removes_own_reaction(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers())

        await context.remove_button(LEFT)

        message.remove_reaction.assert_awaited_once_with(LEFT)
        message.remove_reaction_emoji.assert_not_called()
        assert context.symbols == (RIGHT,)
        assert await manager.handle_reaction_add(message, LEFT, USER_ID) is False

    async def test_remove_button_with_manage_permission(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message(make_channel(is_group=True, permissions=ALL_PERMISSIONS))
        context = await manager.add(message, [], _handlers())

        await context.remove_button(LEFT)

        message.remove_reaction_emoji.assert_awaited_once_with(LEFT)
        message.remove_reaction.assert_not_called()

    async def test_remove_unknown_button_is_noop(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers())

        await context.remove_button("\U0001f44d")

        message.remove_reaction.assert_not_called()

    async def test_remove_all_buttons_one_by_one(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers())

        await context.remove_all_buttons()

        removed = [c.args[0] for c in message.remove_reaction.await_args_list]
        assert sorted(removed) == sorted([LEFT, RIGHT])
        message.remove_all_reactions.assert_not_called()
        assert context.symbols == ()

    async def test_remove_all_buttons_with_manage_permission(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message(make_channel(is_group=True, permissions=ALL_PERMISSIONS))
        context = await manager.add(message, [], _handlers())

        await context.remove_all_buttons()

        message.remove_all_reactions.assert_awaited_once()
        message.remove_reaction.assert_not_called()


class TestCancel:
    async def test_cancel_evicts_and_removes_buttons(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers())

        await context.cancel()

        assert context.state is ContextState.CANCELLED
        assert message not in manager
        assert message.remove_reaction.await_count == 2
        assert await manager.handle_reaction_add(message, RIGHT, USER_ID) is None

    async def test_cancel_is_idempotent(self, manager: ReactionButtonManager) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers())

        await context.cancel()
        await context.cancel()

        assert message.remove_reaction.await_count == 2

    async def test_cancel_without_removing_buttons(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers())

        await context.cancel(remove_buttons=False)

        message.remove_reaction.assert_not_called()
        message.remove_all_reactions.assert_not_called()
        assert context.symbols == ()
        assert message not in manager

    async def test_removal_failure_reported_not_raised(
        self, manager: ReactionButtonManager, on_error: MagicMock
    ) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers())
        message.remove_reaction.side_effect = Forbidden("bot was kicked")

        await context.cancel()

        assert context.state is ContextState.CANCELLED
        on_error.assert_called_once()
        error, reported = on_error.call_args.args
        assert isinstance(error, Forbidden)
        assert reported is context

    async def test_failing_error_callback_is_contained(self) -> None:
        manager = ReactionButtonManager(
            BOT_ID, on_error=MagicMock(side_effect=RuntimeError("callback bug"))
        )
        message = make_message()
        context = await manager.add(message, [], _handlers())
        message.remove_reaction.side_effect = Forbidden("bot was kicked")

        await context.cancel()

        assert context.state is ContextState.CANCELLED

    async def test_close_cancels_every_context(
        self, manager: ReactionButtonManager
    ) -> None:
        contexts = [
            await manager.add(make_message(), [], _handlers()) for _ in range(3)
        ]

        await manager.close()

        assert len(manager) == 0
        assert all(c.state is ContextState.CANCELLED for c in contexts)

    async def test_initialize_after_cancel(
        self, manager: ReactionButtonManager
    ) -> None:
        context = await manager.add(make_message(), [], _handlers())
        await context.cancel()

        with pytest.raises(ContextClosedError):
            await context.initialize()


class TestExpiration:
    async def test_expired_context_is_evicted(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        handlers = _handlers()
        context = await manager.add(message, [USER_ID], handlers, expiration=0.1)

        assert await manager.handle_reaction_add(message, RIGHT, USER_ID) is True
        handlers[RIGHT].assert_awaited_once()

        await asyncio.sleep(0.2)

        assert message not in manager
        assert context.state is ContextState.CANCELLED
        assert message.remove_reaction.await_count == 2
        assert await manager.handle_reaction_add(message, RIGHT, USER_ID) is None

    async def test_expiry_can_keep_buttons(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        context = await manager.add(
            message, [], _handlers(), expiration=0.05, remove_buttons_on_expiry=False
        )

        await asyncio.sleep(0.1)

        assert context.state is ContextState.CANCELLED
        message.remove_reaction.assert_not_called()

    async def test_cancel_stops_expiry(self, manager: ReactionButtonManager) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers(), expiration=0.05)

        await context.cancel()
        await asyncio.sleep(0.1)

        assert message.remove_reaction.await_count == 2

    async def test_cancel_after_expiry_is_noop(
        self, manager: ReactionButtonManager
    ) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers(), expiration=0.05)
        await asyncio.sleep(0.1)

        await context.cancel()

        assert message.remove_reaction.await_count == 2

    async def test_expiry_failure_goes_to_error_callback(
        self, manager: ReactionButtonManager, on_error: MagicMock
    ) -> None:
        message = make_message()
        context = await manager.add(message, [], _handlers(), expiration=0.05)
        message.remove_reaction.side_effect = BadRequest("Message not found")

        await asyncio.sleep(0.1)

        assert context.state is ContextState.CANCELLED
        on_error.assert_called_once()
        assert on_error.call_args.args[1] is context

"""Shared fixtures for reactbuttons unit tests.

Fake transport factories live in fakes.py so test modules can import the
identity constants (BOT_ID, USER_ID, ...) alongside them.
"""

from unittest.mock import MagicMock

import pytest

from fakes import BOT_ID

from reactbuttons.buttons import ReactionButtonManager


@pytest.fixture
def on_error() -> MagicMock:
    return MagicMock()


@pytest.fixture
async def manager(on_error: MagicMock):
    """Manager with a long expiration; cancels leftover contexts on teardown."""
    manager = ReactionButtonManager(BOT_ID, expiration=60.0, on_error=on_error)
    yield manager
    await manager.close()

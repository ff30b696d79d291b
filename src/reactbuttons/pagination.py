"""Reaction-button pagination over cached, lazily fetched pages.

A PageController renders content from one or more *tracks*. Each track is
selected by its own emoji button and backed by a PageSource whose
get_page(index) returns the page content, None past the last page, or an
awaitable of either. Pages are cached per track; the last valid index of a
track is discovered lazily the first time a request runs past it.

Navigation (⬅/➡ and track buttons) is registered through a
ReactionButtonManager. Edits go through a Debouncer so a burst of button
presses collapses into at most two message edits per quiet window, and an
edit is skipped entirely when the message already shows the requested page.

Key classes: PageController, PaginationManager, SequencePageSource.
"""

import asyncio
import inspect
import logging
import sys
from collections.abc import Iterable, Mapping, Sequence
from functools import partial
from typing import Any, Protocol

from .buttons import (
    DEFAULT_EXPIRATION,
    ReactionButtonManager,
    ReactionButtonsContext,
    ReactionEvent,
    ReactionHandler,
)
from .debounce import DEBOUNCE_INTERVAL, Debouncer
from .errors import EmptyContentError
from .retry import DEFAULT_MAX_ATTEMPTS, retry
from .text_pages import DEFAULT_PAGE_LENGTH, split_pages
from .transport import MessageChannel, ReactionMessage

logger = logging.getLogger(__name__)

LEFT_BUTTON = "\u2b05"  # ⬅
RIGHT_BUTTON = "\u27a1"  # ➡

# Track symbol used for single-track content
SINGLE_TRACK = ""

# Max page of a track whose end has not been discovered yet
UNBOUNDED = sys.maxsize


class PageSource(Protocol):
    def get_page(self, index: int) -> Any:
        """Return page ``index``, None past the end, or an awaitable of either."""
        ...


class SequencePageSource:
    """Page source backed by an in-memory sequence."""

    def __init__(self, pages: Sequence[Any]) -> None:
        self._pages = pages

    def get_page(self, index: int) -> Any:
        if 0 <= index < len(self._pages):
            return self._pages[index]
        return None


async def _fetch(source: PageSource, index: int) -> Any:
    page = source.get_page(index)
    if inspect.isawaitable(page):
        page = await page
    return page


class PageController:
    """Pagination state for one message."""

    def __init__(
        self,
        page_sources: Mapping[str, PageSource],
        *,
        show_arrows: bool = True,
        edit_interval: float = DEBOUNCE_INTERVAL,
        retry_attempts: int = DEFAULT_MAX_ATTEMPTS,
    ) -> None:
        if not page_sources:
            raise ValueError("At least one page source is required.")
        if show_arrows and len(page_sources) > 1:
            clash = {LEFT_BUTTON, RIGHT_BUTTON} & set(page_sources)
            if clash:
                raise ValueError(
                    f"Track symbols clash with the arrow buttons: {sorted(clash)}"
                )

        self._page_sources: dict[str, PageSource] = dict(page_sources)
        self._page_cache: dict[str, dict[int, Any]] = {
            track: {} for track in self._page_sources
        }
        self._max_page: dict[str, int] = {
            track: UNBOUNDED for track in self._page_sources
        }
        self._current_track = next(iter(self._page_sources))
        self._current_page = 0
        self._last_sent_track = self._current_track
        self._last_sent_page = 0
        self._show_arrows = show_arrows
        self._retry_attempts = retry_attempts
        self._message: ReactionMessage | None = None
        self._context: ReactionButtonsContext | None = None
        # Held across retries so a slow edit never lands after a newer one
        self._edit_lock = asyncio.Lock()
        self._edit_debouncer = Debouncer(self._edit_with_current_state, edit_interval)

    @classmethod
    def from_pages(cls, pages: Sequence[Any], **kwargs: Any) -> "PageController":
        """Single-track controller over a list of page contents."""
        return cls({SINGLE_TRACK: SequencePageSource(pages)}, **kwargs)

    @classmethod
    def from_text(
        cls, text: str, max_length: int = DEFAULT_PAGE_LENGTH, **kwargs: Any
    ) -> "PageController":
        """Single-track controller over a long text split into pages."""
        return cls.from_pages(split_pages(text, max_length), **kwargs)

    # -- read-only state ---------------------------------------------------

    @property
    def tracks(self) -> tuple[str, ...]:
        return tuple(self._page_sources)

    @property
    def current_track(self) -> str:
        return self._current_track

    @property
    def current_page(self) -> int:
        return self._current_page

    @property
    def message(self) -> ReactionMessage | None:
        return self._message

    @property
    def context(self) -> ReactionButtonsContext | None:
        return self._context

    def max_page(self, track: str | None = None) -> int:
        """Largest valid page index known for ``track`` (UNBOUNDED if unknown)."""
        return self._max_page[self._current_track if track is None else track]

    # -- page resolution ---------------------------------------------------

    async def coerce_and_cache_page(self, index: int, track: str | None = None) -> int:
        """Clamp ``index`` to a valid page of ``track`` and make sure it is cached.

        Requests past the end walk backwards to the last page with content
        and tighten the track's max page to it. Raises EmptyContentError if
        the track has no first page.
        """
        if track is None:
            track = self._current_track
        cache = self._page_cache[track]
        index = max(0, min(index, self._max_page[track]))

        if index in cache:
            return index

        source = self._page_sources[track]
        page = await _fetch(source, index)
        while not page and index > 0:
            index -= 1
            if index in cache:
                self._max_page[track] = index
                return index
            page = await _fetch(source, index)
            if page:
                self._max_page[track] = index
                logger.debug("Track %r ends at page %d", track, index)

        if not page:
            raise EmptyContentError(f"Failed to get the first page of track {track!r}.")

        cache[index] = page
        return index

    def _current_content(self) -> Any:
        return self._page_cache[self._current_track][self._current_page]

    # -- navigation --------------------------------------------------------

    async def move_page(self, distance: int) -> Any:
        """Move ``distance`` pages within the current track.

        Does nothing at a bound; otherwise schedules a debounced edit.
        """
        track = self._current_track
        new_page = await self.coerce_and_cache_page(self._current_page + distance)
        # A track switch while fetching makes this move stale
        if track != self._current_track or new_page == self._current_page:
            return None

        self._current_page = new_page
        return await self._edit_debouncer.exec()

    async def move_track(self, symbol: str) -> Any:
        """Switch to the first page of another track."""
        if symbol not in self._page_sources:
            raise KeyError(symbol)
        if symbol == self._current_track:
            return None

        first_page = await self.coerce_and_cache_page(0, track=symbol)
        self._current_track = symbol
        self._current_page = first_page
        return await self._edit_debouncer.exec()

    async def _edit_with_current_state(self) -> Any:
        message = self._message
        if message is None:
            raise RuntimeError("PageController has not been initialized.")

        async with self._edit_lock:
            if (
                self._current_track == self._last_sent_track
                and self._current_page == self._last_sent_page
            ):
                return None

            previous = (self._last_sent_track, self._last_sent_page)
            try:
                return await retry(
                    partial(self._send_current_state, message), self._retry_attempts
                )
            except Exception:
                self._last_sent_track, self._last_sent_page = previous
                raise

    async def _send_current_state(self, message: ReactionMessage) -> Any:
        # Every attempt sends whatever is current by then
        track, page = self._current_track, self._current_page
        self._last_sent_track, self._last_sent_page = track, page
        logger.debug(
            "Editing message %s to track %r page %d", message.message_id, track, page
        )
        return await message.edit(self._current_content())

    # -- setup -------------------------------------------------------------

    def _on_page_button(
        self, distance: int, _context: ReactionButtonsContext, _event: ReactionEvent
    ) -> Any:
        return self.move_page(distance)

    def _on_track_button(
        self, symbol: str, _context: ReactionButtonsContext, _event: ReactionEvent
    ) -> Any:
        return self.move_track(symbol)

    def _button_handlers(self) -> dict[str, ReactionHandler]:
        handlers: dict[str, ReactionHandler] = {}

        if len(self._page_sources) > 1:
            for symbol in self._page_sources:
                handlers[symbol] = partial(self._on_track_button, symbol)

        if self._show_arrows:
            handlers[LEFT_BUTTON] = partial(self._on_page_button, -1)
            handlers[RIGHT_BUTTON] = partial(self._on_page_button, 1)

        return handlers

    async def initialize(
        self,
        channel: MessageChannel,
        allowed_user_ids: Iterable[int],
        expiration: float,
        manager: ReactionButtonManager,
        *,
        remove_buttons_on_expiry: bool = True,
    ) -> ReactionMessage:
        """Send the first page and register the navigation buttons."""
        if self._message is not None:
            raise RuntimeError("PageController is already initialized.")

        self._current_page = await self.coerce_and_cache_page(self._current_page)
        first_page = self._current_content()

        self._message = await retry(
            partial(channel.create_message, first_page), self._retry_attempts
        )
        self._last_sent_track = self._current_track
        self._last_sent_page = self._current_page

        self._context = await manager.add(
            self._message,
            allowed_user_ids,
            self._button_handlers(),
            expiration=expiration,
            remove_buttons_on_expiry=remove_buttons_on_expiry,
        )
        return self._message


class PaginationManager:
    """Attach PageControllers to new messages in a channel."""

    def __init__(
        self,
        reaction_button_manager: ReactionButtonManager,
        *,
        expiration: float = DEFAULT_EXPIRATION,
    ) -> None:
        self._reaction_button_manager = reaction_button_manager
        self._expiration = expiration

    async def add(
        self,
        channel: MessageChannel,
        allowed_user_ids: Iterable[int],
        controller: PageController,
        *,
        expiration: float | None = None,
        remove_buttons_on_expiry: bool = True,
    ) -> ReactionMessage:
        if expiration is None:
            expiration = self._expiration
        return await controller.initialize(
            channel,
            allowed_user_ids,
            expiration,
            self._reaction_button_manager,
            remove_buttons_on_expiry=remove_buttons_on_expiry,
        )

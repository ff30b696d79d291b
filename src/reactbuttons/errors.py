"""Error taxonomy for reaction buttons and pagination.

All library errors derive from ReactionButtonsError and additionally from
the closest builtin exception, so callers can catch either.

Transport errors: PermanentTransportError is never retried by
``retry.retry()``; TransientTransportError (and any other non-permanent
error) is.
"""


class ReactionButtonsError(Exception):
    """Base class for all reactbuttons errors."""


class DuplicateRegistrationError(ReactionButtonsError):
    """A context is already registered for that message."""


class MissingPermissionsError(ReactionButtonsError, PermissionError):
    """The bot lacks the permissions needed to add buttons in a group chat."""


class ButtonAlreadyRegisteredError(ReactionButtonsError, ValueError):
    """A handler is already registered for that button symbol."""


class ContextClosedError(ReactionButtonsError, RuntimeError):
    """The reaction buttons context has already been cancelled."""


class EmptyContentError(ReactionButtonsError, LookupError):
    """A page source produced no content, not even for the first page."""


class PermanentTransportError(ReactionButtonsError):
    """Transport failure that will never succeed on retry."""


class TransientTransportError(ReactionButtonsError):
    """Transport failure that may succeed on retry (network, rate limit)."""

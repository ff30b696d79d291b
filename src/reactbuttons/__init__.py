"""reactbuttons - emoji reaction buttons and pagination for chat messages.

Package entry point. Exports the version string only; import the
functional modules (buttons, pagination, telegram_transport) directly.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("reactbuttons")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

"""Shared utility functions used by the bot bootstrap.

Provides:
  - reactbuttons_dir(): resolve config directory from REACTBUTTONS_DIR env var.
"""

import os
from pathlib import Path

REACTBUTTONS_DIR_ENV = "REACTBUTTONS_DIR"


def reactbuttons_dir() -> Path:
    """Resolve config directory from REACTBUTTONS_DIR or default ~/.reactbuttons."""
    raw = os.environ.get(REACTBUTTONS_DIR_ENV, "")
    return Path(raw) if raw else Path.home() / ".reactbuttons"

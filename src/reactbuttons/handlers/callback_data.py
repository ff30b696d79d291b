"""Callback data constants for reaction button inline keyboards.

Each button's callback data is CB_REACTION followed by the button's
reaction symbol, e.g. ``rb:➡``. Telegram caps callback data at 64 bytes,
which any single emoji symbol fits comfortably.
"""

CB_REACTION = "rb:"  # rb:<symbol>

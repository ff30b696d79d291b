"""Click-based CLI for reactbuttons.

Defines the top-level command group and the ``run`` subcommand with the
bot-configuration flags.  Precedence: CLI flag > env var > .env > default.
``apply_args_to_env()`` sets os.environ for explicitly provided flags so
Config reads the overridden values.
"""

import os
from pathlib import Path

import click

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _validate_positive_float(
    _ctx: click.Context, _param: click.Parameter, value: float | None
) -> float | None:
    if value is not None and value <= 0:
        raise click.BadParameter("must be positive")
    return value


def _validate_positive_int(
    _ctx: click.Context, _param: click.Parameter, value: int | None
) -> int | None:
    if value is not None and value <= 0:
        raise click.BadParameter("must be positive")
    return value


class _DefaultToRun(click.Group):
    """Click group that runs the ``run`` command when invoked without a subcommand."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        # If the first arg is not a known command and not --help/--version,
        # prepend "run" so flags like -v go to the run command.
        if args and args[0] not in self.commands and not args[0].startswith("--"):
            args = ["run", *args]
        return super().parse_args(ctx, args)


@click.group(
    cls=_DefaultToRun,
    invoke_without_command=True,
    help="Telegram bot serving paginated messages driven by emoji buttons.",
)
@click.version_option(package_name="reactbuttons", prog_name="reactbuttons")
@click.pass_context
def cli(ctx: click.Context) -> None:
    if ctx.invoked_subcommand is None:
        ctx.invoke(run_cmd)


# --- run command -----------------------------------------------------------

# Mapping: click option name → environment variable name
_FLAG_TO_ENV: list[tuple[str, str]] = [
    ("config_dir", "REACTBUTTONS_DIR"),
    ("allowed_users", "ALLOWED_USERS"),
    ("expiration", "BUTTON_EXPIRATION_SECONDS"),
    ("debounce", "EDIT_DEBOUNCE_SECONDS"),
    ("page_length", "PAGE_LENGTH"),
    ("pages_file", "PAGES_FILE"),
]


def apply_args_to_env(**kwargs: object) -> None:
    """Set environment variables from explicitly provided CLI flags.

    Call BEFORE Config instantiation to ensure CLI flags take precedence.
    Only sets env vars for flags that were explicitly provided (not None).
    """
    verbose = kwargs.get("verbose", False)
    log_level = kwargs.get("log_level")

    if verbose:
        os.environ["REACTBUTTONS_LOG_LEVEL"] = "DEBUG"
    elif log_level is not None:
        os.environ["REACTBUTTONS_LOG_LEVEL"] = str(log_level).upper()

    for attr, env_var in _FLAG_TO_ENV:
        value = kwargs.get(attr)
        if value is None:
            continue
        if isinstance(value, Path):
            os.environ[env_var] = str(value.expanduser().resolve())
        else:
            os.environ[env_var] = str(value)


@cli.command("run")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option(
    "--log-level",
    type=click.Choice(_LOG_LEVELS, case_sensitive=False),
    default=None,
    help="Logging level.",
)
@click.option(
    "--config-dir",
    type=click.Path(path_type=Path),
    default=None,
    envvar="REACTBUTTONS_DIR",
    help="Config directory (default: ~/.reactbuttons).",
)
@click.option(
    "--allowed-users",
    default=None,
    envvar="ALLOWED_USERS",
    help="Comma-separated Telegram user IDs (default: anyone).",
)
@click.option(
    "--expiration",
    type=float,
    default=None,
    callback=_validate_positive_float,
    envvar="BUTTON_EXPIRATION_SECONDS",
    help="Seconds before buttons stop responding (default: 120).",
)
@click.option(
    "--debounce",
    type=float,
    default=None,
    callback=_validate_positive_float,
    envvar="EDIT_DEBOUNCE_SECONDS",
    help="Quiet window for coalescing page edits in seconds (default: 1.0).",
)
@click.option(
    "--page-length",
    type=int,
    default=None,
    callback=_validate_positive_int,
    envvar="PAGE_LENGTH",
    help="Maximum characters per page (default: 1500).",
)
@click.option(
    "--pages-file",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    envvar="PAGES_FILE",
    help="Text file served by /pages (default: built-in sample).",
)
def run_cmd(**kwargs: object) -> None:
    """Start the bot with optional overrides."""
    apply_args_to_env(**kwargs)

    from .main import run_bot

    run_bot()

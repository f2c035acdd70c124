"""Command-line entrypoint (Typer-based).

``tiko2mqtt`` takes no subcommands: it loads :class:`Settings` from the
environment and an optional ``.env`` file, applies the logging
overrides given on the command line, and runs the bridge until it is
stopped.

Exit codes:

- ``0`` — clean shutdown
- ``1`` — configuration error (invalid or missing settings)
- ``2`` — startup error (login failed, no usable property)
- ``3`` — unexpected runtime error
"""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, get_args

import typer
from pydantic import ValidationError

from tiko2mqtt._errors import TikoError
from tiko2mqtt._settings import LoggingSettings

if TYPE_CHECKING:
    from tiko2mqtt._app import App
    from tiko2mqtt._settings import Settings

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_STARTUP_ERROR = 2
EXIT_RUNTIME_ERROR = 3

# Choices mirror the Literal types of LoggingSettings.
LogLevel = StrEnum(
    "LogLevel",
    {v: v for v in get_args(LoggingSettings.model_fields["level"].annotation)},
)
LogFormat = StrEnum(
    "LogFormat",
    {v: v for v in get_args(LoggingSettings.model_fields["format"].annotation)},
)


def load_settings(
    app: App,
    env_file: str,
    *,
    log_level: StrEnum | None = None,
    log_format: StrEnum | None = None,
) -> Settings:
    """Load the app's settings from *env_file* and apply CLI overrides.

    Raises:
        ValidationError: If the account or any other setting is invalid.
    """
    settings: Settings = app._settings_class(_env_file=env_file)  # type: ignore[call-arg]
    overrides: dict[str, str] = {}
    if log_level is not None:
        overrides["level"] = log_level.value
    if log_format is not None:
        overrides["format"] = log_format.value
    if overrides:
        settings.logging = settings.logging.model_copy(update=overrides)
    return settings


def exit_code_for(error: Exception) -> int:
    """Map an error that ended the bridge to its process exit code."""
    if isinstance(error, TikoError):
        return EXIT_STARTUP_ERROR
    return EXIT_RUNTIME_ERROR


def build_cli(app: App) -> typer.Typer:
    """Construct the Typer CLI that runs *app*."""
    cli = typer.Typer(help=f"{app._name} v{app._version} — {app._description}")

    @cli.callback(invoke_without_command=True)
    def main(
        version_flag: Annotated[
            bool | None,
            typer.Option("--version", is_eager=True, help="Show version and exit."),
        ] = None,
        log_level: Annotated[
            LogLevel | None,
            typer.Option("--log-level", case_sensitive=False, help="Override log level."),
        ] = None,
        log_format: Annotated[
            LogFormat | None,
            typer.Option("--log-format", case_sensitive=False, help="Override log format."),
        ] = None,
        env_file: Annotated[
            str,
            typer.Option("--env-file", help="Path to .env file."),
        ] = ".env",
    ) -> None:
        if version_flag:
            typer.echo(f"{app._name} v{app._version}")
            raise typer.Exit()

        try:
            settings = load_settings(
                app,
                env_file,
                log_level=log_level,
                log_format=log_format,
            )
        except ValidationError as exc:
            logger.error("Configuration error: %s", exc)
            raise typer.Exit(EXIT_CONFIG_ERROR) from exc

        try:
            app.run(settings=settings)
        except Exception as exc:
            code = exit_code_for(exc)
            label = "Startup error" if code == EXIT_STARTUP_ERROR else "Runtime error"
            logger.error("%s: %s", label, exc)
            raise typer.Exit(code) from exc

    return cli

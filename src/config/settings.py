from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, Literal

import tomllib
from pydantic import BaseModel, ConfigDict, Field, field_validator

if TYPE_CHECKING:
    from collections.abc import Mapping

CONFIG_FILENAME = "revise.toml"

ENV_MODE = "REVISE_MODE"
ENV_POLL = "REVISE_POLL"
ENV_POLL_INTERVAL = "REVISE_POLL_INTERVAL"

RevisionMode = Literal["auto", "manual"]


class RevisionConfig(BaseModel):
    """Configuration of a revision session."""

    model_config = ConfigDict(extra="forbid")

    mode: RevisionMode = Field(
        default="auto",
        description="'auto' drains at every sync point, 'manual' only on request",
    )
    poll: bool = Field(
        default=False,
        description="Poll for changes instead of using native notification",
    )
    poll_interval: float = Field(
        default=5.0,
        gt=0,
        description="Seconds between two polls when polling",
    )
    dont_watch: list[str] = Field(
        default_factory=list,
        description="Package names that are never tracked",
    )
    silence: list[str] = Field(
        default_factory=list,
        description="Package names whose 'not tracked' warnings are suppressed",
    )
    include: list[str] = Field(
        default_factory=list,
        description="Glob patterns for package files to track (empty = all)",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Glob patterns for package files to skip",
    )
    nested_gitignore: bool = Field(
        default=False,
        description="Honor .gitignore files below a package directory too",
    )

    @field_validator("dont_watch", "silence", mode="before")
    @classmethod
    def validate_names(cls, v: object) -> object:
        """Accept a single package name where a list is expected."""
        if isinstance(v, str):
            return [v]
        return v


class ConfigError(Exception):
    """Raised when configuration exists but cannot be used."""


def _env_overrides(environ: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    if ENV_MODE in environ:
        overrides["mode"] = "auto" if environ[ENV_MODE] == "auto" else "manual"
    if ENV_POLL in environ:
        overrides["poll"] = environ[ENV_POLL] == "1"
    if ENV_POLL_INTERVAL in environ:
        raw = environ[ENV_POLL_INTERVAL]
        try:
            overrides["poll_interval"] = float(raw)
        except ValueError as e:
            msg = f"{ENV_POLL_INTERVAL} must be a number of seconds, got {raw!r}"
            raise ConfigError(msg) from e
    return overrides


def load_config(
    root: Path | None = None, *, environ: Mapping[str, str] | None = None
) -> RevisionConfig:
    """Load configuration from revise.toml and the environment.

    Args:
        root: Directory holding revise.toml; no file is read when None
        environ: Environment to read overrides from (default: os.environ)

    Returns:
        RevisionConfig with environment variables taking precedence over
        the file.

    Raises:
        ConfigError: The file is not valid TOML, or a value is invalid.
    """
    data: dict[str, object] = {}
    config_path = None if root is None else Path(root) / CONFIG_FILENAME

    if config_path is not None and config_path.is_file():
        try:
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {config_path}: {e}"
            raise ConfigError(msg) from e

    data.update(_env_overrides(os.environ if environ is None else environ))

    try:
        return RevisionConfig.model_validate(data)
    except Exception as e:
        source = config_path if config_path is not None else "environment"
        msg = f"Invalid config in {source}: {e}"
        raise ConfigError(msg) from e

"""Settings resolution: environment, discovered .env file, then ~/.config/lg/config.toml."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

import tomlkit
import typer
from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict
from rich import print as rprint

log = logging.getLogger(__name__)

CONFIG_PATH = Path.home() / ".config" / "lg" / "config.toml"


class LgSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LG_",
        env_file=None,  # resolved per invocation by find_env_file()
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Credentials. Bare LINEAR_API_KEY / GITHUB_TOKEN are honoured as well.
    linear_api_key: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("linear_api_key", "lg_linear_api_key")
    )
    github_token: SecretStr | None = Field(
        default=None, validation_alias=AliasChoices("github_token", "lg_github_token")
    )
    github_auth: Literal["gh-cli", "token"] = "gh-cli"

    # Linear sync polling
    sync_poll_interval_ms: int = Field(default=500, gt=0)
    sync_max_wait_ms: int = Field(default=10_000, ge=0)
    sync_progress_every: int = Field(default=5, gt=0)  # print every Nth retry

    # GitHub project item lookup
    project_item_retries: int = Field(default=3, gt=0)

    # What commit-first does with a branch whose prefix is missing or unknown
    prefix_policy: Literal["prompt", "default"] = "prompt"
    default_prefix: str = "feat"

    base_branch: str = "main"
    editor: str | None = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # config.toml values arrive as init kwargs and must lose to env and .env
        return env_settings, dotenv_settings, init_settings, file_secret_settings


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/lg/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def find_env_file(start: Path | None = None, home: Path | None = None) -> Path | None:
    """Return the nearest .env walking up from start (cwd), falling back to ~/.env."""
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / ".env"
        if candidate.is_file():
            return candidate
    home_env = (home or Path.home()) / ".env"
    if home_env.is_file():
        return home_env
    return None


def get_settings(require_linear: bool = True) -> LgSettings:
    """Resolve settings for this invocation.

    Precedence (highest to lowest):
    1. Process environment (LG_*, LINEAR_API_KEY, GITHUB_TOKEN)
    2. Nearest .env walking up from cwd, else ~/.env
    3. ~/.config/lg/config.toml
    4. Field defaults
    """
    env_file = find_env_file()
    if env_file:
        log.debug("Using env file %s", env_file)

    settings = LgSettings(_env_file=env_file, **_load_toml().unwrap())  # type: ignore[call-arg]

    if require_linear and not settings.linear_api_key:
        rprint("[red]❌ LINEAR_API_KEY is required[/red]")
        rprint("")
        rprint("   Option 1: Create a .env file in the project root:")
        rprint('     echo "LINEAR_API_KEY=lin_api_..." > .env')
        rprint("")
        rprint("   Option 2: Export in your shell:")
        rprint('     export LINEAR_API_KEY="lin_api_..."')
        rprint("")
        rprint(f"   Option 3: Set linear_api_key in {CONFIG_PATH}")
        rprint("")
        rprint("   Get your API key from: https://linear.app/settings/api")
        raise typer.Exit(1)

    return settings

# apps/workers/relay_worker/settings.py
import os
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent


class ContinuityMode(str, Enum):
    HISTORY = "history"  # replay recent messages as a text preamble
    RESUME = "resume"    # hand the CLI a per-user session id to resume


class SessionBackend(str, Enum):
    FILE = "file"
    POSTGRES = "postgres"


# CLI-specific configuration (Pydantic v2 submodel)
class CliConfig(BaseModel):
    """Assistant CLI invocation settings.
    Values left as None are backfilled from top-level Settings,
    unless explicitly provided via nested env (CLI__*).
    """
    bin: Optional[str] = None
    output_format: str = "json"   # passed as --output-format; empty disables the flag
    extra_args: list[str] = []
    timeout_ms: Optional[int] = None


class Settings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    NOISY_LEVEL: str = "WARNING"
    APP_NAME: str | None = "relay_worker"

    # Where assistant queries and utility commands run
    WORK_DIR: str = Field(default_factory=os.getcwd)

    # ── Sessions
    SESSION_BACKEND: SessionBackend = SessionBackend.FILE
    SESSION_DIR: str = Field(default_factory=lambda: str(Path.cwd() / "sessions"))
    DB_URL: str | None = Field(default=None, description="dsn is required for the postgres backend")
    MAX_MESSAGES_PER_SESSION: int = 50
    CONTEXT_TURNS: int = 5  # messages replayed in history mode

    CONTINUITY_MODE: ContinuityMode = ContinuityMode.HISTORY
    SEED_RESUME_FROM_HISTORY: bool = True

    # Only this chat identity is served; None disables the check
    ALLOWED_USER_ID: str | None = None

    # ── Process execution
    CLI_BIN: str = "claude"
    CLI_TIMEOUT_MS: int = 300_000
    SHELL_TIMEOUT_MS: int = 60_000
    DEFAULT_PATH: str = "/usr/local/bin:/usr/bin:/bin"
    CLI: CliConfig = Field(default_factory=CliConfig)

    MAX_CONCURRENT_REQUESTS: int = 8

    REDIS_URL: str = "redis://localhost:6379"
    KAFKA_BOOTSTRAP: str = "localhost:29092"

    @classmethod
    def settings_customise_sources(
            cls,
            settings_cls,
            init_settings,
            env_settings,
            dotenv_settings,
            file_secret_settings,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        if os.getenv("APP_ENV") == "production":
            return env_settings, init_settings, file_secret_settings

        return env_settings, init_settings, file_secret_settings, dotenv_settings

    @model_validator(mode="after")
    def _merge_cli_from_top_level(self):
        # Only fill None values in the submodel to respect nested env overrides (CLI__*)
        c = self.CLI
        if c.bin is None:
            c.bin = self.CLI_BIN
        if c.timeout_ms is None:
            c.timeout_ms = self.CLI_TIMEOUT_MS
        return self

    # ── pydantic v2
    model_config = SettingsConfigDict(
        env_file=(BASE_DIR / ".env", BASE_DIR / ".env.local"),
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

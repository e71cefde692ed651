"""Environment-driven defaults powered by pydantic-settings.

| Environment Variable      | Default                    | Purpose                                 |
|---------------------------|----------------------------|-----------------------------------------|
| `LOG_LEVEL`               | `INFO`                     | Minimum level for the loguru sinks      |
| `ENV`                     | `local`                    | Deployment environment label in logs    |
| `OPTIMIZER_MAX_WORKERS`   | `4`                        | Thread pool size for population scoring |
| `OPTIMIZER_OUTPUT_DIR`    | `artifacts/optimizations`  | Root folder for runner artifacts        |
| `OPTIMIZER_SEED`          | `42`                       | Seed used when a run file omits one     |

Values are read once per `get_settings()` call and are read-only afterwards.
Algorithm knobs (population size, cooling rate, ...) are passed to the
optimizers as plain dataclass parameters.
"""

from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from strategy_optimizer import __version__


class Settings(BaseSettings):
    """Process-level defaults for the optimizer runner."""

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        populate_by_name=True,
        extra="ignore",
        case_sensitive=True,
        frozen=True,
    )

    version: str = __version__
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    environment: str = Field(default="local", alias="ENV")
    max_workers: int = Field(default=4, alias="OPTIMIZER_MAX_WORKERS")
    output_dir: str = Field(
        default="artifacts/optimizations", alias="OPTIMIZER_OUTPUT_DIR"
    )
    seed: int = Field(default=42, alias="OPTIMIZER_SEED")

    @field_validator("max_workers", mode="before")
    @classmethod
    def _coerce_workers(cls, value: int | str | None) -> int:
        if value in (None, ""):
            return 4
        try:
            return max(1, int(value))
        except (TypeError, ValueError):
            return 4

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: str | None) -> str:
        return str(value or "INFO").strip().upper()


def get_settings() -> Settings:
    """Instantiate settings from the current environment."""
    return Settings()


__all__ = ["Settings", "get_settings"]

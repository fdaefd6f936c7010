"""Draft server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from draft.logic.settings import EngineSettings
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class DraftServerSettings(BaseSettings):
    model_config = {"env_prefix": "DRAFT_"}

    database_path: str = Field(default="backend/data/draft.db", min_length=1)
    log_dir: str = Field(default="backend/logs/draft", min_length=1)
    cors_origins: list[str] = ["http://localhost:8720"]

    # defaults applied when a create request omits them
    default_total_rounds: int = Field(default=15, ge=0)
    default_pick_timer_seconds: int = Field(default=120, ge=1)

    recent_picks_window: int = Field(default=5, ge=1)
    late_pick_grace_seconds: float = Field(default=0, ge=0)
    expiry_poll_seconds: float = Field(default=1.0, gt=0)
    storage_retry_attempts: int = Field(default=3, ge=1)
    notification_webhook_url: str | None = None
    heartbeat_seconds: float = Field(default=30, gt=0)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

    def engine_settings(self) -> EngineSettings:
        return EngineSettings(
            recent_picks_window=self.recent_picks_window,
            late_pick_grace_seconds=self.late_pick_grace_seconds,
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings

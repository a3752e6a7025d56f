"""Host and player configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from game.logic.enums import VoiceMode
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class HostSettings(BaseSettings):
    model_config = {"env_prefix": "LOTO_HOST_"}

    bind_host: str = "127.0.0.1"
    port: int = Field(default=8711, ge=1, le=65535)
    log_dir: str = Field(default="backend/logs/host", min_length=1)
    storage_dir: str = Field(default="backend/data/host", min_length=1)
    cors_origins: list[str] = ["http://localhost:8712"]
    max_rooms: int = Field(default=20, ge=1)

    auto_draw_interval_seconds: float = Field(default=5.0, gt=0)
    announce_timeout_seconds: float = Field(default=10.0, gt=0)
    win_window_seconds: float = Field(default=2.0, gt=0)
    winner_conjunction: str = Field(default="and", min_length=1)
    claim_cooldown_seconds: float = Field(default=5.0, ge=0)
    voice_mode: VoiceMode = VoiceMode.REAL

    handshake_timeout_seconds: float = Field(default=10.0, gt=0)
    open_room_attempts: int = Field(default=5, ge=1)
    open_room_retry_seconds: float = Field(default=1.5, ge=0)

    # 20 messages/sec sustained, burst of 40. Players only send on user input
    # (claims, emotes, shouts) plus heartbeat pings.
    rate_limit_rate: float = Field(default=20.0, gt=0)
    rate_limit_burst: int = Field(default=40, ge=1)
    max_decode_errors: int = Field(default=5, ge=1)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v, allow_empty=True)

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


class PlayerSettings(BaseSettings):
    model_config = {"env_prefix": "LOTO_PLAYER_"}

    server_url: str = Field(default="ws://127.0.0.1:8711", pattern=r"^wss?://")
    storage_dir: str = Field(default="backend/data/player", min_length=1)

    handshake_timeout_seconds: float = Field(default=10.0, gt=0)
    heartbeat_timeout_seconds: float = Field(default=5.0, gt=0)
    max_reconnect_attempts: int = Field(default=5, ge=1)
    reconnect_base_seconds: float = Field(default=1.0, gt=0)
    reconnect_max_seconds: float = Field(default=8.0, gt=0)

    claim_cooldown_seconds: float = Field(default=5.0, ge=0)
    claim_timeout_seconds: float = Field(default=15.0, gt=0)
    emote_cooldown_seconds: float = Field(default=1.0, ge=0)
    shout_cooldown_seconds: float = Field(default=2.0, ge=0)
    wait_signal_throttle_seconds: float = Field(default=5.0, ge=0)

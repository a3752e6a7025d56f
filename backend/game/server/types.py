from pydantic import BaseModel, ConfigDict, Field

from game.logic.enums import ToastStyle, VoiceMode


class OpenRoomRequest(BaseModel):
    """Body of POST /rooms. ``restore`` is the operator's answer to "resume the saved round?"."""

    model_config = ConfigDict(extra="forbid")

    restore: bool = False


class AutoDrawRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(strict=True)
    interval_seconds: float | None = Field(default=None, gt=0, le=600)


class VoiceModeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: VoiceMode


class ToastRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    message: str = Field(min_length=1, max_length=200)
    style: ToastStyle = ToastStyle.INFO

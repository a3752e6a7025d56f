from enum import IntEnum, StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from game.logic.enums import ToastStyle, VoiceMode
from game.logic.numbers import DRAW_MAX, DRAW_MIN
from game.logic.tickets import COLUMNS, ROWS, TICKETS_PER_SHEET

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

MAX_SHEETS_PER_PLAYER = 5
MAX_NAME_LENGTH = 50
_IDENTITY_PATTERN = r"^[a-zA-Z0-9_-]{1,64}$"


class MessageType(StrEnum):
    HELLO = "hello"
    NUMBER_DRAWN = "numberDrawn"
    WELCOME = "welcome"
    WIN_CLAIM = "winClaim"
    WIN_CONFIRMED = "winConfirmed"
    WIN_REJECTED = "winRejected"
    TICKET_UPDATE = "ticketUpdate"
    WAIT_SIGNAL = "waitSignal"
    TOAST = "toast"
    GAME_RESET = "gameReset"
    PING = "ping"
    PONG = "pong"
    EMOTE = "emote"
    SHOUT = "shout"
    VOICE_MODE = "voiceMode"
    ERROR = "error"


class ErrorCode(StrEnum):
    INVALID_MESSAGE = "invalid_message"
    RATE_LIMITED = "rate_limited"
    INVALID_SHEETS = "invalid_sheets"


class CloseCode(IntEnum):
    """WebSocket close codes sent by the host."""

    NORMAL = 1000
    GOING_AWAY = 1001
    INVALID_REQUEST = 4000
    PEER_UNAVAILABLE = 4004
    HANDSHAKE_FAILED = 4008
    IDENTITY_TAKEN = 4009
    TOO_MANY_DECODE_ERRORS = 4029


def _reject_control_chars(v: str) -> str:
    if any((ord(c) < _SPACE_ORD and c not in ("\t", "\n", "\r")) or ord(c) == _DEL_ORD for c in v):
        raise ValueError("text must not contain control characters")
    return v


WireCell = Annotated[int, Field(ge=DRAW_MIN, le=DRAW_MAX)] | None
WireRow = Annotated[list[WireCell], Field(min_length=COLUMNS, max_length=COLUMNS)]
WireTicket = Annotated[list[WireRow], Field(min_length=ROWS, max_length=ROWS)]
WireSheet = Annotated[list[WireTicket], Field(min_length=TICKETS_PER_SHEET, max_length=TICKETS_PER_SHEET)]
WireSheets = Annotated[list[WireSheet], Field(max_length=MAX_SHEETS_PER_PLAYER)]


class WireModel(BaseModel):
    """Base for every wire message: camelCase keys on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# player -> host
# ---------------------------------------------------------------------------


class HelloMessage(WireModel):
    """Handshake metadata, the first frame a player sends on a new connection."""

    type: Literal[MessageType.HELLO] = MessageType.HELLO
    name: str = Field(default="", max_length=MAX_NAME_LENGTH)
    sheets: WireSheets = Field(default_factory=list)
    last_session_id: str | None = Field(default=None, pattern=_IDENTITY_PATTERN)

    @field_validator("name")
    @classmethod
    def _validate_name(cls, v: str) -> str:
        return _reject_control_chars(v).strip()


class WinClaimMessage(WireModel):
    type: Literal[MessageType.WIN_CLAIM] = MessageType.WIN_CLAIM


class TicketUpdateMessage(WireModel):
    type: Literal[MessageType.TICKET_UPDATE] = MessageType.TICKET_UPDATE
    sheets: WireSheets


class WaitSignalMessage(WireModel):
    type: Literal[MessageType.WAIT_SIGNAL] = MessageType.WAIT_SIGNAL
    player_id: str | None = Field(default=None, max_length=64)


class PingMessage(WireModel):
    type: Literal[MessageType.PING] = MessageType.PING


class PongMessage(WireModel):
    type: Literal[MessageType.PONG] = MessageType.PONG


class EmoteMessage(WireModel):
    type: Literal[MessageType.EMOTE] = MessageType.EMOTE
    emoji: str = Field(min_length=1, max_length=16)
    sender_id: str | None = Field(default=None, max_length=64)


class ShoutMessage(WireModel):
    type: Literal[MessageType.SHOUT] = MessageType.SHOUT
    text: str = Field(min_length=1, max_length=200)
    sender_id: str | None = Field(default=None, max_length=64)

    @field_validator("text")
    @classmethod
    def _validate_text(cls, v: str) -> str:
        return _reject_control_chars(v)


# ---------------------------------------------------------------------------
# host -> player
# ---------------------------------------------------------------------------


class NumberDrawnMessage(WireModel):
    type: Literal[MessageType.NUMBER_DRAWN] = MessageType.NUMBER_DRAWN
    number: int = Field(ge=DRAW_MIN, le=DRAW_MAX)
    text: str


class GameStateSnapshot(WireModel):
    called_numbers: list[int]
    game_started: bool
    current_number: int | None = None


class WelcomeMessage(WireModel):
    type: Literal[MessageType.WELCOME] = MessageType.WELCOME
    name: str
    sheets: WireSheets
    game_state: GameStateSnapshot
    voice_mode: VoiceMode


class WinConfirmedMessage(WireModel):
    type: Literal[MessageType.WIN_CONFIRMED] = MessageType.WIN_CONFIRMED
    winner_name: str


class WinRejectedMessage(WireModel):
    type: Literal[MessageType.WIN_REJECTED] = MessageType.WIN_REJECTED


class ToastMessage(WireModel):
    type: Literal[MessageType.TOAST] = MessageType.TOAST
    message: str
    style: ToastStyle = ToastStyle.INFO


class GameResetMessage(WireModel):
    type: Literal[MessageType.GAME_RESET] = MessageType.GAME_RESET


class VoiceModeMessage(WireModel):
    type: Literal[MessageType.VOICE_MODE] = MessageType.VOICE_MODE
    mode: VoiceMode


class ErrorMessage(WireModel):
    type: Literal[MessageType.ERROR] = MessageType.ERROR
    code: ErrorCode
    message: str


PlayerMessage = (
    WinClaimMessage | TicketUpdateMessage | WaitSignalMessage | PingMessage | PongMessage | EmoteMessage | ShoutMessage
)

HostMessage = (
    NumberDrawnMessage
    | WelcomeMessage
    | WinConfirmedMessage
    | WinRejectedMessage
    | ToastMessage
    | GameResetMessage
    | PingMessage
    | PongMessage
    | EmoteMessage
    | ShoutMessage
    | VoiceModeMessage
    | ErrorMessage
)

_player_message_adapter = TypeAdapter(Annotated[PlayerMessage, Field(discriminator="type")])
_host_message_adapter = TypeAdapter(Annotated[HostMessage, Field(discriminator="type")])


def parse_player_message(data: dict[str, Any]) -> PlayerMessage:
    """Parse a frame received by the host. Hello frames are only valid as the handshake."""
    return _player_message_adapter.validate_python(data)


def parse_host_message(data: dict[str, Any]) -> HostMessage:
    """Parse a frame received by a player."""
    return _host_message_adapter.validate_python(data)


def parse_hello(data: dict[str, Any]) -> HelloMessage:
    return HelloMessage.model_validate(data)

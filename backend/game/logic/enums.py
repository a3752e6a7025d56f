"""
String enum definitions for room and connection concepts.
"""

from enum import StrEnum


class GamePhase(StrEnum):
    """Host game phase. STARTED is entered on the first successful draw."""

    NOT_STARTED = "not_started"
    STARTED = "started"


class ConnectionState(StrEnum):
    """Player-side connection lifecycle."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


class VoiceMode(StrEnum):
    """How the caller's numbers are voiced on every device in the room."""

    REAL = "real"
    GOOGLE = "google"
    SYSTEM = "system"


class ToastStyle(StrEnum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Role(StrEnum):
    """Which side of the room a process plays."""

    HOST = "host"
    PLAYER = "player"

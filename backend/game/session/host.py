"""
One hosted room: the authoritative game state and everything connected to it.

A HostRoom owns its room directory, draw machine, win aggregator and the open
player connections. Every mutation goes through a HostRoom method; the
message router only parses frames and calls into it. State changes are
broadcast to open connections, persisted through the optional session store,
and published on ``events`` for local observers (a UI, a speech announcer).
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel

from game.logic.cooldown import Cooldown
from game.logic.enums import ToastStyle, VoiceMode
from game.logic.numbers import number_to_words
from game.logic.room_code import host_identity
from game.logic.state import DrawMachine
from game.logic.timer import RepeatingTimer
from game.logic.win import verify_win
from game.messaging.events import EventChannel, RoomEvent
from game.messaging.types import (
    CloseCode,
    EmoteMessage,
    GameResetMessage,
    GameStateSnapshot,
    NumberDrawnMessage,
    PongMessage,
    ShoutMessage,
    ToastMessage,
    VoiceModeMessage,
    WelcomeMessage,
    WinConfirmedMessage,
    WinRejectedMessage,
)
from game.session.broadcast import broadcast, send_safely
from game.session.directory import RoomDirectory
from game.session.win_aggregator import WinAggregator

if TYPE_CHECKING:
    import random
    from collections.abc import Awaitable, Callable

    from game.logic.tickets import Sheet
    from game.messaging.protocol import ConnectionProtocol
    from game.messaging.types import HelloMessage
    from game.server.settings import HostSettings
    from game.session.models import JoinResult
    from game.session.store import HostState, SessionStore

    # Speaks a drawn number; awaited with a bounded timeout while the draw is in flight.
    Announcer = Callable[[int, str], Awaitable[None]]

logger = structlog.get_logger()

HOST_SENDER_ID = "HOST"


class RoomConfig(BaseModel):
    """Tunables for one hosted room."""

    auto_draw_interval_seconds: float = 5.0
    announce_timeout_seconds: float = 10.0
    win_window_seconds: float = 2.0
    winner_conjunction: str = "and"
    claim_cooldown_seconds: float = 5.0
    voice_mode: VoiceMode = VoiceMode.REAL

    @classmethod
    def from_settings(cls, settings: HostSettings) -> RoomConfig:
        return cls(
            auto_draw_interval_seconds=settings.auto_draw_interval_seconds,
            announce_timeout_seconds=settings.announce_timeout_seconds,
            win_window_seconds=settings.win_window_seconds,
            winner_conjunction=settings.winner_conjunction,
            claim_cooldown_seconds=settings.claim_cooldown_seconds,
            voice_mode=settings.voice_mode,
        )


class HostRoom:
    def __init__(
        self,
        room_code: str,
        config: RoomConfig | None = None,
        *,
        store: SessionStore | None = None,
        announcer: Announcer | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._room_code = room_code
        self._config = config or RoomConfig()
        self._store = store
        self._announcer = announcer
        self.events = EventChannel()
        self.directory = RoomDirectory(rng)
        self.machine = DrawMachine(rng)
        self.voice_mode = self._config.voice_mode
        self.waiting: set[str] = set()  # identities that signalled one number away
        self._connections: dict[str, ConnectionProtocol] = {}  # identity -> connection
        self._aggregator = WinAggregator(
            self._announce_winners,
            window_seconds=self._config.win_window_seconds,
            conjunction=self._config.winner_conjunction,
        )
        self._claim_cooldown = Cooldown(self._config.claim_cooldown_seconds, clock)
        self._auto_draw = RepeatingTimer()
        self._drawing = False
        self._round = 0  # bumped on reset so an in-flight draw can tell it was superseded
        self._closed = False

    @property
    def room_code(self) -> str:
        return self._room_code

    @property
    def identity(self) -> str:
        return host_identity(self._room_code)

    @property
    def config(self) -> RoomConfig:
        return self._config

    @property
    def started(self) -> bool:
        return self.machine.started

    @property
    def is_drawing(self) -> bool:
        return self._drawing

    @property
    def is_auto_drawing(self) -> bool:
        return self._auto_draw.is_running

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def connections(self) -> dict[str, ConnectionProtocol]:
        return dict(self._connections)

    def is_connected(self, identity: str) -> bool:
        connection = self._connections.get(identity)
        return connection is not None and connection.is_open

    def snapshot(self) -> GameStateSnapshot:
        state = self.machine.state
        return GameStateSnapshot(
            called_numbers=state.sorted_called(),
            game_started=state.started,
            current_number=state.current_number,
        )

    def summary(self) -> dict[str, Any]:
        """Room status for the HTTP control surface."""
        return {
            "room_code": self._room_code,
            "identity": self.identity,
            "started": self.started,
            "called_numbers": self.machine.state.sorted_called(),
            "current_number": self.machine.state.current_number,
            "remaining": self.machine.remaining,
            "auto_draw": self.is_auto_drawing,
            "voice_mode": self.voice_mode,
            "players": [
                {"identity": p.identity, "name": p.name, "connected": p.connected, "sheets": len(p.sheets)}
                for p in self.directory.players
            ],
            "waiting": sorted(self.directory.display_name(i) for i in self.waiting),
        }

    def restore(self, state: HostState) -> None:
        """Resume a persisted round (already confirmed by the operator)."""
        self.machine.restore(state.called_numbers, state.current_number)
        logger.info(
            "room restored",
            room_code=self._room_code,
            called=len(self.machine.state.called_numbers),
        )

    # --- connections ---

    async def join(self, connection: ConnectionProtocol, hello: HelloMessage) -> JoinResult:
        """Register a connection that completed the handshake and send it ``welcome``."""
        identity = connection.identity
        result = self.directory.on_join(
            identity,
            hello.name,
            hello.sheets or None,
            hello.last_session_id,
            started=self.started,
        )
        if result.previous_identity is not None:
            old = self._connections.pop(result.previous_identity, None)
            if old is not None:
                await old.close(code=CloseCode.GOING_AWAY, reason="identity_migrated")
            if result.previous_identity in self.waiting:
                self.waiting.discard(result.previous_identity)
                self.waiting.add(identity)
        self._connections[identity] = connection

        welcome = WelcomeMessage(
            name=result.name,
            sheets=result.sheets,
            game_state=self.snapshot(),
            voice_mode=self.voice_mode,
        )
        await send_safely(connection, welcome.to_wire())

        event = RoomEvent.PLAYER_RECONNECTED if result.is_reconnect else RoomEvent.PLAYER_JOINED
        await self.events.publish(
            event,
            identity=identity,
            name=result.name,
            player_count=self.directory.player_count,
        )
        return result

    async def leave(self, connection: ConnectionProtocol) -> None:
        """Forget a closed connection. A newer connection for the same identity is left alone."""
        identity = connection.identity
        if self._connections.get(identity) is not connection:
            return
        del self._connections[identity]
        self.directory.on_leave(identity)
        logger.info("player left", room_code=self._room_code, identity=identity)
        await self.events.publish(RoomEvent.PLAYER_LEFT, identity=identity, name=self.directory.display_name(identity))

    async def send_to(self, identity: str, message: dict[str, Any]) -> bool:
        connection = self._connections.get(identity)
        if connection is None:
            return False
        return await send_safely(connection, message)

    async def broadcast(self, message: dict[str, Any], exclude_identity: str | None = None) -> None:
        await broadcast(self._connections, message, exclude_identity=exclude_identity)

    # --- drawing ---

    async def draw(self) -> int | None:
        """Draw the next number. Returns None while a draw is in flight, when the pool is empty, or when a reset superseded it."""
        if self._closed or self._drawing or self.machine.is_exhausted:
            return None
        self._drawing = True
        round_ = self._round
        try:
            number = self.machine.draw()
            if number is None:
                return None
            text = number_to_words(number)
            await self.broadcast(NumberDrawnMessage(number=number, text=text).to_wire())
            if round_ != self._round:
                logger.info("draw superseded by reset", room_code=self._room_code, number=number)
                return None
            self._persist()
            logger.info("number drawn", room_code=self._room_code, number=number, remaining=self.machine.remaining)
            await self.events.publish(RoomEvent.NUMBER_DRAWN, number=number, text=text)
            if round_ == self._round:
                await self._announce(number, text)
        finally:
            self._drawing = False
        return number

    async def _announce(self, number: int, text: str) -> None:
        if self._announcer is None:
            return
        try:
            await asyncio.wait_for(self._announcer(number, text), timeout=self._config.announce_timeout_seconds)
        except TimeoutError:
            logger.warning("announcement timed out", room_code=self._room_code, number=number)

    def start_auto_draw(self, interval_seconds: float | None = None) -> bool:
        """Draw now and then every interval. Returns False when there is nothing left to draw."""
        if self._closed or self.machine.is_exhausted:
            return False
        interval = interval_seconds or self._config.auto_draw_interval_seconds
        self._auto_draw.start(interval, self._auto_draw_tick, immediate=True)
        logger.info("auto draw started", room_code=self._room_code, interval=interval)
        return True

    async def stop_auto_draw(self, reason: str = "manual") -> bool:
        """Stop automatic drawing. Returns True when it had been running."""
        if not self._auto_draw.is_running:
            return False
        self._auto_draw.stop()
        logger.info("auto draw stopped", room_code=self._room_code, reason=reason)
        await self.events.publish(RoomEvent.AUTO_DRAW_STOPPED, reason=reason)
        return True

    async def _auto_draw_tick(self) -> bool:
        if not self._drawing:
            # a claim may stop the timer mid-draw; the broadcast must still complete
            await asyncio.shield(self.draw())
        if self.machine.is_exhausted:
            await self.stop_auto_draw(reason="exhausted")
            await self.events.publish(RoomEvent.TOAST, message="No numbers left to draw", style=ToastStyle.INFO)
            return False
        return True

    async def reset(self) -> None:
        """Start a new round: clear drawn numbers, pending winners and wait signals."""
        await self.stop_auto_draw(reason="reset")
        self._aggregator.cancel()
        self._claim_cooldown.reset()
        self.waiting.clear()
        self.machine.reset()
        self._round += 1
        await self.broadcast(GameResetMessage().to_wire())
        self._persist()
        logger.info("game reset", room_code=self._room_code)
        await self.events.publish(RoomEvent.GAME_RESET)

    # --- player requests ---

    async def claim(self, identity: str) -> bool | None:
        """Verify a win claim.

        Returns True when accepted (added to the current aggregation window),
        False when rejected, and None when the claim was throttled.
        """
        if not self._claim_cooldown.try_acquire(identity):
            logger.info("claim throttled", room_code=self._room_code, identity=identity)
            await self.send_to(
                identity,
                ToastMessage(message="Please wait before claiming again", style=ToastStyle.WARNING).to_wire(),
            )
            return None

        record = self.directory.get(identity)
        sheets = record.sheets if record is not None else []
        name = self.directory.display_name(identity)

        if verify_win(sheets, self.machine.state.called_numbers):
            await self.stop_auto_draw(reason="win")
            opened = self._aggregator.add(name)
            logger.info("win claim accepted", room_code=self._room_code, identity=identity, opened_window=opened)
            await self.events.publish(RoomEvent.WIN_PENDING, identity=identity, name=name, opened_window=opened)
            return True

        logger.info("win claim rejected", room_code=self._room_code, identity=identity)
        await self.send_to(identity, WinRejectedMessage().to_wire())
        await self.broadcast(
            ToastMessage(message=f"⚠️ {name} called a false win!", style=ToastStyle.ERROR).to_wire(),
        )
        await self.events.publish(RoomEvent.FALSE_CLAIM, identity=identity, name=name)
        return False

    async def _announce_winners(self, winners: str) -> None:
        await self.broadcast(WinConfirmedMessage(winner_name=winners).to_wire())
        logger.info("winners announced", room_code=self._room_code, winners=winners)
        await self.events.publish(RoomEvent.WIN_ANNOUNCED, winners=winners)

    def update_sheets(self, identity: str, sheets: list[Sheet]) -> bool:
        return self.directory.on_ticket_update(identity, sheets, started=self.started)

    async def wait_signal(self, identity: str) -> None:
        """A player is one number away: tell everyone."""
        self.waiting.add(identity)
        name = self.directory.display_name(identity)
        await self.broadcast(ToastMessage(message=f"⚠️ {name} is waiting!", style=ToastStyle.WARNING).to_wire())
        await self.events.publish(RoomEvent.WAIT_SIGNAL, identity=identity, name=name)

    async def emote(self, emoji: str, sender_id: str = HOST_SENDER_ID) -> None:
        """Relay an emote to everyone except its sender."""
        await self.broadcast(EmoteMessage(emoji=emoji, sender_id=sender_id).to_wire(), exclude_identity=sender_id)
        await self.events.publish(RoomEvent.EMOTE, emoji=emoji, sender_id=sender_id)

    async def shout(self, text: str, sender_id: str = HOST_SENDER_ID) -> None:
        """Relay a shout to everyone except its sender."""
        await self.broadcast(ShoutMessage(text=text, sender_id=sender_id).to_wire(), exclude_identity=sender_id)
        await self.events.publish(RoomEvent.SHOUT, text=text, sender_id=sender_id)

    async def ping(self, identity: str) -> None:
        await self.send_to(identity, PongMessage().to_wire())

    async def toast(self, message: str, style: ToastStyle = ToastStyle.INFO) -> None:
        await self.broadcast(ToastMessage(message=message, style=style).to_wire())

    async def set_voice_mode(self, mode: VoiceMode) -> None:
        self.voice_mode = mode
        await self.broadcast(VoiceModeMessage(mode=mode).to_wire())
        await self.events.publish(RoomEvent.VOICE_MODE, mode=mode)

    # --- lifecycle ---

    def _persist(self) -> None:
        if self._store is None:
            return
        state = self.machine.state
        self._store.save_host_state(self._room_code, state.sorted_called(), state.current_number)

    async def close(self) -> None:
        """Stop timers and close every connection. The persisted state is kept for a restore."""
        if self._closed:
            return
        self._closed = True
        self._auto_draw.stop()
        self._aggregator.cancel()
        for connection in list(self._connections.values()):
            await connection.close(code=CloseCode.GOING_AWAY, reason="room_closed")
        self._connections.clear()
        logger.info("room closed", room_code=self._room_code)

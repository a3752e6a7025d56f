"""
Player side of a room: connection lifecycle and a local mirror of the game.

Connection states::

    DISCONNECTED -> CONNECTING -> CONNECTED <-> RECONNECTING -> DISCONNECTED

``join`` moves to CONNECTING and completes when the host answers ``hello``
with ``welcome``. A dropped connection (or a failed health check) moves to
RECONNECTING and retries with exponential backoff; after the last attempt
fails the client is DISCONNECTED for good and a manual rejoin is needed.

The mirror (called numbers, current number, started flag) only ever changes
in response to host messages. Local win detection is advisory: it raises
``win_ready`` and sends wait signals, the host decides every claim.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
import uuid
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import ValidationError

from game.client.heartbeat import Heartbeat
from game.client.reconnect import ReconnectPolicy, ReconnectTracker
from game.logic.cooldown import Cooldown
from game.logic.enums import ConnectionState, VoiceMode
from game.logic.exceptions import (
    HandshakeTimeoutError,
    IdentityTakenError,
    PeerUnavailableError,
    TransportError,
)
from game.logic.rng import create_rng
from game.logic.room_code import is_valid_room_code, normalize_room_code
from game.logic.state import GameState
from game.logic.tickets import generate_sheet, validate_sheets
from game.logic.win import verify_win, waiting_rows
from game.messaging.encoder import DecodeError
from game.messaging.events import EventChannel, RoomEvent
from game.messaging.protocol import ConnectionClosedError
from game.messaging.types import (
    MAX_SHEETS_PER_PLAYER,
    CloseCode,
    EmoteMessage,
    ErrorMessage,
    GameResetMessage,
    HelloMessage,
    NumberDrawnMessage,
    PingMessage,
    PongMessage,
    ShoutMessage,
    TicketUpdateMessage,
    ToastMessage,
    VoiceModeMessage,
    WaitSignalMessage,
    WelcomeMessage,
    WinClaimMessage,
    WinConfirmedMessage,
    WinRejectedMessage,
    parse_host_message,
)
from game.server.settings import PlayerSettings

if TYPE_CHECKING:
    import random
    from collections.abc import Callable

    from game.client.transport import Connector
    from game.logic.tickets import Sheet
    from game.messaging.protocol import ConnectionProtocol
    from game.messaging.types import HostMessage
    from game.session.store import SessionStore

logger = structlog.get_logger()

MAX_PLAYER_NAME_LENGTH = 20

_NAME_ANIMALS = (
    "Cat",
    "Puppy",
    "Panda",
    "Duck",
    "Rabbit",
    "Squirrel",
    "Piglet",
    "Chick",
    "Penguin",
    "Whale",
    "Tiger Cub",
    "Lion",
    "Monkey",
)
_NAME_ADJECTIVES = (
    "Cheerful",
    "Dreamy",
    "Cute",
    "Quick",
    "Wild",
    "Tiny",
    "Giant",
    "Chubby",
    "Wise",
    "Cheeky",
)


def random_player_name(rng: random.Random | None = None) -> str:
    rng = rng or create_rng()
    return f"{rng.choice(_NAME_ADJECTIVES)} {rng.choice(_NAME_ANIMALS)}"


def new_identity() -> str:
    return uuid.uuid4().hex


def _error_for_close(error: ConnectionClosedError) -> TransportError:
    if error.code == CloseCode.PEER_UNAVAILABLE:
        return PeerUnavailableError(f"room not found ({error.reason})")
    if error.code == CloseCode.IDENTITY_TAKEN:
        return IdentityTakenError(error.reason or "identity already connected")
    return TransportError(f"host closed the connection during handshake: {error}")


class PlayerClient:
    def __init__(
        self,
        connector: Connector,
        settings: PlayerSettings | None = None,
        *,
        store: SessionStore | None = None,
        rng: random.Random | None = None,
        identity_factory: Callable[[], str] = new_identity,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._connector = connector
        self._settings = settings or PlayerSettings()
        self._store = store
        self._rng = rng or create_rng()
        self._identity_factory = identity_factory
        self.events = EventChannel()

        self.state = ConnectionState.DISCONNECTED
        self.room_code: str | None = None
        self.identity: str | None = None
        self.name = ""
        self.sheets: list[Sheet] = []
        self.game = GameState()
        self.voice_mode: VoiceMode | None = None

        self._connection: ConnectionProtocol | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None
        self._claim_timeout_task: asyncio.Task[None] | None = None
        self._reconnect = ReconnectTracker(
            ReconnectPolicy(
                max_attempts=self._settings.max_reconnect_attempts,
                base_seconds=self._settings.reconnect_base_seconds,
                max_seconds=self._settings.reconnect_max_seconds,
            ),
        )
        self._heartbeat = Heartbeat(self._settings.heartbeat_timeout_seconds)
        self._claim_cooldown = Cooldown(self._settings.claim_cooldown_seconds, clock)
        self._emote_cooldown = Cooldown(self._settings.emote_cooldown_seconds, clock)
        self._shout_cooldown = Cooldown(self._settings.shout_cooldown_seconds, clock)
        self._wait_cooldown = Cooldown(self._settings.wait_signal_throttle_seconds, clock)
        self._win_ready = False
        self._awaiting_claim = False

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED and self._connection is not None

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect.attempts

    @property
    def awaiting_claim(self) -> bool:
        return self._awaiting_claim

    @property
    def win_ready(self) -> bool:
        return self._win_ready

    # --- joining ---

    async def join(self, room_code: str, name: str = "", sheets: list[Sheet] | None = None) -> None:
        """Join a room with a fresh identity.

        Without sheets one sheet is generated locally; the host may still
        replace it (for example with the sheets it kept from an earlier
        connection).

        Raises PeerUnavailableError for an unknown room (not retried) and
        HandshakeTimeoutError when the host does not answer in time.
        """
        code = normalize_room_code(room_code)
        if not is_valid_room_code(code):
            raise PeerUnavailableError(f"invalid room code {room_code!r}")
        if sheets is not None and not validate_sheets(sheets, MAX_SHEETS_PER_PLAYER):
            raise ValueError("sheets are not valid")
        self.room_code = code
        self.name = name.strip()[:MAX_PLAYER_NAME_LENGTH] or random_player_name(self._rng)
        self.sheets = sheets if sheets is not None else [generate_sheet(self._rng)]
        self.identity = self._identity_factory()
        await self._initial_connect(last_session_id=None)

    async def resume_session(self) -> bool:
        """Rejoin the room from the saved session, keeping name and sheets.

        The stored identity is sent as ``lastSessionId`` so the host moves the
        old record over to the new connection. Returns False (and clears the
        saved session) when there is nothing usable to resume.
        """
        if self._store is None:
            return False
        session = self._store.load_session()
        if session is None:
            return False
        self.room_code = session.room_code
        self.name = session.player_name
        self.sheets = session.sheets
        self.identity = self._identity_factory()
        try:
            await self._initial_connect(last_session_id=session.last_peer_identity)
        except TransportError as e:
            logger.info("saved session could not be resumed", room_code=session.room_code, error=str(e))
            self._store.clear_session()
            return False
        return True

    async def _initial_connect(self, last_session_id: str | None) -> None:
        await self._set_state(ConnectionState.CONNECTING)
        try:
            await self._connect(last_session_id)
        except TransportError:
            await self._set_state(ConnectionState.DISCONNECTED)
            raise

    async def _connect(self, last_session_id: str | None) -> None:
        """Open a connection, falling back to a fresh identity when ours is still held by the host."""
        if self.identity is None:
            self.identity = self._identity_factory()
        try:
            connection, welcome = await self._handshake(self.identity, last_session_id)
        except IdentityTakenError:
            previous = self.identity
            self.identity = self._identity_factory()
            logger.info("identity taken, reconnecting under a new one", previous=previous, identity=self.identity)
            connection, welcome = await self._handshake(self.identity, last_session_id or previous)
        await self._on_connected(connection, welcome)

    async def _handshake(
        self,
        identity: str,
        last_session_id: str | None,
    ) -> tuple[ConnectionProtocol, WelcomeMessage]:
        if self.room_code is None:
            raise TransportError("no room to connect to")
        connection = await self._connector.connect(self.room_code, identity)
        hello = HelloMessage(name=self.name, sheets=self.sheets, last_session_id=last_session_id)
        try:
            await connection.send_message(hello.to_wire())
            data = await asyncio.wait_for(
                connection.receive_message(),
                timeout=self._settings.handshake_timeout_seconds,
            )
            message = parse_host_message(data)
        except TimeoutError:
            await connection.close()
            raise HandshakeTimeoutError(f"no welcome from room {self.room_code}") from None
        except ConnectionClosedError as e:
            raise _error_for_close(e) from e
        except (ConnectionError, DecodeError, ValidationError) as e:
            await connection.close()
            raise TransportError(f"handshake failed: {e}") from e
        if not isinstance(message, WelcomeMessage):
            await connection.close()
            raise TransportError(f"expected welcome, got {message.type}")
        return connection, message

    async def _on_connected(self, connection: ConnectionProtocol, welcome: WelcomeMessage) -> None:
        self._connection = connection
        self._apply_welcome(welcome)
        previous_attempts = self._reconnect.reset()
        await self._set_state(ConnectionState.CONNECTED)
        self._receive_task = asyncio.create_task(self._receive_loop(connection))
        self._save_session()
        logger.info("connected to room", room_code=self.room_code, identity=self.identity)
        event = RoomEvent.RECONNECTED if previous_attempts > 0 else RoomEvent.CONNECTED
        await self.events.publish(event, room_code=self.room_code, identity=self.identity)
        await self.events.publish(RoomEvent.WELCOME, name=self.name, sheets=self.sheets, game=self.game)
        await self._scan_rows()

    def _apply_welcome(self, welcome: WelcomeMessage) -> None:
        self.name = welcome.name
        self.sheets = welcome.sheets
        state = welcome.game_state
        self.game = GameState(
            called_numbers=set(state.called_numbers),
            current_number=state.current_number,
            started=state.game_started,
        )
        self.voice_mode = welcome.voice_mode
        self._win_ready = False

    # --- connection loss and reconnect ---

    async def _receive_loop(self, connection: ConnectionProtocol) -> None:
        try:
            while True:
                try:
                    data = await connection.receive_message()
                except DecodeError as e:
                    logger.warning("undecodable frame from host", error=str(e))
                    continue
                await self._dispatch(data)
        except ConnectionError as e:
            logger.info("connection to host lost", error=str(e))
        await self._connection_lost(connection)

    async def _connection_lost(self, connection: ConnectionProtocol) -> None:
        if connection is not self._connection:
            return
        self._connection = None
        self._heartbeat.fail()
        receive_task = self._receive_task
        self._receive_task = None
        if receive_task is not None and receive_task is not asyncio.current_task():
            receive_task.cancel()
        with contextlib.suppress(ConnectionError, OSError, RuntimeError):
            await connection.close()
        if self.state != ConnectionState.CONNECTED:
            return
        await self._set_state(ConnectionState.RECONNECTING)
        self._reconnect_task = asyncio.create_task(self._reconnect_loop())

    async def _reconnect_loop(self) -> None:
        while True:
            delay = self._reconnect.next_delay()
            if delay is None:
                logger.warning("reconnect attempts exhausted", room_code=self.room_code)
                await self._set_state(ConnectionState.DISCONNECTED)
                await self.events.publish(RoomEvent.DISCONNECTED, reason="reconnect_exhausted")
                return
            attempt = self._reconnect.attempts
            await self.events.publish(
                RoomEvent.RECONNECTING,
                attempt=attempt,
                max_attempts=self._reconnect.policy.max_attempts,
                delay=delay,
            )
            await asyncio.sleep(delay)
            try:
                await self._connect(last_session_id=None)
            except (TransportError, ConnectionError, OSError) as e:
                logger.info("reconnect attempt failed", attempt=attempt, error=str(e))
                continue
            return

    async def check_health(self) -> bool:
        """Ping the host (e.g. when the app regains focus); a missing pong starts reconnecting."""
        connection = self._connection
        if not self.connected or connection is None:
            return False
        healthy = await self._heartbeat.check(lambda: connection.send_message(PingMessage().to_wire()))
        if not healthy:
            await self._connection_lost(connection)
        return healthy

    # --- host messages ---

    async def _dispatch(self, data: dict[str, Any]) -> None:
        try:
            message: HostMessage = parse_host_message(data)
        except ValidationError as e:
            logger.warning("invalid message from host", error=str(e))
            return

        if isinstance(message, NumberDrawnMessage):
            await self._on_number_drawn(message)
        elif isinstance(message, WinConfirmedMessage):
            self._finish_claim()
            await self.events.publish(RoomEvent.WIN_CONFIRMED, winner_name=message.winner_name)
        elif isinstance(message, WinRejectedMessage):
            self._finish_claim()
            await self.events.publish(RoomEvent.WIN_REJECTED)
        elif isinstance(message, ToastMessage):
            await self.events.publish(RoomEvent.TOAST, message=message.message, style=message.style)
        elif isinstance(message, GameResetMessage):
            await self._on_game_reset()
        elif isinstance(message, PingMessage):
            await self._send(PongMessage().to_wire())
        elif isinstance(message, PongMessage):
            self._heartbeat.on_pong()
        elif isinstance(message, EmoteMessage):
            await self.events.publish(RoomEvent.EMOTE, emoji=message.emoji, sender_id=message.sender_id)
        elif isinstance(message, ShoutMessage):
            await self.events.publish(RoomEvent.SHOUT, text=message.text, sender_id=message.sender_id)
        elif isinstance(message, VoiceModeMessage):
            self.voice_mode = message.mode
            await self.events.publish(RoomEvent.VOICE_MODE, mode=message.mode)
        elif isinstance(message, WelcomeMessage):
            self._apply_welcome(message)
            await self.events.publish(RoomEvent.WELCOME, name=self.name, sheets=self.sheets, game=self.game)
        elif isinstance(message, ErrorMessage):
            logger.warning("host reported an error", code=message.code, message=message.message)

    async def _on_number_drawn(self, message: NumberDrawnMessage) -> None:
        self.game.apply_draw(message.number)
        await self.events.publish(RoomEvent.NUMBER_DRAWN, number=message.number, text=message.text)
        await self._scan_rows()

    async def _on_game_reset(self) -> None:
        self.game.clear()
        self._win_ready = False
        self._wait_cooldown.reset()
        self._finish_claim()
        self._save_session()
        await self.events.publish(RoomEvent.GAME_RESET)

    async def _scan_rows(self) -> None:
        """Raise win_ready once per round; send a throttled wait signal when a row is one away."""
        called = self.game.called_numbers
        if verify_win(self.sheets, called):
            if not self._win_ready:
                self._win_ready = True
                await self.events.publish(RoomEvent.WIN_READY)
            return
        if waiting_rows(self.sheets, called) and self._wait_cooldown.try_acquire():
            await self._send(WaitSignalMessage(player_id=self.identity).to_wire())

    # --- player actions ---

    async def claim_win(self) -> bool:
        """Ask the host to verify a win. Returns False when the claim was not sent."""
        if not self.connected or self._awaiting_claim:
            return False
        if not self._claim_cooldown.try_acquire():
            logger.info("claim throttled", remaining=self._claim_cooldown.remaining())
            return False
        if not await self._send(WinClaimMessage().to_wire()):
            return False
        self._awaiting_claim = True
        self._claim_timeout_task = asyncio.create_task(self._claim_timeout())
        return True

    async def _claim_timeout(self) -> None:
        await asyncio.sleep(self._settings.claim_timeout_seconds)
        self._claim_timeout_task = None
        self._awaiting_claim = False
        logger.info("no answer to win claim", timeout=self._settings.claim_timeout_seconds)
        await self.events.publish(RoomEvent.CLAIM_TIMEOUT)

    def _finish_claim(self) -> None:
        self._awaiting_claim = False
        task = self._claim_timeout_task
        self._claim_timeout_task = None
        if task is not None and not task.done():
            task.cancel()

    async def update_sheets(self, sheets: list[Sheet]) -> bool:
        """Replace the local sheets before the round starts and tell the host."""
        if self.game.started or not validate_sheets(sheets, MAX_SHEETS_PER_PLAYER):
            return False
        self.sheets = sheets
        self._save_session()
        if self.connected:
            await self._send(TicketUpdateMessage(sheets=sheets).to_wire())
        return True

    async def add_sheet(self) -> bool:
        """Play one more freshly generated sheet, up to MAX_SHEETS_PER_PLAYER."""
        if len(self.sheets) >= MAX_SHEETS_PER_PLAYER:
            return False
        return await self.update_sheets([*self.sheets, generate_sheet(self._rng)])

    async def remove_sheet(self, index: int) -> bool:
        """Drop the sheet at ``index``. The last remaining sheet is always kept."""
        if len(self.sheets) <= 1 or not 0 <= index < len(self.sheets):
            return False
        return await self.update_sheets([s for i, s in enumerate(self.sheets) if i != index])

    async def new_sheets(self) -> bool:
        """Swap every sheet for a single new one."""
        return await self.update_sheets([generate_sheet(self._rng)])

    async def send_emote(self, emoji: str) -> bool:
        if not self.connected or not self._emote_cooldown.try_acquire():
            return False
        return await self._send(EmoteMessage(emoji=emoji, sender_id=self.identity).to_wire())

    async def send_shout(self, text: str) -> bool:
        if not self.connected or not self._shout_cooldown.try_acquire():
            return False
        return await self._send(ShoutMessage(text=text, sender_id=self.identity).to_wire())

    async def _send(self, message: dict[str, Any]) -> bool:
        connection = self._connection
        if connection is None:
            return False
        try:
            await connection.send_message(message)
        except (ConnectionError, OSError, RuntimeError) as e:
            logger.info("send to host failed", error=str(e))
            return False
        return True

    # --- lifecycle ---

    async def _set_state(self, state: ConnectionState) -> None:
        if state != self.state:
            logger.debug("connection state", previous=self.state, state=state)
            self.state = state

    def _save_session(self) -> None:
        if self._store is None or self.room_code is None or not self.sheets:
            return
        self._store.save_session(self.room_code, self.name, self.sheets, self.identity)

    async def leave(self) -> None:
        """Disconnect on purpose and forget the saved session."""
        await self.close()
        if self._store is not None:
            self._store.clear_session()

    async def close(self) -> None:
        """Disconnect and stop all timers. The saved session is kept for a later resume."""
        for task in (self._reconnect_task, self._claim_timeout_task):
            if task is not None and not task.done() and task is not asyncio.current_task():
                task.cancel()
        self._reconnect_task = None
        self._claim_timeout_task = None
        self._awaiting_claim = False
        connection = self._connection
        self._connection = None
        self._heartbeat.fail()
        receive_task = self._receive_task
        self._receive_task = None
        if receive_task is not None and not receive_task.done() and receive_task is not asyncio.current_task():
            receive_task.cancel()
        if connection is not None:
            with contextlib.suppress(ConnectionError, OSError, RuntimeError):
                await connection.close()
        was_disconnected = self.state == ConnectionState.DISCONNECTED
        await self._set_state(ConnectionState.DISCONNECTED)
        if not was_disconnected:
            await self.events.publish(RoomEvent.DISCONNECTED, reason="closed")

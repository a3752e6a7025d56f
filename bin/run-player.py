"""Join a room as a player from the terminal.

Usage: python bin/run-player.py <room_code> [name]
       python bin/run-player.py --resume

Commands while connected: ``k`` claims a win, ``e <emoji>`` sends an emote,
``s <text>`` shouts, ``h`` checks the connection, ``q`` leaves.
"""

import asyncio
import sys
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

from game.client.player import PlayerClient
from game.client.transport import WebSocketConnector
from game.logic.enums import Role
from game.logic.exceptions import TransportError
from game.messaging.events import RoomEvent
from game.server.settings import PlayerSettings
from game.session.store import SessionStore
from shared.logging import setup_logging
from shared.storage import FileStorage


def print_sheets(client: PlayerClient) -> None:
    called = client.game.called_numbers
    for s, sheet in enumerate(client.sheets, start=1):
        print(f"Sheet {s}")
        for ticket in sheet:
            for row in ticket:
                cells = []
                for cell in row:
                    if cell is None:
                        cells.append("  .")
                    elif cell in called:
                        cells.append(f"*{cell:>2}")
                    else:
                        cells.append(f"{cell:>3}")
                print(" ".join(cells))
            print()


def subscribe_console(client: PlayerClient) -> None:
    events = client.events
    events.subscribe(RoomEvent.WELCOME, lambda **_: print_sheets(client))
    events.subscribe(RoomEvent.NUMBER_DRAWN, lambda number, text: print(f"Number {number} ({text})"))
    events.subscribe(RoomEvent.WIN_READY, lambda: print("A row is complete! Type k to claim."))
    events.subscribe(RoomEvent.WIN_CONFIRMED, lambda winner_name: print(f"Winner: {winner_name}"))
    events.subscribe(RoomEvent.WIN_REJECTED, lambda: print("Claim rejected."))
    events.subscribe(RoomEvent.CLAIM_TIMEOUT, lambda: print("No answer to the claim, try again."))
    events.subscribe(RoomEvent.TOAST, lambda message, style: print(f"[{style}] {message}"))
    events.subscribe(RoomEvent.EMOTE, lambda emoji, sender_id: print(f"{sender_id}: {emoji}"))
    events.subscribe(RoomEvent.SHOUT, lambda text, sender_id: print(f"{sender_id} shouts: {text}"))
    events.subscribe(RoomEvent.GAME_RESET, lambda: print("New round."))
    events.subscribe(
        RoomEvent.RECONNECTING,
        lambda attempt, max_attempts, delay: print(f"Reconnecting ({attempt}/{max_attempts}) in {delay:.0f}s"),
    )
    events.subscribe(RoomEvent.DISCONNECTED, lambda reason: print(f"Disconnected ({reason})"))


async def run_commands(client: PlayerClient) -> None:
    loop = asyncio.get_running_loop()
    while True:
        line = (await loop.run_in_executor(None, sys.stdin.readline)).strip()
        if not line or line == "q":
            return
        command, _, arg = line.partition(" ")
        if command == "k" and not await client.claim_win():
            print("Cannot claim right now.")
        elif command == "e" and arg:
            await client.send_emote(arg)
        elif command == "s" and arg:
            await client.send_shout(arg)
        elif command == "h":
            print("Connection OK" if await client.check_health() else "Connection lost, reconnecting")


async def main() -> None:
    if len(sys.argv) < 2:
        print(f"Usage: {sys.argv[0]} <room_code> [name] | --resume")
        sys.exit(1)

    settings = PlayerSettings()
    setup_logging(level=None, role="player")
    store = SessionStore(FileStorage(settings.storage_dir), Role.PLAYER)
    client = PlayerClient(
        WebSocketConnector(settings.server_url, settings.handshake_timeout_seconds),
        settings,
        store=store,
    )
    subscribe_console(client)

    try:
        if sys.argv[1] == "--resume":
            if not await client.resume_session():
                print("No saved session to resume.")
                sys.exit(1)
        else:
            name = sys.argv[2] if len(sys.argv) > 2 else ""  # noqa: PLR2004
            await client.join(sys.argv[1], name)
    except TransportError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Joined room {client.room_code} as {client.name}")
    try:
        await run_commands(client)
    finally:
        await client.leave()


if __name__ == "__main__":
    asyncio.run(main())

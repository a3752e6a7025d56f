"""Run the host server and open one room.

Usage: python bin/run-host.py

If a saved round from an earlier run is found, asks whether to resume it.
Further rooms can be opened through ``POST /rooms``.
"""

import asyncio
import sys
from pathlib import Path

# Add backend to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "backend"))

import uvicorn

from game.logic.enums import Role
from game.logic.exceptions import RoomCodeTakenError
from game.server.app import create_app
from game.server.settings import HostSettings
from game.session.host import RoomConfig
from game.session.registry import RoomRegistry
from game.session.store import HostState, SessionStore, resolve_host_restore
from shared.logging import setup_logging
from shared.storage import FileStorage


def confirm_restore(state: HostState) -> bool:
    answer = input(
        f"Found a saved round for room {state.room_code} with {len(state.called_numbers)} numbers called. "
        "Resume it? [y/N] ",
    )
    return answer.strip().lower() in ("y", "yes")


async def main() -> None:
    settings = HostSettings()
    setup_logging(log_dir=settings.log_dir, role="host")

    store = SessionStore(FileStorage(settings.storage_dir), Role.HOST)
    registry = RoomRegistry(
        RoomConfig.from_settings(settings),
        store=store,
        open_attempts=settings.open_room_attempts,
        retry_seconds=settings.open_room_retry_seconds,
    )

    restore = resolve_host_restore(store, confirm_restore)
    try:
        room = await registry.open_room(restore=restore)
    except RoomCodeTakenError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Room code: {room.room_code}")
    print(f"Players join with: ws://{settings.bind_host}:{settings.port}/ws/{room.room_code}")

    app = create_app(settings=settings, registry=registry, store=store)
    config = uvicorn.Config(app, host=settings.bind_host, port=settings.port, log_config=None)
    await uvicorn.Server(config).serve()


if __name__ == "__main__":
    asyncio.run(main())

import pytest

from game.logic.enums import Role
from game.logic.rng import create_rng
from game.messaging.router import MessageRouter
from game.server.settings import HostSettings
from game.session.host import HostRoom
from game.session.registry import RoomRegistry
from game.session.store import SessionStore
from game.tests.helpers.rooms import FAST_ROOM_CONFIG, TEST_SEED, make_sheet
from game.tests.mocks.connection import MockConnection
from shared.storage import MemoryStorage


@pytest.fixture
def rng():
    return create_rng(TEST_SEED)


@pytest.fixture
def sheet():
    return make_sheet()


@pytest.fixture
def host_store():
    return SessionStore(MemoryStorage(), Role.HOST)


@pytest.fixture
def player_store():
    return SessionStore(MemoryStorage(), Role.PLAYER)


@pytest.fixture
def room(host_store):
    return HostRoom("ABCDEF", FAST_ROOM_CONFIG, store=host_store, rng=create_rng(TEST_SEED))


@pytest.fixture
def registry(host_store):
    return RoomRegistry(FAST_ROOM_CONFIG, store=host_store, rng=create_rng(TEST_SEED), retry_seconds=0.01)


@pytest.fixture
def message_router(registry):
    return MessageRouter(registry, handshake_timeout_seconds=0.5)


@pytest.fixture
def mock_connection():
    return MockConnection("player-1")


@pytest.fixture
def host_settings():
    return HostSettings(
        auto_draw_interval_seconds=0.02,
        win_window_seconds=0.05,
        handshake_timeout_seconds=1.0,
        open_room_retry_seconds=0.01,
        max_decode_errors=3,
        rate_limit_rate=1000.0,
        rate_limit_burst=1000,
    )

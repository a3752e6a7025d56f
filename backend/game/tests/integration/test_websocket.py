"""Integration tests for WebSocket and HTTP endpoints.

These tests drive the host server through the starlette test client: HTTP
control routes, the WebSocket handshake and close codes, MessagePack framing,
and full draw/claim rounds with real player sockets.
"""

import pytest
from starlette.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from game.logic.room_code import is_valid_room_code
from game.messaging.types import CloseCode, ErrorCode
from game.server.app import create_app
from game.tests.helpers.rooms import first_row
from game.tests.helpers.websocket import open_room, recv_until, recv_ws, say_hello, send_ws
from shared.build_info import get_build_info


@pytest.fixture
def app(host_settings, registry, host_store):
    return create_app(settings=host_settings, registry=registry, store=host_store)


@pytest.fixture
def client(app):
    with TestClient(app) as client:
        yield client


class TestHttpEndpoints:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_status_counts_rooms(self, client):
        open_room(client)
        data = client.get("/status").json()
        assert data["rooms"] == 1
        assert data["active_rooms"] == 0
        assert data["connected_players"] == 0

    def test_health_and_status_report_build(self, client, monkeypatch):
        monkeypatch.setenv("LOTO_BUILD_VERSION", "1.4.0")
        monkeypatch.setenv("LOTO_BUILD_COMMIT", "abc1234")
        get_build_info.cache_clear()
        try:
            open_room(client)
            health = client.get("/health").json()
            status = client.get("/status").json()
        finally:
            get_build_info.cache_clear()
        assert health == {"status": "ok", "version": "1.4.0", "commit": "abc1234"}
        assert status["version"] == "1.4.0"
        assert status["commit"] == "abc1234"
        assert status["rooms"] == 1

    def test_open_room(self, client):
        response = client.post("/rooms")
        assert response.status_code == 201
        data = response.json()
        assert is_valid_room_code(data["room_code"])
        assert data["identity"] == f"loto-{data['room_code']}"
        assert data["restored"] is False

    @pytest.mark.parametrize("body", ['{"restore": "maybe"}', '{"unknown": 1}', "[1, 2]", "{not json"])
    def test_open_room_rejects_bad_body(self, client, body):
        response = client.post("/rooms", content=body)
        assert response.status_code == 400

    def test_open_room_at_capacity(self, host_settings, registry, host_store):
        settings = host_settings.model_copy(update={"max_rooms": 1})
        with TestClient(create_app(settings=settings, registry=registry, store=host_store)) as client:
            open_room(client)
            assert client.post("/rooms").status_code == 503

    def test_restore_saved_round(self, client, host_store):
        host_store.save_host_state("QWERTY", [3, 1, 2], 2)
        response = client.post("/rooms", json={"restore": True})
        assert response.status_code == 201
        assert response.json() == {"room_code": "QWERTY", "identity": "loto-QWERTY", "restored": True}
        summary = client.get("/rooms/QWERTY").json()
        assert summary["called_numbers"] == [1, 2, 3]
        assert summary["current_number"] == 2
        assert summary["started"] is True

    def test_declined_restore_discards_saved_round(self, client, host_store):
        host_store.save_host_state("QWERTY", [1], 1)
        data = client.post("/rooms", json={"restore": False}).json()
        assert data["restored"] is False
        assert host_store.load_host_state() is None

    def test_get_room_accepts_lowercase_code(self, client):
        code = open_room(client)
        response = client.get(f"/rooms/{code.lower()}")
        assert response.status_code == 200
        assert response.json()["room_code"] == code

    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("get", "/rooms/ZZZZZZ"),
            ("delete", "/rooms/ZZZZZZ"),
            ("post", "/rooms/ZZZZZZ/draw"),
            ("post", "/rooms/ZZZZZZ/reset"),
        ],
    )
    def test_unknown_room_is_404(self, client, method, path):
        assert getattr(client, method)(path).status_code == 404

    def test_close_room(self, client):
        code = open_room(client)
        assert client.delete(f"/rooms/{code}").json() == {"status": "closed"}
        assert client.get(f"/rooms/{code}").status_code == 404

    def test_draw_and_reset(self, client):
        code = open_room(client)
        data = client.post(f"/rooms/{code}/draw").json()
        assert 1 <= data["number"] <= 90
        assert data["remaining"] == 89

        assert client.post(f"/rooms/{code}/reset").json() == {"status": "reset"}
        summary = client.get(f"/rooms/{code}").json()
        assert summary["called_numbers"] == []
        assert summary["started"] is False

    def test_draw_until_exhausted(self, client):
        code = open_room(client)
        numbers = [client.post(f"/rooms/{code}/draw").json()["number"] for _ in range(90)]
        assert sorted(numbers) == list(range(1, 91))
        response = client.post(f"/rooms/{code}/draw")
        assert response.status_code == 409

    def test_auto_draw_toggle(self, client):
        code = open_room(client)
        response = client.post(f"/rooms/{code}/auto-draw", json={"enabled": True, "interval_seconds": 1})
        assert response.json() == {"auto_draw": True}
        response = client.post(f"/rooms/{code}/auto-draw", json={"enabled": False})
        assert response.json() == {"auto_draw": False}

    @pytest.mark.parametrize("body", [{"enabled": "yes"}, {"enabled": True, "interval_seconds": 0}, {}])
    def test_auto_draw_rejects_bad_body(self, client, body):
        code = open_room(client)
        assert client.post(f"/rooms/{code}/auto-draw", json=body).status_code == 400

    def test_voice_mode(self, client):
        code = open_room(client)
        assert client.post(f"/rooms/{code}/voice-mode", json={"mode": "google"}).json() == {"voice_mode": "google"}
        assert client.post(f"/rooms/{code}/voice-mode", json={"mode": "loud"}).status_code == 400

    def test_toast_validation(self, client):
        code = open_room(client)
        assert client.post(f"/rooms/{code}/toast", json={"message": "Hi"}).status_code == 200
        assert client.post(f"/rooms/{code}/toast", json={"message": ""}).status_code == 400


class TestWebSocketHandshake:
    def test_hello_gets_welcome(self, client):
        code = open_room(client)
        with client.websocket_connect(f"/ws/{code}?peer=p1") as ws:
            welcome = say_hello(ws, name="An")
        assert welcome["name"] == "An"
        assert len(welcome["sheets"]) == 1
        assert welcome["gameState"] == {"calledNumbers": [], "gameStarted": False, "currentNumber": None}
        assert welcome["voiceMode"] == "real"

    def test_welcome_returns_supplied_sheets(self, client, sheet):
        code = open_room(client)
        with client.websocket_connect(f"/ws/{code}?peer=p1") as ws:
            welcome = say_hello(ws, name="An", sheets=[sheet])
        assert welcome["sheets"] == [sheet]

    @pytest.mark.parametrize("path", ["/ws/ABCDEF", "/ws/ABCDEF?peer=bad%20id", "/ws/ABC?peer=p1"])
    def test_invalid_request_is_refused(self, client, path):
        with pytest.raises(WebSocketDisconnect) as exc_info, client.websocket_connect(path):
            pass
        assert exc_info.value.code == CloseCode.INVALID_REQUEST

    def test_unknown_room(self, client):
        with client.websocket_connect("/ws/ZZZZZZ?peer=p1") as ws, pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_bytes()
        assert exc_info.value.code == CloseCode.PEER_UNAVAILABLE

    def test_identity_taken(self, client):
        code = open_room(client)
        with client.websocket_connect(f"/ws/{code}?peer=p1") as first:
            say_hello(first, name="An")
            with client.websocket_connect(f"/ws/{code}?peer=p1") as second, pytest.raises(WebSocketDisconnect) as exc:
                second.receive_bytes()
        assert exc.value.code == CloseCode.IDENTITY_TAKEN

    def test_first_frame_must_be_hello(self, client):
        code = open_room(client)
        with client.websocket_connect(f"/ws/{code}?peer=p1") as ws:
            send_ws(ws, {"type": "winClaim"})
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()
        assert exc_info.value.code == CloseCode.HANDSHAKE_FAILED

    def test_identity_migration_keeps_record(self, client, sheet):
        code = open_room(client)
        with client.websocket_connect(f"/ws/{code}?peer=old") as ws:
            say_hello(ws, name="An", sheets=[sheet])
        with client.websocket_connect(f"/ws/{code}?peer=new") as ws:
            welcome = say_hello(ws, name="Other", last_session_id="old")
            players = client.get(f"/rooms/{code}").json()["players"]
        assert welcome["name"] == "An"
        assert welcome["sheets"] == [sheet]
        assert [(p["identity"], p["connected"]) for p in players] == [("new", True)]


class TestWebSocketRound:
    def test_draw_is_broadcast(self, client):
        code = open_room(client)
        with client.websocket_connect(f"/ws/{code}?peer=p1") as ws:
            say_hello(ws, name="An")
            number = client.post(f"/rooms/{code}/draw").json()["number"]
            message = recv_ws(ws)
        assert message["type"] == "numberDrawn"
        assert message["number"] == number
        assert message["text"]

    def test_valid_claim_is_confirmed(self, client, host_store, sheet):
        host_store.save_host_state("QWERTY", first_row(sheet), None)
        code = open_room(client, restore=True)
        with client.websocket_connect(f"/ws/{code}?peer=p1") as ws:
            say_hello(ws, name="An", sheets=[sheet])
            send_ws(ws, {"type": "winClaim"})
            confirmed = recv_until(ws, "winConfirmed")
        assert confirmed == {"type": "winConfirmed", "winnerName": "An"}

    def test_false_claim_is_rejected_and_announced(self, client):
        code = open_room(client)
        with (
            client.websocket_connect(f"/ws/{code}?peer=p1") as cheater,
            client.websocket_connect(f"/ws/{code}?peer=p2") as other,
        ):
            say_hello(cheater, name="An")
            say_hello(other, name="Binh")
            send_ws(cheater, {"type": "winClaim"})
            assert recv_ws(cheater) == {"type": "winRejected"}
            toast = recv_until(other, "toast")
        assert "An" in toast["message"]
        assert toast["style"] == "error"

    def test_emote_is_relayed(self, client):
        code = open_room(client)
        with (
            client.websocket_connect(f"/ws/{code}?peer=p1") as sender,
            client.websocket_connect(f"/ws/{code}?peer=p2") as receiver,
        ):
            say_hello(sender, name="An")
            say_hello(receiver, name="Binh")
            send_ws(sender, {"type": "emote", "emoji": "🎉"})
            message = recv_ws(receiver)
        assert message == {"type": "emote", "emoji": "🎉", "senderId": "p1"}

    def test_ping_pong(self, client):
        code = open_room(client)
        with client.websocket_connect(f"/ws/{code}?peer=p1") as ws:
            say_hello(ws)
            send_ws(ws, {"type": "ping"})
            assert recv_ws(ws) == {"type": "pong"}

    def test_disconnect_marks_player_offline(self, client):
        code = open_room(client)
        with client.websocket_connect(f"/ws/{code}?peer=p1") as ws:
            say_hello(ws, name="An")
            assert client.get(f"/rooms/{code}").json()["players"][0]["connected"] is True
        players = client.get(f"/rooms/{code}").json()["players"]
        assert players[0]["connected"] is False


class TestWebSocketGuards:
    def test_too_many_decode_errors_closes(self, client):
        code = open_room(client)
        with client.websocket_connect(f"/ws/{code}?peer=p1") as ws:
            say_hello(ws)
            for _ in range(3):
                ws.send_bytes(b"\xc1")
                assert recv_ws(ws)["code"] == ErrorCode.INVALID_MESSAGE
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_bytes()
        assert exc_info.value.code == CloseCode.TOO_MANY_DECODE_ERRORS

    def test_rate_limited_messages_get_error(self, host_settings, registry, host_store):
        settings = host_settings.model_copy(update={"rate_limit_rate": 0.001, "rate_limit_burst": 2})
        with TestClient(create_app(settings=settings, registry=registry, store=host_store)) as client:
            code = open_room(client)
            with client.websocket_connect(f"/ws/{code}?peer=p1") as ws:
                say_hello(ws)
                for _ in range(3):
                    send_ws(ws, {"type": "ping"})
                replies = [recv_ws(ws) for _ in range(3)]
        assert replies[:2] == [{"type": "pong"}, {"type": "pong"}]
        assert replies[2]["code"] == ErrorCode.RATE_LIMITED

    def test_invalid_message_reports_error(self, client):
        code = open_room(client)
        with client.websocket_connect(f"/ws/{code}?peer=p1") as ws:
            say_hello(ws)
            send_ws(ws, {"type": "numberDrawn", "number": 5})
            assert recv_ws(ws)["code"] == ErrorCode.INVALID_MESSAGE

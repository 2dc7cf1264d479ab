import asyncio
import json

import pytest

from conftest import SCENARIO_4X4, FakeWebSocket, make_cards, make_config
from memory_battle.constants import (
    MSG_CARD_FLIPPED,
    MSG_CONNECTED,
    MSG_ERROR,
    MSG_GAME_ENDED,
    MSG_GAME_STARTED,
    MSG_JOINED_ROOM,
    MSG_LEFT_ROOM,
    MSG_MATCH_RESULT,
    MSG_PLAYER_JOINED,
    MSG_PLAYER_LEFT,
    MSG_PONG,
    MSG_TURN_CHANGED,
    MSG_TURN_TIME_UPDATE,
    MSG_TURN_TIMEOUT,
    STATUS_FINISHED,
    STATUS_PLAYING,
    STATUS_WAITING,
    VERSION,
)
from memory_battle.ws_handlers import IDLE_CLOSE_CODE, GameServer


def raw(msg_type: str, payload=None) -> str:
    msg = {"type": msg_type}
    if payload is not None:
        msg["payload"] = payload
    return json.dumps(msg)


async def settle(seconds: float = 0.02) -> None:
    await asyncio.sleep(seconds)


async def shutdown(server: GameServer) -> None:
    for room in server.registry:
        room.cancel_tasks()
    await asyncio.sleep(0)


@pytest.fixture
async def game_server():
    server = GameServer(config=make_config())
    yield server
    await shutdown(server)


def connect(server: GameServer, **kwargs):
    ws = FakeWebSocket(**kwargs)
    return server.manager.connect(ws), ws


async def join(server, conn, name="Player", grid_size="4x4"):
    await server.handle_ws_message(conn, raw("JOIN_GAME", {"playerName": name, "gridSize": grid_size}))


async def start_pair(server):
    """Два игрока в одной комнате 4x4, партия стартовала, колода из SCENARIO_4X4."""
    a, ws_a = connect(server)
    b, ws_b = connect(server)
    await join(server, a, "Alice")
    await join(server, b, "Bob")
    await settle()
    room = server.registry.get(a.room_id)
    room.cards = make_cards(SCENARIO_4X4)
    return room, (a, ws_a), (b, ws_b)


async def flip(server, conn, index):
    await server.handle_ws_message(conn, raw("FLIP_CARD", {"cardIndex": index}))


def assert_all_redacted(*sockets):
    for ws in sockets:
        for msg in ws.sent:
            state = msg.get("roomState")
            if not state:
                continue
            for card in state["cards"]:
                if not card["isFlipped"] and not card["isMatched"]:
                    assert card["symbol"] is None and card["symbolId"] is None


class TestJoin:
    async def test_two_players_auto_start(self, game_server):
        a, ws_a = connect(game_server)
        b, ws_b = connect(game_server)
        await join(game_server, a, "Alice")
        assert ws_a.types() == [MSG_PLAYER_JOINED, MSG_JOINED_ROOM]
        joined = ws_a.of_type(MSG_JOINED_ROOM)[0]
        assert joined["playerIndex"] == 0
        assert joined["roomId"] == a.room_id
        assert joined["playerId"] == a.player_id

        await join(game_server, b, "Bob")
        assert b.room_id == a.room_id
        assert ws_b.of_type(MSG_JOINED_ROOM)[0]["playerIndex"] == 1
        assert ws_a.of_type(MSG_PLAYER_JOINED)[-1]["player"]["name"] == "Bob"
        assert MSG_GAME_STARTED not in ws_a.types()

        await settle()
        room = game_server.registry.get(a.room_id)
        assert room.status == STATUS_PLAYING
        assert room.timer.running
        assert ws_a.types()[-1] == MSG_GAME_STARTED
        assert ws_b.types()[-1] == MSG_GAME_STARTED
        assert_all_redacted(ws_a, ws_b)

    async def test_default_name_and_avatar(self, game_server):
        a, ws_a = connect(game_server)
        await game_server.handle_ws_message(a, raw("JOIN_GAME", {"playerName": ""}))
        player = ws_a.of_type(MSG_PLAYER_JOINED)[0]["player"]
        assert player["name"] == "Player"
        assert player["avatar"] == "👤"

    async def test_rejoin_leaves_previous_room(self, game_server):
        a, _ = connect(game_server)
        await join(game_server, a, grid_size="4x4")
        first_room = a.room_id
        await join(game_server, a, grid_size="6x6")
        assert a.room_id != first_room
        assert first_room not in game_server.registry
        assert len(game_server.registry) == 1

    async def test_broadcast_survives_failed_socket(self, game_server):
        a, ws_a = connect(game_server)
        b, _ = connect(game_server, fail=True)
        await join(game_server, a, "Alice")
        await join(game_server, b, "Bob")
        await settle()
        assert ws_a.of_type(MSG_PLAYER_JOINED)[-1]["player"]["name"] == "Bob"
        assert MSG_GAME_STARTED in ws_a.types()


class TestFlip:
    async def test_scenario_over_the_wire(self, game_server):
        room, (a, ws_a), (b, ws_b) = await start_pair(game_server)

        await flip(game_server, a, 0)
        await flip(game_server, a, 5)
        flipped = ws_b.of_type(MSG_CARD_FLIPPED)
        assert [m["cardIndex"] for m in flipped] == [0, 5]
        assert flipped[0]["card"]["symbolId"] == 3
        await settle()
        result = ws_b.of_type(MSG_MATCH_RESULT)[-1]
        assert result["isMatch"] is True
        assert result["playerId"] == a.player_id
        assert result["playerScore"] == 1
        assert room.current_player_index == 0

        await flip(game_server, a, 1)
        await flip(game_server, a, 2)
        await settle()
        assert ws_a.of_type(MSG_MATCH_RESULT)[-1]["isMatch"] is False
        changed = ws_a.of_type(MSG_TURN_CHANGED)[-1]
        assert changed["currentPlayerIndex"] == 1
        assert room.matched_pairs == 1
        assert room.timer.running
        assert_all_redacted(ws_a, ws_b)

    async def test_out_of_turn_gets_targeted_error(self, game_server):
        room, (a, ws_a), (b, ws_b) = await start_pair(game_server)
        sent_to_a = len(ws_a.sent)
        await flip(game_server, b, 0)
        assert ws_b.sent[-1] == {"type": MSG_ERROR, "message": "Not your turn!"}
        assert len(ws_a.sent) == sent_to_a
        assert room.flipped_indices == []

    async def test_flip_without_room(self, game_server):
        a, ws_a = connect(game_server)
        await flip(game_server, a, 0)
        assert ws_a.sent == [{"type": MSG_ERROR, "message": "Not in a room"}]

    async def test_flip_before_start(self, game_server):
        a, ws_a = connect(game_server)
        await join(game_server, a)
        await flip(game_server, a, 0)
        assert ws_a.sent[-1]["type"] == MSG_ERROR

    async def test_invalid_payload_gets_error(self, game_server):
        a, ws_a = connect(game_server)
        await game_server.handle_ws_message(a, raw("FLIP_CARD", {"cardIndex": "zero"}))
        assert ws_a.sent[-1]["type"] == MSG_ERROR

    async def test_protocol_error_is_dropped(self, game_server):
        a, ws_a = connect(game_server)
        await game_server.handle_ws_message(a, "{broken")
        await game_server.handle_ws_message(a, raw("DANCE"))
        await game_server.handle_ws_message(a, b"\x80\x81")
        assert ws_a.sent == []

    async def test_stale_resolution_is_ignored(self):
        server = GameServer(config=make_config(match_check_delay=0.01))
        room, (a, ws_a), _ = await start_pair(server)
        await flip(server, a, 1)
        await flip(server, a, 2)
        # Таймаут хода раньше, чем сработает отложенное сравнение
        room.timeout_turn()
        await settle(0.05)
        assert ws_a.of_type(MSG_MATCH_RESULT) == []
        assert room.current_player_index == 1
        await shutdown(server)


class TestGameEnd:
    async def _finish(self, server):
        room, (a, ws_a), (b, ws_b) = await start_pair(server)
        for card in room.cards[:14]:
            card.is_matched = True
        room.matched_pairs = 7
        await flip(server, a, 14)
        await flip(server, a, 15)
        await settle()
        return room, (a, ws_a), (b, ws_b)

    async def test_last_pair_ends_game(self, game_server):
        room, (a, ws_a), _ = await self._finish(game_server)
        ended = ws_a.of_type(MSG_GAME_ENDED)
        assert len(ended) == 1
        assert ended[0]["winnerId"] == a.player_id
        assert room.status == STATUS_FINISHED
        assert not room.timer.running

    async def test_rematch(self, game_server):
        room, (a, ws_a), (b, ws_b) = await self._finish(game_server)
        await game_server.handle_ws_message(b, raw("REMATCH"))
        assert ws_a.types()[-1] == MSG_GAME_STARTED
        assert ws_b.types()[-1] == MSG_GAME_STARTED
        assert room.status == STATUS_PLAYING
        assert room.matched_pairs == 0
        assert room.timer.running

    async def test_rematch_during_game_is_rejected(self, game_server):
        room, (a, ws_a), _ = await start_pair(game_server)
        await game_server.handle_ws_message(a, raw("REMATCH"))
        assert ws_a.sent[-1]["type"] == MSG_ERROR
        assert room.status == STATUS_PLAYING


class TestLeave:
    async def test_leave_notifies_opponent(self, game_server):
        room, (a, ws_a), (b, ws_b) = await start_pair(game_server)
        player_a = a.player_id
        await game_server.handle_ws_message(a, raw("LEAVE_ROOM"))
        assert ws_a.sent[-1] == {"type": MSG_LEFT_ROOM}
        assert not a.in_room
        left = ws_b.sent[-1]
        assert left["type"] == MSG_PLAYER_LEFT
        assert left["playerId"] == player_a
        assert room.status == STATUS_WAITING
        assert room.get_player(player_a) is None
        assert not room.timer.running

        await game_server.handle_ws_message(b, raw("LEAVE_ROOM"))
        assert room.id not in game_server.registry
        assert len(game_server.registry) == 0

    async def test_leave_without_room(self, game_server):
        a, ws_a = connect(game_server)
        await game_server.handle_ws_message(a, raw("LEAVE_ROOM"))
        assert ws_a.sent == [{"type": MSG_LEFT_ROOM}]

    async def test_leave_cancels_pending_resolution(self):
        server = GameServer(config=make_config(match_check_delay=0.01))
        room, (a, ws_a), (b, ws_b) = await start_pair(server)
        await flip(server, a, 1)
        await flip(server, a, 2)
        await server.handle_ws_message(b, raw("LEAVE_ROOM"))
        await settle(0.05)
        assert ws_a.of_type(MSG_MATCH_RESULT) == []
        assert room.status == STATUS_WAITING
        await shutdown(server)

    async def test_remaining_player_can_be_matched_again(self, game_server):
        room, (a, _), (b, _) = await start_pair(game_server)
        await game_server.handle_ws_message(a, raw("LEAVE_ROOM"))
        c, ws_c = connect(game_server)
        await join(game_server, c, "Carol")
        assert c.room_id == room.id
        await settle()
        assert room.status == STATUS_PLAYING
        assert MSG_GAME_STARTED in ws_c.types()


class TestConnectionLoop:
    async def test_connected_then_disconnect_cleans_up(self, game_server):
        b, ws_b = connect(game_server)
        await join(game_server, b, "Bob")
        ws_a = FakeWebSocket(incoming=[raw("JOIN_GAME", {"playerName": "Alice"})])
        await game_server.ws_loop(ws_a)
        assert ws_a.accepted
        assert ws_a.sent[0] == {"type": MSG_CONNECTED, "version": VERSION}
        assert MSG_JOINED_ROOM in ws_a.types()
        room = game_server.registry.get(b.room_id)
        assert len(room.players) == 1
        assert ws_b.sent[-1]["type"] == MSG_PLAYER_LEFT
        assert len(game_server.manager) == 1
        await settle()
        assert MSG_GAME_STARTED not in ws_b.types()

    async def test_last_player_disconnect_removes_room(self, game_server):
        ws = FakeWebSocket(incoming=[raw("JOIN_GAME")])
        await game_server.ws_loop(ws)
        assert len(game_server.registry) == 0
        assert len(game_server.manager) == 0

    async def test_binary_frames_keep_session(self, game_server):
        b, ws_b = connect(game_server)
        await join(game_server, b, "Bob")
        ws_a = FakeWebSocket(incoming=[
            raw("JOIN_GAME", {"playerName": "Alice"}).encode(),
            b"\x80\x81",
            raw("PING").encode(),
        ], block=True)
        task = asyncio.create_task(game_server.ws_loop(ws_a))
        await settle()
        assert MSG_JOINED_ROOM in ws_a.types()
        assert MSG_PONG in ws_a.types()
        assert MSG_PLAYER_LEFT not in ws_b.types()
        room = game_server.registry.get(b.room_id)
        assert len(room.players) == 2
        assert room.status == STATUS_PLAYING
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert ws_b.sent[-1]["type"] == MSG_PLAYER_LEFT

    async def test_ping(self, game_server):
        ws = FakeWebSocket(incoming=[raw("PING")])
        await game_server.ws_loop(ws)
        assert ws.types() == [MSG_CONNECTED, MSG_PONG]

    async def test_idle_connection_is_closed(self):
        server = GameServer(config=make_config(idle_timeout=0.02))
        ws = FakeWebSocket(incoming=[raw("JOIN_GAME")], block=True)
        await asyncio.wait_for(server.ws_loop(ws), 1)
        assert ws.close_code == IDLE_CLOSE_CODE
        assert len(server.registry) == 0


class TestTurnTimer:
    async def test_timer_times_out_turn(self):
        server = GameServer(config=make_config(turn_time_limit=2, warning_threshold=1, tick_interval=0.01))
        room, (a, ws_a), _ = await start_pair(server)
        await settle(0.035)
        warnings = ws_a.of_type(MSG_TURN_TIME_UPDATE)
        timeouts = ws_a.of_type(MSG_TURN_TIMEOUT)
        assert warnings and warnings[0]["timeLeft"] == 1
        assert timeouts and timeouts[0]["currentPlayerIndex"] == 1
        assert timeouts[0]["roomState"]["turnTimeLeft"] == 2
        assert room.timer.running
        await shutdown(server)

    async def test_timer_stops_when_room_destroyed(self):
        server = GameServer(config=make_config(tick_interval=0.01))
        room, (a, _), (b, _) = await start_pair(server)
        timer = room.timer
        await server.leave(a)
        await server.leave(b)
        assert not timer.running
        left = room.turn_time_left
        await settle(0.05)
        assert room.turn_time_left == left

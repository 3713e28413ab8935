"""
Tests for the "21" turn engine: turn advancement, ignored actions and
exactly-once round resolution
"""
import random
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import FinishedGame
from core import outcome
from core.chat_log import list_messages
from core.exceptions import NotAuthorized, RoomNotFound
from core.game_manager import GameManager
from core.locks import in_flight
from core.room_manager import RoomManager
from tests.helpers import ALICE, BOB, CAROL, cards, clear_game_state, set_game_state, start_room


def _state(db, room_id):
    return RoomManager.get_room_by_id(db, room_id).game_state


def _finished(db, room_id):
    return (
        db.query(FinishedGame)
        .filter(FinishedGame.room_id == room_id)
        .order_by(FinishedGame.game_number)
        .all()
    )


# ============ Deal ============

def test_initialize_game_waits_for_start(db):
    room = RoomManager.create_room(db, ALICE, "Three", 3)

    result = GameManager.initialize_game(db, room.id, "alice")
    RoomManager.join_room(db, room.id, BOB)
    start_room(db, room.id, ALICE, BOB)

    room = RoomManager.get_room_by_id(db, room.id)
    assert result.reason == outcome.NOT_STARTED
    assert room.game_number == 1
    assert [h["user_id"] for h in room.game_state["players"]] == ["alice", "bob"]


def test_initialize_game_requires_membership(db, started_room):
    clear_game_state(db, started_room.id)

    result = GameManager.initialize_game(db, started_room.id, "mallory")

    assert result.reason == outcome.NOT_MEMBER
    assert _state(db, started_room.id) is None
    assert RoomManager.get_room_by_id(db, started_room.id).game_number == 1


def test_initialize_game_is_idempotent(db, started_room, monkeypatch):
    monkeypatch.setattr(GameManager, "rng", random.Random(5))
    clear_game_state(db, started_room.id)

    first = GameManager.initialize_game(db, started_room.id, "bob")
    dealt = _state(db, started_room.id)
    second = GameManager.initialize_game(db, started_room.id, "alice")

    assert first.applied and first.value == 2
    assert not second.applied and second.reason == outcome.GAME_EXISTS
    assert _state(db, started_room.id) == dealt
    assert RoomManager.get_room_by_id(db, started_room.id).game_number == 2


def test_initialize_game_keeps_started_deal(db, started_room):
    result = GameManager.initialize_game(db, started_room.id, "bob")

    assert result.reason == outcome.GAME_EXISTS
    assert RoomManager.get_room_by_id(db, started_room.id).game_number == 1


def test_initialize_unknown_room(db):
    with pytest.raises(RoomNotFound):
        GameManager.initialize_game(db, "missing", "alice")


# ============ Hit / stand ============

def test_hit_without_bust_keeps_turn(db, started_room):
    set_game_state(db, started_room.id, [("alice", cards("2", "3")), ("bob", cards("10", "8"))],
                   deck=cards("4", "K", suit="♦"))

    result = GameManager.hit(db, started_room.id, "alice")

    state = _state(db, started_room.id)
    assert result.applied
    assert result.value["id"] == "♦-4"
    assert [c["rank"] for c in state["players"][0]["cards"]] == ["2", "3", "4"]
    assert [c["rank"] for c in state["deck"]] == ["K"]
    assert state["current_player_index"] == 0
    assert state["round_ended"] is False


def test_hit_bust_passes_turn(db, started_room):
    set_game_state(db, started_room.id, [("alice", cards("10", "9")), ("bob", cards("10", "8"))],
                   deck=cards("5", "2", suit="♦"))

    GameManager.hit(db, started_room.id, "alice")

    state = _state(db, started_room.id)
    assert state["current_player_index"] == 1
    assert state["round_ended"] is False


def test_stand_passes_turn(db, started_room):
    set_game_state(db, started_room.id, [("alice", cards("10", "9")), ("bob", cards("10", "8"))])

    result = GameManager.stand(db, started_room.id, "alice")

    state = _state(db, started_room.id)
    assert result.applied
    assert state["players"][0]["passed"] is True
    assert state["current_player_index"] == 1


def test_stand_ending_round_keeps_index(db, started_room):
    set_game_state(db, started_room.id, [("alice", cards("10", "9"), True), ("bob", cards("10", "8"))],
                   current=1)

    GameManager.stand(db, started_room.id, "bob")

    state = _state(db, started_room.id)
    assert state["round_ended"] is True
    assert state["current_player_index"] == 1


def test_turn_wraps_to_first_player(db):
    room = RoomManager.create_room(db, ALICE, "Three", 3)
    RoomManager.join_room(db, room.id, BOB)
    RoomManager.join_room(db, room.id, CAROL)
    set_game_state(db, room.id, [
        ("alice", cards("10", "9")),
        ("bob", cards("10", "8"), True),
        ("carol", cards("10", "7")),
    ], current=2)

    GameManager.stand(db, room.id, "carol")

    assert _state(db, room.id)["current_player_index"] == 0


@pytest.mark.parametrize("hands, current, round_ended, caller, reason", [
    ([("alice", cards("10", "9")), ("bob", cards("10", "8"))], 0, False, "bob", outcome.NOT_YOUR_TURN),
    ([("alice", cards("10", "9"), True), ("bob", cards("10", "8"))], 0, False, "alice", outcome.ALREADY_PASSED),
    ([("alice", cards("10", "9", "5")), ("bob", cards("10", "8"))], 0, False, "alice", outcome.BUSTED),
    ([("alice", cards("10", "9"), True), ("bob", cards("10", "8"), True)], 1, True, "bob", outcome.ROUND_ENDED),
])
def test_hit_and_stand_ignored(db, started_room, hands, current, round_ended, caller, reason):
    set_game_state(db, started_room.id, hands, current=current, round_ended=round_ended)
    before = _state(db, started_room.id)

    hit = GameManager.hit(db, started_room.id, caller)
    stand = GameManager.stand(db, started_room.id, caller)

    assert (hit.status, hit.reason) == (outcome.IGNORED, reason)
    assert (stand.status, stand.reason) == (outcome.IGNORED, reason)
    assert _state(db, started_room.id) == before


def test_hit_without_game(db, room):
    assert GameManager.hit(db, room.id, "alice").reason == outcome.NO_GAME


def test_hit_with_empty_deck(db, started_room):
    set_game_state(db, started_room.id, [("alice", cards("10", "2")), ("bob", cards("10", "8"))], deck=[])

    result = GameManager.hit(db, started_room.id, "alice")

    assert result.reason == outcome.DECK_EXHAUSTED
    assert GameManager.stand(db, started_room.id, "alice").applied


def test_duplicate_hit_in_flight_is_ignored(db, started_room):
    set_game_state(db, started_room.id, [("alice", cards("2", "3")), ("bob", cards("10", "8"))])
    key = (started_room.id, "alice", "hit")

    assert in_flight.try_acquire(key)
    try:
        result = GameManager.hit(db, started_room.id, "alice")
    finally:
        in_flight.release(key)

    assert result.reason == outcome.IN_FLIGHT
    assert len(_state(db, started_room.id)["players"][0]["cards"]) == 2
    assert GameManager.hit(db, started_room.id, "alice").applied


# ============ Departed players ============

def test_kick_of_last_active_hand_resolves_round(db, started_room):
    room_id = started_room.id
    set_game_state(db, room_id, [("alice", cards("10", "9")), ("bob", cards("10", "5"))])
    GameManager.stand(db, room_id, "alice")

    RoomManager.kick_player(db, room_id, "alice", "bob")

    state = _state(db, room_id)
    games = _finished(db, room_id)
    assert state["players"][1]["passed"] is True
    assert state["round_ended"] is True
    assert len(games) == 1
    assert state["game_id"] == games[0].id
    assert games[0].winner["user_id"] == "alice"
    assert games[0].participants == ["alice", "bob"]
    assert GameManager.start_new_game(db, room_id, "alice").applied
    assert [h["user_id"] for h in _state(db, room_id)["players"]] == ["alice"]


def test_kicked_player_cannot_act(db):
    room = RoomManager.create_room(db, ALICE, "Three", 3)
    RoomManager.join_room(db, room.id, BOB)
    RoomManager.join_room(db, room.id, CAROL)
    set_game_state(db, room.id, [
        ("alice", cards("10", "9"), True),
        ("bob", cards("2", "3")),
        ("carol", cards("10", "7")),
    ], current=1)

    RoomManager.kick_player(db, room.id, "alice", "bob")
    before = _state(db, room.id)

    hit = GameManager.hit(db, room.id, "bob")
    stand = GameManager.stand(db, room.id, "bob")

    assert before["current_player_index"] == 2
    assert (hit.status, hit.reason) == (outcome.IGNORED, outcome.NOT_MEMBER)
    assert (stand.status, stand.reason) == (outcome.IGNORED, outcome.NOT_MEMBER)
    assert _state(db, room.id) == before


def test_stand_skips_departed_player(db):
    room = RoomManager.create_room(db, ALICE, "Three", 3)
    RoomManager.join_room(db, room.id, BOB)
    RoomManager.join_room(db, room.id, CAROL)
    set_game_state(db, room.id, [
        ("alice", cards("10", "9")),
        ("bob", cards("10", "8")),
        ("carol", cards("10", "7")),
    ])

    RoomManager.leave_room(db, room.id, BOB)
    GameManager.stand(db, room.id, "alice")

    state = _state(db, room.id)
    assert state["current_player_index"] == 2
    assert state["round_ended"] is False
    assert GameManager.stand(db, room.id, "carol").applied
    assert _state(db, room.id)["round_ended"] is True


def test_leaving_on_own_turn_passes_turn(db, started_room):
    room_id = started_room.id
    set_game_state(db, room_id, [("alice", cards("10", "9")), ("bob", cards("10", "8"))], current=1)

    RoomManager.leave_room(db, room_id, BOB)

    state = _state(db, room_id)
    assert state["players"][1]["passed"] is True
    assert state["current_player_index"] == 0
    assert state["round_ended"] is False
    assert _finished(db, room_id) == []


def test_leaving_after_round_ended_changes_nothing(db, started_room):
    room_id = started_room.id
    set_game_state(db, room_id, [("alice", cards("10", "9"), True), ("bob", cards("10", "8"), True)],
                   current=1, round_ended=True)
    before = _state(db, room_id)

    RoomManager.leave_room(db, room_id, BOB)

    assert _state(db, room_id) == before
    assert _finished(db, room_id) == []


# ============ Round resolution ============

def test_round_resolves_once_with_winner(db, started_room):
    room_id = started_room.id
    set_game_state(db, room_id, [("alice", cards("10", "9")), ("bob", cards("10", "5"))],
                   deck=cards("K", "2", suit="♣"))

    GameManager.stand(db, room_id, "alice")
    GameManager.hit(db, room_id, "bob")

    state = _state(db, room_id)
    games = _finished(db, room_id)
    assert state["round_ended"] is True
    assert len(games) == 1
    assert state["game_id"] == games[0].id
    assert games[0].winner == {"user_id": "alice", "display_name": "Alice", "score": 19}
    assert games[0].participants == ["alice", "bob"]
    assert games[0].players_count == 2
    assert games[0].game_number == 1
    assert "🎉 Alice wins with 19 points!" in [m.message for m in list_messages(db, room_id)]


def test_round_where_everybody_busts(db, started_room):
    room_id = started_room.id
    set_game_state(db, room_id, [("alice", cards("10", "10", "5")), ("bob", cards("10", "9"))],
                   deck=cards("K", suit="♣"), current=1)

    GameManager.hit(db, room_id, "bob")

    games = _finished(db, room_id)
    assert len(games) == 1
    assert games[0].winner is None
    assert "All players busted! No winner." in [m.message for m in list_messages(db, room_id)]


def test_tie_goes_to_earlier_player(db, started_room):
    room_id = started_room.id
    set_game_state(db, room_id, [("alice", cards("10", "K")), ("bob", cards("Q", "J"))])

    GameManager.stand(db, room_id, "alice")
    GameManager.stand(db, room_id, "bob")

    assert _finished(db, room_id)[0].winner["user_id"] == "alice"


def test_finalize_is_idempotent(db, started_room):
    room_id = started_room.id
    set_game_state(db, room_id, [("alice", cards("10", "9"), True), ("bob", cards("10", "8"), True)],
                   round_ended=True)

    first = GameManager.try_finalize_round(db, room_id)
    second = GameManager.try_finalize_round(db, room_id)

    assert first.applied and second.applied
    assert first.value == second.value
    assert len(_finished(db, room_id)) == 1


def test_finalize_round_in_progress(db, started_room):
    result = GameManager.try_finalize_round(db, started_room.id)

    assert result.reason == outcome.ROUND_IN_PROGRESS
    assert _finished(db, started_room.id) == []


def test_finalize_after_round_resolved_by_action(db, started_room):
    room_id = started_room.id
    set_game_state(db, room_id, [("alice", cards("10", "9"), True), ("bob", cards("10", "8"))], current=1)
    GameManager.stand(db, room_id, "bob")

    result = GameManager.try_finalize_round(db, room_id)

    assert result.value == _state(db, room_id)["game_id"]
    assert len(_finished(db, room_id)) == 1


def test_concurrent_finalize_writes_one_record(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'rooms.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = Session()
    room = RoomManager.create_room(setup, ALICE, "Race", 2)
    room_id = room.id
    RoomManager.join_room(setup, room_id, BOB)
    start_room(setup, room_id, ALICE, BOB)
    set_game_state(setup, room_id, [("alice", cards("10", "9"), True), ("bob", cards("10", "8"), True)],
                   round_ended=True)
    setup.close()

    def finalize(_):
        session = Session()
        try:
            return GameManager.try_finalize_round(session, room_id).value
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=8) as pool:
        game_ids = list(pool.map(finalize, range(8)))

    check = Session()
    try:
        assert len(set(game_ids)) == 1
        assert check.query(FinishedGame).filter(FinishedGame.room_id == room_id).count() == 1
    finally:
        check.close()
        engine.dispose()


# ============ New game ============

def test_new_game_requires_creator(db, started_room):
    with pytest.raises(NotAuthorized):
        GameManager.start_new_game(db, started_room.id, "bob")


def test_new_game_while_round_in_progress(db, started_room):
    result = GameManager.start_new_game(db, started_room.id, "alice")

    assert result.reason == outcome.ROUND_IN_PROGRESS
    assert RoomManager.get_room_by_id(db, started_room.id).game_number == 1


def test_new_game_without_game(db, room):
    assert GameManager.start_new_game(db, room.id, "alice").reason == outcome.NO_GAME


def test_new_game_uses_current_participants(db):
    room = RoomManager.create_room(db, ALICE, "Three", 3)
    room_id = room.id
    RoomManager.join_room(db, room_id, BOB)
    start_room(db, room_id, ALICE, BOB)
    set_game_state(db, room_id, [("alice", cards("10", "9"), True), ("bob", cards("10", "8"), True)],
                   round_ended=True)
    GameManager.try_finalize_round(db, room_id)
    RoomManager.leave_room(db, room_id, BOB)
    RoomManager.join_room(db, room_id, CAROL)

    result = GameManager.start_new_game(db, room_id, "alice")

    state = _state(db, room_id)
    assert result.applied and result.value == 2
    assert [h["user_id"] for h in state["players"]] == ["alice", "carol"]
    assert state["round_ended"] is False
    assert state["game_id"] is None
    assert len(state["deck"]) == 48

    GameManager.stand(db, room_id, "alice")
    GameManager.stand(db, room_id, "carol")

    games = _finished(db, room_id)
    assert [g.game_number for g in games] == [1, 2]
    assert games[1].participants == ["alice", "carol"]


def test_new_game_without_participants(db, started_room):
    room_id = started_room.id
    set_game_state(db, room_id, [("alice", cards("10", "9"), True), ("bob", cards("10", "8"), True)],
                   round_ended=True)
    RoomManager.leave_room(db, room_id, BOB)
    RoomManager.leave_room(db, room_id, ALICE)

    result = GameManager.start_new_game(db, room_id, "alice")

    assert result.reason == outcome.NO_PARTICIPANTS
    assert RoomManager.get_room_by_id(db, room_id).game_number == 1


def test_full_round_then_new_game(db, started_room):
    room_id = started_room.id
    GameManager.stand(db, room_id, "alice")
    GameManager.stand(db, room_id, "bob")
    first_id = _state(db, room_id)["game_id"]

    assert GameManager.start_new_game(db, room_id, "alice").applied
    GameManager.stand(db, room_id, "alice")
    GameManager.stand(db, room_id, "bob")

    games = _finished(db, room_id)
    assert [g.game_number for g in games] == [1, 2]
    assert games[0].id == first_id

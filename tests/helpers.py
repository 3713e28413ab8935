"""
Test helpers: identities, hand builders, direct game-state setup
"""
from sqlalchemy.orm.attributes import flag_modified

from core.identity import Identity
from core.room_manager import RoomManager
from models import Room
from services.card_service import make_card

ALICE = Identity(user_id="alice", display_name="Alice", email="alice@example.com")
BOB = Identity(user_id="bob", display_name="Bob", email="bob@example.com")
CAROL = Identity(user_id="carol", display_name=None, email="carol@example.com")


def cards(*ranks, suit="♠"):
    return [make_card(suit, rank) for rank in ranks]


def set_game_state(db, room_id, hands, deck=None, current=0, round_ended=False, game_id=None):
    """
    Overwrite a room's game state with known hands

    hands: list of (user_id, [cards]) or (user_id, [cards], passed)
    """
    players = []
    for index, entry in enumerate(hands):
        user_id, hand_cards = entry[0], entry[1]
        passed = entry[2] if len(entry) > 2 else False
        players.append({
            "user_id": user_id,
            "display_name": user_id.capitalize(),
            "cards": hand_cards,
            "passed": passed,
            "turn_order": index,
        })

    room = db.query(Room).filter(Room.id == room_id).first()
    room.game_state = {
        "deck": deck if deck is not None else cards("2", "3", "4", suit="♥"),
        "players": players,
        "current_player_index": current,
        "round_ended": round_ended,
        "game_id": game_id,
    }
    flag_modified(room, "game_state")
    db.commit()
    return room


def headers(identity: Identity) -> dict:
    result = {"X-User-Id": identity.user_id}
    if identity.display_name:
        result["X-User-Name"] = identity.display_name
    if identity.email:
        result["X-User-Email"] = identity.email
    return result


def start_room(db, room_id, *identities):
    """Ready every given member, then start as the creator (deals game #1)"""
    for identity in identities:
        RoomManager.toggle_ready(db, room_id, identity)
    return RoomManager.start_game(db, room_id, identities[0].user_id)


def clear_game_state(db, room_id):
    room = db.query(Room).filter(Room.id == room_id).first()
    room.game_state = None
    flag_modified(room, "game_state")
    db.commit()
    return room

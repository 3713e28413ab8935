"""
Pydantic schemas：request、response 與 stream payload

response 一律由 from_xxx classmethod 從 ORM / JSON 文件組出來
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel

from models import ChatMessage, FinishedGame, MessageType, Room, RoomStatus
from services.card_service import calculate_hand_value, is_blackjack, is_busted


# ============ Requests ============

class RoomCreate(BaseModel):
    name: str
    max_participants: int = 2
    game_type: Optional[str] = None


class KickRequest(BaseModel):
    user_id: str


class MessageSubmit(BaseModel):
    message: str


# ============ Room ============

class ParticipantResponse(BaseModel):
    user_id: str
    display_name: str
    email: str = ""
    photo_url: str = ""
    joined_at: datetime
    ready: bool


class CardResponse(BaseModel):
    suit: str
    rank: str
    id: str


class PlayerHandResponse(BaseModel):
    user_id: str
    display_name: str
    cards: List[CardResponse]
    passed: bool
    turn_order: int
    value: int
    busted: bool
    blackjack: bool


class GameStateResponse(BaseModel):
    deck_count: int
    players: List[PlayerHandResponse]
    current_player_index: int
    current_user_id: Optional[str] = None
    round_ended: bool
    game_id: Optional[str] = None

    @classmethod
    def from_state(cls, state: dict) -> "GameStateResponse":
        players = [
            PlayerHandResponse(
                **hand,
                value=calculate_hand_value(hand["cards"]),
                busted=is_busted(hand["cards"]),
                blackjack=is_blackjack(hand["cards"]),
            )
            for hand in state["players"]
        ]
        current = state["current_player_index"]
        return cls(
            deck_count=len(state["deck"]),
            players=players,
            current_player_index=current,
            current_user_id=players[current].user_id if players else None,
            round_ended=state["round_ended"],
            game_id=state.get("game_id"),
        )


class RoomResponse(BaseModel):
    id: str
    name: str
    game_type: str
    created_by: str
    created_at: datetime
    max_participants: int
    participants: List[ParticipantResponse]
    status: RoomStatus
    game_number: int
    game_state: Optional[GameStateResponse] = None
    state_version: int

    @classmethod
    def from_room(cls, room: Room) -> "RoomResponse":
        return cls(
            id=room.id,
            name=room.name,
            game_type=room.game_type,
            created_by=room.created_by,
            created_at=room.created_at,
            max_participants=room.max_participants,
            participants=[ParticipantResponse(**p) for p in room.participants or []],
            status=room.status,
            game_number=room.game_number,
            game_state=GameStateResponse.from_state(room.game_state) if room.game_state else None,
            state_version=room.state_version,
        )


class RoomListResponse(BaseModel):
    rooms: List[RoomResponse]


# ============ Chat ============

class MessageResponse(BaseModel):
    id: int
    type: MessageType
    message: str
    timestamp: datetime
    user_id: Optional[str] = None
    display_name: Optional[str] = None
    email: Optional[str] = None
    photo_url: Optional[str] = None

    @classmethod
    def from_message(cls, message: ChatMessage) -> "MessageResponse":
        return cls(
            id=message.id,
            type=message.message_type,
            message=message.message,
            timestamp=message.timestamp,
            user_id=message.user_id,
            display_name=message.display_name,
            email=message.email,
            photo_url=message.photo_url,
        )


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]


# ============ Actions ============

class ActionResponse(BaseModel):
    status: str
    reason: Optional[str] = None


# ============ Finished games / stats ============

class WinnerResponse(BaseModel):
    user_id: str
    display_name: str
    score: int


class FinishedGameResponse(BaseModel):
    game_id: str
    room_id: str
    game_type: str
    game_number: int
    players_count: int
    participants: List[str]
    winner: Optional[WinnerResponse] = None
    finished_at: datetime

    @classmethod
    def from_game(cls, game: FinishedGame) -> "FinishedGameResponse":
        return cls(
            game_id=game.id,
            room_id=game.room_id,
            game_type=game.game_type,
            game_number=game.game_number,
            players_count=game.players_count,
            participants=game.participants,
            winner=WinnerResponse(**game.winner) if game.winner else None,
            finished_at=game.finished_at,
        )


class FinishedGameListResponse(BaseModel):
    games: List[FinishedGameResponse]


class StatsResponse(BaseModel):
    games_played: int
    wins: int
    losses: int

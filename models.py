"""
SQLAlchemy models

Room 以文件形式儲存：participants 與 game_state 是巢狀 JSON，
每次都重新讀取，整份寫回（不做局部修改）
"""
import enum
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


class RoomStatus(str, enum.Enum):
    WAITING = "waiting"
    STARTED = "started"


class MessageType(str, enum.Enum):
    SYSTEM = "system"
    USER = "user"


class Room(Base):
    __tablename__ = "game_rooms"

    id = Column(String(32), primary_key=True, default=new_id)
    name = Column(String(64), nullable=False)
    game_type = Column(String(32), nullable=False, index=True)
    created_by = Column(String(128), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    max_participants = Column(Integer, nullable=False)
    # 參與者列表（加入順序）：[{"user_id", "display_name", "email", "photo_url", "joined_at", "ready"}, ...]
    participants = Column(JSON, nullable=False, default=list)
    status = Column(Enum(RoomStatus), nullable=False, default=RoomStatus.WAITING)
    game_number = Column(Integer, nullable=False, default=0)
    game_state = Column(JSON, nullable=True)
    state_version = Column(Integer, nullable=False, default=0)

    messages = relationship(
        "ChatMessage",
        back_populates="room",
        cascade="all, delete-orphan",
    )

    def find_participant(self, user_id: str):
        for participant in self.participants or []:
            if participant["user_id"] == user_id:
                return participant
        return None

    def is_member(self, user_id: str) -> bool:
        return self.find_participant(user_id) is not None


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(32), ForeignKey("game_rooms.id", ondelete="CASCADE"), nullable=False, index=True)
    message_type = Column(Enum(MessageType), nullable=False)
    message = Column(Text, nullable=False)
    user_id = Column(String(128), nullable=True)
    display_name = Column(String(128), nullable=True)
    email = Column(String(256), nullable=True)
    photo_url = Column(String(512), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    room = relationship("Room", back_populates="messages")


class FinishedGame(Base):
    """一局結束後的永久紀錄，房間刪除後仍保留（統計用）"""
    __tablename__ = "finished_games"
    __table_args__ = (
        UniqueConstraint("room_id", "game_number", name="uq_finished_game_room_number"),
    )

    id = Column(String(32), primary_key=True, default=new_id)
    room_id = Column(String(32), nullable=False, index=True)
    game_type = Column(String(32), nullable=False)
    game_number = Column(Integer, nullable=False)
    players_count = Column(Integer, nullable=False)
    # {"user_id", "display_name", "score"}，全員爆牌時為 None
    winner = Column(JSON, nullable=True)
    finished_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    players = relationship(
        "FinishedGamePlayer",
        back_populates="game",
        cascade="all, delete-orphan",
        order_by="FinishedGamePlayer.turn_order",
    )

    @property
    def participants(self):
        return [player.user_id for player in self.players]


class FinishedGamePlayer(Base):
    __tablename__ = "finished_game_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    game_id = Column(String(32), ForeignKey("finished_games.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(128), nullable=False, index=True)
    turn_order = Column(Integer, nullable=False)

    game = relationship("FinishedGame", back_populates="players")

"""
State version service

每次 commit 的房間變更都會把 Room.state_version 加一。short polling 的
client 透過 GET /state 比對版本；串流 client 則在 commit 後收到同一份
room_state 事件
"""
import logging

from sqlalchemy.orm import Session

from models import Room
from schemas import RoomResponse
from core.broadcaster import queue_event

logger = logging.getLogger(__name__)


def bump_state_version(db: Session, room: Room, reason: str) -> int:
    """
    版本加一並掛上 room_state 事件

    注意：
        - 在修改的最後呼叫，此時 participants / game_state 已是本次 transaction 的最終值
    """
    room.state_version = (room.state_version or 0) + 1
    db.flush()
    queue_event(db, room.id, {
        "type": "room_state",
        "reason": reason,
        "room": RoomResponse.from_room(room).model_dump(mode="json"),
    })
    logger.debug(f"Room {room.id} state_version={room.state_version} ({reason})")
    return room.state_version

"""
房間聊天 / 事件紀錄

只能新增。訊息分兩種：生命週期與遊戲事件的系統旁白，以及使用者發言；
訊息不會被編輯或單獨刪除（只會跟著房間一起刪掉）
"""
from typing import List
import logging

from sqlalchemy.orm import Session

from models import ChatMessage, MessageType, Room, utcnow
from schemas import MessageResponse
from core.broadcaster import queue_event
from core.exceptions import NotMember, RoomNotFound, ValidationError
from core.identity import Identity
from database import read_only, transactional

logger = logging.getLogger(__name__)


def _append(db: Session, message: ChatMessage) -> ChatMessage:
    db.add(message)
    db.flush()  # 取得 message.id，stream payload 需要
    queue_event(db, message.room_id, {
        "type": "message",
        "message": MessageResponse.from_message(message).model_dump(mode="json"),
    })
    return message


def append_system_message(db: Session, room_id: str, text: str) -> ChatMessage:
    """
    新增一行系統旁白

    注意：
        - 不 commit，跑在呼叫端的 transaction 裡
    """
    return _append(db, ChatMessage(
        room_id=room_id,
        message_type=MessageType.SYSTEM,
        message=text,
        timestamp=utcnow(),
    ))


@transactional
def post_user_message(db: Session, room_id: str, identity: Identity, text: str) -> ChatMessage:
    """
    使用者發言

    前置條件：
    - 房間存在
    - 呼叫者是房間成員
    - 內容去掉前後空白後不是空的（沒有長度上限）

    異常：
        RoomNotFound, NotMember, ValidationError
    """
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError("Message must not be empty")

    room = db.query(Room).filter(Room.id == room_id).first()
    if not room:
        raise RoomNotFound(room_id)
    if not room.is_member(identity.user_id):
        raise NotMember(identity.user_id)

    message = _append(db, ChatMessage(
        room_id=room_id,
        message_type=MessageType.USER,
        message=cleaned,
        user_id=identity.user_id,
        display_name=identity.resolved_name,
        email=identity.email or "",
        photo_url=identity.photo_url or "",
        timestamp=utcnow(),
    ))
    logger.info(f"User {identity.user_id} posted message {message.id} in room {room_id}")
    return message


@read_only
def list_messages(db: Session, room_id: str) -> List[ChatMessage]:
    """房間訊息，由舊到新（timestamp 相同時以寫入順序 id 排）"""
    if not db.query(Room.id).filter(Room.id == room_id).first():
        raise RoomNotFound(room_id)
    return (
        db.query(ChatMessage)
        .filter(ChatMessage.room_id == room_id)
        .order_by(ChatMessage.timestamp, ChatMessage.id)
        .all()
    )

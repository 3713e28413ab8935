"""
Chat API Endpoints
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import MessageListResponse, MessageResponse, MessageSubmit
from core.chat_log import list_messages, post_user_message
from core.identity import Identity, get_current_user
from core.exceptions import GameRoomException
from api.errors import http_error

router = APIRouter(prefix="/api/rooms", tags=["messages"])
logger = logging.getLogger(__name__)


@router.get("/{room_id}/messages", response_model=MessageListResponse)
def get_messages(room_id: str, db: Session = Depends(get_db)):
    """房間聊天，由舊到新"""
    try:
        messages = list_messages(db, room_id)
        return MessageListResponse(messages=[MessageResponse.from_message(m) for m in messages])

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to get messages: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/messages", response_model=MessageResponse)
def send_message(
    room_id: str,
    message_data: MessageSubmit,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    發送聊天訊息

    錯誤：
        400: 空白訊息
        409: 呼叫者不是成員
    """
    try:
        message = post_user_message(db, room_id, user, message_data.message)
        return MessageResponse.from_message(message)

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to send message: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")

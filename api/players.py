"""
Player API Endpoints

職責：
1. 加入 / 離開房間
2. 切換準備狀態
3. 踢出成員（房主）
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import ActionResponse, KickRequest, RoomResponse
from core.room_manager import RoomManager
from core.identity import Identity, get_current_user
from core.exceptions import GameRoomException
from api.errors import http_error

router = APIRouter(prefix="/api/rooms", tags=["players"])
logger = logging.getLogger(__name__)


@router.post("/{room_id}/join", response_model=RoomResponse)
def join_room(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    加入房間

    前置條件（對最新儲存的房間檢查）：
    - 房間存在
    - 呼叫者還不是成員
    - 房間未滿

    錯誤：
        404: 房間不存在
        409: 已經是成員 / 房間已滿
    """
    try:
        room = RoomManager.join_room(db, room_id, user)
        return RoomResponse.from_room(room)

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to join room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/leave", response_model=RoomResponse)
def leave_room(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        room = RoomManager.leave_room(db, room_id, user)
        return RoomResponse.from_room(room)

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to leave room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/ready", response_model=RoomResponse)
def toggle_ready(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """切換呼叫者的準備狀態"""
    try:
        RoomManager.toggle_ready(db, room_id, user)
        return RoomResponse.from_room(RoomManager.get_room_by_id(db, room_id))

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to toggle ready: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/kick", response_model=ActionResponse)
def kick_player(
    room_id: str,
    kick_data: KickRequest,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    踢出成員（房主限定）

    對象不在房間裡時回傳 status "ignored"
    """
    try:
        result = RoomManager.kick_player(db, room_id, user.user_id, kick_data.user_id)
        return ActionResponse(status=result.status, reason=result.reason)

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to kick player: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")

"""
Room API Endpoints

職責：
1. 建立 / 列出 / 查詢房間（GET /state 是 short polling 用的 endpoint）
2. 刪除房間（房主）
3. 開始 / 停止遊戲（房主）
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from typing import Optional

import logging

from database import get_db
from schemas import RoomCreate, RoomListResponse, RoomResponse, ActionResponse
from core.room_manager import RoomManager
from core.identity import Identity, get_current_user
from core.exceptions import GameRoomException
from api.errors import http_error

router = APIRouter(prefix="/api/rooms", tags=["rooms"])
logger = logging.getLogger(__name__)


@router.post("", response_model=RoomResponse)
def create_room(
    room_data: RoomCreate,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    建立房間，呼叫者成為房主與第一位成員

    錯誤：
        400: 房名空白或過長、max_participants 不在 2..6
    """
    try:
        room = RoomManager.create_room(
            db, user, room_data.name, room_data.max_participants, room_data.game_type
        )
        return RoomResponse.from_room(room)

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to create room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("", response_model=RoomListResponse)
def list_rooms(game_type: Optional[str] = Query(None), db: Session = Depends(get_db)):
    """某個遊戲類型的房間，新的在前"""
    try:
        rooms = RoomManager.list_rooms(db, game_type)
        return RoomListResponse(rooms=[RoomResponse.from_room(room) for room in rooms])

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to list rooms: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{room_id}", response_model=RoomResponse)
def get_room(room_id: str, db: Session = Depends(get_db)):
    try:
        return RoomResponse.from_room(RoomManager.get_room_by_id(db, room_id))

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to get room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{room_id}/state", response_model=RoomResponse)
def get_room_state(
    room_id: str,
    since_version: Optional[int] = Query(None),
    db: Session = Depends(get_db)
):
    """
    Short polling

    client 記住最後畫出來的 state_version；沒有變化時回 304，
    房間被刪除後回 404（client 離開房間頁並顯示關閉通知）
    """
    try:
        room = RoomManager.get_room_by_id(db, room_id)
        if since_version is not None and room.state_version <= since_version:
            raise HTTPException(status_code=304)
        return RoomResponse.from_room(room)

    except HTTPException:
        raise
    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to get room state: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.delete("/{room_id}", response_model=ActionResponse)
def delete_room(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """刪除房間與聊天紀錄（房主限定）"""
    try:
        RoomManager.delete_room(db, room_id, user.user_id)
        return ActionResponse(status="ok")

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to delete room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/start", response_model=RoomResponse)
def start_game(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    開始遊戲（房主限定，全員已準備）

    房間還沒有牌局時自動發第一局
    """
    try:
        return RoomResponse.from_room(RoomManager.start_game(db, room_id, user.user_id))

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to start game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/stop", response_model=RoomResponse)
def stop_game(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        return RoomResponse.from_room(RoomManager.stop_game(db, room_id, user.user_id))

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to stop game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/status", response_model=RoomResponse)
def toggle_game_status(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """單一開始 / 停止按鈕：waiting 就開始，started 就停止"""
    try:
        return RoomResponse.from_room(RoomManager.toggle_game_status(db, room_id, user.user_id))

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to toggle game status: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")

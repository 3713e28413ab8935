"""
Game API Endpoints

重點：
1. hit / stand / new game 不會因為 client 狀態過期而失敗：不再允許的動作
   回傳 {"status": "ignored", "reason": ...}
2. finalize 是冪等的，看到 round_ended 的 client 都可以呼叫
3. 所有狀態轉換都在 GameManager
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

import logging

from database import get_db
from schemas import ActionResponse
from core.game_manager import GameManager
from core.identity import Identity, get_current_user
from core.exceptions import GameRoomException
from api.errors import http_error

router = APIRouter(prefix="/api/rooms", tags=["games"])
logger = logging.getLogger(__name__)


@router.post("/{room_id}/game/init", response_model=ActionResponse)
def initialize_game(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    房間已開始但還沒有牌局時發第一局

    看到這種房間的成員都可以呼叫：只有第一次會發牌。
    房間還在 waiting、或呼叫者不是成員時回傳 ignored
    """
    try:
        result = GameManager.initialize_game(db, room_id, user.user_id)
        return ActionResponse(status=result.status, reason=result.reason)

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to initialize game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/game/hit", response_model=ActionResponse)
def hit(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    要牌

    略過的情況：不是成員、沒有牌局、本局已結束、不是呼叫者的回合、
    已停牌或爆牌、牌組用完、同一個點擊還在處理中
    """
    try:
        result = GameManager.hit(db, room_id, user.user_id)
        return ActionResponse(status=result.status, reason=result.reason)

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to hit: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/game/stand", response_model=ActionResponse)
def stand(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        result = GameManager.stand(db, room_id, user.user_id)
        return ActionResponse(status=result.status, reason=result.reason)

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to stand: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/game/new", response_model=ActionResponse)
def start_new_game(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    本局結束後重新發牌（房主限定）

    錯誤：
        403: 呼叫者不是房主
    """
    try:
        result = GameManager.start_new_game(db, room_id, user.user_id)
        return ActionResponse(status=result.status, reason=result.reason)

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to start new game: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{room_id}/game/finalize", response_model=ActionResponse)
def finalize_round(room_id: str, db: Session = Depends(get_db)):
    """確保已結束的一局有結算紀錄（冪等）"""
    try:
        result = GameManager.try_finalize_round(db, room_id)
        return ActionResponse(status=result.status, reason=result.reason)

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to finalize round: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")

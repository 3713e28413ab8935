"""
Statistics API Endpoints

結算紀錄比房間活得久，房間刪除後這些查詢仍然有效
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import FinishedGameListResponse, FinishedGameResponse, StatsResponse
from core.identity import Identity, get_current_user
from core.exceptions import GameRoomException
from services.stats_service import get_room_games, get_room_stats, get_user_games, get_user_stats
from api.errors import http_error

router = APIRouter(prefix="/api", tags=["stats"])
logger = logging.getLogger(__name__)


@router.get("/rooms/{room_id}/stats", response_model=StatsResponse)
def room_stats(
    room_id: str,
    user: Identity = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """房間已玩局數，以及呼叫者的勝負"""
    try:
        return StatsResponse(**get_room_stats(room_id, user.user_id, db))

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to get room stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/rooms/{room_id}/finished-games", response_model=FinishedGameListResponse)
def room_finished_games(room_id: str, db: Session = Depends(get_db)):
    try:
        games = get_room_games(room_id, db)
        return FinishedGameListResponse(games=[FinishedGameResponse.from_game(g) for g in games])

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to get finished games of room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/users/{user_id}/stats", response_model=StatsResponse)
def user_stats(user_id: str, db: Session = Depends(get_db)):
    try:
        return StatsResponse(**get_user_stats(user_id, db))

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to get user stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/users/{user_id}/finished-games", response_model=FinishedGameListResponse)
def user_finished_games(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db)
):
    """使用者被發到牌的牌局，新的在前"""
    try:
        games = get_user_games(user_id, db, limit)
        return FinishedGameListResponse(games=[FinishedGameResponse.from_game(g) for g in games])

    except GameRoomException as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Failed to get finished games of user: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")

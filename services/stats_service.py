"""
已結束牌局的統計

對 finished_games 的唯讀查詢：房間頁面（已玩局數、觀看者的勝 / 負）
與個人頁（每位使用者的總計）
"""
from typing import Dict, List

from sqlalchemy.orm import Session

from models import FinishedGame, FinishedGamePlayer
from database import read_only


def tally(games: List[FinishedGame], user_id: str) -> Dict[str, int]:
    """
    計算使用者的勝負

    只有使用者有被發到牌的局才算；沒贏的局都算輸
    （全員爆牌的局對所有人都是輸）
    """
    wins = 0
    losses = 0
    for game in games:
        if user_id not in game.participants:
            continue
        if game.winner and game.winner.get("user_id") == user_id:
            wins += 1
        else:
            losses += 1
    return {"games_played": len(games), "wins": wins, "losses": losses}


@read_only
def get_room_games(room_id: str, db: Session) -> List[FinishedGame]:
    return (
        db.query(FinishedGame)
        .filter(FinishedGame.room_id == room_id)
        .order_by(FinishedGame.game_number)
        .all()
    )


@read_only
def get_user_games(user_id: str, db: Session, limit: int = 50) -> List[FinishedGame]:
    """使用者參與過的牌局，新的在前"""
    return (
        db.query(FinishedGame)
        .join(FinishedGamePlayer, FinishedGamePlayer.game_id == FinishedGame.id)
        .filter(FinishedGamePlayer.user_id == user_id)
        .order_by(FinishedGame.finished_at.desc())
        .limit(limit)
        .all()
    )


@read_only
def get_room_stats(room_id: str, user_id: str, db: Session) -> Dict[str, int]:
    """games_played 算房間所有局，勝 / 負只算該使用者的"""
    return tally(get_room_games(room_id, db), user_id)


@read_only
def get_user_stats(user_id: str, db: Session) -> Dict[str, int]:
    games = (
        db.query(FinishedGame)
        .join(FinishedGamePlayer, FinishedGamePlayer.game_id == FinishedGame.id)
        .filter(FinishedGamePlayer.user_id == user_id)
        .all()
    )
    return tally(games, user_id)

"""
Game Manager：在房間儲存的 game state 上進行回合制 "21"

職責：
1. 發牌（開始時自動發、房主手動「新局」）
2. 要牌 / 停牌與回合推進
3. 結算，每局只會結算一次（FinishedGame + 聊天旁白）
4. 玩家離開房間時收掉他的手牌

每個修改都遵守同一套規則：
- 持有房間寫入鎖（room_serialized）與行級鎖（with_room_lock）
- 只用剛讀出來的 game_state 計算
- 在同一個 transaction 內把整份 game_state 寫回

client 狀態過期造成的前置條件不符（不是你的回合、已停牌、本局已結束……）
回傳 ActionResult.ignored(reason)，不拋異常
"""
import copy
import logging
import random
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from models import FinishedGame, FinishedGamePlayer, Room, RoomStatus, utcnow
from core import outcome
from core.outcome import ActionResult
from core.chat_log import append_system_message
from core.exceptions import NotAuthorized, RoomNotFound
from core.locks import in_flight, room_serialized, with_room_lock
from services import card_service
from services.naming_service import winner_text
from services.state_service import bump_state_version
from database import transactional

logger = logging.getLogger(__name__)


class GameManager:
    """房間的遊戲狀態轉換"""

    # 測試可以固定成 random.Random(seed) 讓牌組可重現
    rng: Optional[random.Random] = None

    # ============ 發牌 ============

    @staticmethod
    def deal_into(room: Room) -> None:
        """
        用新的一局取代房間的 game state

        用目前的成員（加入順序）發牌，並把 room.game_number 加一；
        跑在呼叫端的 transaction 與鎖裡
        """
        room.game_number = (room.game_number or 0) + 1
        GameManager._save_state(room, card_service.deal(room.participants, GameManager.rng))
        logger.info(
            f"Dealt game #{room.game_number} in room {room.id} "
            f"to {len(room.participants)} players"
        )

    @staticmethod
    @room_serialized
    @transactional
    def initialize_game(db: Session, room_id: str, user_id: str) -> ActionResult:
        """
        自動發牌（冪等）

        前置條件：
        1. 房間已開始（waiting 時發牌會在其他人加入前就把名單定死）
        2. 呼叫者是房間成員
        3. 還沒有 game state；已有（不論是否結束）就不動，只有 start_new_game 能覆蓋

        返回：
            ok(game_number)，或 ignored(not_started / not_member / game_exists)
        """
        room = GameManager._locked_room(db, room_id)

        if room.status != RoomStatus.STARTED:
            return GameManager._ignore(room_id, user_id, "init", outcome.NOT_STARTED)
        if not room.is_member(user_id):
            return GameManager._ignore(room_id, user_id, "init", outcome.NOT_MEMBER)
        if room.game_state is not None:
            return ActionResult.ignored(outcome.GAME_EXISTS)

        GameManager.deal_into(room)
        bump_state_version(db, room, reason="game_dealt")
        return ActionResult.ok(room.game_number)

    @staticmethod
    @room_serialized
    @transactional
    def start_new_game(db: Session, room_id: str, user_id: str) -> ActionResult:
        """
        一局結束後重新發牌（房主限定）

        前置條件：
        1. 呼叫者是房主（否則 NotAuthorized）
        2. 已有牌局且本局已結束
        3. 房間裡還有人

        已離開的成員不再發牌，之後加入的成員會拿到手牌
        """
        room = GameManager._locked_room(db, room_id)

        if room.created_by != user_id:
            raise NotAuthorized("Only the room creator can start a new game")

        state = room.game_state
        if state is None:
            return ActionResult.ignored(outcome.NO_GAME)
        if not state["round_ended"]:
            return ActionResult.ignored(outcome.ROUND_IN_PROGRESS)
        if not room.participants:
            return ActionResult.ignored(outcome.NO_PARTICIPANTS)

        GameManager.deal_into(room)
        bump_state_version(db, room, reason="new_game")
        return ActionResult.ok(room.game_number)

    # ============ 回合動作 ============

    @staticmethod
    def hit(db: Session, room_id: str, user_id: str) -> ActionResult:
        """要牌；同一位使用者的重複點擊會被略過"""
        with in_flight.hold((room_id, user_id, "hit")) as acquired:
            if not acquired:
                return GameManager._ignore(room_id, user_id, "hit", outcome.IN_FLIGHT)
            return GameManager._hit(db, room_id, user_id)

    @staticmethod
    def stand(db: Session, room_id: str, user_id: str) -> ActionResult:
        """停牌；同一位使用者的重複點擊會被略過"""
        with in_flight.hold((room_id, user_id, "stand")) as acquired:
            if not acquired:
                return GameManager._ignore(room_id, user_id, "stand", outcome.IN_FLIGHT)
            return GameManager._stand(db, room_id, user_id)

    @staticmethod
    @room_serialized
    @transactional
    def _hit(db: Session, room_id: str, user_id: str) -> ActionResult:
        """
        要牌

        流程：
        1. 重新讀取房間並檢查回合前置條件
        2. 牌組最前面一張移到呼叫者手牌
        3. 爆牌 -> 換下一位還沒結束的玩家，沒爆牌則同一位繼續
        4. 每手牌都停牌或爆牌時本局結束
        5. 本局剛結束就結算
        """
        room = GameManager._locked_room(db, room_id)
        state = copy.deepcopy(room.game_state)

        reason = GameManager._turn_precondition(room, state, user_id)
        if reason:
            return GameManager._ignore(room_id, user_id, "hit", reason)
        if not state["deck"]:
            return GameManager._ignore(room_id, user_id, "hit", outcome.DECK_EXHAUSTED)

        was_ended = state["round_ended"]
        index = state["current_player_index"]
        hand = state["players"][index]

        card = state["deck"].pop(0)
        hand["cards"].append(card)

        if card_service.is_busted(hand["cards"]):
            state["current_player_index"] = card_service.next_active_index(state["players"], index)
            logger.info(f"Player {user_id} busted in room {room_id}")

        state["round_ended"] = card_service.all_hands_finished(state["players"])

        GameManager._save_state(room, state)
        if state["round_ended"] and not was_ended:
            GameManager._resolve_round(db, room)

        bump_state_version(db, room, reason="hit")
        return ActionResult.ok(card)

    @staticmethod
    @room_serialized
    @transactional
    def _stand(db: Session, room_id: str, user_id: str) -> ActionResult:
        """
        停牌

        把呼叫者的手牌標成 passed，輪到下一位還沒結束的玩家；
        這次停牌讓本局結束時不推進回合
        """
        room = GameManager._locked_room(db, room_id)
        state = copy.deepcopy(room.game_state)

        reason = GameManager._turn_precondition(room, state, user_id)
        if reason:
            return GameManager._ignore(room_id, user_id, "stand", reason)

        was_ended = state["round_ended"]
        index = state["current_player_index"]
        state["players"][index]["passed"] = True

        state["round_ended"] = card_service.all_hands_finished(state["players"])
        if not state["round_ended"]:
            state["current_player_index"] = card_service.next_active_index(state["players"], index)

        GameManager._save_state(room, state)
        if state["round_ended"] and not was_ended:
            GameManager._resolve_round(db, room)

        bump_state_version(db, room, reason="stand")
        return ActionResult.ok()

    @staticmethod
    def withdraw_hand(db: Session, room: Room, user_id: str) -> None:
        """
        收掉離開 / 被踢玩家的手牌

        本局還沒結束時，把他的手牌視為停牌：
        1. 輪到他時換下一位還沒結束的玩家
        2. 剩下的手牌都結束了就結算本局

        注意：
            - 由 RoomManager 在已持有的鎖與 transaction 裡呼叫
            - 手牌本身留在 game state，結算紀錄仍包含他
        """
        state = room.game_state
        if state is None or state["round_ended"]:
            return

        state = copy.deepcopy(state)
        index = next(
            (i for i, hand in enumerate(state["players"]) if hand["user_id"] == user_id),
            None,
        )
        if index is None or card_service.is_hand_finished(state["players"][index]):
            return

        state["players"][index]["passed"] = True
        state["round_ended"] = card_service.all_hands_finished(state["players"])
        if not state["round_ended"] and state["current_player_index"] == index:
            state["current_player_index"] = card_service.next_active_index(state["players"], index)

        GameManager._save_state(room, state)
        logger.info(f"Hand of departed player {user_id} in room {room.id} marked as passed")

        if state["round_ended"]:
            GameManager._resolve_round(db, room)

    # ============ 結算 ============

    @staticmethod
    @room_serialized
    @transactional
    def try_finalize_round(db: Session, room_id: str) -> ActionResult:
        """
        確保已結束的一局有 FinishedGame（冪等）

        看到 round_ended 的 client 都可以呼叫；只有第一個發現 game_id
        還是空的呼叫會寫入紀錄，其餘拿回既有的 game id

        返回：
            ok(game_id)，或 ignored(no_game / round_in_progress)
        """
        room = GameManager._locked_room(db, room_id)
        state = room.game_state

        if state is None:
            return ActionResult.ignored(outcome.NO_GAME)
        if not state["round_ended"]:
            return ActionResult.ignored(outcome.ROUND_IN_PROGRESS)
        if state.get("game_id"):
            return ActionResult.ok(state["game_id"])

        game = GameManager._resolve_round(db, room)
        bump_state_version(db, room, reason="round_finalized")
        return ActionResult.ok(game.id)

    @staticmethod
    def _resolve_round(db: Session, room: Room) -> FinishedGame:
        """
        記錄剛結束這一局的結果

        1. 贏家：最高的未爆牌手牌，同分時 turn_order 較前者勝
        2. 系統旁白宣布贏家（或全員爆牌）
        3. 一筆 FinishedGame（+ 參與玩家）
        4. game_state.game_id 指向這筆紀錄
        """
        state = copy.deepcopy(room.game_state)
        winner = card_service.determine_winner(state["players"])

        game = FinishedGame(
            room_id=room.id,
            game_type=room.game_type,
            game_number=room.game_number,
            players_count=len(state["players"]),
            winner=winner,
            finished_at=utcnow(),
        )
        for hand in state["players"]:
            game.players.append(FinishedGamePlayer(user_id=hand["user_id"], turn_order=hand["turn_order"]))
        db.add(game)
        db.flush()  # 取得 game.id

        append_system_message(db, room.id, winner_text(winner))

        state["game_id"] = game.id
        GameManager._save_state(room, state)

        logger.info(
            f"Round #{game.game_number} of room {room.id} finished, "
            f"winner={winner['user_id'] if winner else None}, game_id={game.id}"
        )
        return game

    # ============ Helpers ============

    @staticmethod
    def _locked_room(db: Session, room_id: str) -> Room:
        room = with_room_lock(room_id, db).first()
        if not room:
            raise RoomNotFound(room_id)
        return room

    @staticmethod
    def _save_state(room: Room, state: dict) -> None:
        room.game_state = state
        flag_modified(room, "game_state")

    @staticmethod
    def _turn_precondition(room: Room, state: Optional[dict], user_id: str) -> Optional[str]:
        """呼叫者現在不能動作的原因，可以動作時回傳 None"""
        if not room.is_member(user_id):
            return outcome.NOT_MEMBER
        if state is None:
            return outcome.NO_GAME
        if state["round_ended"]:
            return outcome.ROUND_ENDED

        current = state["players"][state["current_player_index"]]
        if current["user_id"] != user_id:
            return outcome.NOT_YOUR_TURN
        if current["passed"]:
            return outcome.ALREADY_PASSED
        if card_service.is_busted(current["cards"]):
            return outcome.BUSTED
        return None

    @staticmethod
    def _ignore(room_id: str, user_id: str, action: str, reason: str) -> ActionResult:
        logger.warning(f"Ignored {action} by {user_id} in room {room_id}: {reason}")
        return ActionResult.ignored(reason)

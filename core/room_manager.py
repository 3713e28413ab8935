"""
Room Manager：管理 Room 的完整生命週期

職責：
1. 建立 / 列出 / 查詢房間
2. 成員：加入、離開、踢人（房主）、刪除房間（房主）
3. 準備狀態
4. 開始 / 停止的把關（房主、全員準備）

原則：
- 每個修改都先在寫入鎖下重新讀取房間再檢查（不信任 client 的舊狀態）
- participants 整份改寫，不做局部修改
- 狀態變更一律經過 RoomStateMachine
- 每個生命週期事件都在聊天室留一行旁白
"""
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from typing import List, Optional
import logging

from models import Room, RoomStatus, new_id, utcnow
from core import outcome
from core.outcome import ActionResult
from core.broadcaster import queue_event
from core.chat_log import append_system_message
from core.game_manager import GameManager
from core.identity import Identity
from core.state_machine import RoomStateMachine
from core.locks import forget_room_mutex, room_serialized, with_room_lock
from core.exceptions import (
    AlreadyMember,
    InvalidStateTransition,
    NotAuthorized,
    NotMember,
    PlayersNotReady,
    RoomFull,
    RoomNotFound,
    ValidationError,
)
from services import naming_service
from services.state_service import bump_state_version
from database import get_settings, read_only, transactional

logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 6

ROOM_CLOSED_NOTICE = "The room was closed by its owner"


def make_participant(identity: Identity) -> dict:
    """加入當下的身分快照，之後不再更新"""
    return {
        "user_id": identity.user_id,
        "display_name": identity.resolved_name,
        "email": identity.email or "",
        "photo_url": identity.photo_url or "",
        "joined_at": utcnow().isoformat(),
        "ready": False,
    }


class RoomManager:
    """Room 生命週期管理器"""

    @staticmethod
    @transactional
    def create_room(
        db: Session,
        identity: Identity,
        name: str,
        max_participants: int,
        game_type: Optional[str] = None,
    ) -> Room:
        """
        建立新房間，建立者是第一位成員

        參數：
            db: SQLAlchemy Session
            identity: 建立者
            name: 房名（去掉前後空白）
            max_participants: 2..6
            game_type: 預設為 settings.default_game_type

        返回：
            新的 Room（status=waiting, game_number=0）

        異常：
            ValidationError: 房名空白或超過長度上限、max_participants 超出範圍
        """
        cleaned = naming_service.clean_room_name(name)
        if not cleaned:
            raise ValidationError("Room name must not be empty")
        if len(cleaned) > naming_service.MAX_ROOM_NAME_LENGTH:
            raise ValidationError(
                f"Room name must be at most {naming_service.MAX_ROOM_NAME_LENGTH} characters, "
                f"got {len(cleaned)}"
            )
        if not MIN_PARTICIPANTS <= max_participants <= MAX_PARTICIPANTS:
            raise ValidationError(
                f"max_participants must be between {MIN_PARTICIPANTS} and {MAX_PARTICIPANTS}, "
                f"got {max_participants}"
            )

        room = Room(
            id=new_id(),
            name=cleaned,
            game_type=game_type or get_settings().default_game_type,
            created_by=identity.user_id,
            created_at=utcnow(),
            max_participants=max_participants,
            participants=[make_participant(identity)],
            status=RoomStatus.WAITING,
            game_number=0,
            game_state=None,
            state_version=0,
        )
        db.add(room)
        db.flush()

        logger.info(f"Created room {room.id} ({cleaned!r}) by {identity.user_id}")

        bump_state_version(db, room, reason="room_created")
        return room

    @staticmethod
    @read_only
    def list_rooms(db: Session, game_type: Optional[str] = None) -> List[Room]:
        """某個遊戲類型的房間，新的在前"""
        game_type = game_type or get_settings().default_game_type
        return (
            db.query(Room)
            .filter(Room.game_type == game_type)
            .order_by(Room.created_at.desc())
            .all()
        )

    @staticmethod
    @read_only
    def get_room_by_id(db: Session, room_id: str) -> Room:
        """
        異常：
            RoomNotFound: Room 不存在
        """
        room = db.query(Room).filter(Room.id == room_id).first()
        if not room:
            raise RoomNotFound(room_id)
        return room

    # ============ 成員 ============

    @staticmethod
    @room_serialized
    @transactional
    def join_room(db: Session, room_id: str, identity: Identity) -> Room:
        """
        加入房間

        前置條件（對剛讀出來的房間檢查）：
        1. 房間存在
        2. 呼叫者還不是成員
        3. len(participants) < max_participants

        異常：
            RoomNotFound, AlreadyMember, RoomFull
        """
        room = RoomManager._locked_room(db, room_id)

        if room.is_member(identity.user_id):
            raise AlreadyMember(identity.user_id)
        if len(room.participants) >= room.max_participants:
            raise RoomFull(room.max_participants)

        participant = make_participant(identity)
        RoomManager._save_participants(room, list(room.participants) + [participant])
        append_system_message(db, room.id, naming_service.joined_text(participant["display_name"]))

        logger.info(f"User {identity.user_id} joined room {room.id}")

        bump_state_version(db, room, reason="participant_joined")
        return room

    @staticmethod
    @room_serialized
    @transactional
    def leave_room(db: Session, room_id: str, identity: Identity) -> Room:
        """
        離開房間

        本局進行中時，離開者的手牌視為停牌（見 GameManager.withdraw_hand），
        下一次發牌只會發給剩下的成員

        異常：
            RoomNotFound, NotMember
        """
        room = RoomManager._locked_room(db, room_id)

        participant = room.find_participant(identity.user_id)
        if participant is None:
            raise NotMember(identity.user_id)

        RoomManager._save_participants(
            room, [p for p in room.participants if p["user_id"] != identity.user_id]
        )
        append_system_message(db, room.id, naming_service.left_text(participant["display_name"]))
        GameManager.withdraw_hand(db, room, identity.user_id)

        logger.info(f"User {identity.user_id} left room {room.id}")

        bump_state_version(db, room, reason="participant_left")
        return room

    @staticmethod
    @room_serialized
    @transactional
    def kick_player(db: Session, room_id: str, caller_id: str, target_user_id: str) -> ActionResult:
        """
        移除其他成員（房主限定）

        踢不在房間裡的人不做任何事；被踢者的手牌處理同離開

        異常：
            RoomNotFound, NotAuthorized
        """
        room = RoomManager._locked_room(db, room_id)
        RoomManager._require_creator(room, caller_id, "kick players")

        target = room.find_participant(target_user_id)
        if target is None:
            logger.warning(f"Kick of non-participant {target_user_id} in room {room.id} ignored")
            return ActionResult.ignored(outcome.NOT_MEMBER)

        RoomManager._save_participants(
            room, [p for p in room.participants if p["user_id"] != target_user_id]
        )
        append_system_message(db, room.id, naming_service.kicked_text(target["display_name"]))
        GameManager.withdraw_hand(db, room, target_user_id)

        logger.info(f"User {target_user_id} kicked from room {room.id} by {caller_id}")

        bump_state_version(db, room, reason="participant_kicked")
        return ActionResult.ok(target_user_id)

    @staticmethod
    @room_serialized
    @transactional
    def delete_room(db: Session, room_id: str, caller_id: str) -> None:
        """
        刪除房間與聊天紀錄（房主限定）

        房間的 FinishedGame 紀錄保留給統計使用；
        commit 之後訂閱者會收到 room_deleted

        異常：
            RoomNotFound, NotAuthorized
        """
        room = RoomManager._locked_room(db, room_id)
        RoomManager._require_creator(room, caller_id, "delete the room")

        db.delete(room)  # 連帶刪除 chat_messages
        queue_event(db, room_id, {
            "type": "room_deleted",
            "room_id": room_id,
            "message": ROOM_CLOSED_NOTICE,
        })
        forget_room_mutex(room_id)

        logger.info(f"Room {room_id} deleted by {caller_id}")

    # ============ 準備 ============

    @staticmethod
    @room_serialized
    @transactional
    def toggle_ready(db: Session, room_id: str, identity: Identity) -> bool:
        """
        切換呼叫者的準備狀態

        在鎖內讀出來的成員列表上切換，同時發生的加入 / 離開
        不會被舊的列表蓋掉

        返回：
            新的 ready 值

        異常：
            RoomNotFound, NotMember
        """
        room = RoomManager._locked_room(db, room_id)

        participant = room.find_participant(identity.user_id)
        if participant is None:
            raise NotMember(identity.user_id)

        new_ready = not participant["ready"]
        RoomManager._save_participants(room, [
            dict(p, ready=new_ready) if p["user_id"] == identity.user_id else p
            for p in room.participants
        ])
        append_system_message(
            db, room.id, naming_service.ready_text(participant["display_name"], new_ready)
        )

        bump_state_version(db, room, reason="ready_toggled")
        return new_ready

    # ============ 開始 / 停止 ============

    @staticmethod
    @room_serialized
    @transactional
    def start_game(db: Session, room_id: str, caller_id: str) -> Room:
        """
        開始遊戲（waiting -> started）

        前置條件：
        1. 呼叫者是房主
        2. 狀態是 waiting
        3. 至少一位成員，且全員已準備

        流程：
        1. StateMachine 轉換狀態
        2. 旁白 "Game started!"
        3. 房間還沒有 game state 時自動發牌

        異常：
            RoomNotFound, NotAuthorized, InvalidStateTransition, PlayersNotReady
        """
        room = RoomManager._locked_room(db, room_id)
        RoomManager._require_creator(room, caller_id, "start the game")

        if not RoomStateMachine.can_transition(room.status, RoomStatus.STARTED):
            raise InvalidStateTransition(f"Room {room.id} is already started")

        participants = room.participants or []
        ready_count = sum(1 for p in participants if p["ready"])
        if not participants or ready_count < len(participants):
            raise PlayersNotReady(
                f"All participants must be ready ({ready_count}/{len(participants)})"
            )

        RoomStateMachine.transition(room, RoomStatus.STARTED)
        append_system_message(db, room.id, naming_service.game_status_text(True))

        if room.game_state is None:
            GameManager.deal_into(room)

        bump_state_version(db, room, reason="game_started")
        return room

    @staticmethod
    @room_serialized
    @transactional
    def stop_game(db: Session, room_id: str, caller_id: str) -> Room:
        """
        停止遊戲（started -> waiting），房主隨時可以停

        game state 保留，之後再開始就接著玩

        異常：
            RoomNotFound, NotAuthorized, InvalidStateTransition
        """
        room = RoomManager._locked_room(db, room_id)
        RoomManager._require_creator(room, caller_id, "stop the game")

        RoomStateMachine.transition(room, RoomStatus.WAITING)
        append_system_message(db, room.id, naming_service.game_status_text(False))

        bump_state_version(db, room, reason="game_stopped")
        return room

    @staticmethod
    def toggle_game_status(db: Session, room_id: str, caller_id: str) -> Room:
        """waiting 就開始，started 就停止"""
        room = RoomManager.get_room_by_id(db, room_id)
        if room.status == RoomStatus.STARTED:
            return RoomManager.stop_game(db, room_id, caller_id)
        return RoomManager.start_game(db, room_id, caller_id)

    # ============ Helpers ============

    @staticmethod
    def _locked_room(db: Session, room_id: str) -> Room:
        room = with_room_lock(room_id, db).first()
        if not room:
            raise RoomNotFound(room_id)
        return room

    @staticmethod
    def _require_creator(room: Room, user_id: str, action: str) -> None:
        if room.created_by != user_id:
            raise NotAuthorized(f"Only the room creator can {action}")

    @staticmethod
    def _save_participants(room: Room, participants: list) -> None:
        room.participants = participants
        flag_modified(room, "participants")

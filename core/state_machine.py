"""
房間狀態機

    waiting --start（全員準備）--> started --stop--> waiting

沒有其他轉換。準備狀態由 RoomManager 在呼叫 transition() 前檢查
"""
import logging

from models import Room, RoomStatus
from core.exceptions import InvalidStateTransition

logger = logging.getLogger(__name__)


class RoomStateMachine:
    ALLOWED = {
        RoomStatus.WAITING: {RoomStatus.STARTED},
        RoomStatus.STARTED: {RoomStatus.WAITING},
    }

    @classmethod
    def can_transition(cls, current: RoomStatus, target: RoomStatus) -> bool:
        return target in cls.ALLOWED.get(current, set())

    @classmethod
    def transition(cls, room: Room, target: RoomStatus) -> Room:
        """
        把已鎖定的房間切到新狀態

        異常：
            InvalidStateTransition: 目前狀態無法轉到 target
        """
        current = room.status
        if not cls.can_transition(current, target):
            raise InvalidStateTransition(
                f"Room {room.id} cannot go from {current.value} to {target.value}"
            )

        room.status = target
        logger.info(f"Room {room.id}: {current.value} -> {target.value}")
        return room

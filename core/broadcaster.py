"""
房間變更串流

Manager 在 transaction 進行中把事件掛在 session 上；session commit 成功後
才送給訂閱者，rollback 時直接丟棄。事件掛上去時必須已經序列化完成：
commit 之後 ORM 物件會 expire

事件種類：
- room_state:   {"type": "room_state", "room": RoomResponse}
- message:      {"type": "message", "message": MessageResponse}
- room_deleted: {"type": "room_deleted", "room_id": ..., "message": ...}
"""
import logging
import threading
from typing import Callable, Dict, List

from sqlalchemy import event
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

Subscriber = Callable[[dict], None]

PENDING_KEY = "pending_room_events"


class Broadcaster:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[str, List[Subscriber]] = {}

    def subscribe(self, room_id: str, callback: Subscriber) -> Callable[[], None]:
        """
        訂閱一個房間

        返回：
            取消訂閱的函式（重複呼叫無害）
        """
        with self._lock:
            self._subscribers.setdefault(room_id, []).append(callback)

        def unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers.get(room_id)
                if callbacks and callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._subscribers.pop(room_id, None)

        return unsubscribe

    def subscriber_count(self, room_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(room_id, []))

    def publish(self, room_id: str, payload: dict) -> None:
        with self._lock:
            targets = list(self._subscribers.get(room_id, []))
        for callback in targets:
            try:
                callback(payload)
            except Exception as e:
                # 單一訂閱者失敗不影響其他人
                logger.warning(f"Subscriber of room {room_id} failed: {e}", exc_info=True)


broadcaster = Broadcaster()


def queue_event(db: Session, room_id: str, payload: dict) -> None:
    """掛上一個事件，這個 session commit 後才送出"""
    db.info.setdefault(PENDING_KEY, []).append((room_id, payload))


@event.listens_for(Session, "after_commit")
def _deliver_pending(session: Session) -> None:
    pending = session.info.pop(PENDING_KEY, [])
    for room_id, payload in pending:
        broadcaster.publish(room_id, payload)


@event.listens_for(Session, "after_soft_rollback")
def _drop_pending(session: Session, previous_transaction) -> None:
    session.info.pop(PENDING_KEY, None)

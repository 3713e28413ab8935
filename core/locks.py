"""
並發控制工具

每個房間的修改都是單一寫入者：
1. room_mutex(room_id)      行程內的鎖，序列化同一個 worker 裡的 threads
2. with_room_lock(room_id)  SELECT ... FOR UPDATE，在支援行級鎖的資料庫
                            （PostgreSQL）上跨 worker 序列化

InFlightGuard 只負責丟掉同一位使用者對同一動作的連點，
不能取代上面兩層鎖
"""
import threading
from contextlib import contextmanager
from functools import wraps
from typing import Dict, Hashable, Iterator, Set

from sqlalchemy.orm import Session, Query

from models import Room


def with_room_lock(room_id: str, db: Session) -> Query:
    """
    鎖定一個 Room（行級鎖）

    使用場景：
    - 計算修改前重新讀取最新的 Room
    - 確保 Room 在整個 transaction 期間不被其他請求修改

    範例：
        room = with_room_lock(room_id, db).first()
        if not room:
            raise RoomNotFound(room_id)
        room.status = RoomStatus.STARTED

    參數：
        room_id: Room id
        db: SQLAlchemy Session

    返回：
        Query object（需要呼叫 .first() 來取得結果）

    注意：
        - populate_existing() 會丟掉 identity map 裡的舊值，呼叫端一定拿到儲存中的值
        - SQLite 會忽略 FOR UPDATE；單一行程的情況由 room_mutex 負責
    """
    return db.query(Room).filter(
        Room.id == room_id
    ).populate_existing().with_for_update(nowait=False)


class _MutexRegistry:
    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.RLock] = {}

    def get(self, room_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(room_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[room_id] = lock
            return lock

    def discard(self, room_id: str) -> None:
        with self._guard:
            self._locks.pop(room_id, None)


_room_mutexes = _MutexRegistry()


@contextmanager
def room_mutex(room_id: str) -> Iterator[None]:
    """持有房間的行程內寫入鎖"""
    lock = _room_mutexes.get(room_id)
    with lock:
        yield


def forget_room_mutex(room_id: str) -> None:
    """移除已刪除房間的鎖"""
    _room_mutexes.discard(room_id)


def room_serialized(func):
    """
    在持有房間寫入鎖的情況下執行 manager 操作

    必須包在 @transactional 外層，commit 才會在釋放鎖之前完成：

        @staticmethod
        @room_serialized
        @transactional
        def join_room(db: Session, room_id: str, ...):
            ...

    room id 取自第二個位置參數或 room_id keyword
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        room_id = kwargs.get("room_id")
        if room_id is None:
            if len(args) < 2:
                raise ValueError(
                    f"@room_serialized requires room_id as second argument of {func.__name__}"
                )
            room_id = args[1]
        with room_mutex(room_id):
            return func(*args, **kwargs)

    return wrapper


class InFlightGuard:
    """
    不等待的 per-key 防連點

    範例：
        with in_flight.hold((room_id, user_id, "hit")) as acquired:
            if not acquired:
                return ActionResult.ignored("in_flight")
            ...
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: Set[Hashable] = set()

    def try_acquire(self, key: Hashable) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: Hashable) -> None:
        with self._lock:
            self._keys.discard(key)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[bool]:
        acquired = self.try_acquire(key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)


in_flight = InFlightGuard()

"""
WebSocket 房間串流

連線後 client 先拿到目前的房間與聊天（"snapshot"），之後每個 commit 的
room_state / message / room_deleted 事件都會轉送過去；room_deleted 之後關閉

Client -> server：只有 {"type": "ping"}（回 pong）
"""
import asyncio
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from database import get_db
from schemas import MessageResponse, RoomResponse
from core.broadcaster import broadcaster
from core.chat_log import list_messages
from core.room_manager import ROOM_CLOSED_NOTICE, RoomManager
from core.exceptions import RoomNotFound

router = APIRouter(tags=["stream"])
logger = logging.getLogger(__name__)


def _snapshot(db: Session, room_id: str) -> dict:
    try:
        room = RoomManager.get_room_by_id(db, room_id)
        return {
            "type": "snapshot",
            "room": RoomResponse.from_room(room).model_dump(mode="json"),
            "messages": [
                MessageResponse.from_message(m).model_dump(mode="json")
                for m in list_messages(db, room_id)
            ],
        }
    finally:
        db.close()


@router.websocket("/ws/rooms/{room_id}")
async def room_stream(websocket: WebSocket, room_id: str, db: Session = Depends(get_db)):
    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_event(payload: dict) -> None:
        # 在 commit 的 worker thread 裡被呼叫
        loop.call_soon_threadsafe(queue.put_nowait, payload)

    unsubscribe = broadcaster.subscribe(room_id, on_event)
    try:
        try:
            snapshot = await run_in_threadpool(_snapshot, db, room_id)
        except RoomNotFound:
            await websocket.send_json({"type": "room_deleted", "room_id": room_id, "message": ROOM_CLOSED_NOTICE})
            await websocket.close()
            return
        await websocket.send_json(snapshot)

        async def forward_events() -> None:
            while True:
                payload = await queue.get()
                await websocket.send_json(payload)
                if payload.get("type") == "room_deleted":
                    return

        async def read_client() -> None:
            while True:
                raw = await websocket.receive_text()
                try:
                    payload = json.loads(raw)
                except json.JSONDecodeError:
                    continue
                if payload.get("type") == "ping":
                    await websocket.send_json({"type": "pong"})

        sender = asyncio.create_task(forward_events())
        receiver = asyncio.create_task(read_client())
        done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc and not isinstance(exc, WebSocketDisconnect):
                raise exc

        if sender in done:
            await websocket.close()

    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        logger.debug(
            f"Stream of room {room_id} closed, "
            f"{broadcaster.subscriber_count(room_id)} subscribers left"
        )

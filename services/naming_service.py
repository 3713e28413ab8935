"""
Naming service：顯示名稱與系統聊天訊息

純字串邏輯，不做狀態轉換
"""
from typing import Optional

FALLBACK_NAME = "User"
MAX_ROOM_NAME_LENGTH = 64


def resolve_display_name(display_name: Optional[str], email: Optional[str]) -> str:
    """
    使用者顯示名稱

    順序：顯示名稱 → e-mail → "User"

    範例：
        ("Alice", "a@x.io") -> "Alice"
        (None, "a@x.io")    -> "a@x.io"
        ("  ", None)        -> "User"
    """
    for candidate in (display_name, email):
        if candidate and candidate.strip():
            return candidate.strip()
    return FALLBACK_NAME


def clean_room_name(raw_name: Optional[str]) -> str:
    """去掉房名前後空白；不截斷，長度由呼叫端檢查"""
    return (raw_name or "").strip()


def joined_text(name: str) -> str:
    return f"{name} joined the room"


def left_text(name: str) -> str:
    return f"{name} left the room"


def kicked_text(name: str) -> str:
    return f"{name} was kicked from the room"


def ready_text(name: str, ready: bool) -> str:
    return f"{name} is now {'ready' if ready else 'not ready'}"


def game_status_text(started: bool) -> str:
    return "Game started!" if started else "Game ended."


def winner_text(winner: Optional[dict]) -> str:
    if winner is None:
        return "All players busted! No winner."
    return f"🎉 {winner['display_name']} wins with {winner['score']} points!"

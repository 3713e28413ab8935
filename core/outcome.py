"""
可被靜默略過的動作結果

因為 client 狀態過期造成的前置條件不符（不是你的回合、已停牌、本局已結束、
重複點擊、已不在房間）不是錯誤：回傳 ActionResult.ignored(reason)，
呼叫端與測試都可以檢查原因
"""
from dataclasses import dataclass
from typing import Any, Optional

OK = "ok"
IGNORED = "ignored"

# 略過原因
NOT_YOUR_TURN = "not_your_turn"
ALREADY_PASSED = "already_passed"
BUSTED = "busted"
ROUND_ENDED = "round_ended"
ROUND_IN_PROGRESS = "round_in_progress"
NOT_STARTED = "not_started"
NO_GAME = "no_game"
GAME_EXISTS = "game_exists"
DECK_EXHAUSTED = "deck_exhausted"
NO_PARTICIPANTS = "no_participants"
NOT_MEMBER = "not_member"
IN_FLIGHT = "in_flight"


@dataclass
class ActionResult:
    status: str
    reason: Optional[str] = None
    value: Any = None

    @classmethod
    def ok(cls, value: Any = None) -> "ActionResult":
        return cls(status=OK, value=value)

    @classmethod
    def ignored(cls, reason: str) -> "ActionResult":
        return cls(status=IGNORED, reason=reason)

    @property
    def applied(self) -> bool:
        return self.status == OK

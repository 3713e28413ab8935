"""
自定義異常類別

集中管理所有業務邏輯異常，方便 API 層統一轉成 HTTP 回應

遊戲動作的前置條件不符（不是你的回合、已經停牌、本局已結束）
不算異常：它們以 ignored 的 ActionResult 回傳
"""


class GameRoomException(Exception):
    """所有遊戲房間異常的基類"""
    pass


# ============ 輸入相關異常 ============

class ValidationError(GameRoomException):
    """輸入格式錯誤（空白房名、房名過長、空白訊息……）"""
    pass


# ============ Room 相關異常 ============

class RoomNotFound(GameRoomException):
    """房間不存在（或在使用者瀏覽時被刪除）"""
    def __init__(self, room_id):
        self.room_id = room_id
        super().__init__(f"Room {room_id} not found")


class RoomFull(GameRoomException):
    """房間人數已達 max_participants"""
    def __init__(self, max_participants: int):
        self.max_participants = max_participants
        super().__init__(f"Room is full. Maximum participants: {max_participants}")


class NotAuthorized(GameRoomException):
    """非房主嘗試執行房主專屬操作"""
    pass


# ============ 成員相關異常 ============

class NotMember(GameRoomException):
    """呼叫者不是房間成員"""
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"User {user_id} is not a participant of this room")


class AlreadyMember(GameRoomException):
    """呼叫者已經在房間裡"""
    def __init__(self, user_id):
        self.user_id = user_id
        super().__init__(f"User {user_id} is already in this room")


# ============ 狀態轉換異常 ============

class InvalidStateTransition(GameRoomException):
    """非法的房間狀態轉換"""
    pass


class PlayersNotReady(InvalidStateTransition):
    """還有人沒準備就要求開始"""
    pass


# ============ 儲存層異常 ============

class ExternalStoreError(GameRoomException):
    """對資料庫的讀寫失敗"""
    pass

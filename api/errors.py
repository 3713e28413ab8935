"""
業務異常 -> HTTP status 的對照，所有 router 共用
"""
from fastapi import HTTPException

from core.exceptions import (
    AlreadyMember,
    ExternalStoreError,
    GameRoomException,
    InvalidStateTransition,
    NotAuthorized,
    NotMember,
    RoomFull,
    RoomNotFound,
    ValidationError,
)

STATUS_CODES = [
    (RoomNotFound, 404),
    (NotAuthorized, 403),
    (NotMember, 409),
    (AlreadyMember, 409),
    (RoomFull, 409),
    (ValidationError, 400),
    (InvalidStateTransition, 400),
    (ExternalStoreError, 503),
]


def http_error(exc: GameRoomException) -> HTTPException:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))

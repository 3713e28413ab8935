"""
目前使用者的身分

驗證在外部完成：身分已經解析好放在 request header 裡
（由 auth proxy / client SDK 設定），這裡直接信任
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException

from services.naming_service import resolve_display_name


@dataclass(frozen=True)
class Identity:
    user_id: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    photo_url: Optional[str] = None

    @property
    def resolved_name(self) -> str:
        return resolve_display_name(self.display_name, self.email)


def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
    x_user_email: Optional[str] = Header(None),
    x_user_photo: Optional[str] = Header(None),
) -> Identity:
    """FastAPI dependency：呼叫者身分，缺少時回 401"""
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user identity")

    return Identity(
        user_id=x_user_id.strip(),
        display_name=x_user_name,
        email=x_user_email,
        photo_url=x_user_photo,
    )

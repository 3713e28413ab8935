from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from pydantic_settings import BaseSettings
from functools import lru_cache, wraps
import logging

from core.exceptions import GameRoomException, ExternalStoreError

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./game_rooms.db"
    default_game_type: str = "twenty_one"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()

# SQLite 需要 check_same_thread=False：FastAPI 的同步 endpoint 跑在 threadpool 裡
engine = create_engine(
    settings.database_url,
    connect_args={"check_same_thread": False} if settings.database_url.startswith("sqlite") else {},
    pool_pre_ping=True
)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency：提供 Database Session

    使用 yield 確保 session 在請求結束後會被關閉
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _find_session(args, kwargs):
    """找出 db session（可能在 args 的任何位置或 kwargs）"""
    if 'db' in kwargs:
        return kwargs['db']
    for arg in args:
        if isinstance(arg, Session):
            return arg
    return None


def transactional(func):
    """
    Transaction decorator：確保 manager 操作的原子性

    使用方式：
        @transactional
        def some_business_logic(db: Session, ...):
            room = Room(...)
            db.add(room)
            # 不需要手動 commit，decorator 會處理

    發生異常時：
        - 自動 rollback
        - 業務異常（GameRoomException）原樣重新拋出
        - SQLAlchemyError 包成 ExternalStoreError

    注意：
        - 必須傳入 db: Session（位置參數或 db keyword）
        - 不要在函式內手動 commit
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = _find_session(args, kwargs)
        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session', "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except GameRoomException:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise ExternalStoreError(f"Store failure in {func.__name__}") from e
        except Exception as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise

    return wrapper


def read_only(func):
    """
    唯讀查詢的 decorator：不 commit，只把 SQLAlchemyError 包成 ExternalStoreError

    讓查詢失敗跟寫入失敗一樣回 503，而不是 500
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SQLAlchemyError as e:
            logger.error(f"Query failed in {func.__name__}: {e}", exc_info=True)
            db = _find_session(args, kwargs)
            if db is not None:
                db.rollback()
            raise ExternalStoreError(f"Store failure in {func.__name__}") from e

    return wrapper

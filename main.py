from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from database import Base, engine, get_settings
from api import rooms, players, games, messages, stats, websocket

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: 在應用啟動時建立資料庫表
    Base.metadata.create_all(bind=engine)
    yield
    # Shutdown: 連線由 engine 管理，不需要額外清理


app = FastAPI(
    title="Game Rooms API",
    description="Multiplayer rooms, chat and the \"21\" card game of the drinking calendar",
    version="1.0.0",
    lifespan=lifespan
)

# CORS 設定
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 正式環境請改成前端網域
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 註冊 routers
app.include_router(rooms.router)
app.include_router(players.router)
app.include_router(games.router)
app.include_router(messages.router)
app.include_router(stats.router)
app.include_router(websocket.router)


@app.get("/")
def root():
    return {"message": "Game Rooms API", "status": "ok"}


@app.get("/health")
def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)

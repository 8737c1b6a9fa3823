import os
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, Query
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from lugx_common.errors import install_error_handlers
from lugx_common.logging import get_logger
from lugx_common.metrics import ServiceMetrics, install_metrics
from lugx_common.retry import run_with_startup_retry
from lugx_common.settings import api_prefix

from . import db
from .db import SessionLocal, get_session
from .repo import GameRepo
from .schemas import GameIn, GameOut, GameUpdate

APP_NAME = "game-service"

logger = get_logger(__name__)

app = FastAPI(title=APP_NAME)
router = APIRouter(prefix=api_prefix())

install_error_handlers(app)
install_metrics(app, ServiceMetrics(APP_NAME))

# ---- Startup: ensure schema + tables + starter catalogue exist (idempotent) ----
def _init_and_seed():
    db.init_db()
    with SessionLocal.begin() as s:
        added = GameRepo(s).seed()
    if added:
        logger.info(f"Seeded {added} games")

@app.on_event("startup")
def on_startup():
    run_with_startup_retry(_init_and_seed, "Game Service")

@app.get("/health")
def health():
    try:
        db.ping()
    except Exception as e:
        logger.warning(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "service": APP_NAME})
    return {"status": "healthy", "service": APP_NAME, "timestamp": datetime.now(timezone.utc).isoformat()}

def _out(game) -> dict:
    return GameOut.model_validate(game).model_dump(mode="json")

@router.get("/games")
def list_games(
    featured: Optional[bool] = None,
    category: Optional[str] = None,
    limit: int = Query(50, ge=1, le=1000),
    session: Session = Depends(get_session),
):
    games = [_out(g) for g in GameRepo(session).list_games(featured, category, limit)]
    return {"games": games, "total": len(games)}

@router.get("/games/featured")
def featured_games(session: Session = Depends(get_session)):
    games = [_out(g) for g in GameRepo(session).featured()]
    return {"featured_games": games, "count": len(games)}

@router.get("/games/{game_id}")
def get_game(game_id: uuid.UUID, session: Session = Depends(get_session)):
    return {"game": _out(GameRepo(session).get_game(game_id))}

@router.post("/games", status_code=201)
def create_game(payload: GameIn, session: Session = Depends(get_session)):
    game = GameRepo(session).create_game(payload)
    logger.info(f"Game created: {game.name}")
    return {"game": _out(game)}

@router.put("/games/{game_id}")
def update_game(game_id: uuid.UUID, payload: GameUpdate, session: Session = Depends(get_session)):
    game = GameRepo(session).update_game(game_id, payload.model_dump(exclude_unset=True))
    logger.info(f"Game updated: {game_id}")
    return {"game": _out(game)}

@router.delete("/games/{game_id}")
def delete_game(game_id: uuid.UUID, session: Session = Depends(get_session)):
    game = GameRepo(session).delete_game(game_id)
    out = _out(game)
    logger.info(f"Game deleted: {game_id}")
    return {"message": "Game deleted successfully", "game": out}

app.include_router(router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3001")))

# main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# REST routes
from api.routes import router as api_router
from config import configure_logging
from domain.errors import GameError
from domain.registry import GameRegistry
from domain.service import GameService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # one registry per process; everything reaches it through app.state
    registry = GameRegistry()
    app.state.registry = registry
    app.state.service = GameService(registry)
    logger.info("trading game server starting")
    yield
    app.state.service.shutdown()
    logger.info("trading game server stopped")


app = FastAPI(title="Multiplayer Trading Game", version="2.0", lifespan=lifespan)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(GameError)
async def game_error_handler(request: Request, exc: GameError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"type": "ERROR", "code": exc.code, "detail": exc.message},
    )


# --- REST API ---
app.include_router(api_router)


# --- Healthcheck ---
@app.get("/health")
async def health(request: Request):
    return {"status": "ok", "games": len(request.app.state.registry)}


# --- Dev runner ---
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)

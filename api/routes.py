# api/routes.py
import datetime as dt
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, Field

from config import DEFAULT_NUM_ROUNDS, DEFAULT_ROUND_DURATION_MS
from domain.models import RoundStatus, TransactionRequest
from domain.portfolio import leaderboard_payload
from domain.service import GameService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/games", tags=["games"])


# ---------- Request bodies ----------
class DayPrices(BaseModel):
    date: dt.date
    prices: Dict[str, float]


class CreateGameBody(BaseModel):
    gameId: Optional[str] = None
    timeline: List[DayPrices]
    roundDurationMillis: int = Field(default=DEFAULT_ROUND_DURATION_MS, gt=0)
    players: List[str] = Field(default_factory=list)


class RegisterPlayerBody(BaseModel):
    userId: str


class TransactionBody(BaseModel):
    stockId: str
    quantity: int
    type: str  # BUY | SELL


def get_service(request: Request) -> GameService:
    return request.app.state.service


def round_status_payload(game_id: str, status: RoundStatus, now_ms: int,
                         last_round: Optional[int] = None) -> dict:
    # a client that last saw `last_round` knows its round is over once the
    # server moved past it, or everybody has submitted
    if last_round is not None:
        round_ended = status.current_round > last_round or status.all_submitted
    else:
        round_ended = status.all_submitted
    return {
        "type": "ROUND_STATUS",
        "gameId": game_id,
        "currentRound": status.current_round,
        "totalRounds": status.total_rounds,
        "active": status.active,
        "allSubmitted": status.all_submitted,
        "roundEnded": round_ended,
        "nextRoundStartTimeMillis": status.next_round_start_time_ms,
        "remainingMillis": max(0, status.next_round_start_time_ms - now_ms),
    }


# ---------- Lifecycle ----------
@router.post("", status_code=201)
async def create_game(body: CreateGameBody, service: GameService = Depends(get_service)):
    if len(body.timeline) != DEFAULT_NUM_ROUNDS:
        logger.warning("creating game with %d days instead of %d",
                       len(body.timeline), DEFAULT_NUM_ROUNDS)
    session = service.create_session(
        body.gameId,
        [(day.date, day.prices) for day in body.timeline],
        body.roundDurationMillis,
        players=body.players,
        start=True,
    )
    return round_status_payload(session.session_id, session.get_round_status(), session.now_ms())


@router.post("/{game_id}/players", status_code=201)
async def register_player(game_id: str, body: RegisterPlayerBody,
                          service: GameService = Depends(get_service)):
    service.register_player(game_id, body.userId)
    return {"type": "PLAYER_REGISTERED", "gameId": game_id, "userId": body.userId}


@router.post("/{game_id}/end")
async def end_game(game_id: str, service: GameService = Depends(get_service)):
    service.end_session(game_id)
    return {"type": "GAME_ENDED", "gameId": game_id}


# ---------- Trading ----------
@router.post("/{game_id}/transactions")
async def submit_transactions(game_id: str, body: List[TransactionBody],
                              userId: str = Query(...),
                              service: GameService = Depends(get_service)):
    session = service.get_session(game_id)
    requests = [TransactionRequest(tx.stockId, tx.quantity, tx.type) for tx in body]
    results = session.submit_transactions(userId, requests)
    rows = []
    for req, res in zip(requests, results):
        rows.append({
            "stockId": req.stock_id,
            "quantity": req.quantity,
            "type": req.type.upper(),
            "accepted": res.accepted,
            "reason": res.reason,
            "price": res.transaction.price if res.transaction else None,
        })
    return {
        "type": "TRANSACTIONS",
        "gameId": game_id,
        "userId": userId,
        "results": rows,
        "status": round_status_payload(game_id, session.get_round_status(), session.now_ms()),
    }


# ---------- Market ----------
@router.get("/{game_id}/prices")
async def current_prices(game_id: str, service: GameService = Depends(get_service)):
    round_number, prices = service.get_session(game_id).get_current_market()
    return {
        "type": "PRICES",
        "gameId": game_id,
        "round": round_number,
        "prices": prices,
    }


@router.get("/{game_id}/stocks/{symbol}/history")
async def stock_history(game_id: str, symbol: str,
                        uptoRound: Optional[int] = None,
                        service: GameService = Depends(get_service)):
    rows = service.get_stock_price_history(game_id, symbol, uptoRound)
    return {
        "type": "PRICE_HISTORY",
        "symbol": symbol,
        "points": [{"date": day.isoformat(), "price": price} for day, price in rows],
    }


# ---------- Players ----------
@router.get("/{game_id}/players/{user_id}/holdings")
async def player_holdings(game_id: str, user_id: str,
                          round_number: Optional[int] = Query(None, alias="round"),
                          service: GameService = Depends(get_service)):
    if round_number is None:
        holdings = service.get_player_holdings(game_id, user_id)
    else:
        holdings = service.get_player_holdings_at_round(game_id, user_id, round_number)
    return {"type": "HOLDINGS", "userId": user_id, "round": round_number, "holdings": holdings}


@router.get("/{game_id}/players/{user_id}/state")
async def player_state(game_id: str, user_id: str,
                       service: GameService = Depends(get_service)):
    return service.get_session(game_id).get_player_portfolio(user_id)


# ---------- Standings ----------
@router.get("/{game_id}/leaderboard")
async def leaderboard(game_id: str,
                      round_number: Optional[int] = Query(None, alias="round"),
                      service: GameService = Depends(get_service)):
    if round_number is None:
        entries = service.get_leaderboard(game_id)
    else:
        entries = service.get_session(game_id).get_leaderboard_at_round(round_number)
    payload = leaderboard_payload(entries)
    payload["round"] = round_number
    return payload


@router.get("/{game_id}/status")
async def round_status(game_id: str, lastRound: Optional[int] = None,
                       service: GameService = Depends(get_service)):
    session = service.get_session(game_id)
    return round_status_payload(game_id, session.get_round_status(), session.now_ms(), lastRound)

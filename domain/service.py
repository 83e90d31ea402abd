# domain/service.py
from __future__ import annotations

import logging
from datetime import date
from typing import Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from config import DEFAULT_ROUND_DURATION_MS
from domain.models import (LeaderBoardEntry, RoundStatus, TransactionRequest,
                           TransactionResult)
from domain.pricing import TimelineInput
from domain.registry import GameRegistry, gen_session_id
from domain.session import GameSession

logger = logging.getLogger(__name__)


class GameService:
    """
    Entry point for everything outside the game core: every call names a game
    by id and is resolved through the registry (SessionNotFoundError if the
    game is unknown or already over).
    """

    def __init__(self, registry: GameRegistry):
        self.registry = registry

    def create_session(self,
                       session_id: Optional[Hashable],
                       timeline: TimelineInput,
                       round_duration_ms: int = DEFAULT_ROUND_DURATION_MS,
                       players: Iterable[Hashable] = (),
                       start: bool = False) -> GameSession:
        """
        Build a game, register its roster and publish it in the registry.
        With `start=True` the round timer is armed too, which needs a running
        event loop.
        """
        if session_id is None:
            session_id = gen_session_id()
            while session_id in self.registry:
                session_id = gen_session_id()
        session = GameSession(session_id, timeline, round_duration_ms, registry=self.registry)
        for user_id in players:
            session.register_player(user_id)
        self.registry.register(session)
        if start:
            try:
                session.start_game()
            except Exception:
                self.registry.remove(session_id)
                raise
        logger.info("created game %s: %d rounds, %d players, %d ms/round", session_id,
                    session.total_rounds, len(session.players), session.round_duration_ms)
        return session

    def get_session(self, session_id: Hashable) -> GameSession:
        return self.registry.get(session_id)

    def start_session(self, session_id: Hashable) -> None:
        self.registry.get(session_id).start_game()

    def end_session(self, session_id: Hashable) -> None:
        self.registry.get(session_id).end_game()

    def register_player(self, session_id: Hashable, user_id: Hashable) -> None:
        self.registry.get(session_id).register_player(user_id)

    def submit_transaction(self, session_id: Hashable, user_id: Hashable,
                           request: TransactionRequest) -> TransactionResult:
        return self.registry.get(session_id).submit_transaction(user_id, request)

    def submit_transactions(self, session_id: Hashable, user_id: Hashable,
                            requests: Sequence[TransactionRequest]) -> List[TransactionResult]:
        return self.registry.get(session_id).submit_transactions(user_id, requests)

    def get_current_prices(self, session_id: Hashable) -> Dict[str, float]:
        return self.registry.get(session_id).get_current_prices()

    def get_stock_price_history(self, session_id: Hashable, symbol: str,
                                upto_round: Optional[int] = None) -> List[Tuple[date, float]]:
        return self.registry.get(session_id).get_stock_price_history(symbol, upto_round)

    def get_player_holdings(self, session_id: Hashable, user_id: Hashable) -> Dict[str, int]:
        return self.registry.get(session_id).get_player_holdings(user_id)

    def get_player_holdings_at_round(self, session_id: Hashable, user_id: Hashable,
                                     round_number: int) -> Dict[str, int]:
        return self.registry.get(session_id).get_player_holdings_at_round(user_id, round_number)

    def get_leaderboard(self, session_id: Hashable) -> List[LeaderBoardEntry]:
        return self.registry.get(session_id).get_leaderboard()

    def get_round_status(self, session_id: Hashable) -> RoundStatus:
        return self.registry.get(session_id).get_round_status()

    def shutdown(self) -> None:
        """End every running game (process exit)."""
        for session in self.registry.sessions():
            session.end_game()

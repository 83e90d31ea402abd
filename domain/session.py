# domain/session.py
"""
GameSession: the authoritative state of one running game.

All mutations and every read that has to be consistent go through
`self._lock`. Nothing inside the lock awaits or does I/O. Work that touches
other objects (registry removal, cancelling the round timer) runs after the
lock is released, so lock order is always session -> nothing.
"""
from __future__ import annotations

import logging
import threading
import time
from datetime import date, datetime
from typing import (TYPE_CHECKING, Callable, Dict, Hashable, List, Optional,
                    Sequence, Tuple)

from config import DEFAULT_ROUND_DURATION_MS, STARTING_CASH
from domain.errors import (DuplicatePlayerError, InvalidRoundError,
                           PlayerNotFoundError, SessionInactiveError)
from domain.execution import validate_order
from domain.models import (LeaderBoardEntry, PlayerState, RoundStatus,
                           Transaction, TransactionRequest, TransactionResult)
from domain.portfolio import rank_players, snapshot_portfolio
from domain.pricing import (TimelineInput, build_timeline, price_history,
                            prices_for_round)
from domain.scheduler import RoundScheduler

if TYPE_CHECKING:
    from domain.registry import GameRegistry

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class GameSession:

    def __init__(self,
                 session_id: Hashable,
                 timeline: TimelineInput,
                 round_duration_ms: int = DEFAULT_ROUND_DURATION_MS,
                 *,
                 registry: Optional["GameRegistry"] = None,
                 starting_cash: float = STARTING_CASH,
                 clock: Callable[[], int] = _wall_clock_ms):
        if round_duration_ms <= 0:
            raise ValueError("round_duration_ms must be positive")
        self.session_id = session_id
        self.timeline = build_timeline(timeline)
        self.round_duration_ms = int(round_duration_ms)
        self.starting_cash = float(starting_cash)
        self.started_at = datetime.now()
        self.registry = registry
        self.now_ms = clock

        self.current_round = 1
        self.active = True
        self.next_round_start_time_ms = self.now_ms() + self.round_duration_ms
        self.players: Dict[Hashable, PlayerState] = {}
        # leaderboards[round - 1] = ranking at the close of that round
        self.leaderboards: List[List[LeaderBoardEntry]] = []

        self.scheduler = RoundScheduler(self)
        self._generation = 0
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return (f"GameSession(id={self.session_id!r}, round={self.current_round}/"
                f"{self.total_rounds}, active={self.active}, players={len(self.players)})")

    @property
    def total_rounds(self) -> int:
        return len(self.timeline)

    # ---- players ----
    def register_player(self, user_id: Hashable) -> None:
        with self._lock:
            self._ensure_active()
            if user_id in self.players:
                raise DuplicatePlayerError(
                    f"player {user_id!r} already registered in game {self.session_id!r}")
            self.players[user_id] = PlayerState(user_id, self.starting_cash)
        logger.info("game %s: registered player %s", self.session_id, user_id)

    # ---- prices ----
    def get_current_prices(self) -> Dict[str, float]:
        with self._lock:
            return prices_for_round(self.timeline, self.current_round)

    def get_current_market(self) -> Tuple[int, Dict[str, float]]:
        """(current round, copy of its prices) read together."""
        with self._lock:
            return self.current_round, prices_for_round(self.timeline, self.current_round)

    def get_stock_price_history(self, symbol: str,
                                upto_round: Optional[int] = None) -> List[Tuple[date, float]]:
        """Closing prices for `symbol` up to `upto_round`, never past the current round."""
        with self._lock:
            limit = self.current_round if upto_round is None else upto_round
            if limit < 1:
                raise InvalidRoundError(f"round must be >= 1, got {limit}")
            return price_history(self.timeline, symbol, min(limit, self.current_round))

    # ---- transactions ----
    def submit_transaction(self, user_id: Hashable,
                           request: TransactionRequest) -> TransactionResult:
        return self.submit_transactions(user_id, [request])[0]

    def submit_transactions(self, user_id: Hashable,
                            requests: Sequence[TransactionRequest]) -> List[TransactionResult]:
        """
        Apply a player's orders for the current round in order, then count the
        player as submitted. An empty batch is a pass. If every player has now
        submitted, the round advances before the lock is released, so exactly
        one of any racing submitters triggers it.
        """
        with self._lock:
            pl = self._player(user_id)
            self._ensure_active()
            round_number = self.current_round
            prices = prices_for_round(self.timeline, round_number)
            for req in requests:
                validate_order(req, prices)
            results = [pl.apply_transaction(req, prices, round_number) for req in requests]
            pl.mark_submitted_for_round(round_number)
            advanced = ended = False
            if self._all_submitted_locked():
                advanced = True
                ended = self._advance_locked()

        for res, req in zip(results, requests):
            if not res.accepted:
                logger.debug("game %s: rejected %s %s x%s for %s (%s)", self.session_id,
                             req.type, req.stock_id, req.quantity, user_id, res.reason)
        if advanced:
            logger.info("game %s: all players submitted round %d", self.session_id, round_number)
        if ended:
            self._finish()
        return results

    def have_all_players_submitted_for_current_round(self) -> bool:
        with self._lock:
            return self._all_submitted_locked()

    # ---- rounds ----
    def next_round(self) -> None:
        """Close the current round; the final round ends the game instead of advancing."""
        with self._lock:
            self._ensure_active()
            ended = self._advance_locked()
        if ended:
            self._finish()

    def round_deadline(self) -> Tuple[Optional[int], Optional[int]]:
        """(generation, deadline ms) of the pending forced advance, (None, None) once ended."""
        with self._lock:
            if not self.active:
                return None, None
            return self._generation, self.next_round_start_time_ms

    def advance_if_due(self, generation: int) -> bool:
        """Timer entry point: advance only if the round armed at `generation` is still open."""
        with self._lock:
            if not self.active or generation != self._generation:
                return False
            ended = self._advance_locked()
        if ended:
            self._finish()
        return True

    def start_game(self) -> None:
        """Arm the round timer; needs a running event loop."""
        with self._lock:
            self._ensure_active()
            self.next_round_start_time_ms = self.now_ms() + self.round_duration_ms
        self.scheduler.start()

    def end_game(self) -> None:
        """Deactivate and unregister. Ending an ended game changes nothing."""
        with self._lock:
            was_active = self.active
            if was_active:
                self.active = False
                self._generation += 1
        if was_active:
            logger.info("game %s: ended at round %d/%d",
                        self.session_id, self.current_round, self.total_rounds)
        self._finish()

    # ---- holdings & leaderboard ----
    def get_player_holdings(self, user_id: Hashable) -> Dict[str, int]:
        with self._lock:
            return self._player(user_id).get_holdings()

    def get_player_holdings_at_round(self, user_id: Hashable, round_number: int) -> Dict[str, int]:
        """Snapshot for a closed round; live holdings for the round still open."""
        with self._lock:
            pl = self._player(user_id)
            snap = pl.holdings_at_round(round_number)
            if snap is not None:
                return snap
            if self.active and round_number == self.current_round:
                return pl.get_holdings()
            raise InvalidRoundError(f"no holdings for round {round_number}")

    def get_player_transactions(self, user_id: Hashable) -> List[Transaction]:
        with self._lock:
            return self._player(user_id).get_transaction_history()

    def get_player_portfolio(self, user_id: Hashable) -> dict:
        """Cash, holdings valued at current prices and the ledger, as one consistent read."""
        with self._lock:
            pl = self._player(user_id)
            return snapshot_portfolio(pl, prices_for_round(self.timeline, self.current_round))

    def get_leaderboard(self) -> List[LeaderBoardEntry]:
        with self._lock:
            prices = prices_for_round(self.timeline, self.current_round)
            return rank_players(self.players.values(), prices)

    def get_leaderboard_at_round(self, round_number: int) -> List[LeaderBoardEntry]:
        with self._lock:
            if not 1 <= round_number <= len(self.leaderboards):
                raise InvalidRoundError(f"round {round_number} has not closed yet")
            return list(self.leaderboards[round_number - 1])

    def get_round_status(self) -> RoundStatus:
        with self._lock:
            return RoundStatus(
                current_round=self.current_round,
                total_rounds=self.total_rounds,
                active=self.active,
                all_submitted=self._all_submitted_locked(),
                next_round_start_time_ms=self.next_round_start_time_ms,
            )

    # ---- internals (caller holds self._lock) ----
    def _player(self, user_id: Hashable) -> PlayerState:
        pl = self.players.get(user_id)
        if pl is None:
            raise PlayerNotFoundError(f"player {user_id!r} not in game {self.session_id!r}")
        return pl

    def _ensure_active(self) -> None:
        if not self.active:
            raise SessionInactiveError(f"game {self.session_id!r} has ended")

    def _all_submitted_locked(self) -> bool:
        if not self.players:
            return False
        return all(pl.has_submitted_for_round(self.current_round)
                   for pl in self.players.values())

    def _advance_locked(self) -> bool:
        """Close the current round. Returns True when that was the final round."""
        closing = self.current_round
        prices = prices_for_round(self.timeline, closing)
        for pl in self.players.values():
            pl.snapshot_holdings_at_round(closing)
        board = rank_players(self.players.values(), prices)
        if closing <= len(self.leaderboards):
            self.leaderboards[closing - 1] = board
        else:
            self.leaderboards.append(board)
        self._generation += 1

        if closing >= self.total_rounds:
            self.active = False
            logger.info("game %s: final round %d closed", self.session_id, closing)
            return True
        self.current_round = closing + 1
        self.next_round_start_time_ms = self.now_ms() + self.round_duration_ms
        logger.info("game %s: round %d -> %d", self.session_id, closing, self.current_round)
        return False

    def _finish(self) -> None:
        self.scheduler.stop()
        if self.registry is not None:
            self.registry.remove(self.session_id)

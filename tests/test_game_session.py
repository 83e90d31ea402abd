"""Tests for GameSession: rounds, transactions, leaderboard and lifecycle."""

import threading
from datetime import date

import pytest

from conftest import make_timeline
from domain.errors import (DuplicatePlayerError, InvalidRoundError,
                           InvalidTimelineError, InvalidTransactionError,
                           PlayerNotFoundError, SessionInactiveError)
from domain.models import TransactionRequest
from domain.session import GameSession


def new_session(registry=None, days=3, clock=None, **kw):
    kwargs = {"registry": registry}
    if clock is not None:
        kwargs["clock"] = clock
    session = GameSession("g1", make_timeline(days, **kw), 60_000, **kwargs)
    if registry is not None:
        registry.register(session)
    return session


# =============================================================================
# Construction & players
# =============================================================================


class TestSetup:

    def test_initial_state(self, clock):
        session = new_session(clock=clock)
        assert session.current_round == 1
        assert session.active is True
        assert session.total_rounds == 3
        assert session.next_round_start_time_ms == clock.now + 60_000

    def test_empty_timeline_rejected(self):
        with pytest.raises(InvalidTimelineError):
            GameSession("g1", {}, 1000)

    def test_timeline_accepts_pairs_and_iso_dates(self):
        session = GameSession("g1", [("2025-04-09", {"AAPL": 1}), ("2025-04-10", {"AAPL": 2})])
        assert session.timeline[0][0] == date(2025, 4, 9)
        assert session.get_current_prices() == {"AAPL": 1.0}

    @pytest.mark.parametrize("price", [float("nan"), float("inf"), float("-inf"), -1.0])
    def test_unusable_price_rejected(self, price):
        timeline = {date(2025, 4, 9): {"AAPL": 100.0}, date(2025, 4, 10): {"AAPL": price}}
        with pytest.raises(InvalidTimelineError):
            GameSession("g1", timeline, 1000)

    def test_zero_price_allowed(self):
        session = GameSession("g1", {date(2025, 4, 9): {"AAPL": 0.0}}, 1000)
        assert session.get_current_prices() == {"AAPL": 0.0}

    def test_register_player_starts_with_stake(self):
        session = new_session()
        assert session.register_player(1) is None
        assert session.get_player_portfolio(1)["cashBalance"] == 10_000.0
        assert session.get_player_holdings(1) == {}

    def test_duplicate_player_fails_loudly(self):
        session = new_session()
        session.register_player(1)
        with pytest.raises(DuplicatePlayerError):
            session.register_player(1)
        assert len(session.players) == 1


# =============================================================================
# Prices
# =============================================================================


class TestPrices:

    def test_current_prices_follow_round(self):
        timeline = {date(2025, 4, 9): {"AAPL": 100.0}, date(2025, 4, 10): {"AAPL": 110.0}}
        session = GameSession("g1", timeline, 1000)
        assert session.get_current_prices() == {"AAPL": 100.0}
        session.next_round()
        assert session.get_current_prices() == {"AAPL": 110.0}

    def test_current_prices_are_a_copy(self):
        session = new_session()
        prices = session.get_current_prices()
        prices["AAPL"] = 0.0
        assert session.get_current_prices()["AAPL"] == 100.0

    def test_current_market_pairs_round_with_prices(self):
        timeline = {date(2025, 4, 9): {"AAPL": 100.0}, date(2025, 4, 10): {"AAPL": 110.0}}
        session = GameSession("g1", timeline, 1000)
        assert session.get_current_market() == (1, {"AAPL": 100.0})
        session.next_round()
        round_number, prices = session.get_current_market()
        prices["AAPL"] = 0.0
        assert session.get_current_market() == (2, {"AAPL": 110.0})

    def test_price_history_never_shows_the_future(self):
        timeline = {date(2025, 4, 9 + i): {"AAPL": 100.0 + i} for i in range(3)}
        session = GameSession("g1", timeline, 1000)
        assert session.get_stock_price_history("AAPL", 3) == [(date(2025, 4, 9), 100.0)]
        session.next_round()
        assert session.get_stock_price_history("AAPL") == [
            (date(2025, 4, 9), 100.0), (date(2025, 4, 10), 101.0)]
        assert session.get_stock_price_history("AAPL", 1) == [(date(2025, 4, 9), 100.0)]
        assert session.get_stock_price_history("MSFT") == []

    def test_price_history_rejects_round_zero(self):
        with pytest.raises(InvalidRoundError):
            new_session().get_stock_price_history("AAPL", 0)


# =============================================================================
# Transactions
# =============================================================================


class TestTransactions:

    def test_insufficient_funds_scenario(self):
        session = new_session()
        session.register_player(1)
        session.register_player(2)
        res = session.submit_transaction(1, TransactionRequest("AAPL", 200, "BUY"))
        assert res.accepted is False
        assert session.get_player_portfolio(1)["cashBalance"] == 10_000.0
        assert session.get_player_holdings(1) == {}

    def test_sell_without_shares_scenario(self):
        session = new_session()
        session.register_player(1)
        session.register_player(2)
        res = session.submit_transaction(1, TransactionRequest("TSLA", 5, "SELL"))
        assert res.accepted is False
        assert session.get_player_portfolio(1)["cashBalance"] == 10_000.0
        assert "TSLA" not in session.get_player_holdings(1)

    def test_unknown_player(self):
        session = new_session()
        with pytest.raises(PlayerNotFoundError):
            session.submit_transaction(99, TransactionRequest("AAPL", 1, "BUY"))

    def test_malformed_order_does_not_count_as_submission(self):
        session = new_session()
        session.register_player(1)
        session.register_player(2)
        with pytest.raises(InvalidTransactionError):
            session.submit_transaction(1, TransactionRequest("AAPL", 0, "BUY"))
        assert not session.players[1].has_submitted_for_round(1)

    def test_bad_order_in_batch_rejects_whole_batch(self):
        session = new_session()
        session.register_player(1)
        session.register_player(2)
        with pytest.raises(InvalidTransactionError):
            session.submit_transactions(1, [TransactionRequest("AAPL", 1, "BUY"),
                                            TransactionRequest("XXX", 1, "BUY")])
        assert session.get_player_portfolio(1)["cashBalance"] == 10_000.0

    def test_rejected_order_still_counts_as_submission(self):
        session = new_session()
        session.register_player(1)
        session.register_player(2)
        session.submit_transaction(1, TransactionRequest("AAPL", 1000, "BUY"))
        assert session.players[1].has_submitted_for_round(1)

    def test_same_player_orders_apply_in_order(self):
        session = new_session()
        session.register_player(1)
        session.register_player(2)
        results = session.submit_transactions(1, [TransactionRequest("AAPL", 5, "BUY"),
                                                  TransactionRequest("AAPL", 5, "SELL")])
        assert [r.accepted for r in results] == [True, True]
        assert [t.type for t in session.get_player_transactions(1)] == ["BUY", "SELL"]

    def test_empty_batch_is_a_pass(self):
        session = new_session()
        session.register_player(1)
        session.register_player(2)
        assert session.submit_transactions(1, []) == []
        assert session.players[1].has_submitted_for_round(1)
        assert session.current_round == 1


# =============================================================================
# Rounds
# =============================================================================


class TestRounds:

    def test_leaderboard_after_first_round(self):
        session = new_session()
        for uid in (1, 2, 3):
            session.register_player(uid)
        session.players[1].set_holding("AAPL", 10)
        session.players[2].set_holding("TSLA", 20)
        session.players[3].set_holding("AAPL", 50)

        session.next_round()

        board = session.get_leaderboard()
        assert [e.user_id for e in board] == [3, 2, 1]
        assert [e.total_assets for e in board] == [15_000.0, 14_000.0, 11_000.0]
        assert session.get_leaderboard_at_round(1) == board

    def test_leaderboard_ties_break_on_user_id(self):
        session = new_session()
        for uid in ("carol", "alice", "bob"):
            session.register_player(uid)
        first = [e.user_id for e in session.get_leaderboard()]
        assert first == ["alice", "bob", "carol"]
        assert [e.user_id for e in session.get_leaderboard()] == first

    def test_round_is_monotonic_and_capped(self):
        session = new_session(days=4)
        seen = [session.current_round]
        while session.active:
            session.next_round()
            seen.append(session.current_round)
        assert seen == sorted(seen)
        assert max(seen) == 4
        with pytest.raises(SessionInactiveError):
            session.next_round()
        assert session.current_round == 4

    def test_next_round_recomputes_deadline(self, clock):
        session = new_session(clock=clock)
        clock.advance(5_000)
        session.next_round()
        assert session.next_round_start_time_ms == clock.now + 60_000

    def test_holdings_snapshot_per_round(self):
        session = new_session()
        session.register_player(1)
        session.register_player(2)
        session.submit_transaction(1, TransactionRequest("AAPL", 10, "BUY"))
        session.next_round()
        session.submit_transaction(1, TransactionRequest("AAPL", 4, "SELL"))
        assert session.get_player_holdings_at_round(1, 1) == {"AAPL": 10}
        # the open round answers with live holdings
        assert session.get_player_holdings_at_round(1, 2) == {"AAPL": 6}
        with pytest.raises(InvalidRoundError):
            session.get_player_holdings_at_round(1, 3)

    def test_closed_leaderboard_is_stable(self):
        timeline = {date(2025, 4, 9): {"AAPL": 100.0}, date(2025, 4, 10): {"AAPL": 300.0},
                    date(2025, 4, 11): {"AAPL": 300.0}}
        session = GameSession("g1", timeline, 1000)
        session.register_player(1)
        session.players[1].set_holding("AAPL", 10)
        session.next_round()
        assert session.get_leaderboard()[0].total_assets == 13_000.0
        assert session.get_leaderboard_at_round(1)[0].total_assets == 11_000.0
        with pytest.raises(InvalidRoundError):
            session.get_leaderboard_at_round(2)

    def test_all_submitted_advances_exactly_once(self):
        session = new_session()
        session.register_player(1)
        session.register_player(2)
        session.submit_transaction(1, TransactionRequest("AAPL", 1, "BUY"))
        assert session.current_round == 1
        assert not session.have_all_players_submitted_for_current_round()
        session.submit_transaction(2, TransactionRequest("TSLA", 1, "BUY"))
        assert session.current_round == 2
        assert not session.have_all_players_submitted_for_current_round()

    def test_no_players_never_counts_as_all_submitted(self):
        assert not new_session().have_all_players_submitted_for_current_round()

    def test_racing_submitters_trigger_one_advance(self):
        session = new_session(days=5)
        players = list(range(8))
        for uid in players:
            session.register_player(uid)
        barrier = threading.Barrier(len(players))

        def submit(uid):
            barrier.wait()
            session.submit_transaction(uid, TransactionRequest("AAPL", 1, "BUY"))

        threads = [threading.Thread(target=submit, args=(uid,)) for uid in players]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert session.current_round == 2
        assert len(session.leaderboards) == 1
        assert all(session.get_player_holdings(uid) == {"AAPL": 1} for uid in players)

    def test_round_status(self, clock):
        session = new_session(clock=clock)
        session.register_player(1)
        status = session.get_round_status()
        assert status.current_round == 1
        assert status.total_rounds == 3
        assert status.active is True
        assert status.all_submitted is False
        assert status.next_round_start_time_ms == clock.now + 60_000


# =============================================================================
# Lifecycle
# =============================================================================


class TestEndGame:

    def test_final_round_ends_and_unregisters(self, registry):
        session = new_session(registry, days=2)
        session.next_round()
        assert session.active
        session.next_round()
        assert not session.active
        assert session.current_round == 2
        assert registry.find("g1") is None
        assert len(session.leaderboards) == 2

    def test_end_game_is_idempotent(self, registry):
        session = new_session(registry)
        session.end_game()
        assert session.active is False
        assert registry.find("g1") is None
        session.end_game()
        assert session.active is False
        assert registry.find("g1") is None

    def test_ended_session_rejects_mutations(self):
        session = new_session()
        session.register_player(1)
        session.end_game()
        with pytest.raises(SessionInactiveError):
            session.submit_transaction(1, TransactionRequest("AAPL", 1, "BUY"))
        with pytest.raises(SessionInactiveError):
            session.register_player(2)
        with pytest.raises(SessionInactiveError):
            session.next_round()
        assert session.get_player_portfolio(1)["cashBalance"] == 10_000.0

    def test_stale_timer_wake_is_ignored(self):
        session = new_session()
        generation, _ = session.round_deadline()
        session.next_round()
        assert session.advance_if_due(generation) is False
        assert session.current_round == 2
        session.end_game()
        assert session.round_deadline() == (None, None)
        assert session.advance_if_due(generation + 1) is False

    def test_final_submission_ends_game(self, registry):
        session = new_session(registry, days=1)
        session.register_player(1)
        session.submit_transaction(1, TransactionRequest("AAPL", 1, "BUY"))
        assert not session.active
        assert "g1" not in registry
        assert session.get_player_holdings_at_round(1, 1) == {"AAPL": 1}

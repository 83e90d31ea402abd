# domain/portfolio.py
from __future__ import annotations

from typing import Iterable, List, Mapping

from domain.models import LeaderBoardEntry, PlayerState


def rank_players(players: Iterable[PlayerState],
                 prices: Mapping[str, float]) -> List[LeaderBoardEntry]:
  """
  Mark every player to market and rank them: highest total assets first,
  equal totals ordered by ascending user id so the board is deterministic.
  """
  rows = [
      LeaderBoardEntry(pl.user_id, pl.calculate_net_worth(prices))
      for pl in players
  ]
  rows.sort(key=lambda r: (-r.total_assets, r.user_id))
  return rows


def snapshot_portfolio(pl: PlayerState, prices: Mapping[str, float]) -> dict:
  mkt_value_total = 0.0
  rows = []
  for sym in sorted(pl.holdings):
    qty = pl.holdings[sym]
    price = prices.get(sym, 0.0)
    mkt_value = qty * price
    mkt_value_total += mkt_value
    rows.append({
        "symbol": sym,
        "quantity": qty,
        "currentPrice": round(price, 2),
        "mktValue": round(mkt_value, 2),
    })
  return {
      "type": "PORTFOLIO",
      "userId": pl.user_id,
      "cashBalance": round(pl.cash, 2),
      "totalAssets": round(pl.cash + mkt_value_total, 2),
      "stocks": rows,
      "transactionHistory": [{
          "stockId": tx.stock_id,
          "quantity": tx.quantity,
          "price": round(tx.price, 4),
          "type": tx.type,
          "round": tx.round,
      } for tx in pl.transaction_history],
  }


def leaderboard_payload(entries: Iterable[LeaderBoardEntry]) -> dict:
  return {
      "type": "LEADERBOARD",
      "rows": [{
          "rank": i,
          "userId": e.user_id,
          "totalAssets": round(e.total_assets, 2),
      } for i, e in enumerate(entries, start=1)],
  }

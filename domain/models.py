# domain/models.py
from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Hashable, List, Mapping, Optional, Set

from config import STARTING_CASH
from domain.execution import execute_market, validate_order


@dataclass(frozen=True)
class TransactionRequest:
  stock_id: str
  quantity: int
  type: str  # BUY | SELL (any case)


@dataclass(frozen=True)
class Transaction:
  """One executed order in a player's ledger."""
  stock_id: str
  quantity: int
  price: float  # price at execution
  type: str  # BUY | SELL
  round: Optional[int] = None


@dataclass(frozen=True)
class TransactionResult:
  accepted: bool
  reason: Optional[str] = None  # insufficient_cash | insufficient_shares
  transaction: Optional[Transaction] = None


@dataclass(frozen=True)
class LeaderBoardEntry:
  user_id: Hashable
  total_assets: float


@dataclass(frozen=True)
class RoundStatus:
  current_round: int
  total_rounds: int
  active: bool
  all_submitted: bool
  next_round_start_time_ms: int


class PlayerState:

  def __init__(self, user_id: Hashable, starting_cash: float = STARTING_CASH):
    self.user_id = user_id
    self.cash = float(starting_cash)
    # holdings[symbol] = shares (> 0); sold-out symbols are dropped
    self.holdings: Dict[str, int] = {}
    self.transaction_history: List[Transaction] = []
    self.submitted_rounds: Set[int] = set()
    # holdings_snapshots[round - 1] = holdings at the close of that round
    self.holdings_snapshots: List[Mapping[str, int]] = []

  def apply_transaction(self,
                        request: TransactionRequest,
                        current_prices: Mapping[str, float],
                        round_number: Optional[int] = None) -> TransactionResult:
    """
    Validate and execute one order at `current_prices`.

    Malformed orders raise InvalidTransactionError. Orders the player cannot
    afford (cash or shares) come back as a rejected result with the state
    left untouched.
    """
    stock_id, qty, side, price = validate_order(request, current_prices)
    ok, reason = execute_market(self, stock_id, side, qty, price)
    if not ok:
      return TransactionResult(accepted=False, reason=reason)
    tx = Transaction(stock_id, qty, price, side, round_number)
    self.transaction_history.append(tx)
    return TransactionResult(accepted=True, transaction=tx)

  def set_holding(self, stock_id: str, quantity: int) -> None:
    if quantity < 0:
      raise ValueError("holdings cannot be negative")
    if quantity:
      self.holdings[stock_id] = int(quantity)
    else:
      self.holdings.pop(stock_id, None)

  def get_holdings(self) -> Dict[str, int]:
    return dict(self.holdings)

  def get_transaction_history(self) -> List[Transaction]:
    return list(self.transaction_history)

  def mark_submitted_for_round(self, round_number: int) -> None:
    self.submitted_rounds.add(round_number)

  def has_submitted_for_round(self, round_number: int) -> bool:
    return round_number in self.submitted_rounds

  def snapshot_holdings_at_round(self, round_number: int) -> None:
    """Freeze the current holdings as the close of `round_number` (re-snapshot overwrites)."""
    if round_number < 1:
      raise ValueError("rounds start at 1")
    frozen = MappingProxyType(dict(self.holdings))
    idx = round_number - 1
    # a player who joined late owned nothing in the rounds before
    while len(self.holdings_snapshots) < idx:
      self.holdings_snapshots.append(MappingProxyType({}))
    if idx < len(self.holdings_snapshots):
      self.holdings_snapshots[idx] = frozen
    else:
      self.holdings_snapshots.append(frozen)

  def holdings_at_round(self, round_number: int) -> Optional[Dict[str, int]]:
    if 1 <= round_number <= len(self.holdings_snapshots):
      return dict(self.holdings_snapshots[round_number - 1])
    return None

  def calculate_net_worth(self, prices: Mapping[str, float]) -> float:
    total = self.cash
    for sym, qty in self.holdings.items():
      total += qty * prices.get(sym, 0.0)
    return total

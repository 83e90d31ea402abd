# domain/execution.py
from __future__ import annotations

from typing import TYPE_CHECKING, Mapping, Optional, Tuple

from domain.errors import InvalidTransactionError

if TYPE_CHECKING:
    from domain.models import PlayerState, TransactionRequest

BUY = "BUY"
SELL = "SELL"
SIDES = (BUY, SELL)


def normalize_side(side) -> str:
    """Order sides are case-insensitive on input ("buy" == "BUY")."""
    if not isinstance(side, str) or side.strip().upper() not in SIDES:
        raise InvalidTransactionError(f"unknown order type: {side!r}")
    return side.strip().upper()


def validate_order(
    request: "TransactionRequest", prices: Mapping[str, float]
) -> Tuple[str, int, str, float]:
    """
    Reject malformed orders before anything is touched.

    Returns:
        (stock_id, quantity, side, price) ready for execute_market.
    """
    qty = request.quantity
    # bool is an int subclass; True is not a share count
    if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
        raise InvalidTransactionError(f"quantity must be a positive integer, got {qty!r}")
    side = normalize_side(request.type)
    stock_id = request.stock_id
    if stock_id not in prices:
        raise InvalidTransactionError(f"unknown symbol: {stock_id!r}")
    return stock_id, qty, side, float(prices[stock_id])


def execute_market(
    pl: "PlayerState", stock_id: str, side: str, qty: int, price: float
) -> Tuple[bool, Optional[str]]:
    """
    Execute a market BUY/SELL for `qty` shares of `stock_id` at `price`.
    - BUY needs enough cash for the full notional; no partial fills.
    - SELL needs enough shares; there is no shorting.
    Nothing is mutated on rejection.

    Returns:
        (ok, reason) where reason is None on success.
    """
    held = pl.holdings.get(stock_id, 0)
    notional = price * qty

    if side == BUY:
        if pl.cash < notional:
            return False, "insufficient_cash"
        pl.holdings[stock_id] = held + qty
        pl.cash -= notional
    else:  # SELL
        if held < qty:
            return False, "insufficient_shares"
        remaining = held - qty
        if remaining:
            pl.holdings[stock_id] = remaining
        else:
            pl.holdings.pop(stock_id, None)
        pl.cash += notional

    return True, None

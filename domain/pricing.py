# domain/pricing.py
from __future__ import annotations

import math
from datetime import date
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Tuple, Union

from domain.errors import InvalidTimelineError

DateLike = Union[date, str]
TimelineInput = Union[Mapping[DateLike, Mapping[str, float]],
                      Iterable[Tuple[DateLike, Mapping[str, float]]]]
# ((day, {symbol: close}), ...) frozen once built
Timeline = Tuple[Tuple[date, Mapping[str, float]], ...]


def _as_date(value: DateLike) -> date:
  if isinstance(value, date):
    return value
  try:
    return date.fromisoformat(str(value))
  except ValueError as exc:
    raise InvalidTimelineError(f"bad timeline date: {value!r}") from exc


def build_timeline(timeline: TimelineInput) -> Timeline:
  """
  Normalize an externally supplied price timeline into an immutable tuple of
  (date, read-only {symbol: price}) days, keeping the caller's order.
  Prices are opaque market data; they only have to be finite and >= 0.
  """
  if timeline is None:
    raise InvalidTimelineError("timeline is required")
  items = timeline.items() if isinstance(timeline, Mapping) else timeline
  days = []
  seen = set()
  for entry in items:
    try:
      raw_day, raw_prices = entry
    except (TypeError, ValueError) as exc:
      raise InvalidTimelineError(f"bad timeline entry: {entry!r}") from exc
    day = _as_date(raw_day)
    if day in seen:
      raise InvalidTimelineError(f"duplicate timeline date: {day}")
    seen.add(day)
    if not isinstance(raw_prices, Mapping):
      raise InvalidTimelineError(f"prices for {day} must be a mapping")
    try:
      prices = {str(sym): float(px) for sym, px in raw_prices.items()}
    except (TypeError, ValueError) as exc:
      raise InvalidTimelineError(f"bad price on {day}") from exc
    for sym, px in prices.items():
      if not math.isfinite(px) or px < 0:
        raise InvalidTimelineError(f"bad price for {sym} on {day}: {px!r}")
    days.append((day, MappingProxyType(prices)))
  if not days:
    raise InvalidTimelineError("timeline must contain at least one day")
  return tuple(days)


def prices_for_round(timeline: Timeline, round_number: int) -> Dict[str, float]:
  """Copy of the price map for a 1-based round; empty when out of range."""
  if round_number < 1 or round_number > len(timeline):
    return {}
  return dict(timeline[round_number - 1][1])


def price_history(timeline: Timeline, symbol: str,
                  upto_round: int) -> List[Tuple[date, float]]:
  """(date, close) pairs for rounds 1..upto_round, skipping days without `symbol`."""
  rows = []
  for day, prices in timeline[:max(0, upto_round)]:
    if symbol in prices:
      rows.append((day, prices[symbol]))
  return rows

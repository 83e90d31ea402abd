# config.py
import logging
import os

# ---------- Game ----------
STARTING_CASH = float(os.getenv("GAME_STARTING_CASH", "10000.0"))
DEFAULT_ROUND_DURATION_MS = int(os.getenv("GAME_ROUND_DURATION_MS", "180000"))
DEFAULT_NUM_ROUNDS = 10  # one round per historical trading day

# ---------- Logging ----------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Attach a single console handler to the root logger (safe to call twice)."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level, logging.INFO))
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT))
        root.addHandler(handler)

# domain/registry.py
from __future__ import annotations

import logging
import random
import string
import threading
from typing import TYPE_CHECKING, Dict, Hashable, List, Optional

from domain.errors import DuplicateSessionError, SessionNotFoundError

# Only for type hints to avoid circular imports at runtime
if TYPE_CHECKING:
    from domain.session import GameSession

logger = logging.getLogger(__name__)


class GameRegistry:
    """
    Running games by id. One instance is owned by the application and handed
    to whoever needs it; a game is added when it starts and removed when it ends.
    """

    def __init__(self) -> None:
        self._games: Dict[Hashable, "GameSession"] = {}  # sessionId -> GameSession
        self._lock = threading.Lock()

    def register(self, session: "GameSession") -> None:
        with self._lock:
            if session.session_id in self._games:
                raise DuplicateSessionError(f"game {session.session_id!r} already running")
            self._games[session.session_id] = session
        logger.info("registered game %s", session.session_id)

    def find(self, session_id: Hashable) -> Optional["GameSession"]:
        with self._lock:
            return self._games.get(session_id)

    def get(self, session_id: Hashable) -> "GameSession":
        session = self.find(session_id)
        if session is None:
            raise SessionNotFoundError(f"game {session_id!r} not found")
        return session

    def remove(self, session_id: Hashable) -> Optional["GameSession"]:
        """Drop a game; removing an unknown id is a no-op."""
        with self._lock:
            session = self._games.pop(session_id, None)
        if session is not None:
            logger.info("removed game %s", session_id)
        return session

    def is_active(self, session_id: Hashable) -> bool:
        with self._lock:
            return session_id in self._games

    def sessions(self) -> List["GameSession"]:
        with self._lock:
            return list(self._games.values())

    def clear(self) -> None:
        with self._lock:
            self._games.clear()

    def __contains__(self, session_id: Hashable) -> bool:
        return self.is_active(session_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._games)


# ---- ID generators ----
def gen_session_id() -> str:
    """Generate a 6-char game code, e.g. 'AB3Z9Q'."""
    alphabet = string.ascii_uppercase + "23456789"  # avoid 0/1 for readability
    return "".join(random.choices(alphabet, k=6))

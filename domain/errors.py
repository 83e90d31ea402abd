"""
Game errors.

Every error carries a short snake_case `code` (the same codes the HTTP layer
sends back in its ERROR payloads) and the HTTP status it maps to.
"""


class GameError(Exception):
    code = "game_error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class DuplicatePlayerError(GameError):
    code = "duplicate_player"
    status_code = 409


class DuplicateSessionError(GameError):
    code = "duplicate_session"
    status_code = 409


class PlayerNotFoundError(GameError):
    code = "player_not_found"
    status_code = 404


class SessionNotFoundError(GameError):
    code = "session_not_found"
    status_code = 404


class SessionInactiveError(GameError):
    code = "session_inactive"
    status_code = 409


class InvalidTransactionError(GameError):
    """Malformed order: bad quantity, unknown side or unknown symbol."""

    code = "invalid_transaction"
    status_code = 400


class InvalidRoundError(GameError):
    code = "invalid_round"
    status_code = 400


class InvalidTimelineError(GameError):
    code = "invalid_timeline"
    status_code = 400

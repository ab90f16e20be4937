"""Exceptions raised by the Americano scheduler."""


class AmericanoError(Exception):
    """Base exception for all scheduler errors."""

    pass


# ========== Roster Exceptions ==========


class RosterUnavailable(AmericanoError):
    """Raised when the roster payload is missing or malformed."""

    pass


class InvalidRosterSize(AmericanoError, ValueError):
    """Raised when a roster is too small to fill two teams of two."""

    def __init__(self, size: int, minimum: int):
        super().__init__(f"At least {minimum} players are required, got {size}.")
        self.size = size
        self.minimum = minimum


class DuplicatePlayer(AmericanoError, ValueError):
    """Raised when the same player id appears twice in a roster."""

    def __init__(self, player_id: int):
        super().__init__(f"Player {player_id} appears more than once in the roster.")
        self.player_id = player_id


# ========== State Exceptions ==========


class CorruptedPersistedState(AmericanoError):
    """Raised by the state store when a stored entry cannot be decoded."""

    pass


# ========== Scoring Exceptions ==========


class ScoreOutOfRange(AmericanoError, ValueError):
    """Raised when a round score falls outside the points available."""

    def __init__(self, score: object, total: int):
        super().__init__(f"Score must be an integer between 0 and {total}, got {score!r}.")
        self.score = score
        self.total = total

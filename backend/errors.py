"""Errors raised by the session layer.

Every error carries a message that is safe to show the originating client.
`Ignored` marks a benign no-op and is never surfaced.
"""


class GameError(Exception):
    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class Unauthorized(GameError):
    """Missing, malformed or expired identity token."""


class Forbidden(GameError):
    """Valid identity, but not allowed to do this."""


class NotFound(GameError):
    """Unknown room code."""


class InvalidState(GameError):
    """Event not valid in the room's current lifecycle state."""


class BadRequest(GameError):
    """Payload failed validation."""


class Ignored(GameError):
    """Benign no-op: duplicate answer, non-host action, stale room."""

"""
Error taxonomy for the match lifecycle and result engine.

Every error is a ValueError subclass carrying a message that can be shown
to the player as-is. The HTTP layer maps each family to a status code.
"""


class MatchError(ValueError):
    """Base class for all user-facing match engine errors."""


class ValidationError(MatchError):
    """Raised when submitted data (e.g. a set score) breaks the sport rules."""


class CapacityError(MatchError):
    """Raised when a team slot or the roster is already full."""


class TeamFullError(CapacityError):
    """Raised when joining a team slot that already holds two players."""


class MembershipError(MatchError):
    """Raised when a player's membership makes the operation invalid."""


class AlreadyJoinedError(MembershipError):
    """Raised when a player tries to join a match they are already in."""


class NotAMemberError(MembershipError):
    """Raised when a non-participant tries a participant-only operation."""


class StateError(MatchError):
    """Raised when the operation is invalid for the match's current status."""


class NotReadyForResultError(StateError):
    """Raised when a score is submitted before start time or with an incomplete roster."""


class ConcurrencyError(StateError):
    """Raised when a conditional update keeps losing to concurrent writers."""


class NotFoundError(MatchError):
    """Raised when a match or user id does not exist."""

"""Chest domain specific exceptions."""

from rubis.domain.ledger.exceptions import LedgerError


class ChestError(LedgerError):
    """Base class for chest errors."""

    code = "chest_error"


class StreamerNotFound(ChestError):
    code = "streamer_not_found"


class AlreadyOpen(ChestError):
    """Raised when the streamer already has an open chest opening."""

    code = "already_open"


class NoOpening(ChestError):
    """Raised when no matching opening exists."""

    code = "no_opening"


class OpeningClosed(ChestError):
    """Raised when joining after the opening's join window ended."""

    code = "opening_closed"


class OwnerForbidden(ChestError):
    """Raised when the streamer tries to join their own chest."""

    code = "owner_forbidden"


class StreamOffline(ChestError):
    code = "stream_offline"


class NotWatching(ChestError):
    """Raised when the viewer has no fresh heartbeat on the current live session."""

    code = "not_watching"


class NeedWatchtime(ChestError):
    """Raised when the viewer has not watched long enough in the current live session."""

    code = "need_watchtime"

    def __init__(self, watched_minutes: int, min_watch_minutes: int) -> None:
        super().__init__(f"watched {watched_minutes} of {min_watch_minutes} minutes")
        self.watched_minutes = watched_minutes
        self.min_watch_minutes = min_watch_minutes


class ChestEmptyRace(ChestError):
    """The chest lots ran dry mid-payout although their sum covered the pool.

    Only reachable if the chest lots were modified outside the close lock.
    """

    code = "chest_empty_race"

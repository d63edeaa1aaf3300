"""Failure kinds raised by the election state machine.

Every failure is recoverable by the caller. The `kind` attribute is a stable
string that hosting layers use to report the failure (see `server.py`).
"""


class ElectionError(Exception):
    """Base class for all rejected election operations"""

    kind = "ElectionError"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class Unauthorized(ElectionError, PermissionError):
    """Caller is not the administrator for an admin-only operation"""

    kind = "Unauthorized"


class InvalidPhase(ElectionError):
    """Operation attempted outside its required phase"""

    kind = "InvalidPhase"


class InvalidArgument(ElectionError, ValueError):
    """Malformed input: empty candidate name, null or malformed principal"""

    kind = "InvalidArgument"


class AlreadyRegistered(ElectionError):
    kind = "AlreadyRegistered"


class AlreadyVoted(ElectionError):
    kind = "AlreadyVoted"


class NotRegistered(ElectionError):
    """Caller attempted to vote without prior registration"""

    kind = "NotRegistered"


class CandidateNotFound(ElectionError, LookupError):
    kind = "CandidateNotFound"


class NoCandidates(ElectionError):
    """Starting voting or computing results with an empty candidate list"""

    kind = "NoCandidates"

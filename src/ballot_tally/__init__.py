"""ballot_tally - single-election ballot tally

The `Election` state machine lives in `election.py`; `persist.py` stores and
digests its state, `server.py` and `cli.py` host it over HTTP.
"""

from .election import Election
from .errors import (
    AlreadyRegistered,
    AlreadyVoted,
    CandidateNotFound,
    ElectionError,
    InvalidArgument,
    InvalidPhase,
    NoCandidates,
    NotRegistered,
    Unauthorized,
)
from .models import Candidate, CandidateInfo, ElectionStatus, Phase, Results, VoterStatus

__all__ = [
    "Election",
    "Phase",
    "Candidate",
    "CandidateInfo",
    "Results",
    "ElectionStatus",
    "VoterStatus",
    "ElectionError",
    "Unauthorized",
    "InvalidPhase",
    "InvalidArgument",
    "AlreadyRegistered",
    "AlreadyVoted",
    "NotRegistered",
    "CandidateNotFound",
    "NoCandidates",
]

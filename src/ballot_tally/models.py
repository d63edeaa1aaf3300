"""Data types owned by an `Election`.

`Candidate` and `Voter` are the mutable records kept inside the election;
callers only ever receive copies or the read-only tuples defined below.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import NamedTuple, Optional


class Phase(str, enum.Enum):
    """Election phases; transitions only go forward Setup -> Open -> Closed"""

    SETUP = "Setup"
    OPEN = "Open"
    CLOSED = "Closed"


@dataclass
class Candidate:
    """A candidate on the ballot

    Attributes
    - id: positive integer assigned at creation, never reused
    - name: non-empty display name
    - vote_count: number of votes received so far
    """

    id: int
    name: str
    vote_count: int = 0


@dataclass
class Voter:
    """Per-participant record; presence in the registry means registered"""

    has_voted: bool = False
    voted_candidate_id: Optional[int] = None


class VoterStatus(NamedTuple):
    is_registered: bool
    has_voted: bool


class Results(NamedTuple):
    winner_name: str
    winner_vote_count: int
    total_votes_cast: int


class ElectionStatus(NamedTuple):
    name: str
    phase: Phase
    candidate_count: int
    total_votes_cast: int


class CandidateInfo(NamedTuple):
    id: int
    name: str
    vote_count: int

"""Single-election state machine.

One administrator, fixed at creation, adds candidates and registers
participants while the election is in `Setup`, then opens and closes the
voting window. Registered participants cast exactly one vote each while the
election is `Open`. The winner is the candidate with the most votes; ties go
to the earliest-added candidate.

Every operation takes the caller principal explicitly and runs under a lock
scoped to the instance, so concurrent callers observe a strict serial order.
Preconditions are checked before anything is mutated: a rejected operation
raises an `ElectionError` subclass and leaves the state unchanged.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import events
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
from .models import (
    Candidate,
    CandidateInfo,
    ElectionStatus,
    Phase,
    Results,
    Voter,
    VoterStatus,
)


logger = logging.getLogger(__name__)

CommitHook = Callable[["Election"], None]


def is_valid_principal(principal: Any) -> bool:
    """Principals are opaque non-blank strings (account address, user id, ...)"""
    return isinstance(principal, str) and bool(principal.strip())


class Election:
    """Ballot tally for a single election"""

    def __init__(self, administrator: str, name: str):
        if not is_valid_principal(administrator):
            raise InvalidArgument("administrator must be a non-empty principal")
        if not isinstance(name, str):
            raise InvalidArgument("election name must be a string")
        self._administrator = administrator
        self._name = name
        self._phase = Phase.SETUP
        # insertion order == id order; ids start at 1
        self._candidates: Dict[int, Candidate] = {}
        self._next_candidate_id = 1
        self._participants: Dict[str, Voter] = {}
        self._total_votes_cast = 0
        self._listeners: List[events.Listener] = []
        self._event_seq = 0
        self._commit_hook: Optional[CommitHook] = None
        self._lock = threading.RLock()

    def __repr__(self) -> str:
        return f"Election(name={self._name!r}, phase={self._phase.value})"

    ## --- notifications ---------------------------------------------------

    def subscribe(self, listener: events.Listener) -> None:
        """Register a callable notified after every successful mutation"""
        with self._lock:
            self._listeners.append(listener)

    def unsubscribe(self, listener: events.Listener) -> None:
        with self._lock:
            self._listeners.remove(listener)

    def _emit(self, event_name: str, **data: Any) -> None:
        self._event_seq += 1
        event = events.Event(name=event_name, seq=self._event_seq, data=data)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("listener %r failed on %s", listener, event_name)

    ## --- commit hook -----------------------------------------------------

    def set_commit_hook(self, hook: Optional[CommitHook]) -> None:
        """Install a callable run after each mutation, before it is final

        The hook receives the election with the mutation applied (e.g. to
        write it to durable storage). If it raises, the mutation is rolled
        back, no event is emitted and the exception reaches the caller.
        """
        with self._lock:
            self._commit_hook = hook

    def _backup(self) -> Optional[Tuple[Any, ...]]:
        if self._commit_hook is None:
            return None
        return (
            self._phase,
            {i: dataclasses.replace(c) for i, c in self._candidates.items()},
            self._next_candidate_id,
            {p: dataclasses.replace(v) for p, v in self._participants.items()},
            self._total_votes_cast,
        )

    def _commit(self, op: str, backup: Optional[Tuple[Any, ...]]) -> None:
        if self._commit_hook is None:
            return
        try:
            self._commit_hook(self)
        except Exception:
            (
                self._phase,
                self._candidates,
                self._next_candidate_id,
                self._participants,
                self._total_votes_cast,
            ) = backup
            logger.error("%s rolled back: commit hook failed", op)
            raise

    def _reject(self, op: str, exc: ElectionError) -> ElectionError:
        logger.info("%s rejected: %s (%s)", op, exc.kind, exc.message)
        return exc

    def _require_admin(self, op: str, caller: Any) -> None:
        if caller != self._administrator:
            raise self._reject(op, Unauthorized(f"{caller!r} is not the administrator"))

    def _require_phase(self, op: str, phase: Phase) -> None:
        if self._phase is not phase:
            raise self._reject(
                op,
                InvalidPhase(f"{op} requires phase {phase.value}, election is {self._phase.value}"),
            )

    ## --- mutations -------------------------------------------------------

    def add_candidate(self, caller: str, name: str) -> int:
        """Add a candidate during Setup and return its sequential id"""
        with self._lock:
            self._require_admin("add_candidate", caller)
            self._require_phase("add_candidate", Phase.SETUP)
            if not isinstance(name, str) or not name.strip():
                raise self._reject(
                    "add_candidate", InvalidArgument("candidate name must be non-empty")
                )
            backup = self._backup()
            candidate_id = self._next_candidate_id
            self._candidates[candidate_id] = Candidate(id=candidate_id, name=name)
            self._next_candidate_id += 1
            self._commit("add_candidate", backup)
            logger.info("candidate %d added: %s", candidate_id, name)
            self._emit(events.CANDIDATE_ADDED, candidate_id=candidate_id, name=name)
            return candidate_id

    def register_voter(self, caller: str, principal: str) -> None:
        with self._lock:
            self._require_admin("register_voter", caller)
            self._require_phase("register_voter", Phase.SETUP)
            if not is_valid_principal(principal):
                raise self._reject(
                    "register_voter", InvalidArgument(f"malformed principal {principal!r}")
                )
            if principal in self._participants:
                raise self._reject(
                    "register_voter", AlreadyRegistered(f"{principal!r} is already registered")
                )
            backup = self._backup()
            self._participants[principal] = Voter()
            self._commit("register_voter", backup)
            logger.info("voter registered: %s", principal)
            self._emit(events.VOTER_REGISTERED, principal=principal)

    def start_voting(self, caller: str) -> None:
        """Open the voting window; requires at least one candidate"""
        with self._lock:
            self._require_admin("start_voting", caller)
            self._require_phase("start_voting", Phase.SETUP)
            if not self._candidates:
                raise self._reject("start_voting", NoCandidates("no candidates to vote for"))
            backup = self._backup()
            self._phase = Phase.OPEN
            self._commit("start_voting", backup)
            logger.info(
                "voting started: %d candidates, %d voters",
                len(self._candidates),
                len(self._participants),
            )
            self._emit(events.VOTING_STARTED)

    def cast_vote(self, caller: str, candidate_id: int) -> None:
        """Record the caller's single vote for `candidate_id`

        No administrator privilege is involved; the caller only has to be a
        registered participant who has not voted yet.
        """
        with self._lock:
            self._require_phase("cast_vote", Phase.OPEN)
            voter = self._participants.get(caller) if is_valid_principal(caller) else None
            if voter is None:
                raise self._reject("cast_vote", NotRegistered(f"{caller!r} is not registered"))
            if voter.has_voted:
                raise self._reject("cast_vote", AlreadyVoted(f"{caller!r} has already voted"))
            candidate = self._lookup_candidate(candidate_id)
            if candidate is None:
                raise self._reject(
                    "cast_vote", CandidateNotFound(f"no candidate with id {candidate_id!r}")
                )
            backup = self._backup()
            voter.has_voted = True
            voter.voted_candidate_id = candidate.id
            candidate.vote_count += 1
            self._total_votes_cast += 1
            self._commit("cast_vote", backup)
            logger.info("vote cast by %s", caller)
            self._emit(events.VOTE_CAST, principal=caller, candidate_id=candidate.id)

    def end_voting(self, caller: str) -> None:
        with self._lock:
            self._require_admin("end_voting", caller)
            self._require_phase("end_voting", Phase.OPEN)
            backup = self._backup()
            self._phase = Phase.CLOSED
            self._commit("end_voting", backup)
            logger.info("voting ended: %d votes cast", self._total_votes_cast)
            self._emit(events.VOTING_ENDED)

    ## --- reads -----------------------------------------------------------

    def _lookup_candidate(self, candidate_id: Any) -> Optional[Candidate]:
        # bool is an int subclass but never a candidate id
        if isinstance(candidate_id, bool) or not isinstance(candidate_id, int):
            return None
        return self._candidates.get(candidate_id)

    def get_results(self) -> Results:
        """Return (winner_name, winner_vote_count, total_votes_cast)

        Candidates are scanned in ascending id order and only a strictly
        greater count replaces the leader, so ties go to the lowest id.
        """
        with self._lock:
            if not self._candidates:
                raise NoCandidates("no candidates to report on")
            winner: Optional[Candidate] = None
            for candidate in self._candidates.values():
                if winner is None or candidate.vote_count > winner.vote_count:
                    winner = candidate
            return Results(winner.name, winner.vote_count, self._total_votes_cast)

    def get_candidate(self, candidate_id: int) -> CandidateInfo:
        with self._lock:
            candidate = self._lookup_candidate(candidate_id)
            if candidate is None:
                raise CandidateNotFound(f"no candidate with id {candidate_id!r}")
            return CandidateInfo(candidate.id, candidate.name, candidate.vote_count)

    def list_candidates(self) -> List[CandidateInfo]:
        with self._lock:
            return [
                CandidateInfo(c.id, c.name, c.vote_count) for c in self._candidates.values()
            ]

    def get_voter(self, principal: str) -> VoterStatus:
        """Unregistered principals report (False, False) rather than failing"""
        with self._lock:
            voter = self._participants.get(principal) if is_valid_principal(principal) else None
            if voter is None:
                return VoterStatus(False, False)
            return VoterStatus(True, voter.has_voted)

    def get_election_status(self) -> ElectionStatus:
        with self._lock:
            return ElectionStatus(
                self._name, self._phase, len(self._candidates), self._total_votes_cast
            )

    @property
    def administrator(self) -> str:
        return self._administrator

    @property
    def name(self) -> str:
        return self._name

    @property
    def phase(self) -> Phase:
        with self._lock:
            return self._phase

    ## --- snapshot support (used by persist.py) ---------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Return a consistent deep copy of the full state"""
        with self._lock:
            return {
                "administrator": self._administrator,
                "name": self._name,
                "phase": self._phase,
                "candidates": [dataclasses.replace(c) for c in self._candidates.values()],
                "participants": {
                    p: dataclasses.replace(v) for p, v in self._participants.items()
                },
                "total_votes_cast": self._total_votes_cast,
            }

    @classmethod
    def restore(
        cls,
        administrator: str,
        name: str,
        phase: Phase,
        candidates: List[Candidate],
        participants: Dict[str, Voter],
    ) -> "Election":
        """Rebuild an election from already-validated records"""
        election = cls(administrator, name)
        election._phase = phase
        for candidate in candidates:
            election._candidates[candidate.id] = dataclasses.replace(candidate)
        election._next_candidate_id = max(election._candidates, default=0) + 1
        election._participants = {p: dataclasses.replace(v) for p, v in participants.items()}
        election._total_votes_cast = sum(c.vote_count for c in candidates)
        # every committed mutation emitted exactly one event
        election._event_seq = (
            len(candidates)
            + len(participants)
            + election._total_votes_cast
            + (phase is not Phase.SETUP)
            + (phase is Phase.CLOSED)
        )
        return election

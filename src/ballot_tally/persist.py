"""Snapshot persistence and published-tally digests.

The persisted layout is a JSON object:

    {"administrator": ..., "name": ..., "phase": "Setup|Open|Closed",
     "candidates": [{"id": 1, "name": ..., "vote_count": 0}, ...],
     "participants": {principal: {"has_voted": ..., "voted_candidate_id": ...}}}

`tally_digest` hashes the canonical JSON encoding of the per-candidate tally
(sorted keys, compact separators) so a published result can later be checked
against the stored election with `verify_digest`.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
from typing import Any, Dict, Tuple

from .election import Election, is_valid_principal
from .errors import InvalidArgument
from .models import Candidate, Phase, Voter


logger = logging.getLogger(__name__)


def to_dict(election: Election) -> Dict[str, Any]:
    snap = election.snapshot()
    return {
        "administrator": snap["administrator"],
        "name": snap["name"],
        "phase": snap["phase"].value,
        "candidates": [
            {"id": c.id, "name": c.name, "vote_count": c.vote_count}
            for c in snap["candidates"]
        ],
        "participants": {
            principal: {
                "has_voted": voter.has_voted,
                "voted_candidate_id": voter.voted_candidate_id,
            }
            for principal, voter in snap["participants"].items()
        },
    }


def from_dict(data: Dict[str, Any]) -> Election:
    """Rebuild an election from `to_dict` output, re-checking its invariants

    Raises InvalidArgument when the snapshot is malformed or inconsistent.
    """
    if not isinstance(data, dict):
        raise InvalidArgument("snapshot must be a JSON object")
    try:
        phase = Phase(data["phase"])
        candidates = [
            Candidate(id=c["id"], name=c["name"], vote_count=c["vote_count"])
            for c in data["candidates"]
        ]
        participants = {
            principal: Voter(
                has_voted=record["has_voted"],
                voted_candidate_id=record.get("voted_candidate_id"),
            )
            for principal, record in data["participants"].items()
        }
        administrator = data["administrator"]
        name = data["name"]
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise InvalidArgument(f"malformed snapshot: {e}") from e

    for expected_id, c in enumerate(candidates, start=1):
        if c.id != expected_id:
            raise InvalidArgument(f"candidate ids must run 1..n, got {c.id!r} at {expected_id}")
        if not isinstance(c.name, str) or not c.name.strip():
            raise InvalidArgument(f"candidate {c.id} has an empty name")
        if isinstance(c.vote_count, bool) or not isinstance(c.vote_count, int) or c.vote_count < 0:
            raise InvalidArgument(f"candidate {c.id} has invalid vote_count {c.vote_count!r}")

    recorded: Dict[int, int] = {}
    for principal, voter in participants.items():
        if not is_valid_principal(principal):
            raise InvalidArgument(f"malformed principal {principal!r}")
        if voter.has_voted is not True and voter.has_voted is not False:
            raise InvalidArgument(f"has_voted for {principal!r} must be a boolean")
        if voter.has_voted:
            choice = voter.voted_candidate_id
            if isinstance(choice, bool) or not isinstance(choice, int) or not 1 <= choice <= len(candidates):
                raise InvalidArgument(
                    f"{principal!r} voted for unknown candidate {voter.voted_candidate_id!r}"
                )
            recorded[choice] = recorded.get(choice, 0) + 1
        else:
            voter.voted_candidate_id = None

    for c in candidates:
        if recorded.get(c.id, 0) != c.vote_count:
            raise InvalidArgument(
                f"candidate {c.id} has {c.vote_count} votes but {recorded.get(c.id, 0)} voters chose it"
            )
    if phase is Phase.SETUP and recorded:
        raise InvalidArgument("votes recorded before voting started")
    if phase is not Phase.SETUP and not candidates:
        raise InvalidArgument("voting cannot have started without candidates")

    return Election.restore(administrator, name, phase, candidates, participants)


def dumps(election: Election) -> str:
    return json.dumps(to_dict(election), sort_keys=True, separators=(",", ":"))


def save(election: Election, path: str) -> None:
    """Write the snapshot to `path`, replacing any previous file atomically"""
    payload = dumps(election)
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp = tempfile.mkstemp(dir=directory, prefix=".ballot-", suffix=".json")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        os.replace(tmp, path)
    except BaseException:
        os.unlink(tmp)
        raise
    logger.debug("saved election snapshot to %s", path)


def load(path: str) -> Election:
    with open(path, "r", encoding="utf-8") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise InvalidArgument(f"snapshot {path} is not valid JSON: {e}") from e
    election = from_dict(data)
    logger.info("loaded election snapshot from %s: %r", path, election)
    return election


## --- published tally digest ---------------------------------------------


def tally(election: Election) -> Dict[str, int]:
    """Per-candidate vote counts keyed by candidate id (as a string)"""
    return {str(c.id): c.vote_count for c in election.list_candidates()}


def _digest(counts: Dict[str, int]) -> str:
    canonical = json.dumps(counts, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def tally_digest(election: Election) -> str:
    return _digest(tally(election))


def verify_digest(published: str, election: Election) -> Tuple[bool, Dict[str, Any]]:
    """Recompute the tally digest and compare it with `published`

    Returns (ok, details) where details holds 'recomputed_tally' and
    'recomputed_hash'.
    """
    recomputed_tally = tally(election)
    recomputed_hash = _digest(recomputed_tally)
    ok = bool(isinstance(published, str) and published == recomputed_hash)
    details = {"recomputed_tally": recomputed_tally, "recomputed_hash": recomputed_hash}
    return ok, details

import os
import sys

import pytest


# Ensure repository src directory is on sys.path for tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from ballot_tally import Election  # noqa: E402


ADMIN = "admin"


@pytest.fixture
def election():
    return Election(ADMIN, "Board Election")


@pytest.fixture
def open_election(election):
    """Two candidates (Alice=1, Bob=2), voters p1..p3, voting open"""
    election.add_candidate(ADMIN, "Alice")
    election.add_candidate(ADMIN, "Bob")
    for p in ("p1", "p2", "p3"):
        election.register_voter(ADMIN, p)
    election.start_voting(ADMIN)
    return election

import threading

import pytest

from ballot_tally import (
    AlreadyRegistered,
    AlreadyVoted,
    CandidateNotFound,
    Election,
    InvalidArgument,
    InvalidPhase,
    NoCandidates,
    NotRegistered,
    Phase,
    Unauthorized,
)
from ballot_tally import events


ADMIN = "admin"


def _conserved(election):
    candidates = election.list_candidates()
    total = election.get_election_status().total_votes_cast
    snap = election.snapshot()
    voted = sum(1 for v in snap["participants"].values() if v.has_voted)
    return total == sum(c.vote_count for c in candidates) == voted


def test_new_election_starts_in_setup(election):
    status = election.get_election_status()
    assert status == ("Board Election", Phase.SETUP, 0, 0)
    assert election.administrator == ADMIN


def test_constructor_rejects_blank_administrator():
    with pytest.raises(InvalidArgument):
        Election("  ", "x")
    with pytest.raises(InvalidArgument):
        Election(None, "x")


def test_add_candidate_assigns_sequential_ids(election):
    assert election.add_candidate(ADMIN, "Alice") == 1
    assert election.add_candidate(ADMIN, "Bob") == 2
    assert election.get_candidate(2) == (2, "Bob", 0)
    assert [c.name for c in election.list_candidates()] == ["Alice", "Bob"]


@pytest.mark.parametrize("name", ["", "   ", None, 42])
def test_add_candidate_rejects_bad_names(election, name):
    with pytest.raises(InvalidArgument):
        election.add_candidate(ADMIN, name)
    assert election.get_election_status().candidate_count == 0


def test_register_voter_and_duplicate(election):
    election.register_voter(ADMIN, "p1")
    assert election.get_voter("p1") == (True, False)
    with pytest.raises(AlreadyRegistered):
        election.register_voter(ADMIN, "p1")
    assert election.get_voter("p1") == (True, False)


@pytest.mark.parametrize("principal", [None, "", " ", 7, ["p1"]])
def test_register_voter_rejects_malformed_principal(election, principal):
    with pytest.raises(InvalidArgument):
        election.register_voter(ADMIN, principal)


def test_unknown_voter_reports_false_false(election):
    assert election.get_voter("nobody") == (False, False)
    assert election.get_voter(None) == (False, False)


def test_start_voting_without_candidates_fails(election):
    with pytest.raises(NoCandidates):
        election.start_voting(ADMIN)
    assert election.phase is Phase.SETUP


def test_admin_gating_in_every_phase(election):
    ops = [
        lambda: election.add_candidate("mallory", "Eve"),
        lambda: election.register_voter("mallory", "p9"),
        lambda: election.start_voting("mallory"),
        lambda: election.end_voting("mallory"),
    ]
    for op in ops:
        with pytest.raises(Unauthorized):
            op()
    election.add_candidate(ADMIN, "Alice")
    election.start_voting(ADMIN)
    for op in ops:
        with pytest.raises(Unauthorized):
            op()
    election.end_voting(ADMIN)
    for op in ops:
        with pytest.raises(Unauthorized):
            op()


def test_unauthorized_is_also_permission_error(election):
    with pytest.raises(PermissionError):
        election.add_candidate(None, "Alice")


def test_phase_gating(open_election):
    with pytest.raises(InvalidPhase):
        open_election.add_candidate(ADMIN, "Carol")
    with pytest.raises(InvalidPhase):
        open_election.register_voter(ADMIN, "p4")
    with pytest.raises(InvalidPhase):
        open_election.start_voting(ADMIN)
    open_election.end_voting(ADMIN)
    with pytest.raises(InvalidPhase):
        open_election.cast_vote("p1", 1)
    with pytest.raises(InvalidPhase):
        open_election.add_candidate(ADMIN, "Carol")
    with pytest.raises(InvalidPhase):
        open_election.register_voter(ADMIN, "p4")
    with pytest.raises(InvalidPhase):
        open_election.end_voting(ADMIN)
    assert open_election.get_voter("p4") == (False, False)


def test_cast_vote_before_open_is_invalid_phase(election):
    election.add_candidate(ADMIN, "Alice")
    election.register_voter(ADMIN, "p1")
    with pytest.raises(InvalidPhase):
        election.cast_vote("p1", 1)
    assert election.get_voter("p1") == (True, False)


def test_phase_is_never_reverted(open_election):
    open_election.end_voting(ADMIN)
    for op in (open_election.start_voting, open_election.end_voting):
        with pytest.raises(InvalidPhase):
            op(ADMIN)
    assert open_election.phase is Phase.CLOSED


def test_cast_vote_failures_leave_state_unchanged(open_election):
    with pytest.raises(NotRegistered):
        open_election.cast_vote("stranger", 1)
    with pytest.raises(CandidateNotFound):
        open_election.cast_vote("p1", 99)
    with pytest.raises(CandidateNotFound):
        open_election.cast_vote("p1", True)
    assert open_election.get_voter("p1") == (True, False)
    assert open_election.get_election_status().total_votes_cast == 0


def test_admin_is_not_a_voter_unless_registered(open_election):
    with pytest.raises(NotRegistered):
        open_election.cast_vote(ADMIN, 1)


def test_no_double_voting(open_election):
    open_election.cast_vote("p1", 1)
    for candidate_id in (1, 2, 99):
        with pytest.raises(AlreadyVoted):
            open_election.cast_vote("p1", candidate_id)
    assert open_election.get_candidate(1).vote_count == 1
    assert open_election.get_candidate(2).vote_count == 0
    assert _conserved(open_election)


def test_vote_conservation_throughout(open_election):
    assert _conserved(open_election)
    for p, c in (("p1", 2), ("p2", 2), ("p3", 1)):
        open_election.cast_vote(p, c)
        assert _conserved(open_election)


def test_get_results_before_voting_reports_zero_vote_winner(election):
    with pytest.raises(NoCandidates):
        election.get_results()
    election.add_candidate(ADMIN, "Alice")
    election.add_candidate(ADMIN, "Bob")
    assert election.get_results() == ("Alice", 0, 0)


def test_tie_break_favors_lowest_id():
    election = Election(ADMIN, "Tie")
    election.add_candidate(ADMIN, "A")
    election.add_candidate(ADMIN, "B")
    voters = [f"v{i}" for i in range(11)]
    for v in voters:
        election.register_voter(ADMIN, v)
    election.start_voting(ADMIN)
    for v in voters[:5]:
        election.cast_vote(v, 1)
    for v in voters[5:10]:
        election.cast_vote(v, 2)
    assert election.get_results() == ("A", 5, 10)
    election.cast_vote(voters[10], 2)
    assert election.get_results() == ("B", 6, 11)


def test_board_election_scenario():
    election = Election(ADMIN, "Board Election")
    assert election.add_candidate(ADMIN, "Alice") == 1
    assert election.add_candidate(ADMIN, "Bob") == 2
    for p in ("P1", "P2", "P3"):
        election.register_voter(ADMIN, p)
    election.start_voting(ADMIN)
    assert election.phase is Phase.OPEN
    election.cast_vote("P1", 1)
    election.cast_vote("P2", 1)
    election.cast_vote("P3", 2)
    with pytest.raises(AlreadyVoted):
        election.cast_vote("P1", 1)
    election.end_voting(ADMIN)
    assert election.get_results() == ("Alice", 2, 3)
    assert election.get_election_status() == ("Board Election", Phase.CLOSED, 2, 3)


def test_get_candidate_returns_plain_tuple(open_election):
    c = open_election.get_candidate(1)
    assert c == (1, "Alice", 0)
    with pytest.raises(AttributeError):
        c.vote_count = 100
    assert open_election.list_candidates() == [(1, "Alice", 0), (2, "Bob", 0)]
    with pytest.raises(CandidateNotFound):
        open_election.get_candidate(3)


def test_events_emitted_in_order(election):
    log = events.EventLog()
    election.subscribe(log)
    election.add_candidate(ADMIN, "Alice")
    election.register_voter(ADMIN, "p1")
    with pytest.raises(AlreadyRegistered):
        election.register_voter(ADMIN, "p1")
    election.start_voting(ADMIN)
    election.cast_vote("p1", 1)
    election.end_voting(ADMIN)
    got = [(e.seq, e.name, e.data) for e in log.events()]
    assert got == [
        (1, events.CANDIDATE_ADDED, {"candidate_id": 1, "name": "Alice"}),
        (2, events.VOTER_REGISTERED, {"principal": "p1"}),
        (3, events.VOTING_STARTED, {}),
        (4, events.VOTE_CAST, {"principal": "p1", "candidate_id": 1}),
        (5, events.VOTING_ENDED, {}),
    ]


def test_failing_listener_does_not_undo_mutation(election):
    def broken(event):
        raise RuntimeError("boom")

    log = events.EventLog()
    election.subscribe(broken)
    election.subscribe(log)
    assert election.add_candidate(ADMIN, "Alice") == 1
    assert election.get_election_status().candidate_count == 1
    assert len(log) == 1
    election.unsubscribe(broken)
    election.add_candidate(ADMIN, "Bob")
    assert len(log) == 2


def test_concurrent_votes_from_same_principal_only_count_once(open_election):
    barrier = threading.Barrier(8)
    outcomes = []
    lock = threading.Lock()

    def vote():
        barrier.wait()
        try:
            open_election.cast_vote("p1", 1)
            result = "ok"
        except AlreadyVoted:
            result = "already"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=vote) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(outcomes) == ["already"] * 7 + ["ok"]
    assert open_election.get_candidate(1).vote_count == 1
    assert _conserved(open_election)


def test_concurrent_distinct_voters_all_counted():
    election = Election(ADMIN, "Load")
    election.add_candidate(ADMIN, "A")
    election.add_candidate(ADMIN, "B")
    voters = [f"v{i}" for i in range(200)]
    for v in voters:
        election.register_voter(ADMIN, v)
    election.start_voting(ADMIN)

    def vote(chunk):
        for i, v in chunk:
            election.cast_vote(v, 1 + i % 2)

    indexed = list(enumerate(voters))
    threads = [threading.Thread(target=vote, args=(indexed[k::4],)) for k in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert election.get_results() == ("A", 100, 200)
    assert _conserved(election)


def _failing_hook(fail_on):
    def hook(election):
        if fail_on(election):
            raise OSError("disk full")

    return hook


def test_commit_hook_failure_rolls_back_vote(open_election):
    log = events.EventLog()
    open_election.subscribe(log)
    open_election.set_commit_hook(_failing_hook(lambda e: True))
    with pytest.raises(OSError):
        open_election.cast_vote("p1", 1)
    assert open_election.get_voter("p1") == (True, False)
    assert open_election.get_candidate(1).vote_count == 0
    assert open_election.get_election_status().total_votes_cast == 0
    assert len(log) == 0
    assert _conserved(open_election)

    open_election.set_commit_hook(None)
    open_election.cast_vote("p1", 1)
    assert open_election.get_voter("p1") == (True, True)
    assert log.events()[0].seq == 7


def test_commit_hook_failure_rolls_back_setup_and_phase(election):
    election.set_commit_hook(_failing_hook(lambda e: True))
    with pytest.raises(OSError):
        election.add_candidate(ADMIN, "Alice")
    election.set_commit_hook(None)
    assert election.add_candidate(ADMIN, "Alice") == 1

    election.set_commit_hook(_failing_hook(lambda e: True))
    with pytest.raises(OSError):
        election.register_voter(ADMIN, "p1")
    with pytest.raises(OSError):
        election.start_voting(ADMIN)
    assert election.get_voter("p1") == (False, False)
    assert election.phase is Phase.SETUP


def test_commit_hook_sees_applied_mutation(open_election):
    seen = []
    open_election.set_commit_hook(lambda e: seen.append(e.get_voter("p2")))
    open_election.cast_vote("p2", 2)
    assert seen == [(True, True)]

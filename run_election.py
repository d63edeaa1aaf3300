"""Reference runner that walks one election from setup to results.

Run this script from the repository root (with the package installed) to run
a small simulated board election in process.
"""

from ballot_tally import AlreadyVoted, Election, NoCandidates
from ballot_tally import persist
from ballot_tally.events import EventLog


ADMIN = "admin"


def _print_heading(msg: str):
    print()
    print(msg)


def _print_kv(key: str, value):
    print(f"  {key}: {value}")


def main():
    election = Election(ADMIN, "Board Election")
    log = EventLog()
    election.subscribe(log)

    _print_heading("[Setup] candidates and voters")
    try:
        election.start_voting(ADMIN)
    except NoCandidates as e:
        _print_kv("start before candidates", e.kind)
    for name in ("Alice", "Bob"):
        _print_kv(f"candidate {name}", election.add_candidate(ADMIN, name))
    voters = ("p1", "p2", "p3")
    for principal in voters:
        election.register_voter(ADMIN, principal)
        _print_kv("registered", principal)

    _print_heading("[Open] casting votes")
    election.start_voting(ADMIN)
    _print_kv("phase", election.phase.value)
    for principal, choice in zip(voters, (1, 1, 2)):
        election.cast_vote(principal, choice)
        _print_kv(f"{principal} voted", choice)
    try:
        election.cast_vote("p1", 1)
    except AlreadyVoted as e:
        _print_kv("p1 votes again", e.kind)

    _print_heading("[Closed] results")
    election.end_voting(ADMIN)
    winner, votes, total = election.get_results()
    _print_kv("winner", f"{winner} ({votes} of {total})")
    for c in election.list_candidates():
        _print_kv(f"{c.id} {c.name}", c.vote_count)
    published_hash = persist.tally_digest(election)
    _print_kv("hash", published_hash)

    ok, details = persist.verify_digest(published_hash, election)
    print("\n[Verify] Published hash:", "OK" if ok else "MISMATCH")
    if not ok:
        print("Details:", details)

    print("\nEvents:")
    for event in log.events():
        print(" ", event.seq, event.name, event.data)


if __name__ == "__main__":
    main()

"""Flask API hosting a single election.

The caller principal is taken from the `X-Principal` header, which an
upstream authenticator is trusted to set; this service never authenticates.

Endpoints:
- POST /candidates {"name": ...} -> add a candidate (administrator)
- GET /candidates, GET /candidates/<id> -> candidate records
- POST /voters {"principal": ...} -> register a voter (administrator)
- GET /voters/<principal> -> {"is_registered": ..., "has_voted": ...}
- POST /voting/start, POST /voting/end -> phase transitions (administrator)
- POST /votes {"candidate_id": ...} -> cast the caller's vote
- GET /results -> winner, vote counts and the published tally hash
- POST /verify {"hash": ...} -> compare a published hash with the current tally
- GET /status -> election snapshot
- GET /events -> notifications emitted so far
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from flask import Blueprint, Flask, current_app, jsonify, request

from . import persist
from .config import Settings, configure_logging, load_settings
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
from .events import EventLog
from .models import CandidateInfo


logger = logging.getLogger(__name__)

PRINCIPAL_HEADER = "X-Principal"

STATUS_CODES: Dict[type, int] = {
    Unauthorized: 403,
    NotRegistered: 403,
    InvalidArgument: 400,
    CandidateNotFound: 404,
    InvalidPhase: 409,
    AlreadyRegistered: 409,
    AlreadyVoted: 409,
    NoCandidates: 409,
}

api = Blueprint("ballot_tally", __name__)


def _election() -> Election:
    return current_app.config["ELECTION"]


def _caller() -> Optional[str]:
    return request.headers.get(PRINCIPAL_HEADER)


def _body() -> Dict[str, Any]:
    if not request.get_data():
        return {}
    data = request.get_json(silent=True)
    if data is None:
        raise InvalidArgument("request body must be valid JSON")
    if not isinstance(data, dict):
        raise InvalidArgument("request body must be a JSON object")
    return data


def _candidate_json(candidate: CandidateInfo) -> Dict[str, Any]:
    return candidate._asdict()


@api.errorhandler(ElectionError)
def handle_election_error(e: ElectionError):
    status = STATUS_CODES.get(type(e), 400)
    return jsonify({"error": e.kind, "detail": e.message}), status


@api.errorhandler(OSError)
def handle_storage_error(e: OSError):
    logger.error("snapshot write failed: %s", e)
    return jsonify({"error": "StorageUnavailable", "detail": "election state could not be saved"}), 503


@api.route("/candidates", methods=["POST"])
def add_candidate():
    data = _body()
    candidate_id = _election().add_candidate(_caller(), data.get("name"))
    return jsonify({"status": "added", "candidate_id": candidate_id}), 201


@api.route("/candidates", methods=["GET"])
def list_candidates():
    return jsonify({"candidates": [_candidate_json(c) for c in _election().list_candidates()]})


@api.route("/candidates/<int:candidate_id>", methods=["GET"])
def get_candidate(candidate_id: int):
    return jsonify(_candidate_json(_election().get_candidate(candidate_id)))


@api.route("/voters", methods=["POST"])
def register_voter():
    data = _body()
    principal = data.get("principal")
    _election().register_voter(_caller(), principal)
    return jsonify({"status": "registered", "principal": principal}), 201


@api.route("/voters/<path:principal>", methods=["GET"])
def get_voter(principal: str):
    status = _election().get_voter(principal)
    return jsonify(status._asdict())


@api.route("/voting/start", methods=["POST"])
def start_voting():
    _election().start_voting(_caller())
    return jsonify({"status": "started", "phase": _election().phase.value})


@api.route("/voting/end", methods=["POST"])
def end_voting():
    _election().end_voting(_caller())
    return jsonify({"status": "ended", "phase": _election().phase.value})


@api.route("/votes", methods=["POST"])
def cast_vote():
    data = _body()
    candidate_id = data.get("candidate_id")
    if isinstance(candidate_id, bool) or not isinstance(candidate_id, int):
        raise InvalidArgument("candidate_id must be an integer")
    _election().cast_vote(_caller(), candidate_id)
    return jsonify({"status": "cast", "candidate_id": candidate_id}), 201


@api.route("/results", methods=["GET"])
def get_results():
    election = _election()
    results = election.get_results()
    out = results._asdict()
    out["tally"] = persist.tally(election)
    out["hash"] = persist.tally_digest(election)
    return jsonify(out)


@api.route("/verify", methods=["POST"])
def verify_hash():
    data = _body()
    pub_hash = data.get("hash")
    if not isinstance(pub_hash, str):
        raise InvalidArgument("missing or invalid 'hash'")
    ok, details = persist.verify_digest(pub_hash, _election())
    return jsonify({"ok": ok, "details": details})


@api.route("/status", methods=["GET"])
def get_status():
    status = _election().get_election_status()
    out = status._asdict()
    out["phase"] = status.phase.value
    return jsonify(out)


@api.route("/events", methods=["GET"])
def list_events():
    log: EventLog = current_app.config["EVENT_LOG"]
    return jsonify({"events": [e.to_dict() for e in log.events()]})


def _snapshot_writer(path: str):
    def write(election: Election) -> None:
        persist.save(election, path)

    return write


def create_app(election: Optional[Election] = None, settings: Optional[Settings] = None) -> Flask:
    """Build the API around `election`, or one built from `settings`

    With a state path configured, an existing snapshot is loaded at start-up
    and the file is rewritten as part of every mutation; a failed write rolls
    the mutation back and answers 503.
    """
    settings = settings or load_settings()
    if election is None:
        if settings.state_path and os.path.exists(settings.state_path):
            election = persist.load(settings.state_path)
        else:
            election = Election(settings.admin, settings.election_name)

    event_log = EventLog()
    election.subscribe(event_log)
    if settings.state_path:
        election.set_commit_hook(_snapshot_writer(settings.state_path))

    app = Flask(__name__)
    app.config["ELECTION"] = election
    app.config["EVENT_LOG"] = event_log
    app.config["SETTINGS"] = settings
    app.register_blueprint(api)
    logger.info("serving %r", election)
    return app


app = create_app()


def main():
    configure_logging(app.config["SETTINGS"].log_level)
    app.run()


if __name__ == "__main__":
    main()

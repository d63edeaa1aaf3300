"""Environment-driven settings and logging setup for the hosting entry points.

Variables:
- BALLOT_TALLY_ADMIN: administrator principal of the served election
- BALLOT_TALLY_ELECTION_NAME: display name of the served election
- BALLOT_TALLY_STATE_PATH: JSON snapshot file (unset keeps state in memory)
- BALLOT_TALLY_LOG_LEVEL: root log level name
- BALLOT_TALLY_URL: base URL the CLI talks to
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional


DEFAULT_ADMIN = "admin"
DEFAULT_ELECTION_NAME = "Election"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_URL = "http://127.0.0.1:5000"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    admin: str = DEFAULT_ADMIN
    election_name: str = DEFAULT_ELECTION_NAME
    state_path: Optional[str] = None
    log_level: str = DEFAULT_LOG_LEVEL
    url: str = DEFAULT_URL


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ
    return Settings(
        admin=env.get("BALLOT_TALLY_ADMIN", DEFAULT_ADMIN),
        election_name=env.get("BALLOT_TALLY_ELECTION_NAME", DEFAULT_ELECTION_NAME),
        state_path=env.get("BALLOT_TALLY_STATE_PATH") or None,
        log_level=env.get("BALLOT_TALLY_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        url=env.get("BALLOT_TALLY_URL", DEFAULT_URL).rstrip("/"),
    )


def configure_logging(level: str = DEFAULT_LOG_LEVEL) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise ValueError(f"unknown log level {level!r}")
    logging.basicConfig(level=numeric, format=LOG_FORMAT)

"""Small CLI for interacting with the ballot tally server.

Usage examples:
    ballot-tally --as admin add-candidate Alice
    ballot-tally --as admin register voter-1
    ballot-tally --as admin start
    ballot-tally --as voter-1 cast 1
    ballot-tally results
"""

import argparse
import json
import logging
import sys
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from .config import configure_logging, load_settings


logger = logging.getLogger(__name__)

TIMEOUT = 5


class Client:
    """Thin wrapper around the HTTP API; every call returns (status, body)"""

    def __init__(self, base: str, principal: Optional[str] = None):
        self.base = base.rstrip("/")
        self.principal = principal

    def _headers(self) -> Dict[str, str]:
        if self.principal is None:
            return {}
        return {"X-Principal": self.principal}

    def _send(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None):
        url = f"{self.base}{path}"
        logger.debug("%s %s %s", method, url, payload)
        if method == "GET":
            r = requests.get(url, headers=self._headers(), timeout=TIMEOUT)
        else:
            r = requests.post(url, json=payload or {}, headers=self._headers(), timeout=TIMEOUT)
        return r.status_code, r.json()

    def add_candidate(self, name: str):
        return self._send("POST", "/candidates", {"name": name})

    def register(self, principal: str):
        return self._send("POST", "/voters", {"principal": principal})

    def start(self):
        return self._send("POST", "/voting/start")

    def cast(self, candidate_id: int):
        return self._send("POST", "/votes", {"candidate_id": candidate_id})

    def end(self):
        return self._send("POST", "/voting/end")

    def results(self):
        return self._send("GET", "/results")

    def verify(self, hash_value: str):
        return self._send("POST", "/verify", {"hash": hash_value})

    def status(self):
        return self._send("GET", "/status")

    def candidate(self, candidate_id: int):
        return self._send("GET", f"/candidates/{candidate_id}")

    def voter(self, principal: str):
        return self._send("GET", f"/voters/{quote(principal, safe='')}")

    def events(self):
        return self._send("GET", "/events")


def build_parser() -> argparse.ArgumentParser:
    settings = load_settings()
    p = argparse.ArgumentParser(prog="ballot-tally")
    p.add_argument("--url", default=settings.url, help="server base URL")
    p.add_argument("--as", dest="principal", help="caller principal")
    p.add_argument("--log-level", default=settings.log_level)
    sub = p.add_subparsers(dest="cmd")
    s = sub.add_parser("add-candidate")
    s.add_argument("name")
    s = sub.add_parser("register")
    s.add_argument("principal")
    sub.add_parser("start")
    s = sub.add_parser("cast")
    s.add_argument("candidate_id", type=int)
    sub.add_parser("end")
    sub.add_parser("results")
    s = sub.add_parser("verify")
    s.add_argument("--hash", required=True)
    sub.add_parser("status")
    s = sub.add_parser("candidate")
    s.add_argument("candidate_id", type=int)
    s = sub.add_parser("voter")
    s.add_argument("principal")
    sub.add_parser("events")
    return p


def run(args: argparse.Namespace, client: Client):
    if args.cmd == "add-candidate":
        return client.add_candidate(args.name)
    if args.cmd == "register":
        return client.register(args.principal)
    if args.cmd == "start":
        return client.start()
    if args.cmd == "cast":
        return client.cast(args.candidate_id)
    if args.cmd == "end":
        return client.end()
    if args.cmd == "results":
        return client.results()
    if args.cmd == "verify":
        return client.verify(args.hash)
    if args.cmd == "status":
        return client.status()
    if args.cmd == "candidate":
        return client.candidate(args.candidate_id)
    if args.cmd == "voter":
        return client.voter(args.principal)
    if args.cmd == "events":
        return client.events()
    raise ValueError(f"unknown command {args.cmd!r}")


def main(argv=None) -> int:
    p = build_parser()
    args = p.parse_args(argv)
    if args.cmd is None:
        p.print_help()
        return 2
    configure_logging(args.log_level)
    client = Client(args.url, args.principal)
    try:
        status, body = run(args, client)
    except requests.RequestException as e:
        logger.error("request to %s failed: %s", args.url, e)
        return 1
    print(json.dumps(body, indent=2, sort_keys=True))
    return 0 if status < 400 else 1


if __name__ == "__main__":
    sys.exit(main())

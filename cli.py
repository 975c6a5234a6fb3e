from __future__ import annotations

import argparse
import json
import sys

import requests

REASONS = ["declarative change", "auto-update", "forced-update"]

# Exit code of `once` when the reconciler's own unit changed.
EXIT_RESTART = 3


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _run_once(force: bool, reason: str) -> int:
    # Local single cycle without the API (oneshot units, first boot).
    from ncr import db
    from ncr.reconciler import Reconciler
    from ncr.runtime import RuntimeState
    from ncr.status import STATUS_SKIPPED, STATUS_SUCCEEDED, Reason

    db.init_db()
    outcome = Reconciler.from_settings(RuntimeState()).reconcile(force=force, reason=Reason(reason))
    _print(outcome.to_dict())
    if outcome.restart_requested:
        return EXIT_RESTART
    return 0 if outcome.status in {STATUS_SUCCEEDED, STATUS_SKIPPED} else 1


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Node Config Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("status", help="Show reconciler status")

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--target", help="Only events for this file path or unit")

    s_cy = sub.add_parser("cycles", help="Show recent reconciliation cycles")
    s_cy.add_argument("--limit", type=int, default=10)

    sub.add_parser("applied", help="Show the applied-state baseline")

    s_rec = sub.add_parser("reconcile", help="Run a reconciliation cycle now")
    s_rec.add_argument("--force", action="store_true", help="Run even if the document is already applied")
    s_rec.add_argument("--reason", choices=REASONS, default="declarative change")

    s_plan = sub.add_parser("plan", help="Dry-run a desired-state document against the applied state")
    s_plan.add_argument("--file", required=True, help="Path of a YAML/JSON desired-state document")

    s_once = sub.add_parser("once", help="Run one cycle locally (no API) and exit")
    s_once.add_argument("--force", action="store_true")
    s_once.add_argument("--reason", choices=REASONS, default="declarative change")

    args = p.parse_args(argv)

    if args.cmd == "once":
        return _run_once(args.force, args.reason)

    base = args.api.rstrip("/")

    if args.cmd == "status":
        _print(requests.get(f"{base}/status", timeout=10).json())
        return 0

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.target:
            params["target"] = args.target
        _print(requests.get(f"{base}/events", params=params, timeout=10).json())
        return 0

    if args.cmd == "cycles":
        _print(requests.get(f"{base}/cycles", params={"limit": args.limit}, timeout=10).json())
        return 0

    if args.cmd == "applied":
        _print(requests.get(f"{base}/applied", timeout=10).json())
        return 0

    if args.cmd == "reconcile":
        payload = {"force": args.force, "reason": args.reason}
        r = requests.post(f"{base}/reconcile", json=payload, timeout=300)
        _print(r.json())
        return 0 if r.ok and r.json().get("status") in {"succeeded", "skipped"} else 1

    if args.cmd == "plan":
        with open(args.file, encoding="utf-8") as fh:
            document = fh.read()
        r = requests.post(f"{base}/plan", json={"document": document}, timeout=30)
        _print(r.json())
        return 0 if r.ok else 1

    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))

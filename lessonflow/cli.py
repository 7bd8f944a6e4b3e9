"""
lessonflow.cli
==============

Command-line front end.

Examples
--------
$ lessonflow init-db --db sqlite:///lessons.db
$ lessonflow create goal --field lesson_id=L1 --field title="Scales"
$ lessonflow transition goal <id> IN_PROGRESS --context '{"note": "week 1"}'
$ lessonflow act lesson <id> ACCEPT
$ lessonflow show goal <id>
$ lessonflow table lesson_plan
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from lessonflow.db import SessionLocal, create_all, make_engine
from lessonflow.errors import LifecycleError, ValidationError
from lessonflow.kinds import all_kinds, parse_kind
from lessonflow.lifecycle import validator_for
from lessonflow.service import LifecycleService
from lessonflow.settings import settings


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--db", default=None, help="database URL (defaults to settings)")

    kinds = ", ".join(k.value for k in all_kinds())
    parser = argparse.ArgumentParser(prog="lessonflow", description="Lesson lifecycle status tool")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", parents=[common], help="create tables")

    p = sub.add_parser("create", parents=[common], help="create an owner")
    p.add_argument("kind", help=kinds)
    p.add_argument("--field", action="append", default=[], metavar="K=V")
    p.add_argument("--status", default=None, help="first status (lessons only need this)")
    p.add_argument("--id", default=None)

    p = sub.add_parser("transition", parents=[common], help="append a status")
    p.add_argument("kind")
    p.add_argument("owner_id")
    p.add_argument("status")
    p.add_argument("--context", default=None, help="JSON payload")
    p.add_argument("--expect", default=None, metavar="STATUS_ID", help="expected current status id")

    p = sub.add_parser("act", parents=[common], help="apply a named action")
    p.add_argument("kind")
    p.add_argument("owner_id")
    p.add_argument("action")
    p.add_argument("--context", default=None, help="JSON payload")

    for name, help_ in (("show", "print an owner with its history"), ("reconcile", "repair a lagging pointer")):
        p = sub.add_parser(name, parents=[common], help=help_)
        p.add_argument("kind")
        p.add_argument("owner_id")

    p = sub.add_parser("table", parents=[common], help="print the legal-transition table")
    p.add_argument("kind")
    return parser


def _parse_fields(pairs: List[str]) -> dict:
    out = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise ValidationError(f"--field expects K=V, got {pair!r}")
        out[key.strip()] = value
    return out


def _parse_context(raw: Optional[str]):
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError(f"--context is not valid JSON: {exc.msg}") from exc


def _emit(obj) -> None:
    print(json.dumps(obj, indent=2, default=str))


def run(args: argparse.Namespace) -> int:
    if args.command == "table":
        for src, action, dst in validator_for(args.kind).edges():
            print(f"{src.value if src else '(new)':<18} {action or '':<20} → {dst.value}")
        return 0

    engine = make_engine(args.db) if args.db else None
    if args.command == "init-db":
        create_all(engine)
        print("✅ lessonflow schema initialised")
        return 0

    service = LifecycleService(session_factory=lambda: SessionLocal(engine))
    kind = parse_kind(args.kind)

    if args.command == "create":
        ent = service.create(kind, owner_id=args.id, initial_status=args.status, **_parse_fields(args.field))
        _emit(ent.to_dict())
    elif args.command == "transition":
        kwargs = {"expected_status_id": args.expect} if args.expect else {}
        rec = service.transition(kind, args.owner_id, args.status, _parse_context(args.context), **kwargs)
        _emit(rec.to_dict())
    elif args.command == "act":
        rec = service.apply_action(kind, args.owner_id, args.action, _parse_context(args.context))
        _emit(rec.to_dict())
    elif args.command == "show":
        _emit(service.get(kind, args.owner_id).to_dict())
    elif args.command == "reconcile":
        healed = service.reconcile(kind, args.owner_id)
        print("healed" if healed else "consistent")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = _build_parser().parse_args(argv)
    try:
        return run(args)
    except LifecycleError as exc:
        print(json.dumps(exc.to_payload()), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

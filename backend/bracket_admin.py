#!/usr/bin/env python3
"""
Bracket administration CLI.

Usage:
    python bracket_admin.py <command> --tournament ID [options]

Commands:
    generate    Generate, link and persist the bracket
    validate    Read-only consistency report
    prune       Delete every game outside the keep set (--keep or --canonical)
    propagate   One propagation hop for a completed game
    sweep       Re-run propagation for every completed game in round order
    relink      Rewrite advancement edges from the topology

Exit code is 0 on success and 1 when violations are reported.

Environment:
    DATABASE_URL    Record store (default sqlite:///./bracket.db)
    LOG_LEVEL       DEBUG|INFO|WARNING|ERROR
"""

import argparse
import json
import logging
import os
import sys
from datetime import date
from typing import Callable, Optional, Sequence

from sqlmodel import Session

from bracket_engine.services import bracket_builder, consistency_guard, progression_linker, result_propagator

logger = logging.getLogger("bracket_admin")


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _emit(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _cmd_generate(session: Session, args: argparse.Namespace) -> int:
    start = date.fromisoformat(args.start_date) if args.start_date else None
    result = bracket_builder.build_bracket(session, args.tournament, start, args.on_existing)
    _emit(result.to_dict())
    return 0 if result.ok else 1


def _cmd_validate(session: Session, args: argparse.Namespace) -> int:
    report = consistency_guard.validate(session, args.tournament)
    _emit(report.to_dict())
    return 0 if report.ok else 1


def _cmd_prune(session: Session, args: argparse.Namespace) -> int:
    if args.canonical:
        result = consistency_guard.prune_canonical(session, args.tournament)
        if not result.ok:
            _emit(result.to_dict())
            return 1
    else:
        result = consistency_guard.prune(session, args.tournament, set(args.keep))
    report = consistency_guard.validate(session, args.tournament)
    _emit({**result.to_dict(), "validation": report.to_dict()})
    return 0 if report.ok else 1


def _cmd_propagate(session: Session, args: argparse.Namespace) -> int:
    result = result_propagator.propagate(session, args.game, args.winner, args.loser, force=args.force)
    _emit(result.to_dict())
    return 0 if result.ok else 1


def _cmd_sweep(session: Session, args: argparse.Namespace) -> int:
    summary = result_propagator.propagate_completed(session, args.tournament)
    _emit(summary)
    return 0 if not summary["violations"] else 1


def _cmd_relink(session: Session, args: argparse.Namespace) -> int:
    result = progression_linker.relink(session, args.tournament)
    _emit(result.to_dict())
    return 0 if result.ok else 1


def create_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="bracket_admin", description="Bracket topology & progression admin")
    p.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"))
    sub = p.add_subparsers(dest="command", required=True)

    p_gen = sub.add_parser("generate", help="generate and persist the bracket")
    p_gen.add_argument("--tournament", type=int, required=True)
    p_gen.add_argument("--start-date", default=None, help="YYYY-MM-DD (defaults to the tournament start)")
    p_gen.add_argument("--on-existing", choices=bracket_builder.ON_EXISTING_POLICIES, default="refuse")
    p_gen.set_defaults(func=_cmd_generate)

    p_val = sub.add_parser("validate", help="consistency report (read-only)")
    p_val.add_argument("--tournament", type=int, required=True)
    p_val.set_defaults(func=_cmd_validate)

    p_prune = sub.add_parser("prune", help="delete games outside the keep set")
    p_prune.add_argument("--tournament", type=int, required=True)
    keep = p_prune.add_mutually_exclusive_group(required=True)
    keep.add_argument("--keep", type=int, nargs="+", help="game ids to keep")
    keep.add_argument("--canonical", action="store_true", help="keep the earliest game per bracket position")
    p_prune.set_defaults(func=_cmd_prune)

    p_prop = sub.add_parser("propagate", help="one propagation hop for a completed game")
    p_prop.add_argument("--game", type=int, required=True)
    p_prop.add_argument("--winner", type=int, required=True)
    p_prop.add_argument("--loser", type=int, default=None)
    p_prop.add_argument("--force", action="store_true", help="overwrite a conflicting known slot")
    p_prop.set_defaults(func=_cmd_propagate)

    p_sweep = sub.add_parser("sweep", help="propagate every completed game in round order")
    p_sweep.add_argument("--tournament", type=int, required=True)
    p_sweep.set_defaults(func=_cmd_sweep)

    p_relink = sub.add_parser("relink", help="rewrite advancement edges")
    p_relink.add_argument("--tournament", type=int, required=True)
    p_relink.set_defaults(func=_cmd_relink)

    return p


def main(argv: Optional[Sequence[str]] = None, session_factory: Optional[Callable[[], Session]] = None) -> int:
    args = create_parser().parse_args(argv)
    setup_logging(args.log_level)

    if session_factory is None:
        from bracket_engine.database import engine, init_db

        init_db()

        def session_factory():
            return Session(engine)

    with session_factory() as session:
        return args.func(session, args)


if __name__ == "__main__":
    sys.exit(main())

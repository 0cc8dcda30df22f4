"""Command line interface for ConsensusAI."""
from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from pathlib import Path
from typing import Any

from consensusai.autopilot import AutoNegotiator
from consensusai.config import Config, get_config
from consensusai.engine import ConsensusEngine
from consensusai.intake import DocumentParser, build_vendor_proposal, load_scenario
from consensusai.oracle import build_client, build_oracle
from consensusai.schema import RoundResult
from consensusai.store import SessionStore


def _print(obj: Any) -> None:
    print(json.dumps(obj, indent=2))


def _configure_logging(config: Config) -> None:
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format=config.logging.get("format", "%(asctime)s %(levelname)s %(name)s: %(message)s"),
        stream=sys.stderr,
    )


def _build_parser_client(config: Config, use_model: bool) -> DocumentParser:
    client = build_client(config.oracle) if use_model and config.intake.get("use_model", True) else None
    return DocumentParser(
        client=client,
        model=config.oracle.get("model") or None,
        timeout=config.oracle_timeout_seconds,
        max_text_chars=int(config.intake.get("max_text_chars", 2000)),
    )


def cmd_negotiate(args: argparse.Namespace) -> int:
    config = get_config()
    _configure_logging(config)
    try:
        scenario = load_scenario(Path(args.scenario))
    except (OSError, ValueError) as exc:
        print(f"[consensusai] invalid scenario: {exc}", file=sys.stderr)
        return 2

    store = None if args.no_store else SessionStore(config.data_dir)
    session_id = store.create_session(scenario, meta={"source": "cli"}) if store else None
    engine = ConsensusEngine(
        scenario,
        build_oracle(config),
        vendor_round_cap=config.vendor_round_cap,
        max_workers=config.max_workers,
        transcript=store.transcript(session_id) if store and session_id else None,
    )

    def _on_round(result: RoundResult) -> None:
        if store and session_id:
            store.record_round(session_id, engine.snapshot())
        if args.progress:
            print(f"[consensusai] round {result.round}: {result.summary}", file=sys.stderr)

    max_rounds = args.max_rounds if args.max_rounds is not None else config.auto_max_rounds
    interval = args.interval
    if interval is None:
        interval = config.auto_interval_seconds if args.auto else 0.0
    autopilot = AutoNegotiator(engine, interval_seconds=interval, max_rounds=max_rounds, on_round=_on_round)
    try:
        autopilot.run()
    except KeyboardInterrupt:
        autopilot.stop()
        print("[consensusai] negotiation interrupted", file=sys.stderr)

    summary = engine.executive_summary()
    snapshot = engine.snapshot()
    if store and session_id:
        store.finalize_session(session_id, snapshot, summary)
    if args.output_md:
        Path(args.output_md).write_text(summary)
    _print({
        "session_id": session_id,
        "status": engine.status,
        "rounds": engine.round_index,
        "confidence": engine.confidence_score(),
        "proposal": snapshot["proposal"],
        "rankings": snapshot["rankings"],
        "transcript": [entry["summary"] for entry in snapshot["history"]],
        "summary": summary,
    })
    return 0 if engine.converged else 1


def cmd_parse(args: argparse.Namespace) -> int:
    config = get_config()
    _configure_logging(config)
    parser = _build_parser_client(config, use_model=not args.no_model)
    path = Path(args.file)
    document = parser.parse_file(path) if path.exists() else parser.parse(path.name)
    if args.vendor:
        seed = config.intake.get("vendor_seed")
        rng = random.Random(seed) if seed is not None else None
        _print(build_vendor_proposal(document, args.vendor, rng=rng).to_dict())
    else:
        _print(document.to_dict())
    return 0


def cmd_sessions(args: argparse.Namespace) -> int:
    config = get_config()
    store = SessionStore(config.data_dir)
    if args.sessions_cmd == "latest":
        _print(store.latest() or {})
    elif args.sessions_cmd == "show":
        session = store.get_session(args.id)
        if not session:
            print(f"[consensusai] session not found: {args.id}", file=sys.stderr)
            return 1
        _print(session)
    else:
        _print({"sessions": store.list_sessions(limit=args.limit)})
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    from consensusai.server import main as serve_main
    serve_main()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="consensusai")
    sub = parser.add_subparsers(dest="command")

    negotiate = sub.add_parser("negotiate", help="Run a negotiation to convergence")
    negotiate.add_argument("--scenario", required=True, help="YAML or JSON scenario file")
    negotiate.add_argument("--max-rounds", type=int)
    negotiate.add_argument("--auto", action="store_true", help="Pace rounds at the configured auto interval")
    negotiate.add_argument("--interval", type=float, help="Seconds to wait between rounds")
    negotiate.add_argument("--output-md")
    negotiate.add_argument("--progress", action="store_true")
    negotiate.add_argument("--no-store", action="store_true")

    parse = sub.add_parser("parse", help="Extract facts from a document")
    parse.add_argument("--file", required=True)
    parse.add_argument("--vendor", help="Build a vendor proposal under this name")
    parse.add_argument("--no-model", action="store_true", help="Use filename heuristics only")

    sessions = sub.add_parser("sessions")
    sessions_sub = sessions.add_subparsers(dest="sessions_cmd")
    sessions_list = sessions_sub.add_parser("list")
    sessions_list.add_argument("--limit", type=int, default=20)
    sessions_sub.add_parser("latest")
    sessions_show = sessions_sub.add_parser("show")
    sessions_show.add_argument("--id", required=True)
    sessions.set_defaults(limit=20)

    sub.add_parser("serve")
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "negotiate":
        code = cmd_negotiate(args)
    elif args.command == "parse":
        code = cmd_parse(args)
    elif args.command == "sessions":
        code = cmd_sessions(args)
    elif args.command == "serve":
        code = cmd_serve(args)
    else:
        parser.print_help()
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()

"""
CLI entry point for the move prover.

Usage:
    python -m move_prover prove --fen <FEN> --move e2e4 [--move e7e5 ...]
    python -m move_prover status

`prove` proves each move in order (records are chained), printing progress
as it goes; `status` runs capability initialization and prints the result.
The CLI is a thin wrapper around ProofOrchestrator; configuration comes from
MOVE_PROVER_* variables (and .env), overridden by flags.
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import re
import sys
from contextlib import AsyncExitStack
from pathlib import Path

from move_prover.board import STARTING_FEN
from move_prover.config import ProverConfig
from move_prover.errors import ProofGenerationFailed
from move_prover.events import WebhookSink
from move_prover.models import GameSnapshot, LastMove, ProgressEvent
from move_prover.orchestrator import ProofOrchestrator
from move_prover.profiles import PROFILES
from move_prover.report import write_json_report, write_markdown_report

_MOVE_PATTERN = re.compile(r"^([a-h][1-8])([a-h][1-8])([pnbrqk])?$")


def parse_move(text: str) -> LastMove:
    """Parse 'e2e4' (optionally suffixed with a captured piece: 'e4d5p')."""
    match = _MOVE_PATTERN.match(text.strip().lower())
    if not match:
        raise ValueError(f"Invalid move {text!r}; expected e.g. e2e4 or e4d5p")
    return LastMove(
        from_square=match.group(1),
        to_square=match.group(2),
        captured=match.group(3),
    )


def build_snapshots(
    fen: str,
    moves: list[str],
    start_move: int,
    first_turn: str,
    session_id: str = "",
) -> list[GameSnapshot]:
    """One snapshot per move; ``turn`` is the side to move after it."""
    if not moves:
        return [GameSnapshot(fen=fen, move_number=start_move, turn=first_turn,
                             session_id=session_id)]
    snapshots = []
    mover = first_turn
    for offset, text in enumerate(moves):
        to_move = "b" if mover == "w" else "w"
        snapshots.append(GameSnapshot(
            fen=fen,
            last_move=parse_move(text),
            move_number=start_move + offset,
            turn=to_move,
            session_id=session_id,
        ))
        mover = to_move
    return snapshots


def _print_event(event: ProgressEvent) -> None:
    print(f"  [{event.progress:5.1f}%] {event.stage}: {event.message}")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="move_prover",
        description="Attach a proof (real or simulated) to each move of a game.",
    )
    parser.add_argument(
        "--profile",
        choices=sorted(PROFILES),
        default=None,
        help="Toolchain profile (default: MOVE_PROVER_PROFILE or sp1-v1).",
    )
    parser.add_argument(
        "--program-dir",
        type=Path,
        default=None,
        help="Where the prover program lives (created if missing).",
    )
    parser.add_argument(
        "--toolchain",
        default=None,
        help="Toolchain executable (default: cargo).",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")

    sub = parser.add_subparsers(dest="command", required=True)

    prove = sub.add_parser("prove", help="Prove one or more moves.")
    prove.add_argument("--fen", default=STARTING_FEN, help="Position string.")
    prove.add_argument(
        "--move",
        dest="moves",
        action="append",
        default=[],
        help="Move to prove, e.g. e2e4. Repeat for a sequence.",
    )
    prove.add_argument("--start-move", type=int, default=1, help="Number of the first move.")
    prove.add_argument("--turn", choices=("w", "b"), default="w", help="Side making the first move.")
    prove.add_argument("--session", default="", help="Session identifier stored with each snapshot.")
    prove.add_argument("--webhook", default=None, help="POST progress events to this URL.")
    prove.add_argument(
        "--run-dir",
        type=Path,
        default=None,
        help="Write history.json and PROOF_REPORT.md here.",
    )
    prove.add_argument("--json", action="store_true", help="Print records as JSON.")

    sub.add_parser("status", help="Initialize the toolchain and print the prover status.")
    return parser


def _config_from_args(args: argparse.Namespace) -> ProverConfig:
    config = ProverConfig.from_env()
    overrides = {}
    if args.profile:
        overrides["profile"] = args.profile
    if args.program_dir:
        overrides["program_dir"] = args.program_dir
    if args.toolchain:
        overrides["toolchain"] = args.toolchain
    if getattr(args, "webhook", None):
        overrides["webhook_url"] = args.webhook
    return dataclasses.replace(config, **overrides)


async def _run_prove(args: argparse.Namespace, config: ProverConfig) -> int:
    snapshots = build_snapshots(args.fen, args.moves, args.start_move, args.turn, args.session)
    orchestrator = ProofOrchestrator(config)

    async with AsyncExitStack() as stack:
        if config.webhook_url:
            sink = await stack.enter_async_context(WebhookSink(config.webhook_url))
            orchestrator.subscribe(sink)

        for snapshot in snapshots:
            move = snapshot.last_move
            label = f"{move.from_square}{move.to_square}" if move else "initial position"
            print(f"Move {snapshot.move_number}: {label}")
            try:
                record = await orchestrator.generate(snapshot, on_progress=_print_event)
            except ProofGenerationFailed as exc:
                print(f"Error: {exc}", file=sys.stderr)
                return 1
            if args.json:
                print(json.dumps(record.to_dict(), indent=2))
            else:
                print(f"  {record.mode.value} proof {record.id} "
                      f"({record.payload_size} B, {record.execution_time_ms:.0f}ms)")

    status = orchestrator.get_status()
    stats = orchestrator.stats()
    print(f"\n{stats.count} proof(s): {stats.real_count} real, "
          f"{stats.fallback_count} simulated ({status.proof_type})")

    if args.run_dir:
        records = orchestrator.get_history()
        write_json_report(records, status, stats, args.run_dir)
        md_path = write_markdown_report(records, status, stats, args.run_dir)
        print(f"Report: {md_path}")
    return 0


async def _run_status(config: ProverConfig) -> int:
    orchestrator = ProofOrchestrator(config)
    await orchestrator.capability.ensure_ready()
    status = orchestrator.get_status()
    print(json.dumps(status.to_dict(), indent=2))
    if orchestrator.capability.failure_reason:
        print(f"Reason: {orchestrator.capability.failure_reason}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        config = _config_from_args(args)
        if args.command == "status":
            return asyncio.run(_run_status(config))
        return asyncio.run(_run_prove(args, config))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

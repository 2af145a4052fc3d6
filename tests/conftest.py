"""Shared fixtures: a scripted stand-in for the toolchain and fast configs."""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence, Union

import pytest

from move_prover.board import STARTING_FEN
from move_prover.config import ProverConfig, SyntheticRanges
from move_prover.errors import CommandFailed, SpawnFailed
from move_prover.history import ProofHistoryStore
from move_prover.invoker import ProcessResult
from move_prover.models import GameSnapshot, LastMove
from move_prover.orchestrator import ProofOrchestrator
from move_prover.profiles import SP1_V1

PROVER_STDOUT = """\
Setting up proving keys...
Generating STARK proof...
STARK proof generated successfully!
Verifying proof...
PROOF_RESULT:SUCCESS
PROOF_SIZE:123456
PROOF_TIME:2500
PROOF_VERIFIED:true
VERIFY_TIME:42
CHECKSUM:89
"""

Outcome = Union[str, BaseException, Callable[[], str]]


@dataclass
class Call:
    command: str
    args: tuple[str, ...]
    cwd: Optional[str]
    env: dict[str, str]
    timeout: float


@dataclass
class FakeInvoker:
    """Answers toolchain commands from a script keyed by argument tuple.

    An outcome is stdout text (exit 0), an exception to raise, or a callable
    returning stdout. Unscripted commands succeed with empty output.
    """

    script: dict[tuple[str, ...], Outcome] = field(default_factory=dict)
    delay: float = 0.0
    calls: list[Call] = field(default_factory=list)

    def respond(self, args: Sequence[str], outcome: Outcome) -> None:
        self.script[tuple(args)] = outcome

    def calls_for(self, *args: str) -> list[Call]:
        return [c for c in self.calls if c.args == args]

    async def run(self, command, args=(), *, cwd=None, env=None, timeout, check=True):
        return await self.run_streaming(
            command, args, cwd=cwd, env=env, timeout=timeout, check=check
        )

    async def run_streaming(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd=None,
        env: Mapping[str, str] | None = None,
        timeout: float,
        on_chunk=None,
        check: bool = True,
    ) -> ProcessResult:
        key = tuple(args)
        self.calls.append(
            Call(command, key, str(cwd) if cwd is not None else None, dict(env or {}), timeout)
        )
        if self.delay:
            await asyncio.sleep(self.delay)
        outcome = self.script.get(key, "")
        if isinstance(outcome, BaseException):
            raise outcome
        stdout = outcome() if callable(outcome) else outcome
        if on_chunk is not None:
            for line in stdout.splitlines(keepends=True):
                on_chunk(line)
        return ProcessResult(
            command=" ".join([command, *key]),
            exit_code=0,
            stdout=stdout,
            stderr="",
            duration_seconds=0.01,
        )


def missing_toolchain() -> SpawnFailed:
    return SpawnFailed("cargo prove --version", "[Errno 2] No such file or directory: 'cargo'")


def failing_prover() -> CommandFailed:
    return CommandFailed("cargo run --release", 101, stderr="thread 'main' panicked")


@pytest.fixture
def fast_config(tmp_path: Path) -> ProverConfig:
    """No artificial delays; program sources live under tmp_path."""
    return ProverConfig(
        program_dir=tmp_path / "prover-program",
        stage_delay=(0.0, 0.0),
        ranges=SyntheticRanges(sim_delay_ms=(0, 0)),
    )


@pytest.fixture
def working_toolchain() -> FakeInvoker:
    invoker = FakeInvoker()
    invoker.respond(["prove", "--version"], "cargo-prove sp1 (1.2.0)\n")
    invoker.respond(["run", "--release"], PROVER_STDOUT)
    return invoker


@pytest.fixture
def absent_toolchain() -> FakeInvoker:
    invoker = FakeInvoker()
    invoker.respond(["prove", "--version"], missing_toolchain())
    return invoker


@pytest.fixture
def make_orchestrator(fast_config: ProverConfig):
    def _make(invoker: FakeInvoker, profile=SP1_V1, config=None, **kwargs) -> ProofOrchestrator:
        return ProofOrchestrator(
            config or fast_config,
            profile,
            invoker=invoker,
            rng=random.Random(7),
            **kwargs,
        )

    return _make


@pytest.fixture
def opening_snapshot() -> GameSnapshot:
    return GameSnapshot(
        fen=STARTING_FEN,
        last_move=LastMove("e2", "e4"),
        move_number=1,
        turn="b",
        session_id="game-1",
    )


@pytest.fixture
def history() -> ProofHistoryStore:
    return ProofHistoryStore()

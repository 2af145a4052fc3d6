"""
pipeline.py — Ordered, observable proof-generation stages.

Responsibility: Given a mode and a snapshot, walk the profile's stage list
for that mode, publish one ProgressEvent per stage on the request's channel,
and return the material the orchestrator needs to build a ProofRecord.

Real mode:
  initializing → preparing_input → compiling_program → setup_keys →
  generating_execution_trace → creating_stark_proof → verifying_proof → complete
  (creating_stark_proof runs the host program; its log lines become extra
  events inside that stage's progress band)

Fallback mode:
  initializing → preparing_input → simulating_execution → creating_proof →
  verifying → complete

Stage i of n is announced with progress i/(n-1)*100, so `complete` is 100.
A failing stage publishes an `error` event and raises StageFailed; the
pipeline never retries. Whether that `error` event is terminal is the
caller's decision (a retry may follow).
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from move_prover.board import prepare_circuit_input, project_public_outputs
from move_prover.config import ProverConfig
from move_prover.errors import StageFailed
from move_prover.events import ProgressChannel
from move_prover.invoker import ProcessInvoker
from move_prover.models import (
    CircuitInput,
    GameSnapshot,
    ModeDetails,
    ProofMode,
    RealProofDetails,
    SimulatedProofDetails,
)
from move_prover.parser import OutputParser, ParsedOutput, match_progress_marker
from move_prover.profiles import PROVING_STAGE, ProverProfile, Stage
from move_prover.program_template import program_exists

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class ProofNotVerified(Exception):
    """The prover ran but reported the proof as not verified."""


@dataclass
class StageResult:
    """What a completed pipeline run hands back to the orchestrator."""

    proof_id: str
    mode: ProofMode
    circuit_input: CircuitInput
    payload: bytes
    payload_size: int
    verified: bool
    elapsed_ms: float
    public_outputs: dict
    mode_details: ModeDetails
    stages_completed: list[str] = field(default_factory=list)


@dataclass
class _RunState:
    """Scratch space shared by the stages of one run."""

    snapshot: GameSnapshot
    channel: ProgressChannel
    mode: ProofMode
    band: tuple[float, float] = (0.0, 0.0)
    circuit_input: Optional[CircuitInput] = None
    parsed: Optional[ParsedOutput] = None
    metrics: dict[str, int] = field(default_factory=dict)
    payload: bytes = b""
    verified: bool = False
    simulated_delay_ms: int = 0


class StagedPipeline:
    def __init__(
        self,
        config: ProverConfig,
        profile: ProverProfile,
        invoker: ProcessInvoker | None = None,
        parser: OutputParser | None = None,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.config = config
        self.profile = profile
        self.invoker = invoker or ProcessInvoker()
        self.rng = rng or random.Random()
        self.parser = parser or OutputParser(config.ranges, self.rng)
        self._sleep = sleep

    async def run(
        self,
        mode: ProofMode,
        snapshot: GameSnapshot,
        channel: ProgressChannel,
        *,
        terminal_on_error: bool = True,
    ) -> StageResult:
        """Execute every stage for ``mode`` in order.

        Raises:
            StageFailed: chained to the exception the failing stage raised.
        """
        stages = self.profile.stages_for(mode is ProofMode.REAL)
        last_index = len(stages) - 1
        state = _RunState(snapshot=snapshot, channel=channel, mode=mode)
        completed: list[str] = []
        start = time.monotonic()

        for index, stage in enumerate(stages):
            progress = index / last_index * 100
            if stage.name == "complete":
                elapsed_ms = (time.monotonic() - start) * 1000
                channel.publish(
                    stage.name,
                    f"{stage.message} in {elapsed_ms:.0f}ms",
                    progress,
                    mode,
                    terminal=True,
                )
                completed.append(stage.name)
                break

            channel.publish(stage.name, stage.message, progress, mode)
            state.band = (progress, (index + 1) / last_index * 100)
            logger.debug("[%s] %s stage %s", channel.proof_id, mode.value, stage.name)
            try:
                await self._perform(stage, state)
            except Exception as exc:
                channel.publish(
                    "error",
                    f"{stage.name} failed: {exc}",
                    progress,
                    mode,
                    terminal=terminal_on_error,
                )
                raise StageFailed(stage.name, mode.value, str(exc)) from exc
            completed.append(stage.name)
        else:
            raise StageFailed("complete", mode.value, "stage list has no 'complete' stage")

        assert state.circuit_input is not None
        checksum = state.parsed.checksum if state.parsed is not None else None
        return StageResult(
            proof_id=channel.proof_id,
            mode=mode,
            circuit_input=state.circuit_input,
            payload=state.payload,
            payload_size=self._payload_size(state),
            verified=state.verified,
            elapsed_ms=elapsed_ms,
            public_outputs=project_public_outputs(state.circuit_input, checksum),
            mode_details=self._mode_details(state),
            stages_completed=completed,
        )

    # ------------------------------------------------------------------
    # Stage dispatch
    # ------------------------------------------------------------------

    async def _perform(self, stage: Stage, state: _RunState) -> None:
        name = stage.name
        if name == "preparing_input":
            state.circuit_input = prepare_circuit_input(
                state.snapshot, self.profile.default_move
            )
        elif name == "compiling_program":
            if not program_exists(self.config.program_dir):
                raise FileNotFoundError(
                    f"No compiled prover program at {self.config.program_dir}"
                )
        elif name == "generating_execution_trace":
            state.metrics = self._draw_metrics(real=True)
        elif name == PROVING_STAGE:
            await self._prove(state)
            return
        elif name == "verifying_proof":
            assert state.parsed is not None
            if not state.parsed.verified:
                raise ProofNotVerified("prover reported PROOF_VERIFIED:false")
            state.verified = True
        elif name == "simulating_execution":
            state.metrics = self._draw_metrics(real=False)
        elif name == "creating_proof":
            await self._simulate_proof(state)
            return
        elif name == "verifying":
            state.verified = True
        await self._stage_delay()

    async def _stage_delay(self) -> None:
        low, high = self.config.stage_delay
        if high <= 0:
            return
        await self._sleep(self.rng.uniform(low, high))

    # ------------------------------------------------------------------
    # Real mode
    # ------------------------------------------------------------------

    async def _prove(self, state: _RunState) -> None:
        assert state.circuit_input is not None
        schema = self.profile.env_schema
        env = {
            schema.from_square: str(state.circuit_input.move_from),
            schema.to_square: str(state.circuit_input.move_to),
            schema.move_number: str(max(1, state.circuit_input.move_number)),
            "RUST_LOG": "info",
        }
        markers = self.profile.progress_markers
        band_low, band_high = state.band
        seen: set[int] = set()

        def on_line(line: str) -> None:
            hit = match_progress_marker(line, markers)
            if hit is None or hit[0] in seen:
                return
            marker_index, message = hit
            seen.add(marker_index)
            fraction = (marker_index + 1) / (len(markers) + 1)
            state.channel.publish(
                PROVING_STAGE,
                message,
                band_low + (band_high - band_low) * fraction,
                state.mode,
            )

        result = await self.invoker.run_streaming(
            self.config.toolchain,
            ["run", "--release"],
            cwd=self.config.program_dir / "script",
            env=env,
            timeout=self.config.prove_timeout,
            on_chunk=on_line,
        )
        state.parsed = self.parser.parse(result.stdout)
        state.payload = bytes.fromhex(state.parsed.proof_hash)
        logger.debug(
            "[%s] prover finished: size=%d time=%dms verified=%s",
            state.channel.proof_id,
            state.parsed.proof_size,
            state.parsed.proof_time_ms,
            state.parsed.verified,
        )

    # ------------------------------------------------------------------
    # Fallback mode
    # ------------------------------------------------------------------

    async def _simulate_proof(self, state: _RunState) -> None:
        ranges = self.config.ranges
        state.simulated_delay_ms = ranges.draw("sim_delay_ms", self.rng)
        if state.simulated_delay_ms > 0:
            await self._sleep(state.simulated_delay_ms / 1000)
        size = ranges.draw("sim_payload_size", self.rng)
        state.payload = self.rng.randbytes(size)

    # ------------------------------------------------------------------
    # Result shaping
    # ------------------------------------------------------------------

    def _draw_metrics(self, real: bool) -> dict[str, int]:
        ranges = self.config.ranges
        prefix = "real" if real else "sim"
        metrics = {
            "cycles": ranges.draw(f"{prefix}_cycles", self.rng),
            "constraints": ranges.draw(f"{prefix}_constraints", self.rng),
            "trace_length": ranges.draw(f"{prefix}_trace_length", self.rng),
        }
        if real:
            metrics["execution_trace_size"] = ranges.draw(
                "real_execution_trace_size", self.rng
            )
        return metrics

    def _payload_size(self, state: _RunState) -> int:
        # The host reports the size of the proof it verified; only its hash
        # travels back as the payload.
        if state.parsed is not None:
            return state.parsed.proof_size
        return len(state.payload)

    def _mode_details(self, state: _RunState) -> ModeDetails:
        if state.mode is ProofMode.REAL:
            assert state.parsed is not None
            return RealProofDetails(
                toolchain=self.profile.name,
                proof_time_ms=state.parsed.proof_time_ms,
                verification_time_ms=state.parsed.verify_time_ms,
                cycles=state.metrics["cycles"],
                constraints=state.metrics["constraints"],
                trace_length=state.metrics["trace_length"],
                execution_trace_size=state.metrics["execution_trace_size"],
                verification_key=f"{self.rng.getrandbits(256):064x}",
            )
        return SimulatedProofDetails(
            cycles=state.metrics["cycles"],
            constraints=state.metrics["constraints"],
            trace_length=state.metrics["trace_length"],
            verification_key=hashlib.sha256(
                f"move-prover-vk:{self.profile.name}".encode("utf-8")
            ).hexdigest()[:32],
            simulated_delay_ms=state.simulated_delay_ms,
        )

"""
orchestrator.py — Top-level entry point for move proof generation.

Responsibility: Turn a GameSnapshot into a ProofRecord, degrading to a
simulated proof rather than failing.

generate(snapshot, on_progress):
  1. ensure_ready() on the capability manager (one init per process).
  2. Run the pipeline in the current mode.
  3. If a real-mode run fails: publish a non-terminal error event, demote the
     capability to fallback for good, and run the fallback pipeline once.
     A fallback failure is terminal and raises ProofGenerationFailed.
  4. Build the record (content hash, chain link to the previous record,
     public outputs), append it to history, return it.

Requests are not serialized against each other, except that real-mode runs
pass through a semaphore of ``config.max_concurrent_real`` slots (0 = no gate).
A request admitted after a demotion goes straight to the fallback run.

Usage:
  orchestrator = ProofOrchestrator(ProverConfig.from_env())
  record = await orchestrator.generate(snapshot, on_progress=print)
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional

from move_prover.capability import CapabilityManager
from move_prover.config import ProverConfig
from move_prover.digest import chain_link_hash, snapshot_content_hash
from move_prover.errors import ProofGenerationFailed, StageFailed
from move_prover.events import ProgressCallback, ProgressChannel
from move_prover.history import ProofHistoryStore
from move_prover.invoker import ProcessInvoker
from move_prover.models import (
    CapabilityState,
    GameSnapshot,
    HistoryStats,
    ProofDetail,
    ProofMode,
    ProofRecord,
    ProverStatus,
    VerificationSummary,
)
from move_prover.parser import OutputParser
from move_prover.pipeline import StagedPipeline, StageResult
from move_prover.profiles import ProverProfile, get_profile

logger = logging.getLogger(__name__)


class ProofOrchestrator:
    def __init__(
        self,
        config: ProverConfig | None = None,
        profile: ProverProfile | None = None,
        *,
        invoker: ProcessInvoker | None = None,
        history: ProofHistoryStore | None = None,
        rng: random.Random | None = None,
        pipeline: StagedPipeline | None = None,
        subscribers: Iterable[ProgressCallback] = (),
    ):
        self.config = config or ProverConfig()
        self.profile = profile or get_profile(self.config.profile)
        invoker = invoker or ProcessInvoker()
        rng = rng or random.Random()
        self.history = history or ProofHistoryStore(max_records=self.config.history_limit)
        self.capability = CapabilityManager(self.config, self.profile, invoker)
        self.pipeline = pipeline or StagedPipeline(
            self.config,
            self.profile,
            invoker=invoker,
            parser=OutputParser(self.config.ranges, rng),
            rng=rng,
        )
        self._subscribers = list(subscribers)
        self._real_gate: Optional[asyncio.Semaphore] = (
            asyncio.Semaphore(self.config.max_concurrent_real)
            if self.config.max_concurrent_real > 0
            else None
        )

    def subscribe(self, callback: ProgressCallback) -> None:
        """Receive progress events of every future request."""
        self._subscribers.append(callback)

    async def generate(
        self,
        snapshot: GameSnapshot,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ProofRecord:
        """Produce a verified proof record for ``snapshot``.

        Raises:
            ProofGenerationFailed: only when the fallback pipeline fails too.
        """
        await self.capability.ensure_ready()

        proof_id = str(uuid.uuid4())
        channel = ProgressChannel(proof_id, self._subscribers)
        if on_progress is not None:
            channel.subscribe(on_progress)

        result: StageResult | None = None
        if self.capability.mode is ProofMode.REAL:
            try:
                result = await self._run_real(snapshot, channel)
            except StageFailed as exc:
                logger.warning(
                    "Real proof %s failed at %s (%s); retrying with a simulated proof",
                    proof_id,
                    exc.stage,
                    exc.__cause__ or exc,
                )
                self.capability.demote(f"proof {proof_id} failed: {exc}")
                channel.rebase()

        if result is None:
            try:
                result = await self.pipeline.run(ProofMode.FALLBACK, snapshot, channel)
            except StageFailed as exc:
                logger.error("Simulated proof %s failed: %s", proof_id, exc)
                raise ProofGenerationFailed(proof_id, str(exc)) from exc

        record = self._append_record(snapshot, result)
        logger.info(
            "Proof %s generated (%s) in %.0fms, %d bytes",
            record.id,
            record.mode.value,
            record.execution_time_ms,
            record.payload_size,
        )
        return record

    async def _run_real(
        self, snapshot: GameSnapshot, channel: ProgressChannel
    ) -> Optional[StageResult]:
        """Real-mode run, or None if the capability was demoted while queued."""
        if self._real_gate is None:
            return await self.pipeline.run(
                ProofMode.REAL, snapshot, channel, terminal_on_error=False
            )
        async with self._real_gate:
            if self.capability.mode is not ProofMode.REAL:
                logger.info(
                    "Proof %s skips the real prover: demoted while waiting for a slot",
                    channel.proof_id,
                )
                return None
            return await self.pipeline.run(
                ProofMode.REAL, snapshot, channel, terminal_on_error=False
            )

    def _append_record(self, snapshot: GameSnapshot, result: StageResult) -> ProofRecord:
        # No await between reading the previous record and appending, so
        # concurrent requests cannot link to the same predecessor.
        previous = self.history.last()
        content_hash = snapshot_content_hash(snapshot)
        proof_type = (
            self.profile.proof_type
            if result.mode is ProofMode.REAL
            else self.profile.fallback_proof_type
        )
        record = ProofRecord(
            id=result.proof_id,
            created_at=datetime.now(timezone.utc).isoformat(),
            snapshot=snapshot,
            circuit_input=result.circuit_input,
            payload=result.payload,
            verified=result.verified,
            execution_time_ms=result.elapsed_ms,
            payload_size=result.payload_size,
            mode=result.mode,
            prover=proof_type,
            detail=ProofDetail(
                content_hash=content_hash,
                previous_hash=(
                    chain_link_hash(previous.detail.content_hash) if previous else None
                ),
                public_outputs=result.public_outputs,
                witness={
                    "from_square": result.circuit_input.move_from,
                    "to_square": result.circuit_input.move_to,
                    "move_number": result.circuit_input.move_number,
                },
            ),
            mode_details=result.mode_details,
        )
        self.history.append(record)
        return record

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_status(self) -> ProverStatus:
        return self.capability.status(self.history)

    def get_history(self) -> list[ProofRecord]:
        return self.history.all()

    def get_by_id(self, proof_id: str) -> Optional[ProofRecord]:
        return self.history.by_id(proof_id)

    def stats(self) -> HistoryStats:
        return self.history.stats()

    @property
    def state(self) -> CapabilityState:
        return self.capability.state

    def verify(self, record: ProofRecord) -> VerificationSummary:
        """Re-check a record's hashes against its snapshot and predecessor."""
        previous = self.history.previous_of(record.id)
        expected_link = chain_link_hash(previous.detail.content_hash) if previous else None
        checks = {
            "stored": self.history.by_id(record.id) == record,
            "content_hash": record.detail.content_hash == snapshot_content_hash(record.snapshot),
            "chain_link": record.detail.previous_hash == expected_link,
            "verified_flag": record.verified,
        }
        verifier = (
            f"{self.profile.name}-verifier"
            if record.mode is ProofMode.REAL
            else "simulated-verifier"
        )
        return VerificationSummary(valid=all(checks.values()), checks=checks, verifier=verifier)

"""
capability.py — One-time provisioning of the external proving toolchain.

Responsibility: Decide, once per process, whether real proofs are possible.

ensure_ready() runs at most one initialization sequence; concurrent callers
await the same task. The sequence:
  1. Probe:  `<toolchain> prove --version` (short timeout).
  2. Sources: materialize the reference program if none exists on disk.
  3. Build:  `<toolchain> prove build` in the program directory (long timeout).

All three succeed → READY_REAL. Any failure is logged and absorbed →
READY_FALLBACK; no exception reaches the caller from this path.

READY_REAL may later be demoted to READY_FALLBACK (a real proof attempt
failed). Nothing promotes back except reinitialize(), which starts a fresh
cycle.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from move_prover.config import ProverConfig
from move_prover.errors import (
    BuildFailed,
    CommandFailed,
    ProcessTimeout,
    ProverError,
    SpawnFailed,
    ToolchainMissing,
)
from move_prover.history import ProofHistoryStore
from move_prover.invoker import ProcessInvoker
from move_prover.models import CapabilityState, ProofMode, ProverStatus
from move_prover.profiles import ProverProfile
from move_prover.program_template import materialize_program, program_exists

logger = logging.getLogger(__name__)


class CapabilityManager:
    def __init__(
        self,
        config: ProverConfig,
        profile: ProverProfile,
        invoker: ProcessInvoker | None = None,
    ):
        self.config = config
        self.profile = profile
        self.invoker = invoker or ProcessInvoker()
        self._state = CapabilityState.UNINITIALIZED
        self._init_task: Optional[asyncio.Task[CapabilityState]] = None
        self.toolchain_version: str = ""
        self.failure_reason: str = ""

    @property
    def state(self) -> CapabilityState:
        return self._state

    @property
    def mode(self) -> ProofMode:
        if self._state is CapabilityState.READY_REAL:
            return ProofMode.REAL
        return ProofMode.FALLBACK

    async def ensure_ready(self) -> CapabilityState:
        if self._init_task is None:
            self._init_task = asyncio.create_task(self._initialize())
        # Shield so one cancelled caller does not abort the shared sequence.
        return await asyncio.shield(self._init_task)

    async def reinitialize(self) -> CapabilityState:
        """Run a fresh initialization cycle (the only path back to READY_REAL)."""
        if self._init_task is not None and not self._init_task.done():
            await asyncio.shield(self._init_task)
        self._init_task = None
        self._state = CapabilityState.UNINITIALIZED
        self.failure_reason = ""
        return await self.ensure_ready()

    def demote(self, reason: str) -> None:
        """Permanently switch to fallback after a runtime failure."""
        if self._state is CapabilityState.READY_FALLBACK:
            return
        logger.warning("Demoting to fallback proofs: %s", reason)
        self._state = CapabilityState.READY_FALLBACK
        self.failure_reason = reason

    def status(self, history: ProofHistoryStore) -> ProverStatus:
        proof_type = (
            self.profile.proof_type
            if self._state is CapabilityState.READY_REAL
            else self.profile.fallback_proof_type
        )
        return ProverStatus(
            state=self._state,
            proof_type=proof_type,
            total_proofs=len(history),
            real_proofs=history.count_by_mode(ProofMode.REAL),
            mock_proofs=history.count_by_mode(ProofMode.FALLBACK),
        )

    async def _initialize(self) -> CapabilityState:
        self._state = CapabilityState.INITIALIZING
        logger.info(
            "Initializing %s toolchain (profile %s)", self.config.toolchain, self.profile.name
        )
        try:
            await self._probe_toolchain()
            self._ensure_program_sources()
            await self._build_program()
        except ProverError as exc:
            self.failure_reason = f"{exc.kind}: {exc}"
            logger.warning(
                "Real proofs unavailable, using %s proofs. Cause: %s",
                self.profile.fallback_proof_type,
                self.failure_reason,
            )
            self._state = CapabilityState.READY_FALLBACK
            return self._state
        except OSError as exc:
            # Program sources could not be written.
            self.failure_reason = f"io_error: {exc}"
            logger.warning("Real proofs unavailable: %s", self.failure_reason)
            self._state = CapabilityState.READY_FALLBACK
            return self._state
        except Exception as exc:
            self.failure_reason = f"unexpected: {exc!r}"
            logger.exception("Real proofs unavailable after an unexpected error")
            self._state = CapabilityState.READY_FALLBACK
            return self._state

        # A demotion may have raced in while the build was running.
        if self._state is CapabilityState.INITIALIZING:
            self._state = CapabilityState.READY_REAL
            logger.info("Real proofs active (%s)", self.profile.proof_type)
        return self._state

    async def _probe_toolchain(self) -> None:
        try:
            result = await self.invoker.run(
                self.config.toolchain,
                ["prove", "--version"],
                timeout=self.config.probe_timeout,
            )
        except (SpawnFailed, ProcessTimeout, CommandFailed) as exc:
            raise ToolchainMissing(
                f"'{self.config.toolchain} prove' is not usable ({exc}). "
                "Install it with: curl -L https://sp1up.succinct.xyz | bash && sp1up"
            ) from exc

        self.toolchain_version = result.stdout.strip()
        logger.info("Toolchain version: %s", self.toolchain_version or "(empty)")
        if self.profile.toolchain_version not in self.toolchain_version:
            logger.warning(
                "Toolchain reports %r; profile %s expects %s; the build may fail",
                self.toolchain_version,
                self.profile.name,
                self.profile.toolchain_version,
            )

    def _ensure_program_sources(self) -> None:
        program_dir = self.config.program_dir
        if program_exists(program_dir):
            logger.info("Prover program found at %s", program_dir)
            return
        logger.info("No prover program at %s; creating the reference program", program_dir)
        materialize_program(program_dir, self.profile)

    async def _build_program(self) -> None:
        program_dir = self.config.program_dir
        try:
            if self.profile.clean_before_build:
                await self.invoker.run(
                    self.config.toolchain,
                    ["clean"],
                    cwd=program_dir,
                    timeout=self.config.clean_timeout,
                )
            logger.info("Building prover program (this may take a few minutes)...")
            result = await self.invoker.run(
                self.config.toolchain,
                ["prove", "build"],
                cwd=program_dir,
                timeout=self.config.build_timeout,
            )
        except CommandFailed as exc:
            raise BuildFailed(f"Build failed: {exc}", stderr=exc.stderr[:2000]) from exc

        tail = "\n".join(result.stdout.strip().splitlines()[-5:])
        logger.info("Prover program built in %.1fs", result.duration_seconds)
        if tail:
            logger.debug("Build output tail:\n%s", tail)

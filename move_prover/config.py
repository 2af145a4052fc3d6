"""
Shared configuration for the move prover.

Defines timeouts, paths, the pseudo-random ranges used for synthetic fields,
and ProverConfig.from_env() which reads MOVE_PROVER_* variables (a .env file
is loaded by the CLI entry point before this runs).

All timeouts are in seconds.
"""

from __future__ import annotations

import os
import random
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_TOOLCHAIN = "cargo"
DEFAULT_PROGRAM_DIR = "prover-program"
DEFAULT_PROFILE = "sp1-v1"

# Version probe is cheap; the first build pulls and compiles the SDK.
PROBE_TIMEOUT_SECONDS = 5.0
CLEAN_TIMEOUT_SECONDS = 30.0
BUILD_TIMEOUT_SECONDS = 600.0
PROVE_TIMEOUT_SECONDS = 900.0

# Artificial per-stage delay (min, max) standing in for work the simulated
# stages do not actually perform.
DEFAULT_STAGE_DELAY = (0.05, 0.2)

# Native proving backends are not built for concurrent use from one host.
DEFAULT_MAX_CONCURRENT_REAL = 1


@dataclass(frozen=True)
class SyntheticRanges:
    """Inclusive ranges for every value not produced by a real backend.

    Values are drawn uniformly with ``random.Random.randint``. They only keep
    the reporting shape plausible; none of them carry meaning.
    """

    # Real-mode details (the toolchain reports size and timing only).
    real_cycles: tuple[int, int] = (10_000, 59_999)
    real_constraints: tuple[int, int] = (5_000, 14_999)
    real_trace_length: tuple[int, int] = (500, 1_499)
    real_execution_trace_size: tuple[int, int] = (500_000, 1_499_999)

    # Simulated-mode details.
    sim_cycles: tuple[int, int] = (2_000, 6_999)
    sim_constraints: tuple[int, int] = (500, 1_499)
    sim_trace_length: tuple[int, int] = (50, 149)
    sim_payload_size: tuple[int, int] = (800, 1_299)       # bytes
    sim_delay_ms: tuple[int, int] = (100, 499)             # creating_proof stage

    # Output-parser defaults when a marker is missing or malformed.
    parsed_proof_size: tuple[int, int] = (800, 1_299)      # bytes
    parsed_proof_time_ms: tuple[int, int] = (1_000, 4_999)
    parsed_verify_time_ms: tuple[int, int] = (10, 59)
    checksum: tuple[int, int] = (0, 999_999)

    def draw(self, name: str, rng: random.Random) -> int:
        low, high = getattr(self, name)
        return rng.randint(low, high)


@dataclass(frozen=True)
class ProverConfig:
    toolchain: str = DEFAULT_TOOLCHAIN
    program_dir: Path = Path(DEFAULT_PROGRAM_DIR)
    profile: str = DEFAULT_PROFILE
    probe_timeout: float = PROBE_TIMEOUT_SECONDS
    clean_timeout: float = CLEAN_TIMEOUT_SECONDS
    build_timeout: float = BUILD_TIMEOUT_SECONDS
    prove_timeout: float = PROVE_TIMEOUT_SECONDS
    stage_delay: tuple[float, float] = DEFAULT_STAGE_DELAY
    max_concurrent_real: int = DEFAULT_MAX_CONCURRENT_REAL
    history_limit: int | None = None
    webhook_url: str | None = None
    ranges: SyntheticRanges = field(default_factory=SyntheticRanges)

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ProverConfig:
        """Build a config from MOVE_PROVER_* variables; unset ones keep defaults."""
        env = os.environ if environ is None else environ

        def _float(name: str, default: float) -> float:
            raw = env.get(name)
            if not raw:
                return default
            try:
                return float(raw)
            except ValueError:
                raise ValueError(f"{name} must be a number, got {raw!r}") from None

        stage_delay = DEFAULT_STAGE_DELAY
        raw_delay = env.get("MOVE_PROVER_STAGE_DELAY")
        if raw_delay:
            parts = [p.strip() for p in raw_delay.split(",")]
            try:
                low = float(parts[0])
                high = float(parts[1]) if len(parts) > 1 else low
            except ValueError:
                raise ValueError(
                    f"MOVE_PROVER_STAGE_DELAY must be 'min,max', got {raw_delay!r}"
                ) from None
            stage_delay = (low, high)

        raw_limit = env.get("MOVE_PROVER_HISTORY_LIMIT")
        history_limit = int(raw_limit) if raw_limit else None

        return cls(
            toolchain=env.get("MOVE_PROVER_TOOLCHAIN") or DEFAULT_TOOLCHAIN,
            program_dir=Path(env.get("MOVE_PROVER_PROGRAM_DIR") or DEFAULT_PROGRAM_DIR),
            profile=env.get("MOVE_PROVER_PROFILE") or DEFAULT_PROFILE,
            probe_timeout=_float("MOVE_PROVER_PROBE_TIMEOUT", PROBE_TIMEOUT_SECONDS),
            build_timeout=_float("MOVE_PROVER_BUILD_TIMEOUT", BUILD_TIMEOUT_SECONDS),
            prove_timeout=_float("MOVE_PROVER_PROVE_TIMEOUT", PROVE_TIMEOUT_SECONDS),
            stage_delay=stage_delay,
            max_concurrent_real=int(
                env.get("MOVE_PROVER_MAX_CONCURRENT_REAL") or DEFAULT_MAX_CONCURRENT_REAL
            ),
            history_limit=history_limit,
            webhook_url=env.get("MOVE_PROVER_WEBHOOK_URL") or None,
        )

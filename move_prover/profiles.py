"""Prover profiles: one configuration value per supported toolchain version.

A profile carries everything that differs between toolchain versions: the
version string the probe expects, the stage messages, the environment
variable names the host program reads, the log substrings that signal
progress, and the SDK version written into the materialized program. The
pipeline itself is the same for every profile.
"""

from __future__ import annotations

from dataclasses import dataclass

REAL_STAGE_NAMES = (
    "initializing",
    "preparing_input",
    "compiling_program",
    "setup_keys",
    "generating_execution_trace",
    "creating_stark_proof",
    "verifying_proof",
    "complete",
)

FALLBACK_STAGE_NAMES = (
    "initializing",
    "preparing_input",
    "simulating_execution",
    "creating_proof",
    "verifying",
    "complete",
)

# The real-mode stage that launches the host program.
PROVING_STAGE = "creating_stark_proof"


@dataclass(frozen=True)
class Stage:
    name: str
    message: str


@dataclass(frozen=True)
class EnvSchema:
    """Environment variables through which the move reaches the host program."""

    from_square: str = "FROM_SQUARE"
    to_square: str = "TO_SQUARE"
    move_number: str = "MOVE_NUMBER"


@dataclass(frozen=True)
class ProverProfile:
    name: str
    proof_type: str
    toolchain_version: str
    sdk_version: str
    real_stages: tuple[Stage, ...]
    fallback_stages: tuple[Stage, ...]
    progress_markers: tuple[tuple[str, str], ...]
    env_schema: EnvSchema = EnvSchema()
    default_move: tuple[int, int] = (52, 36)
    clean_before_build: bool = False
    fallback_proof_type: str = "Enhanced-Mock"

    def stages_for(self, real: bool) -> tuple[Stage, ...]:
        return self.real_stages if real else self.fallback_stages


def _real_stages(label: str) -> tuple[Stage, ...]:
    messages = {
        "initializing": f"Starting {label} proof generation",
        "preparing_input": "Encoding board position and move",
        "compiling_program": f"Loading compiled {label} program",
        "setup_keys": f"Setting up {label} proving keys",
        "generating_execution_trace": "Generating execution trace",
        "creating_stark_proof": "Generating STARK proof",
        "verifying_proof": "Verifying STARK proof",
        "complete": f"{label} proof generated",
    }
    return tuple(Stage(name, messages[name]) for name in REAL_STAGE_NAMES)


_FALLBACK_STAGES = (
    Stage("initializing", "Starting simulated proof generation"),
    Stage("preparing_input", "Encoding board position and move"),
    Stage("simulating_execution", "Simulating program execution"),
    Stage("creating_proof", "Creating simulated proof"),
    Stage("verifying", "Verifying simulated proof"),
    Stage("complete", "Simulated proof generated"),
)

_MARKERS = (
    ("Setting up", "Proving keys ready"),
    ("Generating", "Prover started"),
    ("proof generated", "Proof generated"),
    ("Verifying", "Verifying proof"),
)


SP1_V1 = ProverProfile(
    name="sp1-v1",
    proof_type="SP1-STARK-Real",
    toolchain_version="1.2",
    sdk_version="1.2.0",
    real_stages=_real_stages("SP1"),
    fallback_stages=_FALLBACK_STAGES,
    progress_markers=_MARKERS,
    clean_before_build=True,
)

SP1_V2 = ProverProfile(
    name="sp1-v2",
    proof_type="SP1-v2.0.0-STARK-Real",
    toolchain_version="2.",
    sdk_version="2.0.0",
    real_stages=_real_stages("SP1 v2.0.0"),
    fallback_stages=_FALLBACK_STAGES,
    progress_markers=_MARKERS,
)

SP1_V3 = ProverProfile(
    name="sp1-v3",
    proof_type="SP1-v3-STARK-Real",
    toolchain_version="3.",
    sdk_version="3.0.0",
    real_stages=_real_stages("SP1 v3"),
    fallback_stages=_FALLBACK_STAGES,
    progress_markers=_MARKERS,
)

PROFILES: dict[str, ProverProfile] = {p.name: p for p in (SP1_V1, SP1_V2, SP1_V3)}


def get_profile(name: str) -> ProverProfile:
    try:
        return PROFILES[name]
    except KeyError:
        known = ", ".join(sorted(PROFILES))
        raise ValueError(f"Unknown prover profile {name!r} (known: {known})") from None

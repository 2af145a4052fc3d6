"""
Data models for move proof generation.

Defines the structured types that flow through the prover:
  GameSnapshot → CircuitInput → (pipeline) → ProofRecord → history

Snapshots and records are frozen dataclasses; records are created once at the
end of a pipeline run and never modified. Mode-specific details are carried in
a single tagged field (``ProofRecord.mode_details``) discriminated by
``ProofRecord.mode``. All models support JSON output via to_dict().
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

_SQUARE_PATTERN = re.compile(r"^[a-h][1-8]$")


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class ProofMode(Enum):
    """Which pipeline produced a proof."""

    REAL = "real"
    FALLBACK = "fallback"


class CapabilityState(Enum):
    """Lifecycle of the external toolchain capability.

    Uninitialized → Initializing → Ready-Real | Ready-Fallback.
    Ready-Real may demote to Ready-Fallback; the reverse needs a fresh
    initialization cycle.
    """

    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY_REAL = "ready_real"
    READY_FALLBACK = "ready_fallback"


class GameStatus(Enum):
    ACTIVE = "active"
    CHECK = "check"
    CHECKMATE = "checkmate"
    DRAW = "draw"


# ---------------------------------------------------------------------------
# Input models (owned by the caller)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LastMove:
    """The move that produced the snapshot's position."""

    from_square: str          # e.g. "e2"
    to_square: str            # e.g. "e4"
    captured: str | None = None  # piece tag, e.g. "p"

    def __post_init__(self) -> None:
        for square in (self.from_square, self.to_square):
            if not _SQUARE_PATTERN.match(square):
                raise ValueError(f"Invalid square name: {square!r}")

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"from": self.from_square, "to": self.to_square}
        if self.captured:
            d["captured"] = self.captured
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LastMove:
        return cls(
            from_square=data["from"],
            to_square=data["to"],
            captured=data.get("captured"),
        )


@dataclass(frozen=True)
class GameSnapshot:
    """Minimal game-position data the prover consumes. Read-only."""

    fen: str
    last_move: LastMove | None = None
    move_number: int = 0
    turn: str = "w"           # side to move: "w" or "b"
    status: GameStatus = GameStatus.ACTIVE
    session_id: str = ""

    def __post_init__(self) -> None:
        if self.move_number < 0:
            raise ValueError(f"move_number must be non-negative, got {self.move_number}")
        if self.turn not in ("w", "b"):
            raise ValueError(f"turn must be 'w' or 'b', got {self.turn!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "fen": self.fen,
            "last_move": self.last_move.to_dict() if self.last_move else None,
            "move_number": self.move_number,
            "turn": self.turn,
            "status": self.status.value,
            "session_id": self.session_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GameSnapshot:
        raw_move = data.get("last_move")
        return cls(
            fen=data["fen"],
            last_move=LastMove.from_dict(raw_move) if raw_move else None,
            move_number=int(data.get("move_number", 0)),
            turn=data.get("turn", "w"),
            status=GameStatus(data.get("status", "active")),
            session_id=data.get("session_id", ""),
        )


# ---------------------------------------------------------------------------
# Pipeline models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CircuitInput:
    """Snapshot projected into the shape the prover program reads."""

    board_state: tuple[int, ...]     # 64 signed piece codes, a8 first
    move_from: int                   # 0-63, rank*8+file
    move_to: int
    move_number: int
    player_turn: int                 # 1 = white, 2 = black
    public_inputs: tuple[Any, ...]   # (fen, move_number)

    def to_dict(self) -> dict[str, Any]:
        return {
            "board_state": list(self.board_state),
            "move_from": self.move_from,
            "move_to": self.move_to,
            "move_number": self.move_number,
            "player_turn": self.player_turn,
            "public_inputs": list(self.public_inputs),
        }


@dataclass(frozen=True)
class ProgressEvent:
    """One step of an in-flight proof request. Never persisted."""

    proof_id: str
    stage: str
    message: str
    progress: float          # 0-100, non-decreasing within one request
    mode: ProofMode
    terminal: bool = False   # exactly one terminal event per request

    def to_dict(self) -> dict[str, Any]:
        return {
            "proof_id": self.proof_id,
            "stage": self.stage,
            "message": self.message,
            "progress": round(self.progress, 2),
            "mode": self.mode.value,
            "terminal": self.terminal,
        }


# ---------------------------------------------------------------------------
# Record models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RealProofDetails:
    """Details of a proof produced by the external toolchain.

    proof_time_ms / verification_time_ms come from the prover's output
    markers; cycles, constraints and trace figures are synthetic.
    """

    toolchain: str
    proof_time_ms: int
    verification_time_ms: int
    cycles: int
    constraints: int
    trace_length: int
    execution_trace_size: int
    verification_key: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "toolchain": self.toolchain,
            "proof_time_ms": self.proof_time_ms,
            "verification_time_ms": self.verification_time_ms,
            "cycles": self.cycles,
            "constraints": self.constraints,
            "trace_length": self.trace_length,
            "execution_trace_size": self.execution_trace_size,
            "verification_key": self.verification_key,
        }


@dataclass(frozen=True)
class SimulatedProofDetails:
    """Details of a simulated proof."""

    cycles: int
    constraints: int
    trace_length: int
    verification_key: str
    simulated_delay_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycles": self.cycles,
            "constraints": self.constraints,
            "trace_length": self.trace_length,
            "verification_key": self.verification_key,
            "simulated_delay_ms": self.simulated_delay_ms,
        }


ModeDetails = Union[RealProofDetails, SimulatedProofDetails]


@dataclass(frozen=True)
class ProofDetail:
    """Hashes linking a record to its snapshot and to the previous record."""

    content_hash: str               # sha256 of the canonical snapshot
    previous_hash: str | None       # chain link to the previous record
    public_outputs: dict[str, Any] = field(default_factory=dict)
    witness: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content_hash": self.content_hash,
            "previous_hash": self.previous_hash,
            "public_outputs": dict(self.public_outputs),
            "witness": dict(self.witness),
        }


@dataclass(frozen=True)
class ProofRecord:
    """One generated proof. Immutable once created."""

    id: str
    created_at: str                  # ISO 8601, UTC
    snapshot: GameSnapshot
    circuit_input: CircuitInput
    payload: bytes                   # opaque proof blob
    verified: bool
    execution_time_ms: float
    payload_size: int
    mode: ProofMode
    prover: str                      # profile proof-type label
    detail: ProofDetail
    mode_details: ModeDetails

    @property
    def is_real(self) -> bool:
        return self.mode is ProofMode.REAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "created_at": self.created_at,
            "snapshot": self.snapshot.to_dict(),
            "circuit_input": self.circuit_input.to_dict(),
            "payload": self.payload.hex(),
            "verified": self.verified,
            "execution_time_ms": self.execution_time_ms,
            "payload_size": self.payload_size,
            "mode": self.mode.value,
            "prover": self.prover,
            "detail": self.detail.to_dict(),
            "mode_details": self.mode_details.to_dict(),
        }


# ---------------------------------------------------------------------------
# Reporting models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HistoryStats:
    count: int
    mean_execution_time_ms: float
    mean_payload_size: float
    real_count: int
    fallback_count: int

    @property
    def real_percentage(self) -> float:
        if self.count == 0:
            return 0.0
        return self.real_count / self.count * 100

    def to_dict(self) -> dict[str, Any]:
        return {
            "count": self.count,
            "mean_execution_time_ms": round(self.mean_execution_time_ms, 2),
            "mean_payload_size": round(self.mean_payload_size, 2),
            "real_count": self.real_count,
            "fallback_count": self.fallback_count,
            "real_percentage": round(self.real_percentage, 2),
        }


@dataclass(frozen=True)
class ProverStatus:
    """Capability summary exposed to callers."""

    state: CapabilityState
    proof_type: str
    total_proofs: int
    real_proofs: int
    mock_proofs: int

    @property
    def initialized(self) -> bool:
        return self.state in (CapabilityState.READY_REAL, CapabilityState.READY_FALLBACK)

    @property
    def using_real_proofs(self) -> bool:
        return self.state is CapabilityState.READY_REAL

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "initialized": self.initialized,
            "using_real_proofs": self.using_real_proofs,
            "proof_type": self.proof_type,
            "total_proofs": self.total_proofs,
            "real_proofs": self.real_proofs,
            "mock_proofs": self.mock_proofs,
        }


@dataclass(frozen=True)
class VerificationSummary:
    """Outcome of re-checking a stored record."""

    valid: bool
    checks: dict[str, bool]
    verifier: str

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "checks": dict(self.checks), "verifier": self.verifier}

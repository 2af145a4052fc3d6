"""
move_prover — proofs for the moves of a turn-based game.

Attaches a proof to every move: a real one from an external proving
toolchain when it can be provisioned, a simulated one of the same shape when
it cannot. Every outcome is recorded in a queryable history.

  ProofOrchestrator  →  CapabilityManager  (toolchain provisioning, once)
                     →  StagedPipeline     (stages + progress events)
                          → ProcessInvoker → OutputParser   (real mode)
                     →  ProofHistoryStore  (records + statistics)
"""

from move_prover.config import ProverConfig
from move_prover.errors import ProofGenerationFailed, ProverError
from move_prover.models import (
    CapabilityState,
    GameSnapshot,
    LastMove,
    ProgressEvent,
    ProofMode,
    ProofRecord,
)
from move_prover.orchestrator import ProofOrchestrator

__all__ = [
    "CapabilityState",
    "GameSnapshot",
    "LastMove",
    "ProgressEvent",
    "ProofGenerationFailed",
    "ProofMode",
    "ProofOrchestrator",
    "ProofRecord",
    "ProverConfig",
    "ProverError",
]

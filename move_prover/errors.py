"""
errors.py — Failure taxonomy for move proof generation.

Every failure raised by this package derives from ProverError and carries a
``kind`` tag. Which of them reach the caller is decided by the orchestrator:

  - ToolchainMissing / BuildFailed / SpawnFailed / ProcessTimeout during
    capability initialization are absorbed (permanent fallback mode).
  - The same kinds during a real-mode proof attempt trigger one fallback retry.
  - ParseFailed is always recovered inside the output parser.
  - ProofGenerationFailed is the only terminal error a caller should expect.
"""

from __future__ import annotations


class ProverError(Exception):
    """Base class for all proof-generation failures."""

    kind = "prover_error"


class ToolchainMissing(ProverError):
    """The toolchain version probe did not succeed."""

    kind = "toolchain_missing"


class BuildFailed(ProverError):
    """Building the prover program failed."""

    kind = "build_failed"

    def __init__(self, message: str, stderr: str = ""):
        super().__init__(message)
        self.stderr = stderr


class SpawnFailed(ProverError):
    """The operating system could not start the process."""

    kind = "spawn_failed"

    def __init__(self, command: str, reason: str):
        super().__init__(f"Failed to start '{command}': {reason}")
        self.command = command
        self.reason = reason


class ProcessTimeout(ProverError):
    """The process exceeded its time bound and was killed."""

    kind = "timeout"

    def __init__(self, command: str, timeout: float, pid: int | None = None):
        super().__init__(f"'{command}' timed out after {timeout:g}s")
        self.command = command
        self.timeout = timeout
        self.pid = pid


class CommandFailed(ProverError):
    """The process exited with a non-zero status."""

    kind = "command_failed"

    def __init__(self, command: str, exit_code: int, stdout: str = "", stderr: str = ""):
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else "no stderr"
        super().__init__(f"'{command}' exited with code {exit_code}: {detail}")
        self.command = command
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr


class ParseFailed(ProverError):
    """Prover output carried none of the expected markers."""

    kind = "parse_failed"


class StageFailed(ProverError):
    """A pipeline stage raised; the cause is chained."""

    kind = "stage_failed"

    def __init__(self, stage: str, mode: str, message: str):
        super().__init__(f"Stage '{stage}' failed in {mode} mode: {message}")
        self.stage = stage
        self.mode = mode


class ProofGenerationFailed(ProverError):
    """Both the real and the fallback pipeline failed for one request."""

    kind = "proof_generation_failed"

    def __init__(self, proof_id: str, message: str):
        super().__init__(f"Proof {proof_id} failed: {message}")
        self.proof_id = proof_id

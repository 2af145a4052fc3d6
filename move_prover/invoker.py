"""
invoker.py — External process runner for the toolchain.

Responsibility: Start a command with a working directory, environment
overrides and a timeout; stream its stdout line by line to an optional
callback while draining stderr; resolve with exit code and captured text.

Failure modes (no retries at this layer):
  - OS cannot start the process   → SpawnFailed
  - exceeds the timeout           → ProcessTimeout (child killed and reaped first)
  - non-zero exit with check=True → CommandFailed carrying stdout/stderr

On POSIX the child starts in its own session so that a timeout kills the
whole process group; `cargo run` leaves the proving binary as a grandchild.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence

from move_prover.errors import CommandFailed, ProcessTimeout, SpawnFailed

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[str], None]

_POSIX = os.name == "posix"

# Output is read in fixed-size chunks, so no line length limit applies.
# A partial line longer than MAX_PENDING_CHARS reaches the callback unsplit.
READ_CHUNK_BYTES = 64 * 1024
MAX_PENDING_CHARS = 64 * 1024


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one finished process."""

    command: str
    exit_code: int
    stdout: str
    stderr: str
    duration_seconds: float

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def _display(command: str, args: Sequence[str]) -> str:
    return " ".join([command, *args])


async def _drain(
    stream: asyncio.StreamReader,
    sink: list[str],
    on_chunk: Optional[ChunkCallback],
) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""
    while True:
        raw = await stream.read(READ_CHUNK_BYTES)
        text = decoder.decode(raw, final=not raw)
        sink.append(text)
        if on_chunk is not None:
            pending += text
            while "\n" in pending:
                line, _, pending = pending.partition("\n")
                on_chunk(line + "\n")
            if len(pending) > MAX_PENDING_CHARS:
                on_chunk(pending)
                pending = ""
        if not raw:
            break
    if on_chunk is not None and pending:
        on_chunk(pending)


def _kill(process: asyncio.subprocess.Process) -> None:
    # The group is signalled even after the direct child has exited: a
    # grandchild may still hold the pipes.
    try:
        if _POSIX:
            os.killpg(process.pid, signal.SIGKILL)
        elif process.returncode is None:
            process.kill()
    except ProcessLookupError:
        pass


class ProcessInvoker:
    """Runs toolchain commands without blocking the event loop."""

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float,
        check: bool = True,
    ) -> ProcessResult:
        return await self.run_streaming(
            command, args, cwd=cwd, env=env, timeout=timeout, check=check
        )

    async def run_streaming(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        timeout: float,
        on_chunk: Optional[ChunkCallback] = None,
        check: bool = True,
    ) -> ProcessResult:
        """Run a command, passing each decoded stdout line to ``on_chunk``.

        Args:
            command: Executable name or path.
            args: Arguments.
            cwd: Working directory (defaults to the current one).
            env: Variables layered over a copy of os.environ.
            timeout: Seconds before the process is killed.
            on_chunk: Called synchronously with every stdout line.
            check: Raise CommandFailed on non-zero exit.
        """
        display = _display(command, args)
        merged_env = os.environ.copy()
        if env:
            merged_env.update(env)

        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                cwd=str(cwd) if cwd is not None else None,
                env=merged_env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=_POSIX,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as exc:
            raise SpawnFailed(display, str(exc)) from exc
        except OSError as exc:
            raise SpawnFailed(display, str(exc)) from exc

        logger.debug("Spawned pid %d: %s (timeout=%.1fs)", process.pid, display, timeout)

        stdout_parts: list[str] = []
        stderr_parts: list[str] = []
        assert process.stdout is not None and process.stderr is not None

        try:
            await asyncio.wait_for(
                asyncio.gather(
                    _drain(process.stdout, stdout_parts, on_chunk),
                    _drain(process.stderr, stderr_parts, None),
                    process.wait(),
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            _kill(process)
            await process.wait()
            logger.warning(
                "Process %d timed out after %.1fs and was killed: %s",
                process.pid,
                timeout,
                display,
            )
            raise ProcessTimeout(display, timeout, pid=process.pid) from None
        except BaseException:
            # Cancellation or a failing on_chunk callback: never leave the child running.
            _kill(process)
            await asyncio.shield(process.wait())
            raise

        result = ProcessResult(
            command=display,
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout="".join(stdout_parts),
            stderr="".join(stderr_parts),
            duration_seconds=time.monotonic() - start,
        )
        logger.debug(
            "pid %d exited with %d after %.2fs",
            process.pid,
            result.exit_code,
            result.duration_seconds,
        )

        if check and not result.ok:
            raise CommandFailed(display, result.exit_code, result.stdout, result.stderr)
        return result

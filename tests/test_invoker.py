"""ProcessInvoker against real child processes (the Python interpreter)."""

import asyncio
import os
import sys
import time
from pathlib import Path

import pytest

from move_prover.errors import CommandFailed, ProcessTimeout, SpawnFailed
from move_prover.invoker import ProcessInvoker

posix_only = pytest.mark.skipif(os.name != "posix", reason="process-group kill is POSIX")


def _py(code: str) -> list[str]:
    return ["-c", code]


def _assert_gone(pid: int) -> None:
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def _alive(pid: int) -> bool:
    """True while pid exists and is not a zombie awaiting its reaper."""
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    stat = Path(f"/proc/{pid}/stat")
    try:
        state = stat.read_text().rsplit(")", 1)[1].split()[0]
    except (OSError, IndexError):
        return True
    return state != "Z"


def _wait_gone(pid: int, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not _alive(pid):
            return True
        time.sleep(0.02)
    return False


@pytest.fixture
def invoker() -> ProcessInvoker:
    return ProcessInvoker()


class TestRun:
    def test_captures_stdout_and_exit_code(self, invoker):
        result = asyncio.run(invoker.run(sys.executable, _py("print('hello')"), timeout=10))
        assert result.ok
        assert result.exit_code == 0
        assert result.stdout.strip() == "hello"
        assert result.duration_seconds >= 0

    def test_non_zero_exit_raises_with_output(self, invoker):
        code = "import sys; print('partial'); sys.stderr.write('boom\\n'); sys.exit(3)"
        with pytest.raises(CommandFailed) as excinfo:
            asyncio.run(invoker.run(sys.executable, _py(code), timeout=10))
        assert excinfo.value.exit_code == 3
        assert "partial" in excinfo.value.stdout
        assert "boom" in str(excinfo.value)

    def test_non_zero_exit_without_check(self, invoker):
        result = asyncio.run(
            invoker.run(sys.executable, _py("raise SystemExit(2)"), timeout=10, check=False)
        )
        assert result.exit_code == 2
        assert not result.ok

    def test_missing_executable(self, invoker):
        with pytest.raises(SpawnFailed):
            asyncio.run(invoker.run("/nonexistent/move-prover-toolchain", ["--version"], timeout=5))

    def test_environment_is_layered_over_parent(self, invoker):
        code = "import os; print(os.environ['FROM_SQUARE'], 'PATH' in os.environ)"
        result = asyncio.run(
            invoker.run(sys.executable, _py(code), env={"FROM_SQUARE": "52"}, timeout=10)
        )
        assert result.stdout.split() == ["52", "True"]

    def test_working_directory(self, invoker, tmp_path):
        result = asyncio.run(
            invoker.run(sys.executable, _py("import os; print(os.getcwd())"), cwd=tmp_path, timeout=10)
        )
        assert os.path.realpath(result.stdout.strip()) == os.path.realpath(tmp_path)


class TestStreaming:
    def test_lines_reach_callback_in_order(self, invoker):
        code = "for i in range(3): print(f'line {i}', flush=True)"
        seen: list[str] = []
        result = asyncio.run(
            invoker.run_streaming(sys.executable, _py(code), timeout=10, on_chunk=seen.append)
        )
        assert [line.strip() for line in seen] == ["line 0", "line 1", "line 2"]
        assert result.stdout == "".join(seen)

    def test_stderr_does_not_reach_callback(self, invoker):
        code = "import sys; sys.stderr.write('noise\\n'); print('signal')"
        seen: list[str] = []
        result = asyncio.run(
            invoker.run_streaming(sys.executable, _py(code), timeout=10, on_chunk=seen.append)
        )
        assert [line.strip() for line in seen] == ["signal"]
        assert "noise" in result.stderr

    def test_long_output_without_newline(self, invoker):
        seen: list[str] = []
        result = asyncio.run(
            invoker.run_streaming(
                sys.executable,
                _py("import sys; sys.stdout.write('x' * 100000)"),
                timeout=10,
                on_chunk=seen.append,
            )
        )
        assert len(result.stdout) == 100000
        assert "".join(seen) == result.stdout

    def test_long_line_then_short_lines(self, invoker):
        code = "print('y' * 200000); print('PROOF_SIZE:12')"
        seen: list[str] = []
        result = asyncio.run(
            invoker.run_streaming(sys.executable, _py(code), timeout=10, on_chunk=seen.append)
        )
        assert "".join(seen) == result.stdout
        assert seen[-1] == "PROOF_SIZE:12\n"


@posix_only
class TestTermination:
    def test_timeout_kills_the_process(self, invoker):
        start = time.monotonic()
        with pytest.raises(ProcessTimeout) as excinfo:
            asyncio.run(
                invoker.run(sys.executable, _py("import time; time.sleep(30)"), timeout=0.2)
            )
        elapsed = time.monotonic() - start

        assert elapsed < 0.3
        assert excinfo.value.timeout == 0.2
        assert excinfo.value.pid is not None
        _assert_gone(excinfo.value.pid)

    def test_failing_callback_kills_the_process(self, invoker):
        code = "import os, time; print(os.getpid(), flush=True); time.sleep(30)"
        pids: list[int] = []

        def on_chunk(line: str) -> None:
            pids.append(int(line))
            raise RuntimeError("subscriber broke")

        with pytest.raises(RuntimeError):
            asyncio.run(
                invoker.run_streaming(sys.executable, _py(code), timeout=10, on_chunk=on_chunk)
            )
        assert len(pids) == 1
        _assert_gone(pids[0])

    def test_cancellation_kills_the_process(self, invoker):
        pids: list[int] = []

        async def scenario() -> None:
            code = "import os, time; print(os.getpid(), flush=True); time.sleep(30)"
            task = asyncio.create_task(
                invoker.run_streaming(
                    sys.executable, _py(code), timeout=10, on_chunk=lambda l: pids.append(int(l))
                )
            )
            while not pids:
                await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())
        _assert_gone(pids[0])

    def test_timeout_kills_grandchild_after_child_exits(self, invoker):
        # The child leaves a sleeping grandchild holding stdout, then exits.
        code = (
            "import subprocess, sys; "
            "p = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(30)']); "
            "print(p.pid, flush=True)"
        )
        pids: list[int] = []

        with pytest.raises(ProcessTimeout):
            asyncio.run(
                invoker.run_streaming(
                    sys.executable,
                    _py(code),
                    timeout=0.5,
                    on_chunk=lambda line: pids.append(int(line)),
                )
            )
        assert len(pids) == 1
        assert _wait_gone(pids[0])

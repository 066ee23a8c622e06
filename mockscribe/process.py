"""
mockscribe.process - Child process execution with timeout and cleanup.

Runs a command with stdout and stderr drained concurrently, kills the
whole process group on timeout or cancellation, and removes its scratch
directory on every exit path.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import shutil
import signal
import tempfile
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from mockscribe.exceptions import ProcessExitError, ProcessTimeoutError, SpawnError
from mockscribe.logging import logger

WORKDIR_TOKEN = "{workdir}"

_READ_CHUNK = 64 * 1024
_REAP_GRACE = 2.0


@dataclass(slots=True)
class ProcessResult:
    stdout: bytes
    stderr: bytes
    exit_code: int

    @property
    def stdout_text(self) -> str:
        return self.stdout.decode("utf-8", errors="replace")

    @property
    def stderr_text(self) -> str:
        return self.stderr.decode("utf-8", errors="replace")

    def check(self, backend: str | None = None) -> ProcessResult:
        """Raise ProcessExitError (with stderr attached) on a non-zero exit."""
        if self.exit_code != 0:
            raise ProcessExitError(self.exit_code, self.stderr_text, backend=backend)
        return self


class SubprocessRunner:
    """Spawns child processes inside a private scratch directory.

    Every run gets a fresh directory under ``temp_root``. ``files`` are
    written into it before spawning, and any argument containing
    ``{workdir}`` has it replaced with the directory path. The directory
    is the child's working directory and is deleted when the run ends.
    """

    def __init__(self, temp_root: Path | None = None) -> None:
        self._temp_root = temp_root

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        input: bytes | None = None,
        timeout: float,
        files: Mapping[str, bytes] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ProcessResult:
        """Run a command to completion.

        Args:
            command: Executable name or path
            args: Arguments; "{workdir}" is substituted
            input: Bytes written to the child's stdin, if any
            timeout: Wall-clock budget in seconds
            files: Scratch files to materialize, keyed by file name
            env: Environment for the child (inherits ours if None)

        Returns:
            ProcessResult; a non-zero exit is returned, not raised

        Raises:
            SpawnError: If the executable cannot be started
            ProcessTimeoutError: If the budget was exceeded and the child killed
        """
        workdir = Path(tempfile.mkdtemp(prefix="mockscribe-", dir=self._temp_root))
        try:
            for name, data in (files or {}).items():
                (workdir / name).write_bytes(data)
            argv = [command, *(arg.replace(WORKDIR_TOKEN, str(workdir)) for arg in args)]
            return await self._execute(argv, input, timeout, workdir, env)
        finally:
            try:
                shutil.rmtree(workdir)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Failed to remove scratch directory %s: %s", workdir, e)

    async def _execute(
        self,
        argv: list[str],
        input: bytes | None,
        timeout: float,
        workdir: Path,
        env: Mapping[str, str] | None,
    ) -> ProcessResult:
        logger.debug("Spawning %s", argv)
        try:
            proc = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.PIPE if input is not None else asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=workdir,
                env=dict(env) if env is not None else None,
                start_new_session=os.name == "posix",
            )
        except OSError as e:
            raise SpawnError(f"Failed to start {argv[0]}: {e}") from e

        stdout_buf = bytearray()
        stderr_buf = bytearray()

        async def feed() -> None:
            if proc.stdin is None:
                return
            try:
                proc.stdin.write(input or b"")
                await proc.stdin.drain()
            except (BrokenPipeError, ConnectionResetError):
                logger.debug("Child %s closed stdin early", proc.pid)
            finally:
                proc.stdin.close()

        async def drain(stream: asyncio.StreamReader | None, buf: bytearray) -> None:
            if stream is None:
                return
            while True:
                chunk = await stream.read(_READ_CHUNK)
                if not chunk:
                    break
                buf.extend(chunk)

        async def communicate() -> int:
            await asyncio.gather(
                feed(),
                drain(proc.stdout, stdout_buf),
                drain(proc.stderr, stderr_buf),
            )
            return await proc.wait()

        try:
            exit_code = await asyncio.wait_for(communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            await _kill(proc)
            raise ProcessTimeoutError(
                f"{argv[0]} timed out after {timeout:g}s",
                pid=proc.pid,
                stdout=bytes(stdout_buf),
                stderr=bytes(stderr_buf),
            ) from None
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        logger.debug("Child %s exited with code %s", proc.pid, exit_code)
        return ProcessResult(stdout=bytes(stdout_buf), stderr=bytes(stderr_buf), exit_code=exit_code)


async def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill the child (and its process group on POSIX) and reap it.

    The group is signalled even if the child already exited; a backgrounded
    grandchild may still hold the pipes open. Remaining pipe data
    is read for at most _REAP_GRACE seconds.
    """
    logger.debug("Killing child %s", proc.pid)
    with contextlib.suppress(ProcessLookupError):
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        elif proc.returncode is None:
            proc.kill()
    try:
        await asyncio.wait_for(proc.communicate(), timeout=_REAP_GRACE)
    except asyncio.TimeoutError:
        logger.warning("Child %s pipes still open %gs after kill", proc.pid, _REAP_GRACE)

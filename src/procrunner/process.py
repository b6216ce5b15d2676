"""OS process primitive — the single mock seam for all tests."""

import asyncio
from collections.abc import Awaitable, Mapping, Sequence
from typing import Protocol


class ByteSource(Protocol):
    async def read(self, n: int = -1) -> bytes: ...


class ByteSink(Protocol):
    def write(self, data: bytes) -> None: ...

    async def drain(self) -> None: ...

    def close(self) -> None: ...

    async def wait_closed(self) -> None: ...


class ProcessHandle:
    """A started process: its three standard streams and an exit-code future.

    stdin is None when the process was started without an input pipe.
    terminate/kill are here for callers that want timeout or cancel policy;
    the runner itself only uses kill to clean up after a failed drain.
    """

    def __init__(
        self,
        proc: asyncio.subprocess.Process,
        stdout: ByteSource,
        stderr: ByteSource,
        stdin: ByteSink | None,
        exit_code: Awaitable[int],
    ):
        self.proc = proc
        self.stdout = stdout
        self.stderr = stderr
        self.stdin = stdin
        self.exit_code = exit_code

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def returncode(self) -> int | None:
        return self.proc.returncode

    def terminate(self) -> None:
        try:
            self.proc.terminate()
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        try:
            self.proc.kill()
        except ProcessLookupError:
            pass


class ProcessManager(Protocol):
    async def start(
        self,
        command_line: Sequence[str],
        working_directory: str,
        environment: Mapping[str, str],
        *,
        pipe_stdin: bool = False,
    ) -> ProcessHandle: ...


class LocalProcessManager:
    """Start real processes with asyncio, never through a shell."""

    async def start(
        self,
        command_line: Sequence[str],
        working_directory: str,
        environment: Mapping[str, str],
        *,
        pipe_stdin: bool = False,
    ) -> ProcessHandle:
        # DEVNULL rather than inheriting our stdin when there is nothing to feed
        proc = await asyncio.create_subprocess_exec(
            *command_line,
            stdin=asyncio.subprocess.PIPE if pipe_stdin else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=working_directory,
            env=dict(environment),
        )
        return ProcessHandle(
            proc,
            stdout=proc.stdout,
            stderr=proc.stderr,
            stdin=proc.stdin,
            exit_code=asyncio.ensure_future(proc.wait()),
        )

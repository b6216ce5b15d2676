"""Run a process, capture stdout/stderr/interleaved output without dropping any.

One run moves through STARTING → DRAINING → AWAITING_EXIT → COMPLETE, or to
FAILED from any of them. During DRAINING three tasks run on the event loop:
stdout drain, stderr drain and (when input was given) the stdin feed. The exit
code is only read once all three are done: a process can exit before its pipes
are empty, so the exit signal alone never completes a run.
"""

import asyncio
import enum
import sys
from collections.abc import AsyncIterable, AsyncIterator, Callable, Mapping, Sequence
from typing import BinaryIO

from procrunner import log
from procrunner.config import RunConfiguration, StdinSource
from procrunner.launcher import Launcher, resolve_working_directory
from procrunner.process import ByteSink, ByteSource, ProcessHandle, ProcessManager
from procrunner.result import (
    Decoder,
    InvocationFault,
    NonZeroExit,
    RunResult,
    format_command,
    system_decoder,
)

CHUNK_SIZE = 64 * 1024


class RunState(enum.Enum):
    STARTING = "starting"
    DRAINING = "draining"
    AWAITING_EXIT = "awaiting_exit"
    COMPLETE = "complete"
    FAILED = "failed"


class CaptureBuffers:
    """stdout, stderr and combined bytes, append-only until frozen.

    Both drains append to `combined`. An append (and its tee) runs with no
    await in between, so on one event loop a chunk is never split by the
    other stream's chunk.
    """

    def __init__(self):
        self.stdout = bytearray()
        self.stderr = bytearray()
        self.combined = bytearray()

    def add_stdout(self, chunk: bytes) -> None:
        self.stdout.extend(chunk)
        self.combined.extend(chunk)

    def add_stderr(self, chunk: bytes) -> None:
        self.stderr.extend(chunk)
        self.combined.extend(chunk)

    def freeze(self, exit_code: int, decoder: Decoder) -> RunResult:
        return RunResult(
            exit_code,
            bytes(self.stdout),
            bytes(self.stderr),
            bytes(self.combined),
            decoder=decoder,
        )


async def _chunks(source: StdinSource) -> AsyncIterator[bytes]:
    """Iterate bytes, an iterable of chunks, or an async iterable of chunks."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        if source:
            yield bytes(source)
        return
    if isinstance(source, AsyncIterable):
        async for chunk in source:
            yield chunk
        return
    # a sync source may block (a pipe, a TTY); pull from it off the loop
    it = iter(source)
    while True:
        chunk = await asyncio.to_thread(next, it, None)
        if chunk is None:
            return
        yield chunk


def _tee(sink: BinaryIO, chunk: bytes) -> None:
    sink.write(chunk)
    sink.flush()


class ProcessRunner:
    """Runs processes and captures their output.

    Constructor arguments are defaults for every run; a RunConfiguration field
    left as None falls back to them.

    - default_working_directory: used when a run names none (current dir if unset)
    - process_manager: the process primitive, swapped out in tests
    - environment: variables for the child
    - include_parent_environment: merge `environment` over the parent's
      environment (default) or use it alone
    - decoder: bytes → str for RunResult text properties
    - parent_environment: the environment merged into, os.environ if unset
    - stdout_sink/stderr_sink: where print_output tees to, our own stdout/stderr if unset
    - on_state: called with each RunState a run enters
    """

    def __init__(
        self,
        default_working_directory: str | None = None,
        process_manager: ProcessManager | None = None,
        environment: Mapping[str, str] | None = None,
        include_parent_environment: bool = True,
        decoder: Decoder | None = None,
        parent_environment: Mapping[str, str] | None = None,
        stdout_sink: BinaryIO | None = None,
        stderr_sink: BinaryIO | None = None,
        on_state: Callable[[RunState], None] | None = None,
    ):
        self.default_working_directory = resolve_working_directory(default_working_directory)
        self.launcher = Launcher(process_manager, parent_environment=parent_environment)
        self.environment = dict(environment or {})
        self.include_parent_environment = include_parent_environment
        self.decoder = decoder or system_decoder
        self.stdout_sink = stdout_sink
        self.stderr_sink = stderr_sink
        self.on_state = on_state

    def _enter(self, state: RunState) -> None:
        if self.on_state is not None:
            self.on_state(state)

    async def run_process(
        self,
        command_line: Sequence[str],
        *,
        working_directory: str | None = None,
        print_output: bool = False,
        fail_ok: bool = False,
        stdin: StdinSource | None = None,
    ) -> RunResult:
        """Run `command_line` and return its captured output.

        Raises NonZeroExit on a non-zero exit unless fail_ok, LaunchFailed if
        the process can't be started.
        """
        config = RunConfiguration(
            command_line,
            working_directory=working_directory,
            print_output=print_output,
            fail_ok=fail_ok,
            stdin=stdin,
        )
        return await self.run(config)

    async def run(self, config: RunConfiguration) -> RunResult:
        self._enter(RunState.STARTING)
        command_line = list(config.command_line)
        cwd = resolve_working_directory(config.working_directory, self.default_working_directory)
        environment = self.environment if config.environment is None else config.environment
        include_parent = (
            self.include_parent_environment
            if config.include_parent_environment is None
            else config.include_parent_environment
        )
        decoder = config.decoder or self.decoder
        stdout_sink = stderr_sink = None
        if config.print_output:
            stdout_sink = self.stdout_sink if self.stdout_sink is not None else sys.stdout.buffer
            stderr_sink = self.stderr_sink if self.stderr_sink is not None else sys.stderr.buffer
            log.note(f'Running "{format_command(command_line)}" in {cwd}.')

        try:
            handle = await self.launcher.launch(
                command_line,
                cwd,
                environment,
                include_parent_environment=include_parent,
                pipe_stdin=config.stdin is not None,
            )
        except BaseException:
            self._enter(RunState.FAILED)
            raise

        if config.stdin is not None and handle.stdin is None:
            handle.kill()
            self._enter(RunState.FAILED)
            raise InvocationFault(command_line, cwd, "input was supplied but the process has no stdin pipe")

        buffers = CaptureBuffers()
        self._enter(RunState.DRAINING)
        try:
            await self._drain_all(handle, buffers, config.stdin, stdout_sink, stderr_sink)
            self._enter(RunState.AWAITING_EXIT)
            exit_code = await handle.exit_code
        except OSError as e:
            self._enter(RunState.FAILED)
            partial = buffers.freeze(handle.returncode if handle.returncode is not None else -1, decoder)
            raise InvocationFault(command_line, cwd, str(e), result=partial) from e
        except BaseException:
            self._enter(RunState.FAILED)
            raise

        result = buffers.freeze(exit_code, decoder)
        if exit_code != 0 and not config.fail_ok:
            self._enter(RunState.FAILED)
            raise NonZeroExit(command_line, cwd, result)
        self._enter(RunState.COMPLETE)
        return result

    async def _drain_all(
        self,
        handle: ProcessHandle,
        buffers: CaptureBuffers,
        stdin: StdinSource | None,
        stdout_sink: BinaryIO | None,
        stderr_sink: BinaryIO | None,
    ) -> None:
        """Run the drains and the feed to completion; on any failure cancel the rest and kill."""
        tasks = [
            asyncio.ensure_future(self._drain(handle.stdout, buffers.add_stdout, stdout_sink)),
            asyncio.ensure_future(self._drain(handle.stderr, buffers.add_stderr, stderr_sink)),
        ]
        if stdin is not None:
            tasks.append(asyncio.ensure_future(self._feed(stdin, handle.stdin)))

        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            if handle.returncode is None:
                handle.kill()
            raise

    async def _drain(
        self,
        stream: ByteSource,
        append: Callable[[bytes], None],
        sink: BinaryIO | None,
    ) -> None:
        while True:
            chunk = await stream.read(CHUNK_SIZE)
            if not chunk:
                break
            append(chunk)
            if sink is not None:
                _tee(sink, chunk)

    async def _feed(self, source: StdinSource, sink: ByteSink) -> None:
        try:
            async for chunk in _chunks(source):
                sink.write(chunk)
                await sink.drain()
            sink.close()
            await sink.wait_closed()
        except (BrokenPipeError, ConnectionResetError):
            # child stopped reading; its exit code says whether that was a failure
            sink.close()


def run(config: RunConfiguration, **runner_options) -> RunResult:
    """Run one process to completion on a fresh event loop."""
    return asyncio.run(ProcessRunner(**runner_options).run(config))

"""Shared test fixtures."""

import asyncio

import pytest


class FakeStream:
    """Readable stream that hands out queued chunks, yielding to the loop `delay` times per read."""

    def __init__(self, chunks=(), delay=0, error=None):
        self.chunks = list(chunks)
        self.delay = delay
        self.error = error
        self.eof = False

    async def read(self, n=-1):
        for _ in range(self.delay):
            await asyncio.sleep(0)
        if self.chunks:
            return self.chunks.pop(0)
        if self.error is not None:
            raise self.error
        self.eof = True
        return b""


class FakeStdin:
    def __init__(self, error=None):
        self.written = []
        self.closed = False
        self.error = error

    def write(self, data):
        if self.error is not None:
            raise self.error
        self.written.append(data)

    async def drain(self):
        await asyncio.sleep(0)

    def close(self):
        self.closed = True

    async def wait_closed(self):
        await asyncio.sleep(0)


class FakeHandle:
    def __init__(self, stdout, stderr, stdin, exit_code):
        self.stdout = stdout
        self.stderr = stderr
        self.stdin = stdin
        self.exit_code = exit_code
        self.returncode = None
        self.killed = False
        self.pid = 4242

    def terminate(self):
        self.killed = True

    def kill(self):
        self.killed = True


class FakeProcessManager:
    """Stands in for LocalProcessManager. Queue handle specs with add()."""

    def __init__(self):
        self.calls = []
        self.specs = []
        self.handles = []
        self.error = None
        self.drop_stdin = False

    def add(self, stdout=(), stderr=(), exit_code=0, stdout_delay=0, stderr_delay=0,
            stdout_error=None, stdin_error=None, exit_after=None):
        self.specs.append(
            dict(
                stdout=stdout,
                stderr=stderr,
                exit_code=exit_code,
                stdout_delay=stdout_delay,
                stderr_delay=stderr_delay,
                stdout_error=stdout_error,
                stdin_error=stdin_error,
                exit_after=exit_after,
            )
        )

    async def start(self, command_line, working_directory, environment, *, pipe_stdin=False):
        self.calls.append((list(command_line), working_directory, dict(environment), pipe_stdin))
        if self.error is not None:
            raise self.error
        spec = self.specs.pop(0) if self.specs else dict(
            stdout=(), stderr=(), exit_code=0, stdout_delay=0, stderr_delay=0,
            stdout_error=None, stdin_error=None, exit_after=None,
        )
        loop = asyncio.get_running_loop()
        exit_future = loop.create_future()
        if spec["exit_after"] is None:
            exit_future.set_result(spec["exit_code"])
        else:
            loop.call_later(spec["exit_after"], exit_future.set_result, spec["exit_code"])
        handle = FakeHandle(
            stdout=FakeStream(spec["stdout"], spec["stdout_delay"], spec["stdout_error"]),
            stderr=FakeStream(spec["stderr"], spec["stderr_delay"]),
            stdin=FakeStdin(spec["stdin_error"]) if pipe_stdin and not self.drop_stdin else None,
            exit_code=exit_future,
        )
        self.handles.append(handle)
        return handle


@pytest.fixture
def fake_manager():
    return FakeProcessManager()


@pytest.fixture
def parent_env():
    return {"PATH": "/usr/bin:/bin", "HOME": "/home/test"}

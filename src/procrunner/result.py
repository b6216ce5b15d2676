"""Run results + the errors a run can end in."""

import codecs
import locale
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from functools import cached_property

Decoder = Callable[[bytes], str]


def encoding_decoder(encoding: str) -> Decoder:
    """Build a decoder for a named encoding. Malformed bytes are replaced, not raised."""
    name = codecs.lookup(encoding).name

    def decode(data: bytes) -> str:
        return bytes(data).decode(name, errors="replace")

    return decode


system_decoder = encoding_decoder(locale.getpreferredencoding(False))


def format_command(command_line: Sequence[str]) -> str:
    return " ".join(str(arg) for arg in command_line)


@dataclass(frozen=True)
class RunResult:
    """Output of a completed process.

    The *_raw fields hold the bytes exactly as captured. The stdout, stderr and
    output properties decode them with `decoder` on first access and keep the
    text; the decoder runs at most once per buffer.

    output/output_raw interleave stdout and stderr in the order the chunks
    arrived. Ordering across the two streams is best effort; each stream's
    own bytes are always in order.
    """

    exit_code: int
    stdout_raw: bytes
    stderr_raw: bytes
    output_raw: bytes
    decoder: Decoder = field(default=system_decoder, repr=False, compare=False)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @cached_property
    def stdout(self) -> str:
        return self.decoder(self.stdout_raw)

    @cached_property
    def stderr(self) -> str:
        return self.decoder(self.stderr_raw)

    @cached_property
    def output(self) -> str:
        return self.decoder(self.output_raw)


class RunError(Exception):
    """Base class for a failed run. `result` is set when output was captured."""

    def __init__(self, message: str, result: RunResult | None = None):
        super().__init__(message)
        self.message = message
        self.result = result

    @property
    def exit_code(self) -> int:
        return self.result.exit_code if self.result is not None else -1

    def details(self) -> str:
        return ""

    def __str__(self) -> str:
        output = f"{type(self).__name__}: {self.message}"
        details = self.details()
        if details:
            output += f":\n{details}"
        return output


class LaunchFailed(RunError):
    """The process could not be started."""

    def __init__(self, command_line: Sequence[str], working_directory: str, reason: str):
        self.command_line = list(command_line)
        self.working_directory = working_directory
        self.reason = reason
        super().__init__(
            f'Running "{format_command(command_line)}" in {working_directory} '
            f"failed with:\n{reason}"
        )


class InvocationFault(LaunchFailed):
    """The process primitive failed after start (stream I/O, exit wait).

    `result` holds whatever was captured before the fault, if anything ran.
    """

    def __init__(
        self,
        command_line: Sequence[str],
        working_directory: str,
        reason: str,
        result: RunResult | None = None,
    ):
        super().__init__(command_line, working_directory, reason)
        self.result = result

    def details(self) -> str:
        if self.result is None or not self.result.output_raw:
            return ""
        return f"captured before the fault:\n{self.result.output}"


class NonZeroExit(RunError):
    """The process exited non-zero and the caller did not pass fail_ok."""

    def __init__(self, command_line: Sequence[str], working_directory: str, result: RunResult):
        self.command_line = list(command_line)
        self.working_directory = working_directory
        super().__init__(
            f'Running "{format_command(command_line)}" in {working_directory} failed',
            result=result,
        )

    def details(self) -> str:
        return f"exited with code {self.result.exit_code}\n{self.result.output}"

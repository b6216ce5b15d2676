"""Working directory + environment resolution, then process start."""

import os
from collections.abc import Mapping, Sequence

from procrunner.process import LocalProcessManager, ProcessHandle, ProcessManager
from procrunner.result import LaunchFailed


def resolve_working_directory(requested: str | os.PathLike | None, default: str | os.PathLike | None = None) -> str:
    """Requested dir → default dir → current dir, always absolute."""
    directory = requested if requested is not None else default
    if directory is None:
        return os.getcwd()
    return os.path.abspath(os.fspath(directory))


def resolve_environment(
    overrides: Mapping[str, str] | None,
    include_parent: bool,
    parent: Mapping[str, str],
) -> dict[str, str]:
    """Overrides merged over the parent environment, or overrides alone."""
    if include_parent:
        return {**parent, **(overrides or {})}
    return dict(overrides or {})


class Launcher:
    """Starts processes through an injectable ProcessManager.

    parent_environment is captured once, at construction, so tests can pin it.
    """

    def __init__(
        self,
        process_manager: ProcessManager | None = None,
        parent_environment: Mapping[str, str] | None = None,
    ):
        self.process_manager = process_manager or LocalProcessManager()
        self.parent_environment = dict(os.environ if parent_environment is None else parent_environment)

    async def launch(
        self,
        command_line: Sequence[str],
        working_directory: str,
        environment: Mapping[str, str] | None = None,
        include_parent_environment: bool = True,
        pipe_stdin: bool = False,
    ) -> ProcessHandle:
        """Start the process. Raises LaunchFailed; no handle is returned on failure."""
        if isinstance(command_line, (str, bytes)):
            raise LaunchFailed([str(command_line)], working_directory, "command line must be a list of arguments, not a string")
        command_line = list(command_line)
        if not command_line:
            raise LaunchFailed(command_line, working_directory, "empty command line")
        bad = [arg for arg in command_line if not isinstance(arg, str)]
        if bad:
            raise LaunchFailed(command_line, working_directory, f"arguments must be strings, got {bad!r}")

        env = resolve_environment(environment, include_parent_environment, self.parent_environment)
        try:
            return await self.process_manager.start(
                command_line, working_directory, env, pipe_stdin=pipe_stdin
            )
        except (OSError, ValueError, TypeError) as e:
            raise LaunchFailed(command_line, working_directory, str(e)) from e

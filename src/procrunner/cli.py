"""Click entry point — all commands."""

import asyncio
import json
import sys

import click

from procrunner import __version__, log
from procrunner.config import ConfigError, RunConfiguration, load_defaults
from procrunner.result import NonZeroExit, RunError, encoding_decoder, format_command
from procrunner.runner import ProcessRunner


def _parse_env(pairs: tuple[str, ...]) -> dict[str, str]:
    env = {}
    for item in pairs:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--env")
        env[key] = value
    return env


def _read_chunks(f, size: int = 64 * 1024):
    return iter(lambda: f.read(size), b"")


def _exit_status(code: int) -> int:
    """Child exit code as our own exit status; killed by signal N → 128 + N."""
    if code < 0:
        return 128 - code
    return code


@click.group()
@click.version_option(version=__version__, prog_name="procrunner")
def main():
    """Run processes and capture stdout, stderr and interleaved output."""


@main.command(context_settings={"ignore_unknown_options": True})
@click.argument("command", nargs=-1, type=click.UNPROCESSED)
@click.option("--cwd", default=None, help="Working directory (default: current directory)")
@click.option("--env", "env_pairs", multiple=True, help="Set KEY=VALUE in the child environment")
@click.option("--no-parent-env", is_flag=True, help="Do not inherit this process's environment")
@click.option("--print-output", "-p", is_flag=True, help="Show output live while capturing it")
@click.option("--fail-ok", is_flag=True, help="Do not treat a non-zero exit as an error")
@click.option("--stdin", "stdin_file", type=click.File("rb"), default=None, help="Feed FILE to stdin ('-' for ours)")
@click.option("--json", "as_json", is_flag=True, help="Print the captured result as JSON")
@click.option("--config", "config_path", default=None, help="Defaults file (default: procrunner.yml)")
def run(command, cwd, env_pairs, no_parent_env, print_output, fail_ok, stdin_file, as_json, config_path):
    """Run COMMAND and report its captured output."""
    if not command:
        click.echo("Error: No command specified", err=True)
        sys.exit(1)

    try:
        defaults = load_defaults(config_path)
        decoder = encoding_decoder(defaults.encoding) if defaults.encoding else None
    except (ConfigError, LookupError) as e:
        log.error(str(e))
        sys.exit(1)

    environment = {**defaults.environment, **_parse_env(env_pairs)}
    print_output = print_output or defaults.print_output
    runner = ProcessRunner(
        default_working_directory=defaults.working_directory,
        environment=environment,
        include_parent_environment=defaults.include_parent_environment and not no_parent_env,
        decoder=decoder,
    )
    config = RunConfiguration(
        command,
        working_directory=cwd,
        print_output=print_output,
        fail_ok=fail_ok or defaults.fail_ok,
        stdin=_read_chunks(stdin_file) if stdin_file is not None else None,
    )

    if print_output:
        log.header(format_command(command))
    try:
        result = asyncio.run(runner.run(config))
    except RunError as e:
        if print_output:
            log.footer(f"exit {e.exit_code}")
        log.error(str(e))
        sys.exit(_exit_status(e.exit_code) if isinstance(e, NonZeroExit) else 1)
    if print_output:
        log.footer(f"exit {result.exit_code}")

    if as_json:
        payload = {
            "exit_code": result.exit_code,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "output": result.output,
        }
        click.echo(json.dumps(payload, indent=2))
    elif not print_output:
        click.echo(result.stdout, nl=False)
        click.echo(result.stderr, nl=False, err=True)
    sys.exit(_exit_status(result.exit_code))


if __name__ == "__main__":
    main()

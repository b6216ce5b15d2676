"""Run configuration + YAML runner defaults."""

import os
from collections.abc import AsyncIterable, Iterable, Mapping
from dataclasses import dataclass, field

import yaml

from procrunner.result import Decoder

CONFIG_FILE = "procrunner.yml"

StdinSource = bytes | Iterable[bytes] | AsyncIterable[bytes]


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class RunConfiguration:
    """Everything one run needs. None means "use the runner's default"."""

    command_line: tuple[str, ...]
    working_directory: str | os.PathLike | None = None
    environment: Mapping[str, str] | None = None
    include_parent_environment: bool | None = None
    print_output: bool = False
    fail_ok: bool = False
    stdin: StdinSource | None = field(default=None, repr=False)
    decoder: Decoder | None = field(default=None, repr=False)

    def __post_init__(self):
        if isinstance(self.command_line, (str, bytes)):
            raise TypeError(f"command_line must be a sequence of arguments, not {self.command_line!r}")
        object.__setattr__(self, "command_line", tuple(self.command_line))


@dataclass
class RunnerDefaults:
    working_directory: str | None = None
    environment: dict[str, str] = field(default_factory=dict)
    include_parent_environment: bool = True
    encoding: str | None = None
    print_output: bool = False
    fail_ok: bool = False


_BOOL_KEYS = ("include_parent_environment", "print_output", "fail_ok")
_STR_KEYS = ("working_directory", "encoding")


def resolve_config_path() -> str | None:
    """Resolve the defaults file to load.

    Order: PROCRUNNER_CONFIG env → ./procrunner.yml (if present) → none.
    """
    env_path = os.environ.get("PROCRUNNER_CONFIG")
    if env_path:
        return env_path

    if os.path.isfile(CONFIG_FILE):
        return CONFIG_FILE

    return None


def parse_defaults(data: dict | None) -> RunnerDefaults:
    """Validate a parsed YAML mapping into RunnerDefaults."""
    if data is None:
        return RunnerDefaults()
    if not isinstance(data, dict):
        raise ConfigError(f"expected a mapping at top level, got {type(data).__name__}")

    known = set(_BOOL_KEYS) | set(_STR_KEYS) | {"environment"}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"unknown keys: {', '.join(unknown)}")

    kwargs = {}
    for key in _BOOL_KEYS:
        if key in data:
            if not isinstance(data[key], bool):
                raise ConfigError(f"{key} must be true or false")
            kwargs[key] = data[key]
    for key in _STR_KEYS:
        if data.get(key) is not None:
            kwargs[key] = str(data[key])

    env = data.get("environment") or {}
    if not isinstance(env, dict):
        raise ConfigError("environment must be a mapping")
    # YAML turns unquoted 1/true/null into non-strings
    kwargs["environment"] = {str(k): "" if v is None else str(v) for k, v in env.items()}

    return RunnerDefaults(**kwargs)


def load_defaults(path: str | None = None) -> RunnerDefaults:
    """Load runner defaults from `path`, or from resolve_config_path()."""
    path = path or resolve_config_path()
    if path is None:
        return RunnerDefaults()
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    return parse_defaults(data)

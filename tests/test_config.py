"""Tests for config.py — RunConfiguration + YAML defaults."""

import pytest

from procrunner.config import (
    ConfigError,
    RunConfiguration,
    RunnerDefaults,
    load_defaults,
    parse_defaults,
    resolve_config_path,
)


def test_run_configuration_defaults():
    c = RunConfiguration(["echo", "hi"])
    assert c.command_line == ("echo", "hi")
    assert c.working_directory is None
    assert c.environment is None
    assert c.include_parent_environment is None
    assert not c.print_output
    assert not c.fail_ok
    assert c.stdin is None
    assert c.decoder is None


def test_run_configuration_rejects_string():
    with pytest.raises(TypeError, match="sequence of arguments"):
        RunConfiguration("wc")
    with pytest.raises(TypeError):
        RunConfiguration(b"wc")


def test_run_configuration_is_frozen():
    c = RunConfiguration(["echo"])
    with pytest.raises(AttributeError):
        c.fail_ok = True


def test_parse_empty():
    assert parse_defaults(None) == RunnerDefaults()


def test_parse_full():
    d = parse_defaults(
        {
            "working_directory": "build",
            "environment": {"CI": True, "JOBS": 4, "EMPTY": None},
            "include_parent_environment": False,
            "encoding": "latin-1",
            "print_output": True,
            "fail_ok": True,
        }
    )
    assert d.working_directory == "build"
    assert d.environment == {"CI": "True", "JOBS": "4", "EMPTY": ""}
    assert d.include_parent_environment is False
    assert d.encoding == "latin-1"
    assert d.print_output is True
    assert d.fail_ok is True


def test_parse_unknown_key():
    with pytest.raises(ConfigError, match="unknown keys: retries"):
        parse_defaults({"retries": 3})


def test_parse_bad_bool():
    with pytest.raises(ConfigError, match="fail_ok must be true or false"):
        parse_defaults({"fail_ok": "yes please"})


def test_parse_bad_environment():
    with pytest.raises(ConfigError, match="environment must be a mapping"):
        parse_defaults({"environment": ["A=1"]})


def test_parse_not_a_mapping():
    with pytest.raises(ConfigError, match="expected a mapping"):
        parse_defaults(["a", "b"])


def test_load_defaults_file(tmp_path):
    path = tmp_path / "procrunner.yml"
    path.write_text("environment:\n  DEPLOY_TAG: abc123\nfail_ok: true\n")
    d = load_defaults(str(path))
    assert d.environment == {"DEPLOY_TAG": "abc123"}
    assert d.fail_ok is True


def test_load_defaults_invalid_yaml(tmp_path):
    path = tmp_path / "procrunner.yml"
    path.write_text("environment: [unclosed\n")
    with pytest.raises(ConfigError, match="invalid YAML"):
        load_defaults(str(path))


def test_load_defaults_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="cannot read"):
        load_defaults(str(tmp_path / "missing.yml"))


def test_load_defaults_no_file(monkeypatch, tmp_path):
    monkeypatch.delenv("PROCRUNNER_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    assert load_defaults() == RunnerDefaults()


def test_resolve_config_path_env(monkeypatch):
    monkeypatch.setenv("PROCRUNNER_CONFIG", "/etc/procrunner.yml")
    assert resolve_config_path() == "/etc/procrunner.yml"


def test_resolve_config_path_local_file(monkeypatch, tmp_path):
    monkeypatch.delenv("PROCRUNNER_CONFIG", raising=False)
    (tmp_path / "procrunner.yml").write_text("fail_ok: false\n")
    monkeypatch.chdir(tmp_path)
    assert resolve_config_path() == "procrunner.yml"


def test_resolve_config_path_none(monkeypatch, tmp_path):
    monkeypatch.delenv("PROCRUNNER_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    assert resolve_config_path() is None

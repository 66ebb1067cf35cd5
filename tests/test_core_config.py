# Released under MIT License.
# Copyright (c) 2025 Ladislav Bartos and Robert Vacha Lab


from dataclasses import dataclass, field

import pytest

from rlnq_lib.core.config import CompanionRule, Config, _dict_to_dataclass


def test_dict_to_dataclass_simple_conversion():
    @dataclass
    class SimpleConfig:
        name: str = "default"
        count: int = 0

    result = _dict_to_dataclass(SimpleConfig, {"name": "test", "count": 42})

    assert isinstance(result, SimpleConfig)
    assert result.name == "test"
    assert result.count == 42


def test_dict_to_dataclass_nested_conversion():
    @dataclass
    class Inner:
        value: int = 0

    @dataclass
    class Outer:
        inner: Inner = field(default_factory=Inner)
        name: str = "default"

    result = _dict_to_dataclass(Outer, {"inner": {"value": 99}, "name": "outer"})

    assert isinstance(result.inner, Inner)
    assert result.inner.value == 99
    assert result.name == "outer"


def test_dict_to_dataclass_extra_fields_ignored():
    @dataclass
    class Settings:
        valid: str = "default"

    result = _dict_to_dataclass(Settings, {"valid": "value", "invalid": "ignored"})

    assert result.valid == "value"
    assert not hasattr(result, "invalid")


def test_dict_to_dataclass_non_dataclass_returns_unchanged():
    data = {"key": "value"}
    assert _dict_to_dataclass(str, data) == data


def test_get_config_path_env_variable_highest_priority(tmp_path, monkeypatch):
    config_file = tmp_path / "custom_config.toml"
    config_file.write_text("")
    (tmp_path / "rlnq_config.toml").write_text("")

    monkeypatch.setenv("RLNQ_CONFIG", str(config_file))
    monkeypatch.chdir(tmp_path)

    assert Config._get_config_path() == config_file


def test_get_config_path_current_directory_second_priority(tmp_path, monkeypatch):
    config_file = tmp_path / "rlnq_config.toml"
    config_file.write_text("")

    xdg_config = tmp_path / "config"
    (xdg_config / "rlnq").mkdir(parents=True)
    (xdg_config / "rlnq" / "config.toml").write_text("")

    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RLNQ_CONFIG", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg_config))

    assert Config._get_config_path() == config_file


def test_get_config_path_xdg_config_home_third_priority(tmp_path, monkeypatch):
    xdg_config = tmp_path / "config"
    (xdg_config / "rlnq").mkdir(parents=True)
    config_file = xdg_config / "rlnq" / "config.toml"
    config_file.write_text("")

    other_dir = tmp_path / "other"
    other_dir.mkdir()

    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg_config))
    monkeypatch.chdir(other_dir)
    monkeypatch.delenv("RLNQ_CONFIG", raising=False)

    assert Config._get_config_path() == config_file


def test_get_config_path_returns_none_when_no_config_exists(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("RLNQ_CONFIG", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "nonexistent"))

    assert Config._get_config_path() is None


def test_load_with_explicit_path(tmp_path):
    config_file = tmp_path / "config.toml"
    config_file.write_text("""
binary_name = "rlnqd"

[slurm]
partition = "gpu"
submit_command = "/usr/bin/sbatch"

[container]
image = "/opt/relion.sif"

[exit_codes]
default = 100
""")

    config = Config.load(config_file)

    assert config.binary_name == "rlnqd"
    assert config.slurm.partition == "gpu"
    assert config.slurm.submit_command == "/usr/bin/sbatch"
    assert config.container.image == "/opt/relion.sif"
    assert config.exit_codes.default == 100

    # non-overriden values
    assert config.slurm.cancel_command == "scancel"
    assert config.container.gpu_options == "--nv"
    assert config.exit_codes.unexpected_error == 99


def test_load_companion_rules(tmp_path):
    config_file = tmp_path / "config.toml"
    config_file.write_text("""
[[companions.half_maps]]
first = "_h1"
second = "_h2"
""")

    config = Config.load(config_file)

    assert config.companions.half_maps == [CompanionRule("_h1", "_h2")]


def test_load_returns_defaults_when_file_missing(tmp_path):
    assert Config.load(tmp_path / "does_not_exist.toml") == Config()


def test_load_invalid_toml_raises(tmp_path):
    config_file = tmp_path / "config.toml"
    config_file.write_text("this is = = not toml")

    with pytest.raises(ValueError, match="Could not read rlnq config"):
        Config.load(config_file)

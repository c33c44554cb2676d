from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from config.settings import CONFIG_FILENAME, ConfigError, RevisionConfig, load_config

if TYPE_CHECKING:
    from pathlib import Path


def _write_config(root: Path, text: str) -> None:
    (root / CONFIG_FILENAME).write_text(text, encoding="utf-8")


def test_defaults_without_file_or_environment(tmp_path: Path) -> None:
    config = load_config(tmp_path, environ={})

    assert config == RevisionConfig()
    assert config.mode == "auto"
    assert config.poll is False
    assert config.poll_interval == 5.0


def test_file_values_are_loaded(tmp_path: Path) -> None:
    _write_config(
        tmp_path,
        'mode = "manual"\n'
        "poll = true\n"
        "poll_interval = 2.5\n"
        'dont_watch = "vendored"\n'
        'silence = ["scratch"]\n'
        'exclude = ["tests/*"]\n',
    )

    config = load_config(tmp_path, environ={})

    assert config.mode == "manual"
    assert config.poll is True
    assert config.poll_interval == 2.5
    assert config.dont_watch == ["vendored"]
    assert config.silence == ["scratch"]
    assert config.exclude == ["tests/*"]


@pytest.mark.parametrize(
    ("value", "expected"),
    [("auto", "auto"), ("manual", "manual"), ("anything-else", "manual")],
)
def test_mode_from_environment(tmp_path: Path, value: str, expected: str) -> None:
    _write_config(tmp_path, 'mode = "auto"\n')

    config = load_config(tmp_path, environ={"REVISE_MODE": value})

    assert config.mode == expected


def test_poll_settings_from_environment_override_the_file(tmp_path: Path) -> None:
    _write_config(tmp_path, "poll = true\npoll_interval = 9\n")

    config = load_config(
        tmp_path, environ={"REVISE_POLL": "0", "REVISE_POLL_INTERVAL": "0.5"}
    )

    assert config.poll is False
    assert config.poll_interval == 0.5
    assert load_config(None, environ={"REVISE_POLL": "1"}).poll is True


def test_invalid_interval_in_environment(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="REVISE_POLL_INTERVAL"):
        load_config(tmp_path, environ={"REVISE_POLL_INTERVAL": "soon"})


def test_non_positive_interval_is_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, "poll_interval = 0\n")

    with pytest.raises(ConfigError, match="Invalid config"):
        load_config(tmp_path, environ={})


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, "pol = true\n")

    with pytest.raises(ConfigError, match="Invalid config"):
        load_config(tmp_path, environ={})


def test_invalid_toml_is_rejected(tmp_path: Path) -> None:
    _write_config(tmp_path, "mode = \n")

    with pytest.raises(ConfigError, match="Invalid TOML"):
        load_config(tmp_path, environ={})

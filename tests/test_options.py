"""Tests for command-line and CI option resolution."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

import drupal_updater
from drupal_updater import (
    ConfigurationError,
    UpdaterOptions,
    normalize_exclusions,
    parse_arguments,
    parse_bool,
    read_exclude_file,
    resolve_options,
)


def test_defaults():
    """No flags and no CI gives the default options."""
    options = resolve_options(parse_arguments([]), {})

    assert options == UpdaterOptions()
    assert options.update_type == "semver-safe-update"
    assert options.update_core is True
    assert options.exclude == frozenset()
    assert options.output_file is None


def test_short_flags():
    args = parse_arguments(["-t", "all", "-c", "false", "-e", "token,pathauto", "-o", "out.md"])

    options = resolve_options(args, {})

    assert options.update_type == "all"
    assert options.update_core is False
    assert options.exclude == {"token", "pathauto"}
    assert options.output_file == Path("out.md")


def test_long_flags():
    args = parse_arguments(
        ["--type", "semver-safe-update", "--core", "TRUE", "--exclude", " token , ", "--output", "r/report.MD"]
    )

    options = resolve_options(args, {})

    assert options.update_core is True
    assert options.exclude == {"token"}
    assert options.output_file == Path("r/report.MD")


@pytest.mark.parametrize(
    "argv, message",
    [
        (["-t", "major"], "Update type"),
        (["-c", "yes"], "Core option"),
        (["-o", "report.txt"], ".md extension"),
    ],
)
def test_invalid_values_raise(argv, message):
    with pytest.raises(ConfigurationError, match=message):
        resolve_options(parse_arguments(argv), {})


def test_ci_inputs_override_flags():
    environ = {
        "GITHUB_ACTIONS": "true",
        "INPUT_UPDATE_TYPE": "all",
        "INPUT_UPDATE_CORE": "false",
        "INPUT_UPDATE_EXCLUDE": "drupal/token,webform",
    }

    options = resolve_options(parse_arguments(["-t", "semver-safe-update"]), environ)

    assert options.update_type == "all"
    assert options.update_core is False
    assert options.exclude == {"token", "webform"}


def test_ci_empty_inputs_fall_back_to_defaults():
    environ = {
        "GITHUB_ACTIONS": "true",
        "INPUT_UPDATE_TYPE": "",
        "INPUT_UPDATE_CORE": "",
        "INPUT_UPDATE_EXCLUDE": "",
    }

    assert resolve_options(parse_arguments([]), environ) == UpdaterOptions()


def test_ci_inputs_ignored_outside_ci():
    environ = {"GITHUB_ACTIONS": "false", "INPUT_UPDATE_TYPE": "all"}

    options = resolve_options(parse_arguments([]), environ)

    assert options.update_type == "semver-safe-update"


def test_ci_invalid_input_raises():
    environ = {"GITHUB_ACTIONS": "true", "INPUT_UPDATE_TYPE": "everything"}

    with pytest.raises(ConfigurationError):
        resolve_options(parse_arguments([]), environ)


def test_parse_bool():
    assert parse_bool("true", "x") is True
    assert parse_bool(" False ", "x") is False
    with pytest.raises(ConfigurationError):
        parse_bool("1", "x")


def test_normalize_exclusions():
    assert normalize_exclusions(["token,,pathauto", "drupal/webform"]) == {
        "token",
        "pathauto",
        "webform",
    }
    assert normalize_exclusions([]) == frozenset()


def test_exclude_file_is_merged(tmp_path):
    exclude_file = tmp_path / "exclude.txt"
    exclude_file.write_text("# pinned modules\nwebform\n\ndrupal/paragraphs\nbad name\n")

    options = resolve_options(
        parse_arguments(["-e", "token", "--exclude-file", str(exclude_file)]), {}
    )

    assert options.exclude == {"token", "webform", "paragraphs"}


def test_missing_exclude_file_raises(tmp_path):
    with pytest.raises(ConfigurationError):
        read_exclude_file(tmp_path / "missing.txt")


class TestMain:
    """Exit codes of the command-line entry point."""

    def test_invalid_type_prints_usage_and_exits_1(self, capsys):
        with patch.dict(os.environ, {"GITHUB_ACTIONS": ""}):
            with pytest.raises(SystemExit) as exc_info:
                drupal_updater.main(["-t", "major"])

        assert exc_info.value.code == 1
        err = capsys.readouterr().err
        assert "usage:" in err
        assert "Update type" in err

    def test_unknown_flag_exits_1(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            drupal_updater.main(["--bogus"])

        assert exc_info.value.code == 1
        assert "usage:" in capsys.readouterr().err

    def test_help_exits_0(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            drupal_updater.main(["-h"])

        assert exc_info.value.code == 0
        assert "--exclude" in capsys.readouterr().out

    def test_missing_manifest_exits_1(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("GITHUB_ACTIONS", "false")
        monkeypatch.setattr(drupal_updater.shutil, "which", lambda name: "/usr/bin/composer")

        with pytest.raises(SystemExit) as exc_info:
            drupal_updater.main(["--no-rich-console"])

        assert exc_info.value.code == 1

    def test_missing_composer_exits_1(self, project_dir, monkeypatch):
        monkeypatch.chdir(project_dir)
        monkeypatch.setenv("GITHUB_ACTIONS", "false")
        monkeypatch.setattr(drupal_updater.shutil, "which", lambda name: None)

        with pytest.raises(SystemExit) as exc_info:
            drupal_updater.main(["--no-rich-console"])

        assert exc_info.value.code == 1

"""Shared fixtures for drupal_updater tests."""

import json
from pathlib import Path

import pytest
from loguru import logger

from drupal_updater import CommandResult, CommandRunner, DrupalUpdater, UpdaterOptions


class FakeRunner(CommandRunner):
    """Records composer invocations and returns scripted results."""

    def __init__(self, outdated=None, results=None, on_run=None):
        self.outdated = outdated or []
        self.results = results or {}
        self.on_run = on_run
        self.calls = []

    def run(self, command, cwd=None):
        self.calls.append(command)
        subcommand = command[1]
        if subcommand == "outdated":
            return CommandResult(json.dumps({"locked": self.outdated}), "", 0)
        target = command[2].split(":", 1)[0]
        if self.on_run:
            self.on_run(command)
        return self.results.get(target, CommandResult("", "", 0))

    @property
    def update_calls(self):
        return [call for call in self.calls if call[1] in ("require", "update")]


def outdated_entry(
    name,
    version="1.0.0",
    latest="1.0.1",
    status="semver-safe-update",
    homepage=None,
    abandoned=False,
):
    entry = {
        "name": name,
        "direct-dependency": True,
        "homepage": homepage or f"https://www.drupal.org/project/{name.split('/')[-1]}",
        "version": version,
        "latest": latest,
        "latest-status": status,
        "description": "",
        "abandoned": abandoned,
    }
    return entry


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """A Drupal project root with a minimal composer.json and composer.lock."""
    manifest = {
        "name": "acme/site",
        "require": {"drupal/core-recommended": "^10.1"},
        "extra": {
            "patches": {
                "drupal/token": {
                    "Fix token replacement": "https://www.drupal.org/files/issues/token-123.patch"
                }
            }
        },
    }
    (tmp_path / "composer.json").write_text(json.dumps(manifest), encoding="utf-8")
    (tmp_path / "composer.lock").write_text(
        json.dumps({"packages": [{"name": "drupal/core", "version": "10.1.0"}]}),
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def make_updater(project_dir):
    """Factory building an updater wired to a FakeRunner."""

    def _make(runner, environ=None, **option_kwargs):
        return DrupalUpdater(
            UpdaterOptions(**option_kwargs),
            runner=runner,
            working_dir=project_dir,
            environ=environ or {},
            rich_console=False,
            configure_logging=False,
        )

    return _make


@pytest.fixture(autouse=True)
def reset_logger():
    """main() installs handlers bound to captured streams; drop them after each test."""
    yield
    logger.remove()

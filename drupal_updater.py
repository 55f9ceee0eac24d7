#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Drupal Composer Updater
============================

This module provides a class `DrupalUpdater` to check for and apply
Composer updates to the `drupal/*` dependencies of a project, and to
render the outcome as a Markdown table suitable for a pull request body
or a GitHub Actions step summary.
"""

import sys

REQUIRED_PYTHON_VERSION = (3, 11)

current_version = sys.version_info

if current_version < REQUIRED_PYTHON_VERSION:
    print(
        f"Error: This script requires Python version {REQUIRED_PYTHON_VERSION[0]}.{REQUIRED_PYTHON_VERSION[1]} or later."
    )
    print(
        f"You are using Python {current_version.major}.{current_version.minor}.{current_version.micro}."
    )
    sys.exit(1)

import argparse
import contextlib
import enum
import json
import os
import shutil
import subprocess
import time

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Final,
    Iterable,
    List,
    Mapping,
    Optional,
    Self,
    Set,
    Tuple,
    Union,
)

try:
    from loguru import logger
    from rich.console import Console
    from rich.theme import Theme
    from rich.logging import RichHandler
    from rich.table import Table
    from rich.progress import (
        Progress,
        SpinnerColumn,
        TextColumn,
        BarColumn,
        TimeElapsedColumn,
    )
except ImportError as e:
    print(
        f"Error: Missing required libraries ({e.name}). Please install them: pip install loguru rich"
    )
    sys.exit(1)

__version__ = "1.0.0"

# --- Constants ---
COMPOSER_BINARY: Final[str] = "composer"
MANIFEST_FILE: Final[str] = "composer.json"
LOCK_FILE: Final[str] = "composer.lock"

PACKAGE_NAMESPACE: Final[str] = "drupal/*"
CORE_PACKAGE: Final[str] = "drupal/core"
CORE_PACKAGE_PREFIX: Final[str] = "drupal/core-"
DEV_VERSION_PREFIX: Final[str] = "dev-"
DEFAULT_PROJECT_URL: Final[str] = "https://www.drupal.org"

UPDATE_TYPE_SEMVER_SAFE: Final[str] = "semver-safe-update"
UPDATE_TYPE_ALL: Final[str] = "all"
UPDATE_TYPES: Final[Tuple[str, ...]] = (UPDATE_TYPE_SEMVER_SAFE, UPDATE_TYPE_ALL)
STATUS_UPDATE_POSSIBLE: Final[str] = "update-possible"

REPORT_EXTENSION: Final[str] = ".md"

# GitHub Actions integration
ENV_CI_INDICATOR: Final[str] = "GITHUB_ACTIONS"
ENV_INPUT_TYPE: Final[str] = "INPUT_UPDATE_TYPE"
ENV_INPUT_CORE: Final[str] = "INPUT_UPDATE_CORE"
ENV_INPUT_EXCLUDE: Final[str] = "INPUT_UPDATE_EXCLUDE"
ENV_STEP_SUMMARY: Final[str] = "GITHUB_STEP_SUMMARY"
ENV_FILE: Final[str] = "GITHUB_ENV"
EXPORT_VARIABLE: Final[str] = "DRUPAL_UPDATES_TABLE"
EXPORT_DELIMITER: Final[str] = "EOF"

TRUE_VALUES: Final[Tuple[str, ...]] = ("true",)
FALSE_VALUES: Final[Tuple[str, ...]] = ("false",)

# --- Custom Exceptions ---


class DrupalUpdaterError(Exception):
    """Base exception for the DrupalUpdater tool."""

    pass


class ConfigurationError(DrupalUpdaterError):
    """Raised when command-line or CI options are invalid."""

    pass


class RequirementsError(DrupalUpdaterError):
    """Raised when a required executable or manifest file is missing."""

    pass


class ComposerCommandError(DrupalUpdaterError):
    """Raised when a composer command cannot run or fails unexpectedly."""

    def __init__(self, command: str, stderr: str, return_code: int):
        self.command = command
        self.stderr = stderr
        self.return_code = return_code
        super().__init__(
            f"Composer command '{command}' failed with code {return_code}:\n{stderr}"
        )


class ComposerOutputError(DrupalUpdaterError):
    """Raised when composer output or composer.json is malformed."""

    pass


# --- Data Structures ---


class OutcomeKind(enum.Enum):
    """Closed set of results for a single dependency."""

    SUCCESS = "success"
    PATCH_FAILURE = "patch failure"
    ERROR = "error"
    DEPENDENCY_ERROR = "dependency error"
    UNKNOWN = "unknown"
    SKIPPED = "skipped"


@dataclass(frozen=True, kw_only=True)
class UpdaterOptions:
    """Validated run configuration."""

    update_type: str = UPDATE_TYPE_SEMVER_SAFE
    update_core: bool = True
    exclude: frozenset[str] = frozenset()
    output_file: Optional[Path] = None


@dataclass(frozen=True, kw_only=True)
class UpdateCandidate:
    """Represents an outdated drupal/* dependency reported by composer."""

    name: str
    version: str
    latest: str
    latest_status: str
    homepage: Optional[str] = None
    abandoned: Union[bool, str, None] = None
    patches: Tuple[str, ...] = ()

    @property
    def short_name(self) -> str:
        """Package name without its vendor, e.g. 'token' for 'drupal/token'."""
        return self.name.split("/", 1)[-1]

    @property
    def is_core(self) -> bool:
        return self.name == CORE_PACKAGE or self.name.startswith(CORE_PACKAGE_PREFIX)

    @property
    def is_dev_target(self) -> bool:
        return self.latest.startswith(DEV_VERSION_PREFIX)

    @property
    def patch_count(self) -> int:
        return len(self.patches)

    @property
    def release_url(self) -> str:
        """
        Link shown for the project in the report.

        Release notes only exist for tagged versions, so development
        snapshots link to the project homepage instead.
        """
        if not self.homepage:
            return DEFAULT_PROJECT_URL
        if self.is_dev_target:
            return self.homepage
        return f"{self.homepage.rstrip('/')}/releases/{self.latest}"


@dataclass(frozen=True)
class UpdateOutcome:
    """Result of processing one candidate."""

    kind: OutcomeKind
    patch: Optional[str] = None
    reason: Optional[str] = None

    @property
    def status(self) -> str:
        """Text shown in the report's status column."""
        if self.kind is OutcomeKind.PATCH_FAILURE and self.patch:
            return self.patch
        return self.kind.value

    @classmethod
    def skipped(cls, reason: str) -> "UpdateOutcome":
        return cls(OutcomeKind.SKIPPED, reason=reason)


@dataclass(frozen=True)
class ReportRow:
    candidate: UpdateCandidate
    outcome: UpdateOutcome


@dataclass(frozen=True)
class CommandResult:
    """Captured result of an external command."""

    stdout: str
    stderr: str
    returncode: int

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as a terminal would show them."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


@dataclass
class UpdateStats:
    """Stores statistics about the update process."""

    outdated_count: int = 0
    attempted_update_count: int = 0
    successful_update_count: int = 0
    failed_update_count: int = 0
    skipped_count: int = 0
    excluded_count: int = 0
    patch_failure_count: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def duration(self) -> Optional[float]:
        """Calculates the duration of the update process in seconds."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    def record(self, outcome: UpdateOutcome) -> None:
        if outcome.kind is OutcomeKind.SKIPPED:
            self.skipped_count += 1
            return
        self.attempted_update_count += 1
        if outcome.kind is OutcomeKind.SUCCESS:
            self.successful_update_count += 1
        else:
            self.failed_update_count += 1
            if outcome.kind is OutcomeKind.PATCH_FAILURE:
                self.patch_failure_count += 1


# --- Time Operations ---
@contextlib.contextmanager
def timed_block(name: Optional[str] = "Updater"):
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.debug(
            f"{name} completed in {format_duration(time.perf_counter() - start)}"
        )


def format_duration(seconds: float) -> str:
    """
    Converts a duration in seconds into a human-readable string using the most appropriate time unit.

    Args:
        seconds (float): The total duration in seconds.

    Returns:
        str: A human-friendly string representation of the duration.
    """
    SECONDS_PER_MINUTE: Final = 60
    SECONDS_PER_HOUR: Final = 3600

    if seconds < SECONDS_PER_MINUTE:
        value = float(seconds)
        unit = "second"
    elif seconds < SECONDS_PER_HOUR:
        value = seconds / SECONDS_PER_MINUTE
        unit = "minute"
    else:
        value = seconds / SECONDS_PER_HOUR
        unit = "hour"

    display_value = int(round(value, 0))
    plural = "s" if display_value != 1 else ""

    return f"{display_value} {unit}{plural}"


# --- Process Execution ---


class CommandRunner:
    """Runs external commands and captures their output."""

    def run(self, command: List[str], cwd: Optional[Path] = None) -> CommandResult:
        command_str = " ".join(command)
        logger.debug(f"Executing command: {command_str}")
        try:
            process = subprocess.run(
                command,
                cwd=cwd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                check=False,
            )
        except FileNotFoundError:
            logger.critical(f"Error: '{command[0]}' command not found.")
            raise ComposerCommandError(
                command=command_str, stderr=f"{command[0]} not found", return_code=-1
            )
        except OSError as e:
            logger.error(
                f"An unexpected error occurred while running command '{command_str}': {e}"
            )
            raise ComposerCommandError(
                command=command_str, stderr=str(e), return_code=-1
            ) from e

        logger.debug(f"Command finished with return code: {process.returncode}")
        stdout = process.stdout.strip() if process.stdout else ""
        stderr = process.stderr.strip() if process.stderr else ""
        if stdout:
            logger.trace(f"Command stdout:\n{stdout}")
        if stderr:
            logger.trace(f"Command stderr:\n{stderr}")
        return CommandResult(stdout=stdout, stderr=stderr, returncode=process.returncode)


class ComposerClient:
    """Thin wrapper around the composer commands the updater needs."""

    COMMON_FLAGS: Final[Tuple[str, ...]] = (
        "--with-all-dependencies",
        "--no-interaction",
        "--ignore-platform-reqs",
    )

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        working_dir: Optional[Path] = None,
        binary: str = COMPOSER_BINARY,
    ) -> None:
        self.runner = runner or CommandRunner()
        self.working_dir = working_dir
        self.binary = binary

    def _run(self, args: Iterable[str]) -> CommandResult:
        return self.runner.run([self.binary, *args], cwd=self.working_dir)

    def outdated(self, namespace: str = PACKAGE_NAMESPACE) -> List[Dict[str, Any]]:
        """
        Lists outdated direct dependencies matching `namespace`.

        Raises:
            ComposerCommandError: If composer exits with a non-zero code.
            ComposerOutputError: If the JSON output cannot be decoded.
        """
        args = [
            "outdated",
            namespace,
            "--format=json",
            "--direct",
            "--locked",
            "--ignore-platform-reqs",
        ]
        result = self._run(args)
        if result.returncode != 0:
            raise ComposerCommandError(
                command=" ".join([self.binary, *args]),
                stderr=result.stderr,
                return_code=result.returncode,
            )
        if not result.stdout:
            return []

        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            logger.debug(f"Raw 'composer outdated' output:\n{result.stdout}")
            raise ComposerOutputError(
                f"Failed to decode JSON output from 'composer outdated': {e}"
            ) from e

        if isinstance(data, list):
            # composer prints [] when nothing is outdated
            return []
        locked = data.get("locked", []) if isinstance(data, dict) else None
        if not isinstance(locked, list):
            raise ComposerOutputError(
                f"Expected a 'locked' list in 'composer outdated' output, got {type(locked)}."
            )
        return locked

    def require(self, name: str, version: str) -> CommandResult:
        return self._run(["require", f"{name}:{version}", *self.COMMON_FLAGS])

    def update(self, name: str) -> CommandResult:
        return self._run(["update", name, *self.COMMON_FLAGS])


# --- Manifest Helpers ---


def read_patches(manifest: Mapping[str, Any], package_name: str) -> Tuple[str, ...]:
    """
    Returns the patches declared for `package_name` under `extra.patches`.

    The lookup is by exact name. A missing or malformed structure yields
    no patches. Mappings of description to location give their locations,
    lists give their string entries or the `url` of object entries.
    """
    extra = manifest.get("extra")
    if not isinstance(extra, dict):
        return ()
    patches = extra.get("patches")
    if not isinstance(patches, dict):
        return ()
    declared = patches.get(package_name)

    if isinstance(declared, dict):
        entries: Iterable[Any] = declared.values()
    elif isinstance(declared, list):
        entries = declared
    else:
        return ()

    found: List[str] = []
    for entry in entries:
        if isinstance(entry, dict):
            entry = entry.get("url")
        if isinstance(entry, str) and entry:
            found.append(entry)
    return tuple(found)


def normalize_exclusions(values: Iterable[str]) -> frozenset[str]:
    """Splits comma-separated values into a set of bare package names."""
    names: Set[str] = set()
    for value in values:
        for item in value.split(","):
            item = item.strip()
            if not item:
                continue
            names.add(item.rsplit("/", 1)[-1])
    return frozenset(names)


# --- Report ---


def _escape_cell(value: str) -> str:
    return value.replace("|", "\\|").replace("\n", " ")


def _format_abandoned(abandoned: Union[bool, str, None]) -> str:
    if abandoned is None:
        return "null"
    if isinstance(abandoned, bool):
        return "true" if abandoned else "false"
    return str(abandoned)


class UpdateReport:
    """Ordered collection of report rows, rendered to Markdown on demand."""

    HEADER: Final[Tuple[str, ...]] = (
        "Project name",
        "Old version",
        "Proposed version",
        "Update status",
        "Patches",
        "Abandoned",
    )

    def __init__(self) -> None:
        self.rows: List[ReportRow] = []

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    def add(self, candidate: UpdateCandidate, outcome: UpdateOutcome) -> None:
        self.rows.append(ReportRow(candidate, outcome))

    def highlights(self) -> List[str]:
        """Lines calling out patch failures and dependency errors."""
        lines: List[str] = []
        for row in self.rows:
            name = row.candidate.name
            if row.outcome.kind is OutcomeKind.PATCH_FAILURE:
                lines.append(f"Patch failure for {name}: {row.outcome.patch}")
            elif row.outcome.kind is OutcomeKind.DEPENDENCY_ERROR:
                lines.append(f"Dependency error for {name}")
        return lines

    def render_table(self) -> str:
        lines = [
            "| " + " | ".join(self.HEADER) + " |",
            "| " + " | ".join("------" for _ in self.HEADER) + " |",
        ]
        for row in self.rows:
            candidate = row.candidate
            cells = (
                f"[{candidate.name}]({candidate.release_url})",
                candidate.version,
                candidate.latest,
                row.outcome.status,
                str(candidate.patch_count),
                _format_abandoned(candidate.abandoned),
            )
            lines.append("| " + " | ".join(_escape_cell(c) for c in cells) + " |")
        return "\n".join(lines)

    def render(self) -> str:
        """Full Markdown report: the table, then highlights if there are any."""
        parts = [self.render_table()]
        highlights = self.highlights()
        if highlights:
            parts.append(
                "### Highlights\n" + "\n".join(f"- {line}" for line in highlights)
            )
        return "\n\n".join(parts) + "\n"


# --- The Main Class ---


class DrupalUpdater:
    """
    Checks for and applies composer updates to drupal/* dependencies,
    recording one report row per outdated dependency.

    Args:
        options (UpdaterOptions): Validated run configuration.
        runner (Optional[CommandRunner]): Process runner, replaceable in tests.
        working_dir (str | Path): Directory holding composer.json and composer.lock.
        environ (Optional[Mapping[str, str]]): Environment used for CI detection and outputs.
        log_level (str): Minimum console logging level.
        log_file_path (Optional[str | Path]): Also log to this file at DEBUG level.
        rich_console (bool): Use Rich for enhanced console output.
        configure_logging (bool): Install the loguru handlers on creation.
    """

    def __init__(
        self: Self,
        options: Optional[UpdaterOptions] = None,
        runner: Optional[CommandRunner] = None,
        working_dir: str | Path = ".",
        environ: Optional[Mapping[str, str]] = None,
        log_level: str = "INFO",
        log_file_path: Optional[str | Path] = None,
        rich_console: bool = True,
        configure_logging: bool = True,
    ) -> None:
        self.options: UpdaterOptions = options or UpdaterOptions()
        self.working_dir: Path = Path(working_dir).resolve()
        self.environ: Mapping[str, str] = os.environ if environ is None else environ
        self.log_level: str = log_level.upper()
        self.log_file_path: Optional[Path] = (
            Path(log_file_path) if log_file_path else None
        )
        self.use_rich_console: bool = rich_console
        self.console = Console(
            stderr=True,
            record=True,
            theme=Theme(
                {
                    "logging.level.info": "bold magenta",
                }
            ),
        )
        self.composer = ComposerClient(runner, working_dir=self.working_dir)
        self._manifest: Dict[str, Any] = {}

        if configure_logging:
            self._setup_logger()

        self.stats: UpdateStats = UpdateStats()
        self.report: UpdateReport = UpdateReport()

        logger.debug(f"Working directory: {self.working_dir}")
        logger.debug(f"Update type: {self.options.update_type}")
        logger.debug(f"Core updates: {self.options.update_core}")
        logger.debug(f"Excluded packages: {sorted(self.options.exclude)}")
        logger.debug(f"Output file: {self.options.output_file or 'Disabled'}")
        logger.debug(f"Running in CI: {self.in_ci}")

    @property
    def in_ci(self) -> bool:
        return is_ci(self.environ)

    def _setup_logger(self: Self) -> None:
        """Configures the Loguru logger."""
        logger.remove()

        file_log_format = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
        stderr_log_format = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"

        if self.use_rich_console:
            logger.add(
                RichHandler(
                    console=self.console,
                    rich_tracebacks=True,
                    markup=True,
                    show_path=True,
                ),
                level=self.log_level,
                format="{message}",
            )
        else:
            logger.add(
                sys.stderr,
                level=self.log_level,
                format=stderr_log_format,
                colorize=True,
            )

        if self.log_file_path:
            try:
                self.log_file_path.parent.mkdir(parents=True, exist_ok=True)
                logger.add(
                    self.log_file_path,
                    level="DEBUG",
                    format=file_log_format,
                    rotation="10 MB",
                    retention="7 days",
                    encoding="utf-8",
                )
                logger.info(f"Logging detailed output to file: {self.log_file_path}")
            except OSError as e:
                print(
                    f"ERROR: Failed to configure file logging to {self.log_file_path}: {e}",
                    file=sys.stderr,
                )
                self.log_file_path = None

        logger.debug("Logger configured successfully.")

    def check_requirements(
        self: Self, which: Optional[Callable[[str], Optional[str]]] = None
    ) -> None:
        """
        Verifies composer is on PATH and the manifest and lock files exist.

        Raises:
            RequirementsError: On the first missing prerequisite.
        """
        which = which or shutil.which
        if which(self.composer.binary) is None:
            raise RequirementsError(
                f"'{self.composer.binary}' executable not found on PATH. Install composer first."
            )
        for file_name in (MANIFEST_FILE, LOCK_FILE):
            if not (self.working_dir / file_name).is_file():
                raise RequirementsError(
                    f"{file_name} not found in {self.working_dir}. Run the updater from the project root."
                )
        logger.debug("All requirements are present.")

    def load_manifest(self: Self) -> Dict[str, Any]:
        """Reads composer.json once; patch lookups use the cached content."""
        manifest_path = self.working_dir / MANIFEST_FILE
        try:
            data = json.loads(manifest_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ComposerOutputError(f"Could not parse {manifest_path}: {e}") from e
        except OSError as e:
            raise RequirementsError(f"Could not read {manifest_path}: {e}") from e
        if not isinstance(data, dict):
            raise ComposerOutputError(
                f"Unexpected format for {manifest_path}: expected a JSON object."
            )
        self._manifest = data
        return data

    def get_candidates(self: Self) -> List[UpdateCandidate]:
        """Retrieves outdated drupal/* dependencies in composer's order."""
        logger.info(f"Checking for outdated '{PACKAGE_NAMESPACE}' packages...")
        with timed_block("Outdated check"):
            entries = self.composer.outdated(PACKAGE_NAMESPACE)

        candidates: List[UpdateCandidate] = []
        for entry in entries:
            try:
                name = entry["name"]
                candidate = UpdateCandidate(
                    name=name,
                    version=str(entry["version"]),
                    latest=str(entry["latest"]),
                    latest_status=str(entry.get("latest-status", "")),
                    homepage=entry.get("homepage") or None,
                    abandoned=entry.get("abandoned"),
                    patches=read_patches(self._manifest, name),
                )
            except (KeyError, TypeError) as ke:
                logger.warning(
                    f"Skipping entry due to missing key {ke} in outdated data: {entry}"
                )
                continue
            candidates.append(candidate)

        self.stats.outdated_count = len(candidates)
        logger.success(f"Found {len(candidates)} outdated packages.")
        return candidates

    def skip_reason(self: Self, candidate: UpdateCandidate) -> Optional[str]:
        """Returns why `candidate` must not be updated, or None to attempt it."""
        if candidate.short_name in self.options.exclude:
            return "explicitly excluded by user"
        if not self.options.update_core and candidate.is_core:
            return "core updates are disabled"
        if (
            self.options.update_type != UPDATE_TYPE_ALL
            and candidate.latest_status != self.options.update_type
        ):
            return f"update type '{candidate.latest_status}' does not match '{self.options.update_type}'"
        return None

    def apply_update(self: Self, candidate: UpdateCandidate) -> CommandResult:
        logger.info(
            f"Update {candidate.name} from {candidate.version} to {candidate.latest}"
        )
        if candidate.latest_status == STATUS_UPDATE_POSSIBLE:
            return self.composer.require(candidate.name, candidate.latest)
        return self.composer.update(candidate.name)

    def _lock_contains(self: Self, text: str) -> bool:
        lock_path = self.working_dir / LOCK_FILE
        try:
            return text in lock_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Could not read {lock_path}: {e}")
            return False

    def classify_result(
        self: Self, candidate: UpdateCandidate, result: CommandResult
    ) -> UpdateOutcome:
        """
        Maps the exit code of a require/update command to an outcome.

        Composer also exits with 1 when a previously applied patch for an
        unrelated package fails to re-apply, so a 1 counts as success when
        the target is a dev snapshot or the new version landed in the lock
        file. A declared patch mentioned in the output wins over both.
        """
        if result.returncode == 0:
            return UpdateOutcome(OutcomeKind.SUCCESS)
        if result.returncode == 2:
            return UpdateOutcome(OutcomeKind.DEPENDENCY_ERROR)
        if result.returncode != 1:
            return UpdateOutcome(OutcomeKind.UNKNOWN)

        if candidate.is_dev_target or self._lock_contains(candidate.latest):
            outcome = UpdateOutcome(OutcomeKind.SUCCESS)
        else:
            outcome = UpdateOutcome(OutcomeKind.ERROR)

        if candidate.patches:
            output = result.output.lower()
            for patch in candidate.patches:
                if patch.lower() in output:
                    logger.warning(
                        f"Patch '{patch}' for '{candidate.name}' failed to apply."
                    )
                    return UpdateOutcome(OutcomeKind.PATCH_FAILURE, patch=patch)
        return outcome

    def process_candidate(self: Self, candidate: UpdateCandidate) -> UpdateOutcome:
        reason = self.skip_reason(candidate)
        if reason:
            if candidate.is_core and not self.options.update_core:
                logger.info(
                    f"Skipping '{candidate.name}': core updates are disabled."
                )
            else:
                logger.debug(f"Skipping update for '{candidate.name}': {reason}.")
            return UpdateOutcome.skipped(reason)

        try:
            result = self.apply_update(candidate)
        except ComposerCommandError as e:
            logger.error(f"Could not run composer for '{candidate.name}': {e}")
            return UpdateOutcome(OutcomeKind.UNKNOWN)

        outcome = self.classify_result(candidate, result)
        if outcome.kind is OutcomeKind.SUCCESS:
            logger.success(f"Updated '{candidate.name}' to {candidate.latest}.")
        else:
            logger.warning(
                f"Update of '{candidate.name}' finished with status '{outcome.status}' (exit code {result.returncode})."
            )
        return outcome

    def run(self: Self) -> UpdateReport:
        """Loads the manifest, processes every outdated package and returns the report."""
        self.stats = UpdateStats(start_time=datetime.now())
        self.report = UpdateReport()
        self.load_manifest()
        candidates = self.get_candidates()

        progress_context: Any = contextlib.nullcontext()
        task_id = None
        if self.use_rich_console and candidates:
            progress = Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
                TimeElapsedColumn(),
                console=self.console,
                transient=False,
            )
            progress_context = progress
            task_id = progress.add_task(
                "[cyan]Processing packages...", total=len(candidates)
            )

        with progress_context as progress:
            for candidate in candidates:
                outcome = self.process_candidate(candidate)
                if candidate.short_name in self.options.exclude:
                    self.stats.excluded_count += 1
                self.stats.record(outcome)
                self.report.add(candidate, outcome)
                if progress:
                    progress.update(task_id, advance=1)

        self.stats.end_time = datetime.now()
        self._log_summary()
        return self.report

    def publish(self: Self, report: UpdateReport) -> str:
        """Writes the rendered report to the CI files, the output file and/or stdout."""
        rendered = report.render()

        if self.in_ci:
            summary_path = self.environ.get(ENV_STEP_SUMMARY)
            if summary_path:
                with open(summary_path, "a", encoding="utf-8") as f:
                    f.write(rendered)
                logger.debug(f"Appended report to step summary {summary_path}")
            env_path = self.environ.get(ENV_FILE)
            if env_path:
                with open(env_path, "a", encoding="utf-8") as f:
                    f.write(f"{EXPORT_VARIABLE}<<{EXPORT_DELIMITER}\n")
                    f.write(rendered)
                    f.write(f"{EXPORT_DELIMITER}\n")
                logger.debug(f"Exported {EXPORT_VARIABLE} to {env_path}")

        if self.options.output_file:
            output_file = self.options.output_file
            output_file.parent.mkdir(parents=True, exist_ok=True)
            output_file.write_text(rendered, encoding="utf-8")
            logger.success(f"Report written to {output_file}")
        elif not self.in_ci:
            sys.stdout.write(rendered)

        return rendered

    def _log_summary(self: Self) -> None:
        """Logs a summary of the run, using a Rich table if enabled."""
        stats = self.stats
        duration = stats.duration
        duration_str = format_duration(duration) if duration is not None else "N/A"
        logger.info("=" * 45)
        logger.info(f"{'Update Summary Report'.center(45)}")
        logger.info("=" * 45)
        logger.info(f"Process duration: {duration_str}")
        logger.info(f"Outdated packages found: {stats.outdated_count}")
        logger.info(f"Packages skipped: {stats.skipped_count}")
        logger.info(f"- Excluded by user: {stats.excluded_count}")
        logger.info(f"Packages attempted to update: {stats.attempted_update_count}")
        logger.info(f"Successfully updated: {stats.successful_update_count}")
        logger.info(f"Failed to update: {stats.failed_update_count}")
        if stats.patch_failure_count:
            logger.info(f"- Patch failures: {stats.patch_failure_count}")

        if not self.use_rich_console or not self.report.rows:
            return

        table = Table(
            title="[bold]Drupal Updates[/]",
            show_header=True,
            header_style="bold blue",
            expand=True,
        )
        table.add_column("Package", style="cyan", no_wrap=True)
        table.add_column("Old Version", style="yellow")
        table.add_column("Proposed Version", style="green")
        table.add_column("Status")
        table.add_column("Patches", justify="right")
        for row in self.report:
            status = row.outcome.status
            if row.outcome.kind is OutcomeKind.SUCCESS:
                status = f"[green]{status}[/]"
            elif row.outcome.kind is OutcomeKind.SKIPPED:
                status = f"[dim]{status}[/]"
            else:
                status = f"[bold red]{status}[/]"
            table.add_row(
                row.candidate.name,
                row.candidate.version,
                row.candidate.latest,
                status,
                str(row.candidate.patch_count),
            )
        self.console.print(table)


# --- Option Resolution ---


def is_ci(environ: Mapping[str, str]) -> bool:
    return environ.get(ENV_CI_INDICATOR, "").strip().lower() == "true"


class UsageArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that prints usage and exits with 1 on invalid input."""

    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> UsageArgumentParser:
    parser = UsageArgumentParser(
        prog="drupal-updater",
        description="Drupal Composer Updater",
        formatter_class=lambda prog: argparse.RawTextHelpFormatter(
            prog, max_help_position=80
        ),
        epilog=f"""
Inside GitHub Actions ({ENV_CI_INDICATOR}=true) the options are read from
{ENV_INPUT_TYPE}, {ENV_INPUT_CORE} and {ENV_INPUT_EXCLUDE}, and the report
is appended to ${ENV_STEP_SUMMARY} and exported as {EXPORT_VARIABLE}.

Example Usage:
  # Apply semver-safe updates, print the report
  drupal-updater

  # Apply all updates except core, token and pathauto, save the report
  drupal-updater -t all -c false -e token,pathauto -o updates.md
""",
    )

    update_group = parser.add_argument_group("Update Options")
    logging_group = parser.add_argument_group("Logging Options")

    update_group.add_argument(
        "-t",
        "--type",
        dest="update_type",
        default=None,
        metavar="{semver-safe-update,all}",
        help=f"Type of updates to apply (default: {UPDATE_TYPE_SEMVER_SAFE}).",
    )
    update_group.add_argument(
        "-c",
        "--core",
        dest="core",
        default=None,
        metavar="{true,false}",
        help="Whether drupal/core packages may be updated (default: true).",
    )
    update_group.add_argument(
        "-e",
        "--exclude",
        default=None,
        metavar="PKG[,PKG...]",
        help="Comma-separated package names to leave untouched, e.g. token,pathauto.",
    )
    update_group.add_argument(
        "--exclude-file",
        type=Path,
        metavar="FILE_PATH",
        help="Path to a text file containing package names to exclude (one per line).",
    )
    update_group.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        metavar="FILE.md",
        help="Write the Markdown report to this file instead of stdout.",
    )

    logging_group.add_argument(
        "--log-level",
        type=str.upper,
        choices=["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Set the minimum console logging level (default: INFO).",
    )
    logging_group.add_argument(
        "--log-file-path",
        type=Path,
        default=None,
        metavar="PATH",
        help="Also write detailed logs to this file.",
    )
    logging_group.add_argument(
        "--no-rich-console",
        action="store_false",
        dest="rich_console",
        help="Disable rich formatting (colors, tables, progress) in console output.",
    )
    return parser


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parses command-line arguments using argparse."""
    return build_parser().parse_args(argv)


def parse_bool(value: str, option: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ConfigurationError(f"{option} must be 'true' or 'false', got '{value}'.")


def resolve_options(
    args: argparse.Namespace, environ: Optional[Mapping[str, str]] = None
) -> UpdaterOptions:
    """
    Builds validated options from parsed flags, overridden by the
    GitHub Actions inputs when running in CI.

    Raises:
        ConfigurationError: If any value is invalid.
    """
    environ = os.environ if environ is None else environ
    update_type = args.update_type
    core = args.core
    exclude = args.exclude

    if is_ci(environ):
        update_type = environ.get(ENV_INPUT_TYPE) or update_type
        core = environ.get(ENV_INPUT_CORE) or core
        exclude = environ.get(ENV_INPUT_EXCLUDE) or exclude

    update_type = (update_type or UPDATE_TYPE_SEMVER_SAFE).strip()
    if update_type not in UPDATE_TYPES:
        raise ConfigurationError(
            f"Update type must be one of {', '.join(UPDATE_TYPES)}, got '{update_type}'."
        )

    update_core = parse_bool(core, "Core option") if core else True

    output_file: Optional[Path] = args.output
    if output_file is not None and output_file.suffix.lower() != REPORT_EXTENSION:
        raise ConfigurationError(
            f"Output file must have a {REPORT_EXTENSION} extension, got '{output_file}'."
        )

    exclusions = [exclude] if exclude else []
    if getattr(args, "exclude_file", None):
        exclusions.extend(read_exclude_file(args.exclude_file))

    return UpdaterOptions(
        update_type=update_type,
        update_core=update_core,
        exclude=normalize_exclusions(exclusions),
        output_file=output_file,
    )


def read_exclude_file(file_path: Path) -> List[str]:
    """
    Reads package names from a file, one per line.

    Raises:
        ConfigurationError: If the file cannot be read.
    """
    packages: List[str] = []
    try:
        with file_path.open("r", encoding="utf-8", errors="replace") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if " " in line or "\t" in line:
                    print(
                        f"Warning: Possible invalid package name '{line}' (contains whitespace) in {file_path} at line {line_num}. Skipping.",
                        file=sys.stderr,
                    )
                    continue
                packages.append(line)
    except OSError as e:
        raise ConfigurationError(
            f"Could not read exclude file '{file_path}': {e}"
        ) from e
    return packages


# --- Main Execution Block ---


def main(argv: Optional[List[str]] = None) -> None:
    """Main function to parse arguments and run the updater."""
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        options = resolve_options(args, os.environ)
    except ConfigurationError as e:
        parser.error(str(e))

    updater = DrupalUpdater(
        options,
        log_level=args.log_level,
        log_file_path=args.log_file_path,
        rich_console=args.rich_console,
    )

    exit_code = 0
    try:
        updater.check_requirements()
        report = updater.run()
        updater.publish(report)
    except RequirementsError as e:
        logger.critical(f"Missing requirement: {e}")
        exit_code = 1
    except DrupalUpdaterError as e:
        logger.critical(f"A critical error occurred: {e}")
        exit_code = 1
    except OSError as e:
        logger.critical(f"Could not write the report: {e}")
        exit_code = 1
    except KeyboardInterrupt:
        logger.warning("\nProcess interrupted by user (Ctrl+C).")
        exit_code = 130
    finally:
        logger.debug(f"DrupalUpdater finished with exit code {exit_code}.")
    sys.exit(exit_code)


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
gitpulse - Repository Contribution Statistics

Computes per-day commit counts, lines added/removed and per-contributor
breakdowns for a git repository by running git and parsing its output.

Pipeline:
- Contributor discovery (git shortlog on the default remote branch)
- Repository-wide commit series (one bucket per calendar day)
- Per-contributor fan-out on a thread pool, one task per contributor
- Progress events streamed to a sink as each stage completes
- JSON report export and a click command line
"""

import json
import os
import re
import subprocess
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import click
import yaml
from colorama import Fore, Style, init as colorama_init
from tqdm import tqdm


VERSION = "1.0.0"
SCHEMA_VERSION = "1.0.0"

DATE_FORMAT = "%Y-%m-%d"
DATE_LENGTH = 10


class StatsEvent(str, Enum):
    """Progress notifications emitted during a run, in emission order."""

    CONTRIBUTORS = "Contributors"
    COMMITS = "Commits"
    CONTRIBUTOR_STATS = "ContributorStats"
    ALL_STATS = "AllStats"


# ============================================================================
# ERRORS
# ============================================================================


class GitPulseError(Exception):
    """Base class for all gitpulse failures."""


class GitCommandError(GitPulseError):
    """A git invocation exited non-zero or could not be started."""

    def __init__(
        self,
        command: Sequence[str],
        returncode: Optional[int],
        output: str = "",
        message: Optional[str] = None,
    ):
        self.command = list(command)
        self.returncode = returncode
        self.output = output
        if message is None:
            message = f"git {' '.join(self.command)} failed"
            if returncode is not None:
                message += f" (exit status {returncode})"
            if output:
                message += f": {output.strip()[:200]}"
        super().__init__(message)


class GitNoOutputError(GitCommandError):
    """A git invocation succeeded but produced no output at all."""

    def __init__(self, command: Sequence[str]):
        super().__init__(
            command, 0, message=f"no output from git {' '.join(command)}"
        )


class RepositoryNotFoundError(GitPulseError):
    """The repository path is missing or not accessible."""


class AnalysisError(GitPulseError):
    """A terminal stage of the run failed; nothing was fanned out."""

    def __init__(self, stage: str, cause: Exception):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage} stage failed: {cause}")


class ContributorStatsError(GitPulseError):
    """Stats for a single contributor could not be computed."""

    def __init__(self, contributor: str, cause: Exception):
        self.contributor = contributor
        self.cause = cause
        super().__init__(f"stats for {contributor!r} failed: {cause}")


# ============================================================================
# CONFIGURATION FILE SUPPORT
# ============================================================================

CONFIG_FILE_NAMES = [
    ".gitpulse.yaml",
    ".gitpulse.yml",
    ".gitpulse.json",
]


def load_config_file(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from a YAML or JSON file.
    An empty YAML document loads as an empty mapping.
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    file_ext = os.path.splitext(config_path)[1].lower()

    with open(config_path, "r", encoding="utf-8") as f:
        if file_ext in [".yaml", ".yml"]:
            return yaml.safe_load(f) or {}
        elif file_ext == ".json":
            return json.load(f)
        else:
            raise ValueError(f"Unsupported config file format: {file_ext}")


def find_config_file(repo_path: str) -> Optional[str]:
    """
    Auto-discover a configuration file in the repository or current directory.
    Searches for: .gitpulse.yaml, .gitpulse.yml, .gitpulse.json
    """
    search_paths = [
        repo_path,
        os.getcwd(),
    ]

    for search_dir in search_paths:
        for config_name in CONFIG_FILE_NAMES:
            config_path = os.path.join(search_dir, config_name)
            if os.path.exists(config_path):
                return config_path

    return None


class ConfigResolver:
    """
    Resolve configuration with precedence: CLI > Config File > Preset > Defaults
    """

    PRESETS = {
        "standard": {"max_workers": None},
        "conservative": {"max_workers": 4},
        "serial": {"max_workers": 1},
    }

    def __init__(
        self,
        cli_args: Dict[str, Any],
        config_path: Optional[str],
        preset_name: Optional[str],
        repo_path: str,
        reporter: Optional["ProgressReporter"] = None,
    ):
        self.cli = {k: v for k, v in cli_args.items() if v is not None}
        self.config = {}
        self.preset = {}
        self.config_path = config_path

        if config_path:
            self.config = load_config_file(config_path)
        else:
            auto_path = find_config_file(repo_path)
            if auto_path:
                try:
                    self.config = load_config_file(auto_path)
                    self.config_path = auto_path
                    if reporter:
                        reporter.info(f"Auto-discovered configuration: {auto_path}")
                except (OSError, ValueError, yaml.YAMLError) as e:
                    if reporter:
                        reporter.warning(
                            f"Found config file but failed to load: {e}"
                        )

        # kebab-case keys from config files map onto snake_case option names
        self.config = {k.replace("-", "_"): v for k, v in self.config.items()}

        final_preset_name = preset_name or self.config.get("preset")
        self.preset = self._get_preset(final_preset_name)

    def _get_preset(self, name: Optional[str]) -> Dict[str, Any]:
        """Return configuration dictionary for a named preset"""
        if not name:
            return {}
        return dict(self.PRESETS.get(name, {}))

    def get(self, key: str, default: Any = None) -> Any:
        """Resolve value based on precedence"""
        if key in self.cli:
            return self.cli[key]
        if key in self.config:
            return self.config[key]
        if key in self.preset:
            return self.preset[key]
        return default


# ============================================================================
# PROGRESS REPORTING
# ============================================================================


class ProgressReporter:
    """
    Terminal progress reporting.
    - Color-coded output (colorama)
    - Progress bars with ETA (tqdm)
    - Stage timing
    """

    def __init__(
        self, quiet: bool = False, verbose: bool = False, use_colors: bool = True
    ):
        self.quiet = quiet
        self.verbose = verbose
        self.use_colors = use_colors
        self.start_time = time.time()
        self.stage_times = {}

    def _colorize(self, text: str, color: str) -> str:
        """Apply color if enabled"""
        if self.use_colors:
            return f"{color}{text}{Style.RESET_ALL}"
        return text

    def stage_start(self, stage_name: str, message: str = ""):
        """Mark the start of a processing stage"""
        self.stage_times[stage_name] = time.time()
        if self.quiet:
            return

        separator = self._colorize("=" * 70, Fore.CYAN)
        stage_text = self._colorize(f"🔄 {stage_name}", Fore.BLUE + Style.BRIGHT)

        print(f"\n{separator}")
        print(stage_text)
        if message:
            print(f"   {message}")
        print(separator)

    def stage_complete(self, stage_name: str, stats: Optional[Dict] = None) -> float:
        """Mark completion of a processing stage and return its duration"""
        elapsed = time.time() - self.stage_times.get(stage_name, time.time())
        if self.quiet:
            return elapsed

        complete_text = self._colorize(
            f"✅ {stage_name} complete ({elapsed:.2f}s)", Fore.GREEN + Style.BRIGHT
        )
        print(complete_text)

        if stats and self.verbose:
            for key, value in stats.items():
                print(f"   {key}: {value}")
        return elapsed

    def create_progress_bar(
        self, total: int, desc: str = "Processing", unit: str = " contributors"
    ) -> Optional[tqdm]:
        """Create a progress bar with ETA"""
        if self.quiet:
            return None

        return tqdm(
            total=total,
            desc=self._colorize(desc, Fore.CYAN),
            unit=unit,
            ncols=100,
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]",
        )

    def debug(self, message: str):
        """Display a message only in verbose mode"""
        if self.verbose and not self.quiet:
            print(self._colorize(f"   {message}", Style.DIM))

    def info(self, message: str):
        """Display informational message"""
        if not self.quiet:
            info_text = self._colorize("ℹ️  ", Fore.BLUE)
            print(f"{info_text}{message}")

    def warning(self, message: str):
        """Display warning message"""
        if not self.quiet:
            warning_text = self._colorize("⚠️  ", Fore.YELLOW + Style.BRIGHT)
            print(f"{warning_text}{message}")

    def error(self, message: str):
        """Display error message (always shown)"""
        error_text = self._colorize(f"❌ ERROR: {message}", Fore.RED + Style.BRIGHT)
        print(error_text, file=sys.stderr)

    def success(self, message: str):
        """Display success message"""
        if not self.quiet:
            success_text = self._colorize(f"✨ {message}", Fore.GREEN + Style.BRIGHT)
            print(success_text)

    def summary(self, stats: Dict[str, Any]):
        """Display final summary"""
        if self.quiet:
            return
        elapsed = time.time() - self.start_time

        separator = self._colorize("=" * 70, Fore.CYAN)
        header = self._colorize("📊 CONTRIBUTION SUMMARY", Fore.MAGENTA + Style.BRIGHT)

        print(f"\n{separator}")
        print(header)
        print(separator)
        for key, value in stats.items():
            print(f"   {key}: {value}")

        time_text = self._colorize(f"⏱️  Total time: {elapsed:.2f}s", Fore.YELLOW)
        print(f"\n{time_text}")
        print(f"{separator}\n")


# ============================================================================
# DATA STRUCTURES & MODELS
# ============================================================================


def parse_day(value: str) -> Optional[datetime]:
    """Parse a YYYY-MM-DD string, returning None when it is not a real date."""
    if len(value) != DATE_LENGTH:
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT)
    except ValueError:
        return None


@dataclass(frozen=True)
class DayBucket:
    """One calendar day of activity."""

    date: str
    count: int = 0
    lines_added: int = 0
    lines_removed: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "count": self.count,
            "lines_added": self.lines_added,
            "lines_removed": self.lines_removed,
        }


def sort_buckets(buckets) -> Tuple[DayBucket, ...]:
    """Chronological order by parsed calendar date."""
    return tuple(sorted(buckets, key=lambda b: parse_day(b.date)))


@dataclass(frozen=True)
class ContributorRecord:
    """Commit and line totals for one contributor plus the per-day series."""

    name: str
    commit_count: int
    lines_added: int
    lines_removed: int
    commits_per_day: Tuple[DayBucket, ...] = ()

    @classmethod
    def from_buckets(cls, name: str, buckets) -> "ContributorRecord":
        """Build a record whose totals are the sums of its buckets"""
        ordered = sort_buckets(buckets)
        return cls(
            name=name,
            commit_count=sum(b.count for b in ordered),
            lines_added=sum(b.lines_added for b in ordered),
            lines_removed=sum(b.lines_removed for b in ordered),
            commits_per_day=ordered,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "commit_count": self.commit_count,
            "lines_added": self.lines_added,
            "lines_removed": self.lines_removed,
            "commits_per_day": [b.to_dict() for b in self.commits_per_day],
        }


@dataclass(frozen=True)
class RepositoryCommitSeries:
    """Repository-wide commits per day. Lines are not tracked here."""

    commits_per_day: Tuple[DayBucket, ...] = ()
    total: int = 0

    @classmethod
    def from_counts(cls, counts: Dict[str, int]) -> "RepositoryCommitSeries":
        buckets = sort_buckets(DayBucket(date=d, count=c) for d, c in counts.items())
        return cls(commits_per_day=buckets, total=sum(b.count for b in buckets))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commits_per_day": [
                {"date": b.date, "count": b.count} for b in self.commits_per_day
            ],
            "total": self.total,
        }


@dataclass(frozen=True)
class ContributorFailure:
    """A contributor whose stats could not be computed, and why."""

    name: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "reason": self.reason}


@dataclass(frozen=True)
class AggregateReport:
    """
    Result of one run. Contributors are in completion order, which is not
    stable between runs.
    """

    commits: RepositoryCommitSeries
    contributors: Tuple[ContributorRecord, ...] = ()
    failures: Tuple[ContributorFailure, ...] = ()

    def contributor(self, name: str) -> Optional[ContributorRecord]:
        for record in self.contributors:
            if record.name == name:
                return record
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema_version": SCHEMA_VERSION,
            "commits": self.commits.to_dict(),
            "contributors": [c.to_dict() for c in self.contributors],
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass
class RunMetrics:
    """Bookkeeping for a single run"""

    contributors_discovered: int = 0
    contributors_succeeded: int = 0
    contributors_failed: int = 0
    max_workers: int = 0
    stage_times: Dict[str, float] = field(default_factory=dict)
    total_time: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "contributors_discovered": self.contributors_discovered,
            "contributors_succeeded": self.contributors_succeeded,
            "contributors_failed": self.contributors_failed,
            "max_workers": self.max_workers,
            "stage_times": {k: round(v, 3) for k, v in self.stage_times.items()},
            "total_time_seconds": round(self.total_time, 2),
        }


# ============================================================================
# GIT COMMAND RUNNER
# ============================================================================

# Characters special to POSIX extended regular expressions
_ERE_SPECIAL = re.compile(r"([\\.^$|?*+()\[\]{}])")


def author_pattern(contributor: str) -> str:
    """
    Extended regex that matches exactly one author name.
    git matches --author against "Name <email>", so anchor on both sides.
    """
    return "^" + _ERE_SPECIAL.sub(r"\\\1", contributor) + " <"


class GitCommandRunner:
    """
    Runs git against a repository and returns its raw output.

    stderr is merged into stdout, the pager is disabled and stdin is closed.
    Non-zero exit raises GitCommandError, empty output raises GitNoOutputError.
    """

    def __init__(
        self, git_binary: str = "git", reporter: Optional[ProgressReporter] = None
    ):
        self.git_binary = git_binary
        self.reporter = reporter or ProgressReporter(quiet=True)

    def run(self, repo_path: str, args: Sequence[str]) -> bytes:
        cmd = [self.git_binary, "-C", repo_path] + list(args)
        env = dict(os.environ, GIT_PAGER="cat")

        start = time.time()
        try:
            result = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=env,
            )
        except OSError as e:
            raise GitCommandError(args, None, str(e)) from e

        self.reporter.debug(f"[{time.time() - start:.3f}s] >> git {' '.join(args)}")

        if result.returncode != 0:
            raise GitCommandError(
                args,
                result.returncode,
                result.stdout.decode("utf-8", errors="replace"),
            )
        if not result.stdout:
            raise GitNoOutputError(args)
        return result.stdout


def default_branch_args() -> List[str]:
    return ["symbolic-ref", "--short", "refs/remotes/origin/HEAD"]


def shortlog_args(branch: str) -> List[str]:
    return ["shortlog", branch, "-sn"]


def commit_dates_args(branch: str) -> List[str]:
    return ["log", branch, "--date=short", "--pretty=format:%ad"]


def _author_filter(branch: Optional[str], contributor: str) -> List[str]:
    args = ["log"]
    if branch:
        args.append(branch)
    return args + ["--extended-regexp", f"--author={author_pattern(contributor)}"]


def contributor_commits_args(contributor: str, branch: Optional[str] = None) -> List[str]:
    return _author_filter(branch, contributor) + [
        "--date=short",
        "--pretty=format:%H %ad",
    ]


def contributor_numstat_args(contributor: str, branch: Optional[str] = None) -> List[str]:
    return _author_filter(branch, contributor) + [
        "--date=short",
        "--pretty=format:%ad",
        "--numstat",
    ]


# ============================================================================
# OUTPUT PARSERS
# ============================================================================


def _decode(raw) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8", errors="replace")
    return raw or ""


def parse_contributor_list(raw) -> List[str]:
    """
    Parse `git shortlog -sn` output into contributor names.

    The "<count>\\t" prefix is removed when present. Order is preserved, so
    callers see the most active contributors first; repeated names keep
    their first position.
    """
    contributors = []
    seen = set()
    for line in _decode(raw).splitlines():
        if "\t" in line:
            line = line[line.index("\t") + 1 :]
        name = line.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        contributors.append(name)
    return contributors


def parse_commit_dates(raw) -> Dict[str, int]:
    """Count commits per date, one date per line. Invalid lines are skipped."""
    counts = {}
    for line in _decode(raw).splitlines():
        date = line.strip()
        if parse_day(date) is None:
            continue
        counts[date] = counts.get(date, 0) + 1
    return counts


def _parse_count(value: str) -> int:
    """numstat reports "-" for binary files"""
    try:
        return max(int(value), 0)
    except ValueError:
        return 0


def _parse_numstat_line(line: str) -> Optional[Tuple[int, int]]:
    """
    Parse "<added> <removed> <path>" (tab or space separated).
    Returns None when the line does not carry two count fields.
    """
    fields = line.split(None, 2)
    if len(fields) < 2:
        return None
    return _parse_count(fields[0]), _parse_count(fields[1])


def parse_contributor_commits_and_lines(
    commit_log_raw, numstat_raw, contributor: str = ""
) -> Tuple[int, int, int, List[DayBucket]]:
    """
    Merge a contributor's "<hash> <date>" log and date/numstat log into
    day buckets.

    Only dates seen in the commit log produce buckets; numstat deltas on any
    other date are dropped. A numstat block opens on a line holding a valid
    date and closes on a blank line, except that a blank line right after the
    date (git's tformat separator) is tolerated.

    Returns (commit_count, lines_added, lines_removed, buckets), with totals
    summed from the chronologically sorted buckets.
    """
    days = {}
    for line in _decode(commit_log_raw).splitlines():
        parts = line.split()
        if len(parts) < 2 or parse_day(parts[1]) is None:
            continue
        day = days.setdefault(parts[1], {"count": 0, "added": 0, "removed": 0})
        day["count"] += 1

    current_date = None
    block_has_lines = False
    for line in _decode(numstat_raw).splitlines():
        stripped = line.strip()
        if not stripped:
            if block_has_lines:
                current_date = None
            continue
        if parse_day(stripped) is not None:
            current_date = stripped
            block_has_lines = False
            continue
        if current_date is None:
            continue

        delta = _parse_numstat_line(stripped)
        if delta is None:
            continue
        block_has_lines = True
        day = days.get(current_date)
        if day is not None:
            day["added"] += delta[0]
            day["removed"] += delta[1]

    record = ContributorRecord.from_buckets(
        contributor,
        (
            DayBucket(
                date=date,
                count=day["count"],
                lines_added=day["added"],
                lines_removed=day["removed"],
            )
            for date, day in days.items()
        ),
    )
    return (
        record.commit_count,
        record.lines_added,
        record.lines_removed,
        list(record.commits_per_day),
    )


# ============================================================================
# PROGRESS SINKS
# ============================================================================


class ProgressSink:
    """
    Receives named progress notifications. The base class ignores them;
    override notify() in subclasses.
    """

    def notify(self, event: StatsEvent, payload: Any):
        pass


class CallbackSink(ProgressSink):
    """Forward every notification to a plain callable."""

    def __init__(self, callback: Callable[[StatsEvent, Any], None]):
        self.callback = callback

    def notify(self, event: StatsEvent, payload: Any):
        self.callback(event, payload)


class ReporterSink(ProgressSink):
    """Render notifications on the terminal through a ProgressReporter."""

    def __init__(self, reporter: ProgressReporter):
        self.reporter = reporter
        self.progress_bar = None

    def notify(self, event: StatsEvent, payload: Any):
        if event == StatsEvent.CONTRIBUTORS:
            self.reporter.info(f"Discovered {len(payload):,} contributors")
            self.progress_bar = self.reporter.create_progress_bar(
                total=len(payload), desc="Contributor stats"
            )
        elif event == StatsEvent.COMMITS:
            self.reporter.info(
                f"{payload.total:,} commits over {len(payload.commits_per_day):,} days"
            )
        elif event == StatsEvent.CONTRIBUTOR_STATS:
            if self.progress_bar is not None:
                self.progress_bar.update(1)
            else:
                self.reporter.debug(
                    f"{payload.name}: {payload.commit_count:,} commits, "
                    f"+{payload.lines_added:,}/-{payload.lines_removed:,}"
                )
        elif event == StatsEvent.ALL_STATS:
            if self.progress_bar is not None:
                self.progress_bar.close()
                self.progress_bar = None


# ============================================================================
# PER-CONTRIBUTOR WORKER
# ============================================================================


def compute_contributor_stats(
    runner, repo_path: str, contributor: str, branch: Optional[str] = None
) -> ContributorRecord:
    """
    Run both per-author queries and merge them into a ContributorRecord.
    Any git failure is raised as ContributorStatsError.
    """
    try:
        commit_log = runner.run(repo_path, contributor_commits_args(contributor, branch))
        numstat = runner.run(repo_path, contributor_numstat_args(contributor, branch))
    except GitCommandError as e:
        raise ContributorStatsError(contributor, e) from e

    commit_count, lines_added, lines_removed, buckets = parse_contributor_commits_and_lines(
        commit_log, numstat, contributor
    )
    return ContributorRecord(
        name=contributor,
        commit_count=commit_count,
        lines_added=lines_added,
        lines_removed=lines_removed,
        commits_per_day=tuple(buckets),
    )


# ============================================================================
# AGGREGATION COORDINATOR
# ============================================================================


class RepositoryStatsAnalyzer:
    """
    Computes an AggregateReport for one repository.

    Discovery and the global commit series run on the caller's thread and
    are fatal on failure. Contributors are then fanned out on a thread pool;
    the calling thread collects results as they complete, so records and
    ContributorStats events arrive in completion order.
    """

    def __init__(
        self,
        repo_path: str,
        runner=None,
        sink: Optional[ProgressSink] = None,
        reporter: Optional[ProgressReporter] = None,
        max_workers: Optional[int] = None,
        branch: Optional[str] = None,
    ):
        if max_workers is not None and max_workers < 1:
            raise ValueError(f"max_workers must be at least 1, got {max_workers}")

        self.repo_path = os.path.abspath(repo_path)
        self.reporter = reporter or ProgressReporter(quiet=True)
        self.runner = runner or GitCommandRunner(reporter=self.reporter)
        self.sink = sink or ProgressSink()
        self.max_workers = max_workers
        self.branch = branch
        self.metrics = RunMetrics()

    def _validate(self):
        if not os.path.exists(self.repo_path):
            raise RepositoryNotFoundError(
                f"Repository path does not exist: {self.repo_path}"
            )
        if not os.path.isdir(self.repo_path):
            raise RepositoryNotFoundError(
                f"Repository path is not a directory: {self.repo_path}"
            )
        if not os.access(self.repo_path, os.R_OK | os.X_OK):
            raise RepositoryNotFoundError(
                f"Repository path is not accessible: {self.repo_path}"
            )

    def _resolve_branch(self) -> str:
        if self.branch:
            return self.branch
        out = self.runner.run(self.repo_path, default_branch_args())
        return _decode(out).strip()

    def discover_contributors(self) -> List[str]:
        """Resolve the default branch and list contributors, most commits first"""
        self.reporter.stage_start("Discovery", f"Listing contributors in {self.repo_path}")
        try:
            self.branch = self._resolve_branch()
            out = self.runner.run(self.repo_path, shortlog_args(self.branch))
        except GitCommandError as e:
            raise AnalysisError("discover", e) from e

        contributors = parse_contributor_list(out)
        self.metrics.contributors_discovered = len(contributors)
        self.metrics.stage_times["discover"] = self.reporter.stage_complete(
            "Discovery",
            {"Branch": self.branch, "Contributors": f"{len(contributors):,}"},
        )
        return contributors

    def commit_series(self) -> RepositoryCommitSeries:
        """Commits per day across the branch history"""
        self.reporter.stage_start("Commit Series", "Counting commits per day...")
        try:
            out = self.runner.run(self.repo_path, commit_dates_args(self.branch))
        except GitCommandError as e:
            raise AnalysisError("commits", e) from e

        series = RepositoryCommitSeries.from_counts(parse_commit_dates(out))
        self.metrics.stage_times["commits"] = self.reporter.stage_complete(
            "Commit Series",
            {"Commits": f"{series.total:,}", "Days": f"{len(series.commits_per_day):,}"},
        )
        return series

    def collect_contributor_stats(
        self, contributors: List[str]
    ) -> Tuple[List[ContributorRecord], List[ContributorFailure]]:
        """
        Fan out one task per contributor and gather results in completion
        order. Failed contributors are reported and skipped.
        """
        records = []
        failures = []
        if not contributors:
            return records, failures

        workers = min(self.max_workers or len(contributors), len(contributors))
        self.metrics.max_workers = workers
        self.reporter.stage_start(
            "Contributor Stats",
            f"Computing stats for {len(contributors):,} contributors ({workers} workers)...",
        )

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(
                    compute_contributor_stats,
                    self.runner,
                    self.repo_path,
                    contributor,
                    self.branch,
                ): contributor
                for contributor in contributors
            }

            for future in as_completed(futures):
                contributor = futures[future]
                try:
                    record = future.result()
                except ContributorStatsError as e:
                    self.reporter.warning(
                        f"Error getting stats for {contributor}: {e.cause}"
                    )
                    failures.append(ContributorFailure(contributor, str(e.cause)))
                    continue

                records.append(record)
                self.sink.notify(StatsEvent.CONTRIBUTOR_STATS, record)

        self.metrics.contributors_succeeded = len(records)
        self.metrics.contributors_failed = len(failures)
        self.metrics.stage_times["contributors"] = self.reporter.stage_complete(
            "Contributor Stats",
            {"Succeeded": len(records), "Failed": len(failures)},
        )
        return records, failures

    def run(self) -> AggregateReport:
        """Run every stage and return the report"""
        start_time = time.time()
        self._validate()

        contributors = self.discover_contributors()
        self.sink.notify(StatsEvent.CONTRIBUTORS, list(contributors))

        series = self.commit_series()
        self.sink.notify(StatsEvent.COMMITS, series)

        records, failures = self.collect_contributor_stats(contributors)

        report = AggregateReport(
            commits=series,
            contributors=tuple(records),
            failures=tuple(failures),
        )
        self.metrics.total_time = time.time() - start_time
        self.sink.notify(StatsEvent.ALL_STATS, report)
        return report


def get_stats(repo_path: str, **kwargs) -> AggregateReport:
    """Compute contribution stats for a repository. See RepositoryStatsAnalyzer."""
    return RepositoryStatsAnalyzer(repo_path, **kwargs).run()


# ============================================================================
# REPORT EXPORT
# ============================================================================


def export_report(
    report: AggregateReport,
    output_path: str,
    metrics: Optional[RunMetrics] = None,
    repo_path: Optional[str] = None,
) -> int:
    """Write the report as JSON and return the number of bytes written"""
    data = {
        "schema_version": SCHEMA_VERSION,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "generator": f"gitpulse {VERSION}",
        "repository": repo_path,
    }
    data.update(report.to_dict())
    if metrics is not None:
        data["metrics"] = metrics.to_dict()

    parent = os.path.dirname(output_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    text = json.dumps(data, indent=2, ensure_ascii=False)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(text)
    return len(text.encode("utf-8"))


def top_contributors(report: AggregateReport, limit: int = 5) -> List[ContributorRecord]:
    """Most commits first, ties broken by name"""
    return sorted(report.contributors, key=lambda c: (-c.commit_count, c.name))[:limit]


# ============================================================================
# CLI INTERFACE
# ============================================================================


@click.command(context_settings=dict(help_option_names=["-h", "--help"]))
@click.argument(
    "repo_path",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    required=False,
)
@click.option(
    "-o",
    "--output",
    type=click.Path(dir_okay=False),
    help="Report file (default: gitpulse_report_TIMESTAMP.json)",
)
@click.option(
    "--config",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path (.yaml or .json)",
)
@click.option(
    "--preset",
    type=click.Choice(sorted(ConfigResolver.PRESETS)),
    help="Use predefined worker configuration",
)
@click.option("--branch", help="Branch to analyze (default: origin/HEAD)")
@click.option(
    "--max-workers",
    type=click.IntRange(min=1),
    help="Maximum concurrent contributor queries (default: one per contributor)",
)
@click.option("--git-binary", help="git executable to run")
@click.option(
    "-q", "--quiet", is_flag=True, default=None, help="Suppress progress output"
)
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    default=None,
    help="Show git commands and stage details",
)
@click.option("--no-color", is_flag=True, default=None, help="Disable colored output")
@click.option(
    "--dry-run",
    is_flag=True,
    help="Show the resolved configuration without running git",
)
@click.version_option(version=VERSION)
def main(repo_path, config, preset, dry_run, **kwargs):
    """
    Compute commit and line-change statistics per contributor and per day
    for the git repository at REPO_PATH.
    """
    if not repo_path:
        ctx = click.get_current_context()
        click.echo(ctx.get_help())
        ctx.exit(2)

    quiet_cli = bool(kwargs.get("quiet"))
    bootstrap = ProgressReporter(quiet=quiet_cli, use_colors=not kwargs.get("no_color"))
    try:
        resolver = ConfigResolver(kwargs, config, preset, repo_path, reporter=bootstrap)
    except (OSError, ValueError, yaml.YAMLError) as e:
        bootstrap.error(f"Failed to load configuration: {e}")
        sys.exit(1)

    quiet = resolver.get("quiet", False)
    verbose = resolver.get("verbose", False)
    use_colors = not resolver.get("no_color", False)
    if use_colors:
        colorama_init()
    reporter = ProgressReporter(quiet=quiet, verbose=verbose, use_colors=use_colors)

    branch = resolver.get("branch")
    max_workers = resolver.get("max_workers")
    git_binary = resolver.get("git_binary", "git")
    output = resolver.get("output")
    if not output:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        output = f"gitpulse_report_{timestamp}.json"

    if dry_run:
        reporter.info("DRY RUN MODE - git will not be run")
        reporter.info(f"Repository: {repo_path}")
        reporter.info(f"Branch: {branch or 'origin/HEAD'}")
        reporter.info(f"Max workers: {max_workers or 'one per contributor'}")
        reporter.info(f"git binary: {git_binary}")
        reporter.info(f"Report: {output}")
        if resolver.config_path:
            reporter.info(f"Configuration: {resolver.config_path}")
        return

    try:
        analyzer = RepositoryStatsAnalyzer(
            repo_path,
            runner=GitCommandRunner(git_binary=git_binary, reporter=reporter),
            sink=ReporterSink(reporter),
            reporter=reporter,
            max_workers=max_workers,
            branch=branch,
        )
        report = analyzer.run()
        export_report(report, output, metrics=analyzer.metrics, repo_path=repo_path)

        summary_stats = {
            "Repository": repo_path,
            "Branch": analyzer.branch,
            "Total commits": f"{report.commits.total:,}",
            "Active days": f"{len(report.commits.commits_per_day):,}",
            "Contributors": f"{len(report.contributors):,}",
        }
        if report.failures:
            summary_stats["Failed contributors"] = ", ".join(
                f.name for f in report.failures
            )
        for rank, record in enumerate(top_contributors(report), 1):
            summary_stats[f"#{rank} {record.name}"] = (
                f"{record.commit_count:,} commits, "
                f"+{record.lines_added:,}/-{record.lines_removed:,}"
            )

        reporter.summary(summary_stats)
        reporter.success(f"Report saved to: {output}")

    except (GitPulseError, OSError, ValueError) as e:
        reporter.error(f"Analysis failed: {e}")
        if verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()

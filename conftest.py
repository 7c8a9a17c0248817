import os
import subprocess
import threading

import pytest

from gitpulse import (
    GitNoOutputError,
    ProgressReporter,
    author_pattern,
)


class ScriptedRunner:
    """
    Stand-in for GitCommandRunner that answers from canned outputs.

    Per-contributor outputs are keyed by name; set any output to an exception
    instance to make that query fail. Empty output raises GitNoOutputError,
    like the real runner.
    """

    def __init__(
        self,
        branch=b"origin/main\n",
        shortlog=b"",
        commit_dates=b"",
        commit_logs=None,
        numstats=None,
    ):
        self.branch = branch
        self.shortlog = shortlog
        self.commit_dates = commit_dates
        self.commit_logs = dict(commit_logs or {})
        self.numstats = dict(numstats or {})
        self.calls = []
        self._lock = threading.Lock()

    def _author(self, args):
        for arg in args:
            if arg.startswith("--author="):
                pattern = arg[len("--author="):]
                for name in set(self.commit_logs) | set(self.numstats):
                    if author_pattern(name) == pattern:
                        return name
                return None
        return None

    def run(self, repo_path, args):
        args = list(args)
        with self._lock:
            self.calls.append(args)

        if args[0] == "symbolic-ref":
            out = self.branch
        elif args[0] == "shortlog":
            out = self.shortlog
        elif any(a.startswith("--author=") for a in args):
            name = self._author(args)
            source = self.numstats if "--numstat" in args else self.commit_logs
            out = source.get(name, b"")
        else:
            out = self.commit_dates

        if isinstance(out, Exception):
            raise out
        if not out:
            raise GitNoOutputError(args)
        return out

    def calls_for(self, command):
        return [c for c in self.calls if c[0] == command]


@pytest.fixture
def quiet_reporter():
    return ProgressReporter(quiet=True)


@pytest.fixture
def alice_and_bob():
    """Canned git output: Alice 3 commits on 2024-01-01 (+10/-2), Bob 1 on 2024-01-02 (+5/-0)."""
    return {
        "shortlog": b"     3\tAlice\n     1\tBob\n",
        "commit_dates": b"2024-01-02\n2024-01-01\n2024-01-01\n2024-01-01",
        "commit_logs": {
            "Alice": b"aaa3 2024-01-01\naaa2 2024-01-01\naaa1 2024-01-01",
            "Bob": b"bbb1 2024-01-02",
        },
        "numstats": {
            "Alice": (
                b"2024-01-01\n0\t2\ta.txt\n\n"
                b"2024-01-01\n2\t0\ta.txt\n\n"
                b"2024-01-01\n8\t0\ta.txt"
            ),
            "Bob": b"2024-01-02\n5\t0\tb.txt",
        },
    }


@pytest.fixture
def scripted_runner(alice_and_bob):
    def factory(**overrides):
        kwargs = dict(alice_and_bob)
        kwargs.update(overrides)
        return ScriptedRunner(**kwargs)

    return factory


@pytest.fixture
def repo_dir(tmp_path):
    """An existing directory; the scripted runner never looks inside it."""
    path = tmp_path / "repo"
    path.mkdir()
    return path


def _commit(repo, name, date, message):
    env = dict(
        os.environ,
        GIT_AUTHOR_NAME=name,
        GIT_AUTHOR_EMAIL=f"{name.lower()}@example.com",
        GIT_COMMITTER_NAME=name,
        GIT_COMMITTER_EMAIL=f"{name.lower()}@example.com",
        GIT_AUTHOR_DATE=date,
        GIT_COMMITTER_DATE=date,
    )
    subprocess.run(
        ["git", "-C", str(repo), "add", "."], check=True, capture_output=True
    )
    subprocess.run(
        ["git", "-C", str(repo), "commit", "-q", "-m", message],
        check=True,
        capture_output=True,
        env=env,
    )


@pytest.fixture
def git_repo(tmp_path):
    """
    Real repository with origin/HEAD pointing at origin/main.
    Alice: 3 commits on 2024-01-01, +10/-2. Bob: 1 commit on 2024-01-02, +5/-0.
    """
    repo = tmp_path / "git_repo"
    repo.mkdir()

    def run(*args):
        subprocess.run(
            ["git", "-C", str(repo)] + list(args), check=True, capture_output=True
        )

    run("init", "-q")
    run("config", "user.email", "tester@example.com")
    run("config", "user.name", "Tester")
    run("config", "commit.gpgsign", "false")

    lines = [f"line {i}\n" for i in range(10)]

    (repo / "a.txt").write_text("".join(lines[:8]), encoding="utf-8")
    _commit(repo, "Alice", "2024-01-01T10:00:00+00:00", "add a")

    (repo / "a.txt").write_text("".join(lines), encoding="utf-8")
    _commit(repo, "Alice", "2024-01-01T11:00:00+00:00", "extend a")

    (repo / "a.txt").write_text("".join(lines[:8]), encoding="utf-8")
    _commit(repo, "Alice", "2024-01-01T12:00:00+00:00", "trim a")

    (repo / "b.txt").write_text("".join(lines[:5]), encoding="utf-8")
    _commit(repo, "Bob", "2024-01-02T10:00:00+00:00", "add b")

    run("update-ref", "refs/remotes/origin/main", "HEAD")
    run("symbolic-ref", "refs/remotes/origin/HEAD", "refs/remotes/origin/main")
    return repo

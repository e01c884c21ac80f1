"""Shared fixtures: throw-away git repositories with a fixed identity and clock."""

from __future__ import annotations

import shutil
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from git_provenance import config  # noqa: E402
from git_provenance.git import find_repository  # noqa: E402


AUTHOR_NAME = "Test User"
AUTHOR_EMAIL = "test@example.com"
# 2020-01-02 03:04:05 +0100
FIXED_DATE = "@1577930645 +0100"


def git(repo: Path, *args: str, input: str | None = None, env: dict | None = None) -> str:
    """Run git in ``repo`` and return stdout; fails the test on a non-zero exit."""
    result = subprocess.run(
        ["git", "-C", str(repo), *args],
        input=input,
        capture_output=True,
        text=True,
        env=env,
    )
    assert result.returncode == 0, f"git {' '.join(args)} failed: {result.stderr}"
    return result.stdout


def git_bytes(repo: Path, *args: str, input: bytes | None = None) -> bytes:
    result = subprocess.run(["git", "-C", str(repo), *args], input=input, capture_output=True)
    assert result.returncode == 0, result.stderr.decode(errors="replace")
    return result.stdout


def commit_all(repo: Path, message: str, author: str | None = None, date: str = FIXED_DATE) -> str:
    git(repo, "add", "-A")
    args = ["commit", "-q", "--no-verify", "-m", message, f"--date={date}"]
    if author:
        args.append(f"--author={author}")
    git(repo, *args)
    return git(repo, "rev-parse", "HEAD").strip()


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path_factory, monkeypatch):
    """Keep the user's git and git-provenance configuration out of every test."""
    home = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(home / ".gitconfig"))
    monkeypatch.setenv("LC_ALL", "C")
    monkeypatch.setenv("LANG", "C")
    monkeypatch.setenv("TZ", "UTC")
    monkeypatch.setenv("GIT_AUTHOR_NAME", AUTHOR_NAME)
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", AUTHOR_EMAIL)
    monkeypatch.setenv("GIT_COMMITTER_NAME", AUTHOR_NAME)
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", AUTHOR_EMAIL)
    monkeypatch.setenv("GIT_COMMITTER_DATE", FIXED_DATE)
    for key in ("DEBUG", "NOTES_REF", "GIT_BIN", "MARK_UNKNOWN"):
        monkeypatch.delenv(config.ENV_PREFIX + key, raising=False)
    monkeypatch.setattr(config, "GLOBAL_CONFIG_DIR", home / ".git-provenance")
    monkeypatch.setattr(config, "GLOBAL_CONFIG_FILE", home / ".git-provenance" / "config.json")
    yield home


@pytest.fixture
def git_repo(tmp_path, monkeypatch):
    """An empty repository on branch ``main``; the test runs inside it."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    git(repo, "config", "user.name", AUTHOR_NAME)
    git(repo, "config", "user.email", AUTHOR_EMAIL)
    git(repo, "config", "commit.gpgsign", "false")
    monkeypatch.chdir(repo)
    return repo


@pytest.fixture
def repository(git_repo):
    repo = find_repository()
    assert repo is not None
    return repo


@pytest.fixture
def remote(tmp_path, git_repo):
    """A bare ``origin`` that git_repo's first commit has been pushed to."""
    (git_repo / "a.txt").write_text("one\ntwo\n")
    (git_repo / "b.txt").write_text("x\n")
    commit_all(git_repo, "initial")
    bare = tmp_path / "remote.git"
    git(tmp_path, "init", "-q", "--bare", str(bare))
    git(bare, "symbolic-ref", "HEAD", "refs/heads/main")
    git(git_repo, "remote", "add", "origin", str(bare))
    git(git_repo, "push", "-q", "-u", "origin", "main")
    return bare


def clone(remote: Path, dest: Path) -> Path:
    git(dest.parent, "clone", "-q", str(remote), str(dest))
    git(dest, "config", "commit.gpgsign", "false")
    return dest

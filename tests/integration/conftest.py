"""Shared fixtures for integration tests."""

from __future__ import annotations

from collections.abc import Callable, Generator
from pathlib import Path

import pygit2
import pytest

CALC_V1 = '''"""Calculator."""


def add(a: int, b: int) -> int:
    return a + b
'''

CALC_V2 = CALC_V1 + '''

def sub(a: int, b: int) -> int:
    return a - b
'''

CALC_V3 = '''"""Calculator."""


def add(a: str, b: int) -> int:
    return int(a) + b


def sub(a: int, b: int) -> int:
    return a - b
'''


def commit_files(repo: pygit2.Repository, files: dict[str, str], message: str) -> pygit2.Oid:
    """Write files into the working tree and commit them on HEAD."""
    workdir = Path(repo.workdir)
    for relative, content in files.items():
        path = workdir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)

    repo.index.add_all()
    repo.index.write()
    tree = repo.index.write_tree()
    sig = pygit2.Signature("apigate test", "test@apigate.dev")
    parents = [] if repo.head_is_unborn else [repo.head.target]
    return repo.create_commit("HEAD", sig, sig, message, tree, parents)


@pytest.fixture
def history_repo(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """A repository with three tagged revisions of a calculator module.

    - v1: add(a: int, b: int)
    - v2: sub added (compatible)
    - v3 / HEAD: add's first parameter retyped to str (incompatible)
    """
    repo_path = tmp_path / "calc_repo"
    repo_path.mkdir()
    repo = pygit2.init_repository(str(repo_path))

    # keep a stray .apigate.yaml out of the settings
    monkeypatch.chdir(tmp_path)

    for tag, calc in (("v1", CALC_V1), ("v2", CALC_V2), ("v3", CALC_V3)):
        oid = commit_files(repo, {"calc.py": calc}, f"Release {tag}")
        repo.references.create(f"refs/tags/{tag}", oid)

    yield repo_path


@pytest.fixture
def make_tree(tmp_path: Path) -> Callable[[dict[str, str]], Path]:
    """Factory writing a plain source tree under tmp_path."""

    def make(files: dict[str, str]) -> Path:
        root = tmp_path / "tree"
        for relative, content in files.items():
            path = root / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        return root

    return make


@pytest.fixture
def commit() -> Callable[[pygit2.Repository, dict[str, str], str], pygit2.Oid]:
    """The commit_files helper, for tests that extend the history."""
    return commit_files

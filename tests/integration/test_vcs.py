"""Integration tests for revision retrieval."""

from pathlib import Path

import pygit2
import pytest

from apigate.core.differ import diff
from apigate.core.exceptions import RetrievalError
from apigate.core.snapshot import SnapshotBuilder
from apigate.vcs import RevisionRetriever

V1_ADD = "def add(a: int, b: int) -> int:"
V3_ADD = "def add(a: str, b: int) -> int:"


class TestRevisionRetriever:
    """Tests for checking out revisions with pygit2."""

    def test_checkout_tag(self, history_repo: Path) -> None:
        """Test that a tag materialises its tree."""
        with RevisionRetriever(str(history_repo)) as retriever:
            root = retriever.checkout("v1")

            assert V1_ADD in (root / "calc.py").read_text()
            assert not (root / ".git").exists()

    def test_checkout_head_and_relative(self, history_repo: Path) -> None:
        """Test HEAD and relative refish revisions."""
        with RevisionRetriever(str(history_repo)) as retriever:
            head = retriever.checkout("HEAD")
            previous = retriever.checkout("HEAD~2")

            assert V3_ADD in (head / "calc.py").read_text()
            assert V1_ADD in (previous / "calc.py").read_text()

    def test_checkout_sha(self, history_repo: Path) -> None:
        """Test that a full commit id resolves."""
        repo = pygit2.Repository(str(history_repo))
        sha = str(repo.revparse_single("v1").id)

        with RevisionRetriever(str(history_repo)) as retriever:
            assert str(retriever.resolve(sha).id) == sha

    def test_annotated_tag_is_peeled(self, history_repo: Path) -> None:
        """Test that annotated tags resolve to their commit."""
        repo = pygit2.Repository(str(history_repo))
        commit = repo.revparse_single("v2")
        sig = pygit2.Signature("apigate test", "test@apigate.dev")
        repo.create_tag(
            "release-2", commit.id, pygit2.enums.ObjectType.COMMIT, sig, "Release 2"
        )

        with RevisionRetriever(str(history_repo)) as retriever:
            assert retriever.resolve("release-2").id == commit.id

    def test_subdirectory_locator(self, history_repo: Path) -> None:
        """Test that a directory inside the repository is accepted."""
        nested = history_repo / "docs"
        nested.mkdir()

        with RevisionRetriever(str(nested)) as retriever:
            assert (retriever.checkout("v1") / "calc.py").exists()

    def test_nested_directories(self, history_repo: Path, commit) -> None:
        """Test that nested trees are written."""
        repo = pygit2.Repository(str(history_repo))
        commit(repo, {"pkg/__init__.py": "", "pkg/io/read.py": "X = 1\n"}, "Add pkg")

        with RevisionRetriever(str(history_repo)) as retriever:
            root = retriever.checkout("HEAD")

            assert (root / "pkg" / "io" / "read.py").read_text() == "X = 1\n"

    def test_unknown_revision(self, history_repo: Path) -> None:
        """Test that unknown revisions raise RetrievalError."""
        with RevisionRetriever(str(history_repo)) as retriever:
            with pytest.raises(RetrievalError) as exc_info:
                retriever.checkout("no-such-tag")

        assert exc_info.value.revision == "no-such-tag"
        assert exc_info.value.locator == str(history_repo)

    def test_not_a_repository(self, tmp_path: Path) -> None:
        """Test that an existing non-repository path is rejected."""
        plain = tmp_path / "plain"
        plain.mkdir()

        with pytest.raises(RetrievalError):
            RevisionRetriever(str(plain))

    def test_close_removes_checkouts(self, history_repo: Path) -> None:
        """Test that closing removes every temporary directory."""
        with RevisionRetriever(str(history_repo)) as retriever:
            first = retriever.checkout("v1")
            second = retriever.checkout("v2")

        assert not first.exists()
        assert not second.exists()

    def test_clone_by_url(self, history_repo: Path) -> None:
        """Test that a non-path locator is cloned."""
        url = history_repo.resolve().as_uri()

        with RevisionRetriever(url) as retriever:
            assert retriever.repository.is_bare
            assert V1_ADD in (retriever.checkout("v1") / "calc.py").read_text()


class TestRevisionPipeline:
    """Tests retrieval, extraction and diffing together."""

    def test_compatible_then_incompatible(self, history_repo: Path) -> None:
        """Test the tagged history end to end."""
        builder = SnapshotBuilder()

        with RevisionRetriever(str(history_repo)) as retriever:
            v1, v2 = builder.build_pair(
                retriever.checkout("v1"), retriever.checkout("v2"), "v1", "v2"
            )
            v3 = builder.build(retriever.checkout("v3"), "v3")

        assert diff(v1, v2).lines() == ['identifier "calc.sub" added']
        assert diff(v1, v2).compatible
        assert diff(v2, v3).lines() == [
            "add changed from (a: int, b: int) -> int to (a: str, b: int) -> int"
        ]
        assert not diff(v2, v3).compatible

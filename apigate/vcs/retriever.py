"""Materialise git revisions as plain directory trees with pygit2."""

from __future__ import annotations

import re
import shutil
import tempfile
from pathlib import Path
from types import TracebackType

import pygit2
import structlog

from apigate.core.exceptions import RetrievalError

logger = structlog.get_logger()

_SYMLINK_MODE = 0o120000
_UNSAFE_LABEL_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class RevisionRetriever:
    """Checks out revisions of one repository into temporary directories.

    A locator naming an existing path is opened in place (any directory
    inside a repository works); anything else is cloned bare as a URL.
    Checkouts never touch a working tree: the commit's tree is written
    blob by blob into a fresh directory. Use as a context manager so every
    temporary directory is removed.
    """

    def __init__(self, locator: str) -> None:
        self.locator = locator
        self._temp_dirs: list[Path] = []
        self._repo = self._open(locator)

    def __enter__(self) -> RevisionRetriever:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    @property
    def repository(self) -> pygit2.Repository:
        return self._repo

    def _open(self, locator: str) -> pygit2.Repository:
        path = Path(locator).expanduser()
        if path.exists():
            discovered = pygit2.discover_repository(str(path))
            if discovered is None:
                raise RetrievalError(f"Not a git repository: {locator}", locator=locator)
            try:
                return pygit2.Repository(discovered)
            except pygit2.GitError as e:
                raise RetrievalError(f"Cannot open {locator}: {e}", locator=locator) from e

        clone_dir = self._make_temp_dir("apigate-clone-")
        logger.info("repository_clone", locator=locator, path=str(clone_dir))
        try:
            return pygit2.clone_repository(locator, str(clone_dir), bare=True)
        except (pygit2.GitError, ValueError) as e:
            self.close()
            raise RetrievalError(f"Cannot clone {locator}: {e}", locator=locator) from e

    def resolve(self, revision: str) -> pygit2.Commit:
        """Resolve a refish (branch, tag, sha, HEAD~1, ...) to its commit.

        Annotated tags are peeled to the commit they point at.
        """
        try:
            obj, _ = self._repo.resolve_refish(revision)
        except (KeyError, ValueError, pygit2.GitError) as e:
            raise RetrievalError(
                f"Unknown revision {revision!r} in {self.locator}",
                locator=self.locator,
                revision=revision,
            ) from e

        try:
            return obj.peel(pygit2.Commit)
        except (ValueError, pygit2.GitError) as e:
            raise RetrievalError(
                f"Revision {revision!r} in {self.locator} is not a commit",
                locator=self.locator,
                revision=revision,
            ) from e

    def checkout(self, revision: str) -> Path:
        """Write the tree of a revision into a new temporary directory.

        Returns:
            The directory holding the revision's files. It is removed when the
            retriever is closed.
        """
        commit = self.resolve(revision)
        label = _UNSAFE_LABEL_CHARS.sub("_", revision)[:40]
        target = self._make_temp_dir(f"apigate-{label}-")

        try:
            self._write_tree(commit.tree, target)
        except OSError as e:
            raise RetrievalError(
                f"Cannot materialise {revision!r} from {self.locator}: {e}",
                locator=self.locator,
                revision=revision,
            ) from e

        logger.debug(
            "revision_checkout",
            locator=self.locator,
            revision=revision,
            commit=str(commit.id),
            path=str(target),
        )
        return target

    def _write_tree(self, tree: pygit2.Tree, dest: Path) -> None:
        for entry in tree:
            path = dest / entry.name
            if entry.type_str == "tree":
                path.mkdir()
                self._write_tree(self._repo[entry.id], path)
            elif entry.type_str == "blob" and entry.filemode != _SYMLINK_MODE:
                path.write_bytes(self._repo[entry.id].data)
            # submodule entries ("commit") and symlinks are not materialised

    def _make_temp_dir(self, prefix: str) -> Path:
        path = Path(tempfile.mkdtemp(prefix=prefix))
        self._temp_dirs.append(path)
        return path

    def close(self) -> None:
        """Remove every temporary directory this retriever created."""
        while self._temp_dirs:
            shutil.rmtree(self._temp_dirs.pop(), ignore_errors=True)

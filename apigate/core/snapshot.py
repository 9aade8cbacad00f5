"""Snapshot builder that runs the extractor over a source tree."""

from __future__ import annotations

import fnmatch
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

import structlog

from apigate.core.exceptions import ExtractionError
from apigate.core.models import BuildStats, ModuleSnapshot, RepositorySnapshot, SymbolTable
from apigate.languages import ParsedModule, PythonExtractor, SymbolExtractor

logger = structlog.get_logger()

DEFAULT_EXCLUDES = [
    "__pycache__",
    "*.egg-info",
    "node_modules",
    "build",
    "dist",
    "venv",
    ".venv",
    "tests",
    "test_*.py",
    "conftest.py",
    "setup.py",
    "docs",
]


@dataclass(frozen=True)
class SourceModule:
    """A discovered module file."""

    path: str
    file: Path
    is_package: bool = False
    public: bool = True


def source_root(root: Path) -> Path:
    """Return root/src for src layouts, else root."""
    src = root / "src"
    if src.is_dir() and any(
        (child / "__init__.py").is_file() or child.suffix == ".py" for child in src.iterdir()
    ):
        return src
    return root


def module_path(relative: Path) -> tuple[str, bool] | None:
    """Convert a path relative to the source root to (module, is_package).

    Returns None for files that are not importable as modules.
    """
    parts = list(relative.with_suffix("").parts)
    is_package = bool(parts) and parts[-1] == "__init__"
    if is_package:
        parts = parts[:-1]
    if not parts or not all(part.isidentifier() for part in parts):
        return None
    return ".".join(parts), is_package


def is_public_module(module: str) -> bool:
    """A module is public when no dotted component starts with an underscore."""
    return not any(part.startswith("_") for part in module.split("."))


class SnapshotBuilder:
    """Builds the public surface of a source tree.

    Uses a two-pass approach:
    1. First pass: Parse every module (in a thread pool)
    2. Second pass: Resolve every module against all parsed modules

    This lets re-exports and type aliases resolve across modules regardless
    of the order files are processed in.
    """

    def __init__(
        self,
        extractor: SymbolExtractor | None = None,
        exclude_patterns: list[str] | None = None,
        max_workers: int = 4,
    ) -> None:
        self._extractor = extractor or PythonExtractor()
        self._excludes = DEFAULT_EXCLUDES + list(exclude_patterns or [])
        self._max_workers = max(1, max_workers)
        self.last_stats: BuildStats | None = None

    def build(self, root: Path, label: str) -> RepositorySnapshot:
        """Build the snapshot of one tree.

        Args:
            root: Root directory of the checked-out revision
            label: Revision label carried by the snapshot and by errors

        Raises:
            ExtractionError: If any module fails; the first failing module in
                module order is reported, naming the revision.
        """
        snapshot, stats = self._build(root, label)
        self.last_stats = stats
        return snapshot

    def build_pair(
        self,
        base_root: Path,
        target_root: Path,
        base_label: str = "base",
        target_label: str = "target",
    ) -> tuple[RepositorySnapshot, RepositorySnapshot]:
        """Build two revisions concurrently.

        last_stats holds the target build's statistics afterwards.
        """
        with ThreadPoolExecutor(max_workers=2) as pool:
            base_future = pool.submit(self._build, base_root, base_label)
            target_future = pool.submit(self._build, target_root, target_label)
            base, _ = base_future.result()
            target, stats = target_future.result()
        self.last_stats = stats
        return base, target

    def discover(self, root: Path) -> tuple[list[SourceModule], int]:
        """Find the modules under root, sorted by module path.

        Private modules are returned too, marked public=False: they are
        parsed so re-exports from them resolve, but get no snapshot.

        Returns:
            The modules and the number of files skipped.
        """
        base = source_root(root)
        modules: dict[str, SourceModule] = {}
        skipped = 0

        for file in sorted(base.rglob("*.py")):
            relative = file.relative_to(base)
            if self._should_exclude(str(relative), self._excludes):
                skipped += 1
                continue
            if not self._extractor.supports(file):
                skipped += 1
                continue

            converted = module_path(relative)
            if converted is None:
                skipped += 1
                continue

            path, is_package = converted
            modules[path] = SourceModule(
                path=path, file=file, is_package=is_package, public=is_public_module(path)
            )

        return [modules[p] for p in sorted(modules)], skipped

    def _build(self, root: Path, label: str) -> tuple[RepositorySnapshot, BuildStats]:
        stats = BuildStats()
        sources, stats.skipped = self.discover(root)
        stats.files = len(sources)

        try:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                parsed = list(pool.map(self._parse, sources))
                registry = {p.path: p for p in parsed}
                public = [p for p, s in zip(parsed, sources) if s.public]
                tables = list(pool.map(lambda p: self._resolve(p, registry), public))
        except ExtractionError as e:
            logger.error("extraction_failed", revision=label, module=e.module, error=str(e))
            raise e.with_revision(label) from e

        modules = [
            ModuleSnapshot(path=p.path, symbols=table) for p, table in zip(public, tables)
        ]
        snapshot = RepositorySnapshot.build(label, modules)

        stats.modules = len(snapshot.modules)
        stats.symbols = snapshot.symbol_count
        logger.info(
            "snapshot_built",
            revision=label,
            modules=stats.modules,
            symbols=stats.symbols,
            skipped=stats.skipped,
        )
        return snapshot, stats

    def _parse(self, source: SourceModule) -> ParsedModule:
        logger.debug("module_parse", module=source.path, file=str(source.file))
        try:
            return self._extractor.parse(source.file, source.path, source.is_package)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(
                f"Cannot parse {source.file}: {e}", module=source.path, file=source.file
            ) from e

    def _resolve(self, parsed: ParsedModule, registry: dict[str, ParsedModule]) -> SymbolTable:
        try:
            return self._extractor.resolve(parsed, registry)
        except ExtractionError:
            raise
        except Exception as e:
            raise ExtractionError(
                f"Cannot resolve {parsed.file}: {e}", module=parsed.path, file=parsed.file
            ) from e

    def _should_exclude(self, path: str, patterns: list[str]) -> bool:
        """Check if a path matches any exclusion pattern.

        Excludes:
        - Any path component starting with '.' (hidden files/directories)
        - Any path component matching the exclusion patterns
        - The whole relative path matching a pattern (e.g. "pkg/legacy/*")
        """
        for part in Path(path).parts:
            if part.startswith("."):
                return True
            for pattern in patterns:
                if fnmatch.fnmatch(part, pattern):
                    return True
        return any(fnmatch.fnmatch(path, pattern) for pattern in patterns)

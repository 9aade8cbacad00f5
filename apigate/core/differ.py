"""Diff engine: compares two repository snapshots.

Modules are compared over the sorted union of their paths, symbols over the
sorted union of their names, so the output order depends only on
(module path, symbol name) and never on extraction order or worker count.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import structlog

from apigate.core.classifier import Classifier
from apigate.core.descriptors import structurally_equal
from apigate.core.exceptions import ClassificationError
from apigate.core.models import ModuleSnapshot, RepositorySnapshot, Symbol, SymbolKind
from apigate.core.report import (
    Change,
    ChangeReport,
    ModuleAdded,
    ModuleRemoved,
    SymbolAdded,
    SymbolChanged,
    SymbolRemoved,
)

logger = structlog.get_logger()

UNKNOWN_REASON = "unknown: assume incompatible"

# constant <-> variable is judged on the ValueType pair
_VALUE_KINDS = frozenset({SymbolKind.CONSTANT, SymbolKind.VARIABLE})


def _kind_text(kind: SymbolKind) -> str:
    return kind.value.replace("_", " ")


class DiffEngine:
    """Computes the ordered list of changes between two snapshots.

    Args:
        classifier: Decides compatibility of changed symbols.
        strict: Abort the whole diff on a classification failure instead of
            reporting the offending symbol as incompatible.
        max_workers: Modules present in both snapshots are diffed in a thread
            pool of this size; 1 diffs sequentially.
    """

    def __init__(
        self,
        classifier: Classifier | None = None,
        strict: bool = False,
        max_workers: int = 1,
    ) -> None:
        self._classifier = classifier or Classifier()
        self._strict = strict
        self._max_workers = max(1, max_workers)

    def diff(self, base: RepositorySnapshot, target: RepositorySnapshot) -> ChangeReport:
        """Diff base against target.

        Raises:
            ClassificationError: In strict mode, naming the module and symbol
                that could not be classified. No partial report is returned.
        """
        paths = sorted(base.modules.keys() | target.modules.keys())
        shared = [p for p in paths if p in base.modules and p in target.modules]

        if self._max_workers > 1 and len(shared) > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                futures = {
                    p: pool.submit(self.diff_modules, base.modules[p], target.modules[p])
                    for p in shared
                }
                per_module = {p: f.result() for p, f in futures.items()}
        else:
            per_module = {
                p: self.diff_modules(base.modules[p], target.modules[p]) for p in shared
            }

        changes: list[Change] = []
        for path in paths:
            if path not in base.modules:
                changes.append(ModuleAdded(path))
            elif path not in target.modules:
                changes.append(ModuleRemoved(path))
            else:
                changes.extend(per_module[path])

        logger.debug(
            "diff_complete",
            base=base.label,
            target=target.label,
            changes=len(changes),
        )
        return ChangeReport(changes, base_label=base.label, target_label=target.label)

    def diff_modules(self, base: ModuleSnapshot, target: ModuleSnapshot) -> list[Change]:
        """Diff the symbol tables of one module present in both snapshots."""
        names = sorted(base.symbols.keys() | target.symbols.keys())

        changes: list[Change] = []
        for name in names:
            if name not in base.symbols:
                changes.append(SymbolAdded(target.path, name))
                continue
            if name not in target.symbols:
                changes.append(SymbolRemoved(base.path, name))
                continue

            change = self._diff_symbol(base.path, base.symbols[name], target.symbols[name])
            if change is not None:
                changes.append(change)
        return changes

    def _diff_symbol(self, module: str, old: Symbol, new: Symbol) -> SymbolChanged | None:
        if old.kind != new.kind and not {old.kind, new.kind} <= _VALUE_KINDS:
            return SymbolChanged(
                module=module,
                name=old.name,
                old=old.type,
                new=new.type,
                is_compatible=False,
                reason=f"{_kind_text(old.kind)} became {_kind_text(new.kind)}",
            )

        try:
            if structurally_equal(old.type, new.type):
                return None
            verdict = self._classifier.classify(old.type, new.type)
        except ClassificationError as e:
            if self._strict:
                raise ClassificationError(
                    f"could not compare {module}.{old.name}: {e}",
                    module=module,
                    symbol=old.name,
                ) from e
            logger.warning(
                "classification_failed",
                module=module,
                symbol=old.name,
                error=str(e),
            )
            return SymbolChanged(
                module=module,
                name=old.name,
                old=old.type,
                new=new.type,
                is_compatible=False,
                reason=f"{UNKNOWN_REASON} ({e})",
            )

        return SymbolChanged(
            module=module,
            name=old.name,
            old=old.type,
            new=new.type,
            is_compatible=verdict.compatible,
            reason=verdict.reason,
        )


def diff(
    base: RepositorySnapshot,
    target: RepositorySnapshot,
    *,
    classifier: Classifier | None = None,
    strict: bool = False,
    max_workers: int = 1,
) -> ChangeReport:
    """Diff two snapshots with a one-off DiffEngine."""
    engine = DiffEngine(classifier=classifier, strict=strict, max_workers=max_workers)
    return engine.diff(base, target)

"""Change values and the ordered change report."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, overload

from apigate.core.descriptors import TypeDescriptor


class ChangeKind(Enum):
    """Kinds of change between two snapshots."""

    MODULE_ADDED = "module_added"
    MODULE_REMOVED = "module_removed"
    SYMBOL_ADDED = "symbol_added"
    SYMBOL_REMOVED = "symbol_removed"
    SYMBOL_CHANGED = "symbol_changed"


@dataclass(frozen=True)
class ModuleAdded:
    """A module present only in the target revision."""

    path: str

    kind = ChangeKind.MODULE_ADDED

    @property
    def compatible(self) -> bool:
        return True

    def __str__(self) -> str:
        return f'module "{self.path}" added'

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "module": self.path, "compatible": self.compatible}


@dataclass(frozen=True)
class ModuleRemoved:
    """A module present only in the base revision."""

    path: str

    kind = ChangeKind.MODULE_REMOVED

    @property
    def compatible(self) -> bool:
        return False

    def __str__(self) -> str:
        return f'module "{self.path}" removed'

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind.value, "module": self.path, "compatible": self.compatible}


@dataclass(frozen=True)
class SymbolAdded:
    """An exported symbol present only in the target revision."""

    module: str
    name: str

    kind = ChangeKind.SYMBOL_ADDED

    @property
    def compatible(self) -> bool:
        return True

    def __str__(self) -> str:
        return f'identifier "{self.module}.{self.name}" added'

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "module": self.module,
            "name": self.name,
            "compatible": self.compatible,
        }


@dataclass(frozen=True)
class SymbolRemoved:
    """An exported symbol present only in the base revision."""

    module: str
    name: str

    kind = ChangeKind.SYMBOL_REMOVED

    @property
    def compatible(self) -> bool:
        return False

    def __str__(self) -> str:
        return f'identifier "{self.module}.{self.name}" removed'

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "module": self.module,
            "name": self.name,
            "compatible": self.compatible,
        }


@dataclass(frozen=True)
class SymbolChanged:
    """An exported symbol whose type shape differs between revisions."""

    module: str
    name: str
    old: TypeDescriptor
    new: TypeDescriptor
    is_compatible: bool
    reason: str = ""

    kind = ChangeKind.SYMBOL_CHANGED

    @property
    def compatible(self) -> bool:
        return self.is_compatible

    def __str__(self) -> str:
        return f"{self.name} changed from {self.old} to {self.new}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "module": self.module,
            "name": self.name,
            "old": str(self.old),
            "new": str(self.new),
            "reason": self.reason,
            "compatible": self.compatible,
        }


Change = ModuleAdded | ModuleRemoved | SymbolAdded | SymbolRemoved | SymbolChanged


class ChangeReport(Sequence[Change]):
    """An ordered, read-only sequence of changes between two revisions."""

    __slots__ = ("_changes", "base_label", "target_label")

    def __init__(
        self, changes: Iterable[Change], base_label: str = "base", target_label: str = "target"
    ) -> None:
        self._changes: tuple[Change, ...] = tuple(changes)
        self.base_label = base_label
        self.target_label = target_label

    @overload
    def __getitem__(self, index: int) -> Change: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[Change]: ...

    def __getitem__(self, index: int | slice) -> Change | Sequence[Change]:
        return self._changes[index]

    def __len__(self) -> int:
        return len(self._changes)

    def __iter__(self) -> Iterator[Change]:
        return iter(self._changes)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ChangeReport):
            return self._changes == other._changes
        if isinstance(other, (list, tuple)):
            return list(self._changes) == list(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    @property
    def compatible(self) -> bool:
        """True when no change in the report is incompatible."""
        return all(change.compatible for change in self._changes)

    def lines(self) -> list[str]:
        """Render every change in its stable text form."""
        return [str(change) for change in self._changes]

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output."""
        return {
            "base": self.base_label,
            "target": self.target_label,
            "compatible": self.compatible,
            "changes": [change.to_dict() for change in self._changes],
        }

    def __repr__(self) -> str:
        incompatible = sum(1 for c in self._changes if not c.compatible)
        return (
            f"ChangeReport({self.base_label!r} -> {self.target_label!r}, "
            f"changes={len(self._changes)}, incompatible={incompatible})"
        )

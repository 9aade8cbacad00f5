"""Data models for apigate."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType

from apigate.core.descriptors import TypeDescriptor


class SymbolKind(Enum):
    """Kinds of exported declarations."""

    FUNCTION = "function"
    METHOD = "method"
    NAMED_TYPE = "named_type"
    INTERFACE = "interface"
    STRUCT = "struct"
    CONSTANT = "constant"
    VARIABLE = "variable"


@dataclass(frozen=True)
class Symbol:
    """An exported declaration and its structural type."""

    module: str
    name: str
    kind: SymbolKind
    type: TypeDescriptor
    exported: bool = True
    receiver: str | None = None
    file: Path | None = field(default=None, compare=False)
    line: int | None = field(default=None, compare=False)

    @property
    def qualified_name(self) -> str:
        return f"{self.module}.{self.name}"


SymbolTable = Mapping[str, Symbol]


@dataclass(frozen=True, eq=False)
class ModuleSnapshot:
    """The exported symbols of one module at one revision."""

    path: str
    symbols: SymbolTable

    def __post_init__(self) -> None:
        ordered: dict[str, Symbol] = {}
        for key in sorted(self.symbols):
            symbol = self.symbols[key]
            if not symbol.exported:
                raise ValueError(f"unexported symbol {symbol.qualified_name} in snapshot")
            if key != symbol.name:
                raise ValueError(f"symbol key {key!r} does not match name {symbol.name!r}")
            ordered[key] = symbol
        object.__setattr__(self, "symbols", MappingProxyType(ordered))

    @classmethod
    def from_symbols(cls, path: str, symbols: Iterable[Symbol]) -> ModuleSnapshot:
        """Create a snapshot from symbols; later duplicates replace earlier ones."""
        return cls(path=path, symbols={s.name: s for s in symbols})

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ModuleSnapshot):
            return NotImplemented
        return self.path == other.path and dict(self.symbols) == dict(other.symbols)

    def __len__(self) -> int:
        return len(self.symbols)

    def __iter__(self) -> Iterator[Symbol]:
        return iter(self.symbols.values())


@dataclass(frozen=True, eq=False)
class RepositorySnapshot:
    """The complete public surface of a repository at one revision."""

    label: str
    modules: Mapping[str, ModuleSnapshot]

    def __post_init__(self) -> None:
        ordered: dict[str, ModuleSnapshot] = {}
        for key in sorted(self.modules):
            module = self.modules[key]
            if key != module.path:
                raise ValueError(f"module key {key!r} does not match path {module.path!r}")
            ordered[key] = module
        object.__setattr__(self, "modules", MappingProxyType(ordered))

    @classmethod
    def build(cls, label: str, modules: Iterable[ModuleSnapshot]) -> RepositorySnapshot:
        """Create a snapshot from module snapshots in any order."""
        return cls(label=label, modules={m.path: m for m in modules})

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RepositorySnapshot):
            return NotImplemented
        return dict(self.modules) == dict(other.modules)

    @property
    def symbol_count(self) -> int:
        return sum(len(m) for m in self.modules.values())

    def __repr__(self) -> str:
        return (
            f"RepositorySnapshot(label={self.label!r}, modules={len(self.modules)}, "
            f"symbols={self.symbol_count})"
        )


class BuildStats:
    """Statistics from a snapshot build."""

    def __init__(self) -> None:
        self.files: int = 0
        self.modules: int = 0
        self.symbols: int = 0
        self.skipped: int = 0

    def __repr__(self) -> str:
        return (
            f"BuildStats(files={self.files}, modules={self.modules}, "
            f"symbols={self.symbols}, skipped={self.skipped})"
        )

"""Data models for extractor results."""

from __future__ import annotations

import ast
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

# FunctionDef, AsyncFunctionDef, ClassDef, Assign, AnnAssign or TypeAlias
Declaration = ast.stmt


@dataclass
class ParsedModule:
    """A module's top-level declarations before type resolution.

    Produced by the first extraction pass; holds everything the second pass
    needs to resolve this module's names, and everything other modules need
    to resolve names imported from it.
    """

    path: str
    file: Path
    is_package: bool = False
    imports: dict[str, str] = field(default_factory=dict)
    star_imports: list[str] = field(default_factory=list)
    explicit_reexports: set[str] = field(default_factory=set)
    declarations: dict[str, Declaration] = field(default_factory=dict)
    exports: list[str] | None = None
    typevars: set[str] = field(default_factory=set)


ModuleRegistry = Mapping[str, ParsedModule]

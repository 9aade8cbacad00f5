"""Protocol for symbol extractors."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from apigate.core.models import SymbolTable
    from apigate.languages.models import ModuleRegistry, ParsedModule


class SymbolExtractor(Protocol):
    """Protocol for language symbol extractors.

    Extraction runs in two passes so that names can be resolved across
    modules: parse() sees one file, resolve() sees every parsed module of
    the revision.
    """

    def supports(self, file: Path) -> bool:
        """Check if this extractor supports the given file."""
        ...

    def parse(self, file: Path, module: str, is_package: bool = False) -> ParsedModule:
        """Parse a file into its top-level declarations."""
        ...

    def resolve(self, parsed: ParsedModule, registry: ModuleRegistry) -> SymbolTable:
        """Resolve a parsed module into its table of exported symbols."""
        ...

"""
Symbol extractors: Turn source files into tables of exported symbols.

Extraction runs in two passes. parse() reads one file into a ParsedModule
(imports, top-level declarations, __all__). resolve() sees every parsed
module of the revision and produces the module's SymbolTable, following
re-exports and type aliases across modules.

Components:
    - SymbolExtractor: Protocol defining the extractor interface
    - PythonExtractor: AST-based extractor for Python files
    - AnnotationResolver: Maps annotation expressions to TypeDescriptors
    - ParsedModule: Declarations of one module before resolution

Adding a new language:
    1. Create a new extractor class implementing SymbolExtractor protocol
    2. Implement parse() and resolve()
    3. Implement supports() to check file extensions
"""

from apigate.languages.annotations import AnnotationResolver
from apigate.languages.base import SymbolExtractor
from apigate.languages.models import ModuleRegistry, ParsedModule
from apigate.languages.python import PythonExtractor

__all__ = [
    "AnnotationResolver",
    "ModuleRegistry",
    "ParsedModule",
    "PythonExtractor",
    "SymbolExtractor",
]

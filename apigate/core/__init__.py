"""
Core module: type descriptors, data models, the diff engine and its policy.

Descriptors (descriptors.py):
    - TypeDescriptor: Closed union of structural type shapes
    - canonical/structurally_equal: Shape comparison ignoring alias names

Models (models.py):
    - Symbol: An exported declaration with its TypeDescriptor
    - ModuleSnapshot/RepositorySnapshot: Immutable public surfaces
    - SymbolKind: Enum for categorization

Diffing (differ.py, classifier.py, report.py):
    - DiffEngine: Deterministic two-level diff of two snapshots
    - Classifier: Fixed compatibility policy table
    - ChangeReport: Ordered changes with stable text and JSON forms

Exceptions (exceptions.py):
    - ApiGateError: Base exception for all apigate errors
    - RetrievalError, ExtractionError, ClassificationError, ConfigError

Snapshot building lives in apigate.core.snapshot, which depends on the
extractors in apigate.languages.
"""

from apigate.core.classifier import Classifier, StructFieldPolicy, Verdict
from apigate.core.descriptors import (
    DESCRIPTOR_VARIANTS,
    Field,
    FunctionType,
    GenericType,
    InterfaceType,
    NamedType,
    Parameter,
    ParameterKind,
    PrimitiveType,
    ReferenceType,
    StructType,
    TypeDescriptor,
    UnionType,
    ValueType,
    canonical,
    structurally_equal,
)
from apigate.core.differ import DiffEngine, diff
from apigate.core.exceptions import (
    ApiGateError,
    ClassificationError,
    ConfigError,
    ExtractionError,
    RetrievalError,
)
from apigate.core.models import (
    BuildStats,
    ModuleSnapshot,
    RepositorySnapshot,
    Symbol,
    SymbolKind,
    SymbolTable,
)
from apigate.core.report import (
    Change,
    ChangeKind,
    ChangeReport,
    ModuleAdded,
    ModuleRemoved,
    SymbolAdded,
    SymbolChanged,
    SymbolRemoved,
)

__all__ = [
    # Descriptors
    "DESCRIPTOR_VARIANTS",
    "Field",
    "FunctionType",
    "GenericType",
    "InterfaceType",
    "NamedType",
    "Parameter",
    "ParameterKind",
    "PrimitiveType",
    "ReferenceType",
    "StructType",
    "TypeDescriptor",
    "UnionType",
    "ValueType",
    "canonical",
    "structurally_equal",
    # Models
    "BuildStats",
    "ModuleSnapshot",
    "RepositorySnapshot",
    "Symbol",
    "SymbolKind",
    "SymbolTable",
    # Diffing
    "Change",
    "ChangeKind",
    "ChangeReport",
    "Classifier",
    "DiffEngine",
    "ModuleAdded",
    "ModuleRemoved",
    "StructFieldPolicy",
    "SymbolAdded",
    "SymbolChanged",
    "SymbolRemoved",
    "Verdict",
    "diff",
    # Exceptions
    "ApiGateError",
    "ClassificationError",
    "ConfigError",
    "ExtractionError",
    "RetrievalError",
]

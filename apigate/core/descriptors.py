"""Structural type descriptors.

A TypeDescriptor is the canonical shape of a symbol's type. Descriptors are
frozen dataclasses combined into one closed union, so every consumer can
match on the variant set exhaustively.

Descriptors compare structurally: canonical() strips alias names before
comparison, so renaming an alias is invisible. A NamedType without an
underlying shape is a nominal class reference and compares by its qualified
name.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import get_args

from apigate.core.exceptions import ClassificationError


class ParameterKind(Enum):
    """How an argument binds to a parameter."""

    POSITIONAL_ONLY = "positional_only"
    POSITIONAL_OR_KEYWORD = "positional_or_keyword"
    VAR_POSITIONAL = "var_positional"
    KEYWORD_ONLY = "keyword_only"
    VAR_KEYWORD = "var_keyword"


POSITIONAL_KINDS = (ParameterKind.POSITIONAL_ONLY, ParameterKind.POSITIONAL_OR_KEYWORD)


class MethodBinding(Enum):
    """What a method receives implicitly when called through its class."""

    INSTANCE = "instance method"
    CLASS = "classmethod"
    STATIC = "staticmethod"


@dataclass(frozen=True)
class PrimitiveType:
    """A builtin scalar type such as int, str or None."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class NamedType:
    """A nominal type reference, or an alias when underlying is set."""

    name: str
    underlying: TypeDescriptor | None = None

    def __str__(self) -> str:
        if self.underlying is not None:
            return str(self.underlying)
        return self.name


@dataclass(frozen=True)
class ReferenceType:
    """A nullable reference to another type (Optional[T])."""

    target: TypeDescriptor

    def __str__(self) -> str:
        return f"Optional[{self.target}]"


@dataclass(frozen=True)
class GenericType:
    """A parameterised type such as list[int] or a user generic."""

    origin: str
    args: tuple[TypeDescriptor, ...] = ()

    def __str__(self) -> str:
        if not self.args:
            return self.origin
        return f"{self.origin}[{', '.join(str(a) for a in self.args)}]"


@dataclass(frozen=True)
class UnionType:
    """A union of two or more member types, canonically ordered."""

    members: tuple[TypeDescriptor, ...]

    def __str__(self) -> str:
        return " | ".join(str(m) for m in self.members)


@dataclass(frozen=True)
class Parameter:
    """A single function parameter."""

    name: str
    type: TypeDescriptor
    kind: ParameterKind = ParameterKind.POSITIONAL_OR_KEYWORD
    has_default: bool = False

    def __str__(self) -> str:
        if self.kind == ParameterKind.VAR_POSITIONAL:
            return f"*{self.name}: {self.type}"
        if self.kind == ParameterKind.VAR_KEYWORD:
            return f"**{self.name}: {self.type}"
        text = f"{self.name}: {self.type}" if self.name else str(self.type)
        return f"{text} = ..." if self.has_default else text


@dataclass(frozen=True)
class FunctionType:
    """A callable signature: ordered parameters and ordered results.

    binding is set for methods only. The implicit receiver is never part of
    params, so binding is what tells a classmethod from an instance method
    with the same visible parameters.
    """

    params: tuple[Parameter, ...] = ()
    results: tuple[TypeDescriptor, ...] = ()
    is_async: bool = False
    binding: MethodBinding | None = None

    def signature(self) -> str:
        """Render the signature without the async prefix."""
        parts: list[str] = []
        seen_star = False
        for i, param in enumerate(self.params):
            if param.kind == ParameterKind.KEYWORD_ONLY and not seen_star:
                parts.append("*")
                seen_star = True
            if param.kind == ParameterKind.VAR_POSITIONAL:
                seen_star = True
            parts.append(str(param))
            is_last_positional_only = param.kind == ParameterKind.POSITIONAL_ONLY and (
                i + 1 == len(self.params)
                or self.params[i + 1].kind != ParameterKind.POSITIONAL_ONLY
            )
            if is_last_positional_only and param.name:
                parts.append("/")

        if len(self.results) == 1:
            result = str(self.results[0])
        else:
            result = f"({', '.join(str(r) for r in self.results)})"
        return f"({', '.join(parts)}) -> {result}"

    def prefix(self) -> str:
        """Markers rendered before the signature: binding, then async."""
        prefix = "async " if self.is_async else ""
        if self.binding in (MethodBinding.CLASS, MethodBinding.STATIC):
            prefix = f"{self.binding.value} {prefix}"
        return prefix

    def __str__(self) -> str:
        return self.prefix() + self.signature()


@dataclass(frozen=True)
class Field:
    """A named field of a struct-like type."""

    name: str
    type: TypeDescriptor
    has_default: bool = False

    def __str__(self) -> str:
        text = f"{self.name}: {self.type}"
        return f"{text} = ..." if self.has_default else text


@dataclass(frozen=True)
class StructType:
    """A record of ordered public fields.

    positional is True when instances can be built with positional arguments
    (dataclasses, NamedTuples, attrs classes); field order then matters.
    """

    fields: tuple[Field, ...] = ()
    positional: bool = False

    @property
    def field_map(self) -> dict[str, Field]:
        return {f.name: f for f in self.fields}

    def __str__(self) -> str:
        rendered = [str(f) for f in self.fields]
        if not self.positional and rendered:
            rendered.insert(0, "*")
        return f"class({', '.join(rendered)})"


@dataclass(frozen=True)
class InterfaceType:
    """A set of required method signatures, sorted by method name."""

    methods: tuple[tuple[str, FunctionType], ...] = ()

    @property
    def method_map(self) -> dict[str, FunctionType]:
        return dict(self.methods)

    def __str__(self) -> str:
        rendered = []
        for name, sig in self.methods:
            rendered.append(f"{sig.prefix()}{name}{sig.signature()}")
        return f"protocol{{{', '.join(rendered)}}}"


@dataclass(frozen=True)
class ValueType:
    """A value with a declared type; constants also record their literal."""

    type: TypeDescriptor
    value: str | None = None
    constant: bool = False

    def __str__(self) -> str:
        text = f"Final[{self.type}]" if self.constant else str(self.type)
        if self.value is not None:
            text += f" = {self.value}"
        return text


TypeDescriptor = (
    PrimitiveType
    | NamedType
    | ReferenceType
    | GenericType
    | UnionType
    | FunctionType
    | StructType
    | InterfaceType
    | ValueType
)

DESCRIPTOR_VARIANTS: tuple[type, ...] = get_args(TypeDescriptor)

ANY = PrimitiveType("Any")
NONE = PrimitiveType("None")

_KIND_LABELS: dict[type, str] = {
    PrimitiveType: "primitive",
    NamedType: "named type",
    ReferenceType: "reference",
    GenericType: "generic",
    UnionType: "union",
    FunctionType: "function",
    StructType: "struct",
    InterfaceType: "interface",
    ValueType: "value",
}


def kind_label(descriptor: TypeDescriptor) -> str:
    """Human-readable name of a descriptor's variant."""
    try:
        return _KIND_LABELS[type(descriptor)]
    except KeyError:
        raise ClassificationError(
            f"unrecognized descriptor shape {type(descriptor).__name__}"
        ) from None


def union_of(*members: TypeDescriptor) -> TypeDescriptor:
    """Build a canonical union: flattened, deduplicated, sorted.

    A union containing None becomes a ReferenceType around the rest.
    """
    flat: list[TypeDescriptor] = []
    for member in members:
        if isinstance(member, UnionType):
            flat.extend(member.members)
        elif isinstance(member, ReferenceType):
            flat.extend((member.target, NONE))
        else:
            flat.append(member)

    unique: dict[TypeDescriptor, TypeDescriptor] = {}
    for member in flat:
        unique.setdefault(canonical(member), member)

    nullable = NONE in unique
    rest = sorted((m for key, m in unique.items() if key != NONE), key=str)

    if not rest:
        return NONE
    inner = rest[0] if len(rest) == 1 else UnionType(tuple(rest))
    return ReferenceType(inner) if nullable else inner


def canonical(descriptor: TypeDescriptor) -> TypeDescriptor:
    """Strip alias names so descriptors compare by shape only."""
    if isinstance(descriptor, PrimitiveType):
        return descriptor
    if isinstance(descriptor, NamedType):
        if descriptor.underlying is not None:
            return canonical(descriptor.underlying)
        return descriptor
    if isinstance(descriptor, ReferenceType):
        return ReferenceType(canonical(descriptor.target))
    if isinstance(descriptor, GenericType):
        return GenericType(descriptor.origin, tuple(canonical(a) for a in descriptor.args))
    if isinstance(descriptor, UnionType):
        return UnionType(tuple(canonical(m) for m in descriptor.members))
    if isinstance(descriptor, FunctionType):
        return FunctionType(
            params=tuple(
                Parameter(p.name, canonical(p.type), p.kind, p.has_default)
                for p in descriptor.params
            ),
            results=tuple(canonical(r) for r in descriptor.results),
            is_async=descriptor.is_async,
            binding=descriptor.binding,
        )
    if isinstance(descriptor, StructType):
        return StructType(
            fields=tuple(
                Field(f.name, canonical(f.type), f.has_default) for f in descriptor.fields
            ),
            positional=descriptor.positional,
        )
    if isinstance(descriptor, InterfaceType):
        return InterfaceType(
            methods=tuple(
                (name, canonical(sig))  # type: ignore[misc]
                for name, sig in descriptor.methods
            )
        )
    if isinstance(descriptor, ValueType):
        return ValueType(canonical(descriptor.type), descriptor.value, descriptor.constant)
    raise ClassificationError(f"unrecognized descriptor shape {type(descriptor).__name__}")


def structurally_equal(a: TypeDescriptor, b: TypeDescriptor) -> bool:
    """True when two descriptors have the same canonical shape."""
    return canonical(a) == canonical(b)

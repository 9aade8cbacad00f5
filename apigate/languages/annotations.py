"""Resolve annotation expressions into TypeDescriptors.

Names are resolved through the module's imports and, across modules,
through the registry of every parsed module of the revision. Type aliases
are expanded to their structural shape (substituting type arguments for
generic aliases); classes become nominal NamedType references named by
their defining module.
"""

from __future__ import annotations

import ast
from collections.abc import Iterator, Sequence
from enum import Enum

from apigate.core.descriptors import (
    ANY,
    NONE,
    FunctionType,
    GenericType,
    NamedType,
    Parameter,
    ParameterKind,
    PrimitiveType,
    TypeDescriptor,
    union_of,
)
from apigate.languages.models import Declaration, ModuleRegistry, ParsedModule

PRIMITIVES = frozenset(
    {"int", "float", "complex", "str", "bytes", "bytearray", "bool", "object", "None"}
)
BUILTIN_GENERICS = frozenset({"list", "dict", "set", "frozenset", "tuple", "type"})

_TYPING_PREFIXES = ("typing.", "typing_extensions.", "collections.abc.")

_ABC = "collections.abc."
TYPING_ORIGINS = {
    "List": "list",
    "Dict": "dict",
    "Set": "set",
    "FrozenSet": "frozenset",
    "Tuple": "tuple",
    "Type": "type",
    "DefaultDict": "collections.defaultdict",
    "OrderedDict": "collections.OrderedDict",
    "Deque": "collections.deque",
    "Counter": "collections.Counter",
    "ChainMap": "collections.ChainMap",
    "AbstractSet": _ABC + "Set",
    "Sequence": _ABC + "Sequence",
    "MutableSequence": _ABC + "MutableSequence",
    "Mapping": _ABC + "Mapping",
    "MutableMapping": _ABC + "MutableMapping",
    "MutableSet": _ABC + "MutableSet",
    "Iterable": _ABC + "Iterable",
    "Iterator": _ABC + "Iterator",
    "Collection": _ABC + "Collection",
    "Container": _ABC + "Container",
    "Reversible": _ABC + "Reversible",
    "Generator": _ABC + "Generator",
    "AsyncIterable": _ABC + "AsyncIterable",
    "AsyncIterator": _ABC + "AsyncIterator",
    "AsyncGenerator": _ABC + "AsyncGenerator",
    "Awaitable": _ABC + "Awaitable",
    "Coroutine": _ABC + "Coroutine",
    "Hashable": _ABC + "Hashable",
    "Sized": _ABC + "Sized",
    "KeysView": _ABC + "KeysView",
    "ValuesView": _ABC + "ValuesView",
    "ItemsView": _ABC + "ItemsView",
}
# collections.abc.Set must not collapse into the builtin set
_ABC_OVERRIDES = {"collections.abc.Set": _ABC + "Set"}

UNWRAPPED = frozenset({"Final", "ClassVar", "Required", "NotRequired", "ReadOnly"})
TYPEVAR_FACTORIES = frozenset({"TypeVar", "ParamSpec", "TypeVarTuple"})

_ANY_PARAMS = (
    Parameter("args", ANY, ParameterKind.VAR_POSITIONAL),
    Parameter("kwargs", ANY, ParameterKind.VAR_KEYWORD),
)


class AssignmentKind(Enum):
    """What a module-level assignment declares."""

    VALUE = "value"
    ALIAS = "alias"
    NEWTYPE = "newtype"
    TYPEVAR = "typevar"


def dotted_name(node: ast.AST | None) -> str | None:
    """Extract a dotted name from Name and Attribute nodes."""
    if isinstance(node, ast.Name):
        return node.id
    if isinstance(node, ast.Attribute):
        value = dotted_name(node.value)
        return f"{value}.{node.attr}" if value else None
    return None


def typing_name(qualified: str) -> str | None:
    """Return the bare name if qualified lives in typing or collections.abc."""
    for prefix in _TYPING_PREFIXES:
        if qualified.startswith(prefix):
            return qualified[len(prefix) :]
    return None


def qualify(module: ParsedModule, dotted: str) -> str:
    """Resolve a dotted name, as written in module, to a qualified name."""
    first, _, rest = dotted.partition(".")
    if first in module.imports:
        base = module.imports[first]
    elif first in module.declarations or first in module.typevars:
        base = f"{module.path}.{first}"
    else:
        return dotted
    return f"{base}.{rest}" if rest else base


def lookup_declaration(
    registry: ModuleRegistry, qualified: str, _seen: set[str] | None = None
) -> tuple[ParsedModule, str] | None:
    """Find the module and name defining qualified, following re-exports."""
    seen = _seen if _seen is not None else set()
    if qualified in seen:
        return None
    seen.add(qualified)

    module_path, _, name = qualified.rpartition(".")
    module = registry.get(module_path)
    if module is None or not name:
        return None

    if name in module.declarations or name in module.typevars:
        return module, name
    if name in module.imports:
        return lookup_declaration(registry, module.imports[name], seen)
    for star in module.star_imports:
        found = lookup_declaration(registry, f"{star}.{name}", seen)
        if found is not None:
            return found
    return None


def assignment_kind(node: Declaration, module: ParsedModule) -> AssignmentKind:
    """Classify a module-level declaration node."""
    if isinstance(node, ast.TypeAlias):
        return AssignmentKind.ALIAS
    if isinstance(node, ast.AnnAssign):
        annotation = dotted_name(node.annotation)
        if annotation and typing_name(qualify(module, annotation)) == "TypeAlias":
            return AssignmentKind.ALIAS
        return AssignmentKind.VALUE
    if not isinstance(node, ast.Assign):
        return AssignmentKind.VALUE

    value = node.value
    if isinstance(value, ast.Call):
        func = dotted_name(value.func)
        short = typing_name(qualify(module, func)) if func else None
        if short == "NewType":
            return AssignmentKind.NEWTYPE
        if short in TYPEVAR_FACTORIES:
            return AssignmentKind.TYPEVAR
        return AssignmentKind.VALUE
    if is_type_expression(value, module):
        return AssignmentKind.ALIAS
    return AssignmentKind.VALUE


def is_type_expression(node: ast.expr, module: ParsedModule) -> bool:
    """Check whether an unannotated assignment value spells a type."""
    if isinstance(node, ast.Subscript):
        base = dotted_name(node.value)
        if base is None:
            return False
        qualified = qualify(module, base)
        return typing_name(qualified) is not None or qualified in BUILTIN_GENERICS
    if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
        return _is_type_operand(node.left, module) and _is_type_operand(node.right, module)
    return False


def _is_type_operand(node: ast.expr, module: ParsedModule) -> bool:
    if isinstance(node, ast.Constant) and node.value is None:
        return True
    if is_type_expression(node, module):
        return True
    name = dotted_name(node)
    if name is None:
        return False
    if isinstance(module.declarations.get(name), ast.ClassDef):
        return True
    qualified = qualify(module, name)
    return (
        qualified in PRIMITIVES
        or qualified in BUILTIN_GENERICS
        or typing_name(qualified) is not None
    )


def alias_definition(node: Declaration, module: ParsedModule) -> tuple[ast.expr | None, list[str]]:
    """Return an alias's value expression and its type parameter names."""
    if isinstance(node, ast.TypeAlias):
        return node.value, [p.name for p in node.type_params]  # type: ignore[attr-defined]

    value = getattr(node, "value", None)
    if value is None:
        return None, []
    params: list[str] = []
    for name in _names_in_order(value):
        if name in module.typevars and name not in params:
            params.append(name)
    return value, params


def _names_in_order(node: ast.AST) -> Iterator[str]:
    if isinstance(node, ast.Name):
        yield node.id
    for child in ast.iter_child_nodes(node):
        yield from _names_in_order(child)


def _slice_elements(node: ast.expr) -> list[ast.expr]:
    if isinstance(node, ast.Tuple):
        return list(node.elts)
    return [node]


class AnnotationResolver:
    """Turns annotation expressions written in one module into descriptors."""

    def __init__(
        self,
        module: ParsedModule,
        registry: ModuleRegistry,
        *,
        bindings: dict[str, TypeDescriptor] | None = None,
        self_type: TypeDescriptor | None = None,
        active: frozenset[str] = frozenset(),
    ) -> None:
        self._module = module
        self._registry = registry
        self._bindings = bindings or {}
        self._self_type = self_type
        self._active = active

    @property
    def module(self) -> ParsedModule:
        return self._module

    def with_self(self, self_type: TypeDescriptor) -> AnnotationResolver:
        """Return a resolver that maps typing.Self to self_type."""
        return AnnotationResolver(
            self._module,
            self._registry,
            bindings=self._bindings,
            self_type=self_type,
            active=self._active,
        )

    def qualify(self, dotted: str) -> str:
        return qualify(self._module, dotted)

    def lookup(self, qualified: str) -> tuple[ParsedModule, str] | None:
        return lookup_declaration(self._registry, qualified)

    def resolve(self, node: ast.expr | None) -> TypeDescriptor:
        """Resolve an annotation; a missing annotation is Any."""
        if node is None:
            return ANY

        if isinstance(node, ast.Constant):
            if node.value is None:
                return NONE
            if node.value is Ellipsis:
                return PrimitiveType("...")
            if isinstance(node.value, str):
                return self._resolve_forward_ref(node.value)
            return PrimitiveType(repr(node.value))

        if isinstance(node, ast.BinOp) and isinstance(node.op, ast.BitOr):
            return union_of(self.resolve(node.left), self.resolve(node.right))

        if isinstance(node, ast.Subscript):
            return self._resolve_subscript(node)

        name = dotted_name(node)
        if name is not None:
            return self.resolve_name(name)

        return NamedType(ast.unparse(node))

    def resolve_name(self, dotted: str) -> TypeDescriptor:
        """Resolve a bare (unsubscripted) type name."""
        if dotted in self._bindings:
            return self._bindings[dotted]

        qualified = self.qualify(dotted)
        short = typing_name(qualified)
        if short is not None:
            return self._typing_special(short, qualified)
        if qualified in PRIMITIVES:
            return PrimitiveType(qualified)
        if qualified in BUILTIN_GENERICS:
            return GenericType(qualified)

        found = self.lookup(qualified)
        if found is None:
            return NamedType(qualified)

        module, name = found
        if name in module.typevars:
            return NamedType(name)
        node = module.declarations[name]
        if assignment_kind(node, module) == AssignmentKind.ALIAS:
            return self._expand_alias(module, name, node, ())
        return NamedType(f"{module.path}.{name}")

    def _resolve_forward_ref(self, text: str) -> TypeDescriptor:
        try:
            expr = ast.parse(text.strip(), mode="eval").body
        except SyntaxError:
            return NamedType(text)
        return self.resolve(expr)

    def _typing_special(self, short: str, qualified: str) -> TypeDescriptor:
        if short == "Any":
            return ANY
        if short in ("NoReturn", "Never"):
            return PrimitiveType("Never")
        if short == "LiteralString":
            return PrimitiveType("str")
        if short == "Self":
            return self._self_type or ANY
        if short == "Callable":
            return FunctionType(params=_ANY_PARAMS, results=(ANY,))
        if qualified in _ABC_OVERRIDES:
            return GenericType(_ABC_OVERRIDES[qualified])
        if short in TYPING_ORIGINS:
            return GenericType(TYPING_ORIGINS[short])
        return NamedType(qualified)

    def _resolve_subscript(self, node: ast.Subscript) -> TypeDescriptor:
        base = dotted_name(node.value)
        if base is None:
            return NamedType(ast.unparse(node))
        args = _slice_elements(node.slice)

        qualified = self.qualify(base)
        short = typing_name(qualified)

        if short == "Optional":
            return union_of(self.resolve(args[0]), NONE)
        if short == "Union":
            return union_of(*(self.resolve(a) for a in args))
        if short == "Annotated" or short in UNWRAPPED:
            return self.resolve(args[0])
        if short == "Literal":
            return GenericType("Literal", tuple(PrimitiveType(ast.unparse(a)) for a in args))
        if short == "Callable":
            return self._resolve_callable(args)

        resolved_args = tuple(self.resolve(a) for a in args)
        if short is not None:
            origin = _ABC_OVERRIDES.get(qualified) or TYPING_ORIGINS.get(short, qualified)
            return GenericType(origin, resolved_args)
        if qualified in BUILTIN_GENERICS:
            return GenericType(qualified, resolved_args)

        found = self.lookup(qualified)
        if found is None:
            return GenericType(qualified, resolved_args)
        module, name = found
        declaration = module.declarations.get(name)
        if declaration is not None and assignment_kind(declaration, module) == AssignmentKind.ALIAS:
            return self._expand_alias(module, name, declaration, resolved_args)
        return GenericType(f"{module.path}.{name}", resolved_args)

    def _resolve_callable(self, args: list[ast.expr]) -> FunctionType:
        result = self.resolve(args[1]) if len(args) > 1 else ANY
        spec = args[0]
        if isinstance(spec, ast.List):
            params = tuple(
                Parameter("", self.resolve(e), ParameterKind.POSITIONAL_ONLY) for e in spec.elts
            )
        else:
            params = _ANY_PARAMS
        return FunctionType(params=params, results=(result,))

    def _expand_alias(
        self,
        module: ParsedModule,
        name: str,
        node: Declaration,
        args: Sequence[TypeDescriptor],
    ) -> TypeDescriptor:
        key = f"{module.path}.{name}"
        if key in self._active:
            return NamedType(key)

        value, params = alias_definition(node, module)
        if value is None:
            return NamedType(key)

        bindings = {p: (args[i] if i < len(args) else ANY) for i, p in enumerate(params)}
        resolver = AnnotationResolver(
            module,
            self._registry,
            bindings=bindings,
            active=self._active | {key},
        )
        resolved = resolver.resolve(value)
        if args and not params and isinstance(resolved, GenericType) and not resolved.args:
            return GenericType(resolved.origin, tuple(args))
        return resolved

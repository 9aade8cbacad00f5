"""Python AST extractor for the exported symbol surface of a module."""

from __future__ import annotations

import ast
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import structlog

from apigate.core.descriptors import (
    ANY,
    NONE,
    Field,
    FunctionType,
    GenericType,
    InterfaceType,
    MethodBinding,
    NamedType,
    Parameter,
    ParameterKind,
    PrimitiveType,
    StructType,
    TypeDescriptor,
    ValueType,
)
from apigate.core.exceptions import ExtractionError
from apigate.core.models import Symbol, SymbolKind, SymbolTable
from apigate.languages.annotations import (
    BUILTIN_GENERICS,
    PRIMITIVES,
    AnnotationResolver,
    AssignmentKind,
    alias_definition,
    assignment_kind,
    dotted_name,
    lookup_declaration,
    qualify,
    typing_name,
)
from apigate.languages.models import Declaration, ModuleRegistry, ParsedModule

logger = structlog.get_logger()

FunctionNode = ast.FunctionDef | ast.AsyncFunctionDef

_CONSTANT_NAME = re.compile(r"^_*[A-Z][A-Z0-9_]*$")

# Dunder methods that are part of a class's public surface.
_EXPORTED_DUNDERS = frozenset({"__init__", "__call__"})
_NON_PROTOCOL_DUNDERS = frozenset(
    {"__init__", "__init_subclass__", "__class_getitem__", "__subclasshook__"}
)

_PROTOCOL_BASES = frozenset({"typing.Protocol", "typing_extensions.Protocol"})
_ABC_BASES = frozenset({"abc.ABC"})
_ABC_METACLASSES = frozenset({"abc.ABCMeta"})
_ENUM_BASES = frozenset({"enum.Enum", "enum.IntEnum", "enum.StrEnum", "enum.Flag", "enum.IntFlag"})
_NAMEDTUPLE_BASES = frozenset({"typing.NamedTuple", "typing_extensions.NamedTuple"})
_TYPEDDICT_BASES = frozenset({"typing.TypedDict", "typing_extensions.TypedDict"})
_MODEL_BASES = frozenset(
    {"pydantic.BaseModel", "pydantic.main.BaseModel", "pydantic_settings.BaseSettings"}
)
_RECORD_DECORATORS = frozenset(
    {
        "dataclasses.dataclass",
        "pydantic.dataclasses.dataclass",
        "attr.s",
        "attr.attrs",
        "attr.define",
        "attr.frozen",
        "attr.mutable",
        "attrs.define",
        "attrs.frozen",
        "attrs.mutable",
    }
)
_FIELD_FACTORIES = frozenset(
    {
        "dataclasses.field",
        "attr.ib",
        "attr.attrib",
        "attr.field",
        "attrs.field",
        "pydantic.Field",
        "pydantic.fields.Field",
    }
)
_DEFAULT_KEYWORDS = frozenset({"default", "default_factory", "factory"})
_ABSTRACT_DECORATORS = frozenset(
    {"abstractmethod", "abstractproperty", "abstractclassmethod", "abstractstaticmethod"}
)
_PROPERTY_DECORATORS = frozenset({"property", "cached_property", "abstractproperty"})
_STATIC_DECORATORS = frozenset({"staticmethod", "abstractstaticmethod"})
_CLASS_DECORATORS = frozenset({"classmethod", "abstractclassmethod"})
_MODEL_CONFIG_ATTRIBUTES = frozenset({"model_config"})


class PythonExtractor:
    """Extractor for Python source files using the ast module."""

    def supports(self, file: Path) -> bool:
        """Check if this extractor supports the given file."""
        return file.suffix == ".py"

    def parse(self, file: Path, module: str, is_package: bool = False) -> ParsedModule:
        """Parse a Python file into its top-level declarations."""
        try:
            source = file.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ExtractionError(f"Cannot read {file}: {e}", module=module, file=file) from e

        try:
            tree = ast.parse(source, filename=str(file))
        except SyntaxError as e:
            raise ExtractionError(f"Syntax error in {file}: {e}", module=module, file=file) from e
        except (ValueError, RecursionError, MemoryError) as e:
            raise ExtractionError(f"Cannot parse {file}: {e}", module=module, file=file) from e

        parsed = ParsedModule(path=module, file=file, is_package=is_package)
        _DeclarationCollector(parsed).visit(tree)
        return parsed

    def resolve(self, parsed: ParsedModule, registry: ModuleRegistry) -> SymbolTable:
        """Resolve a parsed module into its exported symbols."""
        if parsed.path not in registry:
            registry = {**registry, parsed.path: parsed}
        return _SymbolBuilder(parsed, registry).build()


def _decorator_names(node: FunctionNode | ast.ClassDef) -> set[str]:
    """Last dotted component of every decorator, e.g. {"property", "setter"}."""
    names = set()
    for decorator in node.decorator_list:
        target = decorator.func if isinstance(decorator, ast.Call) else decorator
        name = dotted_name(target)
        if name:
            names.add(name.rsplit(".", 1)[-1])
    return names


def _is_overload(node: Declaration) -> bool:
    return isinstance(node, FunctionNode) and "overload" in _decorator_names(node)


def _literal_names(node: ast.expr | None) -> list[str] | None:
    """Names in a literal list or tuple of strings, or None if not literal."""
    if not isinstance(node, (ast.List, ast.Tuple)):
        return None
    names = []
    for elt in node.elts:
        if not isinstance(elt, ast.Constant) or not isinstance(elt.value, str):
            return None
        names.append(elt.value)
    return names


def _is_main_guard(test: ast.expr) -> bool:
    return (
        isinstance(test, ast.Compare)
        and isinstance(test.left, ast.Name)
        and test.left.id == "__name__"
    )


def _is_public(name: str) -> bool:
    return not name.startswith("_")


class _DeclarationCollector(ast.NodeVisitor):
    """Collects the top-level declarations, imports and __all__ of a module.

    Only module-level statements are visited; conditional and guarded blocks
    (if, try, with) are entered because their bindings are module-level too.
    """

    def __init__(self, parsed: ParsedModule) -> None:
        self.parsed = parsed

    def generic_visit(self, node: ast.AST) -> None:
        """Statements without a handler bind nothing we export."""

    def _visit_body(self, body: list[ast.stmt]) -> None:
        for stmt in body:
            self.visit(stmt)

    def _declare(self, name: str, node: Declaration, quiet: bool = False) -> None:
        if name in self.parsed.declarations and not quiet:
            logger.debug("duplicate_declaration", module=self.parsed.path, name=name)
        self.parsed.imports.pop(name, None)
        self.parsed.explicit_reexports.discard(name)
        self.parsed.typevars.discard(name)
        self.parsed.declarations[name] = node

    def _bind_import(self, local: str, target: str) -> None:
        self.parsed.declarations.pop(local, None)
        self.parsed.explicit_reexports.discard(local)
        self.parsed.imports[local] = target

    def visit_Module(self, node: ast.Module) -> None:
        self._visit_body(node.body)

    def visit_Import(self, node: ast.Import) -> None:
        """Handle: import foo, import foo.bar, import foo as f"""
        for alias in node.names:
            if alias.asname:
                self._bind_import(alias.asname, alias.name)
            else:
                top = alias.name.split(".")[0]
                self._bind_import(top, top)

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:
        """Handle: from foo import bar, from foo import bar as b, from foo import *"""
        module = node.module or ""

        if node.level > 0:
            module = self._resolve_relative_import(node.level, module)

        for alias in node.names:
            if alias.name == "*":
                self.parsed.star_imports.append(module)
                continue
            local_name = alias.asname or alias.name
            self._bind_import(local_name, f"{module}.{alias.name}" if module else alias.name)
            if alias.asname == alias.name:
                self.parsed.explicit_reexports.add(local_name)

    def _resolve_relative_import(self, level: int, module: str) -> str:
        """Resolve a relative import to an absolute module path."""
        parts = self.parsed.path.split(".")
        if not self.parsed.is_package:
            parts = parts[:-1]
        if level - 1 > len(parts):
            return module

        base_parts = parts[: len(parts) - (level - 1)]
        if module:
            return ".".join([*base_parts, module])
        return ".".join(base_parts)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:
        self._visit_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:
        self._visit_function(node)

    def _visit_function(self, node: FunctionNode) -> None:
        existing = self.parsed.declarations.get(node.name)
        if existing is not None and _is_overload(node) and not _is_overload(existing):
            return
        self._declare(node.name, node, quiet=existing is not None and _is_overload(existing))

    def visit_ClassDef(self, node: ast.ClassDef) -> None:
        self._declare(node.name, node)

    def visit_TypeAlias(self, node: ast.TypeAlias) -> None:
        """Handle: type Alias = ..."""
        self._declare(node.name.id, node)

    def visit_Assign(self, node: ast.Assign) -> None:
        for target in node.targets:
            if isinstance(target, ast.Name):
                self._assign_name(target.id, node)
            elif isinstance(target, (ast.Tuple, ast.List)):
                for elt in target.elts:
                    if isinstance(elt, ast.Name):
                        self._declare(elt.id, node)

    def _assign_name(self, name: str, node: ast.Assign | ast.AnnAssign) -> None:
        if name == "__all__":
            self.parsed.exports = _literal_names(node.value)
            if self.parsed.exports is None:
                logger.debug("dynamic_all_ignored", module=self.parsed.path)
            return
        if assignment_kind(node, self.parsed) == AssignmentKind.TYPEVAR:
            self.parsed.declarations.pop(name, None)
            self.parsed.typevars.add(name)
            return
        self._declare(name, node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:
        """Handle annotated assignments (e.g., x: int = 5)."""
        if isinstance(node.target, ast.Name):
            self._assign_name(node.target.id, node)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        """Handle: __all__ += [...]"""
        if (
            isinstance(node.target, ast.Name)
            and node.target.id == "__all__"
            and isinstance(node.op, ast.Add)
        ):
            self._extend_exports(_literal_names(node.value))

    def visit_Expr(self, node: ast.Expr) -> None:
        """Handle: __all__.extend([...]) and __all__.append("name")"""
        call = node.value
        if not isinstance(call, ast.Call) or not call.args:
            return
        method = dotted_name(call.func)
        if method == "__all__.extend":
            self._extend_exports(_literal_names(call.args[0]))
        elif method == "__all__.append":
            self._extend_exports(_literal_names(ast.List(elts=call.args[:1])))

    def _extend_exports(self, names: list[str] | None) -> None:
        if self.parsed.exports is None or names is None:
            return
        self.parsed.exports.extend(names)

    def visit_If(self, node: ast.If) -> None:
        if _is_main_guard(node.test):
            return
        self._visit_body(node.body)
        self._visit_body(node.orelse)

    def visit_Try(self, node: ast.Try) -> None:
        # Fallback bindings in handlers are shadowed by the try body.
        for handler in node.handlers:
            self._visit_body(handler.body)
        self._visit_body(node.body)
        self._visit_body(node.orelse)
        self._visit_body(node.finalbody)

    def visit_TryStar(self, node: ast.stmt) -> None:
        self.visit_Try(node)  # type: ignore[arg-type]

    def visit_With(self, node: ast.With) -> None:
        self._visit_body(node.body)

    def visit_AsyncWith(self, node: ast.AsyncWith) -> None:
        self._visit_body(node.body)


class _ClassKind(Enum):
    PLAIN = "plain"
    PROTOCOL = "protocol"
    ABSTRACT = "abstract"
    ENUM = "enum"
    RECORD = "record"
    NAMEDTUPLE = "namedtuple"
    TYPEDDICT = "typeddict"
    MODEL = "model"


# Class kinds that subclasses keep without restating the marker base.
_INHERITED_KINDS = frozenset(
    {_ClassKind.ABSTRACT, _ClassKind.ENUM, _ClassKind.TYPEDDICT, _ClassKind.MODEL}
)


@dataclass
class _ClassMembers:
    """Members of a class, merged over its in-snapshot base classes."""

    fields: dict[str, tuple[ParsedModule, ast.ClassDef, ast.AnnAssign]] = field(
        default_factory=dict
    )
    attributes: dict[str, tuple[ParsedModule, ast.Assign | ast.AnnAssign]] = field(
        default_factory=dict
    )
    methods: dict[str, tuple[ParsedModule, FunctionNode]] = field(default_factory=dict)
    setters: set[str] = field(default_factory=set)

    def update(self, other: _ClassMembers) -> None:
        self.fields.update(other.fields)
        self.attributes.update(other.attributes)
        self.methods.update(other.methods)
        self.setters |= other.setters


class _SymbolBuilder:
    """Resolves one parsed module into its table of exported symbols."""

    def __init__(self, parsed: ParsedModule, registry: ModuleRegistry) -> None:
        self._parsed = parsed
        self._registry = registry
        self._resolvers: dict[str, AnnotationResolver] = {}

    def build(self) -> SymbolTable:
        symbols: dict[str, Symbol] = {}
        for name in sorted(self._public_names(self._parsed, frozenset({self._parsed.path}))):
            for symbol in self._export(name):
                symbols[symbol.name] = symbol
        return symbols

    def _resolver_for(self, module: ParsedModule) -> AnnotationResolver:
        resolver = self._resolvers.get(module.path)
        if resolver is None:
            resolver = AnnotationResolver(module, self._registry)
            self._resolvers[module.path] = resolver
        return resolver

    def _public_names(self, module: ParsedModule, seen: frozenset[str]) -> set[str]:
        if module.exports is not None:
            return set(module.exports)

        names = {n for n in module.declarations if _is_public(n)}
        names |= {n for n in module.explicit_reexports if _is_public(n)}
        for star in module.star_imports:
            source = self._registry.get(star)
            if source is not None and star not in seen:
                names |= {n for n in self._public_names(source, seen | {star}) if _is_public(n)}
        return names

    def _export(self, name: str) -> list[Symbol]:
        parsed = self._parsed
        target = self._resolve_export(name)
        if target is not None:
            module, def_name = target
            if def_name in module.typevars:
                return []
            return self._declared_symbols(name, module, def_name)

        imported = parsed.imports.get(name)
        if imported in self._registry or f"{parsed.path}.{name}" in self._registry:
            # submodule, exported by the module snapshot itself
            return []
        if imported is not None:
            return [
                Symbol(
                    module=parsed.path,
                    name=name,
                    kind=SymbolKind.VARIABLE,
                    type=ValueType(NamedType(imported)),
                    file=parsed.file,
                )
            ]

        logger.warning("export_not_found", module=parsed.path, name=name)
        return []

    def _resolve_export(self, name: str) -> tuple[ParsedModule, str] | None:
        parsed = self._parsed
        if name in parsed.declarations or name in parsed.typevars:
            return parsed, name
        if name in parsed.imports:
            return lookup_declaration(self._registry, parsed.imports[name])
        for star in parsed.star_imports:
            found = lookup_declaration(self._registry, f"{star}.{name}")
            if found is not None:
                return found
        return None

    def _symbol(
        self,
        name: str,
        kind: SymbolKind,
        type_: TypeDescriptor,
        node: ast.stmt,
        module: ParsedModule,
        receiver: str | None = None,
    ) -> Symbol:
        return Symbol(
            module=self._parsed.path,
            name=name,
            kind=kind,
            type=type_,
            receiver=receiver,
            file=module.file,
            line=node.lineno,
        )

    def _declared_symbols(self, local: str, module: ParsedModule, def_name: str) -> list[Symbol]:
        node = module.declarations[def_name]
        resolver = self._resolver_for(module)

        if isinstance(node, FunctionNode):
            return [
                self._symbol(
                    local, SymbolKind.FUNCTION, _function_type(node, resolver), node, module
                )
            ]
        if isinstance(node, ast.ClassDef):
            return list(self._class_symbols(local, module, node))
        return [self._assignment_symbol(local, def_name, node, module)]

    # -- module assignments --------------------------------------------------

    def _assignment_symbol(
        self, local: str, def_name: str, node: Declaration, module: ParsedModule
    ) -> Symbol:
        kind = assignment_kind(node, module)
        qualified = f"{module.path}.{def_name}"

        if kind == AssignmentKind.ALIAS:
            value, _ = alias_definition(node, module)
            resolver = AnnotationResolver(module, self._registry, active=frozenset({qualified}))
            underlying = resolver.resolve(value)
            return self._symbol(
                local, SymbolKind.NAMED_TYPE, NamedType(qualified, underlying), node, module
            )

        if kind == AssignmentKind.NEWTYPE:
            call = node.value  # type: ignore[attr-defined]
            base = call.args[1] if len(call.args) > 1 else None
            underlying = self._resolver_for(module).resolve(base)
            return self._symbol(
                local, SymbolKind.NAMED_TYPE, NamedType(qualified, underlying), node, module
            )

        return self._value_symbol(local, def_name, node, module)

    def _value_symbol(
        self,
        symbol_name: str,
        decl_name: str,
        node: Declaration,
        module: ParsedModule,
        receiver: str | None = None,
    ) -> Symbol:
        resolver = self._resolver_for(module)
        annotation = node.annotation if isinstance(node, ast.AnnAssign) else None
        value = node.value if isinstance(node, (ast.Assign, ast.AnnAssign)) else None

        is_final = annotation is not None and _is_final(annotation, module)
        constant = is_final or bool(_CONSTANT_NAME.match(decl_name))

        if annotation is not None and not _is_bare_final(annotation, module):
            declared = resolver.resolve(annotation)
        elif isinstance(node, ast.Assign) and not isinstance(node.targets[0], ast.Name):
            declared = ANY
        else:
            declared = _infer_type(value, resolver)

        literal = ast.unparse(value) if constant and value is not None else None
        return self._symbol(
            symbol_name,
            SymbolKind.CONSTANT if constant else SymbolKind.VARIABLE,
            ValueType(declared, literal, constant),
            node,
            module,
            receiver=receiver,
        )

    # -- classes -------------------------------------------------------------

    def _class_symbols(
        self, local: str, module: ParsedModule, node: ast.ClassDef
    ) -> Iterator[Symbol]:
        self_type = NamedType(f"{module.path}.{node.name}")
        kind, positional = self._class_shape(module, node, frozenset())
        members = self._collect_members(module, node, frozenset())

        if kind == _ClassKind.PROTOCOL:
            methods = {
                name: _function_type(fn, self._resolver_for(m).with_self(self_type), bound=True)
                for name, (m, fn) in members.methods.items()
                if _is_protocol_member(name)
            }
            for name, (m, _, stmt) in members.fields.items():
                if _is_public(name):
                    resolver = self._resolver_for(m).with_self(self_type)
                    methods[name] = FunctionType(results=(resolver.resolve(stmt.annotation),))
            yield self._symbol(
                local,
                SymbolKind.INTERFACE,
                InterfaceType(tuple(sorted(methods.items()))),
                node,
                module,
            )
            return

        skip: set[str] = set()
        if kind == _ClassKind.ABSTRACT:
            abstract = {
                name: _function_type(fn, self._resolver_for(m).with_self(self_type), bound=True)
                for name, (m, fn) in members.methods.items()
                if _is_protocol_member(name) and _decorator_names(fn) & _ABSTRACT_DECORATORS
            }
            skip = set(abstract)
            yield self._symbol(
                local,
                SymbolKind.INTERFACE,
                InterfaceType(tuple(sorted(abstract.items()))),
                node,
                module,
            )
        elif kind == _ClassKind.ENUM:
            declared = [(name, m, stmt) for name, (m, stmt) in members.attributes.items()]
            declared += [
                (name, m, stmt)
                for name, (m, _, stmt) in members.fields.items()
                if stmt.value is not None
            ]
            declared.sort(key=lambda member: member[2].lineno)
            enum_fields = tuple(
                Field(
                    name,
                    ValueType(
                        _infer_type(stmt.value, self._resolver_for(m)),
                        ast.unparse(stmt.value) if stmt.value is not None else None,
                        constant=True,
                    ),
                )
                for name, m, stmt in declared
                if _is_public(name)
            )
            yield self._symbol(
                local,
                SymbolKind.NAMED_TYPE,
                NamedType(self_type.name, StructType(enum_fields, positional=False)),
                node,
                module,
            )
        elif kind == _ClassKind.PLAIN:
            yield self._symbol(
                local,
                SymbolKind.NAMED_TYPE,
                NamedType(self_type.name, self._struct(members, kind, self_type, positional)),
                node,
                module,
            )
        else:
            yield self._symbol(
                local,
                SymbolKind.STRUCT,
                self._struct(members, kind, self_type, positional),
                node,
                module,
            )

        yield from self._member_symbols(
            local,
            members,
            self_type,
            skip=skip,
            include_attributes=kind != _ClassKind.ENUM,
        )

    def _struct(
        self, members: _ClassMembers, kind: _ClassKind, self_type: NamedType, positional: bool
    ) -> StructType:
        fields = []
        for name, (m, owner, stmt) in members.fields.items():
            if not _is_public(name) and kind in (_ClassKind.PLAIN, _ClassKind.MODEL):
                continue
            resolver = self._resolver_for(m).with_self(self_type)
            fields.append(
                Field(
                    name,
                    resolver.resolve(stmt.annotation),
                    has_default=_field_has_default(m, owner, stmt, kind),
                )
            )
        return StructType(tuple(fields), positional=positional)

    def _member_symbols(
        self,
        local: str,
        members: _ClassMembers,
        self_type: NamedType,
        skip: set[str],
        include_attributes: bool,
    ) -> Iterator[Symbol]:
        for name, (m, fn) in members.methods.items():
            if name in skip or not (_is_public(name) or name in _EXPORTED_DUNDERS):
                continue
            resolver = self._resolver_for(m).with_self(self_type)
            qualified = f"{local}.{name}"

            if _decorator_names(fn) & _PROPERTY_DECORATORS:
                constant = name not in members.setters
                yield self._symbol(
                    qualified,
                    SymbolKind.CONSTANT if constant else SymbolKind.VARIABLE,
                    ValueType(resolver.resolve(fn.returns), constant=constant),
                    fn,
                    m,
                    receiver=local,
                )
            else:
                yield self._symbol(
                    qualified,
                    SymbolKind.METHOD,
                    _function_type(fn, resolver, bound=True),
                    fn,
                    m,
                    receiver=local,
                )

        if not include_attributes:
            return
        for name, (m, stmt) in members.attributes.items():
            if _is_public(name) and name not in _MODEL_CONFIG_ATTRIBUTES:
                yield self._value_symbol(f"{local}.{name}", name, stmt, m, receiver=local)

    def _lookup_class(
        self, module: ParsedModule, expr: ast.expr
    ) -> tuple[ParsedModule, ast.ClassDef] | None:
        name = _base_name(expr)
        if name is None:
            return None
        found = lookup_declaration(self._registry, qualify(module, name))
        if found is None:
            return None
        owner, def_name = found
        node = owner.declarations.get(def_name)
        if isinstance(node, ast.ClassDef):
            return owner, node
        return None

    def _class_shape(
        self, module: ParsedModule, node: ast.ClassDef, seen: frozenset[str]
    ) -> tuple[_ClassKind, bool]:
        """Classify a class and tell whether it is constructed positionally."""
        bases = {qualify(module, n) for n in map(_base_name, node.bases) if n}
        metaclasses = {
            qualify(module, name)
            for kw in node.keywords
            if kw.arg == "metaclass" and (name := dotted_name(kw.value))
        }

        if bases & _PROTOCOL_BASES:
            return _ClassKind.PROTOCOL, False

        for decorator in node.decorator_list:
            target = decorator.func if isinstance(decorator, ast.Call) else decorator
            name = dotted_name(target)
            if name and qualify(module, name) in _RECORD_DECORATORS:
                kw_only = isinstance(decorator, ast.Call) and any(
                    kw.arg == "kw_only"
                    and isinstance(kw.value, ast.Constant)
                    and kw.value.value is True
                    for kw in decorator.keywords
                )
                return _ClassKind.RECORD, not kw_only

        if bases & _NAMEDTUPLE_BASES:
            return _ClassKind.NAMEDTUPLE, True
        if bases & _TYPEDDICT_BASES:
            return _ClassKind.TYPEDDICT, False
        if bases & _MODEL_BASES:
            return _ClassKind.MODEL, False
        if bases & _ENUM_BASES:
            return _ClassKind.ENUM, False
        if bases & _ABC_BASES or metaclasses & _ABC_METACLASSES:
            return _ClassKind.ABSTRACT, False

        key = f"{module.path}.{node.name}"
        for base in node.bases:
            found = self._lookup_class(module, base)
            if found is None or key in seen:
                continue
            inherited, positional = self._class_shape(*found, seen | {key})
            if inherited in _INHERITED_KINDS:
                return inherited, positional

        return _ClassKind.PLAIN, False

    def _collect_members(
        self, module: ParsedModule, node: ast.ClassDef, seen: frozenset[str]
    ) -> _ClassMembers:
        members = _ClassMembers()
        key = f"{module.path}.{node.name}"
        if key in seen:
            return members

        for base in reversed(node.bases):
            found = self._lookup_class(module, base)
            if found is not None:
                members.update(self._collect_members(*found, seen | {key}))

        own = _ClassMembers()
        for stmt in node.body:
            if isinstance(stmt, ast.AnnAssign) and isinstance(stmt.target, ast.Name):
                if _is_classvar(stmt.annotation, module):
                    own.attributes[stmt.target.id] = (module, stmt)
                else:
                    own.fields[stmt.target.id] = (module, node, stmt)
            elif isinstance(stmt, ast.Assign):
                for target in stmt.targets:
                    if isinstance(target, ast.Name):
                        own.attributes[target.id] = (module, stmt)
            elif isinstance(stmt, FunctionNode):
                decorators = _decorator_names(stmt)
                if decorators & {"setter", "deleter"}:
                    own.setters.add(stmt.name)
                    continue
                existing = own.methods.get(stmt.name)
                if existing is not None and _is_overload(stmt) and not _is_overload(existing[1]):
                    continue
                own.methods[stmt.name] = (module, stmt)

        members.update(own)
        return members


def _base_name(expr: ast.expr) -> str | None:
    if isinstance(expr, ast.Subscript):
        expr = expr.value
    return dotted_name(expr)


def _is_protocol_member(name: str) -> bool:
    if name in _NON_PROTOCOL_DUNDERS:
        return False
    if name.startswith("__") and name.endswith("__"):
        return True
    return _is_public(name)


def _typing_base(annotation: ast.expr, module: ParsedModule) -> str | None:
    """The typing name an annotation is spelled with, e.g. 'ClassVar'."""
    name = _base_name(annotation)
    if name is None:
        return None
    return typing_name(qualify(module, name))


def _is_classvar(annotation: ast.expr, module: ParsedModule) -> bool:
    return _typing_base(annotation, module) == "ClassVar"


def _is_final(annotation: ast.expr, module: ParsedModule) -> bool:
    return _typing_base(annotation, module) == "Final"


def _is_bare_final(annotation: ast.expr, module: ParsedModule) -> bool:
    return not isinstance(annotation, ast.Subscript) and _is_final(annotation, module)


def _is_typed_dict_total(owner: ast.ClassDef) -> bool:
    for kw in owner.keywords:
        if kw.arg == "total" and isinstance(kw.value, ast.Constant):
            return bool(kw.value.value)
    return True


def _field_has_default(
    module: ParsedModule, owner: ast.ClassDef, stmt: ast.AnnAssign, kind: _ClassKind
) -> bool:
    """Whether a field may be omitted when constructing the class."""
    if kind == _ClassKind.TYPEDDICT:
        marker = _typing_base(stmt.annotation, module)
        if marker == "NotRequired":
            return True
        if marker == "Required":
            return False
        return not _is_typed_dict_total(owner)

    value = stmt.value
    if value is None:
        return False
    if isinstance(value, ast.Call):
        func = dotted_name(value.func)
        if func and qualify(module, func) in _FIELD_FACTORIES:
            if any(kw.arg in _DEFAULT_KEYWORDS for kw in value.keywords):
                return True
            return bool(value.args) and not (
                isinstance(value.args[0], ast.Constant) and value.args[0].value is Ellipsis
            )
    return True


def _function_type(
    node: FunctionNode, resolver: AnnotationResolver, bound: bool = False
) -> FunctionType:
    """Build a signature; bound methods drop self/cls unless static."""
    args = node.args
    params: list[Parameter] = []

    positional = [*args.posonlyargs, *args.args]
    defaults_start = len(positional) - len(args.defaults)
    for i, arg in enumerate(positional):
        kind = (
            ParameterKind.POSITIONAL_ONLY
            if i < len(args.posonlyargs)
            else ParameterKind.POSITIONAL_OR_KEYWORD
        )
        params.append(Parameter(arg.arg, resolver.resolve(arg.annotation), kind, i >= defaults_start))

    binding: MethodBinding | None = None
    if bound:
        decorators = _decorator_names(node)
        if decorators & _STATIC_DECORATORS:
            binding = MethodBinding.STATIC
        else:
            binding = (
                MethodBinding.CLASS if decorators & _CLASS_DECORATORS else MethodBinding.INSTANCE
            )
            if params:
                params.pop(0)

    if args.vararg is not None:
        params.append(
            Parameter(
                args.vararg.arg,
                resolver.resolve(args.vararg.annotation),
                ParameterKind.VAR_POSITIONAL,
            )
        )
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        params.append(
            Parameter(
                arg.arg,
                resolver.resolve(arg.annotation),
                ParameterKind.KEYWORD_ONLY,
                default is not None,
            )
        )
    if args.kwarg is not None:
        params.append(
            Parameter(
                args.kwarg.arg,
                resolver.resolve(args.kwarg.annotation),
                ParameterKind.VAR_KEYWORD,
            )
        )

    return FunctionType(
        params=tuple(params),
        results=(resolver.resolve(node.returns),),
        is_async=isinstance(node, ast.AsyncFunctionDef),
        binding=binding,
    )


def _infer_type(value: ast.expr | None, resolver: AnnotationResolver) -> TypeDescriptor:
    """Infer the type of an unannotated value from its literal or constructor."""
    if value is None:
        return ANY
    if isinstance(value, ast.Constant):
        if value.value is None:
            return NONE
        if value.value is Ellipsis:
            return ANY
        return PrimitiveType(type(value.value).__name__)
    if isinstance(value, ast.UnaryOp) and isinstance(value.operand, ast.Constant):
        return _infer_type(value.operand, resolver)
    if isinstance(value, ast.JoinedStr):
        return PrimitiveType("str")
    if isinstance(value, (ast.List, ast.ListComp)):
        return GenericType("list")
    if isinstance(value, ast.Tuple):
        return GenericType("tuple")
    if isinstance(value, (ast.Set, ast.SetComp)):
        return GenericType("set")
    if isinstance(value, (ast.Dict, ast.DictComp)):
        return GenericType("dict")
    if isinstance(value, ast.Call):
        name = dotted_name(value.func)
        if name is None:
            return ANY
        qualified = resolver.qualify(name)
        if qualified in PRIMITIVES or qualified in BUILTIN_GENERICS:
            return resolver.resolve_name(name)
        found = resolver.lookup(qualified)
        if found is not None and isinstance(found[0].declarations.get(found[1]), ast.ClassDef):
            return NamedType(f"{found[0].path}.{found[1]}")
    return ANY

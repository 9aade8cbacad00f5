"""Type compatibility classifier.

Decides whether replacing one TypeDescriptor with another, for the same
symbol, keeps existing consumers working. The rules form a fixed policy
table, applied first-match-wins:

    identical shape                          compatible
    alias wrapper                            unwrap and re-classify
    variant differs                          incompatible
    value: only the literal differs          compatible
    value: constant -> variable              compatible
    value: variable -> constant              incompatible
    function: parameters unchanged,          compatible
              appended ones defaulted,
              results compatible
    function: parameter changed or removed,  incompatible
              appended without default,
              inserted before *args
    method: became an instance method        incompatible
    method: classmethod <-> staticmethod,    compatible
            instance -> class or static
    interface: methods only removed          compatible
    interface: method added or changed       incompatible
    struct: fields only added                compatible (see StructFieldPolicy)
    struct: field removed or retyped         incompatible
    anything else that differs               incompatible

Every TypeDescriptor variant has an explicit branch; an unknown shape
raises ClassificationError rather than falling through.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from apigate.core.descriptors import (
    POSITIONAL_KINDS,
    FunctionType,
    GenericType,
    InterfaceType,
    MethodBinding,
    NamedType,
    Parameter,
    ParameterKind,
    PrimitiveType,
    ReferenceType,
    StructType,
    TypeDescriptor,
    UnionType,
    ValueType,
    kind_label,
    structurally_equal,
)
from apigate.core.exceptions import ClassificationError


class StructFieldPolicy(Enum):
    """How field additions to struct-like types are judged.

    NAMED assumes consumers only access and construct by field name, so any
    addition is compatible. POSITIONAL also protects positional construction
    of dataclasses, NamedTuples and attrs classes.
    """

    NAMED = "named"
    POSITIONAL = "positional"


@dataclass(frozen=True)
class Verdict:
    """The classifier's decision for one changed symbol."""

    compatible: bool
    reason: str
    old: TypeDescriptor
    new: TypeDescriptor


_COMPATIBLE = (True, "")


class Classifier:
    """Applies the compatibility policy table to descriptor pairs."""

    def __init__(self, struct_field_policy: StructFieldPolicy = StructFieldPolicy.NAMED) -> None:
        self.struct_field_policy = struct_field_policy

    def classify(self, old: TypeDescriptor, new: TypeDescriptor) -> Verdict:
        """Classify the change from old to new.

        Raises:
            ClassificationError: If either descriptor has an unknown shape.
        """
        compatible, reason = self._compare(old, new)
        if not reason:
            reason = "identical" if structurally_equal(old, new) else "compatible change"
        return Verdict(compatible=compatible, reason=reason, old=old, new=new)

    def _compare(self, old: TypeDescriptor, new: TypeDescriptor) -> tuple[bool, str]:
        kind_label(old)
        kind_label(new)

        if structurally_equal(old, new):
            return _COMPATIBLE

        if isinstance(old, NamedType) and old.underlying is not None:
            return self._compare(old.underlying, new)
        if isinstance(new, NamedType) and new.underlying is not None:
            return self._compare(old, new.underlying)

        if type(old) is not type(new):
            return False, f"{kind_label(old)} became {kind_label(new)}"

        if isinstance(old, PrimitiveType):
            return False, f"type changed from {old} to {new}"
        if isinstance(old, NamedType):
            return False, f"type changed from {old} to {new}"
        if isinstance(old, ReferenceType) and isinstance(new, ReferenceType):
            return self._compare(old.target, new.target)
        if isinstance(old, GenericType) and isinstance(new, GenericType):
            return self._compare_generics(old, new)
        if isinstance(old, UnionType):
            return False, f"union changed from {old} to {new}"
        if isinstance(old, FunctionType) and isinstance(new, FunctionType):
            return self._compare_functions(old, new)
        if isinstance(old, StructType) and isinstance(new, StructType):
            return self._compare_structs(old, new)
        if isinstance(old, InterfaceType) and isinstance(new, InterfaceType):
            return self._compare_interfaces(old, new)
        if isinstance(old, ValueType) and isinstance(new, ValueType):
            return self._compare_values(old, new)

        raise ClassificationError(f"unrecognized descriptor shape {type(old).__name__}")

    def _compare_generics(self, old: GenericType, new: GenericType) -> tuple[bool, str]:
        if old.origin != new.origin:
            return False, f"generic origin changed from {old.origin} to {new.origin}"
        if len(old.args) != len(new.args):
            return False, f"{old.origin} type arguments changed from {old} to {new}"
        for i, (old_arg, new_arg) in enumerate(zip(old.args, new.args)):
            if not structurally_equal(old_arg, new_arg):
                return False, f"{old.origin} type argument {i} changed from {old_arg} to {new_arg}"
        return _COMPATIBLE

    def _compare_values(self, old: ValueType, new: ValueType) -> tuple[bool, str]:
        if old.constant is False and new.constant is True:
            return False, "variable became constant"

        if not structurally_equal(old.type, new.type):
            compatible, reason = self._compare(old.type, new.type)
            if not compatible:
                return False, reason

        if old.value != new.value:
            return True, f"value changed from {old.value} to {new.value}"
        if old.constant and not new.constant:
            return True, "constant became variable"
        return _COMPATIBLE

    def _compare_functions(self, old: FunctionType, new: FunctionType) -> tuple[bool, str]:
        binding_reason = ""
        if old.binding != new.binding:
            binding_reason = f"{_binding_label(old)} became {_binding_label(new)}"
            # class-level callers C.m(x) lose their receiver
            if new.binding in (MethodBinding.INSTANCE, None) or old.binding is None:
                return False, binding_reason

        if old.is_async != new.is_async:
            return False, "async became sync" if old.is_async else "sync became async"

        compatible, reason = self._compare_parameters(old.params, new.params)
        if not compatible:
            return False, reason

        if len(old.results) != len(new.results):
            return False, f"result count changed from {len(old.results)} to {len(new.results)}"
        for old_result, new_result in zip(old.results, new.results):
            compatible, result_reason = self._compare(old_result, new_result)
            if not compatible:
                return False, f"result changed: {result_reason}"

        return True, binding_reason or reason

    def _compare_parameters(
        self, old: tuple[Parameter, ...], new: tuple[Parameter, ...]
    ) -> tuple[bool, str]:
        old_pos = [p for p in old if p.kind in POSITIONAL_KINDS]
        new_pos = [p for p in new if p.kind in POSITIONAL_KINDS]

        for i, old_param in enumerate(old_pos):
            if i >= len(new_pos):
                return False, f"parameter {old_param.name!r} removed"
            compatible, reason = _compare_parameter(old_param, new_pos[i])
            if not compatible:
                return False, reason

        old_var_pos = _find_kind(old, ParameterKind.VAR_POSITIONAL)
        new_var_pos = _find_kind(new, ParameterKind.VAR_POSITIONAL)

        for new_param in new_pos[len(old_pos) :]:
            # extra positionals would have been absorbed by *args
            if old_var_pos is not None:
                return False, (
                    f"parameter {new_param.name!r} inserted before *{old_var_pos.name}"
                )
            if not new_param.has_default:
                return False, f"appended parameter {new_param.name!r} has no default"

        if old_var_pos is not None:
            if new_var_pos is None:
                return False, f"*{old_var_pos.name} removed"
            if not structurally_equal(old_var_pos.type, new_var_pos.type):
                return False, f"*{old_var_pos.name} type changed"

        old_kw = {p.name: p for p in old if p.kind == ParameterKind.KEYWORD_ONLY}
        new_kw = {p.name: p for p in new if p.kind == ParameterKind.KEYWORD_ONLY}
        for name, old_param in old_kw.items():
            if name not in new_kw:
                return False, f"keyword parameter {name!r} removed"
            compatible, reason = _compare_parameter(old_param, new_kw[name])
            if not compatible:
                return False, reason
        for name in sorted(new_kw.keys() - old_kw.keys()):
            if not new_kw[name].has_default:
                return False, f"keyword parameter {name!r} added without default"

        old_var_kw = _find_kind(old, ParameterKind.VAR_KEYWORD)
        new_var_kw = _find_kind(new, ParameterKind.VAR_KEYWORD)
        if old_var_kw is not None:
            if new_var_kw is None:
                return False, f"**{old_var_kw.name} removed"
            if not structurally_equal(old_var_kw.type, new_var_kw.type):
                return False, f"**{old_var_kw.name} type changed"

        if len(new) > len(old):
            return True, "parameters extended"
        return _COMPATIBLE

    def _compare_structs(self, old: StructType, new: StructType) -> tuple[bool, str]:
        new_fields = new.field_map
        for old_field in old.fields:
            new_field = new_fields.get(old_field.name)
            if new_field is None:
                return False, f"field {old_field.name!r} removed"
            if not structurally_equal(old_field.type, new_field.type):
                return False, (
                    f"field {old_field.name!r} retyped from {old_field.type} to {new_field.type}"
                )
            if old_field.has_default and not new_field.has_default:
                return False, f"field {old_field.name!r} lost its default"

        old_names = [f.name for f in old.fields]
        added = [f for f in new.fields if f.name not in old.field_map]

        if self.struct_field_policy == StructFieldPolicy.POSITIONAL and old.positional:
            if not new.positional:
                return False, "positional construction removed"
            if [f.name for f in new.fields[: len(old_names)]] != old_names:
                return False, "field order changed"
            for new_field in added:
                if not new_field.has_default:
                    return False, (
                        f"field {new_field.name!r} added without default "
                        "breaks positional construction"
                    )

        if added:
            return True, "fields added: " + ", ".join(f.name for f in added)
        return _COMPATIBLE

    def _compare_interfaces(self, old: InterfaceType, new: InterfaceType) -> tuple[bool, str]:
        old_methods = old.method_map
        new_methods = new.method_map

        added = sorted(new_methods.keys() - old_methods.keys())
        if added:
            return False, "methods added to required set: " + ", ".join(added)

        for name, new_sig in new_methods.items():
            if not structurally_equal(old_methods[name], new_sig):
                return False, f"method {name!r} signature changed"

        removed = sorted(old_methods.keys() - new_methods.keys())
        return True, "methods removed from required set: " + ", ".join(removed)


def _binding_label(func: FunctionType) -> str:
    return func.binding.value if func.binding is not None else "function"


def _find_kind(params: tuple[Parameter, ...], kind: ParameterKind) -> Parameter | None:
    for param in params:
        if param.kind == kind:
            return param
    return None


def _compare_parameter(old: Parameter, new: Parameter) -> tuple[bool, str]:
    """Compare one existing parameter with its counterpart in the new signature."""
    if old.kind != new.kind and not (
        old.kind == ParameterKind.POSITIONAL_ONLY
        and new.kind == ParameterKind.POSITIONAL_OR_KEYWORD
    ):
        return False, f"parameter {old.name!r} changed kind"
    if old.kind != ParameterKind.POSITIONAL_ONLY and old.name != new.name:
        return False, f"parameter {old.name!r} renamed to {new.name!r}"
    if not structurally_equal(old.type, new.type):
        return False, f"parameter {old.name!r} type changed from {old.type} to {new.type}"
    if old.has_default and not new.has_default:
        return False, f"parameter {old.name!r} lost its default"
    return _COMPATIBLE

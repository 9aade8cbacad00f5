"""Tests for the diff engine."""

import random

import pytest

from apigate.core.classifier import Classifier
from apigate.core.descriptors import (
    Field,
    FunctionType,
    InterfaceType,
    NamedType,
    Parameter,
    PrimitiveType,
    StructType,
    TypeDescriptor,
    ValueType,
)
from apigate.core.differ import UNKNOWN_REASON, DiffEngine, diff
from apigate.core.exceptions import ClassificationError
from apigate.core.models import ModuleSnapshot, RepositorySnapshot, Symbol, SymbolKind
from apigate.core.report import (
    ModuleAdded,
    ModuleRemoved,
    SymbolAdded,
    SymbolChanged,
    SymbolRemoved,
)

INT = PrimitiveType("int")
STR = PrimitiveType("str")
BYTES = PrimitiveType("bytes")

ADD = FunctionType(params=(Parameter("a", INT), Parameter("b", INT)), results=(INT,))


def sym(module: str, name: str, type_: TypeDescriptor, kind=SymbolKind.FUNCTION) -> Symbol:
    return Symbol(module=module, name=name, kind=kind, type=type_)


def snapshot(label: str, modules: dict[str, dict[str, TypeDescriptor]]) -> RepositorySnapshot:
    """Build a snapshot from {module: {name: descriptor}}."""
    return RepositorySnapshot.build(
        label,
        [
            ModuleSnapshot.from_symbols(path, [sym(path, n, t) for n, t in symbols.items()])
            for path, symbols in modules.items()
        ],
    )


class _Unclassifiable:
    """A descriptor shape no policy knows about."""

    def __str__(self) -> str:
        return "unclassifiable"


class TestScenarios:
    """Tests for the basic diff scenarios."""

    def test_addition(self) -> None:
        """Test that a new function is one compatible addition."""
        base = snapshot("v1", {"calc": {"add": ADD}})
        target = snapshot("v2", {"calc": {"add": ADD, "sub": ADD}})

        report = diff(base, target)

        assert list(report) == [SymbolAdded("calc", "sub")]
        assert report.compatible

    def test_removal(self) -> None:
        """Test that a removed function is one incompatible removal."""
        base = snapshot("v1", {"calc": {"add": ADD}})
        target = snapshot("v2", {"calc": {}})

        report = diff(base, target)

        assert list(report) == [SymbolRemoved("calc", "add")]
        assert not report.compatible

    def test_incompatible_signature(self) -> None:
        """Test that retyping a parameter is one incompatible change."""
        changed = FunctionType(params=(Parameter("a", STR), Parameter("b", INT)), results=(INT,))
        base = snapshot("v1", {"calc": {"add": ADD}})
        target = snapshot("v2", {"calc": {"add": changed}})

        report = diff(base, target)

        assert len(report) == 1
        change = report[0]
        assert isinstance(change, SymbolChanged)
        assert not change.compatible
        assert str(change) == (
            "add changed from (a: int, b: int) -> int to (a: str, b: int) -> int"
        )

    def test_struct_field_addition(self) -> None:
        """Test that adding a struct field is compatible."""
        old = StructType((Field("name", STR),))
        new = StructType((Field("name", STR), Field("timeout", INT)))

        report = diff(
            snapshot("v1", {"cfg": {"Config": old}}), snapshot("v2", {"cfg": {"Config": new}})
        )

        assert len(report) == 1
        assert report[0].compatible

    def test_interface_narrowing(self) -> None:
        """Test that removing a required method is compatible."""
        read = FunctionType(params=(Parameter("n", INT),), results=(BYTES,))
        write = FunctionType(params=(Parameter("data", BYTES),), results=(INT,))
        old = InterfaceType((("read", read), ("write", write)))
        new = InterfaceType((("read", read),))

        report = diff(
            snapshot("v1", {"io": {"Stream": old}}), snapshot("v2", {"io": {"Stream": new}})
        )

        assert len(report) == 1
        assert isinstance(report[0], SymbolChanged)
        assert report[0].compatible

    def test_module_added_and_removed(self) -> None:
        """Test module-level changes."""
        base = snapshot("v1", {"legacy": {"f": ADD}, "shared": {}})
        target = snapshot("v2", {"fresh": {"f": ADD}, "shared": {}})

        report = diff(base, target)

        assert list(report) == [ModuleAdded("fresh"), ModuleRemoved("legacy")]

    def test_alias_rename_produces_nothing(self) -> None:
        """Test that renaming an alias with the same shape is not a change."""
        base = snapshot("v1", {"m": {"UserId": NamedType("m.Old", INT)}})
        target = snapshot("v2", {"m": {"UserId": NamedType("m.New", INT)}})

        assert len(diff(base, target)) == 0

    def test_symbol_kind_change_is_incompatible(self) -> None:
        """Test that a struct turning into a plain class is reported even with equal fields.

        A keyword-constructed dataclass and a plain class with the same
        annotations have equal shapes; the lost generated __init__ breaks
        Config(name=...) callers.
        """
        fields = StructType((Field("name", STR),))
        base = RepositorySnapshot.build(
            "v1",
            [ModuleSnapshot.from_symbols("cfg", [sym("cfg", "Config", fields, SymbolKind.STRUCT)])],
        )
        target = RepositorySnapshot.build(
            "v2",
            [
                ModuleSnapshot.from_symbols(
                    "cfg",
                    [sym("cfg", "Config", NamedType("cfg.Config", fields), SymbolKind.NAMED_TYPE)],
                )
            ],
        )

        report = diff(base, target)

        assert len(report) == 1
        assert not report.compatible
        assert report[0].reason == "struct became named type"  # type: ignore[union-attr]

    def test_constant_to_variable_kind_change_uses_values(self) -> None:
        """Test that constant and variable kinds defer to the value comparison."""
        base = RepositorySnapshot.build(
            "v1",
            [
                ModuleSnapshot.from_symbols(
                    "cfg", [sym("cfg", "LIMIT", ValueType(INT, "3", True), SymbolKind.CONSTANT)]
                )
            ],
        )
        target = RepositorySnapshot.build(
            "v2",
            [
                ModuleSnapshot.from_symbols(
                    "cfg", [sym("cfg", "LIMIT", ValueType(INT), SymbolKind.VARIABLE)]
                )
            ],
        )

        report = diff(base, target)

        assert report.compatible
        assert report[0].reason == "constant became variable"  # type: ignore[union-attr]


class TestProperties:
    """Tests for reflexivity, symmetry and determinism."""

    @pytest.fixture
    def surfaces(self) -> tuple[RepositorySnapshot, RepositorySnapshot]:
        base = snapshot(
            "v1",
            {
                "pkg": {"add": ADD, "VERSION": STR},
                "pkg.io": {"read": ADD, "write": ADD},
                "pkg.old": {"gone": ADD},
            },
        )
        target = snapshot(
            "v2",
            {
                "pkg": {"add": ADD, "sub": ADD},
                "pkg.io": {"read": FunctionType(results=(INT,)), "write": ADD},
                "pkg.new": {"fresh": ADD},
            },
        )
        return base, target

    def test_reflexivity(self, surfaces) -> None:
        """Test that a snapshot diffed with itself has no changes."""
        base, target = surfaces

        assert len(diff(base, base)) == 0
        assert len(diff(target, target)) == 0

    def test_symmetry_of_labels(self, surfaces) -> None:
        """Test that additions one way are removals the other way."""
        base, target = surfaces

        forward = diff(base, target)
        backward = diff(target, base)

        added = {(c.module, c.name) for c in forward if isinstance(c, SymbolAdded)}
        removed_back = {(c.module, c.name) for c in backward if isinstance(c, SymbolRemoved)}
        assert added == removed_back == {("pkg", "sub")}

        modules_added = {c.path for c in forward if isinstance(c, ModuleAdded)}
        modules_removed_back = {c.path for c in backward if isinstance(c, ModuleRemoved)}
        assert modules_added == modules_removed_back == {"pkg.new"}

    def test_output_order(self, surfaces) -> None:
        """Test that changes are ordered by module path, then symbol name."""
        base, target = surfaces

        assert diff(base, target).lines() == [
            'identifier "pkg.VERSION" removed',
            'identifier "pkg.sub" added',
            "read changed from (a: int, b: int) -> int to () -> int",
            'module "pkg.new" added',
            'module "pkg.old" removed',
        ]

    def test_determinism_under_insertion_order(self, surfaces) -> None:
        """Test that snapshots built in shuffled order diff identically."""
        base, target = surfaces
        expected = diff(base, target)

        rng = random.Random(7)
        for _ in range(5):
            modules = list(target.modules.values())
            rng.shuffle(modules)
            shuffled = RepositorySnapshot.build(
                "v2",
                [
                    ModuleSnapshot.from_symbols(
                        m.path, rng.sample(list(m), len(m))
                    )
                    for m in modules
                ],
            )
            assert diff(base, shuffled) == expected

    def test_worker_count_does_not_change_output(self, surfaces) -> None:
        """Test that parallel diffing gives the same ordered report."""
        base, target = surfaces

        sequential = DiffEngine(max_workers=1).diff(base, target)
        parallel = DiffEngine(max_workers=8).diff(base, target)

        assert parallel == sequential

    def test_labels_carried(self, surfaces) -> None:
        """Test that the report carries both revision labels."""
        base, target = surfaces

        report = diff(base, target)

        assert report.base_label == "v1"
        assert report.target_label == "v2"


class TestClassificationFailures:
    """Tests for isolated and strict classification errors."""

    def _surfaces(self) -> tuple[RepositorySnapshot, RepositorySnapshot]:
        base = snapshot("v1", {"m": {"broken": ADD, "later": ADD}})
        target = snapshot(
            "v2",
            {"m": {"broken": _Unclassifiable(), "later": FunctionType(results=(INT,))}},  # type: ignore[dict-item]
        )
        return base, target

    def test_failure_isolated_by_default(self) -> None:
        """Test that an unclassifiable symbol is reported incompatible and the diff continues."""
        base, target = self._surfaces()

        report = diff(base, target)

        assert len(report) == 2
        broken = report[0]
        assert isinstance(broken, SymbolChanged)
        assert broken.name == "broken"
        assert not broken.compatible
        assert broken.reason.startswith(UNKNOWN_REASON)
        assert report[1].name == "later"  # type: ignore[union-attr]

    def test_strict_aborts(self) -> None:
        """Test that strict mode aborts with module and symbol context."""
        base, target = self._surfaces()

        with pytest.raises(ClassificationError) as exc_info:
            diff(base, target, strict=True)

        assert exc_info.value.module == "m"
        assert exc_info.value.symbol == "broken"
        assert "m.broken" in str(exc_info.value)

    def test_custom_classifier_used(self) -> None:
        """Test that the engine consults the given classifier."""

        class AlwaysIncompatible(Classifier):
            def classify(self, old, new):
                verdict = super().classify(old, new)
                return type(verdict)(False, "forced", old, new)

        base = snapshot("v1", {"m": {"f": ADD}})
        target = snapshot(
            "v2",
            {"m": {"f": FunctionType(params=ADD.params, results=(NamedType("m.Alias", STR),))}},
        )

        report = DiffEngine(classifier=AlwaysIncompatible()).diff(base, target)

        assert report[0].reason == "forced"  # type: ignore[union-attr]


class TestSnapshotInvariants:
    """Tests for the checks snapshots run on construction."""

    def test_unexported_symbol_rejected(self) -> None:
        """Test that a snapshot refuses symbols outside the public surface."""
        hidden = Symbol(module="m", name="f", kind=SymbolKind.FUNCTION, type=ADD, exported=False)

        with pytest.raises(ValueError, match="unexported symbol m.f"):
            ModuleSnapshot("m", {"f": hidden})

    def test_symbol_key_mismatch_rejected(self) -> None:
        """Test that every symbol is keyed by its own name."""
        with pytest.raises(ValueError, match="does not match name"):
            ModuleSnapshot("m", {"g": sym("m", "f", ADD)})

    def test_module_key_mismatch_rejected(self) -> None:
        """Test that every module is keyed by its own path."""
        with pytest.raises(ValueError, match="does not match path"):
            RepositorySnapshot("v1", {"a": ModuleSnapshot("b", {})})

    def test_symbols_iterate_sorted(self) -> None:
        """Test that iteration order is by name whatever the insertion order."""
        module = ModuleSnapshot.from_symbols("m", [sym("m", "zeta", ADD), sym("m", "alpha", ADD)])

        assert [s.name for s in module] == ["alpha", "zeta"]

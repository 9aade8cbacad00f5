"""CLI entry point for apigate."""

import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.markup import escape

from apigate.core.classifier import Classifier, StructFieldPolicy
from apigate.core.config import Settings, load_settings
from apigate.core.differ import DiffEngine
from apigate.core.exceptions import ApiGateError
from apigate.core.logging import configure_logging
from apigate.core.models import BuildStats
from apigate.core.snapshot import SnapshotBuilder
from apigate.vcs import RevisionRetriever

app = typer.Typer(
    name="apigate",
    help="Semantic API compatibility checks for Python libraries.",
    no_args_is_help=True,
)
# Report lines and JSON go to stdout; everything else goes to stderr.
console = Console(stderr=True)

EXIT_FAILURE = 1
EXIT_INCOMPATIBLE = 3


def fail(error: Exception) -> typer.Exit:
    """Print an error and return the exit to raise."""
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    return typer.Exit(code=EXIT_FAILURE)


def get_settings(config: Path | None, verbose: bool, **overrides: Any) -> Settings:
    """Load settings and configure logging from them."""
    try:
        settings = load_settings(
            config, log_level="DEBUG" if verbose else None, **overrides
        )
    except ApiGateError as e:
        raise fail(e) from e
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")
    return settings


def print_stats(stats: BuildStats | None) -> None:
    if stats is None:
        return
    console.print(f"  Modules: {stats.modules}")
    console.print(f"  Symbols: {stats.symbols}")
    if stats.skipped:
        console.print(f"  [dim]Skipped: {stats.skipped}[/]")


@app.command()
def check(
    locator: Annotated[str, typer.Argument(help="Git URL or local repository path")],
    base: Annotated[str, typer.Option("--base", "-b", help="Base revision")],
    target: Annotated[str, typer.Option("--target", "-t", help="Target revision")] = "HEAD",
    show_all: Annotated[
        bool, typer.Option("--all", "-a", help="Print compatible changes too")
    ] = False,
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
    strict: Annotated[
        bool, typer.Option("--strict", help="Abort when a symbol cannot be classified")
    ] = False,
    struct_fields: Annotated[
        StructFieldPolicy | None,
        typer.Option("--struct-fields", help="How struct field additions are judged"),
    ] = None,
    exclude: Annotated[
        list[str] | None, typer.Option("--exclude", "-e", help="Patterns to exclude")
    ] = None,
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="YAML config file")
    ] = None,
    fail_on_incompatible: Annotated[
        bool | None,
        typer.Option(
            "--fail-on-incompatible/--no-fail-on-incompatible",
            help="Exit with status 3 when incompatible changes are found",
        ),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Check that TARGET stays backward compatible with BASE."""
    settings = get_settings(
        config,
        verbose,
        strict_classification=True if strict else None,
        struct_field_policy=struct_fields,
        fail_on_incompatible=fail_on_incompatible,
    )
    builder = SnapshotBuilder(
        exclude_patterns=[*settings.exclude, *(exclude or [])],
        max_workers=settings.max_workers,
    )
    engine = DiffEngine(
        classifier=Classifier(settings.struct_field_policy),
        strict=settings.strict_classification,
        max_workers=settings.max_workers,
    )

    try:
        with RevisionRetriever(locator) as retriever:
            base_root = retriever.checkout(base)
            target_root = retriever.checkout(target)
            base_snapshot, target_snapshot = builder.build_pair(
                base_root, target_root, base_label=base, target_label=target
            )
        report = engine.diff(base_snapshot, target_snapshot)
    except ApiGateError as e:
        raise fail(e) from e

    shown = list(report) if show_all else [c for c in report if not c.compatible]

    if output_json:
        result = report.to_dict()
        result["changes"] = [change.to_dict() for change in shown]
        print(json.dumps(result, indent=2))
    else:
        for change in shown:
            print(change)

    incompatible = sum(1 for change in report if not change.compatible)
    if incompatible:
        console.print(
            f"[red]{incompatible} incompatible change(s)[/red] "
            f"between [cyan]{escape(base)}[/] and [cyan]{escape(target)}[/]"
        )
    else:
        console.print(
            f"[green]Compatible:[/green] {len(report)} change(s) "
            f"between [cyan]{escape(base)}[/] and [cyan]{escape(target)}[/]"
        )

    if incompatible and settings.fail_on_incompatible:
        raise typer.Exit(code=EXIT_INCOMPATIBLE)


@app.command()
def surface(
    path: Annotated[
        Path, typer.Argument(help="Source tree to inspect", exists=True, file_okay=False)
    ] = Path("."),
    output_json: Annotated[bool, typer.Option("--json", "-j", help="Output as JSON")] = False,
    exclude: Annotated[
        list[str] | None, typer.Option("--exclude", "-e", help="Patterns to exclude")
    ] = None,
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="YAML config file")
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Show the public surface extracted from a directory."""
    path = path.resolve()
    settings = get_settings(config, verbose)
    builder = SnapshotBuilder(
        exclude_patterns=[*settings.exclude, *(exclude or [])],
        max_workers=settings.max_workers,
    )

    try:
        snapshot = builder.build(path, label=path.name)
    except ApiGateError as e:
        raise fail(e) from e

    if output_json:
        result = {
            "label": snapshot.label,
            "modules": {
                module.path: [
                    {
                        "name": symbol.name,
                        "kind": symbol.kind.value,
                        "type": str(symbol.type),
                    }
                    for symbol in module
                ]
                for module in snapshot.modules.values()
            },
        }
        print(json.dumps(result, indent=2))
    else:
        for module in snapshot.modules.values():
            for symbol in module:
                print(f"{symbol.qualified_name}: {symbol.type}")

    console.print(f"[green]Done![/green] [cyan]{escape(path.name)}[/]")
    print_stats(builder.last_stats)


if __name__ == "__main__":
    app()

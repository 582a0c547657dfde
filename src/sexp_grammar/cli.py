"""
sexp-grammar command line interface.

Grammar files hold the JSON form of a grammar (a ``ref`` or ``inline``
object, as produced by ``model_dump_json``).

Commands:
    validate   report malformed parts of a grammar
    check      match an S-expression against a grammar
    simplify   print the grammar with single-use variables elided
"""

from __future__ import annotations

import logging
import platform
import sys
from pathlib import Path
from typing import Annotated, Any

import typer
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.table import Table

from ._version import get_version
from .core import ir
from .core.cache import canonicalize
from .core.errors import GrammarError, SexpParseError
from .core.recognizer import mismatches
from .core.sexp import parse_sexp
from .core.simplifier import simplify_grammar
from .core.validator import validate_grammar

logger = logging.getLogger(__name__)

console = Console()

_GRAMMAR_ADAPTER: TypeAdapter[Any] = TypeAdapter(ir.Grammar)


def version_callback(value: bool) -> None:
    """Display version and environment information."""
    if value:
        typer.echo(f"sexp-grammar {get_version()}")
        typer.echo(f"Python {platform.python_version()} ({platform.python_implementation()})")
        raise typer.Exit()


app = typer.Typer(
    help="Validate, check and simplify S-expression grammars.",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version information",
        ),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    """sexp-grammar main callback for global options."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def load_grammar(path: Path) -> ir.Grammar:
    """Load a grammar file and share its generic groups through the cache."""
    try:
        grammar = _GRAMMAR_ADAPTER.validate_json(path.read_text())
    except PydanticValidationError as e:
        typer.echo(f"Invalid grammar file {path}:\n{e}", err=True)
        raise typer.Exit(code=2) from e
    logger.debug("Loaded grammar from %s", path)
    return canonicalize(grammar)


GrammarFile = Annotated[
    Path,
    typer.Argument(exists=True, dir_okay=False, readable=True, help="Grammar JSON file"),
]


@app.command("validate")
def validate_command(
    grammar_file: GrammarFile,
    show_warnings: Annotated[
        bool, typer.Option("--warnings/--no-warnings", help="Include warnings")
    ] = True,
) -> None:
    """Report malformed parts of a grammar. Exits 1 when errors are found."""
    violations = validate_grammar(load_grammar(grammar_file))
    if not show_warnings:
        violations = [v for v in violations if v.is_error]
    errors = [v for v in violations if v.is_error]

    if violations:
        table = Table(title="Grammar violations")
        table.add_column("Severity")
        table.add_column("Kind")
        table.add_column("Type", style="dim")
        table.add_column("Message")
        for violation in violations:
            severity = (
                "[red]error[/red]" if violation.is_error else "[yellow]warning[/yellow]"
            )
            table.add_row(
                severity, str(violation.kind), violation.type_name or "", violation.message
            )
        console.print(table)

    if errors:
        console.print(f"\n[red]{len(errors)} error(s)[/red]")
        raise typer.Exit(code=1)
    console.print("[green]✓ Grammar is valid[/green]")


@app.command("check")
def check_command(
    grammar_file: GrammarFile,
    sexp: Annotated[str, typer.Argument(help="S-expression to check; '-' reads stdin")],
) -> None:
    """Check that an S-expression matches a grammar. Exits 1 on mismatch."""
    grammar = load_grammar(grammar_file)
    text = sys.stdin.read() if sexp == "-" else sexp
    try:
        value = parse_sexp(text)
    except SexpParseError as e:
        typer.echo(f"Invalid S-expression: {e}", err=True)
        raise typer.Exit(code=2) from e

    try:
        problems = mismatches(grammar, value)
    except GrammarError as e:
        typer.echo(f"Grammar error: {e}", err=True)
        raise typer.Exit(code=2) from e

    if not problems:
        typer.echo("✓ matches")
        return
    typer.echo("✗ does not match")
    for problem in problems:
        typer.echo(f"  {problem.format()}")
    raise typer.Exit(code=1)


@app.command("simplify")
def simplify_command(
    grammar_file: GrammarFile,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Write to file instead of stdout")
    ] = None,
    indent: Annotated[int, typer.Option("--indent", help="JSON indentation")] = 2,
) -> None:
    """Elide single-use variables and print the resulting grammar."""
    try:
        simplified = simplify_grammar(load_grammar(grammar_file))
    except GrammarError as e:
        typer.echo(f"Grammar error: {e}", err=True)
        raise typer.Exit(code=2) from e

    text = _GRAMMAR_ADAPTER.dump_json(simplified, indent=indent).decode()
    if output is None:
        typer.echo(text)
        return
    output.write_text(text + "\n")
    typer.echo(f"✓ Wrote {output}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()

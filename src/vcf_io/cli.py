"""vcf-io: parse, validate and rewrite VCF files."""

import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import ValidationConfig, load_config, validate_config
from .document import VCFDocument
from .errors import ConfigValidationError, VCFError
from .header import parse_sample_names


def version_callback(value: bool) -> None:
    if value:
        print(__version__)
        raise typer.Exit()


app = typer.Typer(name="vcf-io", help="Parse, validate and rewrite VCF files")
console = Console()

LevelOption = Annotated[
    str | None,
    typer.Option("--level", "-l", help="Validation level: strict, relaxed or basic"),
]


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version", callback=version_callback, is_eager=True, help="Show version and exit"
        ),
    ] = None,
) -> None:
    pass


def setup_logging(verbose: bool, quiet: bool) -> None:
    """Configure logging based on verbosity flags."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )
    logging.getLogger("vcf_io").setLevel(level)


def _resolve_config(
    config_file: Path | None,
    level: str | None,
    keep_going: bool | None = None,
    check_ids: bool | None = None,
) -> ValidationConfig:
    overrides = {
        "validation": level,
        "fail_fast": None if keep_going is None else not keep_going,
        "check_unique_ids": check_ids,
    }
    try:
        if config_file is not None:
            return load_config(config_file, overrides=overrides)
        values = {k: v for k, v in overrides.items() if v is not None}
        validate_config(values)
        return ValidationConfig(**values)
    except (ConfigValidationError, FileNotFoundError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1) from None


def _require_file(vcf_path: Path) -> None:
    if not vcf_path.exists():
        console.print(f"[red]Error: VCF file not found: {vcf_path}[/red]")
        raise typer.Exit(1)


@app.command()
def validate(
    vcf_path: Path = typer.Argument(..., help="Path to VCF file (.vcf, .vcf.gz)"),
    level: LevelOption = None,
    config_file: Annotated[
        Path | None, typer.Option("--config", "-c", help="TOML configuration file")
    ] = None,
    keep_going: bool = typer.Option(
        False, "--keep-going", "-k", help="Report every invalid record instead of stopping"
    ),
    check_ids: bool = typer.Option(
        False, "--check-ids", help="Reject IDs repeated across records"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-error output"),
) -> None:
    """Parse and validate a VCF file."""
    setup_logging(verbose, quiet)
    _require_file(vcf_path)
    config = _resolve_config(
        config_file, level, keep_going=keep_going or None, check_ids=check_ids or None
    )

    document = VCFDocument.from_config(config, file=vcf_path)
    try:
        errors = document.parse_and_validate()
    except VCFError as e:
        console.print(f"[red]✗ {escape(str(e))}[/red]")
        raise typer.Exit(1) from None

    for error in errors:
        console.print(f"[red]✗ {escape(str(error))}[/red]")

    console.print(f"Format: {document.header.version}")
    console.print(f"Samples: {len(document.sample_names)}")
    console.print(f"Valid records: {len(document.records):,}")
    if errors:
        console.print(f"[red]✗ {len(errors):,} invalid records ({config.validation})[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Validation passed ({config.validation})[/green]")


@app.command()
def rewrite(
    vcf_path: Path = typer.Argument(..., help="Path to VCF file (.vcf, .vcf.gz)"),
    output: Path = typer.Option(..., "--output", "-o", help="Output VCF path (.gz compresses)"),
    level: LevelOption = None,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-error output"),
) -> None:
    """Validate a VCF file and write it back out."""
    setup_logging(verbose, quiet)
    _require_file(vcf_path)
    config = _resolve_config(None, level)

    document = VCFDocument.from_config(config, file=vcf_path)
    try:
        document.parse_and_validate()
        written = document.write(output)
    except VCFError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1) from None

    console.print(f"[green]✓[/green] Wrote {written:,} records to {output}")


@app.command()
def samples(
    vcf_path: Path = typer.Argument(..., help="Path to VCF file (.vcf, .vcf.gz)"),
) -> None:
    """Print the sample names of a VCF file."""
    _require_file(vcf_path)
    for name in parse_sample_names(vcf_path):
        console.print(name)


@app.command()
def header(
    vcf_path: Path = typer.Argument(..., help="Path to VCF file (.vcf, .vcf.gz)"),
    level: LevelOption = None,
) -> None:
    """Show the field, FILTER and ALT declarations of a VCF header."""
    _require_file(vcf_path)
    config = _resolve_config(None, level)

    document = VCFDocument.from_config(config, file=vcf_path)
    try:
        document.header.parse_and_validate(vcf_path)
    except VCFError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(1) from None

    for kind in ("INFO", "FORMAT"):
        table = Table(title=kind)
        table.add_column("ID")
        table.add_column("Number")
        table.add_column("Type")
        table.add_column("Description")
        for field in document.header.typed_section(kind):
            table.add_row(field.id, field.number, field.type, escape(field.description))
        console.print(table)

    for kind in ("FILTER", "ALT"):
        declarations = document.header.typed_section(kind)
        if not declarations:
            continue
        table = Table(title=kind)
        table.add_column("ID")
        table.add_column("Description")
        for declaration in declarations:
            table.add_row(declaration.id, escape(declaration.description))
        console.print(table)


if __name__ == "__main__":
    app()

"""
CRF Extractor - Main Entry Point

Ties together text recovery and the CRF pipeline behind a small CLI.

Architecture Overview:
┌──────────────┐
│  CRF upload  │  (.pdf, or .txt with pre-extracted text)
└──────┬───────┘
       │
       ▼
┌──────────────────────────────────────────────┐
│              TEXT RECOVERY                   │
│   pdfplumber ──(fallback)──> PyMuPDF         │
└──────────────────────┬───────────────────────┘
                       │ raw text
                       ▼
┌──────────────────────────────────────────────┐
│              CRF PIPELINE                    │
│  Field Extractor ─> Document ─> Cleaner      │
│        ▲                          (checkbox  │
│        │                           resolver) │
│   mapping table (YAML)                       │
└──────────────────────┬───────────────────────┘
                       │
                       ▼
                 CRF JSON document
"""

import sys
from pathlib import Path
from typing import Optional
from dataclasses import dataclass
import json

import click
from loguru import logger
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn
from rich.table import Table

from crf import (
    CRFExtractionPipeline,
    ExtractionContext,
    ExtractionReport,
    MappingConfigurationError,
    MappingTable,
    UpstreamParseError,
    load_mapping_tables,
)
from crf.mapping import DEFAULT_MAPPINGS_DIR
from extractor import read_document_text


SUPPORTED_SUFFIXES = ('.pdf', '.txt')


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None):
    """Configure loguru logging."""
    # Remove default handler
    logger.remove()

    log_level = "DEBUG" if verbose else "INFO"
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{message}</cyan>",
        level=log_level,
        colorize=True
    )

    if log_file:
        logger.add(
            log_file,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} | {message}",
            level="DEBUG",
            rotation="10 MB"
        )


@dataclass
class ExtractionConfig:
    """Configuration for one CLI invocation."""

    form_type: str
    mappings_dir: Path = DEFAULT_MAPPINGS_DIR
    patient_id: str = "patientId"
    scheduled_date: str = ""


class CRFExtractor:
    """
    Reads CRF files and runs them through the pipeline.

    Usage:
        extractor = CRFExtractor(ExtractionConfig(form_type="male_infertility"))
        report = extractor.process_file(Path("crf.pdf"))
        print(report.document)
    """

    def __init__(self, config: ExtractionConfig):
        self.config = config
        self.tables = load_mapping_tables(config.mappings_dir)
        self.table = self._select_table(config.form_type)
        self.pipeline = CRFExtractionPipeline()
        self.context = ExtractionContext(
            patient_id=config.patient_id,
            scheduled_date=config.scheduled_date,
        )

    def _select_table(self, form_type: str) -> MappingTable:
        if form_type not in self.tables:
            available = ", ".join(sorted(self.tables)) or "none"
            raise MappingConfigurationError(
                f"Unknown form type '{form_type}' (available: {available})"
            )
        return self.tables[form_type]

    def process_file(self, path: Path) -> ExtractionReport:
        """
        Extract one CRF file.

        Raises:
            UpstreamParseError: If no text could be recovered
            MappingConfigurationError: If the mapping table is malformed
        """
        text = read_document_text(path)
        return self.pipeline.run_with_report(text, self.table, self.context)

    def process_directory(self, input_dir: Path, console: Console) -> list[tuple[Path, ExtractionReport]]:
        """
        Extract every supported file in a directory.

        Files that cannot be read are logged and skipped; a malformed
        mapping table stops the whole batch.
        """
        files = sorted(
            p for p in input_dir.iterdir()
            if p.is_file() and p.suffix.lower() in SUPPORTED_SUFFIXES
        )

        if not files:
            logger.warning(f"No CRF files found in {input_dir}")
            return []

        logger.info(f"Found {len(files)} CRF files to process")
        results = []

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            console=console
        ) as progress:
            task = progress.add_task("Extracting CRFs...", total=len(files))

            for path in files:
                progress.update(task, description=f"Extracting {path.name}...")
                try:
                    results.append((path, self.process_file(path)))
                except UpstreamParseError as e:
                    logger.error(f"Skipping {path.name}: {e}")
                progress.advance(task)

        return results


def print_report(report: ExtractionReport, console: Console, source: str = ""):
    """Print a summary table of one extraction."""
    table = Table(title=f"CRF Extraction: {source or report.form_type}")

    table.add_column("Label", style="cyan")
    table.add_column("Status", style="bold")

    for label in report.matched_labels:
        table.add_row(label, "[green]✓ found")
    for label in report.missing_labels:
        table.add_row(label, "[red]✗ missing")
    for label in report.skipped_labels:
        table.add_row(label, "[yellow]context")

    console.print()
    console.print(table)
    console.print(
        f"[bold]Extracted:[/] {len(report.matched_labels)} fields "
        f"({report.extraction_rate:.0%}) in {report.processing_time_ms} ms"
    )
    console.print(f"[bold]Variant flag:[/] {report.variant_flag}")


def write_json(data, output_path: Path):
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


@click.group()
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option(
    '--log-file',
    type=click.Path(path_type=Path),
    default=None,
    help='Write logs to file'
)
def cli(verbose: bool, log_file: Optional[Path]):
    """CRF Extractor - Turn clinical research form PDFs into structured JSON."""
    setup_logging(verbose=verbose, log_file=log_file)


@cli.command()
@click.option(
    '--input', '-i',
    'input_path',
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help='CRF file (.pdf or .txt) or directory'
)
@click.option(
    '--form', '-f',
    'form_type',
    required=True,
    help='Form type (mapping table name, see list-forms)'
)
@click.option(
    '--output', '-o',
    'output_path',
    type=click.Path(path_type=Path),
    default=None,
    help='Output JSON file (stdout if omitted)'
)
@click.option('--patient-id', default='patientId', help='Subject identifier')
@click.option('--scheduled-date', default='', help='Visit date (defaults to today)')
@click.option(
    '--mappings',
    'mappings_dir',
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=DEFAULT_MAPPINGS_DIR,
    help='Directory of mapping table YAML files'
)
@click.option(
    '--json-report',
    type=click.Path(path_type=Path),
    default=None,
    help='Write detailed JSON report'
)
def extract(
    input_path: Path,
    form_type: str,
    output_path: Optional[Path],
    patient_id: str,
    scheduled_date: str,
    mappings_dir: Path,
    json_report: Optional[Path]
):
    """
    Extract structured CRF data from a form.

    Examples:

        # Single PDF to stdout
        python main.py extract -i crf.pdf -f male_infertility

        # Directory of forms to one JSON file
        python main.py extract -i ./crfs/ -f male_sexual_dysfunction -o crfs.json
    """
    console = Console(stderr=True)

    config = ExtractionConfig(
        form_type=form_type,
        mappings_dir=mappings_dir,
        patient_id=patient_id,
        scheduled_date=scheduled_date,
    )

    try:
        extractor = CRFExtractor(config)

        if input_path.is_file():
            report = extractor.process_file(input_path)
            print_report(report, console, input_path.name)
            documents = report.document
            reports = report.to_dict()
        else:
            results = extractor.process_directory(input_path, console)
            for path, report in results:
                print_report(report, console, path.name)
            documents = [
                {'source_file': path.name, 'crf_data': report.document}
                for path, report in results
            ]
            reports = [
                dict(report.to_dict(), source_file=path.name)
                for path, report in results
            ]

    except UpstreamParseError as e:
        console.print(f"[bold red]Bad input file:[/] {e}")
        raise SystemExit(1)
    except MappingConfigurationError as e:
        console.print(f"[bold red]Bad mapping configuration:[/] {e}")
        raise SystemExit(1)

    if output_path:
        write_json(documents, output_path)
        console.print(f"[green]✓ Output written to: {output_path}[/]")
    else:
        click.echo(json.dumps(documents, indent=2, ensure_ascii=False))

    if json_report:
        write_json(reports, json_report)
        console.print(f"Report written to: {json_report}")


@cli.command('list-forms')
@click.option(
    '--mappings',
    'mappings_dir',
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=DEFAULT_MAPPINGS_DIR,
    help='Directory of mapping table YAML files'
)
def list_forms(mappings_dir: Path):
    """List available form types."""
    console = Console()

    try:
        tables = load_mapping_tables(mappings_dir)
    except MappingConfigurationError as e:
        console.print(f"[bold red]Bad mapping configuration:[/] {e}")
        raise SystemExit(1)

    table = Table(title=f"Available Form Types ({len(tables)})")
    table.add_column("Form type", style="cyan", no_wrap=True)
    table.add_column("Fields", justify="right")
    table.add_column("Variant marker")

    for info in (t.to_dict() for t in tables.values()):
        table.add_row(
            info['form_type'],
            str(info['field_count']),
            info['variant_marker'] or "-",
        )

    console.print(table)


if __name__ == "__main__":
    cli()

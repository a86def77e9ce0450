"""
CRF Extraction Pipeline

Turns the text of one Clinical Research Form into a nested CRF record.

Flow for one run:
1. Start an empty CRFDocument
2. Write the caller's context (patient id, scheduled date) at the
   table's reserved paths
3. For every non-reserved mapping entry, in table order:
   - find the label in the text (FieldExtractor)
   - if found, write the raw value at the entry's path
4. Write the form-variant flag (was the marker label found?)
5. Freeze the tree and clean every leaf (ValueCleaner)

A missing label is the common case on partially filled forms and never
aborts a run. Only a malformed mapping table does.

The pipeline holds no per-run state, so one instance can serve any number
of concurrent runs; mapping tables are frozen and safe to share.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from loguru import logger

from .cleaners import ValueCleaner
from .context import ExtractionContext
from .document import CRFDocument
from .field_extractor import FieldExtractor
from .mapping import MappingTable


@dataclass
class ExtractionReport:
    """Outcome of one pipeline run."""

    form_type: str
    document: dict[str, Any] = field(default_factory=dict)
    matched_labels: list[str] = field(default_factory=list)
    missing_labels: list[str] = field(default_factory=list)
    skipped_labels: list[str] = field(default_factory=list)
    duplicate_labels: list[str] = field(default_factory=list)
    variant_flag: bool = False
    processing_time_ms: int = 0

    @property
    def extraction_rate(self) -> float:
        """Share of searched labels that were found."""
        searched = len(self.matched_labels) + len(self.missing_labels)
        return len(self.matched_labels) / max(searched, 1)

    def to_dict(self) -> dict:
        """Convert report to dictionary."""
        return {
            'form_type': self.form_type,
            'document': self.document,
            'matched_labels': self.matched_labels,
            'missing_labels': self.missing_labels,
            'skipped_labels': self.skipped_labels,
            'duplicate_labels': self.duplicate_labels,
            'variant_flag': self.variant_flag,
            'extraction_rate': round(self.extraction_rate, 3),
            'processing_time_ms': self.processing_time_ms,
        }


class CRFExtractionPipeline:
    """
    Orchestrates field extraction, assembly and cleaning.

    Usage:
        tables = load_mapping_tables()
        pipeline = CRFExtractionPipeline()
        context = ExtractionContext(patient_id="P-001", scheduled_date="03/27/2024")
        crf = pipeline.run(text, tables["male_infertility"], context)
    """

    def __init__(
        self,
        field_extractor: Optional[FieldExtractor] = None,
        cleaner: Optional[ValueCleaner] = None
    ):
        self.field_extractor = field_extractor or FieldExtractor()
        self.cleaner = cleaner or ValueCleaner()

    def run(
        self,
        text: str,
        mapping_table: MappingTable,
        context: ExtractionContext
    ) -> dict[str, Any]:
        """
        Extract a CRF document from text.

        Args:
            text: Raw text recovered from the form
            mapping_table: Label->path table for this form variant
            context: Caller-supplied reserved values

        Returns:
            Cleaned, nested CRF document

        Raises:
            MappingConfigurationError: If a mapping path collides with an
                already written value
        """
        return self.run_with_report(text, mapping_table, context).document

    def run_with_report(
        self,
        text: str,
        mapping_table: MappingTable,
        context: ExtractionContext
    ) -> ExtractionReport:
        """Like run(), but also report which labels were found."""
        start_time = datetime.now()
        settings = mapping_table.settings
        report = ExtractionReport(form_type=mapping_table.form_type)
        text = text or ""

        if not text.strip():
            logger.warning("Empty text provided for CRF extraction")

        document = CRFDocument()
        document.assign(settings.subject_id_path, context.patient_id)
        document.assign(settings.scheduled_date_path, context.scheduled_date)

        marker_found = False

        for entry in mapping_table.entries:
            if entry.label in settings.reserved_labels:
                report.skipped_labels.append(entry.label)
                continue

            value = self.field_extractor.extract(text, entry.label)

            if value is None:
                report.missing_labels.append(entry.label)
                continue

            if len(self.field_extractor.find_all(text, entry.label)) > 1:
                logger.debug(f"Label '{entry.label}' printed more than once, using the first")
                report.duplicate_labels.append(entry.label)

            document.assign(entry.path, value)
            report.matched_labels.append(entry.label)
            logger.debug(f"Extracted {entry.label} -> {entry.path}: '{value}'")

            if entry.label == settings.variant_marker_label:
                marker_found = True

        document.assign(settings.variant_marker_path, marker_found)
        report.variant_flag = marker_found

        report.document = self.cleaner.clean_data(document.to_dict())

        elapsed = datetime.now() - start_time
        report.processing_time_ms = int(elapsed.total_seconds() * 1000)

        logger.info(
            f"Extracted {len(report.matched_labels)}/"
            f"{len(report.matched_labels) + len(report.missing_labels)} fields "
            f"for '{mapping_table.form_type}' ({report.processing_time_ms} ms)"
        )
        return report


def run_pipeline(
    text: str,
    mapping_table: MappingTable,
    patient_id: str,
    scheduled_date: str = ""
) -> dict[str, Any]:
    """
    Convenience function to extract a CRF document in one call.

    Args:
        text: Raw form text
        mapping_table: Table for the form variant
        patient_id: Subject identifier
        scheduled_date: Visit date (defaults to today)

    Returns:
        Cleaned CRF document
    """
    context = ExtractionContext(patient_id=patient_id, scheduled_date=scheduled_date)
    return CRFExtractionPipeline().run(text, mapping_table, context)

"""
CRF Package

This package turns the text of a Clinical Research Form into a nested,
cleaned CRF record. It includes:
- Field extraction by printed label
- Checkbox group resolution
- Value cleaning
- Nested document assembly from dotted paths
- Mapping tables (one YAML file per form variant)

Usage:
    from crf import CRFExtractionPipeline, ExtractionContext, load_mapping_tables

    tables = load_mapping_tables()
    pipeline = CRFExtractionPipeline()
    context = ExtractionContext(patient_id="P-001", scheduled_date="03/27/2024")
    crf = pipeline.run(text, tables["male_infertility"], context)
"""

from .errors import (
    CRFExtractionError,
    MappingConfigurationError,
    UpstreamParseError,
)

from .checkboxes import (
    CheckboxResolver,
    resolve_checkbox,
)

from .cleaners import (
    ValueCleaner,
    clean_value,
    clean_crf_data,
)

from .field_extractor import (
    FieldExtractor,
    extract_field,
)

from .document import (
    Leaf,
    Container,
    CRFDocument,
    assign_path,
)

from .mapping import (
    MappingEntry,
    MappingSettings,
    MappingTable,
    MappingLoader,
    load_mapping_tables,
)

from .context import ExtractionContext

from .pipeline import (
    CRFExtractionPipeline,
    ExtractionReport,
    run_pipeline,
)

__all__ = [
    # Errors
    'CRFExtractionError',
    'MappingConfigurationError',
    'UpstreamParseError',

    # Checkboxes
    'CheckboxResolver',
    'resolve_checkbox',

    # Cleaners
    'ValueCleaner',
    'clean_value',
    'clean_crf_data',

    # Field extraction
    'FieldExtractor',
    'extract_field',

    # Document
    'Leaf',
    'Container',
    'CRFDocument',
    'assign_path',

    # Mapping tables
    'MappingEntry',
    'MappingSettings',
    'MappingTable',
    'MappingLoader',
    'load_mapping_tables',

    # Pipeline
    'ExtractionContext',
    'CRFExtractionPipeline',
    'ExtractionReport',
    'run_pipeline',
]

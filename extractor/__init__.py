"""
Extractor Package

Recovers raw text from uploaded CRF files. This is the upstream
collaborator of the CRF pipeline; it knows nothing about labels or
mapping tables.

Usage:
    from extractor import read_document_text

    text = read_document_text(Path("crf.pdf"))
"""

from .pdf_text import PDFTextExtractor, read_document_text, read_plain_text
from .utils import (
    ExtractionResult,
    ExtractionMethod,
    normalize_text,
    get_pdf_info,
)

__all__ = [
    # Extractors
    'PDFTextExtractor',
    'read_document_text',
    'read_plain_text',

    # Data structures
    'ExtractionResult',
    'ExtractionMethod',

    # Utility functions
    'normalize_text',
    'get_pdf_info',
]

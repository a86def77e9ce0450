"""
PDF Text Extraction Module

Recovers the raw text of an uploaded CRF. This is the upstream step of
the extraction pipeline: everything after it works on plain text.

Two PDF libraries are used:
1. pdfplumber (primary) - keeps label/value pairs on the same line
2. PyMuPDF/fitz (fallback) - copes with some generator quirks pdfplumber
   trips on

Pre-extracted .txt files are also accepted, which is handy for replaying
problem forms without the original PDF.

Any failure here fails the whole request: read_document_text raises
UpstreamParseError and no partial CRF is produced.
"""

from pathlib import Path
from typing import Optional

from loguru import logger

from crf.errors import UpstreamParseError

from .utils import (
    ExtractionResult,
    ExtractionMethod,
    normalize_text,
    get_pdf_info,
)


class PDFTextExtractor:
    """
    Extracts text from PDF text layers using multiple backends.

    Usage:
        extractor = PDFTextExtractor()
        result = extractor.extract_text(Path("crf.pdf"))
        print(result.text)
    """

    def __init__(self, primary_backend: str = "pdfplumber"):
        """
        Initialize the text extractor.

        Args:
            primary_backend: Which library to try first ("pdfplumber" or "pymupdf")
        """
        if primary_backend not in ("pdfplumber", "pymupdf"):
            raise ValueError(f"Unknown PDF backend: {primary_backend}")
        self.primary_backend = primary_backend

    @property
    def backends(self) -> list[str]:
        """Backends in the order they are tried."""
        if self.primary_backend == "pdfplumber":
            return ["pdfplumber", "pymupdf"]
        return ["pymupdf", "pdfplumber"]

    def extract_text(self, pdf_path: Path, normalize: bool = True) -> ExtractionResult:
        """
        Extract text from a PDF file.

        Backends are tried in order until one returns text. If every
        backend fails or returns nothing, the last result is returned
        with its warnings.

        Args:
            pdf_path: Path to the PDF file
            normalize: Whether to normalize the extracted text

        Returns:
            ExtractionResult with extracted text and metadata
        """
        logger.info(f"Extracting text from: {pdf_path}")

        result = ExtractionResult(
            text="",
            method=ExtractionMethod.TEXT_LAYER,
            warnings=["No PDF backend attempted"]
        )

        for backend in self.backends:
            if backend == "pdfplumber":
                result = self._extract_with_pdfplumber(pdf_path)
            else:
                result = self._extract_with_pymupdf(pdf_path)

            if result.has_text:
                break
            logger.debug(f"{backend} returned no text, trying next backend")

        if normalize and result.text:
            result.text = normalize_text(result.text)

        return result

    def _extract_with_pdfplumber(self, pdf_path: Path) -> ExtractionResult:
        """Extract text using pdfplumber."""
        import pdfplumber

        texts = []
        warnings = []
        total_pages = 0

        try:
            with pdfplumber.open(pdf_path) as pdf:
                total_pages = len(pdf.pages)

                for idx, page in enumerate(pdf.pages):
                    try:
                        # Small tolerances keep "Label: value" on one line
                        text = page.extract_text(x_tolerance=3, y_tolerance=3)

                        if text:
                            texts.append(text)
                        else:
                            warnings.append(f"Page {idx + 1} returned no text")

                    except Exception as e:
                        warnings.append(f"Page {idx + 1} extraction failed: {e}")
                        logger.warning(f"Failed to extract page {idx + 1}: {e}")

        except Exception as e:
            logger.error(f"pdfplumber extraction failed: {e}")
            return ExtractionResult(
                text="",
                method=ExtractionMethod.TEXT_LAYER,
                warnings=[f"pdfplumber failed: {e}"]
            )

        return ExtractionResult(
            text="\n".join(texts),
            method=ExtractionMethod.TEXT_LAYER,
            page_count=total_pages,
            metadata={'pages_extracted': len(texts), 'backend': 'pdfplumber'},
            warnings=warnings
        )

    def _extract_with_pymupdf(self, pdf_path: Path) -> ExtractionResult:
        """Extract text using PyMuPDF (fitz)."""
        import fitz

        texts = []
        warnings = []
        total_pages = 0

        try:
            with fitz.open(pdf_path) as doc:
                total_pages = len(doc)

                for idx, page in enumerate(doc):
                    try:
                        text = page.get_text("text")

                        if text and text.strip():
                            texts.append(text)
                        else:
                            warnings.append(f"Page {idx + 1} returned no text")

                    except Exception as e:
                        warnings.append(f"Page {idx + 1} extraction failed: {e}")
                        logger.warning(f"Failed to extract page {idx + 1}: {e}")

        except Exception as e:
            logger.error(f"PyMuPDF extraction failed: {e}")
            return ExtractionResult(
                text="",
                method=ExtractionMethod.TEXT_LAYER,
                warnings=[f"PyMuPDF failed: {e}"]
            )

        return ExtractionResult(
            text="\n".join(texts),
            method=ExtractionMethod.TEXT_LAYER,
            page_count=total_pages,
            metadata={'pages_extracted': len(texts), 'backend': 'pymupdf'},
            warnings=warnings
        )


def read_plain_text(text_path: Path) -> ExtractionResult:
    """Read a pre-extracted text file."""
    try:
        text = text_path.read_text(encoding='utf-8')
    except (OSError, UnicodeDecodeError) as e:
        raise UpstreamParseError(
            f"Cannot read text file {text_path}: {e}",
            source=str(text_path),
            original_error=e
        ) from e

    return ExtractionResult(
        text=normalize_text(text),
        method=ExtractionMethod.PLAIN_TEXT,
        page_count=1,
    )


def read_document_text(path: Path, extractor: Optional[PDFTextExtractor] = None) -> str:
    """
    Recover the text of one uploaded CRF file.

    Args:
        path: A .pdf file, or a .txt file holding already extracted text
        extractor: PDF extractor to use (defaults to PDFTextExtractor())

    Returns:
        Normalized document text

    Raises:
        UpstreamParseError: If the file is missing, not a PDF, corrupt, or
            yields no text
    """
    path = Path(path)

    if path.suffix.lower() == '.txt':
        result = read_plain_text(path)
    else:
        pdf_info = get_pdf_info(path)
        if not pdf_info['readable']:
            error = pdf_info.get('error', 'Cannot read PDF file')
            logger.error(f"Rejected {path.name}: {error}")
            raise UpstreamParseError(f"{path.name}: {error}", source=str(path))

        logger.info(f"Reading: {path.name} ({pdf_info.get('size_mb', 0)} MB)")
        result = (extractor or PDFTextExtractor()).extract_text(path)

    if not result.has_text:
        details = "; ".join(result.warnings) or "empty document"
        raise UpstreamParseError(
            f"No text could be extracted from {path.name} ({details})",
            source=str(path)
        )

    for warning in result.warnings:
        logger.warning(f"{path.name}: {warning}")

    return result.text

"""
Shared helpers for recovering text from uploaded CRF files.

- ExtractionResult: what every text source returns
- normalize_text: make PDF text safe for label matching
- get_pdf_info: cheap readability check before a full parse

Box glyphs (☐ ☑ □ ■) and em-dashes are deliberately left alone here;
checkbox resolution and value cleaning happen later, per field.
"""

import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any


class ExtractionMethod(Enum):
    """Where the document text came from."""
    TEXT_LAYER = "text_layer"       # PDF text layer
    PLAIN_TEXT = "plain_text"       # Pre-extracted .txt file
    UNKNOWN = "unknown"


@dataclass
class ExtractionResult:
    """Text recovered from one file, plus diagnostics."""
    text: str
    method: ExtractionMethod
    page_count: int = 0
    metadata: dict = field(default_factory=dict)
    warnings: list = field(default_factory=list)

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())


LIGATURES = {
    'ﬁ': 'fi',
    'ﬂ': 'fl',
    'ﬀ': 'ff',
    'ﬃ': 'ffi',
    'ﬄ': 'ffl',
}

SPACES = {
    '\u00a0': ' ',    # Non-breaking space
    '\u2002': ' ',    # En space
    '\u2003': ' ',    # Em space
    '\u2009': ' ',    # Thin space
    '\u202f': ' ',    # Narrow no-break space
}


def normalize_text(text: str) -> str:
    """
    Normalize extracted PDF text for label matching.

    - NFC unicode composition
    - Ligatures expanded ("Proﬁle" would never match "Profile")
    - Exotic spaces turned into plain spaces
    - CRLF / CR turned into LF (values are bounded by LF)
    - Control characters other than newline and tab removed
    - Trailing spaces on each line stripped
    """
    if not text:
        return ""

    text = unicodedata.normalize('NFC', text)

    for ligature, replacement in LIGATURES.items():
        text = text.replace(ligature, replacement)
    for char, replacement in SPACES.items():
        text = text.replace(char, replacement)

    text = text.replace('\r\n', '\n').replace('\r', '\n')

    text = ''.join(
        char for char in text
        if char in '\n\t' or not unicodedata.category(char).startswith('C')
    )

    text = '\n'.join(line.rstrip() for line in text.split('\n'))
    text = re.sub(r'\n{3,}', '\n\n', text)

    return text


def get_pdf_info(pdf_path: Path) -> dict[str, Any]:
    """
    Extract basic metadata from a PDF file.

    This is a lightweight check that doesn't fully parse the PDF.
    Used to reject obviously bad uploads early.
    """
    info = {
        'path': str(pdf_path),
        'filename': pdf_path.name,
        'size_bytes': 0,
        'exists': False,
        'readable': False,
    }

    try:
        if pdf_path.exists():
            info['exists'] = True
            info['size_bytes'] = pdf_path.stat().st_size
            info['size_mb'] = round(info['size_bytes'] / (1024 * 1024), 2)

            with open(pdf_path, 'rb') as f:
                header = f.read(8)
                info['readable'] = header.startswith(b'%PDF')
                if not info['readable']:
                    info['error'] = 'File does not appear to be a valid PDF'
        else:
            info['error'] = 'File not found'
    except OSError as e:
        info['error'] = str(e)

    return info

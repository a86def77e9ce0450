"""
Field Extractor Module

Locates a printed field label in the document text and returns whatever
follows it on the same line.

    "Age: 34\nSex: Male"   --"Age"-->   "34"

Matching rules:
- The label is literal text. Punctuation such as "Volume (ml)" or
  "Right/Left" is escaped before compiling.
- Case-insensitive.
- The label may sit at the end of a longer word: "Stage: 3" is an
  occurrence of "Age" and, printed first, wins.
- One or more separators (colon and/or spaces/tabs) must follow it.
- The value stops at the end of the line; it never spills onto the next.
- First match wins. If a label is printed twice (a repeated header on
  page 2, a summary box) only the earliest occurrence is used, even if
  its value is blank.
"""

import re
from functools import lru_cache
from typing import Optional

from loguru import logger


SEPARATOR = r"(?:[^\S\n]|:)+"


@lru_cache(maxsize=1024)
def compile_label_pattern(label: str) -> re.Pattern:
    """
    Build the regex used to find a label and capture its value.

    Cached per label since mapping tables are shared across runs.
    """
    return re.compile(
        rf"{re.escape(label)}{SEPARATOR}([^\n]*)",
        re.IGNORECASE
    )


class FieldExtractor:
    """
    Extracts raw field values from document text.

    Usage:
        extractor = FieldExtractor()
        extractor.extract("Age: 34\nSex: Male", "Age")     # "34"
        extractor.extract("Age: 34\nSex: Male", "Height")  # None
    """

    def extract(self, text: str, label: str) -> Optional[str]:
        """
        Extract the value printed after a label.

        Args:
            text: Full document text
            label: Field label as printed on the form

        Returns:
            The trimmed remainder of the label's line, or None when the
            label is absent or its first occurrence carries no value
        """
        if not text or not label:
            return None

        match = compile_label_pattern(label).search(text)
        if not match:
            logger.debug(f"Label not found: '{label}'")
            return None

        value = match.group(1).strip()
        if not value:
            logger.debug(f"Label '{label}' found with blank value")
            return None

        return value

    def find_all(self, text: str, label: str) -> list[str]:
        """
        Return every occurrence of a label's value, in document order.

        Only used for diagnostics (duplicate-label reporting); extraction
        itself always takes the first match.
        """
        if not text or not label:
            return []
        return [
            match.group(1).strip()
            for match in compile_label_pattern(label).finditer(text)
        ]


_default_extractor = FieldExtractor()


def extract_field(text: str, label: str) -> Optional[str]:
    """Convenience wrapper around FieldExtractor.extract."""
    return _default_extractor.extract(text, label)

"""
Cleaners Module

Every value written into a CRF document passes through this module.
Text pulled off a printed form carries artifacts that mean nothing to
downstream consumers:

- "Name: ____________"   blank-line underscores left on unfilled fields
- "Dose → 50mg"          arrow glyphs used as layout hints
- "2—3 days"             em-dashes from word-processed templates
- "34   years"           ragged spacing from column layouts
- "☐ Yes ☑ No"           checkbox groups (resolved first, see checkboxes.py)

Checkbox resolution always runs before generic cleanup so that glyph
positions are still intact when the selection is decided.
"""

import re
from typing import Any, Optional

from .checkboxes import CheckboxResolver


UNDERSCORE_RUN = re.compile(r"_{3,}")
ARROWS = re.compile(r"[→←⇒]")
EM_DASH = "—"
WHITESPACE_RUN = re.compile(r"\s+")


class ValueCleaner:
    """
    Normalizes extracted field values.

    Usage:
        cleaner = ValueCleaner()
        cleaner.clean("A  B")               # "A B"
        cleaner.clean("☐ Yes ☑ No")         # "No"
        cleaner.clean_data({"a": {"b": " x  y "}})   # {"a": {"b": "x y"}}
    """

    def __init__(self, checkbox_resolver: Optional[CheckboxResolver] = None):
        self.checkbox_resolver = checkbox_resolver or CheckboxResolver()

    def clean(self, value: Any) -> Any:
        """
        Clean a single leaf value.

        Falsy values (None, "", False, 0) become "". Other values that are
        not strings (True, numbers, nested structures) pass through unchanged.
        """
        if not value:
            return ""
        if not isinstance(value, str):
            return value

        cleaned = self.checkbox_resolver.resolve(value)

        cleaned = UNDERSCORE_RUN.sub("", cleaned)
        cleaned = ARROWS.sub("", cleaned)
        cleaned = cleaned.replace(EM_DASH, "-")
        cleaned = WHITESPACE_RUN.sub(" ", cleaned)

        return cleaned.strip()

    def clean_data(self, data: Any) -> Any:
        """
        Recursively clean every leaf of a nested structure.

        Dicts are rebuilt key by key (order preserved), lists and tuples
        element-wise. Anything else is treated as a leaf.
        """
        if isinstance(data, dict):
            return {key: self.clean_data(value) for key, value in data.items()}

        if isinstance(data, (list, tuple)):
            return [self.clean_data(item) for item in data]

        return self.clean(data)


_default_cleaner = ValueCleaner()


def clean_value(value: Any) -> Any:
    """Clean a single value with the default cleaner."""
    return _default_cleaner.clean(value)


def clean_crf_data(data: Any) -> Any:
    """Recursively clean a CRF document with the default cleaner."""
    return _default_cleaner.clean_data(data)

"""
Checkbox Resolver Module

Printed CRFs render choice sets with box glyphs. After text extraction a
field like "Smoking Status" comes out as a single line such as:

    ☐ Never  ☐ Former  ☑ Current

This module figures out which option(s) were ticked.

Glyphs recognised:
- Empty boxes:   ☐ (U+2610), □ (U+25A1)
- Checked boxes: ☑ (U+2611), ■ (U+25A0)

Results:
- No glyphs at all       -> not a checkbox field, text returned trimmed
- Glyphs, none checked   -> "" (explicitly nothing selected)
- One or more checked    -> labels joined with ", " in the order printed

Multi-select is supported because symptom checklists routinely allow more
than one tick on the same line.
"""

import re

from loguru import logger


EMPTY_BOXES = "☐□"
CHECKED_BOXES = "☑■"
ALL_BOXES = EMPTY_BOXES + CHECKED_BOXES

# A checked glyph followed by a run that contains no further box glyph
CHECKED_OPTION_PATTERN = re.compile(
    rf"[{CHECKED_BOXES}]\s*([^{ALL_BOXES}]+)"
)


class CheckboxResolver:
    """
    Resolves the selected option(s) of a checkbox group.

    Usage:
        resolver = CheckboxResolver()
        resolver.resolve("☐ Yes ☑ No")        # "No"
        resolver.resolve("☑ A ☑ B ☐ C")       # "A, B"
        resolver.resolve("plain text")        # "plain text"
    """

    separator = ", "

    @staticmethod
    def has_checkboxes(span: str) -> bool:
        """Check whether a span contains any box glyph."""
        return any(glyph in span for glyph in ALL_BOXES)

    def selected_options(self, span: str) -> list[str]:
        """
        Return the labels of every checked option, in span order.

        Runs that are blank after trimming (a tick next to another box)
        are dropped.
        """
        options = []
        for match in CHECKED_OPTION_PATTERN.finditer(span):
            option = match.group(1).strip()
            if option:
                options.append(option)
        return options

    def resolve(self, span: str) -> str:
        """
        Resolve a raw span to the selected option text.

        Args:
            span: Raw text that may contain box glyphs

        Returns:
            Selected option(s), "" when boxes are present but none is
            checked, or the trimmed span when it is not a checkbox group
        """
        if not span or not isinstance(span, str):
            return ""

        if not self.has_checkboxes(span):
            return span.strip()

        options = self.selected_options(span)
        if not options:
            logger.debug(f"Checkbox group with no selection: '{span.strip()}'")
            return ""

        return self.separator.join(options)


_default_resolver = CheckboxResolver()


def resolve_checkbox(span: str) -> str:
    """Convenience wrapper around CheckboxResolver.resolve."""
    return _default_resolver.resolve(span)

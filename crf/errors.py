"""
Error types for the CRF extraction pipeline.

A missing field is never an error - it is simply absent from the output.
These exceptions cover the two ways a run can actually fail:
- the mapping table is malformed (bad configuration)
- the upstream text extraction failed (bad input file)
"""

from typing import Optional


class CRFExtractionError(Exception):
    """Base class for all extraction failures."""
    pass


class MappingConfigurationError(CRFExtractionError):
    """
    Raised when a mapping table cannot be used as written.

    Examples: a path that collides with a value already written at an
    intermediate segment, duplicate labels, blank paths.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class UpstreamParseError(CRFExtractionError):
    """
    Raised when no usable text could be recovered from the input file.

    The whole request fails; no partial CRF document is produced.
    """

    def __init__(self, message: str, source: Optional[str] = None, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.source = source
        self.original_error = original_error

"""Failure code constants for verikit.

These constants prevent stringly-typed error codes and ensure
client code branches on the correct failure reason.
"""

from enum import Enum


class ErrorCode(str, Enum):
    """Failure codes carried by every verikit error and tagged outcome."""

    # Input / validation (recoverable locally, no network call made)
    MANIFEST_PARSE_ERROR = "MANIFEST_PARSE_ERROR"
    INVALID_JSON = "INVALID_JSON"
    INVALID_STRUCTURE = "INVALID_STRUCTURE"
    INVALID_FILE_NAME = "INVALID_FILE_NAME"
    FILE_READ_ERROR = "FILE_READ_ERROR"
    MISSING_MATERIALS = "MISSING_MATERIALS"

    # Version resolution (caller must prompt for a manual selection)
    UNRESOLVED_COMPILER_VERSION = "UNRESOLVED_COMPILER_VERSION"

    # Remote
    REMOTE_REJECTION = "REMOTE_REJECTION"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
    EXTERNAL_IMPORT_ERROR = "EXTERNAL_IMPORT_ERROR"

    # Anything else raised below the public facade
    UNEXPECTED = "UNEXPECTED"

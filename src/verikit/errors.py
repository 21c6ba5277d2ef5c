"""Exception taxonomy for verikit.

Kernel and service modules raise these; ``verikit.api`` turns them into
tagged ``Outcome`` values at the public boundary.
"""

from typing import Any, Dict, Optional

from verikit.codes import ErrorCode


class VerikitError(ValueError):
    """Base class for all verikit failures."""

    code: ErrorCode = ErrorCode.UNEXPECTED

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ManifestParseError(VerikitError):
    """Manifest is not JSON, not a mapping, or has an entry without a hash."""

    code = ErrorCode.MANIFEST_PARSE_ERROR


class InvalidBuildInfo(VerikitError):
    """Base for build-info (and std-json) document failures."""

    code = ErrorCode.INVALID_STRUCTURE


class InvalidJson(InvalidBuildInfo):
    code = ErrorCode.INVALID_JSON


class InvalidStructure(InvalidBuildInfo):
    code = ErrorCode.INVALID_STRUCTURE


class UnresolvedCompilerVersion(InvalidBuildInfo):
    code = ErrorCode.UNRESOLVED_COMPILER_VERSION


class FileReadError(VerikitError):
    """A candidate file could not be read or decoded."""

    code = ErrorCode.FILE_READ_ERROR

    def __init__(self, file_name: str, reason: str):
        super().__init__(
            f"Could not read file '{file_name}': {reason}",
            details={"file_name": file_name},
        )
        self.file_name = file_name


class MissingMaterialsError(VerikitError):
    code = ErrorCode.MISSING_MATERIALS


class RemoteRejection(VerikitError):
    """Non-2xx response from the verification service."""

    code = ErrorCode.REMOTE_REJECTION

    def __init__(
        self,
        custom_code: str,
        message: str,
        error_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(
            f"{custom_code}: {message}",
            details={
                "custom_code": custom_code,
                "error_id": error_id,
                "status_code": status_code,
            },
        )
        self.custom_code = custom_code
        self.remote_message = message
        self.error_id = error_id
        self.status_code = status_code


class TransportError(VerikitError):
    """Network failure or unreadable response body."""

    code = ErrorCode.TRANSPORT_FAILURE


class ExternalImportError(VerikitError):
    """A third-party source (e.g. Etherscan) could not supply usable sources."""

    code = ErrorCode.EXTERNAL_IMPORT_ERROR

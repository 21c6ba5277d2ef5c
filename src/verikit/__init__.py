"""verikit: source-verification client for contract verification services."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("verikit")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
# Note: submit, get_job_status, resolve_version and assemble_input stay in verikit.api
from verikit.api import check_metadata, diff_bytecode, extract_build_info
from verikit.client import VerificationClient
from verikit.codes import ErrorCode
from verikit.contracts import Failure, Outcome
from verikit.submission import SubmissionMaterials, SubmissionMethod, SubmissionRouter

__all__ = [
    "__version__",
    "check_metadata",
    "diff_bytecode",
    "extract_build_info",
    "ErrorCode",
    "Failure",
    "Outcome",
    "SubmissionMaterials",
    "SubmissionMethod",
    "SubmissionRouter",
    "VerificationClient",
]

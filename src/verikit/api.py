"""Public API for the verikit package.

High-level functions that never raise for expected failures: each one
returns an Outcome whose value is the structured result, or whose failure
carries an ErrorCode and message. The CLI and any embedding application
should use these instead of importing from the kernel directly.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from verikit.client import VerificationClient
from verikit.codes import ErrorCode
from verikit.contracts import Outcome
from verikit.errors import VerikitError
from verikit.kernel import build_info, bytecode_diff, compiler_versions, hash_matcher, std_input
from verikit.kernel.candidates import CandidateFile
from verikit.kernel.compiler_versions import VersionEntry
from verikit.submission import SubmissionMaterials, SubmissionMethod, SubmissionRouter

FileLike = Union[str, os.PathLike, Path, CandidateFile]


def _as_candidate(item: FileLike) -> CandidateFile:
    if isinstance(item, CandidateFile):
        return item
    return CandidateFile.from_path(Path(item))


def _as_candidates(items: Sequence[FileLike]) -> List[CandidateFile]:
    return [_as_candidate(item) for item in items]


def _read_document(source: Union[FileLike, bytes, Dict[str, Any]]) -> Union[bytes, Dict[str, Any]]:
    """A JSON document given as a path, a CandidateFile, raw bytes or a decoded dict."""
    if isinstance(source, (bytes, dict)):
        return source
    return _as_candidate(source).read_bytes()


def _capture(fn, *args, **kwargs) -> Outcome:
    try:
        return Outcome.success(fn(*args, **kwargs))
    except (VerikitError, ValueError) as e:
        # pydantic's ValidationError and HashFormatError are ValueErrors too
        return Outcome.from_error(e)


def check_metadata(
    metadata: Union[FileLike, bytes, Dict[str, Any]],
    files: Sequence[FileLike],
) -> Outcome:
    """
    Reconcile files against a metadata.json manifest.

    Returns:
        Outcome whose value is a ReconciliationResult. An unsatisfied
        reconciliation is still ok=True; check value.all_required_satisfied.
    """
    def run():
        return hash_matcher.reconcile(_read_document(metadata), _as_candidates(files))
    return _capture(run)


def extract_build_info(
    build_info_file: Union[FileLike, bytes],
    known_versions: Sequence[VersionEntry],
) -> Outcome:
    """Outcome wrapping a BuildInfoExtraction."""
    def run():
        return build_info.extract(_read_document(build_info_file), known_versions)
    return _capture(run)


def assemble_input(
    files: Sequence[FileLike],
    language: str,
    settings: Optional[Union[std_input.CompilerSettings, Dict[str, Any]]] = None,
) -> Outcome:
    """Outcome wrapping the CompilationInput assembled from raw source files."""
    return _capture(
        std_input.assemble,
        _as_candidates(files),
        language,
        settings if settings is not None else std_input.CompilerSettings(),
    )


def resolve_version(
    candidate: Optional[str],
    known_versions: Sequence[VersionEntry],
    short_version: Optional[str] = None,
) -> Outcome:
    """Outcome wrapping the matched VersionEntry; not found is a failure, not an exception."""
    entry = compiler_versions.resolve(candidate, known_versions, short_version=short_version)
    if entry is None:
        return Outcome.fail(
            ErrorCode.UNRESOLVED_COMPILER_VERSION,
            f"No known compiler build matches '{candidate or short_version}'",
            details={"candidate": candidate, "short_version": short_version},
        )
    return Outcome.success(entry)


def diff_bytecode(a: str, b: str, granularity: str = "char") -> Outcome:
    """Outcome wrapping a BytecodeDiffResult."""
    return _capture(bytecode_diff.diff, a, b, granularity)


async def submit(
    client: VerificationClient,
    method: Union[SubmissionMethod, str],
    chain_id: str,
    address: str,
    materials: SubmissionMaterials,
    router: Optional[SubmissionRouter] = None,
) -> Outcome:
    """Submit for verification. Outcome value is the verification id."""
    router = router or SubmissionRouter(client)
    try:
        verification_id = await router.submit(SubmissionMethod(method), chain_id, address, materials)
    except (VerikitError, ValueError) as e:
        return Outcome.from_error(e)
    return Outcome.success(verification_id)


async def get_job_status(client: VerificationClient, verification_id: str) -> Outcome:
    """Outcome wrapping one VerificationJobStatus poll."""
    try:
        status = await client.get_job_status(verification_id)
    except (VerikitError, ValueError) as e:
        return Outcome.from_error(e)
    return Outcome.success(status)

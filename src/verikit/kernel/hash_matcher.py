"""Reconcile candidate files against a manifest by content hash.

Matching is by content hash only. File names on disk are irrelevant,
so a renamed but content-identical file still satisfies its entry.
"""

from typing import Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, Field, computed_field

from verikit.errors import MissingMaterialsError
from .candidates import CandidateFile
from .hash_utils import hashes_equal, keccak256
from .manifest import SourceManifest, parse_manifest


class SourceCheck(BaseModel):
    """Outcome for one manifest entry."""
    expected_file_name: str
    status: Literal["found", "embedded", "missing"]
    expected_hash: str
    actual_hash: Optional[str] = None
    is_valid: bool
    matched_file_name: Optional[str] = None
    file_size: Optional[int] = None


class UnnecessaryFile(BaseModel):
    """A candidate whose hash matched no manifest entry."""
    file_name: str
    actual_hash: str
    file_size: int


class ReconciliationResult(BaseModel):
    """Result of reconcile(); entries follow manifest order."""
    sources: List[SourceCheck]
    unnecessary: List[UnnecessaryFile] = Field(default_factory=list)

    @computed_field
    @property
    def missing_count(self) -> int:
        return sum(1 for s in self.sources if s.status == "missing")

    @computed_field
    @property
    def invalid_count(self) -> int:
        return sum(1 for s in self.sources if not s.is_valid)

    @computed_field
    @property
    def unnecessary_count(self) -> int:
        return len(self.unnecessary)

    @computed_field
    @property
    def all_required_satisfied(self) -> bool:
        return self.missing_count == 0 and self.invalid_count == 0

    @computed_field
    @property
    def message(self) -> str:
        if self.all_required_satisfied and self.unnecessary_count == 0:
            return "All required source files provided with matching hashes"
        parts = []
        if self.missing_count > 0:
            parts.append(f"{self.missing_count} source file(s) missing")
        # missing entries are also invalid; report only the hash mismatches here
        mismatched = self.invalid_count - self.missing_count
        if mismatched > 0:
            parts.append(f"{mismatched} file(s) have incorrect content/hash")
        if self.unnecessary_count > 0:
            parts.append(f"{self.unnecessary_count} unnecessary file(s) provided")
        return "Issues found: " + ", ".join(parts)


def _index_by_hash(candidates: Sequence[CandidateFile]) -> Dict[str, List[CandidateFile]]:
    """Hash each candidate once; group by hash with names sorted for determinism."""
    by_hash: Dict[str, List[CandidateFile]] = {}
    for candidate in candidates:
        by_hash.setdefault(candidate.content_hash, []).append(candidate)
    for group in by_hash.values():
        group.sort(key=lambda c: c.name)
    return by_hash


def reconcile(
    manifest: Union[SourceManifest, str, bytes, dict],
    candidates: Sequence[CandidateFile],
) -> ReconciliationResult:
    """
    Reconcile candidate files against the manifest.

    Args:
        manifest: Parsed manifest, or raw JSON/dict (parsed first, so a
            malformed manifest fails before any file is hashed)
        candidates: Locally supplied files, in any order

    Returns:
        ReconciliationResult

    Raises:
        ManifestParseError: If manifest is malformed
        FileReadError: If a candidate cannot be read
    """
    if not isinstance(manifest, SourceManifest):
        manifest = parse_manifest(manifest)

    checks: List[SourceCheck] = []
    by_hash: Optional[Dict[str, List[CandidateFile]]] = None
    consumed = set()

    for path, source in manifest.sources.items():
        expected = source.keccak256

        if source.is_embedded:
            actual = keccak256(source.content)
            checks.append(SourceCheck(
                expected_file_name=path,
                status="embedded",
                expected_hash=expected,
                actual_hash=actual,
                is_valid=hashes_equal(actual, expected),
            ))
            continue

        if by_hash is None:
            by_hash = _index_by_hash(candidates)

        matches = by_hash.get(expected)
        if matches:
            consumed.add(expected)
            matched = matches[0]
            checks.append(SourceCheck(
                expected_file_name=path,
                status="found",
                expected_hash=expected,
                actual_hash=matched.content_hash,
                is_valid=True,
                matched_file_name=matched.name,
                file_size=matched.size,
            ))
        else:
            checks.append(SourceCheck(
                expected_file_name=path,
                status="missing",
                expected_hash=expected,
                is_valid=False,
            ))

    if by_hash is None:
        by_hash = _index_by_hash(candidates)

    unnecessary = [
        UnnecessaryFile(file_name=c.name, actual_hash=digest, file_size=c.size)
        for digest, group in by_hash.items()
        if digest not in consumed
        for c in group
    ]
    unnecessary.sort(key=lambda u: (u.file_name, u.actual_hash))

    return ReconciliationResult(sources=checks, unnecessary=unnecessary)


def build_metadata_sources(
    manifest: Union[SourceManifest, str, bytes, dict],
    candidates: Sequence[CandidateFile],
) -> Dict[str, str]:
    """
    Build the path -> content mapping for a metadata submission.

    Embedded entries contribute their inline content; the rest contribute
    the text of the candidate whose hash matched.

    Raises:
        MissingMaterialsError: If reconciliation is not fully satisfied
    """
    if not isinstance(manifest, SourceManifest):
        manifest = parse_manifest(manifest)

    result = reconcile(manifest, candidates)
    if not result.all_required_satisfied:
        raise MissingMaterialsError(
            "Cannot submit: not all required sources are provided with valid hashes",
            details={"message": result.message},
        )

    by_hash = _index_by_hash(candidates)
    sources: Dict[str, str] = {}
    for check in result.sources:
        source = manifest.sources[check.expected_file_name]
        if source.is_embedded:
            sources[check.expected_file_name] = source.content
        else:
            sources[check.expected_file_name] = by_hash[check.actual_hash][0].read_text()
    return sources

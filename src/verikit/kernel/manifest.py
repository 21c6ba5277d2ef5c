"""Pydantic models and parser for metadata.json-style source manifests."""

import json
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from verikit.errors import ManifestParseError
from .hash_utils import HashFormatError, normalize_hash


class ManifestSource(BaseModel):
    """One declared source file: expected hash plus optional inline content."""
    keccak256: str
    content: Optional[str] = None
    license: Optional[str] = None
    urls: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")

    @field_validator('keccak256')
    @classmethod
    def validate_hash(cls, v: str) -> str:
        try:
            return normalize_hash(v)
        except HashFormatError as e:
            raise ValueError(str(e))

    @property
    def is_embedded(self) -> bool:
        return self.content is not None


class SourceManifest(BaseModel):
    """Logical path -> declared source, plus the raw manifest object.

    The raw object is kept verbatim because the metadata submission
    endpoint expects the original document, not our normalized view.
    """
    sources: Dict[str, ManifestSource]
    raw: Dict[str, Any] = Field(default_factory=dict, repr=False)

    @property
    def embedded_paths(self) -> List[str]:
        return [path for path, src in self.sources.items() if src.is_embedded]

    @property
    def external_paths(self) -> List[str]:
        return [path for path, src in self.sources.items() if not src.is_embedded]


def parse_manifest(raw: Union[str, bytes, Dict[str, Any]]) -> SourceManifest:
    """
    Parse and validate a manifest.

    Args:
        raw: JSON text/bytes or an already-decoded dict

    Returns:
        SourceManifest with normalized hashes

    Raises:
        ManifestParseError: If the document is not JSON, not a mapping,
            lacks a "sources" mapping, or any entry lacks a valid hash
    """
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestParseError(f"Error parsing metadata.json: {e}")
    else:
        data = raw

    if not isinstance(data, dict):
        raise ManifestParseError("Invalid metadata.json: top level must be an object")

    sources = data.get("sources")
    if not isinstance(sources, dict):
        raise ManifestParseError("Invalid metadata.json: missing or invalid sources field")

    for path, entry in sources.items():
        if not isinstance(entry, dict):
            raise ManifestParseError(
                f"Invalid metadata.json: source '{path}' must be an object",
                details={"path": path},
            )
        if "keccak256" not in entry:
            raise ManifestParseError(
                f"Invalid metadata.json: source '{path}' has no keccak256 hash",
                details={"path": path},
            )

    try:
        parsed = {path: ManifestSource(**entry) for path, entry in sources.items()}
    except ValidationError as e:
        raise ManifestParseError(f"Invalid metadata.json: {e}")

    return SourceManifest(sources=parsed, raw=data)

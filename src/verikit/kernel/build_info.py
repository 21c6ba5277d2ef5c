"""Convert framework build-info artifacts (Hardhat / Foundry) into submissions."""

import json
from typing import Sequence, Union

from pydantic import BaseModel

from verikit.errors import InvalidJson, InvalidStructure, UnresolvedCompilerVersion
from .compiler_versions import VersionEntry, resolve
from .std_input import CompilationInput, validate_compilation_input


class BuildInfoExtraction(BaseModel):
    """Normalized compiler input plus the resolved compiler build."""
    input: CompilationInput
    compiler_version: str


def extract(raw: Union[str, bytes], known_versions: Sequence[VersionEntry]) -> BuildInfoExtraction:
    """
    Parse and validate a build-info file.

    Only input.language, input.sources and input.settings are kept.
    Artifacts, build ids and any other build-info fields are dropped.

    Raises:
        InvalidJson: If raw is not JSON
        InvalidStructure: If input.language/sources/settings are missing or mistyped
        UnresolvedCompilerVersion: If neither solcLongVersion nor solcVersion
            resolves against known_versions
    """
    try:
        build_info = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidJson("Invalid JSON format in build-info file")

    if not isinstance(build_info, dict) or not isinstance(build_info.get("input"), dict):
        raise InvalidStructure(
            "Invalid build-info file structure. Required fields: input.language, input.sources, input.settings"
        )

    source_input = build_info["input"]
    trimmed = {
        "language": source_input.get("language"),
        "sources": source_input.get("sources"),
        "settings": source_input.get("settings"),
    }
    compilation_input = validate_compilation_input(trimmed, label="build-info input")

    long_version = build_info.get("solcLongVersion")
    short_version = build_info.get("solcVersion")
    entry = resolve(
        long_version if isinstance(long_version, str) else None,
        known_versions,
        short_version=short_version if isinstance(short_version, str) else None,
    )
    if entry is None:
        raise UnresolvedCompilerVersion(
            "Could not match compiler version from build-info file with available versions",
            details={"solcLongVersion": long_version, "solcVersion": short_version},
        )

    return BuildInfoExtraction(input=compilation_input, compiler_version=entry.long_version)

"""Standard JSON compilation input: model, assembly from raw files, validation."""

import json
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from verikit.errors import InvalidJson, InvalidStructure, MissingMaterialsError
from .candidates import CandidateFile

Language = Literal["solidity", "vyper"]

# Selection meaning "let the compiler pick". Never sent on the wire.
DEFAULT_EVM_VERSION = "default"

_CANONICAL_LANGUAGE = {
    "solidity": "Solidity",
    "vyper": "Vyper",
}


class SourceUnit(BaseModel):
    """One entry of CompilationInput.sources."""
    content: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class CompilationInput(BaseModel):
    """Normalized compiler input accepted by the verification service.

    Unknown keys are preserved so a user-supplied std-json document
    reaches the service verbatim.
    """
    language: str
    sources: Dict[str, SourceUnit]
    settings: Dict[str, Any]

    model_config = ConfigDict(extra="allow")

    def to_wire(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        # sources given only by urls carry no content key
        for path, unit in self.sources.items():
            if unit.content is None:
                data["sources"][path].pop("content", None)
        return data


class CompilerSettings(BaseModel):
    """User-facing compiler options for the single/multiple-files methods."""
    evm_version: str = DEFAULT_EVM_VERSION
    optimizer_enabled: bool = False
    optimizer_runs: int = Field(200, ge=0)

    @field_validator('evm_version')
    @classmethod
    def validate_evm_version(cls, v: Optional[str]) -> str:
        if v is None or not v.strip():
            return DEFAULT_EVM_VERSION
        return v.strip()


def canonical_language(language: str) -> str:
    """Map "solidity"/"vyper" (any case) to the compiler's "Solidity"/"Vyper"."""
    key = language.strip().lower()
    if key not in _CANONICAL_LANGUAGE:
        raise InvalidStructure(
            f"Unsupported language '{language}'. Expected one of: solidity, vyper",
            details={"language": language},
        )
    return _CANONICAL_LANGUAGE[key]


def build_settings(settings: CompilerSettings) -> Dict[str, Any]:
    """Translate CompilerSettings to the std-json settings object.

    evmVersion is omitted when the selection is the "default" sentinel:
    the compiler only understands omission or a real fork name.
    """
    out: Dict[str, Any] = {
        "optimizer": {
            "enabled": settings.optimizer_enabled,
            "runs": settings.optimizer_runs,
        },
    }
    if settings.evm_version.lower() != DEFAULT_EVM_VERSION:
        out["evmVersion"] = settings.evm_version
    return out


def assemble(
    files: Sequence[CandidateFile],
    language: str,
    settings: Union[CompilerSettings, Dict[str, Any]],
) -> CompilationInput:
    """
    Build a CompilationInput from raw source files.

    Args:
        files: Source files; each file name becomes a sources key
        language: "solidity" or "vyper"
        settings: CompilerSettings (or its dict form)

    Raises:
        MissingMaterialsError: If files is empty
        FileReadError: If any file cannot be read or decoded (names the file)
    """
    if not files:
        raise MissingMaterialsError("At least one source file is required")
    if isinstance(settings, dict):
        settings = CompilerSettings(**settings)

    sources: Dict[str, SourceUnit] = {}
    for f in files:
        sources[f.name] = SourceUnit(content=f.read_text())

    return CompilationInput(
        language=canonical_language(language),
        sources=sources,
        settings=build_settings(settings),
    )


def validate_compilation_input(data: Any, label: str = "standard JSON input") -> CompilationInput:
    """Validate a decoded document has language (str), sources (object), settings (object).

    Raises:
        InvalidStructure: With the list of offending fields
    """
    if not isinstance(data, dict):
        raise InvalidStructure(f"Invalid {label}: top level must be an object")

    problems: List[str] = []
    if not isinstance(data.get("language"), str) or not data.get("language"):
        problems.append("language")
    if not isinstance(data.get("sources"), dict):
        problems.append("sources")
    if not isinstance(data.get("settings"), dict):
        problems.append("settings")
    if problems:
        raise InvalidStructure(
            f"Invalid {label} structure. Missing or mistyped fields: {', '.join(problems)}",
            details={"fields": problems},
        )

    for path, unit in data["sources"].items():
        if not isinstance(unit, dict):
            raise InvalidStructure(
                f"Invalid {label}: source '{path}' must be an object",
                details={"path": path},
            )

    try:
        return CompilationInput(**data)
    except ValidationError as e:
        fields = [".".join(str(part) for part in error["loc"]) for error in e.errors()]
        raise InvalidStructure(
            f"Invalid {label}: mistyped fields: {', '.join(fields)}",
            details={"fields": fields},
        )


def parse_std_json(raw: Union[str, bytes]) -> CompilationInput:
    """Parse an uploaded std-json file.

    Raises:
        InvalidJson: If raw is not JSON
        InvalidStructure: If the document is not a CompilationInput
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidJson("Invalid JSON format in uploaded file")
    return validate_compilation_input(data)

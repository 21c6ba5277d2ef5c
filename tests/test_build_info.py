"""Tests for build-info extraction."""

import json

import pytest

from verikit.errors import InvalidBuildInfo, InvalidJson, InvalidStructure, UnresolvedCompilerVersion
from verikit.kernel.build_info import extract
from verikit.kernel.compiler_versions import VersionEntry

KNOWN = [VersionEntry(long_version="0.8.19+commit.7dd6d404", version="0.8.19")]


def _build_info(**overrides) -> str:
    doc = {
        "id": "b7a4c5e0",
        "_format": "hh-sol-build-info-1",
        "solcVersion": "0.8.19",
        "solcLongVersion": "0.8.19+commit.7dd6d404",
        "input": {
            "language": "Solidity",
            "sources": {"contracts/Token.sol": {"content": "contract Token {}"}},
            "settings": {"optimizer": {"enabled": True, "runs": 200}},
        },
        "output": {"contracts": {}},
    }
    doc.update(overrides)
    return json.dumps(doc)


class TestExtract:
    """Tests for extract."""

    def test_extracts_input_and_version(self):
        """Only language/sources/settings survive; the long version resolves."""
        extraction = extract(_build_info(), KNOWN)
        assert extraction.compiler_version == "0.8.19+commit.7dd6d404"
        wire = extraction.input.to_wire()
        assert set(wire) == {"language", "sources", "settings"}
        assert wire["sources"]["contracts/Token.sol"]["content"] == "contract Token {}"

    def test_extra_input_fields_dropped(self):
        """Fields beyond the three are not carried into the payload."""
        raw = json.loads(_build_info())
        raw["input"]["unexpected"] = {"x": 1}
        extraction = extract(json.dumps(raw), KNOWN)
        assert "unexpected" not in extraction.input.to_wire()

    def test_short_version_fallback(self):
        """An unknown long version falls back to solcVersion."""
        extraction = extract(_build_info(solcLongVersion="0.8.19+commit.00000000"), KNOWN)
        assert extraction.compiler_version == "0.8.19+commit.7dd6d404"

    def test_unresolved_version(self):
        """Neither version known: UnresolvedCompilerVersion."""
        with pytest.raises(UnresolvedCompilerVersion):
            extract(_build_info(solcLongVersion="0.7.0+commit.9e61f92b", solcVersion="0.7.0"), KNOWN)

    def test_invalid_json(self):
        """Unparseable input: InvalidJson."""
        with pytest.raises(InvalidJson):
            extract("{oops", KNOWN)

    def test_missing_input(self):
        """No input object: InvalidStructure."""
        with pytest.raises(InvalidStructure):
            extract(json.dumps({"solcVersion": "0.8.19"}), KNOWN)

    def test_missing_settings(self):
        """input.settings absent: InvalidStructure naming the field."""
        raw = json.loads(_build_info())
        del raw["input"]["settings"]
        with pytest.raises(InvalidStructure, match="settings") as excinfo:
            extract(json.dumps(raw), KNOWN)
        assert excinfo.value.details["fields"] == ["settings"]

    def test_failures_share_base_class(self):
        """All extraction failures are InvalidBuildInfo."""
        for raw in ("{oops", json.dumps({}), _build_info(solcLongVersion="1.0.0", solcVersion="1.0.0")):
            with pytest.raises(InvalidBuildInfo):
                extract(raw, KNOWN)

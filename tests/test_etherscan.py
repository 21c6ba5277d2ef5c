"""Tests for importing sources from Etherscan."""

import json

import httpx
import pytest

from verikit._internal.http import build_async_client
from verikit.errors import ExternalImportError
from verikit.etherscan import (
    EtherscanResult,
    fetch_from_etherscan,
    find_contract_path,
    normalize_compiler_version,
    process_etherscan_result,
)
from verikit.kernel.compiler_versions import VersionEntry

ADDRESS = "0x00000000219ab540356cBB839Cbe05303d7705Fa"
TOKEN_SOURCE = "pragma solidity ^0.8.0;\nimport './Base.sol';\ncontract Token is Base {\n}\n"
BASE_SOURCE = "pragma solidity ^0.8.0;\nabstract contract Base {}\n"


def _record(**overrides) -> EtherscanResult:
    fields = {
        "SourceCode": TOKEN_SOURCE,
        "ContractName": "Token",
        "CompilerVersion": "v0.8.19+commit.7dd6d404",
        "OptimizationUsed": "1",
        "Runs": "999",
        "EVMVersion": "Default",
    }
    fields.update(overrides)
    return EtherscanResult(**fields)


class TestProcessResult:
    """Tests for classifying an Etherscan record."""

    def test_single_file(self):
        """Plain source text becomes one file with user-facing settings."""
        processed = process_etherscan_result(_record())
        assert processed.method == "single-file"
        assert processed.language == "solidity"
        assert processed.compiler_version == "0.8.19+commit.7dd6d404"
        assert processed.contract_identifier == "Token.sol:Token"
        assert [f.name for f in processed.files] == ["Token.sol"]
        assert processed.files[0].read_text() == TOKEN_SOURCE

        settings = processed.compiler_settings
        assert settings.optimizer_enabled is True
        assert settings.optimizer_runs == 999
        assert settings.evm_version == "default"

    def test_single_vyper_file(self):
        """Vyper records map their short version through the known builds."""
        known = [VersionEntry(long_version="0.3.10+commit.91361694", version="0.3.10")]
        processed = process_etherscan_result(
            _record(SourceCode="@external\ndef f(): pass\n", ContractName="Vault", CompilerVersion="vyper:0.3.10"),
            vyper_versions=known,
        )
        assert processed.language == "vyper"
        assert processed.compiler_version == "0.3.10+commit.91361694"
        assert processed.contract_path == "Vault.vy"

    def test_multiple_files(self):
        """A JSON object of sources becomes several files."""
        sources = {
            "contracts/Base.sol": {"content": BASE_SOURCE},
            "contracts/Token.sol": {"content": TOKEN_SOURCE},
        }
        processed = process_etherscan_result(_record(SourceCode=json.dumps(sources), EVMVersion="paris"))
        assert processed.method == "multiple-files"
        assert processed.contract_identifier == "contracts/Token.sol:Token"
        assert sorted(f.name for f in processed.files) == ["contracts/Base.sol", "contracts/Token.sol"]
        assert processed.compiler_settings.evm_version == "paris"

    def test_std_json_wrapper(self):
        """Double-brace wrapped input becomes a single std-json file without settings."""
        std_input = {
            "language": "Solidity",
            "sources": {"src/Token.sol": {"content": TOKEN_SOURCE}, "src/Base.sol": {"content": BASE_SOURCE}},
            "settings": {"optimizer": {"enabled": True, "runs": 200}},
        }
        processed = process_etherscan_result(_record(SourceCode="{" + json.dumps(std_input) + "}"))
        assert processed.method == "std-json"
        assert processed.contract_identifier == "src/Token.sol:Token"
        assert processed.compiler_settings is None
        assert processed.files[0].name == "Token-input.json"
        assert json.loads(processed.files[0].read_text()) == std_input

    def test_missing_contract_path(self):
        """Sources that never define the contract are rejected."""
        sources = {"contracts/Base.sol": {"content": BASE_SOURCE}}
        with pytest.raises(ExternalImportError, match="Could not find contract path"):
            process_etherscan_result(_record(SourceCode=json.dumps(sources)))

    def test_unreadable_std_json(self):
        """A broken wrapped document is an import error."""
        with pytest.raises(ExternalImportError, match="standard JSON input"):
            process_etherscan_result(_record(SourceCode="{{not json}}"))


class TestHelpers:
    """Tests for the small helpers."""

    def test_find_contract_path_needs_whole_word(self):
        """TokenV2 does not count as a definition of Token."""
        sources = {
            "A.sol": "contract TokenV2 {}",
            "B.sol": "interface IERC20 {}\nlibrary Token {}",
        }
        assert find_contract_path("Token", sources) == "B.sol"
        assert find_contract_path("Missing", sources) is None

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("v0.8.19+commit.7dd6d404", "0.8.19+commit.7dd6d404"),
            ("0.8.19+commit.7dd6d404", "0.8.19+commit.7dd6d404"),
            ("vyper:0.3.9", "0.3.9"),
        ],
    )
    def test_normalize_compiler_version(self, raw, expected):
        """Leading v is dropped; unknown Vyper versions pass through."""
        assert normalize_compiler_version(raw) == expected


def _http(handler) -> httpx.AsyncClient:
    return build_async_client(transport=httpx.MockTransport(handler))


class TestFetch:
    """Tests for fetch_from_etherscan."""

    @pytest.mark.asyncio
    async def test_query_parameters(self):
        """chainid, module, action, address and apikey are sent."""
        seen = {}

        def handler(request):
            seen.update(request.url.params)
            return httpx.Response(200, json={"status": "1", "message": "OK", "result": [
                {"SourceCode": TOKEN_SOURCE, "ContractName": "Token", "CompilerVersion": "v0.8.19", "Proxy": "0"},
            ]})

        async with _http(handler) as http:
            record = await fetch_from_etherscan(http, "1", ADDRESS, "KEY", api_url="https://es.test/v2/api")

        assert record.ContractName == "Token"
        assert seen == {
            "chainid": "1",
            "module": "contract",
            "action": "getsourcecode",
            "address": ADDRESS,
            "apikey": "KEY",
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response,message",
        [
            (httpx.Response(503), "responded with status 503"),
            (httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Max rate limit reached"}),
             "rate limit reached"),
            (httpx.Response(200, json={"status": "0", "message": "NOTOK", "result": "Invalid API Key"}),
             "Etherscan API error: Invalid API Key"),
            (httpx.Response(200, json={"status": "1", "message": "OK", "result": [{"SourceCode": ""}]}),
             "not verified on Etherscan"),
            (httpx.Response(200, json={"status": "1", "message": "OK", "result": []}), "Unexpected response"),
        ],
    )
    async def test_errors(self, response, message):
        """Every failure mode is an ExternalImportError with a readable message."""
        async with _http(lambda request: response) as http:
            with pytest.raises(ExternalImportError, match=message):
                await fetch_from_etherscan(http, "1", ADDRESS, "KEY")

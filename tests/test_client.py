"""Tests for the async verification service client."""

import json

import httpx
import pytest

from verikit._internal.http import build_async_client
from verikit.client import VerificationClient
from verikit.config import ClientConfig
from verikit.errors import RemoteRejection, TransportError
from verikit.kernel.std_input import CompilationInput, SourceUnit

SERVER = "https://server.test"
ADDRESS = "0x00000000219ab540356cBB839Cbe05303d7705Fa"


def _client(handler, **config) -> VerificationClient:
    http = build_async_client(transport=httpx.MockTransport(handler))
    return VerificationClient(SERVER, http=http, config=ClientConfig(**config))


def _std_input() -> CompilationInput:
    return CompilationInput(
        language="Solidity",
        sources={"Token.sol": SourceUnit(content="contract Token {}")},
        settings={"optimizer": {"enabled": False, "runs": 200}},
    )


class TestSubmission:
    """Tests for the verify endpoints."""

    @pytest.mark.asyncio
    async def test_submit_std_json(self):
        """POST /v2/verify/{chain}/{address} with the std-json payload."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            seen["ua"] = request.headers["user-agent"]
            return httpx.Response(202, json={"verificationId": "job-1"})

        async with _client(handler) as client:
            verification_id = await client.submit_std_json(
                "1", ADDRESS, _std_input(), "0.8.19+commit.7dd6d404", "Token.sol:Token",
                creation_transaction_hash="0xabc",
            )

        assert verification_id == "job-1"
        assert seen["method"] == "POST"
        assert seen["path"] == f"/v2/verify/1/{ADDRESS}"
        assert seen["body"] == {
            "stdJsonInput": {
                "language": "Solidity",
                "sources": {"Token.sol": {"content": "contract Token {}"}},
                "settings": {"optimizer": {"enabled": False, "runs": 200}},
            },
            "compilerVersion": "0.8.19+commit.7dd6d404",
            "contractIdentifier": "Token.sol:Token",
            "creationTransactionHash": "0xabc",
        }
        assert seen["ua"].startswith("verikit/")

    @pytest.mark.asyncio
    async def test_creation_hash_omitted_when_absent(self):
        """No creationTransactionHash key unless one is given."""
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(202, json={"verificationId": "job-2"})

        async with _client(handler) as client:
            await client.submit_metadata("5", ADDRESS, {"A.sol": "a"}, {"sources": {}})

        assert bodies == [{"sources": {"A.sol": "a"}, "metadata": {"sources": {}}}]

    @pytest.mark.asyncio
    async def test_rejection_reconstructed(self):
        """A non-2xx body becomes RemoteRejection with code, message and error id."""
        def handler(request):
            return httpx.Response(409, json={
                "customCode": "already_verified",
                "message": "Contract already verified",
                "errorId": "e-42",
            })

        async with _client(handler) as client:
            with pytest.raises(RemoteRejection) as excinfo:
                await client.submit_std_json("1", ADDRESS, _std_input(), "0.8.19", "A:A")

        error = excinfo.value
        assert error.custom_code == "already_verified"
        assert error.remote_message == "Contract already verified"
        assert error.error_id == "e-42"
        assert error.status_code == 409

    @pytest.mark.asyncio
    async def test_rejection_without_json_body(self):
        """A non-JSON error body falls back to an http_<status> code."""
        def handler(request):
            return httpx.Response(502, text="Bad Gateway")

        async with _client(handler) as client:
            with pytest.raises(RemoteRejection) as excinfo:
                await client.submit_metadata("1", ADDRESS, {}, {})
        assert excinfo.value.custom_code == "http_502"

    @pytest.mark.asyncio
    async def test_network_failure(self):
        """Connection errors surface as TransportError."""
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(TransportError, match="Network error"):
                await client.submit_metadata("1", ADDRESS, {}, {})


class TestReads:
    """Tests for the read endpoints."""

    @pytest.mark.asyncio
    async def test_get_chains(self):
        """Chains parse with camelCase aliases."""
        def handler(request):
            assert request.url.path == "/chains"
            return httpx.Response(200, json=[
                {"name": "Ethereum Mainnet", "title": None, "chainId": 1, "rpc": [], "supported": True, "etherscanAPI": True},
                {"name": "Goerli", "chainId": 5, "supported": False},
            ])

        async with _client(handler) as client:
            chains = await client.get_chains()
        assert [c.chain_id for c in chains] == [1, 5]
        assert chains[0].etherscan_api is True
        assert chains[0].display_name == "Ethereum Mainnet"
        assert chains[1].supported is False

    @pytest.mark.asyncio
    async def test_job_status(self):
        """Job status parses contract, error and external verifications."""
        def handler(request):
            assert request.url.path == "/v2/verify/job-1"
            return httpx.Response(200, json={
                "isJobCompleted": True,
                "verificationId": "job-1",
                "jobStartTime": "2024-01-01T00:00:00Z",
                "jobFinishTime": "2024-01-01T00:01:00Z",
                "contract": {"chainId": 1, "address": ADDRESS, "runtimeMatch": "exact_match", "creationMatch": None},
                "externalVerifications": {"etherscan": {"statusUrl": "https://es.test/api?guid=1"}, "blockscout": None},
            })

        async with _client(handler) as client:
            status = await client.get_job_status("job-1")
        assert status.is_job_completed is True
        assert status.contract.chain_id == "1"
        assert status.contract.is_verified is True
        assert status.external_verifications["etherscan"].status_url == "https://es.test/api?guid=1"
        assert status.external_verifications["blockscout"] is None

    @pytest.mark.asyncio
    async def test_job_error_bytecode_fields(self):
        """A failed job carries the bytecodes the diff engine compares."""
        def handler(request):
            return httpx.Response(200, json={
                "isJobCompleted": True,
                "error": {
                    "customCode": "no_match",
                    "message": "The onchain and recompiled bytecodes don't match.",
                    "errorId": "e-1",
                    "onchainRuntimeCode": "0x6080",
                    "recompiledRuntimeCode": "0x6081",
                    "errorData": {"compilerErrors": [{"severity": "error", "formattedMessage": "boom"}]},
                },
            })

        async with _client(handler) as client:
            status = await client.get_job_status("job-x")
        assert status.error.onchain_runtime_code == "0x6080"
        assert status.error.recompiled_runtime_code == "0x6081"
        assert status.error.compiler_errors[0].formatted_message == "boom"

    @pytest.mark.asyncio
    async def test_contract_not_found_is_none(self):
        """404 on a single-chain lookup means not verified yet."""
        async with _client(lambda r: httpx.Response(404, json={"customCode": "not_found"})) as client:
            assert await client.get_contract("1", ADDRESS) is None

    @pytest.mark.asyncio
    async def test_all_chains_not_found_is_empty(self):
        """404 on the all-chains lookup means an empty list."""
        async with _client(lambda r: httpx.Response(404)) as client:
            assert await client.get_contract_all_chains(ADDRESS) == []

    @pytest.mark.asyncio
    async def test_all_chains_results(self):
        """results[] parse into ContractMatch entries."""
        def handler(request):
            assert request.url.path == f"/v2/contract/all-chains/{ADDRESS}"
            return httpx.Response(200, json={"results": [
                {"chainId": "1", "address": ADDRESS, "match": "exact_match"},
                {"chainId": "10", "address": ADDRESS, "match": "match"},
            ]})

        async with _client(handler) as client:
            results = await client.get_contract_all_chains(ADDRESS)
        assert [m.chain_id for m in results] == ["1", "10"]

    @pytest.mark.asyncio
    async def test_all_chains_non_object_body(self):
        """A JSON array where an object belongs is a TransportError."""
        async with _client(lambda r: httpx.Response(200, json=[1, 2])) as client:
            with pytest.raises(TransportError, match="Unexpected response format"):
                await client.get_contract_all_chains(ADDRESS)

    @pytest.mark.asyncio
    async def test_all_chains_results_not_a_list(self):
        """results must be a list of matches."""
        async with _client(lambda r: httpx.Response(200, json={"results": "none"})) as client:
            with pytest.raises(TransportError, match="results is not a list"):
                await client.get_contract_all_chains(ADDRESS)

    @pytest.mark.asyncio
    async def test_job_status_non_object_body(self):
        """Job status bodies must be objects too."""
        async with _client(lambda r: httpx.Response(200, json=["pending"])) as client:
            with pytest.raises(TransportError, match="Unexpected response format"):
                await client.get_job_status("job-1")

    @pytest.mark.asyncio
    async def test_compiler_lists(self):
        """Both compiler lists come from their configured URLs."""
        def handler(request):
            if request.url.host == "solc.test":
                return httpx.Response(200, text="soljson-v0.8.19+commit.7dd6d404.js\n")
            return httpx.Response(200, json=[{"longVersion": "0.3.10+commit.91361694", "version": "0.3.10"}])

        async with _client(
            handler,
            solc_list_url="https://solc.test/list.txt",
            vyper_list_url="https://vyper.test/list.json",
        ) as client:
            solc = await client.fetch_solc_versions()
            vyper = await client.fetch_vyper_versions()
        assert solc[0].long_version == "0.8.19+commit.7dd6d404"
        assert vyper[0].version == "0.3.10"

    def test_repo_link(self):
        """Repository link is {repo}/{chain}/{address}."""
        client = VerificationClient(SERVER, http=httpx.AsyncClient(), config=ClientConfig(repo_url="https://repo.test/"))
        assert client.repo_link("1", ADDRESS) == f"https://repo.test/1/{ADDRESS}"

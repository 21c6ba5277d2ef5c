"""Async client for the remote verification service."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from verikit._internal.http import build_async_client, decode_json, raise_for_rejection, send
from verikit.config import ClientConfig
from verikit.errors import TransportError
from verikit.kernel.compiler_versions import VersionEntry, parse_solc_list, parse_vyper_list
from verikit.kernel.std_input import CompilationInput
from verikit.models import Chain, ContractMatch, VerificationJobStatus, VerificationResponse

logger = logging.getLogger(__name__)


class VerificationClient:
    """Thin async wrapper over the service's HTTP contract.

    Usable as an async context manager. Pass ``http`` to share or mock
    the underlying httpx.AsyncClient.
    """

    def __init__(
        self,
        server_url: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
        config: Optional[ClientConfig] = None,
    ):
        self.config = config or ClientConfig()
        self.server_url = (server_url or self.config.server_url).rstrip("/")
        self._owns_http = http is None
        self.http = http or build_async_client(timeout=self.config.http_timeout)

    async def __aenter__(self) -> "VerificationClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    def _url(self, path: str) -> str:
        return f"{self.server_url}{path}"

    async def get_chains(self) -> List[Chain]:
        response = await send(self.http, "GET", self._url("/chains"))
        if not response.is_success:
            raise TransportError(
                f"Failed to fetch chains from {self.server_url}: {response.status_code}",
                details={"status_code": response.status_code},
            )
        return [Chain(**c) for c in decode_json(response, expect=list)]

    async def submit_std_json(
        self,
        chain_id: str,
        address: str,
        std_json_input: CompilationInput,
        compiler_version: str,
        contract_identifier: str,
        creation_transaction_hash: Optional[str] = None,
    ) -> str:
        """POST /v2/verify/{chainId}/{address}; returns the verification id only."""
        payload: Dict[str, Any] = {
            "stdJsonInput": std_json_input.to_wire(),
            "compilerVersion": compiler_version,
            "contractIdentifier": contract_identifier,
        }
        if creation_transaction_hash:
            payload["creationTransactionHash"] = creation_transaction_hash
        return await self._submit(f"/v2/verify/{chain_id}/{address}", payload)

    async def submit_metadata(
        self,
        chain_id: str,
        address: str,
        sources: Dict[str, str],
        metadata: Dict[str, Any],
        creation_transaction_hash: Optional[str] = None,
    ) -> str:
        """POST /v2/verify/metadata/{chainId}/{address}."""
        payload: Dict[str, Any] = {"sources": sources, "metadata": metadata}
        if creation_transaction_hash:
            payload["creationTransactionHash"] = creation_transaction_hash
        return await self._submit(f"/v2/verify/metadata/{chain_id}/{address}", payload)

    async def _submit(self, path: str, payload: Dict[str, Any]) -> str:
        response = await send(self.http, "POST", self._url(path), json=payload)
        raise_for_rejection(response)
        verification_id = VerificationResponse(**decode_json(response, expect=dict)).verification_id
        logger.info("Submitted verification %s via %s", verification_id, path)
        return verification_id

    async def get_job_status(self, verification_id: str) -> VerificationJobStatus:
        response = await send(self.http, "GET", self._url(f"/v2/verify/{verification_id}"))
        raise_for_rejection(response)
        return VerificationJobStatus(**decode_json(response, expect=dict))

    async def get_contract(self, chain_id: str, address: str) -> Optional[ContractMatch]:
        """Single match, or None when not yet verified on that chain (404)."""
        response = await send(self.http, "GET", self._url(f"/v2/contract/{chain_id}/{address}"))
        if response.status_code == 404:
            return None
        raise_for_rejection(response)
        return ContractMatch(**decode_json(response, expect=dict))

    async def get_contract_all_chains(self, address: str) -> List[ContractMatch]:
        """All matches for an address across chains; 404 means none."""
        response = await send(self.http, "GET", self._url(f"/v2/contract/all-chains/{address}"))
        if response.status_code == 404:
            return []
        raise_for_rejection(response)
        results = decode_json(response, expect=dict).get("results", [])
        if not isinstance(results, list):
            raise TransportError(f"Unexpected all-chains response for {address}: results is not a list")
        return [ContractMatch(**r) for r in results]

    async def fetch_solc_versions(self) -> List[VersionEntry]:
        response = await send(self.http, "GET", self.config.solc_list_url)
        if not response.is_success:
            raise TransportError(f"Failed to fetch Solidity versions: {response.status_code}")
        return parse_solc_list(response.text)

    async def fetch_vyper_versions(self) -> List[VersionEntry]:
        response = await send(self.http, "GET", self.config.vyper_list_url)
        if not response.is_success:
            raise TransportError(f"Failed to fetch Vyper versions: {response.status_code}")
        return parse_vyper_list(decode_json(response))

    def repo_link(self, chain_id: str, address: str) -> str:
        return f"{self.config.repo_url.rstrip('/')}/{chain_id}/{address}"

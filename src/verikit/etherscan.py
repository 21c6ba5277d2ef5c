"""Import verified sources from Etherscan's getsourcecode endpoint."""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict

from verikit._internal.http import decode_json, send
from verikit.config import DEFAULT_ETHERSCAN_API_URL
from verikit.errors import ExternalImportError
from verikit.kernel.candidates import CandidateFile
from verikit.kernel.compiler_versions import VersionEntry, long_version_for_short
from verikit.kernel.std_input import DEFAULT_EVM_VERSION, CompilerSettings

logger = logging.getLogger(__name__)

ImportMethod = Literal["std-json", "multiple-files", "single-file"]


class EtherscanResult(BaseModel):
    """One entry of getsourcecode's ``result`` array (fields we use)."""
    SourceCode: str = ""
    ContractName: str = ""
    CompilerVersion: str = ""
    OptimizationUsed: str = "0"
    Runs: str = "200"
    EVMVersion: str = DEFAULT_EVM_VERSION
    LicenseType: Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @property
    def is_vyper(self) -> bool:
        return self.CompilerVersion.startswith("vyper")


@dataclass
class ProcessedEtherscanResult:
    language: str
    method: ImportMethod
    compiler_version: str
    contract_name: str
    contract_path: str
    files: List[CandidateFile]
    # None for std-json: the settings travel inside the JSON input
    compiler_settings: Optional[CompilerSettings] = None

    @property
    def contract_identifier(self) -> str:
        return f"{self.contract_path}:{self.contract_name}"


async def fetch_from_etherscan(
    http: httpx.AsyncClient,
    chain_id: str,
    address: str,
    api_key: str,
    api_url: str = DEFAULT_ETHERSCAN_API_URL,
) -> EtherscanResult:
    """
    Fetch the verified source record for an address.

    Raises:
        TransportError: On network failure
        ExternalImportError: On HTTP errors, rate limiting, NOTOK responses,
            or when the contract is not verified on Etherscan
    """
    params = {
        "chainid": chain_id,
        "module": "contract",
        "action": "getsourcecode",
        "address": address,
        "apikey": api_key,
    }
    response = await send(http, "GET", api_url, params=params)
    if not response.is_success:
        raise ExternalImportError(
            f"Etherscan API responded with status {response.status_code}",
            details={"status_code": response.status_code},
        )

    body = decode_json(response)
    if not isinstance(body, dict):
        raise ExternalImportError("Unexpected response from Etherscan API")

    result = body.get("result")
    if body.get("message") == "NOTOK":
        if isinstance(result, str) and "rate limit reached" in result:
            raise ExternalImportError("Etherscan API rate limit reached, please try again later")
        raise ExternalImportError(f"Etherscan API error: {result}")

    if not isinstance(result, list) or not result or not isinstance(result[0], dict):
        raise ExternalImportError("Unexpected response from Etherscan API")

    record = EtherscanResult(**result[0])
    if record.SourceCode == "":
        raise ExternalImportError("This contract is not verified on Etherscan")
    logger.info("Fetched %s (%s) from Etherscan on chain %s", record.ContractName, address, chain_id)
    return record


def is_std_json_wrapper(source_code: str) -> bool:
    """Etherscan wraps standard JSON input in an extra pair of braces."""
    return source_code.startswith("{{")


def parse_sources_object(source_code: str) -> Optional[Dict[str, Any]]:
    try:
        data = json.loads(source_code)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) and data else None


def find_contract_path(contract_name: str, sources: Dict[str, Any]) -> Optional[str]:
    """First source path that defines ``contract_name`` as a contract, interface or library."""
    pattern = re.compile(
        r"\b(?:contract|interface|library)\s+" + re.escape(contract_name) + r"\b[^{]*\{"
    )
    for path, source in sources.items():
        content = source if isinstance(source, str) else (source or {}).get("content")
        if isinstance(content, str) and pattern.search(content):
            return path
    return None


def normalize_compiler_version(raw: str, vyper_versions: Sequence[VersionEntry] = ()) -> str:
    """Strip Etherscan's "v" prefix; map "vyper:0.3.10" to the long Vyper identifier."""
    if raw.startswith("vyper:"):
        return long_version_for_short(raw[len("vyper:"):], vyper_versions)
    if raw.startswith("v"):
        return raw[1:]
    return raw


def _settings_from(record: EtherscanResult) -> CompilerSettings:
    try:
        runs = int(record.Runs)
    except ValueError:
        runs = 200
    evm_version = record.EVMVersion or DEFAULT_EVM_VERSION
    if evm_version.lower() == DEFAULT_EVM_VERSION:
        evm_version = DEFAULT_EVM_VERSION
    return CompilerSettings(
        evm_version=evm_version,
        optimizer_enabled=record.OptimizationUsed == "1",
        optimizer_runs=runs,
    )


def process_etherscan_result(
    record: EtherscanResult,
    vyper_versions: Sequence[VersionEntry] = (),
) -> ProcessedEtherscanResult:
    """
    Classify an Etherscan record into a submission method and its files.

    Raises:
        ExternalImportError: If the contract's defining file cannot be found
            or the wrapped standard JSON input is unreadable
    """
    source_code = record.SourceCode
    name = record.ContractName
    language = "vyper" if record.is_vyper else "solidity"
    compiler_version = normalize_compiler_version(record.CompilerVersion, vyper_versions)

    if is_std_json_wrapper(source_code):
        try:
            std_input = json.loads(source_code[1:-1])
        except json.JSONDecodeError as e:
            raise ExternalImportError(f"Could not parse standard JSON input from Etherscan: {e}")
        if not isinstance(std_input, dict):
            raise ExternalImportError("Could not parse standard JSON input from Etherscan")
        contract_path = find_contract_path(name, std_input.get("sources") or {})
        if contract_path is None:
            raise ExternalImportError("Could not find contract path in sources")
        return ProcessedEtherscanResult(
            language=language,
            method="std-json",
            compiler_version=compiler_version,
            contract_name=name,
            contract_path=contract_path,
            files=[CandidateFile.from_text(f"{name}-input.json", json.dumps(std_input, indent=2))],
        )

    sources = parse_sources_object(source_code)
    if sources is not None:
        contract_path = find_contract_path(name, sources)
        if contract_path is None:
            raise ExternalImportError("Could not find contract path in sources")
        files = [
            CandidateFile.from_text(path, str(src.get("content", "")) if isinstance(src, dict) else str(src))
            for path, src in sources.items()
        ]
        return ProcessedEtherscanResult(
            language=language,
            method="multiple-files",
            compiler_version=compiler_version,
            contract_name=name,
            contract_path=contract_path,
            files=files,
            compiler_settings=_settings_from(record),
        )

    file_name = f"{name}.{'vy' if language == 'vyper' else 'sol'}"
    return ProcessedEtherscanResult(
        language=language,
        method="single-file",
        compiler_version=compiler_version,
        contract_name=name,
        contract_path=file_name,
        files=[CandidateFile.from_text(file_name, source_code)],
        compiler_settings=_settings_from(record),
    )

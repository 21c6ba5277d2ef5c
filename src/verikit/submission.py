"""Route a submission method and its materials to the right service endpoint."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from verikit.client import VerificationClient
from verikit.errors import MissingMaterialsError
from verikit.etherscan import ProcessedEtherscanResult, fetch_from_etherscan, process_etherscan_result
from verikit.kernel.build_info import extract
from verikit.kernel.candidates import CandidateFile
from verikit.kernel.compiler_versions import VersionEntry
from verikit.kernel.hash_matcher import build_metadata_sources
from verikit.kernel.manifest import parse_manifest
from verikit.kernel.std_input import CompilerSettings, assemble, parse_std_json
from verikit.store import CredentialStore

logger = logging.getLogger(__name__)


class SubmissionMethod(str, Enum):
    SINGLE_FILE = "single-file"
    MULTIPLE_FILES = "multiple-files"
    STD_JSON = "std-json"
    BUILD_INFO = "build-info"
    METADATA_JSON = "metadata-json"
    EXTERNAL_IMPORT = "external-import"


@dataclass
class SubmissionMaterials:
    """Everything a submission may need; each method reads its own subset.

    files: source files (single/multiple-files), the one JSON document
        (std-json, build-info) or the raw source files (metadata-json).
    metadata_file: the manifest, metadata-json only.
    known_versions: compiler builds used to resolve a build-info version.
    etherscan_api_key: overrides the stored key for external-import.
    """
    files: List[CandidateFile] = field(default_factory=list)
    metadata_file: Optional[CandidateFile] = None
    language: str = "solidity"
    compiler_version: Optional[str] = None
    contract_identifier: Optional[str] = None
    settings: CompilerSettings = field(default_factory=CompilerSettings)
    known_versions: List[VersionEntry] = field(default_factory=list)
    vyper_versions: List[VersionEntry] = field(default_factory=list)
    etherscan_api_key: Optional[str] = None
    creation_transaction_hash: Optional[str] = None


def _require(value: Optional[str], what: str) -> str:
    if not value or not value.strip():
        raise MissingMaterialsError(f"{what} is required")
    return value.strip()


def _require_files(files: Sequence[CandidateFile], what: str) -> None:
    if not files:
        raise MissingMaterialsError(f"No {what} uploaded")


class SubmissionRouter:
    """
    Turn (method, chain, address, materials) into one service call.

    All local validation happens before any request is made: missing
    materials never cost a round trip. Returns only the verification id.
    """

    def __init__(self, client: VerificationClient, credentials: Optional[CredentialStore] = None):
        self.client = client
        self.credentials = credentials

    async def submit(
        self,
        method: SubmissionMethod,
        chain_id: str,
        address: str,
        materials: SubmissionMaterials,
    ) -> str:
        method = SubmissionMethod(method)
        _require(chain_id, "Chain")
        _require(address, "Contract address")
        logger.debug("Submitting %s for %s on chain %s", method.value, address, chain_id)

        if method is SubmissionMethod.METADATA_JSON:
            return await self._submit_metadata(chain_id, address, materials)
        if method is SubmissionMethod.STD_JSON:
            return await self._submit_std_json(chain_id, address, materials)
        if method is SubmissionMethod.BUILD_INFO:
            return await self._submit_build_info(chain_id, address, materials)
        if method is SubmissionMethod.EXTERNAL_IMPORT:
            return await self._submit_external_import(chain_id, address, materials)
        return await self._submit_assembled(chain_id, address, materials)

    async def _submit_assembled(self, chain_id: str, address: str, materials: SubmissionMaterials) -> str:
        _require_files(materials.files, "files")
        compiler_version = _require(materials.compiler_version, "Compiler version")
        contract_identifier = _require(materials.contract_identifier, "Contract identifier")
        std_input = assemble(materials.files, materials.language, materials.settings)
        return await self.client.submit_std_json(
            chain_id, address, std_input, compiler_version, contract_identifier,
            creation_transaction_hash=materials.creation_transaction_hash,
        )

    async def _submit_std_json(self, chain_id: str, address: str, materials: SubmissionMaterials) -> str:
        _require_files(materials.files, "standard JSON file")
        compiler_version = _require(materials.compiler_version, "Compiler version")
        contract_identifier = _require(materials.contract_identifier, "Contract identifier")
        std_input = parse_std_json(materials.files[0].read_bytes())
        return await self.client.submit_std_json(
            chain_id, address, std_input, compiler_version, contract_identifier,
            creation_transaction_hash=materials.creation_transaction_hash,
        )

    async def _submit_build_info(self, chain_id: str, address: str, materials: SubmissionMaterials) -> str:
        _require_files(materials.files, "build-info file")
        contract_identifier = _require(materials.contract_identifier, "Contract identifier")
        extraction = extract(materials.files[0].read_bytes(), materials.known_versions)
        return await self.client.submit_std_json(
            chain_id, address, extraction.input, extraction.compiler_version, contract_identifier,
            creation_transaction_hash=materials.creation_transaction_hash,
        )

    async def _submit_metadata(self, chain_id: str, address: str, materials: SubmissionMaterials) -> str:
        if materials.metadata_file is None:
            raise MissingMaterialsError("No metadata.json file uploaded")
        manifest = parse_manifest(materials.metadata_file.read_bytes())
        sources = build_metadata_sources(manifest, materials.files)
        return await self.client.submit_metadata(
            chain_id, address, sources, manifest.raw,
            creation_transaction_hash=materials.creation_transaction_hash,
        )

    async def import_from_etherscan(
        self,
        chain_id: str,
        address: str,
        api_key: Optional[str] = None,
        vyper_versions: Sequence[VersionEntry] = (),
    ) -> ProcessedEtherscanResult:
        """Fetch and classify Etherscan sources without submitting them."""
        if not api_key and self.credentials is not None:
            api_key = self.credentials.get_etherscan_api_key()
        api_key = _require(api_key, "Etherscan API key")
        record = await fetch_from_etherscan(
            self.client.http, chain_id, address, api_key,
            api_url=self.client.config.etherscan_api_url,
        )
        return process_etherscan_result(record, vyper_versions)

    async def _submit_external_import(self, chain_id: str, address: str, materials: SubmissionMaterials) -> str:
        if not materials.etherscan_api_key and (
            self.credentials is None or not self.credentials.has_etherscan_api_key()
        ):
            raise MissingMaterialsError("Etherscan API key is required")
        processed = await self.import_from_etherscan(
            chain_id, address,
            api_key=materials.etherscan_api_key,
            vyper_versions=materials.vyper_versions,
        )
        routed = SubmissionMaterials(
            files=processed.files,
            language=processed.language,
            compiler_version=processed.compiler_version,
            contract_identifier=processed.contract_identifier,
            settings=processed.compiler_settings or CompilerSettings(),
            creation_transaction_hash=materials.creation_transaction_hash,
        )
        if processed.method == "std-json":
            return await self._submit_std_json(chain_id, address, routed)
        return await self._submit_assembled(chain_id, address, routed)

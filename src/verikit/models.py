"""Wire models for the remote verification service.

Field names follow the service's camelCase JSON via aliases; unknown
fields are ignored so new server fields never break parsing.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MatchLevel = Optional[Literal["match", "exact_match"]]


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        coerce_numbers_to_str=True,
    )


class Chain(WireModel):
    name: str
    title: Optional[str] = None
    chain_id: int
    rpc: List[str] = Field(default_factory=list)
    supported: bool = True
    etherscan_api: bool = Field(False, alias="etherscanAPI")

    @property
    def display_name(self) -> str:
        return self.title or self.name or f"Chain {self.chain_id}"


class ContractMatch(WireModel):
    """A verified contract as reported by /v2/contract endpoints and job results."""
    chain_id: str
    address: str
    match: MatchLevel = None
    runtime_match: MatchLevel = None
    creation_match: MatchLevel = None
    verified_at: Optional[str] = None
    match_id: Optional[str] = None

    @property
    def is_verified(self) -> bool:
        return bool(self.runtime_match or self.creation_match or self.match)


class CompilerError(WireModel):
    type: Optional[str] = None
    severity: Optional[str] = None
    message: Optional[str] = None
    formatted_message: Optional[str] = None
    component: Optional[str] = None


class JobError(WireModel):
    """Structured failure reported once a job completes without a match.

    The bytecode fields feed the diff engine for diagnostic comparison.
    """
    custom_code: str
    message: str
    error_id: Optional[str] = None
    recompiled_creation_code: Optional[str] = None
    recompiled_runtime_code: Optional[str] = None
    onchain_creation_code: Optional[str] = None
    onchain_runtime_code: Optional[str] = None
    creation_transaction_hash: Optional[str] = None
    error_data: Optional[Dict[str, Any]] = None

    @property
    def compiler_errors(self) -> List[CompilerError]:
        raw = (self.error_data or {}).get("compilerErrors") or []
        return [CompilerError(**e) for e in raw if isinstance(e, dict)]


class ExternalVerification(WireModel):
    """Per-verifier entry of a job's externalVerifications object."""
    status_url: Optional[str] = None
    verification_id: Optional[str] = None
    explorer_url: Optional[str] = None
    contract_api_url: Optional[str] = None
    error: Optional[str] = None


class VerificationJobStatus(WireModel):
    """Response of GET /v2/verify/{verificationId}."""
    verification_id: Optional[str] = None
    is_job_completed: bool
    job_start_time: Optional[str] = None
    job_finish_time: Optional[str] = None
    compilation_time: Optional[str] = None
    contract: Optional[ContractMatch] = None
    error: Optional[JobError] = None
    external_verifications: Dict[str, Optional[ExternalVerification]] = Field(default_factory=dict)


class VerificationResponse(WireModel):
    verification_id: str


class RemoteErrorBody(WireModel):
    custom_code: str = "unknown_error"
    message: str = ""
    error_id: Optional[str] = None

"""Status tracking for third-party verifiers (Etherscan, Blockscout, Routescan).

When the service shares a verified contract with other verifiers, each one
gets an ExternalVerifierRecord. The tracker polls every record that is
still pending or unknown on its own interval, independently per key, and
publishes one merged snapshot per tick.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Callable, Dict, List, Literal, Optional, Sequence

import httpx
from pydantic import BaseModel, Field

from verikit.models import VerificationJobStatus
from verikit.scheduler import AsyncioScheduler, CancelHandle, Scheduler
from verikit.store import CredentialStore

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_SECONDS = 3.0
ALREADY_VERIFIED_ID = "VERIFIER_ALREADY_VERIFIED"
ETHERSCAN = "etherscan"

VERIFIER_LABELS = {
    "etherscan": "Etherscan",
    "blockscout": "Blockscout",
    "routescan": "Routescan",
}

# Some verifiers forget a submission's status after a while.
EXPIRATION_MINUTES: Dict[str, int] = {
    "routescan": 24,
}

VerifierState = Literal["pending", "success", "error", "unknown"]
ContractState = Literal["verified", "not_verified", "error", "unknown"]


class ExternalVerifierRecord(BaseModel):
    key: str
    status_url: Optional[str] = None
    verification_id: Optional[str] = None
    explorer_url: Optional[str] = None
    contract_api_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def label(self) -> str:
        return VERIFIER_LABELS.get(self.key, self.key)


class ExternalVerifierStatus(BaseModel):
    state: VerifierState
    message: str = ""
    last_updated: float = Field(default_factory=time.time)


class ExternalVerifierContractStatus(BaseModel):
    state: ContractState
    message: str = ""
    last_updated: float = Field(default_factory=time.time)


def records_from_job(status: VerificationJobStatus) -> List[ExternalVerifierRecord]:
    """Build records from a job status' externalVerifications object."""
    records = []
    for key, data in sorted(status.external_verifications.items()):
        if data is None:
            continue
        records.append(ExternalVerifierRecord(key=key, **data.model_dump()))
    return records


def interpret_status_payload(payload: Dict) -> ExternalVerifierStatus:
    """Map an Etherscan-style {status, message, result} body to a derived state."""
    result = str(payload.get("result") or "").strip()
    lowered = result.lower()
    message = str(payload.get("message") or "")

    if lowered:
        if lowered.startswith("fail - unable to verify"):
            return ExternalVerifierStatus(state="error", message=result)
        if lowered == "pending in queue":
            return ExternalVerifierStatus(state="pending", message=result)
        if lowered == "pass - verified":
            return ExternalVerifierStatus(state="success", message=result)
        if lowered == "already verified":
            return ExternalVerifierStatus(state="success", message=result)
        if lowered == "unknown uid":
            return ExternalVerifierStatus(state="error", message=result)

    status = str(payload.get("status") or "")
    if status == "1" or message.lower().startswith("ok"):
        return ExternalVerifierStatus(state="success", message=result)
    if status == "0":
        return ExternalVerifierStatus(state="error", message=result)
    return ExternalVerifierStatus(state="unknown", message=result)


def needs_polling(status: Optional[ExternalVerifierStatus]) -> bool:
    """True while a key has no definitive outcome yet.

    success is final. error is final unless its message still says pending.
    """
    if status is None:
        return True
    if status.state == "success":
        return False
    if status.state in ("pending", "unknown"):
        return True
    return "pending" in status.message.lower()


def _is_expired(key: str, job_finish_time: Optional[str], now: float) -> bool:
    minutes = EXPIRATION_MINUTES.get(key)
    if not minutes or not job_finish_time:
        return False
    try:
        finished = datetime.fromisoformat(job_finish_time.replace("Z", "+00:00"))
    except ValueError:
        return False
    return (now - finished.timestamp()) / 60.0 >= minutes


class ExternalVerifierObservable:
    """Latest snapshot plus subscribers; replaced wholesale once per tick."""

    def __init__(self):
        self._snapshot: Dict[str, ExternalVerifierStatus] = {}
        self._listeners: List[Callable[[Dict[str, ExternalVerifierStatus]], None]] = []

    @property
    def snapshot(self) -> Dict[str, ExternalVerifierStatus]:
        return dict(self._snapshot)

    def subscribe(self, listener: Callable[[Dict[str, ExternalVerifierStatus]], None]) -> Callable[[], None]:
        self._listeners.append(listener)
        if self._snapshot:
            listener(self.snapshot)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _publish(self, snapshot: Dict[str, ExternalVerifierStatus]) -> None:
        self._snapshot = snapshot
        for listener in list(self._listeners):
            listener(self.snapshot)


class ExternalVerifierTracker:
    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: CredentialStore,
        scheduler: Optional[Scheduler] = None,
        interval: float = DEFAULT_REFRESH_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.http = http
        self.credentials = credentials
        self.scheduler = scheduler or AsyncioScheduler()
        self.interval = interval
        self.clock = clock
        self.observable = ExternalVerifierObservable()
        self._records: Dict[str, ExternalVerifierRecord] = {}
        self._job_finish_time: Optional[str] = None
        self._handle: Optional[CancelHandle] = None

    @property
    def is_polling(self) -> bool:
        return self._handle is not None and not self._handle.cancelled

    def track(
        self,
        records: Sequence[ExternalVerifierRecord],
        job_finish_time: Optional[str] = None,
    ) -> ExternalVerifierObservable:
        """Start (or restart) tracking a record set.

        Statuses of keys present in both the old and new set are kept, so
        an already resolved key is not fetched again.
        """
        self.stop()
        self._records = {r.key: r for r in records}
        self._job_finish_time = job_finish_time
        preserved = {k: v for k, v in self.observable.snapshot.items() if k in self._records}
        if preserved != self.observable.snapshot:
            self.observable._publish(preserved)

        if any(self._needs_fetch(key) for key in self._records):
            self._handle = self.scheduler.schedule(self.interval, self._tick)
        return self.observable

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _needs_fetch(self, key: str) -> bool:
        return needs_polling(self.observable.snapshot.get(key))

    async def _tick(self) -> None:
        keys = [key for key in self._records if self._needs_fetch(key)]
        if keys:
            results = await asyncio.gather(*(self._poll(self._records[k]) for k in keys))
            fetched = {k: s for k, s in zip(keys, results) if s is not None}
            if fetched:
                merged = self.observable.snapshot
                merged.update(fetched)
                self.observable._publish(merged)

        if not any(self._needs_fetch(key) for key in self._records):
            self.stop()

    async def fetch_all(
        self,
        records: Sequence[ExternalVerifierRecord],
        job_finish_time: Optional[str] = None,
    ) -> Dict[str, ExternalVerifierStatus]:
        """One pass over every record, without scheduling or publishing."""
        self._job_finish_time = job_finish_time
        results = await asyncio.gather(*(self.request_status(r) for r in records))
        return {r.key: s for r, s in zip(records, results)}

    async def _poll(self, record: ExternalVerifierRecord) -> Optional[ExternalVerifierStatus]:
        # None when the verifier was unreachable; the last known status stands
        try:
            return await self._derive_status(record)
        except httpx.HTTPError as e:
            logger.warning("Status request for %s failed, retrying next tick: %s", record.key, e)
            return None

    async def request_status(self, record: ExternalVerifierRecord) -> ExternalVerifierStatus:
        """Derive one record's status, calling the network only when it must.

        With no earlier status to fall back on, an unreachable verifier
        yields state unknown.
        """
        try:
            return await self._derive_status(record)
        except httpx.HTTPError as e:
            logger.warning("Status request for %s failed: %s", record.key, e)
            return ExternalVerifierStatus(state="unknown", message=f"Failed to fetch status: {e}")

    async def _derive_status(self, record: ExternalVerifierRecord) -> ExternalVerifierStatus:
        if record.error:
            return ExternalVerifierStatus(state="error", message=record.error)

        if record.verification_id == ALREADY_VERIFIED_ID:
            return ExternalVerifierStatus(state="success", message="Already verified")

        if _is_expired(record.key, self._job_finish_time, self.clock()):
            minutes = EXPIRATION_MINUTES[record.key]
            return ExternalVerifierStatus(state="error", message=f"Status expired after {minutes} minutes")

        if not record.status_url:
            if record.verification_id:
                return ExternalVerifierStatus(
                    state="pending",
                    message=f"Awaiting verifier response ({record.verification_id})",
                )
            return ExternalVerifierStatus(state="unknown", message="No status URL provided")

        url = httpx.URL(record.status_url)
        if record.key == ETHERSCAN:
            api_key = self.credentials.get_etherscan_api_key()
            if not api_key:
                return ExternalVerifierStatus(
                    state="error",
                    message="Add your Etherscan API key in settings to fetch the status.",
                )
            url = url.copy_set_param("apikey", api_key)

        response = await self.http.get(url)
        if not response.is_success:
            return ExternalVerifierStatus(
                state="error",
                message=response.text or f"Status request failed ({response.status_code})",
            )
        try:
            payload = response.json()
        except ValueError:
            return ExternalVerifierStatus(state="error", message="Unexpected status response format")
        if not isinstance(payload, dict):
            return ExternalVerifierStatus(state="error", message="Unexpected status response format")
        return interpret_status_payload(payload)

    async def check_contract_status(self, record: ExternalVerifierRecord) -> ExternalVerifierContractStatus:
        """One-shot lookup of whether the verifier lists the contract as verified."""
        if record.error:
            return ExternalVerifierContractStatus(state="not_verified", message=record.error)
        if record.verification_id == ALREADY_VERIFIED_ID:
            return ExternalVerifierContractStatus(state="verified", message="Already verified")
        if not record.contract_api_url:
            return ExternalVerifierContractStatus(state="unknown", message="No contract status URL provided")

        url = httpx.URL(record.contract_api_url)
        if record.key == ETHERSCAN:
            api_key = self.credentials.get_etherscan_api_key()
            if not api_key:
                return ExternalVerifierContractStatus(
                    state="error",
                    message="Add your Etherscan API key in settings to fetch the contract status.",
                )
            url = url.copy_set_param("apikey", api_key)

        try:
            response = await self.http.get(url)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            return ExternalVerifierContractStatus(state="error", message=str(e))

        status = str(payload.get("status") or "") if isinstance(payload, dict) else ""
        if status == "1":
            return ExternalVerifierContractStatus(state="verified", message="Contract verified")
        if status == "0":
            return ExternalVerifierContractStatus(state="not_verified", message="Contract not verified")
        return ExternalVerifierContractStatus(state="unknown", message="Contract verification status unavailable")

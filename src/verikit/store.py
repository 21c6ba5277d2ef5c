"""Persisted local state: verification jobs, credentials, server URLs.

Everything goes through a KeyValueStore with get/set/delete/subscribe.
Writers are assumed to be single (one process at a time); a change made
by another process is picked up by JsonFileStore.refresh() and announced
through the same subscribe() notifications.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError

from verikit._internal.canonical_json import canonical_dumps
from verikit.models import ContractMatch, JobError

logger = logging.getLogger(__name__)

JOBS_KEY = "verikit.jobs"
ETHERSCAN_API_KEY = "verikit.etherscan_api_key"
CURRENT_SERVER_URL_KEY = "verikit.current_server_url"
CUSTOM_SERVER_URLS_KEY = "verikit.custom_server_urls"

ChangeListener = Callable[[str], None]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class KeyValueStore:
    """Interface: JSON-compatible values under string keys, with change notification."""

    def __init__(self):
        self._listeners: List[ChangeListener] = []

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register listener(key); returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, key: str) -> None:
        for listener in list(self._listeners):
            listener(key)


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        super().__init__()
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._notify(key)

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._notify(key)


class JsonFileStore(KeyValueStore):
    """All keys in one JSON file. Unreadable files are treated as empty."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(canonical_dumps(self._data) + "\n", encoding="utf-8")
        tmp.replace(self.path)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._save()
        self._notify(key)

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._save()
            self._notify(key)

    def refresh(self) -> List[str]:
        """Reload from disk; notify for every key another writer changed."""
        fresh = self._load()
        changed = sorted(
            k for k in set(fresh) | set(self._data)
            if canonical_dumps(fresh.get(k)) != canonical_dumps(self._data.get(k))
        )
        self._data = fresh
        for key in changed:
            self._notify(key)
        return changed


class VerificationJob(BaseModel):
    """A submitted job as remembered locally.

    Pending until finished_at is set; then exactly one of contract/error
    normally carries the outcome.
    """
    id: str
    submitted_at: str = Field(default_factory=utc_now)
    started_at: Optional[str] = None
    finished_at: Optional[str] = None
    contract: Optional[ContractMatch] = None
    error: Optional[JobError] = None

    @property
    def is_completed(self) -> bool:
        return self.finished_at is not None

    @property
    def status(self) -> str:
        return "completed" if self.is_completed else "pending"

    @property
    def outcome(self) -> str:
        if not self.is_completed:
            return "Pending"
        if self.contract is not None and self.contract.is_verified:
            return "Verified"
        return "Failed"


class JobStore:
    """Job list persisted most-recent-first under JOBS_KEY."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def all(self) -> List[VerificationJob]:
        jobs = []
        for raw in self.store.get(JOBS_KEY, []) or []:
            try:
                jobs.append(VerificationJob(**raw))
            except (TypeError, ValidationError) as e:
                logger.warning("Skipping unreadable stored job: %s", e)
        return jobs

    def _write(self, jobs: List[VerificationJob]) -> None:
        self.store.set(JOBS_KEY, [j.model_dump(mode="json", by_alias=True) for j in jobs])

    def get(self, job_id: str) -> Optional[VerificationJob]:
        for job in self.all():
            if job.id == job_id:
                return job
        return None

    def save(self, job: VerificationJob) -> None:
        """Replace in place if known, else insert at the front."""
        jobs = self.all()
        for i, existing in enumerate(jobs):
            if existing.id == job.id:
                jobs[i] = job
                break
        else:
            jobs.insert(0, job)
        self._write(jobs)

    def pending(self) -> List[VerificationJob]:
        return [j for j in self.all() if not j.is_completed]

    def recent(self, limit: int = 5) -> List[VerificationJob]:
        jobs = sorted(self.all(), key=lambda j: j.submitted_at, reverse=True)
        return jobs[:limit]

    def clear(self) -> None:
        self.store.delete(JOBS_KEY)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self.store.subscribe(lambda key: listener() if key == JOBS_KEY else None)


class CredentialStore:
    """Etherscan API key."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def get_etherscan_api_key(self) -> Optional[str]:
        value = self.store.get(ETHERSCAN_API_KEY)
        return value if isinstance(value, str) and value.strip() else None

    def set_etherscan_api_key(self, api_key: str) -> None:
        self.store.set(ETHERSCAN_API_KEY, api_key.strip())

    def remove_etherscan_api_key(self) -> None:
        self.store.delete(ETHERSCAN_API_KEY)

    def has_etherscan_api_key(self) -> bool:
        return self.get_etherscan_api_key() is not None


class ServerUrlStore:
    """User-selected server URL plus user-added custom URLs."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def current(self, default: Optional[str] = None) -> Optional[str]:
        return self.store.get(CURRENT_SERVER_URL_KEY) or default

    def set_current(self, url: str) -> None:
        self.store.set(CURRENT_SERVER_URL_KEY, url.rstrip("/"))

    def clear_current(self) -> None:
        self.store.delete(CURRENT_SERVER_URL_KEY)

    def custom(self) -> List[str]:
        return list(self.store.get(CUSTOM_SERVER_URLS_KEY, []) or [])

    def add_custom(self, url: str) -> None:
        url = url.rstrip("/")
        urls = self.custom()
        if url not in urls:
            urls.append(url)
            self.store.set(CUSTOM_SERVER_URLS_KEY, urls)

    def remove_custom(self, url: str) -> None:
        url = url.rstrip("/")
        urls = [u for u in self.custom() if u != url]
        self.store.set(CUSTOM_SERVER_URLS_KEY, urls)
        if self.current() == url:
            self.clear_current()

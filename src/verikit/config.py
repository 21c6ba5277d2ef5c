"""Runtime configuration read from the environment."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field

DEFAULT_SERVER_URL = "https://sourcify.dev/server"
DEFAULT_REPO_URL = "https://repo.sourcify.dev"
DEFAULT_ETHERSCAN_API_URL = "https://api.etherscan.io/v2/api"
DEFAULT_SOLC_LIST_URL = "https://raw.githubusercontent.com/ethereum/solc-bin/gh-pages/bin/list.txt"
DEFAULT_VYPER_LIST_URL = "https://raw.githubusercontent.com/blockscout/solc-bin/refs/heads/main/vyper.list.json"


def _default_state_file() -> Path:
    return Path.home() / ".verikit" / "state.json"


def _float_from_env(var_name: str, default: float) -> float:
    raw = os.getenv(var_name)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


class ClientConfig(BaseModel):
    """Endpoints, polling cadence and local state location."""
    server_url: str = DEFAULT_SERVER_URL
    repo_url: str = DEFAULT_REPO_URL
    etherscan_api_url: str = DEFAULT_ETHERSCAN_API_URL
    solc_list_url: str = DEFAULT_SOLC_LIST_URL
    vyper_list_url: str = DEFAULT_VYPER_LIST_URL
    state_file: Path = Field(default_factory=_default_state_file)
    job_poll_seconds: float = Field(15.0, gt=0)
    verifier_poll_seconds: float = Field(3.0, gt=0)
    http_timeout: float = Field(30.0, gt=0)

    @classmethod
    def from_env(cls) -> "ClientConfig":
        state_file: Optional[str] = os.getenv("VERIKIT_STATE_FILE")
        return cls(
            server_url=os.getenv("VERIKIT_SERVER_URL", DEFAULT_SERVER_URL).rstrip("/"),
            repo_url=os.getenv("VERIKIT_REPO_URL", DEFAULT_REPO_URL).rstrip("/"),
            etherscan_api_url=os.getenv("VERIKIT_ETHERSCAN_API_URL", DEFAULT_ETHERSCAN_API_URL),
            solc_list_url=os.getenv("VERIKIT_SOLC_LIST_URL", DEFAULT_SOLC_LIST_URL),
            vyper_list_url=os.getenv("VERIKIT_VYPER_LIST_URL", DEFAULT_VYPER_LIST_URL),
            state_file=Path(state_file) if state_file else _default_state_file(),
            job_poll_seconds=_float_from_env("VERIKIT_JOB_POLL_SECONDS", 15.0),
            verifier_poll_seconds=_float_from_env("VERIKIT_VERIFIER_POLL_SECONDS", 3.0),
            http_timeout=_float_from_env("VERIKIT_HTTP_TIMEOUT", 30.0),
        )

"""Performance sentinel inputs and budgets."""

from __future__ import annotations

import os
import random
from typing import List, Tuple

from verikit.kernel.candidates import CandidateFile
from verikit.kernel.hash_utils import keccak256

# EIP-170 runtime size limit, in hex characters
MAX_RUNTIME_HEX_CHARS = 24576 * 2


def _budget_from_env(var_name: str, default_ms: float) -> float:
    raw = os.getenv(var_name)
    if not raw:
        return default_ms
    try:
        return float(raw)
    except ValueError:
        return default_ms


MAX_NEAR_IDENTICAL_DIFF_MS = _budget_from_env("VERIKIT_MAX_NEAR_IDENTICAL_DIFF_MS", 1000.0)
MAX_METADATA_TAIL_DIFF_MS = _budget_from_env("VERIKIT_MAX_METADATA_TAIL_DIFF_MS", 1000.0)
MAX_WIDE_RECONCILE_MS = _budget_from_env("VERIKIT_MAX_WIDE_RECONCILE_MS", 1000.0)
MAX_DISSIMILAR_DIFF_MS = _budget_from_env("VERIKIT_MAX_DISSIMILAR_DIFF_MS", 5000.0)


def random_bytecode(n_chars: int, seed: int = 0) -> str:
    rng = random.Random(seed)
    return "".join(rng.choice("0123456789abcdef") for _ in range(n_chars))


def near_identical_pair(n_chars: int = MAX_RUNTIME_HEX_CHARS, edits: int = 8, seed: int = 1) -> Tuple[str, str]:
    """Two max-size bytecodes differing in ``edits`` scattered single characters."""
    a = random_bytecode(n_chars, seed)
    rng = random.Random(seed + 1)
    chars = list(a)
    for pos in rng.sample(range(n_chars), edits):
        chars[pos] = "0" if chars[pos] != "0" else "1"
    return a, "".join(chars)


def metadata_tail_pair(n_chars: int = MAX_RUNTIME_HEX_CHARS, tail_chars: int = 106, seed: int = 2) -> Tuple[str, str]:
    """Identical code with a different trailing CBOR metadata blob (the usual partial match)."""
    body = random_bytecode(n_chars - tail_chars, seed)
    return body + random_bytecode(tail_chars, seed + 1), body + random_bytecode(tail_chars, seed + 2)


def dissimilar_pair(n_chars: int = MAX_RUNTIME_HEX_CHARS, seed: int = 3) -> Tuple[str, str]:
    """Two unrelated max-size bytecodes (a recompile with the wrong settings)."""
    return random_bytecode(n_chars, seed), random_bytecode(n_chars, seed + 1)


def wide_manifest(n_sources: int = 500) -> Tuple[dict, List[CandidateFile]]:
    """A manifest with n external sources and the matching candidates, shuffled."""
    sources = {}
    candidates = []
    for i in range(n_sources):
        text = f"// SPDX-License-Identifier: MIT\ncontract C{i} {{ uint256 public v = {i}; }}\n"
        sources[f"contracts/C{i}.sol"] = {"keccak256": keccak256(text), "urls": []}
        candidates.append(CandidateFile.from_text(f"C{i}.sol", text))
    random.Random(n_sources).shuffle(candidates)
    return {"sources": sources}, candidates

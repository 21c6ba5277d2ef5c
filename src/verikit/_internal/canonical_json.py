"""Centralized JSON serialization for persisted local state.

Rules:
- UTF-8, non-ASCII kept as-is
- Sorted keys
- Stable separators (",", ":")
- List order preserved (the job list is most-recent-first by contract)

Byte-stable output lets the file store detect real changes by comparing text.
"""

import json
from typing import Any


def canonical_dumps(obj: Any) -> str:
    """
    Canonical JSON serialization.

    Args:
        obj: Python object to serialize

    Returns:
        Canonical JSON string
    """
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False
    )

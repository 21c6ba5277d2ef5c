"""Structural diff between two hex bytecode strings.

Uses the linear-space variant of the Myers shortest-edit-script
algorithm, either over characters or over 2-character byte tokens.
Within each changed region the removed run is emitted before the added
run.
"""

from typing import List, Literal, Optional, Sequence, Tuple

from pydantic import BaseModel

Granularity = Literal["char", "byte"]

_EQUAL = 0
_DELETE = 1
_INSERT = 2

# regions whose edit distance exceeds this are reported as one removal plus one addition
DEFAULT_MAX_EDITS = 2000


class DiffSegment(BaseModel):
    """A run of unchanged, added, or removed text."""
    text: str
    added: bool = False
    removed: bool = False


class BytecodeDiffResult(BaseModel):
    """Segments in original order plus character counts of changed runs."""
    segments: List[DiffSegment]
    added_count: int
    removed_count: int
    has_changes: bool


def tokenize_bytes(hex_string: str) -> List[str]:
    """Split a hex string into 2-character tokens (one token per byte)."""
    return [hex_string[i:i + 2] for i in range(0, len(hex_string), 2)]


def _middle_snake(
    a: Sequence[str], a_lo: int, a_hi: int,
    b: Sequence[str], b_lo: int, b_hi: int,
    max_edits: int,
) -> Optional[Tuple[int, int]]:
    """Point where the forward and reverse Myers searches meet.

    Both searches keep one row of furthest-reaching x per diagonal, so
    memory is linear in max_edits. Returns None when the two searches
    have not met within roughly max_edits edits.
    """
    n = a_hi - a_lo
    m = b_hi - b_lo
    max_d = min((n + m + 1) // 2, (max_edits + 1) // 2)
    offset = max_d
    forward = [-1] * (2 * max_d + 2)
    forward[offset + 1] = 0
    reverse = forward[:]
    delta = n - m
    # with an odd delta the paths can only meet on a forward step
    front = delta % 2 != 0
    # diagonals trimmed once a path runs off the edge of the grid
    f_start = f_end = r_start = r_end = 0

    for d in range(max_d):
        for k in range(-d + f_start, d + 1 - f_end, 2):
            i = offset + k
            if k == -d or (k != d and forward[i - 1] < forward[i + 1]):
                x = forward[i + 1]
            else:
                x = forward[i - 1] + 1
            y = x - k
            while x < n and y < m and a[a_lo + x] == b[b_lo + y]:
                x += 1
                y += 1
            forward[i] = x
            if x > n:
                f_end += 2
            elif y > m:
                f_start += 2
            elif front:
                j = offset + delta - k
                if 0 <= j < len(reverse) and reverse[j] != -1 and x >= n - reverse[j]:
                    return a_lo + x, b_lo + y

        for k in range(-d + r_start, d + 1 - r_end, 2):
            j = offset + k
            if k == -d or (k != d and reverse[j - 1] < reverse[j + 1]):
                x = reverse[j + 1]
            else:
                x = reverse[j - 1] + 1
            y = x - k
            while x < n and y < m and a[a_hi - 1 - x] == b[b_hi - 1 - y]:
                x += 1
                y += 1
            reverse[j] = x
            if x > n:
                r_end += 2
            elif y > m:
                r_start += 2
            elif not front:
                i = offset + delta - k
                if 0 <= i < len(forward) and forward[i] != -1:
                    fx = forward[i]
                    fy = offset + fx - i
                    if fx >= n - x:
                        return a_lo + fx, b_lo + fy

    return None


def _script_region(
    a: Sequence[str], a_lo: int, a_hi: int,
    b: Sequence[str], b_lo: int, b_hi: int,
    max_edits: int,
    ops: List[Tuple[int, str]],
) -> None:
    while a_lo < a_hi and b_lo < b_hi and a[a_lo] == b[b_lo]:
        ops.append((_EQUAL, a[a_lo]))
        a_lo += 1
        b_lo += 1
    suffix_end = a_hi
    while a_hi > a_lo and b_hi > b_lo and a[a_hi - 1] == b[b_hi - 1]:
        a_hi -= 1
        b_hi -= 1

    split = None
    if a_lo < a_hi and b_lo < b_hi:
        split = _middle_snake(a, a_lo, a_hi, b, b_lo, b_hi, max_edits)
    if split is None:
        ops.extend((_DELETE, a[i]) for i in range(a_lo, a_hi))
        ops.extend((_INSERT, b[j]) for j in range(b_lo, b_hi))
    else:
        x, y = split
        _script_region(a, a_lo, x, b, b_lo, y, max_edits, ops)
        _script_region(a, x, a_hi, b, y, b_hi, max_edits, ops)

    ops.extend((_EQUAL, a[i]) for i in range(a_hi, suffix_end))


def _edit_script(a: Sequence[str], b: Sequence[str], max_edits: int = DEFAULT_MAX_EDITS) -> List[Tuple[int, str]]:
    """Myers edit script in linear space: one (op, token) pair per element.

    Each region loses its common prefix and suffix, then splits at the
    middle snake. Recursion depth grows with log(D), not with input size.
    """
    ops: List[Tuple[int, str]] = []
    _script_region(a, 0, len(a), b, 0, len(b), max_edits, ops)
    return ops


def _coalesce(ops: List[Tuple[int, str]]) -> List[DiffSegment]:
    segments: List[DiffSegment] = []
    equal: List[str] = []
    removed: List[str] = []
    added: List[str] = []

    def flush_changes():
        if removed:
            segments.append(DiffSegment(text="".join(removed), removed=True))
            removed.clear()
        if added:
            segments.append(DiffSegment(text="".join(added), added=True))
            added.clear()

    for op, token in ops:
        if op == _EQUAL:
            flush_changes()
            equal.append(token)
            continue
        if equal:
            segments.append(DiffSegment(text="".join(equal)))
            equal.clear()
        if op == _DELETE:
            removed.append(token)
        else:
            added.append(token)

    flush_changes()
    if equal:
        segments.append(DiffSegment(text="".join(equal)))
    return segments


def diff(
    a: str,
    b: str,
    granularity: Granularity = "char",
    max_edits: int = DEFAULT_MAX_EDITS,
) -> BytecodeDiffResult:
    """
    Diff bytecode a (e.g. on-chain) against b (e.g. recompiled).

    Args:
        a: First hex string
        b: Second hex string
        granularity: "char" to align characters, "byte" to align 2-char tokens
        max_edits: Edit distance searched per region before it is
            reported as a whole removal and addition

    Returns:
        BytecodeDiffResult; counts are in characters for both granularities
    """
    if granularity == "byte":
        left, right = tokenize_bytes(a), tokenize_bytes(b)
    elif granularity == "char":
        left, right = list(a), list(b)
    else:
        raise ValueError(f"granularity must be 'char' or 'byte', got {granularity!r}")

    segments = _coalesce(_edit_script(left, right, max_edits))
    added_count = sum(len(s.text) for s in segments if s.added)
    removed_count = sum(len(s.text) for s in segments if s.removed)

    return BytecodeDiffResult(
        segments=segments,
        added_count=added_count,
        removed_count=removed_count,
        has_changes=(added_count + removed_count) > 0,
    )

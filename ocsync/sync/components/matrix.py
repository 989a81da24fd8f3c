# ocsync/sync/components/matrix.py
from __future__ import annotations

from itertools import product
from typing import List, Sequence, Tuple


def cartesian(value_lists: Sequence[Sequence[str]]) -> List[Tuple[str, ...]]:
    """
    Full Cartesian product of an ordered list of value-lists, in odometer order:
    the last list's index cycles fastest.

        cartesian([["A", "B"], ["X", "Y", "Z"]])
        -> [("A","X"), ("A","Y"), ("A","Z"), ("B","X"), ("B","Y"), ("B","Z")]

    The whole list is rebuilt on every chunk call (nothing is persisted between
    steps), so a call costs O(total combinations), not O(chunk size).
    An empty input yields no combinations.
    """
    if not value_lists:
        return []
    return list(product(*value_lists))


def slice_chunk(combos: Sequence[Tuple[str, ...]], offset: int, chunk_size: int) -> List[Tuple[str, ...]]:
    """combos[offset : min(offset + chunk_size, len(combos))]"""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    start = max(0, int(offset))
    return list(combos[start:start + chunk_size])


def chunk_window(total: int, offset: int, returned: int) -> Tuple[int, bool]:
    """
    (next_offset, has_more) after a chunk of `returned` combinations starting at
    `offset` out of `total`. next_offset is 0 once the product is exhausted.
    """
    nxt = offset + returned
    has_more = nxt < total
    return (nxt if has_more else 0), has_more

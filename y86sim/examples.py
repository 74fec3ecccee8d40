"""Reference versions of the routines that are rewritten in Y86-64 assembly."""

from __future__ import annotations

from dataclasses import dataclass
from functools import reduce
from operator import xor
from typing import MutableSequence, Optional, Sequence


@dataclass
class ListNode:
    """Element of a singly linked list."""

    val: int
    next: Optional[ListNode] = None


def sum_list(ls: Optional[ListNode]) -> int:
    """Sum the elements of a linked list."""
    total = 0
    while ls is not None:
        total += ls.val
        ls = ls.next
    return total


def rsum_list(ls: Optional[ListNode]) -> int:
    """Recursive version of sum_list."""
    if ls is None:
        return 0
    return ls.val + rsum_list(ls.next)


def copy_block(src: Sequence[int], dest: MutableSequence[int]) -> int:
    """Copy ``src`` to the start of ``dest`` and return the xor checksum of ``src``."""
    dest[:len(src)] = src
    return reduce(xor, src, 0)
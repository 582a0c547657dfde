"""
Identifier allocation for grammar groups.

Two kinds of identifiers are kept:

- Generic group ids identify a generic group by content. The generic part
  has no dependency on instantiation, so a hash of its AST suffices and is
  stable across processes.
- Group ids identify one instantiation site. They are drawn from a
  process-wide counter, but only when first observed, so that merely
  building or loading grammars has no global side effect.
"""

from __future__ import annotations

import hashlib
import itertools
import json
import logging
import threading
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

GenericGroupId = str
GroupId = int

_counter = itertools.count(1)
_counter_lock = threading.Lock()


def compute_generic_group_id(
    implicit_vars: Sequence[str], types: Sequence[tuple[str, BaseModel]]
) -> GenericGroupId:
    """
    Compute the content id of a generic group.

    Args:
        implicit_vars: Names of the group's implicit variables
        types: Ordered (type name, type AST) pairs

    Returns:
        SHA-256 hex digest of the canonical JSON form
    """
    payload: dict[str, Any] = {
        "implicit_vars": list(implicit_vars),
        "types": [[name, type_.model_dump(mode="json")] for name, type_ in types],
    }
    json_str = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(json_str.encode()).hexdigest()


def allocate_group_id() -> GroupId:
    """Draw the next id from the process-wide counter."""
    with _counter_lock:
        gid = next(_counter)
    logger.debug("Allocated group id %d", gid)
    return gid


class LazyGroupId:
    """
    Single-use deferred allocation cell.

    The cell is either unforced (holding an allocator) or forced (holding the
    id). ``force`` performs the transition at most once, even when called
    concurrently; every caller sees the same id. Nothing else forces it:
    ``repr``, equality and hashing only use the cell's identity.
    """

    __slots__ = ("_allocator", "_value", "_lock")

    def __init__(self, allocator: Callable[[], GroupId] | None = None) -> None:
        self._allocator = allocator or allocate_group_id
        self._value: GroupId | None = None
        self._lock = threading.Lock()

    @property
    def is_forced(self) -> bool:
        return self._value is not None

    def peek(self) -> GroupId | None:
        """Return the id if already allocated, without allocating it."""
        return self._value

    def force(self) -> GroupId:
        """Return the id, allocating it on first call."""
        value = self._value
        if value is not None:
            return value
        with self._lock:
            if self._value is None:
                self._value = self._allocator()
            return self._value

    def __copy__(self) -> LazyGroupId:
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> LazyGroupId:
        # A copy of a group is the same instantiation site
        return self

    def __repr__(self) -> str:
        if self._value is None:
            return "LazyGroupId(<unforced>)"
        return f"LazyGroupId({self._value})"

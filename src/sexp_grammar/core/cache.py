"""
Content-addressed cache of generic groups.

Every generic group built from the same declarations has the same ggid.
Passing groups through ``intern`` makes them share a single instance, which
is what lets consumers cache per ggid and keeps repeated instantiations of
the same parameterized family from duplicating its generic part.
"""

from __future__ import annotations

import logging
import threading

from .ir import GenericGroup, Grammar, Group, Inline, Ref
from .traversal import map_payloads

logger = logging.getLogger(__name__)


class GenericGroupCache:
    """Thread-safe map from ggid to the canonical generic group."""

    def __init__(self) -> None:
        self._groups: dict[str, GenericGroup] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def intern(self, generic_group: GenericGroup) -> GenericGroup:
        """
        Return the canonical instance for ``generic_group``.

        The first group registered under a ggid becomes canonical. A group
        whose ggid is already taken by different content is returned as is.
        """
        with self._lock:
            cached = self._groups.get(generic_group.ggid)
            if cached is None:
                self._groups[generic_group.ggid] = generic_group
                self.misses += 1
                logger.debug("Cached generic group %s", generic_group.ggid[:12])
                return generic_group
            # Compared by dump: embedded groups differing only in gid are the same content
            if cached is not generic_group and cached.model_dump(
                mode="json"
            ) != generic_group.model_dump(mode="json"):
                logger.warning(
                    "Generic group id %s is shared by different content; not interning",
                    generic_group.ggid[:12],
                )
                return generic_group
            self.hits += 1
            return cached

    def get(self, ggid: str) -> GenericGroup | None:
        with self._lock:
            return self._groups.get(ggid)

    def clear(self) -> None:
        with self._lock:
            self._groups.clear()
            self.hits = 0
            self.misses = 0

    def __contains__(self, ggid: object) -> bool:
        with self._lock:
            return ggid in self._groups

    def __len__(self) -> int:
        with self._lock:
            return len(self._groups)


_default_cache = GenericGroupCache()


def default_cache() -> GenericGroupCache:
    """The process-wide cache."""
    return _default_cache


def intern_generic_group(generic_group: GenericGroup) -> GenericGroup:
    return _default_cache.intern(generic_group)


def canonicalize(grammar: Grammar, cache: GenericGroupCache | None = None) -> Grammar:
    """
    Rebuild ``grammar`` so every generic group in it is the cached instance.

    Groups keep their gid cells, so instantiation identities are unchanged
    and no id is allocated.
    """
    if cache is None:
        cache = _default_cache
    groups: dict[int, Group] = {}

    def canon_grammar(node: Grammar) -> Grammar:
        if isinstance(node, Inline):
            return Inline(type=map_payloads(node.type, canon_grammar))
        return Ref(type_name=node.type_name, group=canon_group(node.group))

    def canon_group(group: Group) -> Group:
        key = id(group.gid)
        if key not in groups:
            generic = group.generic_group
            types = tuple(
                (name, map_payloads(type_, canon_grammar)) for name, type_ in generic.types
            )
            rebuilt = GenericGroup(
                implicit_vars=generic.implicit_vars, ggid=generic.ggid, types=types
            )
            groups[key] = group.model_copy(
                update={
                    "generic_group": cache.intern(rebuilt),
                    "apply_implicit": tuple(canon_grammar(arg) for arg in group.apply_implicit),
                }
            )
        return groups[key]

    return canon_grammar(grammar)

"""
Genotype ancestry stored as an arena of index-addressed nodes.

Each node records its parent node index and the mutations that arose in
that generation. A genotype's accumulated mutations are recovered by walking
parent links, so clones and daughters share ancestor nodes instead of
copying mutation lists. Nodes are reference counted (by live lineages and by
child nodes) and reclaimed once their whole subtree is extinct.
"""

from __future__ import annotations

from collections import Counter
from typing import Iterable, List, Sequence, Tuple

from .errors import InvariantError
from .mutation import Mutation

NO_PARENT = -1


class GenotypeArena:
    """Owns every genotype node of one simulation trial."""

    def __init__(self):
        self._parent: List[int] = []
        self._original: List[Tuple[Mutation, ...]] = []
        self._refs: List[int] = []
        self._free: List[int] = []

    def __len__(self) -> int:
        """Number of live nodes."""
        return len(self._parent) - len(self._free)

    # ------------------------------------------------------------------
    # Construction and reference counting
    # ------------------------------------------------------------------

    def new_node(self, parent: int = NO_PARENT, mutations: Sequence[Mutation] = ()) -> int:
        """Create a node below `parent` (a root if NO_PARENT) with unowned refcount 0."""
        if parent != NO_PARENT:
            self._check_live(parent)
            self._refs[parent] += 1
        original = tuple(mutations)
        if self._free:
            index = self._free.pop()
            self._parent[index] = parent
            self._original[index] = original
            self._refs[index] = 0
        else:
            index = len(self._parent)
            self._parent.append(parent)
            self._original.append(original)
            self._refs.append(0)
        return index

    def acquire(self, index: int) -> int:
        self._check_live(index)
        self._refs[index] += 1
        return index

    def release(self, index: int) -> None:
        """Drop one reference; reclaim the node and any ancestors left unreferenced."""
        while index != NO_PARENT:
            self._check_live(index)
            self._refs[index] -= 1
            if self._refs[index] > 0:
                return
            if self._refs[index] < 0:
                raise InvariantError(f"Genotype reference count underflow at node {index}")
            parent = self._parent[index]
            self._parent[index] = NO_PARENT
            self._original[index] = ()
            self._refs[index] = -1
            self._free.append(index)
            index = parent

    def is_live(self, index: int) -> bool:
        return 0 <= index < len(self._refs) and self._refs[index] >= 0

    def ref_count(self, index: int) -> int:
        self._check_live(index)
        return self._refs[index]

    def _check_live(self, index: int) -> None:
        if not self.is_live(index):
            raise InvariantError(f"Genotype node {index} is not live")

    # ------------------------------------------------------------------
    # Ancestry queries
    # ------------------------------------------------------------------

    def parent(self, index: int) -> int:
        self._check_live(index)
        return self._parent[index]

    def original(self, index: int) -> Tuple[Mutation, ...]:
        """Mutations that arose in this generation."""
        self._check_live(index)
        return self._original[index]

    def ancestors(self, index: int) -> List[int]:
        """Node indices from `index` up to its root, inclusive."""
        self._check_live(index)
        chain = []
        while index != NO_PARENT:
            chain.append(index)
            index = self._parent[index]
        return chain

    def founder(self, index: int) -> int:
        return self.ancestors(index)[-1]

    def accumulated(self, index: int) -> Tuple[Mutation, ...]:
        """All mutations along the ancestry line, oldest first."""
        mutations: List[Mutation] = []
        for node in reversed(self.ancestors(index)):
            mutations.extend(self._original[node])
        return tuple(mutations)

    def inherited(self, index: int) -> Tuple[Mutation, ...]:
        """Accumulated mutations of the parent node."""
        parent = self.parent(index)
        if parent == NO_PARENT:
            return ()
        return self.accumulated(parent)

    def latest_mutation(self, index: int):
        for node in self.ancestors(index):
            if self._original[node]:
                return self._original[node][-1]
        return None

    def earliest_mutation(self, index: int):
        for node in reversed(self.ancestors(index)):
            if self._original[node]:
                return self._original[node][0]
        return None

    def count_mutations(self, indices: Iterable[int]) -> Counter:
        """Number of listed genotypes carrying each mutation."""
        counts: Counter = Counter()
        for index in indices:
            counts.update(self.accumulated(index))
        return counts

    def find_common(self, indices: Iterable[int]) -> Tuple[Mutation, ...]:
        """Mutations carried by every listed genotype."""
        indices = list(indices)
        if not indices:
            return ()
        common = set(self.accumulated(indices[0]))
        for index in indices[1:]:
            common.intersection_update(self.accumulated(index))
        return tuple(sorted(common))

    def find_unique(self, indices: Iterable[int]) -> Tuple[Mutation, ...]:
        """Mutations carried by at least one listed genotype."""
        found = set()
        for index in indices:
            found.update(self.accumulated(index))
        return tuple(sorted(found))

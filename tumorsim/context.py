"""Per-trial mutable simulation state threaded through the engine."""

from __future__ import annotations

import numpy as np

from .genotype import GenotypeArena


class SimulationContext:
    """Random stream, step clock, identifier counters and genotype arena of one trial."""

    def __init__(self, rng: np.random.Generator):
        self.rng = rng
        self.step = 0
        self.arena = GenotypeArena()
        self._next_mutation = 0
        self._next_component = 0

    def next_mutation_index(self) -> int:
        index = self._next_mutation
        self._next_mutation += 1
        return index

    def next_component_index(self) -> int:
        index = self._next_component
        self._next_component += 1
        return index

    @property
    def mutation_count(self) -> int:
        return self._next_mutation

    @property
    def component_count(self) -> int:
        return self._next_component

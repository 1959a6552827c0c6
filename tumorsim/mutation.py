"""
Mutations, their arrival process, and mutation frequency summaries.

Features:
- Immutable mutations with monotonically increasing indices
- Poisson, uniform and zero arrival rates per new cell
- Single-type (neutral, selective, scalar, neoantigen) and composite
  (neutral + scalar) generators
- Variant allele frequency maps and pairwise mutational distance
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from .growth import GrowthRate


class MutationType(enum.Enum):
    NEUTRAL = "NEUTRAL"
    SELECTIVE = "SELECTIVE"
    NEOANTIGEN = "NEOANTIGEN"
    SCALAR = "SCALAR"


SELECTION_COEFF_LIMIT = 0.5

# zero-truncated Poisson draws switch from inversion to rejection above this mean
POISSON_INVERSION_LIMIT = 30.0


@dataclass(frozen=True, order=True)
class Mutation:
    """A single heritable mutation.

    Ordered and compared by `index` first, so sorting a collection of
    mutations recovers their order of origin.
    """

    index: int
    type: MutationType
    selection_coeff: float = 0.0
    origin_step: int = 0

    def __post_init__(self):
        if self.type in (MutationType.SCALAR, MutationType.SELECTIVE):
            if abs(self.selection_coeff) > SELECTION_COEFF_LIMIT:
                raise ValueError(
                    f"Selection coefficient must lie in [-0.5, 0.5], got {self.selection_coeff}."
                )
        elif self.selection_coeff != 0.0:
            raise ValueError(f"{self.type.value} mutations carry no selection coefficient.")

    def apply(self, rate: GrowthRate) -> GrowthRate:
        """Growth rate of a cell that acquires this mutation.

        SCALAR scales the death rate by (1 - s) and moves the difference into
        births; SELECTIVE scales the birth rate by (1 + s) within the
        remaining event probability. Other types are passive.
        """
        s = self.selection_coeff
        if self.type is MutationType.SCALAR:
            total = rate.birth + rate.death
            death = min(rate.death * (1.0 - s), total)
            return GrowthRate(total - death, death)
        if self.type is MutationType.SELECTIVE:
            birth = min(rate.birth * (1.0 + s), 1.0 - rate.death)
            return GrowthRate(birth, rate.death)
        return rate


def apply_mutations(rate: GrowthRate, mutations: Iterable[Mutation]) -> GrowthRate:
    for mutation in mutations:
        rate = mutation.apply(rate)
    return rate


# ============================================================================
# Arrival rates
# ============================================================================


class MutationRateType(enum.Enum):
    POISSON = "POISSON"
    UNIFORM = "UNIFORM"
    ZERO = "ZERO"


@dataclass(frozen=True)
class MutationRate:
    """Distribution of the number of mutations arriving in one new cell."""

    type: MutationRateType
    mean: float = 0.0

    def __post_init__(self):
        if self.mean < 0.0:
            raise ValueError(f"Mutation rate must be non-negative, got {self.mean}.")
        if self.type is MutationRateType.UNIFORM and self.mean > 1.0:
            raise ValueError(f"Uniform mutation rate must not exceed one, got {self.mean}.")

    @classmethod
    def zero(cls) -> "MutationRate":
        return cls(MutationRateType.ZERO, 0.0)

    @property
    def positive_probability(self) -> float:
        """Probability that a new cell carries at least one mutation."""
        if self.type is MutationRateType.POISSON:
            return -math.expm1(-self.mean)
        if self.type is MutationRateType.UNIFORM:
            return self.mean
        return 0.0

    def sample(self, rng: np.random.Generator) -> int:
        if self.type is MutationRateType.POISSON:
            return int(rng.poisson(self.mean))
        if self.type is MutationRateType.UNIFORM:
            return int(rng.random() < self.mean)
        return 0

    def sample_positive(self, rng: np.random.Generator) -> int:
        """Draw a count conditioned on being at least one."""
        if self.type is MutationRateType.UNIFORM:
            return 1
        if self.type is MutationRateType.ZERO or self.mean <= 0.0:
            raise ValueError("Zero mutation rate cannot produce a mutation.")
        if self.mean > POISSON_INVERSION_LIMIT:
            # P(0) < 1e-13 here
            count = 0
            while count == 0:
                count = int(rng.poisson(self.mean))
            return count
        # inverse transform over the zero-truncated Poisson pmf
        u = rng.random()
        mass = self.mean * math.exp(-self.mean) / self.positive_probability
        cumulative = mass
        count = 1
        while u > cumulative and mass > 0.0:
            count += 1
            mass *= self.mean / count
            cumulative += mass
        return count


# ============================================================================
# Generators
# ============================================================================


class MutationGeneratorType(enum.Enum):
    EMPTY = "EMPTY"
    NEUTRAL = "NEUTRAL"
    SELECTIVE = "SELECTIVE"
    SCALAR = "SCALAR"
    NEOANTIGEN = "NEOANTIGEN"
    NEUTRAL_SCALAR = "NEUTRAL_SCALAR"


@dataclass(frozen=True)
class MutationChannel:
    """One independent arrival stream of a single mutation type."""

    type: MutationType
    rate: MutationRate
    selection_coeff: float = 0.0


class MutationGenerator:
    """Draws the mutations carried by newly born cells.

    The generator is a fixed tuple of independent channels. `EMPTY` has none.
    """

    def __init__(self, kind: MutationGeneratorType, channels: Sequence[MutationChannel] = ()):
        self.kind = kind
        self.channels = tuple(channels)
        zero = [1.0 - channel.rate.positive_probability for channel in self.channels]
        # probability that channel i or any later channel fires
        self._tail_positive = tuple(
            1.0 - float(np.prod(zero[i:])) for i in range(len(zero))
        )

    def __repr__(self) -> str:
        return f"MutationGenerator({self.kind.value}, channels={list(self.channels)})"

    @property
    def mutation_probability(self) -> float:
        """Probability that a single new cell carries at least one mutation."""
        if not self.channels:
            return 0.0
        return self._tail_positive[0]

    def count_mutated_cells(self, rng: np.random.Generator, new_cells: int) -> int:
        probability = self.mutation_probability
        if new_cells <= 0 or probability <= 0.0:
            return 0
        return int(rng.binomial(new_cells, probability))

    def generate(self, ctx) -> Tuple[Mutation, ...]:
        """Mutations for one cell, drawn unconditionally (possibly empty)."""
        rng = ctx.rng
        mutations: List[Mutation] = []
        for channel in self.channels:
            for _ in range(channel.rate.sample(rng)):
                mutations.append(self._create(ctx, channel))
        return tuple(mutations)

    def generate_positive(self, ctx) -> Tuple[Mutation, ...]:
        """Mutations for one cell known to carry at least one."""
        if not self.channels or self.mutation_probability <= 0.0:
            raise ValueError("Generator cannot produce mutations.")
        rng = ctx.rng
        mutations: List[Mutation] = []
        fired = False
        for i, channel in enumerate(self.channels):
            if fired:
                count = channel.rate.sample(rng)
            else:
                # channel i fires first with P(i fires) / P(i or any later fires)
                first = channel.rate.positive_probability / self._tail_positive[i]
                count = channel.rate.sample_positive(rng) if rng.random() < first else 0
                fired = count > 0
            for _ in range(count):
                mutations.append(self._create(ctx, channel))
        return tuple(mutations)

    @staticmethod
    def _create(ctx, channel: MutationChannel) -> Mutation:
        return Mutation(
            index=ctx.next_mutation_index(),
            type=channel.type,
            selection_coeff=channel.selection_coeff,
            origin_step=ctx.step,
        )


def make_mutation_generator(
    kind: MutationGeneratorType,
    rate_type: MutationRateType = MutationRateType.POISSON,
    *,
    neutral_rate: Optional[float] = None,
    selective_rate: Optional[float] = None,
    scalar_rate: Optional[float] = None,
    neoantigen_rate: Optional[float] = None,
    selection_coeff: Optional[float] = None,
) -> MutationGenerator:
    """Build a generator of the given kind from its rate parameters."""

    def rate(value: Optional[float], name: str) -> MutationRate:
        if value is None:
            raise ValueError(f"Must provide {name} for {kind.value} mutation generator.")
        if rate_type is MutationRateType.ZERO:
            return MutationRate.zero()
        return MutationRate(rate_type, value)

    def coeff() -> float:
        if selection_coeff is None:
            raise ValueError(f"Must provide selection_coeff for {kind.value} mutation generator.")
        return selection_coeff

    if kind is MutationGeneratorType.EMPTY:
        return MutationGenerator(kind)
    if kind is MutationGeneratorType.NEUTRAL:
        return MutationGenerator(kind, [MutationChannel(MutationType.NEUTRAL, rate(neutral_rate, "neutral_rate"))])
    if kind is MutationGeneratorType.SELECTIVE:
        return MutationGenerator(
            kind, [MutationChannel(MutationType.SELECTIVE, rate(selective_rate, "selective_rate"), coeff())]
        )
    if kind is MutationGeneratorType.SCALAR:
        return MutationGenerator(
            kind, [MutationChannel(MutationType.SCALAR, rate(scalar_rate, "scalar_rate"), coeff())]
        )
    if kind is MutationGeneratorType.NEOANTIGEN:
        return MutationGenerator(
            kind, [MutationChannel(MutationType.NEOANTIGEN, rate(neoantigen_rate, "neoantigen_rate"))]
        )
    if kind is MutationGeneratorType.NEUTRAL_SCALAR:
        return MutationGenerator(kind, [
            MutationChannel(MutationType.NEUTRAL, rate(neutral_rate, "neutral_rate")),
            MutationChannel(MutationType.SCALAR, rate(scalar_rate, "scalar_rate"), coeff()),
        ])
    raise ValueError(f"Unknown mutation generator type: {kind}")


# ============================================================================
# Frequency summaries
# ============================================================================


@dataclass(frozen=True)
class MutationFrequency:
    mutation: Mutation
    frequency: float


class MutationFrequencyMap:
    """Fraction of cells carrying each mutation in a collection of carriers."""

    def __init__(self, cell_counts: Mapping[Mutation, int], total_cells: int):
        if total_cells < 0:
            raise ValueError("Total cell count must be non-negative.")
        self.total_cells = int(total_cells)
        self._counts: Dict[Mutation, int] = dict(cell_counts)
        for mutation, count in self._counts.items():
            if count > total_cells:
                raise ValueError(f"Mutation {mutation.index} carried by more cells than the total.")

    def __len__(self) -> int:
        return len(self._counts)

    def __contains__(self, mutation: Mutation) -> bool:
        return mutation in self._counts

    def count(self, mutation: Mutation) -> int:
        return self._counts.get(mutation, 0)

    def frequency(self, mutation: Mutation) -> float:
        if self.total_cells == 0:
            return 0.0
        return self._counts.get(mutation, 0) / self.total_cells

    def list_frequencies(self) -> List[MutationFrequency]:
        """Frequencies in descending order, ties broken by mutation index."""
        ordered = sorted(self._counts, key=lambda m: (-self._counts[m], m.index))
        return [MutationFrequency(m, self.frequency(m)) for m in ordered]

    def frequency_distribution(self) -> NDArray[np.float64]:
        return np.array([item.frequency for item in self.list_frequencies()], dtype=np.float64)

    def summarize(self):
        """Descriptive statistics of the frequency distribution (None if empty)."""
        values = self.frequency_distribution()
        if values.size == 0:
            return None
        return stats.describe(values)


@dataclass(frozen=True)
class MutationalDistance:
    """Shared and private mutation counts between two genotypes."""

    shared: int
    unique_first: int
    unique_second: int

    @classmethod
    def compute(cls, first: Iterable[Mutation], second: Iterable[Mutation]) -> "MutationalDistance":
        first = set(first)
        second = set(second)
        return cls(len(first & second), len(first - second), len(second - first))

    @property
    def int_distance(self) -> int:
        return self.unique_first + self.unique_second

    @property
    def frac_distance(self) -> float:
        total = self.shared + self.int_distance
        if total == 0:
            return 0.0
        return self.int_distance / total

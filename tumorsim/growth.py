"""
Per-step birth/death rates and their stochastic application.

A carrier of N cells is advanced by one multinomial draw of its N cells over
the exclusive outcomes {birth, death, nothing}. A single cell is the N == 1
case, so every carrier type shares one sampling rule. Births beyond the free
capacity available to the carrier are discarded.
"""

from __future__ import annotations

import enum
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional

import numpy as np

from .errors import InvariantError

_TOLERANCE = 1e-12


# ============================================================================
# Rates and counts
# ============================================================================


@dataclass(frozen=True)
class GrowthRate:
    """Per-cell, per-step birth and death probabilities."""

    birth: float
    death: float

    def __post_init__(self):
        birth = float(self.birth)
        death = float(self.death)
        if not 0.0 <= birth <= 1.0:
            raise ValueError(f"Birth rate must lie in [0, 1], got {birth}.")
        if not 0.0 <= death <= 1.0:
            raise ValueError(f"Death rate must lie in [0, 1], got {death}.")
        if birth + death > 1.0 + _TOLERANCE:
            raise ValueError(f"Birth and death rates sum to more than one: {birth} + {death}.")
        object.__setattr__(self, "birth", birth)
        object.__setattr__(self, "death", death)

    @classmethod
    def net(cls, rate: float) -> "GrowthRate":
        """Rate pair with every cell dividing or dying and net rate `rate`."""
        return cls(0.5 * (1.0 + rate), 0.5 * (1.0 - rate))

    @property
    def net_rate(self) -> float:
        return self.birth - self.death

    @property
    def event_rate(self) -> float:
        return self.birth + self.death

    @property
    def idle_rate(self) -> float:
        return max(0.0, 1.0 - self.birth - self.death)

    def growth_factor(self, steps: float) -> float:
        """Expected population multiplier after `steps` steps."""
        return (1.0 + self.net_rate) ** steps

    def doubling_time(self) -> float:
        if self.net_rate <= 0.0:
            return math.inf
        return math.log(2.0) / math.log1p(self.net_rate)

    def no_birth(self) -> "GrowthRate":
        return GrowthRate(0.0, self.death)

    def no_growth(self) -> "GrowthRate":
        return GrowthRate(0.0, 0.0)

    def rescale_birth_rate(self, factor: float) -> "GrowthRate":
        return GrowthRate(self.birth * factor, self.death)

    def rescale_death_rate(self, factor: float) -> "GrowthRate":
        return GrowthRate(self.birth, self.death * factor)

    def rescale_growth_factor(self, factor: float) -> "GrowthRate":
        """Scale both rates, preserving their ratio."""
        return GrowthRate(self.birth * factor, self.death * factor)


@dataclass(frozen=True)
class GrowthCount:
    """Birth and death counts realized by one carrier in one step."""

    births: int = 0
    deaths: int = 0

    def __post_init__(self):
        if self.births < 0 or self.deaths < 0:
            raise ValueError(f"Event counts must be non-negative: {self.births}, {self.deaths}.")
        object.__setattr__(self, "births", int(self.births))
        object.__setattr__(self, "deaths", int(self.deaths))

    @property
    def net_change(self) -> int:
        return self.births - self.deaths

    @property
    def event_count(self) -> int:
        return self.births + self.deaths

    @property
    def daughter_count(self) -> int:
        """Number of new cells: each birth yields two daughters."""
        return 2 * self.births

    def __add__(self, other: "GrowthCount") -> "GrowthCount":
        return GrowthCount(self.births + other.births, self.deaths + other.deaths)

    @staticmethod
    def sum(counts: Iterable["GrowthCount"]) -> "GrowthCount":
        births = 0
        deaths = 0
        for count in counts:
            births += count.births
            deaths += count.deaths
        return GrowthCount(births, deaths)


GrowthCount.ZERO = GrowthCount(0, 0)


def sample_growth_count(
    rng: np.random.Generator,
    rate: GrowthRate,
    population: int,
    net_capacity: Optional[int] = None,
) -> GrowthCount:
    """Draw births and deaths for `population` cells.

    `net_capacity` bounds the net change (births - deaths); ``None`` means
    unconstrained growth.
    """
    if population < 0:
        raise InvariantError(f"Negative cell count: {population}")
    if population == 0:
        return GrowthCount.ZERO
    draw = rng.multinomial(population, (rate.birth, rate.death, rate.idle_rate))
    births = int(draw[0])
    deaths = int(draw[1])
    if net_capacity is not None:
        if net_capacity < 0:
            raise InvariantError(f"Negative net capacity: {net_capacity}")
        if births - deaths > net_capacity:
            births = deaths + net_capacity
    return GrowthCount(births, deaths)


# ============================================================================
# Growth models
# ============================================================================


@dataclass(frozen=True)
class LocalEnvironment:
    """Occupancy context of a carrier for one step (lattice tumors only)."""

    site_occupancy: int
    site_capacity: int
    net_capacity: int

    @property
    def occupancy_fraction(self) -> float:
        fraction = self.site_occupancy / self.site_capacity
        if fraction > 1.0 + _TOLERANCE:
            raise InvariantError(f"Site occupancy fraction exceeds one: {fraction}")
        return fraction


class GrowthType(enum.Enum):
    INTRINSIC = "INTRINSIC"
    CAPACITY_SCALED = "CAPACITY_SCALED"


class GrowthModel(ABC):
    """Chooses the rate a carrier uses for the current step."""

    type: GrowthType

    @abstractmethod
    def resolve(self, intrinsic: GrowthRate, env: Optional[LocalEnvironment]) -> GrowthRate:
        ...


class IntrinsicGrowth(GrowthModel):
    """Carrier's own rate, unmodified."""

    type = GrowthType.INTRINSIC

    def resolve(self, intrinsic, env):
        return intrinsic


class CapacityScaledGrowth(GrowthModel):
    """Birth rate scaled by the unoccupied fraction of the carrier's site."""

    type = GrowthType.CAPACITY_SCALED

    def resolve(self, intrinsic, env):
        if env is None:
            return intrinsic
        return intrinsic.rescale_birth_rate(max(0.0, 1.0 - env.occupancy_fraction))


def make_growth_model(growth_type: GrowthType) -> GrowthModel:
    if growth_type is GrowthType.INTRINSIC:
        return IntrinsicGrowth()
    if growth_type is GrowthType.CAPACITY_SCALED:
        return CapacityScaledGrowth()
    raise ValueError(f"Unknown growth type: {growth_type}")

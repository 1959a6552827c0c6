"""Site capacity models: maximum cell occupancy of each lattice site."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from typing import Optional

from .lattice import Coord, Neighborhood, PeriodicLattice


class CapacityType(enum.Enum):
    SINGLE = "SINGLE"
    UNIFORM = "UNIFORM"


class CapacityModel(ABC):
    """Maps a lattice site to its maximum cell count."""

    type: CapacityType

    @abstractmethod
    def site_capacity(self, coord: Coord) -> int:
        ...

    @property
    @abstractmethod
    def mean_capacity(self) -> float:
        ...

    def neighborhood_capacity(
        self,
        lattice: PeriodicLattice,
        center: Coord,
        neighborhood: Neighborhood,
    ) -> int:
        """Total capacity of the neighbors of `center` (center excluded)."""
        return sum(self.site_capacity(coord) for coord in lattice.neighbors(center, neighborhood))


class SingleCapacity(CapacityModel):
    """One cell per site."""

    type = CapacityType.SINGLE

    def site_capacity(self, coord: Coord) -> int:
        return 1

    @property
    def mean_capacity(self) -> float:
        return 1.0

    def __repr__(self) -> str:
        return "SingleCapacity()"


class UniformCapacity(CapacityModel):
    """The same capacity at every site."""

    type = CapacityType.UNIFORM

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("Site capacity must be positive.")
        self.capacity = int(capacity)

    def site_capacity(self, coord: Coord) -> int:
        return self.capacity

    @property
    def mean_capacity(self) -> float:
        return float(self.capacity)

    def neighborhood_capacity(self, lattice, center, neighborhood) -> int:
        return self.capacity * len(lattice.neighbors(center, neighborhood))

    def __repr__(self) -> str:
        return f"UniformCapacity(capacity={self.capacity})"


def make_capacity_model(capacity_type: CapacityType, site_capacity: Optional[int] = None) -> CapacityModel:
    if capacity_type is CapacityType.SINGLE:
        return SingleCapacity()
    if capacity_type is CapacityType.UNIFORM:
        if site_capacity is None:
            raise ValueError("Must provide site_capacity for UNIFORM capacity.")
        return UniformCapacity(site_capacity)
    raise ValueError(f"Unknown capacity type: {capacity_type}")

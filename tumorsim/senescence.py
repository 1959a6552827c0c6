"""Senescence: a terminal transition into a non-growing state."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod

from .carrier import Carrier
from .errors import InvariantError
from .lattice import Neighborhood

_TOLERANCE = 1e-12


class SenescenceType(enum.Enum):
    NONE = "NONE"
    NEIGHBORHOOD_OCCUPANCY_FRACTION = "NEIGHBORHOOD_OCCUPANCY_FRACTION"


class SenescenceModel(ABC):
    type: SenescenceType

    @abstractmethod
    def senesce(self, tumor, component: Carrier) -> bool:
        ...


class NoSenescence(SenescenceModel):
    type = SenescenceType.NONE

    def senesce(self, tumor, component):
        return False

    def __repr__(self) -> str:
        return "NoSenescence()"


class NeighborhoodOccupancySenescence(SenescenceModel):
    """Senesce when the site, and the site plus its neighborhood, are both
    occupied at or above `threshold`."""

    type = SenescenceType.NEIGHBORHOOD_OCCUPANCY_FRACTION

    def __init__(self, neighborhood: Neighborhood, threshold: float):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Senescence threshold must lie in [0, 1], got {threshold}.")
        self.neighborhood = neighborhood
        self.threshold = float(threshold)

    def __repr__(self) -> str:
        return (
            f"NeighborhoodOccupancySenescence(neighborhood={self.neighborhood.value}, "
            f"threshold={self.threshold})"
        )

    def senesce(self, tumor, component):
        center = tumor.locate_component(component)
        center_cells = tumor.count_site_cells(center)
        center_capacity = tumor.site_capacity(center)
        if _fraction(center_cells, center_capacity) < self.threshold - _TOLERANCE:
            return False

        cells = center_cells + sum(
            tumor.count_site_cells(coord) for coord in tumor.lattice.neighbors(center, self.neighborhood)
        )
        capacity = center_capacity + tumor.capacity.neighborhood_capacity(tumor.lattice, center, self.neighborhood)
        return _fraction(cells, capacity) >= self.threshold - _TOLERANCE


def _fraction(cells: int, capacity: int) -> float:
    fraction = cells / capacity
    if fraction > 1.0 + _TOLERANCE:
        raise InvariantError(f"Occupancy fraction exceeds one: {cells} / {capacity}")
    return fraction


def make_senescence_model(senescence_type: SenescenceType, neighborhood=None, threshold=None) -> SenescenceModel:
    if senescence_type is SenescenceType.NONE:
        return NoSenescence()
    if senescence_type is SenescenceType.NEIGHBORHOOD_OCCUPANCY_FRACTION:
        if neighborhood is None or threshold is None:
            raise ValueError("Must provide neighborhood and threshold for occupancy senescence.")
        return NeighborhoodOccupancySenescence(neighborhood, threshold)
    raise ValueError(f"Unknown senescence type: {senescence_type}")

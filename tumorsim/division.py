"""Division of multi-cell components into a parent and a neighboring clone."""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .carrier import Carrier
from .lattice import Coord, Neighborhood

logger = logging.getLogger(__name__)

MINIMUM_DIVISION_SIZE = 2
RETENTION_PROBABILITY = 0.5

_TOLERANCE = 1e-12


class DivisionType(enum.Enum):
    THRESHOLD = "THRESHOLD"


@dataclass(frozen=True)
class DivisionResult:
    """A clone split off a parent and the site it must be placed at."""

    clone: Carrier
    coord: Coord


class DivisionModel(ABC):
    type: DivisionType

    @abstractmethod
    def divide(self, tumor, component: Carrier) -> Optional[DivisionResult]:
        """Split `component` if it qualifies; None means no division this step."""


class ThresholdDivision(DivisionModel):
    """Divide once a component's site is filled to a threshold fraction.

    A deme is the only occupant of its site, so the site occupancy is the
    deme's own size; lineages sharing a site are judged on the site total.
    Deme clones go to vacant neighbors, other clones to any neighbor with
    spare capacity. The clone size and destination are chosen, and checked
    against the destination's spare capacity, before any cells leave the
    parent.
    """

    type = DivisionType.THRESHOLD

    def __init__(self, threshold: float, neighborhood: Neighborhood = Neighborhood.MOORE):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Division threshold must lie in [0, 1], got {threshold}.")
        self.threshold = float(threshold)
        self.neighborhood = neighborhood

    def __repr__(self) -> str:
        return f"ThresholdDivision(threshold={self.threshold}, neighborhood={self.neighborhood.value})"

    def divide(self, tumor, component):
        cells = component.count_cells
        if cells < MINIMUM_DIVISION_SIZE:
            return None

        home = tumor.locate_component(component)
        if tumor.count_site_cells(home) / tumor.site_capacity(home) < self.threshold - _TOLERANCE:
            return None

        if tumor.factory.exclusive_sites:
            available = tumor.find_vacant(home, self.neighborhood)
        else:
            available = tumor.find_available(home, self.neighborhood)
        if not available:
            return None

        rng = tumor.ctx.rng
        dest = available[int(rng.integers(len(available)))]
        spare = tumor.site_capacity(dest) - tumor.count_site_cells(dest)
        transfer = int(rng.binomial(cells, 1.0 - RETENTION_PROBABILITY))
        transfer = max(1, min(transfer, cells - 1, spare))

        clone = tumor.factory.clone(tumor.ctx, component, transfer)
        logger.debug(
            "Component %d divided at %s: %d cells kept, clone %d with %d cells at %s",
            component.index, home, component.count_cells, clone.index, transfer, dest,
        )
        return DivisionResult(clone, dest)


def make_division_model(division_type: DivisionType, threshold: float,
                        neighborhood: Neighborhood = Neighborhood.MOORE) -> DivisionModel:
    if division_type is DivisionType.THRESHOLD:
        return ThresholdDivision(threshold, neighborhood)
    raise ValueError(f"Unknown division type: {division_type}")

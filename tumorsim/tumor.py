"""
Tumor engines: the set of live components and their spatial occupancy.

Features:
- PointTumor: every component at the origin, growth unconstrained
- LatticeTumor: components resident on a periodic 3D lattice with per-site
  capacity, threshold division into neighboring sites (vacant sites for
  demes, one deme per site), lineage growth overflowing into a neighbor,
  neighborhood senescence and pluggable migration
- One step visits every occupied site in a shuffled order and, for each
  resident component: senescence, growth/death with mutation, division,
  migration
- Snapshot queries: counts, coordinate maps, spatial moments, mutation
  frequencies, bulk and single-site samples
"""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, Iterable, List, Optional

import numpy as np

from .carrier import Carrier, ComponentType, State
from .context import SimulationContext
from .errors import InvariantError
from .growth import GrowthCount, GrowthRate, LocalEnvironment
from .lattice import ORIGIN, Coord, Neighborhood, coords_to_array
from .moment import VectorMoment
from .mutation import Mutation, MutationFrequencyMap

logger = logging.getLogger(__name__)


class TumorPhase(enum.Enum):
    INITIALIZED = "INITIALIZED"
    STEPPING = "STEPPING"
    TERMINATED = "TERMINATED"


class Tumor(ABC):
    """Live components of one trial and the step procedure that evolves them."""

    def __init__(
        self,
        models,
        ctx: SimulationContext,
        max_step_count: Optional[int] = None,
        max_tumor_size: Optional[int] = None,
    ):
        self.models = models
        self.factory = models.factory
        self.ctx = ctx
        self.max_step_count = max_step_count
        self.max_tumor_size = max_tumor_size

        self.phase = TumorPhase.INITIALIZED
        self.step_count = 0
        self.termination_reason: Optional[str] = None
        self.last_growth_count = GrowthCount.ZERO

        self._components: Dict[int, Carrier] = {}
        self._location: Dict[int, Coord] = {}
        self._sites: Dict[Coord, Dict[int, Carrier]] = {}
        self._site_cells: Dict[Coord, int] = {}

    # ------------------------------------------------------------------
    # Spatial hooks
    # ------------------------------------------------------------------

    @abstractmethod
    def founder_site(self) -> Coord:
        ...

    @abstractmethod
    def site_capacity(self, coord: Coord) -> Optional[int]:
        """Maximum cell count at `coord` (None if unconstrained)."""

    @abstractmethod
    def _traversal_order(self) -> List[Coord]:
        ...

    @abstractmethod
    def _environment(
        self, carrier: Carrier, home: Coord, expansion: Optional[Coord] = None
    ) -> Optional[LocalEnvironment]:
        ...

    @abstractmethod
    def _placement_site(self, carrier: Carrier, home: Coord, expansion: Optional[Coord] = None) -> Coord:
        ...

    def _expansion_site(self, carrier: Carrier, home: Coord) -> Optional[Coord]:
        """Neighbor that receives growth overflowing the home site (None: no overflow)."""
        return None

    # ------------------------------------------------------------------
    # Founding and stepping
    # ------------------------------------------------------------------

    def add_founder(self, rate: GrowthRate, initial_size: int = 1) -> Carrier:
        if self.phase is not TumorPhase.INITIALIZED or self._components:
            raise InvariantError("Founder must be added to an empty, unstarted tumor")
        founder = self.factory.founder(self.ctx, rate, initial_size)
        self._insert(founder, self.founder_site())
        logger.debug("Founder %r placed at %s", founder, self.founder_site())
        return founder

    @property
    def is_terminated(self) -> bool:
        return self.phase is TumorPhase.TERMINATED

    def advance(self) -> GrowthCount:
        """Run one time step and return the aggregate birth/death count."""
        if self.phase is TumorPhase.TERMINATED:
            raise InvariantError("Cannot advance a terminated tumor")
        self.phase = TumorPhase.STEPPING
        step = self.step_count + 1
        self.ctx.step = step

        counts: List[GrowthCount] = []
        visited = set()
        for coord in self._traversal_order():
            residents = self._sites.get(coord)
            if not residents:
                continue
            for index in sorted(residents):
                carrier = self._components.get(index)
                if carrier is None or index in visited:
                    continue
                if carrier.birth_step >= step or not carrier.is_active:
                    continue
                visited.add(index)
                self._process(carrier, counts)

        self.step_count = step
        self.last_growth_count = GrowthCount.sum(counts)
        self.check_capacity()
        logger.debug(
            "Step %d: %d cells in %d components (births=%d, deaths=%d)",
            step, self.count_cells(), self.count_components(),
            self.last_growth_count.births, self.last_growth_count.deaths,
        )
        self._check_termination()
        return self.last_growth_count

    def terminate(self, reason: str) -> None:
        self.phase = TumorPhase.TERMINATED
        self.termination_reason = reason

    def _check_termination(self) -> None:
        cells = self.count_cells()
        if cells == 0:
            self.terminate("extinct")
        elif self.max_tumor_size is not None and cells > self.max_tumor_size:
            self.terminate("max_tumor_size")
        elif self.max_step_count is not None and self.step_count >= self.max_step_count:
            self.terminate("max_step_count")

    def _process(self, carrier: Carrier, counts: List[GrowthCount]) -> None:
        home = self._location[carrier.index]

        if self.models.senescence.senesce(self, carrier):
            carrier.state = State.SENESCENT
            logger.debug("Component %d senesced at %s", carrier.index, home)
            return

        expansion = self._expansion_site(carrier, home)
        env = self._environment(carrier, home, expansion)
        result = self.factory.advance(self.ctx, carrier, self.models.growth, env)
        counts.append(result.count)
        alive = carrier.count_cells > 0
        if alive:
            if expansion is not None:
                self._overflow(carrier, home, expansion)
            self._refresh_site(home)
        else:
            self._remove(carrier)
        for offspring in result.offspring:
            self._insert(offspring, self._placement_site(offspring, home, expansion))
        if not alive:
            return

        if self.factory.divisible and self.models.division is not None:
            division = self.models.division.divide(self, carrier)
            if division is not None:
                self._refresh_site(home)
                self._insert(division.clone, division.coord)

        if not self.models.migration.pinned:
            dest = self.models.migration.migrate(self, carrier)
            if dest is not None and dest != home:
                self._relocate(carrier, dest)

    # ------------------------------------------------------------------
    # Occupancy bookkeeping
    # ------------------------------------------------------------------

    def _spare(self, coord: Coord) -> Optional[int]:
        capacity = self.site_capacity(coord)
        if capacity is None:
            return None
        return capacity - self._site_cells.get(coord, 0)

    def _insert(self, carrier: Carrier, coord: Coord) -> None:
        if carrier.state is State.DEAD or carrier.count_cells <= 0:
            raise InvariantError(f"Cannot add empty or dead component {carrier!r}")
        if carrier.index in self._components:
            raise InvariantError(f"Component {carrier.index} is already present")
        spare = self._spare(coord)
        if spare is not None and carrier.count_cells > spare:
            raise InvariantError(f"Exceeded local site capacity at {coord}")
        self._components[carrier.index] = carrier
        self._location[carrier.index] = coord
        self._sites.setdefault(coord, {})[carrier.index] = carrier
        self._site_cells[coord] = self._site_cells.get(coord, 0) + carrier.count_cells

    def _detach(self, carrier: Carrier) -> Coord:
        coord = self._location.pop(carrier.index)
        del self._components[carrier.index]
        residents = self._sites[coord]
        del residents[carrier.index]
        if not residents:
            del self._sites[coord]
            del self._site_cells[coord]
        else:
            self._refresh_site(coord)
        return coord

    def _overflow(self, carrier: Carrier, home: Coord, expansion: Coord) -> None:
        """Move the cells in excess of the home site capacity into a clone at `expansion`."""
        excess = sum(c.count_cells for c in self._sites[home].values()) - self.site_capacity(home)
        if excess <= 0:
            return
        clone = self.factory.clone(self.ctx, carrier, excess)
        self._insert(clone, expansion)
        logger.debug("Component %d overflowed %d cells into %s", carrier.index, excess, expansion)

    def _remove(self, carrier: Carrier) -> None:
        self._detach(carrier)
        self.factory.retire(self.ctx, carrier)

    def _relocate(self, carrier: Carrier, dest: Coord) -> None:
        spare = self._spare(dest)
        if spare is not None and carrier.count_cells > spare:
            raise InvariantError(f"Cannot migrate component {carrier.index} into full site {dest}")
        if self.factory.exclusive_sites and self._sites.get(dest):
            raise InvariantError(f"Cannot migrate component {carrier.index} into occupied site {dest}")
        self._detach(carrier)
        self._insert(carrier, dest)

    def _refresh_site(self, coord: Coord) -> None:
        cells = sum(c.count_cells for c in self._sites[coord].values())
        if cells < 0:
            raise InvariantError(f"Negative cell count at {coord}")
        capacity = self.site_capacity(coord)
        if capacity is not None and cells > capacity:
            raise InvariantError(f"Exceeded local site capacity at {coord}: {cells} > {capacity}")
        self._site_cells[coord] = cells

    def check_capacity(self) -> None:
        """Verify cached site totals and capacity at every occupied site."""
        for coord, residents in self._sites.items():
            if self.factory.exclusive_sites and len(residents) > 1:
                raise InvariantError(f"Site {coord} holds {len(residents)} components")
            cells = sum(c.count_cells for c in residents.values())
            if cells != self._site_cells[coord]:
                raise InvariantError(f"Stale cell count at {coord}: {self._site_cells[coord]} != {cells}")
            capacity = self.site_capacity(coord)
            if capacity is not None and cells > capacity:
                raise InvariantError(f"Exceeded local site capacity at {coord}: {cells} > {capacity}")

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def count_cells(self) -> int:
        return sum(self._site_cells.values())

    def count_components(self) -> int:
        return len(self._components)

    def count_active(self) -> int:
        return sum(1 for c in self._components.values() if c.is_active)

    def count_senescent(self) -> int:
        return sum(1 for c in self._components.values() if c.is_senescent)

    def count_site_cells(self, coord: Coord) -> int:
        return self._site_cells.get(coord, 0)

    def components(self) -> List[Carrier]:
        return [self._components[i] for i in sorted(self._components)]

    def active_components(self) -> List[Carrier]:
        return [c for c in self.components() if c.is_active]

    def senescent_components(self) -> List[Carrier]:
        return [c for c in self.components() if c.is_senescent]

    def contains(self, carrier: Carrier) -> bool:
        return self._components.get(carrier.index) is carrier

    def locate_component(self, carrier: Carrier) -> Coord:
        try:
            return self._location[carrier.index]
        except KeyError:
            raise ValueError(f"Component {carrier.index} is not in this tumor") from None

    def occupied_coords(self) -> List[Coord]:
        return sorted(self._sites)

    def view_components(self, coord: Coord) -> List[Carrier]:
        residents = self._sites.get(coord, {})
        return [residents[i] for i in sorted(residents)]

    def map_components(self) -> Dict[Coord, List[Carrier]]:
        return {coord: self.view_components(coord) for coord in self.occupied_coords()}

    def count_coords(self) -> Counter:
        """Occupied coordinates weighted by resident cell count."""
        return Counter({coord: cells for coord, cells in self._site_cells.items() if cells > 0})

    def vector_moment(self) -> VectorMoment:
        return VectorMoment.from_counts(self.count_coords())

    def mutation_frequency(self, carriers: Optional[Iterable[Carrier]] = None) -> MutationFrequencyMap:
        """Fraction of cells carrying each mutation in `carriers` (default: all components)."""
        if carriers is None:
            carriers = self.components()
        arena = self.ctx.arena
        accumulated: Dict[int, tuple] = {}
        counts: Counter = Counter()
        total = 0
        for carrier in carriers:
            for lineage in carrier.lineages:
                mutations = accumulated.get(lineage.genotype)
                if mutations is None:
                    mutations = accumulated[lineage.genotype] = arena.accumulated(lineage.genotype)
                for mutation in mutations:
                    counts[mutation] += lineage.cell_count
                total += lineage.cell_count
        return MutationFrequencyMap(counts, total)

    def accumulated_mutations(self, carrier: Carrier) -> List[Mutation]:
        """Union of the accumulated mutations of the carrier's lineages."""
        return list(self.ctx.arena.find_unique(l.genotype for l in carrier.lineages))


class PointTumor(Tumor):
    """Unstructured tumor: all components at the origin without capacity limits."""

    def founder_site(self):
        return ORIGIN

    def site_capacity(self, coord):
        return None

    def _traversal_order(self):
        return [ORIGIN]

    def _environment(self, carrier, home, expansion=None):
        return None

    def _placement_site(self, carrier, home, expansion=None):
        return ORIGIN


class LatticeTumor(Tumor):
    """Tumor on a periodic lattice with finite site capacity."""

    def __init__(self, models, ctx, max_step_count=None, max_tumor_size=None):
        if models.lattice is None or models.capacity is None:
            raise ValueError("LatticeTumor requires a lattice and a capacity model.")
        super().__init__(models, ctx, max_step_count, max_tumor_size)
        self.lattice = models.lattice
        self.capacity = models.capacity
        self.neighborhood: Neighborhood = models.neighborhood

    def founder_site(self):
        return self.lattice.center()

    def site_capacity(self, coord):
        return self.capacity.site_capacity(coord)

    def occupancy_fraction(self, coord: Coord) -> float:
        fraction = self.count_site_cells(coord) / self.site_capacity(coord)
        if fraction > 1.0:
            raise InvariantError(f"Occupancy fraction exceeds one at {coord}: {fraction}")
        return fraction

    def find_available(self, center: Coord, neighborhood: Optional[Neighborhood] = None,
                       min_spare: int = 1) -> List[Coord]:
        """Neighbors of `center` with at least `min_spare` free cell slots."""
        neighborhood = self.neighborhood if neighborhood is None else neighborhood
        return [
            coord for coord in self.lattice.neighbors(center, neighborhood)
            if self._spare(coord) >= min_spare
        ]

    def find_vacant(self, center: Coord, neighborhood: Optional[Neighborhood] = None) -> List[Coord]:
        """Unoccupied neighbors of `center`."""
        neighborhood = self.neighborhood if neighborhood is None else neighborhood
        return [coord for coord in self.lattice.neighbors(center, neighborhood) if coord not in self._sites]

    def _traversal_order(self):
        coords = sorted(self._sites)
        order = self.ctx.rng.permutation(len(coords))
        return [coords[i] for i in order]

    def _expansion_site(self, carrier, home):
        if not self.factory.expands or carrier.count_cells <= self._spare(home):
            return None
        available = self.find_available(home)
        if not available:
            return None
        return available[int(self.ctx.rng.integers(len(available)))]

    def _environment(self, carrier, home, expansion=None):
        cells = self.count_site_cells(home)
        capacity = self.site_capacity(home)
        net_capacity = capacity - cells
        if carrier.kind is ComponentType.CELL:
            net_capacity += sum(self._spare(coord) for coord in self.lattice.neighbors(home, self.neighborhood))
        elif expansion is not None:
            net_capacity += self._spare(expansion)
        return LocalEnvironment(cells, capacity, net_capacity)

    def _placement_site(self, carrier, home, expansion=None):
        cells = carrier.count_cells
        if self._spare(home) >= cells:
            return home
        if expansion is not None and self._spare(expansion) >= cells:
            return expansion
        available = self.find_available(home, min_spare=cells)
        if not available:
            raise InvariantError(f"No site available for component {carrier.index} near {home}")
        return available[int(self.ctx.rng.integers(len(available)))]

    def collect_bulk_sample(self, site: Coord, target_size: int) -> Dict[Coord, List[Carrier]]:
        """Components nearest `site` until at least `target_size` cells are collected."""
        if target_size > self.count_cells():
            raise ValueError("Target size exceeds tumor size.")
        coords = self.occupied_coords()
        distances = self.lattice.squared_distances(coords_to_array(coords), site)
        order = np.lexsort((np.arange(len(coords)), distances))

        sample: Dict[Coord, List[Carrier]] = {}
        collected = 0
        for i in order:
            coord = coords[int(i)]
            for carrier in self.view_components(coord):
                sample.setdefault(coord, []).append(carrier)
                collected += carrier.count_cells
                if collected >= target_size:
                    return sample
        return sample

    def collect_single_sample(self, site: Coord) -> Carrier:
        """One component at `site`, chosen with probability proportional to its cells."""
        components = self.view_components(site)
        if not components:
            raise ValueError(f"Empty sample site {site}.")
        if len(components) == 1:
            return components[0]
        weights = np.array([c.count_cells for c in components], dtype=np.float64)
        choice = self.ctx.rng.choice(len(components), p=weights / weights.sum())
        return components[int(choice)]

"""
Carriers: aggregates of genetically identical cells.

A single `Carrier` representation covers the three component types. The
type-specific behavior lives in a small factory object resolved once from
the configuration.

- CELL: one cell; a birth replaces the parent by two daughter cells.
- LINEAGE: N cells sharing one genotype; mutated daughters split off as new
  one-cell lineage components. Growth beyond the free capacity of the home
  site overflows into a neighboring expansion site.
- DEME: several member lineages sharing one site; mutated daughters join the
  deme as new member lineages. A site holds at most one deme.
"""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np

from .context import SimulationContext
from .errors import InvariantError
from .genotype import NO_PARENT
from .growth import GrowthCount, GrowthModel, GrowthRate, LocalEnvironment, sample_growth_count
from .mutation import MutationGenerator, apply_mutations


class ComponentType(enum.Enum):
    CELL = "CELL"
    DEME = "DEME"
    LINEAGE = "LINEAGE"


class State(enum.Enum):
    ACTIVE = "ACTIVE"
    SENESCENT = "SENESCENT"
    DEAD = "DEAD"


class Lineage:
    """Cells sharing one genotype node and one intrinsic growth rate."""

    __slots__ = ("genotype", "rate", "cell_count")

    def __init__(self, genotype: int, rate: GrowthRate, cell_count: int):
        if cell_count < 0:
            raise ValueError(f"Cell count must be non-negative, got {cell_count}.")
        self.genotype = genotype
        self.rate = rate
        self.cell_count = int(cell_count)

    def __repr__(self) -> str:
        return f"Lineage(genotype={self.genotype}, rate={self.rate}, cell_count={self.cell_count})"


class Carrier:
    """A tumor component: one or more lineages tracked as a unit."""

    __slots__ = ("index", "kind", "parent_index", "birth_step", "lineages", "state")

    def __init__(
        self,
        index: int,
        kind: ComponentType,
        lineages: List[Lineage],
        parent_index: int = NO_PARENT,
        birth_step: int = 0,
    ):
        self.index = index
        self.kind = kind
        self.parent_index = parent_index
        self.birth_step = birth_step
        self.lineages = lineages
        self.state = State.ACTIVE

    def __repr__(self) -> str:
        return (
            f"Carrier(index={self.index}, kind={self.kind.value}, "
            f"cells={self.count_cells}, state={self.state.value})"
        )

    @property
    def count_cells(self) -> int:
        return sum(lineage.cell_count for lineage in self.lineages)

    @property
    def genotype(self) -> int:
        """Genotype node of a single-lineage carrier (CELL or LINEAGE)."""
        if len(self.lineages) != 1:
            raise ValueError(f"{self.kind.value} carrier has {len(self.lineages)} lineages.")
        return self.lineages[0].genotype

    @property
    def growth_rate(self) -> GrowthRate:
        if len(self.lineages) != 1:
            raise ValueError(f"{self.kind.value} carrier has {len(self.lineages)} lineages.")
        return self.lineages[0].rate

    @property
    def is_active(self) -> bool:
        return self.state is State.ACTIVE

    @property
    def is_senescent(self) -> bool:
        return self.state is State.SENESCENT


@dataclass
class AdvanceResult:
    """Outcome of advancing one carrier by one step."""

    count: GrowthCount
    offspring: List[Carrier] = field(default_factory=list)


# ============================================================================
# Factories
# ============================================================================


class CarrierFactory(ABC):
    """Type-specific construction and growth of carriers."""

    kind: ComponentType
    divisible: bool = True
    # one component per lattice site
    exclusive_sites: bool = False
    # growth may overflow into a neighboring site
    expands: bool = False

    def __init__(self, generator: MutationGenerator):
        self.generator = generator

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.generator!r})"

    def founder(self, ctx: SimulationContext, rate: GrowthRate, initial_size: int = 1) -> Carrier:
        if initial_size < 1:
            raise ValueError("Founder must contain at least one cell.")
        root = ctx.arena.new_node()
        return self._new_carrier(ctx, [self._new_lineage(ctx, root, rate, initial_size)])

    @abstractmethod
    def advance(
        self,
        ctx: SimulationContext,
        carrier: Carrier,
        growth_model: GrowthModel,
        env: Optional[LocalEnvironment],
    ) -> AdvanceResult:
        ...

    def clone(self, ctx: SimulationContext, carrier: Carrier, transfer: int) -> Carrier:
        """Move `transfer` cells out of a single-lineage carrier into a new carrier."""
        self._check_transfer(carrier, transfer)
        lineage = carrier.lineages[0]
        lineage.cell_count -= transfer
        moved = self._new_lineage(ctx, lineage.genotype, lineage.rate, transfer)
        return self._new_carrier(ctx, [moved], parent=carrier)

    def retire(self, ctx: SimulationContext, carrier: Carrier) -> None:
        """Release the genotypes of a removed carrier."""
        for lineage in carrier.lineages:
            ctx.arena.release(lineage.genotype)
        carrier.lineages = []
        carrier.state = State.DEAD

    # ------------------------------------------------------------------

    def _new_lineage(self, ctx: SimulationContext, genotype: int, rate: GrowthRate, cells: int) -> Lineage:
        ctx.arena.acquire(genotype)
        return Lineage(genotype, rate, cells)

    def _new_carrier(
        self,
        ctx: SimulationContext,
        lineages: List[Lineage],
        parent: Optional[Carrier] = None,
    ) -> Carrier:
        return Carrier(
            index=ctx.next_component_index(),
            kind=self.kind,
            lineages=lineages,
            parent_index=NO_PARENT if parent is None else parent.index,
            birth_step=ctx.step,
        )

    @staticmethod
    def _check_transfer(carrier: Carrier, transfer: int) -> None:
        if not 1 <= transfer < carrier.count_cells:
            raise InvariantError(
                f"Invalid clone size {transfer} for component {carrier.index} "
                f"with {carrier.count_cells} cells"
            )

    def _grow_lineage(
        self,
        ctx: SimulationContext,
        lineage: Lineage,
        growth_model: GrowthModel,
        env: Optional[LocalEnvironment],
        net_capacity: Optional[int],
    ) -> Tuple[GrowthCount, List[Lineage]]:
        """Apply one step of growth to a lineage and split off mutated daughters."""
        rate = growth_model.resolve(lineage.rate, env)
        count = sample_growth_count(ctx.rng, rate, lineage.cell_count, net_capacity)
        lineage.cell_count += count.net_change
        mutated = self.generator.count_mutated_cells(ctx.rng, count.daughter_count)
        daughters = []
        for _ in range(mutated):
            mutations = self.generator.generate_positive(ctx)
            node = ctx.arena.new_node(lineage.genotype, mutations)
            daughters.append(self._new_lineage(ctx, node, apply_mutations(lineage.rate, mutations), 1))
        lineage.cell_count -= mutated
        if lineage.cell_count < 0:
            raise InvariantError(f"Negative cell count in lineage {lineage!r}")
        return count, daughters


class CellFactory(CarrierFactory):
    kind = ComponentType.CELL
    divisible = False

    def founder(self, ctx, rate, initial_size=1):
        if initial_size != 1:
            raise ValueError("A CELL founder contains exactly one cell.")
        return super().founder(ctx, rate, 1)

    def advance(self, ctx, carrier, growth_model, env):
        lineage = carrier.lineages[0]
        rate = growth_model.resolve(lineage.rate, env)
        net_capacity = None if env is None else env.net_capacity
        count = sample_growth_count(ctx.rng, rate, lineage.cell_count, net_capacity)
        offspring = []
        if count.births:
            for _ in range(2):
                mutations = self.generator.generate(ctx)
                if mutations:
                    node = ctx.arena.new_node(lineage.genotype, mutations)
                    daughter_rate = apply_mutations(lineage.rate, mutations)
                else:
                    node = lineage.genotype
                    daughter_rate = lineage.rate
                daughter = self._new_lineage(ctx, node, daughter_rate, 1)
                offspring.append(self._new_carrier(ctx, [daughter], parent=carrier))
        if count.births or count.deaths:
            lineage.cell_count = 0
        return AdvanceResult(count, offspring)


class LineageFactory(CarrierFactory):
    kind = ComponentType.LINEAGE
    expands = True

    def advance(self, ctx, carrier, growth_model, env):
        net_capacity = None if env is None else env.net_capacity
        count, daughters = self._grow_lineage(ctx, carrier.lineages[0], growth_model, env, net_capacity)
        offspring = [self._new_carrier(ctx, [daughter], parent=carrier) for daughter in daughters]
        return AdvanceResult(count, offspring)


class DemeFactory(CarrierFactory):
    kind = ComponentType.DEME
    exclusive_sites = True

    def advance(self, ctx, carrier, growth_model, env):
        remaining = None if env is None else env.net_capacity
        counts = []
        members = []
        for lineage in carrier.lineages:
            count, daughters = self._grow_lineage(ctx, lineage, growth_model, env, remaining)
            if remaining is not None:
                remaining -= count.net_change
            counts.append(count)
            members.append(lineage)
            members.extend(daughters)
        carrier.lineages = self._prune(ctx, members)
        return AdvanceResult(GrowthCount.sum(counts))

    def clone(self, ctx, carrier, transfer):
        """Move `transfer` cells, drawn without replacement across member lineages."""
        self._check_transfer(carrier, transfer)
        sizes = np.array([lineage.cell_count for lineage in carrier.lineages], dtype=np.int64)
        moved_counts = ctx.rng.multivariate_hypergeometric(sizes, transfer)
        moved = []
        for lineage, moved_count in zip(carrier.lineages, moved_counts):
            moved_count = int(moved_count)
            if moved_count:
                lineage.cell_count -= moved_count
                moved.append(self._new_lineage(ctx, lineage.genotype, lineage.rate, moved_count))
        carrier.lineages = self._prune(ctx, carrier.lineages)
        return self._new_carrier(ctx, moved, parent=carrier)

    @staticmethod
    def _prune(ctx: SimulationContext, lineages: List[Lineage]) -> List[Lineage]:
        kept = []
        for lineage in lineages:
            if lineage.cell_count > 0:
                kept.append(lineage)
            else:
                ctx.arena.release(lineage.genotype)
        return kept


def make_carrier_factory(kind: ComponentType, generator: MutationGenerator) -> CarrierFactory:
    if kind is ComponentType.CELL:
        return CellFactory(generator)
    if kind is ComponentType.LINEAGE:
        return LineageFactory(generator)
    if kind is ComponentType.DEME:
        return DemeFactory(generator)
    raise ValueError(f"Unknown component type: {kind}")

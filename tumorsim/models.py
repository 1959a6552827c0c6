"""Strategy objects resolved once from a configuration and shared by one or more trials."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .capacity import CapacityModel, make_capacity_model
from .carrier import CarrierFactory, ComponentType, make_carrier_factory
from .config import SpatialType, TumorConfig
from .division import DivisionModel, make_division_model
from .growth import GrowthModel, make_growth_model
from .lattice import Neighborhood, PeriodicLattice
from .migration import MigrationModel, make_migration_model
from .mutation import MutationGenerator, make_mutation_generator
from .senescence import SenescenceModel, make_senescence_model


@dataclass(frozen=True)
class ModelSet:
    """Immutable bundle of every model a tumor consults during a step."""

    spatial_type: SpatialType
    factory: CarrierFactory
    generator: MutationGenerator
    growth: GrowthModel
    migration: MigrationModel
    senescence: SenescenceModel
    neighborhood: Neighborhood
    division: Optional[DivisionModel] = None
    capacity: Optional[CapacityModel] = None
    lattice: Optional[PeriodicLattice] = None

    @classmethod
    def from_config(cls, config: TumorConfig) -> "ModelSet":
        generator = make_mutation_generator(
            config.mutation_generator_type,
            config.mutation_rate_type,
            neutral_rate=config.neutral_rate,
            selective_rate=config.selective_rate,
            scalar_rate=config.scalar_rate,
            neoantigen_rate=config.neoantigen_rate,
            selection_coeff=config.selection_coeff,
        )
        factory = make_carrier_factory(config.component_type, generator)

        division = None
        capacity = None
        lattice = None
        if config.spatial_type is SpatialType.LATTICE:
            capacity = make_capacity_model(config.capacity_type, config.site_capacity)
            lattice = PeriodicLattice(config.period_length)
            if config.component_type is not ComponentType.CELL:
                division = make_division_model(
                    config.division_type, config.division_threshold, config.neighborhood
                )

        return cls(
            spatial_type=config.spatial_type,
            factory=factory,
            generator=generator,
            growth=make_growth_model(config.growth_type),
            migration=make_migration_model(config.migration_type),
            senescence=make_senescence_model(
                config.senescence_type,
                config.senescence_neighborhood,
                config.senescence_threshold,
            ),
            neighborhood=config.neighborhood,
            division=division,
            capacity=capacity,
            lattice=lattice,
        )

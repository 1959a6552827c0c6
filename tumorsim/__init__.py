"""
tumorsim - stochastic lattice tumor growth simulation

This package simulates the growth of a tumor whose components (single cells,
clonal lineages, or multi-lineage demes) occupy sites of a periodic 3D
lattice, or a single point in the unstructured mode, and evolve by per-step
stochastic birth, death, division, senescence and heritable mutation.

Features:
- Cell, lineage and deme components with exact cell-count conservation
- Uniform and single-cell site capacity with enforced occupancy limits
- Threshold division into neighboring sites, neighborhood senescence
- Mutation ancestry in an index-addressed genotype arena
- Spatial moments and mutation frequency snapshots
- Deterministic trials on independent random streams, run in parallel
"""

from .capacity import CapacityType, SingleCapacity, UniformCapacity
from .carrier import Carrier, ComponentType, Lineage, State
from .config import SpatialType, TumorConfig, load_config
from .context import SimulationContext
from .division import DivisionResult, ThresholdDivision
from .errors import ConfigurationError, InvariantError
from .genotype import GenotypeArena
from .growth import GrowthCount, GrowthRate, sample_growth_count
from .lattice import Coord, Neighborhood, PeriodicLattice
from .migration import PinnedMigration
from .models import ModelSet
from .moment import VectorMoment
from .mutation import (
    Mutation,
    MutationFrequencyMap,
    MutationGenerator,
    MutationRate,
    MutationType,
    MutationalDistance,
)
from .runner import Trajectory, create_tumor, run_trial, run_trials, trial_rng
from .senescence import NeighborhoodOccupancySenescence, NoSenescence
from .tumor import LatticeTumor, PointTumor, Tumor, TumorPhase

__all__ = [
    "CapacityType",
    "SingleCapacity",
    "UniformCapacity",
    "Carrier",
    "ComponentType",
    "Lineage",
    "State",
    "SpatialType",
    "TumorConfig",
    "load_config",
    "SimulationContext",
    "DivisionResult",
    "ThresholdDivision",
    "ConfigurationError",
    "InvariantError",
    "GenotypeArena",
    "GrowthCount",
    "GrowthRate",
    "sample_growth_count",
    "Coord",
    "Neighborhood",
    "PeriodicLattice",
    "PinnedMigration",
    "ModelSet",
    "VectorMoment",
    "Mutation",
    "MutationFrequencyMap",
    "MutationGenerator",
    "MutationRate",
    "MutationType",
    "MutationalDistance",
    "Trajectory",
    "create_tumor",
    "run_trial",
    "run_trials",
    "trial_rng",
    "NeighborhoodOccupancySenescence",
    "NoSenescence",
    "LatticeTumor",
    "PointTumor",
    "Tumor",
    "TumorPhase",
]

__version__ = "1.0.0"

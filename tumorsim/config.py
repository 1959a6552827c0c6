"""
Simulation configuration.

A `TumorConfig` is built from a flat key/value mapping (JSON file, command
line overrides, or a plain dict) and validated completely before any model
object or tumor is constructed. Every error names the offending key and
value.
"""

from __future__ import annotations

import enum
import json
import math
from dataclasses import MISSING, asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional

from .capacity import CapacityType
from .carrier import ComponentType
from .division import DivisionType
from .errors import ConfigurationError
from .growth import GrowthRate, GrowthType
from .lattice import Neighborhood, PeriodicLattice
from .migration import MigrationType
from .mutation import SELECTION_COEFF_LIMIT, MutationGeneratorType, MutationRateType
from .senescence import SenescenceType


class SpatialType(enum.Enum):
    POINT = "POINT"
    LATTICE = "LATTICE"


# Rate and coefficient keys each mutation generator needs
_GENERATOR_KEYS = {
    MutationGeneratorType.EMPTY: (),
    MutationGeneratorType.NEUTRAL: ("neutral_rate",),
    MutationGeneratorType.SELECTIVE: ("selective_rate", "selection_coeff"),
    MutationGeneratorType.SCALAR: ("scalar_rate", "selection_coeff"),
    MutationGeneratorType.NEOANTIGEN: ("neoantigen_rate",),
    MutationGeneratorType.NEUTRAL_SCALAR: ("neutral_rate", "scalar_rate", "selection_coeff"),
}


@dataclass(frozen=True)
class TumorConfig:
    """Complete, validated description of a simulation."""
    # Component and space
    component_type: ComponentType
    spatial_type: SpatialType

    # Founder growth rates (per cell, per step)
    birth_rate: float
    death_rate: float

    # Termination
    max_step_count: int
    max_tumor_size: int

    # Randomness
    seed: int

    initial_size: int = 1
    trial_count: int = 1

    # Lattice
    capacity_type: Optional[CapacityType] = None
    site_capacity: Optional[int] = None
    period_length: Optional[int] = None
    neighborhood: Neighborhood = Neighborhood.MOORE

    # Models
    growth_type: GrowthType = GrowthType.INTRINSIC
    division_type: DivisionType = DivisionType.THRESHOLD
    division_threshold: Optional[float] = None
    migration_type: MigrationType = MigrationType.PINNED
    senescence_type: SenescenceType = SenescenceType.NONE
    senescence_neighborhood: Optional[Neighborhood] = None
    senescence_threshold: Optional[float] = None

    # Mutations
    mutation_generator_type: MutationGeneratorType = MutationGeneratorType.EMPTY
    mutation_rate_type: MutationRateType = MutationRateType.POISSON
    neutral_rate: Optional[float] = None
    selective_rate: Optional[float] = None
    scalar_rate: Optional[float] = None
    neoantigen_rate: Optional[float] = None
    selection_coeff: Optional[float] = None

    def __post_init__(self):
        for key in ("birth_rate", "death_rate"):
            _check_unit(key, getattr(self, key))
        try:
            GrowthRate(self.birth_rate, self.death_rate)
        except ValueError as exc:
            raise ConfigurationError("death_rate", self.death_rate, str(exc)) from None

        _check_min("max_step_count", self.max_step_count, 0)
        _check_min("max_tumor_size", self.max_tumor_size, 1)
        _check_min("seed", self.seed, 0)
        _check_min("trial_count", self.trial_count, 1)
        _check_min("initial_size", self.initial_size, 1)
        if self.component_type is ComponentType.CELL and self.initial_size != 1:
            raise ConfigurationError("initial_size", self.initial_size, "CELL founders contain one cell")

        if self.spatial_type is SpatialType.LATTICE:
            self._validate_lattice()
        elif self.senescence_type is not SenescenceType.NONE:
            raise ConfigurationError("senescence_type", self.senescence_type.value,
                                     "POINT tumors do not senesce")

        if self.senescence_type is SenescenceType.NEIGHBORHOOD_OCCUPANCY_FRACTION:
            _require("senescence_neighborhood", self.senescence_neighborhood)
            _require("senescence_threshold", self.senescence_threshold)
            _check_unit("senescence_threshold", self.senescence_threshold)

        self._validate_mutations()

    def _validate_lattice(self):
        _require("capacity_type", self.capacity_type)
        if self.capacity_type is CapacityType.UNIFORM:
            _require("site_capacity", self.site_capacity)
            _check_min("site_capacity", self.site_capacity, 1)
        _require("period_length", self.period_length)
        _check_min("period_length", self.period_length, 3)
        if self.component_type is not ComponentType.CELL:
            _require("division_threshold", self.division_threshold)
            _check_unit("division_threshold", self.division_threshold)

        sites = math.ceil(self.max_tumor_size / self.mean_site_capacity)
        minimum = PeriodicLattice.minimum_period(sites)
        if self.period_length < minimum:
            raise ConfigurationError("period_length", self.period_length,
                                     f"must be at least {minimum} for max_tumor_size {self.max_tumor_size}")

    def _validate_mutations(self):
        for key in _GENERATOR_KEYS[self.mutation_generator_type]:
            value = getattr(self, key)
            _require(key, value)
            if key == "selection_coeff":
                if abs(value) > SELECTION_COEFF_LIMIT:
                    raise ConfigurationError(key, value, "must lie in [-0.5, 0.5]")
            elif value < 0.0:
                raise ConfigurationError(key, value, "must be non-negative")
            elif self.mutation_rate_type is MutationRateType.UNIFORM and value > 1.0:
                raise ConfigurationError(key, value, "uniform mutation rates must not exceed 1")

    @property
    def founder_rate(self) -> GrowthRate:
        return GrowthRate(self.birth_rate, self.death_rate)

    @property
    def mean_site_capacity(self) -> float:
        if self.capacity_type is CapacityType.UNIFORM:
            return float(self.site_capacity)
        return 1.0

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "TumorConfig":
        """Build from a flat mapping whose values may be native or strings."""
        unknown = sorted(set(mapping) - set(_PARSERS))
        if unknown:
            raise ConfigurationError(unknown[0], mapping[unknown[0]], "unknown configuration key")
        kwargs = {key: _coerce(key, value) for key, value in mapping.items()}
        for key in _REQUIRED:
            if kwargs.get(key) is None:
                raise ConfigurationError(key, None, "missing required key")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Flat mapping of plain values (enums by name, unset keys dropped)."""
        out = {}
        for key, value in asdict(self).items():
            if value is None:
                continue
            out[key] = value.value if isinstance(value, enum.Enum) else value
        return out

    def with_overrides(self, overrides: Mapping[str, Any]) -> "TumorConfig":
        merged = self.to_dict()
        merged.update(overrides)
        return TumorConfig.from_mapping(merged)


# ============================================================================
# Parsing helpers
# ============================================================================


def _require(key: str, value: Any) -> None:
    if value is None:
        raise ConfigurationError(key, None, "missing required key")


def _check_min(key: str, value: int, minimum: int) -> None:
    if value < minimum:
        raise ConfigurationError(key, value, f"must be at least {minimum}")


def _check_unit(key: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        raise ConfigurationError(key, value, "must lie in [0, 1]")


def _parse_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(key, value, "expected an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise ConfigurationError(key, value, "expected an integer")
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        raise ConfigurationError(key, value, "expected an integer") from None


def _parse_float(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(key, value, "expected a number")
    try:
        result = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(key, value, "expected a number") from None
    if not math.isfinite(result):
        raise ConfigurationError(key, value, "expected a finite number")
    return result


def _enum_parser(enum_type):
    def parse(key: str, value: Any):
        if isinstance(value, enum_type):
            return value
        try:
            return enum_type(str(value).strip().upper())
        except ValueError:
            choices = ", ".join(member.value for member in enum_type)
            raise ConfigurationError(key, value, f"expected one of {choices}") from None
    return parse


def _field_parser(field_type: str):
    name = field_type.replace("Optional[", "").rstrip("]")
    if name == "int":
        return _parse_int
    if name == "float":
        return _parse_float
    return _enum_parser(globals()[name])


_PARSERS = {f.name: _field_parser(f.type) for f in fields(TumorConfig)}
_REQUIRED = tuple(
    f.name for f in fields(TumorConfig)
    if f.default is MISSING and f.default_factory is MISSING
)


def _coerce(key: str, value: Any):
    if value is None:
        return None
    return _PARSERS[key](key, value)


def parse_overrides(items: Iterable[str]) -> Dict[str, str]:
    """Parse `key=value` strings into a mapping (values left as strings)."""
    overrides = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise ConfigurationError(item, item, "expected key=value")
        overrides[key.strip()] = value.strip()
    return overrides


def load_config(path, overrides: Optional[Mapping[str, Any]] = None) -> TumorConfig:
    """Read a flat JSON object of configuration keys."""
    path = Path(path)
    with open(path, "r") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), type(data).__name__, "configuration file must hold a JSON object")
    if overrides:
        data.update(overrides)
    return TumorConfig.from_mapping(data)

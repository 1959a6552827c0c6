import json

import pytest

from tumorsim import ComponentType, ConfigurationError, ModelSet, SpatialType, TumorConfig, load_config
from tumorsim.capacity import UniformCapacity
from tumorsim.config import parse_overrides
from tumorsim.division import ThresholdDivision
from tumorsim.lattice import Neighborhood
from tumorsim.senescence import NeighborhoodOccupancySenescence, NoSenescence

from test_tumor import LATTICE_DEME, make_config


def assert_config_error(key, value=None, **overrides):
    with pytest.raises(ConfigurationError) as info:
        make_config(**overrides)
    assert info.value.key == key
    assert f"[{key}]" in str(info.value)
    if value is not None:
        assert str(value) in str(info.value)
    return info.value


def test_string_values_are_coerced():
    config = TumorConfig.from_mapping({key: str(value) for key, value in LATTICE_DEME.items()})
    assert config.component_type is ComponentType.DEME
    assert config.spatial_type is SpatialType.LATTICE
    assert config.birth_rate == 0.3
    assert config.site_capacity == 50
    assert config.neighborhood is Neighborhood.MOORE
    assert make_config(component_type="lineage").component_type is ComponentType.LINEAGE


def test_unknown_and_missing_keys():
    assert_config_error("colour", "blue", colour="blue")
    mapping = dict(LATTICE_DEME)
    del mapping["seed"]
    with pytest.raises(ConfigurationError) as info:
        TumorConfig.from_mapping(mapping)
    assert info.value.key == "seed"


def test_invalid_values_name_key_and_value():
    error = assert_config_error("component_type", "BLOB", component_type="BLOB")
    assert "CELL" in str(error)
    assert_config_error("birth_rate", 1.5, birth_rate=1.5)
    assert_config_error("death_rate", 0.8, death_rate=0.8)
    assert_config_error("division_threshold", 1.2, division_threshold=1.2)
    assert_config_error("site_capacity", 0, site_capacity=0)
    assert_config_error("max_step_count", "ten", max_step_count="ten")
    assert_config_error("initial_size", 2.5, initial_size=2.5)
    assert_config_error("senescence_threshold", None, senescence_type="NEIGHBORHOOD_OCCUPANCY_FRACTION",
                        senescence_neighborhood="MOORE")


def test_lattice_requirements():
    assert_config_error("period_length", 10, period_length=10)
    assert_config_error("division_threshold", division_threshold=None)
    mapping = dict(LATTICE_DEME)
    del mapping["capacity_type"]
    with pytest.raises(ConfigurationError) as info:
        TumorConfig.from_mapping(mapping)
    assert info.value.key == "capacity_type"


def test_point_and_cell_constraints():
    assert_config_error("senescence_type", spatial_type="POINT",
                        senescence_type="NEIGHBORHOOD_OCCUPANCY_FRACTION",
                        senescence_neighborhood="MOORE", senescence_threshold=0.5)
    assert_config_error("initial_size", 20, component_type="CELL")
    config = make_config(component_type="CELL", initial_size=1, division_threshold=None,
                         capacity_type="SINGLE", period_length=64)
    assert ModelSet.from_config(config).division is None


def test_mutation_parameters():
    assert_config_error("neutral_rate", mutation_generator_type="NEUTRAL")
    assert_config_error("neutral_rate", -0.1, mutation_generator_type="NEUTRAL", neutral_rate=-0.1)
    assert_config_error("selection_coeff", 0.7, mutation_generator_type="SCALAR",
                        scalar_rate=0.1, selection_coeff=0.7)
    assert_config_error("neoantigen_rate", 2.0, mutation_generator_type="NEOANTIGEN",
                        mutation_rate_type="UNIFORM", neoantigen_rate=2.0)
    assert_config_error("selective_rate", mutation_generator_type="SELECTIVE", selection_coeff=0.1)
    assert_config_error("selection_coeff", mutation_generator_type="SELECTIVE", selective_rate=0.1)

    config = make_config(mutation_generator_type="SELECTIVE", selective_rate=0.1, selection_coeff=0.2)
    (channel,) = ModelSet.from_config(config).generator.channels
    assert channel.rate.mean == 0.1
    assert channel.selection_coeff == 0.2


def test_model_set_resolution():
    config = make_config(
        senescence_type="NEIGHBORHOOD_OCCUPANCY_FRACTION",
        senescence_neighborhood="VON_NEUMANN",
        senescence_threshold=0.8,
        neighborhood="VON_NEUMANN",
    )
    models = ModelSet.from_config(config)
    assert isinstance(models.capacity, UniformCapacity)
    assert models.capacity.capacity == 50
    assert isinstance(models.division, ThresholdDivision)
    assert models.division.threshold == 0.5
    assert models.division.neighborhood is Neighborhood.VON_NEUMANN
    assert isinstance(models.senescence, NeighborhoodOccupancySenescence)
    assert models.migration.pinned
    assert models.lattice.period_length == 16

    point = ModelSet.from_config(make_config(spatial_type="POINT"))
    assert point.lattice is None and point.capacity is None and point.division is None
    assert isinstance(point.senescence, NoSenescence)


def test_load_config_and_overrides(tmp_path):
    path = tmp_path / "run.json"
    path.write_text(json.dumps(LATTICE_DEME))
    config = load_config(path)
    assert config == make_config()

    overridden = load_config(path, parse_overrides(["seed=5", " birth_rate = 0.4 "]))
    assert overridden.seed == 5
    assert overridden.birth_rate == 0.4
    assert config.with_overrides({"trial_count": "3"}).trial_count == 3
    assert TumorConfig.from_mapping(config.to_dict()) == config

    with pytest.raises(ConfigurationError):
        parse_overrides(["seed"])
    path.write_text("[1, 2]")
    with pytest.raises(ConfigurationError):
        load_config(path)

import dataclasses

import pytest

from tumorsim import Neighborhood, ThresholdDivision
from tumorsim.division import MINIMUM_DIVISION_SIZE

from test_tumor import make_config, make_tumor, assert_capacity, STD_SEED

THRESHOLD = 0.90
CAPACITY = 100


class RecordingDivision(ThresholdDivision):
    """Threshold division that records the state seen at each successful split."""

    def __init__(self, threshold):
        super().__init__(threshold, Neighborhood.MOORE)
        self.events = []

    def divide(self, tumor, component):
        home = tumor.locate_component(component)
        cells_before = component.count_cells
        fraction = cells_before / tumor.site_capacity(home)
        spare = {c: tumor.site_capacity(c) - tumor.count_site_cells(c)
                 for c in tumor.lattice.neighbors(home, Neighborhood.MOORE)}
        result = super().divide(tumor, component)
        if result is not None:
            self.events.append((tumor.ctx.step, home, cells_before, fraction, spare, component, result))
        return result


def make_scenario_b(initial_size, birth_rate=0.3, death_rate=0.0, seed=STD_SEED):
    config = make_config(
        initial_size=initial_size,
        site_capacity=CAPACITY,
        division_threshold=THRESHOLD,
        birth_rate=birth_rate,
        death_rate=death_rate,
        max_step_count=15,
        max_tumor_size=50000,
        period_length=20,
    )
    tumor = make_tumor(config, seed=seed)
    recorder = RecordingDivision(THRESHOLD)
    tumor.models = dataclasses.replace(tumor.models, division=recorder)
    return tumor, recorder


def test_full_founder_deme_divides_into_neighbor():
    tumor, recorder = make_scenario_b(initial_size=CAPACITY)
    tumor.advance()
    assert len(recorder.events) == 1
    step, home, cells_before, fraction, spare, parent, result = recorder.events[0]
    assert step == 1
    assert fraction >= THRESHOLD
    assert result.coord in tumor.lattice.neighbors(home, Neighborhood.MOORE)
    assert spare[result.coord] > 0
    assert parent.count_cells + result.clone.count_cells == cells_before
    assert result.clone.parent_index == parent.index
    assert tumor.locate_component(result.clone) == result.coord
    assert_capacity(tumor)


def test_no_division_below_threshold():
    tumor, recorder = make_scenario_b(initial_size=10)
    while not tumor.is_terminated:
        tumor.advance()
        assert_capacity(tumor)
        if not recorder.events:
            assert all(c.count_cells < THRESHOLD * CAPACITY for c in tumor.components())
    assert recorder.events, "deme never reached the division threshold"
    first_step = recorder.events[0][0]
    assert first_step > 1
    for step, home, cells_before, fraction, spare, parent, result in recorder.events:
        assert fraction >= THRESHOLD
        assert cells_before >= MINIMUM_DIVISION_SIZE
        assert spare[result.coord] >= result.clone.count_cells
        assert 1 <= result.clone.count_cells < cells_before


def test_division_conserves_cells_and_shares_genotypes():
    config = make_config(
        initial_size=CAPACITY,
        site_capacity=CAPACITY,
        division_threshold=0.0,
        max_tumor_size=50000,
        period_length=20,
        mutation_generator_type="NEUTRAL",
        neutral_rate=0.05,
    )
    tumor = make_tumor(config)
    for _ in range(2):
        tumor.advance()
    deme = max(tumor.components(), key=lambda c: c.count_cells)
    before = deme.count_cells
    genotypes = {lineage.genotype for lineage in deme.lineages}

    result = tumor.models.division.divide(tumor, deme)
    assert result is not None
    assert deme.count_cells + result.clone.count_cells == before
    assert {lineage.genotype for lineage in result.clone.lineages} <= genotypes
    assert all(lineage.cell_count > 0 for lineage in deme.lineages + result.clone.lineages)


def test_threshold_must_be_a_fraction():
    with pytest.raises(ValueError):
        ThresholdDivision(1.5)
    with pytest.raises(ValueError):
        ThresholdDivision(-0.1)


def test_single_cell_never_divides():
    config = make_config(initial_size=1, site_capacity=1, division_threshold=0.0,
                         birth_rate=0.0, death_rate=0.0, period_length=60)
    tumor = make_tumor(config)
    (founder,) = tumor.components()
    assert tumor.models.division.divide(tumor, founder) is None


def make_expanding(component_type, **overrides):
    config = make_config(
        component_type=component_type,
        initial_size=CAPACITY,
        site_capacity=CAPACITY,
        division_threshold=THRESHOLD,
        birth_rate=0.4,
        death_rate=0.0,
        max_step_count=15,
        max_tumor_size=400000,
        period_length=40,
        **overrides,
    )
    return make_tumor(config)


def full_sites(tumor):
    """Contents of full sites that still have a neighbor with spare capacity."""
    return {
        coord: tuple((c.index, c.count_cells) for c in tumor.view_components(coord))
        for coord in tumor.occupied_coords()
        if tumor.count_site_cells(coord) == tumor.site_capacity(coord) and tumor.find_available(coord)
    }


def test_full_demes_always_divide_into_vacant_sites():
    tumor = make_expanding("DEME")
    sites = []
    while not tumor.is_terminated:
        tumor.advance()
        assert_capacity(tumor)
        for coord in tumor.occupied_coords():
            assert len(tumor.view_components(coord)) == 1
            if tumor.count_site_cells(coord) == CAPACITY:
                assert tumor.find_vacant(coord) == []
        sites.append(len(tumor.occupied_coords()))
    assert sites == sorted(sites)
    assert sites[-1] > 50


def test_crowded_lineage_sites_keep_expanding():
    tumor = make_expanding("LINEAGE", mutation_generator_type="NEUTRAL", neutral_rate=0.05)
    sites = []
    stalled = 0
    observed = 0
    previous = {}
    while not tumor.is_terminated:
        tumor.advance()
        assert_capacity(tumor)
        current = full_sites(tumor)
        stalled += sum(1 for coord, content in current.items() if previous.get(coord) == content)
        observed += len(tumor.occupied_coords())
        previous = current
        sites.append(len(tumor.occupied_coords()))
    assert sites == sorted(sites)
    assert sites[-1] > sites[len(sites) // 2] > sites[0]
    assert sites[-1] > 50
    assert any(len(tumor.view_components(c)) > 1 for c in tumor.occupied_coords())
    assert stalled <= 0.05 * observed

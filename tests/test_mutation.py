import math

import numpy as np
import pytest

from tumorsim import (
    GrowthRate,
    Mutation,
    MutationFrequencyMap,
    MutationRate,
    MutationType,
    MutationalDistance,
    SimulationContext,
)
from tumorsim.mutation import (
    MutationGeneratorType,
    MutationRateType,
    apply_mutations,
    make_mutation_generator,
)


def make_context(seed=99):
    return SimulationContext(np.random.default_rng(seed))


def test_scalar_mutation_shifts_death_into_birth():
    rate = GrowthRate(0.3, 0.2)
    adapted = Mutation(0, MutationType.SCALAR, 0.5).apply(rate)
    assert adapted.death == pytest.approx(0.1)
    assert adapted.birth == pytest.approx(0.4)
    assert adapted.event_rate == pytest.approx(rate.event_rate)

    harmful = Mutation(1, MutationType.SCALAR, -0.5).apply(GrowthRate(0.05, 0.4))
    assert harmful.death == pytest.approx(0.45)
    assert harmful.birth == pytest.approx(0.0)


def test_passive_mutations_leave_rate_unchanged():
    rate = GrowthRate(0.3, 0.2)
    mutations = [Mutation(0, MutationType.NEUTRAL), Mutation(1, MutationType.NEOANTIGEN)]
    assert apply_mutations(rate, mutations) == rate


def test_selective_mutation_scales_birth():
    adapted = Mutation(0, MutationType.SELECTIVE, 0.5).apply(GrowthRate(0.4, 0.2))
    assert adapted.birth == pytest.approx(0.6)
    assert adapted.death == pytest.approx(0.2)
    capped = Mutation(1, MutationType.SELECTIVE, 0.5).apply(GrowthRate(0.6, 0.3))
    assert capped.birth == pytest.approx(0.7)


def test_selection_coefficient_bounds():
    with pytest.raises(ValueError):
        Mutation(0, MutationType.SCALAR, 0.6)
    with pytest.raises(ValueError):
        Mutation(0, MutationType.NEUTRAL, 0.1)


def test_mutation_rates():
    poisson = MutationRate(MutationRateType.POISSON, 0.3)
    assert poisson.positive_probability == pytest.approx(1.0 - math.exp(-0.3))
    assert MutationRate(MutationRateType.UNIFORM, 0.3).positive_probability == 0.3
    assert MutationRate.zero().positive_probability == 0.0
    with pytest.raises(ValueError):
        MutationRate(MutationRateType.POISSON, -1.0)
    with pytest.raises(ValueError):
        MutationRate(MutationRateType.UNIFORM, 1.5)


def test_zero_truncated_poisson_draws():
    rng = np.random.default_rng(4)
    rate = MutationRate(MutationRateType.POISSON, 1.5)
    draws = np.array([rate.sample_positive(rng) for _ in range(20000)])
    assert draws.min() >= 1
    expected = 1.5 / (1.0 - math.exp(-1.5))
    assert abs(draws.mean() - expected) < 5 * draws.std() / math.sqrt(draws.size)

    tiny = MutationRate(MutationRateType.POISSON, 1e-8)
    assert all(tiny.sample_positive(rng) == 1 for _ in range(100))


def test_large_poisson_mean_draws():
    rng = np.random.default_rng(5)
    for mean in (800.0, 1e4):
        rate = MutationRate(MutationRateType.POISSON, mean)
        draws = np.array([rate.sample_positive(rng) for _ in range(200)])
        assert abs(draws.mean() - mean) < 5 * math.sqrt(mean / draws.size)
        assert draws.min() > 1


def test_empty_generator_never_mutates():
    ctx = make_context()
    generator = make_mutation_generator(MutationGeneratorType.EMPTY)
    assert generator.mutation_probability == 0.0
    assert generator.count_mutated_cells(ctx.rng, 1000) == 0
    assert generator.generate(ctx) == ()
    with pytest.raises(ValueError):
        generator.generate_positive(ctx)


def test_generated_mutations_have_increasing_indices():
    ctx = make_context()
    ctx.step = 12
    generator = make_mutation_generator(MutationGeneratorType.NEUTRAL, neutral_rate=0.5)
    indices = []
    for _ in range(50):
        mutations = generator.generate_positive(ctx)
        assert len(mutations) >= 1
        assert all(m.type is MutationType.NEUTRAL and m.origin_step == 12 for m in mutations)
        indices.extend(m.index for m in mutations)
    assert indices == list(range(len(indices)))
    assert ctx.mutation_count == len(indices)


def test_composite_generator():
    ctx = make_context()
    generator = make_mutation_generator(
        MutationGeneratorType.NEUTRAL_SCALAR,
        neutral_rate=0.2,
        scalar_rate=0.1,
        selection_coeff=0.1,
    )
    expected = 1.0 - math.exp(-0.2) * math.exp(-0.1)
    assert generator.mutation_probability == pytest.approx(expected)
    kinds = set()
    for _ in range(500):
        mutations = generator.generate_positive(ctx)
        assert mutations
        kinds.update(m.type for m in mutations)
        scalars = [m for m in mutations if m.type is MutationType.SCALAR]
        assert all(m.selection_coeff == 0.1 for m in scalars)
    assert kinds == {MutationType.NEUTRAL, MutationType.SCALAR}


def test_selective_generator_raises_daughter_birth_rate():
    ctx = make_context(3)
    generator = make_mutation_generator(
        MutationGeneratorType.SELECTIVE, selective_rate=0.4, selection_coeff=0.25
    )
    assert generator.mutation_probability == pytest.approx(1.0 - math.exp(-0.4))
    parent = GrowthRate(0.3, 0.1)
    for _ in range(100):
        mutations = generator.generate_positive(ctx)
        assert mutations
        assert all(m.type is MutationType.SELECTIVE and m.selection_coeff == 0.25 for m in mutations)
        daughter = apply_mutations(parent, mutations)
        assert daughter.birth > parent.birth
        assert daughter.birth <= 1.0 - parent.death
        assert daughter.death == parent.death
    with pytest.raises(ValueError):
        make_mutation_generator(MutationGeneratorType.SELECTIVE, selective_rate=0.1)


def test_composite_first_channel_share():
    # given at least one mutation, the neutral channel fires with P(N > 0) / P(any)
    ctx = make_context(8)
    generator = make_mutation_generator(
        MutationGeneratorType.NEUTRAL_SCALAR,
        neutral_rate=0.2,
        scalar_rate=0.2,
        selection_coeff=0.0,
    )
    trials = 20000
    with_neutral = sum(
        any(m.type is MutationType.NEUTRAL for m in generator.generate_positive(ctx))
        for _ in range(trials)
    )
    p = (1.0 - math.exp(-0.2)) / generator.mutation_probability
    sem = math.sqrt(p * (1.0 - p) / trials)
    assert abs(with_neutral / trials - p) < 5 * sem


def test_generator_requires_its_rates():
    with pytest.raises(ValueError):
        make_mutation_generator(MutationGeneratorType.SCALAR, scalar_rate=0.1)
    with pytest.raises(ValueError):
        make_mutation_generator(MutationGeneratorType.NEOANTIGEN)
    zero = make_mutation_generator(
        MutationGeneratorType.NEUTRAL, MutationRateType.ZERO, neutral_rate=0.3
    )
    assert zero.mutation_probability == 0.0


def test_frequency_map_ordering_and_summary():
    m = [Mutation(i, MutationType.NEUTRAL) for i in range(4)]
    freq = MutationFrequencyMap({m[0]: 10, m[1]: 4, m[2]: 10, m[3]: 1}, total_cells=10)
    ordered = freq.list_frequencies()
    assert [item.mutation.index for item in ordered] == [0, 2, 1, 3]
    assert [item.frequency for item in ordered] == [1.0, 1.0, 0.4, 0.1]
    assert freq.frequency(Mutation(9, MutationType.NEUTRAL)) == 0.0
    summary = freq.summarize()
    assert summary.nobs == 4
    assert summary.mean == pytest.approx(0.625)
    assert MutationFrequencyMap({}, 0).summarize() is None
    with pytest.raises(ValueError):
        MutationFrequencyMap({m[0]: 11}, total_cells=10)


def test_mutational_distance():
    m = [Mutation(i, MutationType.NEUTRAL) for i in range(6)]
    distance = MutationalDistance.compute(m[:4], m[2:])
    assert distance.shared == 2
    assert distance.int_distance == 4
    assert distance.frac_distance == pytest.approx(4 / 6)
    assert MutationalDistance.compute([], []).frac_distance == 0.0

import math

import numpy as np
import pytest

from tumorsim import GrowthCount, GrowthRate, InvariantError, sample_growth_count
from tumorsim.growth import CapacityScaledGrowth, IntrinsicGrowth, LocalEnvironment


def test_growth_rate_validation():
    with pytest.raises(ValueError):
        GrowthRate(1.2, 0.0)
    with pytest.raises(ValueError):
        GrowthRate(0.0, -0.1)
    with pytest.raises(ValueError):
        GrowthRate(0.6, 0.5)
    GrowthRate(0.6, 0.4)


def test_growth_rate_helpers():
    rate = GrowthRate(0.55, 0.45)
    assert rate.net_rate == pytest.approx(0.1)
    assert rate.event_rate == pytest.approx(1.0)
    assert rate.growth_factor(2) == pytest.approx(1.21)
    assert rate.doubling_time() == pytest.approx(math.log(2) / math.log(1.1))
    assert rate.no_birth() == GrowthRate(0.0, 0.45)
    assert rate.no_growth().event_rate == 0.0
    assert rate.rescale_birth_rate(0.5).birth == pytest.approx(0.275)
    assert rate.rescale_death_rate(0.0).death == 0.0
    assert rate.rescale_growth_factor(0.5).net_rate == pytest.approx(0.05)
    assert GrowthRate(0.1, 0.3).doubling_time() == math.inf

    net = GrowthRate.net(0.2)
    assert net.birth == pytest.approx(0.6)
    assert net.death == pytest.approx(0.4)


def test_growth_count_arithmetic():
    a = GrowthCount(5, 2)
    b = GrowthCount(1, 4)
    assert a.net_change == 3
    assert b.net_change == -3
    assert a.event_count == 7
    assert a.daughter_count == 10
    assert a + b == GrowthCount(6, 6)
    assert GrowthCount.sum([a, b, GrowthCount.ZERO]) == GrowthCount(6, 6)
    assert GrowthCount.sum([]) == GrowthCount.ZERO
    with pytest.raises(ValueError):
        GrowthCount(-1, 0)


def test_sampled_counts_are_bounded():
    rng = np.random.default_rng(11)
    rate = GrowthRate(0.4, 0.35)
    for population in (1, 2, 7, 100):
        for _ in range(200):
            count = sample_growth_count(rng, rate, population)
            assert count.births >= 0 and count.deaths >= 0
            assert count.event_count <= population
    assert sample_growth_count(rng, rate, 0) == GrowthCount.ZERO
    with pytest.raises(InvariantError):
        sample_growth_count(rng, rate, -1)


def test_net_capacity_truncates_births():
    rng = np.random.default_rng(3)
    count = sample_growth_count(rng, GrowthRate(1.0, 0.0), 10, net_capacity=3)
    assert count == GrowthCount(3, 0)
    count = sample_growth_count(rng, GrowthRate(1.0, 0.0), 10, net_capacity=0)
    assert count == GrowthCount.ZERO
    for _ in range(100):
        count = sample_growth_count(rng, GrowthRate(0.5, 0.3), 50, net_capacity=2)
        assert count.net_change <= 2


def test_sampled_means():
    rng = np.random.default_rng(17)
    rate = GrowthRate(0.3, 0.2)
    n = 10_000
    draws = [sample_growth_count(rng, rate, n) for _ in range(200)]
    births = np.array([d.births for d in draws], dtype=np.float64)
    deaths = np.array([d.deaths for d in draws], dtype=np.float64)
    sem_b = math.sqrt(n * 0.3 * 0.7 / 200)
    sem_d = math.sqrt(n * 0.2 * 0.8 / 200)
    assert abs(births.mean() - 3000) < 5 * sem_b
    assert abs(deaths.mean() - 2000) < 5 * sem_d


def test_growth_models():
    rate = GrowthRate(0.4, 0.1)
    env = LocalEnvironment(site_occupancy=30, site_capacity=40, net_capacity=10)
    assert IntrinsicGrowth().resolve(rate, env) is rate
    scaled = CapacityScaledGrowth().resolve(rate, env)
    assert scaled.birth == pytest.approx(0.1)
    assert scaled.death == pytest.approx(0.1)
    assert CapacityScaledGrowth().resolve(rate, None) is rate
    assert rate.birth == 0.4
    with pytest.raises(InvariantError):
        LocalEnvironment(50, 40, 0).occupancy_fraction

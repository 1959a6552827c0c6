"""
Trial driver: builds a tumor from a configuration, steps it to termination
and records per-step counts. Independent trials run in parallel with joblib,
each on its own random stream derived from the master seed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from .config import SpatialType, TumorConfig
from .context import SimulationContext
from .models import ModelSet
from .moment import VectorMoment
from .tumor import LatticeTumor, PointTumor, Tumor

logger = logging.getLogger(__name__)


def trial_rng(master_seed: int, trial_index: int) -> np.random.Generator:
    """Independent generator for one trial of a run."""
    return np.random.default_rng(np.random.SeedSequence(master_seed, spawn_key=(trial_index,)))


def create_tumor(
    config: TumorConfig,
    rng: np.random.Generator,
    models: Optional[ModelSet] = None,
) -> Tumor:
    """Fresh tumor holding the configured founder."""
    if models is None:
        models = ModelSet.from_config(config)
    ctx = SimulationContext(rng)
    tumor_cls = LatticeTumor if config.spatial_type is SpatialType.LATTICE else PointTumor
    tumor = tumor_cls(models, ctx, config.max_step_count, config.max_tumor_size)
    tumor.add_founder(config.founder_rate, config.initial_size)
    return tumor


@dataclass
class Trajectory:
    """Per-step counts of one trial (step 0 is the founding state)."""

    trial: int
    steps: List[int] = field(default_factory=list)
    cells: List[int] = field(default_factory=list)
    components: List[int] = field(default_factory=list)
    active: List[int] = field(default_factory=list)
    senescent: List[int] = field(default_factory=list)
    births: List[int] = field(default_factory=list)
    deaths: List[int] = field(default_factory=list)
    termination_reason: Optional[str] = None
    final_moment: Optional[VectorMoment] = None
    mutation_count: int = 0

    def record(self, tumor: Tumor) -> None:
        self.steps.append(tumor.step_count)
        self.cells.append(tumor.count_cells())
        self.components.append(tumor.count_components())
        self.active.append(tumor.count_active())
        self.senescent.append(tumor.count_senescent())
        self.births.append(tumor.last_growth_count.births)
        self.deaths.append(tumor.last_growth_count.deaths)

    @property
    def final_size(self) -> int:
        return self.cells[-1] if self.cells else 0

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "trial": self.trial,
            "step": self.steps,
            "cells": self.cells,
            "components": self.components,
            "active": self.active,
            "senescent": self.senescent,
            "births": self.births,
            "deaths": self.deaths,
        })


def run_trial(config: TumorConfig, trial_index: int = 0, models: Optional[ModelSet] = None) -> Trajectory:
    """Run one trial to termination."""
    tumor = create_tumor(config, trial_rng(config.seed, trial_index), models)
    logger.info("Trial %d started (seed=%d)", trial_index, config.seed)

    trajectory = Trajectory(trial=trial_index)
    trajectory.record(tumor)
    if config.max_step_count == 0:
        tumor.terminate("max_step_count")
    while not tumor.is_terminated:
        tumor.advance()
        trajectory.record(tumor)

    trajectory.termination_reason = tumor.termination_reason
    trajectory.final_moment = tumor.vector_moment()
    trajectory.mutation_count = len(tumor.mutation_frequency())
    logger.info(
        "Trial %d terminated (%s) at step %d with %d cells in %d components",
        trial_index, tumor.termination_reason, tumor.step_count,
        tumor.count_cells(), tumor.count_components(),
    )
    return trajectory


def run_trials(
    config: TumorConfig,
    trial_count: Optional[int] = None,
    n_jobs: int = 1,
    progress: bool = False,
) -> List[Trajectory]:
    """Run independent trials, in parallel when `n_jobs` != 1."""
    trial_count = config.trial_count if trial_count is None else trial_count
    models = ModelSet.from_config(config)
    return Parallel(n_jobs=n_jobs)(
        delayed(run_trial)(config, i, models)
        for i in tqdm(range(trial_count), desc="Running trials", disable=not progress)
    )


def trajectories_to_frame(trajectories: List[Trajectory]) -> pd.DataFrame:
    if not trajectories:
        return pd.DataFrame(columns=["trial", "step", "cells", "components", "active",
                                     "senescent", "births", "deaths"])
    return pd.concat([t.to_frame() for t in trajectories], ignore_index=True)

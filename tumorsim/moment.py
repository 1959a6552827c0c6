"""
Spatial moments of a cell-weighted set of lattice coordinates.

The gyration tensor S = sum w (r - c)(r - c)^T / sum w has eigenvalues
l1 <= l2 <= l3, from which

- radius of gyration  Rg^2 = l1 + l2 + l3
- asphericity         b = l3 - (l1 + l2) / 2
- acylindricity       c = l2 - l1
- relative anisotropy k^2 = (b^2 + 3 c^2 / 4) / Rg^4
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Mapping, Tuple

import numpy as np
from numpy.typing import NDArray
from numba import njit

from .lattice import Coord


@njit(cache=True)
def _gyration_tensor(
    coords: NDArray[np.float64],
    weights: NDArray[np.float64],
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Weighted center of mass and gyration tensor."""
    total = 0.0
    center = np.zeros(3)
    for i in range(coords.shape[0]):
        total += weights[i]
        for k in range(3):
            center[k] += weights[i] * coords[i, k]
    tensor = np.zeros((3, 3))
    if total <= 0.0:
        return center, tensor
    for k in range(3):
        center[k] /= total
    for i in range(coords.shape[0]):
        for a in range(3):
            da = coords[i, a] - center[a]
            for b in range(a, 3):
                tensor[a, b] += weights[i] * da * (coords[i, b] - center[b])
    for a in range(3):
        for b in range(a, 3):
            tensor[a, b] /= total
            tensor[b, a] = tensor[a, b]
    return center, tensor


@dataclass(frozen=True)
class VectorMoment:
    """Center of mass and shape descriptors of an occupied region."""

    center: Tuple[float, float, float]
    principal_moments: Tuple[float, float, float]
    weight: float = 0.0

    @classmethod
    def empty(cls) -> "VectorMoment":
        return cls((0.0, 0.0, 0.0), (0.0, 0.0, 0.0), 0.0)

    @classmethod
    def compute(cls, coords: NDArray, weights: NDArray) -> "VectorMoment":
        coords = np.ascontiguousarray(coords, dtype=np.float64).reshape(-1, 3)
        weights = np.ascontiguousarray(weights, dtype=np.float64)
        if coords.shape[0] != weights.shape[0]:
            raise ValueError("Coordinate and weight arrays differ in length.")
        if coords.shape[0] == 0:
            return cls.empty()
        center, tensor = _gyration_tensor(coords, weights)
        moments = np.clip(np.linalg.eigvalsh(tensor), 0.0, None)
        return cls(
            tuple(float(v) for v in center),
            tuple(float(v) for v in moments),
            float(weights.sum()),
        )

    @classmethod
    def from_counts(cls, counts: Mapping[Coord, int]) -> "VectorMoment":
        """Moment of a coordinate multiset, weighted by cell count."""
        items = sorted(counts.items())
        coords = np.array([coord for coord, _ in items], dtype=np.float64).reshape(-1, 3)
        weights = np.array([count for _, count in items], dtype=np.float64)
        return cls.compute(coords, weights)

    @property
    def radius_of_gyration_squared(self) -> float:
        return sum(self.principal_moments)

    @property
    def radius_of_gyration(self) -> float:
        return math.sqrt(self.radius_of_gyration_squared)

    @property
    def asphericity(self) -> float:
        l1, l2, l3 = self.principal_moments
        return l3 - 0.5 * (l1 + l2)

    @property
    def acylindricity(self) -> float:
        l1, l2, _ = self.principal_moments
        return l2 - l1

    @property
    def anisotropy(self) -> float:
        rg2 = self.radius_of_gyration_squared
        if rg2 <= 0.0:
            return 0.0
        b = self.asphericity
        c = self.acylindricity
        return (b * b + 0.75 * c * c) / (rg2 * rg2)

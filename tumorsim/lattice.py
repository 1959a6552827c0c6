"""
Discrete 3D coordinate space with periodic boundaries.

Features:
- Immutable integer coordinates hashed and ordered by value
- Von Neumann (6) and Moore (26) neighborhoods with a fixed enumeration order
- Periodic wrap and minimum-image distances (JIT kernel for coordinate arrays)
- Lattice sizing helpers used to validate tumor configurations
"""

from __future__ import annotations

import enum
import math
from typing import NamedTuple, Tuple

import numpy as np
from numpy.typing import NDArray
from numba import njit


class Coord(NamedTuple):
    """Lattice coordinate (x, y, z)."""

    x: int
    y: int
    z: int

    def plus(self, other: "Coord") -> "Coord":
        return Coord(self.x + other.x, self.y + other.y, self.z + other.z)

    def minus(self, other: "Coord") -> "Coord":
        return Coord(self.x - other.x, self.y - other.y, self.z - other.z)

    def norm2(self) -> int:
        return self.x * self.x + self.y * self.y + self.z * self.z


ORIGIN = Coord(0, 0, 0)


def _von_neumann_offsets() -> Tuple[Coord, ...]:
    return (
        Coord(-1, 0, 0),
        Coord(1, 0, 0),
        Coord(0, -1, 0),
        Coord(0, 1, 0),
        Coord(0, 0, -1),
        Coord(0, 0, 1),
    )


def _moore_offsets() -> Tuple[Coord, ...]:
    offsets = []
    for dx in (-1, 0, 1):
        for dy in (-1, 0, 1):
            for dz in (-1, 0, 1):
                if dx == 0 and dy == 0 and dz == 0:
                    continue
                offsets.append(Coord(dx, dy, dz))
    return tuple(offsets)


class Neighborhood(enum.Enum):
    """Neighbor sets around a lattice site (the site itself excluded)."""

    VON_NEUMANN = "VON_NEUMANN"
    MOORE = "MOORE"

    @property
    def offsets(self) -> Tuple[Coord, ...]:
        return _OFFSETS[self]

    @property
    def size(self) -> int:
        return len(_OFFSETS[self])


_OFFSETS = {
    Neighborhood.VON_NEUMANN: _von_neumann_offsets(),
    Neighborhood.MOORE: _moore_offsets(),
}


# ============================================================================
# Helper Functions (JIT compiled for performance)
# ============================================================================


@njit(cache=True, inline='always')
def _wrap_index(value: int, period: int) -> int:
    """Wrap an integer index into [0, period)."""
    return value - period * math.floor(value / period)


@njit(cache=True, inline='always')
def _min_image(diff: int, period: int) -> int:
    """Shortest periodic separation along one axis."""
    diff = _wrap_index(diff, period)
    wrap = period - diff
    if wrap < diff:
        return wrap
    return diff


@njit(cache=True)
def periodic_squared_distances(
    coords: NDArray[np.int64],
    x0: int, y0: int, z0: int,
    period: int,
) -> NDArray[np.int64]:
    """Minimum-image squared distances from (x0, y0, z0) to each row of coords."""
    n = coords.shape[0]
    out = np.empty(n, dtype=np.int64)
    for i in range(n):
        dx = _min_image(coords[i, 0] - x0, period)
        dy = _min_image(coords[i, 1] - y0, period)
        dz = _min_image(coords[i, 2] - z0, period)
        out[i] = dx * dx + dy * dy + dz * dz
    return out


# ============================================================================
# Periodic lattice
# ============================================================================


class PeriodicLattice:
    """Cubic lattice of side `period_length` with periodic boundaries."""

    def __init__(self, period_length: int):
        if period_length < 1:
            raise ValueError("Period length must be positive.")
        self.period_length = int(period_length)

    def __repr__(self) -> str:
        return f"PeriodicLattice(period_length={self.period_length})"

    @property
    def site_count(self) -> int:
        return self.period_length ** 3

    def center(self) -> Coord:
        half = self.period_length // 2
        return Coord(half, half, half)

    def wrap(self, coord: Coord) -> Coord:
        period = self.period_length
        return Coord(coord.x % period, coord.y % period, coord.z % period)

    def neighbors(self, center: Coord, neighborhood: Neighborhood) -> Tuple[Coord, ...]:
        """Neighbors of `center` in the fixed offset order of `neighborhood`.

        Offsets that wrap onto an already listed site (or onto the center) on
        very small lattices are reported once.
        """
        seen = {center}
        result = []
        for offset in neighborhood.offsets:
            coord = self.wrap(center.plus(offset))
            if coord not in seen:
                seen.add(coord)
                result.append(coord)
        return tuple(result)

    def squared_distance(self, a: Coord, b: Coord) -> int:
        """Minimum-image squared distance between two sites."""
        period = self.period_length
        total = 0
        for da in (a.x - b.x, a.y - b.y, a.z - b.z):
            diff = abs(da) % period
            diff = min(diff, period - diff)
            total += diff * diff
        return total

    def squared_distances(self, coords: NDArray[np.int64], origin: Coord) -> NDArray[np.int64]:
        if len(coords) == 0:
            return np.empty(0, dtype=np.int64)
        return periodic_squared_distances(
            np.ascontiguousarray(coords, dtype=np.int64),
            origin.x, origin.y, origin.z,
            self.period_length,
        )

    @staticmethod
    def minimum_period(site_count: int) -> int:
        """Smallest period whose lattice holds eight times `site_count` sites."""
        if site_count < 1:
            raise ValueError("Site count must be positive.")
        period = max(1, int(math.floor((8 * site_count) ** (1.0 / 3.0))))
        while period ** 3 < 8 * site_count:
            period += 1
        return period

    @staticmethod
    def estimate_radius(site_count: int) -> int:
        """Radius of a sphere holding `site_count` lattice sites."""
        return int(math.ceil(math.pow(0.75 * site_count / math.pi, 1.0 / 3.0)))


def coords_to_array(coords) -> NDArray[np.int64]:
    """Stack coordinates into an (n, 3) int64 array."""
    coords = list(coords)
    if not coords:
        return np.empty((0, 3), dtype=np.int64)
    return np.asarray(coords, dtype=np.int64).reshape(-1, 3)

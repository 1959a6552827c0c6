"""Migration of components between lattice sites."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from typing import Optional

from .carrier import Carrier
from .lattice import Coord


class MigrationType(enum.Enum):
    PINNED = "PINNED"


class MigrationModel(ABC):
    type: MigrationType

    @property
    def pinned(self) -> bool:
        """True if the model never moves anything (the engine then skips it)."""
        return False

    @abstractmethod
    def migrate(self, tumor, component: Carrier) -> Optional[Coord]:
        """Destination site for `component`, or None to stay put."""


class PinnedMigration(MigrationModel):
    type = MigrationType.PINNED

    @property
    def pinned(self) -> bool:
        return True

    def migrate(self, tumor, component):
        return None

    def __repr__(self) -> str:
        return "PinnedMigration()"


def make_migration_model(migration_type: MigrationType) -> MigrationModel:
    if migration_type is MigrationType.PINNED:
        return PinnedMigration()
    raise ValueError(f"Unknown migration type: {migration_type}")

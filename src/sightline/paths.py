"""Filesystem path derivations — every sightline-managed location in one place.

Layout under data_root:
  warehouse/        ← DuckDB analytical store (analytics.duckdb)
"""

from dataclasses import dataclass
from pathlib import Path

from sightline.config import Settings


@dataclass(frozen=True)
class ProjectPaths:
    """Filesystem paths used by sightline, derived from settings.

    Construct with ``ProjectPaths.from_settings(settings)`` so the
    derivation stays in one place.
    """

    data_root: Path
    warehouse_dir: Path

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProjectPaths":
        data = settings.paths.data_root
        return cls(data_root=data, warehouse_dir=data / "warehouse")

    def ensure_output_dirs(self) -> None:
        """Create the managed output directories (idempotent)."""
        self.warehouse_dir.mkdir(parents=True, exist_ok=True)

"""
Catalog of the MIG geometries each GPU model supports.

The catalog is pure data: a JSON list of entries, each naming one or more GPU
models (as reported by the ``nvidia.com/gpu.product`` label) and the
geometries those models allow. The planner never derives geometries itself.
"""
import json
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from mig_planner.entities.geometry import Geometry
from mig_planner.shared.logger import Logger

logger = Logger.get(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "known_mig_geometries.json"


class CatalogEntry(BaseModel):
    """Allowed geometries shared by a set of GPU models.

    Attributes:
        models: GPU product names the geometries apply to.
        allowed_geometries: Geometries as profile name -> slice count mappings.
    """

    models: List[str] = Field(..., min_length=1, description="GPU product names")
    allowed_geometries: List[Geometry] = Field(..., min_length=1, description="Allowed MIG geometries")

    @field_validator("allowed_geometries", mode="before")
    @classmethod
    def parse_geometries(cls, v):
        if not isinstance(v, list):
            return v
        return [Geometry(slices=g) if isinstance(g, dict) else g for g in v]


class SliceCatalog:
    """Lookup of valid geometries by GPU model."""

    def __init__(self, entries: List[CatalogEntry]):
        self._geometries: Dict[str, tuple[Geometry, ...]] = {}
        for entry in entries:
            geometries = tuple(dict.fromkeys(g for g in entry.allowed_geometries if not g.is_empty))
            for model in entry.models:
                if model in self._geometries:
                    raise ValueError(f"GPU model {model} appears in more than one catalog entry")
                self._geometries[model] = geometries
        self._profiles: Dict[str, frozenset[str]] = {
            model: frozenset(name for g in geometries for name in g.slices)
            for model, geometries in self._geometries.items()
        }

    @classmethod
    def from_data(cls, data: list) -> "SliceCatalog":
        """Build a catalog from already parsed JSON data."""
        if not isinstance(data, list):
            raise ValueError("MIG geometries catalog must be a list of entries")
        return cls([CatalogEntry.model_validate(item) for item in data])

    @classmethod
    def load(cls, catalog_path: Optional[str] = None) -> "SliceCatalog":
        """Load and validate the catalog from a JSON file, defaulting to the shipped one."""
        path = Path(catalog_path) if catalog_path else DEFAULT_CATALOG_PATH
        if not path.exists():
            raise FileNotFoundError(f"MIG geometries file not found: {path}")

        with open(path) as f:
            data = json.load(f)

        catalog = cls.from_data(data)
        logger.info(f"Loaded MIG geometries for {len(catalog.known_models())} GPU models from {path}")
        return catalog

    def geometries_for(self, model: Optional[str]) -> tuple[Geometry, ...]:
        """Allowed geometries of a GPU model in catalog order; empty for unknown models."""
        if model is None:
            return ()
        return self._geometries.get(model, ())

    def profiles_for(self, model: Optional[str]) -> frozenset[str]:
        if model is None:
            return frozenset()
        return self._profiles.get(model, frozenset())

    def is_valid(self, model: Optional[str], geometry: Geometry) -> bool:
        return geometry in self.geometries_for(model)

    def known_models(self) -> List[str]:
        return sorted(self._geometries)

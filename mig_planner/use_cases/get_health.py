from typing import Any, Optional

from mig_planner.frameworks_drivers.config import Config
from mig_planner.shared.protocols import SliceCatalogProtocol


class GetHealth:
    def __init__(self, catalog: SliceCatalogProtocol, config: Optional[Config] = None, max_workers: Optional[int] = None):
        self.catalog = catalog
        self.config = config
        self.max_workers = max_workers

    def execute(self) -> dict[str, Any]:
        known_models = self.catalog.known_models()
        response: dict[str, Any] = {
            "status": "ok" if known_models else "degraded",
            "known_gpu_models": known_models,
            "max_workers": self.max_workers,
        }
        if self.config:
            response["oracle"] = self.config.oracle.kind
            response["planning_timeout_seconds"] = self.config.planner.planning_timeout_seconds
        return response

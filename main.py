import os
import uvicorn

from mig_planner.frameworks_drivers.config import Config
from mig_planner.frameworks_drivers.oracle_factory import OracleFactory
from mig_planner.frameworks_drivers.slice_catalog import SliceCatalog
from mig_planner.frameworks_drivers.snapshot_builder import SnapshotBuilder
from mig_planner.interface_adapters.api import API
from mig_planner.interface_adapters.health_controller import HealthController
from mig_planner.interface_adapters.plan_controller import PlanController
from mig_planner.shared.logger import Logger
from mig_planner.use_cases.get_health import GetHealth
from mig_planner.use_cases.plan_partitioning import Planner

if __name__ == "__main__":
    logger = Logger.get(__name__)

    try:
        config = Config.load(os.environ.get("MIG_PLANNER_CONFIG", "config.json"))

        # Instantiate dependencies
        catalog = SliceCatalog.load(config.known_mig_geometries_file)
        oracle = OracleFactory(config.oracle).create_oracle()
        snapshot_builder = SnapshotBuilder()

        # Instantiate use cases
        planner = Planner(oracle, catalog, max_workers=config.planner.max_workers)
        get_health = GetHealth(catalog, config, max_workers=planner.max_workers)

        # Instantiate controllers
        plan_controller = PlanController(planner, snapshot_builder, config.planner.planning_timeout_seconds)
        health_controller = HealthController(get_health)

        # Instantiate API
        api = API(plan_controller, health_controller, oracle)

        logger.info(f"Starting MIG partitioning planner with {config.oracle.kind} oracle...")
        # Start the uvicorn server
        uvicorn.run(api.app, host=config.server.host, port=config.server.port)
    except Exception as e:
        logger.error(f"Failed to start server: {e}")
        raise

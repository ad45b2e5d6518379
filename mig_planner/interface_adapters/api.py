from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI

from mig_planner.interface_adapters.health_controller import HealthController
from mig_planner.interface_adapters.plan_controller import PlanController
from mig_planner.shared.logger import Logger
from mig_planner.shared.protocols import AdmissionOracleProtocol

logger = Logger.get(__name__)


class API:
    def __init__(
        self,
        plan_controller: PlanController,
        health_controller: HealthController,
        oracle: Optional[AdmissionOracleProtocol] = None,
    ):
        self.plan_controller = plan_controller
        self.health_controller = health_controller
        self.oracle = oracle
        self.app = FastAPI(title="MIG Partitioning Planner", version="0.1.0", lifespan=self._lifespan)

        # Dependency functions for the shared controllers
        self.get_plan_controller = lambda: self.plan_controller
        self.get_health_controller = lambda: self.health_controller

        self._register_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        yield
        if self.oracle is not None:
            logger.info("Closing admission oracle...")
            await self.oracle.aclose()

    def _register_routes(self):
        async def plan_handler(request: dict, controller=Depends(self.get_plan_controller)) -> dict:
            return await controller.plan(request)

        def health_handler(controller=Depends(self.get_health_controller)):
            return controller.health()

        self.app.post("/v1/plan")(plan_handler)
        self.app.get("/health")(health_handler)

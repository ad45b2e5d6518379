from typing import List, Optional

from fastapi import HTTPException
from pydantic import BaseModel, Field, ValidationError

from mig_planner.entities.candidate_pod import CandidatePod
from mig_planner.entities.node_description import NodeDescription
from mig_planner.frameworks_drivers.snapshot_builder import SnapshotBuilder
from mig_planner.shared.error_utils import ErrorUtils
from mig_planner.shared.errors import InvalidSnapshotError, PlanningError
from mig_planner.shared.logger import Logger
from mig_planner.shared.planning_context import PlanningContext
from mig_planner.use_cases.plan_partitioning import Planner

logger = Logger.get(__name__)


class PlanRequest(BaseModel):
    nodes: List[NodeDescription] = Field(default_factory=list)
    candidate_pods: List[CandidatePod] = Field(default_factory=list)
    timeout_seconds: Optional[float] = Field(None, gt=0)


class PlanController:
    def __init__(self, planner: Planner, snapshot_builder: SnapshotBuilder, default_timeout: Optional[float] = None):
        self.planner = planner
        self.snapshot_builder = snapshot_builder
        self.default_timeout = default_timeout

    async def plan(self, request: dict) -> dict:
        plan_request = self._validate_plan_request(request)

        try:
            snapshot = self.snapshot_builder.build(plan_request.nodes)
        except InvalidSnapshotError as e:
            raise HTTPException(status_code=400, detail=str(e))

        ctx = PlanningContext(timeout=plan_request.timeout_seconds or self.default_timeout)
        try:
            plan = await self.planner.plan(snapshot, plan_request.candidate_pods, ctx)
            return plan.model_dump()
        except PlanningError as e:
            logger.error(f"Planning failed: {e}")
            return ErrorUtils.format_error_response(f"Planning failed: {str(e)}", ErrorUtils.error_type_for(e))
        except Exception as e:
            logger.error(f"Unexpected error while planning: {e}")
            return ErrorUtils.format_error_response(f"Internal server error: {str(e)}", "internal_error")

    def _validate_plan_request(self, request: dict) -> PlanRequest:
        """Validate the planning request."""
        if not isinstance(request, dict):
            raise HTTPException(status_code=400, detail="Request must be a JSON object")
        try:
            return PlanRequest.model_validate(request)
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"Invalid plan request: {e.errors(include_url=False)}")

from typing import Dict

from mig_planner.entities.admission_status import AdmissionStatus, StatusCode
from mig_planner.entities.candidate_pod import CandidatePod
from mig_planner.entities.node_view import NodeView
from mig_planner.shared.logger import Logger

logger = Logger.get(__name__)

NODE_UNSCHEDULABLE = "NodeUnschedulable"
NODE_RESOURCES_FIT = "NodeResourcesFit"


class ResourceFitOracle:
    """
    In-process admission oracle running the resource checks of the scheduler.

    Mirrors the NodeUnschedulable and NodeResourcesFit filter plugins: a pod is
    admitted when the node accepts pods and every requested resource fits into
    allocatable minus already requested.
    """

    async def pre_filter(self, pod: CandidatePod) -> AdmissionStatus:
        negative = sorted(name for name, quantity in pod.requests.items() if quantity < 0)
        if negative:
            return AdmissionStatus(
                code=StatusCode.UNSCHEDULABLE_AND_UNRESOLVABLE,
                reasons=[f"Negative request for {name}" for name in negative],
            )
        return AdmissionStatus.success()

    async def filter(self, pod: CandidatePod, node: NodeView) -> Dict[str, AdmissionStatus]:
        return {
            NODE_UNSCHEDULABLE: self._check_schedulable(node),
            NODE_RESOURCES_FIT: self._check_resources_fit(pod, node),
        }

    async def aclose(self) -> None:
        """Nothing to release."""

    @staticmethod
    def _check_schedulable(node: NodeView) -> AdmissionStatus:
        if node.unschedulable:
            return AdmissionStatus(
                code=StatusCode.UNSCHEDULABLE_AND_UNRESOLVABLE,
                reasons=["node(s) were unschedulable"],
            )
        return AdmissionStatus.success()

    @staticmethod
    def _check_resources_fit(pod: CandidatePod, node: NodeView) -> AdmissionStatus:
        insufficient = []
        for resource_name, quantity in sorted(pod.requests.items()):
            if quantity <= 0:
                continue
            if node.available(resource_name) < quantity:
                insufficient.append(f"Insufficient {resource_name}")
        if insufficient:
            logger.debug(f"Pod {pod.key} does not fit node {node.name}: {', '.join(insufficient)}")
            return AdmissionStatus.unschedulable(*insufficient)
        return AdmissionStatus.success()

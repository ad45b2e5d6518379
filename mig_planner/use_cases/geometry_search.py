"""
Per-GPU search of the geometry that lets the most pending pods be admitted.

Each candidate geometry is scored against a private copy of the node view and
a private arena of remaining slots, so scoring passes never share mutable
state and can run for different GPU groups at the same time.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from mig_planner.entities.candidate_pod import CandidatePod
from mig_planner.entities.geometry import Geometry
from mig_planner.entities.gpu import GPU
from mig_planner.entities.node import Node
from mig_planner.entities.node_view import NodeView
from mig_planner.entities.slice_profile import SliceProfile
from mig_planner.shared.errors import OracleUnavailableError, PlanningError
from mig_planner.shared.logger import Logger
from mig_planner.shared.planning_context import PlanningContext
from mig_planner.shared.protocols import AdmissionOracleProtocol, SliceCatalogProtocol

logger = Logger.get(__name__)


@dataclass(frozen=True)
class PendingPod:
    """A candidate pod together with the MIG slices it needs."""
    pod: CandidatePod
    profile: SliceProfile
    slices: int
    arrival: int  # Position in the candidate list

    def sort_key(self) -> tuple:
        return self.profile.sort_key(), self.arrival


@dataclass
class ScoringResult:
    geometry: Geometry
    admitted: List[PendingPod]

    @property
    def score(self) -> int:
        return len(self.admitted)


@dataclass
class NodeState:
    """Geometries decided so far for a node, and the requests of the pods they admitted."""
    node: Node
    geometries: Dict[int, Geometry] = field(default_factory=dict)
    admitted_requests: Dict[str, float] = field(default_factory=dict)

    def view_with(self, gpu_index: int, geometry: Geometry) -> NodeView:
        geometries = dict(self.geometries)
        geometries[gpu_index] = geometry
        view = self.node.build_view(geometries)
        view.add_requests(self.admitted_requests)
        return view

    def commit(self, gpu_index: int, geometry: Geometry, admitted: List[PendingPod]) -> None:
        self.geometries[gpu_index] = geometry
        for pending in admitted:
            for resource_name, quantity in pending.pod.requests.items():
                self.admitted_requests[resource_name] = self.admitted_requests.get(resource_name, 0.0) + quantity


@dataclass
class SearchOutcome:
    gpu: GPU
    geometry: Geometry
    admitted: List[PendingPod]

    @property
    def changed(self) -> bool:
        return self.geometry != self.gpu.current_geometry


class GeometrySearch:
    def __init__(self, oracle: AdmissionOracleProtocol, catalog: SliceCatalogProtocol, ctx: PlanningContext):
        self.oracle = oracle
        self.catalog = catalog
        self.ctx = ctx

    def candidate_geometries(self, gpu: GPU) -> List[Geometry]:
        """Current geometry first, then the catalog geometries of the GPU model, without duplicates."""
        return list(dict.fromkeys([gpu.current_geometry, *self.catalog.geometries_for(gpu.model)]))

    async def search(self, gpu: GPU, state: NodeState, pods: List[PendingPod]) -> SearchOutcome:
        """Pick the geometry of a GPU without used slices that admits the most pending pods."""
        current = gpu.current_geometry
        if not pods:
            return SearchOutcome(gpu=gpu, geometry=current, admitted=[])

        results = []
        for geometry in self.candidate_geometries(gpu):
            view = state.view_with(gpu.index, geometry)
            result = await self._score(geometry, geometry.slices, pods, view)
            logger.debug(f"GPU {gpu}: geometry [{geometry}] admits {result.score} pod(s)")
            results.append(result)

        best = self._select(current, results)
        return SearchOutcome(gpu=gpu, geometry=best.geometry, admitted=best.admitted)

    async def absorb(self, gpu: GPU, state: NodeState, pods: List[PendingPod]) -> ScoringResult:
        """Place pending pods on the free slices of a GPU whose geometry cannot change."""
        geometry = gpu.current_geometry
        if not pods or gpu.free.is_empty:
            return ScoringResult(geometry=geometry, admitted=[])
        view = state.view_with(gpu.index, geometry)
        return await self._score(geometry, gpu.free.slices, pods, view)

    @staticmethod
    def _select(current: Geometry, results: List[ScoringResult]) -> ScoringResult:
        # Tie-break policy: highest score, then fewest slice changes from the
        # current geometry, then the current geometry itself, then catalog order.
        ranked = min(
            enumerate(results),
            key=lambda item: (
                -item[1].score,
                item[1].geometry.changes_from(current),
                item[1].geometry != current,
                item[0],
            ),
        )
        return ranked[1]

    async def _score(
        self,
        geometry: Geometry,
        slots: Dict[str, int],
        pods: List[PendingPod],
        view: NodeView,
    ) -> ScoringResult:
        remaining = dict(slots)
        admitted: List[PendingPod] = []
        for pending in pods:
            profile_name = pending.profile.name
            if pending.slices < 1 or remaining.get(profile_name, 0) < pending.slices:
                continue
            if not await self._is_admissible(pending.pod, view):
                continue
            remaining[profile_name] = remaining.get(profile_name, 0) - pending.slices
            view.add_requests(pending.pod.requests)
            admitted.append(pending)
        return ScoringResult(geometry=geometry, admitted=admitted)

    async def _is_admissible(self, pod: CandidatePod, view: NodeView) -> bool:
        self.ctx.raise_if_done()
        try:
            status = await self.oracle.pre_filter(pod)
            if not status.is_success:
                logger.debug(f"Pod {pod.key} rejected by pre-filter: {status.code.value} {status.reasons}")
                return False

            self.ctx.raise_if_done()
            statuses = await self.oracle.filter(pod, view)
        except PlanningError:
            raise
        except Exception as e:
            raise OracleUnavailableError(f"Admission oracle failed for pod {pod.key}: {e}") from e

        rejected = {plugin: s for plugin, s in statuses.items() if not s.is_success}
        if rejected:
            logger.debug(
                f"Pod {pod.key} rejected on node {view.name}: "
                + ", ".join(f"{plugin or 'filter'}={s.code.value}" for plugin, s in rejected.items())
            )
            return False
        return True

"""
Cluster-wide MIG partitioning planner.

GPU models are split into demand groups: models whose catalogs share a
profile name end up in the same group, so no pending pod is ever counted by
two groups. Groups are searched concurrently; inside a group GPUs are visited
one at a time, GPUs with used slices first, and every pod admitted by a GPU
leaves the group's pool before the next GPU is searched.
"""
from __future__ import annotations

import asyncio
import os
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from mig_planner.entities.candidate_pod import CandidatePod
from mig_planner.entities.cluster_snapshot import ClusterSnapshot
from mig_planner.entities.gpu import GPU
from mig_planner.entities.node import Node
from mig_planner.entities.partitioning import GPUPartitioning, PartitioningPlan
from mig_planner.shared.errors import PlanningCancelledError
from mig_planner.shared.logger import Logger
from mig_planner.shared.planning_context import PlanningContext
from mig_planner.shared.protocols import AdmissionOracleProtocol, SliceCatalogProtocol
from mig_planner.use_cases.geometry_search import GeometrySearch, NodeState, PendingPod

logger = Logger.get(__name__)

GPUResult = Tuple[str, GPUPartitioning]


@dataclass
class DemandGroup:
    models: Set[str]
    profiles: Set[str]
    pods: List[PendingPod] = field(default_factory=list)
    nodes: Dict[str, Node] = field(default_factory=dict)
    fixed_gpus: List[GPU] = field(default_factory=list)  # Used slices: geometry cannot change
    free_gpus: List[GPU] = field(default_factory=list)  # Candidates for repartitioning


class Planner:
    """Computes the target MIG geometry of every GPU for a set of pending pods."""

    def __init__(
        self,
        oracle: AdmissionOracleProtocol,
        catalog: SliceCatalogProtocol,
        max_workers: Optional[int] = None,
    ):
        self.oracle = oracle
        self.catalog = catalog
        self.max_workers = max_workers or os.cpu_count() or 1

    async def plan(
        self,
        snapshot: ClusterSnapshot,
        candidate_pods: Sequence[CandidatePod],
        ctx: Optional[PlanningContext] = None,
    ) -> PartitioningPlan:
        """
        Plan the MIG geometry of the cluster GPUs.

        Args:
            snapshot: Read-only cluster state.
            candidate_pods: Pending pods, in arrival order.
            ctx: Cancellation and deadline of the pass.

        Returns:
            The plan, listing every partitioned GPU and every GPU worth partitioning.

        Raises:
            InvalidSnapshotError: The snapshot is inconsistent.
            OracleUnavailableError: The admission oracle could not be queried.
            PlanningCancelledError: The pass was cancelled or timed out.
        """
        ctx = ctx or PlanningContext()
        snapshot.check_consistency()
        if snapshot.is_empty or not candidate_pods:
            logger.debug("Nothing to plan: empty snapshot or no candidate pods")
            return PartitioningPlan()

        try:
            ctx.raise_if_done()
        except PlanningCancelledError as e:
            raise PlanningCancelledError(str(e), partial_plan=PartitioningPlan()) from e

        start_time = time.time()
        pending = self._build_demand_pool(candidate_pods)
        passthrough: List[GPUResult] = []
        groups = self._build_groups(snapshot, pending, passthrough)

        semaphore = asyncio.Semaphore(self.max_workers)
        search = GeometrySearch(self.oracle, self.catalog, ctx)
        finalized: List[List[GPUResult]] = [[] for _ in groups]
        failures = await self._run_groups(groups, search, semaphore, ctx, finalized)

        gpu_results = passthrough + [r for results in finalized for r in results]
        fatal = [f for f in failures if not isinstance(f, PlanningCancelledError)]
        if fatal:
            logger.error(f"Planning pass aborted: {fatal[0]}")
            raise fatal[0]
        if failures:
            partial_plan = PartitioningPlan.from_gpu_results(gpu_results)
            logger.warning(f"Planning pass cancelled after finalizing {len(gpu_results)} GPU(s): {failures[0]}")
            raise PlanningCancelledError(str(failures[0]), partial_plan=partial_plan) from failures[0]

        plan = PartitioningPlan.from_gpu_results(gpu_results)
        elapsed_ms = (time.time() - start_time) * 1000
        logger.info(f"Planning pass completed in {elapsed_ms:.2f}ms: {len(pending)} pending pod(s), "
                    f"{len(gpu_results)} GPU(s) in plan across {len(plan.nodes)} node(s)")
        return plan

    async def _run_groups(
        self,
        groups: List[DemandGroup],
        search: GeometrySearch,
        semaphore: asyncio.Semaphore,
        ctx: PlanningContext,
        finalized: List[List[GPUResult]],
    ) -> List[BaseException]:
        """Search every group concurrently; the first fatal error stops the remaining groups."""
        tasks = [
            asyncio.ensure_future(self._plan_group(group, search, semaphore, ctx, results))
            for group, results in zip(groups, finalized)
        ]
        if not tasks:
            return []
        try:
            done, running = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            if any(self._is_fatal(task) for task in done):
                for task in running:
                    task.cancel()
            await asyncio.gather(*running, return_exceptions=True)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
        return [task.exception() for task in tasks if not task.cancelled() and task.exception() is not None]

    @staticmethod
    def _is_fatal(task: asyncio.Future) -> bool:
        if task.cancelled() or task.exception() is None:
            return False
        return not isinstance(task.exception(), PlanningCancelledError)

    def _build_demand_pool(self, candidate_pods: Sequence[CandidatePod]) -> List[PendingPod]:
        pending = []
        for arrival, pod in enumerate(candidate_pods):
            try:
                profile = pod.requested_profile()
            except ValueError as e:
                logger.warning(f"Pod {pod.key} has an invalid MIG request, ignoring it: {e}")
                continue
            if profile is None:
                if pod.mig_requests():
                    logger.warning(f"Pod {pod.key} requests several MIG profiles, ignoring it")
                continue
            slices = pod.requested_slices()
            if slices < 1:
                logger.warning(f"Pod {pod.key} requests less than one {profile} slice, ignoring it")
                continue
            pending.append(PendingPod(pod=pod, profile=profile, slices=slices, arrival=arrival))
        return sorted(pending, key=PendingPod.sort_key)

    def _build_groups(
        self,
        snapshot: ClusterSnapshot,
        pending: List[PendingPod],
        passthrough: List[GPUResult],
    ) -> List[DemandGroup]:
        """Split GPUs and pods into independent demand groups; GPUs no group can touch go to ``passthrough``."""
        models = sorted({node.model for node in snapshot.nodes.values() if self.catalog.geometries_for(node.model)})
        groups: List[DemandGroup] = []
        for model in models:
            group = DemandGroup(models={model}, profiles=set(self.catalog.profiles_for(model)))
            for other in [g for g in groups if g.profiles & group.profiles]:
                groups.remove(other)
                group.models |= other.models
                group.profiles |= other.profiles
            groups.append(group)
        groups.sort(key=lambda g: sorted(g.models))

        group_of_model = {model: group for group in groups for model in group.models}
        for pod in pending:
            group = next((g for g in groups if pod.profile.name in g.profiles), None)
            if group is None:
                logger.debug(f"No GPU model in the cluster offers profile {pod.profile} for pod {pod.pod.key}")
                continue
            group.pods.append(pod)

        unknown_models = set()
        for node in snapshot.sorted_nodes():
            group = group_of_model.get(node.model)
            reserved = set(node.reserved_bare_gpu_indices())
            for gpu in sorted(node.gpus, key=lambda g: g.index):
                if group is None:
                    unknown_models.add(node.model)
                    if gpu.is_partitioned:
                        passthrough.append((node.name, GPUPartitioning(gpu_index=gpu.index, geometry=gpu.current_geometry)))
                    continue
                group.nodes[node.name] = node
                if gpu.has_used_slices:
                    group.fixed_gpus.append(gpu)
                elif gpu.index in reserved:
                    logger.debug(f"GPU {gpu} is held by a whole-GPU pod, leaving it untouched")
                else:
                    group.free_gpus.append(gpu)

        for model in sorted(unknown_models, key=str):
            logger.warning(f"GPU model {model} has no known MIG geometries, its GPUs will not be repartitioned")
        return groups

    async def _plan_group(
        self,
        group: DemandGroup,
        search: GeometrySearch,
        semaphore: asyncio.Semaphore,
        ctx: PlanningContext,
        results: List[GPUResult],
    ) -> None:
        async with semaphore:
            pool = list(group.pods)
            states = {name: NodeState(node=node) for name, node in group.nodes.items()}

            for gpu in group.fixed_gpus:
                ctx.raise_if_done()
                state = states[gpu.node_name]
                absorbed = await search.absorb(gpu, state, pool)
                state.commit(gpu.index, absorbed.geometry, absorbed.admitted)
                pool = self._without(pool, absorbed.admitted)
                results.append((gpu.node_name, GPUPartitioning(gpu_index=gpu.index, geometry=gpu.current_geometry)))

            for gpu in group.free_gpus:
                ctx.raise_if_done()
                state = states[gpu.node_name]
                outcome = await search.search(gpu, state, pool)
                state.commit(gpu.index, outcome.geometry, outcome.admitted)
                pool = self._without(pool, outcome.admitted)
                if outcome.changed:
                    logger.info(f"GPU {gpu}: [{gpu.current_geometry}] -> [{outcome.geometry}] "
                                f"admitting {len(outcome.admitted)} pod(s)")
                if not outcome.geometry.is_empty:
                    results.append((gpu.node_name, GPUPartitioning(gpu_index=gpu.index, geometry=outcome.geometry)))

    @staticmethod
    def _without(pool: List[PendingPod], admitted: List[PendingPod]) -> List[PendingPod]:
        if not admitted:
            return pool
        taken = {pending.arrival for pending in admitted}
        return [pending for pending in pool if pending.arrival not in taken]

import asyncio
from unittest.mock import AsyncMock

import pytest

from mig_planner.entities.admission_status import AdmissionStatus
from mig_planner.entities.candidate_pod import CandidatePod
from mig_planner.entities.cluster_snapshot import ClusterSnapshot
from mig_planner.entities.geometry import Geometry
from mig_planner.entities.node_description import NodeDescription
from mig_planner.frameworks_drivers.resource_fit_oracle import ResourceFitOracle
from mig_planner.frameworks_drivers.slice_catalog import SliceCatalog
from mig_planner.frameworks_drivers.snapshot_builder import SnapshotBuilder
from mig_planner.shared.constants import LABEL_NVIDIA_COUNT, LABEL_NVIDIA_PRODUCT
from mig_planner.shared.errors import InvalidSnapshotError, OracleUnavailableError, PlanningCancelledError
from mig_planner.shared.planning_context import PlanningContext
from mig_planner.use_cases.plan_partitioning import Planner
from tests.builders import A100_40GB, make_gpu, make_node, make_pod

V100 = "Tesla-V100"


def snapshot_of(*nodes) -> ClusterSnapshot:
    return ClusterSnapshot.from_nodes(nodes)


def pods_of(profile: str, count: int, prefix: str = "pod"):
    return [make_pod(f"{prefix}-{i}", profile) for i in range(count)]


class TestPlanner:
    @pytest.fixture
    def planner(self, mock_oracle, catalog):
        return Planner(mock_oracle, catalog, max_workers=2)

    @pytest.fixture
    def split_snapshot(self):
        """A30 node with a single 4g.24gb slice plus a bare A30 node."""
        return snapshot_of(
            make_node("node-1", gpus=[make_gpu("node-1", 0, free={"4g.24gb": 1})]),
            make_node("node-2", allocatable={"nvidia.com/gpu": 1}),
        )

    @pytest.mark.asyncio
    async def test_empty_snapshot_gives_empty_plan(self, planner):
        plan = await planner.plan(ClusterSnapshot(), pods_of("1g.6gb", 2))

        assert plan.is_empty

    @pytest.mark.asyncio
    async def test_no_candidate_pods_gives_empty_plan(self, planner, split_snapshot, mock_oracle):
        plan = await planner.plan(split_snapshot, [])

        assert plan.is_empty
        mock_oracle.pre_filter.assert_not_called()

    @pytest.mark.asyncio
    async def test_repartitions_for_pending_demand(self, planner, split_snapshot):
        """Five 1g.6gb pods split the first GPU in four and the second in two."""
        plan = await planner.plan(split_snapshot, pods_of("1g.6gb", 5))

        assert plan.geometry_of("node-1", 0) == Geometry.of(**{"1g.6gb": 4})
        assert plan.geometry_of("node-2", 0) == Geometry.of(**{"2g.12gb": 1, "1g.6gb": 2})

    @pytest.mark.asyncio
    async def test_rejected_pods_leave_cluster_unchanged(self, rejecting_oracle, catalog, split_snapshot):
        """Partitioned GPUs keep their geometry and bare GPUs stay out of the plan."""
        planner = Planner(rejecting_oracle, catalog)

        plan = await planner.plan(split_snapshot, pods_of("1g.6gb", 5))

        assert list(plan.nodes) == ["node-1"]
        assert plan.geometry_of("node-1", 0) == Geometry.of(**{"4g.24gb": 1})

    @pytest.mark.asyncio
    async def test_gpu_with_used_slices_is_never_changed(self, planner):
        snapshot = snapshot_of(
            make_node("node-1", gpus=[make_gpu("node-1", 0, used={"1g.6gb": 1}, free={"1g.6gb": 1})]),
            make_node("node-2"),
        )

        plan = await planner.plan(snapshot, pods_of("2g.12gb", 3))

        assert plan.geometry_of("node-1", 0) == Geometry.of(**{"1g.6gb": 2})
        assert plan.geometry_of("node-2", 0) == Geometry.of(**{"2g.12gb": 2})

    @pytest.mark.asyncio
    async def test_free_slices_absorb_demand_first(self, planner):
        """Pods fitting existing free slices do not trigger a repartitioning elsewhere."""
        snapshot = snapshot_of(
            make_node("node-1", gpus=[make_gpu("node-1", 0, used={"1g.6gb": 1}, free={"1g.6gb": 3})]),
            make_node("node-2"),
        )

        plan = await planner.plan(snapshot, pods_of("1g.6gb", 3))

        assert list(plan.nodes) == ["node-1"]
        assert plan.geometry_of("node-1", 0) == Geometry.of(**{"1g.6gb": 4})

    @pytest.mark.asyncio
    async def test_demand_is_not_counted_twice(self, planner):
        """Once a GPU admits the pending pods, the next GPU has nothing left to plan for."""
        snapshot = snapshot_of(make_node("node-1"), make_node("node-2"))

        plan = await planner.plan(snapshot, pods_of("1g.6gb", 4))

        assert list(plan.nodes) == ["node-1"]
        assert plan.geometry_of("node-1", 0) == Geometry.of(**{"1g.6gb": 4})

    @pytest.mark.asyncio
    async def test_shared_profiles_across_models_are_one_demand(self, mock_oracle):
        catalog = SliceCatalog.from_data([
            {"models": ["GPU-X"], "allowed_geometries": [{"1g.5gb": 7}]},
            {"models": ["GPU-Y"], "allowed_geometries": [{"1g.5gb": 7}, {"3g.20gb": 2}]},
        ])
        snapshot = snapshot_of(
            make_node("node-a", model="GPU-X"),
            make_node("node-b", model="GPU-Y"),
        )

        plan = await Planner(mock_oracle, catalog).plan(snapshot, pods_of("1g.5gb", 7))

        assert list(plan.nodes) == ["node-a"]

    @pytest.mark.asyncio
    async def test_profiles_are_scoped_to_gpu_model(self, planner):
        """1g.5gb pods only repartition the A100, never the A30."""
        snapshot = snapshot_of(
            make_node("node-a30"),
            make_node("node-a100", model=A100_40GB),
        )

        plan = await planner.plan(snapshot, pods_of("1g.5gb", 7))

        assert list(plan.nodes) == ["node-a100"]
        assert plan.geometry_of("node-a100", 0) == Geometry.of(**{"1g.5gb": 7})

    @pytest.mark.asyncio
    async def test_plan_is_deterministic(self, planner, split_snapshot):
        pods = pods_of("1g.6gb", 5)

        first = await planner.plan(split_snapshot, pods)
        second = await planner.plan(split_snapshot, pods)

        assert first.model_dump() == second.model_dump()

    @pytest.mark.asyncio
    async def test_applying_plan_is_a_fixed_point(self, planner):
        """Planning again on the repartitioned cluster with the same pods changes nothing."""
        snapshot = snapshot_of(
            make_node("node-1", gpus=[make_gpu("node-1", 0, free={"1g.6gb": 4})]),
            make_node("node-2", gpus=[make_gpu("node-2", 0, free={"2g.12gb": 1, "1g.6gb": 2})]),
        )

        plan = await planner.plan(snapshot, pods_of("1g.6gb", 5))

        assert plan.geometry_of("node-1", 0) == Geometry.of(**{"1g.6gb": 4})
        assert plan.geometry_of("node-2", 0) == Geometry.of(**{"2g.12gb": 1, "1g.6gb": 2})

    @pytest.mark.asyncio
    async def test_whole_gpu_requests_reserve_bare_gpus(self, planner):
        node = make_node(
            "node-1",
            gpus=[make_gpu("node-1", 0), make_gpu("node-1", 1)],
            allocatable={"nvidia.com/gpu": 2},
            requested={"nvidia.com/gpu": 1},
        )

        plan = await planner.plan(snapshot_of(node), pods_of("1g.6gb", 4))

        assert [g.gpu_index for g in plan.nodes["node-1"].gpus] == [1]
        assert plan.geometry_of("node-1", 1) == Geometry.of(**{"1g.6gb": 4})

    @pytest.mark.asyncio
    async def test_unknown_model_is_passed_through(self, planner):
        snapshot = snapshot_of(
            make_node("node-old", model=V100, gpus=[make_gpu("node-old", 0, model=V100, free={"1g.5gb": 2})]),
            make_node("node-bare", model=V100, gpus=[make_gpu("node-bare", 0, model=V100)]),
        )

        plan = await planner.plan(snapshot, pods_of("1g.5gb", 2))

        assert list(plan.nodes) == ["node-old"]
        assert plan.geometry_of("node-old", 0) == Geometry.of(**{"1g.5gb": 2})

    @pytest.mark.asyncio
    async def test_pods_without_single_profile_are_ignored(self, planner, split_snapshot, mock_oracle):
        pods = [
            make_pod("cpu-only", cpu=2),
            make_pod("mixed", **{"nvidia.com/mig-1g.6gb": 1, "nvidia.com/mig-2g.12gb": 1}),
        ]

        plan = await planner.plan(split_snapshot, pods)

        assert list(plan.nodes) == ["node-1"]
        assert plan.geometry_of("node-1", 0) == Geometry.of(**{"4g.24gb": 1})
        mock_oracle.filter.assert_not_called()

    @pytest.mark.asyncio
    async def test_inconsistent_snapshot_is_rejected(self, planner):
        snapshot = ClusterSnapshot(nodes={"other": make_node("node-1")})

        with pytest.raises(InvalidSnapshotError):
            await planner.plan(snapshot, pods_of("1g.6gb", 1))

    @pytest.mark.asyncio
    async def test_oracle_failure_aborts_pass(self, mock_oracle, catalog, split_snapshot):
        mock_oracle.filter = AsyncMock(side_effect=ConnectionError("scheduler unreachable"))

        with pytest.raises(OracleUnavailableError):
            await Planner(mock_oracle, catalog).plan(split_snapshot, pods_of("1g.6gb", 1))

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, planner, split_snapshot, mock_oracle):
        ctx = PlanningContext()
        ctx.cancel()

        with pytest.raises(PlanningCancelledError) as exc_info:
            await planner.plan(split_snapshot, pods_of("1g.6gb", 1), ctx)

        assert exc_info.value.partial_plan.is_empty
        mock_oracle.pre_filter.assert_not_called()

    @pytest.mark.asyncio
    async def test_cancellation_returns_partial_plan(self, mock_oracle, catalog):
        """GPUs finalized before the cancellation are reported in the partial plan."""
        ctx = PlanningContext()

        async def cancel_on_filter(pod, view):
            ctx.cancel("shutting down")
            return {"NodeResourcesFit": AdmissionStatus.success()}

        mock_oracle.filter = AsyncMock(side_effect=cancel_on_filter)
        snapshot = snapshot_of(
            make_node("node-1", gpus=[make_gpu("node-1", 0, used={"1g.6gb": 1})]),
            make_node("node-2"),
        )

        with pytest.raises(PlanningCancelledError, match="shutting down") as exc_info:
            await Planner(mock_oracle, catalog).plan(snapshot, pods_of("2g.12gb", 1), ctx)

        partial_plan = exc_info.value.partial_plan
        assert partial_plan.geometry_of("node-1", 0) == Geometry.of(**{"1g.6gb": 1})
        assert partial_plan.geometry_of("node-2", 0) is None

    @pytest.mark.asyncio
    async def test_deadline_cancels_pass(self, mock_oracle, catalog, split_snapshot):
        async def slow_filter(pod, view):
            await asyncio.sleep(0.05)
            return {"NodeResourcesFit": AdmissionStatus.success()}

        mock_oracle.filter = AsyncMock(side_effect=slow_filter)

        with pytest.raises(PlanningCancelledError, match="deadline"):
            await Planner(mock_oracle, catalog).plan(
                split_snapshot, pods_of("1g.6gb", 5), PlanningContext(timeout=0.01)
            )

    @pytest.mark.asyncio
    async def test_with_resource_fit_oracle(self, catalog):
        """Pods needing more cpu than the node has left do not cause a repartitioning."""
        snapshot = snapshot_of(
            make_node("node-1", allocatable={"cpu": 8, "nvidia.com/gpu": 1}, requested={"cpu": 7}),
            make_node("node-2", allocatable={"cpu": 8, "nvidia.com/gpu": 1}),
        )
        pods = [make_pod(f"pod-{i}", "1g.6gb", cpu=2) for i in range(2)]

        plan = await Planner(ResourceFitOracle(), catalog).plan(snapshot, pods)

        assert list(plan.nodes) == ["node-2"]
        assert plan.geometry_of("node-2", 0) == Geometry.of(**{"2g.12gb": 1, "1g.6gb": 2})

    @pytest.mark.asyncio
    async def test_fatal_error_stops_other_groups(self, mock_oracle, catalog):
        """An unreachable oracle on the A30 group cancels the A100 search still in flight."""
        a100_calls = []

        async def filter_by_node(pod, view):
            if view.name == "node-a30":
                raise ConnectionError("scheduler unreachable")
            a100_calls.append(pod.name)
            await asyncio.sleep(0.01)
            return {"NodeResourcesFit": AdmissionStatus.success()}

        mock_oracle.filter = AsyncMock(side_effect=filter_by_node)
        snapshot = snapshot_of(make_node("node-a30"), make_node("node-a100", model=A100_40GB))
        pods = pods_of("1g.6gb", 1, prefix="small") + pods_of("1g.5gb", 7, prefix="tiny")

        with pytest.raises(OracleUnavailableError):
            await Planner(mock_oracle, catalog, max_workers=2).plan(snapshot, pods)

        assert len(a100_calls) < 7

    @pytest.mark.asyncio
    async def test_pods_without_whole_slices_are_ignored(self, planner, split_snapshot):
        """A half-slice request skips validation here but must not break the pass."""
        half = CandidatePod.model_construct(namespace="default", name="half", requests={"nvidia.com/mig-1g.6gb": 0.5})
        pods = [half] + pods_of("1g.6gb", 4)

        plan = await planner.plan(split_snapshot, pods)

        assert plan.geometry_of("node-1", 0) == Geometry.of(**{"1g.6gb": 4})
        assert plan.geometry_of("node-2", 0) is None

    @pytest.mark.asyncio
    async def test_unparseable_mig_resource_is_ignored(self, planner):
        odd = CandidatePod.model_construct(namespace="default", name="odd", requests={"nvidia.com/mig-1c.3g.20gb": 1})
        snapshot = snapshot_of(make_node("node-1"))

        plan = await planner.plan(snapshot, [odd, make_pod("small", "1g.6gb")])

        assert plan.geometry_of("node-1", 0) == Geometry.of(**{"2g.12gb": 1, "1g.6gb": 2})


class TestPlannerWithShippedCatalog:
    @pytest.mark.asyncio
    async def test_free_small_slices_are_regrouped_per_model(self, mock_oracle):
        """Free 1g slices are regrouped into the larger slices pending pods ask for, each model using its own profiles."""
        snapshot = SnapshotBuilder().build([
            NodeDescription(
                name="node-1",
                labels={LABEL_NVIDIA_PRODUCT: "NVIDIA-A30", LABEL_NVIDIA_COUNT: "2"},
                annotations={
                    "n8s.nebuly.ai/status-gpu-0-1g.6gb-free": "4",
                    "n8s.nebuly.ai/status-gpu-1-1g.6gb-free": "4",
                },
            ),
            NodeDescription(
                name="node-2",
                labels={LABEL_NVIDIA_PRODUCT: "NVIDIA-A100-SXM4-40GB", LABEL_NVIDIA_COUNT: "1"},
                annotations={
                    "n8s.nebuly.ai/status-gpu-0-1g.5gb-free": "5",
                    "n8s.nebuly.ai/status-gpu-0-2g.10gb-free": "1",
                },
            ),
        ])
        pods = [make_pod("pd-1", "3g.20gb"), make_pod("pd-2", "4g.24gb"), make_pod("pd-3", "2g.12gb")]

        plan = await Planner(mock_oracle, SliceCatalog.load()).plan(snapshot, pods)

        assert plan.geometry_of("node-1", 0) == Geometry.of(**{"2g.12gb": 1, "1g.6gb": 2})
        assert plan.geometry_of("node-1", 1) == Geometry.of(**{"4g.24gb": 1})
        assert plan.geometry_of("node-2", 0) == Geometry.of(**{"3g.20gb": 1, "1g.5gb": 4})

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from mig_planner.shared.constants import RESOURCE_NVIDIA_GPU
from .geometry import Geometry
from .gpu import GPU
from .node_view import NodeView
from .slice_profile import SliceProfile


def _is_gpu_resource(resource_name: str) -> bool:
    return resource_name == RESOURCE_NVIDIA_GPU or SliceProfile.is_mig_resource(resource_name)


class Node(BaseModel):
    """A cluster node with its GPUs and the other schedulable resources relevant to admission."""
    model_config = ConfigDict(frozen=True)

    name: str
    model: Optional[str] = None  # GPU hardware model of the node
    gpu_count: int = Field(0, ge=0)  # Declared number of physical GPUs
    gpus: List[GPU] = Field(default_factory=list)
    allocatable: Dict[str, float] = Field(default_factory=dict)  # Declared resources (cpu, memory, ...)
    requested: Dict[str, float] = Field(default_factory=dict)  # Requested by pods already scheduled
    labels: Dict[str, str] = Field(default_factory=dict)
    unschedulable: bool = False

    def spare_resources(self) -> Dict[str, float]:
        """Declared resources minus those requested by already scheduled pods."""
        return {
            resource_name: quantity - self.requested.get(resource_name, 0.0)
            for resource_name, quantity in self.allocatable.items()
        }

    def reserved_bare_gpu_indices(self) -> List[int]:
        """Indices of unpartitioned GPUs held by pods requesting whole GPUs.

        Whole-GPU requests do not say which device they landed on, so the
        lowest-indexed bare GPUs are considered taken.
        """
        in_use = int(self.requested.get(RESOURCE_NVIDIA_GPU, 0))
        bare = sorted(gpu.index for gpu in self.gpus if not gpu.is_partitioned)
        return bare[:in_use]

    def build_view(self, geometries: Dict[int, Geometry]) -> NodeView:
        """Build the node view the admission oracle would see if each GPU had the given geometry.

        GPUs missing from ``geometries`` keep their current geometry. A GPU
        with an empty geometry is exposed as one whole ``nvidia.com/gpu``.
        """
        allocatable = {k: v for k, v in self.allocatable.items() if not _is_gpu_resource(k)}
        requested = {k: v for k, v in self.requested.items() if not _is_gpu_resource(k)}

        whole_gpus = 0
        for gpu in self.gpus:
            geometry = geometries.get(gpu.index, gpu.current_geometry)
            if geometry.is_empty:
                whole_gpus += 1
            for resource_name, count in geometry.as_resources().items():
                allocatable[resource_name] = allocatable.get(resource_name, 0.0) + count
            for resource_name, count in gpu.used.as_resources().items():
                requested[resource_name] = requested.get(resource_name, 0.0) + count

        if whole_gpus:
            allocatable[RESOURCE_NVIDIA_GPU] = float(whole_gpus)
        whole_gpus_requested = self.requested.get(RESOURCE_NVIDIA_GPU, 0.0)
        if whole_gpus_requested:
            requested[RESOURCE_NVIDIA_GPU] = whole_gpus_requested

        return NodeView(
            name=self.name,
            labels=dict(self.labels),
            unschedulable=self.unschedulable,
            allocatable=allocatable,
            requested=requested,
        )

from typing import Dict, Iterable, List

from pydantic import BaseModel, Field

from .geometry import Geometry


class GPUPartitioning(BaseModel):
    """Target geometry for one GPU of a node."""
    gpu_index: int = Field(ge=0)
    geometry: Geometry


class NodePartitioning(BaseModel):
    """Target geometries for the GPUs of one node, ordered by GPU index."""
    node_name: str
    gpus: List[GPUPartitioning] = Field(default_factory=list)


class PartitioningPlan(BaseModel):
    """The planner output: node name -> partitioning of that node's GPUs."""
    nodes: Dict[str, NodePartitioning] = Field(default_factory=dict)

    @classmethod
    def from_gpu_results(cls, results: Iterable[tuple[str, GPUPartitioning]]) -> "PartitioningPlan":
        """Group ``(node name, GPU partitioning)`` pairs into a plan."""
        grouped: Dict[str, List[GPUPartitioning]] = {}
        for node_name, gpu_partitioning in results:
            grouped.setdefault(node_name, []).append(gpu_partitioning)
        return cls(nodes={
            node_name: NodePartitioning(
                node_name=node_name,
                gpus=sorted(gpus, key=lambda g: g.gpu_index),
            )
            for node_name, gpus in sorted(grouped.items())
        })

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def geometry_of(self, node_name: str, gpu_index: int) -> Geometry | None:
        node = self.nodes.get(node_name)
        if node is None:
            return None
        return next((g.geometry for g in node.gpus if g.gpu_index == gpu_index), None)

    def all_geometries(self) -> List[Geometry]:
        return [g.geometry for node in self.nodes.values() for g in node.gpus]

from typing import Dict, Iterable, Iterator, List

from pydantic import BaseModel, ConfigDict, Field

from mig_planner.shared.errors import InvalidSnapshotError
from .gpu import GPU
from .node import Node


class ClusterSnapshot(BaseModel):
    """Read-only view of the cluster nodes and their GPUs for one planning pass."""
    model_config = ConfigDict(frozen=True)

    nodes: Dict[str, Node] = Field(default_factory=dict)

    @classmethod
    def from_nodes(cls, nodes: Iterable[Node]) -> "ClusterSnapshot":
        """Build a snapshot from a node list, rejecting duplicated names or inconsistent GPUs."""
        by_name: Dict[str, Node] = {}
        for node in nodes:
            if node.name in by_name:
                raise InvalidSnapshotError(f"Duplicate node {node.name} in snapshot")
            by_name[node.name] = node
        snapshot = cls(nodes=by_name)
        snapshot.check_consistency()
        return snapshot

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def get_node(self, name: str) -> Node:
        return self.nodes[name]

    def sorted_nodes(self) -> List[Node]:
        return [self.nodes[name] for name in sorted(self.nodes)]

    def iter_gpus(self) -> Iterator[GPU]:
        """All GPUs in (node name, GPU index) order."""
        for node in self.sorted_nodes():
            yield from sorted(node.gpus, key=lambda gpu: gpu.index)

    def check_consistency(self) -> None:
        """Raise InvalidSnapshotError if nodes and GPUs do not describe a coherent cluster."""
        for name, node in self.nodes.items():
            if name != node.name:
                raise InvalidSnapshotError(f"Snapshot key {name} does not match node name {node.name}")
            if len(node.gpus) > node.gpu_count:
                raise InvalidSnapshotError(
                    f"Node {node.name} reports {len(node.gpus)} GPUs but declares only {node.gpu_count}"
                )
            seen_indices = set()
            for gpu in node.gpus:
                if gpu.node_name != node.name:
                    raise InvalidSnapshotError(f"GPU {gpu} is listed under node {node.name}")
                if gpu.index in seen_indices:
                    raise InvalidSnapshotError(f"GPU index {gpu.index} appears twice on node {node.name}")
                if gpu.index >= node.gpu_count:
                    raise InvalidSnapshotError(
                        f"GPU index {gpu.index} out of range for node {node.name} with {node.gpu_count} GPUs"
                    )
                if gpu.model != node.model:
                    raise InvalidSnapshotError(
                        f"GPU {gpu} model {gpu.model} differs from node model {node.model}"
                    )
                seen_indices.add(gpu.index)

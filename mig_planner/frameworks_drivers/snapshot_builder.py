"""
Reconstruction of a ClusterSnapshot from node descriptions.

MIG status is read from the node annotations written by the node agent
(``n8s.nebuly.ai/status-gpu-<index>-<profile>-<used|free>``); GPUs without
any annotation are bare, unpartitioned units.
"""
import re
from typing import Dict, Iterable, List, Tuple

from mig_planner.entities.cluster_snapshot import ClusterSnapshot
from mig_planner.entities.geometry import Geometry
from mig_planner.entities.gpu import GPU
from mig_planner.entities.node import Node
from mig_planner.entities.node_description import NodeDescription
from mig_planner.shared.constants import (
    ANNOTATION_STATUS_PREFIX,
    LABEL_NVIDIA_COUNT,
    LABEL_NVIDIA_PRODUCT,
    RESOURCE_NVIDIA_GPU,
)
from mig_planner.shared.errors import InvalidSnapshotError
from mig_planner.shared.logger import Logger

logger = Logger.get(__name__)

_STATUS_ANNOTATION_RE = re.compile(re.escape(ANNOTATION_STATUS_PREFIX) + r"(\d+)-(.+)-(used|free)$")


class SnapshotBuilder:
    """Builds the read-only cluster snapshot consumed by the planner."""

    def build(self, descriptions: Iterable[NodeDescription]) -> ClusterSnapshot:
        nodes = [self.build_node(description) for description in descriptions]
        snapshot = ClusterSnapshot.from_nodes(nodes)
        logger.debug(f"Built snapshot with {len(nodes)} nodes and {sum(len(n.gpus) for n in nodes)} GPUs")
        return snapshot

    def build_node(self, description: NodeDescription) -> Node:
        model = description.labels.get(LABEL_NVIDIA_PRODUCT)
        status = self._parse_status_annotations(description)
        gpu_count = self._gpu_count(description, status)

        gpus: List[GPU] = []
        for index in range(gpu_count):
            used, free = status.get(index, ({}, {}))
            try:
                gpus.append(GPU(
                    node_name=description.name,
                    index=index,
                    model=model,
                    used=Geometry(slices=used),
                    free=Geometry(slices=free),
                ))
            except ValueError as e:
                raise InvalidSnapshotError(f"Invalid MIG status of GPU {index} on node {description.name}: {e}") from e

        return Node(
            name=description.name,
            model=model,
            gpu_count=gpu_count,
            gpus=gpus,
            allocatable=dict(description.allocatable),
            requested=dict(description.requested),
            labels=dict(description.labels),
            unschedulable=description.unschedulable,
        )

    @staticmethod
    def _parse_status_annotations(description: NodeDescription) -> Dict[int, Tuple[Dict[str, int], Dict[str, int]]]:
        """GPU index -> (used slices, free slices) read from the node annotations."""
        status: Dict[int, Tuple[Dict[str, int], Dict[str, int]]] = {}
        for key, value in description.annotations.items():
            if not key.startswith(ANNOTATION_STATUS_PREFIX):
                continue
            match = _STATUS_ANNOTATION_RE.match(key)
            if not match:
                raise InvalidSnapshotError(f"Malformed MIG status annotation {key} on node {description.name}")
            try:
                count = int(value)
            except ValueError:
                raise InvalidSnapshotError(
                    f"Annotation {key} on node {description.name} has non-integer value '{value}'"
                ) from None
            index, profile_name, kind = int(match.group(1)), match.group(2), match.group(3)
            used, free = status.setdefault(index, ({}, {}))
            target = used if kind == "used" else free
            target[profile_name] = target.get(profile_name, 0) + count
        return status

    @staticmethod
    def _gpu_count(description: NodeDescription, status: Dict[int, tuple]) -> int:
        annotated = max(status) + 1 if status else 0
        declared = description.labels.get(LABEL_NVIDIA_COUNT)
        if declared is None:
            return max(annotated, int(description.allocatable.get(RESOURCE_NVIDIA_GPU, 0)))

        try:
            gpu_count = int(declared)
        except ValueError:
            raise InvalidSnapshotError(
                f"Label {LABEL_NVIDIA_COUNT} on node {description.name} is not an integer: '{declared}'"
            ) from None
        if annotated > gpu_count:
            raise InvalidSnapshotError(
                f"Node {description.name} has MIG status for GPU {annotated - 1} but declares {gpu_count} GPUs"
            )
        return gpu_count

from typing import Dict

from pydantic import BaseModel, Field


class NodeDescription(BaseModel):
    """A node as reported by the cluster: labels, annotations and resource lists."""
    name: str = Field(min_length=1)
    labels: Dict[str, str] = Field(default_factory=dict)
    annotations: Dict[str, str] = Field(default_factory=dict)
    allocatable: Dict[str, float] = Field(default_factory=dict)
    requested: Dict[str, float] = Field(default_factory=dict)  # Sum of requests of pods bound to the node
    unschedulable: bool = False

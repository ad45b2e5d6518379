from typing import Dict

from pydantic import BaseModel, Field


class NodeView(BaseModel):
    """Hypothetical resource state of a node handed to the admission oracle.

    Every scoring pass works on its own copy, so mutating a view through
    ``add_requests`` never leaks into another candidate geometry or GPU.
    """
    name: str
    labels: Dict[str, str] = Field(default_factory=dict)
    unschedulable: bool = False
    allocatable: Dict[str, float] = Field(default_factory=dict)
    requested: Dict[str, float] = Field(default_factory=dict)

    def available(self, resource_name: str) -> float:
        return self.allocatable.get(resource_name, 0.0) - self.requested.get(resource_name, 0.0)

    def add_requests(self, requests: Dict[str, float]) -> None:
        for resource_name, quantity in requests.items():
            self.requested[resource_name] = self.requested.get(resource_name, 0.0) + quantity

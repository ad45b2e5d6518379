from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .geometry import Geometry


class GPU(BaseModel):
    """A physical GPU of a node with its current MIG slice bookkeeping."""
    model_config = ConfigDict(frozen=True)

    node_name: str  # Node hosting the GPU
    index: int = Field(ge=0)  # GPU index within the node
    model: Optional[str] = None  # Hardware model (nvidia.com/gpu.product), None if unknown
    used: Geometry = Field(default_factory=Geometry)  # Slices bound to running pods
    free: Geometry = Field(default_factory=Geometry)  # Slices created but not consumed yet

    @property
    def current_geometry(self) -> Geometry:
        return self.used.combine(self.free)

    @property
    def has_used_slices(self) -> bool:
        return not self.used.is_empty

    @property
    def is_partitioned(self) -> bool:
        return not self.current_geometry.is_empty

    def __str__(self) -> str:
        return f"{self.node_name}/gpu-{self.index}"

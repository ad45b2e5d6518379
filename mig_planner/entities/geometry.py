from typing import Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mig_planner.entities.slice_profile import SliceProfile


class Geometry(BaseModel):
    """Partition of one physical GPU: MIG profile name -> number of slices.

    Zero counts are dropped, so two geometries offering the same slices always
    compare (and hash) equal. Whether a geometry is allowed on a given GPU is
    decided by the slice catalog, never here.
    """
    model_config = ConfigDict(frozen=True)

    slices: Dict[str, int] = Field(default_factory=dict)

    @field_validator("slices")
    @classmethod
    def validate_slices(cls, v):
        normalized = {}
        for profile_name, count in v.items():
            if count < 0:
                raise ValueError(f"Slice count for profile {profile_name} must be >= 0, got {count}")
            if count == 0:
                continue
            normalized[SliceProfile(name=profile_name).name] = count
        return normalized

    @classmethod
    def of(cls, **counts: int) -> "Geometry":
        """Shorthand for tests and fixtures: ``Geometry.of(**{"1g.5gb": 7})``."""
        return cls(slices=counts)

    @classmethod
    def from_resources(cls, resources: Dict[str, float]) -> "Geometry":
        """Build a geometry from a ``nvidia.com/mig-<profile>`` resource list, ignoring other resources."""
        slices: Dict[str, int] = {}
        for resource_name, quantity in resources.items():
            profile = SliceProfile.from_resource_name(resource_name)
            if profile is not None:
                slices[profile.name] = slices.get(profile.name, 0) + int(quantity)
        return cls(slices=slices)

    @property
    def is_empty(self) -> bool:
        return not self.slices

    @property
    def total_slices(self) -> int:
        return sum(self.slices.values())

    def count(self, profile_name: str) -> int:
        return self.slices.get(profile_name, 0)

    def combine(self, other: "Geometry") -> "Geometry":
        merged = dict(self.slices)
        for profile_name, count in other.slices.items():
            merged[profile_name] = merged.get(profile_name, 0) + count
        return Geometry(slices=merged)

    def changes_from(self, other: "Geometry") -> int:
        """Number of slices that must be created or deleted to turn ``other`` into this geometry."""
        profile_names = set(self.slices) | set(other.slices)
        return sum(abs(self.count(name) - other.count(name)) for name in profile_names)

    def as_resources(self) -> Dict[str, int]:
        return {SliceProfile(name=name).resource_name: count for name, count in self.slices.items()}

    def __eq__(self, other):
        if not isinstance(other, Geometry):
            return NotImplemented
        return self.slices == other.slices

    def __hash__(self):
        return hash(tuple(sorted(self.slices.items())))

    def __str__(self) -> str:
        if self.is_empty:
            return "{}"
        return ", ".join(f"{name}: {count}" for name, count in sorted(self.slices.items()))

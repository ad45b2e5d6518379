import re

from pydantic import BaseModel, ConfigDict, field_validator

from mig_planner.shared.constants import RESOURCE_MIG_PREFIX

_PROFILE_RE = re.compile(r"^(\d+)g\.(\d+)gb(\+me)?$")


class SliceProfile(BaseModel):
    """A MIG instance shape such as ``1g.6gb`` (compute slices . memory in GB)."""
    model_config = ConfigDict(frozen=True)

    name: str

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        v = v.strip()
        if not _PROFILE_RE.match(v):
            raise ValueError(f"Invalid MIG profile name: '{v}' (expected e.g. '1g.5gb')")
        return v

    @classmethod
    def from_resource_name(cls, resource_name: str) -> "SliceProfile | None":
        """Return the profile of a ``nvidia.com/mig-<profile>`` resource, None for any other resource."""
        if not resource_name.startswith(RESOURCE_MIG_PREFIX):
            return None
        return cls(name=resource_name[len(RESOURCE_MIG_PREFIX):])

    @staticmethod
    def is_mig_resource(resource_name: str) -> bool:
        return resource_name.startswith(RESOURCE_MIG_PREFIX)

    @property
    def compute(self) -> int:
        return int(_PROFILE_RE.match(self.name).group(1))

    @property
    def memory_gb(self) -> int:
        return int(_PROFILE_RE.match(self.name).group(2))

    @property
    def resource_name(self) -> str:
        return f"{RESOURCE_MIG_PREFIX}{self.name}"

    def sort_key(self) -> tuple[int, int, str]:
        # Capacity order: memory first, then compute share
        return self.memory_gb, self.compute, self.name

    def __lt__(self, other: "SliceProfile") -> bool:
        return self.sort_key() < other.sort_key()

    def __str__(self) -> str:
        return self.name

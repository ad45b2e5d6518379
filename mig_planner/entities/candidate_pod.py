from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .slice_profile import SliceProfile


class CandidatePod(BaseModel):
    """An unscheduled pod the planner tries to make room for."""
    model_config = ConfigDict(frozen=True)

    namespace: str = Field(min_length=1)
    name: str = Field(min_length=1)
    requests: Dict[str, float] = Field(default_factory=dict)  # Resource name -> requested quantity

    @field_validator("requests")
    @classmethod
    def validate_mig_requests(cls, v):
        # MIG slices are whole devices: the profile must parse and the quantity must be a non-negative integer
        for resource_name, quantity in v.items():
            if not SliceProfile.is_mig_resource(resource_name):
                continue
            try:
                SliceProfile.from_resource_name(resource_name)
            except ValidationError:
                raise ValueError(f"Invalid MIG resource name: '{resource_name}'") from None
            if quantity < 0 or not float(quantity).is_integer():
                raise ValueError(f"MIG request {resource_name} must be a whole number of slices, got {quantity}")
        return v

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def mig_requests(self) -> Dict[str, int]:
        """Requested MIG profiles with their number of slices."""
        result: Dict[str, int] = {}
        for resource_name, quantity in self.requests.items():
            profile = SliceProfile.from_resource_name(resource_name)
            if profile is not None and quantity > 0:
                result[profile.name] = result.get(profile.name, 0) + int(quantity)
        return result

    def requested_profile(self) -> Optional[SliceProfile]:
        """The single MIG profile this pod asks for, or None if it asks for none or several."""
        mig_requests = self.mig_requests()
        if len(mig_requests) != 1:
            return None
        return SliceProfile(name=next(iter(mig_requests)))

    def requested_slices(self) -> int:
        profile = self.requested_profile()
        if profile is None:
            return 0
        return self.mig_requests()[profile.name]

    def __str__(self) -> str:
        return self.key

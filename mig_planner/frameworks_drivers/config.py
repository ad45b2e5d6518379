import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class PlannerConfig(BaseModel):
    """Configuration for the partitioning planner.

    Attributes:
        max_workers: Maximum number of GPU groups searched concurrently (defaults to the CPU count).
        planning_timeout_seconds: Deadline for a single planning pass, unbounded if unset.
    """

    max_workers: Optional[int] = Field(None, gt=0, description="Maximum number of GPU groups searched concurrently")
    planning_timeout_seconds: Optional[float] = Field(None, gt=0, description="Deadline for a single planning pass in seconds")


class OracleConfig(BaseModel):
    """Configuration for the admission oracle.

    Attributes:
        kind: Oracle implementation ('resource-fit' in process, or 'http' remote).
        url: Base URL of the remote scheduler simulation service (required for 'http').
        timeout: Timeout for a single oracle request in seconds.
    """

    kind: Literal["resource-fit", "http"] = Field("resource-fit", description="Oracle implementation")
    url: Optional[str] = Field(None, description="Base URL of the remote scheduler simulation service")
    timeout: float = Field(10.0, gt=0, description="Timeout for a single oracle request in seconds")

    @model_validator(mode="after")
    def validate_url(self):
        if self.kind == "http" and not self.url:
            raise ValueError("oracle.url is required when oracle.kind is 'http'")
        return self


class ServerConfig(BaseModel):
    """Configuration for the planner HTTP server.

    Attributes:
        host: Host for the server.
        port: Port for the server.
    """

    host: str = Field("0.0.0.0", description="Host for the server")
    port: int = Field(8080, ge=1, le=65535, description="Port for the server")


class Config(BaseModel):
    """Main configuration class.

    Attributes:
        known_mig_geometries_file: JSON catalog of allowed geometries (the shipped catalog if unset).
        planner: Planner settings.
        oracle: Admission oracle settings.
        server: HTTP server settings.
    """

    known_mig_geometries_file: Optional[str] = Field(None, description="Path of the MIG geometries catalog")
    planner: PlannerConfig = Field(default_factory=PlannerConfig)
    oracle: OracleConfig = Field(default_factory=OracleConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    @classmethod
    def load(cls, config_path: str = "config.json") -> "Config":
        """Load and validate configuration from JSON file."""
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path) as f:
            data = json.load(f)

        return cls(**data)

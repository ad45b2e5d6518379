"""
Test configuration and fixtures for MIG planner tests.
"""
import json
import shutil
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from mig_planner.entities.admission_status import AdmissionStatus
from mig_planner.frameworks_drivers.slice_catalog import SliceCatalog
from tests.builders import A100_40GB, A30


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


@pytest.fixture
def sample_catalog_data():
    """Small catalog with an A30 and an A100 40GB entry."""
    return [
        {
            "models": [A30],
            "allowed_geometries": [
                {"4g.24gb": 1},
                {"2g.12gb": 2},
                {"2g.12gb": 1, "1g.6gb": 2},
                {"1g.6gb": 4},
            ],
        },
        {
            "models": [A100_40GB],
            "allowed_geometries": [
                {"7g.40gb": 1},
                {"4g.20gb": 1, "3g.20gb": 1},
                {"3g.20gb": 2},
                {"1g.5gb": 7},
            ],
        },
    ]


@pytest.fixture
def catalog(sample_catalog_data):
    return SliceCatalog.from_data(sample_catalog_data)


@pytest.fixture
def catalog_file(temp_dir, sample_catalog_data):
    """Create a temporary catalog file."""
    catalog_path = temp_dir / "known_mig_geometries.json"
    with open(catalog_path, "w") as f:
        json.dump(sample_catalog_data, f, indent=2)
    return str(catalog_path)


@pytest.fixture
def sample_config_data():
    """Sample configuration data for testing."""
    return {
        "planner": {
            "max_workers": 2,
            "planning_timeout_seconds": 5,
        },
        "oracle": {
            "kind": "resource-fit",
            "timeout": 3,
        },
        "server": {
            "host": "127.0.0.1",
            "port": 9090,
        },
    }


@pytest.fixture
def config_file(temp_dir, sample_config_data):
    """Create a temporary config file."""
    config_path = temp_dir / "config.json"
    with open(config_path, "w") as f:
        json.dump(sample_config_data, f, indent=2)
    return str(config_path)


@pytest.fixture
def mock_oracle():
    """Admission oracle double admitting every pod everywhere."""
    oracle = MagicMock()
    oracle.pre_filter = AsyncMock(return_value=AdmissionStatus.success())
    oracle.filter = AsyncMock(return_value={"NodeResourcesFit": AdmissionStatus.success()})
    return oracle


@pytest.fixture
def rejecting_oracle():
    """Admission oracle double whose filter rejects every pod."""
    oracle = MagicMock()
    oracle.pre_filter = AsyncMock(return_value=AdmissionStatus.success())
    oracle.filter = AsyncMock(return_value={"NodeResourcesFit": AdmissionStatus.unschedulable("Insufficient cpu")})
    return oracle

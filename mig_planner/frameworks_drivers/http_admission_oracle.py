"""
Admission oracle backed by a remote scheduler simulation service.

The service answers two endpoints:
    POST {base_url}/prefilter  {"pod": ...}              -> {"code": ..., "reasons": [...]}
    POST {base_url}/filter     {"pod": ..., "node": ...} -> {"statuses": {plugin: {"code": ..., "reasons": [...]}}}

Any failure to obtain such an answer is an OracleUnavailableError; a
non-success status inside a valid answer is an ordinary rejection.
"""
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from mig_planner.entities.admission_status import AdmissionStatus
from mig_planner.entities.candidate_pod import CandidatePod
from mig_planner.entities.node_view import NodeView
from mig_planner.shared.errors import OracleUnavailableError
from mig_planner.shared.logger import Logger

logger = Logger.get(__name__)


class HttpAdmissionOracle:
    def __init__(self, base_url: str, timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def pre_filter(self, pod: CandidatePod) -> AdmissionStatus:
        data = await self._post("/prefilter", {"pod": pod.model_dump()})
        try:
            return AdmissionStatus.model_validate(data)
        except ValidationError as e:
            raise OracleUnavailableError(f"Malformed prefilter response for pod {pod.key}: {e}") from e

    async def filter(self, pod: CandidatePod, node: NodeView) -> Dict[str, AdmissionStatus]:
        data = await self._post("/filter", {"pod": pod.model_dump(), "node": node.model_dump()})
        statuses = data.get("statuses") if isinstance(data, dict) else None
        if not isinstance(statuses, dict):
            raise OracleUnavailableError(f"Malformed filter response for pod {pod.key} on node {node.name}")
        try:
            return {plugin: AdmissionStatus.model_validate(status) for plugin, status in statuses.items()}
        except ValidationError as e:
            raise OracleUnavailableError(f"Malformed filter status for pod {pod.key} on node {node.name}: {e}") from e

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout)
        return self._client

    async def _post(self, path: str, payload: Dict[str, Any]) -> Any:
        try:
            response = await self._get_client().post(path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Admission oracle returned status {e.response.status_code} for {path}")
            raise OracleUnavailableError(
                f"Admission oracle returned status {e.response.status_code} for {path}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Admission oracle request to {path} failed: {e}")
            raise OracleUnavailableError(f"Admission oracle request to {path} failed: {e}") from e
        except ValueError as e:
            raise OracleUnavailableError(f"Admission oracle sent invalid JSON for {path}") from e

from typing import Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from mig_planner.entities.admission_status import AdmissionStatus
    from mig_planner.entities.candidate_pod import CandidatePod
    from mig_planner.entities.geometry import Geometry
    from mig_planner.entities.node_view import NodeView


class AdmissionOracleProtocol(Protocol):
    """Two-phase admission check of the cluster scheduler.

    Non-success statuses are semantic rejections. Failing to produce a status
    at all must raise OracleUnavailableError.
    """

    async def pre_filter(self, pod: 'CandidatePod') -> 'AdmissionStatus': ...

    async def filter(self, pod: 'CandidatePod', node: 'NodeView') -> dict[str, 'AdmissionStatus']: ...

    async def aclose(self) -> None: ...


class SliceCatalogProtocol(Protocol):
    def geometries_for(self, model: str | None) -> tuple['Geometry', ...]: ...

    def profiles_for(self, model: str | None) -> frozenset[str]: ...

    def known_models(self) -> list[str]: ...

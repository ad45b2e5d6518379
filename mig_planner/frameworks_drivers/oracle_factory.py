from mig_planner.frameworks_drivers.config import OracleConfig
from mig_planner.frameworks_drivers.http_admission_oracle import HttpAdmissionOracle
from mig_planner.frameworks_drivers.resource_fit_oracle import ResourceFitOracle
from mig_planner.shared.protocols import AdmissionOracleProtocol


class OracleFactory:
    def __init__(self, config: OracleConfig):
        self.config = config

    def create_oracle(self) -> AdmissionOracleProtocol:
        kind = self.config.kind
        if kind == "resource-fit":
            return ResourceFitOracle()
        if kind == "http":
            return self._create_http_oracle()
        raise ValueError(f"Unsupported admission oracle: {kind}")

    def _create_http_oracle(self) -> HttpAdmissionOracle:
        if not self.config.url:
            raise ValueError("Admission oracle URL not provided for http oracle")
        return HttpAdmissionOracle(base_url=self.config.url, timeout=self.config.timeout)

from mig_planner.shared.error_utils import ErrorUtils
from mig_planner.shared.logger import Logger
from mig_planner.use_cases.get_health import GetHealth

logger = Logger.get(__name__)


class HealthController:
    def __init__(self, get_health: GetHealth):
        self.get_health = get_health

    def health(self) -> dict:
        try:
            report = self.get_health.execute()
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return ErrorUtils.format_error_response(f"Health check failed: {str(e)}", "health_check_error")

        if report.get("status") != "ok":
            logger.warning(f"Planner health is {report.get('status')}: no GPU model has known MIG geometries")
        return report

from mig_planner.shared.errors import (
    InvalidSnapshotError,
    OracleUnavailableError,
    PlanningCancelledError,
)


class ErrorUtils:
    @staticmethod
    def format_error_response(message: str, error_type: str) -> dict:
        """
        Formats a consistent error response dictionary.

        Args:
            message: The error message to include in the response.
            error_type: The type of error (e.g., "invalid_snapshot", "oracle_unavailable").

        Returns:
            A dictionary with the error details.
        """
        return {
            "error": {
                "message": message,
                "type": error_type
            }
        }

    @staticmethod
    def error_type_for(error: Exception) -> str:
        """Map a planning failure to the error type reported to API clients."""
        if isinstance(error, InvalidSnapshotError):
            return "invalid_snapshot"
        if isinstance(error, OracleUnavailableError):
            return "oracle_unavailable"
        if isinstance(error, PlanningCancelledError):
            return "planning_cancelled"
        return "internal_error"

import logging
import os

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_LEVEL_ENV = "MIG_PLANNER_LOG_LEVEL"


class Logger:
    """Logging setup shared by the planner modules."""

    @staticmethod
    def get(name: str) -> logging.Logger:
        """
        Return the logger of a planner module.

        The root logger is configured on first use when nothing else did it,
        at the level named by MIG_PLANNER_LOG_LEVEL (INFO when unset or unknown).
        """
        if not logging.getLogger().hasHandlers():
            level_name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
            logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
        return logging.getLogger(name)

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from mig_planner.entities.partitioning import PartitioningPlan


class PlanningError(Exception):
    """Base class for errors that abort a planning pass."""


class InvalidSnapshotError(PlanningError):
    """The cluster snapshot (or the node descriptions it is built from) is inconsistent."""


class OracleUnavailableError(PlanningError):
    """The admission oracle failed to answer, as opposed to rejecting a pod."""


class PlanningCancelledError(PlanningError):
    """The pass was cancelled or ran past its deadline.

    ``partial_plan`` holds the GPUs finalized before cancellation; it is not
    authoritative and must not be applied.
    """

    def __init__(self, message: str, partial_plan: Optional["PartitioningPlan"] = None):
        super().__init__(message)
        self.partial_plan = partial_plan

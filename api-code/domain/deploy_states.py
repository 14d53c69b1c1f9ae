from __future__ import annotations

from enum import Enum


class DeploymentStatus(str, Enum):
    PENDING = "pending"
    CLONING = "cloning"
    BUILDING = "building"
    DEPLOYING = "deploying"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_in_flight(self) -> bool:
        return self in IN_FLIGHT_STATUSES

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]


IN_FLIGHT_STATUSES: frozenset[DeploymentStatus] = frozenset(
    {
        DeploymentStatus.PENDING,
        DeploymentStatus.CLONING,
        DeploymentStatus.BUILDING,
        DeploymentStatus.DEPLOYING,
    }
)

TERMINAL_STATUSES: frozenset[DeploymentStatus] = frozenset(
    {
        DeploymentStatus.COMPLETED,
        DeploymentStatus.FAILED,
        DeploymentStatus.ROLLED_BACK,
    }
)

# statuses whose release directory may still be on disk
RELEASED_STATUSES: frozenset[DeploymentStatus] = frozenset(
    {DeploymentStatus.COMPLETED, DeploymentStatus.ROLLED_BACK}
)

STATUS_LABELS: dict[DeploymentStatus, str] = {
    DeploymentStatus.PENDING: "Pending",
    DeploymentStatus.CLONING: "Cloning",
    DeploymentStatus.BUILDING: "Building",
    DeploymentStatus.DEPLOYING: "Deploying",
    DeploymentStatus.COMPLETED: "Completed",
    DeploymentStatus.FAILED: "Failed",
    DeploymentStatus.ROLLED_BACK: "Rolled Back",
}

DEFAULT_STATUS_SEQUENCE: tuple[DeploymentStatus, ...] = (
    DeploymentStatus.PENDING,
    DeploymentStatus.CLONING,
    DeploymentStatus.BUILDING,
    DeploymentStatus.DEPLOYING,
    DeploymentStatus.COMPLETED,
)


def is_valid_transition(current: DeploymentStatus, new: DeploymentStatus) -> bool:
    """Return True when an executor report may move a record from current to new.

    Stages only move forward (skipping is allowed, e.g. a rollback goes from
    pending straight to deploying). ``failed`` is reachable from every
    non-terminal state and nothing leaves a terminal state. ``rolled_back`` is
    never reported by the executor; it is applied to superseded releases.
    """
    if current.is_terminal:
        return False
    if current == new:
        return True
    if new == DeploymentStatus.FAILED:
        return True
    sequence = list(DEFAULT_STATUS_SEQUENCE)
    try:
        current_index = sequence.index(current)
        new_index = sequence.index(new)
    except ValueError:
        return False
    return new_index > current_index

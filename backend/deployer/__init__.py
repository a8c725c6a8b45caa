"""
Blue-green deployment core.

Maintains two colours of a containerized service, switches live traffic
between them behind a health gate, and rolls back to the previously active
colour from a saved image archive.

Components:
    - state_store: persisted active colour, history and health config
    - executor / docker_executor: external actions (compose, Docker SDK, git)
    - traffic_switch: reverse proxy cutover
    - backup_manager: image archive create / restore / verify
    - state_machine: phase tracking for one operation
    - orchestrator: deploy, rollback, cleanup
    - template_manager: `init` scaffolding
    - status: `status` report

The orchestrator is imported from deployer.orchestrator directly; it depends
on health_check, which itself imports the types exported here.
"""

from .types import Colour, HealthStatus, DeploymentPhase, ExecResult, other_colour
from .exceptions import (
    DeployerError,
    ExternalActionFailure,
    CutoverFailure,
    HealthTimeout,
    RollbackUnavailable,
    LockUnavailable,
    ComposeFileMissing,
    ArchiveError,
    HistoryInconsistent,
)
from .state_store import DeploymentState, HistoryEntry, HealthCheckConfig, StateStore

__all__ = [
    "Colour",
    "HealthStatus",
    "DeploymentPhase",
    "ExecResult",
    "other_colour",
    "DeployerError",
    "ExternalActionFailure",
    "CutoverFailure",
    "HealthTimeout",
    "RollbackUnavailable",
    "LockUnavailable",
    "ComposeFileMissing",
    "ArchiveError",
    "HistoryInconsistent",
    "DeploymentState",
    "HistoryEntry",
    "HealthCheckConfig",
    "StateStore",
]

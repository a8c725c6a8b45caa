"""
Deployment phase tracking.

Each deploy / rollback / cleanup walks a fixed sequence of phases. The
orchestrator moves a DeploymentStateMachine through them so logs show exactly
where an operation stopped, and a fatal error records the phase it happened in.

Phase Flow:
    deploy:   idle -> building -> starting -> health_checking -> cutting_over
                   -> archiving -> decommissioning -> persisted
    rollback: idle -> restoring -> [building] -> starting -> health_checking
                   -> cutting_over -> decommissioning -> persisted
    cleanup:  idle -> verifying -> persisted
    any non-terminal phase -> failed

`building` may be skipped on deploy (--skip-build). Dry runs never leave `idle`.

Usage:
    sm = DeploymentStateMachine("deploy")
    sm.transition(DeploymentPhase.BUILDING)
    ...
    sm.fail(error)
"""

import logging
from typing import Dict, List, Optional, Set

from .types import DeploymentPhase as Phase

logger = logging.getLogger(__name__)


class DeploymentStateMachine:
    """
    Validates and records phase transitions for one operation.

    Transitions outside VALID_TRANSITIONS are programming errors and raise
    ValueError.
    """

    VALID_TRANSITIONS: Dict[Phase, Set[Phase]] = {
        Phase.IDLE: {Phase.BUILDING, Phase.RESTORING, Phase.STARTING, Phase.VERIFYING},
        Phase.RESTORING: {Phase.BUILDING, Phase.STARTING},
        Phase.BUILDING: {Phase.STARTING},
        Phase.STARTING: {Phase.HEALTH_CHECKING},
        Phase.HEALTH_CHECKING: {Phase.CUTTING_OVER},
        Phase.CUTTING_OVER: {Phase.ARCHIVING, Phase.DECOMMISSIONING},
        Phase.ARCHIVING: {Phase.DECOMMISSIONING},
        Phase.DECOMMISSIONING: {Phase.PERSISTED},
        Phase.VERIFYING: {Phase.PERSISTED},
        Phase.PERSISTED: set(),  # Terminal state
        Phase.FAILED: set(),  # Terminal state
    }

    TERMINAL_PHASES = {Phase.PERSISTED, Phase.FAILED}

    def __init__(self, operation: str):
        self.operation = operation
        self.phase = Phase.IDLE
        self.history: List[Phase] = [Phase.IDLE]
        self.failed_in: Optional[Phase] = None
        self.error: Optional[str] = None

    def can_transition(self, to_phase: Phase) -> bool:
        """
        Check if moving from the current phase to to_phase is allowed.

        Examples:
            >>> sm = DeploymentStateMachine("deploy")
            >>> sm.can_transition(Phase.BUILDING)
            True
            >>> sm.can_transition(Phase.CUTTING_OVER)
            False
        """
        if to_phase is Phase.FAILED:
            return self.phase not in self.TERMINAL_PHASES
        return to_phase in self.VALID_TRANSITIONS.get(self.phase, set())

    def transition(self, to_phase: Phase) -> None:
        """
        Move to to_phase.

        Raises:
            ValueError: If the transition is not allowed
        """
        if not self.can_transition(to_phase):
            raise ValueError(
                f"Invalid {self.operation} phase transition: "
                f"{self.phase.value} -> {to_phase.value}"
            )

        logger.info(f"{self.operation}: {self.phase.value} -> {to_phase.value}")
        self.phase = to_phase
        self.history.append(to_phase)

    def fail(self, error: Exception) -> None:
        """Record a fatal failure in the current phase."""
        if self.phase in self.TERMINAL_PHASES:
            return

        self.failed_in = self.phase
        self.error = str(error)
        logger.error(f"{self.operation} failed during {self.phase.value}: {error}")
        self.phase = Phase.FAILED
        self.history.append(Phase.FAILED)

    @property
    def is_terminal(self) -> bool:
        return self.phase in self.TERMINAL_PHASES

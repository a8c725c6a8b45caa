"""
Shared types for the deployment core.

Colour, health probe outcomes and the structured result every Executor call
returns. Kept free of I/O so every component (and the tests' fake executor)
can import it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Colour(str, Enum):
    """The two deployment environments."""
    BLUE = "blue"
    GREEN = "green"

    @property
    def other(self) -> 'Colour':
        return Colour.GREEN if self is Colour.BLUE else Colour.BLUE

    def __str__(self) -> str:
        return self.value


def other_colour(colour: Colour) -> Colour:
    """Return the colour that is not `colour`."""
    return colour.other


class HealthStatus(Enum):
    """Outcome of a single health probe."""
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"  # includes "starting" and unknown statuses
    PROBE_ERROR = "probe_error"


class DeploymentPhase(Enum):
    """Phases a deploy/rollback/cleanup moves through."""
    IDLE = "idle"
    BUILDING = "building"
    RESTORING = "restoring"
    STARTING = "starting"
    HEALTH_CHECKING = "health_checking"
    CUTTING_OVER = "cutting_over"
    ARCHIVING = "archiving"
    DECOMMISSIONING = "decommissioning"
    VERIFYING = "verifying"
    PERSISTED = "persisted"
    FAILED = "failed"


@dataclass
class ExecResult:
    """
    Result of an external action.

    Executors never raise for a failed command; they return one of these so
    the caller decides whether the failure is fatal or degradable.
    """
    success: bool
    output: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, output: str = "") -> 'ExecResult':
        """Create a successful result."""
        return cls(success=True, output=output)

    @classmethod
    def failed(cls, error: str, output: str = "") -> 'ExecResult':
        """Create a failure result."""
        return cls(success=False, output=output, error=error)

"""
Exceptions raised by the deployment core.

Only fatal conditions are exceptions. Degradable failures (archive creation,
archive restore) are caught inside the orchestrator and logged; a corrupt
state file is recovered by the state store; corrupt archives are reported by
the backup manager's verification pass.
"""

from typing import Optional


class DeployerError(Exception):
    """Base class for fatal deployer errors."""
    pass


class ExternalActionFailure(DeployerError):
    """An external action (build/start/stop/reload) failed."""

    def __init__(self, action: str, error: Optional[str] = None, output: str = ""):
        message = f"{action} failed"
        if error:
            message = f"{message}: {error}"
        super().__init__(message)
        self.action = action
        self.error = error
        self.output = output


class CutoverFailure(ExternalActionFailure):
    """Router reload failed; the previous backend descriptor was restored."""
    pass


class HealthTimeout(DeployerError):
    """Target never reported healthy within the attempt budget."""

    def __init__(self, target: str, attempts: int):
        super().__init__(
            f"Container {target} failed health checks after {attempts} attempts"
        )
        self.target = target
        self.attempts = attempts


class RollbackUnavailable(DeployerError):
    """Rollback requested with an empty deployment history."""

    def __init__(self):
        super().__init__("No history to rollback to")


class LockUnavailable(DeployerError):
    """Another deployer invocation holds the state lock."""

    def __init__(self, lock_path: str):
        super().__init__(
            f"Another deployer operation is in progress (lock held: {lock_path})"
        )
        self.lock_path = lock_path


class ComposeFileMissing(DeployerError):
    """Deploy or rollback invoked before `init`."""

    def __init__(self, compose_file: str):
        super().__init__(f"Compose file missing ({compose_file}) - run bluegreen init")
        self.compose_file = compose_file


class ArchiveError(DeployerError):
    """Archive could not be created or restored. Never fatal to a deploy."""
    pass


class HistoryInconsistent(DeployerError):
    """The rollback target is the colour that is already active."""

    def __init__(self, colour: str):
        super().__init__(
            f"Latest history entry is for {colour}, which is already active - "
            f"state file was edited or a previous run was interrupted"
        )
        self.colour = colour

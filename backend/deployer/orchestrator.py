"""
Blue-green deployment orchestrator.

Composes the state store, executor, health gate, traffic switch and backup
manager into the three state-mutating operations:

    deploy:   build next -> start next -> health gate -> cutover
              -> archive current (best effort) -> record history
              -> stop current -> active = next -> persist
    rollback: restore archive (or rebuild) -> start -> health gate
              -> cutover -> stop current -> active = target, pop -> persist
    cleanup:  verify archives -> delete corrupted -> prune history -> persist

State is loaded once at the start of an operation and written back exactly
once at its end. Steps run strictly in order; a fatal error stops the
operation where it is, leaving already-applied side effects in place (re-run
the command to retry). Dry runs print every side effect instead of
performing it and never touch the state file.
"""

import logging
import os
import time
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from health_check.health_gate import HealthGate
from .backup_manager import BackupManager
from .exceptions import (
    ArchiveError,
    DeployerError,
    ExternalActionFailure,
    HistoryInconsistent,
    RollbackUnavailable,
)
from .executor import Executor
from .state_lock import state_lock
from .state_machine import DeploymentStateMachine
from .state_store import DeploymentState, HistoryEntry, StateStore
from .traffic_switch import TrafficSwitch
from .types import Colour, DeploymentPhase as Phase, ExecResult

logger = logging.getLogger(__name__)

# Signature: def report(line: str) -> None
Reporter = Callable[[str], None]


@dataclass
class DeployResult:
    """Outcome of a deploy."""
    previous_colour: Colour
    active_colour: Colour
    tag: str
    archive_path: Optional[str] = None
    dry_run: bool = False


@dataclass
class RollbackResult:
    """Outcome of a rollback."""
    previous_colour: Colour
    active_colour: Colour
    tag: str
    restored_from_archive: bool = False
    dry_run: bool = False


@dataclass
class CleanupResult:
    """Outcome of a cleanup pass."""
    valid: List[str] = field(default_factory=list)
    corrupted: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    stale: List[str] = field(default_factory=list)
    pruned: List[HistoryEntry] = field(default_factory=list)
    dry_run: bool = False


class DeploymentOrchestrator:
    """
    Top-level deployment state machine.

    Collaborators are injected so the whole flow runs against a fake
    Executor in tests.
    """

    def __init__(
        self,
        store: StateStore,
        executor: Executor,
        traffic_switch: TrafficSwitch,
        backup_manager: BackupManager,
        health_gate: Optional[HealthGate] = None,
        lock_path: Optional[str] = None,
        report: Optional[Reporter] = None,
    ):
        """
        Args:
            store: Persisted deployment state
            executor: External actions
            traffic_switch: Reverse proxy cutover
            backup_manager: Image archives
            health_gate: Defaults to a HealthGate over executor
            lock_path: Advisory lock file; None disables locking
            report: Sink for user-facing progress lines (default: print)
        """
        self.store = store
        self.executor = executor
        self.traffic_switch = traffic_switch
        self.backup_manager = backup_manager
        self.health_gate = health_gate or HealthGate(executor)
        self.lock_path = lock_path
        self.report = report or print

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _locked(self, dry_run: bool):
        if self.lock_path and not dry_run:
            return state_lock(self.lock_path)
        return nullcontext()

    def _dry(self, description: str) -> None:
        self.report(f"(dry) {description}")

    @staticmethod
    def _require(result: ExecResult, action: str) -> ExecResult:
        """Turn a failed ExecResult into a fatal error."""
        if not result.success:
            raise ExternalActionFailure(action, result.error, result.output)
        return result

    async def _revision(self) -> str:
        """Short source revision, or epoch millis outside a git checkout."""
        result = await self.executor.resolve_revision()
        revision = result.output.strip() if result.success else ""
        if not revision:
            logger.info(f"Revision lookup unavailable ({result.error}), using timestamp")
            revision = str(int(time.time() * 1000))
        return revision

    async def _decommission(self, colour: Colour) -> None:
        """
        Stop the outgoing colour.

        Runs after traffic has already moved, so a failure here is reported
        but does not stop the new active colour from being persisted.
        """
        result = await self.executor.run_stop(colour)
        if not result.success:
            logger.warning(f"Failed to stop {colour}: {result.error}")
            self.report(f"⚠ Failed to stop {colour} ({result.error}), stop it manually")

    # ------------------------------------------------------------------
    # deploy
    # ------------------------------------------------------------------

    async def deploy(self, skip_build: bool = False, dry_run: bool = False) -> DeployResult:
        """
        Bring up the idle colour, gate on health, switch traffic to it.

        Args:
            skip_build: Reuse the idle colour's existing image
            dry_run: Print actions without executing

        Raises:
            ExternalActionFailure: build/start/reload failed
            HealthTimeout: the new colour never became healthy
            LockUnavailable: another operation is running
        """
        with self._locked(dry_run):
            state = await self.store.load()
            current = state.active_colour
            next_colour = current.other
            revision = await self._revision()
            tag = f"{current.value}-{revision}"

            if dry_run:
                self._deploy_dry_run(state, current, next_colour, tag, skip_build)
                return DeployResult(current, current, tag, dry_run=True)

            sm = DeploymentStateMachine("deploy")
            try:
                archive_path = await self._deploy(sm, state, current, next_colour, skip_build)
            except DeployerError as e:
                sm.fail(e)
                raise

            state.history.append(HistoryEntry(
                tag=tag,
                colour=current,
                revision=revision,
                saved_archive_path=archive_path,
            ))

            sm.transition(Phase.DECOMMISSIONING)
            await self._decommission(current)

            state.active_colour = next_colour
            await self.store.save(state)
            sm.transition(Phase.PERSISTED)

            self.report(f"✓ deployed → {next_colour}")
            return DeployResult(current, next_colour, tag, archive_path=archive_path)

    async def _deploy(
        self,
        sm: DeploymentStateMachine,
        state: DeploymentState,
        current: Colour,
        next_colour: Colour,
        skip_build: bool,
    ) -> Optional[str]:
        """Steps up to and including the archive. Returns the archive path."""
        if not skip_build:
            sm.transition(Phase.BUILDING)
            self._require(await self.executor.run_build(next_colour), f"build {next_colour}")

        sm.transition(Phase.STARTING)
        self._require(await self.executor.run_start(next_colour), f"start {next_colour}")

        sm.transition(Phase.HEALTH_CHECKING)
        await self.health_gate.await_healthy(next_colour, state.health)

        sm.transition(Phase.CUTTING_OVER)
        await self.traffic_switch.cutover(next_colour)

        sm.transition(Phase.ARCHIVING)
        try:
            archive_path = await self.backup_manager.archive(current)
        except ArchiveError as e:
            logger.warning(f"{e}, continuing without backup")
            self.report(f"⚠ Failed to save image for {current}, continuing without backup")
            return None

        self.report(f"✓ Saved {current} image to {archive_path}")
        return archive_path

    def _deploy_dry_run(
        self,
        state: DeploymentState,
        current: Colour,
        next_colour: Colour,
        tag: str,
        skip_build: bool,
    ) -> None:
        health = state.health
        if not skip_build:
            self._dry(f"build {next_colour}")
        self._dry(f"start {next_colour} and router")
        self._dry(
            f"wait for {next_colour} to report healthy "
            f"(up to {health.max_attempts} probes, {health.interval_ms}ms apart)"
        )
        self._dry(self.traffic_switch.describe(next_colour))
        self._dry(f"archive {current} image to {self.backup_manager.archive_path(current)}")
        self._dry(f"record history entry {tag}")
        self._dry(f"stop {current}")
        self._dry(f"set active colour {current} → {next_colour}")

    # ------------------------------------------------------------------
    # rollback
    # ------------------------------------------------------------------

    async def rollback(self, dry_run: bool = False) -> RollbackResult:
        """
        Return traffic to the most recently decommissioned colour.

        Loads its archived image when one is recorded and readable, otherwise
        (or if loading fails) rebuilds it from source.

        Raises:
            RollbackUnavailable: history is empty (nothing is changed)
            HistoryInconsistent: last entry names the active colour
            ExternalActionFailure: build/start/reload failed
            HealthTimeout: the target never became healthy
            LockUnavailable: another operation is running
        """
        with self._locked(dry_run):
            state = await self.store.load()
            if not state.history:
                raise RollbackUnavailable()

            target = state.history[-1]
            current = state.active_colour
            if target.colour is current:
                raise HistoryInconsistent(current.value)

            archive = target.saved_archive_path
            has_archive = bool(archive) and os.access(archive, os.R_OK)

            if dry_run:
                self._rollback_dry_run(state, target, current, has_archive)
                return RollbackResult(current, current, target.tag, dry_run=True)

            sm = DeploymentStateMachine("rollback")
            try:
                restored = await self._rollback(sm, state, target, current, has_archive)
            except DeployerError as e:
                sm.fail(e)
                raise

            sm.transition(Phase.DECOMMISSIONING)
            await self._decommission(current)

            state.active_colour = target.colour
            state.history.pop()
            await self.store.save(state)
            sm.transition(Phase.PERSISTED)

            self.report(f"Rollback complete → {target.colour}")
            return RollbackResult(
                current, target.colour, target.tag, restored_from_archive=restored
            )

    async def _rollback(
        self,
        sm: DeploymentStateMachine,
        state: DeploymentState,
        target: HistoryEntry,
        current: Colour,
        has_archive: bool,
    ) -> bool:
        """Steps up to and including the cutover. Returns True if restored from archive."""
        restored = False
        if has_archive:
            sm.transition(Phase.RESTORING)
            try:
                await self.backup_manager.restore(target.saved_archive_path)
                restored = True
                self.report(f"✓ Loaded image from {target.saved_archive_path}")
            except ArchiveError as e:
                logger.warning(f"{e}, rebuilding {target.colour}")
                self.report("⚠ Failed to load saved image, will try to rebuild")
        else:
            self.report(f"No saved image found, rebuilding {target.colour}")

        if not restored:
            sm.transition(Phase.BUILDING)
            self._require(await self.executor.run_build(target.colour), f"build {target.colour}")

        sm.transition(Phase.STARTING)
        self._require(await self.executor.run_start(target.colour), f"start {target.colour}")

        sm.transition(Phase.HEALTH_CHECKING)
        await self.health_gate.await_healthy(target.colour, state.health)

        sm.transition(Phase.CUTTING_OVER)
        await self.traffic_switch.cutover(target.colour)
        return restored

    def _rollback_dry_run(
        self,
        state: DeploymentState,
        target: HistoryEntry,
        current: Colour,
        has_archive: bool,
    ) -> None:
        if has_archive:
            self._dry(f"load image from {target.saved_archive_path} (rebuild {target.colour} on failure)")
        else:
            self._dry(f"build {target.colour}")
        self._dry(f"start {target.colour} and router")
        self._dry(
            f"wait for {target.colour} to report healthy "
            f"(up to {state.health.max_attempts} probes, {state.health.interval_ms}ms apart)"
        )
        self._dry(self.traffic_switch.describe(target.colour))
        self._dry(f"stop {current}")
        self._dry(f"set active colour {current} → {target.colour}, drop history entry {target.tag}")

    # ------------------------------------------------------------------
    # cleanup
    # ------------------------------------------------------------------

    async def cleanup(self, dry_run: bool = False) -> CleanupResult:
        """
        Verify archives, delete corrupted ones, prune history entries whose
        archive is gone. Dry runs classify and report without deleting or
        saving.

        Raises:
            LockUnavailable: another operation is running
        """
        with self._locked(dry_run):
            state = await self.store.load()

            sm = DeploymentStateMachine("cleanup")
            if not dry_run:
                sm.transition(Phase.VERIFYING)

            report = await self.backup_manager.verify_all(dry_run=dry_run)
            for path in report.corrupted:
                if dry_run:
                    self._dry(f"remove corrupted archive {path}")
                else:
                    self.report(f"✗ {os.path.basename(path)} is corrupted, removed")
            for path in report.stale:
                if dry_run:
                    self._dry(f"remove partial archive {path}")
                else:
                    self.report(f"✗ {os.path.basename(path)} is a partial archive, removed")

            pruned = await self.backup_manager.prune_history(
                state,
                assume_missing=report.corrupted if dry_run else ()
            )
            for entry in pruned:
                if dry_run:
                    self._dry(f"drop history entry {entry.tag} ({entry.saved_archive_path})")
                else:
                    self.report(f"Removed history entry {entry.tag} for missing image")

            if not dry_run:
                if pruned:
                    await self.store.save(state)
                sm.transition(Phase.PERSISTED)

            return CleanupResult(
                valid=report.valid,
                corrupted=report.corrupted,
                removed=report.removed,
                stale=report.stale,
                pruned=pruned,
                dry_run=dry_run,
            )

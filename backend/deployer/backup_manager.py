"""
Image archives for rollback.

Before a colour is decommissioned its image is saved as a gzip-compressed
tarball named {colour}-{epoch-millis}.tar.gz. Rollback loads it back instead
of rebuilding from source. Cleanup verifies every archive (decompression,
then tar catalog), deletes the corrupted ones and prunes history entries
whose archive no longer exists.

Archive creation and restore failures raise ArchiveError; the orchestrator
treats both as degradations, never as fatal errors.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .exceptions import ArchiveError
from .executor import Executor
from .state_store import DeploymentState, HistoryEntry
from .types import Colour

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"

# Left behind when an archive write is killed mid-stream
PARTIAL_SUFFIX = ARCHIVE_SUFFIX + ".tmp"


@dataclass
class VerificationReport:
    """Outcome of a verification pass over the archive directory."""
    valid: List[str] = field(default_factory=list)
    corrupted: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)  # deleted from disk
    stale: List[str] = field(default_factory=list)  # partial writes


class BackupManager:
    """Creates, restores and verifies image archives."""

    def __init__(self, executor: Executor, archive_dir: str):
        self.executor = executor
        self.archive_dir = Path(archive_dir)

    def archive_path(self, colour: Colour) -> Path:
        """Timestamped archive location for colour."""
        return self.archive_dir / f"{colour.value}-{int(time.time() * 1000)}{ARCHIVE_SUFFIX}"

    async def archive(self, colour: Colour) -> str:
        """
        Save colour's current image.

        Returns:
            Path of the written archive

        Raises:
            ArchiveError: If the image could not be saved (partial file removed)
        """
        path = self.archive_path(colour)
        await asyncio.to_thread(self.archive_dir.mkdir, parents=True, exist_ok=True)

        result = await self.executor.create_archive(colour, str(path))
        if not result.success:
            await asyncio.to_thread(path.unlink, True)  # missing_ok=True
            raise ArchiveError(f"Failed to save image for {colour}: {result.error}")

        logger.info(f"Saved {colour} image to {path}")
        return str(path)

    async def restore(self, path: str) -> None:
        """
        Load an archived image back into the runtime.

        Raises:
            ArchiveError: If the archive is missing or could not be loaded
        """
        exists = await asyncio.to_thread(Path(path).is_file)
        if not exists:
            raise ArchiveError(f"Archive {path} not found")

        result = await self.executor.load_archive(path)
        if not result.success:
            raise ArchiveError(f"Failed to load {path}: {result.error}")

        logger.info(f"Loaded image from {path}")

    async def list_archives(self, suffix: str = ARCHIVE_SUFFIX) -> List[Path]:
        def _list():
            if not self.archive_dir.is_dir():
                return []
            return sorted(
                p for p in self.archive_dir.iterdir()
                if p.is_file() and p.name.endswith(suffix)
            )
        return await asyncio.to_thread(_list)

    async def verify_all(self, dry_run: bool = False) -> VerificationReport:
        """
        Verify every archive and delete the corrupted ones.

        Partial archives left by an interrupted write are deleted too. Callers
        hold the state lock, so no archive write can be in progress.

        Args:
            dry_run: Classify only, delete nothing

        Returns:
            VerificationReport listing valid, corrupted and removed archives
        """
        report = VerificationReport()

        for path in await self.list_archives():
            result = await self.executor.verify_archive(str(path))
            if result.success:
                logger.info(f"{path.name} is valid")
                report.valid.append(str(path))
                continue

            logger.warning(f"{path.name} is corrupted ({result.error})")
            report.corrupted.append(str(path))
            if not dry_run:
                await asyncio.to_thread(path.unlink, True)  # missing_ok=True
                report.removed.append(str(path))

        for path in await self.list_archives(PARTIAL_SUFFIX):
            logger.warning(f"{path.name} is a partial archive")
            report.stale.append(str(path))
            if not dry_run:
                await asyncio.to_thread(path.unlink, True)  # missing_ok=True

        return report

    async def prune_history(
        self,
        state: DeploymentState,
        assume_missing: List[str] = ()
    ) -> List[HistoryEntry]:
        """
        Drop history entries whose archive is gone.

        Entries with no archive at all are kept (rollback rebuilds them).

        Args:
            state: State to prune in place
            assume_missing: Paths to treat as gone even if still on disk
                (dry runs, where corrupted archives are not deleted)

        Returns:
            The pruned entries
        """
        missing = set(assume_missing)

        def _is_gone(entry: HistoryEntry) -> bool:
            if not entry.saved_archive_path:
                return False
            return entry.saved_archive_path in missing or not Path(entry.saved_archive_path).exists()

        kept, pruned = [], []
        for entry in state.history:
            if await asyncio.to_thread(_is_gone, entry):
                logger.warning(f"Removing history entry for missing image: {entry.saved_archive_path}")
                pruned.append(entry)
            else:
                kept.append(entry)

        state.history = kept
        return pruned

"""
Traffic cutover.

The reverse proxy includes a one-line upstream descriptor naming the active
colour. Cutover rewrites that file wholesale and asks the proxy to reload.
If the reload fails the previous descriptor is put back, so the file on disk
never names a colour the proxy was not successfully pointed at.

The compose file bind-mounts the descriptor as a single file, and such a
mount stays attached to the inode it was created with. The descriptor is
therefore truncated and rewritten in place, never replaced by a rename.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiofiles

from .exceptions import CutoverFailure
from .executor import Executor
from .types import Colour

logger = logging.getLogger(__name__)

UPSTREAM_NAME = "app_backend"


def render_backend_descriptor(colour: Colour, port: int) -> str:
    """Upstream block routing all traffic to a single colour."""
    return f"upstream {UPSTREAM_NAME} {{ server {colour.value}:{port}; }}\n"


class TrafficSwitch:
    """Points the reverse proxy at one colour."""

    def __init__(self, executor: Executor, descriptor_path: str, service_port: int):
        self.executor = executor
        self.descriptor_path = Path(descriptor_path)
        self.service_port = service_port

    async def _read_current(self) -> Optional[str]:
        def _read():
            try:
                return self.descriptor_path.read_text(encoding='utf-8')
            except FileNotFoundError:
                return None
        return await asyncio.to_thread(_read)

    async def _write_in_place(self, content: str) -> None:
        """Truncate and rewrite the descriptor, keeping its inode."""
        async with aiofiles.open(self.descriptor_path, 'w', encoding='utf-8') as f:
            await f.write(content)
            await f.flush()

    async def cutover(self, colour: Colour) -> None:
        """
        Route traffic to colour.

        Raises:
            CutoverFailure: If the reload failed (descriptor already restored)
        """
        previous = await self._read_current()

        await asyncio.to_thread(self.descriptor_path.parent.mkdir, parents=True, exist_ok=True)
        await self._write_in_place(render_backend_descriptor(colour, self.service_port))

        result = await self.executor.reload_router()
        if result.success:
            logger.info(f"Traffic switched to {colour}")
            return

        logger.error(f"Router reload failed, restoring previous backend descriptor: {result.error}")
        if previous is None:
            await asyncio.to_thread(self.descriptor_path.unlink, True)  # missing_ok=True
        else:
            await self._write_in_place(previous)

        raise CutoverFailure("router reload", result.error, result.output)

    def describe(self, colour: Colour) -> str:
        """Dry-run description of a cutover."""
        return (
            f"write {self.descriptor_path}: "
            f"{render_backend_descriptor(colour, self.service_port).strip()}; reload router"
        )

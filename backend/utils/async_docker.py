"""
Async wrappers for blocking Docker SDK and subprocess calls.

The Docker SDK and subprocess are synchronous. Every call made from the
deployment flow goes through here so a pending call never blocks the event
loop (health probe sleeps stay cooperative).
"""

import asyncio
import logging
import subprocess
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


async def async_docker_call(sync_fn: Callable, *args, **kwargs) -> Any:
    """
    Run a synchronous Docker SDK call in a worker thread.

    Args:
        sync_fn: Bound SDK method, e.g. client.containers.get
        *args, **kwargs: Passed through to sync_fn

    Returns:
        Whatever sync_fn returns. Exceptions propagate unchanged.
    """
    return await asyncio.to_thread(sync_fn, *args, **kwargs)


async def run_command(
    args: List[str],
    cwd: Optional[str] = None,
    timeout: int = 300
) -> subprocess.CompletedProcess:
    """
    Run an external command asynchronously.

    Args:
        args: Command and arguments
        cwd: Working directory
        timeout: Command timeout in seconds

    Returns:
        CompletedProcess with stdout, stderr, and returncode

    Raises:
        FileNotFoundError: If the binary is not installed
        subprocess.TimeoutExpired: If the command ran longer than timeout
    """
    logger.debug(f"$ {' '.join(args)}")
    return await asyncio.to_thread(
        subprocess.run,
        args,
        cwd=cwd,
        capture_output=True,
        text=True,
        timeout=timeout
    )

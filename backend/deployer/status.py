"""
Read-only deployment status report for `bluegreen status`.
"""

import asyncio
import logging
import os
from typing import List, Optional

from .docker_executor import DockerExecutor
from .state_store import DeploymentState

logger = logging.getLogger(__name__)

# History entries shown, most recent last
HISTORY_LIMIT = 5


async def render_status(
    state: DeploymentState,
    state_file: str,
    compose_file: str,
    backend_conf: str,
    executor: Optional[DockerExecutor] = None,
) -> List[str]:
    """
    Build the status report.

    Docker listing failures degrade to a warning line; nothing here mutates
    state or the runtime.
    """
    lines = [
        "=== Deployment Status ===",
        f"Current active colour: {state.active_colour}",
        f"Config file: {state_file}",
        f"Compose file: {compose_file}",
    ]

    if not await asyncio.to_thread(os.path.exists, compose_file):
        lines.append("✗ Compose file missing - run 'bluegreen init'")
        return lines

    if executor is not None:
        lines.append("")
        lines.append("=== Docker Images ===")
        try:
            lines.extend(await executor.list_colour_images())
        except Exception as e:
            logger.warning(f"Could not list Docker images: {e}")
            lines.append("⚠ Could not list Docker images")

        lines.append("")
        lines.append("=== Running Containers ===")
        try:
            lines.extend(await executor.list_deployment_containers())
        except Exception as e:
            logger.warning(f"Could not list running containers: {e}")
            lines.append("⚠ Could not list running containers")

    lines.append("")
    lines.append("=== Deployment History ===")
    if not state.history:
        lines.append("No deployment history")
    else:
        lines.append(f"{len(state.history)} previous deployments:")
        for entry in state.history[-HISTORY_LIMIT:]:
            archived = bool(entry.saved_archive_path) and os.path.exists(entry.saved_archive_path)
            marker = "✓" if archived else "✗"
            lines.append(f"  {marker} {entry.colour} ({entry.revision}) - {entry.tag}")
            if entry.saved_archive_path:
                lines.append(f"    Image: {entry.saved_archive_path}")

    health = state.health
    lines.append("")
    lines.append("=== Health Check Config ===")
    lines.append(f"URL: {health.url}")
    lines.append(f"Interval: {health.interval_ms}ms")
    lines.append(f"Max attempts: {health.max_attempts}")

    lines.append("")
    lines.append("=== Nginx Config ===")
    try:
        with open(backend_conf, encoding="utf-8") as f:
            lines.append(f.read().strip())
    except FileNotFoundError:
        lines.append(f"✗ {os.path.basename(backend_conf)} not found")

    return lines

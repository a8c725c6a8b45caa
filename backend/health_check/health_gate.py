"""
Health gate for blue-green cutover.

A colour only receives traffic after it reports healthy. The gate polls at a
fixed interval up to a bounded number of attempts:

    for attempt in 1..max_attempts:
        sleep(interval)
        probe -> HEALTHY      : pass, no further probes
                 UNHEALTHY    : log, keep polling
                 PROBE_ERROR  : log, keep polling (never aborts early)
    exhausted -> HealthTimeout

The sleep is an asyncio suspension point; nothing else in the deployment
flow runs while a probe is pending.
"""

import asyncio
import logging

from deployer.exceptions import HealthTimeout
from deployer.executor import Executor
from deployer.state_store import HealthCheckConfig
from deployer.types import Colour, HealthStatus

logger = logging.getLogger(__name__)


class HealthGate:
    """Bounded polling of a colour's health status."""

    def __init__(self, executor: Executor):
        self.executor = executor

    async def await_healthy(self, target: Colour, config: HealthCheckConfig) -> int:
        """
        Wait for target to report healthy.

        Args:
            target: Colour to probe
            config: Interval and attempt budget

        Returns:
            Number of probes it took

        Raises:
            HealthTimeout: If max_attempts probes pass without a healthy result
        """
        attempts = config.max_attempts
        interval = config.interval_ms / 1000

        for attempt in range(1, attempts + 1):
            await asyncio.sleep(interval)
            status = await self.executor.query_health(target, config)

            if status is HealthStatus.HEALTHY:
                logger.info(f"Container {target} is healthy ({attempt}/{attempts})")
                return attempt

            if status is HealthStatus.PROBE_ERROR:
                logger.info(f"Waiting for container {target}... ({attempt}/{attempts})")
            else:
                logger.info(f"Container {target} status: {status.value} ({attempt}/{attempts})")

        logger.error(f"Container {target} failed health checks after {attempts} attempts")
        raise HealthTimeout(target.value, attempts)

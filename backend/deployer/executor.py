"""
Executor capability.

The deployment core never builds command lines itself. Everything that
touches the container runtime, the reverse proxy, version control or archive
files goes through an Executor, and every call returns an ExecResult instead
of raising. DockerExecutor is the production implementation; tests drive the
orchestrator with an in-memory fake.
"""

from abc import ABC, abstractmethod

from .state_store import HealthCheckConfig
from .types import Colour, ExecResult, HealthStatus


class Executor(ABC):
    """External actions the orchestrator depends on."""

    @abstractmethod
    async def run_build(self, colour: Colour) -> ExecResult:
        """Build the colour's image from source."""

    @abstractmethod
    async def run_start(self, colour: Colour) -> ExecResult:
        """Start (or recreate) the colour together with the routing frontend."""

    @abstractmethod
    async def run_stop(self, colour: Colour) -> ExecResult:
        """Stop the colour's container."""

    @abstractmethod
    async def query_health(self, colour: Colour, config: HealthCheckConfig) -> HealthStatus:
        """Probe the colour once. Must not raise; errors are PROBE_ERROR."""

    @abstractmethod
    async def reload_router(self) -> ExecResult:
        """Make the reverse proxy pick up the current backend descriptor."""

    @abstractmethod
    async def resolve_revision(self) -> ExecResult:
        """Short id of the source revision being deployed (in output)."""

    @abstractmethod
    async def create_archive(self, colour: Colour, path: str) -> ExecResult:
        """Save the colour's image as a compressed archive at path."""

    @abstractmethod
    async def verify_archive(self, path: str) -> ExecResult:
        """Check that the archive decompresses and its catalog lists."""

    @abstractmethod
    async def load_archive(self, path: str) -> ExecResult:
        """Load a previously archived image back into the runtime."""

"""
Docker-backed Executor.

Compose lifecycle commands (build/up/stop) go through the docker compose CLI
because the Docker SDK has no compose support. Everything that talks to a
single container or image (health status, proxy reload, image save/load)
uses the Docker SDK. Archive verification is done in-process with gzip and
tarfile.

Every public method returns an ExecResult (or HealthStatus); no exception
from Docker, subprocess or the filesystem crosses this boundary.
"""

import gzip
import logging
import os
import subprocess
import tarfile
import zlib
from pathlib import Path
from typing import List, Optional

import docker
import httpx

from utils.async_docker import async_docker_call, run_command
from .executor import Executor
from .state_store import HealthCheckConfig
from .types import Colour, ExecResult, HealthStatus

logger = logging.getLogger(__name__)

# Read size when streaming archives through gzip
_CHUNK_SIZE = 1024 * 1024


class DockerExecutor(Executor):
    """
    Executes deployment actions against the local Docker daemon.

    Container names match compose service names (the compose file written by
    `init` pins container_name to blue / green / the router service), and
    built images are named {project}-{colour} as compose names them.
    """

    def __init__(
        self,
        compose_file: str,
        project_root: str,
        project_name: str,
        router_service: str = "app",
        command_timeout: int = 1800,
        docker_client: Optional[docker.DockerClient] = None,
    ):
        """
        Args:
            compose_file: Path to docker-compose.deployer.yaml
            project_root: Directory commands run in (git revision lookup, compose context)
            project_name: Compose project name, prefix of built image names
            router_service: Reverse proxy service/container name
            command_timeout: Seconds before an external command is abandoned
            docker_client: Docker SDK client (created from the environment on first use)
        """
        self.compose_file = compose_file
        self.project_root = project_root
        self.project_name = project_name
        self.router_service = router_service
        self.command_timeout = command_timeout
        self._client = docker_client
        self._compose_cmd: Optional[List[str]] = None

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    def image_name(self, colour: Colour) -> str:
        return f"{self.project_name}-{colour.value}"

    # ------------------------------------------------------------------
    # Command helpers
    # ------------------------------------------------------------------

    async def _run(self, args: List[str], timeout: Optional[int] = None) -> ExecResult:
        """Run a command, converting every failure mode into an ExecResult."""
        try:
            result = await run_command(
                args,
                cwd=self.project_root,
                timeout=timeout or self.command_timeout
            )
        except FileNotFoundError:
            return ExecResult.failed(f"{args[0]} not found")
        except subprocess.TimeoutExpired:
            return ExecResult.failed(
                f"'{' '.join(args)}' timed out after {timeout or self.command_timeout}s"
            )

        output = (result.stdout or "").strip()
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            return ExecResult.failed(
                stderr or f"exit status {result.returncode}",
                output=output
            )
        return ExecResult.ok(output)

    async def _detect_compose(self) -> Optional[List[str]]:
        """Support both the docker compose v2 plugin and the standalone binary."""
        if self._compose_cmd is not None:
            return self._compose_cmd

        for candidate in (["docker", "compose"], ["docker-compose"]):
            result = await self._run(candidate + ["version"], timeout=30)
            if result.success:
                logger.debug(f"Using compose command: {' '.join(candidate)}")
                self._compose_cmd = candidate
                return candidate

        return None

    async def _compose(self, *args: str) -> ExecResult:
        base = await self._detect_compose()
        if base is None:
            return ExecResult.failed("Docker Compose not found - please install Docker")
        return await self._run(base + ["-f", self.compose_file, *args])

    # ------------------------------------------------------------------
    # Executor interface
    # ------------------------------------------------------------------

    async def run_build(self, colour: Colour) -> ExecResult:
        return await self._compose("build", colour.value)

    async def run_start(self, colour: Colour) -> ExecResult:
        return await self._compose("up", "-d", "--force-recreate", self.router_service, colour.value)

    async def run_stop(self, colour: Colour) -> ExecResult:
        return await self._compose("stop", colour.value)

    async def query_health(self, colour: Colour, config: HealthCheckConfig) -> HealthStatus:
        """
        Probe one colour.

        Uses the container's Docker HEALTHCHECK status. Containers without a
        HEALTHCHECK fall back to an HTTP GET against the configured URL.
        """
        try:
            container = await async_docker_call(self.client.containers.get, colour.value)
        except docker.errors.NotFound:
            logger.debug(f"Container {colour} not found yet")
            return HealthStatus.PROBE_ERROR
        except Exception as e:
            logger.debug(f"Error inspecting container {colour}: {e}")
            return HealthStatus.PROBE_ERROR

        state = container.attrs.get("State", {})
        health = state.get("Health")
        if health:
            status = health.get("Status")
            logger.debug(f"Container {colour} health status: {status}")
            return HealthStatus.HEALTHY if status == "healthy" else HealthStatus.UNHEALTHY

        if not state.get("Running", False):
            return HealthStatus.UNHEALTHY

        return await self._http_probe(config)

    async def _http_probe(self, config: HealthCheckConfig) -> HealthStatus:
        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(5.0)) as client:
                response = await client.get(config.url)
        except httpx.HTTPError as e:
            logger.debug(f"HTTP health probe {config.url} failed: {e}")
            return HealthStatus.PROBE_ERROR

        if 200 <= response.status_code < 300:
            return HealthStatus.HEALTHY
        logger.debug(f"HTTP health probe {config.url} returned {response.status_code}")
        return HealthStatus.UNHEALTHY

    async def reload_router(self) -> ExecResult:
        try:
            container = await async_docker_call(self.client.containers.get, self.router_service)
            exit_code, output = await async_docker_call(
                container.exec_run, ["nginx", "-s", "reload"]
            )
        except docker.errors.DockerException as e:
            return ExecResult.failed(f"Could not reload {self.router_service}: {e}")

        text = output.decode("utf-8", errors="replace").strip() if output else ""
        if exit_code != 0:
            return ExecResult.failed(text or f"nginx reload exited {exit_code}", output=text)
        return ExecResult.ok(text)

    async def resolve_revision(self) -> ExecResult:
        return await self._run(["git", "rev-parse", "--short", "HEAD"], timeout=30)

    async def create_archive(self, colour: Colour, path: str) -> ExecResult:
        image_name = self.image_name(colour)
        try:
            image = await async_docker_call(self.client.images.get, image_name)
        except docker.errors.DockerException as e:
            return ExecResult.failed(f"Image {image_name} unavailable: {e}")

        try:
            await async_docker_call(_save_image_gzip, image, Path(path))
        except (docker.errors.DockerException, OSError) as e:
            return ExecResult.failed(f"Saving {image_name} failed: {e}")

        return ExecResult.ok(path)

    async def verify_archive(self, path: str) -> ExecResult:
        return await async_docker_call(_verify_archive, Path(path))

    async def load_archive(self, path: str) -> ExecResult:
        # The daemon accepts gzip-compressed tarballs directly
        try:
            images = await async_docker_call(_load_image_file, self.client, Path(path))
        except (docker.errors.DockerException, OSError) as e:
            return ExecResult.failed(f"Loading {path} failed: {e}")

        tags = [tag for image in images for tag in image.tags]
        return ExecResult.ok(", ".join(tags))

    # ------------------------------------------------------------------
    # Status helpers (not part of the Executor interface)
    # ------------------------------------------------------------------

    async def list_colour_images(self) -> List[str]:
        """Repository:tag lines for the project's blue/green images."""
        images = await async_docker_call(self.client.images.list)
        wanted = (self.image_name(Colour.BLUE), self.image_name(Colour.GREEN))
        lines = []
        for image in images:
            for tag in image.tags:
                if tag.split(":", 1)[0] in wanted:
                    size_mb = image.attrs.get("Size", 0) / (1024 * 1024)
                    lines.append(f"{tag}\t{size_mb:.1f}MB")
        return lines

    async def list_deployment_containers(self) -> List[str]:
        """Name/status lines for running colour and router containers."""
        containers = await async_docker_call(self.client.containers.list)
        names = {Colour.BLUE.value, Colour.GREEN.value, self.router_service}
        return [
            f"{container.name}\t{container.status}"
            for container in containers
            if container.name in names
        ]


def _save_image_gzip(image, target: Path) -> None:
    """Stream the image tarball through gzip into target via a temp file."""
    target.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target.with_name(target.name + ".tmp")
    try:
        with gzip.open(temp_path, "wb") as f:
            for chunk in image.save(named=True):
                f.write(chunk)
        os.replace(temp_path, target)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


def _verify_archive(path: Path) -> ExecResult:
    """
    Two-stage integrity check.

    Stage 1: the whole gzip stream decompresses.
    Stage 2: the decompressed tar's catalog can be listed.
    """
    try:
        with gzip.open(path, "rb") as f:
            while f.read(_CHUNK_SIZE):
                pass
    except (OSError, EOFError, zlib.error) as e:
        return ExecResult.failed(f"decompression failed: {e}")

    try:
        with tarfile.open(path, "r:gz") as tar:
            members = tar.getnames()
    except (tarfile.TarError, OSError, EOFError) as e:
        return ExecResult.failed(f"catalog unreadable: {e}")

    return ExecResult.ok(f"{len(members)} entries")


def _load_image_file(client: docker.DockerClient, path: Path):
    with open(path, "rb") as f:
        return client.images.load(f)

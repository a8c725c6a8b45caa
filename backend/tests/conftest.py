"""
Shared pytest fixtures for deployer tests.

Fixtures provided:
- fake_executor: In-memory Executor with scripted results and a call log
- deployer_dir: Temporary .deployer directory
- store: StateStore over deployer_dir/config.json
- write_state: Write a DeploymentState straight to disk (sync)
- orchestrator: DeploymentOrchestrator wired to the fake executor
- reports: Progress lines the orchestrator printed
- mock_docker_client: Mock Docker SDK client

Nothing here touches a real Docker daemon, git or nginx.
"""

import gzip
import io
import json
import os
import sys
import tarfile
from collections import defaultdict, deque
from pathlib import Path
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from deployer.backup_manager import BackupManager
from deployer.docker_executor import _verify_archive
from deployer.executor import Executor
from deployer.orchestrator import DeploymentOrchestrator
from deployer.state_store import DeploymentState, HealthCheckConfig, StateStore
from deployer.traffic_switch import TrafficSwitch
from deployer.types import Colour, ExecResult, HealthStatus

SERVICE_PORT = 4000


def make_image_archive(path, payload: bytes = b'{"layers": []}') -> str:
    """Write a small but structurally valid gzip-compressed tarball."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        info = tarfile.TarInfo(name="manifest.json")
        info.size = len(payload)
        tar.addfile(info, io.BytesIO(payload))
    return str(path)


def make_corrupt_archive(path) -> str:
    """Write a gzip stream that is cut off half way."""
    os.makedirs(os.path.dirname(path), exist_ok=True)
    buf = io.BytesIO()
    with gzip.GzipFile(fileobj=buf, mode="wb") as f:
        f.write(os.urandom(64 * 1024))
    data = buf.getvalue()
    with open(path, "wb") as f:
        f.write(data[: len(data) // 2])
    return str(path)


class FakeExecutor(Executor):
    """
    Executor that records every call and returns scripted results.

    Queue results per action with `script(action, *results)`; unscripted
    calls succeed. Health answers are queued per colour with
    `script_health(colour, *statuses)`; an empty queue answers HEALTHY.
    create_archive writes a real archive so verification and pruning see a
    file on disk.
    """

    def __init__(self, revision: str = "a1b2c3d"):
        self.calls: List[tuple] = []
        self.revision = revision
        self._results: Dict[str, deque] = defaultdict(deque)
        self._health: Dict[Colour, deque] = defaultdict(deque)
        self.descriptor_at_reload: List[Optional[str]] = []
        self.descriptor_path: Optional[str] = None

    def script(self, action: str, *results: ExecResult) -> None:
        self._results[action].extend(results)

    def script_health(self, colour: Colour, *statuses: HealthStatus) -> None:
        self._health[colour].extend(statuses)

    def _next(self, action: str, default: ExecResult) -> ExecResult:
        queue = self._results[action]
        return queue.popleft() if queue else default

    def actions(self) -> List[str]:
        return [call[0] for call in self.calls]

    def count(self, action: str) -> int:
        return self.actions().count(action)

    async def run_build(self, colour):
        self.calls.append(("build", colour))
        return self._next("build", ExecResult.ok())

    async def run_start(self, colour):
        self.calls.append(("start", colour))
        return self._next("start", ExecResult.ok())

    async def run_stop(self, colour):
        self.calls.append(("stop", colour))
        return self._next("stop", ExecResult.ok())

    async def query_health(self, colour, config):
        self.calls.append(("health", colour))
        queue = self._health[colour]
        return queue.popleft() if queue else HealthStatus.HEALTHY

    async def reload_router(self):
        self.calls.append(("reload",))
        if self.descriptor_path is not None:
            try:
                with open(self.descriptor_path, encoding="utf-8") as f:
                    self.descriptor_at_reload.append(f.read())
            except FileNotFoundError:
                self.descriptor_at_reload.append(None)
        return self._next("reload", ExecResult.ok())

    async def resolve_revision(self):
        self.calls.append(("revision",))
        return self._next("revision", ExecResult.ok(self.revision))

    async def create_archive(self, colour, path):
        self.calls.append(("archive", colour, path))
        result = self._next("archive", ExecResult.ok(path))
        if result.success:
            make_image_archive(path)
        return result

    async def verify_archive(self, path):
        self.calls.append(("verify", path))
        return _verify_archive(Path(path))

    async def load_archive(self, path):
        self.calls.append(("load", path))
        return self._next("load", ExecResult.ok(f"{path} loaded"))


@pytest.fixture
def fake_executor():
    return FakeExecutor()


@pytest.fixture
def deployer_dir(tmp_path):
    path = tmp_path / ".deployer"
    (path / "images").mkdir(parents=True)
    return path


@pytest.fixture
def state_file(deployer_dir):
    return deployer_dir / "config.json"


@pytest.fixture
def store(state_file):
    return StateStore(str(state_file))


@pytest.fixture
def fast_health():
    """Health config that polls without sleeping."""
    return HealthCheckConfig(interval_ms=0, max_attempts=3)


@pytest.fixture
def write_state(state_file, fast_health):
    """
    Write a state file synchronously.

    Health defaults to fast_health so orchestrator tests never sleep.
    """
    def _write(active: Colour = Colour.BLUE, history=None, health=None) -> DeploymentState:
        state = DeploymentState(
            active_colour=active,
            history=history or [],
            health=health or fast_health,
        )
        state_file.write_text(
            json.dumps(state.model_dump(mode="json", by_alias=True), indent=2)
        )
        return state
    return _write


@pytest.fixture
def read_state(state_file):
    """Raw JSON currently on disk."""
    def _read() -> dict:
        return json.loads(state_file.read_text())
    return _read


@pytest.fixture
def reports():
    return []


@pytest.fixture
def orchestrator(store, fake_executor, deployer_dir, reports, write_state):
    write_state()
    descriptor = deployer_dir / "active_backend.conf"
    fake_executor.descriptor_path = str(descriptor)
    return DeploymentOrchestrator(
        store=store,
        executor=fake_executor,
        traffic_switch=TrafficSwitch(fake_executor, str(descriptor), SERVICE_PORT),
        backup_manager=BackupManager(fake_executor, str(deployer_dir / "images")),
        lock_path=str(deployer_dir / "deployer.lock"),
        report=reports.append,
    )


@pytest.fixture
def mock_docker_client():
    """
    Mock Docker SDK client for testing without real Docker daemon.

    Returns a MagicMock with common Docker SDK methods stubbed.
    """
    client = MagicMock()

    client.containers.list = MagicMock(return_value=[])

    mock_container = MagicMock()
    mock_container.name = "green"
    mock_container.status = "running"
    mock_container.attrs = {
        'State': {'Status': 'running', 'Running': True, 'Health': {'Status': 'healthy'}},
    }
    mock_container.exec_run = MagicMock(return_value=(0, b"signal process started"))
    client.containers.get = MagicMock(return_value=mock_container)

    mock_image = MagicMock()
    mock_image.tags = ["myapp-blue:latest"]
    mock_image.attrs = {'Size': 50 * 1024 * 1024}
    mock_image.save = MagicMock(return_value=iter([b"tar", b"data"]))
    client.images.get = MagicMock(return_value=mock_image)
    client.images.list = MagicMock(return_value=[mock_image])
    client.images.load = MagicMock(return_value=[mock_image])

    return client

"""
Unit tests for the status report.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from deployer.state_store import DeploymentState, HistoryEntry
from deployer.status import render_status
from deployer.types import Colour
from tests.conftest import make_image_archive


@pytest.fixture
def files(tmp_path):
    compose = tmp_path / "docker-compose.deployer.yaml"
    compose.write_text("services: {}\n")
    backend = tmp_path / "active_backend.conf"
    backend.write_text("upstream app_backend { server green:4000; }\n")
    return tmp_path, str(compose), str(backend)


async def _render(state, files, executor=None):
    tmp_path, compose, backend = files
    return await render_status(
        state,
        state_file=str(tmp_path / "config.json"),
        compose_file=compose,
        backend_conf=backend,
        executor=executor,
    )


@pytest.mark.asyncio
async def test_missing_compose_file_stops_early(tmp_path):
    lines = await render_status(
        DeploymentState(),
        state_file=str(tmp_path / "config.json"),
        compose_file=str(tmp_path / "missing.yaml"),
        backend_conf=str(tmp_path / "active_backend.conf"),
    )

    assert lines[-1].startswith("✗ Compose file missing")
    assert "=== Deployment History ===" not in lines


@pytest.mark.asyncio
async def test_full_report(files, tmp_path):
    archive = make_image_archive(tmp_path / "images" / "blue-1.tar.gz")
    state = DeploymentState(
        active_colour=Colour.GREEN,
        history=[
            HistoryEntry(tag="green-0000001", colour=Colour.GREEN, revision="0000001",
                         saved_archive_path=str(tmp_path / "images" / "gone.tar.gz")),
            HistoryEntry(tag="blue-abc1234", colour=Colour.BLUE, revision="abc1234",
                         saved_archive_path=archive),
        ],
    )
    executor = MagicMock()
    executor.list_colour_images = AsyncMock(return_value=["myapp-green:latest\t80.0MB"])
    executor.list_deployment_containers = AsyncMock(return_value=["green\trunning"])

    lines = await _render(state, files, executor)

    assert "Current active colour: green" in lines
    assert "myapp-green:latest\t80.0MB" in lines
    assert "green\trunning" in lines
    assert "2 previous deployments:" in lines
    assert "  ✗ green (0000001) - green-0000001" in lines
    assert "  ✓ blue (abc1234) - blue-abc1234" in lines
    assert "URL: http://localhost:4000/health" in lines
    assert "upstream app_backend { server green:4000; }" in lines


@pytest.mark.asyncio
async def test_docker_unavailable_degrades(files):
    executor = MagicMock()
    executor.list_colour_images = AsyncMock(side_effect=Exception("daemon down"))
    executor.list_deployment_containers = AsyncMock(side_effect=Exception("daemon down"))

    lines = await _render(DeploymentState(), files, executor)

    assert "⚠ Could not list Docker images" in lines
    assert "⚠ Could not list running containers" in lines
    assert "No deployment history" in lines


@pytest.mark.asyncio
async def test_history_limited_to_last_five(files):
    state = DeploymentState(history=[
        HistoryEntry(tag=f"blue-{i}", colour=Colour.BLUE, revision=str(i))
        for i in range(8)
    ])

    lines = await _render(state, files)

    assert "8 previous deployments:" in lines
    assert not any("blue-2" in line for line in lines)
    assert any("blue-7" in line for line in lines)

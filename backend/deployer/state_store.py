"""
Persisted deployment state.

The state file is a small, human-editable JSON document:

    {
      "colour": "blue",
      "history": [
        {"tag": "blue-a1b2c3d", "colour": "blue", "commit": "a1b2c3d",
         "savedImage": ".deployer/images/blue-1718000000000.tar.gz"}
      ],
      "health": {"baseURL": "http://localhost", "port": 4000, "path": "/health",
                 "intervalMs": 2000, "maxAttempts": 15}
    }

Loading never fails: a missing file yields defaults, a corrupt or partial file
is merged field by field with defaults. Saving uses the temp file + rename
pattern so a crash mid-write leaves the previous state intact.

The store only coerces types. Structural invariants (history never holds the
active colour, one entry per deploy) are the orchestrator's job.
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .types import Colour

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 2000
DEFAULT_MAX_ATTEMPTS = 15


class HealthCheckConfig(BaseModel):
    """Where and how often to probe a colour before it receives traffic."""
    model_config = ConfigDict(populate_by_name=True)

    base_address: str = Field("http://localhost", alias="baseURL")
    port: int = 4000
    path: str = "/health"
    interval_ms: int = Field(DEFAULT_INTERVAL_MS, alias="intervalMs")
    max_attempts: int = Field(DEFAULT_MAX_ATTEMPTS, alias="maxAttempts")

    @field_validator("max_attempts")
    @classmethod
    def at_least_one_attempt(cls, v: int) -> int:
        if v < 1:
            logger.warning(f"maxAttempts={v} would never probe, using 1")
            return 1
        return v

    @property
    def url(self) -> str:
        return f"{self.base_address.rstrip('/')}:{self.port}{self.path}"


class HistoryEntry(BaseModel):
    """A decommissioned colour, kept so it can be rolled back to."""
    model_config = ConfigDict(populate_by_name=True)

    tag: str
    colour: Colour
    revision: str = Field(alias="commit")
    saved_archive_path: Optional[str] = Field(None, alias="savedImage")


class DeploymentState(BaseModel):
    """Active colour, rollback history and health configuration."""
    model_config = ConfigDict(populate_by_name=True)

    active_colour: Colour = Field(Colour.BLUE, alias="colour")
    history: List[HistoryEntry] = Field(default_factory=list)
    health: HealthCheckConfig = Field(default_factory=HealthCheckConfig)


def default_state() -> DeploymentState:
    return DeploymentState()


def _recover_health(raw: Any) -> HealthCheckConfig:
    """Keep every health field that coerces, default the rest."""
    if not isinstance(raw, dict):
        return HealthCheckConfig()

    recovered: Dict[str, Any] = {}
    for name, field in HealthCheckConfig.model_fields.items():
        for key in (field.alias, name):
            if key in raw:
                try:
                    HealthCheckConfig.model_validate({key: raw[key]})
                except ValidationError:
                    logger.warning(f"Ignoring invalid health setting {key}={raw[key]!r}")
                else:
                    recovered[name] = raw[key]
                break
    return HealthCheckConfig.model_validate(recovered)


def _recover(raw: Any) -> DeploymentState:
    """
    Build a state from partially valid data.

    Valid fields are kept, invalid ones fall back to defaults, and history
    entries that do not coerce are dropped individually.
    """
    if not isinstance(raw, dict):
        logger.warning("State file does not hold an object, using defaults")
        return default_state()

    state = default_state()

    colour = raw.get("colour", raw.get("active_colour"))
    if colour is not None:
        try:
            state.active_colour = Colour(colour)
        except ValueError:
            logger.warning(f"Ignoring invalid active colour {colour!r}")

    history = raw.get("history")
    if isinstance(history, list):
        for item in history:
            try:
                state.history.append(HistoryEntry.model_validate(item))
            except ValidationError:
                logger.warning(f"Dropping unreadable history entry: {item!r}")

    state.health = _recover_health(raw.get("health"))
    return state


class StateStore:
    """
    Loads and saves DeploymentState.

    All public methods are async and use aiofiles so a slow disk never blocks
    a pending health probe.
    """

    def __init__(self, state_file: str):
        self.state_file = Path(state_file)

    async def load(self) -> DeploymentState:
        """
        Read the state file.

        Never raises: missing or corrupt storage yields defaults merged with
        whatever could be recovered.
        """
        exists = await asyncio.to_thread(self.state_file.exists)
        if not exists:
            logger.info(f"No state file at {self.state_file}, using defaults")
            return default_state()

        try:
            async with aiofiles.open(self.state_file, 'r', encoding='utf-8') as f:
                content = await f.read()
            raw = json.loads(content)
        except (OSError, ValueError) as e:
            logger.warning(f"State file {self.state_file} unreadable ({e}), using defaults")
            return default_state()

        try:
            return DeploymentState.model_validate(raw)
        except ValidationError as e:
            logger.warning(
                f"State file {self.state_file} partially invalid, merging with defaults: "
                f"{e.error_count()} error(s)"
            )
            return _recover(raw)

    async def save(self, state: DeploymentState) -> None:
        """Write the full state atomically (temp file + rename)."""
        content = json.dumps(
            state.model_dump(mode="json", by_alias=True),
            indent=2
        ) + "\n"

        await asyncio.to_thread(self.state_file.parent.mkdir, parents=True, exist_ok=True)
        await atomic_write_file(self.state_file, content)
        logger.debug(f"Saved state to {self.state_file}")


async def atomic_write_file(target_path: Path, content: str, mode: int = 0o644) -> None:
    """Write content atomically using temp file + rename pattern."""
    fd, temp_path = tempfile.mkstemp(dir=target_path.parent, suffix='.tmp')
    try:
        os.fchmod(fd, mode)
        async with aiofiles.open(fd, 'w', encoding='utf-8', closefd=True) as f:
            await f.write(content)
            await f.flush()
            await asyncio.to_thread(os.fsync, fd)
        await asyncio.to_thread(os.replace, temp_path, target_path)
    except Exception:
        await asyncio.to_thread(Path(temp_path).unlink, True)  # missing_ok=True
        raise

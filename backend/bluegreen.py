#!/usr/bin/env python3
"""
Blue-green deploy CLI with rollback

Command-line entry point:
    bluegreen init [--force] [--base-url URL] [--port N] [--path P] [--non-interactive]
    bluegreen deploy [--skip-build] [--dry-run]
    bluegreen rollback [--dry-run]
    bluegreen cleanup [--dry-run]
    bluegreen status

Fatal errors print a ✗ line to stderr and exit 1.
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from config import paths
from config.settings import AppConfig, setup_logging
from deployer.backup_manager import BackupManager
from deployer.docker_executor import DockerExecutor
from deployer.exceptions import ComposeFileMissing, DeployerError
from deployer.orchestrator import DeploymentOrchestrator
from deployer.state_lock import state_lock
from deployer.state_store import StateStore
from deployer.status import render_status
from deployer.template_manager import TemplateManager
from deployer.traffic_switch import TrafficSwitch

logger = logging.getLogger("bluegreen")


def build_executor() -> DockerExecutor:
    return DockerExecutor(
        compose_file=paths.COMPOSE_FILE,
        project_root=paths.PROJECT_ROOT,
        project_name=AppConfig.PROJECT_NAME,
        router_service=AppConfig.ROUTER_SERVICE,
        command_timeout=AppConfig.COMMAND_TIMEOUT,
    )


def build_orchestrator(executor: DockerExecutor) -> DeploymentOrchestrator:
    return DeploymentOrchestrator(
        store=StateStore(paths.STATE_FILE),
        executor=executor,
        traffic_switch=TrafficSwitch(executor, paths.BACKEND_CONF, AppConfig.SERVICE_PORT),
        backup_manager=BackupManager(executor, paths.IMAGES_DIR),
        lock_path=paths.LOCK_FILE,
    )


def prompt(question: str, default: str = "") -> str:
    suffix = f" ({default})" if default else ""
    answer = input(f"{question}{suffix}: ").strip()
    return answer or default


def require_compose_file() -> None:
    if not os.path.exists(paths.COMPOSE_FILE):
        raise ComposeFileMissing(paths.COMPOSE_FILE)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------

async def cmd_init(args) -> None:
    paths.ensure_deployer_dirs()
    store = StateStore(paths.STATE_FILE)

    with state_lock(paths.LOCK_FILE):
        state = await store.load()
        health = state.health

        if args.base_url is not None:
            health.base_address = args.base_url
        elif not args.non_interactive:
            health.base_address = prompt("Health base URL", health.base_address)

        if args.port is not None:
            health.port = args.port
        elif not args.non_interactive:
            while True:
                answer = prompt("Port", str(health.port))
                try:
                    health.port = int(answer)
                    break
                except ValueError:
                    print(f"Port must be a number, got {answer!r}")

        if args.path is not None:
            health.path = args.path
        elif not args.non_interactive:
            health.path = prompt("Path", health.path)

        if not health.path.startswith("/"):
            health.path = "/" + health.path

        manager = TemplateManager(AppConfig.SERVICE_PORT, AppConfig.ROUTER_SERVICE)
        written = await asyncio.to_thread(
            manager.scaffold, health, args.force, state.active_colour
        )
        for path in written:
            print(f"✓ {os.path.relpath(path, paths.PROJECT_ROOT)} ready")

        await store.save(state)

    print("Project initialised")


async def cmd_deploy(args) -> None:
    require_compose_file()
    orchestrator = build_orchestrator(build_executor())
    await orchestrator.deploy(skip_build=args.skip_build, dry_run=args.dry_run)


async def cmd_rollback(args) -> None:
    require_compose_file()
    orchestrator = build_orchestrator(build_executor())
    await orchestrator.rollback(dry_run=args.dry_run)


async def cmd_cleanup(args) -> None:
    if not os.path.isdir(paths.IMAGES_DIR):
        print("No images directory found")
        return

    orchestrator = build_orchestrator(build_executor())
    result = await orchestrator.cleanup(dry_run=args.dry_run)

    prefix = "(dry) " if result.dry_run else "✓ "
    print(
        f"{prefix}Cleanup complete. {len(result.valid)} valid, "
        f"{len(result.corrupted)} corrupted, {len(result.removed)} removed, "
        f"{len(result.pruned)} history entries pruned"
    )


async def cmd_status(args) -> None:
    state = await StateStore(paths.STATE_FILE).load()
    lines = await render_status(
        state,
        state_file=paths.STATE_FILE,
        compose_file=paths.COMPOSE_FILE,
        backend_conf=paths.BACKEND_CONF,
        executor=build_executor(),
    )
    print("\n".join(lines))


# ----------------------------------------------------------------------
# Argument parsing
# ----------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bluegreen",
        description="Blue-Green deploy CLI with rollback"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Echo logs to the console")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init = subparsers.add_parser("init", help="Bootstrap .deployer settings and sample compose/Dockerfile")
    init.add_argument("--force", action="store_true", help="Overwrite existing files")
    init.add_argument("--base-url", help="Health check base URL (e.g. http://localhost)")
    init.add_argument("--port", type=int, help="Health check port")
    init.add_argument("--path", help="Health check path (e.g. /health)")
    init.add_argument("--non-interactive", action="store_true", help="Do not prompt; keep current values")
    init.set_defaults(handler=cmd_init)

    deploy = subparsers.add_parser("deploy", help="Build new colour, verify health, switch traffic")
    deploy.add_argument("--skip-build", action="store_true", help="Reuse existing image")
    deploy.add_argument("--dry-run", action="store_true", help="Print actions without executing")
    deploy.set_defaults(handler=cmd_deploy)

    rollback = subparsers.add_parser("rollback", help="Rollback to previous healthy release")
    rollback.add_argument("--dry-run", action="store_true", help="Show actions without executing")
    rollback.set_defaults(handler=cmd_rollback)

    cleanup = subparsers.add_parser("cleanup", help="Remove corrupted image backups and prune history")
    cleanup.add_argument("--dry-run", action="store_true", help="Show actions without executing")
    cleanup.set_defaults(handler=cmd_cleanup)

    status = subparsers.add_parser("status", help="Show current deployment status and history")
    status.set_defaults(handler=cmd_status)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        AppConfig.validate()
        setup_logging(verbose=args.verbose)
        asyncio.run(args.handler(args))
    except DeployerError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"✗ {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("✗ Interrupted", file=sys.stderr)
        return 130
    except Exception as e:
        logger.exception(f"{args.command} failed unexpectedly")
        print(f"✗ {args.command} failed: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())

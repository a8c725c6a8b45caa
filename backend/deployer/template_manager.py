"""
Project scaffolding for `bluegreen init`.

Writes the files a project needs before its first deploy:

    Dockerfile                       image build (Node service template)
    docker-compose.deployer.yaml     blue + green services and the nginx router
    .deployer/default.conf           nginx server block proxying to app_backend
    .deployer/active_backend.conf    upstream descriptor naming the active colour

Existing files are left alone unless force=True.

Usage:
    manager = TemplateManager(service_port=4000, router_service="app")
    written = manager.scaffold(health, force=False)
"""

import logging
import os
from typing import Any, Dict, List

import yaml

from config import paths
from .state_store import HealthCheckConfig
from .traffic_switch import UPSTREAM_NAME, render_backend_descriptor
from .types import Colour

logger = logging.getLogger(__name__)

NETWORK_NAME = "deploynet"
ROUTER_IMAGE = "nginx:1.27-alpine"

DOCKERFILE_TEMPLATE = """\
FROM node:20-alpine
WORKDIR /usr/src/app
COPY package*.json ./
RUN npm ci --omit=dev
COPY . .
RUN npm run build
EXPOSE {port}
CMD ["node", "dist/main.js"]
"""

NGINX_DEFAULT_TEMPLATE = """\
server {{
    listen 80;
    server_name _;

    access_log /var/log/nginx/access.log;
    error_log /var/log/nginx/error.log;

    location / {{
        proxy_pass http://{upstream};
        proxy_set_header Host $host;
        proxy_set_header X-Real-IP $remote_addr;
        proxy_set_header X-Forwarded-For $proxy_add_x_forwarded_for;
        proxy_set_header X-Forwarded-Proto $scheme;
        proxy_http_version 1.1;
        proxy_set_header Upgrade $http_upgrade;
        proxy_set_header Connection 'upgrade';
        proxy_cache_bypass $http_upgrade;
    }}
}}
"""


class TemplateManager:
    """Renders and writes the scaffolding files."""

    def __init__(self, service_port: int = 4000, router_service: str = "app"):
        self.service_port = service_port
        self.router_service = router_service

    def render_compose(self, health: HealthCheckConfig) -> str:
        """Compose file with one profile per colour; the router joins both."""
        compose: Dict[str, Any] = {"services": {}}

        for colour in Colour:
            compose["services"][colour.value] = {
                "container_name": colour.value,
                "profiles": [colour.value],
                "build": {"context": ".", "dockerfile": "Dockerfile"},
                "env_file": ".env",
                "expose": [str(self.service_port)],
                "healthcheck": {
                    "test": [
                        "CMD", "wget", "-qO-",
                        f"http://localhost:{self.service_port}{health.path}"
                    ],
                    "interval": "20s",
                    "timeout": "5s",
                    "retries": 3,
                    "start_period": "5s",
                },
                "networks": [NETWORK_NAME],
            }

        compose["services"][self.router_service] = {
            "image": ROUTER_IMAGE,
            "container_name": self.router_service,
            "profiles": [colour.value for colour in Colour],
            "ports": ["80:80"],
            "volumes": [
                "./.deployer/default.conf:/etc/nginx/conf.d/default.conf:ro",
                "./.deployer/active_backend.conf:/etc/nginx/conf.d/active_backend.conf:ro",
            ],
            "healthcheck": {
                "test": ["CMD-SHELL", "curl -f http://localhost || exit 1"],
                "interval": "30s",
                "timeout": "10s",
                "retries": 3,
            },
            "networks": [NETWORK_NAME],
        }
        compose["networks"] = {NETWORK_NAME: {"driver": "bridge"}}

        return yaml.dump(compose, default_flow_style=False, sort_keys=False)

    def render_dockerfile(self) -> str:
        return DOCKERFILE_TEMPLATE.format(port=self.service_port)

    def render_nginx_default(self) -> str:
        return NGINX_DEFAULT_TEMPLATE.format(upstream=UPSTREAM_NAME)

    def scaffold(
        self,
        health: HealthCheckConfig,
        force: bool = False,
        active_colour: Colour = Colour.BLUE,
    ) -> List[str]:
        """
        Write every scaffolding file that is missing (all of them with force).

        The upstream descriptor names active_colour so re-running init on a
        live project never moves traffic.

        Returns:
            Paths that were written
        """
        paths.ensure_deployer_dirs()

        files = [
            (paths.DOCKERFILE, self.render_dockerfile()),
            (paths.COMPOSE_FILE, self.render_compose(health)),
            (paths.DEFAULT_CONF, self.render_nginx_default()),
            (paths.BACKEND_CONF, render_backend_descriptor(active_colour, self.service_port)),
        ]

        written = []
        for path, content in files:
            if os.path.exists(path) and not force:
                logger.info(f"Keeping existing {path}")
                continue
            with open(path, "w", encoding="utf-8") as f:
                f.write(content)
            logger.info(f"Wrote {path}")
            written.append(path)

        return written

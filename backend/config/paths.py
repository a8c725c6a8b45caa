"""
Centralized path configuration for the blue-green deployer
Ensures all modules use consistent paths under the project's .deployer directory
"""

import os

# Project being deployed - defaults to the directory the CLI is invoked from
PROJECT_ROOT = os.path.abspath(os.getenv('BLUEGREEN_PROJECT_ROOT', os.getcwd()))

# Deployer state directory - holds state, archives, proxy config and logs
DEPLOYER_DIR = os.getenv('BLUEGREEN_DEPLOYER_DIR', os.path.join(PROJECT_ROOT, '.deployer'))

# Persisted deployment state (human-editable JSON)
STATE_FILE = os.path.join(DEPLOYER_DIR, 'config.json')

# Saved images of decommissioned colours
IMAGES_DIR = os.path.join(DEPLOYER_DIR, 'images')

# Reverse proxy configuration
DEFAULT_CONF = os.path.join(DEPLOYER_DIR, 'default.conf')
BACKEND_CONF = os.path.join(DEPLOYER_DIR, 'active_backend.conf')

# Advisory lock held by state-mutating commands
LOCK_FILE = os.path.join(DEPLOYER_DIR, 'deployer.lock')

LOG_DIR = os.path.join(DEPLOYER_DIR, 'logs')

# Compose file and image build file written by `init`
COMPOSE_FILE = os.getenv(
    'BLUEGREEN_COMPOSE_FILE',
    os.path.join(PROJECT_ROOT, 'docker-compose.deployer.yaml')
)
DOCKERFILE = os.path.join(PROJECT_ROOT, 'Dockerfile')


def ensure_deployer_dirs():
    """Create deployer directories if they don't exist"""
    for directory in [DEPLOYER_DIR, IMAGES_DIR]:
        os.makedirs(directory, exist_ok=True)

"""
Configuration Management for the blue-green deployer
Centralizes all environment-based configuration and settings
"""

import os
import logging
from logging.handlers import RotatingFileHandler


def setup_logging(verbose: bool = False):
    """
    Configure application logging with rotation.

    Logs always go to the rotating file. The CLI prints its own progress
    lines, so the console handler is only attached with verbose=True.
    """
    from .paths import LOG_DIR

    os.makedirs(LOG_DIR, mode=0o700, exist_ok=True)

    root_logger = logging.getLogger()

    # Close and clear any existing handlers to ensure our logging configuration
    # is used and prevent file descriptor leaks
    for handler in root_logger.handlers[:]:
        handler.close()
        root_logger.removeHandler(handler)

    log_level = getattr(logging, AppConfig.LOG_LEVEL.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # Max 10MB per file, keep 14 backups
    file_handler = RotatingFileHandler(
        os.path.join(LOG_DIR, 'deployer.log'),
        maxBytes=10*1024*1024,  # 10MB
        backupCount=14,
        encoding='utf-8'
    )
    file_handler.setLevel(log_level)
    file_handler.setFormatter(formatter)

    root_logger.addHandler(file_handler)

    if verbose:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(log_level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # Docker SDK and httpx are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def _default_project_name() -> str:
    """Compose project name - compose derives it from the directory name"""
    from .paths import PROJECT_ROOT

    explicit = os.getenv('COMPOSE_PROJECT_NAME')
    if explicit:
        return explicit
    return os.path.basename(PROJECT_ROOT).lower()


class AppConfig:
    """Main application configuration"""

    # Compose project name, also the prefix of built image names
    PROJECT_NAME = os.getenv('BLUEGREEN_PROJECT_NAME') or _default_project_name()

    # Reverse proxy service (and container) name in the compose file
    ROUTER_SERVICE = os.getenv('BLUEGREEN_ROUTER_SERVICE', 'app')

    # Port each colour listens on inside the compose network
    SERVICE_PORT = int(os.getenv('BLUEGREEN_SERVICE_PORT', 4000))

    # Timeout for any single external command (build can be slow)
    COMMAND_TIMEOUT = int(os.getenv('BLUEGREEN_COMMAND_TIMEOUT', 1800))

    # Logging
    LOG_LEVEL = os.getenv('BLUEGREEN_LOG_LEVEL', 'INFO')

    @classmethod
    def validate(cls):
        """Validate configuration"""
        if cls.SERVICE_PORT < 1 or cls.SERVICE_PORT > 65535:
            raise ValueError(f"Invalid service port: {cls.SERVICE_PORT}")

        if cls.COMMAND_TIMEOUT < 1:
            raise ValueError(f"Command timeout must be positive: {cls.COMMAND_TIMEOUT}")

        return True

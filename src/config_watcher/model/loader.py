"""Configuration loading from a services document or legacy environment."""

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from config_watcher.errors import ConfigInvalid
from config_watcher.model.config import DEFAULT_LOCKFILE, AppConfig
from config_watcher.model.service import ServiceConfig, ServiceKind
from config_watcher.model.settings import GlobalSettings

logger = logging.getLogger("config_watcher.config")

SERVICES_CONFIG_ENV = "SERVICES_CONFIG"

# Legacy single-service defaults
LEGACY_DEFAULTS: dict[str, Any] = {
    "REPO_URL": "https://github.com/nuniesmith/nginx.git",
    "BRANCH": "main",
    "WATCH_INTERVAL": 300,
    "NGINX_CONTAINER_NAME": "nginx",
    "CONFIG_DIR": "/app/config",
    "USE_DOCKER_COMPOSE": True,
    "COMPOSE_FILE": "docker-compose.yml",
    "COMPOSE_DIR": "/app/config",
    "LOG_TAIL_LINES": 100,
    "NGINX_USER": "nginx",
    "NGINX_GROUP": "nginx",
    "WEB_ROOT": "/var/www/html",
}


def parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse an environment boolean: case-insensitive equality with "true"."""
    if value is None:
        return default
    return value.strip().lower() == "true"


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        location = ".".join(str(p) for p in err["loc"]) or "<root>"
        parts.append(f"{location}: {err['msg']}")
    return "; ".join(parts)


def default_nginx_service() -> ServiceConfig:
    """Built-in service used when a config document declares none."""
    return ServiceConfig(
        name="nginx",
        container_name="nginx_app",
        service_type=ServiceKind.NGINX,
        repo_url=LEGACY_DEFAULTS["REPO_URL"],
        branch="main",
        local_path=Path("/app/config/nginx"),
        restart_command="docker restart nginx_app",
        validation_command="docker exec nginx_app nginx -t",
        monitor_logs=True,
        permissions={"fix": True, "user": "nginx", "group": "nginx"},
    )


def read_config_document(path: Path) -> dict[str, Any]:
    """Read a services document (JSON, or YAML by extension)."""
    try:
        with path.open() as f:
            if path.suffix.lower() in (".yml", ".yaml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except OSError as e:
        raise ConfigInvalid(f"Failed to read services config file {path}: {e}") from e
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigInvalid(f"Failed to parse services config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigInvalid(f"Services config file {path} must contain an object")
    return data


def load_config_file(path: Path, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load a multi-service configuration document."""
    environ = os.environ if environ is None else environ
    data = read_config_document(path)

    unknown = set(data) - {"global_settings", "services"}
    if unknown:
        logger.warning("Ignoring unknown top-level keys in %s: %s", path, ", ".join(sorted(unknown)))

    services = data.get("services") or []
    if not services:
        logger.warning("No services defined in %s, adding default nginx service", path)

    try:
        config = AppConfig(
            global_settings=data.get("global_settings") or {},
            services=services or [default_nginx_service()],
            lockfile=environ.get("LOCKFILE") or DEFAULT_LOCKFILE,
            verbose=parse_bool(environ.get("VERBOSE")),
            ssh_private_key=environ.get("SSH_PRIVATE_KEY") or None,
        )
    except ValidationError as e:
        raise ConfigInvalid(f"Invalid services config {path}: {_format_validation_error(e)}") from e

    return config


def _env_int(environ: Mapping[str, str], key: str) -> int:
    value = environ.get(key)
    if value is None or value == "":
        return LEGACY_DEFAULTS[key]
    try:
        return int(value)
    except ValueError as e:
        raise ConfigInvalid(f"{key} must be an integer, got {value!r}") from e


def load_legacy_config(environ: Mapping[str, str] | None = None) -> AppConfig:
    """Build a single-service configuration from legacy environment variables."""
    environ = os.environ if environ is None else environ

    def env(key: str) -> str:
        return environ.get(key) or LEGACY_DEFAULTS[key]

    container = env("NGINX_CONTAINER_NAME")
    branch = env("BRANCH")
    use_compose = parse_bool(environ.get("USE_DOCKER_COMPOSE"), LEGACY_DEFAULTS["USE_DOCKER_COMPOSE"])
    auto_fix = parse_bool(environ.get("AUTO_FIX"))
    monitor_logs = parse_bool(environ.get("MONITOR_LOGS"), True)
    fix_permissions = parse_bool(environ.get("FIX_PERMISSIONS"), True)
    disable_restart = parse_bool(environ.get("DISABLE_RESTART"))

    try:
        settings = GlobalSettings(
            watch_interval=_env_int(environ, "WATCH_INTERVAL"),
            default_branch=branch,
            auto_fix=auto_fix,
            fix_permissions=fix_permissions,
            monitor_logs=monitor_logs,
            disable_restart=disable_restart,
            use_docker_compose=use_compose,
            default_compose_dir=env("COMPOSE_DIR"),
            default_compose_file=env("COMPOSE_FILE"),
        )
        service = ServiceConfig(
            name="nginx",
            container_name=container,
            service_type=ServiceKind.NGINX,
            repo_url=env("REPO_URL"),
            branch=branch,
            local_path=env("CONFIG_DIR"),
            use_docker_compose=use_compose,
            docker_compose_file=env("COMPOSE_FILE"),
            docker_compose_dir=env("COMPOSE_DIR"),
            restart_command=f"docker restart {container}",
            validation_command=f"docker exec {container} nginx -t",
            disable_restart=disable_restart,
            healthcheck_url=environ.get("HEALTHCHECK_URL") or None,
            auto_fix=auto_fix,
            monitor_logs=monitor_logs,
            log_tail_lines=_env_int(environ, "LOG_TAIL_LINES"),
            permissions={
                "fix": fix_permissions,
                "user": env("NGINX_USER"),
                "group": env("NGINX_GROUP"),
            },
            custom_settings={
                "web_root": env("WEB_ROOT"),
                "enable_dir_listing": parse_bool(environ.get("ENABLE_DIR_LISTING")),
            },
        )
        return AppConfig(
            global_settings=settings,
            services=[service],
            lockfile=environ.get("LOCKFILE") or DEFAULT_LOCKFILE,
            verbose=parse_bool(environ.get("VERBOSE")),
            ssh_private_key=environ.get("SSH_PRIVATE_KEY") or None,
        )
    except ValidationError as e:
        raise ConfigInvalid(f"Invalid legacy environment configuration: {_format_validation_error(e)}") from e


def load_config(path: Path | None = None, environ: Mapping[str, str] | None = None) -> AppConfig:
    """Load configuration, preferring a services document over legacy environment.

    Args:
        path: Explicit services document; defaults to $SERVICES_CONFIG
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Validated AppConfig

    Raises:
        ConfigInvalid: If the document or environment is invalid
    """
    environ = os.environ if environ is None else environ

    if path is None and environ.get(SERVICES_CONFIG_ENV):
        path = Path(environ[SERVICES_CONFIG_ENV])

    if path is not None:
        if path.exists():
            logger.info("Loading multi-service configuration from %s", path)
            return load_config_file(path, environ)
        logger.warning("Services config file %s not found, falling back to legacy config", path)

    logger.info("Loading legacy configuration from environment variables")
    return load_legacy_config(environ)

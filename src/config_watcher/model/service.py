"""Service definition models."""

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from config_watcher.model.settings import GlobalSettings

DEFAULT_WEB_ROOT = "/var/www/html"


class ServiceKind(str, Enum):
    """Built-in service types."""

    NGINX = "nginx"
    APACHE = "apache"
    GENERIC = "generic"


class CustomServiceType(BaseModel):
    """Custom service type, keyed by a registry tag: ``{"custom": "tag"}``."""

    model_config = ConfigDict(frozen=True)

    custom: str = Field(min_length=1)


class Permissions(BaseModel):
    """File ownership policy for a service."""

    model_config = ConfigDict(frozen=True)

    fix: bool = Field(default=True)
    user: str
    group: str


class ServiceConfig(BaseModel):
    """Description of one reconciled service."""

    model_config = ConfigDict(frozen=True)

    # Identity
    name: str = Field(min_length=1)
    container_name: str = Field(min_length=1)
    service_type: ServiceKind | CustomServiceType = Field(default=ServiceKind.GENERIC)

    # Source
    repo_url: str = Field(min_length=1)
    branch: str | None = Field(default=None)
    local_path: Path

    # Runtime binding
    use_docker_compose: bool | None = Field(default=None)
    docker_compose_file: str | None = Field(default=None)
    docker_compose_dir: Path | None = Field(default=None)
    restart_command: str | None = Field(default=None)
    validation_command: str | None = Field(default=None)

    # Behavior overrides (None falls back to global settings)
    disable_restart: bool | None = Field(default=None)
    auto_fix: bool | None = Field(default=None)
    monitor_logs: bool | None = Field(default=None)
    healthcheck_url: str | None = Field(default=None)
    log_tail_lines: int = Field(default=100, ge=1)

    permissions: Permissions | None = Field(default=None)

    # Service-type specific extras (web_root, enable_dir_listing, ...)
    custom_settings: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def collect_custom_settings(cls, data: Any) -> Any:
        """Move unknown keys into custom_settings."""
        if not isinstance(data, dict):
            return data
        known = set(cls.model_fields)
        extras = {k: v for k, v in data.items() if k not in known}
        if not extras:
            return data
        data = {k: v for k, v in data.items() if k in known}
        data["custom_settings"] = {**extras, **(data.get("custom_settings") or {})}
        return data

    @field_validator("service_type", mode="before")
    @classmethod
    def normalize_service_type(cls, v: Any) -> Any:
        """Accept service type tags case-insensitively."""
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def type_tag(self) -> str:
        """Lowercase tag of the service type (the registry key for custom types)."""
        if isinstance(self.service_type, CustomServiceType):
            return self.service_type.custom
        return self.service_type.value

    @property
    def is_custom(self) -> bool:
        return isinstance(self.service_type, CustomServiceType)

    @property
    def web_root(self) -> str:
        return str(self.custom_settings.get("web_root") or DEFAULT_WEB_ROOT)

    @property
    def enable_dir_listing(self) -> bool:
        value = self.custom_settings.get("enable_dir_listing", False)
        if isinstance(value, str):
            return value.lower() == "true"
        return bool(value)

    # Effective options

    def effective_branch(self, settings: GlobalSettings) -> str:
        return self.branch or settings.default_branch

    def effective_auto_fix(self, settings: GlobalSettings) -> bool:
        return settings.auto_fix if self.auto_fix is None else self.auto_fix

    def effective_monitor_logs(self, settings: GlobalSettings) -> bool:
        return settings.monitor_logs if self.monitor_logs is None else self.monitor_logs

    def effective_disable_restart(self, settings: GlobalSettings) -> bool:
        return settings.disable_restart if self.disable_restart is None else self.disable_restart

    def effective_use_docker_compose(self, settings: GlobalSettings) -> bool:
        if self.use_docker_compose is None:
            return settings.use_docker_compose
        return self.use_docker_compose

    def effective_fix_permissions(self, settings: GlobalSettings) -> bool:
        if self.permissions is None:
            return settings.fix_permissions
        return self.permissions.fix

    def compose_dir(self, settings: GlobalSettings) -> Path | None:
        """Compose project directory: service, then global default, then local_path."""
        if self.docker_compose_dir is not None:
            return self.docker_compose_dir
        if settings.default_compose_dir is not None:
            return settings.default_compose_dir
        if self.local_path.is_dir():
            return self.local_path
        return None

    def compose_file(self, settings: GlobalSettings) -> str | None:
        return self.docker_compose_file or settings.default_compose_file

    def restart_target_defined(self, settings: GlobalSettings) -> bool:
        """Check whether the restart phase of this service is defined."""
        if self.effective_disable_restart(settings):
            return True
        if self.restart_command:
            return True
        if self.effective_use_docker_compose(settings) and self.docker_compose_dir is not None:
            return True
        return settings.default_compose_dir is not None

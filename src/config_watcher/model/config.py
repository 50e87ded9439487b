"""Top-level watcher configuration model."""

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, model_validator

from config_watcher.model.service import ServiceConfig
from config_watcher.model.settings import GlobalSettings

DEFAULT_LOCKFILE = Path("/var/run/config_watcher.lock")


def _paths_overlap(a: Path, b: Path) -> bool:
    a, b = a.resolve(), b.resolve()
    return a == b or a in b.parents or b in a.parents


class AppConfig(BaseModel):
    """Complete watcher configuration: global settings plus services."""

    global_settings: GlobalSettings = Field(default_factory=GlobalSettings)
    services: list[ServiceConfig] = Field(default_factory=list)
    lockfile: Path = Field(default=DEFAULT_LOCKFILE)
    verbose: bool = Field(default=False)
    ssh_private_key: SecretStr | None = Field(default=None)

    @model_validator(mode="after")
    def validate_services(self) -> "AppConfig":
        """Validate cross-service constraints."""
        names: set[str] = set()
        containers: dict[str, str] = {}

        for service in self.services:
            if service.name in names:
                msg = f"Duplicate service name: {service.name}"
                raise ValueError(msg)
            names.add(service.name)

            other = containers.get(service.container_name)
            if other is not None:
                msg = f"Services '{other}' and '{service.name}' both manage container '{service.container_name}'"
                raise ValueError(msg)
            containers[service.container_name] = service.name

        for i, first in enumerate(self.services):
            for second in self.services[i + 1 :]:
                if _paths_overlap(first.local_path, second.local_path):
                    msg = (
                        f"Services '{first.name}' and '{second.name}' have overlapping local paths: "
                        f"{first.local_path} and {second.local_path}"
                    )
                    raise ValueError(msg)

        return self

    def service(self, name: str) -> ServiceConfig:
        """Look up a service by name."""
        for service in self.services:
            if service.name == name:
                return service
        raise KeyError(name)

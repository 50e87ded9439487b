"""Process-wide default settings."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config_watcher.utils.duration import parse_duration


class GlobalSettings(BaseModel):
    """Defaults applied to every service unless overridden."""

    model_config = ConfigDict(frozen=True)

    watch_interval: int = Field(default=60, ge=1)
    default_branch: str = Field(default="main", min_length=1)
    auto_fix: bool = Field(default=False)
    fix_permissions: bool = Field(default=True)
    monitor_logs: bool = Field(default=True)
    disable_restart: bool = Field(default=False)
    use_docker_compose: bool = Field(default=False)
    default_compose_dir: Path | None = Field(default=Path("/app/config"))
    default_compose_file: str | None = Field(default="docker-compose.yml")
    startup_grace_period: str = Field(default="30s")

    @field_validator("startup_grace_period", mode="before")
    @classmethod
    def validate_grace_period(cls, v: str | int) -> str:
        """Validate the duration literal grammar."""
        parse_duration(v)
        return str(v)

    @property
    def grace_seconds(self) -> int:
        return parse_duration(self.startup_grace_period)

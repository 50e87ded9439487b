"""Service-type policies: validate, fix_issues, restart and scan_logs per type."""

from collections.abc import Callable
from dataclasses import dataclass
from types import ModuleType

from config_watcher.model.service import CustomServiceType, ServiceKind
from config_watcher.policies.base import LogScanResult, ServiceContext


@dataclass(frozen=True)
class ServicePolicy:
    """Dispatch table of the four capabilities of a service type."""

    validate: Callable[[ServiceContext], None]
    fix_issues: Callable[[ServiceContext], None]
    restart: Callable[[ServiceContext], None]
    scan_logs: Callable[[ServiceContext], LogScanResult | None]
    requirements: Callable[[ServiceContext], list[str]] | None = None

    @classmethod
    def from_module(cls, module: ModuleType) -> "ServicePolicy":
        return cls(
            validate=module.validate,
            fix_issues=module.fix_issues,
            restart=module.restart,
            scan_logs=module.scan_logs,
            requirements=getattr(module, "requirements", None),
        )


# Policies for custom(tag) service types
_custom_policies: dict[str, ServicePolicy] = {}


def register_policy(tag: str, policy: ServicePolicy) -> None:
    """Register a policy for ``{"custom": tag}`` services."""
    _custom_policies[tag] = policy


def unregister_policy(tag: str) -> None:
    _custom_policies.pop(tag, None)


def get_policy(service_type: ServiceKind | CustomServiceType | str) -> ServicePolicy:
    """Get the policy for a service type.

    Args:
        service_type: Built-in kind, custom type, or built-in tag string

    Returns:
        ServicePolicy with validate, fix_issues, restart, scan_logs functions
    """
    if isinstance(service_type, CustomServiceType):
        registered = _custom_policies.get(service_type.custom)
        if registered is not None:
            return registered
        from config_watcher.policies import custom

        return ServicePolicy.from_module(custom)

    # Normalize to enum if string
    if isinstance(service_type, str):
        service_type = ServiceKind(service_type)

    if service_type == ServiceKind.NGINX:
        from config_watcher.policies import nginx

        return ServicePolicy.from_module(nginx)
    elif service_type == ServiceKind.APACHE:
        from config_watcher.policies import apache

        return ServicePolicy.from_module(apache)
    else:
        from config_watcher.policies import generic

        return ServicePolicy.from_module(generic)


__all__ = [
    "LogScanResult",
    "ServiceContext",
    "ServicePolicy",
    "get_policy",
    "register_policy",
    "unregister_policy",
]

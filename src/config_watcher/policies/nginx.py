"""Nginx service policy: config checks, auto-fixes and log scanning."""

import re
from pathlib import Path

from config_watcher.errors import ValidationFailed
from config_watcher.policies.base import (
    ServiceContext,
    run_validation_command,
    runtime_restart,
    scan_error_lines,
)
from config_watcher.utils.cmd import tail_text
from config_watcher.utils.docker import ContainerStatus
from config_watcher.utils.permissions import PLACEHOLDER_INDEX

# Directives start a line or follow another statement on the same line
ROOT_DIRECTIVE = re.compile(r"(?:^|(?<=[;{}]))\s*root\s+([^;]+);", re.MULTILINE)
LOCATION_BLOCK = re.compile(r"((?:^|(?<=[;{}]))[ \t]*)(location\b[^{;]*\{)", re.MULTILINE)

SECURITY_HEADERS = (
    'add_header X-Content-Type-Options "nosniff";',
    'add_header X-Frame-Options "SAMEORIGIN";',
    'add_header X-XSS-Protection "1; mode=block";',
)


def find_nginx_configs(directory: Path) -> list[Path]:
    """All ``*.conf`` files under a directory, skipping the .git tree."""
    if not directory.is_dir():
        return []
    return sorted(p for p in directory.rglob("*.conf") if p.is_file() and ".git" not in p.parts)


def root_directories(content: str, base: Path) -> list[Path]:
    """Static ``root`` directories of a config; variable roots are skipped.

    Relative roots resolve against ``base``.
    """
    roots = []
    for match in ROOT_DIRECTIVE.finditer(content):
        value = match.group(1).strip().strip("\"'")
        if not value or "$" in value:
            continue
        path = Path(value)
        roots.append(path if path.is_absolute() else base / path)
    return roots


def has_index(directory: Path) -> bool:
    return any(entry.name.startswith("index.") for entry in directory.iterdir())


def ensure_index(directory: Path) -> bool:
    """Create the directory and a placeholder index.html if none exists.

    Returns:
        True if an index file was written
    """
    directory.mkdir(parents=True, exist_ok=True)
    if has_index(directory):
        return False
    (directory / "index.html").write_text(PLACEHOLDER_INDEX)
    return True


def enable_autoindex(content: str) -> str:
    return content.replace("autoindex off;", "autoindex on;")


def inject_security_headers(content: str) -> str:
    """Add security headers to each location block unless already configured."""
    if "X-Content-Type-Options" in content:
        return content

    def _insert(match: re.Match) -> str:
        indent = match.group(1)
        inner = indent + "    "
        headers = "".join(f"\n{inner}{header}" for header in SECURITY_HEADERS)
        return f"{indent}{match.group(2)}{headers}"

    return LOCATION_BLOCK.sub(_insert, content)


def check_configs(ctx: ServiceContext) -> list[str]:
    """Static checks on the worktree's Nginx configs; returns warnings."""
    local_path = ctx.service.local_path
    configs = find_nginx_configs(local_path)
    warnings = []

    if not configs:
        warnings.append(f"No Nginx configuration files found in {local_path}")
        return warnings

    ctx.log.info("Found %d Nginx configuration files", len(configs))
    for config in configs:
        content = config.read_text()
        if "deny all" in content:
            warnings.append(f"Found 'deny all' directive in {config} that might cause 403 errors")
        for root in root_directories(content, local_path):
            if root.is_dir() and not has_index(root):
                warnings.append(f"Directory {root} exists but has no index.* files, which may cause 403 errors")

    return warnings


def validate(ctx: ServiceContext) -> None:
    """Validate with validation_command, else ``nginx -t`` in the container.

    Raises:
        ValidationFailed: If the configuration test fails
    """
    for warning in check_configs(ctx):
        ctx.log.warning(warning)

    if ctx.service.validation_command:
        run_validation_command(ctx)
        return

    container = ctx.service.container_name
    if ctx.runtime.status(container) != ContainerStatus.RUNNING:
        ctx.log.warning("Container %s is not running, skipping in-container nginx -t", container)
        return

    ctx.log.info("Validating Nginx configuration with nginx -t")
    result = ctx.runtime.exec(container, "nginx -t")
    if result.returncode != 0:
        raise ValidationFailed(f"nginx -t failed: {tail_text(result.stderr or result.stdout)}")
    ctx.log.info("Validation successful")


def fix_issues(ctx: ServiceContext) -> None:
    """Create missing root dirs and index files, toggle autoindex, add headers."""
    ctx.log.info("Attempting to fix common Nginx configuration issues")
    local_path = ctx.service.local_path
    dir_listing = ctx.service.enable_dir_listing

    if dir_listing:
        ctx.log.warning("Directory listing (autoindex) is enabled - this may expose sensitive files")

    for config in find_nginx_configs(local_path):
        content = config.read_text()

        for root in root_directories(content, local_path):
            if ensure_index(root):
                ctx.log.info("Created default index.html in %s", root)

        updated = content
        if dir_listing:
            updated = enable_autoindex(updated)
        updated = inject_security_headers(updated)

        if updated != content:
            config.write_text(updated)
            ctx.log.info("Updated %s", config)


restart = runtime_restart
scan_logs = scan_error_lines

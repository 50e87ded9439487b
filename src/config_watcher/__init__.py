"""Git-driven configuration watcher for containerized services."""

__version__ = "1.0.0"

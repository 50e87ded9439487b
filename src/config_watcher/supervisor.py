"""Process supervisor: lockfile, credentials, one loop thread per service."""

import logging
import signal
import threading
from collections.abc import Callable
from pathlib import Path

from config_watcher.errors import WatcherError
from config_watcher.model.config import AppConfig
from config_watcher.model.service import ServiceConfig
from config_watcher.model.state import Phase
from config_watcher.reconcile import ReconciliationLoop
from config_watcher.utils.docker import DockerRuntime
from config_watcher.utils.lockfile import acquire_lock, release_lock
from config_watcher.utils.ssh import setup_ssh_key

logger = logging.getLogger("config_watcher.supervisor")

LoopFactory = Callable[[ServiceConfig, threading.Event], ReconciliationLoop]

# Seconds between checks that loop threads are still alive
JOIN_POLL_INTERVAL = 1.0


class Supervisor:
    """Runs every configured service's reconciliation loop until shutdown.

    A failing or aborted loop never stops the others. SIGINT and SIGTERM
    set the shared shutdown event; loops finish their current phase and
    exit, then the lockfile is released.
    """

    def __init__(
        self,
        config: AppConfig,
        loop_factory: LoopFactory | None = None,
        install_signals: bool = True,
    ) -> None:
        self.config = config
        self.shutdown = threading.Event()
        self.install_signals = install_signals
        self.loop_factory = loop_factory or self._default_loop
        self.loops: list[ReconciliationLoop] = []
        self.results: dict[str, Phase] = {}
        self._runtime = DockerRuntime()
        self._ssh_key: Path | None = None

    def _default_loop(self, service: ServiceConfig, shutdown: threading.Event) -> ReconciliationLoop:
        return ReconciliationLoop(
            service,
            self.config.global_settings,
            shutdown=shutdown,
            runtime=self._runtime,
            ssh_key=self._ssh_key,
        )

    def request_shutdown(self, signum: int | None = None, frame=None) -> None:
        if signum is not None:
            logger.info("Received %s, shutting down", signal.Signals(signum).name)
        self.shutdown.set()

    def _install_signal_handlers(self) -> dict[int, object]:
        previous = {}
        if not self.install_signals or threading.current_thread() is not threading.main_thread():
            return previous
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, self.request_shutdown)
        return previous

    def _setup_ssh(self) -> None:
        key = self.config.ssh_private_key
        if key is None or not key.get_secret_value().strip():
            return
        self._ssh_key = setup_ssh_key(key.get_secret_value())

    def _run_loop(self, loop: ReconciliationLoop) -> None:
        name = loop.service.name
        try:
            self.results[name] = loop.run()
        except Exception:
            logger.exception("Reconciliation loop for %s crashed", name)
            self.results[name] = Phase.ABORTED

        if self.results[name] == Phase.ABORTED:
            logger.error("Service %s is no longer reconciled: %s", name, loop.state.last_error)

    def _start_loops(self) -> list[threading.Thread]:
        threads = []
        for service in self.config.services:
            loop = self.loop_factory(service, self.shutdown)
            self.loops.append(loop)
            thread = threading.Thread(
                target=self._run_loop,
                args=(loop,),
                name=f"reconcile-{service.name}",
                daemon=True,
            )
            thread.start()
            threads.append(thread)
            logger.info("Started monitoring thread for %s", service.name)
        return threads

    def run(self) -> int:
        """Run until shutdown.

        Returns:
            Process exit code: 0, or 1 if every loop aborted

        Raises:
            LockfileHeld: If another watcher instance is running
        """
        lockfile = self.config.lockfile
        acquire_lock(lockfile)
        previous_handlers = self._install_signal_handlers()

        try:
            try:
                self._setup_ssh()
            except (OSError, ValueError, WatcherError) as e:
                logger.error("SSH setup failed, continuing without a key: %s", e)

            logger.info("Supervising %d service(s)", len(self.config.services))
            threads = self._start_loops()

            # Timed joins keep the main thread responsive to signals
            while any(t.is_alive() for t in threads):
                for thread in threads:
                    thread.join(JOIN_POLL_INTERVAL)
            self.shutdown.set()
        finally:
            for signum, handler in previous_handlers.items():
                signal.signal(signum, handler)
            release_lock(lockfile)

        if self.results and all(phase == Phase.ABORTED for phase in self.results.values()):
            logger.error("All service loops aborted")
            return 1

        logger.info("Shutdown complete")
        return 0

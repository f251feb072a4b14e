"""
Process supervision for the blogwatch daemon.

The ProcessSupervisor owns the two concurrently running units:

    main process      ChangeSource -> PublishCoordinator (blocking watch loop)
    receiver process  gunicorn serving the webmention receiver (optional)

Lifecycle:

    IDLE --run()--> RUNNING --request_stop()--> TERMINATING --> STOPPED

Signals set the supervisor's stop event and send SIGTERM to the receiver.
The watch loop checks the event at the top of every iteration and before
handling a batch; the coordinator checks it before each document's
delivery. No new work starts once termination has begun. The receiver
process is always stopped before the watcher and before ``run`` returns.
"""

import logging
import multiprocessing
import os
import signal
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional

from gunicorn.app.base import BaseApplication

from blogwatch.errors import WatchError

logger = logging.getLogger(__name__)

GUNICORN_CONFIG_PATH = os.path.join(os.path.dirname(__file__), "..", "receiver", "gunicorn_config.py")

STOP_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGTERM", "SIGINT", "SIGHUP") if hasattr(signal, name)
)


class SupervisorState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    TERMINATING = "terminating"
    STOPPED = "stopped"


class StandaloneApplication(BaseApplication):
    """Gunicorn application embedding the receiver's Flask app."""

    def __init__(self, app, options=None):
        self.options = options or {}
        self.application = app
        super().__init__()

    def load_config(self):
        config_file = self.options.get("config")
        if config_file:
            self.cfg.set("config", config_file)
            with open(config_file, "r") as f:
                config_code = f.read()
            config_namespace = {}
            exec(config_code, config_namespace)
            for key, value in config_namespace.items():
                if key in self.cfg.settings and value is not None:
                    self.cfg.set(key.lower(), value)

        for key in ("bind", "workers"):
            if self.options.get(key) is not None:
                self.cfg.set(key, self.options[key])

        if self.options.get("debug"):
            self.cfg.set("loglevel", "debug")
            self.cfg.set("timeout", 0)

    def load(self):
        return self.application


def run_receiver(config: Dict[str, Any], invalidation_signal, debug: bool = False) -> None:
    """Serve the webmention receiver with gunicorn; runs in the receiver process.

    Args:
        config: Application configuration
        invalidation_signal: InvalidationSignal shared with the watch loop
        debug: Verbose logging and no worker timeout
    """
    from publish.documents import PublishedDocumentIndex
    from receiver import NotificationQueue, create_app

    index = PublishedDocumentIndex.from_config(config, invalidation_signal)
    queue = NotificationQueue.from_config(config)
    app = create_app(config, index, queue)

    receiver_config = config.get("webmention_receiver", {})
    options = {
        "config": GUNICORN_CONFIG_PATH,
        "bind": f"{receiver_config.get('host', '0.0.0.0')}:{receiver_config.get('port', 5000)}",
        "workers": int(receiver_config.get("workers", 1)),
        "debug": debug,
    }
    StandaloneApplication(app, options).run()


class ReceiverProcess:
    """Owned handle on the receiver's OS process.

    Args:
        target: Callable run in the child process
        args: Positional arguments for ``target``; must be picklable
        name: Process name shown in logs
    """

    def __init__(self, target: Callable[..., Any], args: tuple = (), name: str = "webmention-receiver"):
        self.target = target
        self.args = args
        self.name = name
        self._process: Optional[multiprocessing.Process] = None

    @classmethod
    def for_config(cls, config: Dict[str, Any], invalidation_signal, debug: bool = False) -> "ReceiverProcess":
        return cls(run_receiver, args=(config, invalidation_signal, debug))

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def exitcode(self) -> Optional[int]:
        return self._process.exitcode if self._process else None

    def is_alive(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def start(self) -> None:
        if self.is_alive():
            logger.warning("Receiver process is already running")
            return
        self._process = multiprocessing.Process(target=self.target, args=self.args, name=self.name)
        self._process.start()
        logger.info(f"Started receiver process (pid {self._process.pid})")

    def request_stop(self) -> None:
        """Send SIGTERM without waiting; safe to call from a signal handler."""
        process = self._process
        if process is not None and process.is_alive():
            process.terminate()

    def stop(self, timeout: float = 10.0) -> None:
        """Terminate the process, escalating to SIGKILL after ``timeout`` seconds."""
        process = self._process
        if process is None:
            return
        if process.is_alive():
            logger.info(f"Stopping receiver process (pid {process.pid})")
            process.terminate()
            process.join(timeout)
            if process.is_alive():
                logger.warning(f"Receiver process did not exit within {timeout}s, killing it")
                process.kill()
                process.join()
        else:
            process.join()
        logger.info(f"Receiver process exited with code {process.exitcode}")


class ProcessSupervisor:
    """Runs the watch loop and owns the receiver process.

    Args:
        change_source: ChangeSource (``start``, ``stop``, ``next_batch``)
        coordinator: PublishCoordinator (``handle_batch``)
        receiver: Optional ReceiverProcess
        stop_event: Cancellation channel; a new Event if None
        poll_interval: Seconds between stop-event checks while idle
    """

    def __init__(
        self,
        change_source,
        coordinator,
        receiver: Optional[ReceiverProcess] = None,
        stop_event: Optional[threading.Event] = None,
        poll_interval: float = 1.0,
    ):
        self.change_source = change_source
        self.coordinator = coordinator
        self.receiver = receiver
        self.stop_event = stop_event or threading.Event()
        self.poll_interval = poll_interval
        self.state = SupervisorState.IDLE
        self._receiver_exit_reported = False

    def request_stop(self, signum=None, frame=None) -> None:
        """Begin shutdown; usable directly as a signal handler.

        The receiver is asked to terminate right away; ``run`` still waits
        for it (and kills it if needed) before returning.
        """
        if signum is not None:
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
        self.stop_event.set()
        if self.receiver is not None and self.state is SupervisorState.RUNNING:
            self.receiver.request_stop()

    def install_signal_handlers(self) -> None:
        for signum in STOP_SIGNALS:
            signal.signal(signum, self.request_stop)

    def run(self) -> int:
        """Run until stopped.

        Returns:
            0 after a requested shutdown, 1 if startup failed
        """
        if self.state is not SupervisorState.IDLE:
            raise RuntimeError(f"Supervisor cannot run from state {self.state.value}")

        try:
            self.change_source.start()
        except WatchError as e:
            logger.error(f"Cannot start watching: {e}")
            self.state = SupervisorState.STOPPED
            return 1

        if self.receiver is not None:
            try:
                self.receiver.start()
            except OSError as e:
                logger.error(f"Cannot start receiver process: {e}")
                self.change_source.stop()
                self.state = SupervisorState.STOPPED
                return 1

        self.state = SupervisorState.RUNNING
        logger.info("Watch loop running")
        try:
            self._watch_loop()
        finally:
            self._terminate()
        return 0

    def _watch_loop(self) -> None:
        while not self.stop_event.is_set():
            batch = self.change_source.next_batch(timeout=self.poll_interval)
            if self.stop_event.is_set():
                break
            self._check_receiver()
            if not batch:
                continue
            try:
                self.coordinator.handle_batch(batch, stop_event=self.stop_event)
            except Exception as e:
                logger.error(f"Failed to process change batch: {e}", exc_info=True)

    def _check_receiver(self) -> None:
        if self.receiver is None or self._receiver_exit_reported:
            return
        if self.receiver.exitcode is not None:
            logger.error(f"Receiver process exited unexpectedly with code {self.receiver.exitcode}")
            self._receiver_exit_reported = True

    def _terminate(self) -> None:
        self.state = SupervisorState.TERMINATING
        logger.info("Terminating")
        try:
            if self.receiver is not None:
                self.receiver.stop()
        finally:
            self.change_source.stop()
            self.state = SupervisorState.STOPPED
            logger.info("Stopped")

import os
import sys
import enum
import signal
import logging
import threading
from pathlib import Path
from typing import Dict, Optional

from dkn_launcher import settings
from dkn_launcher.local import env_store
from dkn_launcher.local.console import exit_with_delay
from dkn_launcher.local.exceptions import DownloadError, EnvFileError, ProcessStartError, ProcessStopError, ReleaseError
from dkn_launcher.local.external import BinaryInstaller, ReleaseChannel, ReleaseResolver
from dkn_launcher.local.external.installer import make_executable
from dkn_launcher.local.supervisor.background_tasks import LivenessMonitor, start_liveness_monitor
from dkn_launcher.local.supervisor.process_utils import ChildProcess, ProcessControl, get_process_control

log = logging.getLogger(__name__)

VERSION_KEY = "DKN_COMPUTE_VERSION"


class SupervisorState(enum.Enum):
    STARTING = "starting"
    RUNNING = "running"
    UPDATING = "updating"
    CRASHED = "crashed"
    STOPPED = "stopped"


def _raise_keyboard_interrupt(signum, frame):
    raise KeyboardInterrupt


class ComputeSupervisor:
    """
    Runs the compute node binary and keeps it up to date.

    In foreground mode the main thread polls the release index every
    `update_interval` seconds while a `LivenessMonitor` thread probes the
    child every `liveness_interval` seconds. A new release is downloaded
    next to the live binary, the monitor is cancelled, the child is stopped,
    the binary swapped and the child restarted. If the child dies on its own
    the launcher exits with code 0. In background mode the child is only
    started and the launcher returns.
    """

    def __init__(
        self,
        config: Dict[str, str],
        env_path: Path,
        working_dir: Path,
        resolver: ReleaseResolver,
        installer: BinaryInstaller,
        process_control: Optional[ProcessControl] = None,
        channel: ReleaseChannel = ReleaseChannel.LATEST,
        binary_name: str = settings.COMPUTE_BINARY_NAME,
        background: bool = False,
        verbose: bool = False,
        liveness_interval: float = settings.LIVENESS_CHECK_INTERVAL,
        update_interval: float = settings.UPDATE_CHECK_INTERVAL,
        graceful_stop_timeout: float = settings.GRACEFUL_STOP_TIMEOUT,
        exit_delay: float = settings.EXIT_DELAY_SECONDS,
    ) -> None:
        self.config = config
        self.env_path = env_path
        self.working_dir = working_dir
        self.resolver = resolver
        self.installer = installer
        self.process_control = process_control or get_process_control()
        self.channel = channel
        self.binary_name = binary_name
        self.background = background
        self.verbose = verbose
        self.liveness_interval = liveness_interval
        self.update_interval = update_interval
        self.graceful_stop_timeout = graceful_stop_timeout
        self.exit_delay = exit_delay

        self.state: Optional[SupervisorState] = None
        self.child: Optional[ChildProcess] = None
        self.monitor: Optional[LivenessMonitor] = None
        self.child_exited = threading.Event()
        self._fatal_pending = False

    @property
    def binary_path(self) -> Path:
        return self.working_dir / self.binary_name

    @property
    def temp_binary_path(self) -> Path:
        return self.working_dir / f"{settings.TEMP_BINARY_PREFIX}{self.binary_name}"

    @property
    def log_path(self) -> Path:
        return self.working_dir / settings.BACKGROUND_LOG_FILE_NAME

    def _set_state(self, state: SupervisorState) -> None:
        log.debug(f"Supervisor state: {self.state.value if self.state else None} -> {state.value}")
        self.state = state

    def _fatal(self, message: str) -> None:
        self._fatal_pending = True
        log.critical(message)
        exit_with_delay(1, self.exit_delay)

    def _crashed(self) -> None:
        self._set_state(SupervisorState.CRASHED)
        pid = self.child.pid if self.child else None
        log.info(f"Compute node (PID: {pid}) is not running anymore, exiting the launcher.")
        sys.exit(0)

    #* --- Lifecycle ---
    def run(self) -> None:
        """Runs the supervisor in the mode it was configured with."""
        if self.background:
            self.run_background()
        else:
            self.run_foreground()

    def start_child(self) -> ChildProcess:
        """STARTING: spawns the binary with the configuration as its environment."""
        self._set_state(SupervisorState.STARTING)
        env = dict(os.environ)
        env.update(self.config)
        try:
            self.child = self.process_control.spawn(
                [str(self.binary_path)],
                cwd=self.working_dir,
                env=env,
                log_path=self.log_path if self.background else None,
            )
        except ProcessStartError as e:
            self._fatal(f"ERROR during running exe, {e}")
        return self.child

    def run_background(self) -> ChildProcess:
        """Starts the node detached and returns; no liveness or update checks run."""
        log.info("\nStarting in BACKGROUND mode...\n")
        child = self.start_child()
        self._set_state(SupervisorState.RUNNING)
        log.info(f"All good! Compute node is up and running with PID: {child.pid}")
        log.info(f"You can check the logs from {self.log_path}")
        log.info(f"For stopping the background node you can run the following command: {self.process_control.stop_hint(child.pid)}")
        return child

    def run_foreground(self) -> None:
        """
        Runs the node and supervises it until it dies, the user interrupts, or a fatal error occurs.
        Never returns normally: every path ends in SystemExit.
        """
        log.info("\nStarting in FOREGROUND mode...")
        previous_handler = None
        if threading.current_thread() is threading.main_thread():
            previous_handler = signal.signal(signal.SIGTERM, _raise_keyboard_interrupt)
        try:
            while True:
                child = self.start_child()
                log.info(f"Compute node started with pid: {child.pid}")
                self._start_monitoring(child)
                self._set_state(SupervisorState.RUNNING)
                self.watch_for_updates()
        except KeyboardInterrupt:
            if self._fatal_pending:
                # Interrupted during the exit delay of a fatal error.
                sys.exit(1)
            self.shutdown()
        finally:
            if previous_handler is not None:
                signal.signal(signal.SIGTERM, previous_handler)

    def _start_monitoring(self, child: ChildProcess) -> None:
        self.child_exited.clear()
        self.monitor = start_liveness_monitor(self, child)

    def _cancel_monitoring(self) -> bool:
        """Cancels and joins the current monitor; returns True if it had already reported the child's exit."""
        if self.monitor is None:
            return False
        reported = self.monitor.cancel()
        self.monitor = None
        return reported

    def watch_for_updates(self) -> None:
        """
        RUNNING: checks for a new release every `update_interval` seconds.
        Returns once an update has been applied; exits the launcher if the child dies.
        """
        while True:
            if self.child_exited.wait(self.update_interval):
                self._crashed()
            if self.check_for_update():
                return

    def check_for_update(self) -> bool:
        """
        Runs one update check.

        :return: True if a new binary was installed and the child must be restarted.
        """
        current = self.config.get(VERSION_KEY, "")
        try:
            is_new, newest = self.resolver.newest_version(current, self.channel)
        except ReleaseError as e:
            log.warning(f"Couldn't check for a new compute-node version: {e}. Will check again later.")
            return False

        if not is_new:
            if self.verbose:
                log.info("No new compute-node version detected, will check again in an hour.")
            return False
        return self.apply_update(newest)

    def apply_update(self, version: str) -> bool:
        """
        UPDATING: download, stop, swap and record the new version.

        A failed download keeps the current node running. Failures after the
        old node has been stopped leave the installation half-upgraded and are fatal.

        :return: True if the binary was replaced.
        """
        self._set_state(SupervisorState.UPDATING)
        log.info(f"A new compute-node version detected ({version}), downloading the new version...")
        try:
            installed = self.installer.install(version, self.temp_binary_path, executable=False)
        except (DownloadError, ReleaseError) as e:
            log.warning(f"Error during downloading the latest dkn-compute binary: {e}. Will continue to run the current one and check again in an hour.")
            self.temp_binary_path.unlink(missing_ok=True)
            self._set_state(SupervisorState.RUNNING)
            return False

        if installed == self.config.get(VERSION_KEY):
            log.info(f"Version {installed} is already running, discarding the download.")
            self.temp_binary_path.unlink(missing_ok=True)
            self._set_state(SupervisorState.RUNNING)
            return False

        log.info("Successfully downloaded the new version, now terminating the old node...")
        if self._cancel_monitoring():
            self.temp_binary_path.unlink(missing_ok=True)
            self._crashed()

        try:
            self.process_control.graceful_stop(self.child, self.graceful_stop_timeout)
        except ProcessStopError as e:
            self._fatal(f"Error stopping the already running node; {e}")
        self.child = None

        log.info("Node successfully terminated by the launcher, replacing the old binary with the new version...")
        try:
            self.binary_path.unlink(missing_ok=True)
        except OSError as e:
            self._fatal(f"Error during deleting the old binary file; {e}")
        try:
            self.temp_binary_path.rename(self.binary_path)
            make_executable(self.binary_path)
        except OSError as e:
            self._fatal(f"Error during renaming the new version binary; {e}")

        self.config[VERSION_KEY] = installed
        try:
            env_store.persist(self.config, self.env_path)
        except EnvFileError as e:
            log.error(f"Failed to dump the .env file, continuing to run the node though: {e}")
        log.info("All good, now restarting the node with the new version...")
        return True

    def shutdown(self) -> None:
        """STOPPED: stops the node on a user interrupt and exits with code 0."""
        self._set_state(SupervisorState.STOPPED)
        self._cancel_monitoring()
        if self.child is not None and self.process_control.is_alive(self.child):
            log.info(f"Stopping the compute node (PID: {self.child.pid})...")
            try:
                self.process_control.graceful_stop(self.child, self.graceful_stop_timeout)
            except ProcessStopError as e:
                log.error(f"Failed to stop the compute node: {e}")
        log.info("\nShutting down the launcher. Bye!")
        sys.exit(0)

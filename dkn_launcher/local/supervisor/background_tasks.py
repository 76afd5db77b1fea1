import logging
import threading
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from .process_utils import ChildProcess
    from .supervisor import ComputeSupervisor

log = logging.getLogger(__name__)


class LivenessMonitor:
    """
    Background task that reports when a child process stops running.

    The cancellation token is checked under the same lock that `cancel()`
    takes to set it, so once `cancel()` returns the monitor can no longer
    report, and a death observed earlier is reflected in its return value.
    """

    def __init__(self, is_alive: Callable[[], bool], on_exit: Callable[[], None], interval: float, name: str = "LivenessMonitorThread"):
        self.is_alive = is_alive
        self.on_exit = on_exit
        self.interval = interval
        self.reported_exit = False
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, daemon=True, name=name)

    def start(self) -> None:
        self._thread.start()

    def _run(self) -> None:
        # Sleep first, then probe: the child always gets one interval to start.
        while not self._cancelled.wait(self.interval):
            with self._lock:
                if self._cancelled.is_set():
                    break
                if not self.is_alive():
                    self.reported_exit = True
                    self.on_exit()
                    break
        log.debug(f"{self._thread.name} has stopped.")

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> bool:
        """
        Signals cancellation and waits for the monitor thread to finish.

        :return: True if the monitor had already reported the child's exit.
        """
        with self._lock:
            self._cancelled.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join()
        return self.reported_exit


def start_liveness_monitor(manager: "ComputeSupervisor", child: "ChildProcess") -> LivenessMonitor:
    """
    Starts a thread that watches `child` and sets the manager's exit event when it dies.

    :param manager: The ComputeSupervisor instance.
    :param child: The child process to watch.
    :return: The running monitor.
    """
    monitor = LivenessMonitor(
        is_alive=lambda: manager.process_control.is_alive(child),
        on_exit=manager.child_exited.set,
        interval=manager.liveness_interval,
        name=f"LivenessMonitorThread-{child.pid}",
    )
    monitor.start()
    return monitor

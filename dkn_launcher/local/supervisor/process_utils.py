import os
import sys
import signal
import logging
import subprocess
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import psutil

from dkn_launcher.local.exceptions import ProcessStartError, ProcessStopError

log = logging.getLogger(__name__)


class ChildProcess:
    """Handle of a spawned compute node: its PID and the Popen object that reaps it."""

    def __init__(self, pid: int, popen: Optional[subprocess.Popen] = None, log_path: Optional[Path] = None):
        self.pid = pid
        self.popen = popen
        self.log_path = log_path

    def __repr__(self) -> str:
        return f"ChildProcess(pid={self.pid})"


#* --- Process Status & Monitoring ---
def pid_is_running(pid: int) -> bool:
    """Checks whether a PID belongs to a running, non-zombie process."""
    try:
        proc = psutil.Process(pid)
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False
    except psutil.AccessDenied:
        # The process exists but belongs to someone else.
        return True


def wait_for_exit(pid: int, timeout: float) -> bool:
    """
    Waits up to `timeout` seconds for a process to exit, reaping it if it is our child.

    :return: True if the process is gone.
    """
    try:
        proc = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return True
    _, alive = psutil.wait_procs([proc], timeout=timeout)
    return not alive


class ProcessControl:
    """
    Platform capability used by the supervisor to spawn, probe and stop the compute node.

    Subclasses provide the platform-specific creation flags and stop sequence;
    the supervisor never branches on the OS itself.
    """

    def _popen_kwargs(self, background: bool) -> Dict[str, Any]:
        raise NotImplementedError

    def spawn(self, args: List[str], cwd: Path, env: Mapping[str, str], log_path: Optional[Path] = None) -> ChildProcess:
        """
        Starts a process in its own session/process group.

        :param args: The command line.
        :param cwd: The working directory.
        :param env: The complete environment of the child.
        :param log_path: If given, stdout and stderr go to this file (truncated); otherwise they are inherited.
        :return: The child's handle.
        :raises ProcessStartError: If the process could not be spawned.
        """
        log_file = None
        try:
            if log_path is not None:
                log_file = open(log_path, "w", encoding="utf-8")
            p = subprocess.Popen(
                args,
                cwd=str(cwd),
                env=dict(env),
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=log_file,
                **self._popen_kwargs(background=log_path is not None),
            )
        except OSError as e:
            raise ProcessStartError(f"Failed to start '{' '.join(args)}': {e}")
        finally:
            # The child holds its own copy of the descriptor.
            if log_file is not None:
                log_file.close()
        log.debug(f"Spawned {args[0]} with PID {p.pid}")
        return ChildProcess(p.pid, popen=p, log_path=log_path)

    def is_alive(self, child: ChildProcess) -> bool:
        """Checks whether the child is still running."""
        if child.popen is not None and child.popen.poll() is not None:
            return False
        return pid_is_running(child.pid)

    def graceful_stop(self, child: ChildProcess, timeout: float) -> None:
        """
        Asks the child to terminate, escalating to a kill after `timeout` seconds.

        :raises ProcessStopError: If the process could not be signalled or survived the kill.
        """
        raise NotImplementedError

    def raise_file_limit(self, limit: int) -> None:
        """Raises the open file descriptor limit for this process and its children."""

    def stop_hint(self, pid: int) -> str:
        """The shell command a user can run to stop a background node."""
        raise NotImplementedError


class PosixProcessControl(ProcessControl):
    """Linux and macOS: the child leads its own process group, which is signalled as a whole."""

    def _popen_kwargs(self, background: bool) -> Dict[str, Any]:
        return {"start_new_session": True}

    def _signal_group(self, child: ChildProcess, sig: signal.Signals) -> bool:
        """Signals the child's process group; returns False if it no longer exists."""
        try:
            os.killpg(child.pid, sig)
        except ProcessLookupError:
            return False
        except OSError as e:
            raise ProcessStopError(f"Could not send {sig.name} to process group {child.pid}: {e}")
        log.debug(f"{sig.name} sent to process group {child.pid}")
        return True

    def graceful_stop(self, child: ChildProcess, timeout: float) -> None:
        if not self._signal_group(child, signal.SIGTERM):
            wait_for_exit(child.pid, 0)
            return
        if wait_for_exit(child.pid, timeout):
            log.info(f"Process group {child.pid} terminated successfully")
            return

        log.warning(f"Process {child.pid} did not terminate within {timeout}s. Sending SIGKILL...")
        self._signal_group(child, signal.SIGKILL)
        if not wait_for_exit(child.pid, 1):
            raise ProcessStopError(f"Process {child.pid} did not terminate even after SIGKILL")

    def raise_file_limit(self, limit: int) -> None:
        import resource

        _, hard = resource.getrlimit(resource.RLIMIT_NOFILE)
        soft = limit if hard == resource.RLIM_INFINITY else min(limit, hard)
        resource.setrlimit(resource.RLIMIT_NOFILE, (soft, hard))
        log.debug(f"Open file limit set to {soft}")

    def stop_hint(self, pid: int) -> str:
        return f"kill {pid}"


class WindowsProcessControl(ProcessControl):
    """Windows: no process groups to signal, so the whole process tree is terminated."""

    def _popen_kwargs(self, background: bool) -> Dict[str, Any]:
        flags = subprocess.CREATE_NEW_PROCESS_GROUP
        if background:
            flags |= subprocess.DETACHED_PROCESS | subprocess.CREATE_NO_WINDOW
        return {"creationflags": flags}

    def graceful_stop(self, child: ChildProcess, timeout: float) -> None:
        try:
            parent = psutil.Process(child.pid)
            procs = parent.children(recursive=True) + [parent]
        except psutil.NoSuchProcess:
            return

        for proc in procs:
            try:
                proc.terminate()
            except psutil.NoSuchProcess:
                continue
            except psutil.Error as e:
                raise ProcessStopError(f"Could not terminate process {proc.pid}: {e}")

        _, alive = psutil.wait_procs(procs, timeout=timeout)
        if not alive:
            return

        log.warning(f"{len(alive)} processes did not terminate gracefully. Forcing shutdown...")
        for proc in alive:
            try:
                proc.kill()
            except psutil.NoSuchProcess:
                continue
        _, alive = psutil.wait_procs(alive, timeout=1)
        if alive:
            raise ProcessStopError(f"Process {child.pid} did not terminate even after being killed")

    def stop_hint(self, pid: int) -> str:
        return f"taskkill /PID {pid} /F"


def get_process_control() -> ProcessControl:
    """Returns the process capability for the host platform."""
    return WindowsProcessControl() if sys.platform == "win32" else PosixProcessControl()

"""Shared fixtures for launcher tests.

Provides fakes for the three collaborators of the supervisor:
- FakeProcessControl: in-memory spawn/is_alive/graceful_stop
- FakeResolver: fixed newest/previous tags
- FakeInstaller: writes a marker file instead of downloading
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import pytest

from dkn_launcher import settings
from dkn_launcher.local.external import ReleaseChannel
from dkn_launcher.local.supervisor import ChildProcess, ComputeSupervisor, ProcessControl


class FakeProcessControl(ProcessControl):
    """Process capability that tracks children in memory."""

    def __init__(self) -> None:
        self.next_pid = 1000
        self.alive: dict[int, bool] = {}
        self.spawned: list[dict] = []
        self.stopped: list[int] = []
        self.events: list[tuple[str, int]] = []
        self.spawn_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.on_stop = None
        self.lock = threading.Lock()

    def spawn(self, args, cwd, env, log_path=None):
        if self.spawn_error:
            raise self.spawn_error
        with self.lock:
            self.next_pid += 1
            pid = self.next_pid
            self.alive[pid] = True
        self.spawned.append({"args": args, "cwd": cwd, "env": dict(env), "log_path": log_path})
        self.events.append(("spawn", pid))
        return ChildProcess(pid, log_path=log_path)

    def is_alive(self, child):
        with self.lock:
            return self.alive.get(child.pid, False)

    def kill(self, pid: int) -> None:
        """Simulates the child exiting on its own."""
        with self.lock:
            self.alive[pid] = False

    def graceful_stop(self, child, timeout):
        if self.on_stop:
            self.on_stop(child)
        if self.stop_error:
            raise self.stop_error
        self.kill(child.pid)
        self.stopped.append(child.pid)
        self.events.append(("stop", child.pid))

    def stop_hint(self, pid):
        return f"kill {pid}"


class FakeResolver:
    """Resolver returning fixed tags and counting calls."""

    def __init__(self, newest: str = "v1.0.0", previous: str = "v0.9.0") -> None:
        self.newest = newest
        self.previous = previous
        self.calls = 0
        self.error: BaseException | None = None

    def resolve(self, channel):
        self.calls += 1
        if self.error:
            raise self.error
        return self.previous if channel is ReleaseChannel.PREVIOUS else self.newest

    def newest_version(self, current, channel=ReleaseChannel.LATEST):
        newest = self.resolve(channel)
        return newest != current, newest

    def latest_launcher_version(self):
        return "v0.1.0"


class FakeInstaller:
    """Installer writing `binary <version>` to the destination."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Path, bool]] = []
        self.error: Exception | None = None
        self.installed_version: str | None = None

    def install(self, version, destination, executable=True):
        self.calls.append((version, destination, executable))
        if self.error:
            raise self.error
        installed = self.installed_version or version
        destination.write_text(f"binary {installed}")
        return installed


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging replaces root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def working_dir(tmp_path: Path) -> Path:
    """A working directory with an installed v1.0.0 binary and a matching .env."""
    (tmp_path / settings.COMPUTE_BINARY_NAME).write_text("binary v1.0.0")
    (tmp_path / settings.ENV_FILE_NAME).write_text("DKN_COMPUTE_VERSION=v1.0.0\n")
    return tmp_path


@pytest.fixture
def config() -> dict[str, str]:
    return {
        "DKN_COMPUTE_VERSION": "v1.0.0",
        "DKN_MODELS": "gpt-4o",
        "DKN_WALLET_SECRET_KEY": "ab" * 32,
        "DKN_ADMIN_PUBLIC_KEY": settings.DKN_ADMIN_PUBLIC_KEY,
        "OPENAI_API_KEY": "sk-test",
    }


@pytest.fixture
def process_control() -> FakeProcessControl:
    return FakeProcessControl()


@pytest.fixture
def resolver() -> FakeResolver:
    return FakeResolver()


@pytest.fixture
def installer() -> FakeInstaller:
    return FakeInstaller()


@pytest.fixture
def make_supervisor(config, working_dir, resolver, installer, process_control):
    """Factory for supervisors with short intervals and no exit delay."""

    def _make(**overrides) -> ComputeSupervisor:
        kwargs = dict(
            env_path=working_dir / settings.ENV_FILE_NAME,
            working_dir=working_dir,
            resolver=resolver,
            installer=installer,
            process_control=process_control,
            liveness_interval=0.02,
            update_interval=0.05,
            graceful_stop_timeout=0.1,
            exit_delay=0,
        )
        kwargs.update(overrides)
        return ComputeSupervisor(config, **kwargs)

    return _make


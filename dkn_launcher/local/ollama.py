import os
import sys
import time
import shutil
import logging
import subprocess
from typing import Tuple

import requests

from dkn_launcher import settings
from dkn_launcher.local.exceptions import OllamaError

log = logging.getLogger(__name__)


def is_command_available(command: str) -> bool:
    """Checks whether `command` is on the PATH."""
    return shutil.which(command) is not None


def is_ollama_serving(host: str, port: str) -> bool:
    """Returns True if an Ollama server answers on host:port."""
    try:
        res = requests.get(f"{host}:{port}", timeout=2)
    except requests.RequestException:
        return False
    return res.status_code == 200


def run_ollama_serve(host: str, port: str) -> int:
    """
    Starts `ollama serve` in the background and waits for it to answer.

    :return: The PID of the Ollama server.
    :raises OllamaError: If the server could not be spawned or never became healthy.
    """
    env = dict(os.environ, OLLAMA_HOST=f"{host}:{port}")
    popen_kwargs = {"start_new_session": True} if sys.platform != "win32" else {}
    try:
        proc = subprocess.Popen(
            ["ollama", "serve"],
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            **popen_kwargs,
        )
    except OSError as e:
        raise OllamaError(f"Failed during running ollama serve: {e}")

    for attempt in range(settings.OLLAMA_MAX_RETRIES):
        if is_ollama_serving(host, port):
            return proc.pid
        log.info(f"Waiting for the local Ollama server to start... (Attempt {attempt + 1}/{settings.OLLAMA_MAX_RETRIES})")
        time.sleep(settings.OLLAMA_RETRY_DELAY)

    proc.kill()
    raise OllamaError(f"Ollama failed to start after {settings.OLLAMA_MAX_RETRIES} retries")


def handle_ollama_env(host: str, port: str) -> Tuple[str, str]:
    """
    Makes sure a local Ollama server is reachable, starting one if needed.

    :param host: The configured OLLAMA_HOST, may be empty.
    :param port: The configured OLLAMA_PORT, may be empty.
    :return: The (host, port) the compute node should use.
    :raises OllamaError: If Ollama is not installed or could not be started.
    """
    if not is_command_available("ollama"):
        raise OllamaError("Ollama is not installed on this machine. Install it from https://ollama.com/download")

    # The docker-internal host only resolves from inside containers.
    if not host or host == settings.DOCKER_HOST:
        host = settings.LOCAL_HOST
    if not port:
        port = str(settings.DEFAULT_OLLAMA_PORT)

    if is_ollama_serving(host, port):
        log.info(f"Local Ollama is already up at {host}:{port} and running, using it")
    else:
        log.info("Local Ollama is not live, running ollama serve")
        pid = run_ollama_serve(host, port)
        log.info(f"Local Ollama server is up at {host}:{port} and running with PID {pid}")
    return host, port

import pytest
import requests

from dkn_launcher import settings
from dkn_launcher.local import ollama
from dkn_launcher.local.exceptions import OllamaError


@pytest.fixture
def installed(mocker):
    return mocker.patch("dkn_launcher.local.ollama.is_command_available", return_value=True)


def test_not_installed(mocker):
    mocker.patch("dkn_launcher.local.ollama.is_command_available", return_value=False)

    with pytest.raises(OllamaError, match="not installed"):
        ollama.handle_ollama_env("", "")


def test_reuses_running_server(installed, mocker):
    serving = mocker.patch("dkn_launcher.local.ollama.is_ollama_serving", return_value=True)
    serve = mocker.patch("dkn_launcher.local.ollama.run_ollama_serve")

    assert ollama.handle_ollama_env("", "") == (settings.LOCAL_HOST, str(settings.DEFAULT_OLLAMA_PORT))
    serving.assert_called_once_with(settings.LOCAL_HOST, "11434")
    serve.assert_not_called()


def test_docker_host_is_replaced(installed, mocker):
    mocker.patch("dkn_launcher.local.ollama.is_ollama_serving", return_value=True)

    host, port = ollama.handle_ollama_env(settings.DOCKER_HOST, "11500")

    assert (host, port) == (settings.LOCAL_HOST, "11500")


def test_starts_server_when_not_serving(installed, mocker):
    mocker.patch("dkn_launcher.local.ollama.is_ollama_serving", return_value=False)
    serve = mocker.patch("dkn_launcher.local.ollama.run_ollama_serve", return_value=4242)

    ollama.handle_ollama_env("http://10.0.0.2", "")

    serve.assert_called_once_with("http://10.0.0.2", "11434")


def test_serve_gives_up_after_retries(mocker):
    proc = mocker.Mock(pid=4242)
    popen = mocker.patch("dkn_launcher.local.ollama.subprocess.Popen", return_value=proc)
    mocker.patch("dkn_launcher.local.ollama.is_ollama_serving", return_value=False)
    sleep = mocker.patch("dkn_launcher.local.ollama.time.sleep")

    with pytest.raises(OllamaError):
        ollama.run_ollama_serve("http://127.0.0.1", "11434")

    assert popen.call_args.kwargs["env"]["OLLAMA_HOST"] == "http://127.0.0.1:11434"
    assert sleep.call_count == settings.OLLAMA_MAX_RETRIES
    proc.kill.assert_called_once()


def test_serve_waits_until_healthy(mocker):
    mocker.patch("dkn_launcher.local.ollama.subprocess.Popen", return_value=mocker.Mock(pid=4242))
    mocker.patch("dkn_launcher.local.ollama.is_ollama_serving", side_effect=[False, True])
    mocker.patch("dkn_launcher.local.ollama.time.sleep")

    assert ollama.run_ollama_serve("http://127.0.0.1", "11434") == 4242


@pytest.mark.parametrize("status, expected", [(200, True), (500, False)])
def test_is_ollama_serving(mocker, status, expected):
    get = mocker.patch("dkn_launcher.local.ollama.requests.get", return_value=mocker.Mock(status_code=status))

    assert ollama.is_ollama_serving("http://127.0.0.1", "11434") is expected
    assert get.call_args.args == ("http://127.0.0.1:11434",)


def test_is_ollama_serving_connection_refused(mocker):
    mocker.patch("dkn_launcher.local.ollama.requests.get", side_effect=requests.ConnectionError("refused"))

    assert ollama.is_ollama_serving("http://127.0.0.1", "11434") is False

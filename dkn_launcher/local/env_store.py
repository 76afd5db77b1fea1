import logging
from pathlib import Path
from typing import Callable, Dict, Optional

import requests
from dotenv import dotenv_values

from dkn_launcher import settings
from dkn_launcher.local.console import get_secret_key
from dkn_launcher.local.exceptions import EnvFileError

log = logging.getLogger(__name__)

Config = Dict[str, str]


def read_env_file(path: Path) -> Config:
    """Parses a dotenv file into a flat string map; keys without a value load as empty strings."""
    return {key: value or "" for key, value in dotenv_values(path, interpolate=False).items()}


def fetch_env_template(dest_path: Path, url: str = settings.ENV_TEMPLATE_URL) -> Config:
    """
    Downloads the `.env.example` template, saves it to `dest_path` and loads it.

    :param dest_path: Where the template is written, normally the `.env` path.
    :param url: The template URL.
    :return: The template contents as the initial configuration.
    :raises EnvFileError: If the template could not be downloaded or written.
    """
    try:
        res = requests.get(url, timeout=settings.HTTP_TIMEOUT, headers={"User-Agent": settings.HTTP_USER_AGENT})
        res.raise_for_status()
        dest_path.write_text(res.text, encoding="utf-8")
    except requests.RequestException as e:
        raise EnvFileError(f"Failed to fetch the env template from {url}: {e}")
    except OSError as e:
        raise EnvFileError(f"Failed to write the env template to '{dest_path}': {e}")
    return read_env_file(dest_path)


def load(working_dir: Path, template_url: str = settings.ENV_TEMPLATE_URL) -> Config:
    """
    Loads the configuration from the working directory.

    Looks for `.env`, then `.env.example`, and as a last resort fetches the
    template from the compute node repository and saves it as `.env`.

    :param working_dir: The launcher's working directory.
    :return: The loaded configuration.
    """
    env_path = working_dir / settings.ENV_FILE_NAME
    if env_path.is_file():
        log.info(f"Loaded {env_path} as env\n")
        return read_env_file(env_path)

    example_path = working_dir / settings.ENV_EXAMPLE_FILE_NAME
    if example_path.is_file():
        log.info(f"Loaded {example_path} as base env\n")
        return read_env_file(example_path)

    log.info(f"Couldn't find both .env and .env.example, fetching .env.example from {template_url} as base\n")
    return fetch_env_template(env_path, template_url)


def ensure_required(
    config: Config,
    default_admin_key: str = settings.DKN_ADMIN_PUBLIC_KEY,
    prompt_secret_key: Optional[Callable[[], str]] = None,
) -> None:
    """
    Fills in the mandatory keys that are missing from the configuration.

    The wallet secret key is asked for interactively; the admin public key
    falls back to `default_admin_key`. A complete configuration is left
    untouched and nothing is prompted.

    :raises InvalidInputError: If the entered secret key is invalid.
    """
    if not config.get("DKN_WALLET_SECRET_KEY"):
        log.info("DKN_WALLET_SECRET_KEY env-var is not set, getting it interactively")
        config["DKN_WALLET_SECRET_KEY"] = (prompt_secret_key or get_secret_key)()

    if not config.get("DKN_ADMIN_PUBLIC_KEY"):
        config["DKN_ADMIN_PUBLIC_KEY"] = default_admin_key


_QUOTE_CHARS = ("#", "'", '"', "\\", "\n", "\r")


def _format_value(value: str) -> str:
    """Double-quotes values that dotenv would otherwise strip, cut at a comment or unquote."""
    if value != value.strip() or any(c in value for c in _QUOTE_CHARS):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\r", "\\r")
        return f'"{escaped}"'
    return value


def serialize(config: Config) -> str:
    """Renders the configuration as sorted `KEY=value` lines, dropping empty values."""
    return "".join(f"{key}={_format_value(value)}\n" for key, value in sorted(config.items()) if value)


def persist(config: Config, path: Path) -> None:
    """
    Atomically writes the configuration to `path`.

    Empty values are not written, so a key explicitly set to an empty string
    does not survive a persist/load round trip.

    :raises EnvFileError: If the file could not be written.
    """
    temp_path = path.with_name(path.name + ".tmp")
    try:
        temp_path.write_text(serialize(config), encoding="utf-8")
        temp_path.replace(path)
        log.debug(f"Configuration written to '{path}'.")
    except OSError as e:
        raise EnvFileError(f"Failed to write the env file '{path}': {e}")
    finally:
        temp_path.unlink(missing_ok=True)

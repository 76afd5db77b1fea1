"""CLI entry point for the DKN Compute Launcher.

Sets up the environment (.env, API keys, models, Ollama), installs the
latest dkn-compute binary and runs it in foreground or background mode.
"""

import logging
import platform
from pathlib import Path
from typing import Dict, Tuple

import click
import setproctitle

from dkn_launcher import __version__, settings
from dkn_launcher.log import setup_logging
from dkn_launcher.local import env_store
from dkn_launcher.local.console import (
    exit_with_delay,
    get_user_input,
    missing_api_keys,
    pick_models,
    required_providers,
    rust_log_level,
)
from dkn_launcher.local.exceptions import EnvFileError, InvalidInputError, LauncherError, ReleaseError
from dkn_launcher.local.external import BinaryInstaller, ReleaseChannel, ReleaseResolver
from dkn_launcher.local.ollama import handle_ollama_env
from dkn_launcher.local.supervisor import ComputeSupervisor, ProcessControl, get_process_control
from dkn_launcher.local.supervisor.supervisor import VERSION_KEY

log = logging.getLogger(__name__)


def get_working_dir() -> Path:
    """Get the working directory (current directory)."""
    return Path.cwd()


def check_launcher_version(resolver: ReleaseResolver) -> None:
    """Prints an upgrade notice if a newer launcher release exists."""
    try:
        latest = resolver.latest_launcher_version()
    except ReleaseError as e:
        log.warning(f"Error during checking the launcher latest version; {e}")
        return
    if latest.lstrip("v") != __version__:
        log.info(f"Dria Compute Launcher has a new version! To be able to use latest models please update it from: {settings.LAUNCHER_DOWNLOAD_PAGE}\n")


def select_models(config: Dict[str, str], models: Tuple[str, ...], pick: bool) -> None:
    """Sets DKN_MODELS from the -m flags, or interactively when empty or --pick-models is given."""
    if models:
        config["DKN_MODELS"] = ",".join(models)

    if not config.get("DKN_MODELS") or pick:
        picked = pick_models(settings.MODEL_PROVIDERS)
        if not picked:
            raise InvalidInputError("No valid model picked")
        config["DKN_MODELS"] = picked


def ensure_api_keys(config: Dict[str, str]) -> None:
    """Prompts for the provider API keys the selected models need, then for the optional ones."""
    for provider, env_key in missing_api_keys(config, settings.MODEL_PROVIDERS):
        api_key = get_user_input(f"Enter your {provider} API Key")
        if not api_key:
            raise InvalidInputError(f"Invalid input, please place your {env_key} to .env file")
        config[env_key] = api_key

    for env_key, name in settings.OPTIONAL_API_KEYS.items():
        if not config.get(env_key):
            config[env_key] = get_user_input(f"Enter your {name} API key (optional, just press enter for skipping it)")


def ensure_ollama(config: Dict[str, str]) -> None:
    if "Ollama" not in required_providers(config.get("DKN_MODELS", ""), settings.MODEL_PROVIDERS):
        log.info("No Ollama model provided. Skipping the Ollama execution\n")
        return
    host, port = handle_ollama_env(config.get("OLLAMA_HOST", ""), config.get("OLLAMA_PORT", ""))
    config["OLLAMA_HOST"], config["OLLAMA_PORT"] = host, port
    log.info(f"Ollama host: {host}\n")


def ensure_compute_binary(
    config: Dict[str, str],
    working_dir: Path,
    resolver: ReleaseResolver,
    installer: BinaryInstaller,
    channel: ReleaseChannel,
) -> None:
    """Installs the compute binary if it is missing or not the newest version on `channel`."""
    version = resolver.resolve(channel)
    binary_path = working_dir / settings.COMPUTE_BINARY_NAME

    if binary_path.is_file():
        if version == config.get(VERSION_KEY):
            log.info(f"Current version is up to date ({version})")
            return
        log.info(f"New dkn-compute version detected ({version}), downloading it...")
    else:
        log.info(f"Downloading the latest dkn-compute binary ({version})")
    config[VERSION_KEY] = installer.install(version, binary_path)


def raise_file_limit(process_control: ProcessControl) -> None:
    try:
        process_control.raise_file_limit(settings.FILE_DESCRIPTOR_LIMIT)
    except (OSError, ValueError) as e:
        log.warning(f"Error during ulimit: {e}")


def launch(
    models: Tuple[str, ...],
    background: bool,
    dev: bool,
    trace: bool,
    pick: bool,
    compute_dev_version: bool,
    admin_public_key: str,
) -> None:
    """Prepares the environment and hands over to the supervisor."""
    resolver = ReleaseResolver()
    installer = BinaryInstaller(resolver)
    process_control = get_process_control()
    channel = ReleaseChannel.DEV if compute_dev_version else ReleaseChannel.LATEST

    check_launcher_version(resolver)
    log.info("************ DKN - Compute Node ************")
    log.info("Setting up the environment...")

    working_dir = get_working_dir()
    env_path = working_dir / settings.ENV_FILE_NAME
    config = env_store.load(working_dir)
    env_store.ensure_required(config, admin_public_key)

    select_models(config, models, pick)
    ensure_api_keys(config)
    ensure_ollama(config)
    config["RUST_LOG"] = rust_log_level(dev, trace)

    try:
        ensure_compute_binary(config, working_dir, resolver, installer, channel)
    except LauncherError as e:
        raise LauncherError(f"Couldn't install the latest dkn-compute binary: {e}")

    raise_file_limit(process_control)

    try:
        env_store.persist(config, env_path)
    except EnvFileError as e:
        log.error(f"Failed to dump the .env file, continuing to run the node though: {e}")

    log.info(f"\nLog level: {config['RUST_LOG']}")
    log.info(f"Models: {config['DKN_MODELS']}")
    log.info(f"Operating System: {platform.system()}")

    supervisor = ComputeSupervisor(
        config,
        env_path=env_path,
        working_dir=working_dir,
        resolver=resolver,
        installer=installer,
        process_control=process_control,
        channel=channel,
        background=background,
        verbose=dev,
    )
    supervisor.run()


@click.command(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__)
@click.option("-m", "--model", "models", multiple=True, help="Model to be used within the compute node. Can be used multiple times.")
@click.option("-b", "--background", is_flag=True, help="Run the node in background mode (default: FOREGROUND).")
@click.option("--dev", is_flag=True, help="Set the logging level to debug.")
@click.option("--trace", is_flag=True, help="Set the logging level to trace.")
@click.option("--pick-models", "pick", is_flag=True, help="Pick the models interactively, suppresses the -m flags.")
@click.option("--compute-dev-version", is_flag=True, help="Use the latest dev version of the compute node (development only).")
@click.option(
    "--dkn-admin-public-key",
    "admin_public_key",
    default=settings.DKN_ADMIN_PUBLIC_KEY,
    show_default=False,
    help="DKN Admin Node Public Key, usually not needed since it's given by default.",
)
def main(
    models: Tuple[str, ...],
    background: bool,
    dev: bool,
    trace: bool,
    pick: bool,
    compute_dev_version: bool,
    admin_public_key: str,
) -> None:
    """DKN Compute Launcher.

    Prepares the .env file, installs the dkn-compute binary and keeps it
    running and up to date.
    """
    setproctitle.setproctitle(settings.PROCESS_TITLE)
    setup_logging(logging.DEBUG if dev or trace else logging.INFO)

    try:
        launch(models, background, dev, trace, pick, compute_dev_version, admin_public_key)
    except LauncherError as e:
        log.critical(str(e))
        exit_with_delay(1)


if __name__ == "__main__":
    main()

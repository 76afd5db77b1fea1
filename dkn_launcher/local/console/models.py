from typing import Dict, List, Mapping, Sequence, Tuple

from dkn_launcher import settings


def split_models(models: str) -> List[str]:
    """Splits a comma-separated model list, ignoring blanks."""
    return [m.strip() for m in models.split(",") if m.strip()]


def required_providers(
    models: str,
    providers: Mapping[str, Tuple[Sequence[str], object]] = settings.MODEL_PROVIDERS,
) -> List[str]:
    """
    Returns the providers that at least one of the picked models belongs to.

    :param models: Comma-separated model names.
    :param providers: Provider name -> (model catalog, api key name).
    :return: Provider names in catalog order.
    """
    picked = set(split_models(models))
    return [name for name, (catalog, _) in providers.items() if picked.intersection(catalog)]


def missing_api_keys(
    config: Dict[str, str],
    providers: Mapping[str, Tuple[Sequence[str], object]] = settings.MODEL_PROVIDERS,
) -> List[Tuple[str, str]]:
    """
    Lists the API keys required by the configured models that are not set yet.

    :return: (provider name, env key) pairs.
    """
    missing = []
    for name in required_providers(config.get("DKN_MODELS", ""), providers):
        env_key = providers[name][1]
        if env_key and not config.get(env_key):
            missing.append((name, env_key))
    return missing


def rust_log_level(dev: bool = False, trace: bool = False) -> str:
    """Returns the RUST_LOG value for the compute node; dev wins over trace."""
    if dev:
        return settings.RUST_LOG_LEVELS["debug"]
    if trace:
        return settings.RUST_LOG_LEVELS["trace"]
    return settings.RUST_LOG_LEVELS["info"]

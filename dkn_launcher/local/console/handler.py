import sys
import time
import logging
from typing import Dict, List, Sequence, Tuple

import click

from dkn_launcher import settings
from dkn_launcher.local.exceptions import InvalidInputError

log = logging.getLogger(__name__)

ID_WIDTH = 4
PROVIDER_WIDTH = 10
NAME_WIDTH = 50


def get_user_input(message: str, trim: bool = True) -> str:
    """
    Reads a single line from the terminal.

    :param message: The prompt shown to the user.
    :param trim: If True, all spaces are removed from the answer.
    :return: The answer, or an empty string if input was closed.
    """
    try:
        answer = click.prompt(message, default="", show_default=False)
    except click.exceptions.Abort:
        return ""
    answer = answer.strip().split("\n")[0]
    if trim:
        answer = answer.replace(" ", "")
    print()
    return answer


def get_secret_key() -> str:
    """
    Prompts for the DKN wallet secret key and validates it.

    :return: The secret key as hex, without any `0x` prefix.
    :raises InvalidInputError: If the answer is not 32 bytes of hex.
    """
    skey = get_user_input("Please enter your DKN Wallet Secret Key (32-bytes hex encoded)")
    skey = skey[2:] if skey.startswith("0x") else skey
    try:
        decoded = bytes.fromhex(skey)
    except ValueError:
        raise InvalidInputError("DKN Wallet Secret Key should be 32-bytes hex encoded")
    if len(decoded) != 32:
        raise InvalidInputError("DKN Wallet Secret Key should be 32 bytes long")
    return skey


def _model_rows(providers: Dict[str, Tuple[Sequence[str], object]]) -> List[Tuple[str, str]]:
    """Flattens the provider catalogs into (provider, model) rows in display order."""
    return [(provider, model) for provider, (models, _) in providers.items() for model in models]


def print_model_table(rows: List[Tuple[str, str]]) -> None:
    """Prints the numbered model table."""
    separator = "+" + "-" * (ID_WIDTH + 2) + "+" + "-" * (PROVIDER_WIDTH + 2) + "+" + "-" * (NAME_WIDTH + 2) + "+"
    print("\nPlease pick the model you want to run:\n")
    print(separator)
    print(f"| {'ID':<{ID_WIDTH}} | {'Provider':<{PROVIDER_WIDTH}} | {'Name':<{NAME_WIDTH}} |")
    print(separator)
    for model_id, (provider, model) in enumerate(rows, start=1):
        print(f"| {model_id:<{ID_WIDTH}} | {provider:<{PROVIDER_WIDTH}} | {model:<{NAME_WIDTH}} |")
    print(separator)


def pick_models(providers: Dict[str, Tuple[Sequence[str], object]] = settings.MODEL_PROVIDERS) -> str:
    """
    Lets the user pick models from the provider catalogs by their table ids.

    Duplicate ids are picked once; non-numeric and out-of-range ids are
    reported and skipped.

    :param providers: Provider name -> (model catalog, api key name).
    :return: The picked model names joined by commas, empty if nothing valid was picked.
    """
    rows = _model_rows(providers)
    print_model_table(rows)

    answer = get_user_input("Enter the model ids (comma separated, e.g: 1,2,4)")
    picked: List[str] = []
    picked_ids = set()
    invalid: List[str] = []
    for selection in answer.split(","):
        if not selection or selection in invalid:
            continue
        if not selection.isdigit() or not 1 <= int(selection) <= len(rows):
            invalid.append(selection)
            continue
        model_id = int(selection)
        if model_id not in picked_ids:
            picked_ids.add(model_id)
            picked.append(rows[model_id - 1][1])

    if invalid:
        print(f"Skipping the invalid selections: [{', '.join(invalid)}]\n")
    return ",".join(picked)


def exit_with_delay(code: int, delay: float = settings.EXIT_DELAY_SECONDS) -> None:
    """
    Exits the launcher after a delay so the user can read the terminal.

    :param code: The process exit code.
    :param delay: Seconds to wait before exiting.
    """
    print(f"Terminating in {delay:g} seconds...")
    sys.stdout.flush()
    time.sleep(delay)
    sys.exit(code)

"""
This module initializes the console package, exposing the interactive prompts,
the model and provider helpers and the delayed exit used on fatal errors.
"""

from .handler import exit_with_delay, get_secret_key, get_user_input, pick_models
from .models import missing_api_keys, required_providers, rust_log_level

__all__ = [
    "exit_with_delay",
    "get_secret_key",
    "get_user_input",
    "pick_models",
    "missing_api_keys",
    "required_providers",
    "rust_log_level",
]

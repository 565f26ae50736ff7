"""
Credential lookup for the command-line interface.

The library itself receives API keys inside the ProviderProfile supplied by
the host. The CLI, which acts as a minimal host, falls back to environment
variables (optionally loaded from a .env file) when no key is given.
"""

import os
from typing import Optional

from dotenv import load_dotenv

from genbridge.core.logging_config import get_logger
from genbridge.core.types import ProtocolFamily

# Initialize logger
logger = get_logger(__name__)

# Load environment variables from .env file if it exists
load_dotenv()

# Environment variables checked per provider marker, in order
ENV_VAR_MAP = {
    "openrouter": "OPENROUTER_API_KEY",
    "gptgod": "GPTGOD_API_KEY",
    "seedream": "ARK_API_KEY",
    "gemini": "GEMINI_API_KEY",
}

FAMILY_ENV_VARS = {
    ProtocolFamily.GEMINI_NATIVE: ["GEMINI_API_KEY"],
    ProtocolFamily.GEMINI_COMPATIBLE: ["GEMINI_API_KEY"],
    ProtocolFamily.CHAT_COMPLETIONS: ["OPENROUTER_API_KEY", "GPTGOD_API_KEY"],
    ProtocolFamily.UNIFIED_IMAGE_ENDPOINT: ["ARK_API_KEY"],
    ProtocolFamily.GRAPH_EXECUTOR: [],
}


def get_api_key(provider_name: str, base_url: str, family: ProtocolFamily) -> Optional[str]:
    """
    Get an API key for a provider from the environment.

    The provider name and base URL are matched against known markers first
    (so an OpenRouter profile reads OPENROUTER_API_KEY, not GPTGOD_API_KEY);
    otherwise the family's environment variables are tried in order.

    Args:
        provider_name (str): Provider display name
        base_url (str): Provider base URL
        family (ProtocolFamily): Classified protocol family

    Returns:
        Optional[str]: The API key, or None if no variable is set
    """
    haystack = f"{provider_name or ''} {base_url or ''}".lower()
    for marker, env_var in ENV_VAR_MAP.items():
        if marker in haystack and os.environ.get(env_var):
            logger.debug(f"Using API key from {env_var}")
            return os.environ[env_var]

    for env_var in FAMILY_ENV_VARS.get(family, []):
        value = os.environ.get(env_var)
        if value:
            logger.debug(f"Using API key from {env_var}")
            return value

    return None

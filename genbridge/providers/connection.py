"""
Provider connection check.

Issues a GET against the family's test endpoint (the model list, or the
graph executor's system stats) and reports whether the provider answered.
"""

from dataclasses import dataclass

import requests

from genbridge.core.config import get_config_value
from genbridge.core.constants import DEFAULT_DOWNLOAD_TIMEOUT
from genbridge.core.error_handler import redact_url
from genbridge.core.logging_config import get_logger
from genbridge.core.types import ProviderProfile
from genbridge.providers.classifier import ProviderEndpoint, requires_api_key

# Initialize logger
logger = get_logger(__name__)


@dataclass(frozen=True)
class ConnectionResult:
    success: bool
    message: str


def check_connection(profile: ProviderProfile) -> ConnectionResult:
    """
    Check that a provider is reachable with the given credentials.

    Args:
        profile (ProviderProfile): Provider to check

    Returns:
        ConnectionResult: Outcome and a message for display
    """
    endpoint = ProviderEndpoint(profile)

    if not profile.base_url:
        return ConnectionResult(False, "Missing Base URL.")
    if requires_api_key(endpoint.family) and not profile.api_key:
        return ConnectionResult(False, "Missing API Key.")

    url = endpoint.test_url()
    if url is None:
        return ConnectionResult(True, f"{profile.name}: cannot be tested automatically. Please verify manually.")

    timeout = get_config_value("http.download_timeout", DEFAULT_DOWNLOAD_TIMEOUT)
    logger.info(f"Testing connection to {redact_url(url)}")
    try:
        response = requests.get(url, headers=endpoint.headers(), timeout=timeout)
    except requests.exceptions.RequestException as e:
        logger.warning(f"Connection test failed: {e}")
        return ConnectionResult(False, f"Error: {e}")

    if not response.ok:
        return ConnectionResult(False, f"HTTP Error: {response.status_code}")

    try:
        data = response.json()
    except ValueError:
        return ConnectionResult(False, "Invalid response: not JSON")

    if isinstance(data, dict) and data.get("error"):
        error = data["error"]
        message = error.get("message") if isinstance(error, dict) else str(error)
        return ConnectionResult(False, f"API Error: {message or 'Unknown error'}")

    return ConnectionResult(True, "Connection successful!")


"""
Provider classification and endpoint construction.

classify_provider() maps a provider's name and base URL to one of the five
protocol families. ProviderEndpoint turns a profile plus its family into the
concrete URLs and headers used on the wire.
"""

from typing import Dict, Optional
from urllib.parse import urlsplit

from genbridge.core.constants import (
    DEFAULT_GEMINI_MODEL,
    DEFAULT_OPENROUTER_MODEL,
    DEFAULT_GPTGOD_MODEL,
    DEFAULT_SEEDREAM_MODEL,
    DEFAULT_COMFYUI_MODEL,
)
from genbridge.core.types import ProtocolFamily, ProviderProfile

# (family, name markers, url markers), checked in order; first match wins
CLASSIFICATION_RULES = [
    (ProtocolFamily.GEMINI_NATIVE, (), ("generativelanguage.googleapis.com",)),
    (ProtocolFamily.UNIFIED_IMAGE_ENDPOINT, ("seedream",), ("ark.cn-beijing.volces.com",)),
    (ProtocolFamily.CHAT_COMPLETIONS, ("gptgod", "openrouter"), ("gptgod", "openrouter.ai")),
    (ProtocolFamily.GRAPH_EXECUTOR, ("comfyui",), (":8188",)),
]

DEFAULT_FAMILY = ProtocolFamily.GEMINI_COMPATIBLE

# Known API path suffixes users paste into the base URL, longest first
API_PATH_PATTERNS = [
    "/chat/completions",
    "/images/generations",
    "/api/v3",
    "/api/v1",
    "/v1beta",
    "/v1",
]

# family -> (base path, generate endpoint, test endpoint)
FAMILY_ENDPOINTS = {
    ProtocolFamily.GEMINI_NATIVE: ("/v1beta", "/models/{model}:generateContent", "/models"),
    ProtocolFamily.GEMINI_COMPATIBLE: ("/v1beta", "/models/{model}:generateContent", "/models"),
    ProtocolFamily.CHAT_COMPLETIONS: ("/v1", "/chat/completions", "/models"),
    ProtocolFamily.UNIFIED_IMAGE_ENDPOINT: ("/api/v3", "/images/generations", None),
    ProtocolFamily.GRAPH_EXECUTOR: ("", "/prompt", "/system_stats"),
}

QUERY_KEY_FAMILIES = {ProtocolFamily.GEMINI_NATIVE, ProtocolFamily.GEMINI_COMPATIBLE}
BEARER_FAMILIES = {ProtocolFamily.CHAT_COMPLETIONS, ProtocolFamily.UNIFIED_IMAGE_ENDPOINT}


def classify_provider(name: Optional[str], base_url: Optional[str]) -> ProtocolFamily:
    """
    Classify a provider into a protocol family.

    Matching is case-insensitive substring matching against a fixed,
    priority-ordered marker list. Every input maps to a family;
    gemini-compatible is the catch-all.

    Args:
        name (str): Provider display name
        base_url (str): Provider base URL

    Returns:
        ProtocolFamily: The classified family
    """
    name_lower = (name or "").lower()
    url_lower = (base_url or "").lower()

    for family, name_markers, url_markers in CLASSIFICATION_RULES:
        if any(marker in url_lower for marker in url_markers):
            return family
        if any(marker in name_lower for marker in name_markers):
            return family

    return DEFAULT_FAMILY


def is_openrouter(profile: ProviderProfile) -> bool:
    return "openrouter" in f"{profile.name} {profile.base_url}".lower()


def requires_api_key(family: ProtocolFamily) -> bool:
    """The local graph executor is the only family without authentication."""
    return family != ProtocolFamily.GRAPH_EXECUTOR


def normalize_base_url(url: Optional[str]) -> str:
    """
    Remove trailing slashes from a base URL.

    Args:
        url (str): Base URL as entered by the user

    Returns:
        str: The URL without trailing slashes
    """
    if not url:
        return ""
    return url.strip().rstrip("/")


class ProviderEndpoint:
    """
    Builds URLs and headers for one provider profile.

    Users often paste a base URL that already contains an API path
    (``https://host/v1beta`` or ``https://host/v1/chat/completions``). The
    domain part is extracted and the family's own base path is appended, so
    both forms produce the same endpoint.
    """

    def __init__(self, profile: ProviderProfile, family: Optional[ProtocolFamily] = None):
        self.profile = profile
        self.family = family or classify_provider(profile.name, profile.base_url)
        base_path, generate_path, test_path = FAMILY_ENDPOINTS[self.family]
        if self.family == ProtocolFamily.CHAT_COMPLETIONS and is_openrouter(profile):
            base_path = "/api/v1"
        self.base_path = base_path
        self.generate_path = generate_path
        self.test_path = test_path

    @property
    def model(self) -> str:
        """The profile's model, or the family default when empty."""
        if self.profile.model:
            return self.profile.model
        return default_model(self.profile, self.family)

    @property
    def domain(self) -> str:
        """The base URL with any known API path removed."""
        normalized = normalize_base_url(self.profile.base_url)

        if self.base_path and normalized.endswith(self.base_path):
            return normalized[:-len(self.base_path)]

        parts = urlsplit(normalized)
        origin = f"{parts.scheme}://{parts.netloc}" if parts.netloc else ""
        path = normalized[len(origin):]

        # Cut at the earliest known API path so ".../v1/chat/completions" keeps only the origin
        indexes = [path.find(pattern) for pattern in API_PATH_PATTERNS if pattern in path]
        if indexes:
            return origin + path[:min(indexes)]

        return normalized

    def _build_url(self, path: Optional[str]) -> Optional[str]:
        if path is None:
            return None
        url = self.domain + self.base_path + path.replace("{model}", self.model)
        if self.family in QUERY_KEY_FAMILIES and self.profile.api_key:
            url += f"?key={self.profile.api_key}"
        return url

    def url_for(self, path: str) -> str:
        """Absolute URL for a path relative to the provider's domain."""
        return self.domain + path

    def generate_url(self) -> str:
        """URL that receives the generation request (graph submission for the executor)."""
        return self._build_url(self.generate_path)

    def test_url(self) -> Optional[str]:
        """URL used to check connectivity, or None when the family has none."""
        return self._build_url(self.test_path)

    def headers(self) -> Dict[str, str]:
        """
        Request headers for the family.

        Returns:
            Dict[str, str]: JSON content type plus bearer auth where required
        """
        headers = {"Content-Type": "application/json"}
        if self.family in BEARER_FAMILIES and self.profile.api_key:
            headers["Authorization"] = f"Bearer {self.profile.api_key}"
        return headers


def default_model(profile: ProviderProfile, family: ProtocolFamily) -> str:
    """
    Default model identifier for a family when the profile leaves it empty.

    Args:
        profile (ProviderProfile): Provider profile
        family (ProtocolFamily): Classified family

    Returns:
        str: Model identifier
    """
    if family == ProtocolFamily.CHAT_COMPLETIONS:
        return DEFAULT_OPENROUTER_MODEL if is_openrouter(profile) else DEFAULT_GPTGOD_MODEL
    if family == ProtocolFamily.UNIFIED_IMAGE_ENDPOINT:
        return DEFAULT_SEEDREAM_MODEL
    if family == ProtocolFamily.GRAPH_EXECUTOR:
        return DEFAULT_COMFYUI_MODEL
    return DEFAULT_GEMINI_MODEL

"""
Provider classification, payload building and response parsing.
"""

from genbridge.providers.classifier import classify_provider, ProviderEndpoint
from genbridge.providers.geometry import compute_pixel_size, closest_aspect_ratio
from genbridge.providers.payloads import build_payload
from genbridge.providers.responses import parse_response, extract_diagnostic

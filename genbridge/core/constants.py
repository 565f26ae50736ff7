"""
Constants for the genbridge package.

This module provides constants used throughout the genbridge package.
These constants can be easily changed in one place.
"""

# Default models per provider
DEFAULT_GEMINI_MODEL = "gemini-3-pro-image-preview"
DEFAULT_OPENROUTER_MODEL = "google/gemini-3.1-flash-image-preview"
DEFAULT_GPTGOD_MODEL = "gemini-3.1-flash-image-preview"
DEFAULT_SEEDREAM_MODEL = "doubao-seedream-4-5-251128"
DEFAULT_COMFYUI_MODEL = "z_image_turbo_bf16.safetensors"

# Chat-completions model that has resolution-specific variants
RESOLUTION_VARIANT_MODEL = "gemini-3-pro-image-preview"

# Unified endpoint models that do not accept the lowest resolution tier
NO_LOW_TIER_MODEL_PREFIXES = ("doubao-seedream-4-5",)

# Graph executor polling
DEFAULT_POLL_INTERVAL = 2.0
DEFAULT_MAX_POLLS = 90
DEFAULT_POLL_TIMEOUT = 10

# HTTP
DEFAULT_REQUEST_TIMEOUT = 300
DEFAULT_DOWNLOAD_TIMEOUT = 60
DEFAULT_GENERATION_TIMEOUT = 600

# Diagnostics
RAW_BODY_DIAGNOSTIC_LIMIT = 500

# Image formats
DEFAULT_MIME_TYPE = "image/png"

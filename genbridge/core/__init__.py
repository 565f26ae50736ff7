"""
Core utilities, types and configuration for the genbridge package.
"""

from genbridge.core.config import get_config, get_config_value
from genbridge.core.credentials import get_api_key
from genbridge.core.logging_config import get_logger, configure_logging
from genbridge.core.error_handler import (
    GenerationError,
    ConfigurationError,
    ValidationError,
    TransportError,
    UploadError,
    UpstreamRefusal,
    GenerationTimeoutError,
    ProtocolError,
    GenerationCancelledError,
    GenerationBusyError,
)

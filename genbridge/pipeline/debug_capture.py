"""
Debug capture of raw request payloads and response bodies.

The orchestrator hands the exact outgoing payload and incoming body to a
DebugCapture sink when debug capture is enabled. Where they end up is the
sink's concern; FileDebugCapture writes timestamped files to a directory.
"""

import os
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from genbridge.core.config import get_config_value
from genbridge.core.logging_config import get_logger
from genbridge.core.utils import ensure_dir, get_timestamp, save_json_file

# Initialize logger
logger = get_logger(__name__)


class DebugCapture(ABC):
    """Sink for raw generation traffic."""

    @abstractmethod
    def save_payload(self, payload: Dict[str, Any], provider_name: str) -> Optional[str]:
        """Persist the outgoing request payload."""

    @abstractmethod
    def save_response(self, response: Any, provider_name: str) -> Optional[str]:
        """Persist the incoming response body, or its raw text when it could not be decoded."""

    def save_log(self, report: Dict[str, Any]) -> Optional[str]:
        """Persist an error report. Optional for sinks."""
        return None


def _safe_name(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]+", "_", name or "provider").strip("_") or "provider"


class FileDebugCapture(DebugCapture):
    """
    Writes payload_<provider>_<ts>.json, response_<provider>_<ts>.json and
    error_<ts>.txt files.

    Write failures are logged and do not fail the generation.
    """

    def __init__(self, directory: Optional[str] = None):
        directory = directory or get_config_value("debug.directory", "logs")
        self.directory = os.path.expanduser(directory)

    def _path(self, prefix: str, provider_name: Optional[str], extension: str) -> str:
        parts = [prefix]
        if provider_name is not None:
            parts.append(_safe_name(provider_name))
        parts.append(get_timestamp())
        return os.path.join(self.directory, "_".join(parts) + extension)

    def save_payload(self, payload: Dict[str, Any], provider_name: str) -> Optional[str]:
        return self._save_json(payload, self._path("payload", provider_name, ".json"))

    def save_response(self, response: Any, provider_name: str) -> Optional[str]:
        return self._save_json(response, self._path("response", provider_name, ".json"))

    def save_log(self, report: Dict[str, Any]) -> Optional[str]:
        path = self._path("error", None, ".txt")
        lines = [f"{key}: {value}" for key, value in report.items()]
        try:
            ensure_dir(self.directory)
            with open(path, "w", encoding="utf-8") as f:
                f.write("\n".join(lines) + "\n")
        except OSError as e:
            logger.warning(f"Could not write debug log {path}: {e}")
            return None
        logger.debug(f"Saved error log to {path}")
        return path

    def _save_json(self, data: Any, path: str) -> Optional[str]:
        try:
            save_json_file(data, path)
        except (OSError, TypeError) as e:
            logger.warning(f"Could not write debug file {path}: {e}")
            return None
        logger.debug(f"Saved debug file {path}")
        return path

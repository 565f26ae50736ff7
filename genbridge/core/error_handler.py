"""
Error handling module.

This module defines the error taxonomy raised by the generation pipeline and
the helpers that turn HTTP-layer failures into those errors:

- ConfigurationError: provider profile is missing credentials or a base URL
- ValidationError: the generation request itself is malformed
- TransportError / UploadError: connection failures and non-2xx responses
- UpstreamRefusal: HTTP 200 without an image, with the upstream explanation
- GenerationTimeoutError: a graph-executor job exhausted its polling budget
- ProtocolError: a response body did not have the shape expected for its family
- GenerationCancelledError / GenerationBusyError: host-level cancellation and
  single-flight enforcement

Every error carries a ``kind`` string and a ``message`` so the host can
display a uniform error value.
"""

import json
import logging
from typing import Dict, Any, Optional

import requests

logger = logging.getLogger(__name__)

# Response bodies are cut to this length when embedded in error messages
ERROR_BODY_LIMIT = 200


def truncate_text(text: Any, limit: int = ERROR_BODY_LIMIT) -> str:
    """
    Truncate a value's string form for inclusion in an error message.

    Args:
        text: Value to truncate (non-strings are converted with str()).
        limit: Maximum number of characters to keep.

    Returns:
        The truncated string, suffixed with "..." when cut.
    """
    if text is None:
        return ""
    text = text if isinstance(text, str) else str(text)
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


class GenerationError(Exception):
    """
    Base class for every error surfaced to the caller of the orchestrator.

    Attributes:
        message: Human-readable error message.
        kind: Machine-readable error category.
    """

    kind = "internal"

    def __init__(self, message: str, kind: Optional[str] = None):
        self.message = message
        if kind:
            self.kind = kind
        super().__init__(self._detailed_message())

    def _detailed_message(self) -> str:
        return self.message


class ConfigurationError(GenerationError):
    """
    Exception raised for configuration errors.

    Attributes:
        message: Error message.
        component: Component that has a configuration error.
        missing_keys: Keys that are missing from the configuration.
    """

    kind = "configuration"

    def __init__(
        self,
        message: str,
        component: Optional[str] = None,
        missing_keys: Optional[list] = None
    ):
        """
        Initialize the ConfigurationError.

        Args:
            message: Error message.
            component: Component that has a configuration error.
            missing_keys: Keys that are missing from the configuration.
        """
        self.component = component
        self.missing_keys = missing_keys or []
        super().__init__(message)

    def _detailed_message(self) -> str:
        detailed_message = f"Configuration Error: {self.message}"
        if self.component:
            detailed_message += f" (Component: {self.component})"
        if self.missing_keys:
            detailed_message += f" (Missing Keys: {', '.join(self.missing_keys)})"
        return detailed_message


class ValidationError(GenerationError):
    """
    Exception raised for malformed generation requests.

    Attributes:
        message: Error message.
        field: Field that failed validation.
        value: Value that failed validation.
    """

    kind = "validation"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None
    ):
        self.field = field
        self.value = value
        super().__init__(message)

    def _detailed_message(self) -> str:
        detailed_message = f"Validation Error: {self.message}"
        if self.field:
            detailed_message += f" (Field: {self.field})"
        return detailed_message


class TransportError(GenerationError):
    """
    Exception raised for HTTP-layer failures.

    Attributes:
        message: Error message.
        status_code: HTTP status code, if a response was received.
        response: Response body text, if a response was received.
        endpoint: Endpoint that was called.
    """

    kind = "transport"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response: Optional[str] = None,
        endpoint: Optional[str] = None
    ):
        self.status_code = status_code
        self.response = response
        self.endpoint = endpoint
        super().__init__(message)

    def _detailed_message(self) -> str:
        detailed_message = f"HTTP Error: {self.message}"
        if self.status_code:
            detailed_message += f" (Status Code: {self.status_code})"
        if self.response:
            detailed_message += f" - {truncate_text(self.response)}"
        return detailed_message


class UploadError(TransportError):
    """
    Exception raised when the graph executor rejects an image upload.
    """


class UpstreamRefusal(GenerationError):
    """
    Exception raised when the upstream service answered successfully but
    returned no image. The message is the upstream explanation, verbatim.

    Attributes:
        message: Explanation extracted from the response.
        family: Protocol family of the provider.
    """

    kind = "upstream_refusal"

    def __init__(self, message: str, family: Optional[str] = None):
        self.family = family
        super().__init__(message)


class GenerationTimeoutError(GenerationError):
    """
    Exception raised when a graph-executor job does not finish in time.

    Attributes:
        job_id: Identifier of the job that timed out.
        polls: Number of history polls performed.
    """

    kind = "timeout"

    def __init__(self, message: str, job_id: Optional[str] = None, polls: int = 0):
        self.job_id = job_id
        self.polls = polls
        super().__init__(message)


class ProtocolError(GenerationError):
    """
    Exception raised when a response body does not have the shape expected
    for its protocol family.

    Attributes:
        family: Protocol family the body was parsed as.
        response: Raw response text, when the body could not be decoded.
    """

    kind = "protocol"

    def __init__(self, message: str, family: Optional[str] = None, response: Optional[str] = None):
        self.family = family
        self.response = response
        super().__init__(message)

    def _detailed_message(self) -> str:
        if self.family:
            return f"Protocol Error ({self.family}): {self.message}"
        return f"Protocol Error: {self.message}"


class GenerationCancelledError(GenerationError):
    """Raised when the host cancels an in-flight generation."""

    kind = "cancelled"


class GenerationBusyError(GenerationError):
    """Raised when a second generation is submitted while one is running."""

    kind = "busy"


def send_json_request(
    method: str,
    endpoint: str,
    payload: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: float = 120,
    error_message: str = "API request failed",
    family: Optional[str] = None
) -> Any:
    """
    Send an HTTP request with a JSON body and return the decoded JSON response.

    Args:
        method: HTTP method ("GET" or "POST").
        endpoint: Full URL to call.
        payload: JSON body for POST requests.
        headers: Request headers.
        timeout: Per-request timeout in seconds.
        error_message: Prefix for transport error messages.
        family: Protocol family of the provider, attached to protocol errors.

    Returns:
        The decoded JSON body.

    Raises:
        TransportError: On connection failures, timeouts and non-2xx statuses.
        ProtocolError: If a 2xx response body is not valid JSON.
    """
    try:
        if method.upper() == "GET":
            response = requests.get(endpoint, headers=headers, timeout=timeout)
        else:
            response = requests.post(endpoint, json=payload, headers=headers, timeout=timeout)
    except requests.exceptions.ConnectionError as e:
        logger.error(f"Connection error: {e}")
        raise TransportError(f"{error_message}: Connection error", endpoint=endpoint)
    except requests.exceptions.Timeout as e:
        logger.error(f"Timeout error: {e}")
        raise TransportError(f"{error_message}: Request timed out", endpoint=endpoint)
    except requests.exceptions.RequestException as e:
        logger.error(f"Request error: {e}")
        raise TransportError(f"{error_message}: {e}", endpoint=endpoint)

    if not response.ok:
        logger.error(f"HTTP error {response.status_code} from {redact_url(endpoint)}")
        logger.error(f"Response: {truncate_text(response.text, 1000)}")
        raise TransportError(
            message=error_message,
            status_code=response.status_code,
            response=response.text,
            endpoint=endpoint
        )

    try:
        return response.json()
    except ValueError as e:
        logger.error(f"Failed to parse API response: {e}")
        raise ProtocolError(
            f"Failed to parse API response as JSON: {truncate_text(response.text)}",
            family=family,
            response=response.text
        )


def redact_url(url: str) -> str:
    """
    Remove the ``key`` query parameter value from a URL for logging.

    Args:
        url: URL that may contain an API key.

    Returns:
        The URL with the key replaced by a placeholder.
    """
    if not url or "key=" not in url:
        return url
    head, _, tail = url.partition("key=")
    rest = tail.split("&", 1)
    redacted = head + "key=***REDACTED***"
    if len(rest) > 1:
        redacted += "&" + rest[1]
    return redacted


def validate_configuration(
    config: Dict[str, Any],
    required_keys: list,
    component: str = "Unknown"
) -> None:
    """
    Validate that required keys are present and non-empty in the configuration.

    Args:
        config: Configuration to validate.
        required_keys: List of required key names.
        component: Component name for error reporting.

    Raises:
        ConfigurationError: If a required key is missing or empty.
    """
    missing_keys = [key for key in required_keys if not config.get(key)]

    if missing_keys:
        raise ConfigurationError(
            message="Missing required configuration keys",
            component=component,
            missing_keys=missing_keys
        )


def log_api_error(error: GenerationError) -> None:
    """
    Log a generation error with detailed information.

    Args:
        error: Error to log.
    """
    logger.error(f"{error.kind} error: {error.message}")

    status_code = getattr(error, "status_code", None)
    if status_code:
        logger.error(f"Status Code: {status_code}")

    endpoint = getattr(error, "endpoint", None)
    if endpoint:
        logger.error(f"Endpoint: {redact_url(endpoint)}")

    response = getattr(error, "response", None)
    if response:
        logger.error(f"Response: {truncate_text(response, 1000)}")

    family = getattr(error, "family", None)
    if family:
        logger.error(f"Protocol family: {family}")


def error_report(error: BaseException) -> Dict[str, Any]:
    """
    Build a JSON-serialisable description of an error for debug capture.

    Args:
        error: The raised exception.

    Returns:
        Dict with kind, message and any detail attributes.
    """
    report = {
        "kind": getattr(error, "kind", "internal"),
        "message": getattr(error, "message", str(error)),
    }
    for attr in ("status_code", "endpoint", "family", "job_id", "polls"):
        value = getattr(error, attr, None)
        if value is not None:
            report[attr] = redact_url(value) if attr == "endpoint" else value
    response = getattr(error, "response", None)
    if response:
        report["response"] = response
    return json.loads(json.dumps(report, default=str))

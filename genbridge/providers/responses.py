"""
Response parsers, one per protocol family.

Each parser extracts the generated image from a decoded response body. When
there is no image, extract_diagnostic() finds the best explanation in the
body (a text reply, then an error object, then the raw body) and the parser
raises UpstreamRefusal with it. A body that does not have the family's shape
at all raises ProtocolError.
"""

import base64
import binascii
import json
import re
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import requests

from genbridge.core.constants import (
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_MIME_TYPE,
    RAW_BODY_DIAGNOSTIC_LIMIT,
)
from genbridge.core.error_handler import (
    ProtocolError,
    TransportError,
    UpstreamRefusal,
    truncate_text,
)
from genbridge.core.logging_config import get_logger
from genbridge.core.types import GenerationResult, ProtocolFamily
from genbridge.core.utils import mime_type_from_url, parse_data_url, sniff_mime_type
from genbridge.providers.classifier import normalize_base_url

# Initialize logger
logger = get_logger(__name__)

MARKDOWN_IMAGE_PATTERN = re.compile(r"!\[[^\]]*\]\(\s*([^)\s]+)\s*\)")
DATA_URL_PATTERN = re.compile(r"data:image/[a-zA-Z0-9.+-]+;base64,[A-Za-z0-9+/=]+")
IMAGE_URL_PATTERN = re.compile(r"https?://\S+?\.(?:png|jpe?g|webp|gif)(?:\?\S*)?(?=[\s)\]\"']|$)",
                               re.IGNORECASE)

# Gemini finish reasons that are not an explanation in themselves
NORMAL_FINISH_REASONS = {"STOP", "FINISH_REASON_UNSPECIFIED", ""}


def _raw_body(body: Any) -> str:
    if isinstance(body, (dict, list)):
        text = json.dumps(body, ensure_ascii=False)
    else:
        text = str(body)
    return truncate_text(text, RAW_BODY_DIAGNOSTIC_LIMIT)


def _gemini_text(body: Dict[str, Any]) -> Optional[str]:
    texts = []
    candidates = body.get("candidates")
    if isinstance(candidates, list):
        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            parts = (candidate.get("content") or {}).get("parts") or []
            texts.extend(part["text"] for part in parts
                         if isinstance(part, dict) and isinstance(part.get("text"), str) and part["text"].strip())
            finish_reason = candidate.get("finishReason") or ""
            if not texts and finish_reason not in NORMAL_FINISH_REASONS:
                message = candidate.get("finishMessage")
                texts.append(f"Finish reason: {finish_reason}" + (f" - {message}" if message else ""))

    feedback = body.get("promptFeedback")
    if not texts and isinstance(feedback, dict) and feedback.get("blockReason"):
        reason = f"Prompt blocked: {feedback['blockReason']}"
        if feedback.get("blockReasonMessage"):
            reason += f" - {feedback['blockReasonMessage']}"
        texts.append(reason)

    return "\n".join(texts) if texts else None


def _chat_text(body: Dict[str, Any]) -> Optional[str]:
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message") or {}
    content = message.get("content")
    if isinstance(content, str) and content.strip():
        return content
    if isinstance(content, list):
        texts = [part.get("text") for part in content
                 if isinstance(part, dict) and part.get("type") == "text" and part.get("text")]
        if texts:
            return "\n".join(texts)
    refusal = message.get("refusal")
    if isinstance(refusal, str) and refusal.strip():
        return refusal
    return None


def _error_text(body: Dict[str, Any]) -> Optional[str]:
    error = body.get("error")
    if isinstance(error, dict):
        message = error.get("message") or error.get("msg")
        code = error.get("code") or error.get("status") or error.get("type")
        if message and code:
            return f"{code}: {message}"
        if message:
            return str(message)
        return json.dumps(error, ensure_ascii=False)
    if isinstance(error, str) and error.strip():
        return error

    data = body.get("data")
    if isinstance(data, list):
        for item in data:
            if isinstance(item, dict) and isinstance(item.get("error"), dict):
                nested = item["error"]
                return str(nested.get("message") or json.dumps(nested, ensure_ascii=False))
    return None


def extract_diagnostic(body: Any) -> str:
    """
    Best-effort explanation for a response without an image.

    Priority: a textual reply, then a structured error object, then the raw
    body truncated to 500 characters.

    Args:
        body (Any): Decoded response body

    Returns:
        str: The explanation
    """
    if isinstance(body, dict):
        text = _gemini_text(body) or _chat_text(body)
        if text:
            return text
        error = _error_text(body)
        if error:
            return error
    return _raw_body(body)


def _has_explanation(body: Dict[str, Any]) -> bool:
    return bool(_gemini_text(body) or _chat_text(body) or _error_text(body))


def _refuse_or_reject(body: Any, family: ProtocolFamily, shape_present: bool, shape: str):
    """Raise UpstreamRefusal if the body explains itself, ProtocolError otherwise."""
    if isinstance(body, dict) and (shape_present or _has_explanation(body)):
        diagnostic = extract_diagnostic(body)
        logger.warning(f"No image in {family.value} response: {truncate_text(diagnostic)}")
        raise UpstreamRefusal(diagnostic, family=family.value)
    raise ProtocolError(f"Expected {shape}, got: {_raw_body(body)}", family=family.value)


def _decode_base64(data: str, family: ProtocolFamily) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ProtocolError("Image data is not valid base64", family=family.value)


def _result_from_url(url: str, family: ProtocolFamily) -> GenerationResult:
    """Result for an image reference that is either a data URL or a remote URL."""
    if url.startswith("data:"):
        try:
            mime_type, image_bytes = parse_data_url(url)
        except (ValueError, binascii.Error):
            raise ProtocolError("Malformed data URL in response", family=family.value)
        return GenerationResult(mime_type=mime_type, image_bytes=image_bytes, family=family)
    return GenerationResult(mime_type=mime_type_from_url(url), image_remote_ref=url, family=family)


def parse_gemini_response(body: Any, family: ProtocolFamily = ProtocolFamily.GEMINI_COMPATIBLE,
                          **kwargs) -> GenerationResult:
    """
    Extract the first inline image from candidates[*].content.parts.

    Both the camelCase (inlineData) and snake_case (inline_data) spellings are
    accepted since proxies differ.
    """
    candidates = body.get("candidates") if isinstance(body, dict) else None
    if isinstance(candidates, list):
        for candidate in candidates:
            if not isinstance(candidate, dict):
                continue
            parts = (candidate.get("content") or {}).get("parts") or []
            for part in parts:
                if not isinstance(part, dict):
                    continue
                inline = part.get("inlineData") or part.get("inline_data")
                if isinstance(inline, dict) and inline.get("data"):
                    image_bytes = _decode_base64(inline["data"], family)
                    mime_type = inline.get("mimeType") or inline.get("mime_type") or sniff_mime_type(image_bytes)
                    return GenerationResult(mime_type=mime_type, image_bytes=image_bytes, family=family)

    shape_present = isinstance(candidates, list) or (
        isinstance(body, dict) and "promptFeedback" in body)
    _refuse_or_reject(body, family, shape_present, "a 'candidates' array")


def _image_from_text(text: str) -> Optional[str]:
    """An image reference embedded in chat message text."""
    match = MARKDOWN_IMAGE_PATTERN.search(text)
    if match:
        return match.group(1)
    match = DATA_URL_PATTERN.search(text)
    if match:
        return match.group(0)
    match = IMAGE_URL_PATTERN.search(text)
    if match:
        return match.group(0)
    return None


def _image_url_value(item: Any) -> Optional[str]:
    if isinstance(item, str):
        return item
    if not isinstance(item, dict):
        return None
    image_url = item.get("image_url")
    if isinstance(image_url, dict):
        return image_url.get("url")
    if isinstance(image_url, str):
        return image_url
    if isinstance(item.get("url"), str):
        return item["url"]
    if item.get("b64_json"):
        return f"data:{DEFAULT_MIME_TYPE};base64,{item['b64_json']}"
    return None


def parse_chat_completions_response(body: Any, family: ProtocolFamily = ProtocolFamily.CHAT_COMPLETIONS,
                                    **kwargs) -> GenerationResult:
    """
    Extract an image from a chat completion.

    Looked up in order: message.images, image_url parts of list content,
    an image link inside string content, then top-level image/images fields.
    """
    choices = body.get("choices") if isinstance(body, dict) else None
    url = None

    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        message = choices[0].get("message") or {}

        for image in message.get("images") or []:
            url = _image_url_value(image)
            if url:
                break

        content = message.get("content")
        if not url and isinstance(content, list):
            for part in content:
                if isinstance(part, dict) and part.get("type") in ("image_url", "image"):
                    url = _image_url_value(part)
                    if url:
                        break
        if not url and isinstance(content, str):
            url = _image_from_text(content)

    if not url and isinstance(body, dict):
        images = body.get("images")
        if isinstance(images, list) and images:
            url = _image_url_value(images[0])
        elif body.get("image"):
            url = _image_url_value(body["image"])

    if url:
        return _result_from_url(url, family)

    shape_present = isinstance(choices, list)
    _refuse_or_reject(body, family, shape_present, "a 'choices' array")


def parse_unified_response(body: Any, family: ProtocolFamily = ProtocolFamily.UNIFIED_IMAGE_ENDPOINT,
                           **kwargs) -> GenerationResult:
    """Extract data[0].url or data[0].b64_json."""
    data = body.get("data") if isinstance(body, dict) else None
    if isinstance(data, list):
        for item in data:
            if not isinstance(item, dict):
                continue
            if item.get("url"):
                return _result_from_url(item["url"], family)
            if item.get("b64_json"):
                image_bytes = _decode_base64(item["b64_json"], family)
                return GenerationResult(mime_type=sniff_mime_type(image_bytes), image_bytes=image_bytes,
                                        family=family)

    shape_present = isinstance(data, list)
    _refuse_or_reject(body, family, shape_present, "a 'data' array")


def first_output_image(entry: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """First image descriptor ({filename, subfolder, type}) in a history entry's outputs."""
    outputs = entry.get("outputs") if isinstance(entry, dict) else None
    if not isinstance(outputs, dict):
        return None
    for node_output in outputs.values():
        if not isinstance(node_output, dict):
            continue
        for image in node_output.get("images") or []:
            if isinstance(image, dict) and image.get("filename"):
                return image
    return None


def view_url(base_url: str, descriptor: Dict[str, Any]) -> str:
    """URL of the executor's view endpoint for an output image descriptor."""
    query = urlencode({
        "filename": descriptor.get("filename", ""),
        "subfolder": descriptor.get("subfolder", ""),
        "type": descriptor.get("type", "output"),
    })
    return f"{normalize_base_url(base_url)}/view?{query}"


def fetch_image(url: str, family: ProtocolFamily, timeout: float = DEFAULT_DOWNLOAD_TIMEOUT) -> bytes:
    """
    Download an image.

    Raises:
        TransportError: On request failure or a non-2xx status
    """
    try:
        response = requests.get(url, timeout=timeout)
    except requests.exceptions.RequestException as e:
        logger.error(f"Image download failed: {e}")
        raise TransportError(f"Image download failed: {e}", endpoint=url)
    if not response.ok:
        raise TransportError("Image download failed", status_code=response.status_code,
                             response=response.text, endpoint=url)
    if not response.content:
        raise ProtocolError("Downloaded image is empty", family=family.value)
    return response.content


def parse_graph_response(body: Any, family: ProtocolFamily = ProtocolFamily.GRAPH_EXECUTOR,
                         base_url: Optional[str] = None,
                         download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT,
                         **kwargs) -> GenerationResult:
    """
    Fetch the first output image of a finished graph-executor job.

    Args:
        body (Any): History entry for the job ({"outputs": ..., "status": ...})
        family (ProtocolFamily): graph-executor
        base_url (str): Executor base URL for the view endpoint
        download_timeout (float): Timeout for the image download
    """
    descriptor = first_output_image(body)
    if descriptor is None:
        shape_present = isinstance(body, dict) and isinstance(body.get("outputs"), dict)
        _refuse_or_reject(body, family, shape_present, "a history entry with 'outputs'")
    if not base_url:
        raise ValueError("base_url is required to fetch graph executor outputs")

    url = view_url(base_url, descriptor)
    logger.info(f"Fetching output image {descriptor.get('filename')}")
    image_bytes = fetch_image(url, family, timeout=download_timeout)
    return GenerationResult(mime_type=sniff_mime_type(image_bytes), image_bytes=image_bytes,
                            image_remote_ref=url, family=family)


RESPONSE_PARSERS: Dict[ProtocolFamily, Callable[..., GenerationResult]] = {
    ProtocolFamily.GEMINI_NATIVE: parse_gemini_response,
    ProtocolFamily.GEMINI_COMPATIBLE: parse_gemini_response,
    ProtocolFamily.CHAT_COMPLETIONS: parse_chat_completions_response,
    ProtocolFamily.UNIFIED_IMAGE_ENDPOINT: parse_unified_response,
    ProtocolFamily.GRAPH_EXECUTOR: parse_graph_response,
}


def parse_response(body: Any, family: ProtocolFamily, base_url: Optional[str] = None,
                   **kwargs) -> GenerationResult:
    """
    Parse a response body into a GenerationResult.

    Args:
        body (Any): Decoded JSON body (the history entry for the graph executor)
        family (ProtocolFamily): Family the request was built for
        base_url (str, optional): Executor base URL, graph-executor only
        **kwargs: Passed to the family parser (download_timeout)

    Returns:
        GenerationResult: The image

    Raises:
        UpstreamRefusal: If the body explains why there is no image
        ProtocolError: If the body does not have the family's shape
    """
    return RESPONSE_PARSERS[family](body, family=family, base_url=base_url, **kwargs)

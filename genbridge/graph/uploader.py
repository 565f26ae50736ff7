"""
Image upload to the local graph executor.

The multipart/form-data body is framed by hand as one byte buffer:

    --<boundary>\\r\\n
    Content-Disposition: form-data; name="image"; filename="<name>"\\r\\n
    Content-Type: image/png\\r\\n
    \\r\\n
    <image bytes>\\r\\n
    --<boundary>--\\r\\n
"""

import base64
import binascii
import random
import string
from typing import Optional, Tuple

import requests

from genbridge.core.constants import DEFAULT_MIME_TYPE, DEFAULT_REQUEST_TIMEOUT
from genbridge.core.error_handler import (
    ProtocolError,
    UploadError,
    ValidationError,
    truncate_text,
)
from genbridge.core.logging_config import get_logger
from genbridge.core.types import ProtocolFamily
from genbridge.core.utils import get_timestamp, sniff_mime_type
from genbridge.providers.classifier import normalize_base_url

# Initialize logger
logger = get_logger(__name__)

BOUNDARY_PREFIX = "----GenBridgeFormBoundary"
BOUNDARY_TOKEN_LENGTH = 16
FORM_FIELD_NAME = "image"
UPLOAD_PATH = "/upload/image"


def generate_boundary(rng: Optional[random.Random] = None) -> str:
    """
    Generate a multipart boundary token.

    Args:
        rng (random.Random, optional): Random source

    Returns:
        str: Boundary such as ----GenBridgeFormBoundaryAb3dEf...
    """
    rng = rng or random.SystemRandom()
    alphabet = string.ascii_letters + string.digits
    return BOUNDARY_PREFIX + "".join(rng.choice(alphabet) for _ in range(BOUNDARY_TOKEN_LENGTH))


def encode_multipart(image_bytes: bytes, filename: str, boundary: str,
                     content_type: str = DEFAULT_MIME_TYPE,
                     field_name: str = FORM_FIELD_NAME) -> bytes:
    """
    Frame a single file as a multipart/form-data body.

    Args:
        image_bytes (bytes): Raw file contents
        filename (str): Filename reported to the server
        boundary (str): Boundary token (without the leading dashes)
        content_type (str): MIME type of the file part
        field_name (str): Form field name

    Returns:
        bytes: The complete request body
    """
    head = (
        f"--{boundary}\r\n"
        f"Content-Disposition: form-data; name=\"{field_name}\"; filename=\"{filename}\"\r\n"
        f"Content-Type: {content_type}\r\n"
        f"\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + image_bytes + tail


def decode_base64_image(base64_image: str) -> bytes:
    """
    Decode a base64 image, accepting an optional data URL prefix.

    Raises:
        ValidationError: If the input is not valid base64
    """
    data = base64_image or ""
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        image_bytes = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image data is not valid base64", field="image")
    if not image_bytes:
        raise ValidationError("Image data is empty", field="image")
    return image_bytes


class BinaryUploader:
    """
    Registers input images with the graph executor.

    Uploads are never retried; a failed upload fails the generation.
    """

    def __init__(self, timeout: float = DEFAULT_REQUEST_TIMEOUT, rng: Optional[random.Random] = None):
        self.timeout = timeout
        self.rng = rng

    def build_request(self, image_bytes: bytes, filename: str) -> Tuple[bytes, dict]:
        """
        Build the upload body and headers.

        Returns:
            Tuple[bytes, dict]: (body, headers)
        """
        boundary = generate_boundary(self.rng)
        content_type = sniff_mime_type(image_bytes)
        body = encode_multipart(image_bytes, filename, boundary, content_type=content_type)
        headers = {"Content-Type": f"multipart/form-data; boundary={boundary}"}
        return body, headers

    def upload_image(self, base64_image: str, base_url: str, filename: Optional[str] = None) -> str:
        """
        Upload a base64-encoded image.

        Args:
            base64_image (str): Base64 image data (a data URL is accepted)
            base_url (str): Graph executor base URL
            filename (str, optional): Filename to report; generated when omitted

        Returns:
            str: Server filename, as "subfolder/name" when a subfolder is reported

        Raises:
            ValidationError: If the image data is not valid base64
            UploadError: If the request fails or the server rejects it
            ProtocolError: If the response does not name the stored file
        """
        image_bytes = decode_base64_image(base64_image)
        return self.upload_bytes(image_bytes, base_url, filename)

    def upload_bytes(self, image_bytes: bytes, base_url: str, filename: Optional[str] = None) -> str:
        """Upload raw image bytes. See upload_image."""
        filename = filename or f"genbridge_input_{get_timestamp()}.png"
        url = normalize_base_url(base_url) + UPLOAD_PATH
        body, headers = self.build_request(image_bytes, filename)

        logger.info(f"Uploading {filename} ({len(image_bytes)} bytes) to {url}")
        try:
            response = requests.post(url, data=body, headers=headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.error(f"Upload request failed: {e}")
            raise UploadError(f"Image upload failed: {e}", endpoint=url)

        if not response.ok:
            raise UploadError(
                "Image upload rejected",
                status_code=response.status_code,
                response=response.text,
                endpoint=url,
            )

        try:
            data = response.json()
        except ValueError:
            raise ProtocolError(
                f"Upload response is not JSON: {truncate_text(response.text)}",
                family=ProtocolFamily.GRAPH_EXECUTOR.value,
            )

        name = data.get("name") if isinstance(data, dict) else None
        if not name:
            raise ProtocolError(
                f"Upload response has no filename: {truncate_text(data)}",
                family=ProtocolFamily.GRAPH_EXECUTOR.value,
            )

        subfolder = data.get("subfolder") or ""
        server_filename = f"{subfolder}/{name}" if subfolder else name
        logger.info(f"Uploaded image stored as {server_filename}")
        return server_filename

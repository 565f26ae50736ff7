"""
Common utility functions for the genbridge package.

This module provides utility functions used across the genbridge package:
- File and directory operations
- Image encoding and MIME type detection
- Data URL handling
"""

import io
import os
import json
import base64
import datetime
from typing import Dict, Any, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from genbridge.core.constants import DEFAULT_MIME_TYPE


def ensure_dir(path: str) -> str:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path (str): Directory path

    Returns:
        str: The directory path
    """
    os.makedirs(path, exist_ok=True)
    return path


def get_timestamp() -> str:
    """
    Get a timestamp string for file naming.

    Returns:
        str: Timestamp such as 20240131_235959_123
    """
    now = datetime.datetime.now()
    return now.strftime("%Y%m%d_%H%M%S_") + f"{now.microsecond // 1000:03d}"


def load_json_file(file_path: str) -> Dict[str, Any]:
    """
    Load a JSON file.

    Args:
        file_path (str): Path to JSON file

    Returns:
        Dict[str, Any]: Loaded JSON data

    Raises:
        FileNotFoundError: If file does not exist
        json.JSONDecodeError: If file is not valid JSON
    """
    with open(file_path, 'r', encoding='utf-8') as f:
        return json.load(f)


def save_json_file(data: Any, file_path: str, indent: int = 2) -> None:
    """
    Save data to a JSON file.

    Args:
        data (Any): Data to save
        file_path (str): Path to save JSON file
        indent (int, optional): JSON indentation level
    """
    directory = os.path.dirname(file_path)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(file_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent, ensure_ascii=False)


def encode_image_to_base64(image_bytes: bytes) -> str:
    """
    Encode image bytes to a base64 string.

    Args:
        image_bytes (bytes): Image data

    Returns:
        str: Base64-encoded image string
    """
    return base64.b64encode(image_bytes).decode('ascii')


def sniff_mime_type(image_bytes: bytes, default: str = DEFAULT_MIME_TYPE) -> str:
    """
    Detect the MIME type of encoded image bytes.

    Args:
        image_bytes (bytes): Encoded image data
        default (str): MIME type to return when the format is not recognised

    Returns:
        str: MIME type such as "image/png"
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            mime_type = Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError, ValueError):
        return default
    return mime_type or default


def get_image_size(image_bytes: bytes) -> Optional[Tuple[int, int]]:
    """
    Read the pixel dimensions of encoded image bytes.

    Args:
        image_bytes (bytes): Encoded image data

    Returns:
        Optional[Tuple[int, int]]: (width, height), or None if unreadable
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            return img.size
    except (UnidentifiedImageError, OSError, ValueError):
        return None


def to_data_url(image_bytes: bytes, mime_type: Optional[str] = None) -> str:
    """
    Build a base64 data URL for image bytes.

    Args:
        image_bytes (bytes): Encoded image data
        mime_type (str, optional): MIME type; sniffed when omitted

    Returns:
        str: data:<mime>;base64,<data>
    """
    mime_type = mime_type or sniff_mime_type(image_bytes)
    return f"data:{mime_type};base64,{encode_image_to_base64(image_bytes)}"


def parse_data_url(url: str) -> Tuple[str, bytes]:
    """
    Split a base64 data URL into MIME type and decoded bytes.

    Args:
        url (str): data:image/...;base64,... URL

    Returns:
        Tuple[str, bytes]: (mime_type, image_bytes)

    Raises:
        ValueError: If the URL is not a base64 data URL
    """
    if not url.startswith("data:") or ";base64," not in url:
        raise ValueError("Not a base64 data URL")
    header, encoded = url.split(";base64,", 1)
    mime_type = header[len("data:"):] or DEFAULT_MIME_TYPE
    return mime_type, base64.b64decode(encoded, validate=True)


def mime_type_from_url(url: str) -> str:
    """
    Guess an image MIME type from a URL's file extension.

    Args:
        url (str): Remote image URL

    Returns:
        str: MIME type, image/png when no known extension is present
    """
    path = url.split("?", 1)[0].lower()
    if path.endswith(".webp"):
        return "image/webp"
    if path.endswith(".jpg") or path.endswith(".jpeg"):
        return "image/jpeg"
    return DEFAULT_MIME_TYPE

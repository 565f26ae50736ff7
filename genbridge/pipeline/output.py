"""
Saving generation results to disk.
"""

import os
from typing import Optional

from genbridge.core.config import get_config_value
from genbridge.core.logging_config import get_logger
from genbridge.core.types import GenerationResult
from genbridge.core.utils import ensure_dir, get_timestamp

# Initialize logger
logger = get_logger(__name__)


def result_filename(result: GenerationResult) -> str:
    """generated_image_<timestamp>.<ext>"""
    return f"generated_image_{get_timestamp()}.{result.extension}"


def save_result(result: GenerationResult, directory: Optional[str] = None,
                filename: Optional[str] = None) -> str:
    """
    Write a result's image bytes to a file.

    Args:
        result (GenerationResult): Result with image_bytes set
        directory (str, optional): Target directory; defaults to output.directory
        filename (str, optional): File name; generated from a timestamp when omitted

    Returns:
        str: Path of the written file

    Raises:
        ValueError: If the result only has a remote reference
    """
    if result.image_bytes is None:
        raise ValueError(f"Result has no image bytes to save (remote: {result.image_remote_ref})")

    directory = os.path.expanduser(directory or get_config_value("output.directory", "output"))
    ensure_dir(directory)
    path = os.path.join(directory, filename or result_filename(result))

    with open(path, "wb") as f:
        f.write(result.image_bytes)

    logger.info(f"Saved generated image to {path}")
    return path

"""
Shared fixtures for the genbridge tests.
"""

import io

import pytest
from PIL import Image


def make_image_bytes(fmt="PNG", size=(8, 8), color=(255, 0, 0)):
    """
    Encode a small solid-colour image.
    """
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG", color=(255, 0, 0))


@pytest.fixture
def jpeg_bytes():
    return make_image_bytes("JPEG", color=(0, 0, 255))


@pytest.fixture
def source_bytes():
    return make_image_bytes("PNG", size=(16, 9), color=(0, 255, 0))


@pytest.fixture
def reference_bytes():
    return make_image_bytes("JPEG", size=(9, 16), color=(0, 0, 255))

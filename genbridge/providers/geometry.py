"""
Pixel geometry for resolution tiers and aspect ratios.

compute_pixel_size() turns a resolution tier and a "W:H" ratio into target
pixel dimensions for the local graph executor, whose models require sizes that
are multiples of 8. closest_aspect_ratio() maps canvas dimensions to the
nearest ratio the hosted providers accept.
"""

import math
from typing import Optional, Tuple

from genbridge.core.types import ResolutionTier

# Linear size of a square image for each tier (about 1, 4 and 16 megapixels)
TIER_BASE_SIZES = {
    ResolutionTier.LOW: 1024,
    ResolutionTier.MID: 2048,
    ResolutionTier.HIGH: 4096,
}

DIMENSION_MULTIPLE = 8

# Ratios accepted by the hosted providers, as (label, value)
STANDARD_ASPECT_RATIOS = [
    ("1:1", 1.0),
    ("2:3", 2 / 3),
    ("3:2", 3 / 2),
    ("3:4", 3 / 4),
    ("4:3", 4 / 3),
    ("4:5", 4 / 5),
    ("5:4", 5 / 4),
    ("9:16", 9 / 16),
    ("16:9", 16 / 9),
    ("21:9", 21 / 9),
]


def _parse_number(text: Optional[str]) -> Optional[float]:
    try:
        value = float((text or "").strip())
    except ValueError:
        return None
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def parse_aspect_ratio(aspect_ratio: Optional[str]) -> float:
    """
    Parse a "W:H" string into W/H.

    Never raises: a missing or malformed part counts as 1, and a non-positive
    result falls back to 1.0.

    Args:
        aspect_ratio (str): Ratio such as "16:9"

    Returns:
        float: The ratio as a positive float
    """
    parts = (aspect_ratio or "").split(":", 1)
    width = _parse_number(parts[0])
    height = _parse_number(parts[1]) if len(parts) > 1 else None

    if width is None:
        width = 1.0
    if height is None:
        height = 1.0

    if width <= 0 or height <= 0:
        return 1.0
    ratio = width / height
    if ratio <= 0 or not math.isfinite(ratio):
        return 1.0
    return ratio


def _round_to_multiple(value: float, multiple: int = DIMENSION_MULTIPLE) -> int:
    return max(multiple, int(round(value / multiple)) * multiple)


def compute_pixel_size(tier: ResolutionTier, aspect_ratio: Optional[str]) -> Tuple[int, int]:
    """
    Compute target pixel dimensions for a tier and aspect ratio.

    The pixel count stays close to base * base while the ratio is honoured:
    height = base / sqrt(ratio), width = height * ratio.

    Args:
        tier (ResolutionTier): Resolution tier
        aspect_ratio (str): Ratio string "W:H"

    Returns:
        Tuple[int, int]: (width, height), both positive multiples of 8
    """
    base = TIER_BASE_SIZES.get(tier, TIER_BASE_SIZES[ResolutionTier.LOW])
    ratio = parse_aspect_ratio(aspect_ratio)

    height = base / math.sqrt(ratio)
    width = height * ratio

    return _round_to_multiple(width), _round_to_multiple(height)


def closest_aspect_ratio(width: float, height: float) -> str:
    """
    Find the standard aspect ratio closest to the given dimensions.

    Args:
        width (float): Canvas width
        height (float): Canvas height

    Returns:
        str: Closest ratio label, "1:1" for non-positive dimensions
    """
    if not width or not height or width <= 0 or height <= 0:
        return "1:1"

    canvas_ratio = width / height
    closest_label, _ = min(STANDARD_ASPECT_RATIOS, key=lambda item: abs(canvas_ratio - item[1]))
    return closest_label

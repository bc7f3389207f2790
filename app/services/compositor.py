"""
Pixel operations for restyle segments.

The forward transform builds the buffer sent to the generation service:
the segment, optionally cropped, with borrowed neighbor strips stacked above
and below it. The inverse transform cuts the segment's own rows back out of
whatever the service returned, scaling the recorded offsets when the service
answered at a different resolution.

Buffers cross module boundaries as encoded image bytes; they are decoded to
OpenCV BGR arrays only inside this module.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from io import BytesIO
from typing import Tuple

import cv2
import numpy as np
from PIL import Image

from app.models.pages import CompositeGeometry, SegmentPlan

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CompositeResult:
    """Buffer to send to the generation service plus the geometry to undo it."""

    data: bytes
    geometry: CompositeGeometry


def decode_image(data: bytes) -> np.ndarray:
    """Decode encoded image bytes into a 3-channel BGR array."""
    pil_image = Image.open(BytesIO(data))
    if pil_image.mode != "RGB":
        pil_image = pil_image.convert("RGB")
    return cv2.cvtColor(np.array(pil_image), cv2.COLOR_RGB2BGR)


def encode_png(image: np.ndarray) -> bytes:
    """Encode a BGR array as PNG bytes."""
    pil_image = Image.fromarray(cv2.cvtColor(image, cv2.COLOR_BGR2RGB))
    buffer = BytesIO()
    pil_image.save(buffer, format="PNG")
    return buffer.getvalue()


def image_size(data: bytes) -> Tuple[int, int]:
    """Return `(width, height)` from the image header without decoding pixels."""
    with Image.open(BytesIO(data)) as pil_image:
        return pil_image.size


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _resize_to_width(image: np.ndarray, width: int) -> np.ndarray:
    h, w = image.shape[:2]
    if w == width:
        return image
    new_h = max(1, _round_half_up(h * width / w))
    return cv2.resize(image, (width, new_h), interpolation=cv2.INTER_LANCZOS4)


def _neighbor_strip(neighbor: bytes, width: int, rows: int, from_bottom: bool) -> np.ndarray | None:
    """
    Cut an edge strip from a neighbor scaled to `width`.

    `from_bottom` selects the neighbor's bottom rows (used above the segment);
    otherwise its top rows (used below). Returns None if the neighbor cannot
    be decoded.
    """
    try:
        decoded = decode_image(neighbor)
    except (OSError, ValueError) as exc:
        logger.warning("Failed to decode neighbor image for expansion: %s", exc)
        return None

    scaled = _resize_to_width(decoded, width)
    rows = min(rows, scaled.shape[0])
    if rows <= 0:
        return None
    if from_bottom:
        return scaled[scaled.shape[0] - rows :]
    return scaled[:rows]


def expand_segment(
    own: bytes,
    plan: SegmentPlan,
    predecessor: bytes | None = None,
    successor: bytes | None = None,
) -> CompositeResult:
    """
    Forward transform: crop the segment and stack neighbor strips around it.

    Args:
        own: Encoded segment image.
        plan: Adjustments from the boundary planner.
        predecessor: Encoded image of the segment above (needed when
            `plan.expand_top` is set).
        successor: Encoded image of the segment below (needed when
            `plan.expand_bottom` is set).

    Returns:
        The composite plus realized geometry. An identity plan returns the
        original bytes object untouched.
    """
    if plan.is_identity:
        width, height = image_size(own)
        return CompositeResult(data=own, geometry=CompositeGeometry(width=width, original_height=height))

    image = decode_image(own)
    height, width = image.shape[:2]

    if plan.has_crop:
        image = image[plan.crop_top : height - plan.crop_bottom]

    top_strip = None
    if plan.expand_top and predecessor is not None:
        top_strip = _neighbor_strip(predecessor, width, plan.expand_top, from_bottom=True)
    bottom_strip = None
    if plan.expand_bottom and successor is not None:
        bottom_strip = _neighbor_strip(successor, width, plan.expand_bottom, from_bottom=False)

    expanded_top = 0 if top_strip is None else top_strip.shape[0]
    expanded_bottom = 0 if bottom_strip is None else bottom_strip.shape[0]
    geometry = CompositeGeometry(
        width=width,
        original_height=image.shape[0],
        expanded_top=expanded_top,
        expanded_bottom=expanded_bottom,
        crop_top=plan.crop_top,
        crop_bottom=plan.crop_bottom,
    )

    if not geometry.has_expansion and not plan.has_crop:
        # Every requested strip was unavailable; nothing changed.
        return CompositeResult(data=own, geometry=geometry)

    canvas = np.zeros((geometry.total_height, width, 3), dtype=np.uint8)
    offset = 0
    if top_strip is not None:
        canvas[offset : offset + expanded_top] = top_strip
        offset += expanded_top
    canvas[offset : offset + geometry.original_height] = image
    offset += geometry.original_height
    if bottom_strip is not None:
        canvas[offset : offset + expanded_bottom] = bottom_strip

    logger.debug(
        "Composited segment %dx%d (crop %d/%d, expand %d/%d)",
        width,
        geometry.total_height,
        plan.crop_top,
        plan.crop_bottom,
        expanded_top,
        expanded_bottom,
    )
    return CompositeResult(data=encode_png(canvas), geometry=geometry)


def restore_segment(result: bytes, geometry: CompositeGeometry) -> bytes:
    """
    Inverse transform: cut the segment's own rows out of a generated buffer.

    The service may answer at a different resolution, so offsets are scaled
    by `returned_height / sent_height` rather than applied 1:1. Without
    expansion the buffer is returned as-is.
    """
    if not geometry.has_expansion:
        return result

    image = decode_image(result)
    ai_height = image.shape[0]
    scale = ai_height / geometry.total_height

    extract_top = _round_half_up(geometry.expanded_top * scale)
    extract_height = _round_half_up(geometry.original_height * scale)
    extract_top = min(extract_top, max(0, ai_height - 1))
    extract_bottom = min(ai_height, extract_top + max(1, extract_height))

    logger.debug(
        "Restoring segment: ai_height=%d scale=%.4f rows=[%d, %d)",
        ai_height,
        scale,
        extract_top,
        extract_bottom,
    )
    return encode_png(image[extract_top:extract_bottom])


def fit_to_geometry(data: bytes, geometry: CompositeGeometry) -> bytes:
    """
    Resize a restored segment to the segment's native size.

    Returns the input unchanged when it already has the target dimensions.
    """
    width, height = image_size(data)
    if (width, height) == (geometry.width, geometry.original_height):
        return data

    logger.info(
        "Resizing restyled segment %dx%d -> %dx%d",
        width,
        height,
        geometry.width,
        geometry.original_height,
    )
    image = decode_image(data)
    resized = cv2.resize(
        image,
        (geometry.width, geometry.original_height),
        interpolation=cv2.INTER_LANCZOS4,
    )
    return encode_png(resized)

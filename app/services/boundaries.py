"""
Seam planning for restyle segments.

Each segment may borrow a strip from a neighbor (positive offset) so the
generation model sees across the seam, or trim its own edge (negative offset).
This module only computes the numbers; pixels are handled by the compositor.
"""

from __future__ import annotations

from typing import Dict, Iterable

from app.models.pages import BoundaryOverride, SegmentPlan

# Rows of original content a crop must always leave in place.
MIN_REMAINING_HEIGHT = 100


def plan_segment(
    own_height: int,
    override: BoundaryOverride | None,
    predecessor_height: int | None = None,
    successor_height: int | None = None,
) -> SegmentPlan:
    """
    Compute the SegmentPlan for one segment.

    Args:
        own_height: Native height of the segment.
        override: Offsets for this segment, or None for no adjustment.
        predecessor_height: Height of the segment above, if it takes part in
            the run and its pixels are available.
        successor_height: Height of the segment below, same conditions.

    Returns:
        The plan. Top crop and top expansion both derive from the sign of
        `offset_top`, so at most one of them is non-zero (same for bottom).
    """
    if override is None:
        return SegmentPlan()

    offset_top = override.offset_top
    offset_bottom = override.offset_bottom

    expand_top = 0
    expand_bottom = 0
    crop_top = 0
    crop_bottom = 0

    if offset_top > 0 and predecessor_height:
        expand_top = min(offset_top, predecessor_height)
    elif offset_top < 0:
        crop_top = max(0, min(-offset_top, own_height - MIN_REMAINING_HEIGHT))

    if offset_bottom > 0 and successor_height:
        expand_bottom = min(offset_bottom, successor_height)
    elif offset_bottom < 0:
        crop_bottom = max(0, min(-offset_bottom, own_height - crop_top - MIN_REMAINING_HEIGHT))

    return SegmentPlan(
        crop_top=crop_top,
        crop_bottom=crop_bottom,
        expand_top=expand_top,
        expand_bottom=expand_bottom,
    )


def index_overrides(overrides: Iterable[BoundaryOverride]) -> Dict[int, BoundaryOverride]:
    """Key overrides by section id; a later entry for the same id wins."""
    return {override.section_id: override for override in overrides}

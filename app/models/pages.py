from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List


def utcnow() -> datetime:
    """Return an explicit, timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class Viewport(str, Enum):
    """Which capture of a section a segment belongs to."""

    DESKTOP = "desktop"
    MOBILE = "mobile"


@dataclass(slots=True)
class MediaImage:
    """
    A stored raster image referenced by a page section.

    `width`/`height` are the pixel dimensions recorded when the image was
    stored; they may be 0 for legacy records that never captured metadata.
    """

    id: int
    file_path: str
    width: int = 0
    height: int = 0
    mime: str = "image/png"
    # URL of the image this one was derived from, if any.
    source_url: str | None = None
    # Producer tag, e.g. "capture", "restyle-edit".
    source_type: str | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True)
class Section:
    """One layout section of a page, captured as a full-width image segment."""

    id: int
    order: int
    image: MediaImage | None = None
    mobile_image: MediaImage | None = None

    def image_for(self, viewport: Viewport) -> MediaImage | None:
        if viewport is Viewport.MOBILE:
            return self.mobile_image
        return self.image


@dataclass(slots=True)
class Page:
    """A landing page as seen by the restyle pipeline."""

    id: int
    owner_id: str
    title: str = ""
    sections: List[Section] = field(default_factory=list)

    def ordered_sections(self) -> List[Section]:
        return sorted(self.sections, key=lambda section: section.order)


@dataclass(slots=True)
class SectionImageHistory:
    """Audit record written whenever a section is relinked to a new image."""

    section_id: int
    user_id: str | None
    previous_image_id: int | None
    new_image_id: int
    action_type: str
    created_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class BoundaryOverride:
    """
    Per-section seam adjustment supplied with a restyle job.

    Positive offsets borrow pixels from the adjacent segment's near edge;
    negative offsets trim pixels from this segment's own edge.
    """

    section_id: int
    offset_top: int = 0
    offset_bottom: int = 0


@dataclass(frozen=True, slots=True)
class SegmentPlan:
    """Pixel adjustments for one segment, derived from a BoundaryOverride."""

    crop_top: int = 0
    crop_bottom: int = 0
    expand_top: int = 0
    expand_bottom: int = 0

    @property
    def is_identity(self) -> bool:
        return not (self.crop_top or self.crop_bottom or self.expand_top or self.expand_bottom)

    @property
    def has_crop(self) -> bool:
        return bool(self.crop_top or self.crop_bottom)

    @property
    def has_expansion(self) -> bool:
        return bool(self.expand_top or self.expand_bottom)


@dataclass(frozen=True, slots=True)
class CompositeGeometry:
    """
    Geometry actually realized by the forward composite.

    `original_height` is the segment's own height after cropping, which is
    also the height of the final persisted image. `expanded_top` and
    `expanded_bottom` are the strip heights really stacked onto the canvas;
    they can be smaller than planned when a neighbor strip was unavailable.
    """

    width: int
    original_height: int
    expanded_top: int = 0
    expanded_bottom: int = 0
    crop_top: int = 0
    crop_bottom: int = 0

    @property
    def total_height(self) -> int:
        return self.original_height + self.expanded_top + self.expanded_bottom

    @property
    def has_expansion(self) -> bool:
        return bool(self.expanded_top or self.expanded_bottom)


@dataclass(frozen=True, slots=True)
class UpdatedSection:
    """Summary of one successful segment replacement, reported on completion."""

    section_id: int
    viewport: Viewport
    old_image_id: int | None
    new_image_id: int
    new_image_url: str


class OutcomeStatus(str, Enum):
    UPDATED = "updated"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class SegmentOutcome:
    """
    Result of processing one segment.

    Partial failure is an expected outcome, so the per-segment worker returns
    this tagged value instead of raising.
    """

    section_id: int
    index: int
    viewport: Viewport
    status: OutcomeStatus
    updated: UpdatedSection | None = None
    # Raw (post crop-back) output bytes, kept for the style chain.
    output: bytes | None = None
    reason: str = ""

    @classmethod
    def updated_with(
        cls,
        section_id: int,
        index: int,
        viewport: Viewport,
        updated: UpdatedSection,
        output: bytes,
    ) -> "SegmentOutcome":
        return cls(
            section_id=section_id,
            index=index,
            viewport=viewport,
            status=OutcomeStatus.UPDATED,
            updated=updated,
            output=output,
        )

    @classmethod
    def skipped(cls, section_id: int, index: int, viewport: Viewport, reason: str) -> "SegmentOutcome":
        return cls(
            section_id=section_id,
            index=index,
            viewport=viewport,
            status=OutcomeStatus.SKIPPED,
            reason=reason,
        )

    @property
    def is_updated(self) -> bool:
        return self.status is OutcomeStatus.UPDATED

from enum import Enum
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool


class PeopleMode(str, Enum):
    """How people in a segment should be replaced."""

    SIMILAR = "similar"
    DIFFERENT = "different"


class TextMode(str, Enum):
    """How strongly on-image copy should be rewritten."""

    NUANCE = "nuance"
    COPYWRITING = "copywriting"
    REWRITE = "rewrite"


class ColorScheme(str, Enum):
    """Named palettes available to the color edit category."""

    BLUE = "blue"
    GREEN = "green"
    PURPLE = "purple"
    ORANGE = "orange"
    MONOCHROME = "monochrome"


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PeopleOption(_CamelModel):
    enabled: StrictBool = Field(..., description="Replace people shown in the segment.")
    mode: PeopleMode = Field(..., description="Keep a similar persona or switch to a different one.")


class TextOption(_CamelModel):
    enabled: StrictBool = Field(..., description="Rewrite text rendered in the segment.")
    mode: TextMode = Field(..., description="Rewrite intensity.")


class ToggleOption(_CamelModel):
    enabled: StrictBool = Field(..., description="Whether this edit category is active.")


class ColorOption(_CamelModel):
    enabled: StrictBool = Field(..., description="Recolor the segment with a named palette.")
    scheme: ColorScheme = Field(..., description="Palette key.")


class EditOptions(_CamelModel):
    """The six independently toggleable edit categories of a restyle job."""

    people: PeopleOption
    text: TextOption
    pattern: ToggleOption
    objects: ToggleOption
    color: ColorOption
    layout: ToggleOption

    def enabled_categories(self) -> List[str]:
        """Names of enabled categories, in a fixed order."""
        names = ("people", "text", "pattern", "objects", "color", "layout")
        return [name for name in names if getattr(self, name).enabled]

    def has_any_enabled(self) -> bool:
        return bool(self.enabled_categories())


class ColorPalette(_CamelModel):
    primary: str | None = None
    secondary: str | None = None
    accent: str | None = None
    background: str | None = None


class Typography(_CamelModel):
    style: str | None = None
    mood: str | None = None


class LayoutTraits(_CamelModel):
    density: str | None = None
    style: str | None = None


class DesignDefinition(_CamelModel):
    """Design traits of the original page that the restyle should preserve."""

    color_palette: ColorPalette | None = Field(default=None, alias="colorPalette")
    typography: Typography | None = None
    layout: LayoutTraits | None = None
    vibe: str | None = None
    description: str | None = None


class SectionBoundary(_CamelModel):
    """Seam adjustment for one section, keyed by section id."""

    id: int = Field(..., description="Section identifier.")
    boundary_offset_top: int = Field(default=0, alias="boundaryOffsetTop")
    boundary_offset_bottom: int = Field(default=0, alias="boundaryOffsetBottom")


class RestyleRequest(_CamelModel):
    """Body of `POST /pages/{id}/restyle`."""

    edit_options: EditOptions = Field(..., alias="editOptions")
    design_definition: DesignDefinition | None = Field(default=None, alias="designDefinition")
    include_mobile: StrictBool = Field(default=False, alias="includeMobile")
    section_boundaries: List[SectionBoundary] = Field(
        default_factory=list,
        alias="sectionBoundaries",
        description="Optional per-section offsets; absent sections use zero offsets.",
    )


class ProgressPayload(BaseModel):
    """`progress` event emitted while a job runs."""

    type: Literal["progress"] = "progress"
    step: str
    message: str
    current: int | None = None
    total: int | None = None


class UpdatedSectionPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    section_id: int = Field(..., serialization_alias="sectionId")
    viewport: str
    old_image_id: int | None = Field(default=None, serialization_alias="oldImageId")
    new_image_id: int = Field(..., serialization_alias="newImageId")
    new_image_url: str = Field(..., serialization_alias="newImageUrl")


class CompletePayload(BaseModel):
    """Terminal `complete` event."""

    type: Literal["complete"] = "complete"
    success: bool = True
    updated_count: int = Field(..., serialization_alias="updatedCount")
    total_count: int = Field(..., serialization_alias="totalCount")
    sections: List[UpdatedSectionPayload] = Field(default_factory=list)


class ErrorPayload(BaseModel):
    """Terminal `error` event."""

    type: Literal["error"] = "error"
    error: str

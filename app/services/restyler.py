"""
Restyle a single segment through the image-generation service.

The instruction text is assembled from fixed blocks, one per enabled edit
category, so the same options always produce the same prompt. When a style
reference is available it is sent ahead of the target image with an explicit
instruction to match it.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from app.api.v1.schemas import DesignDefinition, EditOptions, PeopleMode, TextMode
from app.services.generation_client import GenerationHTTPClient, image_part, text_part

logger = logging.getLogger(__name__)

COLOR_SCHEMES: Dict[str, Dict[str, str]] = {
    "blue": {"primary": "#3B82F6", "secondary": "#1E40AF", "accent": "#60A5FA", "background": "#F0F9FF"},
    "green": {"primary": "#22C55E", "secondary": "#15803D", "accent": "#86EFAC", "background": "#F0FDF4"},
    "purple": {"primary": "#A855F7", "secondary": "#7C3AED", "accent": "#C4B5FD", "background": "#FAF5FF"},
    "orange": {"primary": "#F97316", "secondary": "#EA580C", "accent": "#FDBA74", "background": "#FFF7ED"},
    "monochrome": {"primary": "#000000", "secondary": "#374151", "accent": "#6B7280", "background": "#FFFFFF"},
}

# Sampling temperatures.
TEMPERATURE_WITH_REFERENCE = 0.1
TEMPERATURE_LAYOUT = 0.35
TEMPERATURE_DEFAULT = 0.15

STYLE_REFERENCE_LABEL = "^ Style reference image (match this style exactly)."
TARGET_LABEL = "^ Image to edit."


def build_edit_instructions(options: EditOptions) -> str:
    """Render the enabled edit categories as instruction blocks."""
    instructions: List[str] = []

    if options.people.enabled:
        if options.people.mode is PeopleMode.SIMILAR:
            instructions.append(
                "[People and photos]\n"
                "Replace any people with different people in the same mood and situation.\n"
                "- Keep age range, gender and clothing style\n"
                "- Vary expression and pose naturally\n"
                "- Keep them in harmony with the background"
            )
        else:
            instructions.append(
                "[People and photos]\n"
                "Replace any people with people of a completely different look.\n"
                "- Give the section a fresh impression\n"
                "- Choose people that fit the product or service\n"
                "- Keep them in harmony with the background"
            )

    if options.text.enabled:
        if options.text.mode is TextMode.NUANCE:
            instructions.append(
                "[Text]\n"
                "Slightly change the nuance of the text.\n"
                "- Same meaning, slightly different wording\n"
                "- Keep it readable\n"
                "- Do not change the font style"
            )
        elif options.text.mode is TextMode.COPYWRITING:
            instructions.append(
                "[Text - copywriting]\n"
                "Improve the text into more compelling copy.\n"
                "- Words that resonate with the reader\n"
                "- Calls to action that prompt a click\n"
                "- Short, memorable phrases\n"
                "- Keep the font style"
            )
        else:
            instructions.append(
                "[Text - full rewrite]\n"
                "Rewrite the text with entirely new content.\n"
                "- Keep the same purpose and role\n"
                "- Use completely new expressions\n"
                "- Keep the font style"
            )

    if options.pattern.enabled:
        instructions.append(
            "[Patterns and background]\n"
            "Change the background patterns.\n"
            "- Use new gradients, textures or patterns\n"
            "- Match the overall mood\n"
            "- Never hurt readability"
        )

    if options.objects.enabled:
        instructions.append(
            "[Objects and icons]\n"
            "Change icons and decorative objects.\n"
            "- Replace icons with a different style\n"
            "- Redesign decorative elements\n"
            "- Keep everything visually unified"
        )

    if options.color.enabled:
        scheme = COLOR_SCHEMES[options.color.scheme.value]
        instructions.append(
            "[Colors]\n"
            "Replace the palette completely with:\n"
            f"- Primary: {scheme['primary']}\n"
            f"- Secondary: {scheme['secondary']}\n"
            f"- Accent: {scheme['accent']}\n"
            f"- Background: {scheme['background']}\n"
            "Apply it to every colored element (buttons, backgrounds, icons, decorations)."
        )

    if options.layout.enabled:
        instructions.append(
            "[Layout]\n"
            "Rearrange the layout.\n"
            "- Move elements into a better arrangement\n"
            "- Rebalance whitespace\n"
            "- Keep the role of the section"
        )

    return "\n\n".join(instructions)


def build_design_traits(definition: DesignDefinition | None) -> str:
    """Render design traits of the original page, or an empty string."""
    if definition is None:
        return ""

    parts: List[str] = []
    if definition.vibe:
        parts.append(f"[Mood] {definition.vibe}")
    if definition.description:
        parts.append(f"[Design characteristics] {definition.description}")

    palette = definition.color_palette
    if palette:
        colors = [
            f"{label}: {value}"
            for label, value in (
                ("primary", palette.primary),
                ("secondary", palette.secondary),
                ("accent", palette.accent),
                ("background", palette.background),
            )
            if value
        ]
        if colors:
            parts.append(f"[Color palette] {', '.join(colors)}")

    typography = definition.typography
    if typography:
        typo = [f"{label}: {value}" for label, value in (("style", typography.style), ("mood", typography.mood)) if value]
        if typo:
            parts.append(f"[Typography] {', '.join(typo)}")

    layout = definition.layout
    if layout:
        traits = [f"{label}: {value}" for label, value in (("density", layout.density), ("style", layout.style)) if value]
        if traits:
            parts.append(f"[Layout] {', '.join(traits)}")

    return "\n".join(parts)


def describe_segment(segment_index: int, total_segments: int) -> tuple[str, str]:
    """Return `(position, role)` used to orient the model within the page."""
    if segment_index == 0:
        return "header / hero section", "navigation, logo, main visual"
    if segment_index == total_segments - 1:
        return "footer section", "call to action, contact, copyright"
    return f"content section ({segment_index + 1}/{total_segments})", "body content"


def build_prompt(
    options: EditOptions,
    segment_index: int,
    total_segments: int,
    has_style_reference: bool,
    design_hints: DesignDefinition | None = None,
) -> str:
    position, role = describe_segment(segment_index, total_segments)
    reference_block = ""
    if has_style_reference:
        reference_block = (
            "[Top priority: consistent style]\n"
            "The attached style reference image is the first segment of this page.\n"
            "Match it exactly for:\n"
            "- background colors and gradients\n"
            "- button colors, shapes and corner radius\n"
            "- font style\n"
            "- icon style\n"
            "- shadow strength\n"
            "- decorative elements\n\n"
        )

    traits = build_design_traits(design_hints)
    traits_block = ""
    if traits:
        traits_block = (
            "[Original design traits to keep]\n"
            f"{traits}\n"
            "Use these to keep the overall mood.\n\n"
        )

    return (
        "You are a professional web designer. Edit one part (a segment image) of a web page.\n\n"
        f"{reference_block}"
        "[Important] This image is one slice of a full page and will be joined with the other slices.\n\n"
        "[Segment]\n"
        f"- Position: {position} (of {total_segments} segments)\n"
        f"- Role: {role}\n\n"
        "[Strict rules]\n"
        "1. Keep the size: output exactly the same aspect ratio and resolution as the input\n"
        "2. Top and bottom edges connect to other segments; do not break background colors or patterns there\n"
        "3. Change only what the edit instructions below ask for\n\n"
        f"{traits_block}"
        "[Edit instructions]\n"
        f"{build_edit_instructions(options)}\n\n"
        "[Output] A high quality web design image with the same size as the input."
    )


def choose_temperature(options: EditOptions, has_style_reference: bool) -> float:
    if has_style_reference:
        return TEMPERATURE_WITH_REFERENCE
    if options.layout.enabled:
        return TEMPERATURE_LAYOUT
    return TEMPERATURE_DEFAULT


class RemoteRestyler:
    """Restyle one segment per call; never raises."""

    def __init__(self, client: GenerationHTTPClient):
        self.client = client

    def restyle(
        self,
        segment: bytes,
        edit_options: EditOptions,
        segment_index: int,
        total_segments: int,
        style_reference: bytes | None = None,
        design_hints: DesignDefinition | None = None,
    ) -> bytes | None:
        """
        Regenerate `segment` according to `edit_options`.

        Returns the generated image bytes, or None when nothing is enabled or
        the remote call produced nothing usable.
        """
        if not edit_options.has_any_enabled():
            logger.info("Segment %d: no edits selected, skipping", segment_index + 1)
            return None

        has_reference = style_reference is not None
        prompt = build_prompt(edit_options, segment_index, total_segments, has_reference, design_hints)

        parts: List[dict] = []
        if has_reference:
            parts.append(image_part(style_reference))
            parts.append(text_part(STYLE_REFERENCE_LABEL))
            parts.append(image_part(segment))
            parts.append(text_part(f"{TARGET_LABEL}\n\n{prompt}"))
        else:
            parts.append(image_part(segment))
            parts.append(text_part(prompt))

        logger.info(
            "Processing segment %d/%d%s (edits: %s)",
            segment_index + 1,
            total_segments,
            " with style reference" if has_reference else "",
            ", ".join(edit_options.enabled_categories()),
        )

        try:
            result = self.client.generate_image(parts, choose_temperature(edit_options, has_reference))
        except Exception as exc:  # noqa: BLE001
            logger.error("Error processing segment %d: %s", segment_index + 1, exc)
            return None

        if result is None:
            logger.error("Segment %d: generation produced no image", segment_index + 1)
        else:
            logger.info("Segment %d processed successfully", segment_index + 1)
        return result

import base64

import pytest
from pydantic import ValidationError

from app.api.v1.schemas import ColorOption, ColorScheme, DesignDefinition, TextMode
from app.services.restyler import (
    COLOR_SCHEMES,
    STYLE_REFERENCE_LABEL,
    TARGET_LABEL,
    TEMPERATURE_DEFAULT,
    TEMPERATURE_LAYOUT,
    TEMPERATURE_WITH_REFERENCE,
    RemoteRestyler,
    build_design_traits,
    build_edit_instructions,
    build_prompt,
    choose_temperature,
    describe_segment,
)
from conftest import edit_options, make_png


class RecordingClient:
    def __init__(self, result=b"generated", error=None):
        self.result = result
        self.error = error
        self.calls = []

    def generate_image(self, parts, temperature):
        self.calls.append((parts, temperature))
        if self.error is not None:
            raise self.error
        return self.result


def test_prompt_is_deterministic():
    options = edit_options(people=True, color=True)
    first = build_prompt(options, 1, 3, has_style_reference=False)
    second = build_prompt(options, 1, 3, has_style_reference=False)
    assert first == second


def test_instructions_follow_enabled_categories():
    text = build_edit_instructions(edit_options(pattern=True, color=True))
    assert "[Patterns and background]" in text
    assert "#3B82F6" in text
    assert "[People" not in text
    assert "[Layout]" not in text


def test_text_modes_render_distinct_blocks():
    options = edit_options(text=True)
    nuance = build_edit_instructions(options)
    rewrite_text = options.text.model_copy(update={"mode": TextMode.REWRITE})
    rewrite = build_edit_instructions(options.model_copy(update={"text": rewrite_text}))
    assert nuance != rewrite


def test_reference_block_only_with_reference():
    options = edit_options(objects=True)
    assert "[Top priority: consistent style]" in build_prompt(options, 1, 3, has_style_reference=True)
    assert "[Top priority: consistent style]" not in build_prompt(options, 1, 3, has_style_reference=False)


def test_design_traits_rendered_into_prompt():
    hints = DesignDefinition.model_validate(
        {"vibe": "calm", "colorPalette": {"primary": "#112233"}, "typography": {"style": "serif"}}
    )
    traits = build_design_traits(hints)
    assert "[Mood] calm" in traits
    assert "primary: #112233" in traits
    assert traits in build_prompt(edit_options(pattern=True), 0, 2, False, hints)
    assert build_design_traits(None) == ""


@pytest.mark.parametrize(
    "index,total,expected",
    [(0, 3, "header / hero section"), (2, 3, "footer section"), (1, 3, "content section (2/3)")],
)
def test_describe_segment_positions(index, total, expected):
    assert describe_segment(index, total)[0] == expected


def test_temperature_selection():
    assert choose_temperature(edit_options(layout=True), has_style_reference=True) == TEMPERATURE_WITH_REFERENCE
    assert choose_temperature(edit_options(layout=True), has_style_reference=False) == TEMPERATURE_LAYOUT
    assert choose_temperature(edit_options(color=True), has_style_reference=False) == TEMPERATURE_DEFAULT


def test_restyle_without_reference_sends_image_then_prompt():
    client = RecordingClient()
    segment = make_png(40, 30)

    result = RemoteRestyler(client).restyle(segment, edit_options(color=True), 0, 3)

    assert result == b"generated"
    parts, temperature = client.calls[0]
    assert len(parts) == 2
    assert base64.b64decode(parts[0]["inlineData"]["data"]) == segment
    assert parts[0]["inlineData"]["mimeType"] == "image/png"
    assert "[Edit instructions]" in parts[1]["text"]
    assert temperature == TEMPERATURE_DEFAULT


def test_restyle_with_reference_sends_reference_first():
    client = RecordingClient()
    segment = make_png(40, 30, seed=1)
    reference = make_png(40, 30, seed=2)

    RemoteRestyler(client).restyle(segment, edit_options(color=True), 1, 3, style_reference=reference)

    parts, temperature = client.calls[0]
    assert base64.b64decode(parts[0]["inlineData"]["data"]) == reference
    assert parts[1]["text"] == STYLE_REFERENCE_LABEL
    assert base64.b64decode(parts[2]["inlineData"]["data"]) == segment
    assert parts[3]["text"].startswith(TARGET_LABEL)
    assert temperature == TEMPERATURE_WITH_REFERENCE


def test_restyle_with_nothing_enabled_skips_the_call():
    client = RecordingClient()
    assert RemoteRestyler(client).restyle(make_png(10, 10), edit_options(), 0, 1) is None
    assert client.calls == []


def test_restyle_client_error_yields_none():
    client = RecordingClient(error=RuntimeError("boom"))
    assert RemoteRestyler(client).restyle(make_png(10, 10), edit_options(pattern=True), 0, 1) is None


def test_restyle_client_without_result_yields_none():
    client = RecordingClient(result=None)
    assert RemoteRestyler(client).restyle(make_png(10, 10), edit_options(pattern=True), 0, 1) is None


@pytest.mark.parametrize("scheme", list(ColorScheme))
def test_every_color_scheme_renders_its_palette(scheme):
    options = edit_options(color=True)
    options = options.model_copy(update={"color": options.color.model_copy(update={"scheme": scheme})})

    text = build_edit_instructions(options)

    assert "[Colors]" in text
    assert COLOR_SCHEMES[scheme.value]["primary"] in text


def test_unknown_color_scheme_is_rejected():
    with pytest.raises(ValidationError):
        ColorOption.model_validate({"enabled": True, "scheme": "teal"})

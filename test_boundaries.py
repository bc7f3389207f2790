from app.models.pages import BoundaryOverride, SegmentPlan
from app.services.boundaries import MIN_REMAINING_HEIGHT, index_overrides, plan_segment


def test_no_override_is_identity():
    plan = plan_segment(600, None, predecessor_height=400, successor_height=300)
    assert plan == SegmentPlan()
    assert plan.is_identity


def test_zero_offsets_are_identity():
    plan = plan_segment(600, BoundaryOverride(section_id=2), predecessor_height=400, successor_height=300)
    assert plan.is_identity


def test_positive_top_offset_expands_from_predecessor():
    plan = plan_segment(600, BoundaryOverride(section_id=2, offset_top=50), predecessor_height=400)
    assert plan.expand_top == 50
    assert plan.crop_top == 0
    assert not plan.has_crop


def test_expansion_capped_by_neighbor_height():
    plan = plan_segment(
        600,
        BoundaryOverride(section_id=2, offset_top=500, offset_bottom=900),
        predecessor_height=120,
        successor_height=300,
    )
    assert plan.expand_top == 120
    assert plan.expand_bottom == 300


def test_expansion_without_neighbor_does_nothing():
    plan = plan_segment(600, BoundaryOverride(section_id=1, offset_top=50, offset_bottom=40))
    assert plan.is_identity


def test_negative_offsets_crop_own_edges():
    plan = plan_segment(600, BoundaryOverride(section_id=2, offset_top=-30, offset_bottom=-20))
    assert (plan.crop_top, plan.crop_bottom) == (30, 20)
    assert not plan.has_expansion


def test_crop_leaves_minimum_height():
    plan = plan_segment(300, BoundaryOverride(section_id=2, offset_top=-250, offset_bottom=-250))
    assert plan.crop_top == 300 - MIN_REMAINING_HEIGHT
    assert plan.crop_bottom == 0
    assert 300 - plan.crop_top - plan.crop_bottom == MIN_REMAINING_HEIGHT


def test_crop_on_short_segment_is_floored_at_zero():
    plan = plan_segment(80, BoundaryOverride(section_id=2, offset_top=-40, offset_bottom=-40))
    assert plan.crop_top == 0
    assert plan.crop_bottom == 0


def test_each_edge_either_crops_or_expands():
    plan = plan_segment(
        600,
        BoundaryOverride(section_id=2, offset_top=-40, offset_bottom=60),
        predecessor_height=400,
        successor_height=300,
    )
    assert plan.crop_top == 40 and plan.expand_top == 0
    assert plan.expand_bottom == 60 and plan.crop_bottom == 0


def test_index_overrides_keys_by_section_and_last_wins():
    overrides = index_overrides(
        [
            BoundaryOverride(section_id=1, offset_top=10),
            BoundaryOverride(section_id=2, offset_bottom=-5),
            BoundaryOverride(section_id=1, offset_top=20),
        ]
    )
    assert set(overrides) == {1, 2}
    assert overrides[1].offset_top == 20

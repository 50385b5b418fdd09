"""
Tests for the hierarchy builder (presentation tree, best-effort repair).
"""

from __future__ import annotations

from placeops.places.hierarchy import build_hierarchy
from placeops.places.models import (
    BuildingEntity,
    DeskEntity,
    FloorEntity,
    RoomEntity,
    SectionEntity,
)


def ids(nodes):
    return [node.entity.external_id for node in nodes]


def assert_each_entity_once(result, entities):
    seen = [node.entity.external_id for node in result.walk()]
    assert sorted(seen) == sorted({e.external_id for e in entities})


class TestValidTree:
    def test_nesting_and_order(self):
        entities = [
            DeskEntity(external_id="d2", display_name="Desk B", parent_external_id="s1"),
            FloorEntity(external_id="f1", display_name="Level 1", parent_external_id="b1"),
            SectionEntity(external_id="s1", display_name="East", parent_external_id="f1"),
            DeskEntity(external_id="d1", display_name="Desk A", parent_external_id="s1"),
            RoomEntity(external_id="r1", display_name="Fjord", parent_external_id="f1"),
            BuildingEntity(external_id="b1", display_name="HQ"),
        ]
        result = build_hierarchy(entities)

        assert ids(result.roots) == ["b1"]
        (floor,) = result.roots[0].children
        assert ids(floor.children) == ["s1", "r1"]  # East < Fjord
        assert ids(floor.children[0].children) == ["d1", "d2"]
        assert result.repaired == []
        assert result.count == 6
        assert_each_entity_once(result, entities)

    def test_roots_sorted_by_code_point(self):
        entities = [
            BuildingEntity(external_id="b1", display_name="annex"),
            BuildingEntity(external_id="b2", display_name="Zeta"),
            BuildingEntity(external_id="b3", display_name="Alpha"),
        ]
        assert ids(build_hierarchy(entities).roots) == ["b3", "b2", "b1"]

    def test_room_may_hang_off_a_section(self):
        entities = [
            BuildingEntity(external_id="b1", display_name="HQ"),
            FloorEntity(external_id="f1", display_name="L1", parent_external_id="b1"),
            SectionEntity(external_id="s1", display_name="S", parent_external_id="f1"),
            RoomEntity(external_id="r1", display_name="R", parent_external_id="s1"),
        ]
        result = build_hierarchy(entities)
        section = result.roots[0].children[0].children[0]
        assert ids(section.children) == ["r1"]


class TestRepair:
    def test_orphan_floor_goes_under_first_building(self):
        entities = [
            BuildingEntity(external_id="b2", display_name="Second"),
            BuildingEntity(external_id="b1", display_name="First"),
            FloorEntity(external_id="f9", display_name="Lost", parent_external_id="gone"),
        ]
        result = build_hierarchy(entities)
        first = result.roots[0]
        assert first.entity.external_id == "b1"
        assert ids(first.children) == ["f9"]
        assert first.children[0].repaired is True
        assert result.repaired == ["f9"]

    def test_orphan_without_candidate_becomes_root(self):
        entities = [DeskEntity(external_id="d1", display_name="Desk", parent_external_id="s-missing")]
        result = build_hierarchy(entities)
        assert ids(result.roots) == ["d1"]
        assert result.roots[0].repaired is True

    def test_building_with_stray_parent_is_a_root(self):
        entities = [BuildingEntity(external_id="b1", display_name="HQ", parent_external_id="x")]
        result = build_hierarchy(entities)
        assert ids(result.roots) == ["b1"]
        assert result.roots[0].repaired is True

    def test_wrong_parent_type_is_repaired(self):
        entities = [
            BuildingEntity(external_id="b1", display_name="HQ"),
            DeskEntity(external_id="d1", display_name="Desk", parent_external_id="b1"),
        ]
        result = build_hierarchy(entities)
        assert "d1" in result.repaired
        assert_each_entity_once(result, entities)

    def test_self_reference_is_repaired(self):
        entities = [
            BuildingEntity(external_id="b1", display_name="HQ"),
            FloorEntity(external_id="f1", display_name="Loop", parent_external_id="f1"),
        ]
        result = build_hierarchy(entities)
        assert ids(result.roots[0].children) == ["f1"]
        assert result.repaired == ["f1"]

    def test_orphans_of_several_types(self):
        entities = [
            BuildingEntity(external_id="b1", display_name="HQ"),
            FloorEntity(external_id="f1", display_name="Orphan floor", parent_external_id="nowhere"),
            SectionEntity(external_id="s1", display_name="Orphan section", parent_external_id="nowhere"),
        ]
        result = build_hierarchy(entities)
        assert_each_entity_once(result, entities)
        assert set(result.repaired) == {"f1", "s1"}


class TestDuplicates:
    def test_first_seen_wins(self):
        entities = [
            BuildingEntity(external_id="b1", display_name="Original"),
            BuildingEntity(external_id="b1", display_name="Impostor"),
        ]
        result = build_hierarchy(entities)
        assert [n.entity.display_name for n in result.roots] == ["Original"]
        assert result.duplicates == ["b1"]

    def test_to_dict(self):
        result = build_hierarchy(
            [
                BuildingEntity(external_id="b1", display_name="HQ"),
                FloorEntity(external_id="f1", display_name="L1", parent_external_id="b1"),
            ]
        )
        data = result.to_dict()
        assert data["count"] == 2
        root = data["roots"][0]
        assert root["type"] == "Building"
        assert root["children"][0]["external_id"] == "f1"
        assert root["children"][0]["repaired"] is False

"""
Tests for the reconciliation engine.

Every test drives a real ``PlaceDirectory`` over a fake shell, so listings
go through the channel, the classifier and the parser exactly as in
production.
"""

from __future__ import annotations

import json

import pytest

from placeops.mirror.repository import MirrorRepository
from placeops.places.directory import PlaceDirectory
from placeops.places.models import PlaceType
from placeops.places.reconcile import MirrorReconciler, SyncStatus


async def run_refresh(make_channel, remote, repo):
    async with make_channel(remote) as channel:
        return await MirrorReconciler(PlaceDirectory(channel), repo).refresh()


def seed_tree(remote):
    remote.add("Building", "b1", "HQ")
    remote.add("Floor", "f1", "Level 1", "b1")
    remote.add("Section", "s1", "East", "f1")
    remote.add("Desk", "d1", "Desk 1", "s1", Capacity=1, IsBookable=True)
    remote.add("Room", "r1", "Fjord", "f1", Capacity=8)


def external_ids(repo, place_type):
    return sorted(repo.external_ids(place_type))


class RecordingRepository(MirrorRepository):
    """Notes the type of every delete in call order."""

    def __init__(self, session):
        super().__init__(session)
        self.deleted: list[PlaceType] = []

    def delete(self, place_type, row_id):
        self.deleted.append(place_type)
        super().delete(place_type, row_id)


# ------------------------------------------------------------------ #
# Happy path
# ------------------------------------------------------------------ #


class TestRefresh:
    @pytest.mark.asyncio
    async def test_empty_mirror_gets_linked_rows(self, make_channel, remote, repo):
        remote.add("Building", "b1", "HQ")
        remote.add("Floor", "f1", "Level 1", "b1")

        report = await run_refresh(make_channel, remote, repo)

        assert report.success
        building = repo.get_by_external_id(PlaceType.BUILDING, "b1")
        floor = repo.get_by_external_id(PlaceType.FLOOR, "f1")
        assert floor.building_id == building.id
        assert report.stats[PlaceType.BUILDING].created == 1
        assert report.stats[PlaceType.FLOOR].created == 1

    @pytest.mark.asyncio
    async def test_full_tree(self, make_channel, remote, repo):
        seed_tree(remote)

        report = await run_refresh(make_channel, remote, repo)

        assert report.success
        assert repo.snapshot() == {"Building": 1, "Floor": 1, "Section": 1, "Desk": 1, "Room": 1}
        room = repo.get_by_external_id(PlaceType.ROOM, "r1")
        assert room.floor_id == repo.get_by_external_id(PlaceType.FLOOR, "f1").id
        assert room.section_id is None
        assert room.capacity == 8
        assert repo.get_by_external_id(PlaceType.DESK, "d1").is_bookable is True
        assert all(s.status is SyncStatus.SYNCED for s in report.stats.values())

    @pytest.mark.asyncio
    async def test_second_run_changes_nothing(self, make_channel, remote, repo):
        seed_tree(remote)
        await run_refresh(make_channel, remote, repo)
        before = {t: repo.external_ids(t) for t in PlaceType}

        report = await run_refresh(make_channel, remote, repo)

        assert report.totals()["created"] == 0
        assert report.totals()["removed"] == 0
        assert {t: repo.external_ids(t) for t in PlaceType} == before

    @pytest.mark.asyncio
    async def test_updates_attributes(self, make_channel, remote, repo):
        remote.add("Building", "b1", "HQ", City="Oslo")
        await run_refresh(make_channel, remote, repo)
        remote.places["Building"][0]["City"] = "Bergen"
        remote.places["Building"][0]["DisplayName"] = "Head Office"

        report = await run_refresh(make_channel, remote, repo)

        row = repo.get_by_external_id(PlaceType.BUILDING, "b1")
        assert (row.display_name, row.city) == ("Head Office", "Bergen")
        assert report.stats[PlaceType.BUILDING].updated == 1

    @pytest.mark.asyncio
    async def test_stage_names(self, make_channel, remote, repo):
        remote.add("Building", "b1", "HQ")
        report = await run_refresh(make_channel, remote, repo)
        assert report.completed_stages[:5] == [f"fetch:{t.value}" for t in PlaceType]
        assert report.completed_stages[5] == "delete:Room"
        assert report.completed_stages[-1] == "upsert:Room"

    @pytest.mark.asyncio
    async def test_record_of_another_type_is_skipped(self, make_channel, remote, repo):
        remote.add("Building", "b1", "HQ")
        remote.places["Building"].append(
            {"PlaceId": "x1", "DisplayName": "Odd", "Type": "Floor", "ParentId": ""}
        )

        report = await run_refresh(make_channel, remote, repo)

        assert report.success
        assert external_ids(repo, PlaceType.BUILDING) == ["b1"]
        assert all("x1" not in repo.external_ids(t) for t in PlaceType)
        assert report.stats[PlaceType.BUILDING].created == 1


# ------------------------------------------------------------------ #
# Deletion
# ------------------------------------------------------------------ #


class TestDeletion:
    @pytest.mark.asyncio
    async def test_vanished_subtree_is_removed(self, make_channel, remote, repo):
        remote.add("Building", "b1", "HQ")
        remote.add("Floor", "f1", "Level 1", "b1")
        remote.add("Section", "s1", "East", "f1")
        await run_refresh(make_channel, remote, repo)
        remote.remove("f1")
        remote.remove("s1")

        report = await run_refresh(make_channel, remote, repo)

        assert report.success
        assert repo.snapshot() == {"Building": 1, "Floor": 0, "Section": 0, "Desk": 0, "Room": 0}

    @pytest.mark.asyncio
    async def test_children_deleted_before_parents(self, make_channel, remote, session):
        seed_tree(remote)
        await run_refresh(make_channel, remote, MirrorRepository(session))
        for place_id in ("b1", "f1", "s1", "d1", "r1"):
            remote.remove(place_id)
        recording = RecordingRepository(session)

        report = await run_refresh(make_channel, remote, recording)

        assert report.success
        assert recording.deleted == [
            PlaceType.ROOM,
            PlaceType.DESK,
            PlaceType.SECTION,
            PlaceType.FLOOR,
            PlaceType.BUILDING,
        ]
        assert sum(recording.snapshot().values()) == 0

    @pytest.mark.asyncio
    async def test_parent_with_children_is_deferred(self, make_channel, remote, repo):
        seed_tree(remote)
        await run_refresh(make_channel, remote, repo)
        # the section vanishes but its desk is still listed under it
        remote.remove("s1")

        report = await run_refresh(make_channel, remote, repo)

        assert report.success
        assert report.stats[PlaceType.SECTION].deferred == 1
        assert external_ids(repo, PlaceType.SECTION) == ["s1"]
        assert external_ids(repo, PlaceType.DESK) == ["d1"]

    @pytest.mark.asyncio
    async def test_deferred_parent_removed_once_children_move(self, make_channel, remote, repo):
        remote.add("Building", "b1", "HQ")
        remote.add("Building", "b2", "Annex")
        remote.add("Floor", "f1", "Level 1", "b1")
        await run_refresh(make_channel, remote, repo)
        remote.remove("b1")
        remote.places["Floor"][0]["ParentId"] = "b2"

        report = await run_refresh(make_channel, remote, repo)

        assert report.success
        assert external_ids(repo, PlaceType.BUILDING) == ["b2"]
        floor = repo.get_by_external_id(PlaceType.FLOOR, "f1")
        assert floor.building_id == repo.get_by_external_id(PlaceType.BUILDING, "b2").id
        stats = report.stats[PlaceType.BUILDING]
        assert (stats.removed, stats.deferred) == (1, 0)
        assert report.completed_stages[-1] == "delete:Building"

        again = await run_refresh(make_channel, remote, repo)

        assert again.totals()["removed"] == 0
        assert again.totals()["deferred"] == 0

    @pytest.mark.asyncio
    async def test_rejected_records_suppress_deletes(self, make_channel, remote, repo):
        remote.add("Building", "b1", "HQ")
        remote.add("Floor", "f1", "Level 1", "b1")
        remote.add("Floor", "f2", "Level 2", "b1")
        await run_refresh(make_channel, remote, repo)
        remote.remove("f2")
        remote.places["Floor"].append({"PlaceId": "f3", "Type": "Floor", "ParentId": "b1"})

        report = await run_refresh(make_channel, remote, repo)

        stats = report.stats[PlaceType.FLOOR]
        assert stats.rejected == 1
        assert stats.removed == 0
        assert external_ids(repo, PlaceType.FLOOR) == ["f1", "f2"]


# ------------------------------------------------------------------ #
# Unresolved parents
# ------------------------------------------------------------------ #


class TestUnresolvedParents:
    @pytest.mark.asyncio
    async def test_floor_with_unknown_parent_is_not_created(self, make_channel, remote, repo):
        remote.add("Building", "b1", "HQ")
        remote.add("Floor", "f1", "Level 1", "b1")
        remote.add("Floor", "f9", "Stray", "nowhere")

        report = await run_refresh(make_channel, remote, repo)

        assert report.success
        assert external_ids(repo, PlaceType.FLOOR) == ["f1"]
        assert report.stats[PlaceType.FLOOR].unresolved == 1

    @pytest.mark.asyncio
    async def test_desk_under_unknown_section_is_skipped(self, make_channel, remote, repo):
        seed_tree(remote)
        remote.add("Desk", "d2", "Desk 2", "s-missing")

        await run_refresh(make_channel, remote, repo)

        assert external_ids(repo, PlaceType.DESK) == ["d1"]

    @pytest.mark.asyncio
    async def test_existing_row_keeps_its_link(self, make_channel, remote, repo):
        remote.add("Building", "b1", "HQ")
        remote.add("Floor", "f1", "Level 1", "b1")
        await run_refresh(make_channel, remote, repo)
        remote.places["Floor"][0]["ParentId"] = "b-unknown"
        remote.places["Floor"][0]["DisplayName"] = "Level One"

        report = await run_refresh(make_channel, remote, repo)

        floor = repo.get_by_external_id(PlaceType.FLOOR, "f1")
        assert floor.display_name == "Level One"
        assert floor.parent_external_id == "b1"
        assert floor.building_id == repo.get_by_external_id(PlaceType.BUILDING, "b1").id
        assert report.stats[PlaceType.FLOOR].unresolved == 1


# ------------------------------------------------------------------ #
# Fetch failures
# ------------------------------------------------------------------ #


class TestFetchFailures:
    @pytest.mark.asyncio
    async def test_building_failure_aborts_everything(self, make_channel, remote, repo):
        seed_tree(remote)
        await run_refresh(make_channel, remote, repo)
        before = repo.snapshot()
        remote.places = {t.value: [] for t in PlaceType}
        remote.failing = {"Building"}

        report = await run_refresh(make_channel, remote, repo)

        assert report.success is False
        assert report.aborted_stage == "fetch:Building"
        assert report.error["error_type"] == "RemoteCommandFailed"
        assert repo.snapshot() == before
        assert all(s.status is SyncStatus.ABORTED for s in report.stats.values())

    @pytest.mark.asyncio
    async def test_unreadable_building_listing_aborts(self, make_channel, remote, repo):
        remote.raw["Building"] = "PlaceId DisplayName\n------- -----------\nb1      HQ"

        report = await run_refresh(make_channel, remote, repo)

        assert report.aborted_stage == "fetch:Building"
        assert repo.snapshot()["Building"] == 0

    @pytest.mark.asyncio
    async def test_subordinate_failure_skips_only_that_type(self, make_channel, remote, repo):
        seed_tree(remote)
        await run_refresh(make_channel, remote, repo)
        remote.remove("d1")
        remote.remove("r1")
        remote.add("Room", "r2", "Lagoon", "s1")
        remote.failing = {"Desk"}

        report = await run_refresh(make_channel, remote, repo)

        assert report.success
        assert report.skipped_types == [PlaceType.DESK]
        assert "Access Denied" in report.stats[PlaceType.DESK].error
        assert external_ids(repo, PlaceType.DESK) == ["d1"]
        assert external_ids(repo, PlaceType.ROOM) == ["r2"]
        assert "fetch:Desk" not in report.completed_stages
        assert "upsert:Desk" not in report.completed_stages

    @pytest.mark.asyncio
    async def test_table_listing_skips_the_type(self, make_channel, remote, repo):
        seed_tree(remote)
        await run_refresh(make_channel, remote, repo)
        remote.raw["Section"] = "PlaceId DisplayName\n------- -----------\ns1      East"

        report = await run_refresh(make_channel, remote, repo)

        assert report.success
        assert report.skipped_types == [PlaceType.SECTION]
        assert external_ids(repo, PlaceType.SECTION) == ["s1"]

    @pytest.mark.asyncio
    async def test_report_serializes(self, make_channel, remote, repo):
        remote.failing = {"Building"}
        report = await run_refresh(make_channel, remote, repo)
        data = json.loads(json.dumps(report.to_dict()))
        assert data["success"] is False
        assert data["types"]["Floor"]["status"] == "aborted"
        assert set(data["totals"]) == {"created", "updated", "removed", "unresolved", "deferred"}

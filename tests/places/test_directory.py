"""Tests for the remote place directory: command construction and parsing of replies."""

from __future__ import annotations

import pytest

from placeops.core.errors import EntitySchemaError, RemoteCommandFailed
from placeops.places.directory import PlaceDirectory, ps_quote
from placeops.places.models import PlaceType
from placeops.places.parser import OutputShape


class TestQuoting:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("HQ", "'HQ'"),
            ("O'Brien Hall", "'O''Brien Hall'"),
            ("$(Remove-Item C:\\)", "'$(Remove-Item C:\\)'"),
            ("Room ‘A’", "'Room ‘‘A’’'"),
            (12, "'12'"),
        ],
    )
    def test_ps_quote(self, value, expected):
        assert ps_quote(value) == expected


class TestCommands:
    def test_list_command(self):
        assert PlaceDirectory.list_command(PlaceType.SECTION) == "Get-PlaceV3 -Type Section | ConvertTo-Json -Depth 4"

    def test_create_command(self):
        command = PlaceDirectory.create_command(
            PlaceType.DESK,
            {
                "display_name": "  Desk 7 ",
                "parent_external_id": "s1",
                "capacity": 1,
                "is_bookable": True,
                "description": "   ",
                "city": None,
            },
        )
        assert command == (
            "New-Place -Type Desk -Name 'Desk 7' -ParentId 's1' -Capacity 1 -IsBookable $true"
            " | ConvertTo-Json -Depth 4"
        )

    def test_create_command_needs_a_name(self):
        with pytest.raises(EntitySchemaError) as info:
            PlaceDirectory.create_command(PlaceType.BUILDING, {"display_name": "  "})
        assert info.value.field == "display_name"

    @pytest.mark.parametrize(
        ("tenant", "expected"),
        [
            (None, "Connect-ExchangeOnline"),
            ("  ", "Connect-ExchangeOnline"),
            ("admin@contoso.com", "Connect-ExchangeOnline -UserPrincipalName 'admin@contoso.com'"),
            ("contoso.onmicrosoft.com", "Connect-ExchangeOnline -Organization 'contoso.onmicrosoft.com'"),
        ],
    )
    def test_connect_command(self, tenant, expected):
        assert PlaceDirectory.connect_command(tenant) == expected


class TestRemote:
    @pytest.mark.asyncio
    async def test_list_entities(self, make_channel, remote):
        remote.add("Floor", "f1", "Level 1", "b1")
        async with make_channel(remote) as channel:
            outcome = await PlaceDirectory(channel).list_entities("floor")
        assert outcome.shape is OutputShape.JSON
        assert [e.external_id for e in outcome.entities] == ["f1"]
        assert outcome.entities[0].parent_external_id == "b1"

    @pytest.mark.asyncio
    async def test_list_failure_raises(self, make_channel, remote):
        remote.failing = {"Building"}
        async with make_channel(remote) as channel:
            with pytest.raises(RemoteCommandFailed) as info:
                await PlaceDirectory(channel).list_entities(PlaceType.BUILDING)
        assert info.value.requires_connection is True

    @pytest.mark.asyncio
    async def test_create_entity_parses_the_new_record(self, make_channel, remote):
        async with make_channel(remote) as channel:
            created = await PlaceDirectory(channel).create_entity(
                PlaceType.FLOOR, {"display_name": "Level 2", "parent_external_id": "b1"}
            )
        assert created.entity is not None
        assert created.entity.display_name == "Level 2"
        assert created.entity.parent_external_id == "b1"
        assert remote.places["Floor"][0]["PlaceId"] == created.entity.external_id

    @pytest.mark.asyncio
    async def test_check_module(self, make_channel, remote):
        async with make_channel(remote) as channel:
            directory = PlaceDirectory(channel)
            installed = await directory.check_module("ExchangeOnlineManagement")
            missing = await directory.check_module("MicrosoftPlaces")
        assert installed.status == "installed"
        assert installed.version == "3.4.0"
        assert missing.status == "not_installed"
        assert missing.version is None

    @pytest.mark.asyncio
    async def test_install_module(self, make_channel, remote):
        async with make_channel(remote) as channel:
            directory = PlaceDirectory(channel)
            result = await directory.install_module("MicrosoftPlaces")
            info = await directory.check_module("MicrosoftPlaces")
        assert result.succeeded
        assert "-Scope CurrentUser" in result.command
        assert info.status == "installed"

    @pytest.mark.asyncio
    async def test_connect_is_returned_unraised(self, make_channel, remote):
        remote.deny_connect = True
        async with make_channel(remote) as channel:
            result = await PlaceDirectory(channel).connect("contoso.onmicrosoft.com")
        assert result.succeeded is False
        assert result.rule == "connect_hard_failure"

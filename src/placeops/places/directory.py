"""
Remote place directory -- the cmdlets the console drives through the channel.

Every string that reaches the shell goes through :func:`ps_quote`, which
produces a single-quoted PowerShell literal, so display names containing
quotes or ``$`` cannot break out of the argument.

Commands issued:
    ::

        list_entities    Get-PlaceV3 -Type <T> | ConvertTo-Json -Depth 4
        create_entity    New-Place -Type <T> -Name '<n>' [-ParentId ...] | ConvertTo-Json -Depth 4
        connect          Connect-ExchangeOnline [-UserPrincipalName|-Organization '<tenant>']
        connect_places   Connect-MicrosoftPlaces
        check_module     Get-Module -ListAvailable -Name '<m>' | Select-Object Name, Version | ConvertTo-Json
        install_module   Install-Module -Name '<m>' -Force -AllowClobber -Scope CurrentUser
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from placeops.channel.channel import CommandChannel, CommandResult
from placeops.core.errors import EntitySchemaError
from placeops.core.logging import get_logger
from placeops.core.settings import PlaceOpsSettings
from placeops.places.models import PlaceEntity, PlaceType
from placeops.places.parser import ParseOutcome, parse_entities, strip_ansi

logger = get_logger(__name__)

EXCHANGE_SERVICE = "Exchange Online"
PLACES_SERVICE = "Places Module"

# canonical attribute -> New-Place parameter
CREATE_PARAMETERS: dict[str, str] = {
    "description": "Description",
    "parent_external_id": "ParentId",
    "country_or_region": "CountryOrRegion",
    "state": "State",
    "city": "City",
    "street": "Street",
    "postal_code": "PostalCode",
    "phone": "Phone",
    "capacity": "Capacity",
    "is_bookable": "IsBookable",
    "email_address": "EmailAddress",
}

_SINGLE_QUOTES = "'‘’‚‛"


def ps_quote(value: Any) -> str:
    """Render *value* as a PowerShell single-quoted string literal."""
    text = str(value)
    escaped = "".join(ch * 2 if ch in _SINGLE_QUOTES else ch for ch in text)
    return f"'{escaped}'"


def ps_argument(value: Any) -> str:
    if isinstance(value, bool):
        return "$true" if value else "$false"
    if isinstance(value, int):
        return str(value)
    return ps_quote(value)


@dataclass
class ModuleInfo:
    name: str
    status: str  # installed | not_installed | error
    version: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "status": self.status, "version": self.version, "error": self.error}


@dataclass
class CreatedPlace:
    result: CommandResult
    entity: PlaceEntity | None


def _format_version(version: Any) -> str | None:
    if version is None:
        return None
    if isinstance(version, Mapping):
        parts = [version.get(key) for key in ("Major", "Minor", "Build")]
        return ".".join(str(p) for p in parts if isinstance(p, int) and p >= 0) or None
    return str(version)


class PlaceDirectory:
    """Typed operations on the remote directory, executed through a :class:`CommandChannel`."""

    def __init__(
        self,
        channel: CommandChannel,
        *,
        connect_timeout: float = 120.0,
        install_timeout: float = 120.0,
        list_timeout: float | None = None,
    ):
        self.channel = channel
        self.connect_timeout = connect_timeout
        self.install_timeout = install_timeout
        self.list_timeout = list_timeout

    @classmethod
    def from_settings(cls, channel: CommandChannel, settings: PlaceOpsSettings) -> PlaceDirectory:
        return cls(
            channel,
            connect_timeout=settings.connect_timeout_seconds,
            install_timeout=settings.install_timeout_seconds,
        )

    # ── Places ───────────────────────────────────────────────────────

    @staticmethod
    def list_command(place_type: PlaceType) -> str:
        return f"Get-PlaceV3 -Type {place_type.value} | ConvertTo-Json -Depth 4"

    @staticmethod
    def create_command(place_type: PlaceType, attributes: Mapping[str, Any]) -> str:
        name = attributes.get("display_name") or attributes.get("name")
        if not name or not str(name).strip():
            raise EntitySchemaError(f"{place_type.value} needs a display name", field="display_name")
        parts = ["New-Place", "-Type", place_type.value, "-Name", ps_quote(str(name).strip())]
        for key, parameter in CREATE_PARAMETERS.items():
            value = attributes.get(key)
            if value is None or (isinstance(value, str) and not value.strip()):
                continue
            parts.extend([f"-{parameter}", ps_argument(value.strip() if isinstance(value, str) else value)])
        return " ".join(parts) + " | ConvertTo-Json -Depth 4"

    async def list_entities(self, place_type: PlaceType | str) -> ParseOutcome:
        """Fetch and parse every place of one type.

        Raises:
            ChannelError: the channel could not run the command
            RemoteCommandFailed: the listing was classified as failed
        """
        place_type = PlaceType.parse(place_type)
        result = await self.channel.submit(self.list_command(place_type), timeout=self.list_timeout)
        result.raise_for_status()
        outcome = parse_entities(result.output, place_type)
        logger.info(
            "places_listed",
            place_type=place_type.value,
            count=len(outcome.entities),
            rejected=len(outcome.rejected),
        )
        return outcome

    async def create_entity(self, place_type: PlaceType | str, attributes: Mapping[str, Any]) -> CreatedPlace:
        place_type = PlaceType.parse(place_type)
        command = self.create_command(place_type, attributes)
        result = await self.channel.submit(command)
        result.raise_for_status()
        entity = None
        parsed = parse_entities(result.output, place_type)
        if parsed.entities:
            entity = parsed.entities[0]
        logger.info(
            "place_created",
            place_type=place_type.value,
            external_id=entity.external_id if entity else None,
        )
        return CreatedPlace(result=result, entity=entity)

    # ── Session ──────────────────────────────────────────────────────

    @staticmethod
    def connect_command(tenant: str | None = None) -> str:
        command = "Connect-ExchangeOnline"
        if tenant and tenant.strip():
            tenant = tenant.strip()
            flag = "-UserPrincipalName" if "@" in tenant else "-Organization"
            command += f" {flag} {ps_quote(tenant)}"
        return command

    async def connect(self, tenant: str | None = None) -> CommandResult:
        """Open the remote session; the result is returned unraised so callers can record it."""
        return await self.channel.submit(self.connect_command(tenant), timeout=self.connect_timeout)

    async def connect_places(self) -> CommandResult:
        return await self.channel.submit("Connect-MicrosoftPlaces", timeout=self.connect_timeout)

    # ── Modules ──────────────────────────────────────────────────────

    async def check_module(self, name: str) -> ModuleInfo:
        command = (
            f"Get-Module -ListAvailable -Name {ps_quote(name)} "
            "| Select-Object Name, Version | ConvertTo-Json"
        )
        result = await self.channel.submit(command)
        if not result.succeeded:
            return ModuleInfo(name=name, status="error", error=result.error or result.output)
        output = strip_ansi(result.output).strip()
        if not output:
            return ModuleInfo(name=name, status="not_installed")
        try:
            data = json.loads(output)
        except json.JSONDecodeError:
            status = "installed" if name.lower() in output.lower() else "not_installed"
            return ModuleInfo(name=name, status=status)
        if isinstance(data, list):
            data = data[0] if data else {}
        version = _format_version(data.get("Version")) if isinstance(data, Mapping) else None
        return ModuleInfo(name=name, status="installed", version=version)

    async def install_module(self, name: str) -> CommandResult:
        command = f"Install-Module -Name {ps_quote(name)} -Force -AllowClobber -Scope CurrentUser"
        return await self.channel.submit(command, timeout=self.install_timeout)


__all__ = [
    "EXCHANGE_SERVICE",
    "PLACES_SERVICE",
    "CreatedPlace",
    "ModuleInfo",
    "PlaceDirectory",
    "ps_quote",
]

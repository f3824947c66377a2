"""Data models for Haier hOn integration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class Credentials:
    """Session credentials for one hOn account.

    The exchange token is only meaningful next to the id token it was
    obtained with. A rotated id token always comes with ``exchange_token``
    set to ``None`` until the exchange is run again.
    """

    access_token: str | None = None
    id_token: str | None = None
    exchange_token: str | None = None
    refresh_token: str | None = None
    expire_at: datetime | None = None

    @property
    def authenticated(self) -> bool:
        """Return True when every token needed for device calls is present."""
        return bool(self.access_token and self.id_token and self.exchange_token)


@dataclass(frozen=True)
class ApplianceDescriptor:
    """Represents one appliance registered on the account.

    Attributes:
        mac_address: Canonical MAC address (volatile ``#`` suffix removed).
        model_id: Appliance model identifier used by the command catalogue.
        firmware_id: EEPROM/firmware identifier.
        appliance_type: Appliance type name, e.g. ``AC``.
        series: Product series, if reported.

    """

    mac_address: str
    model_id: str
    firmware_id: str | None
    appliance_type: str
    series: str | None
    appliance_id: str | None = None
    name: str = "Haier AC"
    model_name: str | None = None
    serial_number: str | None = None
    brand: str = "Haier"
    code: str | None = None
    fw_version: str | None = None


@dataclass(frozen=True)
class CommandDefinition:
    """Parameters that must accompany every command sent to an appliance."""

    mandatory_parameters: dict[str, Any] = field(default_factory=dict)
    ancillary_parameters: dict[str, Any] = field(default_factory=dict)
    appliance_options: dict[str, Any] = field(default_factory=dict)

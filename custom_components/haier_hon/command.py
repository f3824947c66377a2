"""Command construction for Haier hOn climate appliances."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from .api import HonValidationError
from .const import (
    ANTI_FREEZE_TEMPERATURE,
    APP_VERSION,
    APPLIANCE_TYPE_AC,
    CAP_ECO_PILOT,
    CAP_FAN_MODE,
    CAP_HVAC_MODE,
    CAP_POWER,
    CAP_SWING_MODE,
    CAP_TARGET_TEMPERATURE,
    COMMAND_SETTINGS,
    COMMAND_START_PROGRAM,
    COMMAND_STOP_PROGRAM,
    DEVICE_MODEL,
    FAN_AUTO,
    HVAC_MODE_PROGRAM_MAP,
    MAX_TEMPERATURE,
    MIN_TEMPERATURE,
    MOBILE_OS,
    MODE_ANTI_FREEZE,
    MODE_AUTO,
    MODE_HEAT,
    OS_VERSION,
    PARAM_ANTI_FREEZE,
    PARAM_ECO_PILOT,
    PARAM_FAN_SPEED,
    PARAM_MODE,
    PARAM_ON_OFF,
    PARAM_SWING_HORIZONTAL,
    PARAM_SWING_VERTICAL,
    PARAM_TEMPERATURE,
)
from .mapper import (
    ECO_PILOT_TABLE,
    FAN_MODE_TABLE,
    HVAC_MODE_TABLE,
    encode_swing,
    encode_toggle,
)
from .models import CommandDefinition


@dataclass(frozen=True)
class HonCommand:
    """A command ready to be wrapped in an envelope.

    Attributes:
        name: One of ``startProgram``, ``stopProgram`` or ``settings``.
        parameters: Wire parameters, mandatory values included.
        program_name: Program identifier, only for ``startProgram``.
        capabilities: Capability values the command is expected to produce,
            used for optimistic updates.

    """

    name: str
    parameters: dict[str, Any]
    program_name: str | None = None
    capabilities: dict[str, Any] = field(default_factory=dict)


def clamp_temperature(value: float) -> int:
    """Clamp a requested temperature to the writable range and round it."""
    clamped = min(max(value, MIN_TEMPERATURE), MAX_TEMPERATURE)
    return math.floor(clamped + 0.5)


class HonCommandBuilder:
    """Builds commands for one appliance from its command definition.

    Every ``build_*`` method takes the requested change plus a snapshot of
    the current capability values. Values the change does not touch are
    derived from the snapshot, with auto mode, 16 degrees and auto fan
    used when nothing is known yet.
    """

    def __init__(self, definition: CommandDefinition) -> None:
        """Initialize the builder with the appliance command definition."""
        self._definition = definition

    def _parameters(self, **overlay: str) -> dict[str, Any]:
        parameters = dict(self._definition.mandatory_parameters)
        parameters.update(overlay)
        return parameters

    @staticmethod
    def _current_mode(snapshot: dict[str, Any]) -> str:
        return snapshot.get(CAP_HVAC_MODE) or MODE_AUTO

    @staticmethod
    def _current_temperature(snapshot: dict[str, Any]) -> int:
        return clamp_temperature(snapshot.get(CAP_TARGET_TEMPERATURE) or MIN_TEMPERATURE)

    @staticmethod
    def _current_wind_speed(snapshot: dict[str, Any]) -> str:
        return FAN_MODE_TABLE.to_wire(snapshot.get(CAP_FAN_MODE) or FAN_AUTO)

    @staticmethod
    def _mach_mode(mode: str) -> str:
        if mode == MODE_ANTI_FREEZE:
            return HVAC_MODE_TABLE.to_wire(MODE_HEAT)
        return HVAC_MODE_TABLE.to_wire(mode)

    def _settings(
        self, snapshot: dict[str, Any], power_flag: str, **overlay: str
    ) -> dict[str, Any]:
        """Return settings parameters that restate the current operating point."""
        mode = self._current_mode(snapshot)
        parameters = self._parameters(
            **{
                PARAM_ON_OFF: power_flag,
                PARAM_MODE: self._mach_mode(mode),
                PARAM_TEMPERATURE: str(self._current_temperature(snapshot)),
                PARAM_FAN_SPEED: self._current_wind_speed(snapshot),
            }
        )
        if mode == MODE_ANTI_FREEZE:
            parameters[PARAM_ANTI_FREEZE] = "1"
        parameters.update(overlay)
        return parameters

    def build_power(self, on: bool, snapshot: dict[str, Any]) -> HonCommand:
        """Turn the appliance on in its current mode, or off."""
        if on:
            return self.build_mode(self._current_mode(snapshot), snapshot)
        return HonCommand(
            name=COMMAND_STOP_PROGRAM,
            parameters=self._parameters(**{PARAM_ON_OFF: "0"}),
            capabilities={CAP_POWER: False},
        )

    def build_mode(self, mode: str, snapshot: dict[str, Any]) -> HonCommand:
        """Switch HVAC mode through ``startProgram``.

        Starting any program other than anti-freeze clears the anti-freeze
        flag on the appliance.

        Raises:
            HonValidationError: If the mode is unknown.

        """
        if mode == MODE_ANTI_FREEZE:
            return HonCommand(
                name=COMMAND_START_PROGRAM,
                parameters=self._parameters(
                    **{
                        PARAM_ON_OFF: "1",
                        PARAM_MODE: self._mach_mode(mode),
                        PARAM_ANTI_FREEZE: "1",
                    }
                ),
                program_name=HVAC_MODE_PROGRAM_MAP[MODE_ANTI_FREEZE],
                capabilities={
                    CAP_POWER: True,
                    CAP_HVAC_MODE: MODE_ANTI_FREEZE,
                    CAP_TARGET_TEMPERATURE: ANTI_FREEZE_TEMPERATURE,
                },
            )

        mach_mode = self._mach_mode(mode)
        temperature = self._current_temperature(snapshot)
        return HonCommand(
            name=COMMAND_START_PROGRAM,
            parameters=self._parameters(
                **{
                    PARAM_ON_OFF: "1",
                    PARAM_MODE: mach_mode,
                    PARAM_TEMPERATURE: str(temperature),
                    PARAM_FAN_SPEED: self._current_wind_speed(snapshot),
                    PARAM_ANTI_FREEZE: "0",
                }
            ),
            program_name=HVAC_MODE_PROGRAM_MAP[mode],
            capabilities={
                CAP_POWER: True,
                CAP_HVAC_MODE: mode,
                CAP_TARGET_TEMPERATURE: temperature,
            },
        )

    def build_temperature(self, value: float, snapshot: dict[str, Any]) -> HonCommand:
        """Set the target temperature, clamped to the writable range.

        Raises:
            HonValidationError: If the appliance is in anti-freeze mode, where
                the temperature is fixed.

        """
        if self._current_mode(snapshot) == MODE_ANTI_FREEZE:
            error_msg = (
                f"Temperature is fixed at {ANTI_FREEZE_TEMPERATURE} in anti-freeze mode"
            )
            raise HonValidationError(error_msg)

        temperature = clamp_temperature(value)
        return HonCommand(
            name=COMMAND_SETTINGS,
            parameters=self._settings(
                snapshot, "1", **{PARAM_TEMPERATURE: str(temperature)}
            ),
            capabilities={CAP_POWER: True, CAP_TARGET_TEMPERATURE: temperature},
        )

    def build_fan_mode(self, fan_mode: str, snapshot: dict[str, Any]) -> HonCommand:
        """Set the fan speed."""
        wind_speed = FAN_MODE_TABLE.to_wire(fan_mode)
        return HonCommand(
            name=COMMAND_SETTINGS,
            parameters=self._settings(snapshot, "1", **{PARAM_FAN_SPEED: wind_speed}),
            capabilities={CAP_POWER: True, CAP_FAN_MODE: fan_mode},
        )

    def build_swing_mode(self, swing_mode: str, snapshot: dict[str, Any]) -> HonCommand:
        """Set the louver swing mode."""
        horizontal, vertical = encode_swing(swing_mode)
        return HonCommand(
            name=COMMAND_SETTINGS,
            parameters=self._settings(
                snapshot,
                "1",
                **{
                    PARAM_SWING_HORIZONTAL: horizontal,
                    PARAM_SWING_VERTICAL: vertical,
                },
            ),
            capabilities={CAP_POWER: True, CAP_SWING_MODE: swing_mode},
        )

    def build_eco_pilot(self, value: str, snapshot: dict[str, Any]) -> HonCommand:
        """Set the eco pilot (human sensing) mode without changing power."""
        wire_value = ECO_PILOT_TABLE.to_wire(value)
        return HonCommand(
            name=COMMAND_SETTINGS,
            parameters=self._settings(
                snapshot, _power_flag(snapshot), **{PARAM_ECO_PILOT: wire_value}
            ),
            capabilities={CAP_ECO_PILOT: value},
        )

    def build_toggle(
        self, capability: str, enabled: bool, snapshot: dict[str, Any]
    ) -> HonCommand:
        """Set a boolean toggle without changing power."""
        param, wire_value = encode_toggle(capability, enabled)
        return HonCommand(
            name=COMMAND_SETTINGS,
            parameters=self._settings(
                snapshot, _power_flag(snapshot), **{param: wire_value}
            ),
            capabilities={capability: enabled},
        )


def _power_flag(snapshot: dict[str, Any]) -> str:
    return "1" if snapshot.get(CAP_POWER) else "0"


def format_timestamp(now: datetime) -> str:
    """Format a time as ISO-8601 UTC with millisecond precision."""
    return now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_envelope(
    mac_address: str,
    command: HonCommand,
    definition: CommandDefinition,
    *,
    mobile_id: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Wrap a command in the JSON body accepted by ``/commands/v1/send``.

    Args:
        mac_address: Canonical MAC address of the target appliance.
        command: Command produced by HonCommandBuilder.
        definition: Command definition of the appliance.
        mobile_id: Stable per-install device identifier.
        now: Send time, defaults to the current time.

    Returns:
        Envelope dictionary.

    """
    timestamp = format_timestamp(now or datetime.now(UTC))
    envelope: dict[str, Any] = {
        "macAddress": mac_address,
        "timestamp": timestamp,
        "commandName": command.name,
        "transactionId": f"{mac_address}_{timestamp}",
        "applianceOptions": dict(definition.appliance_options),
        "device": {
            "appVersion": APP_VERSION,
            "mobileId": mobile_id,
            "mobileOs": MOBILE_OS,
            "osVersion": OS_VERSION,
            "deviceModel": DEVICE_MODEL,
        },
        "attributes": {
            "channel": "mobileApp",
            "origin": "standardProgram",
            "energyLabel": "0",
        },
        "ancillaryParameters": dict(definition.ancillary_parameters),
        "parameters": dict(command.parameters),
        "applianceType": APPLIANCE_TYPE_AC,
    }
    if command.name == COMMAND_START_PROGRAM:
        envelope["programName"] = (command.program_name or "iot_auto").upper()
    return envelope

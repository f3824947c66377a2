"""Translation between hOn wire parameters and capability values.

Wire values arrive either as bare scalars or wrapped in an object such as
``{"parNewVal": "1", "lastUpdate": "..."}``. Booleans are string typed
(``"0"``/``"1"``), so every comparison goes through ``to_number``.
"""

from __future__ import annotations

import logging
from typing import Any

from .api import HonMappingError, HonValidationError
from .const import (
    ANTI_FREEZE_TEMPERATURE,
    CAP_ECO_PILOT,
    CAP_FAN_MODE,
    CAP_HVAC_MODE,
    CAP_INDOOR_TEMPERATURE,
    CAP_OUTDOOR_TEMPERATURE,
    CAP_POWER,
    CAP_SWING_MODE,
    CAP_TARGET_TEMPERATURE,
    ECO_PILOT_OFF,
    ECO_PILOT_REVERSE_MAP,
    ECO_PILOT_WIRE_MAP,
    FAN_AUTO,
    FAN_MODE_REVERSE_MAP,
    FAN_MODE_WIRE_MAP,
    HVAC_MODE_REVERSE_MAP,
    HVAC_MODE_WIRE_MAP,
    MIN_TEMPERATURE,
    MODE_ANTI_FREEZE,
    MODE_AUTO,
    PARAM_ANTI_FREEZE,
    PARAM_ECO_PILOT,
    PARAM_FAN_SPEED,
    PARAM_MODE,
    PARAM_ON_OFF,
    PARAM_SWING_HORIZONTAL,
    PARAM_SWING_VERTICAL,
    PARAM_TEMP_INDOOR,
    PARAM_TEMP_OUTDOOR,
    PARAM_TEMPERATURE,
    SWING_BOTH,
    SWING_HORIZONTAL,
    SWING_HORIZONTAL_ACTIVE,
    SWING_MODE_REVERSE_MAP,
    SWING_OFF,
    SWING_VERTICAL,
    SWING_VERTICAL_ACTIVE,
    TOGGLE_MAP,
)

_LOGGER = logging.getLogger(__name__)

WRAPPED_VALUE_KEYS = ("parNewVal", "parValue")


def extract_value(raw: Any) -> Any:
    """Return the scalar carried by a wire value.

    Checks both known wrapper fields before falling back to the raw value.
    """
    if isinstance(raw, dict):
        for key in WRAPPED_VALUE_KEYS:
            if key in raw:
                return raw[key]
    return raw


def to_number(raw: Any) -> float | None:
    """Coerce a wire value to a number, or None if it is not numeric."""
    value = extract_value(raw)
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _wire_key(raw: Any) -> str | None:
    number = to_number(raw)
    if number is None or not number.is_integer():
        return None
    return str(int(number))


class EnumTable:
    """Bidirectional wire/capability table.

    The forward direction may collapse several wire values onto one
    capability value; the reverse direction always picks the canonical
    wire value. Collapsed aliases therefore do not round-trip.
    """

    def __init__(
        self,
        name: str,
        forward: dict[str, str],
        reverse: dict[str, str],
        fallback: str,
    ) -> None:
        self.name = name
        self._forward = forward
        self._reverse = reverse
        self.fallback = fallback

    @property
    def options(self) -> list[str]:
        """Return the capability values that can be written."""
        return list(self._reverse)

    def to_capability(self, raw: Any) -> str:
        """Map a wire value to its capability value.

        Raises:
            HonMappingError: If the wire value is unknown.

        """
        key = _wire_key(raw)
        if key is None or key not in self._forward:
            error_msg = f"Unknown {self.name} wire value: {extract_value(raw)!r}"
            raise HonMappingError(error_msg)
        return self._forward[key]

    def to_capability_or_fallback(self, raw: Any) -> str:
        """Map a wire value, using the fallback for unknown values."""
        try:
            return self.to_capability(raw)
        except HonMappingError as err:
            _LOGGER.warning("%s, defaulting to %s", err, self.fallback)
            return self.fallback

    def to_wire(self, value: str) -> str:
        """Map a capability value to its canonical wire value.

        Raises:
            HonValidationError: If the capability value is unknown.

        """
        try:
            return self._reverse[value]
        except KeyError as err:
            error_msg = f"Unknown {self.name}: {value}"
            raise HonValidationError(error_msg) from err


HVAC_MODE_TABLE = EnumTable(
    "HVAC mode", HVAC_MODE_WIRE_MAP, HVAC_MODE_REVERSE_MAP, MODE_AUTO
)
FAN_MODE_TABLE = EnumTable(
    "fan mode", FAN_MODE_WIRE_MAP, FAN_MODE_REVERSE_MAP, FAN_AUTO
)
ECO_PILOT_TABLE = EnumTable(
    "eco pilot mode", ECO_PILOT_WIRE_MAP, ECO_PILOT_REVERSE_MAP, ECO_PILOT_OFF
)


def is_flag_set(raw: Any) -> bool:
    """Return True when a string-typed wire flag equals 1."""
    return to_number(raw) == 1


def decode_swing(horizontal: Any, vertical: Any) -> str:
    """Derive the swing mode from the horizontal/vertical direction pair."""
    horizontal_active = to_number(horizontal) == SWING_HORIZONTAL_ACTIVE
    vertical_active = to_number(vertical) == SWING_VERTICAL_ACTIVE
    if horizontal_active and vertical_active:
        return SWING_BOTH
    if horizontal_active:
        return SWING_HORIZONTAL
    if vertical_active:
        return SWING_VERTICAL
    return SWING_OFF


def encode_swing(swing_mode: str) -> tuple[str, str]:
    """Return the (horizontal, vertical) wire values for a swing mode.

    Raises:
        HonValidationError: If the swing mode is unknown.

    """
    try:
        return SWING_MODE_REVERSE_MAP[swing_mode]
    except KeyError as err:
        error_msg = f"Unknown swing mode: {swing_mode}"
        raise HonValidationError(error_msg) from err


def encode_toggle(capability: str, enabled: bool) -> tuple[str, str]:
    """Return the (wire parameter, wire value) pair for a boolean toggle.

    Raises:
        HonValidationError: If the toggle is unknown.

    """
    try:
        param, inverted = TOGGLE_MAP[capability]
    except KeyError as err:
        error_msg = f"Unknown toggle: {capability}"
        raise HonValidationError(error_msg) from err
    return param, "1" if enabled != inverted else "0"


def decode_state(state: dict[str, Any]) -> dict[str, Any]:
    """Map a wire state to capability values.

    Only capabilities whose wire parameters are present are returned, so the
    result can be merged over previously known values.
    """
    capabilities: dict[str, Any] = {}
    anti_freeze = is_flag_set(state.get(PARAM_ANTI_FREEZE))

    if PARAM_ON_OFF in state:
        capabilities[CAP_POWER] = is_flag_set(state[PARAM_ON_OFF])

    if PARAM_TEMP_INDOOR in state:
        indoor = to_number(state[PARAM_TEMP_INDOOR])
        if indoor is not None:
            capabilities[CAP_INDOOR_TEMPERATURE] = indoor

    if anti_freeze:
        capabilities[CAP_TARGET_TEMPERATURE] = ANTI_FREEZE_TEMPERATURE
    elif PARAM_TEMPERATURE in state:
        target = to_number(state[PARAM_TEMPERATURE])
        if target is not None and target >= MIN_TEMPERATURE:
            capabilities[CAP_TARGET_TEMPERATURE] = target

    if PARAM_MODE in state:
        if anti_freeze:
            capabilities[CAP_HVAC_MODE] = MODE_ANTI_FREEZE
        else:
            capabilities[CAP_HVAC_MODE] = HVAC_MODE_TABLE.to_capability_or_fallback(
                state[PARAM_MODE]
            )

    if PARAM_FAN_SPEED in state:
        capabilities[CAP_FAN_MODE] = FAN_MODE_TABLE.to_capability_or_fallback(
            state[PARAM_FAN_SPEED]
        )

    if PARAM_SWING_HORIZONTAL in state or PARAM_SWING_VERTICAL in state:
        capabilities[CAP_SWING_MODE] = decode_swing(
            state.get(PARAM_SWING_HORIZONTAL), state.get(PARAM_SWING_VERTICAL)
        )

    if PARAM_ECO_PILOT in state:
        capabilities[CAP_ECO_PILOT] = ECO_PILOT_TABLE.to_capability_or_fallback(
            state[PARAM_ECO_PILOT]
        )

    for capability, (param, inverted) in TOGGLE_MAP.items():
        if param in state:
            capabilities[capability] = is_flag_set(state[param]) != inverted

    for param in PARAM_TEMP_OUTDOOR:
        if state.get(param) is not None:
            outdoor = to_number(state[param])
            if outdoor is not None:
                capabilities[CAP_OUTDOOR_TEMPERATURE] = outdoor
            break

    return capabilities

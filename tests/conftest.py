"""Pytest configuration and fixtures for Haier hOn tests."""

import base64
import json
from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import pytest

from custom_components.haier_hon.models import (
    ApplianceDescriptor,
    CommandDefinition,
    Credentials,
)

TEST_MAC = "aa-bb-cc-dd-ee-ff"
TEST_MOBILE_ID = "mobile-1234"
FIXED_NOW = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


def create_test_jwt(claims: dict | None = None) -> str:
    """Create an unsigned test JWT carrying the given claims.

    Args:
        claims: Payload claims. Defaults to a subject and an email.

    Returns:
        A JWT token string with header, payload, and signature.

    """
    if claims is None:
        claims = {"sub": "005xx000001", "email": "User@Example.com"}

    header = {"alg": "RS256", "typ": "JWT"}
    header_encoded = (
        base64.urlsafe_b64encode(json.dumps(header).encode()).decode().rstrip("=")
    )
    payload_encoded = (
        base64.urlsafe_b64encode(json.dumps(claims).encode()).decode().rstrip("=")
    )
    return f"{header_encoded}.{payload_encoded}.signature"


class FakeClock:
    """Settable clock returning aware UTC datetimes."""

    def __init__(self, now: datetime = FIXED_NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    """Fixture providing a controllable clock."""
    return FakeClock()


@pytest.fixture
def mock_hass() -> Mock:
    """Create a mock Home Assistant instance."""
    hass = Mock()
    hass.data = {}
    hass.config_entries = Mock()
    return hass


@pytest.fixture
def credentials() -> Credentials:
    """Fixture providing fully authenticated credentials."""
    return Credentials(
        access_token="access",
        id_token="id",
        exchange_token="cognito",
        refresh_token="refresh",
        expire_at=FIXED_NOW + timedelta(hours=8),
    )


@pytest.fixture
def appliance() -> ApplianceDescriptor:
    """Fixture providing an air conditioner descriptor."""
    return ApplianceDescriptor(
        mac_address=TEST_MAC,
        model_id="1234",
        firmware_id="41",
        appliance_type="AC",
        series="classic",
        appliance_id="appliance-1",
        name="Living room",
        model_name="AS35",
        serial_number="SN123",
        code="CODE1",
        fw_version="1.0.0",
    )


@pytest.fixture
def command_definition() -> CommandDefinition:
    """Fixture providing a command definition with typical parameters."""
    return CommandDefinition(
        mandatory_parameters={
            "onOffStatus": "0",
            "machMode": "0",
            "tempSel": "22",
            "windSpeed": "5",
            "quietTimeStatus": 0,
        },
        ancillary_parameters={"energySavingStatus": "0"},
        appliance_options={"maxTemp": 30},
    )


@pytest.fixture
def sample_appliances_response() -> dict:
    """Fixture providing a sample appliance listing response.

    Returns:
        A dictionary representing an appliance listing with one air
        conditioner and one washing machine.

    """
    return {
        "payload": {
            "appliances": [
                {
                    "macAddress": f"{TEST_MAC}#2024-01-01T00:00:00Z",
                    "applianceModelId": 1234,
                    "eepromId": "41",
                    "applianceTypeName": "AC",
                    "series": "classic",
                    "applianceId": "appliance-1",
                    "nickName": "Living room",
                    "modelName": "AS35",
                    "serialNumber": "SN123",
                    "brand": "haier",
                    "code": "CODE1",
                    "fwVersion": "1.0.0",
                },
                {
                    "macAddress": "11-22-33-44-55-66",
                    "applianceModelId": 99,
                    "applianceTypeName": "WM",
                    "modelName": "Washer",
                },
            ]
        }
    }


@pytest.fixture
def sample_retrieve_response() -> dict:
    """Fixture providing a sample command catalogue response."""
    return {
        "payload": {
            "applianceModel": {"options": {"maxTemp": 30}},
            "settings": {
                "setParameters": {
                    "parameters": {
                        "onOffStatus": {"mandatory": 1, "defaultValue": "0"},
                        "machMode": {"mandatory": 1, "defaultValue": "0"},
                        "tempSel": {
                            "mandatory": 1,
                            "typology": "range",
                            "defaultValue": "22",
                        },
                        "windSpeed": {
                            "mandatory": 1,
                            "typology": "fixed",
                            "fixedValue": "5",
                            "defaultValue": "1",
                        },
                        "healthMode": {"mandatory": 0, "defaultValue": "0"},
                        "lightStatus": {"mandatory": 1},
                    },
                    "ancillaryParameters": {
                        "energySavingStatus": {"defaultValue": "0"},
                        "programRules": {"defaultValue": "rules"},
                        "channel": {"typology": "fixed", "fixedValue": "mobileApp"},
                    },
                }
            },
        }
    }


@pytest.fixture
def sample_context_response() -> dict:
    """Fixture providing a sample appliance context response."""
    return {
        "payload": {
            "lastConnEvent": {"category": "CONNECTED"},
            "shadow": {
                "parameters": {
                    "onOffStatus": {"parNewVal": "1", "lastUpdate": "2024-01-01"},
                    "machMode": {"parNewVal": "1"},
                    "tempSel": {"parNewVal": "22"},
                    "windSpeed": {"parNewVal": "3"},
                    "tempIndoor": {"parNewVal": "24.5"},
                    "tempOutdoor": {"parNewVal": "31"},
                    "windDirectionHorizontal": {"parNewVal": "0"},
                    "windDirectionVertical": {"parNewVal": "8"},
                    "humanSensingStatus": {"parNewVal": "2"},
                    "muteStatus": {"parNewVal": "0"},
                    "echoStatus": {"parNewVal": "0"},
                    "10degreeHeatingStatus": {"parNewVal": "0"},
                }
            },
        }
    }

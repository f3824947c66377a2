"""Tests for the Haier hOn eco pilot select."""

from unittest.mock import AsyncMock, Mock

import pytest
from homeassistant.const import EntityCategory
from homeassistant.exceptions import ServiceValidationError

from custom_components.haier_hon import HonRuntimeData
from custom_components.haier_hon.api import HonValidationError
from custom_components.haier_hon.const import DOMAIN
from custom_components.haier_hon.models import ApplianceDescriptor
from custom_components.haier_hon.select import HonEcoPilotSelect, async_setup_entry

from .conftest import TEST_MAC


@pytest.fixture
def mock_device_coordinator(appliance: ApplianceDescriptor) -> Mock:
    """Create a mock device coordinator."""
    coordinator = Mock()
    coordinator.appliance = appliance
    coordinator.data = {"eco_pilot": "follow"}
    coordinator.async_set_eco_pilot = AsyncMock()
    return coordinator


class TestHonEcoPilotSelect:
    """Tests for HonEcoPilotSelect."""

    @pytest.mark.asyncio
    async def test_async_setup_entry_creates_one_select_per_appliance(
        self, mock_hass: Mock, mock_device_coordinator: Mock
    ) -> None:
        """Test that async_setup_entry creates one select per appliance."""
        entry = Mock()
        entry.entry_id = "test_entry"
        mock_hass.data[DOMAIN] = {
            "test_entry": HonRuntimeData(
                session=Mock(),
                cloud=Mock(),
                coordinators={TEST_MAC: mock_device_coordinator},
            )
        }
        async_add_entities = Mock()

        await async_setup_entry(mock_hass, entry, async_add_entities)

        entities = list(async_add_entities.call_args[0][0])
        assert len(entities) == 1
        assert entities[0].unique_id == f"{TEST_MAC}_eco_pilot"

    def test_attributes(self, mock_device_coordinator: Mock) -> None:
        """Test options, category and current option."""
        entity = HonEcoPilotSelect(mock_device_coordinator)

        assert entity.options == ["off", "avoid", "follow"]
        assert entity.entity_category == EntityCategory.CONFIG
        assert entity.current_option == "follow"

    def test_current_option_unknown_without_data(
        self, mock_device_coordinator: Mock
    ) -> None:
        """Test that the option is unknown before the first poll."""
        mock_device_coordinator.data = None
        assert HonEcoPilotSelect(mock_device_coordinator).current_option is None

    @pytest.mark.asyncio
    async def test_select_option(self, mock_device_coordinator: Mock) -> None:
        """Test that selecting an option writes it through the coordinator."""
        entity = HonEcoPilotSelect(mock_device_coordinator)
        await entity.async_select_option("avoid")
        mock_device_coordinator.async_set_eco_pilot.assert_awaited_once_with("avoid")

    @pytest.mark.asyncio
    async def test_select_invalid_option(self, mock_device_coordinator: Mock) -> None:
        """Test that an unknown option is reported as a validation error."""
        mock_device_coordinator.async_set_eco_pilot.side_effect = HonValidationError(
            "Unknown eco pilot mode: sideways"
        )
        entity = HonEcoPilotSelect(mock_device_coordinator)
        with pytest.raises(ServiceValidationError):
            await entity.async_select_option("sideways")

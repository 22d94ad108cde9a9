"""
Pytest configuration and shared fixtures for winhance-unattend tests.

This module provides reusable fixtures and test utilities used across
the test suite: catalog and configuration builders, YAML file factories,
and recording collaborators.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from winhance_unattend.logging import CollectingLogger, SilentLogger, set_global_logger
from winhance_unattend.models import (
    BitPatch,
    Catalog,
    FeatureGroup,
    FeatureSection,
    PowerCfgTarget,
    RegistryTarget,
    ScheduledTaskTarget,
    Selection,
    SettingDefinition,
    UnifiedConfiguration,
)
from winhance_unattend.services.base import PowerPlanInfo

THEME_KEY = (
    "HKEY_CURRENT_USER\\Software\\Microsoft\\Windows\\CurrentVersion\\Themes\\Personalize"
)
DATA_COLLECTION_KEY = (
    "HKEY_LOCAL_MACHINE\\SOFTWARE\\Policies\\Microsoft\\Windows\\DataCollection"
)
DISK_TIMEOUT_GUID = "6738e2c4-e8a5-4a42-b16a-e040e769756e"
DISK_SUBGROUP_GUID = "0012ee47-9041-4b5d-9b77-535fba8b1442"
BALANCED_GUID = "381b4222-f694-41f0-9685-ff5bb260df2e"


@pytest.fixture(autouse=True)
def reset_global_logger():
    """Keep CLI tests from leaking a printing logger into other tests."""
    yield
    set_global_logger(SilentLogger())


@pytest.fixture
def tmp_test_dir(tmp_path: Path) -> Path:
    """
    Provide a temporary directory for test artifacts.

    Automatically cleaned up after test completion.
    """
    return tmp_path


@pytest.fixture
def create_yaml_file(tmp_test_dir: Path):
    """
    Factory fixture for creating temporary YAML files.

    Usage:
        yaml_path = create_yaml_file("test.yaml", {"key": "value"})
    """

    def _create(filename: str, data: dict[str, Any]) -> Path:
        path = tmp_test_dir / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            yaml.dump(data, f)
        return path

    return _create


@pytest.fixture
def collecting_logger() -> CollectingLogger:
    """Provide a logger that records warnings for assertions."""
    return CollectingLogger()


# -------------------------------
# Catalog fixtures
# -------------------------------


@pytest.fixture
def theme_mode_definition() -> SettingDefinition:
    """Theme selection writing two HKCU DWORDs through a value table."""
    return SettingDefinition(
        id="theme-mode",
        description="Windows theme mode",
        input_type="selection",
        registry_targets=(
            RegistryTarget(THEME_KEY, "AppsUseLightTheme", "DWord"),
            RegistryTarget(THEME_KEY, "SystemUsesLightTheme", "DWord"),
        ),
        value_mappings={
            0: {"AppsUseLightTheme": 1, "SystemUsesLightTheme": 1},
            1: {"AppsUseLightTheme": 0, "SystemUsesLightTheme": 0},
        },
    )


@pytest.fixture
def telemetry_definition() -> SettingDefinition:
    """Toggle with one HKLM value, one HKCU value and two scheduled tasks."""
    return SettingDefinition(
        id="disable-telemetry",
        description="Disable telemetry",
        registry_targets=(
            RegistryTarget(DATA_COLLECTION_KEY, "AllowTelemetry", "DWord", 0, None),
            RegistryTarget(
                "HKEY_CURRENT_USER\\Software\\Microsoft\\Siuf\\Rules",
                "NumberOfSIUFInPeriod",
                "DWord",
                0,
                None,
            ),
        ),
        scheduled_tasks=(
            ScheduledTaskTarget(
                "\\Microsoft\\Windows\\Application Experience\\ProgramDataUpdater"
            ),
            ScheduledTaskTarget("\\Microsoft\\Windows\\Autochk\\Proxy"),
        ),
    )


@pytest.fixture
def animations_definition() -> SettingDefinition:
    """Bit patch on UserPreferencesMask."""
    return SettingDefinition(
        id="ui-animations",
        description="Window animations",
        registry_targets=(
            RegistryTarget(
                "HKEY_CURRENT_USER\\Control Panel\\Desktop",
                "UserPreferencesMask",
                "Binary",
                1,
                0,
                BitPatch(byte_index=4, bit_mask=0x02),
            ),
        ),
    )


@pytest.fixture
def disk_timeout_definition() -> SettingDefinition:
    """Power-only setting driven by live AC/DC values."""
    return SettingDefinition(
        id="power-disk-timeout",
        description="Turn off hard disk after",
        power_targets=(PowerCfgTarget(DISK_SUBGROUP_GUID, DISK_TIMEOUT_GUID),),
    )


@pytest.fixture
def sample_catalog(
    theme_mode_definition: SettingDefinition,
    telemetry_definition: SettingDefinition,
    animations_definition: SettingDefinition,
    disk_timeout_definition: SettingDefinition,
) -> Catalog:
    """Provide a small catalog covering both phases and the power feature."""
    return Catalog(
        features={
            "windows-theme-customization": (theme_mode_definition,),
            "privacy": (telemetry_definition,),
            "explorer": (animations_definition,),
            "power": (
                SettingDefinition(
                    id="power-plan-selection",
                    description="Power plan",
                    input_type="power-plan",
                ),
                disk_timeout_definition,
            ),
        },
        names={
            "windows-theme-customization": "Windows Theme",
            "privacy": "Privacy",
            "explorer": "Explorer",
            "power": "Power",
        },
    )


@pytest.fixture
def sample_configuration() -> UnifiedConfiguration:
    """Provide a configuration selecting every sample catalog setting."""
    return UnifiedConfiguration(
        optimize=FeatureGroup(
            "Optimize",
            (
                FeatureSection(
                    "privacy", (Selection("disable-telemetry", is_selected=True),)
                ),
                FeatureSection(
                    "power",
                    (
                        Selection(
                            "power-plan-selection",
                            kind="power-plan",
                            power_plan_guid="57696e68-616e-6365-506f-776572000000",
                            power_plan_name="Winhance Power Plan",
                        ),
                    ),
                ),
            ),
        ),
        customize=FeatureGroup(
            "Customize",
            (
                FeatureSection(
                    "windows-theme-customization",
                    (Selection("theme-mode", kind="selection", selected_index=1),),
                ),
                FeatureSection(
                    "explorer", (Selection("ui-animations", is_selected=False),)
                ),
            ),
        ),
    )


@pytest.fixture
def active_plan() -> PowerPlanInfo:
    return PowerPlanInfo(guid=BALANCED_GUID, name="Balanced")


# -------------------------------
# Document fixtures
# -------------------------------


@pytest.fixture
def sample_catalog_data() -> dict[str, Any]:
    """
    Provide a catalog document as loaded from YAML.

    Covers every registry target mode and every target kind.
    """
    return {
        "features": {
            "windows-theme-customization": {
                "name": "Windows Theme",
                "settings": [
                    {
                        "id": "theme-mode",
                        "description": "Windows theme mode",
                        "input_type": "selection",
                        "registry": [
                            {
                                "key_path": THEME_KEY,
                                "value_name": "AppsUseLightTheme",
                                "value_kind": "DWord",
                            },
                            {
                                "key_path": THEME_KEY,
                                "value_name": "SystemUsesLightTheme",
                                "value_kind": "DWord",
                            },
                        ],
                        "value_mappings": {
                            0: {"AppsUseLightTheme": 1, "SystemUsesLightTheme": 1},
                            1: {"AppsUseLightTheme": 0, "SystemUsesLightTheme": 0},
                        },
                    },
                ],
            },
            "explorer": {
                "name": "Explorer",
                "settings": [
                    {
                        "id": "ui-animations",
                        "description": "Window animations",
                        "registry": [
                            {
                                "key_path": "HKEY_CURRENT_USER\\Control Panel\\Desktop",
                                "value_name": "UserPreferencesMask",
                                "value_kind": "Binary",
                                "enabled_value": 1,
                                "disabled_value": 0,
                                "binary_byte_index": 4,
                                "bit_mask": "0x02",
                            },
                        ],
                    },
                    {
                        "id": "explorer-compact-mode",
                        "description": "Compact mode",
                        "registry": [
                            {
                                "key_path": "HKEY_CURRENT_USER\\Software\\Test",
                                "value_name": "Settings",
                                "value_kind": "Binary",
                                "enabled_value": 3,
                                "disabled_value": 2,
                                "binary_byte_index": 8,
                                "modify_byte_only": True,
                            },
                        ],
                    },
                    {
                        "id": "classic-context-menu",
                        "description": "Classic context menu",
                        "registry": [
                            {
                                "key_path": "HKEY_CURRENT_USER\\Software\\Classes\\CLSID"
                                "\\{86ca1aa0-34aa-4e8b-a509-50c905bae2a2}\\InprocServer32",
                                "value_kind": "String",
                                "enabled_value": "",
                                "disabled_value": None,
                                "is_guid_subkey": True,
                            },
                        ],
                    },
                ],
            },
            "privacy": {
                "name": "Privacy",
                "settings": [
                    {
                        "id": "disable-telemetry",
                        "description": "Disable telemetry",
                        "registry": [
                            {
                                "key_path": DATA_COLLECTION_KEY,
                                "value_name": "AllowTelemetry",
                                "value_kind": "DWord",
                                "enabled_value": 0,
                                "disabled_value": None,
                            },
                        ],
                        "scheduled_tasks": [
                            "\\Microsoft\\Windows\\Autochk\\Proxy",
                            {"task_path": "\\Microsoft\\Windows\\Feedback\\Siuf\\DmClient"},
                        ],
                    },
                ],
            },
            "power": {
                "name": "Power",
                "settings": [
                    {
                        "id": "power-plan-selection",
                        "description": "Power plan",
                        "input_type": "power-plan",
                    },
                    {
                        "id": "power-disk-timeout",
                        "description": "Turn off hard disk after",
                        "powercfg": [
                            {
                                "subgroup_guid": DISK_SUBGROUP_GUID,
                                "setting_guid": DISK_TIMEOUT_GUID,
                            },
                        ],
                    },
                    {
                        "id": "power-lid-action",
                        "description": "Lid close action",
                        "requires_battery": True,
                        "powercfg": [
                            {
                                "subgroup_guid": "4f971e89-eebd-4455-a8de-9e59040e7347",
                                "setting_guid": "5ca83367-6e45-459f-a27b-476b1d01c936",
                                "mode_support": "separate",
                            },
                        ],
                    },
                ],
            },
        },
    }


@pytest.fixture
def sample_configuration_data() -> dict[str, Any]:
    """Provide a configuration document in the exported camelCase shape."""
    return {
        "optimize": {
            "features": {
                "privacy": {
                    "isIncluded": True,
                    "items": [{"id": "disable-telemetry", "isSelected": True}],
                },
                "power": {
                    "isIncluded": True,
                    "items": [
                        {
                            "id": "power-plan-selection",
                            "powerPlanGuid": "57696e68-616e-6365-506f-776572000000",
                            "powerPlanName": "Winhance Power Plan",
                        },
                    ],
                },
            },
        },
        "customize": {
            "features": {
                "windows-theme-customization": {
                    "isIncluded": True,
                    "items": [{"id": "theme-mode", "selectedIndex": 1}],
                },
                "explorer": {
                    "isIncluded": True,
                    "items": [
                        {"id": "ui-animations", "isSelected": False},
                        {"id": "classic-context-menu", "isSelected": True},
                    ],
                },
            },
        },
        "windows_apps": {
            "items": [
                {
                    "id": "windows-app-xbox",
                    "appxPackageName": "Microsoft.GamingApp",
                    "subPackages": ["Microsoft.XboxGamingOverlay"],
                },
                {"id": "windows-app-edge"},
                {"id": "capability-ie", "capabilityName": "Browser.InternetExplorer~~~~0.0.11.0"},
            ],
        },
    }


@pytest.fixture
def sample_snapshot_data() -> dict[str, Any]:
    """Provide a power snapshot document."""
    return {
        "active_plan": {"guid": BALANCED_GUID, "name": "Balanced"},
        "has_battery": False,
        "settings": {
            DISK_TIMEOUT_GUID: [1200, 600],
            "5ca83367-6e45-459f-a27b-476b1d01c936": {"ac": 1, "dc": 1},
        },
    }

# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Tests for winhance_unattend.config module.

Tests document loading including:
- YAML file handling (missing, invalid, empty, BOM, JSON input)
- Catalog parsing with every registry target mode
- Rejection of illegal target mode combinations
- Configuration parsing and input kind inference
- Power snapshot parsing
"""

from __future__ import annotations

import json

import pytest

from winhance_unattend.config import (
    load_catalog,
    load_configuration,
    load_power_snapshot,
    parse_catalog,
    parse_configuration,
    parse_registry_target,
    parse_setting_definition,
)
from winhance_unattend.config.loader import (
    _load_yaml_file,
    parse_power_snapshot,
    parse_removal_item,
    parse_selection,
)
from winhance_unattend.exceptions import ConfigError
from winhance_unattend.models import BitPatch, BytePatch, GuidSubkey, PlainValue

# All tests in this file are unit tests (fast, mocked)
pytestmark = pytest.mark.unit

KEY = "HKEY_CURRENT_USER\\Software\\Test"


class TestLoadYamlFile:
    """Tests for _load_yaml_file error handling."""

    def test_missing_file(self, tmp_test_dir):
        """Test that a missing file raises ConfigError."""
        with pytest.raises(ConfigError, match="file not found"):
            _load_yaml_file(tmp_test_dir / "missing.yaml")

    def test_invalid_yaml(self, tmp_test_dir):
        """Test that malformed YAML raises ConfigError."""
        path = tmp_test_dir / "bad.yaml"
        path.write_text("features: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="failed to parse YAML in"):
            _load_yaml_file(path)

    def test_empty_file(self, tmp_test_dir):
        """Test that an empty file raises ConfigError."""
        path = tmp_test_dir / "empty.yaml"
        path.write_text("", encoding="utf-8")

        with pytest.raises(ConfigError, match="YAML file is empty"):
            _load_yaml_file(path)

    def test_non_mapping(self, tmp_test_dir):
        """Test that a list at the top level raises ConfigError."""
        path = tmp_test_dir / "list.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigError, match="must be a mapping"):
            _load_yaml_file(path)

    def test_utf8_bom(self, tmp_test_dir):
        """Test that files saved with a BOM load like any other."""
        path = tmp_test_dir / "bom.yaml"
        path.write_bytes(b"\xef\xbb\xbfhas_battery: true\n")

        assert _load_yaml_file(path) == {"has_battery": True}

    def test_json_document(self, tmp_test_dir, sample_snapshot_data):
        """Test that a JSON document loads through the same path."""
        path = tmp_test_dir / "power.json"
        path.write_text(json.dumps(sample_snapshot_data), encoding="utf-8")

        snapshot = load_power_snapshot(path)

        assert snapshot.active_plan.name == "Balanced"


class TestParseRegistryTarget:
    """Tests for parse_registry_target and mode selection."""

    def test_plain_value(self):
        """Test a plain DWORD target with default value kind."""
        target = parse_registry_target({"key_path": KEY, "value_name": "Foo", "enabled_value": 1})

        assert target.value_kind == "DWord"
        assert isinstance(target.mode, PlainValue)
        assert target.enabled_value == 1
        assert target.disabled_value is None

    def test_bit_patch_hex_mask(self):
        """Test that hex string masks are accepted."""
        target = parse_registry_target(
            {
                "key_path": KEY,
                "value_name": "Mask",
                "value_kind": "Binary",
                "binary_byte_index": 4,
                "bit_mask": "0x02",
            }
        )

        assert target.mode == BitPatch(byte_index=4, bit_mask=2)

    def test_byte_patch(self):
        """Test a byte overwrite target."""
        target = parse_registry_target(
            {
                "key_path": KEY,
                "value_name": "Settings",
                "value_kind": "Binary",
                "binary_byte_index": "8",
                "modify_byte_only": True,
            }
        )

        assert target.mode == BytePatch(byte_index=8)

    def test_guid_subkey(self):
        """Test a GUID subkey target without a value name."""
        target = parse_registry_target(
            {"key_path": KEY, "value_kind": "String", "is_guid_subkey": True}
        )

        assert isinstance(target.mode, GuidSubkey)
        assert target.value_name is None

    @pytest.mark.parametrize(
        ("fields", "message"),
        [
            ({"bit_mask": 1, "modify_byte_only": True}, "cannot be combined"),
            ({"bit_mask": 1, "is_guid_subkey": True}, "cannot be combined"),
            ({"modify_byte_only": True, "is_guid_subkey": True}, "cannot be combined"),
            ({"is_guid_subkey": True, "binary_byte_index": 0}, "not valid on a GUID subkey"),
            ({"bit_mask": 1}, "binary_byte_index is required"),
            ({"modify_byte_only": True}, "binary_byte_index is required"),
            ({"binary_byte_index": 2}, "needs bit_mask or modify_byte_only"),
        ],
    )
    def test_illegal_mode_combinations(self, fields, message):
        """Test that every unrepresentable mode combination is rejected."""
        data = {"key_path": KEY, "value_name": "V", "value_kind": "Binary", **fields}

        with pytest.raises(ConfigError, match=message):
            parse_registry_target(data)

    def test_unknown_value_kind(self):
        """Test that an unknown value kind is rejected."""
        with pytest.raises(ConfigError, match="unknown value_kind 'Word'"):
            parse_registry_target({"key_path": KEY, "value_name": "V", "value_kind": "Word"})

    def test_missing_key_path(self):
        """Test that key_path is required."""
        with pytest.raises(ConfigError, match="key_path is required"):
            parse_registry_target({"value_name": "V"})

    def test_patch_on_dword(self):
        """Test that a bit patch on a non-binary value is rejected."""
        with pytest.raises(ConfigError, match="requires value_kind Binary"):
            parse_registry_target(
                {"key_path": KEY, "value_name": "V", "binary_byte_index": 0, "bit_mask": 1}
            )

    def test_bool_index_rejected(self):
        """Test that booleans are not accepted as integers."""
        with pytest.raises(ConfigError, match="must be an integer"):
            parse_registry_target(
                {
                    "key_path": KEY,
                    "value_name": "V",
                    "value_kind": "Binary",
                    "binary_byte_index": True,
                    "modify_byte_only": True,
                }
            )


class TestParseSettingDefinition:
    """Tests for parse_setting_definition."""

    def test_missing_id(self):
        """Test that the id is required."""
        with pytest.raises(ConfigError, match="id is required"):
            parse_setting_definition({"description": "x"})

    def test_unknown_input_type(self):
        """Test that unknown input types are rejected."""
        with pytest.raises(ConfigError, match="unknown input_type"):
            parse_setting_definition({"id": "x", "input_type": "slider"})

    def test_description_defaults_to_id(self):
        """Test the description fallback."""
        assert parse_setting_definition({"id": "x"}).description == "x"

    def test_reg_imports_and_powercfg(self):
        """Test raw payloads and powercfg targets."""
        definition = parse_setting_definition(
            {
                "id": "x",
                "reg_imports": [{"enabled_content": "Windows Registry Editor Version 5.00"}],
                "powercfg": [
                    {"subgroup_guid": "a", "setting_guid": "b", "mode_support": "combined"}
                ],
                "requires_brightness_support": True,
            }
        )

        assert definition.raw_imports[0].content_for(True).startswith("Windows Registry")
        assert definition.raw_imports[0].content_for(False) is None
        assert definition.power_targets[0].mode_support == "combined"
        assert definition.requires_brightness_support is True

    def test_bad_mode_support(self):
        """Test that mode_support is validated."""
        with pytest.raises(ConfigError, match="mode_support"):
            parse_setting_definition(
                {"id": "x", "powercfg": [{"subgroup_guid": "a", "setting_guid": "b", "mode_support": "ac"}]}
            )

    def test_registry_must_be_list(self):
        """Test that registry targets must be a list."""
        with pytest.raises(ConfigError, match="must be a list"):
            parse_setting_definition({"id": "x", "registry": {"key_path": KEY}})


class TestLoadCatalog:
    """Tests for load_catalog."""

    def test_load_sample_catalog(self, create_yaml_file, sample_catalog_data):
        """Test loading a catalog with every target kind."""
        path = create_yaml_file("catalog.yaml", sample_catalog_data)

        catalog = load_catalog(path)

        assert set(catalog.features) == {
            "windows-theme-customization",
            "explorer",
            "privacy",
            "power",
        }
        assert catalog.display_name("explorer") == "Explorer Settings"

        theme = catalog.find("windows-theme-customization", "theme-mode")
        assert theme.input_type == "selection"
        assert theme.value_mappings[1] == {"AppsUseLightTheme": 0, "SystemUsesLightTheme": 0}

        assert isinstance(catalog.find("explorer", "ui-animations").registry_targets[0].mode, BitPatch)
        assert catalog.find("explorer", "explorer-compact-mode").registry_targets[0].mode == BytePatch(8)
        assert isinstance(
            catalog.find("explorer", "classic-context-menu").registry_targets[0].mode, GuidSubkey
        )

    def test_scheduled_task_forms(self, sample_catalog_data):
        """Test that tasks may be plain strings or mappings."""
        catalog = parse_catalog(sample_catalog_data)

        tasks = catalog.find("privacy", "disable-telemetry").scheduled_tasks
        assert [t.task_path for t in tasks] == [
            "\\Microsoft\\Windows\\Autochk\\Proxy",
            "\\Microsoft\\Windows\\Feedback\\Siuf\\DmClient",
        ]

    def test_power_definitions(self, sample_catalog_data):
        """Test power targets and hardware gates."""
        catalog = parse_catalog(sample_catalog_data)

        lid = catalog.find("power", "power-lid-action")
        assert lid.requires_battery is True
        assert lid.is_power_only is True
        assert catalog.find("power", "power-plan-selection").input_type == "power-plan"

    def test_error_names_location(self):
        """Test that errors name the feature and setting they come from."""
        data = {"features": {"explorer": {"settings": [{"id": "bad", "registry": [{}]}]}}}

        with pytest.raises(ConfigError, match=r"features\.explorer\.settings\[0\] bad\.registry\[0\]"):
            parse_catalog(data)


class TestParseSelection:
    """Tests for parse_selection and kind inference."""

    @pytest.mark.parametrize(
        ("data", "kind"),
        [
            ({"id": "a", "isSelected": True}, "toggle"),
            ({"id": "a", "selectedIndex": 0}, "selection"),
            ({"id": "a", "powerPlanGuid": "g"}, "power-plan"),
            ({"id": "a", "customStateValues": {"V": 1}}, "selection"),
            ({"id": "a", "isSelected": True, "customStateValues": {"V": 1}}, "toggle"),
            ({"id": "a", "inputType": "selection"}, "selection"),
        ],
    )
    def test_kind_inference(self, data, kind):
        """Test how the input kind is inferred from the item's fields."""
        assert parse_selection(data).kind == kind

    def test_unknown_input_type(self):
        """Test that an explicit unknown inputType is rejected."""
        with pytest.raises(ConfigError, match="unknown inputType"):
            parse_selection({"id": "a", "inputType": "slider"})

    def test_string_index(self):
        """Test that a numeric string index is accepted."""
        assert parse_selection({"id": "a", "selectedIndex": "2"}).selected_index == 2

    def test_missing_id(self):
        """Test that the item id is required."""
        with pytest.raises(ConfigError, match="id is required"):
            parse_selection({"isSelected": True})


class TestParseRemovalItem:
    """Tests for parse_removal_item."""

    def test_package(self):
        """Test an Appx package with sub-packages."""
        item = parse_removal_item(
            {"id": "x", "appxPackageName": "Microsoft.GamingApp", "subPackages": ["A", "B"]}
        )

        assert item.kind == "package"
        assert item.name == "Microsoft.GamingApp"
        assert item.sub_packages == ("A", "B")

    def test_capability_and_feature(self):
        """Test capability and optional feature items."""
        assert parse_removal_item({"id": "c", "capabilityName": "Cap"}).kind == "capability"
        assert (
            parse_removal_item({"id": "f", "optionalFeatureName": "Recall"}).kind
            == "optional-feature"
        )

    def test_no_name(self):
        """Test that an item without any name keeps an empty package name."""
        item = parse_removal_item({"id": "windows-app-edge"})

        assert item.kind == "package"
        assert item.name == ""


class TestLoadConfiguration:
    """Tests for load_configuration."""

    def test_load_sample_configuration(self, create_yaml_file, sample_configuration_data):
        """Test loading both groups and the app list."""
        path = create_yaml_file("config.yaml", sample_configuration_data)

        config = load_configuration(path)

        privacy = config.optimize.get("privacy")
        assert privacy.get("disable-telemetry").is_selected is True
        plan = config.optimize.get("power").get("power-plan-selection")
        assert plan.kind == "power-plan"
        assert plan.power_plan_name == "Winhance Power Plan"
        theme = config.customize.get("windows-theme-customization").get("theme-mode")
        assert (theme.kind, theme.selected_index) == ("selection", 1)
        assert [item.id for item in config.windows_apps] == [
            "windows-app-xbox",
            "windows-app-edge",
            "capability-ie",
        ]

    def test_empty_groups(self):
        """Test that missing groups parse as empty."""
        config = parse_configuration({})

        assert config.optimize.features == ()
        assert config.customize.features == ()
        assert config.windows_apps == ()

    def test_is_included_default(self):
        """Test that features are included unless marked otherwise."""
        config = parse_configuration(
            {
                "optimize": {
                    "features": {
                        "privacy": {"items": []},
                        "gaming": {"isIncluded": False, "items": []},
                    }
                }
            }
        )

        assert config.optimize.get("privacy").is_included is True
        assert config.optimize.get("gaming").is_included is False


class TestPowerSnapshot:
    """Tests for power snapshot parsing."""

    def test_load_snapshot(self, create_yaml_file, sample_snapshot_data):
        """Test both value forms and the active plan."""
        path = create_yaml_file("power.yaml", sample_snapshot_data)

        snapshot = load_power_snapshot(path)

        assert snapshot.active_plan.guid == "381b4222-f694-41f0-9685-ff5bb260df2e"
        assert snapshot.has_battery is False
        assert snapshot.acdc_values["6738e2c4-e8a5-4a42-b16a-e040e769756e"] == (1200, 600)
        assert snapshot.acdc_values["5ca83367-6e45-459f-a27b-476b1d01c936"] == (1, 1)

    def test_guid_keys_lowercased(self):
        """Test that setting GUIDs are normalized to lowercase."""
        snapshot = parse_power_snapshot({"settings": {"ABCDEF": {"ac": "0x10", "dc": None}}})

        assert snapshot.acdc_values == {"abcdef": (16, None)}
        assert snapshot.active_plan is None

    def test_bad_pair(self):
        """Test that malformed value pairs are rejected."""
        with pytest.raises(ConfigError, match=r"must be \[ac, dc\]"):
            parse_power_snapshot({"settings": {"g": [1, 2, 3]}})

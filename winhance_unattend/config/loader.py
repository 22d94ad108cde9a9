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

"""Document loading for winhance-unattend.

Three YAML documents feed a compilation. JSON documents load through the
same path, since PyYAML accepts JSON input.

1. **Catalog** (what each setting does)

    ```yaml
    features:
      windows-theme-customization:
        name: Windows Theme
        settings:
          - id: theme-mode
            description: Windows theme mode
            input_type: selection
            registry:
              - key_path: HKEY_CURRENT_USER\\Software\\...\\Personalize
                value_name: AppsUseLightTheme
                value_kind: DWord
            value_mappings:
              0: {AppsUseLightTheme: 1, SystemUsesLightTheme: 1}
              1: {AppsUseLightTheme: 0, SystemUsesLightTheme: 0}
    ```

   Registry target modes come from the fields ``bit_mask``,
   ``binary_byte_index``, ``modify_byte_only`` and ``is_guid_subkey``. At
   most one mode may be requested per target.

2. **Configuration** (what the user picked), camelCase like the exported
   configuration files:

    ```yaml
    optimize:
      features:
        privacy:
          isIncluded: true
          items:
            - {id: disable-telemetry, isSelected: true}
    customize:
      features: {}
    windows_apps:
      items:
        - {id: windows-app-xbox, appxPackageName: Microsoft.GamingApp}
    ```

3. **Power snapshot** (live data captured on a reference machine):

    ```yaml
    active_plan: {guid: 381b4222-f694-41f0-9685-ff5bb260df2e, name: Balanced}
    has_battery: false
    settings:
      6738e2c4-e8a5-4a42-b16a-e040e769756e: [1200, 600]
    ```

Private Helpers:

_load_yaml_file : Load a YAML document with error handling
_require_mapping : Check a node is a mapping, naming where it was found
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from winhance_unattend.assembler import PowerSnapshot
from winhance_unattend.exceptions import ConfigError
from winhance_unattend.logging import get_global_logger
from winhance_unattend.models import (
    VALUE_KINDS,
    BitPatch,
    BytePatch,
    Catalog,
    FeatureGroup,
    FeatureSection,
    GuidSubkey,
    PlainValue,
    PowerCfgTarget,
    RawImportPayload,
    RegistryTarget,
    RemovalItem,
    ScheduledTaskTarget,
    Selection,
    SettingDefinition,
    TargetMode,
    UnifiedConfiguration,
)
from winhance_unattend.services.base import PowerPlanInfo

_INPUT_TYPES = ("toggle", "selection", "power-plan")

# -------------------------------
# YAML helpers
# -------------------------------


def _load_yaml_file(p: Path) -> dict[str, Any]:
    """Load a YAML document whose top level is a mapping.

    Raises:
        ConfigError: If the file is missing, is not valid YAML, is empty
            or its top level is not a mapping.
    """
    if not p.exists():
        raise ConfigError(f"file not found: {p}")
    try:
        with p.open("r", encoding="utf-8-sig") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as err:
        raise ConfigError(f"failed to parse YAML in {p}: {err}") from err
    if data is None:
        raise ConfigError(f"YAML file is empty: {p}")
    if not isinstance(data, dict):
        raise ConfigError(f"top level of {p} must be a mapping")
    return data


def _require_mapping(value: Any, where: str) -> Mapping[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"{where} must be a mapping, got {type(value).__name__}")
    return value


def _require_list(value: Any, where: str) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{where} must be a list, got {type(value).__name__}")
    return value


def _parse_int(value: Any, where: str) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{where} must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip(), 0)
        except ValueError as err:
            raise ConfigError(f"{where} must be an integer, got {value!r}") from err
    raise ConfigError(f"{where} must be an integer, got {value!r}")


# -------------------------------
# Catalog
# -------------------------------


def _parse_mode(data: Mapping[str, Any], where: str) -> TargetMode:
    bit_mask = data.get("bit_mask")
    byte_index = data.get("binary_byte_index")
    byte_only = bool(data.get("modify_byte_only", False))
    guid_subkey = bool(data.get("is_guid_subkey", False))

    requested = [
        name
        for name, on in (
            ("bit_mask", bit_mask is not None),
            ("modify_byte_only", byte_only),
            ("is_guid_subkey", guid_subkey),
        )
        if on
    ]
    if len(requested) > 1:
        raise ConfigError(f"{where}: {' and '.join(requested)} cannot be combined")

    if guid_subkey:
        if byte_index is not None:
            raise ConfigError(f"{where}: binary_byte_index is not valid on a GUID subkey")
        return GuidSubkey()

    if bit_mask is not None or byte_only:
        if byte_index is None:
            raise ConfigError(f"{where}: binary_byte_index is required for byte and bit patches")
        index = _parse_int(byte_index, f"{where}.binary_byte_index")
        if bit_mask is not None:
            return BitPatch(byte_index=index, bit_mask=_parse_int(bit_mask, f"{where}.bit_mask"))
        return BytePatch(byte_index=index)

    if byte_index is not None:
        raise ConfigError(
            f"{where}: binary_byte_index needs bit_mask or modify_byte_only"
        )
    return PlainValue()


def parse_registry_target(data: Mapping[str, Any], where: str = "registry") -> RegistryTarget:
    """Build a RegistryTarget from its document form.

    Args:
        data: Target mapping from the catalog.
        where: Location used in error messages.

    Returns:
        The target with its mode resolved to exactly one variant.

    Raises:
        ConfigError: On missing fields, an unknown value kind or a mode
            combination that cannot be represented.
    """
    data = _require_mapping(data, where)
    key_path = data.get("key_path")
    if not key_path or not isinstance(key_path, str):
        raise ConfigError(f"{where}: key_path is required")

    value_kind = data.get("value_kind", "DWord")
    if value_kind not in VALUE_KINDS:
        raise ConfigError(
            f"{where}: unknown value_kind {value_kind!r} "
            f"(expected one of {', '.join(VALUE_KINDS)})"
        )

    mode = _parse_mode(data, where)
    value_name = data.get("value_name")
    return RegistryTarget(
        key_path=key_path,
        value_name=str(value_name) if value_name is not None else None,
        value_kind=value_kind,
        enabled_value=data.get("enabled_value"),
        disabled_value=data.get("disabled_value"),
        mode=mode,
    )


def _parse_task(item: Any, where: str) -> ScheduledTaskTarget:
    if isinstance(item, str):
        return ScheduledTaskTarget(task_path=item)
    task_path = _require_mapping(item, where).get("task_path")
    if not task_path:
        raise ConfigError(f"{where}: task_path is required")
    return ScheduledTaskTarget(task_path=str(task_path))


def _parse_powercfg(item: Any, where: str) -> PowerCfgTarget:
    data = _require_mapping(item, where)
    subgroup = data.get("subgroup_guid")
    setting = data.get("setting_guid")
    if not subgroup or not setting:
        raise ConfigError(f"{where}: subgroup_guid and setting_guid are required")
    mode_support = data.get("mode_support", "separate")
    if mode_support not in ("separate", "combined"):
        raise ConfigError(f"{where}: mode_support must be 'separate' or 'combined'")
    return PowerCfgTarget(
        subgroup_guid=str(subgroup),
        setting_guid=str(setting),
        mode_support=mode_support,
    )


def _parse_value_mappings(value: Any, where: str) -> dict[int, dict[str, Any]]:
    mappings: dict[int, dict[str, Any]] = {}
    for index, values in _require_mapping(value, where).items():
        key = _parse_int(index, f"{where} index")
        mappings[key] = dict(_require_mapping(values, f"{where}[{index}]"))
    return mappings


def parse_setting_definition(
    data: Mapping[str, Any], where: str = "setting"
) -> SettingDefinition:
    """Build a SettingDefinition from its document form.

    Raises:
        ConfigError: If the id is missing or any target is invalid.
    """
    data = _require_mapping(data, where)
    setting_id = data.get("id")
    if not setting_id:
        raise ConfigError(f"{where}: id is required")
    where = f"{where} {setting_id}"

    input_type = data.get("input_type", "toggle")
    if input_type not in _INPUT_TYPES:
        raise ConfigError(f"{where}: unknown input_type {input_type!r}")

    registry = tuple(
        parse_registry_target(item, f"{where}.registry[{i}]")
        for i, item in enumerate(_require_list(data.get("registry"), f"{where}.registry"))
    )
    tasks = tuple(
        _parse_task(item, f"{where}.scheduled_tasks[{i}]")
        for i, item in enumerate(
            _require_list(data.get("scheduled_tasks"), f"{where}.scheduled_tasks")
        )
    )
    imports = tuple(
        RawImportPayload(
            enabled_content=_require_mapping(item, f"{where}.reg_imports").get(
                "enabled_content"
            ),
            disabled_content=_require_mapping(item, f"{where}.reg_imports").get(
                "disabled_content"
            ),
        )
        for item in _require_list(data.get("reg_imports"), f"{where}.reg_imports")
    )
    power_targets = tuple(
        _parse_powercfg(item, f"{where}.powercfg[{i}]")
        for i, item in enumerate(_require_list(data.get("powercfg"), f"{where}.powercfg"))
    )

    return SettingDefinition(
        id=str(setting_id),
        description=str(data.get("description") or setting_id),
        input_type=input_type,
        registry_targets=registry,
        scheduled_tasks=tasks,
        raw_imports=imports,
        power_targets=power_targets,
        value_mappings=_parse_value_mappings(
            data.get("value_mappings"), f"{where}.value_mappings"
        ),
        requires_battery=bool(data.get("requires_battery", False)),
        requires_brightness_support=bool(data.get("requires_brightness_support", False)),
    )


def parse_catalog(data: Mapping[str, Any]) -> Catalog:
    features: dict[str, tuple[SettingDefinition, ...]] = {}
    names: dict[str, str] = {}
    for feature_id, feature in _require_mapping(data.get("features"), "features").items():
        feature = _require_mapping(feature, f"features.{feature_id}")
        names[feature_id] = str(feature.get("name") or feature_id)
        settings = _require_list(feature.get("settings"), f"features.{feature_id}.settings")
        features[feature_id] = tuple(
            parse_setting_definition(item, f"features.{feature_id}.settings[{i}]")
            for i, item in enumerate(settings)
        )
    return Catalog(features=features, names=names)


def load_catalog(path: Path) -> Catalog:
    """Load a setting catalog document.

    Args:
        path: Catalog YAML or JSON file.

    Returns:
        The parsed catalog.

    Raises:
        ConfigError: If the file cannot be read or any definition is invalid.
    """
    logger = get_global_logger()
    catalog = parse_catalog(_load_yaml_file(Path(path)))
    total = sum(len(definitions) for definitions in catalog.features.values())
    logger.verbose(
        "CONFIG", f"Loaded catalog: {len(catalog.features)} feature(s), {total} setting(s)"
    )
    return catalog


# -------------------------------
# Configuration
# -------------------------------


def _infer_kind(data: Mapping[str, Any]) -> str:
    kind = data.get("inputType")
    if kind is not None:
        if kind not in _INPUT_TYPES:
            raise ConfigError(f"item {data.get('id')}: unknown inputType {kind!r}")
        return kind
    if data.get("powerPlanGuid"):
        return "power-plan"
    if data.get("selectedIndex") is not None:
        return "selection"
    if data.get("customStateValues") and data.get("isSelected") is None:
        return "selection"
    return "toggle"


def parse_selection(data: Mapping[str, Any], where: str = "item") -> Selection:
    data = _require_mapping(data, where)
    item_id = data.get("id")
    if not item_id:
        raise ConfigError(f"{where}: id is required")

    index = data.get("selectedIndex")
    custom = data.get("customStateValues")
    return Selection(
        id=str(item_id),
        kind=_infer_kind(data),
        is_selected=data.get("isSelected"),
        selected_index=_parse_int(index, f"{where}.selectedIndex") if index is not None else None,
        custom_state_values=dict(_require_mapping(custom, f"{where}.customStateValues"))
        if custom
        else None,
        power_plan_guid=data.get("powerPlanGuid"),
        power_plan_name=data.get("powerPlanName"),
    )


def _parse_group(name: str, data: Any, key: str) -> FeatureGroup:
    data = _require_mapping(data, key)
    sections = []
    for feature_id, feature in _require_mapping(data.get("features"), f"{key}.features").items():
        feature = _require_mapping(feature, f"{key}.features.{feature_id}")
        items = _require_list(feature.get("items"), f"{key}.features.{feature_id}.items")
        sections.append(
            FeatureSection(
                feature_id=str(feature_id),
                items=tuple(
                    parse_selection(item, f"{key}.features.{feature_id}.items[{i}]")
                    for i, item in enumerate(items)
                ),
                is_included=bool(feature.get("isIncluded", True)),
            )
        )
    return FeatureGroup(name=name, features=tuple(sections))


def parse_removal_item(data: Mapping[str, Any], where: str = "windows_apps") -> RemovalItem:
    data = _require_mapping(data, where)
    item_id = data.get("id")
    if not item_id:
        raise ConfigError(f"{where}: id is required")

    if data.get("capabilityName"):
        kind, name = "capability", data["capabilityName"]
    elif data.get("optionalFeatureName"):
        kind, name = "optional-feature", data["optionalFeatureName"]
    else:
        kind, name = "package", data.get("appxPackageName") or ""

    sub_packages = _require_list(data.get("subPackages"), f"{where}.subPackages")
    return RemovalItem(
        id=str(item_id),
        kind=kind,
        name=str(name),
        sub_packages=tuple(str(p) for p in sub_packages),
    )


def parse_configuration(data: Mapping[str, Any]) -> UnifiedConfiguration:
    apps = _require_mapping(data.get("windows_apps"), "windows_apps")
    items = _require_list(apps.get("items"), "windows_apps.items")
    return UnifiedConfiguration(
        optimize=_parse_group("Optimize", data.get("optimize"), "optimize"),
        customize=_parse_group("Customize", data.get("customize"), "customize"),
        windows_apps=tuple(
            parse_removal_item(item, f"windows_apps.items[{i}]")
            for i, item in enumerate(items)
        ),
    )


def load_configuration(path: Path) -> UnifiedConfiguration:
    """Load a unified configuration document.

    Raises:
        ConfigError: If the file cannot be read or an item is malformed.
    """
    logger = get_global_logger()
    config = parse_configuration(_load_yaml_file(Path(path)))
    for group in config.groups:
        logger.verbose("CONFIG", f"{group.name}: {len(group.features)} feature(s)")
    logger.verbose("CONFIG", f"Windows apps: {len(config.windows_apps)} item(s)")
    return config


# -------------------------------
# Power snapshot
# -------------------------------


def _parse_pair(value: Any, where: str) -> tuple[int | None, int | None]:
    if isinstance(value, Mapping):
        ac, dc = value.get("ac"), value.get("dc")
    elif isinstance(value, list) and len(value) == 2:
        ac, dc = value
    else:
        raise ConfigError(f"{where} must be [ac, dc] or {{ac, dc}}")
    return (
        _parse_int(ac, f"{where}.ac") if ac is not None else None,
        _parse_int(dc, f"{where}.dc") if dc is not None else None,
    )


def parse_power_snapshot(data: Mapping[str, Any]) -> PowerSnapshot:
    plan = None
    plan_data = _require_mapping(data.get("active_plan"), "active_plan")
    if plan_data.get("guid"):
        guid = str(plan_data["guid"])
        plan = PowerPlanInfo(guid=guid, name=str(plan_data.get("name") or guid))

    settings = {
        str(guid).lower(): _parse_pair(pair, f"settings.{guid}")
        for guid, pair in _require_mapping(data.get("settings"), "settings").items()
    }
    return PowerSnapshot(
        active_plan=plan,
        acdc_values=settings,
        has_battery=bool(data.get("has_battery", False)),
    )


def load_power_snapshot(path: Path) -> PowerSnapshot:
    """Load a power snapshot document.

    Raises:
        ConfigError: If the file cannot be read or a value is malformed.
    """
    snapshot = parse_power_snapshot(_load_yaml_file(Path(path)))
    get_global_logger().verbose(
        "CONFIG",
        f"Loaded power snapshot: {len(snapshot.acdc_values)} setting(s), "
        f"battery={snapshot.has_battery}",
    )
    return snapshot

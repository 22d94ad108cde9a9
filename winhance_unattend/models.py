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

"""Catalog and selection data model.

The compiler works on two read-only inputs built before compilation
starts:

- The setting catalog: every known setting and how to realize it
  (registry targets, scheduled tasks, raw .reg payloads, powercfg targets,
  index -> value tables for selections).
- The unified configuration: which settings the user picked and with
  what value, grouped by feature.

Registry target modes are a tagged union. A target is exactly one of:

- PlainValue: set or delete one named value
- BitPatch: flip one bit inside a byte of a binary value
- BytePatch: overwrite one byte of a binary value
- GuidSubkey: create or delete a whole subkey (no value name)

Illegal combinations (a bit mask on a subkey target, a byte patch on a
DWORD) raise ConfigError when the target is built, so the emitter can
dispatch on the mode class alone.

Example:
    Build a bit-patch target:
        ```python
        from winhance_unattend.models import BitPatch, RegistryTarget

        target = RegistryTarget(
            key_path=r"HKEY_CURRENT_USER\\Control Panel\\Desktop",
            value_name="UserPreferencesMask",
            value_kind="Binary",
            enabled_value=1,
            disabled_value=0,
            mode=BitPatch(byte_index=4, bit_mask=0x02),
        )
        target.phase  # Phase.USER
        ```
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal, Union

from winhance_unattend.exceptions import ConfigError

ValueKind = Literal[
    "String", "ExpandString", "DWord", "QWord", "Binary", "MultiString", "None"
]
InputType = Literal["toggle", "selection", "power-plan"]
RemovalKind = Literal["package", "capability", "optional-feature"]
PowerModeSupport = Literal["separate", "combined"]

VALUE_KINDS: tuple[str, ...] = (
    "String",
    "ExpandString",
    "DWord",
    "QWord",
    "Binary",
    "MultiString",
    "None",
)

# Custom state key used for targets without a value name
KEY_EXISTS = "KeyExists"

_USER_HIVE_PREFIXES = ("HKEY_CURRENT_USER", "HKCU")


class Phase(Enum):
    """Script phase a statement runs in.

    SYSTEM runs elevated before any user logs on and owns every hive except
    HKCU. USER runs at first logon through the bootstrap task and owns HKCU.
    """

    SYSTEM = "system"
    USER = "user"

    @classmethod
    def for_key_path(cls, key_path: str) -> Phase:
        """Return the phase that owns a registry key path."""
        upper = key_path.strip().upper()
        if upper.startswith(_USER_HIVE_PREFIXES):
            return cls.USER
        return cls.SYSTEM

    @property
    def opposite(self) -> Phase:
        return Phase.SYSTEM if self is Phase.USER else Phase.USER


# -------------------------------
# Registry target modes
# -------------------------------


@dataclass(frozen=True)
class PlainValue:
    """Set or delete a named value."""


@dataclass(frozen=True)
class BitPatch:
    """Set or clear the bits of ``bit_mask`` in the byte at ``byte_index``."""

    byte_index: int
    bit_mask: int

    def __post_init__(self) -> None:
        if self.byte_index < 0:
            raise ConfigError(f"byte index must be >= 0, got {self.byte_index}")
        if not 0 < self.bit_mask <= 0xFF:
            raise ConfigError(
                f"bit mask must be between 0x01 and 0xFF, got {self.bit_mask!r}"
            )


@dataclass(frozen=True)
class BytePatch:
    """Overwrite the single byte at ``byte_index``."""

    byte_index: int

    def __post_init__(self) -> None:
        if self.byte_index < 0:
            raise ConfigError(f"byte index must be >= 0, got {self.byte_index}")


@dataclass(frozen=True)
class GuidSubkey:
    """Create or delete the key itself; the target has no value name."""


TargetMode = Union[PlainValue, BitPatch, BytePatch, GuidSubkey]


@dataclass(frozen=True)
class RegistryTarget:
    """One registry location a setting writes to.

    Attributes:
        key_path: Full key path using long or short hive names
            (HKEY_LOCAL_MACHINE\\... or HKLM\\...).
        value_name: Value to write. None for GuidSubkey targets.
        value_kind: Registry value type.
        enabled_value: Value when the toggle is on. None means delete.
        disabled_value: Value when the toggle is off. None means delete.
        mode: Exactly one of PlainValue, BitPatch, BytePatch, GuidSubkey.
    """

    key_path: str
    value_name: str | None
    value_kind: ValueKind = "DWord"
    enabled_value: Any = None
    disabled_value: Any = None
    mode: TargetMode = field(default_factory=PlainValue)

    def __post_init__(self) -> None:
        if not self.key_path:
            raise ConfigError("registry target is missing key_path")
        if self.value_kind not in VALUE_KINDS:
            raise ConfigError(
                f"unknown value kind {self.value_kind!r} for {self.key_path}"
            )
        if isinstance(self.mode, GuidSubkey):
            if self.value_name:
                raise ConfigError(
                    f"GUID subkey target {self.key_path} must not name a value "
                    f"(got {self.value_name!r})"
                )
        elif not self.value_name:
            raise ConfigError(f"registry target {self.key_path} needs a value_name")
        if isinstance(self.mode, (BitPatch, BytePatch)) and self.value_kind != "Binary":
            raise ConfigError(
                f"{type(self.mode).__name__} on {self.key_path}\\{self.value_name} "
                f"requires value_kind Binary, got {self.value_kind}"
            )

    @property
    def phase(self) -> Phase:
        return Phase.for_key_path(self.key_path)

    @property
    def lookup_key(self) -> str:
        """Key used in selection tables and custom state values."""
        return self.value_name or KEY_EXISTS

    def value_for(self, is_selected: bool) -> Any:
        return self.enabled_value if is_selected else self.disabled_value


# -------------------------------
# Other setting targets
# -------------------------------


@dataclass(frozen=True)
class ScheduledTaskTarget:
    """A Windows scheduled task enabled or disabled by a toggle."""

    task_path: str


@dataclass(frozen=True)
class RawImportPayload:
    """A .reg file fragment imported as-is.

    Attributes:
        enabled_content: .reg text imported when the toggle is on.
        disabled_content: .reg text imported when the toggle is off.
    """

    enabled_content: str | None = None
    disabled_content: str | None = None

    def content_for(self, is_selected: bool) -> str | None:
        return self.enabled_content if is_selected else self.disabled_content


@dataclass(frozen=True)
class PowerCfgTarget:
    """A powercfg (subgroup, setting) GUID pair.

    Attributes:
        subgroup_guid: Power subgroup GUID.
        setting_guid: Power setting GUID.
        mode_support: "separate" when AC and DC are set independently,
            "combined" when only the AC index applies.
    """

    subgroup_guid: str
    setting_guid: str
    mode_support: PowerModeSupport = "separate"


# -------------------------------
# Catalog
# -------------------------------


@dataclass(frozen=True)
class SettingDefinition:
    """Catalog entry for one customizable setting.

    Attributes:
        id: Stable setting identifier (e.g., "theme-mode").
        description: Human readable description, used in script log lines.
        input_type: "toggle", "selection" or "power-plan".
        registry_targets: Registry locations written by the setting.
        scheduled_tasks: Tasks enabled or disabled by the setting.
        raw_imports: .reg payloads imported by the setting.
        power_targets: powercfg GUID pairs driven by the setting.
        value_mappings: Selection index -> {value name -> value}.
        requires_battery: Skip power output on machines without a battery.
        requires_brightness_support: Skip power output entirely; brightness
            support cannot be checked on an unattended target.
    """

    id: str
    description: str = ""
    input_type: InputType = "toggle"
    registry_targets: tuple[RegistryTarget, ...] = ()
    scheduled_tasks: tuple[ScheduledTaskTarget, ...] = ()
    raw_imports: tuple[RawImportPayload, ...] = ()
    power_targets: tuple[PowerCfgTarget, ...] = ()
    value_mappings: Mapping[int, Mapping[str, Any]] = field(default_factory=dict)
    requires_battery: bool = False
    requires_brightness_support: bool = False

    @property
    def is_power_only(self) -> bool:
        return bool(self.power_targets) and not self.registry_targets

    @property
    def has_targets(self) -> bool:
        return bool(
            self.registry_targets
            or self.scheduled_tasks
            or self.raw_imports
            or self.power_targets
        )

    def targets_for(self, phase: Phase) -> tuple[RegistryTarget, ...]:
        return tuple(t for t in self.registry_targets if t.phase is phase)


@dataclass(frozen=True)
class Catalog:
    """All setting definitions, keyed by feature id.

    Attributes:
        features: Feature id -> setting definitions.
        names: Feature id -> display name.
    """

    features: Mapping[str, tuple[SettingDefinition, ...]] = field(
        default_factory=dict
    )
    names: Mapping[str, str] = field(default_factory=dict)

    def definitions(self, feature_id: str) -> tuple[SettingDefinition, ...] | None:
        return self.features.get(feature_id)

    def find(self, feature_id: str, setting_id: str) -> SettingDefinition | None:
        for definition in self.features.get(feature_id, ()):
            if definition.id == setting_id:
                return definition
        return None

    def display_name(self, feature_id: str) -> str:
        return f"{self.names.get(feature_id, feature_id)} Settings"


# -------------------------------
# Configuration (user selections)
# -------------------------------


@dataclass(frozen=True)
class Selection:
    """The user's choice for one setting.

    Attributes:
        id: Setting id this selection refers to.
        kind: "toggle", "selection" or "power-plan".
        is_selected: Toggle state.
        selected_index: Selection index into the catalog's value table.
        custom_state_values: Explicit value-name -> value overrides. When
            present they replace the catalog's value table for the setting.
        power_plan_guid: Target plan GUID for power-plan selections.
        power_plan_name: Target plan display name.
    """

    id: str
    kind: InputType = "toggle"
    is_selected: bool | None = None
    selected_index: int | None = None
    custom_state_values: Mapping[str, Any] | None = None
    power_plan_guid: str | None = None
    power_plan_name: str | None = None


@dataclass(frozen=True)
class FeatureSection:
    """Selections for one feature (e.g., "privacy", "windows-theme-customization")."""

    feature_id: str
    items: tuple[Selection, ...] = ()
    is_included: bool = True

    def get(self, setting_id: str) -> Selection | None:
        for item in self.items:
            if item.id == setting_id:
                return item
        return None


@dataclass(frozen=True)
class FeatureGroup:
    """A named collection of feature sections ("Optimize", "Customize").

    Phase assignment happens per registry target, so one group feeds both
    script phases.
    """

    name: str
    features: tuple[FeatureSection, ...] = ()

    def get(self, feature_id: str) -> FeatureSection | None:
        for section in self.features:
            if section.feature_id == feature_id:
                return section
        return None


@dataclass(frozen=True)
class RemovalItem:
    """An app, capability or optional feature selected for removal.

    Attributes:
        id: Catalog id (e.g., "windows-app-edge").
        kind: "package", "capability" or "optional-feature".
        name: Appx package, capability or feature name.
        sub_packages: Extra Appx package names removed with a package.
    """

    id: str
    kind: RemovalKind = "package"
    name: str = ""
    sub_packages: tuple[str, ...] = ()


@dataclass(frozen=True)
class UnifiedConfiguration:
    """The complete user configuration consumed by the compiler."""

    optimize: FeatureGroup = field(default_factory=lambda: FeatureGroup("Optimize"))
    customize: FeatureGroup = field(
        default_factory=lambda: FeatureGroup("Customize")
    )
    windows_apps: tuple[RemovalItem, ...] = ()

    @property
    def groups(self) -> tuple[FeatureGroup, ...]:
        return (self.optimize, self.customize)

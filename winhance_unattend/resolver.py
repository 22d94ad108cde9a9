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

"""Value resolution for settings and selections.

Turns a (setting definition, selection) pair into concrete per-target
values. The resolver performs no I/O: live power values and hardware
capabilities arrive pre-fetched from the collaborators in
``winhance_unattend.services``.

Resolution Rules:

- Toggle: the target's enabled or disabled value. None means delete.
- Selection: custom state values are used verbatim when present.
  Otherwise the selected index is looked up in the catalog's value table.
  A missing index is reported as a warning and the setting is skipped.
- Power plan: the plan GUID and name are passed through to the power
  section.

Example:
    Resolve a selection for the user phase:
        ```python
        from winhance_unattend.models import Phase
        from winhance_unattend.resolver import resolve_targets

        for resolved in resolve_targets(definition, selection, Phase.USER):
            print(resolved.target.value_name, resolved.value)
        ```
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from winhance_unattend.logging import Logger, get_global_logger
from winhance_unattend.models import (
    Phase,
    RegistryTarget,
    Selection,
    SettingDefinition,
)

POWER_PLAN_SETTING_ID = "power-plan-selection"
POWERCFG_VALUE_KEY = "PowerCfgValue"


@dataclass(frozen=True)
class ResolvedTarget:
    """A registry target paired with the value it should receive."""

    target: RegistryTarget
    value: Any


@dataclass(frozen=True)
class PowerPlanChoice:
    """Power plan to create (if missing) and activate."""

    guid: str
    name: str


@dataclass(frozen=True)
class PowerSettingValue:
    """AC/DC value pair baked into the script for one power setting."""

    subgroup_guid: str
    setting_guid: str
    ac_value: int
    dc_value: int
    description: str


def resolve_toggle(target: RegistryTarget, is_selected: bool) -> Any:
    """Return the value a toggle writes to ``target``."""
    return target.value_for(is_selected)


def resolve_selection(
    definition: SettingDefinition,
    selection: Selection,
    logger: Logger | None = None,
) -> dict[str, Any] | None:
    """Resolve a selection to a value-name -> value map.

    Args:
        definition: Catalog entry for the setting.
        selection: The user's selection.
        logger: Receives a warning when the selection cannot be resolved.

    Returns:
        The values to apply, or None when the selection has neither custom
        values nor a value-table entry for its index.
    """
    if logger is None:
        logger = get_global_logger()

    if selection.custom_state_values:
        return dict(selection.custom_state_values)

    if selection.selected_index is None:
        logger.warning(
            "RESOLVE",
            f"Selection {definition.id} has no selected index or custom values",
        )
        return None

    if not definition.value_mappings:
        logger.warning(
            "RESOLVE", f"Selection {definition.id} has no value mappings in the catalog"
        )
        return None

    values = definition.value_mappings.get(selection.selected_index)
    if values is None:
        logger.warning(
            "RESOLVE",
            f"Index {selection.selected_index} is not in the value table of "
            f"{definition.id}; setting skipped",
        )
        return None

    return dict(values)


def resolve_targets(
    definition: SettingDefinition,
    selection: Selection,
    phase: Phase,
    logger: Logger | None = None,
) -> list[ResolvedTarget]:
    """Resolve every registry target of ``definition`` that belongs to ``phase``.

    Args:
        definition: Catalog entry for the setting.
        selection: The user's selection for it.
        phase: Script phase being emitted.
        logger: Receives lookup warnings.

    Returns:
        Targets with their values, in catalog order. Empty when the setting
        has nothing for this phase or cannot be resolved.
    """
    if logger is None:
        logger = get_global_logger()

    if selection.kind == "power-plan" or definition.id == POWER_PLAN_SETTING_ID:
        return []

    targets = definition.targets_for(phase)
    if not targets:
        return []

    if selection.kind == "selection":
        values = resolve_selection(definition, selection, logger)
        if values is None:
            return []
        # None in a table row deletes the value, same as a toggle's null
        resolved = [
            ResolvedTarget(target, values[target.lookup_key])
            for target in targets
            if target.lookup_key in values
        ]
        known = {t.lookup_key for t in definition.registry_targets}
        for key in values:
            if key != POWERCFG_VALUE_KEY and key not in known:
                logger.debug(
                    "RESOLVE", f"{definition.id}: value {key!r} matches no target"
                )
        return resolved

    is_selected = bool(selection.is_selected)
    custom = selection.custom_state_values or {}
    resolved = []
    for target in targets:
        if target.lookup_key in custom:
            resolved.append(ResolvedTarget(target, custom[target.lookup_key]))
        else:
            resolved.append(ResolvedTarget(target, resolve_toggle(target, is_selected)))
    return resolved


def resolve_power_plan(selection: Selection | None) -> PowerPlanChoice | None:
    """Return the plan a power-plan selection asks for, if any."""
    if selection is None or not selection.power_plan_guid:
        return None
    return PowerPlanChoice(
        guid=selection.power_plan_guid,
        name=selection.power_plan_name or selection.power_plan_guid,
    )


def resolve_powercfg_values(
    definition: SettingDefinition, values: Mapping[str, Any]
) -> list[str]:
    """Build powercfg statements for a selection value table entry.

    Only the ``PowerCfgValue`` key is used. Settings with separate AC/DC
    support get both indexes; combined settings only the AC index.

    Returns:
        PowerShell statements against SCHEME_CURRENT. Empty when the
        value is missing or not numeric.
    """
    raw = values.get(POWERCFG_VALUE_KEY)
    if raw is None or not definition.power_targets:
        return []
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return []

    statements = []
    for target in definition.power_targets:
        ids = f"SCHEME_CURRENT {target.subgroup_guid} {target.setting_guid} {value}"
        statements.append(f"powercfg /setacvalueindex {ids}")
        if target.mode_support == "separate":
            statements.append(f"powercfg /setdcvalueindex {ids}")
    return statements


def collect_power_values(
    definitions: Iterable[SettingDefinition],
    acdc_values: Mapping[str, tuple[int | None, int | None]],
    has_battery: bool,
    logger: Logger | None = None,
) -> list[PowerSettingValue]:
    """Pair power settings with the live AC/DC values read from the machine.

    Hardware gates:
      - requires_brightness_support: always skipped
      - requires_battery: skipped when ``has_battery`` is False

    Args:
        definitions: Power feature setting definitions.
        acdc_values: Setting GUID -> (ac, dc) from the active plan.
        has_battery: Battery presence reported by hardware detection.
        logger: Receives skip notices.

    Returns:
        Values to apply, in catalog order. Targets without both an AC and
        a DC value are left out.
    """
    if logger is None:
        logger = get_global_logger()

    lookup = {guid.lower(): pair for guid, pair in acdc_values.items()}
    collected: list[PowerSettingValue] = []

    for definition in definitions:
        if definition.id == POWER_PLAN_SETTING_ID or not definition.power_targets:
            continue
        if definition.requires_brightness_support:
            logger.verbose("POWER", f"Skipping {definition.id}: brightness gated")
            continue
        if definition.requires_battery and not has_battery:
            logger.verbose("POWER", f"Skipping {definition.id}: no battery present")
            continue

        for target in definition.power_targets:
            ac_value, dc_value = lookup.get(target.setting_guid.lower(), (None, None))
            if ac_value is None or dc_value is None:
                logger.debug(
                    "POWER",
                    f"No AC/DC values for {definition.id} ({target.setting_guid})",
                )
                continue
            collected.append(
                PowerSettingValue(
                    subgroup_guid=target.subgroup_guid,
                    setting_guid=target.setting_guid,
                    ac_value=int(ac_value),
                    dc_value=int(dc_value),
                    description=definition.description,
                )
            )

    logger.verbose("POWER", f"Collected {len(collected)} power setting value(s)")
    return collected

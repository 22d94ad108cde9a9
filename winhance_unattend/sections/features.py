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

"""Feature section emission.

Walks a feature group's selections, resolves each against the catalog,
and writes the statements that belong to one script phase. The same
group is emitted twice per compilation, once per phase; a registry target
only ever appears in the pass matching its hive.

Per feature the emitter writes, in order:

1. A banner with the feature's display name
2. Registry statements for every selection (toggle or selection)
3. Raw .reg imports whose payload addresses this phase's hive
4. System phase only: one batched scheduled task block and the
   hibernation command
5. Feature extras: wallpaper (theme feature, user phase) and Windows
   Update hardening (update feature, system phase, disabled mode)

Power-only settings are left to the power section.
"""

from __future__ import annotations

from winhance_unattend.emitter import emit_resolved_targets
from winhance_unattend.logging import Logger, get_global_logger
from winhance_unattend.models import (
    Catalog,
    FeatureGroup,
    FeatureSection,
    Phase,
    Selection,
    SettingDefinition,
)
from winhance_unattend.powershell import (
    ScriptBuffer,
    escape_string,
    quote,
    sanitize_variable_name,
)
from winhance_unattend.resolver import (
    POWER_PLAN_SETTING_ID,
    resolve_powercfg_values,
    resolve_selection,
    resolve_targets,
)
from winhance_unattend.sections import extras

HIBERNATION_SETTING_ID = "power-hibernation-enable"
UPDATE_POLICY_SETTING_ID = "updates-policy-mode"
UPDATE_DISABLED_INDEX = 3
THEME_FEATURE_ID = "windows-theme-customization"
UPDATE_FEATURE_ID = "update"

_USER_CONTENT_MARKERS = ("HKEY_CURRENT_USER", "HKCU")
_SPECIAL_SETTING_IDS = frozenset({POWER_PLAN_SETTING_ID, HIBERNATION_SETTING_ID})


def payload_phase(content: str) -> Phase:
    """Return the phase a raw .reg payload belongs to."""
    upper = content.upper()
    if any(marker in upper for marker in _USER_CONTENT_MARKERS):
        return Phase.USER
    return Phase.SYSTEM


def emit_feature_group(
    buffer: ScriptBuffer,
    group: FeatureGroup,
    catalog: Catalog,
    phase: Phase,
    logger: Logger | None = None,
) -> int:
    """Emit every included feature of ``group`` for one phase.

    Args:
        buffer: Phase body buffer.
        group: Feature group ("Optimize" or "Customize").
        catalog: Setting catalog.
        phase: Phase being emitted.
        logger: Receives lookup warnings.

    Returns:
        Number of feature sections written.
    """
    if logger is None:
        logger = get_global_logger()

    written = 0
    for section in group.features:
        if not section.is_included:
            continue
        definitions = catalog.definitions(section.feature_id)
        if definitions is None:
            logger.warning(
                "FEATURE",
                f"Could not find setting definitions for feature: {section.feature_id}",
            )
            continue
        if emit_feature_section(
            buffer,
            section,
            definitions,
            phase,
            label=catalog.display_name(section.feature_id),
            logger=logger,
        ):
            written += 1
    logger.verbose(
        "FEATURE", f"{group.name}: {written} section(s) for {phase.value} phase"
    )
    return written


def _definitions_by_id(
    definitions: tuple[SettingDefinition, ...],
) -> dict[str, SettingDefinition]:
    return {definition.id: definition for definition in definitions}


def _has_phase_entries(
    section: FeatureSection,
    lookup: dict[str, SettingDefinition],
    phase: Phase,
) -> bool:
    for item in section.items:
        definition = lookup.get(item.id)
        if definition is None or definition.id == POWER_PLAN_SETTING_ID:
            continue
        if definition.targets_for(phase):
            return True
        if phase is Phase.SYSTEM and (
            definition.scheduled_tasks or definition.id == HIBERNATION_SETTING_ID
        ):
            return True
        for payload in definition.raw_imports:
            content = payload.content_for(bool(item.is_selected))
            if content and payload_phase(content) is phase:
                return True
    return False


def emit_feature_section(
    buffer: ScriptBuffer,
    section: FeatureSection,
    definitions: tuple[SettingDefinition, ...],
    phase: Phase,
    label: str | None = None,
    logger: Logger | None = None,
) -> bool:
    """Emit one feature's statements for one phase.

    A feature whose entries all belong to the other phase is skipped
    without a header. Otherwise the header is always written, and when no
    statement follows it a warning names the feature. A feature with no
    entries in either phase gets its header in the system pass only.

    Returns:
        True when a section header was written.
    """
    if logger is None:
        logger = get_global_logger()

    lookup = _definitions_by_id(definitions)
    for item in section.items:
        definition = lookup.get(item.id)
        if definition is None:
            logger.warning(
                "FEATURE",
                f"Could not find setting definition for: {item.id} "
                f"(feature {section.feature_id})",
            )
        elif not definition.has_targets and definition.id not in _SPECIAL_SETTING_IDS:
            logger.warning(
                "FEATURE", f"Setting {item.id} has no targets and produces no output"
            )

    emittable = [
        lookup[item.id]
        for item in section.items
        if item.id in lookup
        and item.id != POWER_PLAN_SETTING_ID
        and not lookup[item.id].is_power_only
    ]
    if not emittable:
        return False
    if not _has_phase_entries(section, lookup, phase):
        if phase is Phase.USER or _has_phase_entries(section, lookup, phase.opposite):
            return False

    buffer.banner((label or f"{section.feature_id} Settings").upper())
    start = len(buffer)

    tasks: list[tuple[str, str, str]] = []
    for item in section.items:
        definition = lookup.get(item.id)
        if definition is None or definition.id == POWER_PLAN_SETTING_ID:
            continue
        if definition.is_power_only:
            continue

        _emit_setting(buffer, definition, item, phase, logger)

        if phase is Phase.SYSTEM:
            action = "/Enable" if item.is_selected else "/Disable"
            for task in definition.scheduled_tasks:
                tasks.append((task.task_path, action, definition.description))
            if definition.id == HIBERNATION_SETTING_ID:
                extras.emit_hibernation(buffer, bool(item.is_selected))

    if tasks:
        emit_scheduled_task_batch(buffer, tasks)

    if section.feature_id == THEME_FEATURE_ID and phase is Phase.USER:
        extras.emit_wallpaper(buffer)

    if section.feature_id == UPDATE_FEATURE_ID and phase is Phase.SYSTEM:
        policy = section.get(UPDATE_POLICY_SETTING_ID)
        if policy is not None and policy.selected_index == UPDATE_DISABLED_INDEX:
            extras.emit_update_hardening(buffer)

    if len(buffer) == start:
        logger.warning(
            "FEATURE",
            f"Feature {section.feature_id} produced no statements for the "
            f"{phase.value} phase",
        )
    return True


def _emit_setting(
    buffer: ScriptBuffer,
    definition: SettingDefinition,
    item: Selection,
    phase: Phase,
    logger: Logger,
) -> None:
    resolved = resolve_targets(definition, item, phase, logger)
    emit_resolved_targets(buffer, resolved, definition.description, logger)

    if item.kind == "selection" and phase is Phase.SYSTEM and definition.power_targets:
        values = resolve_selection(definition, item, logger) or {}
        statements = resolve_powercfg_values(definition, values)
        for statement in statements:
            buffer.line(statement)
        if statements:
            buffer.line(
                f"Write-Log {quote('Applied: ' + definition.description)} 'SUCCESS'"
            )

    if item.kind == "toggle" and definition.raw_imports:
        emit_raw_imports(buffer, definition, bool(item.is_selected), phase)


def emit_raw_imports(
    buffer: ScriptBuffer,
    definition: SettingDefinition,
    is_selected: bool,
    phase: Phase,
) -> int:
    """Emit ``reg import`` blocks for payloads that belong to ``phase``.

    Each payload is embedded in a literal here-string, written to a
    UTF-16 temp .reg file, imported, and the file removed. In the user
    phase, HKEY_CURRENT_USER keys are rewritten to the target user's
    HKEY_USERS hive when the script runs as SYSTEM.

    Returns:
        Number of import blocks written.
    """
    var_name = f"$regContent_{sanitize_variable_name(definition.id)}"
    desc = escape_string(definition.description)
    count = 0

    for payload in definition.raw_imports:
        content = payload.content_for(is_selected)
        if not content or payload_phase(content) is not phase:
            continue

        buffer.line("try {")
        with buffer.indented():
            buffer.here_string(var_name, content)
            if phase is Phase.USER:
                # reg.exe does not see the HKCU drive remap
                buffer.line("if ($hkcuRemapped) {")
                buffer.line(
                    f"    {var_name} = {var_name} -replace "
                    "'(?m)^\\[(-?)HKEY_CURRENT_USER', ('[${1}HKEY_USERS\\' + $userSID)"
                )
                buffer.line("}")
            buffer.line(
                "$tempRegFile = Join-Path $env:TEMP "
                f'"winhance_{definition.id}_$((Get-Date).Ticks).reg"'
            )
            buffer.line(f"{var_name} | Out-File -FilePath $tempRegFile -Encoding Unicode -Force")
            buffer.line('reg import "$tempRegFile" 2>&1 | Out-Null')
            buffer.line("if ($LASTEXITCODE -eq 0) {")
            buffer.line(f"    Write-Log '{desc}' 'SUCCESS'")
            buffer.line("} else {")
            buffer.line(f"    Write-Log 'Failed to import registry content for {desc}' 'ERROR'")
            buffer.line("}")
            buffer.line("Remove-Item $tempRegFile -Force -ErrorAction SilentlyContinue")
        buffer.line("} catch {")
        buffer.line(
            f"    Write-Log ('Error importing registry content for {desc}: ' + "
            "$_.Exception.Message) 'ERROR'"
        )
        buffer.line("}")
        buffer.blank()
        count += 1
    return count


def emit_scheduled_task_batch(
    buffer: ScriptBuffer, tasks: list[tuple[str, str, str]]
) -> None:
    """Emit one table-driven block that enables or disables scheduled tasks.

    Args:
        buffer: Destination buffer.
        tasks: (task path, "/Enable" or "/Disable", description) tuples.
    """
    buffer.blank()
    buffer.line("$scheduledTasks = @(")
    with buffer.indented():
        for index, (task_path, action, description) in enumerate(tasks):
            comma = "," if index < len(tasks) - 1 else ""
            buffer.line(
                f"@{{ TN={quote(task_path)}; Action='{action}'; "
                f"Desc={quote(description)} }}{comma}"
            )
    buffer.line(")")
    buffer.blank()
    buffer.block(
        """
        Write-Log "Applying scheduled task settings..." "INFO"
        $processedCount = 0
        foreach ($task in $scheduledTasks) {
            try {
                $null = & schtasks.exe /Change /TN $task.TN $task.Action 2>&1
                if ($LASTEXITCODE -eq 0) {
                    Write-Log "$($task.Desc)" "SUCCESS"
                    $processedCount++
                } else {
                    Write-Log "Task command failed for: $($task.TN)" "WARNING"
                }
            } catch {
                Write-Log "Failed to process task: $($task.TN) - $($_.Exception.Message)" "ERROR"
            }
        }
        Write-Log "Processed $processedCount scheduled task settings" "SUCCESS"
        """
    )
    buffer.blank()

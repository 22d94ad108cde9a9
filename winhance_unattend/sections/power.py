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

"""Power plan and powercfg section.

Writes three blocks into the system phase:

1. Plan creation: if the chosen plan GUID does not exist on the target,
   duplicate it from the first available stock scheme (Ultimate
   Performance, High Performance, Balanced) and rename it.
2. Hidden settings: clear the Attributes flag of powercfg settings that
   Windows hides by default, so the values below can be set.
3. Values: apply the AC/DC pairs read from the compiling machine's active
   plan with powercfg /setacvalueindex and /setdcvalueindex, then
   activate the plan.

Values come from winhance_unattend.resolver.collect_power_values, which
has already applied the battery and brightness gates.
"""

from __future__ import annotations

from collections.abc import Sequence

from winhance_unattend.powershell import ScriptBuffer, escape_string, quote
from winhance_unattend.resolver import PowerPlanChoice, PowerSettingValue

SOURCE_SCHEMES: tuple[tuple[str, str], ...] = (
    ("Ultimate Performance", "e9a42b02-d5df-448d-aa00-03f14749eb61"),
    ("High Performance", "8c5e7fda-e8bf-4a96-9a85-a6e23a8c635c"),
    ("Balanced", "381b4222-f694-41f0-9685-ff5bb260df2e"),
)

# (subgroup, setting) pairs hidden by default
HIDDEN_SETTINGS: tuple[tuple[str, str], ...] = (
    ("2a737441-1930-4402-8d77-b2bebba308a3", "0853a681-27c8-4100-a2fd-82013e970683"),
    ("2a737441-1930-4402-8d77-b2bebba308a3", "d4e98f31-5ffe-4ce1-be31-1b38b384c009"),
    ("4f971e89-eebd-4455-a8de-9e59040e7347", "7648efa3-dd9c-4e3e-b566-50f929386280"),
    ("4f971e89-eebd-4455-a8de-9e59040e7347", "96996bc0-ad50-47ec-923b-6f41874dd9eb"),
    ("4f971e89-eebd-4455-a8de-9e59040e7347", "5ca83367-6e45-459f-a27b-476b1d01c936"),
    ("54533251-82be-4824-96c1-47b60b740d00", "94d3a615-a899-4ac5-ae2b-e4d8f634367f"),
    ("54533251-82be-4824-96c1-47b60b740d00", "be337238-0d82-4146-a960-4f3749d470c7"),
    ("54533251-82be-4824-96c1-47b60b740d00", "465e1f50-b610-473a-ab58-00d1077dc418"),
    ("54533251-82be-4824-96c1-47b60b740d00", "40fbefc7-2e9d-4d25-a185-0cfd8574bac6"),
    ("54533251-82be-4824-96c1-47b60b740d00", "0cc5b647-c1df-4637-891a-dec35c318583"),
    ("54533251-82be-4824-96c1-47b60b740d00", "ea062031-0e34-4ff1-9b6d-eb1059334028"),
    ("54533251-82be-4824-96c1-47b60b740d00", "36687f9e-e3a5-4dbf-b1dc-15eb381c6863"),
    ("54533251-82be-4824-96c1-47b60b740d00", "06cadf0e-64ed-448a-8927-ce7bf90eb35d"),
    ("54533251-82be-4824-96c1-47b60b740d00", "12a0ab44-fe28-4fa9-b3bd-4b64f44960a6"),
)

POWER_SETTINGS_KEY = r"HKLM:\SYSTEM\CurrentControlSet\Control\Power\PowerSettings"


def emit_power_section(
    buffer: ScriptBuffer,
    plan: PowerPlanChoice | None,
    values: Sequence[PowerSettingValue],
) -> bool:
    """Emit the power plan and powercfg blocks.

    Args:
        buffer: System phase buffer.
        plan: Plan to create and activate, or None to leave the active
            plan alone and write values to SCHEME_CURRENT.
        values: Pre-resolved AC/DC values.

    Returns:
        True when anything was written. The caller omits the section
        entirely otherwise, header included.
    """
    if plan is None and not values:
        return False

    buffer.banner("POWER PLAN & POWERCFG SETTINGS")
    if plan is not None:
        emit_plan_creation(buffer, plan)
    if values:
        emit_hidden_settings(buffer)
        emit_setting_values(buffer, values, plan.guid if plan else None)
    if plan is not None:
        emit_plan_activation(buffer, plan)
    return True


def emit_plan_creation(buffer: ScriptBuffer, plan: PowerPlanChoice) -> None:
    name = escape_string(plan.name)
    buffer.line(f"Write-Log 'Setting up power plan: {name}...' 'INFO'")
    buffer.line(f"$customPlanGuid = {quote(plan.guid)}")
    buffer.line("$null = powercfg /query $customPlanGuid 2>&1")
    buffer.line("if ($LASTEXITCODE -eq 0) {")
    buffer.line("    Write-Log 'Power plan already exists, using existing plan' 'INFO'")
    buffer.line("} else {")
    with buffer.indented():
        buffer.line("$planCreated = $false")
        buffer.line("$sourceSchemes = @(")
        with buffer.indented():
            for index, (scheme_name, guid) in enumerate(SOURCE_SCHEMES):
                comma = "," if index < len(SOURCE_SCHEMES) - 1 else ""
                buffer.line(f"@{{ Name = '{scheme_name}'; Guid = '{guid}' }}{comma}")
        buffer.line(")")
        buffer.line("foreach ($scheme in $sourceSchemes) {")
        with buffer.indented():
            buffer.line("$null = powercfg /duplicatescheme $scheme.Guid $customPlanGuid 2>&1")
            buffer.line("if ($LASTEXITCODE -eq 0) {")
            with buffer.indented():
                buffer.line('Write-Log "Created power plan from $($scheme.Name)" "SUCCESS"')
                buffer.line(f"powercfg /changename $customPlanGuid {quote(plan.name)} | Out-Null")
                buffer.line("$planCreated = $true")
                buffer.line("break")
            buffer.line("}")
        buffer.line("}")
        buffer.line("if (-not $planCreated) {")
        buffer.line("    Write-Log 'Failed to create power plan' 'ERROR'")
        buffer.line("}")
    buffer.line("}")
    buffer.blank()


def emit_hidden_settings(buffer: ScriptBuffer) -> None:
    buffer.line("Write-Log 'Enabling hidden power settings...' 'INFO'")
    buffer.line(f"$powerSettingsBasePath = '{POWER_SETTINGS_KEY}'")
    buffer.line("$hiddenSettings = @(")
    with buffer.indented():
        for index, (subgroup, setting) in enumerate(HIDDEN_SETTINGS):
            comma = "," if index < len(HIDDEN_SETTINGS) - 1 else ""
            buffer.line(f"@{{ Subgroup = '{subgroup}'; Setting = '{setting}' }}{comma}")
    buffer.line(")")
    buffer.block(
        """
        $enabledCount = 0
        foreach ($item in $hiddenSettings) {
            $regPath = Join-Path $powerSettingsBasePath "$($item.Subgroup)\\$($item.Setting)"
            try {
                if (Test-Path $regPath) {
                    Set-ItemProperty -Path $regPath -Name 'Attributes' -Value 0 -Type DWord -ErrorAction Stop
                    $enabledCount++
                }
            } catch {
                Write-Log "Could not unhide $($item.Setting): $($_.Exception.Message)" "WARNING"
            }
        }
        Write-Log "Enabled $enabledCount hidden power settings" "SUCCESS"
        """
    )
    buffer.blank()


def emit_setting_values(
    buffer: ScriptBuffer,
    values: Sequence[PowerSettingValue],
    plan_guid: str | None,
) -> None:
    buffer.line("Write-Log 'Applying power settings...' 'INFO'")
    buffer.line("$powerSettings = @(")
    with buffer.indented():
        for index, value in enumerate(values):
            comma = "," if index < len(values) - 1 else ""
            buffer.line(
                f"@{{ S='{value.subgroup_guid}'; G='{value.setting_guid}'; "
                f"AC={value.ac_value}; DC={value.dc_value}; "
                f"N={quote(value.description)} }}{comma}"
            )
    buffer.line(")")
    buffer.line(f"$targetPlanGuid = {quote(plan_guid or 'SCHEME_CURRENT')}")
    buffer.block(
        """
        $appliedCount = 0
        foreach ($setting in $powerSettings) {
            powercfg /setacvalueindex $targetPlanGuid $setting.S $setting.G $setting.AC 2>$null
            if ($LASTEXITCODE -ne 0) {
                Write-Log "Failed to set AC value: $($setting.N)" "WARNING"
                continue
            }
            powercfg /setdcvalueindex $targetPlanGuid $setting.S $setting.G $setting.DC 2>$null
            if ($LASTEXITCODE -eq 0) {
                $appliedCount++
            } else {
                Write-Log "Failed to set DC value: $($setting.N)" "WARNING"
            }
        }
        Write-Log "Applied $appliedCount power settings" "SUCCESS"
        """
    )
    buffer.blank()


def emit_plan_activation(buffer: ScriptBuffer, plan: PowerPlanChoice) -> None:
    buffer.line("Write-Log 'Activating power plan...' 'INFO'")
    buffer.line(f"powercfg /setactive {quote(plan.guid)} 2>$null")
    buffer.line("if ($LASTEXITCODE -eq 0) {")
    buffer.line("    Write-Log 'Power plan activated successfully' 'SUCCESS'")
    buffer.line("} else {")
    buffer.line("    Write-Log 'Failed to activate power plan' 'WARNING'")
    buffer.line("}")
    buffer.blank()

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

"""Bridge between the system phase and the user phase.

The generated script runs twice. Setup runs it without switches as
SYSTEM, before any account exists. The system phase then registers a
logon task that runs the same file again with -UserCustomizations, and
that second run applies the HKCU entries.

The task also runs as SYSTEM, so the user phase looks up the logged-on
user and remaps the HKCU drive onto that user's hive under HKEY_USERS.
The identity check is a fallback inside the script: when the user phase
is started from a real user session, HKCU is used as-is.

A marker value (HKCU\\Software\\Winhance\\UserCustomizationsApplied)
keeps a re-run from applying the same settings twice. After the first
application the task unregisters itself and the machine restarts so the
new shell settings load.

The task name and folder are part of the output contract: image
packaging tooling looks the task up by name.
"""

from __future__ import annotations

from winhance_unattend.powershell import ScriptBuffer, quote
from winhance_unattend.sections.preamble import SCRIPT_PATH, USER_SWITCH

USER_TASK_NAME = "WinhanceUserCustomizations"
TASK_FOLDER = "\\Winhance"
MARKER_KEY = r"HKCU:\Software\Winhance"
MARKER_VALUE = "UserCustomizationsApplied"
SYSTEM_SID = "S-1-5-18"
REBOOT_DELAY_SECONDS = 20


def emit_user_bootstrap_task(buffer: ScriptBuffer, script_path: str = SCRIPT_PATH) -> None:
    """Register the logon task that re-invokes the script for the user phase.

    Args:
        buffer: System phase buffer.
        script_path: Location the task runs the script from. The running
            script copies itself there when it was started from elsewhere.
    """
    arguments = (
        "-ExecutionPolicy Bypass -NoProfile -WindowStyle Hidden "
        f"-File \"{script_path}\" -{USER_SWITCH}"
    )

    buffer.banner("USER CUSTOMIZATIONS SCHEDULED TASK")
    buffer.line(f"$userScriptPath = {quote(script_path)}")
    buffer.block(
        """
        if ($PSCommandPath -and ($PSCommandPath -ne $userScriptPath)) {
            try {
                $null = New-Item -Path (Split-Path $userScriptPath) -ItemType Directory -Force
                Copy-Item -Path $PSCommandPath -Destination $userScriptPath -Force
                Write-Log "Copied script to $userScriptPath" "SUCCESS"
            } catch {
                Write-Log "Failed to copy script to $userScriptPath : $($_.Exception.Message)" "ERROR"
            }
        }

        try {
        """
    )
    with buffer.indented():
        buffer.line(
            f"$action = New-ScheduledTaskAction -Execute \"powershell.exe\" "
            f"-Argument {quote(arguments)}"
        )
        buffer.block(
            """
            $trigger = New-ScheduledTaskTrigger -AtLogOn
            $settings = New-ScheduledTaskSettingsSet -AllowStartIfOnBatteries -DontStopIfGoingOnBatteries -ExecutionTimeLimit 0
            $principal = New-ScheduledTaskPrincipal -UserId "SYSTEM" -LogonType ServiceAccount -RunLevel Highest
            """
        )
        buffer.line(
            f"Register-ScheduledTask -TaskName {quote(USER_TASK_NAME)} "
            f"-TaskPath {quote(TASK_FOLDER)} -Action $action -Trigger $trigger "
            "-Settings $settings -Principal $principal -Force | Out-Null"
        )
        buffer.line(f"Write-Log 'Registered scheduled task: {USER_TASK_NAME}' 'SUCCESS'")
    buffer.line("} catch {")
    buffer.line(
        f"    Write-Log ('Failed to register {USER_TASK_NAME}: ' + "
        "$_.Exception.Message) 'ERROR'"
    )
    buffer.line("}")
    buffer.blank()


def emit_user_phase_prologue(buffer: ScriptBuffer) -> None:
    """Resolve the target user's hive and read the once-per-user marker.

    Leaves ``$alreadyApplied`` and ``$hkcuRemapped`` set for the body and
    the epilogue. Exits with code 1 when running as SYSTEM and no
    logged-on user can be found, so the task runs again at the next logon.
    """
    buffer.line("Write-Log 'Applying user customizations...' 'INFO'")
    buffer.line(
        "$currentSid = [System.Security.Principal.WindowsIdentity]::GetCurrent().User.Value"
    )
    buffer.line(
        f"$runningAsSystem = ($currentSid -eq '{SYSTEM_SID}') -or "
        "($env:USERNAME -eq 'SYSTEM') -or "
        "($env:USERPROFILE -like '*\\system32\\config\\systemprofile')"
    )
    buffer.block(
        """
        $hkcuRemapped = $false

        if ($runningAsSystem) {
            Write-Log "Running as SYSTEM, locating the logged-on user..." "INFO"
            $targetUser = Get-TargetUser
            if (-not $targetUser) {
                Write-Log "No logged-on user found, user customizations deferred" "WARNING"
                exit 1
            }
            $userSID = Get-UserSID -Username $targetUser
            if (-not $userSID) {
                Write-Log "Could not resolve SID for user: $targetUser" "ERROR"
                exit 1
            }
            if (-not (Get-PSDrive -Name HKU -ErrorAction SilentlyContinue)) {
                New-PSDrive -Name HKU -PSProvider Registry -Root HKEY_USERS -Scope Global | Out-Null
            }
            Remove-PSDrive -Name HKCU -Force -ErrorAction SilentlyContinue
            New-PSDrive -Name HKCU -PSProvider Registry -Root "HKEY_USERS\\$userSID" -Scope Global | Out-Null
            $hkcuRemapped = $true
            Write-Log "HKCU mapped to $targetUser ($userSID)" "SUCCESS"
        }

        """
    )
    buffer.line(f"$markerPath = '{MARKER_KEY}'")
    buffer.line(
        f"$marker = Get-ItemProperty -Path $markerPath -Name '{MARKER_VALUE}' "
        "-ErrorAction SilentlyContinue"
    )
    buffer.line(f"$alreadyApplied = ($marker -and $marker.{MARKER_VALUE} -eq 1)")
    buffer.line("if ($alreadyApplied) {")
    buffer.line(
        "    Write-Log 'User customizations already applied for this user, skipping' 'INFO'"
    )
    buffer.line("}")
    buffer.blank()


def emit_applied_marker(buffer: ScriptBuffer) -> None:
    """Record that this user's customizations have been applied."""
    buffer.line(
        f"Set-RegistryValue -Path '{MARKER_KEY}' -Name '{MARKER_VALUE}' "
        "-Type 'DWord' -Value 1 -Description 'Mark user customizations applied'"
    )


def emit_user_phase_epilogue(buffer: ScriptBuffer) -> None:
    """Restore HKCU, remove the logon task and restart after a first run."""
    buffer.blank()
    buffer.block(
        """
        if ($hkcuRemapped) {
            Remove-PSDrive -Name HKCU -Force -ErrorAction SilentlyContinue
            New-PSDrive -Name HKCU -PSProvider Registry -Root HKEY_CURRENT_USER -Scope Global | Out-Null
        }

        """
    )
    buffer.line(
        f"Unregister-ScheduledTask -TaskName {quote(USER_TASK_NAME)} "
        f"-TaskPath '{TASK_FOLDER}\\' -Confirm:$false -ErrorAction SilentlyContinue"
    )
    buffer.line(f"Write-Log 'Removed scheduled task: {USER_TASK_NAME}' 'INFO'")
    buffer.blank()
    buffer.line("if (-not $alreadyApplied) {")
    with buffer.indented():
        buffer.line(
            f"Write-Log 'Restarting in {REBOOT_DELAY_SECONDS} seconds to apply "
            "user customizations...' 'INFO'"
        )
        buffer.line(
            f"shutdown.exe /r /t {REBOOT_DELAY_SECONDS} "
            "/c \"Winhance is restarting your computer to apply user customizations\""
        )
    buffer.line("}")

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

"""Windows app, capability and optional feature removal.

The system phase writes one removal script (AppRemoval.ps1) into the
scripts directory, runs it once, and registers a single logon task that
runs it again for package registrations the first pass cannot reach. The
task removes itself after its first run.

Categorization:

- "windows-app-edge" and "windows-app-onedrive" are handled by dedicated
  sub-blocks inside the removal script; their generic package names are
  not queued.
- capability items feed Remove-WindowsCapability.
- optional-feature items feed Disable-WindowsOptionalFeature.
- package items, plus their sub-packages, feed Remove-AppxProvisionedPackage
  and Remove-AppxPackage -AllUsers. OneNote packages also queue a
  registry-based uninstall of the desktop OneNote.

Example:
    Categorize a selection before emitting:
        ```python
        from winhance_unattend.models import RemovalItem
        from winhance_unattend.sections.apps import categorize_removals

        plan = categorize_removals([
            RemovalItem("windows-app-xbox", "package", "Microsoft.GamingApp",
                        ("Microsoft.XboxGamingOverlay",)),
            RemovalItem("windows-app-edge", "package", "Microsoft.MicrosoftEdge"),
        ])
        plan.packages      # ('Microsoft.GamingApp', 'Microsoft.XboxGamingOverlay')
        plan.remove_edge   # True
        ```
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from winhance_unattend.logging import Logger, get_global_logger
from winhance_unattend.models import RemovalItem
from winhance_unattend.powershell import ScriptBuffer, quote
from winhance_unattend.sections.bootstrap import TASK_FOLDER

EDGE_APP_ID = "windows-app-edge"
ONEDRIVE_APP_ID = "windows-app-onedrive"
REMOVAL_TASK_NAME = "WinhanceAppRemoval"
REMOVAL_SCRIPT_NAME = "AppRemoval.ps1"
REMOVAL_LOG_PATH = r"C:\ProgramData\Winhance\Logs\AppRemovalLog.txt"

# Unregister-ScheduledTask wants the folder with a trailing separator
_TASK_PATH = TASK_FOLDER + "\\"

XBOX_PACKAGES = frozenset(
    {"microsoft.gamingapp", "microsoft.xboxgamingoverlay", "microsoft.xboxgameoverlay"}
)


@dataclass(frozen=True)
class RemovalPlan:
    """Removal items split by how the removal script handles them."""

    packages: tuple[str, ...] = ()
    capabilities: tuple[str, ...] = ()
    optional_features: tuple[str, ...] = ()
    special_apps: tuple[str, ...] = ()
    remove_edge: bool = False
    remove_onedrive: bool = False

    @property
    def is_empty(self) -> bool:
        return not (
            self.packages
            or self.capabilities
            or self.optional_features
            or self.special_apps
            or self.remove_edge
            or self.remove_onedrive
        )

    @property
    def has_generic_items(self) -> bool:
        return bool(
            self.packages
            or self.capabilities
            or self.optional_features
            or self.special_apps
        )

    @property
    def includes_xbox(self) -> bool:
        return any(name.lower() in XBOX_PACKAGES for name in self.packages)


def _append_unique(target: list[str], value: str) -> None:
    if value and value not in target:
        target.append(value)


def categorize_removals(
    items: Iterable[RemovalItem], logger: Logger | None = None
) -> RemovalPlan:
    """Split removal items into the lists the removal script consumes."""
    if logger is None:
        logger = get_global_logger()

    packages: list[str] = []
    capabilities: list[str] = []
    features: list[str] = []
    special: list[str] = []
    remove_edge = False
    remove_onedrive = False

    for item in items:
        if item.id == EDGE_APP_ID:
            remove_edge = True
            continue
        if item.id == ONEDRIVE_APP_ID:
            remove_onedrive = True
            continue
        if not item.name:
            logger.warning("APPS", f"Removal item {item.id} has no package name; skipped")
            continue

        if item.kind == "capability":
            _append_unique(capabilities, item.name)
        elif item.kind == "optional-feature":
            _append_unique(features, item.name)
        else:
            _append_unique(packages, item.name)
            for sub_package in item.sub_packages:
                _append_unique(packages, sub_package)
            if "onenote" in item.name.lower():
                _append_unique(special, "OneNote")

    return RemovalPlan(
        packages=tuple(packages),
        capabilities=tuple(capabilities),
        optional_features=tuple(features),
        special_apps=tuple(special),
        remove_edge=remove_edge,
        remove_onedrive=remove_onedrive,
    )


# -------------------------------
# Removal script content
# -------------------------------


def _emit_array(buffer: ScriptBuffer, name: str, values: Sequence[str]) -> None:
    buffer.line(f"${name} = @(")
    with buffer.indented():
        for value in values:
            buffer.line(quote(value))
    buffer.line(")")
    buffer.blank()


def build_removal_script(plan: RemovalPlan) -> str:
    """Return the text of AppRemoval.ps1 for ``plan``.

    The script takes a -ScheduledRun switch. Only the scheduled task
    passes it, and only then does the script unregister its own task.
    """
    script = ScriptBuffer()
    script.block(
        r"""
        <#
        .SYNOPSIS
            Removes selected Windows apps, capabilities and optional features.
        .DESCRIPTION
            Runs once during setup and once more at first logon through the
            WinhanceAppRemoval scheduled task, which removes itself afterwards.
        #>
        param(
            [switch]$ScheduledRun
        )
        """
    )
    script.blank()
    script.line(f"$logFile = {quote(REMOVAL_LOG_PATH)}")
    script.block(
        r"""
        $null = New-Item -Path (Split-Path $logFile) -ItemType Directory -Force

        function Write-Log {
            param([string]$Message)
            "$(Get-Date -Format 'yyyy-MM-dd HH:mm:ss') - $Message" | Out-File -FilePath $logFile -Append -Encoding UTF8
        }

        Write-Log "Starting app removal (scheduled run: $ScheduledRun)"
        """
    )
    script.blank()

    if plan.has_generic_items:
        _emit_array(script, "packages", plan.packages)
        _emit_array(script, "capabilities", plan.capabilities)
        _emit_array(script, "optionalFeatures", plan.optional_features)
        _emit_array(script, "specialApps", plan.special_apps)
        _emit_generic_removal(script)
        if plan.includes_xbox:
            _emit_xbox_fix(script)
    if plan.remove_edge:
        _emit_edge_removal(script)
    if plan.remove_onedrive:
        _emit_onedrive_removal(script)

    script.line("if ($ScheduledRun) {")
    with script.indented():
        script.line(
            f"Unregister-ScheduledTask -TaskName {quote(REMOVAL_TASK_NAME)} "
            f"-TaskPath {quote(_TASK_PATH)} -Confirm:$false "
            "-ErrorAction SilentlyContinue"
        )
        script.line('Write-Log "Removed scheduled task after first logon run"')
    script.line("}")
    script.line('Write-Log "App removal completed"')
    return script.text()


def _emit_generic_removal(script: ScriptBuffer) -> None:
    script.block(
        r"""
        # Appx packages: deprovision first so -AllUsers removal succeeds on Windows 10
        $allInstalled = Get-AppxPackage -AllUsers -ErrorAction SilentlyContinue
        $allProvisioned = Get-AppxProvisionedPackage -Online -ErrorAction SilentlyContinue
        foreach ($package in $packages) {
            foreach ($prov in @($allProvisioned | Where-Object DisplayName -eq $package)) {
                try {
                    Remove-AppxProvisionedPackage -Online -PackageName $prov.PackageName -ErrorAction Stop | Out-Null
                    Write-Log "Deprovisioned: $($prov.PackageName)"
                } catch {
                    Write-Log "Failed to deprovision $($prov.PackageName): $($_.Exception.Message)"
                }
            }
            foreach ($pkg in @($allInstalled | Where-Object Name -eq $package)) {
                try {
                    Remove-AppxPackage -Package $pkg.PackageFullName -AllUsers -ErrorAction Stop
                    Write-Log "Removed package: $($pkg.PackageFullName)"
                } catch {
                    Write-Log "Failed to remove $($pkg.PackageFullName): $($_.Exception.Message)"
                }
            }
        }

        # Capabilities
        $allCaps = Get-WindowsCapability -Online -ErrorAction SilentlyContinue
        foreach ($capability in $capabilities) {
            $matching = @($allCaps | Where-Object { $_.Name -like "$capability*" -and $_.State -eq "Installed" })
            if (-not $matching) {
                Write-Log "Capability not found or not installed: $capability"
                continue
            }
            foreach ($cap in $matching) {
                try {
                    Remove-WindowsCapability -Online -Name $cap.Name -ErrorAction Stop | Out-Null
                    Write-Log "Removed capability: $($cap.Name)"
                } catch {
                    Write-Log "Failed to remove capability $($cap.Name): $($_.Exception.Message)"
                }
            }
        }

        # Optional features
        $enabledFeatures = @()
        foreach ($feature in $optionalFeatures) {
            $existing = Get-WindowsOptionalFeature -Online -FeatureName $feature -ErrorAction SilentlyContinue
            if ($existing -and $existing.State -eq "Enabled") {
                $enabledFeatures += $feature
            } else {
                Write-Log "Feature not found or not enabled: $feature"
            }
        }
        if ($enabledFeatures.Count -gt 0) {
            Write-Log "Disabling features: $($enabledFeatures -join ', ')"
            Disable-WindowsOptionalFeature -Online -FeatureName $enabledFeatures -NoRestart -ErrorAction SilentlyContinue | Out-Null
        }

        # Special apps: registry-based uninstall
        $uninstallPaths = @(
            'HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall',
            'HKCU:\SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall'
        )
        foreach ($specialApp in $specialApps) {
            Write-Log "Processing special app: $specialApp"
            Get-Process -Name $specialApp -ErrorAction SilentlyContinue | Stop-Process -Force -ErrorAction SilentlyContinue
            foreach ($basePath in $uninstallPaths) {
                $keys = Get-ChildItem -Path $basePath -ErrorAction SilentlyContinue |
                    Where-Object { $_.PSChildName -like "$specialApp*" }
                foreach ($key in $keys) {
                    $uninstallString = (Get-ItemProperty -Path $key.PSPath -ErrorAction SilentlyContinue).UninstallString
                    if (-not $uninstallString) { continue }
                    $silent = if ($uninstallString -like '*OfficeClickToRun.exe*') { 'DisplayLevel=False' } else { '/silent' }
                    if ($uninstallString -match '^"([^"]+)"(.*)$') {
                        Start-Process -FilePath $matches[1] -ArgumentList "$($matches[2].Trim()) $silent" -NoNewWindow -Wait -ErrorAction SilentlyContinue
                    } else {
                        Start-Process -FilePath $uninstallString -ArgumentList $silent -NoNewWindow -Wait -ErrorAction SilentlyContinue
                    }
                    Write-Log "Completed uninstall for $specialApp"
                }
            }
        }
        """
    )
    script.blank()


def _emit_xbox_fix(script: ScriptBuffer) -> None:
    script.block(
        r"""
        # Xbox overlay removal leaves Game DVR capture enabled
        reg add "HKLM\SOFTWARE\Policies\Microsoft\Windows\GameDVR" /f /t REG_DWORD /v "AllowGameDVR" /d 0 2>$null | Out-Null
        Write-Log "Disabled Game DVR policy"
        """
    )
    script.blank()


def _emit_edge_removal(script: ScriptBuffer) -> None:
    script.block(
        r"""
        # ---------------------------------------------------------------------
        # Microsoft Edge
        # ---------------------------------------------------------------------
        Write-Log "Starting Edge removal"
        foreach ($name in @('msedge', 'MicrosoftEdgeUpdate', 'widgets', 'msedgewebview2')) {
            Get-Process -Name $name -ErrorAction SilentlyContinue | Stop-Process -Force -ErrorAction SilentlyContinue
        }
        $edgeDevKey = 'HKLM:\SOFTWARE\Microsoft\EdgeUpdateDev'
        if (-not (Test-Path $edgeDevKey)) { New-Item -Path $edgeDevKey -Force | Out-Null }
        Set-ItemProperty -Path $edgeDevKey -Name 'AllowUninstall' -Value '' -Type String -Force

        $edgeUninstallRoots = @(
            'HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall',
            'HKLM:\SOFTWARE\WOW6432Node\Microsoft\Windows\CurrentVersion\Uninstall'
        )
        foreach ($root in $edgeUninstallRoots) {
            $edgeKey = Join-Path $root 'Microsoft Edge'
            $uninstallString = (Get-ItemProperty -Path $edgeKey -ErrorAction SilentlyContinue).UninstallString
            if ($uninstallString -match '^"([^"]+)"(.*)$') {
                Start-Process -FilePath $matches[1] -ArgumentList "$($matches[2].Trim()) --force-uninstall --silent" -Wait -NoNewWindow -ErrorAction SilentlyContinue
                Write-Log "Executed Edge uninstaller from $root"
            }
        }

        Get-AppxPackage -AllUsers -Name 'Microsoft.MicrosoftEdge*' -ErrorAction SilentlyContinue |
            Remove-AppxPackage -AllUsers -ErrorAction SilentlyContinue

        $edgeShortcuts = @(
            "$env:PUBLIC\Desktop\Microsoft Edge.lnk",
            "$env:ProgramData\Microsoft\Windows\Start Menu\Programs\Microsoft Edge.lnk",
            'C:\Users\Default\Desktop\Microsoft Edge.lnk'
        )
        foreach ($shortcut in $edgeShortcuts) {
            Remove-Item -Path $shortcut -Force -ErrorAction SilentlyContinue
        }

        $edgeUpdatePolicy = 'HKLM:\SOFTWARE\Policies\Microsoft\EdgeUpdate'
        if (-not (Test-Path $edgeUpdatePolicy)) { New-Item -Path $edgeUpdatePolicy -Force | Out-Null }
        Set-ItemProperty -Path $edgeUpdatePolicy -Name 'DoNotUpdateToEdgeWithChromium' -Value 1 -Type DWord -Force
        Write-Log "Edge removal completed"
        """
    )
    script.blank()


def _emit_onedrive_removal(script: ScriptBuffer) -> None:
    script.block(
        r"""
        # ---------------------------------------------------------------------
        # OneDrive
        # ---------------------------------------------------------------------
        Write-Log "Starting OneDrive removal"
        Stop-Process -Name '*OneDrive*' -Force -ErrorAction SilentlyContinue
        Get-AppxPackage -AllUsers -Name '*OneDrive*' -ErrorAction SilentlyContinue |
            Remove-AppxPackage -AllUsers -ErrorAction SilentlyContinue

        $oneDriveSetups = @(
            "$env:SystemRoot\System32\OneDriveSetup.exe",
            "$env:SystemRoot\SysWOW64\OneDriveSetup.exe"
        )
        foreach ($setup in $oneDriveSetups) {
            if (Test-Path $setup) {
                Start-Process -FilePath $setup -ArgumentList '/uninstall' -Wait -NoNewWindow -ErrorAction SilentlyContinue
                Write-Log "Executed OneDrive uninstaller: $setup"
            }
        }

        $oneDriveUninstall = 'HKLM:\SOFTWARE\Microsoft\Windows\CurrentVersion\Uninstall\OneDriveSetup.exe'
        $uninstallString = (Get-ItemProperty -Path $oneDriveUninstall -ErrorAction SilentlyContinue).UninstallString
        if ($uninstallString -match '^"([^"]+)"(.*)$') {
            Start-Process -FilePath $matches[1] -ArgumentList $matches[2].Trim() -Wait -NoNewWindow -ErrorAction SilentlyContinue
            Write-Log "Executed registered OneDrive uninstaller"
        }

        # Keep new profiles from reinstalling OneDrive
        reg load 'HKU\WinhanceDefault' 'C:\Users\Default\NTUSER.DAT' 2>$null | Out-Null
        reg delete 'HKU\WinhanceDefault\SOFTWARE\Microsoft\Windows\CurrentVersion\Run' /v 'OneDriveSetup' /f 2>$null | Out-Null
        [gc]::Collect()
        reg unload 'HKU\WinhanceDefault' 2>$null | Out-Null

        Remove-Item -Path "$env:ProgramData\Microsoft\Windows\Start Menu\Programs\OneDrive.lnk" -Force -ErrorAction SilentlyContinue
        Write-Log "OneDrive removal completed"
        """
    )
    script.blank()


# -------------------------------
# System phase block
# -------------------------------


def emit_app_removal(
    buffer: ScriptBuffer,
    items: Iterable[RemovalItem],
    logger: Logger | None = None,
) -> bool:
    """Emit the app removal block into the system phase.

    Requires ``$scriptsDir`` to be set earlier in the phase.

    Returns:
        False (and nothing written) when no item is selected.
    """
    if logger is None:
        logger = get_global_logger()

    plan = categorize_removals(items, logger)
    if plan.is_empty:
        return False

    logger.verbose(
        "APPS",
        f"{len(plan.packages)} package(s), {len(plan.capabilities)} capability(ies), "
        f"{len(plan.optional_features)} feature(s), edge={plan.remove_edge}, "
        f"onedrive={plan.remove_onedrive}",
    )

    buffer.banner("WINDOWS APPS REMOVAL")
    buffer.here_string("$appRemovalContent", build_removal_script(plan))
    buffer.blank()
    buffer.line(f"$appRemovalPath = Join-Path $scriptsDir {quote(REMOVAL_SCRIPT_NAME)}")
    buffer.block(
        """
        try {
            $appRemovalContent | Out-File -FilePath $appRemovalPath -Encoding UTF8 -Force
            Write-Log "Created: $appRemovalPath" "SUCCESS"
        } catch {
            Write-Log "Failed to create app removal script: $($_.Exception.Message)" "ERROR"
        }

        if (Test-Path $appRemovalPath) {
            Write-Log "Executing app removal script..." "INFO"
            try {
                Start-Process powershell.exe -ArgumentList "-ExecutionPolicy Bypass -NoProfile -File `"$appRemovalPath`"" -Wait -NoNewWindow
                Write-Log "App removal execution completed" "SUCCESS"
            } catch {
                Write-Log "App removal execution failed: $($_.Exception.Message)" "WARNING"
            }

            try {
                $action = New-ScheduledTaskAction -Execute "powershell.exe" -Argument "-ExecutionPolicy Bypass -NoProfile -WindowStyle Hidden -File `"$appRemovalPath`" -ScheduledRun"
                $trigger = New-ScheduledTaskTrigger -AtLogOn
                $settings = New-ScheduledTaskSettingsSet -AllowStartIfOnBatteries -DontStopIfGoingOnBatteries -ExecutionTimeLimit 0
                $principal = New-ScheduledTaskPrincipal -UserId "SYSTEM" -LogonType ServiceAccount -RunLevel Highest
        """
    )
    with buffer.indented(2):
        buffer.line(
            f"Register-ScheduledTask -TaskName {quote(REMOVAL_TASK_NAME)} "
            f"-TaskPath {quote(TASK_FOLDER)} -Action $action -Trigger $trigger "
            "-Settings $settings -Principal $principal -Force | Out-Null"
        )
        buffer.line(
            f"Write-Log 'Registered scheduled task: {REMOVAL_TASK_NAME}' 'SUCCESS'"
        )
    buffer.block(
        """
            } catch {
                Write-Log "Failed to register app removal task: $($_.Exception.Message)" "ERROR"
            }
        }
        Write-Log "Windows Apps removal configuration completed" "SUCCESS"
        """
    )
    buffer.blank()
    return True

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

"""Fixed blocks attached to specific features.

- Hibernation: powercfg /hibernate for the hibernation toggle
- Wallpaper: default wallpaper by OS build and theme (user phase)
- Windows Update disabled mode: service, task and DLL hardening
- Scripts directory: folder that receives embedded helper scripts
- Custom script placeholders at the end of each phase
"""

from __future__ import annotations

from winhance_unattend.powershell import ScriptBuffer

SCRIPTS_DIR = r"C:\ProgramData\Winhance\Scripts"


def emit_hibernation(buffer: ScriptBuffer, enabled: bool) -> None:
    state = "on" if enabled else "off"
    buffer.blank()
    buffer.line(f'Write-Log "Setting hibernation to {state}..." "INFO"')
    buffer.line(f"powercfg /hibernate {state} 2>$null")
    buffer.line(f'Write-Log "Hibernation set to {state}" "SUCCESS"')


def emit_wallpaper(buffer: ScriptBuffer) -> None:
    """Set the stock wallpaper matching the OS build and light/dark theme.

    The build is checked when the script runs, since the target machine
    may not match the machine that compiled the script.
    """
    buffer.blank()
    buffer.block(
        r"""
        Write-Log "Setting wallpaper based on Windows version and theme..." "INFO"
        $buildNumber = [System.Environment]::OSVersion.Version.Build
        $wallpaperPath = $null

        if ($buildNumber -ge 22000) {
            $themeKey = 'HKCU:\SOFTWARE\Microsoft\Windows\CurrentVersion\Themes\Personalize'
            $lightTheme = $false
            if (Test-Path $themeKey) {
                $value = Get-ItemProperty -Path $themeKey -Name 'SystemUsesLightTheme' -ErrorAction SilentlyContinue
                if ($value.SystemUsesLightTheme -eq 1) {
                    $lightTheme = $true
                }
            }
            if ($lightTheme) {
                $wallpaperPath = 'C:\Windows\Web\Wallpaper\Windows\img0.jpg'
            } else {
                $wallpaperPath = 'C:\Windows\Web\Wallpaper\Windows\img19.jpg'
            }
        } else {
            $wallpaperPath = 'C:\Windows\Web\4K\Wallpaper\Windows\img0_3840x2160.jpg'
        }

        if (-not (Test-Path $wallpaperPath)) {
            Write-Log "Wallpaper file not found: $wallpaperPath" "WARNING"
        } else {
            try {
                $desktopKey = 'HKCU:\Control Panel\Desktop'
                Set-ItemProperty -Path $desktopKey -Name Wallpaper -Value $wallpaperPath -Type String -Force
                Set-ItemProperty -Path $desktopKey -Name WallpaperStyle -Value '10' -Type String -Force
                Set-ItemProperty -Path $desktopKey -Name TileWallpaper -Value '0' -Type String -Force
                Remove-ItemProperty -Path $desktopKey -Name 'TranscodedImageCache' -ErrorAction SilentlyContinue
                Remove-ItemProperty -Path $desktopKey -Name 'TranscodedImageCache_000' -ErrorAction SilentlyContinue
                Write-Log "Wallpaper configured: $wallpaperPath" "SUCCESS"
            } catch {
                Write-Log "Failed to set wallpaper: $($_.Exception.Message)" "ERROR"
            }
        }
        """
    )
    buffer.blank()


def emit_update_hardening(buffer: ScriptBuffer) -> None:
    """Harden the "updates disabled" policy beyond its registry values.

    Stops and disables the update services, disables the update task
    folders, renames the update engine DLLs and clears the download cache.
    """
    buffer.banner("WINDOWS UPDATE DISABLED MODE - ADDITIONAL HARDENING")
    buffer.block(
        r"""
        Write-Log "Applying Windows Update Disabled mode hardening..." "INFO"

        $updateServices = @('wuauserv', 'UsoSvc', 'WaaSMedicSvc')
        foreach ($service in $updateServices) {
            try {
                net stop $service 2>$null | Out-Null
                sc.exe config $service start= disabled 2>$null | Out-Null
                sc.exe failure $service reset= 0 actions= '""' 2>$null | Out-Null
                Write-Log "Disabled service: $service" "SUCCESS"
            } catch {
                Write-Log "Failed to disable $service : $($_.Exception.Message)" "WARNING"
            }
        }

        $updateTaskPaths = @(
            '\Microsoft\Windows\InstallService\',
            '\Microsoft\Windows\UpdateOrchestrator\',
            '\Microsoft\Windows\UpdateAssistant\',
            '\Microsoft\Windows\WaaSMedic\',
            '\Microsoft\Windows\WindowsUpdate\'
        )
        foreach ($taskPath in $updateTaskPaths) {
            $tasks = Get-ScheduledTask -TaskPath $taskPath -ErrorAction SilentlyContinue
            foreach ($task in $tasks) {
                try {
                    Disable-ScheduledTask -TaskName $task.TaskName -TaskPath $task.TaskPath -ErrorAction Stop | Out-Null
                    Write-Log "Disabled task: $($task.TaskPath)$($task.TaskName)" "SUCCESS"
                } catch {
                    Write-Log "Skipped task: $($task.TaskPath)$($task.TaskName)" "WARNING"
                }
            }
        }

        $updateDlls = @('WaaSMedicSvc.dll', 'wuaueng.dll')
        foreach ($dll in $updateDlls) {
            try {
                $dllPath = Join-Path "$env:SystemRoot\System32" $dll
                $backupPath = Join-Path "$env:SystemRoot\System32" ($dll -replace '\.dll$', '_BAK.dll')
                if ((Test-Path $dllPath) -and -not (Test-Path $backupPath)) {
                    takeown /f "$dllPath" 2>$null | Out-Null
                    icacls "$dllPath" /grant '*S-1-1-0:F' 2>$null | Out-Null
                    Move-Item -Path $dllPath -Destination $backupPath -Force -ErrorAction Stop
                    Write-Log "Renamed $dll to backup" "SUCCESS"
                } elseif (Test-Path $backupPath) {
                    Write-Log "$dll already backed up" "INFO"
                }
            } catch {
                Write-Log "Failed to rename $dll : $($_.Exception.Message)" "WARNING"
            }
        }

        try {
            $softwareDistPath = "$env:SystemRoot\SoftwareDistribution"
            if (Test-Path $softwareDistPath) {
                Remove-Item "$softwareDistPath\*" -Recurse -Force -ErrorAction SilentlyContinue
                Write-Log "SoftwareDistribution folder cleaned" "SUCCESS"
            }
        } catch {
            Write-Log "Failed to clean SoftwareDistribution: $($_.Exception.Message)" "WARNING"
        }

        Write-Log "Windows Update Disabled mode hardening completed" "SUCCESS"
        """
    )
    buffer.blank()


def emit_scripts_directory(buffer: ScriptBuffer) -> None:
    buffer.line(f"$scriptsDir = '{SCRIPTS_DIR}'")
    buffer.block(
        """
        if (-not (Test-Path $scriptsDir)) {
            New-Item -ItemType Directory -Path $scriptsDir -Force | Out-Null
            Write-Log "Created scripts directory: $scriptsDir" "SUCCESS"
        }
        """
    )
    buffer.blank()


def emit_custom_script_placeholder(buffer: ScriptBuffer, scope: str) -> None:
    """Leave a marked spot for hand-written additions ("SYSTEM WIDE" or "USER SPECIFIC")."""
    buffer.banner(f"ADD YOUR {scope} POWERSHELL SCRIPT CONTENTS BELOW")
    buffer.line("# Start here")
    buffer.blank()
    buffer.line("# End here")
    buffer.blank()

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

"""Script header, logging setup, helper functions and completion footer.

These blocks are static apart from the log and script paths. Templates
use string.Template with safe_substitute, so PowerShell variables are
written as $$Variable and only ${log_path}-style placeholders are filled.

The helper functions are the only statements the registry emitter calls:

- Set-RegistryValue / Remove-RegistryValue
- New-RegistryKey / Remove-RegistryKey
- Set-BinaryBit / Set-BinaryByte
- Get-TargetUser / Get-UserSID (used by the user phase when it runs as
  SYSTEM and has to find the logged-on user's hive)

Every setter creates the key when it is missing; every remover tests for
the key first. Failures are logged through Write-Log and never stop the
script.
"""

from __future__ import annotations

import string

from winhance_unattend.powershell import ScriptBuffer

LOG_PATH = r"C:\ProgramData\Winhance\Unattend\Logs\Winhancements.txt"
SCRIPT_PATH = r"C:\ProgramData\Winhance\Unattend\Scripts\Winhancements.ps1"
SCRIPT_NAME = "Winhancements.ps1"
USER_SWITCH = "UserCustomizations"

_HEADER_TEMPLATE = r"""<#
.SYNOPSIS
    Winhance Windows 10/11 Customization and Optimization Script
.DESCRIPTION
    Applies registry settings, app removals, optimizations and customizations.
    Machine-wide settings run when the script is invoked without switches.
    Per-user (HKCU) settings run at first logon through a scheduled task that
    re-invokes this script with -${user_switch}.
.NOTES
    Requires Administrator privileges
    Compatible with Windows 10 and Windows 11
    Logs all activities to ${log_path}
.PARAMETER ${user_switch}
    When specified, applies ONLY HKCU (user-specific) registry settings.
    When not specified, applies all settings EXCEPT HKCU entries.
    User customizations apply once per user. To re-apply, delete:
    HKCU\Software\Winhance\UserCustomizationsApplied
.EXAMPLE
    .\${script_name}
.EXAMPLE
    .\${script_name} -${user_switch}
#>

param(
    [switch]$$${user_switch}
)"""

_LOGGING_TEMPLATE = r"""
# ============================================================================
# LOGGING SETUP
# ============================================================================

$$LogPath = '${log_path}'
$$null = New-Item -Path (Split-Path $$LogPath) -ItemType Directory -Force

function Write-Log {
    param(
        [string]$$Message,
        [ValidateSet("INFO", "SUCCESS", "WARNING", "ERROR")]
        [string]$$Level = "INFO"
    )

    $$Timestamp = Get-Date -Format "yyyy-MM-dd HH:mm:ss"
    Add-Content -Path $$LogPath -Value "[$$Timestamp] [$$Level] $$Message" -Encoding UTF8
}

Write-Log "================================================================================" "INFO"
Write-Log "Winhance Windows Optimization & Customization Script Started" "INFO"
Write-Log "Script Path: $$($$MyInvocation.MyCommand.Path)" "INFO"
Write-Log "Log File: $$LogPath" "INFO"
if ($$${user_switch}) {
    Write-Log "MODE: User Customizations Only (HKCU registry entries)" "INFO"
} else {
    Write-Log "MODE: System Customizations (All settings except HKCU entries)" "INFO"
}
Write-Log "================================================================================" "INFO"
"""

_HELPER_FUNCTIONS = r"""
# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

function Get-TargetUser {
    try {
        $user = Get-CimInstance Win32_ComputerSystem | Select-Object -ExpandProperty UserName
        if ($user -and $user -ne "NT AUTHORITY\SYSTEM") {
            $username = $user.Split('\')[-1]
            if ($username -ne "defaultuser0") {
                return $username
            }
        }
    } catch { }

    try {
        $explorer = Get-CimInstance Win32_Process -Filter "Name = 'explorer.exe'" | Select-Object -First 1
        if ($explorer) {
            $owner = Invoke-CimMethod -InputObject $explorer -MethodName GetOwner
            if ($owner.User -and $owner.User -ne "defaultuser0") {
                return $owner.User
            }
        }
    } catch { }

    return $null
}

function Get-UserSID {
    param([string]$Username)
    try {
        $profileList = 'HKLM:\SOFTWARE\Microsoft\Windows NT\CurrentVersion\ProfileList'
        foreach ($key in Get-ChildItem $profileList -ErrorAction SilentlyContinue) {
            $profilePath = (Get-ItemProperty $key.PSPath -ErrorAction SilentlyContinue).ProfileImagePath
            if ($profilePath -and $profilePath.EndsWith("\$Username")) {
                return $key.PSChildName
            }
        }
    } catch { }
    return $null
}

function Set-RegistryValue {
    param(
        [string]$Path,
        [string]$Name,
        [string]$Type,
        $Value,
        [string]$Description
    )

    try {
        if (-not (Test-Path $Path)) {
            New-Item -Path $Path -Force | Out-Null
        }
        Set-ItemProperty -Path $Path -Name $Name -Value $Value -Type $Type -Force
        Write-Log "$Description | $Path\$Name = $Value" "SUCCESS"
    } catch {
        Write-Log "Failed to set $Path\$Name : $($_.Exception.Message)" "ERROR"
    }
}

function Remove-RegistryValue {
    param(
        [string]$Path,
        [string]$Name,
        [string]$Description
    )

    try {
        if (Test-Path $Path) {
            $existing = Get-ItemProperty -Path $Path -Name $Name -ErrorAction SilentlyContinue
            if ($existing) {
                Remove-ItemProperty -Path $Path -Name $Name -ErrorAction SilentlyContinue
                Write-Log "$Description | Removed $Path\$Name" "SUCCESS"
            }
        }
    } catch {
        Write-Log "Failed to remove $Path\$Name : $($_.Exception.Message)" "ERROR"
    }
}

function New-RegistryKey {
    param(
        [string]$Path,
        [string]$Description
    )

    try {
        if (-not (Test-Path $Path)) {
            New-Item -Path $Path -Force | Out-Null
            Write-Log "$Description | Created key $Path" "SUCCESS"
        }
    } catch {
        Write-Log "Failed to create key $Path : $($_.Exception.Message)" "ERROR"
    }
}

function Remove-RegistryKey {
    param(
        [string]$Path,
        [string]$Description
    )

    try {
        if (Test-Path $Path) {
            Remove-Item -Path $Path -Recurse -Force -ErrorAction SilentlyContinue
            Write-Log "$Description | Removed key $Path" "SUCCESS"
        }
    } catch {
        Write-Log "Failed to remove key $Path : $($_.Exception.Message)" "ERROR"
    }
}

function Get-BinaryValueBytes {
    param(
        [string]$Path,
        [string]$Name,
        [int]$ByteIndex
    )

    if (-not (Test-Path $Path)) {
        New-Item -Path $Path -Force | Out-Null
    }
    $current = Get-ItemProperty -Path $Path -Name $Name -ErrorAction SilentlyContinue
    if ($null -eq $current -or $null -eq $current.$Name) {
        return ,(New-Object byte[] ([Math]::Max(12, $ByteIndex + 1)))
    }
    $bytes = [byte[]]$current.$Name
    if ($bytes.Length -le $ByteIndex) {
        $grown = New-Object byte[] ($ByteIndex + 1)
        [Array]::Copy($bytes, $grown, $bytes.Length)
        $bytes = $grown
    }
    return ,$bytes
}

function Set-BinaryBit {
    param(
        [string]$Path,
        [string]$Name,
        [int]$ByteIndex,
        [byte]$BitMask,
        [bool]$SetBit,
        [string]$Description
    )

    try {
        $bytes = Get-BinaryValueBytes -Path $Path -Name $Name -ByteIndex $ByteIndex
        if ($SetBit) {
            $bytes[$ByteIndex] = $bytes[$ByteIndex] -bor $BitMask
        } else {
            $bytes[$ByteIndex] = $bytes[$ByteIndex] -band (-bnot $BitMask)
        }
        Set-ItemProperty -Path $Path -Name $Name -Value $bytes -Type Binary -Force
        Write-Log "$Description | $Path\$Name mask 0x$($BitMask.ToString('X2')) at byte $ByteIndex = $SetBit" "SUCCESS"
    } catch {
        Write-Log "Failed to modify binary bit $Path\$Name : $($_.Exception.Message)" "ERROR"
    }
}

function Set-BinaryByte {
    param(
        [string]$Path,
        [string]$Name,
        [int]$ByteIndex,
        [byte]$ByteValue,
        [string]$Description
    )

    try {
        $bytes = Get-BinaryValueBytes -Path $Path -Name $Name -ByteIndex $ByteIndex
        $bytes[$ByteIndex] = $ByteValue
        Set-ItemProperty -Path $Path -Name $Name -Value $bytes -Type Binary -Force
        Write-Log "$Description | $Path\$Name byte $ByteIndex = 0x$($ByteValue.ToString('X2'))" "SUCCESS"
    } catch {
        Write-Log "Failed to modify binary byte $Path\$Name : $($_.Exception.Message)" "ERROR"
    }
}
"""

_FOOTER = """
Write-Log "================================================================================" "INFO"
Write-Log "Winhance Windows Optimization & Customization Script Completed" "SUCCESS"
Write-Log "================================================================================" "INFO"
"""


def emit_header(buffer: ScriptBuffer, log_path: str = LOG_PATH) -> None:
    """Write the comment-based help block and the param() declaration."""
    buffer.raw(
        string.Template(_HEADER_TEMPLATE).safe_substitute(
            log_path=log_path,
            script_name=SCRIPT_NAME,
            user_switch=USER_SWITCH,
        )
    )


def emit_logging_setup(buffer: ScriptBuffer, log_path: str = LOG_PATH) -> None:
    """Write the Write-Log function and the start-of-run log banner."""
    buffer.raw(
        string.Template(_LOGGING_TEMPLATE).safe_substitute(
            log_path=log_path.replace("'", "''"),
            user_switch=USER_SWITCH,
        )
    )


def emit_helper_functions(buffer: ScriptBuffer) -> None:
    buffer.raw(_HELPER_FUNCTIONS)


def emit_completion_footer(buffer: ScriptBuffer) -> None:
    buffer.raw(_FOOTER)

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

"""Start Menu layout reset.

Windows 11 (build 22000 and later) takes an empty pin list through the
ConfigureStartPins device policy. Windows 10 reads a LayoutModification.xml
from the default profile, which new accounts copy at first logon.

The build check is written into the script so it runs on the target.
"""

from __future__ import annotations

from winhance_unattend.powershell import ScriptBuffer

WINDOWS_11_BUILD = 22000
START_POLICY_KEY = r"HKLM:\SOFTWARE\Microsoft\PolicyManager\current\device\Start"
DEFAULT_SHELL_DIR = r"C:\Users\Default\AppData\Local\Microsoft\Windows\Shell"

LAYOUT_XML = """<LayoutModificationTemplate xmlns:defaultlayout="http://schemas.microsoft.com/Start/2014/FullDefaultLayout" xmlns:start="http://schemas.microsoft.com/Start/2014/StartLayout" Version="1" xmlns="http://schemas.microsoft.com/Start/2014/LayoutModification">
    <LayoutOptions StartTileGroupCellWidth="6" />
    <DefaultLayoutOverride>
        <StartLayoutCollection>
            <defaultlayout:StartLayout GroupCellWidth="6" />
        </StartLayoutCollection>
    </DefaultLayoutOverride>
</LayoutModificationTemplate>"""


def emit_start_menu_layout(buffer: ScriptBuffer) -> None:
    """Emit the build-guarded Start Menu reset."""
    buffer.banner("START MENU LAYOUT")
    buffer.line("$buildNumber = [System.Environment]::OSVersion.Version.Build")
    buffer.line(f"if ($buildNumber -ge {WINDOWS_11_BUILD}) {{")
    with buffer.indented():
        buffer.line("Write-Log 'Windows 11 detected, clearing Start Menu pins...' 'INFO'")
        buffer.line(
            f"Set-RegistryValue -Path '{START_POLICY_KEY}' -Name 'ConfigureStartPins' "
            "-Type 'String' -Value '{\"pinnedList\":[]}' "
            "-Description 'Clear Start Menu pins'"
        )
    buffer.line("} else {")
    with buffer.indented():
        buffer.line("Write-Log 'Windows 10 detected, writing Start Menu layout...' 'INFO'")
        buffer.line(f"$layoutDir = '{DEFAULT_SHELL_DIR}'")
        buffer.line("$layoutPath = Join-Path $layoutDir 'LayoutModification.xml'")
        buffer.here_string("$layoutXml", LAYOUT_XML)
        buffer.block(
            """
            try {
                if (-not (Test-Path $layoutDir)) {
                    New-Item -ItemType Directory -Path $layoutDir -Force | Out-Null
                }
                $layoutXml | Out-File -FilePath $layoutPath -Encoding UTF8 -Force
                Write-Log "Start Menu layout written: $layoutPath" "SUCCESS"
            } catch {
                Write-Log "Failed to write Start Menu layout: $($_.Exception.Message)" "ERROR"
            }
            """
        )
    buffer.line("}")
    buffer.blank()

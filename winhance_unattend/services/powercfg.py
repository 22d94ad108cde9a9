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

"""Live Windows collaborators.

PowercfgQueryService shells out to powercfg.exe:

- ``powercfg /getactivescheme`` for the active plan
- ``powercfg /qh <plan>`` for every setting, hidden ones included

CimHardwareService asks PowerShell for Win32_Battery instances.

Both parse English output. A localized powercfg prints translated labels
and the parser finds nothing; compile with a power snapshot instead.

Example:
    Reading the active plan:
        ```python
        from winhance_unattend.services.powercfg import PowercfgQueryService

        service = PowercfgQueryService()
        plan = service.get_active_power_plan()
        values = service.get_all_power_settings_acdc(plan.guid)
        ```
"""

from __future__ import annotations

import re
import subprocess

from winhance_unattend.exceptions import CompilationError
from winhance_unattend.logging import get_global_logger
from winhance_unattend.services.base import (
    PowerPlanInfo,
    ServiceBackend,
    register_backend,
)

_GUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
_SCHEME_RE = re.compile(rf"Power Scheme GUID:\s*({_GUID})\s*(?:\((.*)\))?")
_SETTING_RE = re.compile(rf"Power Setting GUID:\s*({_GUID})")
_AC_RE = re.compile(r"Current AC Power Setting Index:\s*(0x[0-9a-fA-F]+)")
_DC_RE = re.compile(r"Current DC Power Setting Index:\s*(0x[0-9a-fA-F]+)")


def parse_active_scheme(output: str) -> PowerPlanInfo | None:
    """Parse ``powercfg /getactivescheme`` output."""
    match = _SCHEME_RE.search(output)
    if not match:
        return None
    guid = match.group(1).lower()
    name = (match.group(2) or "").strip() or guid
    return PowerPlanInfo(guid=guid, name=name)


def parse_query_output(output: str) -> dict[str, tuple[int | None, int | None]]:
    """Parse ``powercfg /q`` or ``/qh`` output into GUID -> (AC, DC).

    Example:
        >>> text = '''
        ...     Power Setting GUID: 6738e2c4-e8a5-4a42-b16a-e040e769756e  (Turn off hard disk after)
        ...     Current AC Power Setting Index: 0x000004b0
        ...     Current DC Power Setting Index: 0x00000258
        ... '''
        >>> parse_query_output(text)
        {'6738e2c4-e8a5-4a42-b16a-e040e769756e': (1200, 600)}
    """
    values: dict[str, tuple[int | None, int | None]] = {}
    current: str | None = None
    ac_value: int | None = None
    dc_value: int | None = None

    def flush() -> None:
        if current is not None:
            values[current] = (ac_value, dc_value)

    for line in output.splitlines():
        setting = _SETTING_RE.search(line)
        if setting:
            flush()
            current = setting.group(1).lower()
            ac_value = dc_value = None
            continue
        if current is None:
            continue
        ac = _AC_RE.search(line)
        if ac:
            ac_value = int(ac.group(1), 16)
            continue
        dc = _DC_RE.search(line)
        if dc:
            dc_value = int(dc.group(1), 16)
    flush()
    return values


class PowercfgQueryService:
    """Power service backed by powercfg.exe."""

    def __init__(self, executable: str = "powercfg", timeout: int = 30) -> None:
        self.executable = executable
        self.timeout = timeout

    def _run(self, *args: str) -> str:
        logger = get_global_logger()
        cmd = [self.executable, *args]
        logger.debug("POWER", f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as err:
            raise CompilationError(
                f"{self.executable} not found; compile with a power snapshot on "
                "non-Windows hosts"
            ) from err
        except subprocess.CalledProcessError as err:
            raise CompilationError(
                f"powercfg {' '.join(args)} failed with exit code {err.returncode}"
            ) from err
        except subprocess.TimeoutExpired as err:
            raise CompilationError(
                f"powercfg {' '.join(args)} timed out after {self.timeout}s"
            ) from err
        return result.stdout

    def get_active_power_plan(self) -> PowerPlanInfo | None:
        return parse_active_scheme(self._run("/getactivescheme"))

    def get_all_power_settings_acdc(
        self, plan_guid: str
    ) -> dict[str, tuple[int | None, int | None]]:
        values = parse_query_output(self._run("/qh", plan_guid))
        get_global_logger().verbose(
            "POWER", f"Read {len(values)} power setting(s) from plan {plan_guid}"
        )
        return values


class CimHardwareService:
    """Hardware service backed by CIM queries through PowerShell."""

    def __init__(self, executable: str = "powershell", timeout: int = 30) -> None:
        self.executable = executable
        self.timeout = timeout

    def has_battery(self) -> bool:
        logger = get_global_logger()
        command = "@(Get-CimInstance -ClassName Win32_Battery).Count"
        try:
            result = subprocess.run(
                [self.executable, "-NoProfile", "-NonInteractive", "-Command", command],
                capture_output=True,
                text=True,
                check=True,
                timeout=self.timeout,
            )
        except (
            FileNotFoundError,
            subprocess.CalledProcessError,
            subprocess.TimeoutExpired,
        ) as err:
            # Battery-gated settings are skipped when presence is unknown
            logger.warning("HARDWARE", f"Battery detection failed: {err}")
            return False

        try:
            count = int(result.stdout.strip() or "0")
        except ValueError:
            logger.warning(
                "HARDWARE", f"Unexpected battery query output: {result.stdout.strip()!r}"
            )
            return False
        logger.verbose("HARDWARE", f"Batteries detected: {count}")
        return count > 0


def _windows_backend(**options: object) -> ServiceBackend:
    powershell = options.get("powershell") or "powershell"
    return ServiceBackend(
        power=PowercfgQueryService(),
        hardware=CimHardwareService(executable=str(powershell)),
    )


register_backend("windows", _windows_backend)

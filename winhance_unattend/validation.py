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

"""Script and configuration validation.

Two checks live here:

1. PowerShellSyntaxValidator runs the finished script through PowerShell's
   own parser (``[System.Management.Automation.Language.Parser]::ParseFile``)
   without executing it. A syntax error is fatal for the compilation.

2. validate_configuration checks a configuration document against the
   catalog without compiling anything and without PowerShell:

   - Both documents load and parse
   - Every included feature exists in the catalog
   - Every selected setting id exists in its feature
   - Every selection index has an entry in the setting's value table
   - Every app removal item names a package, capability or feature

Example:
    Validate a configuration and handle results:
        ```python
        from pathlib import Path
        from winhance_unattend.validation import validate_configuration

        result = validate_configuration(Path("config.yaml"), Path("catalog.yaml"))
        if result["status"] == "valid":
            print(f"Configuration is valid with {result['setting_count']} setting(s)")
        else:
            for error in result["errors"]:
                print(f"Error: {error}")
        ```
"""

from __future__ import annotations

import re
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any

from winhance_unattend.config import load_catalog, load_configuration
from winhance_unattend.exceptions import (
    ConfigError,
    ScriptSyntaxError,
    ValidatorUnavailableError,
)
from winhance_unattend.logging import get_global_logger
from winhance_unattend.powershell import escape_string
from winhance_unattend.resolver import POWER_PLAN_SETTING_ID
from winhance_unattend.sections.apps import EDGE_APP_ID, ONEDRIVE_APP_ID

__all__ = ["PowerShellSyntaxValidator", "validate_configuration"]

# PowerShell 7 first, then Windows PowerShell
_EXECUTABLES = ("pwsh", "powershell")

_PARSE_COMMAND = """\
$errors = $null
$null = [System.Management.Automation.Language.Parser]::ParseFile('$path', [ref]$null, [ref]$errors)
if ($errors.Count -gt 0) {
    foreach ($e in $errors) {
        Write-Output ("PARSE_ERROR: line {0}: {1}" -f $e.Extent.StartLineNumber, $e.Message)
    }
    exit 1
}
exit 0
"""

_LINE_RE = re.compile(r"^PARSE_ERROR:\s*(.*)$")


# -------------------------------
# PowerShell parser
# -------------------------------


def parse_diagnostics(output: str) -> list[str]:
    """Extract parser messages from the validator's stdout.

    Example:
        >>> parse_diagnostics("PARSE_ERROR: line 3: Missing closing '}'\\n")
        ["line 3: Missing closing '}'"]
    """
    diagnostics = []
    for line in output.splitlines():
        match = _LINE_RE.match(line.strip())
        if match:
            diagnostics.append(match.group(1).strip())
    return diagnostics


class PowerShellSyntaxValidator:
    """Syntax-only check through a local PowerShell host.

    The script is written to a temporary .ps1 file, parsed, and the file
    removed. Nothing in the script runs.

    Attributes:
        executable: PowerShell executable. None selects pwsh, then
            powershell, from PATH on first use.
        timeout: Seconds to wait for the parser.
    """

    def __init__(self, executable: str | None = None, timeout: int = 60) -> None:
        self.executable = executable
        self.timeout = timeout

    def _find_executable(self) -> str:
        if self.executable:
            found = shutil.which(self.executable)
            if found is None:
                raise ValidatorUnavailableError(
                    f"PowerShell executable not found: {self.executable}"
                )
            return found
        for name in _EXECUTABLES:
            found = shutil.which(name)
            if found:
                return found
        raise ValidatorUnavailableError(
            "No PowerShell host found (tried pwsh, powershell). Install PowerShell 7 "
            "or compile with --skip-validation."
        )

    def validate_syntax(self, script_text: str) -> None:
        """Parse ``script_text`` and raise on any syntax error.

        Raises:
            ScriptSyntaxError: The parser reported errors; ``diagnostics``
                holds one "line N: message" entry per error.
            ValidatorUnavailableError: No host, or the parser timed out.
        """
        logger = get_global_logger()
        executable = self._find_executable()

        with tempfile.TemporaryDirectory(prefix="winhance_validate_") as tmp:
            script_path = Path(tmp) / "script.ps1"
            script_path.write_text(script_text, encoding="utf-8-sig")
            command = _PARSE_COMMAND.replace("$path", escape_string(str(script_path)))

            logger.debug("VALIDATE", f"Parsing {script_path} with {executable}")
            try:
                result = subprocess.run(
                    [executable, "-NoProfile", "-NonInteractive", "-Command", command],
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except subprocess.TimeoutExpired as err:
                raise ValidatorUnavailableError(
                    f"PowerShell parser timed out after {self.timeout}s"
                ) from err
            except OSError as err:
                raise ValidatorUnavailableError(
                    f"Failed to start {executable}: {err}"
                ) from err

        diagnostics = parse_diagnostics(result.stdout)
        if result.returncode != 0 or diagnostics:
            if not diagnostics:
                diagnostics = [
                    line.strip() for line in result.stderr.splitlines() if line.strip()
                ]
            raise ScriptSyntaxError(
                f"Script validation failed with {len(diagnostics)} parse error(s)",
                diagnostics,
            )
        logger.verbose("VALIDATE", "Script validation passed - no parse errors found")


# -------------------------------
# Configuration check
# -------------------------------


def validate_configuration(
    config_path: Path, catalog_path: Path, verbose: bool = False
) -> dict[str, Any]:
    """Check a configuration against the catalog without compiling.

    Args:
        config_path: Configuration document.
        catalog_path: Catalog document.
        verbose: If True, print validation progress.

    Returns:
        A dict (status, errors, warnings, setting_count, config_path), where
            status is "valid" or "invalid", errors lists problems that would
            make settings drop out of the script, warnings lists harmless
            oddities, and setting_count is the number of selections checked.
    """
    errors: list[str] = []
    warnings: list[str] = []
    setting_count = 0

    def result() -> dict[str, Any]:
        status = "valid" if not errors else "invalid"
        if verbose:
            if status == "valid":
                print("  [OK] Configuration is valid!")
            else:
                print(f"  [ERROR] Configuration has {len(errors)} error(s)")
        return {
            "status": status,
            "errors": errors,
            "warnings": warnings,
            "setting_count": setting_count,
            "config_path": str(config_path),
        }

    if verbose:
        print(f"Validating configuration: {config_path}")

    try:
        catalog = load_catalog(catalog_path)
    except ConfigError as err:
        errors.append(f"Catalog: {err}")
        return result()
    if verbose:
        print(f"  [OK] Catalog loaded: {len(catalog.features)} feature(s)")

    try:
        config = load_configuration(config_path)
    except ConfigError as err:
        errors.append(f"Configuration: {err}")
        return result()
    if verbose:
        print("  [OK] Configuration syntax is valid")

    for group in config.groups:
        for section in group.features:
            prefix = f"{group.name.lower()}.{section.feature_id}"
            if not section.is_included:
                continue
            if not section.items:
                warnings.append(f"{prefix}: included but has no items")
                continue
            if catalog.definitions(section.feature_id) is None:
                errors.append(f"{prefix}: unknown feature")
                continue

            for item in section.items:
                setting_count += 1
                if item.id == POWER_PLAN_SETTING_ID:
                    if not item.power_plan_guid:
                        errors.append(f"{prefix}.{item.id}: powerPlanGuid is required")
                    continue
                definition = catalog.find(section.feature_id, item.id)
                if definition is None:
                    errors.append(f"{prefix}: unknown setting id {item.id!r}")
                    continue
                if not definition.has_targets:
                    warnings.append(f"{prefix}.{item.id}: setting has no targets")
                if item.kind != "selection" or item.custom_state_values:
                    continue
                if item.selected_index is None:
                    errors.append(f"{prefix}.{item.id}: selection has no selectedIndex")
                elif item.selected_index not in definition.value_mappings:
                    errors.append(
                        f"{prefix}.{item.id}: selectedIndex {item.selected_index} "
                        "has no entry in the value table"
                    )

    for index, app in enumerate(config.windows_apps):
        if not app.name and app.id not in (EDGE_APP_ID, ONEDRIVE_APP_ID):
            errors.append(f"windows_apps.items[{index}] ({app.id}): no package name")

    if verbose:
        print(f"  [OK] Checked {setting_count} setting(s)")
    return result()

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

"""Compilation orchestration.

This module ties the collaborators, the assembler and the validator
together. It is the only place that talks to the outside world during a
compilation; everything it calls below the assembler is pure.

Compilation Steps:

1. Read the active power plan and its AC/DC values (power service)
2. Probe hardware capabilities (hardware service)
3. Assemble the two-phase script
4. Run the syntax check, exactly once

Each collaborator is called once, in that order. A validation failure
raises and nothing is returned; there is no partial script.

Example:
    Compile from files on any host:
        ```python
        from pathlib import Path
        from winhance_unattend.core import compile_files

        result = compile_files(
            Path("config.yaml"),
            Path("catalog.yaml"),
            output_path=Path("out/Winhancements.ps1"),
            power_snapshot=Path("power.yaml"),
        )
        print(result.output_path)
        ```
"""

from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path

from winhance_unattend.assembler import PowerSnapshot, ScriptAssembler
from winhance_unattend.config import load_catalog, load_configuration
from winhance_unattend.exceptions import CompilationError
from winhance_unattend.logging import CollectingLogger, Logger, get_global_logger
from winhance_unattend.models import Catalog, Phase, UnifiedConfiguration
from winhance_unattend.results import CompileResult
from winhance_unattend.services import get_backend
from winhance_unattend.services.base import (
    HardwareDetectionService,
    PowerSettingsQueryService,
    ServiceBackend,
    SyntaxValidator,
)
from winhance_unattend.validation import PowerShellSyntaxValidator

_TOTAL_STEPS = 4


def read_power_snapshot(
    power_service: PowerSettingsQueryService,
    hardware_service: HardwareDetectionService,
    logger: Logger,
) -> PowerSnapshot:
    """Query the collaborators once each and freeze the answers."""
    plan = power_service.get_active_power_plan()
    if plan is None:
        logger.warning(
            "POWER", "Could not determine the active power plan; no live values"
        )
        values = {}
    else:
        logger.verbose("POWER", f"Active power plan: {plan.name} ({plan.guid})")
        values = dict(power_service.get_all_power_settings_acdc(plan.guid))

    logger.step(2, _TOTAL_STEPS, "Detecting hardware...")
    has_battery = bool(hardware_service.has_battery())
    logger.verbose("HARDWARE", f"Battery present: {has_battery}")
    return PowerSnapshot(active_plan=plan, acdc_values=values, has_battery=has_battery)


def compile_script(
    config: UnifiedConfiguration,
    catalog: Catalog,
    power_service: PowerSettingsQueryService,
    hardware_service: HardwareDetectionService,
    validator: SyntaxValidator | None,
    logger: Logger | None = None,
) -> CompileResult:
    """Compile a configuration into a validated script.

    Args:
        config: User selections.
        catalog: Setting catalog.
        power_service: Source of the active plan and its AC/DC values.
        hardware_service: Source of hardware capability probes.
        validator: Syntax checker for the finished text. None skips the
            check; the result then reports ``validated=False``.
        logger: Receives progress and warnings. Defaults to the global
            logger.

    Returns:
        CompileResult with the script and every warning raised on the way.

    Raises:
        ScriptSyntaxError: The script failed the parser.
        ValidatorUnavailableError: The parser could not be run.
        CompilationError: A collaborator failed.

    Example:
        Compile with fixture collaborators:
            ```python
            from winhance_unattend.services import (
                StaticHardwareService,
                StaticPowerSettingsService,
            )

            result = compile_script(
                config,
                catalog,
                StaticPowerSettingsService(),
                StaticHardwareService(),
                validator=None,
            )
            ```
    """
    collector = CollectingLogger(logger if logger is not None else get_global_logger())

    collector.step(1, _TOTAL_STEPS, "Reading power configuration...")
    snapshot = read_power_snapshot(power_service, hardware_service, collector)

    collector.step(3, _TOTAL_STEPS, "Assembling script...")
    assembler = ScriptAssembler(catalog, logger=collector)
    script = assembler.assemble(config, snapshot)
    collector.verbose("ASSEMBLE", f"Script assembled: {len(script.splitlines())} line(s)")

    validated = False
    if validator is None:
        collector.step(4, _TOTAL_STEPS, "Skipping syntax validation...")
        collector.warning("VALIDATE", "Syntax validation skipped")
    else:
        collector.step(4, _TOTAL_STEPS, "Validating script syntax...")
        try:
            validator.validate_syntax(script)
        except CompilationError as err:
            collector.error("VALIDATE", str(err))
            raise
        validated = True

    collector.verbose("COMPILE", "Script compiled successfully")
    return CompileResult(
        script=script,
        warnings=tuple(collector.warnings),
        system_sections=assembler.sections_written.get(Phase.SYSTEM, 0),
        user_sections=assembler.sections_written.get(Phase.USER, 0),
        power_settings=assembler.power_settings_written,
        app_removal=assembler.removal_emitted,
        validated=validated,
    )


def select_backend(
    power_snapshot: Path | None = None,
    backend: str | None = None,
    powershell: str | None = None,
    logger: Logger | None = None,
) -> ServiceBackend:
    """Pick the data collaborators for this host.

    A snapshot always wins. Without one, an explicit backend name is used,
    then the live Windows backend on Windows, then empty static data.

    Raises:
        ConfigError: If the backend name is unknown or the snapshot is
            invalid.
    """
    if logger is None:
        logger = get_global_logger()
    if power_snapshot is not None:
        return get_backend("static", snapshot=Path(power_snapshot))
    if backend is not None:
        return get_backend(backend, powershell=powershell)
    if sys.platform == "win32":
        return get_backend("windows", powershell=powershell)
    logger.warning(
        "POWER",
        "Not running on Windows and no power snapshot given; power values will "
        "not be baked into the script",
    )
    return get_backend("static")


def compile_files(
    config_path: Path,
    catalog_path: Path,
    output_path: Path | None = None,
    power_snapshot: Path | None = None,
    backend: str | None = None,
    powershell: str | None = None,
    skip_validation: bool = False,
    logger: Logger | None = None,
) -> CompileResult:
    """Load documents, compile, and optionally write the script.

    Args:
        config_path: Configuration document.
        catalog_path: Catalog document.
        output_path: Where to write the script. Parent directories are
            created. None returns the text only.
        power_snapshot: Power snapshot document for the static backend.
        backend: Backend name, used when no snapshot is given.
        powershell: PowerShell executable for validation and CIM queries.
        skip_validation: Skip the PowerShell syntax check.
        logger: Defaults to the global logger.

    Returns:
        CompileResult, with ``output_path`` set when the file was written.

    Raises:
        ConfigError: On unreadable or invalid documents.
        CompilationError: On any fatal compilation failure.

    Note:
        The script is written as UTF-8 with a BOM so Windows PowerShell 5.1
        reads non-ASCII text correctly.
    """
    if logger is None:
        logger = get_global_logger()

    catalog = load_catalog(Path(catalog_path))
    config = load_configuration(Path(config_path))
    services = select_backend(power_snapshot, backend, powershell, logger)
    validator = None if skip_validation else PowerShellSyntaxValidator(powershell)

    result = compile_script(
        config,
        catalog,
        services.power,
        services.hardware,
        validator,
        logger,
    )
    if output_path is None:
        return result

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(result.script, encoding="utf-8-sig")
    logger.verbose("COMPILE", f"Wrote script: {output_path}")

    return replace(result, output_path=output_path)
